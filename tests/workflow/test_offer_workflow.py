"""Tests for the offer approval workflow."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from tradeup_engine.errors import (
    AuditWriteError,
    ConflictError,
    InputValidationError,
    InvalidTransitionError,
    NotFoundError,
)
from tradeup_engine.intake import OpportunityIntake
from tradeup_engine.storage import DatabaseManager
from tradeup_engine.storage.repos import AuditEventRepository, OfferRepository
from tradeup_engine.workflow import OFFER_TRANSITIONS, OfferStatus, OfferWorkflow, is_terminal


@pytest.fixture
async def opportunity_id(async_session, raw_intake, actor) -> int:
    result = await OpportunityIntake().create_opportunity(
        async_session, raw_intake, actor_user_id=actor
    )
    return result.value.id


@pytest.fixture
async def draft(async_session, opportunity_id, actor):
    result = await OfferWorkflow().create_draft(
        async_session,
        opportunity_id=opportunity_id,
        offer_terms={"offer_usd": 95, "pickup": True, "note": "cash"},
        actor_user_id=actor,
    )
    return result.value


class TestOfferTransitionsTable:
    def test_terminal_states(self) -> None:
        assert is_terminal(OFFER_TRANSITIONS, OfferStatus.SENT)
        assert is_terminal(OFFER_TRANSITIONS, OfferStatus.REJECTED)
        assert not is_terminal(OFFER_TRANSITIONS, OfferStatus.DRAFT)


class TestCreateDraft:
    @pytest.mark.asyncio
    async def test_creates_draft(self, async_session, opportunity_id, actor) -> None:
        result = await OfferWorkflow().create_draft(
            async_session,
            opportunity_id=opportunity_id,
            offer_terms={"offer_usd": 95},
            actor_user_id=actor,
        )

        assert result.value.status == "draft"
        assert result.value.offer_terms == {"offer_usd": 95}
        assert result.value.sent_by_human_id is None
        assert result.event.event_type == "offer.created"

    @pytest.mark.asyncio
    async def test_empty_terms(self, async_session, opportunity_id, actor) -> None:
        with pytest.raises(InputValidationError):
            await OfferWorkflow().create_draft(
                async_session, opportunity_id=opportunity_id, offer_terms={}, actor_user_id=actor
            )

    @pytest.mark.asyncio
    async def test_nested_terms(self, async_session, opportunity_id, actor) -> None:
        with pytest.raises(InputValidationError):
            await OfferWorkflow().create_draft(
                async_session,
                opportunity_id=opportunity_id,
                offer_terms={"bundle": {"items": 2}},
                actor_user_id=actor,
            )

    @pytest.mark.asyncio
    async def test_unknown_opportunity(self, async_session, actor) -> None:
        with pytest.raises(NotFoundError):
            await OfferWorkflow().create_draft(
                async_session, opportunity_id=404, offer_terms={"offer_usd": 1}, actor_user_id=actor
            )


class TestOfferTransitions:
    @pytest.mark.asyncio
    async def test_approve_then_send(self, async_session, draft, actor) -> None:
        workflow = OfferWorkflow()

        approved = await workflow.approve(async_session, draft.id, actor_user_id="reviewer-1")
        assert approved.value.status == "approved"
        assert approved.value.sent_by_human_id is None

        sent = await workflow.send(async_session, draft.id, actor_user_id=actor)
        assert sent.value.status == "sent"
        assert sent.value.sent_by_human_id == actor
        assert sent.event.payload == {"from": "approved", "to": "sent", "actorUserId": actor}

    @pytest.mark.asyncio
    async def test_rejected_cannot_be_approved(self, async_session, draft, actor) -> None:
        workflow = OfferWorkflow()
        await workflow.reject(async_session, draft.id, actor_user_id=actor)

        with pytest.raises(ConflictError) as exc_info:
            await workflow.approve(async_session, draft.id, actor_user_id=actor)

        assert isinstance(exc_info.value, InvalidTransitionError)
        assert exc_info.value.from_status == "rejected"
        assert exc_info.value.to_status == "approved"
        assert str(exc_info.value) == "Invalid transition from rejected to approved"

    @pytest.mark.asyncio
    async def test_draft_cannot_be_sent(self, async_session, draft, actor) -> None:
        with pytest.raises(InvalidTransitionError):
            await OfferWorkflow().send(async_session, draft.id, actor_user_id=actor)

        offer = await OfferWorkflow().get_offer(async_session, draft.id)
        assert offer.status == "draft"

    @pytest.mark.asyncio
    async def test_unknown_target(self, async_session, draft, actor) -> None:
        with pytest.raises(InputValidationError):
            await OfferWorkflow().transition(
                async_session, offer_id=draft.id, target="countered", actor_user_id=actor
            )

    @pytest.mark.asyncio
    async def test_unknown_offer(self, async_session, actor) -> None:
        with pytest.raises(NotFoundError):
            await OfferWorkflow().approve(async_session, 404, actor_user_id=actor)

    @pytest.mark.asyncio
    async def test_string_target(self, async_session, draft, actor) -> None:
        result = await OfferWorkflow().transition(
            async_session, offer_id=draft.id, target="approved", actor_user_id=actor
        )
        assert result.value.status == OfferStatus.APPROVED.value


class TestOfferCompareAndSet:
    @pytest.mark.asyncio
    async def test_stale_expected_status_is_a_miss(self, async_session, draft) -> None:
        repo = OfferRepository(async_session)
        await repo.update_status_if(draft.id, expected_status="draft", status="rejected")

        assert await repo.update_status_if(draft.id, expected_status="draft", status="approved") is None
        assert (await repo.get(draft.id)).status == "rejected"

    @pytest.mark.asyncio
    async def test_lost_race_raises_without_audit(
        self, async_session, draft, actor, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(OfferRepository, "update_status_if", AsyncMock(return_value=None))

        with pytest.raises(InvalidTransitionError):
            await OfferWorkflow().approve(async_session, draft.id, actor_user_id=actor)

        assert await AuditEventRepository(async_session).count(event_type="offer.status_changed") == 0


class TestAuditCoupling:
    @pytest.mark.asyncio
    async def test_failed_audit_undoes_approval(
        self, tmp_path, raw_intake, actor, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'offers.db'}")
        await manager.init_schema_async()
        workflow = OfferWorkflow()

        async with manager.get_async_session() as session:
            opportunity = await OpportunityIntake().create_opportunity(
                session, raw_intake, actor_user_id=actor
            )
            draft = await workflow.create_draft(
                session,
                opportunity_id=opportunity.value.id,
                offer_terms={"offer_usd": 95},
                actor_user_id=actor,
            )

        async def failing_append(self, **kwargs):
            raise OperationalError("INSERT INTO events", {}, Exception("database is locked"))

        with monkeypatch.context() as patch:
            patch.setattr(AuditEventRepository, "append", failing_append)
            with pytest.raises(AuditWriteError):
                async with manager.get_async_session() as session:
                    await workflow.approve(session, draft.value.id, actor_user_id=actor)

        async with manager.get_async_session() as session:
            offer = await workflow.get_offer(session, draft.value.id)
            events = await AuditEventRepository(session).list_for_entity("offer", str(draft.value.id))

        assert offer.status == "draft"
        assert [e.event_type for e in events] == ["offer.created"]

        await manager.dispose_async()
