"""Tests for task dispatch, provider callbacks and evidence."""

import asyncio
import hashlib
from unittest.mock import AsyncMock

import pytest

from tradeup_engine.errors import (
    InputValidationError,
    NotFoundError,
    UnauthorizedError,
    UpstreamError,
)
from tradeup_engine.storage.repos import AuditEventRepository, TaskRepository
from tradeup_engine.tasks import (
    ProviderTaskRequest,
    ProviderTaskResult,
    StubTaskProvider,
    TaskDispatcher,
    TaskProviderError,
    TaskStatus,
    TaskType,
    evidence_checksum,
)

WEBHOOK_TOKEN = "test-webhook-token"


class SlowProvider:
    """Provider that never answers within the test timeout."""

    async def create_task(self, request: ProviderTaskRequest) -> ProviderTaskResult:
        await asyncio.sleep(5)
        return ProviderTaskResult(provider_name="slow", provider_task_id="never")


@pytest.fixture
def dispatcher() -> TaskDispatcher:
    return TaskDispatcher(StubTaskProvider(), webhook_token=WEBHOOK_TOKEN)


@pytest.fixture
async def task(async_session, dispatcher, actor):
    result = await dispatcher.create_task(
        async_session, task_type=TaskType.INSPECT, assignee="runner-7", actor_user_id=actor
    )
    return result.value


class TestEvidenceChecksum:
    def test_deterministic(self) -> None:
        first = evidence_checksum("https://cdn.example/a.jpg", "2026-10-01T10:00:00Z")
        second = evidence_checksum("https://cdn.example/a.jpg", "2026-10-01T10:00:00Z")

        assert first == second
        assert first == hashlib.sha256(b"https://cdn.example/a.jpg|2026-10-01T10:00:00Z").hexdigest()

    def test_differs_by_capture_time(self) -> None:
        assert evidence_checksum("u", "2026-10-01T10:00:00Z") != evidence_checksum(
            "u", "2026-10-01T10:00:01Z"
        )

    def test_provided_checksum_wins(self) -> None:
        assert evidence_checksum("u", "t", "  ABCDEF ") == "abcdef"


class TestCreateTask:
    @pytest.mark.asyncio
    async def test_persists_queued_task(self, async_session, dispatcher, actor) -> None:
        result = await dispatcher.create_task(
            async_session, task_type="pickup", metadata={"location": "austin tx"}, actor_user_id=actor
        )

        assert result.value.status == "queued"
        assert result.value.type == "pickup"
        assert result.value.provider_name == "rentahuman_stub"
        assert result.event.event_type == "task.created"
        assert result.event.payload["providerTaskId"] == result.value.provider_task_id

    @pytest.mark.asyncio
    async def test_timeout_persists_nothing(self, async_session, actor) -> None:
        dispatcher = TaskDispatcher(SlowProvider(), webhook_token=WEBHOOK_TOKEN, timeout_seconds=0.01)

        with pytest.raises(UpstreamError, match="timed out"):
            await dispatcher.create_task(async_session, task_type="meet", actor_user_id=actor)

        assert await TaskRepository(async_session).list_statuses() == []
        assert await AuditEventRepository(async_session).count() == 0

    @pytest.mark.asyncio
    async def test_provider_error(self, async_session, actor) -> None:
        provider = AsyncMock()
        provider.create_task = AsyncMock(side_effect=TaskProviderError("rejected"))
        dispatcher = TaskDispatcher(provider, webhook_token=WEBHOOK_TOKEN)

        with pytest.raises(UpstreamError, match="rejected"):
            await dispatcher.create_task(async_session, task_type="ship", actor_user_id=actor)

        assert await TaskRepository(async_session).list_statuses() == []

    @pytest.mark.asyncio
    async def test_invalid_type(self, async_session, dispatcher, actor) -> None:
        with pytest.raises(InputValidationError):
            await dispatcher.create_task(async_session, task_type="deliver", actor_user_id=actor)

    @pytest.mark.asyncio
    async def test_nested_metadata_rejected(self, async_session, dispatcher, actor) -> None:
        with pytest.raises(InputValidationError):
            await dispatcher.create_task(
                async_session, task_type="ship", metadata={"box": {"w": 1}}, actor_user_id=actor
            )


class TestProviderUpdate:
    @pytest.mark.asyncio
    async def test_applies_status(self, async_session, dispatcher, task) -> None:
        result = await dispatcher.apply_provider_update(
            async_session,
            token=WEBHOOK_TOKEN,
            provider_task_id=task.provider_task_id,
            status="in_progress",
        )

        assert result.value.status == TaskStatus.IN_PROGRESS.value
        assert result.event.event_type == "task.status_changed"
        assert result.event.payload == {
            "providerTaskId": task.provider_task_id,
            "status": "in_progress",
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", [None, "", "wrong-token"])
    async def test_rejects_bad_token(self, async_session, dispatcher, task, token) -> None:
        with pytest.raises(UnauthorizedError, match="Invalid webhook token"):
            await dispatcher.apply_provider_update(
                async_session, token=token, provider_task_id=task.provider_task_id, status="completed"
            )

        stored = await TaskRepository(async_session).get(task.id)
        assert stored.status == "queued"

    @pytest.mark.asyncio
    async def test_invalid_status(self, async_session, dispatcher, task) -> None:
        with pytest.raises(InputValidationError):
            await dispatcher.apply_provider_update(
                async_session, token=WEBHOOK_TOKEN, provider_task_id=task.provider_task_id, status="lost"
            )

    @pytest.mark.asyncio
    async def test_unknown_task(self, async_session, dispatcher) -> None:
        with pytest.raises(NotFoundError):
            await dispatcher.apply_provider_update(
                async_session, token=WEBHOOK_TOKEN, provider_task_id="nope", status="completed"
            )


class TestEvidence:
    @pytest.mark.asyncio
    async def test_records_evidence(self, async_session, dispatcher, task, actor) -> None:
        result = await dispatcher.record_evidence(
            async_session,
            task_id=task.id,
            media_url=" https://cdn.example/a.jpg ",
            captured_at="2026-10-01T10:00:00+00:00",
            geotag="30.27,-97.74",
            actor_user_id=actor,
        )

        evidence = result.value
        assert evidence.media_url == "https://cdn.example/a.jpg"
        assert evidence.checksum == evidence_checksum(
            "https://cdn.example/a.jpg", "2026-10-01T10:00:00+00:00"
        )
        assert result.event.event_type == "evidence.recorded"
        assert result.event.entity_id == str(task.id)

    @pytest.mark.asyncio
    async def test_listed_newest_capture_first(self, async_session, dispatcher, task, actor) -> None:
        for captured_at in ("2026-10-01T10:00:00+00:00", "2026-10-03T10:00:00+00:00", "2026-10-02T10:00:00+00:00"):
            await dispatcher.record_evidence(
                async_session,
                task_id=task.id,
                media_url=f"https://cdn.example/{captured_at}.jpg",
                captured_at=captured_at,
                actor_user_id=actor,
            )

        evidence = await dispatcher.list_evidence(async_session, task.id)

        assert [e.media_url.split("/")[-1][:10] for e in evidence] == [
            "2026-10-03",
            "2026-10-02",
            "2026-10-01",
        ]

    @pytest.mark.asyncio
    async def test_ordering_uses_utc_instant(self, async_session, dispatcher, task, actor) -> None:
        earlier = await dispatcher.record_evidence(
            async_session,
            task_id=task.id,
            media_url="https://cdn.example/kolkata.jpg",
            captured_at="2026-10-01T12:00:00+05:00",
            actor_user_id=actor,
        )
        later = await dispatcher.record_evidence(
            async_session,
            task_id=task.id,
            media_url="https://cdn.example/london.jpg",
            captured_at="2026-10-01T08:00:00+00:00",
            actor_user_id=actor,
        )
        async_session.expire_all()

        evidence = await dispatcher.list_evidence(async_session, task.id)

        assert [e.id for e in evidence] == [later.value.id, earlier.value.id]
        assert earlier.value.checksum == evidence_checksum(
            "https://cdn.example/kolkata.jpg", "2026-10-01T12:00:00+05:00"
        )

    @pytest.mark.asyncio
    async def test_unknown_task(self, async_session, dispatcher, actor) -> None:
        with pytest.raises(NotFoundError):
            await dispatcher.record_evidence(
                async_session, task_id=404, media_url="https://cdn.example/a.jpg", actor_user_id=actor
            )

    @pytest.mark.asyncio
    async def test_invalid_capture_time(self, async_session, dispatcher, task, actor) -> None:
        with pytest.raises(InputValidationError):
            await dispatcher.record_evidence(
                async_session,
                task_id=task.id,
                media_url="https://cdn.example/a.jpg",
                captured_at="yesterday",
                actor_user_id=actor,
            )

    @pytest.mark.asyncio
    async def test_media_url_required(self, async_session, dispatcher, task, actor) -> None:
        with pytest.raises(InputValidationError):
            await dispatcher.record_evidence(
                async_session, task_id=task.id, media_url="  ", actor_user_id=actor
            )
