"""Tests for opportunity intake normalization and creation."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from tradeup_engine.errors import DuplicateOpportunityError, InputValidationError
from tradeup_engine.intake import (
    DEFAULT_TITLE,
    INTAKE_REQUIRED_MESSAGE,
    NORMALIZATION_VERSION,
    OpportunityIntake,
    compute_dedupe_key,
    normalize_intake,
    normalize_text,
)
from tradeup_engine.storage.repos import AuditEventRepository


class TestNormalizeText:
    def test_trims_lowercases_and_collapses(self) -> None:
        assert normalize_text("  Austin \t  TX ") == "austin tx"

    def test_non_string_is_empty(self) -> None:
        assert normalize_text(None) == ""
        assert normalize_text(42) == ""


class TestNormalizeIntake:
    def test_normalizes_fields(self, raw_intake) -> None:
        intake = normalize_intake(raw_intake)

        assert intake.source == "craigslist"
        assert intake.category == "electronics"
        assert intake.location == "austin tx"
        assert intake.title == "Sony WH-1000XM4 headphones"
        assert intake.price_usd == Decimal("120.00")
        assert intake.seller_rep_score == 4.5
        assert intake.payload["normalization_version"] == NORMALIZATION_VERSION
        assert intake.payload["price_usd"] == 120.0

    def test_price_rounds_half_up(self, raw_intake) -> None:
        intake = normalize_intake({**raw_intake, "price_usd": 10.125})
        assert intake.price_usd == Decimal("10.13")

    def test_blank_title_defaults(self, raw_intake) -> None:
        intake = normalize_intake({**raw_intake, "title": "   "})
        assert intake.title == DEFAULT_TITLE

    @pytest.mark.parametrize(
        "override",
        [
            {"source": ""},
            {"category": None},
            {"location": "   "},
            {"price_usd": 0},
            {"price_usd": -5},
            {"price_usd": "12"},
            {"price_usd": True},
            {"price_usd": float("nan")},
        ],
    )
    def test_required_fields(self, raw_intake, override) -> None:
        with pytest.raises(InputValidationError, match=INTAKE_REQUIRED_MESSAGE):
            normalize_intake({**raw_intake, **override})

    def test_seller_rep_out_of_range(self, raw_intake) -> None:
        with pytest.raises(InputValidationError):
            normalize_intake({**raw_intake, "seller_rep_score": 5.5})

    def test_expires_at_parsed(self, raw_intake) -> None:
        intake = normalize_intake({**raw_intake, "expires_at": "2026-11-01T12:00:00+00:00"})
        assert intake.expires_at == datetime(2026, 11, 1, 12, tzinfo=UTC)

    def test_offset_expiry_converted_to_utc(self, raw_intake) -> None:
        intake = normalize_intake({**raw_intake, "expires_at": "2026-11-01T12:00:00+05:00"})
        assert intake.expires_at == datetime(2026, 11, 1, 7, tzinfo=UTC)
        assert intake.expires_at.utcoffset() == timedelta(0)

    def test_naive_expiry_assumed_utc(self, raw_intake) -> None:
        intake = normalize_intake({**raw_intake, "expires_at": "2026-11-01T12:00:00"})
        assert intake.expires_at == datetime(2026, 11, 1, 12, tzinfo=UTC)

    def test_invalid_expires_at(self, raw_intake) -> None:
        with pytest.raises(InputValidationError):
            normalize_intake({**raw_intake, "expires_at": "next tuesday"})


class TestDedupeKey:
    def test_equal_for_equivalent_submissions(self, raw_intake) -> None:
        variant = {
            "source": "craigslist",
            "category": "ELECTRONICS",
            "location": "austin tx",
            "title": "SONY WH-1000XM4 HEADPHONES",
            "price_usd": 120,
        }
        assert normalize_intake(raw_intake).dedupe_key == normalize_intake(variant).dedupe_key

    @pytest.mark.parametrize(
        "override",
        [
            {"source": "ebay"},
            {"category": "tools"},
            {"location": "dallas tx"},
            {"title": "Sony WH-1000XM5 headphones"},
            {"price_usd": 120.01},
        ],
    )
    def test_differs_on_any_field(self, raw_intake, override) -> None:
        assert (
            normalize_intake(raw_intake).dedupe_key
            != normalize_intake({**raw_intake, **override}).dedupe_key
        )

    def test_is_sha256_hex(self) -> None:
        key = compute_dedupe_key("ebay", "tools", "austin tx", "Drill", Decimal("40.00"))
        assert len(key) == 64
        int(key, 16)


class TestOpportunityIntake:
    @pytest.mark.asyncio
    async def test_create_opportunity(self, async_session, raw_intake, actor) -> None:
        intake = OpportunityIntake()

        result = await intake.create_opportunity(async_session, raw_intake, actor_user_id=actor)

        created = result.value
        assert created.id is not None
        assert created.status == "sourcing"
        assert created.ask_value_usd == Decimal("120.00")
        assert result.event.event_type == "opportunity.created"
        assert result.event.entity_id == str(created.id)
        assert result.event.payload == {
            "actorUserId": actor,
            "source": "craigslist",
            "category": "electronics",
        }

    @pytest.mark.asyncio
    async def test_duplicate_rejected(self, async_session, raw_intake, actor) -> None:
        intake = OpportunityIntake()
        first = await intake.create_opportunity(async_session, raw_intake, actor_user_id=actor)

        with pytest.raises(DuplicateOpportunityError) as exc_info:
            await intake.create_opportunity(
                async_session, {**raw_intake, "title": "sony wh-1000xm4 HEADPHONES"}, actor_user_id=actor
            )

        assert exc_info.value.existing_id == first.value.id
        assert exc_info.value.dedupe_key == first.value.dedupe_key
        assert await AuditEventRepository(async_session).count(event_type="opportunity.created") == 1

    @pytest.mark.asyncio
    async def test_invalid_intake_writes_nothing(self, async_session, raw_intake, actor) -> None:
        intake = OpportunityIntake()

        with pytest.raises(InputValidationError):
            await intake.create_opportunity(
                async_session, {**raw_intake, "price_usd": None}, actor_user_id=actor
            )

        assert await intake.list_opportunities(async_session) == []
        assert await AuditEventRepository(async_session).count() == 0

    @pytest.mark.asyncio
    async def test_list_filters_by_status(self, async_session, raw_intake, actor) -> None:
        intake = OpportunityIntake()
        await intake.create_opportunity(async_session, raw_intake, actor_user_id=actor)
        await intake.create_opportunity(
            async_session, {**raw_intake, "price_usd": 99}, actor_user_id=actor
        )

        assert len(await intake.list_opportunities(async_session, status="sourcing")) == 2
        assert await intake.list_opportunities(async_session, status="screened") == []
        assert len(await intake.list_opportunities(async_session, limit=1)) == 1
