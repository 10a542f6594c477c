"""Tests for engine wiring and lifecycle."""

from unittest.mock import AsyncMock

import pytest

from tradeup_engine.config import DatabaseSettings, Settings
from tradeup_engine.engine import EngineState, TradeUpEngine
from tradeup_engine.storage.repos import AuditEventRepository
from tradeup_engine.tasks import StubTaskProvider


@pytest.fixture
def settings(tmp_path, monkeypatch: pytest.MonkeyPatch) -> Settings:
    monkeypatch.chdir(tmp_path)
    for name in ("REDIS_URL", "TASK_PROVIDER", "PROVIDER_WEBHOOK_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    database = DatabaseSettings.model_validate(
        {"DATABASE_URL": f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}"}
    )
    return Settings(database=database)


class TestTradeUpEngineLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, settings: Settings) -> None:
        engine = TradeUpEngine(settings, init_schema=True)
        assert engine.state is EngineState.STOPPED

        await engine.start()
        assert engine.state is EngineState.RUNNING
        assert engine.tasks is not None

        await engine.stop()
        assert engine.state is EngineState.STOPPED
        assert engine.tasks is None

    @pytest.mark.asyncio
    async def test_double_start_rejected(self, settings: Settings) -> None:
        async with TradeUpEngine(settings, init_schema=True) as engine:
            with pytest.raises(RuntimeError):
                await engine.start()

    @pytest.mark.asyncio
    async def test_session_requires_running_engine(self, settings: Settings) -> None:
        engine = TradeUpEngine(settings)
        with pytest.raises(RuntimeError, match="not running"):
            async with engine.session():
                pass

    @pytest.mark.asyncio
    async def test_injected_redis_enables_policy_cache(self, settings: Settings) -> None:
        redis = AsyncMock()
        redis.get = AsyncMock(return_value=None)

        async with TradeUpEngine(settings, redis=redis, init_schema=True) as engine:
            async with engine.session() as session:
                await engine.policy.evaluate(
                    session, platform="ebay", action="list_item", actor_user_id="ops-1"
                )

        redis.get.assert_awaited_once_with("policy_rule:ebay:list_item")
        redis.aclose.assert_not_awaited()


class TestTradeUpEngineFlow:
    @pytest.mark.asyncio
    async def test_operations_commit_per_session(self, settings: Settings) -> None:
        async with TradeUpEngine(
            settings, task_provider=StubTaskProvider(), init_schema=True
        ) as engine:
            async with engine.session() as session:
                created = await engine.intake.create_opportunity(
                    session,
                    {
                        "source": "offerup",
                        "category": "tools",
                        "location": "austin tx",
                        "title": "Dewalt impact driver",
                        "price_usd": 85,
                    },
                    actor_user_id="ops-1",
                )
                await engine.offers.create_draft(
                    session,
                    opportunity_id=created.value.id,
                    offer_terms={"offer_usd": 70},
                    actor_user_id="ops-1",
                )
                await engine.tasks.create_task(session, task_type="inspect", actor_user_id="ops-1")

            async with engine.session() as session:
                ranked = await engine.ranker.rank_opportunities(
                    session, current_item_value_usd=40
                )
                metrics = await engine.kpi.compute(session)
                events = await AuditEventRepository(session).count()

        assert [r.opportunity_id for r in ranked] == [created.value.id]
        assert metrics.active_tasks == 1
        assert events == 3
