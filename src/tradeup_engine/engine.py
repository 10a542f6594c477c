"""Engine wiring.

This module provides the TradeUpEngine class that builds every component
from settings and hands out transactional sessions to the routing layer.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from enum import Enum
from typing import TYPE_CHECKING, Any

from redis.asyncio import Redis

from tradeup_engine.config import Settings, get_settings
from tradeup_engine.intake.service import OpportunityIntake
from tradeup_engine.kpi.aggregator import KpiAggregator
from tradeup_engine.policy.guard import PolicyGuard, PolicyRuleCache
from tradeup_engine.scoring.service import TradeRanker
from tradeup_engine.storage.database import DatabaseManager
from tradeup_engine.tasks.dispatch import TaskDispatcher
from tradeup_engine.tasks.provider import TaskProvider, create_task_provider
from tradeup_engine.valuation.service import ValuationService
from tradeup_engine.workflow.offers import OfferWorkflow
from tradeup_engine.workflow.portfolio import PortfolioLifecycle

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: Settings) -> None:
    """Configure root logging from ``LOG_LEVEL``."""
    logging.basicConfig(level=settings.get_logging_level(), format=LOG_FORMAT)


class EngineState(str, Enum):
    """Engine lifecycle states."""

    STOPPED = "stopped"
    RUNNING = "running"


class TradeUpEngine:
    """Owns shared resources and the decision/workflow components.

    Example:
        ```python
        async with TradeUpEngine() as engine:
            async with engine.session() as session:
                result = await engine.intake.create_opportunity(
                    session, raw, actor_user_id="ops-1"
                )
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        task_provider: TaskProvider | None = None,
        redis: Redis | None = None,
        init_schema: bool = False,
    ) -> None:
        """Initialize the engine.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            task_provider: Overrides the provider selected by ``TASK_PROVIDER``.
            redis: Overrides the client built from ``REDIS_URL``.
            init_schema: Create missing tables on start.
        """
        self._settings = settings or get_settings()
        self._task_provider_override = task_provider
        self._redis = redis
        self._owns_redis = redis is None
        self._init_schema = init_schema
        self._state = EngineState.STOPPED

        self._db_manager: DatabaseManager | None = None
        self._task_provider: TaskProvider | None = None

        self.intake = OpportunityIntake()
        self.valuation = ValuationService()
        self.ranker = TradeRanker()
        self.offers = OfferWorkflow()
        self.portfolio = PortfolioLifecycle()
        self.kpi = KpiAggregator(
            default_seed_cost_usd=float(self._settings.kpi.default_seed_cost_usd)
        )
        self.policy: PolicyGuard = PolicyGuard()
        self.tasks: TaskDispatcher | None = None

    @property
    def state(self) -> EngineState:
        return self._state

    async def start(self) -> None:
        """Create the database manager, cache and task provider.

        Raises:
            RuntimeError: If the engine is already running.
            ValueError: If the configured task provider is missing credentials.
        """
        if self._state is EngineState.RUNNING:
            raise RuntimeError("Engine already running")

        settings = self._settings
        logger.info("Starting trade-up engine with %s", settings.redacted_summary())

        self._db_manager = DatabaseManager(
            settings.database.url, pool_size=settings.database.pool_size
        )
        if self._init_schema:
            await self._db_manager.init_schema_async()

        if self._redis is None and settings.redis.url:
            self._redis = Redis.from_url(settings.redis.url)
        if self._redis is not None:
            self.policy = PolicyGuard(
                cache=PolicyRuleCache(self._redis, ttl_seconds=settings.policy.cache_ttl_seconds)
            )

        self._task_provider = self._task_provider_override or create_task_provider(
            settings.tasks
        )
        self.tasks = TaskDispatcher(
            self._task_provider,
            webhook_token=settings.tasks.webhook_token.get_secret_value(),
            timeout_seconds=settings.tasks.timeout_seconds,
        )
        self._state = EngineState.RUNNING

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """One transaction: committed on success, rolled back on error."""
        if self._db_manager is None:
            raise RuntimeError("Engine is not running")
        async with self._db_manager.get_async_session() as session:
            yield session

    async def stop(self) -> None:
        """Release connections held by the engine."""
        if self._state is EngineState.STOPPED:
            return

        close = getattr(self._task_provider, "close", None)
        if close is not None and self._task_provider_override is None:
            await close()
        self._task_provider = None
        self.tasks = None

        await self.policy.wait_for_invalidations()
        if self._db_manager is not None:
            await self._db_manager.dispose_async()
            self._db_manager = None

        if self._redis is not None and self._owns_redis:
            await self._redis.aclose()
            self._redis = None

        self._state = EngineState.STOPPED
        logger.info("Trade-up engine stopped")

    async def __aenter__(self) -> TradeUpEngine:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()
