"""Business KPIs derived from positions, offers and tasks.

Metrics:
    value_multiple: Estimated value of live positions over the seed cost.
    close_rate: Share of offers that were sent.
    median_cycle_time_days: Median age of completed positions at completion.
    fraud_loss_pct: Acquisition value lost to disputes, in percent.
    active_tasks: Tasks queued or in progress.
"""

from __future__ import annotations

import logging
import math
import statistics
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from tradeup_engine.audit import Audited, write_audit_event
from tradeup_engine.errors import InputValidationError
from tradeup_engine.rounding import round_half_up
from tradeup_engine.storage.repos import (
    KpiSnapshotDTO,
    KpiSnapshotRepository,
    OfferRepository,
    PortfolioRepository,
    PositionValueDTO,
    TaskRepository,
)
from tradeup_engine.tasks.models import ACTIVE_TASK_STATUSES
from tradeup_engine.workflow.states import OfferStatus, PortfolioStatus

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

DEFAULT_SEED_COST_USD = 0.9
DEFAULT_SNAPSHOT_LIST_LIMIT = 30
SECONDS_PER_DAY = 86_400

VALUE_BEARING_STATUSES = frozenset(
    {
        PortfolioStatus.SEEDED,
        PortfolioStatus.SOURCING,
        PortfolioStatus.SCREENED,
        PortfolioStatus.NEGOTIATING,
        PortfolioStatus.ACCEPTED_PENDING_VERIFICATION,
        PortfolioStatus.VERIFIED,
        PortfolioStatus.COMPLETED,
    }
)


@dataclass(frozen=True)
class KpiMetrics:
    value_multiple: float
    close_rate: float
    median_cycle_time_days: float
    fraud_loss_pct: float
    active_tasks: int


def _amount(value: Decimal | float | None) -> float:
    return float(value) if value is not None else 0.0


def compute_kpis(
    positions: Sequence[PositionValueDTO],
    offer_statuses: Iterable[str],
    task_statuses: Iterable[str],
    seed_cost_usd: float,
) -> KpiMetrics:
    """Compute the dashboard metrics from current state.

    A non-positive seed cost is replaced by 1. Ratios with a zero
    denominator are reported as 0.
    """
    seed_cost = seed_cost_usd if seed_cost_usd > 0 else 1.0
    value_statuses = {s.value for s in VALUE_BEARING_STATUSES}

    live_value = sum(_amount(p.est_value_usd) for p in positions if p.status in value_statuses)

    offers = list(offer_statuses)
    sent = sum(1 for s in offers if s == OfferStatus.SENT.value)
    close_rate = sent / len(offers) if offers else 0.0

    cycle_days = [
        (p.updated_at - p.created_at).total_seconds() / SECONDS_PER_DAY
        for p in positions
        if p.status == PortfolioStatus.COMPLETED.value
    ]
    median_cycle = statistics.median(cycle_days) if cycle_days else 0.0

    total_acquired = sum(_amount(p.acquisition_value_usd) for p in positions)
    disputed_acquired = sum(
        _amount(p.acquisition_value_usd)
        for p in positions
        if p.status == PortfolioStatus.DISPUTED.value
    )
    fraud_loss = 100 * disputed_acquired / total_acquired if total_acquired > 0 else 0.0

    active = {s.value for s in ACTIVE_TASK_STATUSES}
    return KpiMetrics(
        value_multiple=round_half_up(live_value / seed_cost, 4),
        close_rate=round_half_up(close_rate, 4),
        median_cycle_time_days=round_half_up(median_cycle, 4),
        fraud_loss_pct=round_half_up(fraud_loss, 4),
        active_tasks=sum(1 for s in task_statuses if s in active),
    )


class KpiAggregator:
    """Reads current state across entities and snapshots KPI metrics."""

    def __init__(self, *, default_seed_cost_usd: float = DEFAULT_SEED_COST_USD) -> None:
        self._default_seed_cost = default_seed_cost_usd

    def _resolve_seed_cost(self, seed_cost_usd: float | None) -> float:
        if seed_cost_usd is None:
            return self._default_seed_cost
        if (
            isinstance(seed_cost_usd, bool)
            or not isinstance(seed_cost_usd, (int, float))
            or not math.isfinite(seed_cost_usd)
            or seed_cost_usd <= 0
        ):
            raise InputValidationError("seed_cost_usd must be a positive number")
        return float(seed_cost_usd)

    async def compute(self, session: AsyncSession, *, seed_cost_usd: float | None = None) -> KpiMetrics:
        """Compute metrics from the current state.

        Raises:
            InputValidationError: If a seed cost is given but not positive.
        """
        seed_cost = self._resolve_seed_cost(seed_cost_usd)
        positions = await PortfolioRepository(session).list_position_values()
        offer_statuses = await OfferRepository(session).list_statuses()
        task_statuses = await TaskRepository(session).list_statuses()
        return compute_kpis(positions, offer_statuses, task_statuses, seed_cost)

    async def snapshot(
        self,
        session: AsyncSession,
        *,
        actor_user_id: str,
        seed_cost_usd: float | None = None,
    ) -> Audited[KpiSnapshotDTO]:
        """Compute and persist a KPI snapshot."""
        metrics = await self.compute(session, seed_cost_usd=seed_cost_usd)
        saved = await KpiSnapshotRepository(session).create(
            value_multiple=Decimal(str(metrics.value_multiple)),
            close_rate=Decimal(str(metrics.close_rate)),
            median_cycle_time_days=Decimal(str(metrics.median_cycle_time_days)),
            fraud_loss_pct=Decimal(str(metrics.fraud_loss_pct)),
            active_tasks=metrics.active_tasks,
        )
        event = await write_audit_event(
            session,
            event_type="dashboard.snapshot_created",
            entity_type="kpi_snapshot",
            entity_id=saved.id,
            payload={"actorUserId": actor_user_id, "valueMultiple": metrics.value_multiple},
        )
        logger.info(
            "KPI snapshot %d: multiple=%.4f close_rate=%.4f active_tasks=%d",
            saved.id,
            metrics.value_multiple,
            metrics.close_rate,
            metrics.active_tasks,
        )
        return Audited(saved, event)

    async def list_snapshots(
        self, session: AsyncSession, *, limit: int = DEFAULT_SNAPSHOT_LIST_LIMIT
    ) -> list[KpiSnapshotDTO]:
        """Stored snapshots, newest first.

        Raises:
            InputValidationError: If ``limit`` is not positive.
        """
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise InputValidationError("limit must be a positive number")
        return await KpiSnapshotRepository(session).list_recent(limit)

    async def latest_snapshot(self, session: AsyncSession) -> KpiSnapshotDTO | None:
        return await KpiSnapshotRepository(session).latest()
