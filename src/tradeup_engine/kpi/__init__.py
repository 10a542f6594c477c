"""KPI - dashboard metrics and snapshots."""

from tradeup_engine.kpi.aggregator import (
    DEFAULT_SEED_COST_USD,
    VALUE_BEARING_STATUSES,
    KpiAggregator,
    KpiMetrics,
    compute_kpis,
)

__all__ = [
    "DEFAULT_SEED_COST_USD",
    "VALUE_BEARING_STATUSES",
    "KpiAggregator",
    "KpiMetrics",
    "compute_kpis",
]
