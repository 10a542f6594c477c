"""Scoring - trade candidate components, scores and ranking."""

from tradeup_engine.scoring.engine import (
    CATEGORY_LIQUIDITY,
    SOURCE_STORY_VALUE,
    RankedCandidate,
    ScoreComponents,
    ScoringCandidate,
    build_score_components,
    compute_trade_score,
    estimate_time_cost,
    rank_candidates,
)
from tradeup_engine.scoring.service import SCORING_ELIGIBLE_STATUSES, TradeRanker

__all__ = [
    "CATEGORY_LIQUIDITY",
    "SCORING_ELIGIBLE_STATUSES",
    "SOURCE_STORY_VALUE",
    "RankedCandidate",
    "ScoreComponents",
    "ScoringCandidate",
    "TradeRanker",
    "build_score_components",
    "compute_trade_score",
    "estimate_time_cost",
    "rank_candidates",
]
