"""Trade candidate scoring.

Each candidate is broken into six components in roughly [0, 1] (value gain
is unbounded) and blended into a single trade score used for ranking.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from types import MappingProxyType

from tradeup_engine.errors import InputValidationError
from tradeup_engine.rounding import clamp, round_half_up

logger = logging.getLogger(__name__)

DEFAULT_SELLER_REP = 2.5
MAX_SELLER_REP = 5.0
MIN_TARGET_VALUE_USD = 0.01
CRAIGSLIST_FRAUD_PENALTY = 0.1
DEFAULT_TIME_COST = 0.4
EXPIRY_HORIZON_DAYS = 10.0
DEFAULT_RANK_LIMIT = 10
MAX_RANK_LIMIT = 50

DEFAULT_LIQUIDITY = 0.5
CATEGORY_LIQUIDITY: Mapping[str, float] = MappingProxyType(
    {
        "electronics": 0.72,
        "tools": 0.70,
        "collectibles": 0.58,
        "furniture": 0.42,
        "vehicles": 0.45,
    }
)

DEFAULT_STORY_VALUE = 0.5
SOURCE_STORY_VALUE: Mapping[str, float] = MappingProxyType(
    {
        "craigslist": 0.62,
        "offerup": 0.55,
        "ebay": 0.50,
        "etsy": 0.46,
    }
)

SCORE_WEIGHTS: Mapping[str, float] = MappingProxyType(
    {
        "value_gain": 0.35,
        "close_prob": 0.20,
        "liquidity": 0.15,
        "story_value": 0.10,
        "fraud_risk": -0.10,
        "time_cost": -0.10,
    }
)


@dataclass(frozen=True)
class ScoringCandidate:
    """Opportunity projected into the fields scoring needs."""

    opportunity_id: int
    target_value_usd: float
    source: str
    category: str
    seller_rep_score: float | None = None
    expires_at: datetime | str | None = None


@dataclass(frozen=True)
class ScoreComponents:
    value_gain: float
    close_prob: float
    liquidity: float
    story_value: float
    fraud_risk: float
    time_cost: float


@dataclass(frozen=True)
class RankedCandidate:
    """A scored candidate."""

    opportunity_id: int
    target_value_usd: float
    components: ScoreComponents
    trade_score: float


def _parse_expiry(expires_at: datetime | str | None) -> datetime | None:
    if expires_at is None:
        return None
    if isinstance(expires_at, str):
        try:
            expires_at = datetime.fromisoformat(expires_at)
        except ValueError:
            return None
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=UTC)
    return expires_at


def estimate_time_cost(expires_at: datetime | str | None, *, now: datetime | None = None) -> float:
    """Time pressure from the listing expiry; closer expiry costs more.

    Missing or unparseable expiries cost ``DEFAULT_TIME_COST``. Naive
    timestamps are treated as UTC.
    """
    expiry = _parse_expiry(expires_at)
    if expiry is None:
        return DEFAULT_TIME_COST
    current = now or datetime.now(UTC)
    days_until_expiry = (expiry - current).total_seconds() / 86_400
    return clamp(1 - clamp(days_until_expiry / EXPIRY_HORIZON_DAYS, 0.0, 1.0), 0.0, 1.0)


def build_score_components(
    candidate: ScoringCandidate,
    current_item_value_usd: float,
    *,
    now: datetime | None = None,
) -> ScoreComponents:
    """Compute the six scoring components for one candidate.

    Raises:
        InputValidationError: If the current item value is not positive.
    """
    if current_item_value_usd <= 0:
        raise InputValidationError("current item value must be a positive number")

    target = max(candidate.target_value_usd, MIN_TARGET_VALUE_USD)
    value_gain = (target - current_item_value_usd) / current_item_value_usd
    rep = DEFAULT_SELLER_REP if candidate.seller_rep_score is None else candidate.seller_rep_score
    close_prob = clamp(rep / MAX_SELLER_REP, 0.0, 1.0)
    penalty = CRAIGSLIST_FRAUD_PENALTY if candidate.source == "craigslist" else 0.0

    return ScoreComponents(
        value_gain=value_gain,
        close_prob=close_prob,
        liquidity=CATEGORY_LIQUIDITY.get(candidate.category, DEFAULT_LIQUIDITY),
        story_value=SOURCE_STORY_VALUE.get(candidate.source, DEFAULT_STORY_VALUE),
        fraud_risk=clamp(1 - close_prob + penalty, 0.0, 1.0),
        time_cost=estimate_time_cost(candidate.expires_at, now=now),
    )


def compute_trade_score(components: ScoreComponents) -> float:
    """Weighted blend of the components, rounded to 4 decimals."""
    raw = sum(weight * getattr(components, name) for name, weight in SCORE_WEIGHTS.items())
    return round_half_up(raw, 4)


def bound_rank_limit(limit: int | None) -> int:
    if limit is None:
        return DEFAULT_RANK_LIMIT
    return max(1, min(int(limit), MAX_RANK_LIMIT))


def rank_candidates(
    candidates: Iterable[ScoringCandidate],
    current_item_value_usd: float,
    limit: int | None = DEFAULT_RANK_LIMIT,
    *,
    now: datetime | None = None,
) -> list[RankedCandidate]:
    """Score and sort candidates, highest trade score first.

    Args:
        candidates: Candidates to score.
        current_item_value_usd: Value of the item currently held.
        limit: Maximum results; always bounded to 1-50.
        now: Reference time for expiry (defaults to the current UTC time).

    Returns:
        At most ``min(limit, 50)`` ranked candidates.
    """
    current = now or datetime.now(UTC)
    ranked = []
    for candidate in candidates:
        components = build_score_components(candidate, current_item_value_usd, now=current)
        ranked.append(
            RankedCandidate(
                opportunity_id=candidate.opportunity_id,
                target_value_usd=candidate.target_value_usd,
                components=components,
                trade_score=compute_trade_score(components),
            )
        )
    ranked.sort(key=lambda r: r.trade_score, reverse=True)
    return ranked[: bound_rank_limit(limit)]
