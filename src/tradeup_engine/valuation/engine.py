"""Rules-based valuation from a base estimate and comparable sales.

The estimate is a weighted mix of the caller's base estimate and the median
comp. Confidence rises with the number of comps and falls with their
dispersion.
"""

from __future__ import annotations

import math
import statistics
from collections.abc import Sequence
from dataclasses import dataclass

from tradeup_engine.errors import InputValidationError
from tradeup_engine.rounding import clamp, round_half_up

MODEL_VERSION = "rules-v1"

BASE_WEIGHT = 0.35
COMP_WEIGHT = 0.65

CONFIDENCE_FLOOR = 0.1
CONFIDENCE_CEILING = 0.95
CONFIDENCE_INTERCEPT = 0.45
CONFIDENCE_PER_COMP = 0.05
CONFIDENCE_COMP_CAP = 10
CONFIDENCE_BASE_BONUS = 0.05
DISPERSION_PENALTY = 0.35


@dataclass(frozen=True)
class ValuationResult:
    """Estimated value with its confidence and model tag."""

    estimated_value_usd: float
    confidence_score: float
    model_version: str = MODEL_VERSION


def _is_positive(value: float | None) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value > 0
    )


def valid_comps(comps: Sequence[float]) -> list[float]:
    """Drop non-finite and non-positive comp prices."""
    return [float(c) for c in comps if _is_positive(c)]


def _dispersion(comps: Sequence[float]) -> float:
    if len(comps) < 2:
        return 0.0
    mean = statistics.fmean(comps)
    if mean <= 0:
        return 0.0
    return statistics.pstdev(comps) / mean


def compute_valuation(base_value_usd: float | None, comps: Sequence[float]) -> ValuationResult:
    """Blend a base estimate with comparable sale prices.

    Args:
        base_value_usd: Optional caller estimate; ignored unless positive.
        comps: Comparable sale prices; invalid entries are discarded.

    Returns:
        Estimated value and confidence, both rounded to 2 decimals.

    Raises:
        InputValidationError: If there is neither a positive base value nor
            any valid comp.
    """
    prices = valid_comps(comps)
    has_base = _is_positive(base_value_usd)

    if not prices and not has_base:
        raise InputValidationError("At least one positive comp or base value is required")

    comp_median = statistics.median(prices) if prices else float(base_value_usd)  # type: ignore[arg-type]
    if has_base:
        estimate = BASE_WEIGHT * float(base_value_usd) + COMP_WEIGHT * comp_median  # type: ignore[arg-type]
    else:
        estimate = comp_median

    confidence = (
        CONFIDENCE_INTERCEPT
        + CONFIDENCE_PER_COMP * min(len(prices), CONFIDENCE_COMP_CAP)
        + (CONFIDENCE_BASE_BONUS if has_base else 0.0)
        - DISPERSION_PENALTY * _dispersion(prices)
    )

    return ValuationResult(
        estimated_value_usd=round_half_up(estimate, 2),
        confidence_score=round_half_up(clamp(confidence, CONFIDENCE_FLOOR, CONFIDENCE_CEILING), 2),
    )
