"""Seeded trade-up projection.

Runs a chain of simulated trades from a starting value. Each scenario draws
an offer quality and a close probability and compounds the expected value.
The generator is the Park-Miller minimal standard LCG, so a seed always
reproduces the same path.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass

from tradeup_engine.errors import InputValidationError
from tradeup_engine.rounding import round_half_up

logger = logging.getLogger(__name__)

_MODULUS = 2_147_483_647
_MULTIPLIER = 16_807

MIN_CLOSE_PROBABILITY = 0.35
CLOSE_PROBABILITY_SPAN = 0.55
GAIN_INTERCEPT = -0.08
GAIN_SLOPE = 0.95
MIN_EXPECTED_VALUE_USD = 0.01


@dataclass(frozen=True)
class SimulationScenario:
    index: int
    offer_quality: float
    close_probability: float
    value_gain_pct: float
    expected_value_usd: float


@dataclass(frozen=True)
class SimulationSummary:
    seed: int
    scenario_count: int
    start_value_usd: float
    final_expected_value_usd: float
    scenarios: tuple[SimulationScenario, ...]


def park_miller(seed: float) -> Callable[[], float]:
    """Uniform generator on [0, 1) seeded like the minimal standard LCG."""
    floored = math.floor(seed)
    state = int(math.copysign(abs(floored) % _MODULUS, floored))
    if state <= 0:
        state += _MODULUS - 1

    def next_value() -> float:
        nonlocal state
        state = (state * _MULTIPLIER) % _MODULUS
        return (state - 1) / (_MODULUS - 1)

    return next_value


def run_trade_simulation(seed: int, scenario_count: int, start_value_usd: float) -> SimulationSummary:
    """Project the expected value of ``scenario_count`` consecutive trades.

    Raises:
        InputValidationError: If ``scenario_count`` < 1 or the start value is
            not positive.
    """
    if scenario_count < 1:
        raise InputValidationError("scenario_count must be at least 1")
    if start_value_usd <= 0:
        raise InputValidationError("start_value_usd must be positive")

    random = park_miller(seed)
    expected = float(start_value_usd)
    scenarios = []
    for index in range(1, scenario_count + 1):
        quality = round_half_up(random(), 4)
        close_probability = round_half_up(
            MIN_CLOSE_PROBABILITY + random() * CLOSE_PROBABILITY_SPAN, 4
        )
        gain = round_half_up(GAIN_INTERCEPT + quality * GAIN_SLOPE, 4)
        expected = round_half_up(
            max(MIN_EXPECTED_VALUE_USD, expected * (1 + gain * close_probability)), 2
        )
        scenarios.append(
            SimulationScenario(
                index=index,
                offer_quality=quality,
                close_probability=close_probability,
                value_gain_pct=gain,
                expected_value_usd=expected,
            )
        )

    logger.debug("Simulated %d trades from %.2f to %.2f", scenario_count, start_value_usd, expected)
    return SimulationSummary(
        seed=seed,
        scenario_count=scenario_count,
        start_value_usd=float(start_value_usd),
        final_expected_value_usd=expected,
        scenarios=tuple(scenarios),
    )
