"""Opportunity intake - normalization, fingerprinting and creation."""

from tradeup_engine.intake.normalizer import (
    DEFAULT_TITLE,
    INTAKE_REQUIRED_MESSAGE,
    NORMALIZATION_VERSION,
    NormalizedIntake,
    compute_dedupe_key,
    normalize_intake,
    normalize_text,
    round_usd,
)
from tradeup_engine.intake.service import OpportunityIntake

__all__ = [
    "DEFAULT_TITLE",
    "INTAKE_REQUIRED_MESSAGE",
    "NORMALIZATION_VERSION",
    "NormalizedIntake",
    "OpportunityIntake",
    "compute_dedupe_key",
    "normalize_intake",
    "normalize_text",
    "round_usd",
]
