"""Valuation - comp-blended value estimates and their history."""

from tradeup_engine.valuation.engine import MODEL_VERSION, ValuationResult, compute_valuation
from tradeup_engine.valuation.service import Comp, ValuationRequest, ValuationService

__all__ = [
    "MODEL_VERSION",
    "Comp",
    "ValuationRequest",
    "ValuationResult",
    "ValuationService",
    "compute_valuation",
]
