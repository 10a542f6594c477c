"""Workflow - offer approval and portfolio lifecycle state machines."""

from tradeup_engine.workflow.offers import OfferWorkflow
from tradeup_engine.workflow.portfolio import (
    REQUIRED_CHECKS,
    PortfolioLifecycle,
    VerificationResult,
    parse_checks,
    route_outcome,
)
from tradeup_engine.workflow.states import ChecklistOutcome, OfferStatus, PortfolioStatus
from tradeup_engine.workflow.transitions import (
    OFFER_TRANSITIONS,
    PORTFOLIO_TRANSITIONS,
    can_transition,
    ensure_transition,
    is_terminal,
)

__all__ = [
    "OFFER_TRANSITIONS",
    "PORTFOLIO_TRANSITIONS",
    "REQUIRED_CHECKS",
    "ChecklistOutcome",
    "OfferStatus",
    "OfferWorkflow",
    "PortfolioLifecycle",
    "PortfolioStatus",
    "VerificationResult",
    "can_transition",
    "ensure_transition",
    "is_terminal",
    "parse_checks",
    "route_outcome",
]
