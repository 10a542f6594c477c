"""Lifecycle states for offers, portfolio positions and checklists."""

from __future__ import annotations

from enum import Enum


class OfferStatus(str, Enum):
    """Approval lifecycle of an offer."""

    DRAFT = "draft"
    APPROVED = "approved"
    REJECTED = "rejected"
    SENT = "sent"


class PortfolioStatus(str, Enum):
    """Trade journey of a held item."""

    SEEDED = "seeded"
    SOURCING = "sourcing"
    SCREENED = "screened"
    NEGOTIATING = "negotiating"
    ACCEPTED_PENDING_VERIFICATION = "accepted_pending_verification"
    VERIFIED = "verified"
    COMPLETED = "completed"
    FAILED = "failed"
    DISPUTED = "disputed"


class ChecklistOutcome(str, Enum):
    """Result of a verification checklist; names the next position status."""

    VERIFIED = "verified"
    FAILED = "failed"
    DISPUTED = "disputed"

    @property
    def portfolio_status(self) -> PortfolioStatus:
        return PortfolioStatus(self.value)
