"""Domain exceptions raised by the decision and workflow layer.

The routing layer maps these onto its own responses; the core never
formats transport-level errors itself.
"""

from __future__ import annotations


class TradeUpError(Exception):
    """Base exception for all trade-up engine errors."""


class InputValidationError(TradeUpError):
    """Raised when input is malformed or missing required fields."""


class ConflictError(TradeUpError):
    """Raised when an operation collides with the current stored state."""


class DuplicateOpportunityError(ConflictError):
    """Raised when an intake submission matches an existing fingerprint."""

    def __init__(self, dedupe_key: str, existing_id: int | None = None) -> None:
        super().__init__("Duplicate opportunity")
        self.dedupe_key = dedupe_key
        self.existing_id = existing_id


class InvalidTransitionError(ConflictError):
    """Raised when a requested status change is not in the transition table."""

    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(f"Invalid transition from {from_status} to {to_status}")
        self.from_status = from_status
        self.to_status = to_status


class NotFoundError(TradeUpError):
    """Raised when a referenced entity does not exist."""


class UnauthorizedError(TradeUpError):
    """Raised when a shared-secret credential does not match."""


class UpstreamError(TradeUpError):
    """Raised when the external task provider fails or times out."""


class AuditWriteError(TradeUpError):
    """Raised when the audit event for a state change cannot be recorded."""
