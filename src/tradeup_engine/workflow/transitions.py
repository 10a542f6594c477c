"""Transition tables for the offer and portfolio state machines.

Every status write goes through :func:`ensure_transition` before the
repository's compare-and-set update is issued.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType
from typing import TypeVar

from tradeup_engine.errors import InputValidationError, InvalidTransitionError
from tradeup_engine.workflow.states import OfferStatus, PortfolioStatus

S = TypeVar("S", bound=Enum)

OFFER_TRANSITIONS: Mapping[OfferStatus, frozenset[OfferStatus]] = MappingProxyType(
    {
        OfferStatus.DRAFT: frozenset({OfferStatus.APPROVED, OfferStatus.REJECTED}),
        OfferStatus.APPROVED: frozenset({OfferStatus.SENT, OfferStatus.REJECTED}),
        OfferStatus.REJECTED: frozenset(),
        OfferStatus.SENT: frozenset(),
    }
)

PORTFOLIO_TRANSITIONS: Mapping[PortfolioStatus, frozenset[PortfolioStatus]] = MappingProxyType(
    {
        PortfolioStatus.SEEDED: frozenset({PortfolioStatus.SOURCING}),
        PortfolioStatus.SOURCING: frozenset({PortfolioStatus.SCREENED, PortfolioStatus.FAILED}),
        PortfolioStatus.SCREENED: frozenset({PortfolioStatus.NEGOTIATING, PortfolioStatus.FAILED}),
        PortfolioStatus.NEGOTIATING: frozenset(
            {PortfolioStatus.ACCEPTED_PENDING_VERIFICATION, PortfolioStatus.FAILED}
        ),
        PortfolioStatus.ACCEPTED_PENDING_VERIFICATION: frozenset(
            {PortfolioStatus.VERIFIED, PortfolioStatus.FAILED, PortfolioStatus.DISPUTED}
        ),
        PortfolioStatus.VERIFIED: frozenset(
            {PortfolioStatus.COMPLETED, PortfolioStatus.FAILED, PortfolioStatus.DISPUTED}
        ),
        PortfolioStatus.COMPLETED: frozenset(),
        PortfolioStatus.FAILED: frozenset(),
        PortfolioStatus.DISPUTED: frozenset(),
    }
)


def can_transition(table: Mapping[S, frozenset[S]], current: S, target: S) -> bool:
    return target in table.get(current, frozenset())


def ensure_transition(table: Mapping[S, frozenset[S]], current: S, target: S) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is in ``table``."""
    if not can_transition(table, current, target):
        raise InvalidTransitionError(current.value, target.value)


def is_terminal(table: Mapping[S, frozenset[S]], status: S) -> bool:
    return not table.get(status)


def parse_status(enum_type: type[S], value: str | S, *, field: str = "status") -> S:
    """Coerce a raw status string into ``enum_type``.

    Raises:
        InputValidationError: If ``value`` is not a member of the enum.
    """
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError as e:
        allowed = ", ".join(m.value for m in enum_type)
        raise InputValidationError(f"{field} must be one of {allowed}") from e
