"""Audit trail helpers.

Every state-changing operation appends one event to the ``events`` table in
the same transaction as the change itself. Operations return their result
paired with that event so callers can surface or assert on it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from tradeup_engine.errors import AuditWriteError
from tradeup_engine.storage.repos import AuditEventDTO, AuditEventRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Audited(Generic[T]):
    """Result of a state change together with its audit event."""

    value: T
    event: AuditEventDTO


async def write_audit_event(
    session: AsyncSession,
    *,
    event_type: str,
    entity_type: str,
    entity_id: str | int,
    payload: dict[str, Any],
) -> AuditEventDTO:
    """Append an audit event in the caller's transaction.

    Args:
        session: Session carrying the state change being audited.
        event_type: Dotted event name, e.g. ``offer.status_changed``.
        entity_type: Kind of entity the event is about.
        entity_id: Identifier of that entity.
        payload: JSON-serializable event details.

    Returns:
        The stored event.

    Raises:
        AuditWriteError: If the event could not be written. The caller's
            transaction must then be rolled back.
    """
    try:
        event = await AuditEventRepository(session).append(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=str(entity_id),
            payload=payload,
        )
    except SQLAlchemyError as e:
        logger.error("Failed to write audit event %s for %s:%s", event_type, entity_type, entity_id)
        raise AuditWriteError(f"Could not record audit event {event_type}") from e

    logger.debug("Audit event %s recorded for %s:%s", event_type, entity_type, entity_id)
    return event
