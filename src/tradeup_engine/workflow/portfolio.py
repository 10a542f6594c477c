"""Portfolio position lifecycle and verification checklists.

A position moves from ``seeded`` through sourcing, screening and
negotiation to ``accepted_pending_verification``. From there only a
verification checklist decides whether it becomes ``verified``, ``failed``
or ``disputed``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from tradeup_engine.audit import Audited, write_audit_event
from tradeup_engine.errors import (
    ConflictError,
    InputValidationError,
    InvalidTransitionError,
    NotFoundError,
)
from tradeup_engine.intake.normalizer import normalize_text, round_usd
from tradeup_engine.storage.repos import (
    AuditEventDTO,
    ItemRepository,
    PortfolioPositionDTO,
    PortfolioRepository,
    VerificationChecklistDTO,
    VerificationChecklistRepository,
)
from tradeup_engine.workflow.states import ChecklistOutcome, PortfolioStatus
from tradeup_engine.workflow.transitions import (
    PORTFOLIO_TRANSITIONS,
    ensure_transition,
    parse_status,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

REQUIRED_CHECKS = (
    "identity_confirmed",
    "condition_confirmed",
    "receipt_provided",
    "ownership_proof_provided",
)
CHECKS_REQUIRED_MESSAGE = (
    "identity_confirmed, condition_confirmed, receipt_provided, "
    "and ownership_proof_provided are required booleans"
)
CHECKLIST_STATE_MESSAGE = (
    "Position must be in accepted_pending_verification before running checklist"
)


@dataclass(frozen=True)
class VerificationResult:
    """Stored checklist and the position after its outcome was applied."""

    checklist: VerificationChecklistDTO
    position: PortfolioPositionDTO


def parse_checks(raw: Mapping[str, Any]) -> dict[str, bool]:
    """Extract the four required boolean checks.

    Raises:
        InputValidationError: If any check is missing or not a boolean.
    """
    checks: dict[str, bool] = {}
    for name in REQUIRED_CHECKS:
        value = raw.get(name)
        if not isinstance(value, bool):
            raise InputValidationError(CHECKS_REQUIRED_MESSAGE)
        checks[name] = value
    return checks


def route_outcome(passed: bool, disputed: bool) -> ChecklistOutcome:
    if passed:
        return ChecklistOutcome.VERIFIED
    return ChecklistOutcome.DISPUTED if disputed else ChecklistOutcome.FAILED


class PortfolioLifecycle:
    """State machine for portfolio positions."""

    async def create_position(
        self,
        session: AsyncSession,
        *,
        title: str,
        actor_user_id: str,
        category: str | None = None,
        condition: str | None = None,
        location: str | None = None,
        acquisition_value_usd: float | None = None,
    ) -> Audited[PortfolioPositionDTO]:
        """Create the backing item and a ``seeded`` position for it.

        The item's estimated value starts at the acquisition value.

        Raises:
            InputValidationError: If the title is blank or the acquisition
                value is given but not a positive number.
        """
        clean_title = title.strip() if isinstance(title, str) else ""
        if not clean_title:
            raise InputValidationError("title is required")

        acquisition: Decimal | None = None
        if acquisition_value_usd is not None:
            if (
                isinstance(acquisition_value_usd, bool)
                or not isinstance(acquisition_value_usd, (int, float))
                or not math.isfinite(acquisition_value_usd)
                or acquisition_value_usd <= 0
            ):
                raise InputValidationError(
                    "acquisition_value_usd must be a positive number when provided"
                )
            acquisition = round_usd(acquisition_value_usd)

        item = await ItemRepository(session).create(
            title=clean_title,
            category=normalize_text(category) or None,
            condition=normalize_text(condition) or None,
            location=normalize_text(location) or None,
            est_value_usd=acquisition,
        )
        position = await PortfolioRepository(session).create(
            item_id=item.id, acquisition_value_usd=acquisition
        )
        event = await write_audit_event(
            session,
            event_type="portfolio.position_created",
            entity_type="portfolio_position",
            entity_id=position.id,
            payload={"actorUserId": actor_user_id, "status": position.current_status},
        )
        logger.info("Created portfolio position %d for item %d", position.id, item.id)
        return Audited(position, event)

    async def get_position(self, session: AsyncSession, position_id: int) -> PortfolioPositionDTO:
        position = await PortfolioRepository(session).get(position_id)
        if position is None:
            raise NotFoundError(f"Portfolio position {position_id} not found")
        return position

    async def _apply(
        self,
        session: AsyncSession,
        position: PortfolioPositionDTO,
        target: PortfolioStatus,
        actor_user_id: str,
    ) -> tuple[PortfolioPositionDTO, AuditEventDTO]:
        current = PortfolioStatus(position.current_status)
        ensure_transition(PORTFOLIO_TRANSITIONS, current, target)

        updated = await PortfolioRepository(session).update_status_if(
            position.id, expected_status=current.value, status=target.value
        )
        if updated is None:
            logger.warning(
                "Position %d left %s before transition to %s was written",
                position.id,
                current.value,
                target.value,
            )
            raise InvalidTransitionError(current.value, target.value)

        event = await write_audit_event(
            session,
            event_type="portfolio.status_changed",
            entity_type="portfolio_position",
            entity_id=updated.id,
            payload={"actorUserId": actor_user_id, "from": current.value, "to": target.value},
        )
        logger.info("Position %d: %s -> %s", position.id, current.value, target.value)
        return updated, event

    async def transition(
        self,
        session: AsyncSession,
        *,
        position_id: int,
        target: PortfolioStatus | str,
        actor_user_id: str,
    ) -> Audited[PortfolioPositionDTO]:
        """Move a position to ``target``.

        Raises:
            InputValidationError: If ``target`` is not a portfolio status.
            NotFoundError: If the position does not exist.
            InvalidTransitionError: If the move is not in the transition table
                or the position changed status concurrently.
        """
        target_status = parse_status(PortfolioStatus, target, field="target status")
        position = await self.get_position(session, position_id)
        updated, event = await self._apply(session, position, target_status, actor_user_id)
        return Audited(updated, event)

    async def run_verification_checklist(
        self,
        session: AsyncSession,
        *,
        position_id: int,
        checks: Mapping[str, Any],
        actor_user_id: str,
        disputed: bool = False,
        notes: str | None = None,
    ) -> Audited[VerificationResult]:
        """Record a checklist and route the position by its outcome.

        All four checks passing verifies the position; otherwise it is
        disputed when ``disputed`` is set and failed when not. The checklist,
        the transition and both audit events share the caller's transaction.

        Raises:
            NotFoundError: If the position does not exist.
            ConflictError: If the position is not awaiting verification.
            InputValidationError: If a check is missing or not a boolean.
        """
        position = await self.get_position(session, position_id)
        if position.current_status != PortfolioStatus.ACCEPTED_PENDING_VERIFICATION.value:
            raise ConflictError(CHECKLIST_STATE_MESSAGE)

        parsed = parse_checks(checks)
        passed = all(parsed.values())
        outcome = route_outcome(passed, bool(disputed))

        checklist = await VerificationChecklistRepository(session).create(
            portfolio_position_id=position.id,
            checks=parsed,
            passed=passed,
            outcome_status=outcome.value,
            created_by_user_id=actor_user_id,
            notes=notes.strip() if isinstance(notes, str) else None,
        )
        updated, _ = await self._apply(session, position, outcome.portfolio_status, actor_user_id)

        event = await write_audit_event(
            session,
            event_type="portfolio.verification_recorded",
            entity_type="portfolio_position",
            entity_id=position.id,
            payload={
                "actorUserId": actor_user_id,
                "checklistId": checklist.id,
                "passed": checklist.passed,
                "outcomeStatus": checklist.outcome_status,
            },
        )
        return Audited(VerificationResult(checklist=checklist, position=updated), event)

    async def list_checklists(
        self, session: AsyncSession, position_id: int
    ) -> list[VerificationChecklistDTO]:
        """Checklist history for a position, newest first."""
        await self.get_position(session, position_id)
        return await VerificationChecklistRepository(session).list_for_position(position_id)
