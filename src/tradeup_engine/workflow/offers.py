"""Offer approval workflow.

Offers start as drafts, are approved or rejected by a reviewer, and approved
offers are sent by an operator. ``rejected`` and ``sent`` are terminal.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from tradeup_engine.audit import Audited, write_audit_event
from tradeup_engine.errors import InputValidationError, InvalidTransitionError, NotFoundError
from tradeup_engine.payloads import validate_scalar_mapping
from tradeup_engine.storage.repos import OfferDTO, OfferRepository, OpportunityRepository
from tradeup_engine.workflow.states import OfferStatus
from tradeup_engine.workflow.transitions import OFFER_TRANSITIONS, ensure_transition, parse_status

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class OfferWorkflow:
    """State machine governing an offer's approval lifecycle."""

    async def create_draft(
        self,
        session: AsyncSession,
        *,
        opportunity_id: int,
        offer_terms: object,
        actor_user_id: str,
    ) -> Audited[OfferDTO]:
        """Create a draft offer against an existing opportunity.

        Raises:
            InputValidationError: If the terms are not a flat scalar mapping.
            NotFoundError: If the opportunity does not exist.
        """
        terms = validate_scalar_mapping(offer_terms, field="offer_terms")
        if not terms:
            raise InputValidationError("opportunity_id and offer_terms are required")

        if await OpportunityRepository(session).get_by_id(opportunity_id) is None:
            raise NotFoundError(f"Opportunity {opportunity_id} not found")

        offer = await OfferRepository(session).create_draft(opportunity_id, terms)
        event = await write_audit_event(
            session,
            event_type="offer.created",
            entity_type="offer",
            entity_id=offer.id,
            payload={"actorUserId": actor_user_id, "status": offer.status},
        )
        logger.info("Drafted offer %d on opportunity %d", offer.id, opportunity_id)
        return Audited(offer, event)

    async def get_offer(self, session: AsyncSession, offer_id: int) -> OfferDTO:
        offer = await OfferRepository(session).get(offer_id)
        if offer is None:
            raise NotFoundError(f"Offer {offer_id} not found")
        return offer

    async def transition(
        self,
        session: AsyncSession,
        *,
        offer_id: int,
        target: OfferStatus | str,
        actor_user_id: str,
    ) -> Audited[OfferDTO]:
        """Move an offer to ``target``.

        The acting user is recorded as the sender only on ``sent``.

        Args:
            session: Transactional session.
            offer_id: Offer to transition.
            target: Requested status.
            actor_user_id: User performing the transition.

        Returns:
            The updated offer and its ``offer.status_changed`` event.

        Raises:
            NotFoundError: If the offer does not exist.
            InvalidTransitionError: If the move is not in the transition table,
                or the offer changed status concurrently.
        """
        target_status = parse_status(OfferStatus, target, field="target status")
        repo = OfferRepository(session)

        existing = await repo.get(offer_id)
        if existing is None:
            raise NotFoundError(f"Offer {offer_id} not found")

        current = OfferStatus(existing.status)
        ensure_transition(OFFER_TRANSITIONS, current, target_status)

        updated = await repo.update_status_if(
            offer_id,
            expected_status=current.value,
            status=target_status.value,
            sent_by_human_id=actor_user_id if target_status is OfferStatus.SENT else None,
        )
        if updated is None:
            logger.warning(
                "Offer %d left %s before transition to %s was written",
                offer_id,
                current.value,
                target_status.value,
            )
            raise InvalidTransitionError(current.value, target_status.value)

        event = await write_audit_event(
            session,
            event_type="offer.status_changed",
            entity_type="offer",
            entity_id=updated.id,
            payload={
                "from": current.value,
                "to": target_status.value,
                "actorUserId": actor_user_id,
            },
        )
        logger.info("Offer %d: %s -> %s", offer_id, current.value, target_status.value)
        return Audited(updated, event)

    async def approve(self, session: AsyncSession, offer_id: int, *, actor_user_id: str) -> Audited[OfferDTO]:
        return await self.transition(
            session, offer_id=offer_id, target=OfferStatus.APPROVED, actor_user_id=actor_user_id
        )

    async def reject(self, session: AsyncSession, offer_id: int, *, actor_user_id: str) -> Audited[OfferDTO]:
        return await self.transition(
            session, offer_id=offer_id, target=OfferStatus.REJECTED, actor_user_id=actor_user_id
        )

    async def send(self, session: AsyncSession, offer_id: int, *, actor_user_id: str) -> Audited[OfferDTO]:
        return await self.transition(
            session, offer_id=offer_id, target=OfferStatus.SENT, actor_user_id=actor_user_id
        )
