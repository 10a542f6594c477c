"""Opportunity creation and listing on top of the normalizer."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError

from tradeup_engine.audit import Audited, write_audit_event
from tradeup_engine.errors import DuplicateOpportunityError
from tradeup_engine.intake.normalizer import normalize_intake
from tradeup_engine.storage.repos import OpportunityDTO, OpportunityRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50


class OpportunityIntake:
    """Creates deduplicated opportunities from raw intake submissions."""

    async def create_opportunity(
        self,
        session: AsyncSession,
        raw: Mapping[str, Any],
        *,
        actor_user_id: str,
    ) -> Audited[OpportunityDTO]:
        """Normalize and persist a new opportunity.

        Args:
            session: Transactional session.
            raw: Raw intake fields.
            actor_user_id: User submitting the opportunity.

        Returns:
            The created opportunity and its ``opportunity.created`` event.

        Raises:
            InputValidationError: If the intake is malformed.
            DuplicateOpportunityError: If the fingerprint already exists.
        """
        intake = normalize_intake(raw)
        repo = OpportunityRepository(session)

        existing = await repo.get_by_dedupe_key(intake.dedupe_key)
        if existing is not None:
            raise DuplicateOpportunityError(intake.dedupe_key, existing.id)

        try:
            created = await repo.create(
                source=intake.source,
                category=intake.category,
                location=intake.location,
                title=intake.title,
                ask_value_usd=intake.price_usd,
                normalized_payload=intake.payload,
                dedupe_key=intake.dedupe_key,
                seller_rep_score=(
                    Decimal(str(intake.seller_rep_score))
                    if intake.seller_rep_score is not None
                    else None
                ),
                expires_at=intake.expires_at,
            )
        except IntegrityError as e:
            # A concurrent identical submission won the unique index.
            raise DuplicateOpportunityError(intake.dedupe_key) from e

        event = await write_audit_event(
            session,
            event_type="opportunity.created",
            entity_type="opportunity",
            entity_id=created.id,
            payload={
                "actorUserId": actor_user_id,
                "source": created.source,
                "category": created.category,
            },
        )
        logger.info("Created opportunity %d (%s/%s)", created.id, created.source, created.category)
        return Audited(created, event)

    async def list_opportunities(
        self,
        session: AsyncSession,
        *,
        status: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[OpportunityDTO]:
        """List opportunities newest first; ``limit`` is clamped to 1-200."""
        return await OpportunityRepository(session).list_recent(status=status, limit=limit)
