"""Ranking stored opportunities against the currently held item."""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import TYPE_CHECKING

from tradeup_engine.errors import InputValidationError
from tradeup_engine.scoring.engine import (
    DEFAULT_RANK_LIMIT,
    RankedCandidate,
    ScoringCandidate,
    bound_rank_limit,
    rank_candidates,
)
from tradeup_engine.storage.repos import OpportunityDTO, OpportunityRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

SCORING_ELIGIBLE_STATUSES = ("sourcing", "screened")


def candidate_from_opportunity(opportunity: OpportunityDTO) -> ScoringCandidate:
    return ScoringCandidate(
        opportunity_id=opportunity.id,
        target_value_usd=float(opportunity.ask_value_usd),
        source=opportunity.source,
        category=opportunity.category,
        seller_rep_score=(
            float(opportunity.seller_rep_score)
            if opportunity.seller_rep_score is not None
            else None
        ),
        expires_at=opportunity.expires_at,
    )


class TradeRanker:
    """Ranks scoring-eligible opportunities."""

    async def rank_opportunities(
        self,
        session: AsyncSession,
        *,
        current_item_value_usd: float,
        limit: int | None = DEFAULT_RANK_LIMIT,
        now: datetime | None = None,
    ) -> list[RankedCandidate]:
        """Rank opportunities in ``sourcing`` or ``screened`` status.

        Raises:
            InputValidationError: If the current value is not a positive number.
        """
        if (
            isinstance(current_item_value_usd, bool)
            or not isinstance(current_item_value_usd, (int, float))
            or not math.isfinite(current_item_value_usd)
            or current_item_value_usd <= 0
        ):
            raise InputValidationError("current item value must be a positive number")

        bounded = bound_rank_limit(limit)
        opportunities = await OpportunityRepository(session).list_by_statuses(
            SCORING_ELIGIBLE_STATUSES, limit=limit if limit is not None else bounded
        )
        ranked = rank_candidates(
            [candidate_from_opportunity(o) for o in opportunities],
            float(current_item_value_usd),
            bounded,
            now=now,
        )
        logger.debug("Ranked %d of %d candidates", len(ranked), len(opportunities))
        return ranked
