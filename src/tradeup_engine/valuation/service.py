"""Persisting valuations against items."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

from tradeup_engine.audit import Audited, write_audit_event
from tradeup_engine.errors import InputValidationError, NotFoundError
from tradeup_engine.intake.normalizer import normalize_text, round_usd
from tradeup_engine.storage.repos import ItemRepository, ValuationDTO, ValuationRepository
from tradeup_engine.valuation.engine import compute_valuation

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Comp:
    """A comparable sale."""

    price_usd: float
    source: str | None = None


@dataclass(frozen=True)
class ValuationRequest:
    """Input for recording a valuation.

    When ``item_id`` is None a new item is created from the descriptive
    fields; otherwise the existing item's estimated value is updated.
    """

    title: str
    category: str
    comps: Sequence[Comp] = field(default_factory=tuple)
    base_value_usd: float | None = None
    condition: str | None = None
    item_id: int | None = None


class ValuationService:
    """Computes valuations and appends them to an item's history."""

    async def record_valuation(
        self,
        session: AsyncSession,
        request: ValuationRequest,
        *,
        actor_user_id: str,
    ) -> Audited[ValuationDTO]:
        """Compute and persist a valuation.

        Raises:
            InputValidationError: If title/category are missing or there is
                no positive base value or comp.
            NotFoundError: If ``request.item_id`` does not exist.
        """
        title = request.title.strip() if isinstance(request.title, str) else ""
        category = normalize_text(request.category)
        if not title or not category:
            raise InputValidationError("title and category are required")

        usable = [
            Comp(price_usd=float(round_usd(c.price_usd)), source=c.source)
            for c in request.comps
            if isinstance(c.price_usd, (int, float))
            and not isinstance(c.price_usd, bool)
            and math.isfinite(c.price_usd)
            and c.price_usd > 0
        ]
        result = compute_valuation(request.base_value_usd, [c.price_usd for c in usable])
        estimated = round_usd(result.estimated_value_usd)

        items = ItemRepository(session)
        if request.item_id is None:
            item = await items.create(
                title=title,
                category=category,
                condition=normalize_text(request.condition) or None,
                est_value_usd=estimated,
            )
        else:
            item = await items.update_estimated_value(request.item_id, estimated)
            if item is None:
                raise NotFoundError(f"Item {request.item_id} not found")

        comps_payload = [
            {"price_usd": c.price_usd, **({"source": c.source} if c.source else {})}
            for c in usable
        ]
        saved = await ValuationRepository(session).create(
            item_id=item.id,
            model_version=result.model_version,
            estimated_value_usd=estimated,
            confidence_score=Decimal(str(result.confidence_score)),
            input_comps=comps_payload,
        )

        event = await write_audit_event(
            session,
            event_type="valuation.recorded",
            entity_type="item",
            entity_id=item.id,
            payload={
                "actorUserId": actor_user_id,
                "valuationId": saved.id,
                "modelVersion": saved.model_version,
            },
        )
        logger.info(
            "Recorded valuation %d for item %d: %s (confidence %s)",
            saved.id,
            item.id,
            saved.estimated_value_usd,
            saved.confidence_score,
        )
        return Audited(saved, event)

    async def list_valuations(self, session: AsyncSession, item_id: int) -> list[ValuationDTO]:
        """Valuation history for an item, newest first."""
        return await ValuationRepository(session).list_for_item(item_id)
