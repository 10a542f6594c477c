"""Repository pattern implementations for data access.

These repositories are the storage contract of the trade-up engine: the
decision layer only talks to persistence through them. Every repository is
bound to one ``AsyncSession`` so that multi-step operations share the
caller's transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update

from tradeup_engine.storage.models import (
    AuditEventModel,
    EvidenceModel,
    ItemModel,
    ItemValuationModel,
    KpiSnapshotModel,
    OfferModel,
    OpportunityModel,
    PolicyRuleModel,
    PortfolioPositionModel,
    TaskModel,
    VerificationChecklistModel,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

MAX_OPPORTUNITY_LIST_LIMIT = 200


def _bounded(limit: int, *, upper: int) -> int:
    return max(1, min(int(limit), upper))


@dataclass
class ItemDTO:
    """Data transfer object for items."""

    id: int
    title: str
    category: str | None
    condition: str | None
    location: str | None
    est_value_usd: Decimal | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, model: ItemModel) -> ItemDTO:
        return cls(
            id=model.id,
            title=model.title,
            category=model.category,
            condition=model.condition,
            location=model.location,
            est_value_usd=model.est_value_usd,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


@dataclass
class OpportunityDTO:
    """Data transfer object for opportunities."""

    id: int
    source: str
    category: str
    location: str
    title: str
    ask_value_usd: Decimal
    normalized_payload: dict[str, Any]
    dedupe_key: str
    status: str
    seller_rep_score: Decimal | None
    expires_at: datetime | None
    created_at: datetime

    @classmethod
    def from_model(cls, model: OpportunityModel) -> OpportunityDTO:
        return cls(
            id=model.id,
            source=model.source,
            category=model.category,
            location=model.location,
            title=model.title,
            ask_value_usd=model.ask_value_usd,
            normalized_payload=dict(model.normalized_payload),
            dedupe_key=model.dedupe_key,
            status=model.status,
            seller_rep_score=model.seller_rep_score,
            expires_at=model.expires_at,
            created_at=model.created_at,
        )


@dataclass
class ValuationDTO:
    """Data transfer object for item valuations."""

    id: int
    item_id: int
    model_version: str
    estimated_value_usd: Decimal
    confidence_score: Decimal
    input_comps: list[dict[str, Any]]
    created_at: datetime

    @classmethod
    def from_model(cls, model: ItemValuationModel) -> ValuationDTO:
        return cls(
            id=model.id,
            item_id=model.item_id,
            model_version=model.model_version,
            estimated_value_usd=model.estimated_value_usd,
            confidence_score=model.confidence_score,
            input_comps=list(model.input_comps),
            created_at=model.created_at,
        )


@dataclass
class PolicyRuleDTO:
    """Data transfer object for policy rules."""

    platform: str
    action: str
    allowed: bool
    reason: str
    last_reviewed_at: date | None = None

    @classmethod
    def from_model(cls, model: PolicyRuleModel) -> PolicyRuleDTO:
        return cls(
            platform=model.platform,
            action=model.action,
            allowed=model.allowed,
            reason=model.reason,
            last_reviewed_at=model.last_reviewed_at,
        )


@dataclass
class OfferDTO:
    """Data transfer object for offers."""

    id: int
    opportunity_id: int
    offer_terms: dict[str, Any]
    status: str
    sent_by_human_id: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, model: OfferModel) -> OfferDTO:
        return cls(
            id=model.id,
            opportunity_id=model.opportunity_id,
            offer_terms=dict(model.offer_terms),
            status=model.status,
            sent_by_human_id=model.sent_by_human_id,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


@dataclass
class TaskDTO:
    """Data transfer object for dispatched tasks."""

    id: int
    type: str
    assignee: str | None
    status: str
    provider_name: str
    provider_task_id: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, model: TaskModel) -> TaskDTO:
        return cls(
            id=model.id,
            type=model.type,
            assignee=model.assignee,
            status=model.status,
            provider_name=model.provider_name,
            provider_task_id=model.provider_task_id,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


@dataclass
class EvidenceDTO:
    """Data transfer object for task evidence."""

    id: int
    task_id: int
    media_url: str
    checksum: str
    geotag: str | None
    captured_at: datetime
    created_at: datetime

    @classmethod
    def from_model(cls, model: EvidenceModel) -> EvidenceDTO:
        return cls(
            id=model.id,
            task_id=model.task_id,
            media_url=model.media_url,
            checksum=model.checksum,
            geotag=model.geotag,
            captured_at=model.captured_at,
            created_at=model.created_at,
        )


@dataclass
class PortfolioPositionDTO:
    """Data transfer object for portfolio positions."""

    id: int
    item_id: int
    acquisition_value_usd: Decimal | None
    current_status: str
    acquired_at: datetime
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, model: PortfolioPositionModel) -> PortfolioPositionDTO:
        return cls(
            id=model.id,
            item_id=model.item_id,
            acquisition_value_usd=model.acquisition_value_usd,
            current_status=model.current_status,
            acquired_at=model.acquired_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


@dataclass
class PositionValueDTO:
    """Position joined with the estimated value of its backing item."""

    position_id: int
    status: str
    acquisition_value_usd: Decimal | None
    est_value_usd: Decimal | None
    created_at: datetime
    updated_at: datetime


@dataclass
class VerificationChecklistDTO:
    """Data transfer object for verification checklists."""

    id: int
    portfolio_position_id: int
    checks: dict[str, bool]
    passed: bool
    outcome_status: str
    created_by_user_id: str
    notes: str | None
    created_at: datetime

    @classmethod
    def from_model(cls, model: VerificationChecklistModel) -> VerificationChecklistDTO:
        return cls(
            id=model.id,
            portfolio_position_id=model.portfolio_position_id,
            checks=dict(model.checks),
            passed=model.passed,
            outcome_status=model.outcome_status,
            created_by_user_id=model.created_by_user_id,
            notes=model.notes,
            created_at=model.created_at,
        )


@dataclass
class KpiSnapshotDTO:
    """Data transfer object for KPI snapshots."""

    id: int
    value_multiple: Decimal
    close_rate: Decimal
    median_cycle_time_days: Decimal
    fraud_loss_pct: Decimal
    active_tasks: int
    created_at: datetime

    @classmethod
    def from_model(cls, model: KpiSnapshotModel) -> KpiSnapshotDTO:
        return cls(
            id=model.id,
            value_multiple=model.value_multiple,
            close_rate=model.close_rate,
            median_cycle_time_days=model.median_cycle_time_days,
            fraud_loss_pct=model.fraud_loss_pct,
            active_tasks=model.active_tasks,
            created_at=model.created_at,
        )


@dataclass
class AuditEventDTO:
    """Data transfer object for audit events."""

    id: int
    event_type: str
    entity_type: str
    entity_id: str
    payload: dict[str, Any]
    created_at: datetime

    @classmethod
    def from_model(cls, model: AuditEventModel) -> AuditEventDTO:
        return cls(
            id=model.id,
            event_type=model.event_type,
            entity_type=model.entity_type,
            entity_id=model.entity_id,
            payload=dict(model.payload),
            created_at=model.created_at,
        )


class ItemRepository:
    """Repository for items backing valuations and positions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, item_id: int) -> ItemDTO | None:
        model = await self.session.get(ItemModel, item_id)
        return ItemDTO.from_model(model) if model else None

    async def create(
        self,
        *,
        title: str,
        category: str | None = None,
        condition: str | None = None,
        location: str | None = None,
        est_value_usd: Decimal | None = None,
    ) -> ItemDTO:
        model = ItemModel(
            title=title,
            category=category,
            condition=condition,
            location=location,
            est_value_usd=est_value_usd,
        )
        self.session.add(model)
        await self.session.flush()
        return ItemDTO.from_model(model)

    async def update_estimated_value(self, item_id: int, value: Decimal) -> ItemDTO | None:
        model = await self.session.get(ItemModel, item_id)
        if model is None:
            return None
        model.est_value_usd = value
        model.updated_at = datetime.now(UTC)
        await self.session.flush()
        return ItemDTO.from_model(model)


class OpportunityRepository:
    """Repository for sourced opportunities."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, opportunity_id: int) -> OpportunityDTO | None:
        model = await self.session.get(OpportunityModel, opportunity_id)
        return OpportunityDTO.from_model(model) if model else None

    async def get_by_dedupe_key(self, dedupe_key: str) -> OpportunityDTO | None:
        result = await self.session.execute(
            select(OpportunityModel).where(OpportunityModel.dedupe_key == dedupe_key).limit(1)
        )
        model = result.scalar_one_or_none()
        return OpportunityDTO.from_model(model) if model else None

    async def create(
        self,
        *,
        source: str,
        category: str,
        location: str,
        title: str,
        ask_value_usd: Decimal,
        normalized_payload: dict[str, Any],
        dedupe_key: str,
        seller_rep_score: Decimal | None = None,
        expires_at: datetime | None = None,
    ) -> OpportunityDTO:
        """Insert an opportunity.

        Raises:
            sqlalchemy.exc.IntegrityError: If the dedupe key already exists.
        """
        model = OpportunityModel(
            source=source,
            category=category,
            location=location,
            title=title,
            ask_value_usd=ask_value_usd,
            normalized_payload=normalized_payload,
            dedupe_key=dedupe_key,
            seller_rep_score=seller_rep_score,
            expires_at=expires_at,
            status="sourcing",
        )
        self.session.add(model)
        await self.session.flush()
        return OpportunityDTO.from_model(model)

    async def list_recent(
        self,
        *,
        status: str | None = None,
        limit: int = 50,
    ) -> list[OpportunityDTO]:
        """List opportunities newest first, optionally filtered by status."""
        stmt = select(OpportunityModel)
        if status is not None:
            stmt = stmt.where(OpportunityModel.status == status)
        stmt = stmt.order_by(OpportunityModel.created_at.desc(), OpportunityModel.id.desc()).limit(
            _bounded(limit, upper=MAX_OPPORTUNITY_LIST_LIMIT)
        )
        result = await self.session.execute(stmt)
        return [OpportunityDTO.from_model(m) for m in result.scalars().all()]

    async def list_by_statuses(self, statuses: Sequence[str], *, limit: int) -> list[OpportunityDTO]:
        stmt = (
            select(OpportunityModel)
            .where(OpportunityModel.status.in_(list(statuses)))
            .order_by(OpportunityModel.created_at.desc(), OpportunityModel.id.desc())
            .limit(_bounded(limit, upper=MAX_OPPORTUNITY_LIST_LIMIT))
        )
        result = await self.session.execute(stmt)
        return [OpportunityDTO.from_model(m) for m in result.scalars().all()]

    async def update_status(self, opportunity_id: int, status: str) -> OpportunityDTO | None:
        model = await self.session.get(OpportunityModel, opportunity_id)
        if model is None:
            return None
        model.status = status
        await self.session.flush()
        return OpportunityDTO.from_model(model)


class ValuationRepository:
    """Repository for the append-only valuation history."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(
        self,
        *,
        item_id: int,
        model_version: str,
        estimated_value_usd: Decimal,
        confidence_score: Decimal,
        input_comps: list[dict[str, Any]],
    ) -> ValuationDTO:
        model = ItemValuationModel(
            item_id=item_id,
            model_version=model_version,
            estimated_value_usd=estimated_value_usd,
            confidence_score=confidence_score,
            input_comps=input_comps,
        )
        self.session.add(model)
        await self.session.flush()
        return ValuationDTO.from_model(model)

    async def list_for_item(self, item_id: int) -> list[ValuationDTO]:
        result = await self.session.execute(
            select(ItemValuationModel)
            .where(ItemValuationModel.item_id == item_id)
            .order_by(ItemValuationModel.created_at.desc(), ItemValuationModel.id.desc())
        )
        return [ValuationDTO.from_model(m) for m in result.scalars().all()]


class PolicyRuleRepository:
    """Repository for marketplace policy rules."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, platform: str, action: str) -> PolicyRuleDTO | None:
        result = await self.session.execute(
            select(PolicyRuleModel)
            .where(PolicyRuleModel.platform == platform, PolicyRuleModel.action == action)
            .limit(1)
        )
        model = result.scalar_one_or_none()
        return PolicyRuleDTO.from_model(model) if model else None

    async def upsert(self, dto: PolicyRuleDTO) -> PolicyRuleDTO:
        """Insert or update a rule keyed by (platform, action)."""
        result = await self.session.execute(
            select(PolicyRuleModel).where(
                PolicyRuleModel.platform == dto.platform,
                PolicyRuleModel.action == dto.action,
            )
        )
        model = result.scalar_one_or_none()
        if model is None:
            model = PolicyRuleModel(
                platform=dto.platform,
                action=dto.action,
                allowed=dto.allowed,
                reason=dto.reason,
                last_reviewed_at=dto.last_reviewed_at,
            )
            self.session.add(model)
        else:
            model.allowed = dto.allowed
            model.reason = dto.reason
            model.last_reviewed_at = dto.last_reviewed_at
        await self.session.flush()
        return PolicyRuleDTO.from_model(model)


class OfferRepository:
    """Repository for offers."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, offer_id: int) -> OfferDTO | None:
        result = await self.session.execute(
            select(OfferModel)
            .where(OfferModel.id == offer_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return OfferDTO.from_model(model) if model else None

    async def create_draft(self, opportunity_id: int, offer_terms: dict[str, Any]) -> OfferDTO:
        model = OfferModel(opportunity_id=opportunity_id, offer_terms=offer_terms, status="draft")
        self.session.add(model)
        await self.session.flush()
        return OfferDTO.from_model(model)

    async def update_status_if(
        self,
        offer_id: int,
        *,
        expected_status: str,
        status: str,
        sent_by_human_id: str | None = None,
    ) -> OfferDTO | None:
        """Compare-and-set the offer status.

        Returns:
            The updated offer, or None when the offer is missing or its stored
            status no longer equals ``expected_status``.
        """
        values: dict[str, Any] = {"status": status, "updated_at": datetime.now(UTC)}
        if sent_by_human_id is not None:
            values["sent_by_human_id"] = sent_by_human_id
        result = await self.session.execute(
            update(OfferModel)
            .where(OfferModel.id == offer_id, OfferModel.status == expected_status)
            .values(**values)
        )
        if result.rowcount != 1:
            return None
        return await self.get(offer_id)

    async def list_statuses(self) -> list[str]:
        result = await self.session.execute(select(OfferModel.status))
        return list(result.scalars().all())


class TaskRepository:
    """Repository for dispatched tasks."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, task_id: int) -> TaskDTO | None:
        model = await self.session.get(TaskModel, task_id)
        return TaskDTO.from_model(model) if model else None

    async def get_by_provider_task_id(self, provider_task_id: str) -> TaskDTO | None:
        result = await self.session.execute(
            select(TaskModel)
            .where(TaskModel.provider_task_id == provider_task_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return TaskDTO.from_model(model) if model else None

    async def create(
        self,
        *,
        task_type: str,
        assignee: str | None,
        provider_name: str,
        provider_task_id: str,
    ) -> TaskDTO:
        model = TaskModel(
            type=task_type,
            assignee=assignee,
            status="queued",
            provider_name=provider_name,
            provider_task_id=provider_task_id,
        )
        self.session.add(model)
        await self.session.flush()
        return TaskDTO.from_model(model)

    async def update_status_by_provider_task_id(
        self, provider_task_id: str, status: str
    ) -> TaskDTO | None:
        result = await self.session.execute(
            update(TaskModel)
            .where(TaskModel.provider_task_id == provider_task_id)
            .values(status=status, updated_at=datetime.now(UTC))
        )
        if result.rowcount < 1:
            return None
        return await self.get_by_provider_task_id(provider_task_id)

    async def list_statuses(self) -> list[str]:
        result = await self.session.execute(select(TaskModel.status))
        return list(result.scalars().all())


class EvidenceRepository:
    """Repository for append-only task evidence."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(
        self,
        *,
        task_id: int,
        media_url: str,
        checksum: str,
        geotag: str | None,
        captured_at: datetime,
    ) -> EvidenceDTO:
        model = EvidenceModel(
            task_id=task_id,
            media_url=media_url,
            checksum=checksum,
            geotag=geotag,
            captured_at=captured_at,
        )
        self.session.add(model)
        await self.session.flush()
        return EvidenceDTO.from_model(model)

    async def list_for_task(self, task_id: int) -> list[EvidenceDTO]:
        result = await self.session.execute(
            select(EvidenceModel)
            .where(EvidenceModel.task_id == task_id)
            .order_by(EvidenceModel.captured_at.desc(), EvidenceModel.id.desc())
        )
        return [EvidenceDTO.from_model(m) for m in result.scalars().all()]


class PortfolioRepository:
    """Repository for portfolio positions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, position_id: int) -> PortfolioPositionDTO | None:
        result = await self.session.execute(
            select(PortfolioPositionModel)
            .where(PortfolioPositionModel.id == position_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return PortfolioPositionDTO.from_model(model) if model else None

    async def create(
        self, *, item_id: int, acquisition_value_usd: Decimal | None
    ) -> PortfolioPositionDTO:
        model = PortfolioPositionModel(
            item_id=item_id,
            acquisition_value_usd=acquisition_value_usd,
            current_status="seeded",
        )
        self.session.add(model)
        await self.session.flush()
        return PortfolioPositionDTO.from_model(model)

    async def update_status_if(
        self, position_id: int, *, expected_status: str, status: str
    ) -> PortfolioPositionDTO | None:
        """Compare-and-set the position status (None on miss)."""
        result = await self.session.execute(
            update(PortfolioPositionModel)
            .where(
                PortfolioPositionModel.id == position_id,
                PortfolioPositionModel.current_status == expected_status,
            )
            .values(current_status=status, updated_at=datetime.now(UTC))
        )
        if result.rowcount != 1:
            return None
        return await self.get(position_id)

    async def list_position_values(self) -> list[PositionValueDTO]:
        result = await self.session.execute(
            select(
                PortfolioPositionModel.id,
                PortfolioPositionModel.current_status,
                PortfolioPositionModel.acquisition_value_usd,
                ItemModel.est_value_usd,
                PortfolioPositionModel.created_at,
                PortfolioPositionModel.updated_at,
            ).join(ItemModel, ItemModel.id == PortfolioPositionModel.item_id)
        )
        return [
            PositionValueDTO(
                position_id=row[0],
                status=row[1],
                acquisition_value_usd=row[2],
                est_value_usd=row[3],
                created_at=row[4],
                updated_at=row[5],
            )
            for row in result.all()
        ]


class VerificationChecklistRepository:
    """Repository for verification checklist history."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(
        self,
        *,
        portfolio_position_id: int,
        checks: dict[str, bool],
        passed: bool,
        outcome_status: str,
        created_by_user_id: str,
        notes: str | None = None,
    ) -> VerificationChecklistDTO:
        model = VerificationChecklistModel(
            portfolio_position_id=portfolio_position_id,
            checks=checks,
            passed=passed,
            outcome_status=outcome_status,
            created_by_user_id=created_by_user_id,
            notes=notes,
        )
        self.session.add(model)
        await self.session.flush()
        return VerificationChecklistDTO.from_model(model)

    async def list_for_position(self, portfolio_position_id: int) -> list[VerificationChecklistDTO]:
        result = await self.session.execute(
            select(VerificationChecklistModel)
            .where(VerificationChecklistModel.portfolio_position_id == portfolio_position_id)
            .order_by(
                VerificationChecklistModel.created_at.desc(),
                VerificationChecklistModel.id.desc(),
            )
        )
        return [VerificationChecklistDTO.from_model(m) for m in result.scalars().all()]


class KpiSnapshotRepository:
    """Repository for append-only KPI snapshots."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(
        self,
        *,
        value_multiple: Decimal,
        close_rate: Decimal,
        median_cycle_time_days: Decimal,
        fraud_loss_pct: Decimal,
        active_tasks: int,
    ) -> KpiSnapshotDTO:
        model = KpiSnapshotModel(
            value_multiple=value_multiple,
            close_rate=close_rate,
            median_cycle_time_days=median_cycle_time_days,
            fraud_loss_pct=fraud_loss_pct,
            active_tasks=active_tasks,
        )
        self.session.add(model)
        await self.session.flush()
        return KpiSnapshotDTO.from_model(model)

    async def list_recent(self, limit: int = 30) -> list[KpiSnapshotDTO]:
        result = await self.session.execute(
            select(KpiSnapshotModel)
            .order_by(KpiSnapshotModel.created_at.desc(), KpiSnapshotModel.id.desc())
            .limit(max(1, int(limit)))
        )
        return [KpiSnapshotDTO.from_model(m) for m in result.scalars().all()]

    async def latest(self) -> KpiSnapshotDTO | None:
        snapshots = await self.list_recent(1)
        return snapshots[0] if snapshots else None


class AuditEventRepository:
    """Repository for the append-only audit log."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def append(
        self,
        *,
        event_type: str,
        entity_type: str,
        entity_id: str,
        payload: dict[str, Any],
    ) -> AuditEventDTO:
        model = AuditEventModel(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=payload,
        )
        self.session.add(model)
        await self.session.flush()
        return AuditEventDTO.from_model(model)

    async def list_for_entity(self, entity_type: str, entity_id: str) -> list[AuditEventDTO]:
        result = await self.session.execute(
            select(AuditEventModel)
            .where(
                AuditEventModel.entity_type == entity_type,
                AuditEventModel.entity_id == entity_id,
            )
            .order_by(AuditEventModel.id.asc())
        )
        return [AuditEventDTO.from_model(m) for m in result.scalars().all()]

    async def count(self, *, event_type: str | None = None) -> int:
        stmt = select(func.count()).select_from(AuditEventModel)
        if event_type is not None:
            stmt = stmt.where(AuditEventModel.event_type == event_type)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())
