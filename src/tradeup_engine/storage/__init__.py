"""Storage layer - Database schemas and repositories."""

from tradeup_engine.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
    normalize_async_database_url,
)
from tradeup_engine.storage.models import (
    AuditEventModel,
    Base,
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
from tradeup_engine.storage.repos import (
    AuditEventDTO,
    AuditEventRepository,
    EvidenceDTO,
    EvidenceRepository,
    ItemDTO,
    ItemRepository,
    KpiSnapshotDTO,
    KpiSnapshotRepository,
    OfferDTO,
    OfferRepository,
    OpportunityDTO,
    OpportunityRepository,
    PolicyRuleDTO,
    PolicyRuleRepository,
    PortfolioPositionDTO,
    PortfolioRepository,
    PositionValueDTO,
    TaskDTO,
    TaskRepository,
    ValuationDTO,
    ValuationRepository,
    VerificationChecklistDTO,
    VerificationChecklistRepository,
)

__all__ = [
    "AuditEventDTO",
    "AuditEventModel",
    "AuditEventRepository",
    "Base",
    "DatabaseManager",
    "EvidenceDTO",
    "EvidenceModel",
    "EvidenceRepository",
    "ItemDTO",
    "ItemModel",
    "ItemRepository",
    "ItemValuationModel",
    "KpiSnapshotDTO",
    "KpiSnapshotModel",
    "KpiSnapshotRepository",
    "OfferDTO",
    "OfferModel",
    "OfferRepository",
    "OpportunityDTO",
    "OpportunityModel",
    "OpportunityRepository",
    "PolicyRuleDTO",
    "PolicyRuleModel",
    "PolicyRuleRepository",
    "PortfolioPositionDTO",
    "PortfolioPositionModel",
    "PortfolioRepository",
    "PositionValueDTO",
    "TaskDTO",
    "TaskModel",
    "TaskRepository",
    "ValuationDTO",
    "ValuationRepository",
    "VerificationChecklistDTO",
    "VerificationChecklistModel",
    "VerificationChecklistRepository",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
    "normalize_async_database_url",
]
