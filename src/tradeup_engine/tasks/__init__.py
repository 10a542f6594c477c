"""Tasks - provider dispatch, status callbacks and evidence."""

from tradeup_engine.tasks.dispatch import TaskDispatcher, evidence_checksum
from tradeup_engine.tasks.models import (
    ACTIVE_TASK_STATUSES,
    ProviderTaskRequest,
    ProviderTaskResult,
    TaskStatus,
    TaskType,
)
from tradeup_engine.tasks.provider import (
    API_PROVIDER_NAME,
    STUB_PROVIDER_NAME,
    RentAHumanApiProvider,
    StubTaskProvider,
    TaskProvider,
    TaskProviderError,
    create_task_provider,
)

__all__ = [
    "ACTIVE_TASK_STATUSES",
    "API_PROVIDER_NAME",
    "STUB_PROVIDER_NAME",
    "ProviderTaskRequest",
    "ProviderTaskResult",
    "RentAHumanApiProvider",
    "StubTaskProvider",
    "TaskDispatcher",
    "TaskProvider",
    "TaskProviderError",
    "TaskStatus",
    "TaskType",
    "create_task_provider",
    "evidence_checksum",
]
