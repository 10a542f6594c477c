"""Task types, statuses and provider request/response shapes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from tradeup_engine.payloads import ScalarMapping


class TaskType(str, Enum):
    """Kinds of physical work a human executor can be hired for."""

    INSPECT = "inspect"
    PICKUP = "pickup"
    MEET = "meet"
    SHIP = "ship"


class TaskStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_TASK_STATUSES = frozenset({TaskStatus.QUEUED, TaskStatus.IN_PROGRESS})


@dataclass(frozen=True)
class ProviderTaskRequest:
    """What the engine asks a task provider to create."""

    type: TaskType
    assignee: str | None = None
    metadata: ScalarMapping = field(default_factory=dict)


@dataclass(frozen=True)
class ProviderTaskResult:
    """Provider name and the provider's id for the created task."""

    provider_name: str
    provider_task_id: str
