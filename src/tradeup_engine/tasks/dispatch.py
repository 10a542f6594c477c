"""Task dispatch, provider status callbacks and evidence capture."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from tradeup_engine.audit import Audited, write_audit_event
from tradeup_engine.errors import (
    InputValidationError,
    NotFoundError,
    UnauthorizedError,
    UpstreamError,
)
from tradeup_engine.payloads import validate_scalar_mapping
from tradeup_engine.storage.repos import EvidenceDTO, EvidenceRepository, TaskDTO, TaskRepository
from tradeup_engine.tasks.models import ProviderTaskRequest, TaskStatus, TaskType
from tradeup_engine.tasks.provider import (
    DEFAULT_PROVIDER_TIMEOUT_SECONDS,
    TaskProvider,
    TaskProviderError,
)
from tradeup_engine.workflow.transitions import parse_status

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def evidence_checksum(media_url: str, captured_at: str, provided: str | None = None) -> str:
    """Checksum anchoring a piece of evidence.

    A supplied checksum wins (trimmed and lowercased); otherwise it is the
    SHA-256 hex digest of ``media_url|captured_at``.
    """
    if provided is not None and provided.strip():
        return provided.strip().lower()
    return hashlib.sha256(f"{media_url}|{captured_at}".encode()).hexdigest()


def _parse_captured_at(value: str | datetime | None) -> tuple[str, datetime]:
    if value is None:
        now = datetime.now(UTC)
        return now.isoformat(), now
    if isinstance(value, datetime):
        parsed = value
        raw = value.isoformat()
    elif isinstance(value, str):
        raw = value
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError as e:
            raise InputValidationError("captured_at must be a valid ISO datetime") from e
    else:
        raise InputValidationError("captured_at must be a valid ISO datetime")
    if parsed.tzinfo is None:
        return raw, parsed.replace(tzinfo=UTC)
    return raw, parsed.astimezone(UTC)


class TaskDispatcher:
    """Creates provider tasks and tracks their progress and evidence."""

    def __init__(
        self,
        provider: TaskProvider,
        *,
        webhook_token: str,
        timeout_seconds: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS,
    ) -> None:
        self._provider = provider
        self._webhook_token = webhook_token
        self._timeout = timeout_seconds

    async def create_task(
        self,
        session: AsyncSession,
        *,
        task_type: TaskType | str,
        actor_user_id: str,
        assignee: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Audited[TaskDTO]:
        """Dispatch a task to the provider and persist it as ``queued``.

        Nothing is written when the provider fails or does not answer within
        the configured timeout.

        Raises:
            InputValidationError: If the type or metadata is invalid.
            UpstreamError: If the provider fails or times out.
        """
        parsed_type = parse_status(TaskType, task_type, field="type")
        request = ProviderTaskRequest(
            type=parsed_type,
            assignee=assignee,
            metadata=validate_scalar_mapping(metadata or {}, field="metadata"),
        )

        try:
            result = await asyncio.wait_for(self._provider.create_task(request), self._timeout)
        except asyncio.TimeoutError as e:
            logger.warning("Task provider timed out after %.1fs", self._timeout)
            raise UpstreamError(f"Task provider timed out after {self._timeout}s") from e
        except TaskProviderError as e:
            logger.warning("Task provider failed: %s", e)
            raise UpstreamError(str(e)) from e

        task = await TaskRepository(session).create(
            task_type=parsed_type.value,
            assignee=assignee,
            provider_name=result.provider_name,
            provider_task_id=result.provider_task_id,
        )
        event = await write_audit_event(
            session,
            event_type="task.created",
            entity_type="task",
            entity_id=task.id,
            payload={
                "actorUserId": actor_user_id,
                "providerName": task.provider_name,
                "providerTaskId": task.provider_task_id,
            },
        )
        logger.info("Dispatched %s task %d via %s", parsed_type.value, task.id, task.provider_name)
        return Audited(task, event)

    async def apply_provider_update(
        self,
        session: AsyncSession,
        *,
        token: str | None,
        provider_task_id: str,
        status: TaskStatus | str,
    ) -> Audited[TaskDTO]:
        """Apply a provider status callback.

        Raises:
            UnauthorizedError: If ``token`` does not match the shared secret.
            InputValidationError: If the id is blank or the status unknown.
            NotFoundError: If no task has that provider id.
        """
        if token is None or not hmac.compare_digest(
            token.encode("utf-8"), self._webhook_token.encode("utf-8")
        ):
            logger.warning("Rejected provider callback with invalid token")
            raise UnauthorizedError("Invalid webhook token")

        if not isinstance(provider_task_id, str) or not provider_task_id:
            raise InputValidationError("provider_task_id and valid status are required")
        try:
            parsed_status = TaskStatus(status)
        except ValueError as e:
            raise InputValidationError("provider_task_id and valid status are required") from e

        task = await TaskRepository(session).update_status_by_provider_task_id(
            provider_task_id, parsed_status.value
        )
        if task is None:
            raise NotFoundError(f"Task with provider id {provider_task_id} not found")

        event = await write_audit_event(
            session,
            event_type="task.status_changed",
            entity_type="task",
            entity_id=task.id,
            payload={"providerTaskId": provider_task_id, "status": parsed_status.value},
        )
        logger.info("Task %d is now %s", task.id, parsed_status.value)
        return Audited(task, event)

    async def record_evidence(
        self,
        session: AsyncSession,
        *,
        task_id: int,
        media_url: str,
        actor_user_id: str,
        captured_at: str | datetime | None = None,
        checksum: str | None = None,
        geotag: str | None = None,
    ) -> Audited[EvidenceDTO]:
        """Attach proof-of-completion to a task.

        Raises:
            NotFoundError: If the task does not exist.
            InputValidationError: If the media URL is blank or the capture
                time is not a valid ISO datetime.
        """
        if await TaskRepository(session).get(task_id) is None:
            raise NotFoundError(f"Task {task_id} not found")

        url = media_url.strip() if isinstance(media_url, str) else ""
        if not url:
            raise InputValidationError("media_url is required")
        raw_captured_at, parsed_captured_at = _parse_captured_at(captured_at)

        evidence = await EvidenceRepository(session).create(
            task_id=task_id,
            media_url=url,
            checksum=evidence_checksum(url, raw_captured_at, checksum),
            geotag=geotag.strip() if isinstance(geotag, str) else None,
            captured_at=parsed_captured_at,
        )
        event = await write_audit_event(
            session,
            event_type="evidence.recorded",
            entity_type="task",
            entity_id=task_id,
            payload={
                "actorUserId": actor_user_id,
                "evidenceId": evidence.id,
                "checksum": evidence.checksum,
            },
        )
        return Audited(evidence, event)

    async def list_evidence(self, session: AsyncSession, task_id: int) -> list[EvidenceDTO]:
        """Evidence for a task, most recently captured first."""
        if await TaskRepository(session).get(task_id) is None:
            raise NotFoundError(f"Task {task_id} not found")
        return await EvidenceRepository(session).list_for_task(task_id)
