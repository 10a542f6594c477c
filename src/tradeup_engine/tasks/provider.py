"""Task provider implementations.

The engine only depends on the :class:`TaskProvider` protocol. The stub
provider fabricates ids locally; the RentAHuman provider posts a bounty to
the live API.
"""

from __future__ import annotations

import logging
import secrets
import string
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from tradeup_engine.tasks.models import ProviderTaskRequest, ProviderTaskResult

if TYPE_CHECKING:
    from tradeup_engine.config import TaskProviderSettings

logger = logging.getLogger(__name__)

STUB_PROVIDER_NAME = "rentahuman_stub"
API_PROVIDER_NAME = "rentahuman_api"
DEFAULT_PROVIDER_TIMEOUT_SECONDS = 5.0

_ID_ALPHABET = string.ascii_lowercase + string.digits
_ID_KEYS = ("id", "taskId", "bountyId")


class TaskProviderError(Exception):
    """Raised when a provider rejects or fails to create a task."""


class TaskProvider(Protocol):
    """Creates remote human-executed tasks."""

    async def create_task(self, request: ProviderTaskRequest) -> ProviderTaskResult: ...


class StubTaskProvider:
    """Provider that returns locally generated ids without any I/O."""

    async def create_task(self, request: ProviderTaskRequest) -> ProviderTaskResult:
        suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(8))
        return ProviderTaskResult(
            provider_name=STUB_PROVIDER_NAME,
            provider_task_id=f"{request.type.value}-{suffix}",
        )


def _extract_task_id(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    for container in (body, body.get("data")):
        if not isinstance(container, dict):
            continue
        for key in _ID_KEYS:
            value = container.get(key)
            if isinstance(value, bool):
                continue
            if isinstance(value, (str, int, float)) and str(value):
                return str(value)
    return None


class RentAHumanApiProvider:
    """Posts bounties to the RentAHuman API."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        timeout_seconds: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout_seconds
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    def _build_payload(self, request: ProviderTaskRequest) -> dict[str, Any]:
        meta = request.metadata
        payload: dict[str, Any] = {
            "title": meta.get("title") or f"{request.type.value} task",
            "description": meta.get("description") or "",
            "budget": meta.get("budget_usd"),
            "location": meta.get("location"),
            "deadline": meta.get("deadline_iso"),
            "metadata": {"taskType": request.type.value, "assignee": request.assignee},
        }
        return {k: v for k, v in payload.items() if v is not None}

    async def create_task(self, request: ProviderTaskRequest) -> ProviderTaskResult:
        """Create a bounty and return its id.

        Raises:
            TaskProviderError: On transport errors, non-2xx responses or a
                response without a recognizable task id.
        """
        client = await self._get_client()
        try:
            response = await client.post(
                f"{self._base_url}/api/bounties",
                json=self._build_payload(request),
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            raise TaskProviderError(
                f"RentAHuman create task failed with status {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise TaskProviderError(f"RentAHuman create task failed: {e}") from e

        task_id = _extract_task_id(body)
        if task_id is None:
            raise TaskProviderError("RentAHuman response did not include a task id")

        logger.info("Created RentAHuman bounty %s (%s)", task_id, request.type.value)
        return ProviderTaskResult(provider_name=API_PROVIDER_NAME, provider_task_id=task_id)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def create_task_provider(settings: TaskProviderSettings) -> TaskProvider:
    """Build the provider selected by ``TASK_PROVIDER``.

    Raises:
        ValueError: If the API provider is selected without base URL and key.
    """
    if settings.provider == API_PROVIDER_NAME:
        if not settings.base_url or settings.api_key is None:
            raise ValueError("RENTAHUMAN_BASE_URL and RENTAHUMAN_API_KEY are required")
        return RentAHumanApiProvider(
            base_url=settings.base_url,
            api_key=settings.api_key.get_secret_value(),
            timeout_seconds=settings.timeout_seconds,
        )
    return StubTaskProvider()
