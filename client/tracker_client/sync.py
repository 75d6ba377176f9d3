"""HTTP calls behind the task store.

Every call returns a SyncResult; nothing here raises for network or HTTP
errors. Failures are classified into ErrorKind so the store can decide what
to keep and what to report.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from .errors import ErrorKind, SyncResult
from .models import Task, fields_to_record, task_from_record

logger = logging.getLogger(__name__)


def classify_status(status_code: int) -> Optional[ErrorKind]:
    """Map an HTTP status to an ErrorKind (None for 2xx/3xx)."""
    if status_code < 400:
        return None
    if status_code in (401, 403):
        return ErrorKind.AUTHORIZATION
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code >= 500:
        return ErrorKind.TRANSPORT
    return ErrorKind.VALIDATION


class SyncClient:
    """Task API client bound to one credential.

    Args:
        base_url: API root, e.g. "http://localhost:8000/api".
        token: bearer token sent with every request (may be set later).
        timeout: transport timeout in seconds.
        transport: optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._token = token
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    @property
    def token(self) -> Optional[str]:
        return self._token

    def set_token(self, token: Optional[str]) -> None:
        self._token = token

    async def aclose(self) -> None:
        self._token = None
        await self._http.aclose()

    async def __aenter__(self) -> "SyncClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    # ---- low-level ----

    def _headers(self) -> Dict[str, str]:
        if self._token:
            return {"Authorization": f"Bearer {self._token}"}
        return {}

    async def _call(self, method: str, path: str, body: Any = None) -> SyncResult[Any]:
        try:
            response = await self._http.request(method, path, json=body, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            return SyncResult.failure(ErrorKind.TRANSPORT)

        error = classify_status(response.status_code)
        if error is not None:
            logger.warning("%s %s -> %s (%s)", method, path, response.status_code, error.value)
            return SyncResult.failure(error, response.status_code)

        try:
            data = response.json() if response.content else None
        except ValueError:
            logger.warning("%s %s returned a non-JSON body", method, path)
            return SyncResult.failure(ErrorKind.TRANSPORT, response.status_code)
        return SyncResult.success(data, response.status_code)

    @staticmethod
    def _as_task(result: SyncResult[Any]) -> SyncResult[Task]:
        if not result.ok:
            return result
        try:
            return SyncResult.success(task_from_record(result.value), result.status_code)
        except (KeyError, ValueError, TypeError):
            logger.warning("Server returned a malformed task record: %r", result.value)
            return SyncResult.failure(ErrorKind.TRANSPORT, result.status_code)

    # ---- task API ----

    async def fetch_all(self) -> SyncResult[List[Task]]:
        result = await self._call("GET", "/tasks")
        if not result.ok:
            return result
        if not isinstance(result.value, list):
            logger.warning("Server returned %s instead of a task list", type(result.value).__name__)
            return SyncResult.failure(ErrorKind.TRANSPORT, result.status_code)
        try:
            tasks = [task_from_record(r) for r in result.value]
        except (KeyError, ValueError, TypeError):
            logger.warning("Server returned a malformed task list")
            return SyncResult.failure(ErrorKind.TRANSPORT, result.status_code)
        tasks.sort(key=lambda t: t.order)
        return SyncResult.success(tasks, result.status_code)

    async def get(self, task_id: str) -> SyncResult[Task]:
        return self._as_task(await self._call("GET", f"/tasks/{task_id}"))

    async def create(self, fields: Dict[str, Any]) -> SyncResult[Task]:
        return self._as_task(await self._call("POST", "/tasks", fields_to_record(fields)))

    async def update(self, task_id: str, fields: Dict[str, Any]) -> SyncResult[Task]:
        return self._as_task(await self._call("PUT", f"/tasks/{task_id}", fields_to_record(fields)))

    async def delete(self, task_id: str) -> SyncResult[Any]:
        return await self._call("DELETE", f"/tasks/{task_id}")

    async def reorder(self, entries: Sequence[Tuple[str, int]]) -> SyncResult[Any]:
        body = {"tasks": [{"id": task_id, "order": order} for task_id, order in entries]}
        return await self._call("POST", "/tasks/reorder", body)
