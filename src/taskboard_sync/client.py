"""HTTP clients for the remote task service and its auth endpoints.

Both wrap a shared :class:`httpx.AsyncClient` whose ``base_url`` points at the
API root (``.../api``).  Every unsuccessful call raises
:class:`~taskboard_sync.errors.TaskServiceError`; nothing else escapes.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

import httpx
from loguru import logger

from .errors import FailureKind, TaskServiceError, extract_message
from .model import Comment, Task, UserRef, tasks_from_payload

TokenProvider = Callable[[], Optional[str]]


def _kind_for_status(status_code: int) -> FailureKind:
    if status_code in (401, 403):
        return FailureKind.UNAUTHENTICATED
    if status_code == 404:
        return FailureKind.NOT_FOUND
    return FailureKind.SERVER


def _unwrap(payload: Any, key: str) -> Any:
    """Accept both ``{...}`` and ``{"<key>": {...}}`` response bodies."""
    if isinstance(payload, dict) and isinstance(payload.get(key), dict):
        return payload[key]
    return payload


class _ApiClient:
    def __init__(self, http: httpx.AsyncClient, token_provider: Optional[TokenProvider] = None) -> None:
        self._http = http
        self._token_provider = token_provider

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        authenticated: bool = True,
    ) -> Any:
        headers: dict[str, str] = {}
        if authenticated:
            token = self._token_provider() if self._token_provider else None
            if not token:
                raise TaskServiceError(FailureKind.UNAUTHENTICATED, "Not authenticated.")
            headers["Authorization"] = f"Bearer {token}"

        logger.debug("{} {}", method, path)
        try:
            resp = await self._http.request(method, path, json=json, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("{} {} failed: {}", method, path, exc)
            raise TaskServiceError(FailureKind.TRANSPORT) from exc

        if resp.is_error:
            try:
                payload: Any = resp.json()
            except ValueError:
                payload = resp.text
            message = extract_message(payload)
            logger.warning("{} {} -> {} {}", method, path, resp.status_code, message or "<no message>")
            raise TaskServiceError(
                _kind_for_status(resp.status_code),
                message,
                status_code=resp.status_code,
                payload=payload,
            )

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            logger.warning("{} {} returned a non-JSON body", method, path)
            raise TaskServiceError(FailureKind.TRANSPORT, status_code=resp.status_code) from exc


class RemoteTaskService(_ApiClient):
    """Task and comment persistence over REST."""

    async def list_tasks(self) -> list[Task]:
        return tasks_from_payload(await self._request("GET", "/tasks"))

    async def get_task(self, task_id: str) -> Task:
        return Task.from_dict(_unwrap(await self._request("GET", f"/tasks/{task_id}"), "task"))

    async def create_task(self, draft: dict[str, Any]) -> Task:
        return Task.from_dict(_unwrap(await self._request("POST", "/tasks", json=draft), "task"))

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> Task:
        payload = await self._request("PUT", f"/tasks/{task_id}", json=changes)
        return Task.from_dict(_unwrap(payload, "task"))

    async def delete_task(self, task_id: str) -> None:
        await self._request("DELETE", f"/tasks/{task_id}")

    async def add_comment(self, task_id: str, content: str) -> Comment:
        payload = await self._request("POST", f"/tasks/{task_id}/comments", json={"content": content})
        return Comment.from_dict(_unwrap(payload, "comment"))

    async def list_users(self) -> list[UserRef]:
        payload = await self._request("GET", "/users")
        if isinstance(payload, dict):
            payload = payload.get("users")
        users = [UserRef.from_dict(item) for item in list(payload or [])]
        return [u for u in users if u is not None]


class AuthService(_ApiClient):
    """Login and registration.  Responses are the user fields plus ``token``."""

    async def login(self, email: str, password: str) -> tuple[str, UserRef]:
        payload = await self._request(
            "POST", "/auth/login", json={"email": email, "password": password}, authenticated=False
        )
        return self._identity(payload)

    async def register(self, username: str, email: str, password: str) -> tuple[str, UserRef]:
        payload = await self._request(
            "POST",
            "/auth/register",
            json={"username": username, "email": email, "password": password},
            authenticated=False,
        )
        return self._identity(payload)

    @staticmethod
    def _identity(payload: Any) -> tuple[str, UserRef]:
        if not isinstance(payload, dict):
            raise TaskServiceError(FailureKind.TRANSPORT, "Malformed auth response.", payload=payload)
        data = dict(payload)
        token = data.pop("token", None)
        user = UserRef.from_dict(data)
        if not token or user is None:
            raise TaskServiceError(FailureKind.TRANSPORT, "Malformed auth response.", payload=payload)
        return str(token), user
