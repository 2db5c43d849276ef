"""Sync session: one authenticated session's cache, coordinator and clients.

A :class:`SyncSession` is created when the user starts a session and torn
down when it ends.  Everything that used to be ambient state (the current
credential, the task cache, the loading/error signals) hangs off this object
and is passed by reference to whoever needs it.

Usage::

    async with SyncSession(settings) as sync:
        await sync.session.login("ada@example.com", "secret")
        await sync.coordinator.fetch_tasks()
        columns = sync.board()
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from loguru import logger

from .board import DragResult, DragTransitionHandler, group_by_status
from .cache import TaskCache
from .client import AuthService, RemoteTaskService
from .config import ClientSettings
from .coordinator import MutationCoordinator
from .errors import OperationResult, TaskServiceError
from .model import Task, TaskStatus, UserRef
from .session import SessionState


class SyncSession:
    """Bind session state, remote clients, cache and coordinator together.

    Parameters
    ----------
    settings:
        Client settings; defaults to :class:`ClientSettings` defaults.
    http:
        Optional pre-built ``httpx.AsyncClient`` (tests pass one backed by an
        ASGI transport).  A client created here is closed by :meth:`aclose`.
    """

    def __init__(self, settings: Optional[ClientSettings] = None, *, http: Optional[httpx.AsyncClient] = None) -> None:
        self.settings = settings or ClientSettings()
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            base_url=self.settings.base_url,
            timeout=self.settings.timeout_seconds,
        )

        self.session = SessionState(AuthService(self._http))
        self.service = RemoteTaskService(self._http, token_provider=lambda: self.session.token)
        self.cache = TaskCache()
        self.coordinator = MutationCoordinator(
            self.cache,
            self.service,
            self.session,
            update_failure_policy=self.settings.update_failure_policy,
            ordered_updates=self.settings.ordered_updates,
        )
        self.drag = DragTransitionHandler(self.cache, self.coordinator)
        self._unsubscribe = self.session.subscribe(self.coordinator.on_identity_changed)
        self._closed = False

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def board(self) -> dict[TaskStatus, list[Task]]:
        return group_by_status(self.cache.list())

    @property
    def loading(self) -> bool:
        return self.coordinator.loading

    @property
    def error(self) -> Optional[str]:
        return self.coordinator.error

    # ------------------------------------------------------------------
    # Intents not covered by the coordinator directly
    # ------------------------------------------------------------------

    async def move(self, task_id: str, destination: Any) -> Optional[OperationResult[Task]]:
        """Move a cached task to *destination* as if it had been dragged there."""
        task = self.cache.get(task_id)
        source = task.status.value if task is not None else None
        dest = destination.value if isinstance(destination, TaskStatus) else destination
        return await self.drag.on_drag_end(DragResult(task_id=task_id, source=source, destination=dest))

    async def list_users(self) -> list[UserRef]:
        """Users available for assignment.  Falls back to the current user on failure."""
        try:
            return await self.service.list_users()
        except TaskServiceError as exc:
            logger.warning("Failed to fetch users for assignment: {}", exc)
            return [self.session.user] if self.session.user is not None else []

    # ------------------------------------------------------------------
    # Lifetime
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.session.logout()
        self._unsubscribe()
        self.cache.clear()
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "SyncSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
