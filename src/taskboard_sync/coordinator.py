"""Mutation coordinator: optimistic apply, remote call, reconcile.

Every task or comment operation goes through :class:`MutationCoordinator`,
which is the only writer of the :class:`~taskboard_sync.cache.TaskCache`.

Paths
-----
* list      -- guarded by the session; replaces the cache wholesale.
* get       -- read-only; never touches the cache.
* create    -- remote first; the server-assigned task is appended.
* update    -- optimistic shallow merge, then reconcile with the server
               response.  On failure either re-fetch the whole list
               (``refetch``, default) or rebuild the task from its last
               confirmed value plus updates still in flight (``rollback``).
* delete    -- remote first; removed from the cache only on success.
* comment   -- remote first; the server comment is appended.

The ``loading`` flag and ``error`` slot are shared by all operations and may
be clobbered when operations interleave.  Callers that need a reliable
outcome use the :class:`~taskboard_sync.errors.OperationResult` each
operation returns.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Literal, Mapping, Optional, Protocol

from loguru import logger

from .cache import TaskCache
from .errors import FailureKind, OperationResult, TaskServiceError
from .model import Comment, Task, UserRef, to_wire_changes, validate_changes

UpdateFailurePolicy = Literal["refetch", "rollback"]


class TaskService(Protocol):
    async def list_tasks(self) -> list[Task]: ...
    async def get_task(self, task_id: str) -> Task: ...
    async def create_task(self, draft: dict[str, Any]) -> Task: ...
    async def update_task(self, task_id: str, changes: dict[str, Any]) -> Task: ...
    async def delete_task(self, task_id: str) -> None: ...
    async def add_comment(self, task_id: str, content: str) -> Comment: ...


class IdentitySource(Protocol):
    @property
    def is_authenticated(self) -> bool: ...


class MutationCoordinator:
    """Own the task cache and keep it in step with the remote service.

    Parameters
    ----------
    cache:
        The cache this coordinator writes to.
    service:
        Remote task service (see :class:`TaskService`).
    session:
        Anything exposing ``is_authenticated``; wire :meth:`on_identity_changed`
        to its change notifications.
    update_failure_policy:
        ``"refetch"`` re-lists after a failed update; ``"rollback"`` restores
        the last server-confirmed task and replays updates still in flight.
    ordered_updates:
        Ignore an update response that resolves after a newer update to the
        same task has already been applied.
    """

    def __init__(
        self,
        cache: TaskCache,
        service: TaskService,
        session: IdentitySource,
        *,
        update_failure_policy: UpdateFailurePolicy = "refetch",
        ordered_updates: bool = True,
    ) -> None:
        if update_failure_policy not in ("refetch", "rollback"):
            raise ValueError(f"Unknown update failure policy: {update_failure_policy!r}")
        self.cache = cache
        self._service = service
        self._session = session
        self.update_failure_policy = update_failure_policy
        self.ordered_updates = ordered_updates

        self.loading = False
        self.error: Optional[str] = None

        # Bumped on every identity change; responses from an older generation
        # are dropped instead of applied to the new session's cache.
        self._generation = 0
        self._identity_id: Optional[str] = None
        self._issued_seq: dict[str, int] = {}
        self._applied_seq: dict[str, int] = {}
        # Per task with updates in flight: the last server-confirmed value and
        # the bodies still awaiting a response, keyed by sequence number.
        self._confirmed: dict[str, Task] = {}
        self._pending: dict[str, dict[int, dict[str, Any]]] = {}

    # ------------------------------------------------------------------
    # Session integration
    # ------------------------------------------------------------------

    def on_identity_changed(self, user: Optional[UserRef]) -> None:
        new_id = user.id if user is not None else None
        switched = new_id != self._identity_id
        self._identity_id = new_id
        self._generation += 1
        if user is None or switched:
            logger.debug("Identity changed; clearing {} cached task(s)", len(self.cache))
            self.cache.clear()
            self._issued_seq.clear()
            self._applied_seq.clear()
            self._confirmed.clear()
            self._pending.clear()
            self.error = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _operation(self) -> Iterator[None]:
        self.loading = True
        self.error = None
        try:
            yield
        finally:
            self.loading = False

    def _fail(self, exc: TaskServiceError, default: str, generation: int) -> OperationResult[Any]:
        dropped = self._superseded(generation)
        if dropped is not None:
            return dropped
        message = exc.message or default
        self.error = message
        logger.warning("{} ({})", message, exc.kind.value)
        return OperationResult.failed(exc.kind, message)

    def _invalid(self, errors: list[str]) -> OperationResult[Any]:
        message = " ".join(errors)
        self.error = message
        return OperationResult.failed(FailureKind.VALIDATION, message)

    def _superseded(self, generation: int) -> Optional[OperationResult[Any]]:
        if generation == self._generation:
            return None
        logger.debug("Dropping a response that resolved after the session changed")
        return OperationResult.failed(FailureKind.UNAUTHENTICATED, "Session changed before the response arrived.")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def fetch_tasks(self) -> OperationResult[list[Task]]:
        """Load every task into the cache.  No identity clears the cache instead."""
        if not self._session.is_authenticated:
            self.cache.clear()
            return OperationResult.success([])

        generation = self._generation
        with self._operation():
            try:
                tasks = await self._service.list_tasks()
            except TaskServiceError as exc:
                return self._fail(exc, "Failed to fetch tasks.", generation)
            dropped = self._superseded(generation)
            if dropped is not None:
                return dropped
            self.cache.replace_all(tasks)
            logger.debug("Loaded {} task(s)", len(self.cache))
            return OperationResult.success(self.cache.list())

    async def fetch_task_by_id(self, task_id: str) -> OperationResult[Task]:
        """Fetch one task for a detail view.  The cache is not modified."""
        if not self._session.is_authenticated:
            return OperationResult.failed(FailureKind.UNAUTHENTICATED, "Not authenticated.")
        generation = self._generation
        with self._operation():
            try:
                task = await self._service.get_task(task_id)
            except TaskServiceError as exc:
                return self._fail(exc, "Failed to fetch task.", generation)
            dropped = self._superseded(generation)
            if dropped is not None:
                return dropped
            return OperationResult.success(task)

    async def create_task(self, draft: Mapping[str, Any]) -> OperationResult[Task]:
        errors = validate_changes(draft, creating=True)
        if errors:
            return self._invalid(errors)

        body = to_wire_changes(draft)
        generation = self._generation
        with self._operation():
            try:
                task = await self._service.create_task(body)
            except TaskServiceError as exc:
                return self._fail(exc, "Failed to create task.", generation)
            dropped = self._superseded(generation)
            if dropped is not None:
                return dropped
            self.cache.upsert(task)
            logger.info("Created task {}: {}", task.id, task.title)
            return OperationResult.success(task)

    async def update_task(self, task_id: str, changes: Mapping[str, Any]) -> OperationResult[Task]:
        errors = validate_changes(changes)
        if errors:
            return self._invalid(errors)

        body = to_wire_changes(changes)
        generation = self._generation
        seq = self._issued_seq.get(task_id, 0) + 1
        self._issued_seq[task_id] = seq

        with self._operation():
            snapshot = self.cache.get(task_id)
            if snapshot is not None:
                if not self._pending.get(task_id):
                    self._confirmed[task_id] = snapshot
                self._pending.setdefault(task_id, {})[seq] = body
                self.cache.upsert(snapshot.merged(body))

            try:
                updated = await self._service.update_task(task_id, body)
            except TaskServiceError as exc:
                result = self._fail(exc, "Failed to update task.", generation)
                if self._superseded(generation) is None:
                    await self._recover_failed_update(task_id, seq, result.failure.message)
                return result

            dropped = self._superseded(generation)
            if dropped is not None:
                return dropped
            if self.ordered_updates and seq < self._applied_seq.get(task_id, 0):
                logger.debug("Ignoring stale update #{} for task {}", seq, task_id)
                self._settle(task_id, seq)
                return OperationResult.success(self.cache.get(task_id) or updated)
            self._applied_seq[task_id] = seq
            if task_id in self._confirmed:
                self._confirmed[task_id] = updated
            self._settle(task_id, seq)
            # Deleted while in flight: do not resurrect it.
            if task_id in self.cache:
                self.cache.upsert(updated)
            return OperationResult.success(updated)

    def _settle(self, task_id: str, seq: int) -> None:
        """Forget update *seq*; drop the task's bookkeeping once nothing is in flight."""
        pending = self._pending.get(task_id)
        if pending is None:
            return
        pending.pop(seq, None)
        if not pending:
            del self._pending[task_id]
            self._confirmed.pop(task_id, None)

    async def _recover_failed_update(self, task_id: str, seq: int, message: str) -> None:
        if self.update_failure_policy == "rollback":
            self._roll_back(task_id, seq)
            return

        self._settle(task_id, seq)
        refreshed = await self.fetch_tasks()
        # The re-fetch clears the error slot; keep the update's failure visible
        # unless the re-fetch itself failed.
        if refreshed:
            self.error = message

    def _roll_back(self, task_id: str, failed_seq: int) -> None:
        """Rebuild a task from its last confirmed value plus updates still in flight."""
        confirmed = self._confirmed.get(task_id)
        self._settle(task_id, failed_seq)
        if confirmed is None or task_id not in self.cache:
            return
        floor = self._applied_seq.get(task_id, 0) if self.ordered_updates else 0
        restored = confirmed
        for seq, body in sorted(self._pending.get(task_id, {}).items()):
            if seq > floor:
                restored = restored.merged(body)
        self.cache.upsert(restored)

    async def delete_task(self, task_id: str) -> OperationResult[None]:
        generation = self._generation
        with self._operation():
            try:
                await self._service.delete_task(task_id)
            except TaskServiceError as exc:
                return self._fail(exc, "Failed to delete task.", generation)
            dropped = self._superseded(generation)
            if dropped is not None:
                return dropped
            self.cache.remove(task_id)
            self._issued_seq.pop(task_id, None)
            self._applied_seq.pop(task_id, None)
            self._confirmed.pop(task_id, None)
            self._pending.pop(task_id, None)
            logger.info("Deleted task {}", task_id)
            return OperationResult.success(None)

    async def add_comment(self, task_id: str, content: str) -> OperationResult[Comment]:
        if not content or not content.strip():
            return self._invalid(["Comment cannot be empty."])

        generation = self._generation
        with self._operation():
            try:
                comment = await self._service.add_comment(task_id, content)
            except TaskServiceError as exc:
                return self._fail(exc, "Failed to add comment.", generation)
            dropped = self._superseded(generation)
            if dropped is not None:
                return dropped
            self.cache.patch_comments(task_id, comment)
            return OperationResult.success(comment)
