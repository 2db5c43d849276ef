"""Board projection and drag-and-drop status transitions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from loguru import logger

from .cache import TaskCache
from .coordinator import MutationCoordinator
from .errors import OperationResult
from .model import Task, TaskStatus

STATUS_COLUMNS: tuple[TaskStatus, ...] = tuple(TaskStatus)


def group_by_status(tasks: Iterable[Task]) -> dict[TaskStatus, list[Task]]:
    """Return tasks grouped by status column for the Kanban board.

    Every known column is present (possibly empty), in column order, and the
    relative order of *tasks* is kept within each column.
    """
    board: dict[TaskStatus, list[Task]] = {status: [] for status in STATUS_COLUMNS}
    for task in tasks:
        board[TaskStatus.coerce(task.status)].append(task)
    return board


def column_counts(board: Mapping[TaskStatus, list[Task]]) -> dict[TaskStatus, int]:
    return {status: len(board.get(status, [])) for status in STATUS_COLUMNS}


# ---------------------------------------------------------------------------
# Drag gestures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DragResult:
    """Outcome of a drag gesture: which task, from which column, to which.

    ``destination`` is ``None`` when the card was dropped outside any column.
    """

    task_id: str
    source: Optional[str]
    destination: Optional[str]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DragResult":
        """Decode a drag-and-drop library result.

        Accepts ``{"draggableId", "source": {"droppableId"}, "destination": {...} | None}``.
        """
        def _column(key: str) -> Optional[str]:
            raw = data.get(key)
            if isinstance(raw, Mapping):
                raw = raw.get("droppableId")
            return str(raw) if raw is not None else None

        return cls(
            task_id=str(data.get("draggableId", "")),
            source=_column("source"),
            destination=_column("destination"),
        )


class DragTransitionHandler:
    """Turn a drag gesture into (at most) one status update."""

    def __init__(self, cache: TaskCache, coordinator: MutationCoordinator) -> None:
        self._cache = cache
        self._coordinator = coordinator

    async def on_drag_end(self, result: DragResult) -> Optional[OperationResult[Task]]:
        """Issue a status update for *result*; returns ``None`` when nothing changed."""
        if result.destination is None or result.source == result.destination:
            return None

        try:
            target = TaskStatus(result.destination)
        except ValueError:
            logger.warning("Dropped task {} on unknown column {!r}", result.task_id, result.destination)
            return None

        task = self._cache.get(result.task_id)
        if task is None:
            # Stale snapshot; the next render shows the real state.
            logger.debug("Dragged task {} is no longer cached", result.task_id)
            return None
        if task.status == target:
            return None

        return await self._coordinator.update_task(task.id, {"status": target.value})
