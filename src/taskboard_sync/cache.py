"""In-memory task cache: the single source of truth for the board.

Only the mutation coordinator writes to it.  Every operation is synchronous
and performs no I/O; listeners are notified after each mutation so a view can
re-render.
"""

from __future__ import annotations

import dataclasses
from typing import Callable, Iterable, Optional

from loguru import logger

from .model import Comment, Task

CacheListener = Callable[["TaskCache"], None]


class TaskCache:
    """Ordered collection of tasks with at most one entry per id."""

    def __init__(self) -> None:
        self._tasks: list[Task] = []
        self._index: dict[str, int] = {}
        self._listeners: list[CacheListener] = []
        self.version = 0

    # -- lookups ------------------------------------------------------------

    def list(self) -> list[Task]:
        """Snapshot in cache order.  The list is a copy; tasks are immutable."""
        return list(self._tasks)

    def get(self, task_id: str) -> Optional[Task]:
        idx = self._index.get(task_id)
        return self._tasks[idx] if idx is not None else None

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._index

    # -- mutations ----------------------------------------------------------

    def replace_all(self, tasks: Iterable[Task]) -> None:
        """Swap in a fresh collection.

        A duplicated id keeps the position of its first occurrence and the
        value of its last.
        """
        ordered: list[Task] = []
        index: dict[str, int] = {}
        for task in tasks:
            pos = index.get(task.id)
            if pos is None:
                index[task.id] = len(ordered)
                ordered.append(task)
            else:
                logger.warning("Duplicate task id {} in list response; keeping the last copy", task.id)
                ordered[pos] = task
        self._tasks = ordered
        self._index = index
        self._changed()

    def upsert(self, task: Task) -> None:
        """Replace the task with the same id in place, or append it.

        Comments already cached survive when *task* was decoded from a payload
        without a ``comments`` field.
        """
        idx = self._index.get(task.id)
        if idx is None:
            self._index[task.id] = len(self._tasks)
            self._tasks.append(task)
        else:
            existing = self._tasks[idx]
            if not task.comments_loaded and existing.comments_loaded:
                task = dataclasses.replace(task, comments=existing.comments, comments_loaded=True)
            self._tasks[idx] = task
        self._changed()

    def remove(self, task_id: str) -> bool:
        idx = self._index.pop(task_id, None)
        if idx is None:
            return False
        self._tasks.pop(idx)
        self._index = {t.id: i for i, t in enumerate(self._tasks)}
        self._changed()
        return True

    def patch_comments(self, task_id: str, comment: Comment) -> bool:
        """Append *comment* to a cached task.  Returns False if the task is gone."""
        idx = self._index.get(task_id)
        if idx is None:
            return False
        task = self._tasks[idx]
        if comment.id and any(c.id == comment.id for c in task.comments):
            return True
        self._tasks[idx] = dataclasses.replace(
            task,
            comments=task.comments + (comment,),
            comments_loaded=True,
        )
        self._changed()
        return True

    def clear(self) -> None:
        if not self._tasks:
            return
        self._tasks = []
        self._index = {}
        self._changed()

    # -- change notification ------------------------------------------------

    def subscribe(self, listener: CacheListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _changed(self) -> None:
        self.version += 1
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Task cache listener {!r} failed", listener)
