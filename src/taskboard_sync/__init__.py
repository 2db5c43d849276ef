"""Provide the public `taskboard_sync` package exports."""

from __future__ import annotations

from .board import DragResult, DragTransitionHandler, group_by_status
from .cache import TaskCache
from .coordinator import MutationCoordinator
from .engine import SyncSession
from .errors import Failure, FailureKind, OperationResult, TaskServiceError
from .model import Comment, Task, TaskPriority, TaskStatus, UserRef

__all__ = [
    "Comment",
    "DragResult",
    "DragTransitionHandler",
    "Failure",
    "FailureKind",
    "MutationCoordinator",
    "OperationResult",
    "SyncSession",
    "Task",
    "TaskCache",
    "TaskPriority",
    "TaskServiceError",
    "TaskStatus",
    "UserRef",
    "group_by_status",
]
