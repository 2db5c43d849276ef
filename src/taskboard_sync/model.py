"""Task and comment model for the board client.

Tasks arrive from the remote service as JSON documents with camelCase keys
and a document-store ``_id``.  :meth:`Task.from_dict` decodes them leniently
(unknown enum values fall back to defaults) and :meth:`Task.to_dict` produces
the same wire shape back, so a shallow merge of a partial update is simply
``Task.from_dict({**task.to_dict(), **changes})``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Iterable, Mapping, Optional


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TaskStatus(str, Enum):
    """Board column.  Declaration order is the column order."""

    TO_DO = "To-Do"
    IN_PROGRESS = "In Progress"
    BLOCKED = "Blocked"
    COMPLETED = "Completed"

    @classmethod
    def coerce(cls, raw: Any) -> "TaskStatus":
        """Map a wire value to a status; absent or unknown values are To-Do."""
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw))
        except ValueError:
            return cls.TO_DO


class TaskPriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"

    @property
    def sort_key(self) -> int:
        return {"Urgent": 0, "High": 1, "Medium": 2, "Low": 3}[self.value]

    @classmethod
    def coerce(cls, raw: Any) -> "TaskPriority":
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw))
        except ValueError:
            return cls.MEDIUM


# Python-side field names accepted in drafts and partial updates, mapped to
# their wire keys.
_WIRE_KEYS = {
    "due_date": "dueDate",
    "assigned_to": "assignedTo",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}

# Keys the server owns; never sent in a draft or update body.
_SERVER_KEYS = {"_id", "id", "owner", "comments", "createdAt", "updatedAt"}


# ---------------------------------------------------------------------------
# Users and comments
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class UserRef:
    """Reference to a user of the service."""

    id: str
    username: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional["UserRef"]:
        """Decode a bare id or a ``{_id, username, email}`` document."""
        if data is None:
            return None
        if isinstance(data, UserRef):
            return data
        if isinstance(data, Mapping):
            raw_id = data.get("_id", data.get("id"))
            if raw_id is None:
                return None
            return cls(
                id=str(raw_id),
                username=data.get("username"),
                email=data.get("email"),
            )
        return cls(id=str(data))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"_id": self.id}
        if self.username is not None:
            data["username"] = self.username
        if self.email is not None:
            data["email"] = self.email
        return data


@dataclass(frozen=True)
class Comment:
    id: str
    content: str
    author: Optional[UserRef] = None
    created_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Comment":
        # Older servers populate the author under ``user``.
        author = data.get("author", data.get("user"))
        return cls(
            id=str(data.get("_id", data.get("id", ""))),
            content=str(data.get("content", "")),
            author=UserRef.from_dict(author),
            created_at=data.get("createdAt"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"_id": self.id, "content": self.content}
        if self.author is not None:
            data["author"] = self.author.to_dict()
        if self.created_at is not None:
            data["createdAt"] = self.created_at
        return data


def _unique_users(raw: Any) -> tuple[UserRef, ...]:
    """Decode ``assignedTo``; membership matters, so duplicate ids collapse."""
    seen: set[str] = set()
    users: list[UserRef] = []
    for item in list(raw or []):
        user = UserRef.from_dict(item)
        if user is None or user.id in seen:
            continue
        seen.add(user.id)
        users.append(user)
    return tuple(users)


# ---------------------------------------------------------------------------
# Task
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Task:
    """One unit of work as last reported by the server (or optimistically merged).

    Instances are immutable; the cache replaces whole tasks rather than
    editing them, so a snapshot handed to a view never changes underneath it.
    """

    id: str
    title: str = ""
    description: str = ""
    status: TaskStatus = TaskStatus.TO_DO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[str] = None
    owner: Optional[UserRef] = None
    assigned_to: tuple[UserRef, ...] = ()
    comments: tuple[Comment, ...] = ()
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    # False when the payload this task was decoded from had no ``comments``
    # field at all, as opposed to an empty list.
    comments_loaded: bool = field(default=True, compare=False, repr=False)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Task":
        """Deserialize a wire document, coercing enums gracefully."""
        raw_comments = data.get("comments")
        return cls(
            id=str(data.get("_id", data.get("id", ""))),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            status=TaskStatus.coerce(data.get("status")),
            priority=TaskPriority.coerce(data.get("priority")),
            due_date=data.get("dueDate") or None,
            owner=UserRef.from_dict(data.get("owner")),
            assigned_to=_unique_users(data.get("assignedTo")),
            comments=tuple(
                c if isinstance(c, Comment) else Comment.from_dict(c)
                for c in list(raw_comments or [])
            ),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            comments_loaded="comments" in data,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "_id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "dueDate": self.due_date,
            "owner": self.owner.to_dict() if self.owner else None,
            "assignedTo": [u.to_dict() for u in self.assigned_to],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.comments_loaded:
            data["comments"] = [c.to_dict() for c in self.comments]
        return data

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def merged(self, changes: Mapping[str, Any]) -> "Task":
        """Shallow field-by-field overwrite with wire-keyed *changes*."""
        data = self.to_dict()
        data.update({k: v for k, v in changes.items() if k not in ("_id", "id")})
        return Task.from_dict(data)

    @property
    def due_on(self) -> Optional[date]:
        """The due date without its time part, if one is set and parseable."""
        if not self.due_date:
            return None
        try:
            return date.fromisoformat(self.due_date[:10])
        except ValueError:
            return None

    def is_assigned_to(self, user_id: str) -> bool:
        return any(u.id == user_id for u in self.assigned_to)


# ---------------------------------------------------------------------------
# Drafts and partial updates
# ---------------------------------------------------------------------------

def _wire_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UserRef):
        return value.id
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_wire_value(v) for v in value]
    return value


def to_wire_changes(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Normalize a draft or partial update into a request body.

    Accepts Python field names (``due_date``) or wire keys (``dueDate``),
    enum members or raw strings, and drops server-owned keys.
    """
    body: dict[str, Any] = {}
    for key, value in changes.items():
        wire_key = _WIRE_KEYS.get(key, key)
        if wire_key in _SERVER_KEYS:
            continue
        body[wire_key] = _wire_value(value)
    return body


def validate_changes(changes: Mapping[str, Any], *, creating: bool = False) -> list[str]:
    """Client-side checks run before any network call.

    Returns a list of error strings (empty = valid).
    """
    errors: list[str] = []
    body = to_wire_changes(changes)
    if creating:
        if not str(body.get("title") or "").strip():
            errors.append("Title is required.")
    else:
        if not body:
            errors.append("Nothing to update.")
        if "title" in body and not str(body.get("title") or "").strip():
            errors.append("Title cannot be empty.")
    status = body.get("status")
    if status is not None and status not in {s.value for s in TaskStatus}:
        errors.append(f"Unknown status '{status}'.")
    priority = body.get("priority")
    if priority is not None and priority not in {p.value for p in TaskPriority}:
        errors.append(f"Unknown priority '{priority}'.")
    return errors


def tasks_from_payload(payload: Any) -> list[Task]:
    """Decode a list response; accepts a bare array or a ``{"tasks": [...]}`` wrapper."""
    if isinstance(payload, Mapping):
        payload = payload.get("tasks")
    items: Iterable[Any] = payload if isinstance(payload, list) else []
    return [Task.from_dict(item) for item in items if isinstance(item, Mapping)]
