"""Authenticated identity for the current session."""

from __future__ import annotations

from typing import Callable, Optional

from loguru import logger

from .client import AuthService
from .errors import FailureKind, OperationResult, TaskServiceError
from .model import UserRef

IdentityListener = Callable[[Optional[UserRef]], None]


class SessionState:
    """Holds the current user and bearer token and announces changes.

    Listeners are called with the new identity (``None`` after logout) on
    every transition: login, register, restore and logout.
    """

    def __init__(self, auth: Optional[AuthService] = None) -> None:
        self._auth = auth
        self.user: Optional[UserRef] = None
        self.token: Optional[str] = None
        self._listeners: list[IdentityListener] = []

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and bool(self.token)

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> OperationResult[UserRef]:
        if not email.strip() or not password:
            return OperationResult.failed(FailureKind.VALIDATION, "Email and password are required.")
        if self._auth is None:
            return OperationResult.failed(FailureKind.TRANSPORT, "No auth service configured.")
        try:
            token, user = await self._auth.login(email, password)
        except TaskServiceError as exc:
            message = exc.message or "Login failed."
            logger.warning("Login failed for {}: {}", email, message)
            return OperationResult.failed(exc.kind, message)
        self._set(user, token)
        return OperationResult.success(user)

    async def register(self, username: str, email: str, password: str) -> OperationResult[UserRef]:
        if not username.strip() or not email.strip() or not password:
            return OperationResult.failed(FailureKind.VALIDATION, "Username, email and password are required.")
        if self._auth is None:
            return OperationResult.failed(FailureKind.TRANSPORT, "No auth service configured.")
        try:
            token, user = await self._auth.register(username, email, password)
        except TaskServiceError as exc:
            message = exc.message or "Registration failed."
            logger.warning("Registration failed for {}: {}", email, message)
            return OperationResult.failed(exc.kind, message)
        self._set(user, token)
        return OperationResult.success(user)

    def restore(self, token: str, user: UserRef) -> None:
        """Adopt a credential obtained earlier (e.g. passed on the command line)."""
        self._set(user, token)

    def logout(self) -> None:
        if self.user is None and self.token is None:
            return
        self._set(None, None)

    def _set(self, user: Optional[UserRef], token: Optional[str]) -> None:
        self.user = user
        self.token = token
        if user is None:
            logger.info("Session ended")
        else:
            logger.info("Session started for {}", user.username or user.id)
        for listener in list(self._listeners):
            try:
                listener(user)
            except Exception:
                logger.exception("Identity listener {!r} failed", listener)
