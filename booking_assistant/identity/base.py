"""Abstract identity provider with auth-state observation.

An identity provider holds the currently signed-in user for one client
context (a terminal session, a test, ...) and notifies registered
observers when that identity changes.

    unsubscribe = provider.observe_auth_state(on_change)
    ...
    unsubscribe()   # always call on teardown

Observers receive the current identity once on registration, and then at
most once per actual identity change.  Refreshing the same user's tokens
is not a change.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

log = logging.getLogger("booking_assistant.identity")

# Error codes that mean "bad credentials" rather than "provider unavailable"
CREDENTIAL_ERROR_CODES = {
    "EMAIL_EXISTS",
    "EMAIL_NOT_FOUND",
    "INVALID_EMAIL",
    "INVALID_PASSWORD",
    "INVALID_LOGIN_CREDENTIALS",
    "INVALID_ID_TOKEN",
    "INVALID_IDP_RESPONSE",
    "MISSING_PASSWORD",
    "TOKEN_EXPIRED",
    "USER_DISABLED",
    "USER_NOT_FOUND",
    "WEAK_PASSWORD",
}


@dataclass
class IdentityUser:
    """An authenticated user as reported by the identity provider."""

    uid: str
    email: str = ""
    display_name: str = ""
    id_token: str = ""
    refresh_token: str = ""
    provider: str = "password"


class IdentityError(Exception):
    """The identity provider rejected or failed a request."""

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.code = code

    @property
    def is_credential_error(self) -> bool:
        return self.code in CREDENTIAL_ERROR_CODES


AuthStateCallback = Callable[[Optional[IdentityUser]], None]


class IdentityProvider(ABC):
    """Abstract identity backend.

    Subclasses implement the network operations and call
    ``_set_current_user`` whenever a sign-in or sign-out succeeds.
    """

    def __init__(self) -> None:
        self._current_user: Optional[IdentityUser] = None
        self._observers: list[AuthStateCallback] = []

    @property
    def current_user(self) -> Optional[IdentityUser]:
        return self._current_user

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def observe_auth_state(self, callback: AuthStateCallback) -> Callable[[], None]:
        """Register ``callback`` and return a function that deregisters it."""
        self._observers.append(callback)
        log.debug("Auth observer added (total: %d)", len(self._observers))
        callback(self._current_user)

        def unsubscribe() -> None:
            try:
                self._observers.remove(callback)
            except ValueError:
                return
            log.debug("Auth observer removed (total: %d)", len(self._observers))

        return unsubscribe

    def _set_current_user(self, user: Optional[IdentityUser]) -> None:
        previous = self._current_user.uid if self._current_user else None
        current = user.uid if user else None
        self._current_user = user
        if previous == current:
            return

        log.info("Auth state changed: %s -> %s", previous or "-", current or "-")
        for callback in list(self._observers):
            try:
                callback(user)
            except Exception:
                log.exception("Auth state observer raised")

    # ── Provider operations ──────────────────────────────────────

    @abstractmethod
    def fork(self) -> "IdentityProvider":
        """A provider with the same configuration and its own signed-in state."""

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> IdentityUser:
        """Register a new email/password account and sign it in."""

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> IdentityUser:
        """Sign in with email and password."""

    @abstractmethod
    async def sign_in_with_google(self, google_id_token: str) -> IdentityUser:
        """Sign in with a Google ID token obtained by the client."""

    @abstractmethod
    async def lookup(self, id_token: str) -> IdentityUser:
        """Resolve an ID token to its user without changing the current user.

        Raises:
            IdentityError: the token is invalid or expired.
        """

    async def sign_out(self) -> None:
        """Forget the current user."""
        self._set_current_user(None)
