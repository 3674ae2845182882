"""Identity provider adapter and user profile documents.

The core never parses provider tokens; it only consumes the Principal an
adapter hands back.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from promptteams.core.collections import USERS
from promptteams.core.errors import InvalidArgument, Unauthenticated
from promptteams.core.models import Principal, UserProfile
from promptteams.core.store.base import DocumentStore

logger = logging.getLogger("promptteams.identity")

AuthCallback = Callable[[Optional[Principal]], None]


class IdentityProvider(ABC):
    """Supplies the acting principal to every component."""

    @abstractmethod
    def authenticate(self) -> Principal:
        """Return the signed-in principal or raise Unauthenticated."""

    @abstractmethod
    def on_auth_change(self, callback: AuthCallback) -> Callable[[], None]:
        """Register a sign-in/sign-out listener. Returns an unsubscribe function."""


class StaticIdentityProvider(IdentityProvider):
    """In-process provider: whoever was last signed in is the principal."""

    def __init__(self, principal: Optional[Principal] = None) -> None:
        self._lock = threading.Lock()
        self._principal = principal
        self._listeners: List[AuthCallback] = []

    def authenticate(self) -> Principal:
        with self._lock:
            principal = self._principal
        if principal is None:
            raise Unauthenticated("No principal is signed in")
        return principal

    def on_auth_change(self, callback: AuthCallback) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(callback)
            current = self._principal
        callback(current)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def sign_in(self, principal: Principal) -> None:
        self._set(principal)

    def sign_out(self) -> None:
        self._set(None)

    def _set(self, principal: Optional[Principal]) -> None:
        with self._lock:
            self._principal = principal
            listeners = list(self._listeners)
        for callback in listeners:
            callback(principal)


def normalize_email(email: str) -> str:
    """Trim and lower-case an address, then check it looks like local@domain."""
    normalized = (email or "").strip().lower()
    local, sep, domain = normalized.partition("@")
    if (
        not sep
        or not local
        or not domain
        or "@" in domain
        or any(c.isspace() for c in normalized)
        or domain.startswith(".")
        or domain.endswith(".")
    ):
        raise InvalidArgument(f"Invalid email address: {email!r}")
    return normalized


async def upsert_profile(store: DocumentStore, principal: Principal) -> UserProfile:
    """Merge the principal's profile doc; called on every sign-in."""
    await store.set(
        USERS,
        principal.id,
        {
            "email": principal.email.strip().lower(),
            "display_name": principal.display_name or None,
            "last_seen": store.server_timestamp(),
        },
        merge=True,
    )
    snap = await store.get(USERS, principal.id)
    logger.debug("profile upserted for %s", principal.id)
    return UserProfile.from_dict(principal.id, snap.data)
