"""Structured exceptions for the Prompt Teams core.

Every failure the core reports follows one taxonomy. Each exception carries a
stable ``code`` and renders the normalized error envelope:

    {"error": {"type": "<CODE>", "message": "<human readable>"}}

Stable codes:
    PERMISSION_DENIED, INVALID_ARGUMENT, NOT_FOUND, DUPLICATE_INVITATION,
    INVALID_OPERATION, CONFLICT_RETRY_EXHAUSTED, STORE_UNAVAILABLE,
    UNAUTHENTICATED
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PromptTeamsError(Exception):
    """Base exception for all core errors."""

    code = "INTERNAL_ERROR"
    retryable = False

    def __init__(self, message: str, detail: Any = None) -> None:
        self.message = message
        self.detail = detail
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Build the standard error envelope dict."""
        envelope: Dict[str, Any] = {"type": self.code, "message": self.message}
        if self.detail is not None:
            envelope["detail"] = self.detail
        return {"error": envelope}


class PermissionDenied(PromptTeamsError):
    """Actor lacks the required role or ownership."""

    code = "PERMISSION_DENIED"


class InvalidArgument(PromptTeamsError):
    """Malformed input: bad email, out-of-range rating, blank name."""

    code = "INVALID_ARGUMENT"


class NotFound(PromptTeamsError):
    """Team, invitation or prompt does not exist (or was already deleted)."""

    code = "NOT_FOUND"


class DuplicateInvitation(PromptTeamsError):
    """A pending invitation already exists for this team and email."""

    code = "DUPLICATE_INVITATION"


class InvalidOperation(PromptTeamsError):
    """Structurally disallowed, e.g. removing the owner."""

    code = "INVALID_OPERATION"


class ConflictRetryExhausted(PromptTeamsError):
    """Optimistic-concurrency retries ran out before a write landed."""

    code = "CONFLICT_RETRY_EXHAUSTED"

    def __init__(self, message: str, attempts: int = 0, detail: Any = None) -> None:
        self.attempts = attempts
        super().__init__(message, detail)


class StoreUnavailable(PromptTeamsError):
    """Transient infrastructure failure talking to the document store."""

    code = "STORE_UNAVAILABLE"
    retryable = True


class Unauthenticated(PromptTeamsError):
    """No signed-in principal."""

    code = "UNAUTHENTICATED"


# ── Store-level signals (translated by the core, never surfaced raw) ──


class StoreError(Exception):
    """Base error raised by document store adapters."""


class VersionConflict(StoreError):
    """A version-checked write observed a newer document version."""

    def __init__(self, path: str, expected: Optional[int], actual: Optional[int]) -> None:
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(f"Version conflict on {path}: expected {expected}, found {actual}")


class AlreadyExists(StoreError):
    """Create-if-absent found an existing document."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Document already exists: {path}")


class DocumentMissing(StoreError):
    """A partial update targeted a document that does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Document not found: {path}")
