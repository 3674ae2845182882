"""Core services. Everything that touches the store is async."""

from promptteams.core.errors import (
    ConflictRetryExhausted,
    DuplicateInvitation,
    InvalidArgument,
    InvalidOperation,
    NotFound,
    PermissionDenied,
    PromptTeamsError,
    StoreUnavailable,
    Unauthenticated,
)
from promptteams.core.models import InvitationStatus, Principal, Role
from promptteams.core.service import PromptTeams

__all__ = [
    "ConflictRetryExhausted",
    "DuplicateInvitation",
    "InvalidArgument",
    "InvalidOperation",
    "InvitationStatus",
    "NotFound",
    "PermissionDenied",
    "Principal",
    "PromptTeams",
    "PromptTeamsError",
    "Role",
    "StoreUnavailable",
    "Unauthenticated",
]
