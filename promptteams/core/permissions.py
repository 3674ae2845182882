"""Permission engine: pure role/ownership evaluation. No I/O.

Every mutating operation calls :func:`require` before it writes. A negative
decision is always PermissionDenied; nothing downgrades the requested action.
"""

from __future__ import annotations

import enum
from typing import FrozenSet, Optional

from promptteams.core.errors import InvalidArgument, InvalidOperation, PermissionDenied
from promptteams.core.models import Role


class Action(str, enum.Enum):
    """Actions a principal may request on a team or its prompts."""

    READ_TEAM = "read_team"
    INVITE_MEMBER = "invite_member"
    CHANGE_ROLE = "change_role"
    REMOVE_MEMBER = "remove_member"
    DELETE_TEAM = "delete_team"
    CREATE_RESOURCE = "create_resource"
    EDIT_RESOURCE = "edit_resource"
    DELETE_RESOURCE = "delete_resource"
    RATE_RESOURCE = "rate_resource"
    COMMENT = "comment"


_ANY_MEMBER: FrozenSet[Role] = frozenset({Role.OWNER, Role.ADMIN, Role.MEMBER})
_MANAGERS: FrozenSet[Role] = frozenset({Role.OWNER, Role.ADMIN})
_OWNER_ONLY: FrozenSet[Role] = frozenset({Role.OWNER})

# ── Permission matrix ────────────────────────────────────────────────

_ROLE_GRANTS: dict[Action, FrozenSet[Role]] = {
    Action.READ_TEAM: _ANY_MEMBER,
    Action.CREATE_RESOURCE: _ANY_MEMBER,
    Action.RATE_RESOURCE: _ANY_MEMBER,
    Action.COMMENT: _ANY_MEMBER,
    Action.EDIT_RESOURCE: _MANAGERS,
    Action.DELETE_RESOURCE: _MANAGERS,
    Action.INVITE_MEMBER: _MANAGERS,
    Action.REMOVE_MEMBER: _MANAGERS,
    Action.CHANGE_ROLE: _OWNER_ONLY,
    Action.DELETE_TEAM: _OWNER_ONLY,
}

# Actions a plain member may still perform on prompts they created
_CREATOR_ACTIONS = frozenset({Action.EDIT_RESOURCE, Action.DELETE_RESOURCE})

# Roles an invitation may grant
INVITABLE_ROLES: FrozenSet[Role] = frozenset({Role.ADMIN, Role.MEMBER})


def evaluate(
    actor_id: str,
    role: Optional[Role],
    action: Action,
    creator_id: Optional[str] = None,
) -> bool:
    """Return True if a principal holding ``role`` may perform ``action``.

    ``role`` is None for non-members, which are denied everything.
    """
    if role is None:
        return False
    if role in _ROLE_GRANTS.get(action, frozenset()):
        return True
    if action in _CREATOR_ACTIONS and role is Role.MEMBER:
        return bool(creator_id) and creator_id == actor_id
    return False


def require(
    actor_id: str,
    role: Optional[Role],
    action: Action,
    creator_id: Optional[str] = None,
) -> None:
    """Raise PermissionDenied if the decision is negative."""
    if not evaluate(actor_id, role, action, creator_id):
        held = role.value if role is not None else "non-member"
        raise PermissionDenied(
            f"Permission required: {action.value} (held role: {held})",
            detail={"action": action.value, "role": held},
        )


def check_member_removal(actor_id: str, owner_id: str, target_id: str) -> None:
    """Structural rules for REMOVE_MEMBER: never the owner, never yourself."""
    if target_id == owner_id:
        raise InvalidOperation("The team owner cannot be removed")
    if target_id == actor_id:
        raise InvalidOperation("You cannot remove yourself from the team")


def check_role_change(owner_id: str, target_id: str, new_role: Role) -> None:
    """Structural rules for CHANGE_ROLE: owner's role is fixed, one owner only."""
    if target_id == owner_id:
        raise InvalidOperation("The owner's role cannot be changed")
    if new_role is Role.OWNER:
        raise InvalidOperation("A team has exactly one owner; ownership cannot be granted")


def check_invitation_role(role: Role) -> None:
    """Invitations grant admin or member, never owner."""
    if role not in INVITABLE_ROLES:
        raise InvalidArgument(
            f"Invitations may grant {sorted(r.value for r in INVITABLE_ROLES)}, not {role.value!r}"
        )
