"""Collection names and typed fetch helpers shared by the core services."""

from __future__ import annotations

from promptteams.core.errors import InvalidArgument, NotFound
from promptteams.core.models import Invitation, Prompt, Team
from promptteams.core.store.base import DocumentStore

TEAMS = "teams"
INVITATIONS = "invitations"
INVITATION_SLOTS = "invitation_slots"
PROMPTS = "prompts"
RATINGS = "ratings"
COMMENTS = "comments"
USERS = "users"


def favorites_of(principal_id: str) -> str:
    return f"{USERS}/{principal_id}/favorites"


def member_path(principal_id: str) -> str:
    """Dotted path of one member's entry in a team document."""
    if not principal_id or "." in principal_id:
        raise InvalidArgument(f"Invalid principal id: {principal_id!r}")
    return f"members.{principal_id}"


async def fetch_team(store: DocumentStore, team_id: str) -> Team:
    """A team that is being torn down reads as missing."""
    snap = await store.get(TEAMS, team_id)
    if not snap.exists or snap.data.get("deleting"):
        raise NotFound(f"Team '{team_id}' not found")
    return Team.from_dict(snap.id, snap.data)


async def team_is_live(store: DocumentStore, team_id: str) -> bool:
    snap = await store.get(TEAMS, team_id)
    return snap.exists and not snap.data.get("deleting")


async def fetch_prompt(store: DocumentStore, prompt_id: str) -> Prompt:
    snap = await store.get(PROMPTS, prompt_id)
    if not snap.exists:
        raise NotFound(f"Prompt '{prompt_id}' not found")
    return Prompt.from_dict(snap.id, snap.data)


async def fetch_invitation(store: DocumentStore, invitation_id: str) -> Invitation:
    snap = await store.get(INVITATIONS, invitation_id)
    if not snap.exists:
        raise NotFound(f"Invitation '{invitation_id}' not found")
    return Invitation.from_dict(snap.id, snap.data)
