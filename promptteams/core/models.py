"""Domain models: Principal, Team, Prompt, Rating, Invitation, Favorite, ...

All models are plain dataclasses with to_dict() for the stored document form
and from_dict() for reading it back. Schema defaults are materialized in
from_dict() only; callers never patch missing fields themselves.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

RATING_VALUES = (1, 2, 3, 4, 5)


class Role(str, enum.Enum):
    """Per-team authorization level."""

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    @classmethod
    def parse(cls, value: Any) -> "Role":
        """Accept a Role or its string value (case-insensitive)."""
        if isinstance(value, Role):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Invalid role: {value!r}. Must be one of {[r.value for r in cls]}"
            ) from None


_ROLE_RANK = {Role.OWNER: 3, Role.ADMIN: 2, Role.MEMBER: 1}


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not InvitationStatus.PENDING


@dataclass(frozen=True)
class Principal:
    """An authenticated actor, as supplied by the identity provider."""

    id: str
    display_name: str
    email: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "display_name": self.display_name, "email": self.email}


@dataclass
class Team:
    """A tenancy boundary: owner, members and their roles."""

    id: str
    name: str
    owner_id: str
    members: Dict[str, Role] = field(default_factory=dict)
    created_at: Optional[str] = None
    # set by delete_team before teardown starts; a deleting team is treated as gone
    deleting: bool = False

    def role_of(self, principal_id: str) -> Optional[Role]:
        return self.members.get(principal_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "owner_id": self.owner_id,
            "members": {uid: role.value for uid, role in self.members.items()},
            "created_at": self.created_at,
            "deleting": self.deleting,
        }

    @classmethod
    def from_dict(cls, id: str, data: Dict[str, Any]) -> "Team":
        members = {
            uid: Role.parse(role)
            for uid, role in (data.get("members") or {}).items()
            if role is not None
        }
        return cls(
            id=id,
            name=data.get("name", ""),
            owner_id=data.get("owner_id", ""),
            members=members,
            created_at=data.get("created_at"),
            deleting=bool(data.get("deleting", False)),
        )


@dataclass
class PromptStats:
    """Denormalized per-prompt aggregate."""

    rating_histogram: Dict[int, int] = field(
        default_factory=lambda: {v: 0 for v in RATING_VALUES}
    )
    total_ratings: int = 0
    average_rating: float = 0.0
    usage_counters: Dict[str, int] = field(default_factory=dict)
    last_rated: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rating_histogram": {str(v): self.rating_histogram.get(v, 0) for v in RATING_VALUES},
            "total_ratings": self.total_ratings,
            "average_rating": self.average_rating,
            "usage_counters": dict(self.usage_counters),
            "last_rated": self.last_rated,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PromptStats":
        data = data or {}
        raw_hist = data.get("rating_histogram") or {}
        histogram = {v: int(raw_hist.get(str(v), raw_hist.get(v, 0)) or 0) for v in RATING_VALUES}
        return cls(
            rating_histogram=histogram,
            total_ratings=int(data.get("total_ratings") or 0),
            average_rating=float(data.get("average_rating") or 0.0),
            usage_counters={k: int(v) for k, v in (data.get("usage_counters") or {}).items()},
            last_rated=data.get("last_rated"),
        )


@dataclass
class Prompt:
    """A stored prompt owned by a team."""

    id: str
    team_id: str
    creator_id: str
    title: str
    text: str
    tags: List[str] = field(default_factory=list)
    stats: PromptStats = field(default_factory=PromptStats)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "team_id": self.team_id,
            "creator_id": self.creator_id,
            "title": self.title,
            "text": self.text,
            "tags": list(self.tags),
            "stats": self.stats.to_dict(),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, id: str, data: Dict[str, Any]) -> "Prompt":
        return cls(
            id=id,
            team_id=data.get("team_id", ""),
            creator_id=data.get("creator_id", ""),
            title=data.get("title", ""),
            text=data.get("text", ""),
            tags=list(data.get("tags") or []),
            stats=PromptStats.from_dict(data.get("stats")),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


@dataclass
class Rating:
    """One principal's rating of one prompt."""

    resource_id: str
    principal_id: str
    value: int
    updated_at: Optional[str] = None

    @staticmethod
    def doc_id(resource_id: str, principal_id: str) -> str:
        return f"{resource_id}:{principal_id}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource_id": self.resource_id,
            "principal_id": self.principal_id,
            "value": self.value,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Rating":
        return cls(
            resource_id=data["resource_id"],
            principal_id=data["principal_id"],
            value=int(data["value"]),
            updated_at=data.get("updated_at"),
        )


@dataclass
class Invitation:
    """A pending (or answered) grant of team membership addressed to an email."""

    id: str
    team_id: str
    team_name: str
    email: str
    role: Role
    invited_by: str
    invited_by_name: Optional[str] = None
    created_at: Optional[str] = None
    status: InvitationStatus = InvitationStatus.PENDING
    accepted_by: Optional[str] = None
    accepted_at: Optional[str] = None
    responded_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "team_id": self.team_id,
            "team_name": self.team_name,
            "email": self.email,
            "role": self.role.value,
            "invited_by": self.invited_by,
            "invited_by_name": self.invited_by_name,
            "created_at": self.created_at,
            "status": self.status.value,
            "accepted_by": self.accepted_by,
            "accepted_at": self.accepted_at,
            "responded_at": self.responded_at,
        }

    @classmethod
    def from_dict(cls, id: str, data: Dict[str, Any]) -> "Invitation":
        return cls(
            id=id,
            team_id=data["team_id"],
            team_name=data.get("team_name", ""),
            email=data["email"],
            role=Role.parse(data.get("role", Role.MEMBER.value)),
            invited_by=data.get("invited_by", ""),
            invited_by_name=data.get("invited_by_name"),
            created_at=data.get("created_at"),
            status=InvitationStatus(data.get("status", InvitationStatus.PENDING.value)),
            accepted_by=data.get("accepted_by"),
            accepted_at=data.get("accepted_at"),
            responded_at=data.get("responded_at"),
        )


@dataclass
class Favorite:
    """A principal-owned snapshot of a prompt. Outlives the prompt and team."""

    principal_id: str
    resource_id: str
    team_id: str
    snapshot_title: str
    snapshot_text: str
    snapshot_tags: List[str] = field(default_factory=list)
    team_name: str = ""
    original_author: Optional[str] = None
    added_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "principal_id": self.principal_id,
            "resource_id": self.resource_id,
            "team_id": self.team_id,
            "team_name": self.team_name,
            "snapshot_title": self.snapshot_title,
            "snapshot_text": self.snapshot_text,
            "snapshot_tags": list(self.snapshot_tags),
            "original_author": self.original_author,
            "added_at": self.added_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Favorite":
        return cls(
            principal_id=data["principal_id"],
            resource_id=data["resource_id"],
            team_id=data.get("team_id", ""),
            team_name=data.get("team_name") or "Unknown Team",
            snapshot_title=data.get("snapshot_title") or "Untitled Prompt",
            snapshot_text=data.get("snapshot_text", ""),
            snapshot_tags=list(data.get("snapshot_tags") or []),
            original_author=data.get("original_author"),
            added_at=data.get("added_at"),
        )


@dataclass
class Comment:
    """A threaded comment on a prompt."""

    id: str
    resource_id: str
    team_id: str
    text: str
    created_by: str
    parent_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource_id": self.resource_id,
            "team_id": self.team_id,
            "text": self.text,
            "created_by": self.created_by,
            "parent_id": self.parent_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, id: str, data: Dict[str, Any]) -> "Comment":
        return cls(
            id=id,
            resource_id=data["resource_id"],
            team_id=data.get("team_id", ""),
            text=data.get("text", ""),
            created_by=data.get("created_by", ""),
            parent_id=data.get("parent_id"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


class ActivityType(str, enum.Enum):
    PROMPT_CREATED = "prompt_created"
    PROMPT_UPDATED = "prompt_updated"
    PROMPT_DELETED = "prompt_deleted"
    PROMPT_RATED = "prompt_rated"
    MEMBER_JOINED = "member_joined"
    MEMBER_REMOVED = "member_removed"
    ROLE_CHANGED = "role_changed"


@dataclass
class Activity:
    """An entry in a team's activity feed."""

    id: str
    team_id: str
    type: ActivityType
    actor_id: str
    resource_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "team_id": self.team_id,
            "type": self.type.value,
            "actor_id": self.actor_id,
            "resource_id": self.resource_id,
            "metadata": dict(self.metadata),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, id: str, data: Dict[str, Any]) -> "Activity":
        return cls(
            id=id,
            team_id=data["team_id"],
            type=ActivityType(data["type"]),
            actor_id=data.get("actor_id", ""),
            resource_id=data.get("resource_id"),
            metadata=dict(data.get("metadata") or {}),
            created_at=data.get("created_at"),
        )


@dataclass
class UserProfile:
    """Profile doc written on sign-in; used to render member lists."""

    id: str
    email: str
    display_name: Optional[str] = None
    last_seen: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "display_name": self.display_name,
            "last_seen": self.last_seen,
        }

    @classmethod
    def from_dict(cls, id: str, data: Dict[str, Any]) -> "UserProfile":
        return cls(
            id=id,
            email=data.get("email", ""),
            display_name=data.get("display_name"),
            last_seen=data.get("last_seen"),
        )


@dataclass
class MemberInfo:
    """A team member joined with their profile."""

    principal_id: str
    role: Role
    email: Optional[str] = None
    display_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "principal_id": self.principal_id,
            "role": self.role.value,
            "email": self.email,
            "display_name": self.display_name,
        }
