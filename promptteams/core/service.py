"""PromptTeams: one entry point wiring store, identity, mailer and services.

Every call acts as the principal the identity provider currently reports.
Operations that are safe to replay are retried on StoreUnavailable with
exponential backoff; the rest surface the failure to the caller on the first
raise.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from promptteams.core import permissions
from promptteams.core.activity import ActivityLog
from promptteams.core.collections import fetch_team
from promptteams.core.comments import CommentService
from promptteams.core.favorites import FavoriteService
from promptteams.core.identity import IdentityProvider, StaticIdentityProvider, upsert_profile
from promptteams.core.invitations import InvitationResult, InvitationService
from promptteams.core.mailer import InvitationMailer, build_mailer
from promptteams.core.models import (
    Activity,
    Comment,
    Favorite,
    Invitation,
    MemberInfo,
    Principal,
    Prompt,
    PromptStats,
    Role,
    Team,
    UserProfile,
)
from promptteams.core.permissions import Action
from promptteams.core.prompts import PromptService
from promptteams.core.ratings import WELL_KNOWN_COUNTERS, RatingService
from promptteams.core.retry import retry_unavailable
from promptteams.core.settings import Settings, load_settings
from promptteams.core.store.base import DocumentStore
from promptteams.core.store.memory import InMemoryDocumentStore
from promptteams.core.teams import TeamService, TeardownReport

logger = logging.getLogger("promptteams.service")

T = TypeVar("T")


class PromptTeams:
    """Facade over the team, invitation, prompt and rating services."""

    def __init__(
        self,
        store: DocumentStore,
        identity: IdentityProvider,
        settings: Optional[Settings] = None,
        mailer: Optional[InvitationMailer] = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.store = store
        self.identity = identity
        self.mailer = mailer or build_mailer(self.settings)
        self.activity = ActivityLog(store)
        self.teams = TeamService(store, self.settings, self.activity)
        self.invitations = InvitationService(store, self.settings, self.mailer, self.activity)
        self.prompts = PromptService(store, self.activity)
        self.ratings = RatingService(store, self.settings, self.activity)
        self.comments = CommentService(store)
        self.favorites = FavoriteService(store)

    @classmethod
    def in_memory(
        cls,
        settings: Optional[Settings] = None,
        mailer: Optional[InvitationMailer] = None,
        latency: float = 0.0,
    ) -> "PromptTeams":
        """Build on the in-memory store, persisted to ``settings.store_path`` if set."""
        settings = settings or load_settings()
        store = InMemoryDocumentStore(latency=latency)
        if settings.store_path:
            store.configure(settings.store_path)
        return cls(store, StaticIdentityProvider(), settings=settings, mailer=mailer)

    # ── Identity ────────────────────────────────────────────────

    @property
    def principal(self) -> Principal:
        return self.identity.authenticate()

    async def sign_in(self, principal: Principal) -> UserProfile:
        """Switch the acting principal (static provider only) and upsert their profile."""
        if not isinstance(self.identity, StaticIdentityProvider):
            raise TypeError("sign_in requires a StaticIdentityProvider")
        self.identity.sign_in(principal)
        return await self.sync_profile()

    async def sync_profile(self) -> UserProfile:
        principal = self.principal
        return await self._retry(lambda: upsert_profile(self.store, principal), "sync_profile")

    async def _retry(self, fn: Callable[[], Awaitable[T]], op: str) -> T:
        return await retry_unavailable(
            fn,
            attempts=self.settings.retry_attempts,
            backoff_base=self.settings.retry_backoff_base,
            op=op,
        )

    # ── Teams ───────────────────────────────────────────────────

    async def create_team(self, name: str) -> Team:
        return await self.teams.create_team(self.principal, name)

    async def get_team(self, team_id: str) -> Team:
        actor = self.principal
        return await self._retry(lambda: self.teams.get_team(actor, team_id), "get_team")

    async def list_teams(self) -> List[Team]:
        actor = self.principal
        return await self._retry(lambda: self.teams.list_teams(actor), "list_teams")

    async def list_members(self, team_id: str) -> List[MemberInfo]:
        actor = self.principal
        return await self._retry(lambda: self.teams.list_members(actor, team_id), "list_members")

    async def change_role(self, team_id: str, target_id: str, new_role: Any) -> Team:
        actor = self.principal
        return await self._retry(
            lambda: self.teams.change_role(actor, team_id, target_id, new_role), "change_role"
        )

    async def remove_member(self, team_id: str, target_id: str) -> Team:
        actor = self.principal
        return await self._retry(
            lambda: self.teams.remove_member(actor, team_id, target_id), "remove_member"
        )

    async def delete_team(self, team_id: str) -> TeardownReport:
        return await self.teams.delete_team(self.principal, team_id)

    # ── Invitations ─────────────────────────────────────────────

    async def create_invitation(
        self, team_id: str, email: str, role: Any = Role.MEMBER
    ) -> InvitationResult:
        return await self.invitations.create_invitation(self.principal, team_id, email, role)

    async def list_pending_invitations(self) -> List[Invitation]:
        email = self.principal.email
        return await self._retry(
            lambda: self.invitations.list_pending_invitations(email), "list_pending_invitations"
        )

    async def list_team_invitations(self, team_id: str) -> List[Invitation]:
        actor = self.principal
        return await self._retry(
            lambda: self.invitations.list_team_invitations(actor, team_id), "list_team_invitations"
        )

    async def accept_invitation(self, invitation_id: str) -> Invitation:
        actor = self.principal
        return await self._retry(
            lambda: self.invitations.accept_invitation(actor, invitation_id), "accept_invitation"
        )

    async def reject_invitation(self, invitation_id: str) -> Invitation:
        actor = self.principal
        return await self._retry(
            lambda: self.invitations.reject_invitation(actor, invitation_id), "reject_invitation"
        )

    async def cancel_invitation(self, team_id: str, invitation_id: str) -> None:
        await self.invitations.cancel_invitation(self.principal, team_id, invitation_id)

    # ── Prompts ─────────────────────────────────────────────────

    async def create_prompt(
        self, team_id: str, title: str, text: str, tags: Optional[List[str]] = None
    ) -> Prompt:
        return await self.prompts.create_prompt(self.principal, team_id, title, text, tags)

    async def get_prompt(self, prompt_id: str) -> Prompt:
        actor = self.principal
        return await self._retry(lambda: self.prompts.get_prompt(actor, prompt_id), "get_prompt")

    async def list_prompts(self, team_id: str) -> List[Prompt]:
        actor = self.principal
        return await self._retry(lambda: self.prompts.list_prompts(actor, team_id), "list_prompts")

    async def update_prompt(self, prompt_id: str, **changes: Any) -> Prompt:
        actor = self.principal
        return await self._retry(
            lambda: self.prompts.update_prompt(actor, prompt_id, **changes), "update_prompt"
        )

    async def delete_prompt(self, prompt_id: str) -> None:
        await self.prompts.delete_prompt(self.principal, prompt_id)

    # ── Ratings & usage ─────────────────────────────────────────

    async def submit_rating(self, prompt_id: str, value: Any) -> PromptStats:
        actor = self.principal
        return await self._retry(
            lambda: self.ratings.submit_rating(actor, prompt_id, value), "submit_rating"
        )

    async def remove_rating(self, prompt_id: str) -> PromptStats:
        actor = self.principal
        return await self._retry(
            lambda: self.ratings.remove_rating(actor, prompt_id), "remove_rating"
        )

    async def get_user_rating(self, prompt_id: str) -> Optional[int]:
        actor = self.principal
        return await self._retry(
            lambda: self.ratings.get_user_rating(actor, prompt_id), "get_user_rating"
        )

    async def increment_usage_counter(self, prompt_id: str, counter_name: str, amount: int = 1) -> None:
        """Not retried: a replayed increment would count twice."""
        if counter_name not in WELL_KNOWN_COUNTERS:
            logger.debug("custom usage counter %r on %s", counter_name, prompt_id)
        await self.ratings.increment_usage_counter(prompt_id, counter_name, amount)

    async def recompute_stats(self, prompt_id: str) -> PromptStats:
        actor = self.principal
        return await self._retry(
            lambda: self.ratings.recompute_stats(actor, prompt_id), "recompute_stats"
        )

    # ── Comments ────────────────────────────────────────────────

    async def add_comment(self, prompt_id: str, text: str, parent_id: Optional[str] = None) -> Comment:
        return await self.comments.add_comment(self.principal, prompt_id, text, parent_id)

    async def edit_comment(self, comment_id: str, text: str) -> Comment:
        actor = self.principal
        return await self._retry(
            lambda: self.comments.edit_comment(actor, comment_id, text), "edit_comment"
        )

    async def delete_comment(self, comment_id: str) -> int:
        return await self.comments.delete_comment(self.principal, comment_id)

    async def list_comments(self, prompt_id: str) -> List[Comment]:
        actor = self.principal
        return await self._retry(
            lambda: self.comments.list_comments(actor, prompt_id), "list_comments"
        )

    # ── Favorites ───────────────────────────────────────────────

    async def add_favorite(self, prompt_id: str) -> Favorite:
        actor = self.principal
        return await self._retry(lambda: self.favorites.add_favorite(actor, prompt_id), "add_favorite")

    async def remove_favorite(self, prompt_id: str) -> None:
        actor = self.principal
        await self._retry(lambda: self.favorites.remove_favorite(actor, prompt_id), "remove_favorite")

    async def toggle_favorite(self, prompt_id: str) -> bool:
        return await self.favorites.toggle_favorite(self.principal, prompt_id)

    async def is_favorite(self, prompt_id: str) -> bool:
        actor = self.principal
        return await self._retry(lambda: self.favorites.is_favorite(actor, prompt_id), "is_favorite")

    async def list_favorites(self) -> List[Favorite]:
        actor = self.principal
        return await self._retry(lambda: self.favorites.list_favorites(actor), "list_favorites")

    # ── Activity ────────────────────────────────────────────────

    async def list_activities(self, team_id: str, limit: int = 50) -> List[Activity]:
        """Newest first; members only."""
        actor = self.principal

        async def fetch() -> List[Activity]:
            team = await fetch_team(self.store, team_id)
            permissions.require(actor.id, team.role_of(actor.id), Action.READ_TEAM)
            return await self.activity.recent(team_id, limit=limit)

        return await self._retry(fetch, "list_activities")
