"""Membership & team lifecycle.

The ``members`` map is the most contended field in the system: invitees join
while owners change roles. It is only ever written one entry at a time
(``members.<uid>``); role changes and removals additionally carry the team
version they were validated against and retry on conflict, so a decision is
never applied to a membership state it did not see.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List

from promptteams.core import permissions
from promptteams.core.activity import ActivityLog
from promptteams.core.collections import TEAMS, USERS, fetch_team, member_path
from promptteams.core.errors import DocumentMissing, InvalidArgument, NotFound
from promptteams.core.invitations import purge_team_invitations
from promptteams.core.models import ActivityType, MemberInfo, Principal, Role, Team
from promptteams.core.permissions import Action
from promptteams.core.prompts import purge_team_prompts
from promptteams.core.retry import cas_loop
from promptteams.core.settings import Settings
from promptteams.core.store.base import DELETE_FIELD, DocumentStore

logger = logging.getLogger("promptteams.teams")


@dataclass
class TeardownReport:
    """What delete_team removed, in the order it removed it."""

    team_id: str
    invitations_cancelled: int = 0
    prompts_deleted: int = 0
    activities_deleted: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "team_id": self.team_id,
            "invitations_cancelled": self.invitations_cancelled,
            "prompts_deleted": self.prompts_deleted,
            "activities_deleted": self.activities_deleted,
        }


def parse_role(value: Any) -> Role:
    try:
        return Role.parse(value)
    except ValueError as e:
        raise InvalidArgument(str(e)) from None


class TeamService:
    """Creates teams and mutates their member-role map."""

    def __init__(self, store: DocumentStore, settings: Settings, activity: ActivityLog) -> None:
        self._store = store
        self._settings = settings
        self._activity = activity

    async def create_team(self, principal: Principal, name: str) -> Team:
        name = (name or "").strip()
        if not name:
            raise InvalidArgument("Team name must not be empty")
        member_path(principal.id)

        team_id = f"team_{uuid.uuid4().hex[:12]}"
        team = Team(id=team_id, name=name, owner_id=principal.id, members={principal.id: Role.OWNER})
        doc = team.to_dict()
        doc["created_at"] = self._store.server_timestamp()
        await self._store.create(TEAMS, team_id, doc)
        logger.info("team created: %s by %s", team_id, principal.id)
        return await fetch_team(self._store, team_id)

    async def get_team(self, actor: Principal, team_id: str) -> Team:
        team = await fetch_team(self._store, team_id)
        permissions.require(actor.id, team.role_of(actor.id), Action.READ_TEAM)
        return team

    async def list_teams(self, principal: Principal) -> List[Team]:
        """Teams the principal belongs to, oldest first."""
        snaps = await self._store.query(
            TEAMS,
            [(member_path(principal.id), "in", [r.value for r in Role])],
            order_by="created_at",
        )
        return [Team.from_dict(s.id, s.data) for s in snaps if not s.data.get("deleting")]

    async def list_members(self, actor: Principal, team_id: str) -> List[MemberInfo]:
        """Members joined with their profiles, owner first, then admins, then members."""
        team = await self.get_team(actor, team_id)
        members = []
        for uid, role in team.members.items():
            profile = await self._store.get(USERS, uid)
            members.append(MemberInfo(
                principal_id=uid,
                role=role,
                email=profile.data.get("email") if profile.exists else None,
                display_name=profile.data.get("display_name") if profile.exists else None,
            ))
        members.sort(key=lambda m: (-m.role.rank, (m.display_name or m.email or m.principal_id).lower()))
        return members

    async def change_role(
        self, actor: Principal, team_id: str, target_id: str, new_role: Any
    ) -> Team:
        role = parse_role(new_role)
        path = member_path(target_id)

        async def attempt() -> None:
            snap = await self._store.get(TEAMS, team_id)
            if not snap.exists or snap.data.get("deleting"):
                raise NotFound(f"Team '{team_id}' not found")
            team = Team.from_dict(snap.id, snap.data)
            permissions.require(actor.id, team.role_of(actor.id), Action.CHANGE_ROLE)
            permissions.check_role_change(team.owner_id, target_id, role)
            if target_id not in team.members:
                raise NotFound(f"'{target_id}' is not a member of team '{team_id}'")
            await self._update(team_id, {path: role.value}, expected_version=snap.version)

        await cas_loop(
            attempt,
            max_attempts=self._settings.conflict_max_attempts,
            backoff_base=self._settings.conflict_backoff_base,
            what=f"team {team_id}",
        )
        await self._activity.record(
            team_id, ActivityType.ROLE_CHANGED, actor.id, target=target_id, role=role.value
        )
        logger.info("role changed: team=%s target=%s role=%s by %s", team_id, target_id, role.value, actor.id)
        return await fetch_team(self._store, team_id)

    async def remove_member(self, actor: Principal, team_id: str, target_id: str) -> Team:
        path = member_path(target_id)

        async def attempt() -> None:
            snap = await self._store.get(TEAMS, team_id)
            if not snap.exists or snap.data.get("deleting"):
                raise NotFound(f"Team '{team_id}' not found")
            team = Team.from_dict(snap.id, snap.data)
            permissions.require(actor.id, team.role_of(actor.id), Action.REMOVE_MEMBER)
            permissions.check_member_removal(actor.id, team.owner_id, target_id)
            if target_id not in team.members:
                raise NotFound(f"'{target_id}' is not a member of team '{team_id}'")
            await self._update(team_id, {path: DELETE_FIELD}, expected_version=snap.version)

        await cas_loop(
            attempt,
            max_attempts=self._settings.conflict_max_attempts,
            backoff_base=self._settings.conflict_backoff_base,
            what=f"team {team_id}",
        )
        await self._activity.record(team_id, ActivityType.MEMBER_REMOVED, actor.id, target=target_id)
        logger.info("member removed: team=%s target=%s by %s", team_id, target_id, actor.id)
        return await fetch_team(self._store, team_id)

    async def delete_team(self, actor: Principal, team_id: str) -> TeardownReport:
        """Owner-only teardown: invitations, then prompts, then the team document.

        The team is first marked ``deleting`` (version-checked), after which
        every service reads it as missing. Writers that passed their team
        check before the mark re-check after writing and clean up; a final
        sweep after the team document is gone catches the rest. A crash
        part-way leaves a marked team its owner can delete again.
        """

        async def mark() -> None:
            snap = await self._store.get(TEAMS, team_id)
            if not snap.exists:
                raise NotFound(f"Team '{team_id}' not found")
            team = Team.from_dict(snap.id, snap.data)
            permissions.require(actor.id, team.role_of(actor.id), Action.DELETE_TEAM)
            if not team.deleting:
                await self._update(team_id, {"deleting": True}, expected_version=snap.version)

        await cas_loop(
            mark,
            max_attempts=self._settings.conflict_max_attempts,
            backoff_base=self._settings.conflict_backoff_base,
            what=f"team {team_id}",
        )

        report = TeardownReport(team_id=team_id)
        report.invitations_cancelled = await purge_team_invitations(self._store, team_id)
        report.prompts_deleted = await purge_team_prompts(self._store, team_id)
        report.activities_deleted = await self._activity.purge_team(team_id)
        await self._store.delete(TEAMS, team_id)

        # writes that raced the mark
        report.invitations_cancelled += await purge_team_invitations(self._store, team_id)
        report.prompts_deleted += await purge_team_prompts(self._store, team_id)
        report.activities_deleted += await self._activity.purge_team(team_id)
        logger.info(
            "team deleted: %s by %s (invitations=%d prompts=%d)",
            team_id, actor.id, report.invitations_cancelled, report.prompts_deleted,
            extra={"event": {"event": "team_deleted", "actor": actor.id, **report.to_dict()}},
        )
        return report

    async def _update(self, team_id: str, updates: Dict[str, Any], expected_version: int) -> None:
        try:
            await self._store.update_paths(TEAMS, team_id, updates, expected_version=expected_version)
        except DocumentMissing:
            raise NotFound(f"Team '{team_id}' not found") from None
