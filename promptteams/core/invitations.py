"""Invitation state machine.

    pending ──accept──▶ accepted   (terminal)
       └─────reject──▶ rejected   (terminal)

Invitations live in one global collection keyed by invitation id and carry
the normalized email, so "my pending invitations" is a single query that
needs no knowledge of teams. At most one pending invitation exists per
(team, email): creation first claims the ``invitation_slots/<team>:<email>``
guard document with create-if-absent, and every exit from pending releases
it.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from promptteams.core import permissions
from promptteams.core.activity import ActivityLog
from promptteams.core.collections import (
    INVITATION_SLOTS,
    INVITATIONS,
    TEAMS,
    USERS,
    fetch_invitation,
    fetch_team,
    member_path,
    team_is_live,
)
from promptteams.core.errors import (
    AlreadyExists,
    DocumentMissing,
    DuplicateInvitation,
    InvalidArgument,
    InvalidOperation,
    NotFound,
    PermissionDenied,
    VersionConflict,
)
from promptteams.core.identity import normalize_email
from promptteams.core.mailer import InvitationEmail, InvitationMailer, MailResult
from promptteams.core.models import ActivityType, Invitation, InvitationStatus, Principal, Role
from promptteams.core.permissions import Action
from promptteams.core.retry import cas_loop
from promptteams.core.secrets import mask_email
from promptteams.core.settings import Settings
from promptteams.core.store.base import DocumentStore

logger = logging.getLogger("promptteams.invitations")

# A slot whose invitation document never appeared is considered abandoned
# (creator crashed between the two writes) after this long.
SLOT_GRACE = timedelta(seconds=30)

_TRANSITIONS: Dict[InvitationStatus, frozenset] = {
    InvitationStatus.PENDING: frozenset({InvitationStatus.ACCEPTED, InvitationStatus.REJECTED}),
    InvitationStatus.ACCEPTED: frozenset(),
    InvitationStatus.REJECTED: frozenset(),
}


def transition(current: InvitationStatus, target: InvitationStatus) -> InvitationStatus:
    """The only place invitation status moves. Terminal states never move."""
    if target not in _TRANSITIONS[current]:
        if current.is_terminal:
            raise InvalidOperation(f"Invitation is already {current.value}")
        raise InvalidOperation(f"Cannot move invitation from {current.value} to {target.value}")
    return target


def slot_id(team_id: str, email: str) -> str:
    return f"{team_id}:{email}"


@dataclass
class InvitationResult:
    """A persisted invitation plus the outcome of its (independent) email."""

    invitation: Invitation
    link: str
    email_sent: bool
    email_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "invitation": {"id": self.invitation.id, **self.invitation.to_dict()},
            "link": self.link,
            "email_sent": self.email_sent,
            "email_error": self.email_error,
        }


def build_invite_link(settings: Settings, invitation: Invitation) -> str:
    query = urlencode({"team": invitation.team_id, "invite": invitation.id})
    return f"{settings.invite_link_base}?{query}"


class InvitationService:
    """Creates, answers and cancels team invitations."""

    def __init__(
        self,
        store: DocumentStore,
        settings: Settings,
        mailer: InvitationMailer,
        activity: ActivityLog,
    ) -> None:
        self._store = store
        self._settings = settings
        self._mailer = mailer
        self._activity = activity

    # ── Create ──────────────────────────────────────────────────

    async def create_invitation(
        self, actor: Principal, team_id: str, email: str, role: Any = Role.MEMBER
    ) -> InvitationResult:
        email = normalize_email(email)
        try:
            role = Role.parse(role)
        except ValueError as e:
            raise InvalidArgument(str(e)) from None

        team = await fetch_team(self._store, team_id)
        permissions.require(actor.id, team.role_of(actor.id), Action.INVITE_MEMBER)
        permissions.check_invitation_role(role)
        await self._reject_existing_member(team.members, email)

        invitation = Invitation(
            id=f"inv_{uuid.uuid4().hex[:16]}",
            team_id=team.id,
            team_name=team.name,
            email=email,
            role=role,
            invited_by=actor.id,
            invited_by_name=actor.display_name or None,
        )
        await self._claim_slot(invitation)
        doc = invitation.to_dict()
        doc["created_at"] = self._store.server_timestamp()
        try:
            await self._store.set(INVITATIONS, invitation.id, doc)
        except Exception:
            await self._release_slot(invitation)
            raise
        if not await team_is_live(self._store, team.id):
            # delete_team marked the team after our check; its purge may have run already
            await self._store.delete(INVITATIONS, invitation.id)
            await self._release_slot(invitation)
            raise NotFound(f"Team '{team.id}' not found")

        invitation = await fetch_invitation(self._store, invitation.id)
        logger.info(
            "invitation created: %s team=%s email=%s role=%s by %s",
            invitation.id, team.id, mask_email(email), role.value, actor.id,
            extra={"event": {
                "event": "invitation_created",
                "invitation_id": invitation.id,
                "team_id": team.id,
                "role": role.value,
                "actor": actor.id,
            }},
        )

        link = build_invite_link(self._settings, invitation)
        mail = await self._send_email(invitation, link, actor)
        return InvitationResult(
            invitation=invitation,
            link=link,
            email_sent=mail.success,
            email_error=mail.error,
        )

    async def _reject_existing_member(self, members: Dict[str, Role], email: str) -> None:
        profiles = await self._store.query(USERS, [("email", "==", email)])
        for profile in profiles:
            if profile.id in members:
                raise InvalidOperation(f"{mask_email(email)} is already a member of this team")

    async def _claim_slot(self, invitation: Invitation) -> None:
        sid = slot_id(invitation.team_id, invitation.email)
        slot_doc = {
            "invitation_id": invitation.id,
            "team_id": invitation.team_id,
            "email": invitation.email,
            "claimed_at": self._store.server_timestamp(),
        }

        async def attempt() -> None:
            try:
                await self._store.create(INVITATION_SLOTS, sid, slot_doc)
                return
            except AlreadyExists:
                pass
            slot = await self._store.get(INVITATION_SLOTS, sid)
            if not slot.exists:
                raise VersionConflict(f"{INVITATION_SLOTS}/{sid}", None, 0)
            if not await self._slot_is_stale(slot.data):
                raise DuplicateInvitation(
                    f"A pending invitation for {mask_email(invitation.email)} already exists",
                    detail={"team_id": invitation.team_id},
                )
            logger.info("reclaiming stale invitation slot %s", sid)
            await self._store.set(INVITATION_SLOTS, sid, slot_doc, expected_version=slot.version)

        await cas_loop(
            attempt,
            max_attempts=self._settings.conflict_max_attempts,
            backoff_base=self._settings.conflict_backoff_base,
            what=f"invitation slot {sid}",
        )

    async def _slot_is_stale(self, slot: Dict[str, Any]) -> bool:
        snap = await self._store.get(INVITATIONS, slot.get("invitation_id", ""))
        if snap.exists:
            return snap.data.get("status") != InvitationStatus.PENDING.value
        claimed_at = slot.get("claimed_at")
        if not claimed_at:
            return True
        return datetime.now(timezone.utc) - datetime.fromisoformat(claimed_at) > SLOT_GRACE

    async def _release_slot(self, invitation: Invitation) -> None:
        """Free the (team, email) slot if it still belongs to this invitation."""
        sid = slot_id(invitation.team_id, invitation.email)
        slot = await self._store.get(INVITATION_SLOTS, sid)
        if not slot.exists or slot.data.get("invitation_id") != invitation.id:
            return
        try:
            await self._store.delete(INVITATION_SLOTS, sid, expected_version=slot.version)
        except VersionConflict:
            logger.debug("slot %s was reclaimed concurrently; leaving it", sid)

    async def _send_email(self, invitation: Invitation, link: str, actor: Principal) -> MailResult:
        email = InvitationEmail(
            to=invitation.email,
            link=link,
            team_name=invitation.team_name,
            invited_by_name=actor.display_name or actor.email,
            role=invitation.role.value,
        )
        try:
            return await self._mailer.send_invitation_email(email)
        except Exception as e:
            logger.exception("mailer raised for invitation %s", invitation.id)
            return MailResult(success=False, error=str(e))

    # ── Queries ─────────────────────────────────────────────────

    async def list_pending_invitations(self, principal_email: str) -> List[Invitation]:
        email = normalize_email(principal_email)
        snaps = await self._store.query(
            INVITATIONS,
            [("email", "==", email), ("status", "==", InvitationStatus.PENDING.value)],
            order_by="created_at",
        )
        return [Invitation.from_dict(s.id, s.data) for s in snaps]

    async def list_team_invitations(self, actor: Principal, team_id: str) -> List[Invitation]:
        team = await fetch_team(self._store, team_id)
        permissions.require(actor.id, team.role_of(actor.id), Action.INVITE_MEMBER)
        snaps = await self._store.query(
            INVITATIONS,
            [("team_id", "==", team_id), ("status", "==", InvitationStatus.PENDING.value)],
            order_by="created_at",
        )
        return [Invitation.from_dict(s.id, s.data) for s in snaps]

    # ── Answer ──────────────────────────────────────────────────

    async def accept_invitation(self, principal: Principal, invitation_id: str) -> Invitation:
        """Join the team, then mark the invitation accepted.

        Membership is written first: a crash in between leaves a member
        with a still-pending invitation, which a repeat call completes.
        Accepting twice is a no-op.
        """
        invitation = await fetch_invitation(self._store, invitation_id)
        self._check_addressee(principal, invitation)
        if invitation.status is InvitationStatus.ACCEPTED:
            return self._already_accepted(principal, invitation)
        transition(invitation.status, InvitationStatus.ACCEPTED)

        team = await fetch_team(self._store, invitation.team_id)
        joined = principal.id not in team.members
        if joined:
            try:
                await self._store.update_paths(
                    TEAMS, team.id, {member_path(principal.id): invitation.role.value}
                )
            except DocumentMissing:
                raise NotFound(f"Team '{team.id}' no longer exists") from None
        else:
            logger.info(
                "accept: %s already in team %s as %s; role left unchanged",
                principal.id, team.id, team.members[principal.id].value,
            )

        async def attempt() -> bool:
            snap = await self._store.get(INVITATIONS, invitation_id)
            if not snap.exists:
                raise NotFound(f"Invitation '{invitation_id}' was cancelled")
            current = Invitation.from_dict(snap.id, snap.data)
            if current.status is InvitationStatus.ACCEPTED:
                self._already_accepted(principal, current)
                return False
            transition(current.status, InvitationStatus.ACCEPTED)
            ts = self._store.server_timestamp()
            await self._store.update_paths(
                INVITATIONS,
                invitation_id,
                {
                    "status": InvitationStatus.ACCEPTED.value,
                    "accepted_by": principal.id,
                    "accepted_at": ts,
                    "responded_at": ts,
                },
                expected_version=snap.version,
            )
            return True

        transitioned = await cas_loop(
            attempt,
            max_attempts=self._settings.conflict_max_attempts,
            backoff_base=self._settings.conflict_backoff_base,
            what=f"invitation {invitation_id}",
        )
        await self._release_slot(invitation)
        if not transitioned:
            return await fetch_invitation(self._store, invitation_id)

        # only the call that moved the invitation out of pending reports the join
        await self._activity.record(
            team.id, ActivityType.MEMBER_JOINED, principal.id, role=invitation.role.value
        )
        logger.info(
            "invitation accepted: %s by %s", invitation_id, principal.id,
            extra={"event": {
                "event": "invitation_accepted",
                "invitation_id": invitation_id,
                "team_id": team.id,
                "principal": principal.id,
                "joined": joined,
            }},
        )
        return await fetch_invitation(self._store, invitation_id)

    async def reject_invitation(self, principal: Principal, invitation_id: str) -> Invitation:
        invitation = await fetch_invitation(self._store, invitation_id)
        self._check_addressee(principal, invitation)
        if invitation.status is InvitationStatus.REJECTED:
            return invitation

        async def attempt() -> None:
            snap = await self._store.get(INVITATIONS, invitation_id)
            if not snap.exists:
                raise NotFound(f"Invitation '{invitation_id}' was cancelled")
            current = Invitation.from_dict(snap.id, snap.data)
            if current.status is InvitationStatus.REJECTED:
                return
            transition(current.status, InvitationStatus.REJECTED)
            await self._store.update_paths(
                INVITATIONS,
                invitation_id,
                {
                    "status": InvitationStatus.REJECTED.value,
                    "responded_at": self._store.server_timestamp(),
                },
                expected_version=snap.version,
            )

        await cas_loop(
            attempt,
            max_attempts=self._settings.conflict_max_attempts,
            backoff_base=self._settings.conflict_backoff_base,
            what=f"invitation {invitation_id}",
        )
        await self._release_slot(invitation)
        logger.info("invitation rejected: %s by %s", invitation_id, principal.id)
        return await fetch_invitation(self._store, invitation_id)

    async def cancel_invitation(self, actor: Principal, team_id: str, invitation_id: str) -> None:
        """Owner/admin withdrawal of a still-pending invitation (deletes it)."""
        team = await fetch_team(self._store, team_id)
        permissions.require(actor.id, team.role_of(actor.id), Action.INVITE_MEMBER)

        async def attempt() -> Invitation:
            snap = await self._store.get(INVITATIONS, invitation_id)
            if not snap.exists:
                raise NotFound(f"Invitation '{invitation_id}' not found")
            current = Invitation.from_dict(snap.id, snap.data)
            if current.team_id != team_id:
                raise NotFound(f"Invitation '{invitation_id}' not found in team '{team_id}'")
            if current.status.is_terminal:
                raise NotFound(f"Invitation '{invitation_id}' was already {current.status.value}")
            await self._store.delete(INVITATIONS, invitation_id, expected_version=snap.version)
            return current

        cancelled = await cas_loop(
            attempt,
            max_attempts=self._settings.conflict_max_attempts,
            backoff_base=self._settings.conflict_backoff_base,
            what=f"invitation {invitation_id}",
        )
        await self._release_slot(cancelled)
        logger.info("invitation cancelled: %s by %s", invitation_id, actor.id)

    # ── Helpers ─────────────────────────────────────────────────

    def _check_addressee(self, principal: Principal, invitation: Invitation) -> None:
        if (principal.email or "").strip().lower() != invitation.email:
            raise PermissionDenied("This invitation is addressed to a different email")

    def _already_accepted(self, principal: Principal, invitation: Invitation) -> Invitation:
        if invitation.accepted_by not in (None, principal.id):
            raise InvalidOperation("Invitation was accepted by a different account")
        return invitation


async def purge_team_invitations(store: DocumentStore, team_id: str) -> int:
    """Delete every invitation of a team and free its slots. Returns pending count."""
    snaps = await store.query(INVITATIONS, [("team_id", "==", team_id)])
    pending = 0
    for snap in snaps:
        if snap.data.get("status") == InvitationStatus.PENDING.value:
            pending += 1
        await store.delete(INVITATIONS, snap.id)
        sid = slot_id(team_id, snap.data.get("email", ""))
        slot = await store.get(INVITATION_SLOTS, sid)
        if slot.exists and slot.data.get("invitation_id") == snap.id:
            await store.delete(INVITATION_SLOTS, sid)
    return pending
