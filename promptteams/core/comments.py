"""Threaded prompt comments."""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from promptteams.core import permissions
from promptteams.core.collections import COMMENTS, PROMPTS, fetch_prompt, fetch_team
from promptteams.core.errors import DocumentMissing, InvalidArgument, NotFound, PermissionDenied
from promptteams.core.models import Comment, Principal
from promptteams.core.permissions import Action
from promptteams.core.store.base import DocumentStore, Increment

logger = logging.getLogger("promptteams.comments")

COMMENT_COUNTER = "stats.usage_counters.comments"
MAX_COMMENT_LENGTH = 4000


def _clean_text(text: str) -> str:
    if not isinstance(text, str) or not text.strip():
        raise InvalidArgument("Comment text must not be empty")
    text = text.strip()
    if len(text) > MAX_COMMENT_LENGTH:
        raise InvalidArgument(f"Comment text exceeds {MAX_COMMENT_LENGTH} characters")
    return text


class CommentService:
    """Comments are one level deep: a reply's parent is always a top-level comment."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def add_comment(
        self, actor: Principal, prompt_id: str, text: str, parent_id: Optional[str] = None
    ) -> Comment:
        text = _clean_text(text)
        prompt = await fetch_prompt(self._store, prompt_id)
        team = await fetch_team(self._store, prompt.team_id)
        permissions.require(actor.id, team.role_of(actor.id), Action.COMMENT)
        if parent_id is not None:
            parent = await self._fetch(parent_id)
            if parent.resource_id != prompt_id:
                raise InvalidArgument("Reply must be on the same prompt as its parent")
            if parent.parent_id is not None:
                raise InvalidArgument("Replies can only be made to top-level comments")

        comment_id = f"cmt_{uuid.uuid4().hex[:16]}"
        comment = Comment(
            id=comment_id,
            resource_id=prompt_id,
            team_id=team.id,
            text=text,
            created_by=actor.id,
            parent_id=parent_id,
        )
        doc = comment.to_dict()
        doc["created_at"] = self._store.server_timestamp()
        await self._store.set(COMMENTS, comment_id, doc)
        if parent_id is not None and not (await self._store.get(COMMENTS, parent_id)).exists:
            # parent deleted while we were writing; its thread is gone
            await self._store.delete(COMMENTS, comment_id)
            raise NotFound(f"Comment '{parent_id}' not found")
        await self._bump(prompt_id, 1)
        logger.info("comment added: %s on %s by %s", comment_id, prompt_id, actor.id)
        return await self._fetch(comment_id)

    async def edit_comment(self, actor: Principal, comment_id: str, text: str) -> Comment:
        text = _clean_text(text)
        comment = await self._fetch(comment_id)
        team = await fetch_team(self._store, comment.team_id)
        permissions.require(actor.id, team.role_of(actor.id), Action.COMMENT)
        if comment.created_by != actor.id:
            raise PermissionDenied("Only the author can edit a comment")
        try:
            await self._store.update_paths(
                COMMENTS, comment_id, {"text": text, "updated_at": self._store.server_timestamp()}
            )
        except DocumentMissing:
            raise NotFound(f"Comment '{comment_id}' not found") from None
        return await self._fetch(comment_id)

    async def delete_comment(self, actor: Principal, comment_id: str) -> int:
        """Delete a comment and its replies. Returns how many were removed.

        Authors may delete their own comments while they are still on the
        team; owners and admins may delete any.
        """
        comment = await self._fetch(comment_id)
        team = await fetch_team(self._store, comment.team_id)
        permissions.require(
            actor.id, team.role_of(actor.id), Action.DELETE_RESOURCE, comment.created_by
        )

        replies = await self._store.query(COMMENTS, [("parent_id", "==", comment_id)])
        for reply in replies:
            await self._store.delete(COMMENTS, reply.id)
        await self._store.delete(COMMENTS, comment_id)
        removed = len(replies) + 1
        await self._bump(comment.resource_id, -removed)
        logger.info("comment deleted: %s (+%d replies) by %s", comment_id, len(replies), actor.id)
        return removed

    async def list_comments(self, actor: Principal, prompt_id: str) -> List[Comment]:
        """Oldest first."""
        prompt = await fetch_prompt(self._store, prompt_id)
        team = await fetch_team(self._store, prompt.team_id)
        permissions.require(actor.id, team.role_of(actor.id), Action.READ_TEAM)
        snaps = await self._store.query(
            COMMENTS, [("resource_id", "==", prompt_id)], order_by="created_at"
        )
        return [Comment.from_dict(s.id, s.data) for s in snaps]

    async def _fetch(self, comment_id: str) -> Comment:
        snap = await self._store.get(COMMENTS, comment_id)
        if not snap.exists:
            raise NotFound(f"Comment '{comment_id}' not found")
        return Comment.from_dict(snap.id, snap.data)

    async def _bump(self, prompt_id: str, amount: int) -> None:
        try:
            await self._store.update_paths(PROMPTS, prompt_id, {COMMENT_COUNTER: Increment(amount)})
        except DocumentMissing:
            # prompt deleted meanwhile; its comments go with it
            logger.debug("comment counter skipped: prompt %s is gone", prompt_id)
