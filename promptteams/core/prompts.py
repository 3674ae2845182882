"""Prompt CRUD. Prompts are the team-scoped resources that get rated."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

from promptteams.core import permissions
from promptteams.core.activity import ActivityLog
from promptteams.core.collections import (
    COMMENTS,
    PROMPTS,
    RATINGS,
    fetch_prompt,
    fetch_team,
    team_is_live,
)
from promptteams.core.errors import DocumentMissing, InvalidArgument, NotFound
from promptteams.core.models import ActivityType, Principal, Prompt, PromptStats
from promptteams.core.permissions import Action
from promptteams.core.store.base import DocumentStore

logger = logging.getLogger("promptteams.prompts")

# Fields a caller may change; stats are owned by the aggregate engine
EDITABLE_FIELDS = frozenset({"title", "text", "tags"})


def _clean_tags(tags: Optional[List[str]]) -> List[str]:
    if tags is None:
        return []
    if isinstance(tags, str) or not isinstance(tags, (list, tuple)):
        raise InvalidArgument("tags must be a list of strings")
    seen: List[str] = []
    for tag in tags:
        tag = str(tag).strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def _require_text(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(f"Prompt {field_name} must not be empty")
    return value.strip()


class PromptService:
    def __init__(self, store: DocumentStore, activity: ActivityLog) -> None:
        self._store = store
        self._activity = activity

    async def create_prompt(
        self,
        actor: Principal,
        team_id: str,
        title: str,
        text: str,
        tags: Optional[List[str]] = None,
    ) -> Prompt:
        title = _require_text(title, "title")
        text = _require_text(text, "text")
        clean_tags = _clean_tags(tags)

        team = await fetch_team(self._store, team_id)
        permissions.require(actor.id, team.role_of(actor.id), Action.CREATE_RESOURCE)

        prompt_id = f"prm_{uuid.uuid4().hex[:16]}"
        prompt = Prompt(
            id=prompt_id,
            team_id=team.id,
            creator_id=actor.id,
            title=title,
            text=text,
            tags=clean_tags,
            stats=PromptStats(),
        )
        doc = prompt.to_dict()
        ts = self._store.server_timestamp()
        doc["created_at"] = ts
        doc["updated_at"] = ts
        await self._store.create(PROMPTS, prompt_id, doc)
        if not await team_is_live(self._store, team.id):
            # delete_team marked the team after our check
            await _delete_prompt_tree(self._store, prompt_id)
            raise NotFound(f"Team '{team.id}' not found")
        await self._activity.record(team.id, ActivityType.PROMPT_CREATED, actor.id, prompt_id, title=title)
        logger.info("prompt created: %s team=%s by %s", prompt_id, team.id, actor.id)
        return await fetch_prompt(self._store, prompt_id)

    async def get_prompt(self, actor: Principal, prompt_id: str) -> Prompt:
        prompt = await fetch_prompt(self._store, prompt_id)
        team = await fetch_team(self._store, prompt.team_id)
        permissions.require(actor.id, team.role_of(actor.id), Action.READ_TEAM)
        return prompt

    async def list_prompts(self, actor: Principal, team_id: str) -> List[Prompt]:
        """Team prompts, newest first."""
        team = await fetch_team(self._store, team_id)
        permissions.require(actor.id, team.role_of(actor.id), Action.READ_TEAM)
        snaps = await self._store.query(
            PROMPTS, [("team_id", "==", team_id)], order_by="created_at", descending=True
        )
        return [Prompt.from_dict(s.id, s.data) for s in snaps]

    async def update_prompt(self, actor: Principal, prompt_id: str, **changes: Any) -> Prompt:
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise InvalidArgument(
                f"Cannot update prompt fields: {sorted(unknown)}",
                detail={"editable": sorted(EDITABLE_FIELDS)},
            )
        if not changes:
            raise InvalidArgument("No prompt fields to update")

        prompt = await fetch_prompt(self._store, prompt_id)
        team = await fetch_team(self._store, prompt.team_id)
        permissions.require(actor.id, team.role_of(actor.id), Action.EDIT_RESOURCE, prompt.creator_id)

        updates: Dict[str, Any] = {}
        if "title" in changes:
            updates["title"] = _require_text(changes["title"], "title")
        if "text" in changes:
            updates["text"] = _require_text(changes["text"], "text")
        if "tags" in changes:
            updates["tags"] = _clean_tags(changes["tags"])
        updates["updated_at"] = self._store.server_timestamp()
        try:
            await self._store.update_paths(PROMPTS, prompt_id, updates)
        except DocumentMissing:
            raise NotFound(f"Prompt '{prompt_id}' not found") from None

        await self._activity.record(
            team.id, ActivityType.PROMPT_UPDATED, actor.id, prompt_id,
            fields=sorted(k for k in updates if k != "updated_at"),
        )
        logger.info("prompt updated: %s by %s", prompt_id, actor.id)
        return await fetch_prompt(self._store, prompt_id)

    async def delete_prompt(self, actor: Principal, prompt_id: str) -> None:
        """Delete ratings and comments first, then the prompt itself."""
        prompt = await fetch_prompt(self._store, prompt_id)
        team = await fetch_team(self._store, prompt.team_id)
        permissions.require(actor.id, team.role_of(actor.id), Action.DELETE_RESOURCE, prompt.creator_id)

        await _delete_prompt_tree(self._store, prompt_id)
        await self._activity.record(team.id, ActivityType.PROMPT_DELETED, actor.id, prompt_id, title=prompt.title)
        logger.info("prompt deleted: %s by %s", prompt_id, actor.id)


async def _delete_prompt_tree(store: DocumentStore, prompt_id: str) -> None:
    for collection in (RATINGS, COMMENTS):
        for snap in await store.query(collection, [("resource_id", "==", prompt_id)]):
            await store.delete(collection, snap.id)
    await store.delete(PROMPTS, prompt_id)


async def purge_team_prompts(store: DocumentStore, team_id: str) -> int:
    """Delete all prompts of a team with their ratings and comments."""
    snaps = await store.query(PROMPTS, [("team_id", "==", team_id)])
    for snap in snaps:
        await _delete_prompt_tree(store, snap.id)
    return len(snaps)
