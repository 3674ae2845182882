"""Per-principal favorites.

A favorite is a snapshot of the prompt's title, text and tags taken when it
was added. It belongs to the principal, not the team, so it stays readable
after the principal leaves the team or the prompt/team is deleted.
"""

from __future__ import annotations

import logging
from typing import List

from promptteams.core import permissions
from promptteams.core.collections import favorites_of, fetch_prompt, fetch_team
from promptteams.core.errors import AlreadyExists
from promptteams.core.models import Favorite, Principal
from promptteams.core.permissions import Action
from promptteams.core.store.base import DocumentStore

logger = logging.getLogger("promptteams.favorites")


class FavoriteService:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def add_favorite(self, principal: Principal, prompt_id: str) -> Favorite:
        """Idempotent: re-adding keeps the original snapshot."""
        collection = favorites_of(principal.id)
        existing = await self._store.get(collection, prompt_id)
        if existing.exists:
            return Favorite.from_dict(existing.data)

        prompt = await fetch_prompt(self._store, prompt_id)
        team = await fetch_team(self._store, prompt.team_id)
        permissions.require(principal.id, team.role_of(principal.id), Action.READ_TEAM)

        favorite = Favorite(
            principal_id=principal.id,
            resource_id=prompt.id,
            team_id=team.id,
            team_name=team.name,
            snapshot_title=prompt.title,
            snapshot_text=prompt.text,
            snapshot_tags=list(prompt.tags),
            original_author=prompt.creator_id,
        )
        doc = favorite.to_dict()
        doc["added_at"] = self._store.server_timestamp()
        try:
            await self._store.create(collection, prompt_id, doc)
        except AlreadyExists:
            logger.debug("favorite %s already added by a concurrent call", prompt_id)
        else:
            logger.info("favorite added: %s by %s", prompt_id, principal.id)
        snap = await self._store.get(collection, prompt_id)
        return Favorite.from_dict(snap.data)

    async def remove_favorite(self, principal: Principal, prompt_id: str) -> None:
        """Idempotent: removing a missing favorite is a no-op."""
        await self._store.delete(favorites_of(principal.id), prompt_id)
        logger.info("favorite removed: %s by %s", prompt_id, principal.id)

    async def is_favorite(self, principal: Principal, prompt_id: str) -> bool:
        snap = await self._store.get(favorites_of(principal.id), prompt_id)
        return snap.exists

    async def toggle_favorite(self, principal: Principal, prompt_id: str) -> bool:
        """Flip the favorite state; returns the new state."""
        if await self.is_favorite(principal, prompt_id):
            await self.remove_favorite(principal, prompt_id)
            return False
        await self.add_favorite(principal, prompt_id)
        return True

    async def list_favorites(self, principal: Principal) -> List[Favorite]:
        """Newest first."""
        snaps = await self._store.query(
            favorites_of(principal.id), order_by="added_at", descending=True
        )
        return [Favorite.from_dict(s.data) for s in snaps]
