"""Team activity feed: append-only records of prompt and membership events."""

from __future__ import annotations

import uuid
from typing import Any, List, Optional

from promptteams.core.models import Activity, ActivityType
from promptteams.core.store.base import DocumentStore

ACTIVITIES = "activities"


class ActivityLog:
    """Appends activity documents and reads a team's feed back."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def record(
        self,
        team_id: str,
        type: ActivityType,
        actor_id: str,
        resource_id: Optional[str] = None,
        **metadata: Any,
    ) -> str:
        activity_id = f"act_{uuid.uuid4().hex[:16]}"
        activity = Activity(
            id=activity_id,
            team_id=team_id,
            type=type,
            actor_id=actor_id,
            resource_id=resource_id,
            metadata=metadata,
        )
        doc = activity.to_dict()
        doc["created_at"] = self._store.server_timestamp()
        await self._store.set(ACTIVITIES, activity_id, doc)
        return activity_id

    async def recent(self, team_id: str, limit: int = 50) -> List[Activity]:
        """Newest first."""
        snaps = await self._store.query(
            ACTIVITIES,
            [("team_id", "==", team_id)],
            order_by="created_at",
            descending=True,
            limit=limit,
        )
        return [Activity.from_dict(s.id, s.data) for s in snaps]

    async def purge_team(self, team_id: str) -> int:
        snaps = await self._store.query(ACTIVITIES, [("team_id", "==", team_id)])
        for snap in snaps:
            await self._store.delete(ACTIVITIES, snap.id)
        return len(snaps)
