"""Aggregate consistency engine: ratings and usage counters.

Each prompt carries a denormalized ``stats`` block (rating histogram, total,
average, usage counters). Histogram changes are read-modify-write cycles
guarded by the prompt document's version; a lost race re-reads and retries
inside :func:`cas_loop`, so concurrent raters never overwrite each other's
buckets. Usage counters use the store's atomic increment instead.

One principal's own submissions for one prompt are serialized locally, so
the previous value read from the rating document is always the value this
client last wrote.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from typing import Any, Dict, Optional, Tuple

from promptteams.core import permissions
from promptteams.core.activity import ActivityLog
from promptteams.core.collections import PROMPTS, RATINGS, fetch_prompt, fetch_team
from promptteams.core.errors import DocumentMissing, InvalidArgument, NotFound
from promptteams.core.models import RATING_VALUES, ActivityType, Principal, PromptStats, Rating
from promptteams.core.permissions import Action
from promptteams.core.retry import cas_loop
from promptteams.core.settings import Settings
from promptteams.core.store.base import DocumentStore, Increment

logger = logging.getLogger("promptteams.ratings")

WELL_KNOWN_COUNTERS = ("views", "copies", "comments")


def validate_rating(value: Any) -> int:
    # bool is an int subclass; True must not count as a 1-star rating
    if isinstance(value, bool) or not isinstance(value, int) or value not in RATING_VALUES:
        raise InvalidArgument(
            f"Rating must be an integer from {RATING_VALUES[0]} to {RATING_VALUES[-1]}, got {value!r}"
        )
    return value


def validate_counter_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip() or "." in name:
        raise InvalidArgument(f"Invalid usage counter name: {name!r}")
    return name.strip()


def summarize(histogram: Dict[int, int]) -> Tuple[int, float]:
    """(total, average) derived from the histogram alone."""
    total = sum(histogram.values())
    if total == 0:
        return 0, 0.0
    return total, sum(v * n for v, n in histogram.items()) / total


def shift_histogram(
    histogram: Dict[int, int], previous: Optional[int], new: Optional[int]
) -> Dict[int, int]:
    """Move one vote from ``previous`` to ``new``. Buckets never go negative."""
    result = {v: histogram.get(v, 0) for v in RATING_VALUES}
    if previous is not None:
        result[previous] = max(0, result[previous] - 1)
    if new is not None:
        result[new] += 1
    return result


class RatingService:
    """Submits and removes ratings while keeping prompt stats consistent."""

    def __init__(self, store: DocumentStore, settings: Settings, activity: ActivityLog) -> None:
        self._store = store
        self._settings = settings
        self._activity = activity
        self._locks: "weakref.WeakValueDictionary[Tuple[str, str], asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, prompt_id: str, principal_id: str) -> asyncio.Lock:
        key = (prompt_id, principal_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def _authorize(self, principal: Principal, prompt_id: str, action: Action) -> str:
        prompt = await fetch_prompt(self._store, prompt_id)
        team = await fetch_team(self._store, prompt.team_id)
        permissions.require(principal.id, team.role_of(principal.id), action)
        return team.id

    async def submit_rating(self, principal: Principal, prompt_id: str, value: Any) -> PromptStats:
        """Create or replace the principal's rating and return the prompt's new stats."""
        value = validate_rating(value)
        team_id = await self._authorize(principal, prompt_id, Action.RATE_RESOURCE)
        rating_id = Rating.doc_id(prompt_id, principal.id)

        async with self._lock_for(prompt_id, principal.id):
            existing = await self._store.get(RATINGS, rating_id)
            previous = int(existing.data["value"]) if existing.exists else None

            rating = Rating(resource_id=prompt_id, principal_id=principal.id, value=value)
            doc = rating.to_dict()
            doc["team_id"] = team_id
            doc["updated_at"] = self._store.server_timestamp()
            await self._store.set(RATINGS, rating_id, doc)

            if previous == value:
                logger.debug("rating unchanged: %s by %s = %d", prompt_id, principal.id, value)
                return (await fetch_prompt(self._store, prompt_id)).stats

            try:
                await self._shift(prompt_id, previous, value)
            except Exception:
                await self._restore(rating_id, existing.data if existing.exists else None)
                raise

        await self._activity.record(team_id, ActivityType.PROMPT_RATED, principal.id, prompt_id, value=value)
        logger.info("rating submitted: %s by %s: %s -> %d", prompt_id, principal.id, previous, value)
        return (await fetch_prompt(self._store, prompt_id)).stats

    async def remove_rating(self, principal: Principal, prompt_id: str) -> PromptStats:
        """Withdraw the principal's rating. No-op when there is none."""
        await self._authorize(principal, prompt_id, Action.RATE_RESOURCE)
        rating_id = Rating.doc_id(prompt_id, principal.id)

        async with self._lock_for(prompt_id, principal.id):
            existing = await self._store.get(RATINGS, rating_id)
            if not existing.exists:
                return (await fetch_prompt(self._store, prompt_id)).stats
            previous = int(existing.data["value"])
            await self._store.delete(RATINGS, rating_id)
            try:
                await self._shift(prompt_id, previous, None)
            except Exception:
                await self._restore(rating_id, existing.data)
                raise

        logger.info("rating removed: %s by %s (was %d)", prompt_id, principal.id, previous)
        return (await fetch_prompt(self._store, prompt_id)).stats

    async def get_user_rating(self, principal: Principal, prompt_id: str) -> Optional[int]:
        snap = await self._store.get(RATINGS, Rating.doc_id(prompt_id, principal.id))
        if not snap.exists:
            return None
        return int(snap.data["value"])

    async def increment_usage_counter(self, prompt_id: str, counter_name: str, amount: int = 1) -> None:
        """Atomic server-side add on ``stats.usage_counters.<counter_name>``."""
        name = validate_counter_name(counter_name)
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidArgument(f"Counter amount must be an integer, got {amount!r}")
        try:
            await self._store.update_paths(
                PROMPTS, prompt_id, {f"stats.usage_counters.{name}": Increment(amount)}
            )
        except DocumentMissing:
            raise NotFound(f"Prompt '{prompt_id}' not found") from None

    async def recompute_stats(self, actor: Principal, prompt_id: str) -> PromptStats:
        """Rebuild the histogram from the rating documents (owner/admin repair)."""
        prompt = await fetch_prompt(self._store, prompt_id)
        team = await fetch_team(self._store, prompt.team_id)
        permissions.require(actor.id, team.role_of(actor.id), Action.EDIT_RESOURCE)

        async def attempt() -> None:
            snap = await self._store.get(PROMPTS, prompt_id)
            if not snap.exists:
                raise NotFound(f"Prompt '{prompt_id}' not found")
            histogram = {v: 0 for v in RATING_VALUES}
            for rating in await self._store.query(RATINGS, [("resource_id", "==", prompt_id)]):
                value = rating.data.get("value")
                if value in histogram:
                    histogram[value] += 1
            await self._write_histogram(prompt_id, histogram, snap.version, touch_last_rated=False)

        await self._cas(attempt, prompt_id)
        logger.info("stats recomputed: %s by %s", prompt_id, actor.id)
        return (await fetch_prompt(self._store, prompt_id)).stats

    # ── Internals ───────────────────────────────────────────────

    async def _shift(self, prompt_id: str, previous: Optional[int], new: Optional[int]) -> None:
        async def attempt() -> None:
            snap = await self._store.get(PROMPTS, prompt_id)
            if not snap.exists:
                raise NotFound(f"Prompt '{prompt_id}' not found")
            stats = PromptStats.from_dict(snap.data.get("stats"))
            histogram = shift_histogram(stats.rating_histogram, previous, new)
            await self._write_histogram(prompt_id, histogram, snap.version, touch_last_rated=new is not None)

        await self._cas(attempt, prompt_id)

    async def _write_histogram(
        self, prompt_id: str, histogram: Dict[int, int], version: int, touch_last_rated: bool
    ) -> None:
        total, average = summarize(histogram)
        updates: Dict[str, Any] = {
            "stats.rating_histogram": {str(v): histogram[v] for v in RATING_VALUES},
            "stats.total_ratings": total,
            "stats.average_rating": average,
        }
        if touch_last_rated:
            updates["stats.last_rated"] = self._store.server_timestamp()
        await self._store.update_paths(PROMPTS, prompt_id, updates, expected_version=version)

    async def _cas(self, attempt, prompt_id: str) -> None:
        await cas_loop(
            attempt,
            max_attempts=self._settings.conflict_max_attempts,
            backoff_base=self._settings.conflict_backoff_base,
            what=f"prompt {prompt_id} stats",
        )

    async def _restore(self, rating_id: str, previous_doc: Optional[Dict[str, Any]]) -> None:
        """Put the rating document back so a retried call replays the whole change."""
        if previous_doc is None:
            await self._store.delete(RATINGS, rating_id)
        else:
            await self._store.set(RATINGS, rating_id, previous_doc)
        logger.warning("stats update for %s failed; rating document restored", rating_id)
