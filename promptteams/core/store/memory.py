"""InMemoryDocumentStore: thread-safe reference adapter with optional JSON persistence.

Nested schema on disk:
  {"collections": {"<collection>": {"<doc_id>": {"data": {...}, "version": 3}}}}

Every write bumps the document version; ``expected_version`` turns a write
into a compare-and-swap. Each call yields to the event loop (optionally after
a simulated latency) before touching state, so concurrent coroutines
interleave the way independent clients would against a remote store.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from promptteams.core.errors import AlreadyExists, DocumentMissing, StoreUnavailable, VersionConflict
from promptteams.core.store.base import (
    DELETE_FIELD,
    FILTER_OPS,
    SERVER_TIMESTAMP,
    DocumentStore,
    Filter,
    Increment,
    OnError,
    OnSnapshot,
    Snapshot,
    Unsubscribe,
)

logger = logging.getLogger("promptteams.store")

_MISSING = object()


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe in-memory document store."""

    def __init__(self, latency: float = 0.0) -> None:
        self._lock = threading.RLock()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._subscribers: Dict[str, List[Tuple[OnSnapshot, Optional[OnError]]]] = {}
        self._path: Optional[str] = None
        self._latency = latency
        self._faults: List[Optional[str]] = []
        self._last_ts: Optional[datetime] = None

    def configure(self, path: Optional[str]) -> None:
        """Configure persistence path, then load existing data."""
        with self._lock:
            self._path = path or None
            self._load()
        if path:
            logger.info("store persistence enabled: %s", path)

    def reset(self) -> None:
        """Clear all data (for test isolation)."""
        with self._lock:
            self._collections = {}
            self._faults = []

    def inject_failures(self, count: int = 1, op: Optional[str] = None) -> None:
        """Make the next ``count`` calls (of ``op``, or any op) raise StoreUnavailable."""
        with self._lock:
            self._faults.extend([op] * count)

    # ── Reads ───────────────────────────────────────────────────

    async def get(self, collection: str, doc_id: str) -> Snapshot:
        await self._io("get")
        with self._lock:
            entry = self._collections.get(collection, {}).get(doc_id)
            if entry is None:
                return Snapshot(id=doc_id, data={}, version=0, exists=False)
            return _snapshot(doc_id, entry)

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Snapshot]:
        for _path, op, _value in filters:
            if op not in FILTER_OPS:
                raise ValueError(f"Unsupported filter op: {op!r}")
        await self._io("query")
        with self._lock:
            docs = self._collections.get(collection, {})
            matched = [
                _snapshot(doc_id, entry)
                for doc_id, entry in docs.items()
                if all(_matches(entry["data"], f) for f in filters)
            ]
        if order_by:
            present = [s for s in matched if _lookup(s.data, order_by) is not _MISSING]
            absent = [s for s in matched if _lookup(s.data, order_by) is _MISSING]
            present.sort(key=lambda s: _lookup(s.data, order_by), reverse=descending)
            matched = present + absent
        if limit is not None:
            matched = matched[:limit]
        return matched

    # ── Writes ──────────────────────────────────────────────────

    async def set(
        self,
        collection: str,
        doc_id: str,
        doc: Dict[str, Any],
        *,
        merge: bool = False,
        expected_version: Optional[int] = None,
    ) -> int:
        await self._io("set")
        with self._lock:
            docs = self._collections.setdefault(collection, {})
            entry = docs.get(doc_id)
            self._check_version(collection, doc_id, entry, expected_version)
            if merge and entry is not None:
                data = copy.deepcopy(entry["data"])
                self._merge(data, doc)
            else:
                data = {}
                self._merge(data, doc)
            version = self._write(collection, doc_id, data, entry)
        self._notify(collection)
        return version

    async def create(self, collection: str, doc_id: str, doc: Dict[str, Any]) -> int:
        await self._io("create")
        with self._lock:
            docs = self._collections.setdefault(collection, {})
            entry = docs.get(doc_id)
            if entry is not None:
                raise AlreadyExists(f"{collection}/{doc_id}")
            data: Dict[str, Any] = {}
            self._merge(data, doc)
            version = self._write(collection, doc_id, data, None)
        self._notify(collection)
        return version

    async def update_paths(
        self,
        collection: str,
        doc_id: str,
        updates: Dict[str, Any],
        *,
        expected_version: Optional[int] = None,
    ) -> int:
        await self._io("update")
        with self._lock:
            entry = self._collections.get(collection, {}).get(doc_id)
            if entry is None:
                if expected_version is not None:
                    raise VersionConflict(f"{collection}/{doc_id}", expected_version, None)
                raise DocumentMissing(f"{collection}/{doc_id}")
            self._check_version(collection, doc_id, entry, expected_version)
            data = copy.deepcopy(entry["data"])
            for path, value in updates.items():
                self._apply_path(data, path, value)
            version = self._write(collection, doc_id, data, entry)
        self._notify(collection)
        return version

    async def delete(
        self,
        collection: str,
        doc_id: str,
        *,
        expected_version: Optional[int] = None,
    ) -> None:
        await self._io("delete")
        with self._lock:
            docs = self._collections.get(collection, {})
            entry = docs.get(doc_id)
            if entry is None:
                if expected_version is not None:
                    raise VersionConflict(f"{collection}/{doc_id}", expected_version, None)
                return
            self._check_version(collection, doc_id, entry, expected_version)
            del docs[doc_id]
            self._save()
        self._notify(collection)

    # ── Subscriptions ───────────────────────────────────────────

    def subscribe(
        self,
        collection: str,
        on_snapshot: OnSnapshot,
        on_error: Optional[OnError] = None,
    ) -> Unsubscribe:
        """Deliver the collection's documents now and after every write to it."""
        entry = (on_snapshot, on_error)
        with self._lock:
            self._subscribers.setdefault(collection, []).append(entry)
        self._deliver(collection, [entry])

        def unsubscribe() -> None:
            with self._lock:
                subs = self._subscribers.get(collection, [])
                if entry in subs:
                    subs.remove(entry)

        return unsubscribe

    # ── Internal helpers ────────────────────────────────────────

    async def _io(self, op: str) -> None:
        """Yield to other clients, then fail if a fault is queued for ``op``."""
        await asyncio.sleep(self._latency)
        with self._lock:
            for i, fault in enumerate(self._faults):
                if fault is None or fault == op:
                    del self._faults[i]
                    raise StoreUnavailable(f"Store unavailable during {op}")

    def _check_version(
        self,
        collection: str,
        doc_id: str,
        entry: Optional[Dict[str, Any]],
        expected_version: Optional[int],
    ) -> None:
        if expected_version is None:
            return
        actual = entry["version"] if entry is not None else 0
        if actual != expected_version:
            raise VersionConflict(f"{collection}/{doc_id}", expected_version, actual)

    def _write(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        previous: Optional[Dict[str, Any]],
    ) -> int:
        version = (previous["version"] if previous is not None else 0) + 1
        self._collections.setdefault(collection, {})[doc_id] = {"data": data, "version": version}
        self._save()
        return version

    def _merge(self, target: Dict[str, Any], doc: Dict[str, Any]) -> None:
        for key, value in doc.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                self._merge(target[key], value)
            else:
                self._apply_value(target, key, value)

    def _apply_path(self, data: Dict[str, Any], path: str, value: Any) -> None:
        parts = path.split(".")
        node = data
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                if value is DELETE_FIELD:
                    return
                child = {}
                node[part] = child
            node = child
        self._apply_value(node, parts[-1], value)

    def _apply_value(self, node: Dict[str, Any], key: str, value: Any) -> None:
        if value is DELETE_FIELD:
            node.pop(key, None)
        elif isinstance(value, Increment):
            current = node.get(key)
            base = current if isinstance(current, (int, float)) and not isinstance(current, bool) else 0
            node[key] = base + value.amount
        else:
            node[key] = self._resolve(value)

    def _resolve(self, value: Any) -> Any:
        if value is SERVER_TIMESTAMP:
            return self._timestamp()
        if isinstance(value, Increment):
            return value.amount
        if isinstance(value, dict):
            return {k: self._resolve(v) for k, v in value.items() if v is not DELETE_FIELD}
        if isinstance(value, (list, tuple)):
            return [self._resolve(v) for v in value]
        return copy.deepcopy(value)

    def _timestamp(self) -> str:
        """Strictly increasing UTC ISO timestamp."""
        now = datetime.now(timezone.utc)
        if self._last_ts is not None and now <= self._last_ts:
            now = self._last_ts + timedelta(microseconds=1)
        self._last_ts = now
        return now.isoformat(timespec="microseconds")

    def _notify(self, collection: str) -> None:
        with self._lock:
            subs = list(self._subscribers.get(collection, []))
        if subs:
            self._deliver(collection, subs)

    def _deliver(
        self,
        collection: str,
        subs: List[Tuple[OnSnapshot, Optional[OnError]]],
    ) -> None:
        with self._lock:
            docs = [
                _snapshot(doc_id, entry)
                for doc_id, entry in self._collections.get(collection, {}).items()
            ]
        for on_snapshot, on_error in subs:
            try:
                on_snapshot(docs)
            except Exception as e:
                if on_error is None:
                    logger.exception("store: subscriber on %s raised", collection)
                else:
                    on_error(e)

    def _load(self) -> None:
        """Load data from JSON file (if it exists and is non-empty)."""
        if self._path and os.path.exists(self._path) and os.path.getsize(self._path) > 0:
            with open(self._path, "r") as f:
                self._collections = json.load(f).get("collections", {})
        else:
            self._collections = {}

    def _save(self) -> None:
        """Atomically save data to JSON file."""
        if not self._path:
            return
        tmp_path = self._path + ".tmp"
        with open(tmp_path, "w") as f:
            json.dump({"collections": self._collections}, f, indent=2)
        os.replace(tmp_path, self._path)


def _snapshot(doc_id: str, entry: Dict[str, Any]) -> Snapshot:
    return Snapshot(
        id=doc_id,
        data=copy.deepcopy(entry["data"]),
        version=entry["version"],
        exists=True,
    )


def _lookup(data: Dict[str, Any], path: str) -> Any:
    node: Any = data
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return _MISSING
        node = node[part]
    return node


def _matches(data: Dict[str, Any], flt: Filter) -> bool:
    path, op, expected = flt
    value = _lookup(data, path)
    if op == "exists":
        return (value is not _MISSING and value is not None) == bool(expected)
    if value is _MISSING:
        return op == "!="
    if op == "==":
        return value == expected
    if op == "!=":
        return value != expected
    if op == "in":
        return value in expected
    try:
        if op == "<":
            return value < expected
        if op == "<=":
            return value <= expected
        if op == ">":
            return value > expected
        if op == ">=":
            return value >= expected
    except TypeError:
        return False
    return False
