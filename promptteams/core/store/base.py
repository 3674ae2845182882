"""DocumentStore abstraction over named collections of JSON-like documents.

The core is written against this contract only. Adapters must provide:

- per-document versions (bumped on every write) for compare-and-swap
- partial updates addressed by dotted paths (``members.<uid>``)
- create-if-absent
- the write sentinels below, applied atomically on the server side
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

# ── Write sentinels ───────────────────────────────────────────────


class _Sentinel:
    def __init__(self, name: str) -> None:
        self._name = name

    def __repr__(self) -> str:
        return self._name


DELETE_FIELD = _Sentinel("DELETE_FIELD")
SERVER_TIMESTAMP = _Sentinel("SERVER_TIMESTAMP")


@dataclass(frozen=True)
class Increment:
    """Atomic server-side add. Missing fields count as 0."""

    amount: int = 1


# ── Read results ──────────────────────────────────────────────────


@dataclass
class Snapshot:
    """A point-in-time read of one document."""

    id: str
    data: Dict[str, Any] = field(default_factory=dict)
    version: int = 0
    exists: bool = True


Filter = Tuple[str, str, Any]  # (dotted path, op, value)

FILTER_OPS = frozenset({"==", "!=", "in", "<", "<=", ">", ">=", "exists"})

OnSnapshot = Callable[[List[Snapshot]], None]
OnError = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class DocumentStore(ABC):
    """Base class for document store adapters. All I/O is async."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Snapshot: ...

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Snapshot]: ...

    @abstractmethod
    async def set(
        self,
        collection: str,
        doc_id: str,
        doc: Dict[str, Any],
        *,
        merge: bool = False,
        expected_version: Optional[int] = None,
    ) -> int: ...

    @abstractmethod
    async def create(self, collection: str, doc_id: str, doc: Dict[str, Any]) -> int: ...

    @abstractmethod
    async def update_paths(
        self,
        collection: str,
        doc_id: str,
        updates: Dict[str, Any],
        *,
        expected_version: Optional[int] = None,
    ) -> int: ...

    @abstractmethod
    async def delete(
        self,
        collection: str,
        doc_id: str,
        *,
        expected_version: Optional[int] = None,
    ) -> None: ...

    @abstractmethod
    def subscribe(
        self,
        collection: str,
        on_snapshot: OnSnapshot,
        on_error: Optional[OnError] = None,
    ) -> Unsubscribe: ...

    def server_timestamp(self) -> Any:
        """Placeholder resolved to the store's clock at write time."""
        return SERVER_TIMESTAMP
