"""Document store contract and the in-memory reference adapter."""

from promptteams.core.store.base import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    DocumentStore,
    Filter,
    Increment,
    Snapshot,
)
from promptteams.core.store.memory import InMemoryDocumentStore

__all__ = [
    "DELETE_FIELD",
    "SERVER_TIMESTAMP",
    "DocumentStore",
    "Filter",
    "Increment",
    "InMemoryDocumentStore",
    "Snapshot",
]
