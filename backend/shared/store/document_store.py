"""Abstract interface for the shared real-time document store.

Every connected client reads and writes match state through this contract.
Writes are last-writer-wins field merges; there is no compare-and-swap, so
callers must re-read and re-check before acting on stale state. Only
``increment`` is atomic, which is why point and bunco tallies go through it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Mapping


class StoreError(Exception):
    """Base exception for document store failures."""


class DocumentNotFoundError(StoreError):
    """An operation that requires an existing document found none at the path."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"document not found: {path}")


class DocumentStore(ABC):
    """Abstract interface for slash-separated document paths (``games/{code}/tables/0``)."""

    @abstractmethod
    async def get(self, path: str) -> dict[str, Any] | None: ...

    @abstractmethod
    async def list(self, collection_path: str) -> dict[str, dict[str, Any]]:
        """Return every document directly under a collection, keyed by document id."""

    @abstractmethod
    async def set(self, path: str, fields: Mapping[str, Any], *, merge: bool = True) -> None: ...

    @abstractmethod
    async def increment(self, path: str, field: str, delta: int | float) -> None:
        """Atomically add ``delta`` to a numeric field (a missing field counts as 0)."""

    @abstractmethod
    def subscribe(self, path: str) -> AsyncGenerator[dict[str, Any] | None, None]:
        """Yield the current document, then its latest value after every change.

        Delivery is at-least-once for the latest value: a slow consumer may miss
        intermediate versions but never the most recent one.
        """
