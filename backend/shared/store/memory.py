"""In-process document store.

Backs the simulator, the test suite and single-process deployments. Values are
deep-copied on the way in and out so callers can never mutate stored state
through a returned document.
"""

import asyncio
import copy
from collections.abc import AsyncGenerator, Mapping
from typing import Any

import structlog

from shared.store.document_store import DocumentNotFoundError, DocumentStore

logger = structlog.get_logger()


class _Subscription:
    """Latest-value mailbox for one subscriber."""

    __slots__ = ("changed", "latest")

    def __init__(self, initial: dict[str, Any] | None) -> None:
        self.latest = initial
        self.changed = asyncio.Event()

    def publish(self, value: dict[str, Any] | None) -> None:
        self.latest = value
        self.changed.set()


def _normalize(path: str) -> str:
    normalized = path.strip("/")
    if not normalized or "//" in normalized:
        raise ValueError(f"Invalid document path: {path!r}")
    return normalized


class InMemoryDocumentStore(DocumentStore):
    """Dictionary-backed DocumentStore with per-document change notification."""

    def __init__(self) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self._subscriptions: dict[str, set[_Subscription]] = {}
        self._lock = asyncio.Lock()

    async def get(self, path: str) -> dict[str, Any] | None:
        document = self._documents.get(_normalize(path))
        return copy.deepcopy(document) if document is not None else None

    async def list(self, collection_path: str) -> dict[str, dict[str, Any]]:
        prefix = _normalize(collection_path) + "/"
        return {
            path[len(prefix) :]: copy.deepcopy(document)
            for path, document in self._documents.items()
            if path.startswith(prefix) and "/" not in path[len(prefix) :]
        }

    async def set(self, path: str, fields: Mapping[str, Any], *, merge: bool = True) -> None:
        key = _normalize(path)
        async with self._lock:
            document = self._documents.get(key) if merge else None
            updated = dict(document) if document is not None else {}
            updated.update(copy.deepcopy(dict(fields)))
            self._documents[key] = updated
            self._notify(key)

    async def increment(self, path: str, field: str, delta: int | float) -> None:
        key = _normalize(path)
        async with self._lock:
            document = self._documents.get(key)
            if document is None:
                raise DocumentNotFoundError(key)
            document[field] = (document.get(field) or 0) + delta
            self._notify(key)

    async def subscribe(self, path: str) -> AsyncGenerator[dict[str, Any] | None, None]:
        key = _normalize(path)
        subscription = _Subscription(copy.deepcopy(self._documents.get(key)))
        self._subscriptions.setdefault(key, set()).add(subscription)
        try:
            yield copy.deepcopy(subscription.latest)
            while True:
                await subscription.changed.wait()
                subscription.changed.clear()
                yield copy.deepcopy(subscription.latest)
        finally:
            subscribers = self._subscriptions.get(key)
            if subscribers is not None:
                subscribers.discard(subscription)
                if not subscribers:
                    self._subscriptions.pop(key, None)

    def subscriber_count(self, path: str) -> int:
        """Return the number of live subscriptions on a document path."""
        return len(self._subscriptions.get(_normalize(path), ()))

    def _notify(self, key: str) -> None:
        subscribers = self._subscriptions.get(key)
        if not subscribers:
            return
        document = self._documents.get(key)
        for subscription in subscribers:
            subscription.publish(copy.deepcopy(document))
        logger.debug("document changed", path=key, subscribers=len(subscribers))
