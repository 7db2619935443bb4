"""Shared document store: the real-time state contract and its in-memory implementation."""

from shared.store.document_store import DocumentNotFoundError, DocumentStore, StoreError
from shared.store.memory import InMemoryDocumentStore

__all__ = [
    "DocumentNotFoundError",
    "DocumentStore",
    "InMemoryDocumentStore",
    "StoreError",
]
