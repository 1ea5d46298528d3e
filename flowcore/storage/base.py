"""
Persistent Store Base Class

Abstract key/value blob interface. The engine serializes its aggregates
(memory, learned patterns, profile) to bytes and hands them to a store under
a fixed string key; any backend that can get/set/delete bytes by key
satisfies it.

Design Principles:
- Blobs are opaque to the store
- Writes to one key are applied in submission order (last write wins)
- Backend failures surface as StorageError so callers can degrade
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class StorageError(Exception):
    """Raised when a backend cannot read or write a blob."""


class PersistentStore(ABC):
    """Key/value blob storage."""

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Return the blob stored under ``key``, or None if absent."""

    @abstractmethod
    def set(self, key: str, value: bytes) -> None:
        """Store ``value`` under ``key``, replacing any previous blob."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``. Deleting a missing key is not an error."""

    def close(self) -> None:
        """Release backend resources. Optional."""
        return None
