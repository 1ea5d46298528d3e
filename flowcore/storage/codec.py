"""
Record Codec

Persisted records implement ``to_dict()`` / ``from_dict()``. They are stored
as UTF-8 JSON with sorted keys and compact separators, so encoding a decoded
blob reproduces the original bytes.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Serializable(Protocol):
    def to_dict(self) -> Any: ...


def encode_record(record: Serializable) -> bytes:
    return json.dumps(record.to_dict(), sort_keys=True, separators=(",", ":")).encode("utf-8")


def decode_record(blob: Optional[bytes], cls: type[T], key: str = "") -> Optional[T]:
    """
    Decode a blob into ``cls`` via ``cls.from_dict``.

    Returns None for a missing blob and for a corrupt or incompatible one;
    the caller then starts from defaults.
    """
    if blob is None:
        return None
    try:
        data = json.loads(blob.decode("utf-8"))
        return cls.from_dict(data)
    except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
        logger.warning(f"Discarding unreadable blob for '{key or cls.__name__}': {e}")
        return None


def encode_list(records: list[Serializable]) -> bytes:
    payload = [r.to_dict() for r in records]
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


def decode_list(blob: Optional[bytes], cls: type[T], key: str = "") -> Optional[list[T]]:
    """List counterpart of ``decode_record``; one bad item discards the whole blob."""
    if blob is None:
        return None
    try:
        data = json.loads(blob.decode("utf-8"))
        if not isinstance(data, list):
            raise TypeError(f"expected a list, got {type(data).__name__}")
        return [cls.from_dict(item) for item in data]
    except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
        logger.warning(f"Discarding unreadable list blob for '{key or cls.__name__}': {e}")
        return None
