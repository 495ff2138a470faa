"""
Canonical Hashing for the Audit Log

Every audit event is reduced to one canonical JSON string before it is
hashed, and the same string is what callers sign at the HTTP boundary.
A signed command and its audit trail therefore agree byte for byte.

Canonical form:
1. Top level carries a "__canon_v" version marker
2. Keys sorted at every depth; None values dropped
3. Datetimes must be timezone-aware; written as UTC with microseconds and Z
4. UUIDs lowercase, enums as their value, pydantic models via model_dump
5. Floats, bytes, sets and anything else non-JSON are refused
6. Compact separators, ASCII only
"""

import hashlib
import json
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID

_SHA256_HEX = re.compile(r"[0-9a-f]{64}")


class CanonicalSerializationError(Exception):
    """Raised when data has no single canonical representation."""
    pass


def _canonical_datetime(value: datetime, path: str) -> str:
    if value.tzinfo is None:
        raise CanonicalSerializationError(
            f"Datetime at {path} is timezone-naive. Audit timestamps must be timezone-aware."
        )
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class Hasher:
    """
    Canonical serialization and SHA-256 chaining.

    Bump SERIALIZATION_VERSION whenever the canonical form changes.
    """

    SERIALIZATION_VERSION = 1

    @classmethod
    def _serialize_value(cls, value: Any, path: str = "") -> Any:
        # str-valued enums are also str; unwrap them first
        if isinstance(value, Enum):
            return value.value
        if value is None or isinstance(value, (bool, int, str)):
            return value
        if isinstance(value, UUID):
            return str(value).lower()
        if isinstance(value, datetime):
            return _canonical_datetime(value, path)
        if isinstance(value, float):
            raise CanonicalSerializationError(
                f"Cannot serialize float at {path}. Use an integer or a string instead."
            )
        if isinstance(value, (list, tuple)):
            return [cls._serialize_value(item, f"{path}[{i}]") for i, item in enumerate(value)]
        if isinstance(value, dict):
            return cls._to_canonical_dict(value, path)
        if hasattr(value, "model_dump"):
            return cls._to_canonical_dict(value.model_dump(mode="python"), path)

        raise CanonicalSerializationError(
            f"Cannot serialize {type(value).__name__} at {path}. "
            "Only JSON-compatible types are allowed."
        )

    @classmethod
    def _to_canonical_dict(cls, data: dict[str, Any], path: str = "") -> dict[str, Any]:
        out: dict[str, Any] = {}
        for key in sorted(data, key=str):
            if not isinstance(key, str):
                raise CanonicalSerializationError(
                    f"Key {key!r} at {path or 'top level'} must be a string, got {type(key).__name__}"
                )
            value = cls._serialize_value(data[key], f"{path}.{key}" if path else key)
            if value is not None:
                out[key] = value
        return out

    @classmethod
    def canonicalize(cls, data: dict[str, Any] | Any) -> str:
        """
        Canonical JSON for a dict or pydantic model.

        Raises:
            CanonicalSerializationError: data has no deterministic encoding
        """
        if hasattr(data, "model_dump"):
            data = data.model_dump(mode="python")
        if not isinstance(data, dict):
            raise CanonicalSerializationError(
                f"Top-level canonicalization requires a dict, got {type(data).__name__}"
            )

        document = cls._to_canonical_dict(data)
        document["__canon_v"] = cls.SERIALIZATION_VERSION
        return json.dumps(
            document,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=True,
            allow_nan=False,
        )

    @classmethod
    def hash_data(cls, data: dict[str, Any] | Any) -> str:
        return hashlib.sha256(cls.canonicalize(data).encode("utf-8")).hexdigest()

    @classmethod
    def hash_event(cls, body: dict[str, Any], previous_hash: str | None = None) -> str:
        """
        Chain hash of an audit event body.

        The genesis event hashes its canonical body alone; every later
        event hashes "<previous_hash>:<canonical body>".
        """
        chain_input = cls.canonicalize(body)

        if previous_hash is not None:
            previous_hash = previous_hash.lower()
            if not _SHA256_HEX.fullmatch(previous_hash):
                raise CanonicalSerializationError(
                    f"Invalid previous_hash {previous_hash!r}: expected 64 hex characters"
                )
            chain_input = f"{previous_hash}:{chain_input}"

        return hashlib.sha256(chain_input.encode("utf-8")).hexdigest()
