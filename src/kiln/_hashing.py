"""Stable digests for sources, cache keys and snapshots.

Structured values are hashed through canonical JSON: keys sorted
recursively, compact separators, UTF-8.  Values JSON cannot represent
(dates, paths) are hashed through ``str()``.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json(obj: Any) -> str:
    """Serialize *obj* deterministically."""
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def digest_bytes(data: bytes) -> str:
    """Hex sha256 of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def digest_value(obj: Any) -> str:
    """Hex sha256 of the canonical JSON form of *obj*."""
    return digest_bytes(canonical_json(obj).encode("utf-8"))


def combine(*parts: str | bytes) -> str:
    """Hash an ordered sequence of parts into one digest.

    Each part is length-prefixed so ``("ab", "c")`` and ``("a", "bc")``
    never collide.
    """
    h = hashlib.sha256()
    for part in parts:
        data = part.encode("utf-8") if isinstance(part, str) else part
        h.update(len(data).to_bytes(8, "big"))
        h.update(data)
    return h.hexdigest()
