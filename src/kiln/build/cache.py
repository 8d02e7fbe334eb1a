"""Build cache — transformed outputs keyed by what produced them.

A hit requires all three key components to match exactly: the node id, the
input hash (the node's own content hash combined with its dependencies'
input hashes) and the pipeline version.  Bumping the version (config or
hook change, new kiln release) drops every entry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from kiln._hashing import combine, digest_bytes

if TYPE_CHECKING:
    from kiln._types import NodeId
    from kiln.pipeline.base import Content


@dataclass(frozen=True, slots=True)
class CacheKey:
    node_id: NodeId
    input_hash: str
    pipeline_version: str


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A stored pipeline result.

    Attributes:
        key: What produced the output.
        output: Transformed content.
        output_hash: Digest of ``output``.
        metadata: Metadata the pipeline produced (treat as read-only).

    """

    key: CacheKey
    output: Content
    output_hash: str
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)


def input_hash(content_hash: str, dependency_hashes: dict[NodeId, str]) -> str:
    """Combine a node's own hash with its dependencies' input hashes."""
    parts = [content_hash]
    for dep in sorted(dependency_hashes):
        parts.extend((dep, dependency_hashes[dep]))
    return combine(*parts)


def output_hash(output: Content) -> str:
    return digest_bytes(output.encode("utf-8") if isinstance(output, str) else output)


class BuildCache:
    """Versioned store of pipeline outputs, one entry per node.

    Thread Safety:
        Not locked.  Only the scheduler thread reads or writes it; workers
        never see the cache.

    """

    __slots__ = ("_entries", "_version", "hits", "misses")

    def __init__(self, version: str = "") -> None:
        self._entries: dict[NodeId, CacheEntry] = {}
        self._version = version
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._entries

    @property
    def version(self) -> str:
        return self._version

    def set_version(self, version: str) -> bool:
        """Switch to *version*; returns True if that invalidated the cache."""
        if version == self._version:
            return False
        self._version = version
        self.invalidate_all()
        return True

    def lookup(self, node_id: NodeId, input_hash: str, pipeline_version: str) -> CacheEntry | None:
        """Return the entry only if every key component matches."""
        entry = self._entries.get(node_id)
        if entry is not None and entry.key == CacheKey(node_id, input_hash, pipeline_version):
            self.hits += 1
            return entry
        self.misses += 1
        return None

    def latest(self, node_id: NodeId) -> CacheEntry | None:
        """Last stored entry for *node_id*, whatever produced it."""
        return self._entries.get(node_id)

    def store(
        self,
        node_id: NodeId,
        input_hash: str,
        pipeline_version: str,
        output: Content,
        metadata: dict[str, Any] | None = None,
    ) -> CacheEntry:
        """Store a result, replacing any prior entry for *node_id*."""
        entry = CacheEntry(
            key=CacheKey(node_id, input_hash, pipeline_version),
            output=output,
            output_hash=output_hash(output),
            metadata=dict(metadata or {}),
        )
        self._entries[node_id] = entry
        return entry

    def invalidate(self, node_id: NodeId) -> None:
        self._entries.pop(node_id, None)

    def invalidate_all(self) -> int:
        """Drop every entry and return how many there were."""
        count = len(self._entries)
        self._entries.clear()
        return count
