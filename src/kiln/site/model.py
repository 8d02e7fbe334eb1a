"""Site data model — the read-only view templates and scripts see.

One ``SiteData`` snapshot is built per generation and never changes
afterwards; every mapping in it is a ``MappingProxyType`` and every list a
tuple.  ``as_context`` hands out fresh plain structures, so nothing a
template does can leak into the snapshot.

Aggregates (collections, taxonomies, navigation) are rebuilt only when the
membership signature changes: a page added or removed, or a page moved to
another URL, section, date or taxonomy term.  Otherwise the previous
aggregates are kept and only the entries whose data changed are swapped
in; unchanged entries are shared by reference between generations.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import PurePosixPath
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from kiln._hashing import digest_value
from kiln.pipeline.base import INJECTED_KEY
from kiln.site.navigation import NavNode, build_navigation

if TYPE_CHECKING:
    from kiln._types import NodeId
    from kiln.config import KilnConfig

ALL_COLLECTION = "all"

_EMPTY: Mapping[str, Any] = MappingProxyType({})


def freeze(value: Any) -> Any:
    """Deep read-only copy: dicts become proxies, lists become tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({str(k): freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def thaw(value: Any) -> Any:
    """Inverse of ``freeze``: plain, freshly allocated dicts and lists."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value


class ReadOnlyDict(dict):
    """A plain ``dict`` that refuses mutation.

    Templates look dict keys up before attributes, so data keys such as
    ``items`` or ``values`` are not shadowed by mapping methods.
    """

    __slots__ = ()

    def _refuse(self, *args: Any, **kwargs: Any) -> None:
        msg = "template context is read-only"
        raise TypeError(msg)

    __setitem__ = __delitem__ = __ior__ = _refuse
    clear = pop = popitem = setdefault = update = _refuse


def read_only(value: Any) -> Any:
    """Deep read-only copy for templates: ``ReadOnlyDict`` and tuples."""
    if isinstance(value, Mapping):
        return ReadOnlyDict({str(k): read_only(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(read_only(v) for v in value)
    return value


@dataclass(frozen=True, slots=True)
class PageEntry:
    """A page as the rest of the site sees it.

    Attributes:
        node_id: Source node id.
        url: Public URL.
        title: ``title`` front-matter value, else the file stem.
        date: ISO date text, or None when the page has no date.
        section: First directory under the content root ("" at top level).
        data: Frozen page metadata (front matter plus hook metadata).

    """

    node_id: NodeId
    url: str
    title: str
    date: str | None
    section: str
    data: Mapping[str, Any]

    def as_dict(self) -> dict[str, Any]:
        return {
            **thaw(self.data),
            "path": self.node_id,
            "url": self.url,
            "title": self.title,
            "date": self.date,
            "section": self.section,
        }


def make_entry(node_id: NodeId, relative: str, url: str, metadata: Mapping[str, Any]) -> PageEntry:
    """Build a ``PageEntry`` from a page's pipeline metadata.

    Args:
        node_id: Source node id.
        relative: Path inside the content tree.
        url: Public URL.
        metadata: Metadata produced by the page's chain.

    """
    data = {k: v for k, v in metadata.items() if k != INJECTED_KEY}
    path = PurePosixPath(relative)
    raw_date = data.get("date")
    if isinstance(raw_date, (datetime, date)):
        page_date: str | None = raw_date.isoformat()
    elif raw_date is None or raw_date == "":
        page_date = None
    else:
        page_date = str(raw_date)
    title = data.get("title")
    return PageEntry(
        node_id=node_id,
        url=url,
        title=str(title) if title not in (None, "") else path.stem,
        date=page_date,
        section=path.parts[0] if len(path.parts) > 1 else "",
        data=freeze(data),
    )


def sort_entries(entries: list[PageEntry]) -> tuple[PageEntry, ...]:
    """Date descending (undated last), then URL."""
    by_url = sorted(entries, key=lambda e: e.url)
    return tuple(sorted(by_url, key=lambda e: e.date or "", reverse=True))


def taxonomy_terms(entry: PageEntry, key: str) -> tuple[str, ...]:
    """Terms a page lists under *key*; a single string or a list of strings."""
    value = entry.data.get(key)
    if isinstance(value, str):
        return (value,) if value else ()
    if isinstance(value, tuple):
        return tuple(v for v in value if isinstance(v, str) and v)
    return ()


@dataclass(frozen=True, slots=True)
class SiteData:
    """Read-only snapshot of the site for one generation.

    Attributes:
        generation: Generation number it was built in.
        config: Public config values.
        data: Global data (data directory plus config ``site``).
        pages: Page entries keyed by node id.
        collections: ``all`` plus one per top-level section.
        taxonomies: Taxonomy key -> term -> entries.
        navigation: URL tree of the pages.
        digest: Digest of everything above except ``generation``.

    """

    generation: int
    config: Mapping[str, Any]
    data: Mapping[str, Any]
    pages: Mapping[NodeId, PageEntry]
    collections: Mapping[str, tuple[PageEntry, ...]]
    taxonomies: Mapping[str, Mapping[str, tuple[PageEntry, ...]]]
    navigation: tuple[NavNode, ...]
    digest: str

    def page(self, node_id: NodeId) -> PageEntry | None:
        return self.pages.get(node_id)

    def as_context(self) -> dict[str, Any]:
        """Fresh plain structures for a template or script."""
        return {
            "generation": self.generation,
            "config": thaw(self.config),
            "data": thaw(self.data),
            "pages": [e.as_dict() for e in sorted(self.pages.values(), key=lambda e: e.url)],
            "collections": {
                name: [e.as_dict() for e in entries] for name, entries in self.collections.items()
            },
            "taxonomies": {
                key: {term: [e.as_dict() for e in entries] for term, entries in terms.items()}
                for key, terms in self.taxonomies.items()
            },
            "navigation": [node.as_dict() for node in self.navigation],
        }


class SiteModelBuilder:
    """Builds ``SiteData`` snapshots, memoizing per-page entries.

    Owned by the scheduler thread; the snapshots it returns may be shared
    with any thread.
    """

    __slots__ = (
        "_collections",
        "_entries",
        "_navigation",
        "_signature",
        "_taxonomies",
        "aggregates_rebuilt",
    )

    def __init__(self) -> None:
        self._entries: dict[NodeId, tuple[str, PageEntry]] = {}
        self._signature: tuple[Any, ...] | None = None
        self._collections: dict[str, tuple[PageEntry, ...]] = {}
        self._taxonomies: dict[str, dict[str, tuple[PageEntry, ...]]] = {}
        self._navigation: tuple[NavNode, ...] = ()
        self.aggregates_rebuilt = False

    def entry(self, node_id: NodeId) -> PageEntry | None:
        memo = self._entries.get(node_id)
        return memo[1] if memo else None

    def build(
        self,
        generation: int,
        config: KilnConfig,
        global_data: Mapping[str, Any],
        pages: Mapping[NodeId, tuple[str, str, Mapping[str, Any]]],
    ) -> SiteData:
        """Snapshot the site.

        Args:
            generation: Current generation number.
            config: Generation config.
            global_data: Global data tree.
            pages: Node id -> ``(content-relative path, url, metadata)``
                for every page with output.

        """
        entries: dict[NodeId, PageEntry] = {}
        changed: dict[NodeId, PageEntry] = {}
        memo: dict[NodeId, tuple[str, PageEntry]] = {}
        for node_id in sorted(pages):
            relative, url, metadata = pages[node_id]
            key = digest_value([relative, url, {k: v for k, v in metadata.items() if k != INJECTED_KEY}])
            previous = self._entries.get(node_id)
            if previous is not None and previous[0] == key:
                entry = previous[1]
            else:
                entry = make_entry(node_id, relative, url, metadata)
                changed[node_id] = entry
            memo[node_id] = (key, entry)
            entries[node_id] = entry
        self._entries = memo

        signature = self._membership(entries, config.taxonomies)
        if signature != self._signature:
            self._rebuild_aggregates(entries, config.taxonomies)
            self._signature = signature
            self.aggregates_rebuilt = True
        else:
            if changed:
                self._swap_entries(changed)
            self.aggregates_rebuilt = False

        config_values = freeze(config.public_values())
        data = freeze(global_data)
        digest = digest_value({
            "config": thaw(config_values),
            "data": thaw(data),
            "pages": [entries[n].as_dict() for n in sorted(entries)],
        })
        return SiteData(
            generation=generation,
            config=config_values,
            data=data,
            pages=MappingProxyType(entries),
            collections=MappingProxyType(dict(self._collections)),
            taxonomies=MappingProxyType({k: MappingProxyType(dict(v)) for k, v in self._taxonomies.items()}),
            navigation=self._navigation,
            digest=digest,
        )

    @staticmethod
    def _membership(entries: dict[NodeId, PageEntry], taxonomies: tuple[str, ...]) -> tuple[Any, ...]:
        return tuple(
            (
                e.node_id,
                e.url,
                e.section,
                e.date,
                tuple(taxonomies),
                tuple(taxonomy_terms(e, key) for key in taxonomies),
            )
            for e in (entries[n] for n in sorted(entries))
        )

    def _rebuild_aggregates(self, entries: dict[NodeId, PageEntry], taxonomies: tuple[str, ...]) -> None:
        pages = list(entries.values())
        sections: dict[str, list[PageEntry]] = {}
        for entry in pages:
            if entry.section:
                sections.setdefault(entry.section, []).append(entry)
        collections = {ALL_COLLECTION: sort_entries(pages)}
        for name in sorted(sections):
            collections[name] = sort_entries(sections[name])
        self._collections = collections

        result: dict[str, dict[str, tuple[PageEntry, ...]]] = {}
        for key in taxonomies:
            terms: dict[str, list[PageEntry]] = {}
            for entry in pages:
                for term in taxonomy_terms(entry, key):
                    terms.setdefault(term, []).append(entry)
            result[key] = {term: sort_entries(terms[term]) for term in sorted(terms)}
        self._taxonomies = result
        self._navigation = build_navigation(pages)

    def _swap_entries(self, changed: dict[NodeId, PageEntry]) -> None:
        def swap(entries: tuple[PageEntry, ...]) -> tuple[PageEntry, ...]:
            return tuple(changed.get(e.node_id, e) for e in entries)

        self._collections = {name: swap(entries) for name, entries in self._collections.items()}
        self._taxonomies = {
            key: {term: swap(entries) for term, entries in terms.items()}
            for key, terms in self._taxonomies.items()
        }
        self._navigation = tuple(node.replace_titles(changed) for node in self._navigation)
