"""Atom feed generation — one feed per configured ``FeedSpec``.

Like the sitemap, a feed needs ``base_url`` and takes every timestamp from
the sources (page ``date`` front matter, or the feed's ``updated`` value),
so the XML is reproducible.  Undated pages never appear in a feed.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import TYPE_CHECKING
from xml.etree.ElementTree import Element, SubElement, tostring

if TYPE_CHECKING:
    from collections.abc import Iterable

    from kiln.config import FeedPerson, FeedSpec
    from kiln.site.model import PageEntry

# XML namespace for Atom 1.0
_ATOM_NS = "http://www.w3.org/2005/Atom"


def rfc3339(value: str) -> str | None:
    """Atom timestamp for an ISO date or datetime, None if unparsable.

    Dates become midnight UTC; naive datetimes are taken as UTC.
    """
    try:
        moment = datetime.fromisoformat(value)
    except ValueError:
        try:
            day = date.fromisoformat(value)
        except ValueError:
            return None
        moment = datetime(day.year, day.month, day.day)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    if moment.utcoffset() == UTC.utcoffset(None):
        return moment.strftime("%Y-%m-%dT%H:%M:%SZ")
    return moment.isoformat(timespec="seconds")


def feed_entries(pages: Iterable[PageEntry]) -> list[tuple[str, PageEntry]]:
    """Dated pages with their timestamps, newest first (ties by URL)."""
    dated = []
    for page in sorted(pages, key=lambda p: p.url):
        stamp = rfc3339(page.date) if page.date else None
        if stamp is not None:
            dated.append((stamp, page))
    return sorted(dated, key=lambda pair: _instant(pair[0]), reverse=True)


def _instant(stamp: str) -> datetime:
    return datetime.fromisoformat(stamp.replace("Z", "+00:00"))


def generate_feed(spec: FeedSpec, pages: Iterable[PageEntry], base_url: str) -> str:
    """Generate an Atom document.

    Args:
        spec: Feed configuration.
        pages: Pages already selected for the feed.
        base_url: Site base URL (e.g., ``"https://example.com"``).

    Returns:
        Complete XML document.

    """
    base = base_url.rstrip("/")
    self_url = base + "/" + spec.url.lstrip("/")
    entries = feed_entries(pages)

    feed = Element("feed")
    feed.set("xmlns", _ATOM_NS)
    _text(feed, "id", spec.id or self_url)
    _text(feed, "title", spec.title)
    if spec.subtitle:
        _text(feed, "subtitle", spec.subtitle)

    updated = rfc3339(spec.updated) if spec.updated else None
    if updated is None and entries:
        updated = entries[0][0]
    if updated is not None:
        _text(feed, "updated", updated)

    SubElement(feed, "link", {"rel": "self", "href": self_url})
    SubElement(feed, "link", {"rel": "alternate", "href": base + "/"})
    for person in spec.authors:
        _person(feed, "author", person)
    for person in spec.contributors:
        _person(feed, "contributor", person)
    for term in spec.categories:
        SubElement(feed, "category", {"term": term})
    if spec.generator:
        _text(feed, "generator", spec.generator)
    for tag in ("icon", "logo", "rights"):
        value = getattr(spec, tag)
        if value:
            _text(feed, tag, value)

    for stamp, page in entries:
        url = base + page.url
        entry = SubElement(feed, "entry")
        _text(entry, "id", url)
        _text(entry, "title", page.title)
        _text(entry, "updated", stamp)
        SubElement(entry, "link", {"rel": "alternate", "href": url})
        author = page.data.get("author")
        if isinstance(author, str) and author:
            _text(SubElement(entry, "author"), "name", author)
        summary = page.data.get("summary") or page.data.get("description")
        if isinstance(summary, str) and summary:
            _text(entry, "summary", summary)

    xml = tostring(feed, encoding="unicode", xml_declaration=False)
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + xml + "\n"


def _text(parent: Element, tag: str, value: str) -> Element:
    child = SubElement(parent, tag)
    child.text = value
    return child


def _person(parent: Element, tag: str, person: FeedPerson) -> None:
    element = SubElement(parent, tag)
    _text(element, "name", person.name)
    if person.uri:
        _text(element, "uri", person.uri)
    if person.email:
        _text(element, "email", person.email)
