"""Sitemap generation — sitemap.xml from the generation's pages.

Requires ``base_url``.  ``lastmod`` comes from each page's ``date`` front
matter (omitted for undated pages), never from the clock, so the file is
reproducible from the sources alone.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from xml.etree.ElementTree import Element, SubElement, tostring

if TYPE_CHECKING:
    from collections.abc import Iterable

    from kiln.site.model import PageEntry

# XML namespace for sitemaps
_SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"

SITEMAP_URL = "/sitemap.xml"


def generate_sitemap(pages: Iterable[PageEntry], base_url: str) -> str:
    """Generate a sitemap.xml string.

    Args:
        pages: Page entries with output in this generation.
        base_url: Site base URL (e.g., ``"https://example.com"``).

    Returns:
        Complete XML document, URLs in sorted order.

    """
    base = base_url.rstrip("/")

    urlset = Element("urlset")
    urlset.set("xmlns", _SITEMAP_NS)

    for page in sorted(pages, key=lambda p: p.url):
        if page.data.get("sitemap") is False:
            continue
        url_el = SubElement(urlset, "url")
        loc = SubElement(url_el, "loc")
        loc.text = base + page.url
        if page.date:
            lastmod = SubElement(url_el, "lastmod")
            lastmod.text = page.date[:10]

    xml = tostring(urlset, encoding="unicode", xml_declaration=False)
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + xml + "\n"
