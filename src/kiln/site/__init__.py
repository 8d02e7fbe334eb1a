"""Site layer — the read-only site model, layouts, the sitemap and feeds."""

from kiln.site.feed import generate_feed
from kiln.site.model import PageEntry, SiteData, SiteModelBuilder, freeze, read_only, thaw
from kiln.site.navigation import NavNode, breadcrumbs, build_navigation
from kiln.site.render import TemplateRenderer, merge_data
from kiln.site.sitemap import generate_sitemap

__all__ = [
    "NavNode",
    "PageEntry",
    "SiteData",
    "SiteModelBuilder",
    "TemplateRenderer",
    "breadcrumbs",
    "build_navigation",
    "freeze",
    "generate_feed",
    "generate_sitemap",
    "merge_data",
    "read_only",
    "thaw",
]
