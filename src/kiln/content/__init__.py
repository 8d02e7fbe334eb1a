"""Content layer — classification, discovery, front matter, data files, watching."""

from kiln.content.classifier import PAGE_KINDS, classify
from kiln.content.front_matter import FrontMatterError, split_front_matter
from kiln.content.source import SourceItem, discover_sources, is_ignored, read_source
from kiln.content.watcher import (
    ChangeBatch,
    ChangeDebouncer,
    ChangeEvent,
    ContentWatcher,
    categorize_change,
)

__all__ = [
    "PAGE_KINDS",
    "ChangeBatch",
    "ChangeDebouncer",
    "ChangeEvent",
    "ContentWatcher",
    "FrontMatterError",
    "SourceItem",
    "categorize_change",
    "classify",
    "discover_sources",
    "is_ignored",
    "read_source",
    "split_front_matter",
]
