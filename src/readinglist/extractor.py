"""Turn raw bookmark leaves into Record objects.

Leaf layout (keys used here):

    {
      "WebBookmarkType": "WebBookmarkTypeLeaf",
      "URLString": "https://example.com/post",
      "URIDictionary": {"title": "Display title"},
      "Title": "Bookmark title",                   # older documents
      "ReadingList": {"DateAdded": <date>, ...},
    }

Only the type marker and a URL that parses as an absolute URI are required;
title and date fall back through ordered chains (see resolve_title and
resolve_added_at).
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from readinglist.models import Record

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger = logging.getLogger("readinglist.extractor")

LEAF_TYPE = "WebBookmarkTypeLeaf"
KEY_TYPE = "WebBookmarkType"
KEY_URL = "URLString"
KEY_TITLE = "Title"
KEY_URI_DICT = "URIDictionary"
KEY_URI_TITLE = "title"
KEY_READING_LIST = "ReadingList"
KEY_DATE_ADDED = "DateAdded"

# RFC 3986 scheme followed by a non-empty, whitespace-free remainder.
_ABSOLUTE_URI = re.compile(r"[A-Za-z][A-Za-z0-9+.\-]*:[^\s]+")


def parse_locator(raw: Any) -> str | None:
    """Return raw if it is an absolute URI string, else None."""
    if not isinstance(raw, str):
        return None
    if _ABSOLUTE_URI.fullmatch(raw) is None:
        return None
    return raw


def is_leaf(node: Any) -> bool:
    return isinstance(node, dict) and node.get(KEY_TYPE) == LEAF_TYPE


def first_present(*candidates: Callable[[], Any]) -> Any:
    """Evaluate candidates in order; return the first non-None result."""
    for candidate in candidates:
        value = candidate()
        if value is not None:
            return value
    return None


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _sub_value(leaf: dict[str, Any], section: str, key: str) -> Any:
    sub = leaf.get(section)
    if isinstance(sub, dict):
        return sub.get(key)
    return None


def resolve_title(leaf: dict[str, Any], locator: str) -> str:
    """URIDictionary.title, then Title, then the URL itself."""
    return first_present(
        lambda: _str_or_none(_sub_value(leaf, KEY_URI_DICT, KEY_URI_TITLE)),
        lambda: _str_or_none(leaf.get(KEY_TITLE)),
        lambda: locator,
    )


def _as_utc(value: Any) -> datetime | None:
    if not isinstance(value, datetime):
        return None
    # plistlib returns naive datetimes in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def resolve_added_at(leaf: dict[str, Any], now: datetime) -> datetime:
    """ReadingList.DateAdded, else the extraction time.

    Legacy leaves without reading list metadata therefore get a fresh
    timestamp on every load.
    """
    return first_present(
        lambda: _as_utc(_sub_value(leaf, KEY_READING_LIST, KEY_DATE_ADDED)),
        lambda: now,
    )


def to_record(leaf: Any, now: datetime | None = None) -> Record | None:
    """Build a Record from a leaf, or None when the leaf must be skipped."""
    if not is_leaf(leaf):
        logger.debug("skipping non-leaf node")
        return None
    locator = parse_locator(leaf.get(KEY_URL))
    if locator is None:
        logger.debug("skipping leaf without a usable URL: %r", leaf.get(KEY_URL))
        return None
    return Record(
        title=resolve_title(leaf, locator),
        locator=locator,
        added_at=resolve_added_at(leaf, now or datetime.now(UTC)),
    )


def sort_newest_first(records: Iterable[Record]) -> list[Record]:
    """Newest first; equal timestamps keep extraction order (sorted is stable)."""
    return sorted(records, key=lambda r: r.added_at, reverse=True)


def extract_records(leaves: Iterable[Any], now: datetime | None = None) -> list[Record]:
    """Extract every usable leaf, newest first."""
    now = now or datetime.now(UTC)
    records = [r for r in (to_record(leaf, now) for leaf in leaves) if r is not None]
    return sort_newest_first(records)
