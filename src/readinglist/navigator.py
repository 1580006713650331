"""Locate the reading list inside a decoded Bookmarks.plist tree.

Two layouts exist in the wild:

    newer:  root.Children[i] = {"Title": "com.apple.ReadingList",
                                "Children": [<leaf>, <leaf>, ...]}
    older:  root.Children = [<leaf with "ReadingList" key>, <folder>, ...]

The dedicated folder (one with a Children list) always wins. Flat scanning only runs when no such
folder exists, so an ordinary bookmark that happens to carry a ReadingList
key is never picked up alongside a real folder.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from readinglist.errors import MalformedDocument
from readinglist.extractor import KEY_READING_LIST, KEY_TITLE, KEY_URL, is_leaf, parse_locator
from readinglist.models import LeafSet, Location

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger("readinglist.navigator")

READING_LIST_TITLE = "com.apple.ReadingList"
KEY_CHILDREN = "Children"


def _top_children(root: dict[str, Any]) -> list[Any]:
    children = root.get(KEY_CHILDREN)
    if not isinstance(children, list):
        msg = "document root has no Children list"
        raise MalformedDocument(msg)
    return children


def find_dedicated_folder(children: list[Any], folder_title: str = READING_LIST_TITLE) -> int | None:
    """Index of the first top-level folder titled folder_title, or None.

    Only a folder holding a Children list counts. A titled entry without one
    is skipped, which leaves the flat scan to run.
    """
    for i, child in enumerate(children):
        if not isinstance(child, dict) or child.get(KEY_TITLE) != folder_title:
            continue
        if isinstance(child.get(KEY_CHILDREN), list):
            return i
        logger.warning("%s entry has no Children list, skipping", folder_title)
    return None


def is_flat_reading_list_leaf(node: Any) -> bool:
    """Legacy layout: a leaf bookmark carrying a ReadingList key (any value)."""
    return is_leaf(node) and KEY_READING_LIST in node


def locate_reading_list(root: dict[str, Any], folder_title: str = READING_LIST_TITLE) -> LeafSet:
    """Find the reading list leaves. First matching strategy wins."""
    children = _top_children(root)

    idx = find_dedicated_folder(children, folder_title)
    if idx is not None:
        leaves = tuple(c for c in children[idx][KEY_CHILDREN] if isinstance(c, dict))
        return LeafSet(leaves=leaves, location=Location.DEDICATED_FOLDER, folder_index=idx)

    leaves = tuple(c for c in children if is_flat_reading_list_leaf(c))
    return LeafSet(leaves=leaves, location=Location.FLAT_SCAN)


def locator_predicate(locator: str) -> Callable[[dict[str, Any]], bool]:
    """Match leaves whose URLString parses to exactly locator."""
    def _matches(leaf: dict[str, Any]) -> bool:
        return parse_locator(leaf.get(KEY_URL)) == locator
    return _matches


def remove_matching(
    root: dict[str, Any],
    predicate: Callable[[dict[str, Any]], bool],
    folder_title: str = READING_LIST_TITLE,
) -> tuple[dict[str, Any], int, Location]:
    """Drop reading list leaves matching predicate.

    Returns (new_root, removed_count, location). The input tree is not
    mutated; only the containers on the path to the removed leaves are
    copied. With removed_count == 0 the input root is returned as is.
    """
    children = _top_children(root)

    idx = find_dedicated_folder(children, folder_title)
    if idx is not None:
        folder = children[idx]
        old_leaves = folder[KEY_CHILDREN]
        kept = [c for c in old_leaves if not (isinstance(c, dict) and predicate(c))]
        removed = len(old_leaves) - len(kept)
        if removed == 0:
            return root, 0, Location.DEDICATED_FOLDER
        new_children = list(children)
        new_children[idx] = {**folder, KEY_CHILDREN: kept}
        return {**root, KEY_CHILDREN: new_children}, removed, Location.DEDICATED_FOLDER

    kept = [c for c in children if not (is_flat_reading_list_leaf(c) and predicate(c))]
    removed = len(children) - len(kept)
    if removed == 0:
        return root, 0, Location.FLAT_SCAN
    return {**root, KEY_CHILDREN: kept}, removed, Location.FLAT_SCAN
