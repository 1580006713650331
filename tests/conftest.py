from __future__ import annotations

import plistlib
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest

from readinglist.config import DocumentConfig, ReadingListConfig, StoreConfig


def leaf(
    url: str | None,
    *,
    title: str | None = None,
    display_title: str | None = None,
    added: datetime | None = None,
    reading_list: bool = True,
) -> dict[str, Any]:
    """A WebBookmarkTypeLeaf as Safari writes it."""
    node: dict[str, Any] = {"WebBookmarkType": "WebBookmarkTypeLeaf"}
    if url is not None:
        node["URLString"] = url
    if title is not None:
        node["Title"] = title
    if display_title is not None:
        node["URIDictionary"] = {"title": display_title}
    if reading_list:
        node["ReadingList"] = {"DateAdded": added} if added is not None else {"PreviewText": ""}
    return node


def folder(title: str, children: list[Any] | None = None) -> dict[str, Any]:
    node: dict[str, Any] = {"Title": title, "WebBookmarkType": "WebBookmarkTypeList"}
    if children is not None:
        node["Children"] = children
    return node


def reading_list_folder(children: list[Any] | None = None) -> dict[str, Any]:
    return folder("com.apple.ReadingList", children if children is not None else [])


def document(children: list[Any]) -> dict[str, Any]:
    return {
        "Title": "",
        "WebBookmarkFileVersion": 1,
        "WebBookmarkType": "WebBookmarkTypeList",
        "Children": children,
    }


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep tests away from the real ~/Library and ~/.config."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("READINGLIST_BOOKMARKS", raising=False)
    monkeypatch.delenv("READINGLIST_LOG_LEVEL", raising=False)
    monkeypatch.chdir(tmp_path)
    return home


@pytest.fixture()
def write_plist(tmp_path: Path):
    """write_plist(tree, name="Bookmarks.plist", fmt="binary") -> Path"""
    def _write(tree: dict[str, Any], name: str = "Bookmarks.plist", fmt: str = "binary") -> Path:
        path = tmp_path / name
        path.write_bytes(plistlib.dumps(tree, fmt=plistlib.FMT_BINARY if fmt == "binary" else plistlib.FMT_XML))
        return path
    return _write


@pytest.fixture()
def make_config():
    def _make(path: Path, on_unavailable: str = "clear", write_format: str = "xml") -> ReadingListConfig:
        return ReadingListConfig(
            document=DocumentConfig(path=str(path), write_format=write_format),
            store=StoreConfig(on_unavailable=on_unavailable),
        ).validate()
    return _make


def read_plist(path: Path) -> dict[str, Any]:
    return plistlib.loads(path.read_bytes())
