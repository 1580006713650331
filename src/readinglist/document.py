"""Read and write the Bookmarks.plist file.

Reads map filesystem failures onto the error taxonomy:

    missing / permission denied / is a directory  -> LocationUnavailable
    any other OSError                             -> DocumentIOError
    undecodable bytes                             -> MalformedDocument

Writes are whole-file and atomic: the new document is encoded in memory,
written to a sibling tmp file, fsynced, then renamed over the original.
A failed write leaves the original untouched.
"""

from __future__ import annotations

import contextlib
import logging
import os
import stat
from pathlib import Path
from typing import Any

from readinglist import codec
from readinglist.errors import DocumentIOError, EntryNotFound, LocationUnavailable
from readinglist.models import DeleteResult
from readinglist.navigator import READING_LIST_TITLE, locator_predicate, remove_matching

logger = logging.getLogger("readinglist.document")


def read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except FileNotFoundError as exc:
        raise LocationUnavailable(path, "not found") from exc
    except PermissionError as exc:
        raise LocationUnavailable(path, "permission denied") from exc
    except IsADirectoryError as exc:
        raise LocationUnavailable(path, "is a directory") from exc
    except OSError as exc:
        msg = f"failed to read {path}: {exc}"
        raise DocumentIOError(msg) from exc


def read_document(path: Path | str) -> dict[str, Any]:
    """Read and decode the document at path."""
    path = Path(path)
    data = read_bytes(path)
    tree = codec.decode(data)
    logger.debug("read %s (%d bytes, %s)", path, len(data), codec.detect_format(data))
    return tree


def write_document(path: Path | str, tree: dict[str, Any], fmt: str = "xml") -> None:
    """Atomically replace the document at path with tree.

    A symlinked path is followed, so the link target gets rewritten and the
    link itself survives.
    """
    path = Path(path).resolve()
    data = codec.encode(tree, fmt)

    # Keep the original permissions on the replacement file
    mode: int | None = None
    with contextlib.suppress(OSError):
        mode = stat.S_IMODE(path.stat().st_mode)

    tmp = path.with_name(f".{path.name}.tmp")
    try:
        with tmp.open("wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            tmp.chmod(mode)
        tmp.replace(path)
    except OSError as exc:
        with contextlib.suppress(OSError):
            tmp.unlink()
        msg = f"failed to write {path}: {exc}"
        raise DocumentIOError(msg) from exc
    logger.debug("wrote %s (%d bytes, %s)", path, len(data), fmt)


def remove_locator(
    path: Path | str,
    locator: str,
    fmt: str = "xml",
    folder_title: str = READING_LIST_TITLE,
) -> DeleteResult:
    """Remove every reading list leaf with URL locator from the file.

    Returns a DeleteResult with the removed count. Raises EntryNotFound (file left
    untouched) when no leaf matched.
    """
    path = Path(path)
    tree = read_document(path)
    new_tree, removed, location = remove_matching(tree, locator_predicate(locator), folder_title)
    if removed == 0:
        raise EntryNotFound(locator)
    write_document(path, new_tree, fmt)
    logger.info("removed %d leaf(s) for %s from %s (%s)", removed, locator, path, location.value)
    return DeleteResult(locator=locator, removed=removed, location=location)
