"""Exception taxonomy for reading the Safari bookmarks document."""

from __future__ import annotations

from pathlib import Path


class ReadingListError(Exception):
    """Base class for every error raised by readinglist."""


class LocationUnavailable(ReadingListError):
    """The bookmarks document is missing or cannot be opened."""

    def __init__(self, path: Path | str, reason: str = "") -> None:
        self.path = Path(path)
        self.reason = reason
        msg = f"bookmarks document unavailable: {self.path}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class MalformedDocument(ReadingListError):
    """The bytes are not a property list, or the root is not a dictionary."""


class EncodingError(ReadingListError):
    """A tree contains a value the property list format cannot represent."""


class EntryNotFound(ReadingListError):
    """No reading list leaf carries the given URL."""

    def __init__(self, locator: str) -> None:
        self.locator = locator
        super().__init__(f"not in reading list: {locator}")


class DocumentIOError(ReadingListError):
    """Disk-level failure while reading or writing the document."""


class ConfigError(ReadingListError):
    """readinglist.toml holds an invalid value."""
