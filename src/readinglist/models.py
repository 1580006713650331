"""Data models for the reading list engine."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlsplit


def new_identity() -> str:
    """Process-local record id. Regenerated on every load, never persisted."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Record:
    """One reading list entry extracted from a bookmark leaf."""

    title: str
    locator: str                       # absolute URI, the durable key for deletion
    added_at: datetime                 # timezone-aware, UTC
    identity: str = field(default_factory=new_identity, compare=False)
    placeholder: bool = False          # diagnostic entry shown while degraded

    @property
    def host(self) -> str:
        return urlsplit(self.locator).hostname or ""

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.identity,
            "title": self.title,
            "url": self.locator,
            "added_at": self.added_at.isoformat(),
        }
        if self.placeholder:
            d["placeholder"] = True
        return d


class StoreState(enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    DEGRADED = "degraded"
    DELETING = "deleting"


class Location(enum.Enum):
    """Where the reading list leaves were found in the document."""

    DEDICATED_FOLDER = "dedicated-folder"
    FLAT_SCAN = "flat-scan"


@dataclass(frozen=True)
class LeafSet:
    """Raw reading list leaves plus the site they were found at."""

    leaves: tuple[dict[str, Any], ...]
    location: Location
    folder_index: int | None = None    # index into root Children (dedicated folder only)

    def __len__(self) -> int:
        return len(self.leaves)


@dataclass(frozen=True)
class DeleteResult:
    locator: str
    removed: int = 0
    location: Location | None = None

    @property
    def found(self) -> bool:
        return self.removed > 0


# Shown while the document cannot be read and on_unavailable = "placeholders".
_PLACEHOLDERS = (
    ("Cannot access Safari Reading List directly", "https://developer.apple.com/documentation/security"),
    ("Please ensure the app has permission to access files", "https://developer.apple.com/macos"),
)


def placeholder_records() -> tuple[Record, ...]:
    now = datetime.now(UTC)
    return tuple(
        Record(title=title, locator=url, added_at=now, placeholder=True)
        for title, url in _PLACEHOLDERS
    )
