"""ReadingListConfig: where the bookmarks document lives and how to refresh it.

Lookup order for the config file:

    ./readinglist.toml                          # or any parent directory
    ~/.config/readinglist/readinglist.toml      # user-level fallback
    (built-in defaults when neither exists)

readinglist.toml example:

    [document]
    path = "~/Library/Safari/Bookmarks.plist"
    folder_title = "com.apple.ReadingList"
    write_format = "xml"        # xml | binary

    [refresh]
    interval = 60.0             # seconds between automatic reloads

    [store]
    on_unavailable = "clear"    # clear | keep | placeholders

    [logging]
    level = "INFO"

Environment overrides (also read from a .env file next to the config):

    READINGLIST_BOOKMARKS     document path
    READINGLIST_LOG_LEVEL     logging level
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from readinglist.codec import FORMATS
from readinglist.errors import ConfigError
from readinglist.navigator import READING_LIST_TITLE

_CONFIG_FILENAME = "readinglist.toml"
_USER_CONFIG_DIR = Path("~/.config/readinglist")
_DEFAULT_DOCUMENT = "~/Library/Safari/Bookmarks.plist"
_DEFAULT_INTERVAL = 60.0

ENV_BOOKMARKS = "READINGLIST_BOOKMARKS"
ENV_LOG_LEVEL = "READINGLIST_LOG_LEVEL"

UNAVAILABLE_POLICIES = ("clear", "keep", "placeholders")


@dataclass
class DocumentConfig:
    path: str = _DEFAULT_DOCUMENT           # kept unexpanded; resolved per call
    folder_title: str = READING_LIST_TITLE
    write_format: str = "xml"

    def resolve_path(self) -> Path:
        """Expand ~ now, so a changed HOME is picked up on the next call."""
        return Path(self.path).expanduser()


@dataclass
class RefreshConfig:
    interval: float = _DEFAULT_INTERVAL


@dataclass
class StoreConfig:
    on_unavailable: str = "clear"


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class ReadingListConfig:
    """Resolved configuration."""

    config_path: Path | None = None         # None when running on defaults
    document: DocumentConfig = field(default_factory=DocumentConfig)
    refresh: RefreshConfig = field(default_factory=RefreshConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> ReadingListConfig:
        if self.document.write_format not in FORMATS:
            msg = f"document.write_format must be one of {sorted(FORMATS)}, got {self.document.write_format!r}"
            raise ConfigError(msg)
        if self.store.on_unavailable not in UNAVAILABLE_POLICIES:
            msg = f"store.on_unavailable must be one of {list(UNAVAILABLE_POLICIES)}, got {self.store.on_unavailable!r}"
            raise ConfigError(msg)
        if self.refresh.interval <= 0:
            msg = f"refresh.interval must be positive, got {self.refresh.interval}"
            raise ConfigError(msg)
        if not self.document.folder_title:
            msg = "document.folder_title must not be empty"
            raise ConfigError(msg)
        return self


def _load_env(root: Path) -> dict[str, str]:
    """Parse a simple KEY=VALUE .env file (no external dependency)."""
    env_file = root / ".env"
    if not env_file.exists():
        return {}
    env: dict[str, str] = {}
    for line in env_file.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            k, _, v = line.partition("=")
            env[k.strip()] = v.strip().strip('"').strip("'")
    return env


def _find_config(start: Path) -> Path | None:
    """Walk upward from start looking for readinglist.toml, then the user dir."""
    for directory in (start, *start.parents):
        candidate = directory / _CONFIG_FILENAME
        if candidate.exists():
            return candidate
    user_config = _USER_CONFIG_DIR.expanduser() / _CONFIG_FILENAME
    if user_config.exists():
        return user_config
    return None


def load_config(path: Path | str | None = None, start: Path | str | None = None) -> ReadingListConfig:
    """Load readinglist.toml.

    path points at the file directly; otherwise it is searched for upward
    from start (default: cwd).
    """
    config_path = Path(path) if path else _find_config(Path(start) if start else Path.cwd())

    raw: dict[str, Any] = {}
    if config_path is not None:
        try:
            with config_path.open("rb") as f:
                raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            msg = f"{config_path}: {exc}"
            raise ConfigError(msg) from exc
        except OSError as exc:
            msg = f"cannot read {config_path}: {exc}"
            raise ConfigError(msg) from exc

    # Process environment wins over .env
    env = _load_env(config_path.parent) if config_path is not None else {}
    env.update({k: v for k, v in os.environ.items() if k in (ENV_BOOKMARKS, ENV_LOG_LEVEL)})

    doc_section = raw.get("document", {})
    refresh_section = raw.get("refresh", {})
    store_section = raw.get("store", {})
    log_section = raw.get("logging", {})

    try:
        interval = float(refresh_section.get("interval", _DEFAULT_INTERVAL))
    except (TypeError, ValueError) as exc:
        msg = f"refresh.interval must be a number: {exc}"
        raise ConfigError(msg) from exc

    cfg = ReadingListConfig(
        config_path=config_path,
        document=DocumentConfig(
            path=env.get(ENV_BOOKMARKS) or str(doc_section.get("path", _DEFAULT_DOCUMENT)),
            folder_title=str(doc_section.get("folder_title", READING_LIST_TITLE)),
            write_format=str(doc_section.get("write_format", "xml")),
        ),
        refresh=RefreshConfig(interval=interval),
        store=StoreConfig(
            on_unavailable=str(store_section.get("on_unavailable", "clear")),
        ),
        logging=LoggingConfig(
            level=(env.get(ENV_LOG_LEVEL) or str(log_section.get("level", "INFO"))).upper(),
        ),
    )
    return cfg.validate()


def init_config(root: Path) -> Path:
    """Write a default readinglist.toml at root. Raises if already exists."""
    config_path = root / _CONFIG_FILENAME
    if config_path.exists():
        msg = f"readinglist.toml already exists at {config_path}"
        raise FileExistsError(msg)

    content = f"""\
[document]
path = "{_DEFAULT_DOCUMENT}"
# folder_title = "{READING_LIST_TITLE}"
# write_format = "xml"        # xml | binary

[refresh]
# interval = {_DEFAULT_INTERVAL}             # seconds between automatic reloads

[store]
# on_unavailable = "clear"    # clear | keep | placeholders

[logging]
# level = "INFO"
"""
    root.mkdir(parents=True, exist_ok=True)
    config_path.write_text(content)
    return config_path
