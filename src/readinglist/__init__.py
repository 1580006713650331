"""Safari Reading List reader: cached view of Bookmarks.plist with deletion.

Layers (leaf first):

    codec.py       bytes <-> dict/list/scalar tree (plistlib, XML or binary)
    navigator.py   find the reading list: dedicated com.apple.ReadingList
                   folder first, flat scan of legacy top-level leaves second
    extractor.py   leaf dict -> Record (title / date fallback chains)
    document.py    read with error mapping, atomic tmp-then-rename write
    store.py       ReadingListStore: load / delete / auto refresh

The source of truth is always the Bookmarks.plist on disk. The store only
holds a snapshot, rebuilt from scratch on every load.
"""

from readinglist.config import ReadingListConfig, init_config, load_config
from readinglist.errors import (
    ConfigError,
    DocumentIOError,
    EncodingError,
    EntryNotFound,
    LocationUnavailable,
    MalformedDocument,
    ReadingListError,
)
from readinglist.models import DeleteResult, LeafSet, Location, Record, StoreState
from readinglist.store import ReadingListStore

__all__ = [
    "ConfigError",
    "DeleteResult",
    "DocumentIOError",
    "EncodingError",
    "EntryNotFound",
    "LeafSet",
    "Location",
    "LocationUnavailable",
    "MalformedDocument",
    "ReadingListConfig",
    "ReadingListError",
    "ReadingListStore",
    "Record",
    "StoreState",
    "init_config",
    "load_config",
]
