from __future__ import annotations

from .disk_store import DiskSnapshotStorage
from .errors import DataStoreError, QueryError
from .events import ChangeEvent, ChangeNotifier, FlushFailed
from .flush import FlushScheduler
from .frozen import FrozenDict, freeze, thaw
from .interfaces import Snapshot, SnapshotStorage
from .query import compile_query
from .registry import CollectionRegistry
from .settings import Settings, get_settings, load_settings
from .store import DataStore

__all__ = [
    "DataStore",
    "CollectionRegistry",
    "ChangeEvent",
    "FlushFailed",
    "ChangeNotifier",
    "FlushScheduler",
    "DiskSnapshotStorage",
    "Snapshot",
    "SnapshotStorage",
    "FrozenDict",
    "freeze",
    "thaw",
    "compile_query",
    "DataStoreError",
    "QueryError",
    "Settings",
    "get_settings",
    "load_settings",
]
