from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

from .paths import default_filename
from .settings import Settings, get_settings, load_settings
from .store import DataStore

logger = logging.getLogger(__name__)


class CollectionRegistry:
    """
    Lazily creates one DataStore per collection name, all under one storage root.

    Collections are cached for the registry's lifetime; `list_collections` only reports
    names opened through this registry, not every file that exists on disk.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        dump_delay: int | None = None,
        *,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self._path = Path(path) if path is not None else settings.storage_path
        self._dump_delay = dump_delay if dump_delay is not None else settings.dump_delay_ms
        self._fsync = settings.fsync

        self._lock = threading.Lock()
        self._collections: dict[str, DataStore] = {}

    @classmethod
    def from_env(cls, env_file: str | os.PathLike[str] | None = "local.env") -> "CollectionRegistry":
        return cls(settings=load_settings(env_file))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def dump_delay(self) -> int:
        return self._dump_delay

    def get_collection(self, name: str) -> DataStore:
        with self._lock:
            store = self._collections.get(name)
            if store is None:
                self._warn_on_shared_file(name)
                store = DataStore(
                    name,
                    path=self._path,
                    dump_delay=self._dump_delay,
                    fsync=self._fsync,
                )
                self._collections[name] = store
                logger.debug("Opened collection %s", name)
            return store

    def list_collections(self) -> list[str]:
        with self._lock:
            return list(self._collections)

    def flush_all(self) -> None:
        for store in self._stores():
            store.flush()

    def close(self) -> None:
        for store in self._stores():
            store.close()

    def _stores(self) -> list[DataStore]:
        with self._lock:
            return list(self._collections.values())

    def _warn_on_shared_file(self, name: str) -> None:
        filename = default_filename(name)
        for other in self._collections:
            if default_filename(other) == filename:
                logger.warning(
                    "Collections %r and %r both map to %s; they will overwrite each other",
                    other,
                    name,
                    self._path / filename,
                )
