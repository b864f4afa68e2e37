from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from .file_format import CollectionFileRecord, UnsupportedFileVersion
from .frozen import thaw
from .interfaces import Snapshot, SnapshotStorage
from .json_store import atomic_write_json, read_json, temp_path_for
from .locks import GLOBAL_PATH_LOCKS

logger = logging.getLogger(__name__)


class DiskSnapshotStorage(SnapshotStorage):
    """
    Stores one collection as a single JSON file at a fixed path.

    - Always returns a snapshot (empty on missing/invalid files, with a warning logged).
    - Always writes the versioned format, atomically.
    """

    def __init__(self, path: Path, *, fsync: bool = True):
        self._path = path
        self._fsync = fsync

    @property
    def path(self) -> Path:
        return self._path

    @property
    def temp_path(self) -> Path:
        return temp_path_for(self._path)

    def load(self) -> Snapshot:
        lock = GLOBAL_PATH_LOCKS.lock_for(self._path)
        with lock:
            try:
                raw = read_json(self._path)
            except (OSError, ValueError, RecursionError) as e:
                logger.warning("Could not read %s, starting empty: %s", self._path, e)
                return Snapshot()

        if raw is None:
            logger.debug("No data at %s, starting empty", self._path)
            return Snapshot()
        if not isinstance(raw, dict):
            logger.warning("Unexpected top-level %s in %s, starting empty", type(raw).__name__, self._path)
            return Snapshot()

        try:
            record = CollectionFileRecord.from_disk_doc(raw)
        except (UnsupportedFileVersion, ValidationError, RecursionError) as e:
            logger.warning("Could not decode %s, starting empty: %s", self._path, e)
            return Snapshot()

        logger.debug("Loaded %d documents from %s", len(record.store_data), self._path)
        return Snapshot(documents=record.store_data, metadata=record.meta_data)

    def save(self, snapshot: Snapshot) -> None:
        record = CollectionFileRecord(
            store_data={key: thaw(doc) for key, doc in snapshot.documents.items()},
            meta_data=thaw(snapshot.metadata),
        )
        lock = GLOBAL_PATH_LOCKS.lock_for(self._path)
        with lock:
            atomic_write_json(self._path, record.to_disk_doc(), fsync=self._fsync)
        logger.debug("Wrote %d documents to %s", len(snapshot.documents), self._path)
