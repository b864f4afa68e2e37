from __future__ import annotations

import asyncio
import logging
import re
import secrets
import threading
import time
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator

from .disk_store import DiskSnapshotStorage
from .events import ChangeEvent, ChangeListener, ChangeNotifier, ErrorListener, FlushFailed
from .flush import FlushScheduler
from .frozen import FrozenDict, freeze
from .interfaces import Predicate, Snapshot, SnapshotStorage
from .paths import default_filename, default_storage_dir
from .query import compile_query
from .settings import DEFAULT_DUMP_DELAY_MS

logger = logging.getLogger(__name__)

_KEY_PATH_RE = re.compile(r"[^.\[\]]+")

DocumentId = str | int | float
QueryCompiler = Callable[[Any], Predicate]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _key(doc_id: Any) -> str:
    # JSON object keys are strings, so 1 and "1" address the same document.
    if isinstance(doc_id, bool) or not isinstance(doc_id, (str, int, float)):
        raise TypeError(f"document id must be a string or a number, got {type(doc_id).__name__}")
    return str(doc_id)


def _key_path(key: str | Sequence[str | int]) -> list[str]:
    if isinstance(key, str):
        return _KEY_PATH_RE.findall(key)
    return [str(part) for part in key]


class DataStore:
    """
    One named collection of JSON documents, held in memory and persisted to a single file.

    - Reads and writes never touch the disk; each mutation (re)arms a debounced flush.
    - Every document and metadata value handed out is a FrozenDict snapshot. To change a
      document, copy it (`doc.thaw()`) and `upsert` the copy.
    - Change events are delivered asynchronously, see `subscribe`.
    """

    def __init__(
        self,
        name: str,
        *,
        path: str | Path | None = None,
        filename: str | None = None,
        dump_delay: int = DEFAULT_DUMP_DELAY_MS,
        storage: SnapshotStorage | None = None,
        query: QueryCompiler = compile_query,
        fsync: bool = True,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self._name = name
        if storage is None:
            directory = Path(path) if path is not None else default_storage_dir()
            storage = DiskSnapshotStorage(directory / (filename or default_filename(name)), fsync=fsync)
        self._storage = storage
        self._query = query

        self._lock = threading.RLock()
        self._store: dict[str, FrozenDict] = {}
        self._meta = FrozenDict()

        self._notifier = ChangeNotifier(name, loop=loop)
        self._flusher = FlushScheduler(
            self._dump,
            delay=dump_delay / 1000,
            name=name,
            on_error=self._report_flush_error,
        )

        self._load()
        # Queued, not delivered: listeners attached right after construction still see it.
        self._notifier.publish(ChangeEvent("loaded", self._ids(self._store.values()), name))

    def __repr__(self) -> str:
        return f"DataStore(name={self._name!r}, count={self.count()})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def filepath(self) -> Path | None:
        return self._storage.path if isinstance(self._storage, DiskSnapshotStorage) else None

    @property
    def notifier(self) -> ChangeNotifier:
        return self._notifier

    @property
    def flusher(self) -> FlushScheduler:
        return self._flusher

    # --- reads -------------------------------------------------------------

    def find(self, filter: Any = None) -> list[FrozenDict]:
        """
        All documents, or those matching `filter`.

        `filter` is None, a Mongo-style mapping ({"prio": {"$gt": 3}}) or a callable
        predicate. Malformed filters raise QueryError.
        """
        predicate = self._query(filter) if filter is not None else None
        with self._lock:
            docs = list(self._store.values())
        if predicate is None:
            return docs
        return [doc for doc in docs if predicate(doc)]

    def find_one(self, doc_id: DocumentId) -> FrozenDict | None:
        return self._store.get(_key(doc_id))

    def count(self) -> int:
        return len(self._store)

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, doc_id: object) -> bool:
        try:
            return _key(doc_id) in self._store
        except TypeError:
            return False

    def __iter__(self) -> Iterator[FrozenDict]:
        return iter(self.find())

    def meta(self, key: str | Sequence[str | int] | None = None) -> Any:
        """
        Collection metadata, whole or at a key path ("sync.cursor", "shards[0]", ["a", "b"]).

        A path that does not exist yields None.
        """
        current: Any = self._meta
        if key is None:
            return current
        parts = _key_path(key)
        if not parts:
            return None
        for part in parts:
            if isinstance(current, Mapping):
                current = current.get(part)
            elif isinstance(current, tuple) and part.isdigit() and int(part) < len(current):
                current = current[int(part)]
            else:
                return None
            if current is None:
                return None
        return current

    # --- writes ------------------------------------------------------------

    def gen_id(self) -> str:
        with self._lock:
            while True:
                doc_id = secrets.token_hex(16)
                if doc_id not in self._store:
                    return doc_id

    def upsert(self, doc: Mapping[str, Any]) -> FrozenDict:
        """
        Insert or update one document; a missing (or None) id gets a fresh one.

        Fields of `doc` are merged over the stored version (top-level keys, `doc` wins).
        `meta` is always computed here: `created` survives updates, `updated` is now and
        `version` is 0 on insert then +1 per upsert. Returns the stored snapshot itself.
        """
        if not isinstance(doc, Mapping):
            raise TypeError(f"upsert expects a mapping, got {type(doc).__name__}")
        fields = freeze({k: v for k, v in doc.items() if k not in ("id", "meta")})

        with self._lock:
            doc_id = doc.get("id")
            if doc_id is None:
                doc_id = self.gen_id()
            key = _key(doc_id)

            prev = self._store.get(key)
            prev_meta = prev.get("meta") if prev is not None else None
            if not isinstance(prev_meta, Mapping):
                prev_meta = FrozenDict()
            prev_version = prev_meta.get("version", -1)
            if not isinstance(prev_version, int) or isinstance(prev_version, bool):
                prev_version = -1

            now = _now_ms()
            merged: dict[str, Any] = dict(prev) if prev is not None else {}
            merged.update(fields)
            merged["id"] = doc_id
            merged["meta"] = FrozenDict(
                {
                    "created": prev_meta.get("created", now),
                    "updated": now,
                    "version": prev_version + 1,
                }
            )
            new_doc = FrozenDict(merged)

            self._store[key] = new_doc
            self._flusher.request()
            operation = "created" if prev is None else "updated"
            self._notifier.publish(ChangeEvent(operation, (doc_id,), self._name))
        return new_doc

    def delete(self, doc_id: DocumentId) -> bool:
        key = _key(doc_id)
        with self._lock:
            removed = self._store.pop(key, None)
            if removed is None:
                return False
            self._flusher.request()
            self._notifier.publish(ChangeEvent("deleted", (removed.get("id", doc_id),), self._name))
        return True

    def clear(self) -> bool:
        with self._lock:
            ids = self._ids(self._store.values())
            self._store = {}
            self._meta = FrozenDict()
            self._flusher.request()
            self._notifier.publish(ChangeEvent("deleted", ids, self._name))
        return True

    def meta_set(self, partial: Mapping[str, Any]) -> FrozenDict:
        """
        Shallow-merge `partial` into the collection metadata and return the result.

        Metadata is not a document: no change event is published.
        """
        if not isinstance(partial, Mapping):
            raise TypeError(f"meta_set expects a mapping, got {type(partial).__name__}")
        frozen = freeze(partial)
        with self._lock:
            self._meta = FrozenDict({**self._meta, **frozen})
            self._flusher.request()
            return self._meta

    # --- events ------------------------------------------------------------

    def subscribe(self, listener: ChangeListener, operations: Iterable[str] | None = None) -> Callable[[], None]:
        """
        Call `listener(ChangeEvent)` after every mutation, plus once with `loaded` after startup.

        Returns a function that unsubscribes. `operations` limits delivery to those kinds.
        """
        return self._notifier.subscribe(listener, operations)

    def on_flush_error(self, listener: ErrorListener) -> Callable[[], None]:
        return self._notifier.on_error(listener)

    # --- persistence -------------------------------------------------------

    def flush(self) -> None:
        """Write the current state now instead of waiting for the debounce timer."""
        self._flusher.flush_now()

    async def flush_async(self) -> None:
        await asyncio.to_thread(self.flush)

    def close(self) -> None:
        """Persist pending changes and stop background work. In-memory use keeps working."""
        self._flusher.close()
        self._notifier.close()

    def _load(self) -> None:
        snapshot = self._storage.load()
        store: dict[str, FrozenDict] = {}
        for key, raw in snapshot.documents.items():
            doc = dict(raw)
            doc.setdefault("id", key)
            try:
                frozen = freeze(doc)
                store[_key(frozen["id"])] = frozen
            except (TypeError, RecursionError) as e:
                logger.warning("Skipping unreadable document %r in %s: %s", key, self._name, e)
        try:
            meta = freeze(snapshot.metadata)
        except (TypeError, RecursionError) as e:
            logger.warning("Ignoring unreadable metadata in %s: %s", self._name, e)
            meta = FrozenDict()

        with self._lock:
            self._store = store
            self._meta = meta
        logger.debug("Collection %s loaded with %d documents", self._name, len(store))

    def _dump(self) -> None:
        with self._lock:
            snapshot = Snapshot(documents=dict(self._store), metadata=self._meta)
        self._storage.save(snapshot)

    def _report_flush_error(self, error: BaseException) -> None:
        self._notifier.publish(FlushFailed(self._name, error))

    @staticmethod
    def _ids(docs: Iterable[FrozenDict]) -> tuple[Any, ...]:
        return tuple(doc["id"] for doc in docs)
