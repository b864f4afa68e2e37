from __future__ import annotations

from pathlib import Path
import sys
import threading
from typing import Any


import pytest


# Ensure the repository root (parent of ./tests) is importable during pytest collection.
# This avoids ModuleNotFoundError for `import jsondocstore` under pytest import modes
# that don't automatically prepend the cwd/rootdir to sys.path.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from jsondocstore.interfaces import Snapshot  # noqa: E402
from jsondocstore.store import DataStore  # noqa: E402

ENV_VARS = ("DATASTORE_PATH", "DATASTORE_DUMP_DELAY_MS", "DATASTORE_FSYNC")


class Recorder:
    """Listener that remembers what it was called with and lets a test wait for it."""

    def __init__(self) -> None:
        self.events: list[Any] = []
        self._cond = threading.Condition()

    def __call__(self, event: Any) -> None:
        with self._cond:
            self.events.append(event)
            self._cond.notify_all()

    def wait_for(self, n: int, timeout: float = 5.0) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: len(self.events) >= n, timeout)


class MemoryStorage:
    """SnapshotStorage that keeps every saved snapshot in a list."""

    def __init__(self, initial: Snapshot | None = None, *, fail_with: Exception | None = None) -> None:
        self.initial = initial or Snapshot()
        self.fail_with = fail_with
        self.saves: list[Snapshot] = []
        self.saved = Recorder()

    def load(self) -> Snapshot:
        return self.initial

    def save(self, snapshot: Snapshot) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.saves.append(snapshot)
        self.saved(snapshot)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """
    Remove DATASTORE_* variables for the test and restore the original state afterwards,
    including variables a dotenv file sets during the test.
    """
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


@pytest.fixture
def sandbox_project(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """
    Redirect the default storage root to a temp project directory so tests never touch ./datastore.
    """
    import jsondocstore.paths as paths

    def _project_root() -> Path:
        return tmp_path

    clean_env.setattr(paths, "project_root", _project_root)
    return tmp_path


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def make_store(tmp_path: Path):
    """Build DataStores under tmp_path (no fsync, long debounce) and close them after the test."""
    stores: list[DataStore] = []

    def _make(name: str = "test-data", **kwargs: Any) -> DataStore:
        kwargs.setdefault("path", tmp_path)
        kwargs.setdefault("dump_delay", 60_000)
        kwargs.setdefault("fsync", False)
        store = DataStore(name, **kwargs)
        stores.append(store)
        return store

    yield _make

    for store in stores:
        store.close()


@pytest.fixture
def db(make_store) -> DataStore:
    store = make_store("test-data")
    store.clear()
    store.upsert({"id": 1, "text": "text 1", "prio": 3})
    store.upsert({"id": 2, "text": "text 2", "prio": 9})
    store.meta_set({"version": 23})
    return store
