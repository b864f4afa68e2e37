from __future__ import annotations

import asyncio

import pytest

from jsondocstore import ChangeEvent, DataStore, Snapshot
from jsondocstore.events import ChangeNotifier

from conftest import MemoryStorage, Recorder


def _store(name: str = "events", **kwargs) -> DataStore:
    kwargs.setdefault("storage", MemoryStorage())
    kwargs.setdefault("dump_delay", 60_000)
    return DataStore(name, **kwargs)


def test_loaded_event_reaches_listener_attached_after_construction(recorder: Recorder):
    storage = MemoryStorage(Snapshot(documents={"a": {"id": "a"}, "b": {"id": "b"}}))
    store = _store(storage=storage)
    store.subscribe(recorder)
    try:
        assert recorder.wait_for(1)
        event = recorder.events[0]
        assert event == ChangeEvent("loaded", ("a", "b"), "events")
    finally:
        store.close()


def test_each_mutation_emits_its_kind_in_order(recorder: Recorder):
    store = _store()
    store.subscribe(recorder)
    try:
        doc = store.upsert({"text": "new"})
        store.upsert({"id": doc["id"], "text": "changed"})
        store.delete(doc["id"])
        store.upsert({"id": 1})
        store.clear()

        assert recorder.wait_for(6)
        assert [(e.operation, e.ids) for e in recorder.events] == [
            ("loaded", ()),
            ("created", (doc["id"],)),
            ("updated", (doc["id"],)),
            ("deleted", (doc["id"],)),
            ("created", (1,)),
            ("deleted", (1,)),
        ]
    finally:
        store.close()


def test_noops_and_metadata_emit_nothing(recorder: Recorder):
    store = _store()
    store.subscribe(recorder)
    try:
        assert store.delete("missing") is False
        store.meta_set({"cursor": 10})
        assert store.notifier.wait_idle(5)
        assert [e.operation for e in recorder.events] == ["loaded"]
    finally:
        store.close()


def test_clear_on_empty_store_emits_empty_delete(recorder: Recorder):
    store = _store()
    store.subscribe(recorder)
    try:
        store.clear()
        assert recorder.wait_for(2)
        assert recorder.events[1] == ChangeEvent("deleted", (), "events")
    finally:
        store.close()


def test_event_payload_is_immutable(recorder: Recorder):
    store = _store()
    store.subscribe(recorder)
    try:
        store.upsert({"id": 1})
        assert recorder.wait_for(2)
        event = recorder.events[1]
        with pytest.raises(AttributeError):
            event.ids = ()  # type: ignore[misc]
        assert isinstance(event.ids, tuple)
    finally:
        store.close()


def test_operations_filter_and_unsubscribe():
    store = _store()
    deletes = Recorder()
    everything = Recorder()
    store.subscribe(deletes, operations=["deleted"])
    unsubscribe = store.subscribe(everything)
    try:
        store.upsert({"id": 1})
        store.delete(1)
        assert deletes.wait_for(1)
        assert everything.wait_for(3)
        assert [e.operation for e in deletes.events] == ["deleted"]

        unsubscribe()
        store.upsert({"id": 2})
        assert deletes.wait_for(1)
        assert store.notifier.wait_idle(5)
        assert len(everything.events) == 3
    finally:
        store.close()


def test_unknown_operation_is_rejected():
    store = _store()
    try:
        with pytest.raises(ValueError):
            store.subscribe(lambda e: None, operations=["renamed"])
    finally:
        store.close()


def test_failing_listener_does_not_block_others(recorder: Recorder):
    store = _store()

    def broken(event: ChangeEvent) -> None:
        raise RuntimeError("listener bug")

    store.subscribe(broken)
    store.subscribe(recorder)
    try:
        store.upsert({"id": 1})
        assert recorder.wait_for(2)
    finally:
        store.close()


def test_delivery_waits_for_the_event_loop():
    async def _run():
        store = _store("loop")
        seen: list[ChangeEvent] = []
        store.subscribe(seen.append)
        assert store.notifier.uses_event_loop

        store.upsert({"id": 1})
        # nothing is delivered until this coroutine yields
        assert seen == []

        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert [e.operation for e in seen] == ["loaded", "created"]
        store.close()

    asyncio.run(_run())


def test_backlog_before_first_listener_is_bounded(monkeypatch: pytest.MonkeyPatch):
    import jsondocstore.events as events

    monkeypatch.setattr(events, "PENDING_LIMIT", 3)
    notifier = ChangeNotifier("bounded")
    for i in range(5):
        notifier.publish(ChangeEvent("created", (i,)))

    seen = Recorder()
    notifier.subscribe(seen)
    try:
        assert seen.wait_for(3)
        assert notifier.wait_idle(5)
        assert [e.ids for e in seen.events] == [(2,), (3,), (4,)]
    finally:
        notifier.close()


def test_publish_after_close_is_ignored():
    notifier = ChangeNotifier("closed")
    seen = Recorder()
    notifier.subscribe(seen)
    notifier.close()
    notifier.publish(ChangeEvent("created", (1,)))
    notifier.drain()
    assert seen.events == []
