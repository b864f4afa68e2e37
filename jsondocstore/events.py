from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Literal, Union

logger = logging.getLogger(__name__)

Operation = Literal["loaded", "created", "updated", "deleted"]
OPERATIONS: frozenset[str] = frozenset(("loaded", "created", "updated", "deleted"))

# Events queued before anyone subscribes; beyond this the oldest are dropped.
PENDING_LIMIT = 1024


@dataclass(frozen=True)
class ChangeEvent:
    operation: Operation
    ids: tuple[Any, ...]
    collection: str = ""


@dataclass(frozen=True)
class FlushFailed:
    collection: str
    error: BaseException


ChangeListener = Callable[[ChangeEvent], None]
ErrorListener = Callable[[FlushFailed], None]
_Queued = Union[ChangeEvent, FlushFailed]


@dataclass(frozen=True, eq=False)
class _Subscription:
    listener: Callable[[Any], None]
    operations: frozenset[str] | None = None

    def wants(self, event: ChangeEvent) -> bool:
        return self.operations is None or event.operation in self.operations


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class ChangeNotifier:
    """
    Per-collection pub/sub channel. Publishing never calls listeners inline.

    Delivery happens later, in publish order:
    - on the asyncio loop that was running when the notifier was built (next loop iteration), or
    - on a daemon dispatcher thread that starts with the first subscription, so whatever was
      published before that (the initial `loaded` event) still reaches the first listeners.
    """

    def __init__(self, name: str = "", *, loop: asyncio.AbstractEventLoop | None = None):
        self._name = name
        self._loop = loop if loop is not None else _running_loop()

        self._lock = threading.Lock()
        self._cond = threading.Condition(self._lock)
        self._deliver_lock = threading.RLock()
        self._pending: deque[_Queued] = deque()
        self._listeners: list[_Subscription] = []
        self._error_listeners: list[_Subscription] = []
        self._thread: threading.Thread | None = None
        self._delivering = False
        self._closed = False

    @property
    def uses_event_loop(self) -> bool:
        return self._loop is not None

    def subscribe(self, listener: ChangeListener, operations: Iterable[str] | None = None) -> Callable[[], None]:
        ops = None
        if operations is not None:
            ops = frozenset(operations)
            unknown = ops - OPERATIONS
            if unknown:
                raise ValueError(f"unknown operations: {sorted(unknown)}")
        return self._add(self._listeners, _Subscription(listener, ops))

    def on_error(self, listener: ErrorListener) -> Callable[[], None]:
        return self._add(self._error_listeners, _Subscription(listener))

    def publish(self, event: _Queued) -> None:
        with self._lock:
            if self._closed:
                return
            self._pending.append(event)
            if self._loop is None:
                if self._thread is not None:
                    self._cond.notify_all()
                elif len(self._pending) > PENDING_LIMIT:
                    dropped = self._pending.popleft()
                    logger.debug("No listeners on %s yet, dropping %r", self._name, dropped)
                return
        self._schedule_on_loop()

    def drain(self) -> None:
        """Deliver everything queued so far, on the calling thread."""
        with self._deliver_lock:
            with self._lock:
                events = list(self._pending)
                self._pending.clear()
                listeners = list(self._listeners)
                error_listeners = list(self._error_listeners)
                self._delivering = True
            try:
                for event in events:
                    if isinstance(event, FlushFailed):
                        for sub in error_listeners:
                            self._call(sub, event)
                    else:
                        for sub in listeners:
                            if sub.wants(event):
                                self._call(sub, event)
            finally:
                with self._lock:
                    self._delivering = False
                    self._cond.notify_all()

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until the queue is empty and nothing is being delivered. Not for use on the loop thread."""
        with self._cond:
            return self._cond.wait_for(lambda: not self._pending and not self._delivering, timeout)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._cond.notify_all()
            thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)

    def _add(self, bucket: list[_Subscription], sub: _Subscription) -> Callable[[], None]:
        with self._lock:
            bucket.append(sub)
            self._ensure_dispatcher_locked()

        def unsubscribe() -> None:
            with self._lock:
                if sub in bucket:
                    bucket.remove(sub)

        return unsubscribe

    def _ensure_dispatcher_locked(self) -> None:
        if self._loop is not None or self._thread is not None or self._closed:
            return
        self._thread = threading.Thread(
            target=self._dispatch_forever,
            name=f"jsondocstore-events-{self._name}" if self._name else "jsondocstore-events",
            daemon=True,
        )
        self._thread.start()

    def _dispatch_forever(self) -> None:
        while True:
            with self._cond:
                self._cond.wait_for(lambda: self._pending or self._closed)
                if self._closed and not self._pending:
                    return
            self.drain()

    def _schedule_on_loop(self) -> None:
        loop = self._loop
        if loop is None:
            return
        try:
            loop.call_soon_threadsafe(self.drain)
        except RuntimeError:
            # Loop closed: carry on with a dispatcher thread.
            logger.debug("Event loop for %s is closed, switching to a dispatcher thread", self._name)
            with self._lock:
                self._loop = None
                if self._listeners or self._error_listeners:
                    self._ensure_dispatcher_locked()
                self._cond.notify_all()

    def _call(self, sub: _Subscription, event: _Queued) -> None:
        try:
            sub.listener(event)
        except Exception:
            logger.exception("Listener %r failed on %r", sub.listener, event)
