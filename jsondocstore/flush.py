from __future__ import annotations

import atexit
import logging
import threading
import weakref
from typing import Callable, Literal

logger = logging.getLogger(__name__)

FlushState = Literal["idle", "armed", "flushing", "armed-while-flushing"]

_LIVE_SCHEDULERS: "weakref.WeakSet[FlushScheduler]" = weakref.WeakSet()


class FlushScheduler:
    """
    Debounces flush requests for one collection.

    States:
      idle                  nothing pending
      armed                 a timer will flush `delay` seconds after the last request
      flushing              a flush is running, nothing else pending
      armed-while-flushing  a request came in during the running flush; re-arm once it ends

    At most one flush runs at a time and no request is dropped. Errors raised by the
    flush function are handed to `on_error` and never propagate into the timer thread.
    """

    def __init__(
        self,
        flush: Callable[[], None],
        *,
        delay: float,
        name: str = "",
        on_error: Callable[[BaseException], None] | None = None,
    ):
        if delay < 0:
            raise ValueError("flush delay must be >= 0")
        self._flush = flush
        self._delay = delay
        self._name = name
        self._on_error = on_error

        self._lock = threading.Lock()
        self._io_lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._generation = 0
        self._flushing = False
        self._rerun = False
        self._closed = False
        _LIVE_SCHEDULERS.add(self)

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def state(self) -> FlushState:
        with self._lock:
            if self._flushing:
                return "armed-while-flushing" if self._rerun else "flushing"
            return "armed" if self._timer is not None else "idle"

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None or self._rerun

    def request(self) -> None:
        """(Re)arm the debounce timer. Never blocks on I/O."""
        with self._lock:
            if self._closed:
                return
            if self._flushing:
                self._rerun = True
                return
            self._arm_locked()

    def flush_now(self) -> None:
        """
        Cancel any pending timer and flush on the calling thread, after an in-flight flush if any.

        Unlike timer flushes, a failure here is re-raised to the caller after being reported.
        """
        with self._lock:
            self._cancel_locked()
        self._run(reraise=True)

    def flush_if_pending(self) -> None:
        """
        Wait for an in-flight flush, then flush until nothing is pending.

        Used at shutdown, where daemon timer threads are about to be killed.
        """
        with self._io_lock:
            while True:
                with self._lock:
                    pending = self._timer is not None or self._rerun
                    self._cancel_locked()
                if not pending:
                    return
                self._run_locked()

    def close(self) -> None:
        """Ignore further requests, then flush whatever is pending or in flight."""
        with self._lock:
            self._closed = True
        self.flush_if_pending()

    def _arm_locked(self) -> None:
        self._cancel_locked()
        self._generation += 1
        timer = threading.Timer(self._delay, self._fire, args=(self._generation,))
        timer.daemon = True
        timer.name = f"jsondocstore-flush-{self._name}" if self._name else "jsondocstore-flush"
        self._timer = timer
        timer.start()

    def _cancel_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        # A timer that already fired but has not taken the lock yet sees a stale generation.
        self._generation += 1

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
        self._run()

    def _run(self, reraise: bool = False) -> None:
        with self._io_lock:
            self._run_locked(reraise)

    def _run_locked(self, reraise: bool = False) -> None:
        # Caller holds _io_lock.
        with self._lock:
            self._flushing = True
            self._rerun = False
        try:
            self._flush()
        except Exception as e:
            logger.exception("Flush failed for %s", self._name or "collection")
            if self._on_error is not None:
                self._on_error(e)
            if reraise:
                raise
        finally:
            with self._lock:
                self._flushing = False
                # Once closed, a rerun stays pending for flush_if_pending instead of arming a timer.
                if self._rerun and not self._closed:
                    self._arm_locked()
                    self._rerun = False


@atexit.register
def _flush_pending_at_exit() -> None:
    for scheduler in list(_LIVE_SCHEDULERS):
        scheduler.flush_if_pending()
