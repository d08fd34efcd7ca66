"""File change detection with debounced, coalesced notifications."""
from __future__ import annotations

import logging
import os
import threading
import time
from pathlib import Path
from typing import Callable, Optional, Protocol

LOG = logging.getLogger(__name__)

DEFAULT_SETTLE_S = 0.5


class WatchHandle(Protocol):
    def close(self) -> None: ...


class WatchBackend(Protocol):
    """Minimal file-watch facility: one callback per raw change notification."""

    def subscribe(self, path: Path, callback: Callable[[], None]) -> WatchHandle: ...


def _file_signature(path: Path) -> Optional[tuple[int, int]]:
    try:
        st = os.stat(path)
    except OSError:
        return None
    return st.st_mtime_ns, st.st_size


class _PollingSubscription:
    def __init__(self, path: Path, callback: Callable[[], None], interval_s: float):
        self._path = path
        self._callback = callback
        self._interval_s = interval_s
        self._stop = threading.Event()
        self._last = _file_signature(path)
        self._thread = threading.Thread(
            target=self._worker, name=f"poll-watch:{path.name}", daemon=True
        )
        self._thread.start()

    def _worker(self):
        while not self._stop.wait(self._interval_s):
            current = _file_signature(self._path)
            if current == self._last:
                continue
            self._last = current
            try:
                self._callback()
            except Exception:  # pragma: no cover - callback owns its errors
                LOG.warning("Watch callback failed for %s", self._path, exc_info=True)

    def close(self) -> None:
        self._stop.set()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)


class PollingWatchBackend:
    """Stat-polling backend; fires when (mtime_ns, size) changes."""

    def __init__(self, interval_s: float = 0.25):
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self.interval_s = float(interval_s)

    def subscribe(self, path: Path, callback: Callable[[], None]) -> WatchHandle:
        return _PollingSubscription(Path(path), callback, self.interval_s)


class ChangeWatcher:
    """
    Debounce raw change notifications for one path.

    Every raw signal (re)arms a settle deadline; ``on_change`` runs once the
    deadline passes with no further signals. Signals that arrive while
    ``on_change`` is running arm a new deadline, so exactly one follow-up
    call happens after it returns.
    """

    def __init__(
        self,
        path: str | Path,
        on_change: Callable[[], None],
        *,
        backend: WatchBackend,
        settle_s: float = DEFAULT_SETTLE_S,
    ):
        self.path = Path(path)
        self.on_change = on_change
        self.backend = backend
        self.settle_s = max(0.0, float(settle_s))
        self._cond = threading.Condition()
        self._deadline: float | None = None
        self._stopped = False
        self._handle: WatchHandle | None = None
        self._thread: threading.Thread | None = None
        self.signal_count = 0
        self.fire_count = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        with self._cond:
            if self._stopped:
                raise RuntimeError("ChangeWatcher cannot be restarted after stop()")
            if self._thread and self._thread.is_alive():
                return
            self._thread = threading.Thread(
                target=self._worker, name=f"change-watcher:{self.path.name}", daemon=True
            )
            self._thread.start()
        handle = self.backend.subscribe(self.path, self.notify)
        with self._cond:
            if not self._stopped:
                self._handle = handle
                return
        handle.close()

    def stop(self):
        with self._cond:
            if self._stopped:
                return
            self._stopped = True
            self._deadline = None
            self._cond.notify_all()
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.close()
        thread = self._thread
        if thread and thread is not threading.current_thread():
            thread.join(timeout=1.0)

    def notify(self):
        with self._cond:
            if self._stopped:
                return
            self.signal_count += 1
            self._deadline = time.monotonic() + self.settle_s
            self._cond.notify_all()

    def _next_fire(self) -> bool:
        with self._cond:
            while not self._stopped:
                if self._deadline is None:
                    self._cond.wait()
                    continue
                remaining = self._deadline - time.monotonic()
                if remaining > 0:
                    self._cond.wait(remaining)
                    continue
                self._deadline = None
                self.fire_count += 1
                return True
            return False

    def _worker(self):
        while self._next_fire():
            try:
                self.on_change()
            except Exception:
                LOG.warning("Change handler failed for %s", self.path, exc_info=True)
