"""Reload pipeline: watch -> read -> parse -> store -> reconcile."""
from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from core.annotations import AnnotationReconciler, RenderOp
from core.snapshot import (
    STRIKE_LAYOUT,
    ColumnLayout,
    FileUnavailable,
    GammaDataset,
    ParseReport,
    parse,
)
from core.store import DatasetStore
from core.watcher import DEFAULT_SETTLE_S, ChangeWatcher, PollingWatchBackend, WatchBackend

LOG = logging.getLogger(__name__)

ReloadCallback = Callable[[GammaDataset, ParseReport], None]


class OverlayState(str, Enum):
    UNINITIALIZED = "uninitialized"
    WATCHING = "watching"
    TERMINATED = "terminated"


@dataclass
class WatchState:
    last_modified: Optional[float] = None
    in_flight: bool = False
    pending: bool = False
    last_good: Optional[GammaDataset] = None
    reload_count: int = 0
    failure_count: int = 0
    last_error: Optional[str] = None


def read_snapshot(path: Path) -> tuple[str, float]:
    """Return the file text and its mtime; raise FileUnavailable otherwise."""
    try:
        mtime = os.stat(path).st_mtime
        with path.open("r", encoding="utf-8-sig", newline="") as fh:
            text = fh.read()
    except FileNotFoundError:
        raise FileUnavailable(path, "file not found") from None
    except PermissionError as exc:
        raise FileUnavailable(path, f"file locked ({exc.strerror or exc})") from None
    except UnicodeDecodeError as exc:
        raise FileUnavailable(path, f"partial or undecodable content ({exc.reason})") from None
    except OSError as exc:
        raise FileUnavailable(path, str(exc)) from None
    if not text:
        # A producer mid-rewrite leaves a zero-byte file behind.
        raise FileUnavailable(path, "zero-byte read")
    return text, mtime


class ReloadOrchestrator:
    """
    Owns one overlay's lifecycle: Uninitialized -> Watching -> Terminated.

    Reload cycles never overlap. A request arriving while a cycle runs is
    remembered and triggers exactly one follow-up cycle.
    """

    def __init__(
        self,
        path: str | Path,
        reconciler: AnnotationReconciler,
        *,
        layout: ColumnLayout = STRIKE_LAYOUT,
        store: DatasetStore | None = None,
        backend: WatchBackend | None = None,
        settle_s: float = DEFAULT_SETTLE_S,
        on_reloaded: ReloadCallback | None = None,
    ):
        self.path = Path(path)
        self.layout = layout
        self.store = store or DatasetStore()
        self.reconciler = reconciler
        self.on_reloaded = on_reloaded
        self.watch_state = WatchState()
        self._state = OverlayState.UNINITIALIZED
        self._lock = threading.Lock()
        self._cycle_lock = threading.RLock()
        self._watcher = ChangeWatcher(
            self.path,
            self.request_reload,
            backend=backend or PollingWatchBackend(),
            settle_s=settle_s,
        )

    @property
    def state(self) -> OverlayState:
        return self._state

    @property
    def watcher(self) -> ChangeWatcher:
        return self._watcher

    def start(self) -> bool:
        with self._lock:
            if self._state is not OverlayState.UNINITIALIZED:
                raise RuntimeError(f"cannot start overlay from state {self._state.value}")
            self._state = OverlayState.WATCHING
        LOG.info("Watching gamma snapshot %s", self.path)
        # Subscribe before the first read so a write racing it is not lost.
        self._watcher.start()
        return self.reload_once()

    def stop(self) -> None:
        with self._lock:
            if self._state is OverlayState.TERMINATED:
                return
            was_watching = self._state is OverlayState.WATCHING
            self._state = OverlayState.TERMINATED
            self.watch_state.pending = False
        self._watcher.stop()
        if was_watching:
            # Waits for an in-flight cycle so nothing is drawn after the clear.
            with self._cycle_lock:
                self.reconciler.clear()
        LOG.info("Stopped watching %s", self.path)

    def request_reload(self) -> None:
        with self._lock:
            if self._state is not OverlayState.WATCHING:
                return
            if self.watch_state.in_flight:
                self.watch_state.pending = True
                return
            self.watch_state.in_flight = True
        try:
            while True:
                self.reload_once()
                with self._lock:
                    if not self.watch_state.pending or self._state is not OverlayState.WATCHING:
                        break
                    self.watch_state.pending = False
        finally:
            with self._lock:
                self.watch_state.in_flight = False
                self.watch_state.pending = False

    def reload_once(self) -> bool:
        with self._cycle_lock:
            if self._state is not OverlayState.WATCHING:
                return False
            try:
                return self._run_cycle()
            except FileUnavailable as exc:
                self._record_failure(str(exc))
                LOG.warning("Gamma snapshot unavailable, keeping last good data: %s", exc)
            except Exception as exc:
                self._record_failure(repr(exc))
                LOG.warning("Gamma reload failed for %s", self.path, exc_info=True)
            return False

    def on_render_tick(self) -> list[RenderOp]:
        if self._state is not OverlayState.WATCHING:
            return []
        # Read and draw under one lock so a reload landing in between is not
        # painted over with the dataset it replaced.
        return self.reconciler.reconcile_current(self.store.current)

    def _run_cycle(self) -> bool:
        text, mtime = read_snapshot(self.path)
        self.watch_state.last_modified = mtime
        result = parse(text, self.layout)
        report = result.report

        for err in report.row_errors:
            LOG.debug("Dropped row %d (%s): %r", err.line_no, err.reason, err.raw)
        for mismatch in report.flip_inconsistencies:
            LOG.warning(
                "Row %d flip level %s disagrees with %s; using the first value",
                mismatch.line_no,
                mismatch.value,
                mismatch.expected,
            )

        self.store.replace(result.dataset)
        self.watch_state.last_good = result.dataset
        self.watch_state.reload_count += 1
        self.watch_state.last_error = None
        if self._state is OverlayState.WATCHING:
            self.reconciler.reconcile(result.dataset)
        LOG.info("Gamma levels loaded from %s: %s", self.path.name, report.summary())
        if self.on_reloaded is not None:
            self.on_reloaded(result.dataset, report)
        return True

    def _record_failure(self, message: str) -> None:
        self.watch_state.failure_count += 1
        self.watch_state.last_error = message
