"""QFileSystemWatcher-backed change notifications."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from PySide6 import QtCore

LOG = logging.getLogger(__name__)


class _QtSubscription(QtCore.QObject):
    def __init__(self, path: Path, callback: Callable[[], None], parent: QtCore.QObject | None = None):
        super().__init__(parent)
        self._path = path.resolve()
        self._callback = callback
        self._closed = False
        self._watcher = QtCore.QFileSystemWatcher(self)
        # Watch the directory too: producers that write-and-rename replace the
        # file, which silently drops it from the file watch list.
        self._watcher.addPath(str(self._path.parent))
        self._arm_file()
        self._watcher.fileChanged.connect(self._on_file_changed)
        self._watcher.directoryChanged.connect(self._on_directory_changed)

    def _arm_file(self) -> None:
        target = str(self._path)
        if target not in self._watcher.files() and self._path.exists():
            self._watcher.addPath(target)

    @QtCore.Slot(str)
    def _on_file_changed(self, _path: str) -> None:
        if self._closed:
            return
        self._arm_file()
        self._callback()

    @QtCore.Slot(str)
    def _on_directory_changed(self, _path: str) -> None:
        if self._closed:
            return
        watched = str(self._path) in self._watcher.files()
        self._arm_file()
        if not watched and self._path.exists():
            # File (re)appeared; treat it as a change.
            self._callback()
        else:
            LOG.debug("Directory change ignored for %s", self._path)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        paths = self._watcher.files() + self._watcher.directories()
        if paths:
            self._watcher.removePaths(paths)
        self.deleteLater()


class QtFileWatchBackend:
    """File-watch backend using Qt's native notifications (GUI thread only)."""

    def __init__(self, parent: QtCore.QObject | None = None):
        self._parent = parent

    def subscribe(self, path: Path, callback: Callable[[], None]) -> _QtSubscription:
        return _QtSubscription(Path(path), callback, self._parent)
