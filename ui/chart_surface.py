"""pyqtgraph implementation of the annotation render surface."""

from __future__ import annotations

from functools import partial

import pyqtgraph as pg
from PySide6 import QtCore, QtGui

from core.annotations import FontSpec

# pyqtgraph TextItem anchors: text sits just above its price line.
_ALIGN_ANCHORS: dict[str, tuple[float, float]] = {
    "left": (0.0, 1.0),
    "center": (0.5, 1.0),
    "right": (1.0, 1.0),
}


class PyqtgraphSurface(QtCore.QObject):
    """
    Draws horizontal price lines and text labels on a ``pg.PlotItem``.

    Calls may come from the reload worker thread. Every call, whatever its
    thread, is queued through one signal so operations reach the scene in
    the order they were issued, on the thread owning this object.
    """

    _operationRequested = QtCore.Signal(object)

    def __init__(self, plot: pg.PlotItem, parent: QtCore.QObject | None = None):
        super().__init__(parent)
        self._plot = plot
        self._items: dict[str, pg.GraphicsObject] = {}
        self._label_x = 0.0
        self._operationRequested.connect(self._run_operation, QtCore.Qt.QueuedConnection)

    @property
    def items(self) -> dict[str, pg.GraphicsObject]:
        return dict(self._items)

    # RenderSurface ---------------------------------------------------------
    def draw_line(self, annotation_id: str, price: float, color: str, width: int) -> None:
        self._operationRequested.emit(partial(self._draw_line, annotation_id, price, color, width))

    def draw_text(
        self,
        annotation_id: str,
        text: str,
        price: float,
        color: str,
        font: FontSpec,
        alignment: str,
    ) -> None:
        self._operationRequested.emit(
            partial(self._draw_text, annotation_id, text, price, color, font, alignment)
        )

    def remove_annotation(self, annotation_id: str) -> None:
        self._operationRequested.emit(partial(self._remove, annotation_id))

    # -----------------------------------------------------------------------
    def set_label_x(self, x: float) -> None:
        """Move every label to the given x position (e.g. right edge of view)."""
        self._label_x = float(x)
        for item in self._items.values():
            if isinstance(item, pg.TextItem):
                item.setPos(self._label_x, item.pos().y())

    @QtCore.Slot(object)
    def _run_operation(self, operation) -> None:
        operation()

    def _draw_line(self, annotation_id: str, price: float, color: str, width: int) -> None:
        self._remove(annotation_id)
        line = pg.InfiniteLine(pos=price, angle=0, movable=False, pen=pg.mkPen(color, width=width))
        self._plot.addItem(line)
        self._items[annotation_id] = line

    def _draw_text(
        self,
        annotation_id: str,
        text: str,
        price: float,
        color: str,
        font: FontSpec,
        alignment: str,
    ) -> None:
        self._remove(annotation_id)
        label = pg.TextItem(text, color=color, anchor=_ALIGN_ANCHORS.get(alignment, (0.5, 1.0)))
        label.setFont(QtGui.QFont(font.family, font.size))
        label.setPos(self._label_x, price)
        self._plot.addItem(label)
        self._items[annotation_id] = label

    def _remove(self, annotation_id: str) -> None:
        item = self._items.pop(annotation_id, None)
        if item is None:
            return
        self._plot.removeItem(item)
