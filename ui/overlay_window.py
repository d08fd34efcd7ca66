# ui/overlay_window.py
from __future__ import annotations

from datetime import datetime

import pyqtgraph as pg
from PySide6 import QtCore, QtWidgets

from config import OverlayConfig, normalise_alignment
from core.reload import ReloadOrchestrator
from core.snapshot import GammaDataset, ParseReport

VIEW_PADDING_FRAC = 0.05
LABEL_X_FRACTIONS = {"left": 0.02, "center": 0.5, "right": 0.98}


class OverlayWindow(QtWidgets.QMainWindow):
    """Host chart: shows the overlay and drives its render tick."""

    datasetReloaded = QtCore.Signal(object, object)

    def __init__(
        self,
        orchestrator: ReloadOrchestrator,
        plot_widget: pg.PlotWidget,
        *,
        config: OverlayConfig | None = None,
        surface=None,
    ):
        super().__init__()
        self._orchestrator = orchestrator
        self._config = config or OverlayConfig()
        self._surface = surface
        self.plotWidget = plot_widget
        self.plotWidget.showGrid(x=False, y=True, alpha=0.2)
        self.plotWidget.setLabel("left", "Price")
        self.setCentralWidget(self.plotWidget)

        self.statusLabel = QtWidgets.QLabel("Waiting for gamma snapshot…")
        self.statusBar().addWidget(self.statusLabel, 1)
        self.setWindowTitle(f"Gamma levels - {orchestrator.path.name}")

        self.datasetReloaded.connect(self._handle_reloaded)
        self.plotWidget.getPlotItem().getViewBox().sigXRangeChanged.connect(self._update_label_x)

        self._render_timer = QtCore.QTimer(self)
        self._render_timer.setInterval(max(1, int(self._config.render_interval_ms)))
        self._render_timer.timeout.connect(self.render_tick)

    def notify_reloaded(self, dataset: GammaDataset, report: ParseReport) -> None:
        """Reload callback; safe to call from the watcher thread."""
        self.datasetReloaded.emit(dataset, report)

    def start(self) -> None:
        loaded = self._orchestrator.start()
        if not loaded:
            error = self._orchestrator.watch_state.last_error or "unknown error"
            self.statusLabel.setText(f"Gamma snapshot unavailable: {error}")
        self._render_timer.start()

    @QtCore.Slot()
    def render_tick(self) -> None:
        self._orchestrator.on_render_tick()

    @QtCore.Slot(object, object)
    def _handle_reloaded(self, dataset: GammaDataset, report: ParseReport) -> None:
        stamp = datetime.now().strftime("%H:%M:%S")
        self.statusLabel.setText(
            f"{stamp}  {dataset.size} levels, flip {dataset.flip_level:g}  ({report.summary()})"
        )
        low, high = dataset.price_span()
        pad = max((high - low) * VIEW_PADDING_FRAC, 1.0)
        self.plotWidget.setYRange(low - pad, high + pad, padding=0)
        self.render_tick()

    @QtCore.Slot(object, object)
    def _update_label_x(self, _viewbox, x_range) -> None:
        if self._surface is None:
            return
        x0, x1 = x_range
        frac = LABEL_X_FRACTIONS.get(normalise_alignment(self._config.text_alignment), 0.5)
        self._surface.set_label_x(x0 + (x1 - x0) * frac)

    def closeEvent(self, event):
        self._render_timer.stop()
        self._orchestrator.stop()
        self._config.save()
        super().closeEvent(event)
