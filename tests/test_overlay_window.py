"""Headless tests for the overlay host window."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

try:  # pragma: no cover - environment-dependent import guard
    from PySide6 import QtWidgets
    import pyqtgraph as pg
except ImportError as exc:  # pragma: no cover - skip when Qt dependencies missing
    pytest.skip(f"PySide6 import failed: {exc}", allow_module_level=True)

from config import OverlayConfig
from core.annotations import AnnotationReconciler
from core.reload import OverlayState, ReloadOrchestrator
from core.snapshot import GammaDataset, ParseReport
from ui.chart_surface import PyqtgraphSurface
from ui.overlay_window import OverlayWindow


os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

SNAPSHOT = "price,gamma,type,flip\n4500,1.2,Call,4480\n4400,-0.8,Put,4480\n"


@pytest.fixture(scope="session")
def qt_app():
    app = QtWidgets.QApplication.instance()
    if app is None:
        app = QtWidgets.QApplication([])
    yield app
    app.quit()


class _DummyHandle:
    def close(self):
        pass


class _DummyBackend:
    def subscribe(self, path, callback):
        return _DummyHandle()


def _window(qt_app, path: Path, tmp_path: Path):
    plot_widget = pg.PlotWidget()
    surface = PyqtgraphSurface(plot_widget.getPlotItem())
    orchestrator = ReloadOrchestrator(
        path,
        AnnotationReconciler(surface),
        backend=_DummyBackend(),
        settle_s=0.05,
    )
    cfg = OverlayConfig(ini_path=tmp_path / "gamma_overlay.ini")
    window = OverlayWindow(orchestrator, plot_widget, config=cfg, surface=surface)
    orchestrator.on_reloaded = window.notify_reloaded
    return window, orchestrator, surface


def test_start_loads_frames_and_draws(qt_app, tmp_path: Path):
    path = tmp_path / "ESgammaLVL.csv"
    path.write_text(SNAPSHOT)
    window, orchestrator, surface = _window(qt_app, path, tmp_path)
    try:
        window.start()
        qt_app.processEvents()

        assert orchestrator.state is OverlayState.WATCHING
        assert "2 levels" in window.statusLabel.text()
        assert "flip 4480" in window.statusLabel.text()
        assert window.windowTitle() == "Gamma levels - ESgammaLVL.csv"

        y0, y1 = window.plotWidget.getViewBox().viewRange()[1]
        assert y0 <= 4400.0
        assert y1 >= 4500.0
        assert y1 - y0 < 200.0

        assert set(surface.items) == set(orchestrator.reconciler.displayed)
        assert len(surface.items) == 5
    finally:
        orchestrator.stop()


def test_empty_dataset_does_not_break_framing(qt_app, tmp_path: Path):
    path = tmp_path / "ESgammaLVL.csv"
    path.write_text(SNAPSHOT)
    window, orchestrator, _ = _window(qt_app, path, tmp_path)
    try:
        window._handle_reloaded(GammaDataset.empty(), ParseReport())
        assert "0 levels" in window.statusLabel.text()
        y0, y1 = window.plotWidget.getViewBox().viewRange()[1]
        assert y0 < 0.0 < y1
    finally:
        orchestrator.stop()


def test_missing_file_reports_unavailable(qt_app, tmp_path: Path):
    window, orchestrator, surface = _window(qt_app, tmp_path / "absent.csv", tmp_path)
    try:
        window.start()
        qt_app.processEvents()

        assert orchestrator.state is OverlayState.WATCHING
        assert window.statusLabel.text().startswith("Gamma snapshot unavailable:")
        assert "file not found" in window.statusLabel.text()
        assert surface.items == {}
    finally:
        orchestrator.stop()


def test_close_tears_down_and_saves_config(qt_app, tmp_path: Path):
    path = tmp_path / "ESgammaLVL.csv"
    path.write_text(SNAPSHOT)
    window, orchestrator, surface = _window(qt_app, path, tmp_path)
    window._config.csv_path = str(path)
    window.show()
    window.start()
    qt_app.processEvents()
    assert surface.items

    window.close()
    qt_app.processEvents()

    assert orchestrator.state is OverlayState.TERMINATED
    assert orchestrator.reconciler.displayed == {}
    assert surface.items == {}
    assert orchestrator.on_render_tick() == []

    saved = OverlayConfig.load(tmp_path / "gamma_overlay.ini")
    assert saved.csv_path == path
