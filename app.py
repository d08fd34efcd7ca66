# app.py
import logging
import sys

import pyqtgraph as pg
from PySide6 import QtWidgets

from config import OverlayConfig
from core.annotations import AnnotationReconciler
from core.reload import ReloadOrchestrator
from core.snapshot import LAYOUTS
from core.watcher import PollingWatchBackend
from ui.chart_surface import PyqtgraphSurface
from ui.overlay_window import OverlayWindow
from ui.qt_watch import QtFileWatchBackend


def _select_file_dialog(parent=None):
    dlg = QtWidgets.QFileDialog(parent)
    dlg.setWindowTitle("Select gamma levels CSV")
    dlg.setFileMode(QtWidgets.QFileDialog.ExistingFile)
    dlg.setNameFilters([
        "CSV Files (*.csv *.CSV)",
        "All Files (*)",
    ])
    if dlg.exec() == QtWidgets.QDialog.Accepted:
        files = dlg.selectedFiles()
        return files[0] if files else None
    return None


def main(
    path=None,
    *,
    config_path: str | None = None,
    layout: str | None = None,
    backend: str | None = None,
):
    cfg = OverlayConfig.load(config_path)
    if layout:
        cfg.column_layout = layout
    if backend:
        cfg.watch_backend = backend
    app = QtWidgets.QApplication(sys.argv)

    path = path or cfg.csv_path
    if not path:
        path = _select_file_dialog()
        if not path:
            return
    cfg.csv_path = path

    plot_widget = pg.PlotWidget()
    surface = PyqtgraphSurface(plot_widget.getPlotItem())
    reconciler = AnnotationReconciler(surface, cfg.annotation_style())
    if cfg.watch_backend == "poll":
        watch_backend = PollingWatchBackend(cfg.poll_interval_s)
    else:
        watch_backend = QtFileWatchBackend()
    orchestrator = ReloadOrchestrator(
        path,
        reconciler,
        layout=cfg.layout(),
        backend=watch_backend,
        settle_s=cfg.settle_s,
    )
    w = OverlayWindow(orchestrator, plot_widget, config=cfg, surface=surface)
    orchestrator.on_reloaded = w.notify_reloaded
    w.resize(1000, 700)
    w.show()
    w.start()
    app.exec()


def cli():
    import argparse
    p = argparse.ArgumentParser()
    p.add_argument("csv_path", nargs="?")
    p.add_argument("--config")
    p.add_argument("--layout", choices=sorted(LAYOUTS))
    p.add_argument("--backend", choices=["qt", "poll"])
    p.add_argument("--log-level", default="INFO")
    args = p.parse_args()
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    main(
        args.csv_path,
        config_path=args.config,
        layout=args.layout,
        backend=args.backend,
    )


if __name__ == "__main__":
    cli()
