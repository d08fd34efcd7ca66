from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from core.annotations import (
    ALIGNMENTS,
    DEFAULT_LINE_WIDTH,
    DEFAULT_TEXT_SIZE,
    AnnotationStyle,
    FontSpec,
    price_key,
)
from core.snapshot import LAYOUTS, ColumnLayout, layout_for_name

LOG = logging.getLogger(__name__)

LINE_WIDTH_RANGE = (1, 10)
TEXT_SIZE_RANGE = (1, 20)


def clamp_line_width(value) -> int:
    lo, hi = LINE_WIDTH_RANGE
    try:
        width = int(value)
    except (TypeError, ValueError):
        return DEFAULT_LINE_WIDTH
    return width if lo <= width <= hi else DEFAULT_LINE_WIDTH


def clamp_text_size(value) -> int:
    lo, hi = TEXT_SIZE_RANGE
    try:
        size = int(value)
    except (TypeError, ValueError):
        return DEFAULT_TEXT_SIZE
    return size if lo <= size <= hi else DEFAULT_TEXT_SIZE


def _format_price(price: float) -> str:
    return f"{price:.6f}".rstrip("0").rstrip(".")


def normalise_alignment(value) -> str:
    text = str(value or "").strip().lower()
    return text if text in ALIGNMENTS else "center"


@dataclass
class OverlayConfig:
    csv_path: Path | None = None
    column_layout: str = "strike"
    settle_ms: int = 500
    watch_backend: str = "qt"
    poll_interval_s: float = 0.25
    positive_color: str = "#008000"
    negative_color: str = "#ff0000"
    flip_color: str = "#0000ff"
    text_color: str = "#ffffff"
    line_width: int = DEFAULT_LINE_WIDTH
    text_size: int = DEFAULT_TEXT_SIZE
    text_alignment: str = "center"
    font_family: str = "Arial"
    line_widths: dict[float, int] = field(default_factory=dict)
    render_interval_ms: int = 250
    ini_path: Path | None = None

    @classmethod
    def load(cls, ini_path: str | Path | None = None) -> "OverlayConfig":
        cfg = cls()
        path = Path(ini_path or "gamma_overlay.ini")
        if path.exists():
            import configparser

            parser = configparser.ConfigParser(inline_comment_prefixes=(";",))
            # Keep option names (prices) exactly as written.
            parser.optionxform = str
            parser.read(path)

            source = parser["source"] if "source" in parser else None
            if source:
                raw_path = source.get("path", fallback="").strip()
                if raw_path:
                    cfg.csv_path = Path(raw_path)
                layout = source.get("layout", fallback=cfg.column_layout).strip().lower()
                if layout in LAYOUTS:
                    cfg.column_layout = layout
                else:
                    LOG.warning("Unknown column layout %r in %s; using %s", layout, path, cfg.column_layout)
                settle = source.getint("settle_ms", fallback=cfg.settle_ms)
                if settle >= 0:
                    cfg.settle_ms = settle

            watch = parser["watch"] if "watch" in parser else None
            if watch:
                backend = watch.get("backend", fallback=cfg.watch_backend).strip().lower()
                if backend in ("qt", "poll"):
                    cfg.watch_backend = backend
                interval = watch.getfloat("poll_interval_s", fallback=cfg.poll_interval_s)
                if interval > 0:
                    cfg.poll_interval_s = interval

            style = parser["style"] if "style" in parser else None
            if style:
                cfg.positive_color = style.get("positive_color", fallback=cfg.positive_color)
                cfg.negative_color = style.get("negative_color", fallback=cfg.negative_color)
                cfg.flip_color = style.get("flip_color", fallback=cfg.flip_color)
                cfg.text_color = style.get("text_color", fallback=cfg.text_color)
                cfg.line_width = clamp_line_width(style.get("line_width", fallback=cfg.line_width))
                cfg.text_size = clamp_text_size(style.get("text_size", fallback=cfg.text_size))
                cfg.text_alignment = normalise_alignment(
                    style.get("text_alignment", fallback=cfg.text_alignment)
                )
                cfg.font_family = style.get("font_family", fallback=cfg.font_family).strip() or "Arial"

            widths = parser["line_widths"] if "line_widths" in parser else None
            if widths:
                overrides: dict[float, int] = {}
                for raw_price, raw_width in widths.items():
                    try:
                        price = float(raw_price)
                        width = int(raw_width)
                    except ValueError:
                        LOG.warning("Ignoring line width override %s = %s", raw_price, raw_width)
                        continue
                    lo, hi = LINE_WIDTH_RANGE
                    if not lo <= width <= hi:
                        LOG.warning("Ignoring out-of-range line width %s for %s", width, raw_price)
                        continue
                    overrides[price_key(price)] = width
                cfg.line_widths = overrides

            host = parser["host"] if "host" in parser else None
            if host:
                interval_ms = host.getint("render_interval_ms", fallback=cfg.render_interval_ms)
                if interval_ms > 0:
                    cfg.render_interval_ms = interval_ms
        cfg.ini_path = path
        return cfg

    @property
    def settle_s(self) -> float:
        return max(0, self.settle_ms) / 1000.0

    def layout(self) -> ColumnLayout:
        return layout_for_name(self.column_layout)

    def annotation_style(self) -> AnnotationStyle:
        return AnnotationStyle(
            positive_color=self.positive_color,
            negative_color=self.negative_color,
            flip_color=self.flip_color,
            text_color=self.text_color,
            line_width=clamp_line_width(self.line_width),
            font=FontSpec(self.font_family, clamp_text_size(self.text_size)),
            alignment=normalise_alignment(self.text_alignment),
            line_widths=dict(self.line_widths),
        )

    def save(self) -> None:
        if self.ini_path is None:
            return
        import configparser

        parser = configparser.ConfigParser()
        parser.optionxform = str
        parser["source"] = {
            "path": str(self.csv_path) if self.csv_path else "",
            "layout": self.column_layout,
            "settle_ms": str(self.settle_ms),
        }
        parser["watch"] = {
            "backend": self.watch_backend,
            "poll_interval_s": f"{self.poll_interval_s:.3f}",
        }
        parser["style"] = {
            "positive_color": self.positive_color,
            "negative_color": self.negative_color,
            "flip_color": self.flip_color,
            "text_color": self.text_color,
            "line_width": str(self.line_width),
            "text_size": str(self.text_size),
            "text_alignment": self.text_alignment,
            "font_family": self.font_family,
        }
        parser["line_widths"] = {
            _format_price(price): str(width) for price, width in sorted(self.line_widths.items())
        }
        parser["host"] = {
            "render_interval_ms": str(self.render_interval_ms),
        }
        with self.ini_path.open("w") as fh:
            parser.write(fh)
