# core/annotations.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, Mapping, Optional, Protocol
import logging
import threading

from core.snapshot import GammaDataset, GammaLevel, Side

LOG = logging.getLogger(__name__)

PRICE_DECIMALS = 6
DEFAULT_LINE_WIDTH = 2
DEFAULT_TEXT_SIZE = 10
ALIGNMENTS = ("left", "center", "right")


class AnnotationKind(str, Enum):
    LEVEL_LINE = "PriceLevel"
    LABEL = "Text"
    FLIP_LINE = "GammaFlipLevel"

    @property
    def is_line(self) -> bool:
        return self is not AnnotationKind.LABEL


def price_key(price: float) -> float:
    # + 0.0 folds -0.0 into 0.0 so both map to the same id.
    return round(float(price), PRICE_DECIMALS) + 0.0


def annotation_id(kind: AnnotationKind, price: float) -> str:
    return f"{kind.value}_{price_key(price):.{PRICE_DECIMALS}f}"


@dataclass(frozen=True)
class FontSpec:
    family: str = "Arial"
    size: int = DEFAULT_TEXT_SIZE


@dataclass(frozen=True)
class Annotation:
    kind: AnnotationKind
    price: float
    color: str
    width: Optional[int] = None      # lines only
    text: Optional[str] = None       # labels only
    font: Optional[FontSpec] = None  # labels only
    alignment: Optional[str] = None  # labels only

    @property
    def id(self) -> str:
        return annotation_id(self.kind, self.price)


@dataclass
class AnnotationStyle:
    positive_color: str = "#008000"
    negative_color: str = "#ff0000"
    flip_color: str = "#0000ff"
    text_color: str = "#ffffff"
    line_width: int = DEFAULT_LINE_WIDTH
    font: FontSpec = field(default_factory=FontSpec)
    alignment: str = "center"
    line_widths: Dict[float, int] = field(default_factory=dict)

    def __post_init__(self):
        # Keys are normalised so 4500, 4500.0 and "4500.0000001" all match.
        self.line_widths = {price_key(p): int(w) for p, w in self.line_widths.items()}

    def width_for(self, price: float) -> int:
        return self.line_widths.get(price_key(price), self.line_width)

    def color_for(self, side: Side) -> str:
        return self.positive_color if side is Side.CALL else self.negative_color


class RenderSurface(Protocol):
    """Contract implemented by the chart that actually paints annotations."""

    def draw_line(self, annotation_id: str, price: float, color: str, width: int) -> None:
        """Draw a horizontal line at ``price``."""

    def draw_text(
        self,
        annotation_id: str,
        text: str,
        price: float,
        color: str,
        font: FontSpec,
        alignment: str,
    ) -> None:
        """Draw a text label anchored at ``price``."""

    def remove_annotation(self, annotation_id: str) -> None:
        """Remove a previously drawn line or label."""


@dataclass(frozen=True)
class RenderOp:
    action: str  # "remove" or "draw"
    annotation: Annotation

    @property
    def id(self) -> str:
        return self.annotation.id


def label_text(level: GammaLevel) -> str:
    return f"{level.side.value} ({level.total_gamma:.6f})"


def target_annotations(dataset: GammaDataset, style: AnnotationStyle) -> Dict[str, Annotation]:
    """
    Annotations that should be on the chart for ``dataset``: a line and a
    label per level plus a single flip line. Keyed by annotation id; a
    repeated price keeps the later row.
    """
    target: Dict[str, Annotation] = {}
    for level in dataset.levels:
        price = price_key(level.price)
        line = Annotation(
            AnnotationKind.LEVEL_LINE,
            price,
            style.color_for(level.side),
            width=style.width_for(price),
        )
        label = Annotation(
            AnnotationKind.LABEL,
            price,
            style.text_color,
            text=label_text(level),
            font=style.font,
            alignment=style.alignment,
        )
        if line.id in target:
            LOG.debug("Duplicate price %s in dataset; keeping the later row", line.id)
        target[line.id] = line
        target[label.id] = label

    flip = Annotation(
        AnnotationKind.FLIP_LINE,
        price_key(dataset.flip_level),
        style.flip_color,
        width=style.line_width,
    )
    target[flip.id] = flip
    return target


def diff(displayed: Mapping[str, Annotation], target: Mapping[str, Annotation]) -> list[RenderOp]:
    """Minimal operations turning ``displayed`` into ``target``; removals first."""
    removals = [
        RenderOp("remove", ann)
        for ann_id, ann in displayed.items()
        if target.get(ann_id) != ann
    ]
    draws = [
        RenderOp("draw", ann)
        for ann_id, ann in target.items()
        if displayed.get(ann_id) != ann
    ]
    return removals + draws


def apply_ops(surface: RenderSurface, ops: Iterable[RenderOp]) -> None:
    for op in ops:
        ann = op.annotation
        if op.action == "remove":
            surface.remove_annotation(ann.id)
        elif ann.kind.is_line:
            surface.draw_line(ann.id, ann.price, ann.color, ann.width)
        else:
            surface.draw_text(ann.id, ann.text, ann.price, ann.color, ann.font, ann.alignment)


class AnnotationReconciler:
    """Sole owner of the annotations currently on the chart."""

    def __init__(self, surface: RenderSurface, style: AnnotationStyle | None = None):
        self.surface = surface
        self._style = style or AnnotationStyle()
        self._displayed: Dict[str, Annotation] = {}
        self._lock = threading.RLock()

    @property
    def style(self) -> AnnotationStyle:
        return self._style

    @property
    def displayed(self) -> Dict[str, Annotation]:
        with self._lock:
            return dict(self._displayed)

    def restyle(self, style: AnnotationStyle) -> None:
        with self._lock:
            self._style = style

    def reconcile(self, dataset: GammaDataset) -> list[RenderOp]:
        with self._lock:
            target = target_annotations(dataset, self._style)
            ops = diff(self._displayed, target)
            self._apply(ops)
            return ops

    def reconcile_current(self, current: Callable[[], Optional[GammaDataset]]) -> list[RenderOp]:
        """
        Read the dataset via ``current`` and reconcile against it while holding
        the reconciler lock, so a concurrent reconcile of a newer dataset can
        never be overwritten by this (older) read.
        """
        with self._lock:
            dataset = current()
            if dataset is None:
                return []
            return self.reconcile(dataset)

    def clear(self) -> list[RenderOp]:
        with self._lock:
            ops = [RenderOp("remove", ann) for ann in self._displayed.values()]
            self._apply(ops)
            return ops

    def _apply(self, ops: list[RenderOp]) -> None:
        # Track each op as it lands so a surface failure midway leaves
        # _displayed matching what was actually drawn.
        for op in ops:
            apply_ops(self.surface, (op,))
            if op.action == "remove":
                self._displayed.pop(op.id, None)
            else:
                self._displayed[op.id] = op.annotation
