# core/snapshot.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple
import math

import numpy as np

GAMMA_DTYPE = np.dtype([
    ("price",       "f8"),
    ("total_gamma", "f8"),
    ("is_call",     "?"),
    ("flip_level",  "f8"),
])


class SnapshotError(Exception):
    """Base class for failures while loading a gamma snapshot."""


class FileUnavailable(SnapshotError):
    """The snapshot file could not be read (missing, locked, truncated)."""

    def __init__(self, path, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class Side(str, Enum):
    CALL = "Call"
    PUT = "Put"


def classify_side(raw: str) -> Side:
    # Upstream tokens vary ("Call", "BigCall", ...); anything else is a put.
    return Side.CALL if "Call" in raw else Side.PUT


@dataclass(frozen=True)
class ColumnLayout:
    price: int
    gamma: int
    side: int
    flip: int
    delimiter: str = ","

    @property
    def min_columns(self) -> int:
        return max(self.price, self.gamma, self.side, self.flip) + 1


# price, totalGamma, type, flipLevel
STRIKE_LAYOUT = ColumnLayout(price=0, gamma=1, side=2, flip=3)
# _, totalGamma, type, theoPrice, flipLevel
THEO_LAYOUT = ColumnLayout(price=3, gamma=1, side=2, flip=4)

LAYOUTS: dict[str, ColumnLayout] = {
    "strike": STRIKE_LAYOUT,
    "theo": THEO_LAYOUT,
}


def layout_for_name(name: str) -> ColumnLayout:
    key = str(name or "").strip().lower()
    try:
        return LAYOUTS[key]
    except KeyError:
        raise ValueError(f"unknown column layout {name!r}; expected one of {sorted(LAYOUTS)}") from None


@dataclass(frozen=True)
class GammaLevel:
    price: float
    total_gamma: float
    side: Side
    flip_level: float


@dataclass(frozen=True)
class GammaDataset:
    """
    One snapshot of the gamma file: levels in file order plus the
    snapshot-wide flip level (taken from the first valid row).
    """
    levels: Tuple[GammaLevel, ...] = ()
    flip_level: float = 0.0

    @staticmethod
    def empty() -> "GammaDataset":
        return GammaDataset((), 0.0)

    @property
    def size(self) -> int:
        return len(self.levels)

    def prices(self) -> np.ndarray:
        return self.as_array()["price"]

    def as_array(self) -> np.ndarray:
        arr = np.zeros(self.size, dtype=GAMMA_DTYPE)
        for idx, lvl in enumerate(self.levels):
            arr[idx] = (lvl.price, lvl.total_gamma, lvl.side is Side.CALL, lvl.flip_level)
        return arr

    def price_span(self) -> tuple[float, float]:
        """Lowest and highest price the overlay draws, flip line included."""
        arr = self.as_array()
        values = np.append(arr["price"], self.flip_level)
        return float(values.min()), float(values.max())


@dataclass(frozen=True)
class RowParseError:
    line_no: int
    reason: str  # "too_few_columns" or "non_numeric"
    raw: str


@dataclass(frozen=True)
class InconsistentFlipLevel:
    line_no: int
    value: float
    expected: float


@dataclass
class ParseReport:
    total_rows: int = 0
    row_errors: list[RowParseError] = field(default_factory=list)
    flip_inconsistencies: list[InconsistentFlipLevel] = field(default_factory=list)

    @property
    def dropped(self) -> int:
        return len(self.row_errors)

    @property
    def accepted(self) -> int:
        return self.total_rows - self.dropped

    def summary(self) -> str:
        text = f"{self.accepted}/{self.total_rows} rows"
        if self.dropped:
            text += f", {self.dropped} dropped"
        if self.flip_inconsistencies:
            text += f", {len(self.flip_inconsistencies)} flip mismatches"
        return text


@dataclass(frozen=True)
class ParseResult:
    dataset: GammaDataset
    report: ParseReport


def _parse_number(text: str) -> Optional[float]:
    try:
        value = float(text.strip())
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def parse(text: str, layout: ColumnLayout = STRIKE_LAYOUT) -> ParseResult:
    """
    Parse the full text of a gamma snapshot.

    The first line is a header and is always skipped. Rows with too few
    columns or a non-numeric price/gamma/flip field are dropped and recorded
    in the report; they never abort the parse. An empty or header-only text
    yields an empty dataset with a flip level of 0.
    """
    report = ParseReport()
    levels: list[GammaLevel] = []
    flip_level: Optional[float] = None

    lines = text.splitlines()
    for line_no, line in enumerate(lines[1:], start=2):
        report.total_rows += 1
        fields = line.split(layout.delimiter)
        if len(fields) < layout.min_columns:
            report.row_errors.append(RowParseError(line_no, "too_few_columns", line))
            continue

        price = _parse_number(fields[layout.price])
        gamma = _parse_number(fields[layout.gamma])
        flip = _parse_number(fields[layout.flip])
        if price is None or gamma is None or flip is None:
            report.row_errors.append(RowParseError(line_no, "non_numeric", line))
            continue

        if flip_level is None:
            flip_level = flip
        elif flip != flip_level:
            report.flip_inconsistencies.append(InconsistentFlipLevel(line_no, flip, flip_level))

        levels.append(GammaLevel(price, gamma, classify_side(fields[layout.side]), flip))

    dataset = GammaDataset(tuple(levels), flip_level if flip_level is not None else 0.0)
    return ParseResult(dataset, report)
