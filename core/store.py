"""Holder for the single current gamma dataset."""
from __future__ import annotations

import threading
import time

from core.snapshot import GammaDataset


class DatasetStore:
    """
    Last-good dataset, swapped atomically.

    Readers always see either the previous or the new dataset, never a mix.
    A failed reload simply never calls ``replace``.
    """

    def __init__(self, initial: GammaDataset | None = None):
        self._lock = threading.Lock()
        self._current = initial
        self._generation = 0 if initial is None else 1
        self._replaced_at: float | None = None if initial is None else time.time()

    def replace(self, dataset: GammaDataset) -> int:
        if not isinstance(dataset, GammaDataset):
            raise TypeError(f"expected GammaDataset, got {type(dataset).__name__}")
        with self._lock:
            self._current = dataset
            self._generation += 1
            self._replaced_at = time.time()
            return self._generation

    def current(self) -> GammaDataset | None:
        with self._lock:
            return self._current

    @property
    def has_data(self) -> bool:
        with self._lock:
            return self._current is not None

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def replaced_at(self) -> float | None:
        with self._lock:
            return self._replaced_at
