"""Utility helpers shared across modules."""

from __future__ import annotations

import contextlib
import logging
import sys
from typing import Iterator

import numpy as np

MACHINE_EPSILON = sys.float_info.epsilon


@contextlib.contextmanager
def section(name: str) -> Iterator[None]:
    """Context manager that logs entry and exit of a learning phase."""
    logging.getLogger(__name__).info("Starting %s", name)
    try:
        yield
    finally:
        logging.getLogger(__name__).info("Finished %s", name)


def is_approx_zero(value: float, tol: float = MACHINE_EPSILON) -> bool:
    """Return ``True`` when ``value`` is zero to within ``tol``."""
    return abs(value) <= tol


class IndexStream:
    """Buffered stream of uniform integers in ``[0, high)`` drawn from ``rng``."""

    def __init__(self, rng: np.random.Generator, high: int, chunk: int = 4096) -> None:
        if high <= 0:
            raise ValueError("high must be positive")
        self._rng = rng
        self._high = int(high)
        self._chunk = int(chunk)
        self._buffer = np.empty(0, dtype=np.int64)
        self._pos = 0

    def __iter__(self) -> "IndexStream":
        return self

    def __next__(self) -> int:
        if self._pos >= self._buffer.size:
            self._buffer = self._rng.integers(0, self._high, size=self._chunk)
            self._pos = 0
        value = int(self._buffer[self._pos])
        self._pos += 1
        return value


def resolve_rng(rng: np.random.Generator | int | None) -> np.random.Generator:
    """Return a ``numpy`` generator from a seed, a generator, or ``None``."""
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)
