# ═══════════════════════════════════════════════════════════════════════════════
# TEMPORAL PATTERN
# Design: I1 (Systems Architect) | Implementation: I3 (State Management)
# ═══════════════════════════════════════════════════════════════════════════════

"""
I3: "A sequence is a value. Copy on the way in, read-only on the way out,
and slicing hands back a new pattern instead of a view someone can scribble
on."
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

import numpy as np

from chunkfield.core.errors import DimensionMismatchError


class TemporalPattern:
    """
    Immutable ordered sequence of equal-dimension items.

    items: [length, dimension] float array (read-only)
    weights: [length] per-item primacy weights, ones if not given
    """

    __slots__ = ("_items", "_weights")

    def __init__(
        self,
        items: Sequence[Sequence[float]] | np.ndarray,
        weights: Optional[Sequence[float]] = None,
        dimension: Optional[int] = None,
    ):
        arr = np.array(items, dtype=float)
        if arr.size == 0 and not (arr.ndim == 2 and dimension is None):
            arr = np.zeros((0, dimension if dimension is not None else 0))
        elif arr.ndim != 2:
            raise DimensionMismatchError(
                f"items must form a 2-D array, got shape {arr.shape}"
            )
        if dimension is not None and arr.shape[1] != dimension:
            raise DimensionMismatchError(
                f"item dimension {arr.shape[1]} does not match expected {dimension}"
            )

        if weights is None:
            w = np.ones(arr.shape[0])
        else:
            w = np.array(weights, dtype=float)
            if w.shape != (arr.shape[0],):
                raise DimensionMismatchError(
                    f"{w.shape[0] if w.ndim else 0} weights for {arr.shape[0]} items"
                )

        arr.flags.writeable = False
        w.flags.writeable = False
        self._items = arr
        self._weights = w

    @classmethod
    def empty(cls, dimension: int) -> "TemporalPattern":
        return cls(np.zeros((0, dimension)))

    @classmethod
    def concatenate(cls, patterns: Iterable["TemporalPattern"]) -> "TemporalPattern":
        """Join patterns end to end, keeping each item's weight."""
        patterns = list(patterns)
        if not patterns:
            raise ValueError("concatenate needs at least one pattern")
        dim = patterns[0].dimension
        for p in patterns[1:]:
            if p.dimension != dim:
                raise DimensionMismatchError(
                    f"cannot join dimension {p.dimension} onto {dim}"
                )
        items = np.concatenate([p.items for p in patterns], axis=0)
        weights = np.concatenate([p.weights for p in patterns])
        return cls(items, weights, dimension=dim)

    # ── Properties ──────────────────────────────────────────────────────────

    @property
    def items(self) -> np.ndarray:
        return self._items

    @property
    def weights(self) -> np.ndarray:
        return self._weights

    @property
    def length(self) -> int:
        return int(self._items.shape[0])

    @property
    def dimension(self) -> int:
        return int(self._items.shape[1])

    @property
    def is_empty(self) -> bool:
        return self.length == 0

    # ── Methods ─────────────────────────────────────────────────────────────

    def item(self, index: int) -> np.ndarray:
        return self._items[index]

    def subsequence(self, start: int, end: int) -> "TemporalPattern":
        """Items [start, end) as a new pattern."""
        if not 0 <= start <= end <= self.length:
            raise IndexError(f"bad range [{start}, {end}) for length {self.length}")
        return TemporalPattern(
            self._items[start:end], self._weights[start:end], dimension=self.dimension
        )

    def with_weights(self, weights: Sequence[float]) -> "TemporalPattern":
        return TemporalPattern(self._items, weights, dimension=self.dimension)

    def peak_magnitudes(self) -> np.ndarray:
        """max |item| per position."""
        if self.is_empty or self.dimension == 0:
            return np.zeros(self.length)
        return np.max(np.abs(self._items), axis=1)

    def flatten(self, max_length: int) -> np.ndarray:
        """Concatenate items into a zero-padded [max_length * dimension] vector."""
        if self.length > max_length:
            raise DimensionMismatchError(
                f"pattern of length {self.length} exceeds max length {max_length}"
            )
        flat = np.zeros(max_length * self.dimension)
        flat[: self._items.size] = self._items.reshape(-1)
        return flat

    def is_similar(self, other: "TemporalPattern", tolerance: float = 0.1) -> bool:
        """Element-wise equality within tolerance. Lengths and dimensions must match."""
        if self.length != other.length or self.dimension != other.dimension:
            return False
        return bool(np.all(np.abs(self._items - other.items) <= tolerance))

    def to_list(self) -> List[List[float]]:
        return self._items.tolist()

    def __len__(self) -> int:
        return self.length

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TemporalPattern):
            return NotImplemented
        return (
            self._items.shape == other.items.shape
            and bool(np.array_equal(self._items, other.items))
            and bool(np.array_equal(self._weights, other.weights))
        )

    def __hash__(self) -> int:
        return hash((self._items.shape, self._items.tobytes()))

    def __repr__(self) -> str:
        return f"TemporalPattern(length={self.length}, dimension={self.dimension})"
