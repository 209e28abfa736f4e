# ═══════════════════════════════════════════════════════════════════════════════
# PART 3: ITEM-AND-ORDER WORKING MEMORY
# Design: N4 (Sequence Memory) + P1 (Dynamical Systems)
# Implementation: I3 (State Management)
# ═══════════════════════════════════════════════════════════════════════════════

"""
N4: "Serial order lives in an activation gradient. First items are
strongest, later items weaker, and the last couple get a recency bump.
Read the gradient back and you recover the order."

I3: "Store is a bounded FIFO. The gradient is a pure function of position,
so replaying the same list always gives the same weights. Dynamics only
run when the engine asks."
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Tuple

import numpy as np

from chunkfield.core.activation_dynamics import ShuntingConfig, ShuntingDynamics
from chunkfield.core.errors import ConfigurationError, DimensionMismatchError
from chunkfield.core.temporal_pattern import TemporalPattern


@dataclass(frozen=True)
class WorkingMemoryConfig:
    """Capacity and primacy gradient for item-and-order working memory."""
    capacity: int = 7
    primacy_gamma: float = 0.1      # Primacy decay per position
    primacy_delta: float = 0.5      # Recency boost magnitude
    recency_positions: int = 2      # Last K positions get the boost
    competition: float = 0.3        # Lateral inhibition between positions
    time_step: float = 0.01         # Fast time scale

    def __post_init__(self) -> None:
        if self.capacity <= 0:
            raise ConfigurationError(f"capacity must be > 0, got {self.capacity}")
        if self.primacy_gamma < 0:
            raise ConfigurationError(f"primacy_gamma must be >= 0, got {self.primacy_gamma}")
        if self.primacy_delta < 0:
            raise ConfigurationError(f"primacy_delta must be >= 0, got {self.primacy_delta}")
        if self.recency_positions < 0:
            raise ConfigurationError(
                f"recency_positions must be >= 0, got {self.recency_positions}"
            )
        if self.competition < 0:
            raise ConfigurationError(f"competition must be >= 0, got {self.competition}")
        if self.time_step <= 0:
            raise ConfigurationError(f"time_step must be > 0, got {self.time_step}")


def primacy_weight(
    position: int,
    length: int,
    gamma: float,
    delta: float,
    recency_positions: int,
) -> float:
    """exp(-gamma * p) * (1 + delta * recency(p)), recency(p) = 1 for the last K positions."""
    recency = 1.0 if position >= length - recency_positions else 0.0
    return float(np.exp(-gamma * position) * (1.0 + delta * recency))


class WorkingMemory:
    """
    Bounded store of the most recent items with a primacy/recency profile.

    Once capacity is exceeded the oldest item is evicted. Activations per
    position are evolved by shunting dynamics only when update_dynamics()
    is called.
    """

    def __init__(
        self,
        item_dimension: int,
        config: Optional[WorkingMemoryConfig] = None,
        shunting: Optional[ShuntingConfig] = None,
    ):
        if item_dimension <= 0:
            raise ConfigurationError(f"item_dimension must be > 0, got {item_dimension}")
        self.config = config or WorkingMemoryConfig()
        self.item_dimension = item_dimension
        self.dynamics = ShuntingDynamics(shunting)

        self._items: Deque[np.ndarray] = deque()
        self._timestamps: Deque[float] = deque()
        self._activations: Deque[float] = deque()
        self._evicted: int = 0

    # ── Properties ──────────────────────────────────────────────────────────

    @property
    def capacity(self) -> int:
        return self.config.capacity

    @property
    def size(self) -> int:
        return len(self._items)

    @property
    def is_empty(self) -> bool:
        return not self._items

    @property
    def is_full(self) -> bool:
        return self.size >= self.capacity

    @property
    def utilization(self) -> float:
        return self.size / self.capacity

    @property
    def total_activation(self) -> float:
        return float(sum(self._activations))

    @property
    def timestamps(self) -> List[float]:
        return list(self._timestamps)

    @property
    def evicted_count(self) -> int:
        return self._evicted

    # ── Storage ─────────────────────────────────────────────────────────────

    def store_item(self, item: np.ndarray, timestamp: float) -> None:
        """Append one item. Evicts the oldest once capacity is exceeded."""
        vec = np.array(item, dtype=float).reshape(-1)
        if vec.shape[0] != self.item_dimension:
            raise DimensionMismatchError(
                f"item has dimension {vec.shape[0]}, working memory expects "
                f"{self.item_dimension}"
            )
        vec.flags.writeable = False

        self._items.append(vec)
        self._timestamps.append(float(timestamp))
        self._activations.append(0.0)

        while len(self._items) > self.capacity:
            self._items.popleft()
            self._timestamps.popleft()
            self._activations.popleft()
            self._evicted += 1

    def store_sequence(self, pattern: TemporalPattern) -> None:
        """Clear, then store every item at timestamps 1, 2, ..."""
        if not pattern.is_empty and pattern.dimension != self.item_dimension:
            raise DimensionMismatchError(
                f"pattern has dimension {pattern.dimension}, working memory expects "
                f"{self.item_dimension}"
            )
        self.clear()
        for i in range(pattern.length):
            self.store_item(pattern.item(i), float(i + 1))

    def clear(self) -> None:
        self._items.clear()
        self._timestamps.clear()
        self._activations.clear()
        self._evicted = 0

    # ── Primacy Gradient ────────────────────────────────────────────────────

    def primacy_weight(self, position: int, length: Optional[int] = None) -> float:
        cfg = self.config
        n = self.size if length is None else length
        return primacy_weight(
            position, n, cfg.primacy_gamma, cfg.primacy_delta, cfg.recency_positions
        )

    def primacy_weights(self) -> np.ndarray:
        n = self.size
        return np.array([self.primacy_weight(p, n) for p in range(n)])

    def primacy_gradient_strength(self) -> float:
        """Mean weight of the first half minus mean weight of the second half."""
        weights = self.primacy_weights()
        if len(weights) < 2:
            return 0.0
        half = len(weights) // 2
        return float(np.mean(weights[:half]) - np.mean(weights[half:]))

    # ── Dynamics ────────────────────────────────────────────────────────────

    def update_dynamics(self, dt: Optional[float] = None) -> np.ndarray:
        """
        One shunting step of the per-position activations.

        Excitation is the primacy weight times the item's peak magnitude;
        inhibition is competition times the summed activity of the others.
        """
        if self.is_empty:
            return np.zeros(0)
        dt = self.config.time_step if dt is None else dt

        x = np.array(self._activations)
        peaks = np.array([np.max(np.abs(v)) for v in self._items])
        excitation = self.primacy_weights() * peaks
        inhibition = self.config.competition * (np.sum(x) - x)

        x = self.dynamics.step(x, excitation, inhibition, dt)
        self._activations = deque(float(a) for a in x)
        return x

    def get_activations(self) -> np.ndarray:
        return np.array(self._activations)

    # ── Queries ─────────────────────────────────────────────────────────────

    def get_current_contents(self) -> TemporalPattern:
        """Snapshot of the stored items carrying their primacy weights."""
        if self.is_empty:
            return TemporalPattern.empty(self.item_dimension)
        return TemporalPattern(
            np.stack(list(self._items)),
            self.primacy_weights(),
            dimension=self.item_dimension,
        )

    def get_items_above_threshold(self, threshold: float) -> List[int]:
        """Positions whose activation exceeds threshold."""
        return [i for i, a in enumerate(self._activations) if a > threshold]

    def get_recent_items(self, count: int) -> TemporalPattern:
        """The last `count` items, oldest first."""
        contents = self.get_current_contents()
        count = max(0, min(count, contents.length))
        return contents.subsequence(contents.length - count, contents.length)

    def get_most_salient_item(self) -> Optional[Tuple[int, np.ndarray]]:
        """(position, item) with the highest activation, or None if empty."""
        if self.is_empty:
            return None
        acts = self.get_activations()
        if not np.any(acts > 0):
            acts = self.primacy_weights()
        idx = int(np.argmax(acts))
        return idx, self._items[idx]

    def contains_item(self, item: np.ndarray, tolerance: float = 1e-9) -> bool:
        vec = np.asarray(item, dtype=float).reshape(-1)
        if vec.shape[0] != self.item_dimension:
            return False
        return any(np.all(np.abs(stored - vec) <= tolerance) for stored in self._items)

    def get_item_primacy(self, position: int) -> float:
        if not 0 <= position < self.size:
            raise IndexError(f"position {position} out of range for size {self.size}")
        return self.primacy_weight(position)

    # ── Snapshots ───────────────────────────────────────────────────────────

    def snapshot(self) -> dict:
        return {
            "items": [v.copy() for v in self._items],
            "timestamps": list(self._timestamps),
            "activations": list(self._activations),
            "evicted": self._evicted,
        }

    def restore(self, snapshot: dict) -> None:
        self.clear()
        for vec, ts in zip(snapshot["items"], snapshot["timestamps"]):
            self.store_item(vec, ts)
        self._activations = deque(float(a) for a in snapshot["activations"])
        self._evicted = int(snapshot["evicted"])

    def get_state(self) -> dict:
        return {
            "size": self.size,
            "capacity": self.capacity,
            "utilization": self.utilization,
            "total_activation": self.total_activation,
            "primacy_gradient": self.primacy_gradient_strength(),
            "evicted": self._evicted,
        }
