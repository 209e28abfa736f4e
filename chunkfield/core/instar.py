# ═══════════════════════════════════════════════════════════════════════════════
# PART 5: COMPETITIVE INSTAR LEARNING
# Design: A2 (Learning Rules) | Implementation: I2 (Numerics)
# ═══════════════════════════════════════════════════════════════════════════════

"""
A2: "Instar: the winner's incoming weights track the input that made it
win. The self-normalising form keeps the row sum bounded, so a template
never grows without limit no matter how often it wins."
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from chunkfield.core.errors import ConfigurationError, DimensionMismatchError


@dataclass(frozen=True)
class InstarConfig:
    """Instar learning options."""
    learning_rate: float = 0.1          # eta
    self_normalizing: bool = True       # False = hard competition (W -> x)
    soft_competition: bool = False      # Non-winners learn at soft_factor * eta
    soft_factor: float = 0.1

    def __post_init__(self) -> None:
        if not 0.0 < self.learning_rate <= 1.0:
            raise ConfigurationError(
                f"learning_rate must be in (0, 1], got {self.learning_rate}"
            )
        if not 0.0 <= self.soft_factor <= 1.0:
            raise ConfigurationError(f"soft_factor must be in [0, 1], got {self.soft_factor}")


def learning_signal(activation: float) -> float:
    """Sigmoid of a positive activation, zero otherwise."""
    if activation <= 0:
        return 0.0
    return float(1.0 / (1.0 + np.exp(-activation)))


class CompetitiveInstar:
    """
    Template weights, one non-negative row per category.

    update() is the pure rule; learn() applies it to a stored row (and to
    the other rows at a reduced rate under soft competition).
    """

    def __init__(self, input_dimension: int, config: Optional[InstarConfig] = None):
        if input_dimension <= 0:
            raise ConfigurationError(f"input_dimension must be > 0, got {input_dimension}")
        self.config = config or InstarConfig()
        self.input_dimension = input_dimension
        self.weights: np.ndarray = np.zeros((0, input_dimension))
        self._updates: int = 0

    # ── Properties ──────────────────────────────────────────────────────────

    @property
    def category_count(self) -> int:
        return int(self.weights.shape[0])

    @property
    def update_count(self) -> int:
        return self._updates

    # ── Pure Rule ───────────────────────────────────────────────────────────

    def update(
        self,
        weight_row: np.ndarray,
        presynaptic: np.ndarray,
        winner_activation: float,
        learning_rate: Optional[float] = None,
    ) -> np.ndarray:
        """
        New weight row after one instar step.

        Self-normalising: dW = eta * f(c) * [(1 - W) * x - W * sum(x)]
        Hard:             dW = eta * f(c) * (x - W)
        """
        eta = self.config.learning_rate if learning_rate is None else learning_rate
        w = np.asarray(weight_row, dtype=float)
        x = np.asarray(presynaptic, dtype=float)
        if w.shape != x.shape:
            raise DimensionMismatchError(
                f"weight row {w.shape} and input {x.shape} differ"
            )

        rate = eta * learning_signal(winner_activation)
        if self.config.self_normalizing:
            dw = (1.0 - w) * x - w * np.sum(x)
        else:
            dw = x - w
        return np.clip(w + rate * dw, 0.0, 1.0)

    # ── Category Methods ────────────────────────────────────────────────────

    def ensure_category(self, index: int) -> None:
        """Grow the weight matrix with zero rows up to `index`."""
        if index < 0:
            raise IndexError(f"category index must be >= 0, got {index}")
        missing = index + 1 - self.category_count
        if missing > 0:
            self.weights = np.vstack([self.weights, np.zeros((missing, self.input_dimension))])

    def compute_activations(self, presynaptic: np.ndarray) -> np.ndarray:
        """Dot product of the input with every template."""
        x = self._check_input(presynaptic)
        return self.weights @ x

    def find_winner(self, presynaptic: np.ndarray) -> Optional[Tuple[int, float]]:
        """(category, activation) of the best template, or None with no categories."""
        if self.category_count == 0:
            return None
        acts = self.compute_activations(presynaptic)
        idx = int(np.argmax(acts))
        return idx, float(acts[idx])

    def learn(self, presynaptic: np.ndarray, category: int, activation: float) -> np.ndarray:
        """Move the winning template toward the input. Returns the new row."""
        x = self._check_input(presynaptic)
        self.ensure_category(category)

        self.weights[category] = self.update(self.weights[category], x, activation)
        if self.config.soft_competition:
            soft_rate = self.config.learning_rate * self.config.soft_factor
            for k in range(self.category_count):
                if k != category:
                    self.weights[k] = self.update(self.weights[k], x, activation, soft_rate)

        self._updates += 1
        return self.weights[category].copy()

    def get_weights(self, category: int) -> np.ndarray:
        if not 0 <= category < self.category_count:
            raise IndexError(f"no category {category}")
        return self.weights[category].copy()

    def row_sums(self) -> List[float]:
        return [float(s) for s in np.sum(self.weights, axis=1)]

    def clear(self) -> None:
        self.weights = np.zeros((0, self.input_dimension))
        self._updates = 0

    def _check_input(self, presynaptic: np.ndarray) -> np.ndarray:
        x = np.asarray(presynaptic, dtype=float).reshape(-1)
        if x.shape[0] != self.input_dimension:
            raise DimensionMismatchError(
                f"input has dimension {x.shape[0]}, expected {self.input_dimension}"
            )
        return x
