# ═══════════════════════════════════════════════════════════════════════════════
# PART 2: TRANSMITTER GATES
# Design: N3 (Synaptic Plasticity) | Implementation: I2 (Numerics)
# ═══════════════════════════════════════════════════════════════════════════════

"""
N3: "A habituative gate is a reservoir. Firing drains it, silence refills
it. A cell that wins for too long runs out of transmitter and lets someone
else through - that's what stops perseveration."

I2: "dz/dt = eps*(1 - z) - z*(lam*x + mu*x^2). Recovery is slow, depletion
is fast under load. Clamp to [0, 1] every step."
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from chunkfield.core.errors import ConfigurationError, InvariantViolationError


@dataclass(frozen=True)
class TransmitterConfig:
    """Habituative gate rates."""
    recovery_rate: float = 0.1          # eps, toward 1 when quiet
    linear_depletion: float = 0.4       # lam
    quadratic_depletion: float = 0.2    # mu
    depletion_threshold: float = 0.2    # Below this a gate counts as depleted

    def __post_init__(self) -> None:
        if not 0.0 < self.recovery_rate <= 1.0:
            raise ConfigurationError(
                f"recovery_rate must be in (0, 1], got {self.recovery_rate}"
            )
        if not 0.0 <= self.linear_depletion <= 10.0:
            raise ConfigurationError(
                f"linear_depletion must be in [0, 10], got {self.linear_depletion}"
            )
        if not 0.0 <= self.quadratic_depletion <= 10.0:
            raise ConfigurationError(
                f"quadratic_depletion must be in [0, 10], got {self.quadratic_depletion}"
            )
        if not 0.0 <= self.depletion_threshold < 1.0:
            raise ConfigurationError(
                f"depletion_threshold must be in [0, 1), got {self.depletion_threshold}"
            )


class TransmitterGates:
    """
    Per-position habituative gates.

    Levels start full (1.0). update() advances them one Euler step driven by
    the post-synaptic signal at each position; apply_gate() multiplies an
    input vector through them.
    """

    def __init__(self, size: int, config: Optional[TransmitterConfig] = None):
        if size <= 0:
            raise ConfigurationError(f"gate count must be > 0, got {size}")
        self.config = config or TransmitterConfig()
        self._size = size
        self.levels: np.ndarray = np.ones(size)

    # ── Properties ──────────────────────────────────────────────────────────

    @property
    def size(self) -> int:
        return self._size

    @property
    def mean_level(self) -> float:
        return float(np.mean(self.levels))

    # ── Pure Functions ──────────────────────────────────────────────────────

    def compute_update(self, levels: np.ndarray, signals: np.ndarray, dt: float) -> np.ndarray:
        """One Euler step of the gate equation, clamped to [0, 1]."""
        cfg = self.config
        z = np.asarray(levels, dtype=float)
        x = np.asarray(signals, dtype=float)
        if not (np.all(np.isfinite(z)) and np.all(np.isfinite(x))):
            raise InvariantViolationError("non-finite transmitter input")

        depletion = cfg.linear_depletion * x + cfg.quadratic_depletion * x * x
        dz = cfg.recovery_rate * (1.0 - z) - z * depletion
        return np.clip(z + dt * dz, 0.0, 1.0)

    def equilibrium(self, signal: float) -> float:
        """Steady-state level under a constant signal."""
        cfg = self.config
        return cfg.recovery_rate / (
            cfg.recovery_rate
            + cfg.linear_depletion * signal
            + cfg.quadratic_depletion * signal * signal
        )

    @staticmethod
    def apply_gate(inputs: np.ndarray, levels: np.ndarray) -> np.ndarray:
        """
        inputs[i] * levels[i].

        Positions beyond the gate count pass through unchanged.
        """
        inputs = np.asarray(inputs, dtype=float)
        out = inputs.copy()
        n = min(len(inputs), len(levels))
        out[:n] = inputs[:n] * levels[:n]
        return out

    # ── Stateful Methods ────────────────────────────────────────────────────

    def update(self, signals: np.ndarray, dt: float) -> np.ndarray:
        """Advance the owned levels one step. Returns the new levels."""
        self.levels = self.compute_update(self.levels, signals, dt)
        return self.levels

    def gate(self, inputs: np.ndarray) -> np.ndarray:
        return self.apply_gate(inputs, self.levels)

    def is_depleted(self, index: int) -> bool:
        return bool(self.levels[index] < self.config.depletion_threshold)

    def has_depleted_gates(self) -> bool:
        return bool(np.any(self.levels < self.config.depletion_threshold))

    def depleted_indices(self) -> List[int]:
        return [int(i) for i in np.flatnonzero(self.levels < self.config.depletion_threshold)]

    def reset_depleted(self) -> int:
        """Restore only sub-threshold gates to 1. Returns how many were reset."""
        mask = self.levels < self.config.depletion_threshold
        self.levels = np.where(mask, 1.0, self.levels)
        return int(np.sum(mask))

    def reset_all(self) -> None:
        self.levels = np.ones(self._size)

    def snapshot(self) -> np.ndarray:
        return self.levels.copy()

    def restore(self, levels: np.ndarray) -> None:
        levels = np.asarray(levels, dtype=float)
        if levels.shape != (self._size,):
            raise ConfigurationError(
                f"gate snapshot has shape {levels.shape}, expected ({self._size},)"
            )
        self.levels = np.clip(levels, 0.0, 1.0)

    def get_state(self) -> dict:
        return {
            "size": self._size,
            "mean_level": self.mean_level,
            "min_level": float(np.min(self.levels)),
            "depleted": self.depleted_indices(),
        }
