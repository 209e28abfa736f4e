# ═══════════════════════════════════════════════════════════════════════════════
# PART 1: ACTIVATION DYNAMICS
# Design: P1 (Dynamical Systems) | Implementation: I2 (Numerics)
# ═══════════════════════════════════════════════════════════════════════════════

"""
P1: "Shunting equations are the workhorse. Excitation drives x toward the
ceiling, inhibition drives it toward the floor, and both are multiplied by
the remaining distance. The state can't leave its box."

I2: "Euler step plus a clamp. The clamp is there for large dt; with sane
steps it never fires."
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

from chunkfield.core.errors import ConfigurationError, InvariantViolationError

ArrayLike = Union[float, np.ndarray]


@dataclass(frozen=True)
class ShuntingConfig:
    """Constants of dx/dt = -A*x + (B - x)*E - (x + C)*I."""
    decay_rate: float = 0.5     # A
    ceiling: float = 1.0        # B, upper bound
    floor: float = 0.0          # C, lower bound is -C

    def __post_init__(self) -> None:
        if self.decay_rate <= 0:
            raise ConfigurationError(f"decay_rate must be > 0, got {self.decay_rate}")
        if self.ceiling <= 0:
            raise ConfigurationError(f"ceiling must be > 0, got {self.ceiling}")
        if self.floor < 0:
            raise ConfigurationError(f"floor must be >= 0, got {self.floor}")


class ShuntingDynamics:
    """
    Shunting on-center/off-surround integrator.

    Stateless: every method is a pure function of its arguments, so one
    instance can be shared by every field that uses the same constants.
    Works on scalars and numpy arrays alike (inputs broadcast).
    """

    def __init__(self, config: Optional[ShuntingConfig] = None):
        self.config = config or ShuntingConfig()

    # ── Properties ──────────────────────────────────────────────────────────

    @property
    def upper_bound(self) -> float:
        return self.config.ceiling

    @property
    def lower_bound(self) -> float:
        return -self.config.floor

    # ── Public Methods ──────────────────────────────────────────────────────

    def derivative(self, x: ArrayLike, excitation: ArrayLike, inhibition: ArrayLike) -> np.ndarray:
        """dx/dt at state x."""
        cfg = self.config
        x = np.asarray(x, dtype=float)
        return (
            -cfg.decay_rate * x
            + (cfg.ceiling - x) * excitation
            - (x + cfg.floor) * inhibition
        )

    def step(
        self,
        current: ArrayLike,
        excitation: ArrayLike,
        inhibition: ArrayLike,
        dt: float,
    ) -> np.ndarray:
        """One Euler step, clamped to [lower_bound, upper_bound]. Returns a new array."""
        current = np.asarray(current, dtype=float)
        _check_finite("activation", current)
        _check_finite("excitation", excitation)
        _check_finite("inhibition", inhibition)

        nxt = current + dt * self.derivative(current, excitation, inhibition)
        return np.clip(nxt, self.lower_bound, self.upper_bound)

    def integrate(
        self,
        current: ArrayLike,
        excitation: ArrayLike,
        inhibition: ArrayLike,
        dt: float,
        steps: int,
    ) -> np.ndarray:
        """Repeat step() with constant inputs."""
        x = np.asarray(current, dtype=float)
        for _ in range(steps):
            x = self.step(x, excitation, inhibition, dt)
        return x

    def equilibrium(self, excitation: ArrayLike, inhibition: ArrayLike) -> np.ndarray:
        """
        Steady state for constant inputs: (B*E - C*I) / (A + E + I).

        Defined as 0 where A + E + I == 0.
        """
        cfg = self.config
        e = np.asarray(excitation, dtype=float)
        i = np.asarray(inhibition, dtype=float)
        denom = cfg.decay_rate + e + i
        numer = cfg.ceiling * e - cfg.floor * i

        safe = np.where(denom == 0.0, 1.0, denom)
        eq = np.where(denom == 0.0, 0.0, numer / safe)
        return np.clip(eq, self.lower_bound, self.upper_bound)

    def clamp(self, x: ArrayLike) -> np.ndarray:
        return np.clip(np.asarray(x, dtype=float), self.lower_bound, self.upper_bound)


def _check_finite(name: str, value: ArrayLike) -> None:
    if not np.all(np.isfinite(value)):
        raise InvariantViolationError(f"non-finite {name} in shunting step")
