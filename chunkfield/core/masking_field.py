# ═══════════════════════════════════════════════════════════════════════════════
# PART 4: MULTI-SCALE MASKING FIELD
# Design: P1 (Dynamical Systems) + N4 (Sequence Memory)
# Implementation: I2 (Numerics)
# ═══════════════════════════════════════════════════════════════════════════════

"""
N4: "A masking field is a bank of competing list detectors. Fine scales
see short spans, coarse scales see long ones. Where activity dips between
two strong regions, that's where one chunk ends and the next begins."

P1: "Each scale is a shunting field with Gaussian lateral inhibition and
habituative gates. Scales talk to each other through the items they share.
Run until nothing moves, then read the valleys."

I2: "Valleys only count on cells that actually received an item, otherwise
every empty gap between projected items looks like a boundary."
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from chunkfield.core.activation_dynamics import ShuntingConfig, ShuntingDynamics
from chunkfield.core.errors import ConfigurationError, InvariantViolationError
from chunkfield.core.temporal_pattern import TemporalPattern
from chunkfield.core.transmitter_gates import TransmitterConfig, TransmitterGates

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MaskingFieldConfig:
    """Configuration for the multi-scale competitive field."""
    # Scales (finest first; sizes must not grow)
    field_sizes: Tuple[int, ...] = (20, 10, 5)

    # Competition
    self_excitation: float = 0.1
    self_inhibition: float = 0.1            # x total scale activation
    lateral_inhibition_strength: float = 0.2
    lateral_sigma: float = 2.0              # Gaussian kernel width, in cells

    # Segmentation
    boundary_threshold: float = 0.5

    # Integration
    convergence_threshold: float = 1e-4     # max |dx| per iteration
    max_iterations: int = 2000
    time_step: float = 0.05

    # Features
    enable_transmitter_gates: bool = True
    enable_multi_scale: bool = True
    scale_coupling: Tuple[float, float, float] = (1.0, 0.5, 0.1)  # self, adjacent, distant

    def __post_init__(self) -> None:
        sizes = tuple(self.field_sizes)
        if not sizes:
            raise ConfigurationError("at least one scale is required")
        if any(n <= 0 for n in sizes):
            raise ConfigurationError(f"field sizes must be > 0, got {sizes}")
        if any(b > a for a, b in zip(sizes, sizes[1:])):
            raise ConfigurationError(
                f"field sizes must be non-increasing with scale, got {sizes}"
            )
        if self.lateral_sigma <= 0:
            raise ConfigurationError(f"lateral_sigma must be > 0, got {self.lateral_sigma}")
        for name in ("self_excitation", "self_inhibition", "lateral_inhibition_strength"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be >= 0, got {getattr(self, name)}")
        if self.boundary_threshold <= 0:
            raise ConfigurationError(
                f"boundary_threshold must be > 0, got {self.boundary_threshold}"
            )
        if self.convergence_threshold <= 0:
            raise ConfigurationError(
                f"convergence_threshold must be > 0, got {self.convergence_threshold}"
            )
        if self.max_iterations <= 0:
            raise ConfigurationError(f"max_iterations must be > 0, got {self.max_iterations}")
        if self.time_step <= 0:
            raise ConfigurationError(f"time_step must be > 0, got {self.time_step}")
        if len(self.scale_coupling) != 3 or any(w < 0 for w in self.scale_coupling):
            raise ConfigurationError(
                f"scale_coupling must be three non-negative weights, got {self.scale_coupling}"
            )
        if self.scale_coupling[0] <= 0:
            raise ConfigurationError("self coupling weight must be > 0")
        object.__setattr__(self, "field_sizes", sizes)

    @property
    def scale_count(self) -> int:
        return len(self.field_sizes)


@dataclass(frozen=True, eq=False)
class MaskingResult:
    """One pass of the masking field. Arrays are read-only copies."""
    activations: Tuple[np.ndarray, ...]
    gates: Tuple[np.ndarray, ...]
    boundaries: Tuple[int, ...]
    converged: bool
    convergence_time: float
    iterations: int
    max_activation: float
    center_of_mass: float
    total_activation: float
    competitive_activity: float

    @property
    def has_boundaries(self) -> bool:
        return len(self.boundaries) > 0


class MaskingField:
    """
    N parallel competitive fields, one per scale.

    Sequence position i of an L-item pattern projects onto cell
    floor(i * n / L) of an n-cell scale. Each iteration runs a shunting
    step per scale (gated input minus Gaussian lateral inhibition as
    excitation, total-activity self-inhibition), advances the gates, and
    blends scales through the items they share.

    process() resets and loops to convergence; process_time_step() runs a
    single iteration on the persisting state.
    """

    def __init__(
        self,
        config: Optional[MaskingFieldConfig] = None,
        shunting: Optional[ShuntingConfig] = None,
        transmitter: Optional[TransmitterConfig] = None,
    ):
        self.config = config or MaskingFieldConfig()
        self.dynamics = ShuntingDynamics(shunting)
        self.transmitter_config = transmitter or TransmitterConfig()

        sizes = self.config.field_sizes
        self._kernels = [self._gaussian_kernel(n) for n in sizes]
        self._coupling = self._coupling_matrix(self.config.scale_count)

        self.activations: List[np.ndarray] = []
        self.gates: List[TransmitterGates] = []
        self.inputs: List[np.ndarray] = []
        self.occupied: List[np.ndarray] = []
        self._cells: List[np.ndarray] = []
        self._sequence_length: int = 0
        self._total_iterations: int = 0
        self.reset()

    def _gaussian_kernel(self, n: int) -> np.ndarray:
        """exp(-d^2 / 2 sigma^2) between every pair of cells, zero diagonal."""
        idx = np.arange(n)
        d = idx[:, None] - idx[None, :]
        kernel = np.exp(-(d * d) / (2.0 * self.config.lateral_sigma ** 2))
        np.fill_diagonal(kernel, 0.0)
        return kernel

    def _coupling_matrix(self, scale_count: int) -> np.ndarray:
        w_self, w_adj, w_far = self.config.scale_coupling
        idx = np.arange(scale_count)
        dist = np.abs(idx[:, None] - idx[None, :])
        return np.where(dist == 0, w_self, np.where(dist == 1, w_adj, w_far))

    # ── Properties ──────────────────────────────────────────────────────────

    @property
    def scale_count(self) -> int:
        return self.config.scale_count

    @property
    def field_sizes(self) -> Tuple[int, ...]:
        return self.config.field_sizes

    @property
    def sequence_length(self) -> int:
        return self._sequence_length

    @property
    def total_iterations(self) -> int:
        return self._total_iterations

    # ── Public Methods ──────────────────────────────────────────────────────

    def reset(self) -> None:
        """Zero activations, refill gates, forget the projected pattern."""
        sizes = self.config.field_sizes
        self.activations = [np.zeros(n) for n in sizes]
        self.gates = [TransmitterGates(n, self.transmitter_config) for n in sizes]
        self.inputs = [np.zeros(n) for n in sizes]
        self.occupied = [np.zeros(n, dtype=bool) for n in sizes]
        self._cells = [np.zeros(0, dtype=int) for _ in sizes]
        self._sequence_length = 0

    def process(self, pattern: TemporalPattern) -> MaskingResult:
        """Reset, project the pattern, and iterate until convergence or max_iterations."""
        cfg = self.config
        self.reset()
        self._project(pattern)

        if pattern.is_empty:
            return self._make_result(converged=True, iterations=0, dt=cfg.time_step)

        converged = False
        iterations = 0
        delta = float("inf")
        while iterations < cfg.max_iterations:
            delta = self._iterate(cfg.time_step)
            iterations += 1
            if delta < cfg.convergence_threshold:
                converged = True
                break

        if not converged:
            logger.warning(
                "Masking field did not converge after %d iterations (max delta %.3g); "
                "using final state for boundaries",
                iterations, delta,
            )
        return self._make_result(converged, iterations, cfg.time_step)

    def process_time_step(
        self, pattern: TemporalPattern, dt: Optional[float] = None
    ) -> MaskingResult:
        """Project the pattern onto the persisting state and run exactly one iteration."""
        dt = self.config.time_step if dt is None else dt
        if dt <= 0:
            raise ValueError(f"time step must be > 0, got {dt}")
        self._project(pattern)
        if pattern.is_empty:
            return self._make_result(converged=True, iterations=0, dt=dt)

        delta = self._iterate(dt)
        return self._make_result(delta < self.config.convergence_threshold, 1, dt)

    def detect_boundaries(self) -> List[int]:
        """
        Local minima under boundary_threshold, merged across scales.

        Scales are visited finest first. A coarser boundary lying within one
        coarse cell span of an accepted boundary is the same boundary seen
        at lower resolution and is dropped.
        """
        L = self._sequence_length
        if L < 3:
            return []

        accepted: List[int] = []
        for s, n in enumerate(self.config.field_sizes):
            span = L / n
            found = [
                b for b in self._scale_boundaries(s)
                if all(abs(b - a) >= span for a in accepted)
            ]
            accepted.extend(found)

        return sorted(set(b for b in accepted if 1 <= b <= L - 1))

    def get_scale_activations(self, scale: int) -> np.ndarray:
        if not 0 <= scale < self.scale_count:
            raise IndexError(f"invalid scale {scale}")
        return self.activations[scale].copy()

    def get_all_activations(self) -> List[np.ndarray]:
        return [a.copy() for a in self.activations]

    def get_all_gates(self) -> List[np.ndarray]:
        return [g.levels.copy() for g in self.gates]

    def get_total_activation(self) -> float:
        return float(sum(np.sum(a) for a in self.activations))

    def competitive_activity_level(self) -> float:
        """Fraction of occupied cells above half the peak activation."""
        values = np.concatenate(
            [a[m] for a, m in zip(self.activations, self.occupied)]
        ) if self._sequence_length else np.zeros(0)
        if values.size == 0:
            return 0.0
        peak = float(np.max(values))
        if peak <= 0.0:
            return 0.0
        return float(np.mean(values > 0.5 * peak))

    def has_competitive_activity(self) -> bool:
        """Some cells are winning and some are losing."""
        level = self.competitive_activity_level()
        return 0.0 < level < 1.0

    def apply_modulation(self, factor: float) -> None:
        """Scale every activation by factor (attention / arousal), then clamp."""
        if factor < 0:
            raise ValueError(f"modulation factor must be >= 0, got {factor}")
        self.activations = [self.dynamics.clamp(a * factor) for a in self.activations]

    def snapshot(self) -> dict:
        return {
            "activations": self.get_all_activations(),
            "gates": self.get_all_gates(),
            "inputs": [u.copy() for u in self.inputs],
            "occupied": [m.copy() for m in self.occupied],
            "cells": [c.copy() for c in self._cells],
            "sequence_length": self._sequence_length,
        }

    def restore(self, snapshot: dict) -> None:
        sizes = self.config.field_sizes
        if [len(a) for a in snapshot["activations"]] != list(sizes):
            raise ConfigurationError("snapshot field sizes do not match this field")
        self.activations = [self.dynamics.clamp(a) for a in snapshot["activations"]]
        for gate, levels in zip(self.gates, snapshot["gates"]):
            gate.restore(levels)
        self.inputs = [np.array(u, dtype=float) for u in snapshot["inputs"]]
        self.occupied = [np.array(m, dtype=bool) for m in snapshot["occupied"]]
        self._cells = [np.array(c, dtype=int) for c in snapshot["cells"]]
        self._sequence_length = int(snapshot["sequence_length"])

    def get_state(self) -> dict:
        return {
            "scales": self.scale_count,
            "field_sizes": list(self.field_sizes),
            "sequence_length": self._sequence_length,
            "total_activation": self.get_total_activation(),
            "max_activation": max(float(np.max(a)) for a in self.activations),
            "mean_gate": [g.mean_level for g in self.gates],
            "total_iterations": self._total_iterations,
        }

    # ── Internal ────────────────────────────────────────────────────────────

    def _project(self, pattern: TemporalPattern) -> None:
        """Write primacy-weighted item strength into each scale's cells."""
        L = pattern.length
        self._sequence_length = L
        strengths = pattern.weights * pattern.peak_magnitudes()

        for s, n in enumerate(self.config.field_sizes):
            u = np.zeros(n)
            occupied = np.zeros(n, dtype=bool)
            if L > 0:
                cells = (np.arange(L) * n) // L
                np.maximum.at(u, cells, strengths)
                occupied[cells] = True
            else:
                cells = np.zeros(0, dtype=int)
            self.inputs[s] = u
            self.occupied[s] = occupied
            self._cells[s] = cells

    def _iterate(self, dt: float) -> float:
        """One update of every scale. Returns the max absolute activation change."""
        cfg = self.config
        previous = [a.copy() for a in self.activations]
        updated: List[np.ndarray] = []

        for s in range(self.scale_count):
            x = previous[s]
            u = self.inputs[s]
            g = self.gates[s].gate(u) if cfg.enable_transmitter_gates else u

            lateral = cfg.lateral_inhibition_strength * (self._kernels[s] @ x)
            drive = g - lateral
            excitation = np.maximum(drive, 0.0) + cfg.self_excitation * x
            inhibition = cfg.self_inhibition * np.sum(x) + np.maximum(-drive, 0.0)

            x_new = self.dynamics.step(x, excitation, inhibition, dt)
            if cfg.enable_transmitter_gates:
                self.gates[s].update(x_new, dt)
            updated.append(x_new)

        if cfg.enable_multi_scale and self.scale_count > 1 and self._sequence_length > 0:
            updated = self._blend_scales(updated)

        for x in updated:
            if not np.all(np.isfinite(x)):
                raise InvariantViolationError("non-finite masking field activation")

        self.activations = updated
        self._total_iterations += 1
        return max(float(np.max(np.abs(a - b))) for a, b in zip(updated, previous))

    def _blend_scales(self, activations: List[np.ndarray]) -> List[np.ndarray]:
        """
        Weighted average of each occupied cell with the cells holding the
        same item on the other scales (self / adjacent / distant weights).
        """
        blended = [a.copy() for a in activations]
        for s in range(self.scale_count):
            cells_s = self._cells[s]
            unique_cells, first_item = np.unique(cells_s, return_index=True)

            weights = self._coupling[s]
            total = np.zeros(len(unique_cells))
            for t in range(self.scale_count):
                total += weights[t] * activations[t][self._cells[t][first_item]]
            blended[s][unique_cells] = total / np.sum(weights)
        return blended

    def _scale_boundaries(self, scale: int) -> List[int]:
        """Item indices at local minima under threshold among occupied cells."""
        L = self._sequence_length
        n = self.config.field_sizes[scale]
        cells = np.flatnonzero(self.occupied[scale])
        acts = self.activations[scale][cells]
        threshold = self.config.boundary_threshold

        found = []
        for k in range(1, len(cells) - 1):
            a = acts[k]
            if a < threshold and a < acts[k - 1] and a < acts[k + 1]:
                # First item projected onto this cell
                found.append(int((cells[k] * L + n - 1) // n))
        return found

    def _make_result(self, converged: bool, iterations: int, dt: float) -> MaskingResult:
        activations = tuple(_frozen(a) for a in self.activations)
        gates = tuple(_frozen(g.levels) for g in self.gates)
        max_activation = max(float(np.max(a)) for a in self.activations)

        return MaskingResult(
            activations=activations,
            gates=gates,
            boundaries=tuple(self.detect_boundaries()),
            converged=converged,
            convergence_time=iterations * dt,
            iterations=iterations,
            max_activation=max_activation,
            center_of_mass=self._center_of_mass(),
            total_activation=self.get_total_activation(),
            competitive_activity=self.competitive_activity_level(),
        )

    def _center_of_mass(self) -> float:
        """Activation-weighted position on the finest scale, normalised to [0, 1]."""
        x = self.activations[0]
        total = float(np.sum(x))
        if total <= 0.0 or len(x) < 2:
            return 0.0
        return float(np.sum(np.arange(len(x)) * x) / total / (len(x) - 1))


def _frozen(a: np.ndarray) -> np.ndarray:
    out = np.array(a, dtype=float)
    out.flags.writeable = False
    return out
