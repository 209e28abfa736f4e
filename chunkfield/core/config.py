# ═══════════════════════════════════════════════════════════════════════════════
# ENGINE CONFIGURATION
# Design: P1 (Dynamical Systems) + N4 (Sequence Memory)
# Implementation: I1 (Systems Architect)
# ═══════════════════════════════════════════════════════════════════════════════

"""
I1: "One flat, frozen record for the whole engine. It checks itself when
built and hands each component its own slice. Presets are plain functions
returning fresh values, nothing global to mutate."
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Tuple

from chunkfield.core.activation_dynamics import ShuntingConfig
from chunkfield.core.errors import ConfigurationError
from chunkfield.core.instar import InstarConfig
from chunkfield.core.masking_field import MaskingFieldConfig
from chunkfield.core.transmitter_gates import TransmitterConfig
from chunkfield.core.working_memory import WorkingMemoryConfig


@dataclass(frozen=True)
class TemporalConfig:
    """Immutable configuration for TemporalEngine (list-learning defaults)."""
    # Masking field scales
    scale_count: int = 3
    field_sizes: Tuple[int, ...] = (20, 10, 5)

    # Shunting dynamics
    decay_rate: float = 0.5                 # A
    ceiling: float = 1.0                    # B
    floor: float = 0.0                      # C (lower bound is -C)

    # Competition
    self_excitation: float = 0.1
    self_inhibition: float = 0.1
    lateral_inhibition_strength: float = 0.2
    lateral_sigma: float = 2.0
    scale_coupling: Tuple[float, float, float] = (1.0, 0.5, 0.1)

    # Segmentation / integration
    boundary_threshold: float = 0.5
    convergence_threshold: float = 1e-4
    max_iterations: int = 2000
    time_step: float = 0.05
    stream_time_step: float = 0.1           # dt per streamed item

    # Transmitter gates
    transmitter_recovery_rate: float = 0.1              # eps
    transmitter_linear_depletion: float = 0.4           # lam
    transmitter_quadratic_depletion: float = 0.2        # mu
    depletion_threshold: float = 0.2

    # Working memory
    primacy_gamma: float = 0.1
    primacy_delta: float = 0.5
    recency_positions: int = 2
    working_memory_capacity: int = 20
    working_memory_competition: float = 0.3
    working_memory_time_step: float = 0.01

    # Instar learning
    learning_rate: float = 0.1              # eta
    self_normalizing: bool = True
    soft_competition: bool = False

    # Feature switches
    enable_transmitter_gates: bool = True
    enable_multi_scale: bool = True
    enable_chunking: bool = True
    enable_learning: bool = True

    # Batch processing
    parallel_threshold: int = 4
    max_workers: Optional[int] = None

    def __post_init__(self) -> None:
        if self.scale_count <= 0:
            raise ConfigurationError(f"scale_count must be > 0, got {self.scale_count}")
        sizes = tuple(self.field_sizes)
        if len(sizes) != self.scale_count:
            raise ConfigurationError(
                f"{len(sizes)} field sizes given for {self.scale_count} scales"
            )
        object.__setattr__(self, "field_sizes", sizes)
        object.__setattr__(self, "scale_coupling", tuple(self.scale_coupling))

        if self.stream_time_step <= 0:
            raise ConfigurationError(
                f"stream_time_step must be > 0, got {self.stream_time_step}"
            )
        if self.parallel_threshold < 1:
            raise ConfigurationError(
                f"parallel_threshold must be >= 1, got {self.parallel_threshold}"
            )
        if self.max_workers is not None and self.max_workers <= 0:
            raise ConfigurationError(f"max_workers must be > 0, got {self.max_workers}")

        # Component configs validate their own slices
        self.shunting_config()
        self.transmitter_config()
        self.working_memory_config()
        self.masking_config()
        self.instar_config()

    # ── Component Slices ────────────────────────────────────────────────────

    def shunting_config(self) -> ShuntingConfig:
        return ShuntingConfig(
            decay_rate=self.decay_rate,
            ceiling=self.ceiling,
            floor=self.floor,
        )

    def transmitter_config(self) -> TransmitterConfig:
        return TransmitterConfig(
            recovery_rate=self.transmitter_recovery_rate,
            linear_depletion=self.transmitter_linear_depletion,
            quadratic_depletion=self.transmitter_quadratic_depletion,
            depletion_threshold=self.depletion_threshold,
        )

    def working_memory_config(self) -> WorkingMemoryConfig:
        return WorkingMemoryConfig(
            capacity=self.working_memory_capacity,
            primacy_gamma=self.primacy_gamma,
            primacy_delta=self.primacy_delta,
            recency_positions=self.recency_positions,
            competition=self.working_memory_competition,
            time_step=self.working_memory_time_step,
        )

    def masking_config(self) -> MaskingFieldConfig:
        return MaskingFieldConfig(
            field_sizes=self.field_sizes,
            self_excitation=self.self_excitation,
            self_inhibition=self.self_inhibition,
            lateral_inhibition_strength=self.lateral_inhibition_strength,
            lateral_sigma=self.lateral_sigma,
            boundary_threshold=self.boundary_threshold,
            convergence_threshold=self.convergence_threshold,
            max_iterations=self.max_iterations,
            time_step=self.time_step,
            enable_transmitter_gates=self.enable_transmitter_gates,
            enable_multi_scale=self.enable_multi_scale,
            scale_coupling=self.scale_coupling,
        )

    def instar_config(self) -> InstarConfig:
        return InstarConfig(
            learning_rate=self.learning_rate,
            self_normalizing=self.self_normalizing,
            soft_competition=self.soft_competition,
        )


# ── Presets ────────────────────────────────────────────────────────────────


def field_sizes_for(base: int, scale_count: int, scale_factor: float) -> Tuple[int, ...]:
    """Geometric hierarchy: size at scale s is max(1, int(base / factor**s))."""
    if scale_factor < 1.0:
        raise ConfigurationError(f"scale_factor must be >= 1, got {scale_factor}")
    return tuple(max(1, int(base / scale_factor ** s)) for s in range(scale_count))


def list_learning_defaults() -> TemporalConfig:
    """Three scales (20, 10, 5), tuned for short lists of distinct items."""
    return TemporalConfig()


def paper_defaults() -> TemporalConfig:
    """Capacity-7 working memory with the classic primacy and competition rates."""
    return replace(
        TemporalConfig(),
        working_memory_capacity=7,
        self_excitation=0.2,
        working_memory_competition=0.3,
        primacy_gamma=0.1,
        working_memory_time_step=0.01,
    )


def short_sequences() -> TemporalConfig:
    """Two scales with weaker inhibition for lists of a handful of items."""
    return replace(
        TemporalConfig(),
        scale_count=2,
        field_sizes=field_sizes_for(15, 2, 1.5),
        lateral_inhibition_strength=0.15,
        self_inhibition=0.05,
        working_memory_capacity=10,
    )


def long_sequences() -> TemporalConfig:
    """Four scales and a larger store for long streams."""
    return replace(
        TemporalConfig(),
        scale_count=4,
        field_sizes=field_sizes_for(30, 4, 2.0),
        lateral_inhibition_strength=0.3,
        self_inhibition=0.15,
        working_memory_capacity=60,
        max_iterations=4000,
    )


def real_time() -> TemporalConfig:
    """Coarser steps and a looser stop criterion to bound latency."""
    return replace(
        TemporalConfig(),
        field_sizes=field_sizes_for(25, 3, 2.5),
        time_step=0.1,
        convergence_threshold=1e-3,
        max_iterations=500,
    )
