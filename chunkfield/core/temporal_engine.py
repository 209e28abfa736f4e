# ═══════════════════════════════════════════════════════════════════════════════
# PART 6: TEMPORAL ENGINE (putting it all together)
# Design: Full team
# Implementation: I1 (Systems Architect) + I4 (Integration)
# ═══════════════════════════════════════════════════════════════════════════════

"""
I1: "This is the class that wires everything together. Items go into
working memory, the masking field settles, valleys become chunk
boundaries, and the biggest chunk goes to the classifier."

I4: "Single sequences are one synchronous call chain. Batches fan the
field dynamics out to a pool, each sequence with its own memory and
field, then talk to the classifier back on the caller's thread in input
order, so a batch gives exactly what a loop would."
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from chunkfield.core.classifier import (
    NO_MATCH,
    ActivationResult,
    ChunkClassifier,
    MockClassifier,
    NoMatch,
    Success,
)
from chunkfield.core.config import TemporalConfig
from chunkfield.core.errors import ConfigurationError, DimensionMismatchError, InvalidStateError
from chunkfield.core.instar import CompetitiveInstar
from chunkfield.core.masking_field import MaskingField, MaskingResult
from chunkfield.core.temporal_pattern import TemporalPattern
from chunkfield.core.working_memory import WorkingMemory

logger = logging.getLogger(__name__)

PatternLike = Union[TemporalPattern, Sequence[Sequence[float]], np.ndarray]

SIMILARITY_TOLERANCE = 0.1


class EngineState(Enum):
    IDLE = "idle"                   # No sequence in progress
    ACCUMULATING = "accumulating"   # Streaming items in
    CHUNK_READY = "chunk_ready"     # Last streamed item produced a chunk


@dataclass(frozen=True, eq=False)
class TemporalResult:
    """Outcome of one learn / predict / stream call."""
    activation_result: ActivationResult
    chunks: Tuple[TemporalPattern, ...]
    working_memory_contents: TemporalPattern
    masking_activations: Tuple[np.ndarray, ...]
    gate_values: Tuple[np.ndarray, ...]
    processing_time: float
    has_temporal_resonance: bool
    resonance_quality: float
    chunk_boundaries: Tuple[int, ...]
    masking_result: Optional[MaskingResult] = None

    @property
    def category_index(self) -> Optional[int]:
        if isinstance(self.activation_result, Success):
            return self.activation_result.category_index
        return None

    def is_success(self) -> bool:
        return isinstance(self.activation_result, Success)

    def has_new_chunks(self) -> bool:
        return len(self.chunks) > 0

    def primary_chunk(self) -> Optional[TemporalPattern]:
        """Largest chunk; the earliest one wins ties."""
        if not self.chunks:
            return None
        return max(self.chunks, key=lambda c: c.length)

    def requires_chunking(self) -> bool:
        return len(self.chunks) > 1

    def summary(self) -> dict:
        return {
            "success": self.is_success(),
            "category": self.category_index,
            "chunks": [c.length for c in self.chunks],
            "boundaries": list(self.chunk_boundaries),
            "resonance": self.has_temporal_resonance,
            "resonance_quality": self.resonance_quality,
            "processing_time": self.processing_time,
        }


class TemporalEngine:
    """
    Real-time temporal chunking engine.

    Wires together:
    - Item-and-order working memory
    - Multi-scale masking field (segmentation)
    - Competitive instar (chunk templates)
    - An external ChunkClassifier (categories)

    learn_temporal / predict_temporal are single-shot: reset, load the whole
    sequence, settle the field, classify the largest chunk.
    process_sequence_item streams one item at a time and only calls the
    classifier once the field has converged with at least one boundary.
    """

    def __init__(
        self,
        classifier: ChunkClassifier,
        item_dimension: int,
        config: Optional[TemporalConfig] = None,
        max_sequence_length: Optional[int] = None,
    ) -> None:
        if item_dimension <= 0:
            raise ConfigurationError(f"item_dimension must be > 0, got {item_dimension}")
        self.config = config or TemporalConfig()
        cfg = self.config

        if max_sequence_length is None:
            max_sequence_length = cfg.working_memory_capacity
        if max_sequence_length < cfg.working_memory_capacity:
            raise ConfigurationError(
                f"max_sequence_length {max_sequence_length} is below working memory "
                f"capacity {cfg.working_memory_capacity}"
            )

        self.classifier = classifier
        self.item_dimension = item_dimension
        self.max_sequence_length = max_sequence_length

        self.working_memory = self._make_working_memory()
        self.masking_field = self._make_masking_field()
        self.instar = CompetitiveInstar(
            max_sequence_length * item_dimension, cfg.instar_config()
        )

        self.learned_chunks: List[TemporalPattern] = []
        self.state = EngineState.IDLE
        self._current_time: float = 0.0
        self._executor: Optional[ThreadPoolExecutor] = None
        self._reset_stats()

        logger.debug(
            "TemporalEngine ready: item_dimension=%d max_sequence_length=%d scales=%s",
            item_dimension, max_sequence_length, cfg.field_sizes,
        )

    def _make_working_memory(self) -> WorkingMemory:
        return WorkingMemory(
            self.item_dimension,
            self.config.working_memory_config(),
            self.config.shunting_config(),
        )

    def _make_masking_field(self) -> MaskingField:
        return MaskingField(
            self.config.masking_config(),
            self.config.shunting_config(),
            self.config.transmitter_config(),
        )

    def _reset_stats(self) -> None:
        self._stats = {
            "temporal_operations": 0,
            "chunking_operations": 0,
            "batch_operations": 0,
            "classifier_calls": 0,
            "processing_time": 0.0,
        }

    # ── Context Manager ─────────────────────────────────────────────────────

    def __enter__(self) -> "TemporalEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    # ── Single-Shot Interface ───────────────────────────────────────────────

    def learn_temporal(self, pattern: PatternLike) -> TemporalResult:
        """Reset, segment the whole sequence, and learn its largest chunk."""
        return self._single_shot(pattern, learn=True)

    def predict_temporal(self, pattern: PatternLike) -> TemporalResult:
        """Reset, segment the whole sequence, and classify its largest chunk without learning."""
        return self._single_shot(pattern, learn=False)

    def would_create_new_chunk(self, pattern: PatternLike) -> bool:
        """True if any chunk of the pattern would fail to match a known category."""
        pattern = self._coerce(pattern)
        if pattern.is_empty:
            return False
        _, _, chunks = self._run_pipeline(
            pattern, self._make_working_memory(), self._make_masking_field()
        )
        for chunk in chunks:
            result = self.classifier.predict(chunk.flatten(self.max_sequence_length))
            self._check_result(result)
            if isinstance(result, NoMatch):
                return True
        return False

    # ── Streaming Interface ─────────────────────────────────────────────────

    def process_sequence_item(self, item: Sequence[float]) -> TemporalResult:
        """
        Append one item and advance the masking field by one time step.

        The classifier is only consulted when the step converged with at
        least one boundary; otherwise the result just describes the
        current state.
        """
        start = time.perf_counter()
        if self.state is EngineState.IDLE:
            self.reset_temporal_state()

        self.working_memory.store_item(item, self._current_time + 1.0)
        self._current_time += 1.0
        self.state = EngineState.ACCUMULATING

        contents = self.working_memory.get_current_contents()
        masking = self.masking_field.process_time_step(contents, self.config.stream_time_step)

        chunks: List[TemporalPattern] = []
        activation: ActivationResult = NO_MATCH
        if masking.converged and masking.has_boundaries:
            chunks = self._extract_chunks(contents, masking.boundaries)
            if chunks:
                learn = self.config.enable_learning
                activation = self._classify(chunks, learn)
                if learn:
                    self.update_learned_chunks(chunks)
                self.state = EngineState.CHUNK_READY
                if len(chunks) > 1:
                    self._stats["chunking_operations"] += 1

        self._stats["temporal_operations"] += 1
        return self._make_result(contents, activation, chunks, masking, start)

    def end_sequence(self) -> TemporalResult:
        """
        Close the streamed sequence: settle the field on the current working
        memory contents and chunk them, boundaries or not.

        Covers the tail of a stream whose last step never converged. With
        nothing stored this returns the empty result and leaves the state
        alone.
        """
        start = time.perf_counter()
        contents = self.working_memory.get_current_contents()
        if contents.is_empty:
            return self._empty_result(start)

        masking = self.masking_field.process(contents)
        chunks = self._extract_chunks(contents, masking.boundaries)
        learn = self.config.enable_learning
        activation = self._classify(chunks, learn)
        if learn:
            self.update_learned_chunks(chunks)
        self.state = EngineState.CHUNK_READY
        if len(chunks) > 1:
            self._stats["chunking_operations"] += 1

        self._stats["temporal_operations"] += 1
        logger.debug(
            "Sequence ended after %d items: converged=%s boundaries=%s",
            contents.length, masking.converged, list(masking.boundaries),
        )
        return self._make_result(contents, activation, chunks, masking, start)

    def reset_temporal_state(self) -> None:
        """Drop the in-progress sequence. Learned chunks and categories are kept."""
        self.working_memory.clear()
        self.masking_field.reset()
        self._current_time = 0.0
        self.state = EngineState.IDLE

    # ── Batch Interface ─────────────────────────────────────────────────────

    def learn_temporal_batch(self, patterns: Sequence[PatternLike]) -> List[TemporalResult]:
        return self._batch(patterns, learn=True)

    def predict_temporal_batch(self, patterns: Sequence[PatternLike]) -> List[TemporalResult]:
        return self._batch(patterns, learn=False)

    # ── Queries ─────────────────────────────────────────────────────────────

    def get_working_memory_contents(self) -> TemporalPattern:
        return self.working_memory.get_current_contents()

    def get_working_memory_capacity(self) -> int:
        return self.working_memory.capacity

    def get_masking_field_activations(self) -> List[np.ndarray]:
        return self.masking_field.get_all_activations()

    def get_temporal_chunks(self) -> List[TemporalPattern]:
        return list(self.learned_chunks)

    def get_chunk_templates(self) -> np.ndarray:
        return self.instar.weights.copy()

    def get_category_count(self) -> int:
        return self.classifier.get_category_count()

    # ── Learned Chunks ──────────────────────────────────────────────────────

    def update_learned_chunks(self, chunks: Sequence[TemporalPattern]) -> int:
        """Add chunks with no near-duplicate already learned. Returns how many were added."""
        added = 0
        for chunk in chunks:
            if not self.contains_similar_chunk(chunk):
                self.learned_chunks.append(chunk)
                added += 1
        return added

    def contains_similar_chunk(
        self, chunk: TemporalPattern, tolerance: float = SIMILARITY_TOLERANCE
    ) -> bool:
        return any(chunk.is_similar(known, tolerance) for known in self.learned_chunks)

    # ── Lifecycle ───────────────────────────────────────────────────────────

    def clear(self) -> None:
        """Forget everything: sequence state, learned chunks, templates, categories."""
        self.reset_temporal_state()
        self.learned_chunks = []
        self.instar.clear()
        self.classifier.clear()

    def get_performance_stats(self) -> dict:
        return dict(self._stats)

    def reset_performance_tracking(self) -> None:
        self._reset_stats()

    def get_state(self) -> dict:
        return {
            "state": self.state.value,
            "working_memory": self.working_memory.get_state(),
            "masking_field": self.masking_field.get_state(),
            "learned_chunks": len(self.learned_chunks),
            "templates": self.instar.category_count,
            "categories": self.get_category_count(),
        }

    # ── Internal ────────────────────────────────────────────────────────────

    def _coerce(self, pattern: PatternLike) -> TemporalPattern:
        if isinstance(pattern, TemporalPattern):
            if not pattern.is_empty and pattern.dimension != self.item_dimension:
                raise DimensionMismatchError(
                    f"pattern has dimension {pattern.dimension}, engine expects "
                    f"{self.item_dimension}"
                )
            return pattern
        return TemporalPattern(pattern, dimension=self.item_dimension)

    def _single_shot(self, pattern: PatternLike, learn: bool) -> TemporalResult:
        start = time.perf_counter()
        pattern = self._coerce(pattern)
        self.reset_temporal_state()
        if pattern.is_empty:
            return self._empty_result(start)

        contents, masking, chunks = self._run_pipeline(
            pattern, self.working_memory, self.masking_field
        )
        return self._finish(contents, masking, chunks, learn, start)

    def _run_pipeline(
        self,
        pattern: TemporalPattern,
        working_memory: WorkingMemory,
        masking_field: MaskingField,
    ) -> Tuple[TemporalPattern, MaskingResult, List[TemporalPattern]]:
        """Working memory -> masking field -> chunks. Touches only the given components."""
        working_memory.store_sequence(pattern)
        working_memory.update_dynamics()
        contents = working_memory.get_current_contents()
        masking = masking_field.process(contents)
        chunks = self._extract_chunks(contents, masking.boundaries)
        logger.debug(
            "Sequence of %d items: converged=%s iterations=%d boundaries=%s",
            contents.length, masking.converged, masking.iterations, list(masking.boundaries),
        )
        return contents, masking, chunks

    def _finish(
        self,
        contents: TemporalPattern,
        masking: MaskingResult,
        chunks: List[TemporalPattern],
        learn: bool,
        start: float,
    ) -> TemporalResult:
        activation = self._classify(chunks, learn)
        if learn and self.config.enable_learning:
            self.update_learned_chunks(chunks)
        if len(chunks) > 1:
            self._stats["chunking_operations"] += 1
        self._stats["temporal_operations"] += 1
        return self._make_result(contents, activation, chunks, masking, start)

    def _extract_chunks(
        self, contents: TemporalPattern, boundaries: Sequence[int]
    ) -> List[TemporalPattern]:
        """Split contents at the boundaries; the whole sequence if chunking is off or none were found."""
        if contents.is_empty:
            return []
        if not self.config.enable_chunking or not boundaries:
            return [contents]

        chunks = []
        last = 0
        for b in boundaries:
            if last < b <= contents.length:
                chunks.append(contents.subsequence(last, b))
                last = b
        if last < contents.length:
            chunks.append(contents.subsequence(last, contents.length))

        return chunks

    def _classify(self, chunks: List[TemporalPattern], learn: bool) -> ActivationResult:
        """Send the largest chunk to the classifier; train its template on success."""
        if not chunks:
            return NO_MATCH
        primary = max(chunks, key=lambda c: c.length)
        flat = primary.flatten(self.max_sequence_length)

        result = self.classifier.learn(flat) if learn else self.classifier.predict(flat)
        self._stats["classifier_calls"] += 1
        self._check_result(result)

        if learn and isinstance(result, Success):
            self.instar.learn(flat, result.category_index, result.activation)
        return result

    @staticmethod
    def _check_result(result: object) -> None:
        if not isinstance(result, (Success, NoMatch)):
            raise InvalidStateError(
                f"classifier returned {type(result).__name__}, expected Success or NoMatch"
            )

    def _batch(self, patterns: Sequence[PatternLike], learn: bool) -> List[TemporalResult]:
        """
        Process a list of sequences in input order. Whichever path runs,
        the engine's own working memory and field are reset afterwards.
        """
        patterns = [self._coerce(p) for p in patterns]
        if len(patterns) < self.config.parallel_threshold:
            logger.debug("Batch of %d processed sequentially", len(patterns))
            results = [self._single_shot(p, learn) for p in patterns]
            self.reset_temporal_state()
            return results

        logger.debug("Batch of %d dispatched to worker pool", len(patterns))
        self.reset_temporal_state()
        executor = self._get_executor()
        futures = [executor.submit(self._run_isolated, p) for p in patterns]
        staged = [f.result() for f in futures]

        # Classifier and learned-chunk updates stay on this thread, in order.
        # Each result is timed as its own pipeline plus its own classification.
        results = []
        for outcome, pipeline_time in staged:
            start = time.perf_counter() - pipeline_time
            if outcome is None:
                results.append(self._empty_result(start))
            else:
                contents, masking, chunks = outcome
                results.append(self._finish(contents, masking, chunks, learn, start))

        self._stats["batch_operations"] += 1
        return results

    def _run_isolated(self, pattern: TemporalPattern):
        """Pipeline on a private working memory and field (worker thread)."""
        start = time.perf_counter()
        if pattern.is_empty:
            return None, 0.0
        outcome = self._run_pipeline(
            pattern, self._make_working_memory(), self._make_masking_field()
        )
        return outcome, time.perf_counter() - start

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.config.max_workers,
                thread_name_prefix="chunkfield",
            )
        return self._executor

    def _make_result(
        self,
        contents: TemporalPattern,
        activation: ActivationResult,
        chunks: List[TemporalPattern],
        masking: MaskingResult,
        start: float,
    ) -> TemporalResult:
        elapsed = time.perf_counter() - start
        self._stats["processing_time"] += elapsed
        return TemporalResult(
            activation_result=activation,
            chunks=tuple(chunks),
            working_memory_contents=contents,
            masking_activations=masking.activations,
            gate_values=masking.gates,
            processing_time=elapsed,
            has_temporal_resonance=masking.converged,
            resonance_quality=masking.max_activation,
            chunk_boundaries=masking.boundaries,
            masking_result=masking,
        )

    def _empty_result(self, start: float) -> TemporalResult:
        elapsed = time.perf_counter() - start
        return TemporalResult(
            activation_result=NO_MATCH,
            chunks=(),
            working_memory_contents=self.working_memory.get_current_contents(),
            masking_activations=tuple(self.masking_field.get_all_activations()),
            gate_values=tuple(self.masking_field.get_all_gates()),
            processing_time=elapsed,
            has_temporal_resonance=False,
            resonance_quality=0.0,
            chunk_boundaries=(),
        )


def create_engine(
    item_dimension: int,
    classifier: Optional[ChunkClassifier] = None,
    config: Optional[TemporalConfig] = None,
) -> TemporalEngine:
    """
    Create a TemporalEngine with list-learning defaults.

    Without a classifier a MockClassifier is used, which is enough for
    demos and tests.
    """
    if classifier is None:
        classifier = MockClassifier()
    return TemporalEngine(classifier, item_dimension, config)
