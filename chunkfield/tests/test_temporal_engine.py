"""Tests for TemporalEngine (learn / predict / stream / batch)."""

import dataclasses
import time

import numpy as np
import pytest

from chunkfield.core.classifier import ChunkClassifier, MockClassifier, NoMatch, Success
from chunkfield.core.config import TemporalConfig
from chunkfield.core.errors import ConfigurationError, DimensionMismatchError, InvalidStateError
from chunkfield.core.temporal_engine import EngineState, TemporalEngine, create_engine
from chunkfield.core.temporal_pattern import TemporalPattern

DIM = 10


def one_hot_sequence(n, dim=DIM, offset=0):
    return TemporalPattern(np.eye(dim)[[(i + offset) % dim for i in range(n)]])


def repeated_sequence(n, dim=DIM, index=3):
    item = np.zeros(dim)
    item[index] = 1.0
    return TemporalPattern(np.tile(item, (n, 1)))


def stream_config():
    """Single plain scale that reports convergence after every step."""
    return TemporalConfig(
        scale_count=1,
        field_sizes=(20,),
        lateral_inhibition_strength=0.0,
        enable_transmitter_gates=False,
        enable_multi_scale=False,
        convergence_threshold=10.0,
        boundary_threshold=1.0,
        primacy_gamma=0.0,
        primacy_delta=0.0,
    )


class BrokenClassifier(ChunkClassifier):
    """Returns something that is neither Success nor NoMatch."""

    def learn(self, pattern):
        return "resonance!"

    def predict(self, pattern):
        return None

    def get_category_count(self):
        return 0

    def clear(self):
        pass


# ── Core scenarios ──────────────────────────────────────────────────────────


def test_learn_distinct_sequence_segments():
    """7 distinct one-hot items: field converges and yields at least one boundary."""
    clf = MockClassifier()
    engine = TemporalEngine(clf, DIM)
    result = engine.learn_temporal(one_hot_sequence(7))

    assert result.has_temporal_resonance
    assert len(result.chunk_boundaries) >= 1
    assert result.requires_chunking()
    assert result.is_success()
    assert len(clf.calls("learn")) == 1


def test_identical_items_form_one_chunk():
    config = TemporalConfig(boundary_threshold=0.1)
    engine = TemporalEngine(MockClassifier(), DIM, config)
    result = engine.learn_temporal(repeated_sequence(3))

    assert result.chunk_boundaries == ()
    assert len(result.chunks) == 1
    assert result.chunks[0].length == 3


def test_empty_pattern_makes_no_classifier_call():
    clf = MockClassifier()
    engine = TemporalEngine(clf, DIM)
    result = engine.learn_temporal(TemporalPattern.empty(DIM))

    assert not result.has_new_chunks()
    assert isinstance(result.activation_result, NoMatch)
    assert clf.call_log == []


def test_working_memory_keeps_last_items_on_overflow():
    """500 items through capacity 100: only the most recent 100 remain."""
    items = np.array([np.eye(4)[i % 4] * (1.0 + i / 500.0) for i in range(500)])
    engine = TemporalEngine(MockClassifier(), 4, TemporalConfig(working_memory_capacity=100))
    engine.learn_temporal(items)

    contents = engine.get_working_memory_contents()
    assert contents.length == 100
    np.testing.assert_array_equal(contents.items, items[400:])


# ── Properties ──────────────────────────────────────────────────────────────


def test_chunks_cover_sequence_exactly():
    """Concatenating the chunks rebuilds the working memory contents."""
    engine = TemporalEngine(MockClassifier(), DIM)
    result = engine.learn_temporal(one_hot_sequence(7))

    rebuilt = TemporalPattern.concatenate(result.chunks)
    np.testing.assert_array_equal(rebuilt.items, result.working_memory_contents.items)
    assert sum(c.length for c in result.chunks) == 7


def test_identical_runs_are_deterministic():
    pattern = one_hot_sequence(7)
    a = TemporalEngine(MockClassifier(), DIM).learn_temporal(pattern)
    b = TemporalEngine(MockClassifier(), DIM).learn_temporal(pattern)

    assert a.chunk_boundaries == b.chunk_boundaries
    assert a.has_temporal_resonance == b.has_temporal_resonance
    assert a.activation_result == b.activation_result


def test_reset_then_replay_matches_fresh_engine():
    pattern = one_hot_sequence(7)
    engine = TemporalEngine(MockClassifier(), DIM)
    engine.learn_temporal(pattern)
    engine.clear()
    replay = engine.learn_temporal(pattern)

    fresh = TemporalEngine(MockClassifier(), DIM).learn_temporal(pattern)

    assert replay.chunk_boundaries == fresh.chunk_boundaries
    assert replay.activation_result == fresh.activation_result
    assert replay.resonance_quality == fresh.resonance_quality
    for x, y in zip(replay.masking_activations, fresh.masking_activations):
        np.testing.assert_array_equal(x, y)


# ── Streaming ───────────────────────────────────────────────────────────────


def test_streaming_finds_chunk_after_dip():
    """A silent item between strong ones becomes a boundary once it has neighbours."""
    clf = MockClassifier()
    engine = TemporalEngine(clf, 4, stream_config())
    items = [np.eye(4)[0], np.eye(4)[1], np.zeros(4), np.eye(4)[3]]

    assert engine.state is EngineState.IDLE
    results = [engine.process_sequence_item(item) for item in items]

    for r in results[:3]:
        assert not r.has_new_chunks()
        assert isinstance(r.activation_result, NoMatch)

    last = results[3]
    assert last.chunk_boundaries == (2,)
    assert [c.length for c in last.chunks] == [2, 2]
    assert last.is_success()
    assert len(clf.calls("learn")) == 1
    assert engine.state is EngineState.CHUNK_READY
    assert len(engine.get_temporal_chunks()) == 2


def test_streaming_without_convergence_never_classifies():
    clf = MockClassifier()
    engine = TemporalEngine(clf, DIM)
    for item in one_hot_sequence(6).items:
        result = engine.process_sequence_item(item)
        assert not result.has_temporal_resonance
        assert not result.has_new_chunks()

    assert clf.call_log == []
    assert engine.state is EngineState.ACCUMULATING
    assert engine.get_working_memory_contents().length == 6


def test_reset_temporal_state_returns_to_idle():
    engine = TemporalEngine(MockClassifier(), DIM)
    engine.process_sequence_item(np.eye(DIM)[0])
    engine.reset_temporal_state()

    assert engine.state is EngineState.IDLE
    assert engine.get_working_memory_contents().is_empty
    assert all(np.all(a == 0.0) for a in engine.get_masking_field_activations())


def test_streaming_predict_mode_does_not_learn():
    config = dataclasses.replace(stream_config(), enable_learning=False)
    clf = MockClassifier()
    engine = TemporalEngine(clf, 4, config)
    for item in [np.eye(4)[0], np.eye(4)[1], np.zeros(4), np.eye(4)[3]]:
        engine.process_sequence_item(item)

    assert len(clf.calls("predict")) == 1
    assert clf.calls("learn") == []
    assert engine.get_temporal_chunks() == []


def test_end_sequence_chunks_unconverged_tail():
    """Ending the stream settles the field and classifies even without a converged step."""
    clf = MockClassifier()
    engine = TemporalEngine(clf, DIM)
    for item in one_hot_sequence(5).items:
        engine.process_sequence_item(item)
    assert clf.call_log == []

    result = engine.end_sequence()

    assert len(clf.calls("learn")) == 1
    assert result.is_success()
    assert engine.state is EngineState.CHUNK_READY
    rebuilt = TemporalPattern.concatenate(result.chunks)
    assert rebuilt.length == 5
    np.testing.assert_array_equal(rebuilt.items, one_hot_sequence(5).items)
    assert result.masking_result.iterations > 1


def test_end_sequence_on_empty_memory_does_nothing():
    clf = MockClassifier()
    engine = TemporalEngine(clf, DIM)
    result = engine.end_sequence()

    assert not result.has_new_chunks()
    assert clf.call_log == []
    assert engine.state is EngineState.IDLE


def test_end_sequence_predicts_when_learning_disabled():
    clf = MockClassifier()
    engine = TemporalEngine(clf, DIM, TemporalConfig(enable_learning=False))
    for item in one_hot_sequence(4).items:
        engine.process_sequence_item(item)
    engine.end_sequence()

    assert len(clf.calls("predict")) == 1
    assert clf.calls("learn") == []
    assert engine.get_temporal_chunks() == []


# ── Batch ───────────────────────────────────────────────────────────────────


def _batch_patterns():
    return [
        one_hot_sequence(7),
        repeated_sequence(3),
        TemporalPattern.empty(DIM),
        one_hot_sequence(7, offset=2),
        one_hot_sequence(7),
    ]


def test_parallel_batch_matches_sequential_loop():
    patterns = _batch_patterns()

    with TemporalEngine(MockClassifier(), DIM) as engine:
        batch = engine.learn_temporal_batch(patterns)
        assert engine.get_performance_stats()["batch_operations"] == 1

    loop_engine = TemporalEngine(MockClassifier(), DIM)
    loop = [loop_engine.learn_temporal(p) for p in patterns]

    assert len(batch) == len(patterns)
    for b, s in zip(batch, loop):
        assert b.chunk_boundaries == s.chunk_boundaries
        assert b.activation_result == s.activation_result
        assert b.has_new_chunks() == s.has_new_chunks()


def test_small_batch_runs_sequentially():
    engine = TemporalEngine(MockClassifier(), DIM)
    results = engine.predict_temporal_batch([one_hot_sequence(5), repeated_sequence(3)])

    assert len(results) == 2
    assert engine.get_performance_stats()["batch_operations"] == 0
    assert all(isinstance(r.activation_result, NoMatch) for r in results)


@pytest.mark.parametrize("size", [2, 5])
def test_batch_leaves_engine_reset(size):
    """Sequential and pooled batches end in the same engine state."""
    engine = TemporalEngine(MockClassifier(), DIM)
    with engine:
        engine.learn_temporal_batch([one_hot_sequence(7)] * size)

    assert engine.state is EngineState.IDLE
    assert engine.get_working_memory_contents().is_empty
    assert all(np.all(a == 0.0) for a in engine.get_masking_field_activations())


class SlowClassifier(MockClassifier):
    """MockClassifier whose learn takes a fixed wall-clock time."""

    def __init__(self, delay):
        super().__init__()
        self.delay = delay

    def learn(self, pattern):
        time.sleep(self.delay)
        return super().learn(pattern)


def test_batch_results_time_only_their_own_work():
    """Earlier classifications in a pooled batch do not add to later results' time."""
    delay = 0.25
    engine = TemporalEngine(SlowClassifier(delay), DIM, TemporalConfig(max_iterations=50))
    with engine:
        results = engine.learn_temporal_batch([repeated_sequence(3)] * 5)

    for r in results:
        assert delay <= r.processing_time < 3 * delay


# ── Classifier interaction ──────────────────────────────────────────────────


def test_broken_classifier_is_fatal():
    engine = TemporalEngine(BrokenClassifier(), DIM)
    with pytest.raises(InvalidStateError):
        engine.learn_temporal(one_hot_sequence(5))


def test_predict_after_learn_matches_category():
    engine = TemporalEngine(MockClassifier(), DIM)
    learned = engine.learn_temporal(repeated_sequence(3))
    predicted = engine.predict_temporal(repeated_sequence(3))

    assert isinstance(predicted.activation_result, Success)
    assert predicted.category_index == learned.category_index
    assert engine.get_category_count() == 1


def test_would_create_new_chunk():
    engine = TemporalEngine(MockClassifier(), DIM)
    pattern = repeated_sequence(3)

    assert engine.would_create_new_chunk(pattern)
    engine.learn_temporal(pattern)
    assert not engine.would_create_new_chunk(pattern)
    assert not engine.would_create_new_chunk(TemporalPattern.empty(DIM))


def test_learned_chunks_deduplicate():
    engine = TemporalEngine(MockClassifier(), DIM, TemporalConfig(boundary_threshold=0.1))
    engine.learn_temporal(repeated_sequence(3))
    engine.learn_temporal(repeated_sequence(3))

    assert len(engine.get_temporal_chunks()) == 1
    near = TemporalPattern(repeated_sequence(3).items * 0.95)
    assert engine.contains_similar_chunk(near)


def test_instar_template_follows_learned_chunk():
    engine = TemporalEngine(MockClassifier(), DIM)
    engine.learn_temporal(repeated_sequence(3))

    templates = engine.get_chunk_templates()
    assert templates.shape == (1, engine.max_sequence_length * DIM)
    assert np.all(templates >= 0.0)
    assert templates[0, 3] > 0.0


def test_chunking_disabled_uses_whole_sequence():
    engine = TemporalEngine(MockClassifier(), DIM, TemporalConfig(enable_chunking=False))
    result = engine.learn_temporal(one_hot_sequence(7))

    assert len(result.chunks) == 1
    assert result.primary_chunk().length == 7
    assert not result.requires_chunking()


def test_clear_forgets_everything():
    clf = MockClassifier()
    engine = TemporalEngine(clf, DIM)
    engine.learn_temporal(repeated_sequence(3))
    engine.clear()

    assert engine.get_temporal_chunks() == []
    assert engine.get_category_count() == 0
    assert engine.get_chunk_templates().shape[0] == 0
    assert engine.state is EngineState.IDLE


# ── Validation ──────────────────────────────────────────────────────────────


def test_dimension_mismatch_fails_fast():
    engine = TemporalEngine(MockClassifier(), DIM)
    with pytest.raises(DimensionMismatchError):
        engine.process_sequence_item(np.ones(DIM + 1))
    with pytest.raises(DimensionMismatchError):
        engine.learn_temporal(np.ones((3, DIM - 1)))
    assert engine.state is EngineState.IDLE


def test_max_sequence_length_below_capacity_rejected():
    with pytest.raises(ConfigurationError):
        TemporalEngine(MockClassifier(), DIM, TemporalConfig(working_memory_capacity=10),
                       max_sequence_length=5)


def test_create_engine_and_state():
    engine = create_engine(DIM)
    assert isinstance(engine.classifier, MockClassifier)
    state = engine.get_state()
    assert state["state"] == "idle"
    assert state["masking_field"]["field_sizes"] == [20, 10, 5]

    result = engine.learn_temporal(one_hot_sequence(4))
    summary = result.summary()
    assert summary["chunks"] == [c.length for c in result.chunks]
    assert engine.get_performance_stats()["temporal_operations"] == 1
    engine.reset_performance_tracking()
    assert engine.get_performance_stats()["temporal_operations"] == 0
