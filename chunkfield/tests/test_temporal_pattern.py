"""Tests for TemporalPattern."""

import numpy as np
import pytest

from chunkfield.core.errors import DimensionMismatchError
from chunkfield.core.temporal_pattern import TemporalPattern


def _one_hot(n, dim):
    return np.eye(dim)[:n]


def test_pattern_is_immutable():
    """Source arrays are copied and exposed arrays are read-only."""
    src = _one_hot(3, 4)
    p = TemporalPattern(src)
    src[0, 0] = 99.0

    assert p.items[0, 0] == 1.0
    with pytest.raises(ValueError):
        p.items[0, 0] = 5.0
    with pytest.raises(ValueError):
        p.weights[0] = 5.0


def test_subsequence_returns_new_pattern():
    p = TemporalPattern(_one_hot(5, 5), weights=[1, 2, 3, 4, 5])
    sub = p.subsequence(1, 3)

    assert sub.length == 2
    np.testing.assert_array_equal(sub.items, p.items[1:3])
    np.testing.assert_array_equal(sub.weights, [2, 3])
    with pytest.raises(IndexError):
        p.subsequence(3, 9)


def test_empty_pattern_keeps_dimension():
    p = TemporalPattern.empty(6)
    assert p.is_empty
    assert p.dimension == 6
    assert len(p) == 0


def test_flatten_zero_pads():
    p = TemporalPattern([[1.0, 2.0], [3.0, 4.0]])
    flat = p.flatten(4)

    assert flat.shape == (8,)
    np.testing.assert_array_equal(flat, [1, 2, 3, 4, 0, 0, 0, 0])
    with pytest.raises(DimensionMismatchError):
        p.flatten(1)


def test_is_similar_uses_tolerance():
    a = TemporalPattern([[0.0, 1.0], [1.0, 0.0]])
    b = TemporalPattern([[0.05, 0.95], [1.0, 0.08]])
    c = TemporalPattern([[0.0, 1.0], [1.0, 0.3]])

    assert a.is_similar(b, 0.1)
    assert not a.is_similar(c, 0.1)
    assert not a.is_similar(a.subsequence(0, 1), 0.1)


def test_peak_magnitudes():
    p = TemporalPattern([[0.1, -0.7], [0.2, 0.3]])
    np.testing.assert_allclose(p.peak_magnitudes(), [0.7, 0.3])


def test_dimension_checks():
    with pytest.raises(DimensionMismatchError):
        TemporalPattern(_one_hot(2, 3), dimension=4)
    with pytest.raises(DimensionMismatchError):
        TemporalPattern(_one_hot(2, 3), weights=[1.0])
    with pytest.raises(DimensionMismatchError):
        TemporalPattern([1.0, 2.0, 3.0])


def test_concatenate_round_trips_chunks():
    p = TemporalPattern(_one_hot(6, 6), weights=np.arange(6.0))
    parts = [p.subsequence(0, 2), p.subsequence(2, 5), p.subsequence(5, 6)]
    assert TemporalPattern.concatenate(parts) == p
