"""Tests for the classifier contract and MockClassifier."""

import numpy as np
import pytest

from chunkfield.core.classifier import (
    NO_MATCH,
    ChunkClassifier,
    MockClassifier,
    NoMatch,
    Success,
)


def test_contract_is_abstract():
    with pytest.raises(TypeError):
        ChunkClassifier()


def test_learn_creates_then_reuses_category():
    clf = MockClassifier(vigilance=0.7)
    a = np.array([1.0, 0.0, 1.0, 0.0])
    b = np.array([0.0, 1.0, 0.0, 1.0])

    assert clf.learn(a) == Success(0, 1.0)
    assert clf.learn(b) == Success(1, 1.0)
    again = clf.learn(a)
    assert isinstance(again, Success) and again.category_index == 0
    assert clf.get_category_count() == 2


def test_predict_does_not_mutate():
    clf = MockClassifier()
    x = np.array([1.0, 1.0, 0.0])
    assert clf.predict(x) is NO_MATCH
    assert clf.get_category_count() == 0

    clf.learn(x)
    result = clf.predict(x)
    assert isinstance(result, Success) and result.category_index == 0
    assert isinstance(clf.predict(np.array([0.0, 0.0, 1.0])), NoMatch)
    assert clf.get_category_count() == 1


def test_call_log_records_everything():
    clf = MockClassifier()
    clf.learn(np.ones(2))
    clf.predict(np.ones(2))
    clf.clear()

    assert [c["method"] for c in clf.call_log] == ["learn", "predict", "clear"]
    assert len(clf.calls("learn")) == 1
    assert clf.get_category_count() == 0


def test_results_are_values():
    assert Success(1, 0.5) == Success(1, 0.5)
    assert NoMatch() == NO_MATCH
