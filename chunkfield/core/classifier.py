# ═══════════════════════════════════════════════════════════════════════════════
# CHUNK CLASSIFIER INTERFACES
# Design: A3 (ML Integration) + I1 (Systems Architect)
# Implementation: I4 (Integration)
# ═══════════════════════════════════════════════════════════════════════════════

"""
A3: "The engine segments; something else categorises. Any pattern ->
category learner plugs in behind the same four methods."

I1: "Results are a closed set: Success or NoMatch. Anything else coming
back is a broken collaborator and the engine stops. Plus a mock so the
tests don't need a real category learner."
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Union

import numpy as np


@dataclass(frozen=True)
class Success:
    """Pattern resonated with (or created) a category."""
    category_index: int
    activation: float


@dataclass(frozen=True)
class NoMatch:
    """No category accepted the pattern."""


NO_MATCH = NoMatch()

ActivationResult = Union[Success, NoMatch]


class ChunkClassifier(ABC):
    """
    Abstract pattern -> category collaborator.

    If one instance is shared by engines running on several threads, the
    caller must serialise access to learn() and predict().
    """

    @abstractmethod
    def learn(self, pattern: np.ndarray) -> ActivationResult:
        """Classify and adapt; may create a new category."""

    @abstractmethod
    def predict(self, pattern: np.ndarray) -> ActivationResult:
        """Classify without changing any state."""

    @abstractmethod
    def get_category_count(self) -> int:
        """Number of learned categories."""

    @abstractmethod
    def clear(self) -> None:
        """Forget every category."""


class MockClassifier(ChunkClassifier):
    """
    Deterministic template classifier for testing.

    - match(x, w) = sum(min(x, w)) / sum(x), nonnegative inputs assumed.
    - learn() takes the best template at or above vigilance, or creates one.
    - predict() returns NoMatch below vigilance and never mutates.
    - All calls are recorded for test inspection.
    """

    def __init__(self, vigilance: float = 0.7, learning_rate: float = 1.0):
        self.vigilance = vigilance
        self.learning_rate = learning_rate
        self.templates: List[np.ndarray] = []
        self.call_log: list = []

    def learn(self, pattern: np.ndarray) -> ActivationResult:
        x = np.abs(np.asarray(pattern, dtype=float))
        self.call_log.append({"method": "learn", "pattern": x.copy()})

        best = self._best_match(x)
        if best is None:
            self.templates.append(x.copy())
            return Success(len(self.templates) - 1, 1.0)

        idx, score = best
        w = self.templates[idx]
        self.templates[idx] = (
            self.learning_rate * np.minimum(x, w) + (1.0 - self.learning_rate) * w
        )
        return Success(idx, score)

    def predict(self, pattern: np.ndarray) -> ActivationResult:
        x = np.abs(np.asarray(pattern, dtype=float))
        self.call_log.append({"method": "predict", "pattern": x.copy()})

        best = self._best_match(x)
        if best is None:
            return NO_MATCH
        return Success(*best)

    def get_category_count(self) -> int:
        return len(self.templates)

    def clear(self) -> None:
        self.templates = []
        self.call_log.append({"method": "clear"})

    def calls(self, method: str) -> list:
        return [c for c in self.call_log if c["method"] == method]

    def _best_match(self, x: np.ndarray):
        total = float(np.sum(x))
        best = None
        for idx, w in enumerate(self.templates):
            if w.shape != x.shape:
                continue
            score = float(np.sum(np.minimum(x, w)) / total) if total > 0 else 1.0
            if score >= self.vigilance and (best is None or score > best[1]):
                best = (idx, score)
        return best
