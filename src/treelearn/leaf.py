# -*- coding: utf-8 -*-
"""
treelearn.leaf
==============

Models fitted on the rows that reach a terminal node.

Leaf learners must accept any non-empty set of rows and always return a
usable model: a rank-deficient linear system falls back to predicting the
weighted mean rather than failing.  :class:`LeafLearner` selects one of the
fixed strategies and dispatches ``fit`` to it.
"""
from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from .errors import FitError
from .rows import FeatureRow, TrainingRow

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Contracts
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class Prediction:
    """Point predictions for a batch of rows."""
    values: np.ndarray

    def expected(self) -> np.ndarray:
        return self.values

    def uncertainty(self) -> Optional[np.ndarray]:
        return None


class Model(ABC):
    @abstractmethod
    def transform(self, rows: Sequence[FeatureRow]) -> Prediction:
        """Predict a label for each row."""

    def loss(self) -> Optional[float]:
        return None


def _weighted_mean(labels: np.ndarray, weights: np.ndarray) -> float:
    sw = float(weights.sum())
    if sw <= 0.0:
        return float(labels.mean())
    return float((weights * labels).sum() / sw)


def _require_rows(rows: Sequence[TrainingRow]):
    if len(rows) == 0:
        raise FitError("Cannot fit a leaf model on zero rows.")


# -----------------------------------------------------------------------------
# Constant models
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class GuessTheMeanModel(Model):
    """Predicts the same value for every row."""
    value: object

    def transform(self, rows):
        return Prediction(np.full(len(rows), self.value))


class GuessTheMeanLearner:
    """Constant leaf: weighted mean for real labels, heaviest class for class codes."""

    def fit(self, rows: Sequence[TrainingRow], rng=None) -> GuessTheMeanModel:
        _require_rows(rows)
        y = np.array([r.label for r in rows], dtype=float)
        w = np.array([r.weight for r in rows], dtype=float)
        return GuessTheMeanModel(_weighted_mean(y, w))

    def fit_classes(self, rows: Sequence[TrainingRow], rng=None) -> GuessTheMeanModel:
        _require_rows(rows)
        rng = np.random.default_rng(rng)
        sums = {}
        for r in rows:
            sums[int(r.label)] = sums.get(int(r.label), 0.0) + r.weight
        best = max(sums.values())
        winners = sorted(k for k, v in sums.items() if v == best)
        # ties between classes are broken at random
        label = winners[0] if len(winners) == 1 else int(rng.choice(winners))
        return GuessTheMeanModel(label)


# -----------------------------------------------------------------------------
# Linear regression
# -----------------------------------------------------------------------------
@dataclass(frozen=True, eq=False)
class LinearRegressionModel(Model):
    """``intercept + sum(coeffs[k] * real_at(indices[k]))``."""
    intercept: float
    coeffs: np.ndarray
    indices: List[int]
    training_loss: Optional[float] = field(default=None, compare=False)

    def transform(self, rows):
        out = np.empty(len(rows), dtype=float)
        for i, row in enumerate(rows):
            x = np.array([row.real_at(idx) for idx in self.indices], dtype=float)
            out[i] = self.intercept + float(self.coeffs @ x) if len(self.indices) else self.intercept
        return Prediction(out)

    def loss(self):
        return self.training_loss


class LinearRegressionLearner:
    """Weighted least squares through the normal equations.

    Parameters
    ----------
    fit_intercept : bool, default=True
        Add a constant column.
    alpha : float, default=0.0
        Ridge term added to the diagonal of ``X^T W X``; negative values are
        clipped to zero.

    Only real features that are free of ``NaN`` and not constant over the
    rows are used.  With no more rows than usable features, or a singular
    system, the model predicts the weighted mean.
    """

    def __init__(self, fit_intercept: bool = True, alpha: Optional[float] = None):
        self.fit_intercept = bool(fit_intercept)
        self.alpha = max(float(alpha or 0.0), 0.0)

    def _usable_indices(self, X: np.ndarray) -> List[int]:
        if X.shape[1] == 0:
            return []
        has_nans = np.isnan(X).any(axis=0)
        is_constant = (X == X[0]).all(axis=0)
        return [int(j) for j in np.nonzero(~has_nans & ~is_constant)[0]]

    def _solve_normal_equation(self, X: np.ndarray, y: np.ndarray, w: np.ndarray) -> np.ndarray:
        Xw = X.T * w
        lhs = Xw @ X
        if self.alpha != 0.0:
            lhs[np.diag_indices_from(lhs)] += self.alpha
        return np.linalg.solve(lhs, Xw @ y)

    def fit(self, rows: Sequence[TrainingRow], rng=None) -> LinearRegressionModel:
        _require_rows(rows)
        X_all = np.array([r.features.reals for r in rows], dtype=float)
        y = np.array([r.label for r in rows], dtype=float)
        w = np.array([r.weight for r in rows], dtype=float)
        indices = self._usable_indices(X_all)
        ns, nf = len(rows), len(indices)
        mean = _weighted_mean(y, w)

        if ns <= nf:
            return LinearRegressionModel(mean, np.zeros(nf), indices)

        X = X_all[:, indices]
        if self.fit_intercept:
            X = np.hstack([np.ones((ns, 1)), X])
        try:
            beta = self._solve_normal_equation(X, y, w)
        except np.linalg.LinAlgError:
            logger.debug("singular normal equations on %d rows; using the mean", ns)
            return LinearRegressionModel(mean, np.zeros(nf), indices)

        if self.fit_intercept:
            intercept, coeffs = float(beta[0]), beta[1:]
        else:
            intercept, coeffs = 0.0, beta
        resid = y - X @ beta
        sw = float(w.sum())
        loss = float((w * resid * resid).sum() / sw) if sw > 0 else None
        return LinearRegressionModel(intercept, coeffs, indices, loss)


# -----------------------------------------------------------------------------
# Dispatcher
# -----------------------------------------------------------------------------
class LeafKind(enum.Enum):
    MEAN = "mean"
    LINEAR_REGRESSION = "linear"
    MAJORITY = "majority"


class LeafLearner:
    """One of the fixed leaf strategies.

    Use the constructors :meth:`mean`, :meth:`linreg` and :meth:`majority`.
    """

    def __init__(self, kind: LeafKind, learner):
        self.kind = LeafKind(kind)
        self.learner = learner

    @classmethod
    def mean(cls, learner: Optional[GuessTheMeanLearner] = None) -> "LeafLearner":
        return cls(LeafKind.MEAN, learner or GuessTheMeanLearner())

    @classmethod
    def linreg(cls, learner: Optional[LinearRegressionLearner] = None) -> "LeafLearner":
        return cls(LeafKind.LINEAR_REGRESSION, learner or LinearRegressionLearner())

    @classmethod
    def majority(cls, learner: Optional[GuessTheMeanLearner] = None) -> "LeafLearner":
        return cls(LeafKind.MAJORITY, learner or GuessTheMeanLearner())

    def fit(self, rows: Sequence[TrainingRow], rng=None) -> Model:
        if self.kind is LeafKind.MEAN:
            return self.learner.fit(rows, rng)
        elif self.kind is LeafKind.LINEAR_REGRESSION:
            return self.learner.fit(rows, rng)
        elif self.kind is LeafKind.MAJORITY:
            return self.learner.fit_classes(rows, rng)
        raise ValueError(f"Unknown leaf kind {self.kind!r}")

    def __repr__(self) -> str:
        return f"LeafLearner({self.kind.value})"
