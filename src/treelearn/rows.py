# -*- coding: utf-8 -*-
"""
treelearn.rows
==============

Row containers consumed by the tree learners.

A :class:`FeatureRow` holds the real-valued and the categorical features of a
single observation.  Real and categorical features live in two disjoint,
zero-based index spaces: ``real_at(0)`` and ``categorical_at(0)`` address
different values.  A :class:`TrainingRow` adds a label and a non-negative
weight.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

import numpy as np


# -----------------------------------------------------------------------------
# Feature rows
# -----------------------------------------------------------------------------
class FeatureRow:
    """Immutable pair of real and categorical feature vectors.

    Parameters
    ----------
    reals : iterable of float
        Continuous features.  ``NaN`` is allowed and passed through.
    categoricals : iterable of int
        Integer category codes.
    """

    __slots__ = ("_reals", "_categoricals")

    def __init__(self, reals: Iterable[float] = (), categoricals: Iterable[int] = ()):
        r = np.array(list(reals) if not isinstance(reals, np.ndarray) else reals, dtype=float)
        c = np.array(list(categoricals) if not isinstance(categoricals, np.ndarray) else categoricals,
                     dtype=np.int64)
        r.setflags(write=False)
        c.setflags(write=False)
        self._reals = r.reshape(-1)
        self._categoricals = c.reshape(-1)

    @property
    def reals(self) -> np.ndarray:
        return self._reals

    @property
    def categoricals(self) -> np.ndarray:
        return self._categoricals

    @property
    def num_reals(self) -> int:
        return int(self._reals.shape[0])

    @property
    def num_categoricals(self) -> int:
        return int(self._categoricals.shape[0])

    @property
    def num_features(self) -> int:
        return self.num_reals + self.num_categoricals

    def real_at(self, idx: int) -> float:
        if not 0 <= idx < self.num_reals:
            raise IndexError(f"Invalid index '{idx}' for real feature.")
        return float(self._reals[idx])

    def categorical_at(self, idx: int) -> int:
        if not 0 <= idx < self.num_categoricals:
            raise IndexError(f"Invalid index '{idx}' for categorical feature.")
        return int(self._categoricals[idx])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FeatureRow):
            return NotImplemented
        return (np.array_equal(self._reals, other._reals, equal_nan=True)
                and np.array_equal(self._categoricals, other._categoricals))

    def __hash__(self) -> int:
        return hash((self._reals.tobytes(), self._categoricals.tobytes()))

    def __repr__(self) -> str:
        return f"FeatureRow(reals={self._reals.tolist()}, categoricals={self._categoricals.tolist()})"


# -----------------------------------------------------------------------------
# Training rows
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class TrainingRow:
    """A feature row with its label and weight.

    The label is a float for regression and a non-negative int class code for
    classification.
    """
    features: FeatureRow
    label: Any
    weight: float = 1.0

    def __post_init__(self):
        w = float(self.weight)
        if math.isnan(w) or math.isinf(w) or w < 0.0:
            raise ValueError(f"Row weight must be finite and non-negative, got {self.weight!r}")
        object.__setattr__(self, "weight", w)

    @classmethod
    def new(cls, reals: Iterable[float], categoricals: Iterable[int], label: Any,
            weight: float = 1.0) -> "TrainingRow":
        return cls(FeatureRow(reals, categoricals), label, weight)


def build_training_data(X_real, y, sample_weight=None, X_cat=None) -> List[TrainingRow]:
    """Assemble training rows from column arrays.

    Parameters
    ----------
    X_real : array-like of shape (n_samples, n_reals) or None
        Continuous features; ``None`` for rows without real features.
    y : array-like of shape (n_samples,)
        Labels.
    sample_weight : array-like of shape (n_samples,), optional
        Row weights.  Unit weights when omitted.
    X_cat : array-like of shape (n_samples, n_categoricals), optional
        Integer category codes.

    Raises
    ------
    ValueError
        If the arrays disagree on the number of rows.
    """
    y = np.asarray(y)
    n = y.shape[0]
    if X_real is None:
        X_real = np.zeros((n, 0), dtype=float)
    X_real = np.asarray(X_real, dtype=float)
    if X_real.ndim == 1:
        X_real = X_real.reshape(-1, 1)
    w = np.ones(n, dtype=float) if sample_weight is None else np.asarray(sample_weight, dtype=float)
    Xc: Optional[np.ndarray] = None
    if X_cat is not None:
        Xc = np.asarray(X_cat, dtype=np.int64)
        if Xc.ndim == 1:
            Xc = Xc.reshape(-1, 1)

    if X_real.shape[0] != n or w.shape[0] != n or (Xc is not None and Xc.shape[0] != n):
        raise ValueError(
            f"Input dimensions do not match: X = {X_real.shape[0]}, y = {n}, w = {w.shape[0]}"
            + (f", X_cat = {Xc.shape[0]}" if Xc is not None else ""))

    empty = np.zeros(0, dtype=np.int64)
    return [TrainingRow(FeatureRow(X_real[i], Xc[i] if Xc is not None else empty),
                        y[i].item() if isinstance(y[i], np.generic) else y[i],
                        float(w[i]))
            for i in range(n)]
