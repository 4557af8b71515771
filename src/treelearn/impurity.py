# -*- coding: utf-8 -*-
"""
treelearn.impurity
==================

Impurity calculators used during the split search.

A calculator is built once per node from the node's labels and weights.  It
keeps the totals for the node fixed and maintains a running "left" aggregate;
everything not on the left is on the right.  Moving a row across the boundary
is O(1) in both directions, so a sorted scan over ``n`` rows costs ``O(n)``
impurity evaluations without rescanning the data.

``impurity()`` returns the *weighted sum* of the impurity of both sides, i.e.
the quantity the split search minimises.  When one side is empty it falls
back to the impurity of the whole node.
"""
from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Sequence

import numpy as np


class ImpurityCalculator(ABC):
    """Running left/right impurity over a fixed set of weighted labels."""

    @abstractmethod
    def add(self, value, weight: float) -> None:
        """Move ``weight`` units of ``value`` from the right to the left side."""

    @abstractmethod
    def remove(self, value, weight: float) -> None:
        """Exact inverse of :meth:`add`."""

    @abstractmethod
    def reset(self) -> None:
        """Empty the left side."""

    @abstractmethod
    def impurity(self) -> float:
        """Weighted impurity of the current partition."""


def _check_lengths(labels, weights):
    if len(labels) != len(weights):
        raise ValueError("Labels and weights are not the same size.")


# -----------------------------------------------------------------------------
# Variance
# -----------------------------------------------------------------------------
class VarianceCalculator(ImpurityCalculator):
    """Weighted sum of squared deviations for real-valued labels.

    Each side contributes ``sum(w*y^2) - sum(w*y)^2 / sum(w)``; since the sum
    of squares is additive only the left sum and weight need to be tracked.
    ``NaN`` labels or weights are ignored by :meth:`add` and :meth:`remove`.
    """

    __slots__ = ("total_sum", "total_sq_sum", "total_weight", "left_sum", "left_weight")

    def __init__(self, total_sum: float, total_sq_sum: float, total_weight: float):
        self.total_sum = float(total_sum)
        self.total_sq_sum = float(total_sq_sum)
        self.total_weight = float(total_weight)
        self.left_sum = 0.0
        self.left_weight = 0.0

    @classmethod
    def from_labels(cls, labels: Sequence[float], weights: Sequence[float]) -> "VarianceCalculator":
        _check_lengths(labels, weights)
        y = np.asarray(labels, dtype=float)
        w = np.asarray(weights, dtype=float)
        ok = ~(np.isnan(y) | np.isnan(w))
        y, w = y[ok], w[ok]
        return cls(float((w * y).sum()), float((w * y * y).sum()), float(w.sum()))

    @classmethod
    def from_training_data(cls, rows) -> "VarianceCalculator":
        return cls.from_labels([r.label for r in rows], [r.weight for r in rows])

    def add(self, value: float, weight: float) -> None:
        if not (math.isnan(value) or math.isnan(weight)):
            self.left_sum += weight * value
            self.left_weight += weight

    def remove(self, value: float, weight: float) -> None:
        if not (math.isnan(value) or math.isnan(weight)):
            self.left_sum -= weight * value
            self.left_weight -= weight

    def reset(self) -> None:
        self.left_sum = 0.0
        self.left_weight = 0.0

    def impurity(self) -> float:
        tw = self.total_weight
        if tw == 0.0:
            return 0.0
        lw = self.left_weight
        rw = tw - lw
        if lw == 0.0 or rw == 0.0:
            return self.total_sq_sum - self.total_sum * self.total_sum / tw
        ls = self.left_sum
        rs = self.total_sum - ls
        return self.total_sq_sum - ls * ls / lw - rs * rs / rw


# -----------------------------------------------------------------------------
# Gini
# -----------------------------------------------------------------------------
class GiniCalculator(ImpurityCalculator):
    """Weighted Gini impurity for integer class labels.

    A side with weight ``W`` and per-class weights ``c_k`` contributes
    ``W - sum(c_k^2) / W``, which is ``W`` times the usual Gini index.  The sums
    of squared class weights of both sides are updated in O(1) when a row
    crosses the boundary.  Every class code, including 0, is counted.
    """

    __slots__ = ("total_categories", "total_sq_sum", "total_weight",
                 "left_categories", "left_weight", "left_sq_sum", "right_sq_sum")

    def __init__(self, total_categories: Sequence[float], total_sq_sum: float, total_weight: float):
        self.total_categories = np.asarray(total_categories, dtype=float)
        self.total_sq_sum = float(total_sq_sum)
        self.total_weight = float(total_weight)
        self.left_categories = np.zeros_like(self.total_categories)
        self.left_weight = 0.0
        self.left_sq_sum = 0.0
        self.right_sq_sum = self.total_sq_sum

    @classmethod
    def from_labels(cls, labels: Sequence[int], weights: Sequence[float]) -> "GiniCalculator":
        _check_lengths(labels, weights)
        if len(labels) == 0:
            return cls([], 0.0, 0.0)
        y = np.asarray(labels, dtype=np.int64)
        if (y < 0).any():
            raise ValueError("Class labels must be non-negative integer codes.")
        cw = np.bincount(y, weights=np.asarray(weights, dtype=float))
        return cls(cw, float((cw * cw).sum()), float(cw.sum()))

    @classmethod
    def from_training_data(cls, rows) -> "GiniCalculator":
        return cls.from_labels([r.label for r in rows], [r.weight for r in rows])

    def add(self, value: int, weight: float) -> None:
        wl = self.left_categories[value]
        wr = self.total_categories[value] - wl
        self.left_categories[value] = wl + weight
        self.left_sq_sum += weight * (weight + 2.0 * wl)
        self.right_sq_sum += weight * (weight - 2.0 * wr)
        self.left_weight += weight

    def remove(self, value: int, weight: float) -> None:
        wl = self.left_categories[value]
        wr = self.total_categories[value] - wl
        self.left_categories[value] = wl - weight
        self.left_sq_sum += weight * (weight - 2.0 * wl)
        self.right_sq_sum += weight * (weight + 2.0 * wr)
        self.left_weight -= weight

    def reset(self) -> None:
        self.left_categories.fill(0.0)
        self.left_weight = 0.0
        self.left_sq_sum = 0.0
        self.right_sq_sum = self.total_sq_sum

    def impurity(self) -> float:
        tw = self.total_weight
        if tw == 0.0:
            return 0.0
        lw = self.left_weight
        rw = tw - lw
        if lw == 0.0 or rw == 0.0:
            return tw - self.total_sq_sum / tw
        return tw - self.left_sq_sum / lw - self.right_sq_sum / rw
