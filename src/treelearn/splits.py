# -*- coding: utf-8 -*-
"""
treelearn.splits
================

Split rules and the split search.

A split is one of three variants:

* :data:`NO_SPLIT` routes nothing; the search returns it when no feature
  yields a valid partition, and the tree learner turns the node into a leaf.
* :class:`RealSplit` sends a row left iff ``real_at(index) <= threshold``.
  A ``NaN`` threshold separates observed values (left) from ``NaN`` (right).
* :class:`CategoricalSplit` sends a row left iff ``categorical_at(index)`` is
  in the category set.

Real and categorical indices are separate zero-based spaces, as in
:class:`~treelearn.rows.FeatureRow`.

The splitters evaluate a random subset of features.  For a real feature the
rows are sorted once and moved left one at a time, never cutting between two
tied values.  For a categorical feature the categories are ordered by their
mean label and scanned as prefixes, which reduces the subset search from
``2^k`` candidates to ``k - 1`` after an ``O(k log k)`` sort.  The reduction
is exact for single-output regression.
"""
from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

import numpy as np

from .impurity import GiniCalculator, ImpurityCalculator, VarianceCalculator
from .rows import FeatureRow, TrainingRow

logger = logging.getLogger(__name__)

# boundary values closer than this are treated as equal
_TIE_EPSILON = 1e-10


# -----------------------------------------------------------------------------
# Split variants
# -----------------------------------------------------------------------------
class Split:
    """Base class of the three split variants."""

    __slots__ = ()

    @property
    def index(self) -> Optional[int]:
        return None

    def turn_left(self, row: FeatureRow) -> bool:
        return False

    def describe(self, name: str) -> Tuple[str, str]:
        """Return the (left, right) conditions for a feature called ``name``."""
        return ("<never>", "<always>")


class NoSplit(Split):
    __slots__ = ()

    def __eq__(self, other: object) -> bool:
        return isinstance(other, NoSplit)

    def __hash__(self) -> int:
        return hash(NoSplit)

    def __repr__(self) -> str:
        return "NoSplit()"


NO_SPLIT = NoSplit()


@dataclass(frozen=True, eq=False)
class RealSplit(Split):
    feature: int
    threshold: float

    @property
    def index(self) -> int:
        return self.feature

    def turn_left(self, row: FeatureRow) -> bool:
        value = row.real_at(self.feature)
        if math.isnan(self.threshold):
            return not math.isnan(value)
        return value <= self.threshold

    def describe(self, name: str) -> Tuple[str, str]:
        if math.isnan(self.threshold):
            return (f"{name} PRESENT", f"{name} MISSING")
        return (f"{name} <= {self.threshold:.6g}", f"{name} > {self.threshold:.6g}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RealSplit):
            return NotImplemented
        same = (self.threshold == other.threshold
                or (math.isnan(self.threshold) and math.isnan(other.threshold)))
        return self.feature == other.feature and same

    def __hash__(self) -> int:
        return hash(("real", self.feature, None if math.isnan(self.threshold) else self.threshold))


@dataclass(frozen=True)
class CategoricalSplit(Split):
    feature: int
    categories: FrozenSet[int]

    def __post_init__(self):
        object.__setattr__(self, "categories", frozenset(int(c) for c in self.categories))

    @property
    def index(self) -> int:
        return self.feature

    def turn_left(self, row: FeatureRow) -> bool:
        return row.categorical_at(self.feature) in self.categories

    def describe(self, name: str) -> Tuple[str, str]:
        S = "{" + ", ".join(map(str, sorted(self.categories))) + "}"
        return (f"{name} IN {S}", f"{name} NOT IN {S}")


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _tied(a: float, b: float) -> bool:
    if math.isnan(a) or math.isnan(b):
        return math.isnan(a) and math.isnan(b)
    return a == b or abs(a - b) <= _TIE_EPSILON


def _group_by_category(rows: Sequence[TrainingRow], idx: int) -> Dict[int, List[TrainingRow]]:
    # grouping is by value over all rows, not by consecutive runs
    groups: Dict[int, List[TrainingRow]] = {}
    for r in rows:
        groups.setdefault(r.features.categorical_at(idx), []).append(r)
    return groups


def _mostly_trivial(groups: Dict[int, List[TrainingRow]], total_weight: float) -> bool:
    """True if less than half the weight sits in categories with more than one row."""
    if total_weight <= 0.0:
        return True
    non_trivial = sum(sum(r.weight for r in g) for g in groups.values() if len(g) > 1)
    return non_trivial / total_weight < 0.5


# -----------------------------------------------------------------------------
# Splitters
# -----------------------------------------------------------------------------
class Splitter(ABC):
    """Search for the best split of a set of rows.

    Parameters
    ----------
    randomize_pivot : bool, default=False
        Place real thresholds uniformly at random inside the gap between the
        two boundary values instead of at the midpoint.
    rng : int, numpy.random.Generator or None
        Random source for feature subsampling and pivot placement.  A
        ``Generator`` is used as is, so a learner and its splitter can share
        a single stream.
    """

    def __init__(self, randomize_pivot: bool = False, rng=None):
        self.randomize_pivot = bool(randomize_pivot)
        self.rng = np.random.default_rng(rng)

    @abstractmethod
    def calculator(self, rows: Sequence[TrainingRow]) -> ImpurityCalculator:
        """Build the impurity calculator for ``rows``."""

    @abstractmethod
    def best_categorical_split(self, rows: Sequence[TrainingRow], calc: ImpurityCalculator,
                               idx: int, min_count: int) -> Tuple[Split, float]:
        """Best subset split on categorical feature ``idx`` and its impurity."""

    def find_best_split(self, rows: Sequence[TrainingRow], num_features: Optional[int],
                        min_count: int) -> Tuple[Split, float]:
        """Return the best split over ``num_features`` random features.

        Features are drawn without replacement.  The returned float is the
        impurity decrease relative to the unsplit node; ``(NO_SPLIT, 0.0)`` is
        returned when no tried feature admits a split leaving at least
        ``min_count`` rows on each side.
        """
        if len(rows) == 0:
            return NO_SPLIT, 0.0
        min_count = max(int(min_count), 1)
        calc = self.calculator(rows)
        init_impurity = calc.impurity()

        rep = rows[0].features
        nf, nr = rep.num_features, rep.num_reals
        k = nf if num_features is None else min(int(num_features), nf)
        indices = self.rng.permutation(nf)[:k]

        best_split: Split = NO_SPLIT
        best_impurity = math.inf
        for index in indices:
            index = int(index)
            if index < nr:
                trial_split, trial_impurity = self.best_real_split(rows, calc, index, min_count)
            else:
                trial_split, trial_impurity = self.best_categorical_split(rows, calc, index - nr, min_count)
            if trial_impurity < best_impurity:
                best_impurity = trial_impurity
                best_split = trial_split

        if math.isinf(best_impurity):
            return NO_SPLIT, 0.0
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("best of %d features on %d rows: %r (decrease %.6g)",
                         k, len(rows), best_split, init_impurity - best_impurity)
        return best_split, init_impurity - best_impurity

    def best_real_split(self, rows: Sequence[TrainingRow], calc: ImpurityCalculator,
                        idx: int, min_count: int) -> Tuple[Split, float]:
        """Scan real feature ``idx`` in sorted order.

        ``NaN`` values sort last; the boundary between the last observed value
        and the first ``NaN`` produces a ``NaN`` threshold.
        """
        n = len(rows)
        values = np.fromiter((r.features.real_at(idx) for r in rows), dtype=float, count=n)
        order = np.argsort(values, kind="mergesort")

        best_impurity = math.inf
        best_pivot = math.inf
        calc.reset()
        for j in range(n - min_count):
            row = rows[order[j]]
            calc.add(row.label, row.weight)
            impurity = calc.impurity()

            low = float(values[order[j]])
            high = float(values[order[j + 1]])
            if impurity < best_impurity and j + 1 >= min_count and not _tied(low, high):
                best_impurity = impurity
                if self.randomize_pivot:
                    best_pivot = low + (high - low) * float(self.rng.random())
                else:
                    best_pivot = 0.5 * (low + high)

        return RealSplit(idx, best_pivot), best_impurity


class RegressionSplitter(Splitter):
    """Variance-reduction splitter for real labels."""

    def calculator(self, rows):
        return VarianceCalculator.from_training_data(rows)

    def best_categorical_split(self, rows, calc, idx, min_count):
        groups = _group_by_category(rows, idx)
        total_weight = sum(r.weight for r in rows)
        if _mostly_trivial(groups, total_weight):
            return CategoricalSplit(idx, frozenset()), math.inf

        # (mean label, category, weight, size)
        stats = []
        for code, g in groups.items():
            w = sum(r.weight for r in g)
            s = sum(r.weight * r.label for r in g)
            stats.append((s / w if w > 0 else 0.0, code, w, len(g)))
        stats.sort()

        n = len(rows)
        left_num = 0
        best_impurity = math.inf
        best_set: FrozenSet[int] = frozenset()
        calc.reset()
        for j in range(len(stats) - 1):
            mean, _, weight, size = stats[j]
            left_num += size
            # a category enters as its mean with its whole weight
            calc.add(mean, weight)
            impurity = calc.impurity()
            if impurity < best_impurity and left_num >= min_count and n - left_num >= min_count:
                best_impurity = impurity
                best_set = frozenset(st[1] for st in stats[:j + 1])

        return CategoricalSplit(idx, best_set), best_impurity


class ClassificationSplitter(Splitter):
    """Gini splitter for integer class labels.

    Categories are ordered by the weighted share of the node's majority
    class, which is exact for two classes and a heuristic beyond.
    """

    def calculator(self, rows):
        return GiniCalculator.from_training_data(rows)

    def best_categorical_split(self, rows, calc, idx, min_count):
        groups = _group_by_category(rows, idx)
        total_weight = sum(r.weight for r in rows)
        if _mostly_trivial(groups, total_weight):
            return CategoricalSplit(idx, frozenset()), math.inf

        majority = int(np.argmax(calc.total_categories))
        ordered = []
        for code, g in groups.items():
            w = sum(r.weight for r in g)
            wm = sum(r.weight for r in g if r.label == majority)
            ordered.append((wm / w if w > 0 else 0.0, code))
        ordered.sort()

        n = len(rows)
        left_num = 0
        best_impurity = math.inf
        best_set: FrozenSet[int] = frozenset()
        calc.reset()
        for j in range(len(ordered) - 1):
            g = groups[ordered[j][1]]
            for r in g:
                calc.add(r.label, r.weight)
            left_num += len(g)
            impurity = calc.impurity()
            if impurity < best_impurity and left_num >= min_count and n - left_num >= min_count:
                best_impurity = impurity
                best_set = frozenset(o[1] for o in ordered[:j + 1])

        return CategoricalSplit(idx, best_set), best_impurity
