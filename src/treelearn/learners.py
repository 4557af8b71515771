# -*- coding: utf-8 -*-
"""
treelearn.learners
==================

Decision tree induction.

:class:`DecisionTreeLearner` grows a :class:`~treelearn.nodes.TrainingNode`
tree by recursive partitioning and then fits a leaf model in every terminal
node.  A node is split only when

* it holds at least ``2 * min_leaf_instances`` rows,
* the remaining depth is positive,
* the splitter finds a split, and
* the impurity decrease of that split exceeds ``min_impurity_decrease``.

Otherwise the node becomes a leaf holding its rows unchanged.

One random stream is shared by the learner, its splitter and the leaf
learner, so a fixed seed reproduces the same tree.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence

import numpy as np

from .errors import FitError, TransformError
from .leaf import LeafLearner, Model, Prediction
from .nodes import ModelNode, TrainingInternal, TrainingLeaf, TrainingNode, build_model_node
from .rows import FeatureRow, TrainingRow
from .splits import NO_SPLIT, ClassificationSplitter, RegressionSplitter, Split, Splitter

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Parameters
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class DecisionTreeParameters:
    """Stopping rules for a single fit.

    Parameters
    ----------
    max_depth : int, default=30
        Maximum depth of the tree; 0 yields a single leaf.
    num_features : int or None, default=None
        Number of features tried at each split; ``None`` tries all of them.
    min_leaf_instances : int, default=2
        Minimum number of rows on each side of a split.
    min_impurity_decrease : float, default=0.0
        A split is accepted only if it decreases the weighted impurity by
        more than this.
    """
    max_depth: int = 30
    num_features: Optional[int] = None
    min_leaf_instances: int = 2
    min_impurity_decrease: float = 0.0

    def __post_init__(self):
        if self.max_depth < 0:
            raise ValueError("max_depth must be >= 0")
        if self.num_features is not None and self.num_features < 1:
            raise ValueError("num_features must be >= 1 or None")
        if self.min_leaf_instances < 1:
            raise ValueError("min_leaf_instances must be >= 1")
        if math.isnan(self.min_impurity_decrease) or self.min_impurity_decrease < 0.0:
            raise ValueError("min_impurity_decrease must be >= 0")

    def with_max_depth(self, max_depth: int) -> "DecisionTreeParameters":
        return replace(self, max_depth=max_depth)

    def with_num_features(self, num_features: Optional[int]) -> "DecisionTreeParameters":
        return replace(self, num_features=num_features)

    def with_min_leaf_instances(self, min_leaf_instances: int) -> "DecisionTreeParameters":
        return replace(self, min_leaf_instances=min_leaf_instances)

    def with_min_impurity_decrease(self, min_impurity_decrease: float) -> "DecisionTreeParameters":
        return replace(self, min_impurity_decrease=min_impurity_decrease)


# -----------------------------------------------------------------------------
# Model
# -----------------------------------------------------------------------------
class DecisionTreeModel(Model):
    """A fitted tree: routes each row to a leaf and applies the leaf model."""

    def __init__(self, root: ModelNode, num_reals: int, num_categoricals: int):
        self.root = root
        self.num_reals = num_reals
        self.num_categoricals = num_categoricals

    def _check(self, row: FeatureRow):
        if row.num_reals != self.num_reals or row.num_categoricals != self.num_categoricals:
            raise TransformError(
                f"Row has {row.num_reals} real / {row.num_categoricals} categorical features, "
                f"model expects {self.num_reals} / {self.num_categoricals}")

    def predict_one(self, row: FeatureRow):
        self._check(row)
        return self.root.transform(row)

    def transform(self, rows: Sequence[FeatureRow]) -> Prediction:
        return Prediction(np.array([self.predict_one(r) for r in rows]))

    @property
    def n_leaves(self) -> int:
        return self.root.n_leaves

    @property
    def depth(self) -> int:
        return self.root.max_depth

    @property
    def training_weight(self) -> float:
        return self.root.training_weight


# -----------------------------------------------------------------------------
# Learner
# -----------------------------------------------------------------------------
class DecisionTreeLearner:
    """Grow a decision tree and fit its leaves.

    Parameters
    ----------
    splitter : Splitter
        Split search; its random stream is replaced by the learner's.
    leaf_learner : LeafLearner
        Model fitted on the rows of each leaf.
    params : DecisionTreeParameters, optional
        Stopping rules; defaults to ``DecisionTreeParameters()``.
    rng : int, numpy.random.Generator or None
        Seed or generator shared by the whole fit.
    """

    def __init__(self, splitter: Splitter, leaf_learner: LeafLearner,
                 params: Optional[DecisionTreeParameters] = None, rng=None):
        self.params = params if params is not None else DecisionTreeParameters()
        self.rng = np.random.default_rng(rng)
        self.splitter = splitter
        self.splitter.rng = self.rng
        self.leaf_learner = leaf_learner

    @classmethod
    def regression(cls, leaf_learner: Optional[LeafLearner] = None,
                   params: Optional[DecisionTreeParameters] = None,
                   randomize_pivot: bool = False, rng=None) -> "DecisionTreeLearner":
        return cls(RegressionSplitter(randomize_pivot), leaf_learner or LeafLearner.mean(), params, rng)

    @classmethod
    def classification(cls, leaf_learner: Optional[LeafLearner] = None,
                       params: Optional[DecisionTreeParameters] = None,
                       randomize_pivot: bool = False, rng=None) -> "DecisionTreeLearner":
        return cls(ClassificationSplitter(randomize_pivot), leaf_learner or LeafLearner.majority(),
                   params, rng)

    # ----------------------------- Public API -----------------------------

    def fit(self, rows: Sequence[TrainingRow]) -> DecisionTreeModel:
        rows = list(rows)
        if not rows:
            raise FitError("Cannot fit a decision tree on zero rows.")
        rep = rows[0].features
        shape = (rep.num_reals, rep.num_categoricals)
        for r in rows:
            if (r.features.num_reals, r.features.num_categoricals) != shape:
                raise FitError("All training rows must have the same number of features.")

        training_root = self.build_training_tree(rows)
        root = build_model_node(training_root, self.leaf_learner, self.rng)
        logger.debug("fitted tree on %d rows: %d leaves, depth %d",
                    len(rows), root.n_leaves, root.max_depth)
        return DecisionTreeModel(root, *shape)

    def build_training_tree(self, rows: Sequence[TrainingRow]) -> TrainingNode:
        """Partition ``rows`` recursively without fitting leaf models."""
        rows = list(rows)
        if not rows:
            return TrainingLeaf(rows, 0)
        nf = rows[0].features.num_features
        p = self.params
        num_features = nf if p.num_features is None else min(p.num_features, nf)
        return self._build_node(rows, num_features, p.max_depth)

    # ----------------------------- Recursion -----------------------------

    def _build_node(self, rows: List[TrainingRow], num_features: int,
                    remaining_depth: int) -> TrainingNode:
        p = self.params
        depth = p.max_depth - remaining_depth
        min_instances = p.min_leaf_instances

        if len(rows) >= 2 * min_instances and remaining_depth > 0:
            split, delta = self.splitter.find_best_split(rows, num_features, min_instances)
            if split != NO_SPLIT and delta > p.min_impurity_decrease:
                return self._split_internal(rows, split, delta, num_features, remaining_depth, depth)
        logger.debug("leaf at depth %d with %d rows", depth, len(rows))
        return TrainingLeaf(rows, depth)

    def _split_internal(self, rows: List[TrainingRow], split: Split, delta: float,
                        num_features: int, remaining_depth: int, depth: int) -> TrainingInternal:
        left_rows: List[TrainingRow] = []
        right_rows: List[TrainingRow] = []
        for r in rows:
            (left_rows if split.turn_left(r.features) else right_rows).append(r)

        left = self._build_node(left_rows, num_features, remaining_depth - 1)
        right = self._build_node(right_rows, num_features, remaining_depth - 1)
        return TrainingInternal(split, left, right, delta, depth)
