# -*- coding: utf-8 -*-
"""
treelearn.nodes
===============

The two tree representations.

A *training* tree is the raw result of recursive partitioning: internal
nodes carry the chosen split and its impurity decrease, leaves carry the rows
that ended there.  A *model* tree has the same shape but its leaves carry a
fitted sub-model instead of data.  :func:`build_model_node` converts the
former into the latter in a single post-order pass; the training tree is not
needed afterwards, so the memory kept for inference is bounded by the number
of leaves times the size of a leaf model.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Union

from .leaf import LeafLearner, Model
from .rows import FeatureRow, TrainingRow
from .splits import Split


# -----------------------------------------------------------------------------
# Training tree
# -----------------------------------------------------------------------------
@dataclass(frozen=True, eq=False)
class TrainingLeaf:
    rows: List[TrainingRow]
    depth: int

    def training_weight(self) -> float:
        return float(sum(r.weight for r in self.rows))

    @property
    def n_leaves(self) -> int:
        return 1


@dataclass(frozen=True, eq=False)
class TrainingInternal:
    split: Split
    left: "TrainingNode"
    right: "TrainingNode"
    delta: float
    depth: int

    def training_weight(self) -> float:
        return self.left.training_weight() + self.right.training_weight()

    @property
    def n_leaves(self) -> int:
        return self.left.n_leaves + self.right.n_leaves


TrainingNode = Union[TrainingLeaf, TrainingInternal]


# -----------------------------------------------------------------------------
# Model tree
# -----------------------------------------------------------------------------
@dataclass(frozen=True, eq=False)
class ModelLeaf:
    model: Model
    training_weight: float
    depth: int

    @property
    def n_leaves(self) -> int:
        return 1

    @property
    def max_depth(self) -> int:
        return self.depth

    def leaf_for(self, row: FeatureRow) -> "ModelLeaf":
        return self

    def transform(self, row: FeatureRow):
        return self.model.transform([row]).expected()[0]


@dataclass(frozen=True, eq=False)
class ModelInternal:
    split: Split
    left: "ModelNode"
    right: "ModelNode"
    training_weight: float
    depth: int

    @property
    def n_leaves(self) -> int:
        return self.left.n_leaves + self.right.n_leaves

    @property
    def max_depth(self) -> int:
        return max(self.left.max_depth, self.right.max_depth)

    def leaf_for(self, row: FeatureRow) -> ModelLeaf:
        """Follow the splits from this node down to the leaf ``row`` lands in."""
        node: ModelNode = self
        while isinstance(node, ModelInternal):
            node = node.left if node.split.turn_left(row) else node.right
        return node

    def transform(self, row: FeatureRow):
        return self.leaf_for(row).transform(row)


ModelNode = Union[ModelLeaf, ModelInternal]


def build_model_node(node: TrainingNode, learner: LeafLearner, rng=None) -> ModelNode:
    """Fit a leaf model for every training leaf and mirror the tree shape.

    Children are converted before their parent; an internal node's training
    weight is the sum of its children's.
    """
    if isinstance(node, TrainingLeaf):
        return ModelLeaf(learner.fit(node.rows, rng), node.training_weight(), node.depth)
    left = build_model_node(node.left, learner, rng)
    right = build_model_node(node.right, learner, rng)
    return ModelInternal(node.split, left, right,
                         left.training_weight + right.training_weight, node.depth)
