# -*- coding: utf-8 -*-
"""
treelearn.estimator
===================

scikit-learn style estimators on top of :class:`~treelearn.learners.DecisionTreeLearner`.

``X`` may mix numeric and categorical columns (``dtype=object`` arrays are
fine).  Categorical columns are given by index or, together with
``feature_names``, by name.  Their values are encoded to integer codes in
the order first seen during ``fit``.  Missing values (``None`` or ``NaN``) seen
during ``fit`` get one more code of their own and split like any category.  A
value never seen during ``fit`` receives code ``-1``, which no split contains,
so such rows go right at every categorical split.  All other columns are cast
to float with ``None`` read as ``NaN``.
"""
from __future__ import annotations

import logging
import math
from abc import ABCMeta, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
from sklearn.base import BaseEstimator, ClassifierMixin, RegressorMixin

from .leaf import GuessTheMeanModel, LeafLearner, LinearRegressionLearner
from .learners import DecisionTreeLearner, DecisionTreeModel, DecisionTreeParameters
from .nodes import ModelInternal
from .rows import FeatureRow, build_training_data
from .splits import CategoricalSplit, ClassificationSplitter, RegressionSplitter

logger = logging.getLogger(__name__)

_UNKNOWN = -1
_MISSING_TEXT = "MISSING"


# ----------------------------- Helpers -----------------------------

def _isnan_scalar(v: Any) -> bool:
    if v is None:
        return True
    try:
        return bool(np.isnan(v))
    except (TypeError, ValueError):
        return False


def _as_float(v: Any) -> float:
    return math.nan if v is None else float(v)


# ----------------------------- Base -----------------------------

class _BaseDecisionTree(BaseEstimator, metaclass=ABCMeta):

    def __init__(self,
                 max_depth: int = 30,
                 max_features: Optional[int | float | str] = None,
                 min_samples_leaf: int = 2,
                 min_impurity_decrease: float = 0.0,
                 randomize_pivot: bool = False,
                 categorical_features: Optional[Iterable[int | str]] = None,
                 feature_names: Optional[List[str]] = None,
                 random_state: Optional[int] = None,
                 verbose: int = 0):
        self.max_depth = max_depth
        self.max_features = max_features
        self.min_samples_leaf = min_samples_leaf
        self.min_impurity_decrease = min_impurity_decrease
        self.randomize_pivot = randomize_pivot
        self.categorical_features = categorical_features
        self.feature_names = feature_names
        self.random_state = random_state
        self.verbose = verbose

    # ----------------------------- Hooks -----------------------------

    @abstractmethod
    def _learner(self, params: DecisionTreeParameters, rng) -> DecisionTreeLearner:
        """Learner configured with the splitter and leaf learner of this estimator."""

    @abstractmethod
    def _encode_target(self, y: np.ndarray) -> np.ndarray:
        """Labels as the tree stores them: floats, or class codes."""

    @abstractmethod
    def _leaf_text(self, model) -> str:
        """Leaf model as it appears in rules and the printed tree."""

    # ----------------------------- Columns -----------------------------

    def _categorical_mask(self, m: int) -> np.ndarray:
        is_cat = np.zeros(m, dtype=bool)
        if self.categorical_features is None:
            return is_cat
        seq = list(self.categorical_features)
        if len(seq) > 0 and isinstance(seq[0], str):
            if self.feature_names is None:
                raise ValueError("feature_names must be provided when categorical_features are given by name.")
            name_to_idx = {n: i for i, n in enumerate(self.feature_names)}
            for name in seq:
                if name not in name_to_idx:
                    raise ValueError(f"Unknown categorical feature name {name!r}")
                is_cat[name_to_idx[name]] = True
        else:
            for j in seq:
                j = int(j)
                if not 0 <= j < m:
                    raise ValueError(f"categorical feature index {j} out of range for {m} columns")
                is_cat[j] = True
        return is_cat

    def _split_columns(self, X: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        n = X.shape[0]
        X_real = np.empty((n, len(self.real_columns_)), dtype=float)
        for k, j in enumerate(self.real_columns_):
            X_real[:, k] = [_as_float(v) for v in X[:, j]]
        X_cat = np.empty((n, len(self.categorical_columns_)), dtype=np.int64)
        for k, j in enumerate(self.categorical_columns_):
            codes = self.category_codes_[j]
            missing = self.missing_codes_.get(j, _UNKNOWN)
            X_cat[:, k] = [missing if _isnan_scalar(v) else codes.get(v, _UNKNOWN) for v in X[:, j]]
        return X_real, X_cat

    def _max_features(self, m: int) -> Optional[int]:
        mf = self.max_features
        if mf is None:
            return None
        if mf == "sqrt":
            return max(1, int(math.sqrt(m)))
        if mf == "log2":
            return max(1, int(math.log2(m))) if m > 1 else 1
        if isinstance(mf, float):
            if not 0.0 < mf <= 1.0:
                raise ValueError("max_features as a float must be in (0, 1]")
            return max(1, int(mf * m))
        return int(mf)

    # ----------------------------- Public API -----------------------------

    def fit(self, X, y, sample_weight: Optional[np.ndarray] = None):
        X = np.asarray(X, dtype=object)
        if X.ndim == 1:
            X = X.reshape(-1, 1)
        y = np.asarray(y)
        n, m = X.shape
        if y.shape[0] != n:
            raise ValueError("X and y must have the same number of rows")
        if sample_weight is not None and len(sample_weight) != n:
            raise ValueError("sample_weight must have same length as y")
        if self.feature_names is not None and len(self.feature_names) != m:
            raise ValueError("feature_names length must match X.shape[1]")

        self.n_features_in_ = m
        self.feature_names_ = (list(self.feature_names) if self.feature_names is not None
                               else [f"X[{j}]" for j in range(m)])
        self.is_cat_ = self._categorical_mask(m)
        self.real_columns_ = [j for j in range(m) if not self.is_cat_[j]]
        self.categorical_columns_ = [j for j in range(m) if self.is_cat_[j]]

        self.cat_values_: Dict[int, Tuple[Any, ...]] = {}
        self.category_codes_: Dict[int, Dict[Any, int]] = {}
        self.missing_codes_: Dict[int, int] = {}
        for j in self.categorical_columns_:
            uniq: List[Any] = []
            seen = set()
            has_missing = False
            for v in X[:, j]:
                if _isnan_scalar(v):
                    has_missing = True
                    continue
                if v in seen:
                    continue
                seen.add(v)
                uniq.append(v)
            self.cat_values_[j] = tuple(uniq)
            self.category_codes_[j] = {v: i for i, v in enumerate(uniq)}
            if has_missing:
                self.missing_codes_[j] = len(uniq)

        X_real, X_cat = self._split_columns(X)
        rows = build_training_data(X_real, self._encode_target(y), sample_weight, X_cat)

        params = DecisionTreeParameters(
            max_depth=int(self.max_depth),
            num_features=self._max_features(m),
            min_leaf_instances=int(self.min_samples_leaf),
            min_impurity_decrease=float(self.min_impurity_decrease))
        learner = self._learner(params, np.random.default_rng(self.random_state))
        self.tree_: DecisionTreeModel = learner.fit(rows)

        if self.verbose > 0:
            logger.info("%s fitted on %d rows x %d columns (%d categorical): %d leaves, depth %d",
                        type(self).__name__, n, m, len(self.categorical_columns_),
                        self.tree_.n_leaves, self.tree_.depth)
        return self

    def _check_fitted(self):
        if getattr(self, "tree_", None) is None:
            raise ValueError("Estimator not fitted. Call fit(...) first.")

    def _rows(self, X) -> List[FeatureRow]:
        self._check_fitted()
        X = np.asarray(X, dtype=object)
        if X.ndim == 1:
            X = X.reshape(1, -1)
        if X.shape[1] != self.n_features_in_:
            raise ValueError(f"X has {X.shape[1]} features, but the model was fitted with {self.n_features_in_}")
        X_real, X_cat = self._split_columns(X)
        return [FeatureRow(X_real[i], X_cat[i]) for i in range(X.shape[0])]

    def _predict_raw(self, X) -> np.ndarray:
        rows = self._rows(X)
        return self.tree_.transform(rows).expected()

    # ----------------------------- Pretty / Rules -----------------------------

    def _category_text(self, col: int, code: int) -> str:
        values = self.cat_values_[col]
        if 0 <= code < len(values):
            return str(values[code])
        if code == self.missing_codes_.get(col):
            return _MISSING_TEXT
        return f"<code {code}>"

    def _condition(self, split) -> Tuple[str, str]:
        if isinstance(split, CategoricalSplit):
            col = self.categorical_columns_[split.feature]
            S = "{" + ", ".join(self._category_text(col, c) for c in sorted(split.categories)) + "}"
            name = self.feature_names_[col]
            return (f"{name} IN {S}", f"{name} NOT IN {S}")
        return split.describe(self.feature_names_[self.real_columns_[split.feature]])

    def export_rules(self) -> List[str]:
        """
        Export all decision rules in the fitted tree.

        Each rule is a path from the root to a leaf, written as
        ``"<antecedent> => <leaf> (N=<weight>)"`` where ``N`` is the training
        weight that reached the leaf.

        Raises
        ------
        ValueError
            If the model has not been fitted.
        """
        self._check_fitted()
        rules: List[str] = []
        self._collect_rules(self.tree_.root, [], rules)
        return rules

    def _collect_rules(self, node, parts: List[str], rules: List[str]):
        if not isinstance(node, ModelInternal):
            antecedent = " AND ".join(parts) if parts else "<root>"
            rules.append(f"{antecedent} => {self._leaf_text(node.model)} (N={node.training_weight:.2f})")
            return
        left, right = self._condition(node.split)
        self._collect_rules(node.left, parts + [left], rules)
        self._collect_rules(node.right, parts + [right], rules)

    def print_tree(self) -> None:
        """Pretty-print the fitted tree to ``stdout``."""
        self._check_fitted()
        self._print_node(self.tree_.root, "")

    def _print_node(self, node, indent: str):
        if not isinstance(node, ModelInternal):
            print(f"{indent}Predict {self._leaf_text(node.model)} (N={node.training_weight:.2f})")
            return
        left, _ = self._condition(node.split)
        print(f"{indent}if {left}:")
        self._print_node(node.left, indent + "  ")
        print(f"{indent}else:")
        self._print_node(node.right, indent + "  ")


# ----------------------------- Regressor -----------------------------

class DecisionTreeRegressor(RegressorMixin, _BaseDecisionTree):
    r"""
    Variance-reduction regression tree over mixed real/categorical features.

    Parameters
    ----------
    max_depth : int, default=30
        Maximum depth; 0 fits a single leaf.
    max_features : int, float, {"sqrt", "log2"} or None, default=None
        Number of features tried at each split, drawn without replacement.
    min_samples_leaf : int, default=2
        Minimum number of rows on each side of a split.
    min_impurity_decrease : float, default=0.0
        Required decrease of the weighted sum of squared errors.
    leaf_model : {"mean", "linear"}, default="mean"
        Sub-model fitted in every leaf: the weighted mean, or weighted
        linear regression on the real columns.
    alpha : float, default=0.0
        Ridge term of the linear leaves.
    randomize_pivot : bool, default=False
        Draw real thresholds uniformly between the boundary values instead
        of taking the midpoint.
    categorical_features : sequence of int or str, optional
        Indices or names of categorical columns; names require `feature_names`.
    feature_names : sequence of str, optional
        Column names used in rule export.
    random_state : int, optional
        Seed for feature subsampling and pivot placement.
    verbose : int, default=0
        If positive, log a summary of the fitted tree at INFO level.

    Attributes
    ----------
    tree_ : DecisionTreeModel
        The fitted tree.
    is_cat_ : ndarray of shape (n_features,)
        Boolean mask of categorical columns.
    cat_values_ : dict[int, tuple]
        Per categorical column, the values seen during fit in code order.
    missing_codes_ : dict[int, int]
        Code given to missing values, for categorical columns that had any
        during fit.
    """

    def __init__(self,
                 max_depth: int = 30,
                 max_features: Optional[int | float | str] = None,
                 min_samples_leaf: int = 2,
                 min_impurity_decrease: float = 0.0,
                 leaf_model: str = "mean",
                 alpha: float = 0.0,
                 randomize_pivot: bool = False,
                 categorical_features: Optional[Iterable[int | str]] = None,
                 feature_names: Optional[List[str]] = None,
                 random_state: Optional[int] = None,
                 verbose: int = 0):
        super().__init__(max_depth=max_depth, max_features=max_features,
                         min_samples_leaf=min_samples_leaf,
                         min_impurity_decrease=min_impurity_decrease,
                         randomize_pivot=randomize_pivot,
                         categorical_features=categorical_features,
                         feature_names=feature_names, random_state=random_state,
                         verbose=verbose)
        self.leaf_model = leaf_model
        self.alpha = alpha

    def _learner(self, params, rng):
        if self.leaf_model == "mean":
            leaf = LeafLearner.mean()
        elif self.leaf_model == "linear":
            leaf = LeafLearner.linreg(LinearRegressionLearner(True, self.alpha))
        else:
            raise ValueError(f"leaf_model must be 'mean' or 'linear', got {self.leaf_model!r}")
        return DecisionTreeLearner(RegressionSplitter(self.randomize_pivot), leaf, params, rng)

    def _encode_target(self, y):
        return y.astype(float)

    def _leaf_text(self, model) -> str:
        if isinstance(model, GuessTheMeanModel):
            return f"value={model.value:.6g}"
        terms = " + ".join(f"{c:.6g}*{self.feature_names_[self.real_columns_[i]]}"
                           for c, i in zip(model.coeffs, model.indices))
        return f"value={model.intercept:.6g}" + (f" + {terms}" if terms else "")

    def predict(self, X) -> np.ndarray:
        return self._predict_raw(X).astype(float)


# ----------------------------- Classifier -----------------------------

class DecisionTreeClassifier(ClassifierMixin, _BaseDecisionTree):
    r"""
    Gini classification tree over mixed real/categorical features.

    Takes the same parameters as :class:`DecisionTreeRegressor` except
    ``leaf_model`` and ``alpha``: every leaf predicts the class with the
    greatest training weight, ties broken with the estimator's random stream.

    Attributes
    ----------
    classes_ : ndarray
        Class labels seen during fit.
    tree_ : DecisionTreeModel
        The fitted tree over class codes.
    """

    def _learner(self, params, rng):
        return DecisionTreeLearner(ClassificationSplitter(self.randomize_pivot),
                                   LeafLearner.majority(), params, rng)

    def _encode_target(self, y):
        self.classes_, codes = np.unique(y, return_inverse=True)
        return codes.astype(np.int64)

    def _leaf_text(self, model) -> str:
        return f"class={self.classes_[int(model.value)]}"

    def predict(self, X) -> np.ndarray:
        codes = self._predict_raw(X).astype(np.int64)
        return self.classes_[codes]
