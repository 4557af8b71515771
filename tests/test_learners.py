import numpy as np
import pytest

from treelearn import (CategoricalSplit, DecisionTreeLearner, DecisionTreeParameters, FeatureRow,
                       FitError, LeafLearner, LinearRegressionLearner, ModelInternal, ModelLeaf,
                       RealSplit, TrainingInternal, TrainingLeaf, TrainingRow, TransformError)


def _linear_rows(ns, coeffs, intercept, seed=0):
    rng = np.random.default_rng(seed)
    rows = []
    for _ in range(ns):
        reals = rng.uniform(-10.0, 10.0, size=len(coeffs))
        y = intercept + float(np.dot(coeffs, reals))
        rows.append(TrainingRow.new(reals, [], y, rng.random()))
    return rows


def _random_rows(ns, nr, nc, seed=0):
    rng = np.random.default_rng(seed)
    return [TrainingRow.new(rng.uniform(-10.0, 10.0, size=nr), rng.integers(0, 5, size=nc),
                            float(rng.uniform(0.0, 5.0)), float(rng.random()))
            for _ in range(ns)]


def _leaves(node):
    if isinstance(node, (TrainingLeaf, ModelLeaf)):
        return [node]
    return _leaves(node.left) + _leaves(node.right)


def _features(rows):
    return [r.features for r in rows]


# ----------------------------- Parameters -----------------------------

def test_parameter_defaults_and_builders():
    p = DecisionTreeParameters()
    assert (p.max_depth, p.num_features, p.min_leaf_instances, p.min_impurity_decrease) == (30, None, 2, 0.0)
    q = p.with_max_depth(3).with_num_features(2).with_min_leaf_instances(5).with_min_impurity_decrease(0.1)
    assert (q.max_depth, q.num_features, q.min_leaf_instances, q.min_impurity_decrease) == (3, 2, 5, 0.1)
    assert p.max_depth == 30


@pytest.mark.parametrize("kwargs", [
    {"max_depth": -1},
    {"num_features": 0},
    {"min_leaf_instances": 0},
    {"min_impurity_decrease": -0.5},
    {"min_impurity_decrease": float("nan")},
])
def test_parameter_validation(kwargs):
    with pytest.raises(ValueError):
        DecisionTreeParameters(**kwargs)


# ----------------------------- Regression trees -----------------------------

def test_depth_zero_tree_predicts_mean():
    rows = _linear_rows(10, [1.0, 2.0, 3.0, 4.0], 5.0)
    params = DecisionTreeParameters(max_depth=0)
    model = DecisionTreeLearner.regression(LeafLearner.mean(), params, rng=0).fit(rows)

    w = np.array([r.weight for r in rows])
    y = np.array([r.label for r in rows])
    mean = float((w * y).sum() / w.sum())
    np.testing.assert_allclose(model.transform(_features(rows)).expected(), mean)
    assert model.n_leaves == 1
    assert model.depth == 0


def test_unlimited_depth_linear_leaves_fit_exactly():
    rows = _linear_rows(10, [1.0, 2.0, 3.0, 4.0], 5.0)
    params = DecisionTreeParameters(min_leaf_instances=1)
    learner = DecisionTreeLearner.regression(LeafLearner.linreg(LinearRegressionLearner(True)), params, rng=0)
    model = learner.fit(rows)

    labels = np.array([r.label for r in rows])
    predicted = model.transform(_features(rows)).expected()
    np.testing.assert_allclose(predicted, labels, rtol=0.0, atol=1e-9)


def test_single_linear_leaf_fits_exactly():
    rows = _linear_rows(10, [1.0, 2.0, 3.0, 4.0], 5.0)
    params = DecisionTreeParameters(min_impurity_decrease=1e12)
    model = DecisionTreeLearner.regression(LeafLearner.linreg(), params, rng=0).fit(rows)

    assert model.n_leaves == 1
    labels = np.array([r.label for r in rows])
    np.testing.assert_allclose(model.transform(_features(rows)).expected(), labels, rtol=0.0, atol=1e-8)


def test_training_tree_shape_and_depths():
    rows = [TrainingRow.new([x], [], y) for x, y in zip([1.0, 2.0, 3.0, 4.0], [1.0, 1.0, 5.0, 5.0])]
    learner = DecisionTreeLearner.regression(params=DecisionTreeParameters(min_leaf_instances=1), rng=0)
    root = learner.build_training_tree(rows)

    assert isinstance(root, TrainingInternal)
    assert root.depth == 0
    assert root.split == RealSplit(0, 2.5)
    assert root.delta == pytest.approx(16.0)
    # both halves are pure, so no further split clears the gate
    assert isinstance(root.left, TrainingLeaf) and isinstance(root.right, TrainingLeaf)
    assert root.left.depth == 1 and root.right.depth == 1
    assert [r.label for r in root.left.rows] == [1.0, 1.0]
    assert root.training_weight() == pytest.approx(4.0)


def test_max_depth_limits_tree():
    rows = [TrainingRow.new([float(x)], [], float(x)) for x in range(1, 9)]
    params = DecisionTreeParameters(max_depth=1, min_leaf_instances=1)
    model = DecisionTreeLearner.regression(params=params, rng=0).fit(rows)
    assert model.depth == 1
    assert model.n_leaves == 2


@pytest.mark.parametrize("seed", range(4))
def test_leaves_respect_min_leaf_instances(seed):
    rows = _random_rows(60, 3, 2, seed)
    params = DecisionTreeParameters(min_leaf_instances=4)
    root = DecisionTreeLearner.regression(params=params, rng=seed).build_training_tree(rows)
    leaves = _leaves(root)
    assert all(len(leaf.rows) >= 4 for leaf in leaves)
    # partitioning neither drops nor duplicates rows
    assert sum(len(leaf.rows) for leaf in leaves) == len(rows)
    assert {id(r) for leaf in leaves for r in leaf.rows} == {id(r) for r in rows}


@pytest.mark.parametrize("seed", range(4))
def test_accepted_splits_decrease_impurity(seed):
    rows = _random_rows(50, 3, 2, seed)
    root = DecisionTreeLearner.regression(randomize_pivot=True, rng=seed).build_training_tree(rows)

    def walk(node):
        if isinstance(node, TrainingLeaf):
            return
        assert node.delta > 0.0
        walk(node.left)
        walk(node.right)

    walk(root)


def test_min_impurity_decrease_gate():
    rows = _random_rows(40, 2, 1)
    params = DecisionTreeParameters(min_impurity_decrease=1e9)
    model = DecisionTreeLearner.regression(params=params, rng=0).fit(rows)
    assert model.n_leaves == 1


def test_model_weights_sum_up():
    rows = _random_rows(40, 2, 1, seed=2)
    model = DecisionTreeLearner.regression(rng=0).fit(rows)
    assert model.training_weight == pytest.approx(sum(r.weight for r in rows))

    def walk(node):
        if isinstance(node, ModelInternal):
            assert node.training_weight == pytest.approx(node.left.training_weight + node.right.training_weight)
            walk(node.left)
            walk(node.right)

    walk(model.root)


def test_fit_is_reproducible_with_seed():
    rows = _random_rows(80, 4, 2, seed=9)
    params = DecisionTreeParameters(num_features=2)
    probe = _features(_random_rows(30, 4, 2, seed=10))

    a = DecisionTreeLearner.regression(params=params, randomize_pivot=True, rng=42).fit(rows)
    b = DecisionTreeLearner.regression(params=params, randomize_pivot=True, rng=42).fit(rows)
    np.testing.assert_array_equal(a.transform(probe).expected(), b.transform(probe).expected())
    assert a.n_leaves == b.n_leaves


def test_repeated_transform_is_stable():
    rows = _random_rows(50, 3, 2, seed=5)
    model = DecisionTreeLearner.regression(randomize_pivot=True, rng=1).fit(rows)
    row = rows[7].features
    first = model.predict_one(row)
    assert all(model.predict_one(row) == first for _ in range(5))


def test_every_row_reaches_one_leaf():
    rows = _random_rows(50, 3, 2, seed=6)
    model = DecisionTreeLearner.regression(rng=1).fit(rows)
    leaves = _leaves(model.root)
    for r in rows:
        leaf = model.root.leaf_for(r.features)
        assert sum(leaf is other for other in leaves) == 1
        assert leaf.depth <= model.depth


def test_categorical_tree():
    codes = [0, 1, 2, 3] * 6
    means = {0: 1.0, 1: 1.0, 2: 8.0, 3: 8.0}
    rows = [TrainingRow.new([], [c], means[c]) for c in codes]
    model = DecisionTreeLearner.regression(rng=0).fit(rows)

    assert isinstance(model.root.split, CategoricalSplit)
    assert model.root.split.categories == frozenset({0, 1})
    assert model.predict_one(FeatureRow([], [3])) == pytest.approx(8.0)
    assert model.predict_one(FeatureRow([], [0])) == pytest.approx(1.0)


# ----------------------------- Classification trees -----------------------------

def test_classification_tree():
    rng = np.random.default_rng(0)
    rows = []
    for _ in range(40):
        x = rng.uniform(-1.0, 1.0, size=2)
        rows.append(TrainingRow.new(x, [], int(x[0] > 0.0)))
    model = DecisionTreeLearner.classification(rng=0).fit(rows)
    predicted = model.transform(_features(rows)).expected()
    np.testing.assert_array_equal(predicted, [r.label for r in rows])


# ----------------------------- Errors -----------------------------

def test_fit_on_no_rows_fails():
    with pytest.raises(FitError):
        DecisionTreeLearner.regression(rng=0).fit([])


def test_fit_on_ragged_rows_fails():
    rows = [TrainingRow.new([1.0], [], 1.0), TrainingRow.new([1.0, 2.0], [], 2.0)]
    with pytest.raises(FitError):
        DecisionTreeLearner.regression(rng=0).fit(rows)


def test_transform_rejects_wrong_shape():
    rows = [TrainingRow.new([float(x)], [], float(x)) for x in range(6)]
    model = DecisionTreeLearner.regression(rng=0).fit(rows)
    with pytest.raises(TransformError):
        model.transform([FeatureRow([1.0, 2.0], [])])


def test_error_hierarchy():
    import treelearn
    assert issubclass(FitError, treelearn.ModelingError)
    assert issubclass(TransformError, ValueError)
    assert set(n for n in treelearn.__all__ if n.endswith("Error")) == {"ModelingError", "FitError", "TransformError"}
