import math

import numpy as np
import pytest

from treelearn import GiniCalculator, VarianceCalculator


def test_variance_empty():
    calc = VarianceCalculator.from_labels([], [])
    assert calc.impurity() == 0.0


def test_variance_length_mismatch():
    with pytest.raises(ValueError):
        VarianceCalculator.from_labels([1.0, 2.0], [1.0])


@pytest.mark.parametrize("seed", [0, 1, 2, 3])
def test_variance_matches_weighted_population_variance(seed):
    rng = np.random.default_rng(seed)
    y = rng.normal(size=25) * 10.0
    w = rng.random(25)
    calc = VarianceCalculator.from_labels(y, w)
    mean = np.average(y, weights=w)
    expected = w.sum() * np.average((y - mean) ** 2, weights=w)
    assert calc.impurity() == pytest.approx(expected, rel=1e-9, abs=1e-9)


def test_variance_split_impurity():
    calc = VarianceCalculator.from_labels([1.0, 2.0, 10.0, 11.0], [1.0] * 4)
    assert calc.impurity() == pytest.approx(82.0)
    calc.add(1.0, 1.0)
    calc.add(2.0, 1.0)
    assert calc.impurity() == 1.0


def test_variance_add_remove_round_trip():
    labels = [1.0, 2.5, -3.0, 4.0]
    weights = [1.0, 0.5, 2.0, 1.0]
    calc = VarianceCalculator.from_labels(labels, weights)
    base = calc.impurity()

    calc.add(1.0, 1.0)
    after_one = calc.impurity()
    calc.add(2.5, 0.5)
    calc.remove(2.5, 0.5)
    assert calc.impurity() == after_one
    calc.remove(1.0, 1.0)
    assert calc.impurity() == base


def test_variance_ignores_nan():
    calc = VarianceCalculator.from_labels([1.0, 3.0], [1.0, 1.0])
    base = calc.impurity()
    calc.add(math.nan, 1.0)
    calc.add(1.0, math.nan)
    assert calc.impurity() == base
    assert calc.left_weight == 0.0


def test_variance_reset():
    calc = VarianceCalculator.from_labels([1.0, 3.0, 8.0], [1.0, 1.0, 1.0])
    base = calc.impurity()
    calc.add(1.0, 1.0)
    assert calc.impurity() != base
    calc.reset()
    assert calc.impurity() == base


def test_gini_empty():
    calc = GiniCalculator.from_labels([], [])
    assert calc.impurity() == 0.0


def test_gini_counts_category_zero():
    calc = GiniCalculator.from_labels([0, 0, 1, 1], [1.0] * 4)
    assert calc.impurity() == 2.0
    calc.add(0, 1.0)
    calc.add(0, 1.0)
    assert calc.impurity() == 0.0
    assert calc.left_weight + (calc.total_weight - calc.left_weight) == calc.total_weight


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_gini_matches_definition(seed):
    rng = np.random.default_rng(seed)
    y = rng.integers(0, 4, size=30)
    w = rng.random(30)
    calc = GiniCalculator.from_labels(y, w)
    W = w.sum()
    p = np.bincount(y, weights=w) / W
    assert calc.impurity() == pytest.approx(W * (1.0 - (p ** 2).sum()))

    # move the first half left and compare with the two sides computed directly
    for label, weight in zip(y[:15], w[:15]):
        calc.add(int(label), float(weight))

    def side(lab, wt):
        cw = np.bincount(lab, weights=wt, minlength=4)
        return wt.sum() - (cw ** 2).sum() / wt.sum()

    assert calc.impurity() == pytest.approx(side(y[:15], w[:15]) + side(y[15:], w[15:]))


def test_gini_add_remove_round_trip():
    calc = GiniCalculator.from_labels([0, 1, 2, 1], [1.0, 2.0, 0.5, 1.0])
    base = calc.impurity()
    calc.add(1, 2.0)
    calc.add(2, 0.5)
    calc.remove(2, 0.5)
    calc.remove(1, 2.0)
    assert calc.impurity() == base


def test_gini_rejects_negative_codes():
    with pytest.raises(ValueError):
        GiniCalculator.from_labels([-1, 0], [1.0, 1.0])
