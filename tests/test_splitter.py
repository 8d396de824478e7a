import numpy as np
import pytest

from rptree import DegenerateSplitError, Split, SplitEvaluator


def _obj(values):
    out = np.empty(len(values), dtype=object)
    out[:] = values
    return out


def test_numeric_regression_midpoint_threshold():
    ev = SplitEvaluator("regression", min_bucket=1)
    split = ev.evaluate("x", "numeric", np.array([1.0, 2.0, 3.0, 10.0]),
                        np.array([1.0, 1.0, 1.0, 5.0]), np.ones(4))
    assert split.threshold == 6.5
    assert split.improvement == pytest.approx(12.0)
    assert (split.left_weight, split.right_weight) == (3.0, 1.0)


def test_numeric_ties_pick_smallest_threshold():
    ev = SplitEvaluator("regression", min_bucket=1)
    split = ev.evaluate("x", "numeric", np.array([1.0, 2.0, 3.0, 4.0]),
                        np.array([0.0, 1.0, 1.0, 0.0]), np.ones(4))
    assert split.threshold == 1.5


def test_min_bucket_rules_out_small_sides():
    ev = SplitEvaluator("regression", min_bucket=2)
    split = ev.evaluate("x", "numeric", np.array([1.0, 2.0, 3.0, 4.0]),
                        np.array([0.0, 1.0, 1.0, 0.0]), np.ones(4))
    assert split is None


def test_feature_ties_pick_earliest_feature():
    ev = SplitEvaluator("classification", n_classes=2, min_bucket=1)
    x = np.array([1.0, 2.0, 3.0, 4.0])
    y = np.array([0, 0, 1, 1])
    split = ev.best_split({"a": x, "b": x.copy()}, {"a": "numeric", "b": "numeric"}, y, np.ones(4))
    assert split.feature == "a"


def test_gini_and_entropy_improvements():
    x = np.array([1.0, 2.0, 3.0, 4.0])
    y = np.array([0, 0, 1, 1])
    gini = SplitEvaluator("classification", n_classes=2, min_bucket=1)
    entropy = SplitEvaluator("classification", n_classes=2, criterion="entropy", min_bucket=1)
    # weighted impurity of the root: 4 * 0.5 and 4 * 1 bit
    assert gini.evaluate("x", "numeric", x, y, np.ones(4)).improvement == pytest.approx(2.0)
    assert entropy.evaluate("x", "numeric", x, y, np.ones(4)).improvement == pytest.approx(4.0)


def test_binary_categorical_orders_by_class_share():
    ev = SplitEvaluator("classification", n_classes=2, min_bucket=1)
    split = ev.evaluate("sex", "categorical", _obj(["F", "M", "M", "F"]),
                        np.array([1, 0, 0, 1]), np.ones(4))
    assert split.categories == frozenset({"M"})
    assert split.describe() == "sex IN {M}"
    assert split.describe(left=False) == "sex NOT IN {M}"


def test_multiclass_categorical_exhaustive_and_one_vs_rest():
    values = _obj(["a", "a", "b", "b", "c", "c"])
    y = np.array([0, 0, 1, 1, 2, 2])
    w = np.ones(6)
    exhaustive = SplitEvaluator("classification", n_classes=3, min_bucket=1)
    split = exhaustive.evaluate("g", "categorical", values, y, w)
    assert split.categories == frozenset({"a"})
    # above the limit only single categories are tried against the rest
    ovr = SplitEvaluator("classification", n_classes=3, min_bucket=1, max_categories_exhaustive=2)
    split = ovr.evaluate("g", "categorical", values, y, w)
    assert len(split.categories) == 1


def test_categorical_regression_groups_by_mean():
    ev = SplitEvaluator("regression", min_bucket=1)
    split = ev.evaluate("g", "categorical", _obj(["hi", "lo", "mid", "hi", "lo"]),
                        np.array([10.0, 0.0, 1.0, 10.0, 0.0]), np.ones(5))
    assert split.categories == frozenset({"lo", "mid"})


def test_missing_values_are_ignored_when_scoring():
    ev = SplitEvaluator("regression", min_bucket=1)
    split = ev.evaluate("x", "numeric", np.array([1.0, np.nan, 2.0, 3.0]),
                        np.array([0.0, 100.0, 0.0, 1.0]), np.ones(4))
    assert split.threshold == 2.5
    assert split.left_weight + split.right_weight == 3.0


def test_constant_features_raise_degenerate_split():
    ev = SplitEvaluator("regression", min_bucket=1)
    with pytest.raises(DegenerateSplitError):
        ev.best_split({"x": np.array([1.0, 1.0, 1.0]), "g": _obj(["a", "a", "a"])},
                      {"x": "numeric", "g": "categorical"},
                      np.array([0.0, 1.0, 2.0]), np.ones(3))


def test_split_routing_rules():
    num = Split("x", "numeric", 1.0, 2.0, 2.0, threshold=2.5)
    assert num.goes_left(2.5) and not num.goes_left(3)
    assert list(num.left_mask(np.array([1.0, 3.0]))) == [True, False]
    cat = Split("g", "categorical", 1.0, 2.0, 2.0, categories=frozenset({"a"}))
    # unseen categories go right
    assert cat.goes_left("a") and not cat.goes_left("zzz")


def test_node_risk_and_purity():
    ev = SplitEvaluator("regression")
    assert ev.node_risk(np.array([1.0, 3.0]), np.array([1.0, 1.0])) == pytest.approx(2.0)
    cls = SplitEvaluator("classification", n_classes=2)
    assert cls.is_pure(np.array([1, 1, 0]), np.array([1.0, 1.0, 0.0]))
    assert not cls.is_pure(np.array([1, 0]), np.ones(2))


def test_threshold_stays_between_huge_values():
    # the plain midpoint of these overflows to inf
    v = np.array([1e308, 1e308, 1.5e308, 1.5e308])
    ev = SplitEvaluator("regression", min_bucket=1)
    split = ev.evaluate("x", "numeric", v, np.array([0.0, 0.0, 1.0, 1.0]), np.ones(4))
    assert np.isfinite(split.threshold)
    assert 1e308 <= split.threshold < 1.5e308
    assert list(split.left_mask(v)) == [True, True, False, False]


def test_threshold_between_adjacent_floats():
    a = 1.0 + np.finfo(float).eps
    b = np.nextafter(a, 2.0)
    v = np.array([a, a, b, b])
    ev = SplitEvaluator("classification", n_classes=2, min_bucket=1)
    split = ev.evaluate("x", "numeric", v, np.array([0, 0, 1, 1]), np.ones(4))
    # no float lies strictly between a and b, so the lower value is kept
    assert split.threshold == a
    assert list(split.left_mask(v)) == [True, True, False, False]
    assert split.goes_left(a) and not split.goes_left(b)
