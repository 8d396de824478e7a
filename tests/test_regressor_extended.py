import os

import numpy as np
import pytest

from rptree import RPartRegressor


def _tiny_reg_dataset():
    """Return a small regression dataset with a numeric and categorical feature."""
    X = np.array([[1.0, 'A'], [2.0, 'A'], [3.0, 'B'], [4.0, 'B']], dtype=object)
    y = np.array([1.0, 1.5, 2.0, 2.5])
    return X, y


def test_regressor_predictions_shape():
    X, y = _tiny_reg_dataset()
    regr = RPartRegressor(min_split=2, min_bucket=1,
                          feature_names=['num', 'cat'], categorical_features=[1])
    regr.fit(X, y)
    pred = regr.predict(X)
    assert pred.shape == y.shape
    assert pred.dtype == float


def test_regressor_rule_and_export():
    X, y = _tiny_reg_dataset()
    regr = RPartRegressor(min_split=2, min_bucket=1,
                          feature_names=['num', 'cat'], categorical_features=[1])
    regr.fit(X, y)
    rules = regr.predict_rule(X)
    assert len(rules) == len(X)
    exported = regr.export_rules()
    # exported rules should include antecedent and value
    assert all('value=' in r for r in exported)


def test_regressor_perfect_fit_score():
    X = np.array([[1], [2], [3], [4]])
    y = np.array([1.0, 1.0, 5.0, 5.0])
    regr = RPartRegressor(min_split=2, min_bucket=1).fit(X, y)
    assert regr.tree_.root.split.threshold == 2.5
    assert regr.score(X, y) == 1.0


def test_regressor_graphviz_export(tmp_path):
    pytest.importorskip("graphviz")
    X = np.array([[1], [2], [3], [4]])
    y = np.array([1.1, 2.1, 3.1, 4.1])
    reg = RPartRegressor(min_split=2, min_bucket=1).fit(X, y)

    out_path = reg.export_graphviz(str(tmp_path / "test_reg_tree"), format="dot")
    assert os.path.exists(out_path)
    os.remove(out_path)


def test_regressor_not_fitted():
    regr = RPartRegressor()
    with pytest.raises(ValueError):
        regr.predict([[1.0, 'A']])


def test_regressor_missing_values():
    X = np.array([[1.0, 'A'], [2.0, None], [3.0, 'B'], [None, 'A']], dtype=object)
    y = np.array([1.0, 1.0, 2.0, 2.0])
    regr = RPartRegressor(min_split=2, min_bucket=1, missing="left",
                          feature_names=['num', 'cat'], categorical_features=[1])
    regr.fit(X, y)
    pred = regr.predict(X)
    assert len(pred) == len(y)


def test_regressor_weighted_leaf_means():
    X = np.array([[1.0], [1.0], [5.0], [5.0]])
    y = np.array([0.0, 3.0, 10.0, 20.0])
    w = np.array([2.0, 1.0, 1.0, 3.0])
    regr = RPartRegressor(max_depth=1, min_split=2, min_bucket=1).fit(X, y, sample_weight=w)
    pred = regr.predict([[1.0], [5.0]])
    assert np.allclose(pred, [1.0, 17.5])


def test_regressor_prune_refreshes_importances():
    X = np.array([[1, 'a'], [2, 'b'], [3, 'a'], [4, 'b']], dtype=object)
    y = np.array([1.0, 1.0, 5.0, 5.0])
    regr = RPartRegressor(min_split=2, min_bucket=1).fit(X, y)
    assert list(regr.feature_importances_) == [1.0, 0.0]
    regr.prune(float("inf"))
    assert regr.tree_.n_leaves == 1
    assert list(regr.feature_importances_) == [0.0, 0.0]
