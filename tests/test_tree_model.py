import numpy as np
import pandas as pd
import pytest

from rptree import (Dataset, MissingFeatureError, NodeBuilder, SchemaMismatchError,
                    StoppingConfig, TreeModel)

CFG = StoppingConfig(max_depth=2, min_split=2, min_bucket=1, cp=0.0)


def _staircase(missing="error"):
    ds = Dataset({"x": np.arange(1.0, 9.0)}, [0.0, 0.0, 1.0, 1.0, 2.0, 2.0, 3.0, 3.0])
    return ds, NodeBuilder(CFG, missing=missing).build(ds)


def _mixed_classifier():
    ds = Dataset({
        "size": [1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0],
        "color": ["red", "red", "blue", "blue", "red", "green", "green", "blue"],
    }, ["a", "a", "b", "b", "a", "c", "c", "b"])
    tree = NodeBuilder(StoppingConfig(min_split=2, min_bucket=1, cp=0.0),
                       method="classification").build(ds)
    return ds, tree


def test_predict_matches_leaf_and_apply():
    ds, tree = _staircase()
    ids = tree.apply(ds)
    preds = tree.predict_many(ds)
    assert list(ids) == [4, 4, 5, 5, 6, 6, 7, 7]
    for obs, node_id, pred in zip(ds.observations(), ids, preds):
        leaf = tree.leaf_for(obs)
        assert leaf.node_id == node_id
        assert leaf.value == pred


def test_predict_many_accepts_frames_and_mappings():
    _, tree = _staircase()
    frame = pd.DataFrame({"x": [1.0, 8.0], "unused": ["p", "q"]})
    assert list(tree.predict_many(frame)) == [0.0, 3.0]
    assert list(tree.predict_many({"x": 3.0})) == [1.0]
    assert list(tree.predict_many([{"x": 5}, {"x": 7.5}])) == [2.0, 3.0]


def test_missing_value_policies_at_prediction():
    _, tree = _staircase()
    with pytest.raises(MissingFeatureError) as exc:
        tree.predict({})
    assert exc.value.node_id == 1
    with pytest.raises(MissingFeatureError):
        tree.predict({"x": float("nan")})

    _, left = _staircase(missing="left")
    assert left.predict({}) == 0.0
    _, right = _staircase(missing="right")
    assert right.predict({"x": None}) == 3.0


def test_wrong_value_type_raises_schema_mismatch():
    _, tree = _staircase()
    with pytest.raises(SchemaMismatchError):
        tree.predict({"x": "large"})


def test_unseen_category_goes_right():
    _, tree = _mixed_classifier()
    assert tree.root.split.kind == "categorical"
    obs = {"size": 1.0, "color": "purple"}
    assert tree.predict_rule(obs).startswith(tree.root.split.describe(left=False))


def test_predict_proba():
    ds, tree = _mixed_classifier()
    assert tree.classes == ["a", "b", "c"]
    for obs in ds.observations():
        p = tree.predict_proba(obs)
        assert p.shape == (3,)
        assert p.sum() == pytest.approx(1.0)
    _, reg = _staircase()
    with pytest.raises(ValueError):
        reg.predict_proba({"x": 1.0})


def test_training_rows_are_classified_correctly():
    ds, tree = _mixed_classifier()
    assert list(tree.predict_many(ds)) == list(ds.target)


def test_node_summaries():
    _, tree = _staircase()
    summaries = tree.node_summaries()
    assert [s["node_id"] for s in summaries] == [1, 2, 4, 5, 3, 6, 7]
    root, left = summaries[0], summaries[1]
    assert root["condition"] == "root"
    assert root["split"] == "x <= 4.5"
    assert root["percent"] == 100.0
    assert left["condition"] == "x <= 4.5"
    assert summaries[2]["is_leaf"] and summaries[2]["percent"] == 25.0
    assert summaries[4]["condition"] == "x > 4.5"


def test_export_rules_and_format_tree():
    _, tree = _staircase()
    rules = tree.export_rules()
    assert rules[0] == "x <= 4.5 AND x <= 2.5 => value=0 (N=2.00)"
    assert len(rules) == tree.n_leaves == 4
    text = tree.format_tree()
    assert text.startswith("n= 8")
    assert "1) root 8 10 1.5" in text
    assert "    7) x > 6.5 2 0 3 *" in text


def test_variable_importance():
    _, tree = _staircase()
    assert tree.variable_importance() == {"x": pytest.approx(10.0)}


def test_json_round_trip_preserves_predictions():
    ds, tree = _mixed_classifier()
    restored = TreeModel.from_json(tree.to_json())
    assert restored.to_dict() == tree.to_dict()
    assert list(restored.predict_many(ds)) == list(tree.predict_many(ds))
    assert restored.config == tree.config

    ds, reg = _staircase(missing="majority")
    restored = TreeModel.from_dict(reg.to_dict())
    assert restored.missing == "majority"
    assert list(restored.predict_many(ds)) == list(reg.predict_many(ds))


def test_graphviz_source():
    pytest.importorskip("graphviz")
    _, tree = _mixed_classifier()
    source = tree.export_graphviz()
    assert source.startswith("// rptree")
    assert "digraph" in source


def test_repr():
    _, tree = _staircase()
    assert repr(tree) == "TreeModel(method='regression', n_leaves=4, depth=2, features=['x'])"
