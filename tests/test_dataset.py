import numpy as np
import pandas as pd
import pytest

from rptree import (Dataset, InvalidDatasetError, SchemaMismatchError, aggregate_observations,
                    load_table, parse_formula)


def _passengers():
    return pd.DataFrame({
        "sex": ["M", "M", "F", "F", "F"],
        "age": [30.0, 40.0, 20.0, np.nan, 50.0],
        "survived": [0, 0, 1, 1, 0],
        "n": [3, 1, 2, 2, 1],
    })


def test_parse_formula_dot_and_exclusions():
    cols = ["survived", "sex", "age", "n"]
    assert parse_formula("survived ~ .", cols, exclude=["n"]) == ("survived", ["sex", "age"])
    assert parse_formula("survived ~ sex + age", cols) == ("survived", ["sex", "age"])
    assert parse_formula("survived ~ . - age", cols) == ("survived", ["sex", "n"])


def test_parse_formula_errors():
    cols = ["survived", "sex"]
    with pytest.raises(SchemaMismatchError):
        parse_formula("survived sex", cols)
    with pytest.raises(SchemaMismatchError):
        parse_formula("survived ~ cabin", cols)
    with pytest.raises(SchemaMismatchError):
        parse_formula("died ~ sex", cols)


def test_schema_inference():
    df = pd.DataFrame({
        "num": [1, 2, 3],
        "flag": [True, False, True],
        "grade": pd.Categorical([1, 2, 1]),
        "name": ["a", "b", "c"],
        "mixed": [1.5, None, 2.0],
    })
    ds = Dataset.from_frame(df.assign(y=[0, 1, 0]), "y")
    assert ds.schema == {
        "num": "numeric", "flag": "categorical", "grade": "categorical",
        "name": "categorical", "mixed": "numeric",
    }
    assert np.isnan(ds.column("mixed")[1])
    assert list(ds.missing_mask("mixed")) == [False, True, False]


def test_forced_categorical_column():
    ds = Dataset({"pclass": [1, 2, 3, 1]}, [0, 1, 1, 0], categorical=["pclass"])
    assert ds.schema == {"pclass": "categorical"}
    assert list(ds.column("pclass")) == [1, 2, 3, 1]
    with pytest.raises(SchemaMismatchError):
        Dataset({"pclass": [1, 2]}, [0, 1], categorical=["cabin"])


def test_from_frame_weight_column():
    ds = Dataset.from_frame(_passengers(), "survived", weights="n")
    assert ds.feature_names == ["sex", "age"]
    assert ds.total_weight == 9.0
    assert ds.target_name == "survived"
    assert len(ds) == 5


def test_from_frame_drops_missing_targets():
    df = pd.DataFrame({"x": [1.0, 2.0, 3.0], "y": [1.0, None, 0.0]})
    ds = Dataset.from_frame(df, "y")
    assert ds.n_rows == 2
    assert list(ds.column("x")) == [1.0, 3.0]


def test_invalid_weights_and_targets():
    with pytest.raises(InvalidDatasetError):
        Dataset({"x": [1.0, 2.0]}, [0, 1], weights=[1.0, -1.0])
    with pytest.raises(InvalidDatasetError):
        Dataset({"x": [1.0, 2.0]}, [0, 1], weights=[1.0, np.inf])
    with pytest.raises(InvalidDatasetError):
        Dataset({"x": [1.0, 2.0]}, ["a", None])


def test_schema_mismatch():
    with pytest.raises(SchemaMismatchError) as exc:
        Dataset({"x": [1.0]}, [0], schema={"x": "numeric", "z": "numeric"})
    assert exc.value.missing == ["z"]
    with pytest.raises(SchemaMismatchError):
        Dataset({"x": [1.0, 2.0, 3.0]}, [0, 1])
    with pytest.raises(SchemaMismatchError):
        Dataset({"x": ["a", "b"]}, [0, 1], schema={"x": "numeric"})


def test_subset_and_observations():
    ds = Dataset.from_frame(_passengers(), "survived", weights="n")
    sub = ds.subset([0, 2])
    assert sub.schema == ds.schema
    assert list(sub.weights) == [3.0, 2.0]
    assert list(sub.observations()) == [{"sex": "M", "age": 30.0}, {"sex": "F", "age": 20.0}]


def test_from_arrays_default_names():
    X = np.array([[1.0, "a"], [2.0, "b"]], dtype=object)
    ds = Dataset.from_arrays(X, [0.5, 1.5])
    assert ds.feature_names == ["X0", "X1"]
    assert ds.schema == {"X0": "numeric", "X1": "categorical"}


def test_aggregate_observations():
    df = pd.DataFrame({
        "sex": ["M", "M", "F", "F", "F"],
        "survived": [0, 0, 1, 1, 0],
    })
    out = aggregate_observations(df, ["sex", "survived"])
    assert list(out.columns) == ["sex", "survived", "n"]
    assert len(out) == 3
    assert out["n"].sum() == 5
    row = out[(out["sex"] == "F") & (out["survived"] == 1)]
    assert int(row["n"].iloc[0]) == 2


def test_aggregate_observations_sums_existing_weights():
    df = pd.DataFrame({"sex": ["M", "M", "F"], "w": [1.5, 2.0, 4.0]})
    out = aggregate_observations(df, ["sex"], weight_name="n", weights="w")
    assert dict(zip(out["sex"], out["n"])) == {"F": 4.0, "M": 3.5}


def test_load_table(tmp_path):
    path = tmp_path / "passengers.csv"
    _passengers().to_csv(path, index=False)
    df = load_table(path)
    assert list(df.columns) == ["sex", "age", "survived", "n"]
    with pytest.raises(ValueError):
        load_table(tmp_path / "passengers.parquet")
