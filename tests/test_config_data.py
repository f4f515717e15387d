from pathlib import Path

import pandas as pd
import pytest
from pydantic import ValidationError

from seg.core.config import SegmentationConfig, VariableConfig
from seg.core.data import (
    load_dataset,
    median_split,
    split_train_test,
    to_numeric_frame,
    to_predictor_frame,
    validate_dataset,
)
from seg.core.simulate import simulate_segments

ROOT = Path(__file__).resolve().parents[1]


def test_yaml_matches_builtin_default(cfg):
    from_yaml = SegmentationConfig.from_yaml(ROOT / "examples" / "configs" / "consumer_segments.yaml")
    assert from_yaml.variable_names() == cfg.variable_names()
    assert from_yaml.segment_names() == cfg.segment_names()
    assert [s.size for s in from_yaml.simulation.segments] == [100, 50, 80, 70]


def test_binary_variable_needs_two_levels():
    with pytest.raises(ValidationError):
        VariableConfig(name="gender", type="binary", levels=["Female"])


def test_numeric_variable_rejects_levels():
    with pytest.raises(ValidationError):
        VariableConfig(name="age", type="numeric", levels=["a", "b"])


def test_segment_missing_parameter_is_rejected(cfg):
    data = cfg.model_dump(mode="json")
    del data["simulation"]["segments"][0]["variables"]["income"]
    with pytest.raises(ValidationError, match="income"):
        SegmentationConfig.model_validate(data)


@pytest.mark.parametrize("sd", [-5.0, 0.0])
def test_numeric_simulation_sd_must_be_positive(cfg, sd):
    data = cfg.model_dump(mode="json")
    data["simulation"]["segments"][1]["variables"]["age"]["sd"] = sd
    with pytest.raises(ValidationError, match="sd > 0"):
        SegmentationConfig.model_validate(data)


def test_unknown_variable_raises_keyerror(cfg):
    with pytest.raises(KeyError):
        cfg.get_variable("shoe_size")


def test_simulation_shape_and_determinism(cfg):
    a = simulate_segments(cfg, seed=1)
    b = simulate_segments(cfg, seed=1)
    c = simulate_segments(cfg, seed=2)
    pd.testing.assert_frame_equal(a, b)
    assert not a.equals(c)

    assert list(a.columns) == cfg.variable_names() + [cfg.segment_column]
    assert a[cfg.segment_column].value_counts().to_dict() == {
        "Suburb mix": 100,
        "Travelers": 80,
        "Moving up": 70,
        "Urban hip": 50,
    }
    assert set(a["gender"]) <= {"Female", "Male"}
    assert (a["kids"] >= 0).all()
    # Travelers have no kids in expectation
    assert a.loc[a[cfg.segment_column] == "Travelers", "kids"].sum() == 0


def test_load_dataset_roundtrip_and_bad_suffix(tmp_path, seg_df):
    p = tmp_path / "seg.csv"
    seg_df.to_csv(p, index=False)
    loaded = load_dataset(p)
    assert loaded.shape == seg_df.shape

    with pytest.raises(ValueError, match="Unsupported"):
        load_dataset(tmp_path / "seg.xlsx")


def test_validate_dataset_reports_problems(cfg, seg_df):
    validate_dataset(seg_df, cfg)

    missing = seg_df.drop(columns=["income"])
    with pytest.raises(ValueError, match="missing"):
        validate_dataset(missing, cfg, strict=False)

    bad_level = seg_df.copy()
    bad_level.loc[3, "ownHome"] = "maybe"
    with pytest.raises(ValueError, match="unknown levels"):
        validate_dataset(bad_level, cfg)
    validate_dataset(bad_level, cfg, strict=False)

    bad_num = seg_df.copy()
    bad_num["age"] = bad_num["age"].astype(object)
    bad_num.loc[5, "age"] = "old"
    with pytest.raises(ValueError, match="numeric"):
        validate_dataset(bad_num, cfg)

    neg = seg_df.copy()
    neg.loc[0, "kids"] = -1
    with pytest.raises(ValueError, match="non-negative"):
        validate_dataset(neg, cfg)


def test_numeric_frame_codes_second_level_as_one(cfg):
    df = pd.DataFrame(
        {
            "age": [30.0, 40.0],
            "gender": ["Male", "Female"],
            "income": [1.0, 2.0],
            "kids": [0, 3],
            "ownHome": ["ownNo", "ownYes"],
            "subscribe": ["subYes", "subNo"],
            "Segment": ["a", "b"],
        }
    )
    X = to_numeric_frame(df, cfg)
    assert list(X.columns) == cfg.variable_names()
    assert X["gender"].tolist() == [1.0, 0.0]
    assert X["ownHome"].tolist() == [0.0, 1.0]
    assert X["subscribe"].tolist() == [1.0, 0.0]
    assert X["kids"].tolist() == [0.0, 3.0]


def test_predictor_frame_keeps_levels_as_categoricals(cfg, seg_df):
    X = to_predictor_frame(seg_df, cfg, exclude=["subscribe"])
    assert "subscribe" not in X.columns
    assert cfg.segment_column not in X.columns
    assert isinstance(X["gender"].dtype, pd.CategoricalDtype)
    assert list(X["gender"].cat.categories) == ["Female", "Male"]


def test_median_split(cfg, seg_df):
    cut = median_split(seg_df, cfg)
    assert list(cut.columns) == cfg.variable_names()
    for name in ("age", "income", "kids"):
        assert set(cut[name].astype(str)) <= {"1", "2"}
        med = seg_df[name].median()
        assert (cut[name].astype(str)[seg_df[name] < med] == "1").all()
        assert (cut[name].astype(str)[seg_df[name] >= med] == "2").all()
    assert list(cut["ownHome"].cat.categories) == ["ownNo", "ownYes"]


def test_median_split_ties_go_to_upper_level(cfg):
    df = pd.DataFrame(
        {
            "age": [30.0, 40.0, 40.0, 50.0],
            "gender": ["Male", "Female", "Male", "Female"],
            "income": [1.0, 2.0, 3.0, 4.0],
            "kids": [1, 2, 2, 3],
            "ownHome": ["ownNo", "ownYes", "ownNo", "ownYes"],
            "subscribe": ["subNo", "subNo", "subYes", "subNo"],
        }
    )
    cut = median_split(df, cfg)
    assert list(cut["kids"].astype(str)) == ["1", "2", "2", "2"]
    assert list(cut["age"].astype(str)) == ["1", "2", "2", "2"]


def test_split_train_test(seg_df):
    split = split_train_test(seg_df, train_fraction=0.65, seed=3)
    assert len(split.train) == 195
    assert len(split.train) + len(split.test) == len(seg_df)

    again = split_train_test(seg_df, train_fraction=0.65, seed=3)
    pd.testing.assert_frame_equal(split.train, again.train)

    with pytest.raises(ValueError):
        split_train_test(seg_df, train_fraction=1.0)
