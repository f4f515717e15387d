import numpy as np
import pandas as pd
import pytest

from seg.classify.bayes import MixedNaiveBayes, train_naive_bayes
from seg.classify.forest import forest_report, train_random_forest
from seg.classify.metrics import confusion_table, evaluate
from seg.classify.model import TrainedClassifier
from seg.core.data import split_train_test


@pytest.fixture(scope="module")
def split(cfg, seg_df):
    return split_train_test(seg_df, train_fraction=cfg.train_fraction, seed=cfg.seed)


@pytest.fixture(scope="module")
def forest(cfg, split):
    return train_random_forest(split.train, cfg, n_estimators=200, seed=0)


def test_naive_bayes_predicts_segments(cfg, split):
    model = train_naive_bayes(split.train, cfg)
    assert model.kind == "naive_bayes"
    assert cfg.segment_column not in model.predictors

    pred = model.predict(split.test)
    assert set(pred) <= set(cfg.segment_names())

    ev = evaluate(split.test[cfg.segment_column], pred)
    assert ev.accuracy > 0.5
    assert ev.kappa > 0.3
    assert ev.confusion.to_numpy().sum() == len(split.test)


def test_naive_bayes_probabilities(cfg, split):
    model = train_naive_bayes(split.train, cfg)
    proba = model.predict_proba(split.test)
    assert sorted(proba.columns) == sorted(cfg.segment_names())
    assert np.allclose(proba.sum(axis=1), 1.0)
    assert np.array_equal(proba.idxmax(axis=1).to_numpy(), model.predict(split.test))


def test_mixed_naive_bayes_counts_prior_once():
    X = pd.DataFrame(
        {
            "x": [0.0, 0.1, 0.2, 5.0, 5.1, 5.2],
            "c": pd.Categorical(["a", "a", "a", "b", "b", "b"], categories=["a", "b"]),
        }
    )
    y = pd.Series(["lo", "lo", "lo", "hi", "hi", "hi"])
    nb = MixedNaiveBayes().fit(X, y)
    assert list(nb.predict(X)) == y.tolist()

    only_num = MixedNaiveBayes().fit(X[["x"]], y)
    p = only_num.predict_proba(X[["x"]])
    assert np.allclose(p.sum(axis=1), 1.0)

    unseen = X.copy()
    unseen["c"] = ["z"] * len(unseen)
    with pytest.raises(ValueError, match="not seen"):
        nb.predict(unseen)


def test_numeric_target_is_rejected(cfg, split):
    with pytest.raises(ValueError, match="binary or categorical"):
        train_naive_bayes(split.train, cfg, target="income")
    with pytest.raises(KeyError):
        train_random_forest(split.train, cfg, target="nope", n_estimators=10)


def test_random_forest_segments(cfg, split, forest):
    assert forest.kind == "random_forest"
    ev = evaluate(split.test[cfg.segment_column], forest.predict(split.test))
    assert ev.accuracy > 0.5
    assert np.allclose(forest.predict_proba(split.test).sum(axis=1), 1.0)


def test_forest_report(cfg, split, forest):
    rep = forest_report(forest, split.train, n_repeats=3, seed=0)
    assert 0.0 <= rep.oob_error <= 1.0
    assert rep.oob_confusion.to_numpy().sum() == len(split.train)

    assert set(rep.impurity_importance.index) == set(cfg.variable_names())
    assert rep.impurity_importance.sum() == pytest.approx(1.0)
    # age separates the simulated segments best
    assert rep.impurity_importance.index[0] in {"age", "income"}

    assert list(rep.permutation_importance.columns) == ["mean_decrease_accuracy", "std"]
    assert set(rep.class_importance.columns) == set(cfg.segment_names())
    assert set(rep.class_importance.index) == set(cfg.variable_names())


def test_forest_report_skips_rows_never_out_of_bag(cfg, split):
    tiny = train_random_forest(split.train, cfg, n_estimators=2, seed=0)
    rf = tiny.estimator.named_steps["rf"]
    n_seen = int((np.nan_to_num(rf.oob_decision_function_).sum(axis=1) > 0).sum())
    assert n_seen < len(split.train)

    rep = forest_report(tiny, split.train, n_repeats=2, seed=0)
    assert rep.oob_confusion.to_numpy().sum() == n_seen


def test_forest_report_rejects_naive_bayes(cfg, split):
    nb = train_naive_bayes(split.train, cfg)
    with pytest.raises(ValueError):
        forest_report(nb, split.train)


def test_subscription_forest_excludes_segment(cfg, split):
    model = train_random_forest(split.train, cfg, target="subscribe", n_estimators=100, balanced=True)
    assert model.target == "subscribe"
    assert "subscribe" not in model.predictors
    assert cfg.segment_column not in model.predictors
    assert set(model.predict(split.test)) <= {"subNo", "subYes"}
    assert model.estimator.named_steps["rf"].class_weight == "balanced_subsample"


def test_save_and_load(tmp_path, cfg, split):
    model = train_naive_bayes(split.train, cfg)
    p = tmp_path / "nb.joblib"
    model.save(str(p))
    loaded = TrainedClassifier.load(str(p))
    assert np.array_equal(loaded.predict(split.test), model.predict(split.test))

    from joblib import dump

    other = tmp_path / "other.joblib"
    dump({"not": "a model"}, other)
    with pytest.raises(TypeError):
        TrainedClassifier.load(str(other))


def test_predict_requires_predictors(cfg, split):
    model = train_naive_bayes(split.train, cfg)
    with pytest.raises(ValueError, match="missing predictor"):
        model.predict(split.test.drop(columns=["age"]))


def test_evaluate_and_confusion():
    cm = confusion_table(["a", "a", "b"], ["a", "b", "b"], labels=["a", "b", "c"])
    assert cm.shape == (3, 3)
    assert cm.loc["a", "b"] == 1
    assert cm.loc["c"].sum() == 0

    ev = evaluate(["a", "a", "b", "b"], ["a", "a", "b", "b"])
    assert ev.accuracy == 1.0
    assert ev.ari == pytest.approx(1.0)
    assert ev.recall.tolist() == [1.0, 1.0]

    with pytest.raises(ValueError):
        evaluate(["a"], ["a", "b"])
