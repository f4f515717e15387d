import pandas as pd
from typer.testing import CliRunner

from seg.cli import app


runner = CliRunner()


def _simulate(tmp_path):
    data = tmp_path / "segments.csv"
    res = runner.invoke(app, ["simulate", "--output", str(data), "--seed", "7"])
    assert res.exit_code == 0, res.output
    return data


def test_simulate_and_validate(tmp_path):
    data = _simulate(tmp_path)
    assert len(pd.read_csv(data)) == 300

    res = runner.invoke(app, ["validate-data", str(data)])
    assert res.exit_code == 0, res.output
    assert "validated" in res.output

    res = runner.invoke(app, ["summary", str(data)])
    assert res.exit_code == 0, res.output


def test_cluster_commands(tmp_path):
    data = _simulate(tmp_path)
    km_labels = tmp_path / "km.csv"
    hc_labels = tmp_path / "hc.csv"

    res = runner.invoke(
        app, ["cluster", "kmeans", str(data), "--k", "4", "--labels-out", str(km_labels)]
    )
    assert res.exit_code == 0, res.output
    assert "Adjusted Rand" in res.output

    res = runner.invoke(
        app, ["cluster", "hclust", str(data), "--k", "4", "--labels-out", str(hc_labels)]
    )
    assert res.exit_code == 0, res.output
    assert "Cophenetic" in res.output

    res = runner.invoke(app, ["cluster", "compare", str(km_labels), str(hc_labels)])
    assert res.exit_code == 0, res.output
    assert "Random baseline" in res.output

    res = runner.invoke(app, ["cluster", "hclust", str(data), "--method", "ward"])
    assert res.exit_code != 0


def test_classify_and_predict(tmp_path):
    data = _simulate(tmp_path)
    model = tmp_path / "nb.joblib"
    preds = tmp_path / "preds.csv"

    res = runner.invoke(app, ["classify", "nb", str(data), "--out", str(model)])
    assert res.exit_code == 0, res.output
    assert model.exists()

    res = runner.invoke(
        app, ["classify", "predict", "--model", str(model), "--data", str(data), "--output", str(preds)]
    )
    assert res.exit_code == 0, res.output
    out = pd.read_csv(preds)
    assert "Segment__pred" in out.columns

    res = runner.invoke(
        app,
        ["classify", "rf", str(data), "--target", "subscribe", "--n-trees", "50", "--balanced"],
    )
    assert res.exit_code == 0, res.output
    assert "OOB error" in res.output


def test_bad_cluster_counts_are_usage_errors(tmp_path):
    data = _simulate(tmp_path)

    res = runner.invoke(app, ["cluster", "kmeans", str(data), "--k", "0"])
    assert res.exit_code == 2
    assert "between" in res.output

    res = runner.invoke(app, ["cluster", "mixture", str(data), "--n-components", "0"])
    assert res.exit_code == 2
    assert "between" in res.output
