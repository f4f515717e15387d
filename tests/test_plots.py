import pandas as pd
import pytest

from seg.classify.forest import forest_report, train_random_forest
from seg.cluster.hierarchical import fit_hierarchical
from seg.cluster.kmeans import fit_kmeans
from seg.cluster.mixture import fit_mixture
from seg.core.data import to_numeric_frame
from seg.viz.cluster_plots import (
    save_bic_plot,
    save_cluster_scatter,
    save_dendrogram,
    save_variable_boxplot,
)
from seg.viz.model_plots import save_heatmap, save_importance_plot


def test_cluster_plots(tmp_path, cfg, seg_df):
    hc = fit_hierarchical(seg_df, cfg)
    p = save_dendrogram(hc, out_path=tmp_path / "d" / "dendro.png", cut_height=0.5)
    assert p.exists()
    p = save_dendrogram(hc, out_path=tmp_path / "dendro_trunc.png", truncate_levels=4)
    assert p.exists()

    km = fit_kmeans(seg_df, cfg, k=4, seed=0)
    X = to_numeric_frame(seg_df, cfg)
    assert save_cluster_scatter(X, km.labels, out_path=tmp_path / "scatter.png").exists()
    assert save_variable_boxplot(X["income"], km.labels, out_path=tmp_path / "box.png").exists()

    with pytest.raises(ValueError):
        save_cluster_scatter(X, km.labels[:-1], out_path=tmp_path / "bad.png")

    mix = fit_mixture(seg_df, cfg, max_components=3, covariance_types=("diag",), seed=0)
    assert save_bic_plot(mix.bic_table, out_path=tmp_path / "bic.png").exists()
    with pytest.raises(ValueError):
        save_bic_plot(pd.DataFrame(), out_path=tmp_path / "empty.png")


def test_model_plots(tmp_path, cfg, seg_df):
    model = train_random_forest(seg_df, cfg, n_estimators=50, seed=0)
    rep = forest_report(model, seg_df, n_repeats=2)

    assert save_importance_plot(rep.impurity_importance, out_path=tmp_path / "imp.png").exists()
    assert save_heatmap(rep.class_importance, out_path=tmp_path / "heat.png", title="t").exists()
    assert save_heatmap(
        rep.oob_confusion, out_path=tmp_path / "cm.png", title="cm", fmt=".0f"
    ).exists()

    with pytest.raises(ValueError):
        save_importance_plot(pd.Series(dtype=float), out_path=tmp_path / "none.png")
    with pytest.raises(ValueError):
        save_heatmap(pd.DataFrame(), out_path=tmp_path / "none.png", title="t")
