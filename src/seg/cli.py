from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from seg.classify.bayes import train_naive_bayes
from seg.classify.forest import forest_report, train_random_forest
from seg.classify.metrics import ClassificationSummary, evaluate
from seg.classify.model import TrainedClassifier
from seg.cluster.compare import (
    compare_assignments,
    random_baseline_ari,
    segment_anova,
    segment_summary,
)
from seg.cluster.hierarchical import cut_tree, fit_hierarchical
from seg.cluster.kmeans import fit_kmeans, kmeans_elbow
from seg.cluster.lca import fit_lca
from seg.cluster.mixture import fit_mixture
from seg.core.config import SegmentationConfig
from seg.core.data import (
    known_segments,
    load_dataset,
    split_train_test,
    to_numeric_frame,
    validate_dataset,
)
from seg.core.simulate import simulate_segments
from seg.viz.cluster_plots import (
    save_bic_plot,
    save_cluster_scatter,
    save_dendrogram,
    save_variable_boxplot,
)
from seg.viz.model_plots import save_heatmap, save_importance_plot


app = typer.Typer(add_completion=False, help="Customer segmentation CLI")
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    logger = logging.getLogger("seg")
    logger.handlers.clear()
    logger.addHandler(RichHandler(console=Console(stderr=True), show_path=False))
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False


def _load_cfg(config: Optional[str]) -> SegmentationConfig:
    if config is None:
        return SegmentationConfig.default()
    return SegmentationConfig.from_yaml(config)


def _load_data(data: str, cfg: SegmentationConfig) -> pd.DataFrame:
    df = load_dataset(data)
    try:
        validate_dataset(df, cfg, strict=True)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    return df


def _print_dataframe(df: pd.DataFrame, title: str, max_rows: int = 20, index: bool = True) -> None:
    tbl = Table(title=title, show_lines=False)
    if index:
        tbl.add_column(str(df.index.name or ""))
    for c in df.columns:
        tbl.add_column(str(c))
    for idx, row in df.head(max_rows).iterrows():
        cells = [_fmt(row[c]) for c in df.columns]
        if index:
            cells.insert(0, str(idx))
        tbl.add_row(*cells)
    console.print(tbl)
    if len(df) > max_rows:
        console.print(f"(showing first {max_rows} of {len(df)} rows)")


def _fmt(v) -> str:
    if isinstance(v, (float, np.floating)):
        return f"{v:.4g}"
    return str(v)


def _write_labels(labels: np.ndarray, out: Optional[str]) -> None:
    if out:
        Path(out).parent.mkdir(parents=True, exist_ok=True)
        pd.DataFrame({"cluster": labels}).to_csv(out, index=False)
        console.print(f"Wrote labels to {out}")


def _report_groups(df: pd.DataFrame, labels: np.ndarray, cfg: SegmentationConfig, title: str) -> None:
    _print_dataframe(segment_summary(df, labels, cfg), title=title)
    if cfg.segment_column in df.columns:
        cmp = compare_assignments(known_segments(df, cfg), labels)
        _print_dataframe(cmp.crosstab, title="Known segment (rows) vs group (columns)")
        console.print(f"Adjusted Rand index vs known segments: {cmp.ari:.3f}")


@app.command("simulate")
def simulate(
    output: str = typer.Option("segments.csv", "--output"),
    config: Optional[str] = typer.Option(None, "--config", help="Project YAML (default: built-in)"),
    seed: Optional[int] = typer.Option(None, "--seed"),
):
    cfg = _load_cfg(config)
    df = simulate_segments(cfg, seed=seed)
    Path(output).parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output, index=False)
    console.print(f"Wrote {len(df)} rows to {output}")


@app.command("validate-data")
def validate_data(
    data: str = typer.Argument(..., help="Dataset CSV or Parquet"),
    config: Optional[str] = typer.Option(None, "--config"),
    strict: bool = typer.Option(True, "--strict/--no-strict", help="Fail on unknown levels / non-numeric"),
):
    cfg = _load_cfg(config)
    df = load_dataset(data)
    validate_dataset(df, cfg, strict=strict)
    console.print("Data validated successfully.")


@app.command("summary")
def summary(
    data: str = typer.Argument(...),
    config: Optional[str] = typer.Option(None, "--config"),
):
    """Profile the known segments: means per segment and one-way ANOVA."""

    cfg = _load_cfg(config)
    df = _load_data(data, cfg)
    try:
        segments = known_segments(df, cfg)
    except KeyError as e:
        raise typer.BadParameter(str(e)) from e

    _print_dataframe(segment_summary(df, segments, cfg), title="Segment profile")
    _print_dataframe(segment_anova(df, segments, cfg), title="One-way ANOVA by segment", index=False)


cluster_app = typer.Typer(help="Clustering")
app.add_typer(cluster_app, name="cluster")


@cluster_app.command("hclust")
def cluster_hclust(
    data: str = typer.Argument(...),
    config: Optional[str] = typer.Option(None, "--config"),
    method: str = typer.Option("complete", "--method", help="single, complete, average or ward"),
    distance: str = typer.Option("gower", "--distance", help="gower or euclidean"),
    k: Optional[int] = typer.Option(None, "--k", help="Number of groups to cut"),
    height: Optional[float] = typer.Option(None, "--height", help="Cut height instead of k"),
    labels_out: Optional[str] = typer.Option(None, "--labels-out"),
):
    cfg = _load_cfg(config)
    df = _load_data(data, cfg)

    try:
        res = fit_hierarchical(df, cfg, method=method, distance=distance)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    console.print(f"Cophenetic correlation: {res.cophenetic_corr:.3f}")

    if k is None and height is None:
        return
    try:
        labels = cut_tree(res, k=k, height=height)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e

    _report_groups(df, labels, cfg, title=f"Hierarchical ({method}) group profile")
    _write_labels(labels, labels_out)


@cluster_app.command("kmeans")
def cluster_kmeans(
    data: str = typer.Argument(...),
    config: Optional[str] = typer.Option(None, "--config"),
    k: int = typer.Option(4, "--k"),
    seed: Optional[int] = typer.Option(None, "--seed"),
    n_init: int = typer.Option(10, "--n-init"),
    scale: bool = typer.Option(False, "--scale/--no-scale", help="Standardise variables first"),
    labels_out: Optional[str] = typer.Option(None, "--labels-out"),
):
    cfg = _load_cfg(config)
    df = _load_data(data, cfg)

    try:
        res = fit_kmeans(
            df, cfg, k=k, seed=cfg.seed if seed is None else seed, n_init=n_init, scale=scale
        )
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    console.print(f"Within-cluster sum of squares: {res.inertia:.4g}")
    _report_groups(df, res.labels, cfg, title=f"K-means (k={k}) group profile")
    _write_labels(res.labels, labels_out)


@cluster_app.command("elbow")
def cluster_elbow(
    data: str = typer.Argument(...),
    config: Optional[str] = typer.Option(None, "--config"),
    min_k: int = typer.Option(2, "--min-k"),
    max_k: int = typer.Option(10, "--max-k"),
    scale: bool = typer.Option(False, "--scale/--no-scale"),
):
    cfg = _load_cfg(config)
    df = _load_data(data, cfg)
    try:
        tbl = kmeans_elbow(df, cfg, k_range=range(min_k, max_k + 1), seed=cfg.seed, scale=scale)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    _print_dataframe(tbl, title="K-means inertia and silhouette", index=False)


@cluster_app.command("mixture")
def cluster_mixture(
    data: str = typer.Argument(...),
    config: Optional[str] = typer.Option(None, "--config"),
    n_components: Optional[int] = typer.Option(None, "--n-components", help="Default: choose by BIC"),
    max_components: int = typer.Option(9, "--max-components"),
    seed: Optional[int] = typer.Option(None, "--seed"),
    labels_out: Optional[str] = typer.Option(None, "--labels-out"),
):
    cfg = _load_cfg(config)
    df = _load_data(data, cfg)

    try:
        res = fit_mixture(
            df,
            cfg,
            n_components=n_components,
            max_components=max_components,
            seed=cfg.seed if seed is None else seed,
        )
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    console.print(
        f"Selected {res.n_components} components ({res.covariance_type}), "
        f"BIC={res.bic:.2f}, log-likelihood={res.log_likelihood:.2f}"
    )
    _print_dataframe(res.bic_table, title="BIC by model (lower is better)", max_rows=10, index=False)
    _report_groups(df, res.labels, cfg, title="Mixture group profile")
    _write_labels(res.labels, labels_out)


@cluster_app.command("lca")
def cluster_lca(
    data: str = typer.Argument(...),
    config: Optional[str] = typer.Option(None, "--config"),
    n_classes: int = typer.Option(3, "--n-classes"),
    seed: Optional[int] = typer.Option(None, "--seed"),
    labels_out: Optional[str] = typer.Option(None, "--labels-out"),
):
    cfg = _load_cfg(config)
    df = _load_data(data, cfg)

    try:
        res = fit_lca(df, cfg, n_classes=n_classes, seed=cfg.seed if seed is None else seed)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    console.print(f"BIC={res.bic:.2f}  AIC={res.aic:.2f}  log-likelihood={res.log_likelihood:.2f}")
    _print_dataframe(res.response_probs, title="Response probabilities by class", max_rows=50)
    _report_groups(df, res.labels, cfg, title=f"Latent class (n={n_classes}) profile")
    _write_labels(res.labels, labels_out)


@cluster_app.command("compare")
def cluster_compare(
    a: str = typer.Argument(..., help="Labels CSV"),
    b: str = typer.Argument(..., help="Labels CSV"),
    column: str = typer.Option("cluster", "--column"),
    seed: int = typer.Option(0, "--seed"),
):
    """Cross-tabulate two label files and report their adjusted Rand index."""

    la = pd.read_csv(a)
    lb = pd.read_csv(b)
    for path, frame in ((a, la), (b, lb)):
        if column not in frame.columns:
            raise typer.BadParameter(f"{path} has no column '{column}'")

    try:
        cmp = compare_assignments(la[column].to_numpy(), lb[column].to_numpy())
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    _print_dataframe(cmp.crosstab, title=f"{Path(a).name} (rows) vs {Path(b).name} (columns)")
    console.print(f"Adjusted Rand index: {cmp.ari:.3f}")
    console.print(f"Random baseline ARI: {random_baseline_ari(la[column].to_numpy(), seed=seed):.3f}")


classify_app = typer.Typer(help="Classification")
app.add_typer(classify_app, name="classify")


def _print_evaluation(ev: ClassificationSummary, title: str) -> None:
    _print_dataframe(ev.confusion, title=f"{title}: actual (rows) vs predicted (columns)")
    console.print(
        f"accuracy={ev.accuracy:.3f}  kappa={ev.kappa:.3f}  adjusted Rand={ev.ari:.3f}"
    )
    _print_dataframe(ev.recall.to_frame(), title="Recall by class")


@classify_app.command("nb")
def classify_nb(
    data: str = typer.Argument(...),
    config: Optional[str] = typer.Option(None, "--config"),
    target: Optional[str] = typer.Option(None, "--target", help="Default: segment column"),
    seed: Optional[int] = typer.Option(None, "--seed"),
    out: Optional[str] = typer.Option(None, "--out", help="Save model (joblib)"),
):
    cfg = _load_cfg(config)
    df = _load_data(data, cfg)
    split = split_train_test(df, train_fraction=cfg.train_fraction, seed=cfg.seed if seed is None else seed)

    try:
        model = train_naive_bayes(split.train, cfg, target=target)
    except (KeyError, ValueError) as e:
        raise typer.BadParameter(str(e)) from e

    pred = model.predict(split.test)
    _print_evaluation(evaluate(split.test[model.target], pred), title="Naive Bayes holdout")
    if model.target == cfg.segment_column:
        _print_dataframe(
            segment_summary(split.test, pred, cfg), title="Holdout profile by predicted segment"
        )
    if out:
        model.save(out)
        console.print(f"Saved model to {out}")


@classify_app.command("rf")
def classify_rf(
    data: str = typer.Argument(...),
    config: Optional[str] = typer.Option(None, "--config"),
    target: Optional[str] = typer.Option(None, "--target", help="Default: segment column"),
    n_trees: int = typer.Option(3000, "--n-trees"),
    balanced: bool = typer.Option(False, "--balanced/--no-balanced", help="Balanced bootstrap samples"),
    seed: Optional[int] = typer.Option(None, "--seed"),
    out: Optional[str] = typer.Option(None, "--out", help="Save model (joblib)"),
    plot_dir: Optional[str] = typer.Option(None, "--plot-dir", help="Write importance plots here"),
):
    cfg = _load_cfg(config)
    df = _load_data(data, cfg)
    seed = cfg.seed if seed is None else seed
    split = split_train_test(df, train_fraction=cfg.train_fraction, seed=seed)

    try:
        model = train_random_forest(
            split.train, cfg, target=target, n_estimators=n_trees, balanced=balanced, seed=seed
        )
    except (KeyError, ValueError) as e:
        raise typer.BadParameter(str(e)) from e

    rep = forest_report(model, split.train, seed=seed)
    console.print(f"OOB error: {rep.oob_error:.3f}")
    _print_dataframe(rep.oob_confusion, title="OOB: actual (rows) vs predicted (columns)")
    _print_dataframe(rep.permutation_importance, title="Permutation importance")
    _print_dataframe(rep.impurity_importance.to_frame(), title="Impurity importance")

    pred = model.predict(split.test)
    _print_evaluation(evaluate(split.test[model.target], pred), title="Random forest holdout")

    if plot_dir:
        p1 = save_importance_plot(
            rep.permutation_importance["mean_decrease_accuracy"],
            out_path=Path(plot_dir) / f"importance_{model.target}.png",
            title=f"Permutation importance: {model.target}",
        )
        p2 = save_heatmap(
            rep.class_importance,
            out_path=Path(plot_dir) / f"class_importance_{model.target}.png",
            title="Importance by class",
            xlabel="class",
            ylabel="variable",
        )
        console.print(f"Wrote: {p1}")
        console.print(f"Wrote: {p2}")

    if out:
        model.save(out)
        console.print(f"Saved model to {out}")


@classify_app.command("predict")
def classify_predict(
    model: str = typer.Option(..., "--model"),
    data: str = typer.Option(..., "--data", help="CSV/Parquet containing predictor columns"),
    output: Optional[str] = typer.Option(None, "--output", help="If set, write predictions CSV"),
):
    clf = TrainedClassifier.load(model)
    df = load_dataset(data)

    try:
        pred = clf.predict(df)
        proba = clf.predict_proba(df)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e

    out_df = pd.concat(
        [
            df.reset_index(drop=True),
            pd.Series(pred, name=f"{clf.target}__pred"),
            proba.add_prefix(f"{clf.target}__p_"),
        ],
        axis=1,
    )
    _print_dataframe(out_df, title="Predictions", max_rows=25, index=False)

    if output:
        out_df.to_csv(output, index=False)
        console.print(f"Wrote predictions to {output}")


plot_app = typer.Typer(help="Plotting helpers (saves .png files)")
app.add_typer(plot_app, name="plot")


@plot_app.command("dendrogram")
def plot_dendrogram(
    data: str = typer.Argument(...),
    config: Optional[str] = typer.Option(None, "--config"),
    method: str = typer.Option("complete", "--method"),
    distance: str = typer.Option("gower", "--distance"),
    cut_height: Optional[float] = typer.Option(None, "--cut-height"),
    truncate_levels: Optional[int] = typer.Option(None, "--truncate-levels"),
    out_dir: str = typer.Option("plots", "--out-dir"),
):
    cfg = _load_cfg(config)
    df = _load_data(data, cfg)
    try:
        res = fit_hierarchical(df, cfg, method=method, distance=distance)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    path = save_dendrogram(
        res,
        out_path=Path(out_dir) / f"dendrogram_{method}_{distance}.png",
        cut_height=cut_height,
        truncate_levels=truncate_levels,
    )
    console.print(f"Wrote: {path}")


@plot_app.command("clusters")
def plot_clusters(
    data: str = typer.Argument(...),
    labels: Optional[str] = typer.Option(None, "--labels", help="Labels CSV; default: known segments"),
    column: str = typer.Option("cluster", "--column"),
    config: Optional[str] = typer.Option(None, "--config"),
    variable: Optional[str] = typer.Option(None, "--variable", help="Also write a boxplot of this variable"),
    out_dir: str = typer.Option("plots", "--out-dir"),
):
    """Principal-component scatter of the groups (and optional boxplot)."""

    cfg = _load_cfg(config)
    df = _load_data(data, cfg)

    if labels is None:
        try:
            groups = known_segments(df, cfg).to_numpy()
        except KeyError as e:
            raise typer.BadParameter(str(e)) from e
        stem = "segments"
    else:
        lab_df = pd.read_csv(labels)
        if column not in lab_df.columns:
            raise typer.BadParameter(f"{labels} has no column '{column}'")
        groups = lab_df[column].to_numpy()
        if len(groups) != len(df):
            raise typer.BadParameter(f"{labels} has {len(groups)} rows, data has {len(df)}")
        stem = Path(labels).stem

    out_dir_p = Path(out_dir)
    path = save_cluster_scatter(
        to_numeric_frame(df, cfg), groups, out_path=out_dir_p / f"scatter_{stem}.png"
    )
    console.print(f"Wrote: {path}")

    if variable:
        try:
            cfg.get_variable(variable)
        except KeyError as e:
            raise typer.BadParameter(str(e)) from e
        path = save_variable_boxplot(
            to_numeric_frame(df, cfg)[variable],
            groups,
            out_path=out_dir_p / f"box_{variable}_{stem}.png",
        )
        console.print(f"Wrote: {path}")


@plot_app.command("bic")
def plot_bic(
    data: str = typer.Argument(...),
    config: Optional[str] = typer.Option(None, "--config"),
    max_components: int = typer.Option(9, "--max-components"),
    out_dir: str = typer.Option("plots", "--out-dir"),
):
    cfg = _load_cfg(config)
    df = _load_data(data, cfg)
    try:
        res = fit_mixture(df, cfg, max_components=max_components, seed=cfg.seed)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    path = save_bic_plot(res.bic_table, out_path=Path(out_dir) / "mixture_bic.png")
    console.print(f"Wrote: {path}")


@plot_app.command("importance")
def plot_importance(
    model: str = typer.Option(..., "--model"),
    data: str = typer.Option(..., "--data", help="Training data the forest was fitted on"),
    out_dir: str = typer.Option("plots", "--out-dir"),
    n_repeats: int = typer.Option(10, "--n-repeats"),
):
    """Variable importance plots for a saved random forest."""

    clf = TrainedClassifier.load(model)
    df = load_dataset(data)
    try:
        rep = forest_report(clf, df, n_repeats=n_repeats)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e

    out_dir_p = Path(out_dir)
    paths = [
        save_importance_plot(
            rep.permutation_importance["mean_decrease_accuracy"],
            out_path=out_dir_p / f"importance_accuracy_{clf.target}.png",
            title=f"Mean decrease in accuracy: {clf.target}",
        ),
        save_importance_plot(
            rep.impurity_importance,
            out_path=out_dir_p / f"importance_impurity_{clf.target}.png",
            title=f"Mean decrease in impurity: {clf.target}",
        ),
        save_heatmap(
            rep.class_importance,
            out_path=out_dir_p / f"class_importance_{clf.target}.png",
            title="Importance by class",
            xlabel="class",
            ylabel="variable",
        ),
        save_heatmap(
            rep.oob_confusion,
            out_path=out_dir_p / f"oob_confusion_{clf.target}.png",
            title="OOB confusion",
            fmt=".0f",
            xlabel="predicted",
            ylabel="actual",
        ),
    ]
    for p in paths:
        console.print(f"Wrote: {p}")
