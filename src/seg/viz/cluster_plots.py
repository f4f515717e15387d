from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from seg.cluster.hierarchical import HierarchicalResult


def _pyplot():
    # Local import so the core package does not hard-require matplotlib at import time.
    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt  # noqa: E402

    return plt


def _save(fig, plt, out_path: str | Path) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(out_path, dpi=200)
    plt.close(fig)
    return out_path


def save_dendrogram(
    result: HierarchicalResult,
    *,
    out_path: str | Path,
    cut_height: Optional[float] = None,
    truncate_levels: Optional[int] = None,
    title: Optional[str] = None,
) -> Path:
    """Save a dendrogram of a hierarchical fit.

    Parameters
    ----------
    result:
        Output of :func:`seg.cluster.hierarchical.fit_hierarchical`.
    out_path:
        Output image path (PNG recommended).
    cut_height:
        If set, draw a horizontal line where the tree would be cut.
    truncate_levels:
        If set, only show the last ``truncate_levels`` merge levels.
    """

    from scipy.cluster.hierarchy import dendrogram

    plt = _pyplot()

    fig, ax = plt.subplots(figsize=(12, 5))
    kwargs = {}
    if truncate_levels is not None:
        kwargs = {"truncate_mode": "level", "p": truncate_levels}
    dendrogram(result.linkage_matrix, ax=ax, no_labels=truncate_levels is None, **kwargs)

    if cut_height is not None:
        ax.axhline(cut_height, linestyle="--", linewidth=1, color="red")

    ax.set_ylabel("height")
    ax.set_title(
        title
        or f"Dendrogram ({result.method} linkage, {result.distance}), "
        f"cophenetic r={result.cophenetic_corr:.3f}"
    )
    return _save(fig, plt, out_path)


def save_cluster_scatter(
    X: pd.DataFrame,
    labels: Sequence,
    *,
    out_path: str | Path,
    title: str = "Clusters on the first two principal components",
) -> Path:
    """Scatter of the first two principal components, coloured by group.

    Variables are standardised first so no single unit dominates.
    """

    from sklearn.decomposition import PCA
    from sklearn.preprocessing import StandardScaler

    plt = _pyplot()

    if len(X) == 0:
        raise ValueError("No rows to plot")
    labels = np.asarray(labels)
    if labels.shape != (len(X),):
        raise ValueError("labels must have one entry per row of X")

    Z = StandardScaler().fit_transform(X.to_numpy(dtype=float))
    n_comp = min(2, Z.shape[1])
    pca = PCA(n_components=n_comp).fit(Z)
    pcs = pca.transform(Z)
    if n_comp == 1:
        pcs = np.column_stack([pcs[:, 0], np.zeros(len(pcs))])

    fig, ax = plt.subplots(figsize=(7.5, 6))
    for g in pd.unique(labels):
        m = labels == g
        ax.scatter(pcs[m, 0], pcs[m, 1], s=14, alpha=0.8, label=str(g))

    var = pca.explained_variance_ratio_
    ax.set_xlabel(f"PC1 ({var[0]:.0%})")
    ax.set_ylabel(f"PC2 ({var[1]:.0%})" if n_comp > 1 else "PC2")
    ax.set_title(title)
    ax.legend(title="group", fontsize=8)
    ax.grid(True, alpha=0.3)
    return _save(fig, plt, out_path)


def save_variable_boxplot(
    values: pd.Series,
    labels: Sequence,
    *,
    out_path: str | Path,
    title: Optional[str] = None,
) -> Path:
    """Boxplot of one variable per group."""

    plt = _pyplot()

    labels = np.asarray(labels)
    v = pd.to_numeric(values, errors="coerce").to_numpy()
    if v.size == 0:
        raise ValueError("No values to plot")

    groups = sorted(pd.unique(labels), key=str)
    data = [v[(labels == g) & np.isfinite(v)] for g in groups]

    fig, ax = plt.subplots(figsize=(7, 4.5))
    ax.boxplot(data)
    ax.set_xticks(range(1, len(groups) + 1))
    ax.set_xticklabels([str(g) for g in groups])
    ax.set_xlabel("group")
    ax.set_ylabel(str(values.name or "value"))
    ax.set_title(title or f"{values.name} by group")
    ax.grid(True, axis="y", alpha=0.3)
    return _save(fig, plt, out_path)


def save_bic_plot(
    bic_table: pd.DataFrame,
    *,
    out_path: str | Path,
    title: str = "Mixture model BIC (lower is better)",
) -> Path:
    """Line per covariance type of BIC against number of components."""

    plt = _pyplot()

    if bic_table.empty:
        raise ValueError("bic_table is empty")

    fig, ax = plt.subplots(figsize=(7, 4.5))
    if "covariance_type" in bic_table.columns:
        for ct, sub in bic_table.groupby("covariance_type"):
            sub = sub.sort_values("n_components")
            ax.plot(sub["n_components"], sub["bic"], marker="o", label=str(ct))
        ax.legend(title="covariance")
    else:
        sub = bic_table.sort_values("n_components")
        ax.plot(sub["n_components"], sub["bic"], marker="o")

    ax.set_xlabel("number of components")
    ax.set_ylabel("BIC")
    ax.set_title(title)
    ax.grid(True, alpha=0.3)
    return _save(fig, plt, out_path)
