from __future__ import annotations

from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd


def save_importance_plot(
    importance: pd.Series,
    *,
    out_path: str | Path,
    title: str = "Variable importance",
    xlabel: Optional[str] = None,
) -> Path:
    """Save a horizontal bar chart of variable importance.

    Parameters
    ----------
    importance:
        One value per variable, e.g. ``ForestReport.impurity_importance``
        or the ``mean_decrease_accuracy`` column of
        ``ForestReport.permutation_importance``.
    out_path:
        Output image path.
    """

    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt  # noqa: E402

    s = pd.to_numeric(importance, errors="coerce").dropna()
    if s.empty:
        raise ValueError("importance is empty")

    # largest at top
    s = s.sort_values(ascending=True)

    fig_h = max(3.5, 0.35 * len(s) + 1.0)
    fig, ax = plt.subplots(figsize=(8, fig_h))
    ax.barh([str(i) for i in s.index], s.to_numpy())
    ax.set_xlabel(xlabel or str(importance.name or "importance"))
    ax.set_ylabel("variable")
    ax.set_title(title)

    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(out_path, dpi=200)
    plt.close(fig)
    return out_path


def save_heatmap(
    table: pd.DataFrame,
    *,
    out_path: str | Path,
    title: str,
    fmt: str = ".2f",
    xlabel: str = "",
    ylabel: str = "",
) -> Path:
    """Annotated heatmap of a numeric table.

    Used for per-class importance (variables x classes) and for confusion
    tables (actual x predicted).
    """

    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt  # noqa: E402

    if table.empty:
        raise ValueError("table is empty")

    values = table.to_numpy(dtype=float)

    fig, ax = plt.subplots(figsize=(1.4 * table.shape[1] + 3, 0.6 * table.shape[0] + 2))
    im = ax.imshow(values, cmap="viridis", aspect="auto")
    fig.colorbar(im, ax=ax)

    ax.set_xticks(range(table.shape[1]))
    ax.set_xticklabels([str(c) for c in table.columns], rotation=30, ha="right")
    ax.set_yticks(range(table.shape[0]))
    ax.set_yticklabels([str(i) for i in table.index])
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    ax.set_title(title)

    finite = values[np.isfinite(values)]
    mid = float(finite.mean()) if finite.size else 0.0
    for i in range(values.shape[0]):
        for j in range(values.shape[1]):
            v = values[i, j]
            if np.isfinite(v):
                ax.text(
                    j,
                    i,
                    format(v, fmt),
                    ha="center",
                    va="center",
                    fontsize=8,
                    color="white" if v < mid else "black",
                )

    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(out_path, dpi=200)
    plt.close(fig)
    return out_path
