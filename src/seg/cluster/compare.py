from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf
from sklearn.metrics import adjusted_rand_score

from seg.core.config import SegmentationConfig
from seg.core.data import to_numeric_frame


@dataclass(frozen=True)
class AssignmentComparison:
    crosstab: pd.DataFrame
    ari: float


def _as_labels(labels: Sequence, n: int) -> np.ndarray:
    arr = np.asarray(labels)
    if arr.shape != (n,):
        raise ValueError(f"labels must have length {n}, got shape {arr.shape}.")
    return arr


def segment_summary(df: pd.DataFrame, labels: Sequence, cfg: SegmentationConfig) -> pd.DataFrame:
    """Mean of each variable per group, plus group size.

    Variables go through the numeric frame, so binary columns read as the
    share of their second level.
    """

    X = to_numeric_frame(df, cfg)
    groups = _as_labels(labels, len(X))
    out = X.groupby(groups).mean()
    out["n"] = pd.Series(groups).value_counts()
    out.index.name = "group"
    return out


def compare_assignments(a: Sequence, b: Sequence) -> AssignmentComparison:
    a = np.asarray(a)
    b = np.asarray(b)
    if a.shape != b.shape:
        raise ValueError(f"Label vectors differ in length: {a.shape} vs {b.shape}.")
    tab = pd.crosstab(pd.Series(a, name="a"), pd.Series(b, name="b"))
    return AssignmentComparison(crosstab=tab, ari=float(adjusted_rand_score(a, b)))


def random_baseline_ari(labels: Sequence, *, seed: int = 0) -> float:
    """ARI between the labels and a random shuffle of them."""

    arr = np.asarray(labels)
    rng = np.random.default_rng(seed)
    return float(adjusted_rand_score(arr, rng.permutation(arr)))


def segment_anova(df: pd.DataFrame, labels: Sequence, cfg: SegmentationConfig) -> pd.DataFrame:
    """One-way ANOVA of every variable across groups."""

    X = to_numeric_frame(df, cfg)
    groups = _as_labels(labels, len(X))

    rows = []
    for col in X.columns:
        model_df = pd.DataFrame({"y": X[col].to_numpy(), "group": groups.astype(str)}).dropna()
        if model_df["y"].nunique() < 2 or model_df["group"].nunique() < 2:
            rows.append({"variable": col, "f_value": np.nan, "p_value": np.nan})
            continue
        fit = smf.ols("y ~ C(group)", data=model_df).fit()
        anova = sm.stats.anova_lm(fit, typ=2)
        rows.append(
            {
                "variable": col,
                "f_value": float(anova.loc["C(group)", "F"]),
                "p_value": float(anova.loc["C(group)", "PR(>F)"]),
            }
        )
    return pd.DataFrame(rows).sort_values("f_value", ascending=False, na_position="last").reset_index(drop=True)
