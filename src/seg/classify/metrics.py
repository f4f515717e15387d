from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.metrics import accuracy_score, adjusted_rand_score, cohen_kappa_score


@dataclass(frozen=True)
class ClassificationSummary:
    confusion: pd.DataFrame
    accuracy: float
    kappa: float
    ari: float
    recall: pd.Series


def confusion_table(
    y_true: Sequence,
    y_pred: Sequence,
    *,
    labels: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Counts with actual classes as rows and predicted classes as columns."""

    t = pd.Series(np.asarray(y_true).astype(str), name="actual")
    p = pd.Series(np.asarray(y_pred).astype(str), name="predicted")
    if labels is None:
        labels = sorted(set(t) | set(p))
    tab = pd.crosstab(t, p)
    return tab.reindex(index=list(labels), columns=list(labels), fill_value=0)


def evaluate(
    y_true: Sequence,
    y_pred: Sequence,
    *,
    labels: Optional[Sequence[str]] = None,
) -> ClassificationSummary:
    t = np.asarray(y_true).astype(str)
    p = np.asarray(y_pred).astype(str)
    if t.shape != p.shape:
        raise ValueError(f"y_true and y_pred differ in length: {t.shape} vs {p.shape}.")
    if t.size == 0:
        raise ValueError("Cannot evaluate empty predictions.")

    cm = confusion_table(t, p, labels=labels)
    row_totals = cm.sum(axis=1)
    diag = pd.Series(np.diag(cm.to_numpy()), index=cm.index)
    recall = (diag / row_totals.replace(0, np.nan)).rename("recall")

    return ClassificationSummary(
        confusion=cm,
        accuracy=float(accuracy_score(t, p)),
        kappa=float(cohen_kappa_score(t, p)),
        ari=float(adjusted_rand_score(t, p)),
        recall=recall,
    )
