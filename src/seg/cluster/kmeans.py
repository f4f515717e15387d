from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List

import numpy as np
import pandas as pd
from sklearn.cluster import KMeans
from sklearn.metrics import silhouette_score
from sklearn.preprocessing import StandardScaler

from seg.core.config import SegmentationConfig
from seg.core.data import to_numeric_frame

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KMeansResult:
    k: int
    labels: np.ndarray
    centers: pd.DataFrame
    sizes: pd.Series
    inertia: float


def fit_kmeans(
    df: pd.DataFrame,
    cfg: SegmentationConfig,
    *,
    k: int,
    seed: int = 0,
    n_init: int = 10,
    scale: bool = False,
) -> KMeansResult:
    """K-means on the numeric frame; labels are 1-based.

    With ``scale=True`` the variables are standardised before fitting and
    the reported centers are transformed back to the original units.
    """

    X = to_numeric_frame(df, cfg)
    if not 1 <= k <= len(X):
        raise ValueError(f"k must be between 1 and {len(X)}, got {k}.")

    scaler = StandardScaler() if scale else None
    Xt = scaler.fit_transform(X) if scaler is not None else X.to_numpy()

    km = KMeans(n_clusters=k, n_init=n_init, random_state=seed)
    raw = km.fit_predict(Xt)

    centers = km.cluster_centers_
    if scaler is not None:
        centers = scaler.inverse_transform(centers)

    labels = raw + 1
    centers_df = pd.DataFrame(centers, columns=X.columns, index=pd.RangeIndex(1, k + 1, name="cluster"))
    sizes = pd.Series(labels).value_counts().reindex(range(1, k + 1), fill_value=0)
    sizes.index.name = "cluster"

    logger.info("KMeans k=%d inertia=%.4g", k, km.inertia_)
    return KMeansResult(
        k=k,
        labels=labels,
        centers=centers_df,
        sizes=sizes,
        inertia=float(km.inertia_),
    )


def kmeans_elbow(
    df: pd.DataFrame,
    cfg: SegmentationConfig,
    *,
    k_range: Iterable[int] = range(2, 11),
    seed: int = 0,
    n_init: int = 10,
    scale: bool = False,
) -> pd.DataFrame:
    """Inertia and silhouette for each k, to help choose the number of clusters."""

    X = to_numeric_frame(df, cfg).to_numpy()
    if scale:
        X = StandardScaler().fit_transform(X)

    rows: List[dict] = []
    for k in k_range:
        if k < 2:
            raise ValueError("Silhouette is undefined for k < 2.")
        if k >= len(X):
            raise ValueError(f"k must be below the number of rows ({len(X)}), got {k}.")
        km = KMeans(n_clusters=k, n_init=n_init, random_state=seed)
        labels = km.fit_predict(X)
        s = silhouette_score(X, labels)
        logger.debug("k=%d inertia=%.4g silhouette=%.4f", k, km.inertia_, s)
        rows.append({"k": k, "inertia": float(km.inertia_), "silhouette": float(s)})

    return pd.DataFrame(rows, columns=["k", "inertia", "silhouette"])
