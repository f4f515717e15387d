from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import gower
import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import cophenet, fcluster, linkage
from scipy.spatial.distance import pdist, squareform

from seg.core.config import SegmentationConfig
from seg.core.data import to_numeric_frame

logger = logging.getLogger(__name__)

LINKAGE_METHODS = ("single", "complete", "average", "ward")
DISTANCES = ("gower", "euclidean")


@dataclass(frozen=True)
class HierarchicalResult:
    method: str
    distance: str
    linkage_matrix: np.ndarray
    condensed_distances: np.ndarray
    cophenetic_corr: float
    n_obs: int


def gower_distance(df: pd.DataFrame, cfg: SegmentationConfig) -> np.ndarray:
    """Square Gower dissimilarity matrix over the configured variables.

    Level variables are passed as strings so they are matched exactly,
    numeric variables are range-normalised.
    """

    X = pd.DataFrame(index=df.index)
    cat_mask = []
    for var in cfg.variables:
        if var.is_numeric:
            X[var.name] = pd.to_numeric(df[var.name], errors="coerce").astype(float)
        else:
            X[var.name] = df[var.name].astype(str)
        cat_mask.append(not var.is_numeric)

    D = gower.gower_matrix(X, cat_features=np.array(cat_mask))
    D = np.asarray(D, dtype=float)
    # float32 arithmetic in gower leaves tiny asymmetries
    D = (D + D.T) / 2.0
    np.fill_diagonal(D, 0.0)
    return D


def fit_hierarchical(
    df: pd.DataFrame,
    cfg: SegmentationConfig,
    *,
    method: str = "complete",
    distance: str = "gower",
) -> HierarchicalResult:
    """Agglomerative clustering plus the cophenetic correlation of the tree."""

    if method not in LINKAGE_METHODS:
        raise ValueError(f"Unknown linkage method: {method}. Use one of {LINKAGE_METHODS}")
    if distance not in DISTANCES:
        raise ValueError(f"Unknown distance: {distance}. Use one of {DISTANCES}")
    if method == "ward" and distance != "euclidean":
        raise ValueError("ward linkage requires euclidean distance.")
    if len(df) < 2:
        raise ValueError("Hierarchical clustering needs at least 2 rows.")

    if distance == "gower":
        condensed = squareform(gower_distance(df, cfg), checks=False)
    else:
        condensed = pdist(to_numeric_frame(df, cfg).to_numpy(), metric="euclidean")

    Z = linkage(condensed, method=method)
    coph_corr, _ = cophenet(Z, condensed)

    logger.info(
        "Hierarchical %s/%s linkage on %d rows, cophenetic corr=%.3f",
        method,
        distance,
        len(df),
        coph_corr,
    )
    return HierarchicalResult(
        method=method,
        distance=distance,
        linkage_matrix=Z,
        condensed_distances=condensed,
        cophenetic_corr=float(coph_corr),
        n_obs=len(df),
    )


def cut_tree(
    result: HierarchicalResult,
    *,
    k: Optional[int] = None,
    height: Optional[float] = None,
) -> np.ndarray:
    """Cut the dendrogram into groups; labels are 1-based."""

    if (k is None) == (height is None):
        raise ValueError("Pass exactly one of k or height.")
    if k is not None:
        if not 1 <= k <= result.n_obs:
            raise ValueError(f"k must be between 1 and {result.n_obs}, got {k}.")
        return fcluster(result.linkage_matrix, t=k, criterion="maxclust")
    return fcluster(result.linkage_matrix, t=height, criterion="distance")
