from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.mixture import GaussianMixture
from sklearn.preprocessing import StandardScaler

from seg.core.config import SegmentationConfig
from seg.core.data import to_numeric_frame

logger = logging.getLogger(__name__)

COVARIANCE_TYPES = ("full", "tied", "diag", "spherical")


@dataclass
class MixtureResult:
    n_components: int
    covariance_type: str
    model: GaussianMixture
    labels: np.ndarray
    probabilities: np.ndarray
    bic: float
    log_likelihood: float
    bic_table: pd.DataFrame

    @property
    def sizes(self) -> pd.Series:
        s = pd.Series(self.labels).value_counts().reindex(
            range(1, self.n_components + 1), fill_value=0
        )
        s.index.name = "cluster"
        return s


def _design(df: pd.DataFrame, cfg: SegmentationConfig, scale: bool) -> np.ndarray:
    X = to_numeric_frame(df, cfg).to_numpy()
    return StandardScaler().fit_transform(X) if scale else X


def _fit_one(X: np.ndarray, k: int, covariance_type: str, seed: int, n_init: int) -> GaussianMixture:
    gm = GaussianMixture(
        n_components=k,
        covariance_type=covariance_type,
        n_init=n_init,
        reg_covar=1e-4,
        random_state=seed,
    )
    return gm.fit(X)


def fit_mixture(
    df: pd.DataFrame,
    cfg: SegmentationConfig,
    *,
    n_components: Optional[int] = None,
    covariance_types: Sequence[str] = COVARIANCE_TYPES,
    max_components: int = 9,
    seed: int = 0,
    n_init: int = 3,
    scale: bool = True,
) -> MixtureResult:
    """Gaussian mixture clustering, choosing the model by BIC.

    When ``n_components`` is None every count in 1..max_components is tried
    with every covariance type; otherwise only the covariance type varies.
    Lower BIC is better. With ``scale=True`` (default) variables are
    standardised first; BIC values are then on the standardised data.
    """

    for ct in covariance_types:
        if ct not in COVARIANCE_TYPES:
            raise ValueError(f"Unknown covariance type: {ct}. Use one of {COVARIANCE_TYPES}")
    if not covariance_types:
        raise ValueError("covariance_types must not be empty.")

    X = _design(df, cfg, scale)
    if n_components is not None:
        if not 1 <= n_components <= len(X):
            raise ValueError(f"n_components must be between 1 and {len(X)}, got {n_components}.")
        ks: Iterable[int] = [n_components]
    else:
        ks = range(1, min(max_components, len(X)) + 1)

    rows: List[dict] = []
    best: Optional[GaussianMixture] = None
    best_bic = np.inf
    best_ct = ""
    for k in ks:
        for ct in covariance_types:
            gm = _fit_one(X, k, ct, seed, n_init)
            bic = float(gm.bic(X))
            rows.append({"n_components": k, "covariance_type": ct, "bic": bic})
            logger.debug("GMM k=%d cov=%s bic=%.2f", k, ct, bic)
            if bic < best_bic:
                best, best_bic, best_ct = gm, bic, ct

    assert best is not None
    bic_table = pd.DataFrame(rows).sort_values("bic").reset_index(drop=True)

    logger.info(
        "GMM selected k=%d cov=%s bic=%.2f", best.n_components, best_ct, best_bic
    )
    return MixtureResult(
        n_components=int(best.n_components),
        covariance_type=best_ct,
        model=best,
        labels=best.predict(X) + 1,
        probabilities=best.predict_proba(X),
        bic=best_bic,
        log_likelihood=float(best.score(X) * len(X)),
        bic_table=bic_table,
    )


def compare_bic(
    df: pd.DataFrame,
    cfg: SegmentationConfig,
    *,
    candidates: Sequence[int],
    covariance_type: str = "full",
    seed: int = 0,
    n_init: int = 3,
    scale: bool = True,
) -> pd.DataFrame:
    """BIC for each candidate component count, best (lowest) first."""

    if covariance_type not in COVARIANCE_TYPES:
        raise ValueError(f"Unknown covariance type: {covariance_type}")
    X = _design(df, cfg, scale)

    rows = []
    for k in candidates:
        if not 1 <= k <= len(X):
            raise ValueError(f"n_components must be between 1 and {len(X)}, got {k}.")
        gm = _fit_one(X, k, covariance_type, seed, n_init)
        rows.append(
            {
                "n_components": int(k),
                "bic": float(gm.bic(X)),
                "aic": float(gm.aic(X)),
                "log_likelihood": float(gm.score(X) * len(X)),
            }
        )
    return pd.DataFrame(rows).sort_values("bic").reset_index(drop=True)
