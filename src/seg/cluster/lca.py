from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from stepmix.stepmix import StepMix

from seg.core.config import SegmentationConfig
from seg.core.data import median_split

logger = logging.getLogger(__name__)


@dataclass
class LCAResult:
    n_classes: int
    labels: np.ndarray
    posterior: pd.DataFrame
    sizes: pd.Series
    bic: float
    aic: float
    log_likelihood: float
    response_probs: pd.DataFrame
    model: StepMix


def fit_lca(
    df: pd.DataFrame,
    cfg: SegmentationConfig,
    *,
    n_classes: int,
    seed: int = 0,
    n_init: int = 10,
    max_iter: int = 1000,
) -> LCAResult:
    """Latent class analysis on median-split variables.

    Every variable is made categorical (see ``median_split``) and coded
    0..n_levels-1 before StepMix fits a categorical measurement model.
    """

    if n_classes < 1:
        raise ValueError(f"n_classes must be >= 1, got {n_classes}.")

    cats = median_split(df, cfg)
    codes = pd.DataFrame({c: cats[c].cat.codes for c in cats.columns}, index=cats.index)
    if (codes < 0).any().any():
        raise ValueError("Latent class input contains missing or unknown levels.")

    model = StepMix(
        n_components=n_classes,
        measurement="categorical",
        n_init=n_init,
        max_iter=max_iter,
        random_state=seed,
        verbose=0,
        progress_bar=0,
    )
    model.fit(codes)

    raw = model.predict(codes)
    labels = raw + 1
    post = model.predict_proba(codes)
    class_names = [f"class_{i}" for i in range(1, n_classes + 1)]
    posterior = pd.DataFrame(post, columns=class_names, index=df.index)

    sizes = pd.Series(labels).value_counts().reindex(range(1, n_classes + 1), fill_value=0)
    sizes.index.name = "class"

    bic = float(model.bic(codes))
    aic = float(model.aic(codes))
    ll = float(model.score(codes) * len(codes))

    logger.info("LCA n_classes=%d bic=%.2f", n_classes, bic)
    return LCAResult(
        n_classes=n_classes,
        labels=labels,
        posterior=posterior,
        sizes=sizes,
        bic=bic,
        aic=aic,
        log_likelihood=ll,
        response_probs=response_probabilities(model, cats),
        model=model,
    )


def response_probabilities(model: StepMix, cats: pd.DataFrame) -> pd.DataFrame:
    """Fitted class-conditional probability of each variable level.

    Rows are (variable, level); columns are classes 1..n. Each variable's
    levels sum to 1 within a class.
    """

    pis = np.asarray(model.get_parameters()["measurement"]["pis"])
    n_classes = pis.shape[0]
    n_vars = cats.shape[1]
    # StepMix stores one block of max_n_outcomes columns per variable
    pis = pis.reshape(n_classes, n_vars, pis.shape[1] // n_vars)

    frames = []
    for j, col in enumerate(cats.columns):
        levels = [str(lvl) for lvl in cats[col].cat.categories]
        probs = np.zeros((n_classes, len(levels)))
        m = min(len(levels), pis.shape[2])
        probs[:, :m] = pis[:, j, :m]
        index = pd.MultiIndex.from_product([[col], levels], names=["variable", "level"])
        frames.append(pd.DataFrame(probs.T, index=index, columns=range(1, n_classes + 1)))
    out = pd.concat(frames)
    out.columns.name = "class"
    return out
