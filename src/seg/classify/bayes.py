from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np
import pandas as pd
from scipy.special import logsumexp
from sklearn.naive_bayes import CategoricalNB, GaussianNB

from seg.classify.model import TrainedClassifier, predictor_frame_for
from seg.core.config import SegmentationConfig

logger = logging.getLogger(__name__)


class MixedNaiveBayes:
    """Naive Bayes over numeric and categorical predictors together.

    Numeric columns get a GaussianNB, categorical columns a CategoricalNB
    (Laplace smoothing). Their joint log-likelihoods are added and the
    class prior, which both models include, is subtracted once.
    """

    def __init__(self, *, alpha: float = 1.0):
        self.alpha = alpha

    def fit(self, X: pd.DataFrame, y: pd.Series) -> "MixedNaiveBayes":
        self.numeric_cols_: List[str] = [
            c for c in X.columns if not isinstance(X[c].dtype, pd.CategoricalDtype)
        ]
        self.categorical_cols_: List[str] = [
            c for c in X.columns if isinstance(X[c].dtype, pd.CategoricalDtype)
        ]
        self.categories_ = {c: list(X[c].cat.categories) for c in self.categorical_cols_}

        yv = np.asarray(y).astype(str)
        self.classes_ = np.unique(yv)

        self.gnb_: Optional[GaussianNB] = None
        self.cnb_: Optional[CategoricalNB] = None
        if self.numeric_cols_:
            self.gnb_ = GaussianNB().fit(X[self.numeric_cols_].to_numpy(dtype=float), yv)
        if self.categorical_cols_:
            self.cnb_ = CategoricalNB(
                alpha=self.alpha,
                min_categories=[len(self.categories_[c]) for c in self.categorical_cols_],
            ).fit(self._codes(X), yv)

        counts = pd.Series(yv).value_counts().reindex(self.classes_).to_numpy(dtype=float)
        self.class_log_prior_ = np.log(counts / counts.sum())
        return self

    def _codes(self, X: pd.DataFrame) -> np.ndarray:
        cols = []
        for c in self.categorical_cols_:
            codes = pd.Categorical(X[c].astype(str), categories=self.categories_[c]).codes
            if (codes < 0).any():
                raise ValueError(f"Column '{c}' contains levels not seen in training.")
            cols.append(codes)
        return np.column_stack(cols)

    def _joint_log_likelihood(self, X: pd.DataFrame) -> np.ndarray:
        missing = [c for c in self.numeric_cols_ + self.categorical_cols_ if c not in X.columns]
        if missing:
            raise ValueError(f"Prediction data is missing predictor columns: {missing}")

        jll = np.zeros((len(X), len(self.classes_)))
        n_parts = 0
        if self.gnb_ is not None:
            jll += self.gnb_.predict_joint_log_proba(X[self.numeric_cols_].to_numpy(dtype=float))
            n_parts += 1
        if self.cnb_ is not None:
            jll += self.cnb_.predict_joint_log_proba(self._codes(X))
            n_parts += 1
        # each part already carries the prior
        jll -= (n_parts - 1) * self.class_log_prior_
        return jll

    def predict_proba(self, X: pd.DataFrame) -> pd.DataFrame:
        jll = self._joint_log_likelihood(X)
        log_prob = jll - logsumexp(jll, axis=1, keepdims=True)
        return pd.DataFrame(np.exp(log_prob), columns=self.classes_, index=X.index)

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        jll = self._joint_log_likelihood(X)
        return self.classes_[np.argmax(jll, axis=1)]


def train_naive_bayes(
    train_df: pd.DataFrame,
    cfg: SegmentationConfig,
    *,
    target: Optional[str] = None,
    alpha: float = 1.0,
) -> TrainedClassifier:
    """Fit naive Bayes for ``target`` (default: the segment column)."""

    target = target or cfg.segment_column
    X = predictor_frame_for(train_df, cfg, target=target)
    y = train_df[target].astype(str)

    model = MixedNaiveBayes(alpha=alpha).fit(X, y)
    logger.info(
        "Naive Bayes on %d rows: %d numeric, %d categorical predictors",
        len(X),
        len(model.numeric_cols_),
        len(model.categorical_cols_),
    )
    return TrainedClassifier(
        cfg=cfg,
        kind="naive_bayes",
        target=target,
        predictors=list(X.columns),
        estimator=model,
    )
