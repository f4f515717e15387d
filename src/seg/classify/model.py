from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List

import numpy as np
import pandas as pd
from joblib import dump, load

from seg.core.config import SegmentationConfig
from seg.core.data import to_predictor_frame


def predictor_frame_for(df: pd.DataFrame, cfg: SegmentationConfig, *, target: str) -> pd.DataFrame:
    """Predictors for ``target``: every configured variable except the target itself.

    The segment column is only ever a target, never a predictor.
    """

    if target != cfg.segment_column:
        var = cfg.get_variable(target)
        if var.is_numeric:
            raise ValueError(f"Target '{target}' must be a binary or categorical variable.")
    if target not in df.columns:
        raise ValueError(f"Dataset is missing target column '{target}'.")
    return to_predictor_frame(df, cfg, exclude=[target])


@dataclass
class TrainedClassifier:
    """Serializable container for a fitted segment classifier."""

    cfg: SegmentationConfig
    kind: str
    target: str
    predictors: List[str]
    estimator: Any

    def features(self, df: pd.DataFrame) -> pd.DataFrame:
        missing = [c for c in self.predictors if c not in df.columns]
        if missing:
            raise ValueError(f"Prediction data is missing predictor columns: {missing}")
        X = to_predictor_frame(df, self.cfg, exclude=[self.target])
        return X[self.predictors]

    def predict(self, df: pd.DataFrame) -> np.ndarray:
        return np.asarray(self.estimator.predict(self.features(df)))

    def predict_proba(self, df: pd.DataFrame) -> pd.DataFrame:
        X = self.features(df)
        proba = self.estimator.predict_proba(X)
        if isinstance(proba, pd.DataFrame):
            return proba.reset_index(drop=True)
        return pd.DataFrame(proba, columns=list(self.estimator.classes_))

    def save(self, path: str) -> None:
        dump(self, path)

    @staticmethod
    def load(path: str) -> "TrainedClassifier":
        obj = load(path)
        if not isinstance(obj, TrainedClassifier):
            raise TypeError("Loaded object is not a TrainedClassifier")
        return obj
