from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import RandomForestClassifier
from sklearn.inspection import permutation_importance
from sklearn.metrics import make_scorer, recall_score
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder

from seg.classify.metrics import confusion_table
from seg.classify.model import TrainedClassifier, predictor_frame_for
from seg.core.config import SegmentationConfig

logger = logging.getLogger(__name__)


@dataclass
class ForestReport:
    oob_error: float
    oob_confusion: pd.DataFrame
    impurity_importance: pd.Series
    permutation_importance: pd.DataFrame
    class_importance: pd.DataFrame


def make_preprocessor(X: pd.DataFrame) -> ColumnTransformer:
    numeric_cols = [c for c in X.columns if not isinstance(X[c].dtype, pd.CategoricalDtype)]
    categorical_cols = [c for c in X.columns if isinstance(X[c].dtype, pd.CategoricalDtype)]

    cat_pipe = OneHotEncoder(
        categories=[list(X[c].cat.categories) for c in categorical_cols],
        handle_unknown="ignore",
        sparse_output=False,
    )
    return ColumnTransformer(
        transformers=[
            ("num", "passthrough", numeric_cols),
            ("cat", cat_pipe, categorical_cols),
        ],
        remainder="drop",
        verbose_feature_names_out=False,
    )


def _source_columns(X: pd.DataFrame) -> List[str]:
    """Original variable for every transformed column, in transform order."""

    numeric_cols = [c for c in X.columns if not isinstance(X[c].dtype, pd.CategoricalDtype)]
    categorical_cols = [c for c in X.columns if isinstance(X[c].dtype, pd.CategoricalDtype)]
    out = list(numeric_cols)
    for c in categorical_cols:
        out.extend([c] * len(X[c].cat.categories))
    return out


def train_random_forest(
    train_df: pd.DataFrame,
    cfg: SegmentationConfig,
    *,
    target: Optional[str] = None,
    n_estimators: int = 3000,
    balanced: bool = False,
    seed: int = 0,
    n_jobs: Optional[int] = None,
) -> TrainedClassifier:
    """Random forest for ``target`` (default: the segment column).

    ``balanced=True`` reweights every bootstrap sample to equal class mass,
    which matters for rare targets such as subscription.
    """

    target = target or cfg.segment_column
    X = predictor_frame_for(train_df, cfg, target=target)
    y = train_df[target].astype(str).to_numpy()
    if len(np.unique(y)) < 2:
        raise ValueError(f"Target '{target}' has a single class in the training data.")

    rf = RandomForestClassifier(
        n_estimators=n_estimators,
        oob_score=True,
        class_weight="balanced_subsample" if balanced else None,
        random_state=seed,
        n_jobs=n_jobs,
    )
    pipe = Pipeline(steps=[("pre", make_preprocessor(X)), ("rf", rf)])
    pipe.fit(X, y)

    logger.info(
        "Random forest for %s: %d trees, OOB error %.3f",
        target,
        n_estimators,
        1.0 - rf.oob_score_,
    )
    return TrainedClassifier(
        cfg=cfg,
        kind="random_forest",
        target=target,
        predictors=list(X.columns),
        estimator=pipe,
    )


def forest_report(
    model: TrainedClassifier,
    df: pd.DataFrame,
    *,
    n_repeats: int = 10,
    seed: int = 0,
) -> ForestReport:
    """OOB performance and variable importance of a fitted forest.

    ``df`` should be the training data: the OOB figures refer to it.
    Permutation importance is the mean drop in accuracy (and in each class's
    recall) when one original variable is shuffled.
    """

    if model.kind != "random_forest":
        raise ValueError(f"forest_report needs a random_forest model, got {model.kind}.")

    pipe: Pipeline = model.estimator
    rf: RandomForestClassifier = pipe.named_steps["rf"]
    X = model.features(df)
    y = df[model.target].astype(str).to_numpy()

    classes = [str(c) for c in rf.classes_]
    # rows that no tree left out have no OOB vote
    oob = np.nan_to_num(rf.oob_decision_function_, nan=0.0)
    seen = oob.sum(axis=1) > 0
    if not seen.all():
        logger.warning(
            "%d rows were never out-of-bag; left out of the OOB confusion", int((~seen).sum())
        )
    oob_pred = rf.classes_[np.argmax(oob[seen], axis=1)]
    oob_confusion = confusion_table(y[seen], oob_pred, labels=classes)

    sources = _source_columns(X)
    impurity = (
        pd.Series(rf.feature_importances_, index=sources)
        .groupby(level=0)
        .sum()
        .reindex(list(X.columns))
        .sort_values(ascending=False)
        .rename("mean_decrease_impurity")
    )

    scoring: Dict[str, object] = {"accuracy": "accuracy"}
    for c in classes:
        scoring[c] = make_scorer(recall_score, labels=[c], average="macro", zero_division=0)

    perm = permutation_importance(
        pipe, X, y, scoring=scoring, n_repeats=n_repeats, random_state=seed
    )
    perm_df = pd.DataFrame(
        {
            "mean_decrease_accuracy": perm["accuracy"].importances_mean,
            "std": perm["accuracy"].importances_std,
        },
        index=list(X.columns),
    ).sort_values("mean_decrease_accuracy", ascending=False)
    perm_df.index.name = "variable"

    class_imp = pd.DataFrame(
        {c: perm[c].importances_mean for c in classes},
        index=list(X.columns),
    )
    class_imp.index.name = "variable"

    return ForestReport(
        oob_error=float(1.0 - rf.oob_score_),
        oob_confusion=oob_confusion,
        impurity_importance=impurity,
        permutation_importance=perm_df,
        class_importance=class_imp,
    )
