from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from .config import SegmentationConfig, VariableType


@dataclass(frozen=True)
class TrainTestSplit:
    train: pd.DataFrame
    test: pd.DataFrame


def load_dataset(path: str | Path) -> pd.DataFrame:
    path = Path(path)
    if path.suffix.lower() in {".csv"}:
        return pd.read_csv(path)
    if path.suffix.lower() in {".parquet"}:
        return pd.read_parquet(path)
    raise ValueError(f"Unsupported dataset format: {path.suffix}. Use .csv or .parquet")


def validate_dataset(df: pd.DataFrame, cfg: SegmentationConfig, *, strict: bool = True) -> None:
    """Validate that configured variables exist and hold sane values.

    With ``strict=False`` only column presence is checked.
    """

    missing: List[str] = [c for c in cfg.variable_names() if c not in df.columns]
    if missing:
        raise ValueError(f"Dataset is missing required columns: {missing}")
    if not strict:
        return

    for var in cfg.variables:
        series = df[var.name]
        if var.is_numeric:
            coerced = pd.to_numeric(series, errors="coerce")
            if coerced.isna().any():
                bad_rows = coerced[coerced.isna()].index[:10].tolist()
                raise ValueError(
                    f"Variable '{var.name}' must be numeric. Example bad rows: {bad_rows}"
                )
            if var.type == VariableType.count and (coerced < 0).any():
                bad_rows = coerced[coerced < 0].index[:10].tolist()
                raise ValueError(
                    f"Count variable '{var.name}' must be non-negative. Example bad rows: {bad_rows}"
                )
        else:
            allowed = set(var.levels or [])
            unknown = sorted(set(series.astype(str).unique()) - allowed)
            if unknown:
                raise ValueError(
                    f"Variable '{var.name}' contains unknown levels: {unknown}. "
                    f"Allowed: {sorted(allowed)}"
                )


def to_numeric_frame(
    df: pd.DataFrame,
    cfg: SegmentationConfig,
    *,
    variables: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Return an all-numeric copy of the configured variables.

    - numeric/count columns are kept as floats
    - binary columns become 0/1 (1 = second configured level)
    - categorical columns become integer codes in level order
    - the segment column is never included
    """

    names = list(variables) if variables is not None else cfg.variable_names()

    out = {}
    for name in names:
        var = cfg.get_variable(name)
        if var.is_numeric:
            out[name] = pd.to_numeric(df[name], errors="coerce").astype(float)
        else:
            codes = pd.Categorical(df[name].astype(str), categories=var.levels).codes
            if (codes < 0).any():
                raise ValueError(f"Variable '{name}' contains values outside {var.levels}.")
            out[name] = codes.astype(float)

    return pd.DataFrame(out, index=df.index)


def to_predictor_frame(df: pd.DataFrame, cfg: SegmentationConfig, *, exclude: Sequence[str] = ()) -> pd.DataFrame:
    """Configured variables with level columns as ordered categoricals, for classifiers."""

    names = [n for n in cfg.variable_names() if n not in set(exclude)]
    out = {}
    for name in names:
        var = cfg.get_variable(name)
        if var.is_numeric:
            out[name] = pd.to_numeric(df[name], errors="coerce").astype(float)
        else:
            out[name] = pd.Categorical(df[name].astype(str), categories=var.levels)
    return pd.DataFrame(out, index=df.index)


def median_split(df: pd.DataFrame, cfg: SegmentationConfig) -> pd.DataFrame:
    """Recode every variable to categories for latent-class analysis.

    Numeric and count variables become "1" below the median and "2" at or
    above it. Level variables are kept as they are.
    """

    out = {}
    for var in cfg.variables:
        if var.is_numeric:
            s = pd.to_numeric(df[var.name], errors="coerce")
            out[var.name] = pd.Categorical(
                np.where(s < s.median(), "1", "2"), categories=["1", "2"]
            )
        else:
            out[var.name] = pd.Categorical(df[var.name].astype(str), categories=var.levels)
    return pd.DataFrame(out, index=df.index)


def split_train_test(
    df: pd.DataFrame,
    *,
    train_fraction: float = 0.65,
    seed: int = 0,
) -> TrainTestSplit:
    if not 0.0 < train_fraction < 1.0:
        raise ValueError("train_fraction must be strictly between 0 and 1.")
    rng = np.random.default_rng(seed)
    n_train = int(round(len(df) * train_fraction))
    if n_train == 0 or n_train == len(df):
        raise ValueError(f"Cannot split {len(df)} rows with train_fraction={train_fraction}.")
    train_idx = np.sort(rng.choice(len(df), size=n_train, replace=False))
    mask = np.zeros(len(df), dtype=bool)
    mask[train_idx] = True
    return TrainTestSplit(
        train=df.loc[mask].reset_index(drop=True),
        test=df.loc[~mask].reset_index(drop=True),
    )


def known_segments(df: pd.DataFrame, cfg: SegmentationConfig) -> pd.Series:
    if cfg.segment_column not in df.columns:
        raise KeyError(f"Dataset has no segment column '{cfg.segment_column}'.")
    return df[cfg.segment_column].astype(str)
