from __future__ import annotations

import logging
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from .config import SegmentationConfig, VariableType

logger = logging.getLogger(__name__)


def simulate_segments(cfg: SegmentationConfig, *, seed: Optional[int] = None) -> pd.DataFrame:
    """Draw a synthetic consumer dataset with known segment membership.

    Each configured segment contributes ``size`` rows. Numeric variables are
    normal, counts are Poisson, binary variables are Bernoulli on the second
    level. Rows are grouped by segment, in config order.
    """

    if not cfg.simulation.segments:
        raise ValueError("Config has no simulation.segments to draw from.")

    rng = np.random.default_rng(cfg.seed if seed is None else seed)

    frames: List[pd.DataFrame] = []
    for seg in cfg.simulation.segments:
        cols: Dict[str, object] = {}
        for var in cfg.variables:
            p = seg.variables[var.name]
            if var.type == VariableType.numeric:
                cols[var.name] = rng.normal(p.mean, p.sd, size=seg.size)
            elif var.type == VariableType.count:
                cols[var.name] = rng.poisson(p.mean, size=seg.size)
            elif var.type == VariableType.binary:
                assert var.levels is not None
                hits = rng.binomial(1, p.mean, size=seg.size)
                cols[var.name] = np.where(hits == 1, var.levels[1], var.levels[0])
            else:
                raise ValueError(f"Cannot simulate {var.type.value} variable '{var.name}'.")
        cols[cfg.segment_column] = seg.name
        frames.append(pd.DataFrame(cols))

    df = pd.concat(frames, ignore_index=True)
    logger.info(
        "Simulated %d rows across %d segments", len(df), len(cfg.simulation.segments)
    )
    return df
