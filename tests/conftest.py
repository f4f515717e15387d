import pytest

from seg.core.config import SegmentationConfig
from seg.core.simulate import simulate_segments


@pytest.fixture(scope="session")
def cfg() -> SegmentationConfig:
    return SegmentationConfig.default()

@pytest.fixture(scope="session")
def seg_df(cfg):
    return simulate_segments(cfg, seed=98250)
