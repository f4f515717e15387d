from pathlib import Path

import numpy as np

from seg.classify.bayes import train_naive_bayes
from seg.classify.metrics import evaluate
from seg.cluster.compare import compare_assignments, segment_summary
from seg.cluster.hierarchical import cut_tree, fit_hierarchical
from seg.cluster.kmeans import fit_kmeans
from seg.core.config import SegmentationConfig
from seg.core.data import split_train_test, validate_dataset
from seg.core.simulate import simulate_segments

ROOT = Path(__file__).resolve().parents[1]


def test_end_to_end_smoke():
    cfg = SegmentationConfig.from_yaml(ROOT / "examples" / "configs" / "consumer_segments.yaml")
    df = simulate_segments(cfg)
    validate_dataset(df, cfg)
    assert len(df) == 300

    # Hierarchical
    hc = fit_hierarchical(df, cfg)
    labels = cut_tree(hc, k=4)
    assert set(np.unique(labels)) <= {1, 2, 3, 4}

    # K-means
    km = fit_kmeans(df, cfg, k=4, seed=cfg.seed)
    summ = segment_summary(df, km.labels, cfg)
    assert "n" in summ.columns
    assert summ["n"].sum() == len(df)

    cmp = compare_assignments(df[cfg.segment_column], km.labels)
    assert -1.0 <= cmp.ari <= 1.0

    # Classification
    split = split_train_test(df, train_fraction=cfg.train_fraction, seed=cfg.seed)
    model = train_naive_bayes(split.train, cfg)
    ev = evaluate(split.test[cfg.segment_column], model.predict(split.test))
    assert ev.accuracy > 0.5
