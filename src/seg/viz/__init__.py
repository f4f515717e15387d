"""Visualization utilities.

This package contains lightweight plotting helpers intended for:

- Clustering outputs (dendrograms, component scatter, per-cluster boxplots, BIC curves)
- Classifier diagnostics (variable importance, confusion heatmaps)

All plots are saved to disk so they work in headless CI/CD environments.
"""
