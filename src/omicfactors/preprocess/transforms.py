"""Sample alignment, feature filtering and view concatenation."""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from omicfactors.config import AnalysisConfig
from omicfactors.data_models import PreparedData

logger = logging.getLogger(__name__)


def align_samples(
    views: dict[str, pd.DataFrame],
    metadata: pd.DataFrame | None = None,
) -> tuple[dict[str, pd.DataFrame], pd.DataFrame | None]:
    """Restrict every view (and metadata) to the samples they all share.

    Sample order follows the first view.
    """
    if len(views) == 0:
        raise ValueError("At least one view is required.")

    first = next(iter(views.values()))
    common = set(first.index)
    for df in views.values():
        common &= set(df.index)
    if metadata is not None:
        common &= set(metadata.index)

    order = [s for s in first.index if s in common]
    if len(order) == 0:
        raise ValueError("No samples are shared by all views and metadata.")

    for name, df in views.items():
        dropped = df.shape[0] - len(order)
        if dropped > 0:
            logger.info("View %s: dropping %d unshared samples", name, dropped)
    if metadata is not None and metadata.shape[0] > len(order):
        logger.info("Metadata: dropping %d samples missing from the views", metadata.shape[0] - len(order))

    aligned = {name: df.loc[order].copy() for name, df in views.items()}
    meta = metadata.loc[order].copy() if metadata is not None else None
    return aligned, meta


def filter_top_variable(X: pd.DataFrame, k: int) -> pd.DataFrame:
    """Keep the ``k`` highest-variance columns; zero-variance columns are always dropped."""
    var = X.var(axis=0, ddof=1).fillna(0.0)
    var = var[var > 0.0]
    if k > 0 and k < len(var):
        var = var.sort_values(ascending=False, kind="mergesort").iloc[:k]
    keep = [c for c in X.columns if c in var.index]
    return X.loc[:, keep].copy()


def standardize(X: pd.DataFrame) -> tuple[pd.DataFrame, pd.Series, pd.Series]:
    """Z-score columns, returning standardized data, mean, and std."""
    mean = X.mean(axis=0)
    std = X.std(axis=0).replace(0.0, 1.0).fillna(1.0)
    return (X - mean) / std, mean, std


def concat_views(
    views: dict[str, pd.DataFrame],
    block_scale: bool = True,
) -> tuple[pd.DataFrame, pd.Series]:
    """Join views column-wise with ``"<view>:<feature>"`` keys.

    With ``block_scale`` each view block is divided by ``sqrt(n_features)`` so
    every view contributes the same total variance.
    """
    blocks = []
    types: dict[str, str] = {}
    for name, df in views.items():
        block = df.copy()
        block.columns = [f"{name}:{c}" for c in df.columns]
        if block_scale and block.shape[1] > 0:
            block = block / np.sqrt(block.shape[1])
        blocks.append(block)
        types.update({c: name for c in block.columns})

    X = pd.concat(blocks, axis=1)
    return X, pd.Series(types, name="view").reindex(X.columns)


def prepare_dataset(
    dataset: str,
    views: dict[str, pd.DataFrame],
    metadata: pd.DataFrame | None,
    analysis: AnalysisConfig,
) -> PreparedData:
    """Align samples, filter and standardize each view, then concatenate."""
    aligned, meta = align_samples(views, metadata)

    processed: dict[str, pd.DataFrame] = {}
    for name, df in aligned.items():
        df = df.dropna(axis=1, how="any")
        df = filter_top_variable(df, analysis.top_variable)
        if df.shape[1] == 0:
            raise ValueError(f"View '{name}' has no variable features left after filtering.")
        processed[name], _, _ = standardize(df)

    X, feature_types = concat_views(processed, block_scale=analysis.block_scale)
    logger.info("%s: %d samples x %d features over %d views", dataset, X.shape[0], X.shape[1], len(processed))
    return PreparedData(dataset=dataset, views=processed, X=X, feature_types=feature_types, metadata=meta)
