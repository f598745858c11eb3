"""How strongly each factor mixes feature types (omics views) among its top weights."""

from __future__ import annotations

import numpy as np
import pandas as pd
from scipy.stats import entropy

from omicfactors.data_models import FactorResult


def top_features(loadings: pd.DataFrame, factor: str, top_n: int) -> pd.Index:
    """Features with the largest absolute weight on ``factor``; ties keep feature order."""
    if top_n <= 0:
        raise ValueError("top_n must be positive.")
    weights = loadings.loc[factor].abs().dropna()
    order = weights.sort_values(ascending=False, kind="mergesort")
    return order.index[:top_n]


def type_composition(loadings: pd.DataFrame, feature_types: pd.Series, top_n: int) -> pd.DataFrame:
    """Fraction of each view among the top-n features of every factor (factors x views)."""
    views = sorted(feature_types.dropna().unique())
    rows = []
    for factor in loadings.index:
        top = top_features(loadings, factor, top_n)
        counts = feature_types.reindex(top).value_counts()
        total = counts.sum()
        frac = counts / total if total > 0 else pd.Series(dtype=float)
        rows.append(frac.reindex(views, fill_value=0.0))
    return pd.DataFrame(rows, index=loadings.index, columns=views).fillna(0.0)


def mixing_scores(composition: pd.DataFrame) -> pd.Series:
    """Normalized Shannon entropy per factor: 0 for a single view, 1 for a uniform mix."""
    n_views = composition.shape[1]
    if n_views <= 1:
        return pd.Series(0.0, index=composition.index, name="mixing")
    scores = [float(entropy(row, base=n_views)) if row.sum() > 0 else 0.0 for row in composition.values]
    return pd.Series(scores, index=composition.index, name="mixing")


def view_weight_share(loadings: pd.DataFrame, feature_types: pd.Series) -> pd.DataFrame:
    """Share of squared loading mass that falls on each view (factors x views)."""
    types = feature_types.reindex(loadings.columns)
    sq = loadings**2
    by_view = sq.T.groupby(types.values).sum().T
    totals = by_view.sum(axis=1).replace(0.0, np.nan)
    return by_view.div(totals, axis=0).fillna(0.0)


def summarize_mixing(
    results: dict[str, FactorResult],
    top_n: int,
    threshold: float = 0.9,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Per-factor mixing table and per-method summary.

    A factor counts as mixed when no single view exceeds ``threshold`` of its top features.
    """
    per_factor = []
    summary = []
    for name, result in results.items():
        comp = type_composition(result.loadings, result.feature_types, top_n)
        scores = mixing_scores(comp)
        dominant = comp.idxmax(axis=1)
        dominant_share = comp.max(axis=1)

        table = comp.copy()
        table.insert(0, "dominant_share", dominant_share)
        table.insert(0, "dominant_view", dominant)
        table.insert(0, "mixing", scores)
        table.insert(0, "factor", comp.index)
        table.insert(0, "method", name)
        per_factor.append(table.reset_index(drop=True))

        summary.append(
            {
                "method": name,
                "n_factors": int(comp.shape[0]),
                "mean_mixing": float(scores.mean()),
                "median_mixing": float(scores.median()),
                "n_mixed": int((dominant_share <= threshold).sum()),
            }
        )

    per_factor_df = pd.concat(per_factor, ignore_index=True) if per_factor else pd.DataFrame()
    summary_df = pd.DataFrame(summary)
    if not summary_df.empty:
        summary_df = summary_df.sort_values("mean_mixing", ascending=False).reset_index(drop=True)
    return per_factor_df, summary_df
