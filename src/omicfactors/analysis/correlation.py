"""Cross-method correlation of factors and loadings."""

from __future__ import annotations

import numpy as np
import pandas as pd
from scipy.stats import rankdata

from omicfactors.data_models import FactorResult


def _column_corr(A: np.ndarray, B: np.ndarray) -> np.ndarray:
    ac = A - A.mean(axis=0)
    bc = B - B.mean(axis=0)
    denom = np.outer(np.sqrt((ac**2).sum(axis=0)), np.sqrt((bc**2).sum(axis=0)))
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(denom > 0.0, (ac.T @ bc) / denom, np.nan)


def cross_correlation(Z1: pd.DataFrame, Z2: pd.DataFrame, method: str = "pearson") -> pd.DataFrame:
    """Correlation between columns of two embeddings over their shared rows.

    Returns a DataFrame (K1 x K2). Constant columns yield NaN.
    """
    if method not in ("pearson", "spearman"):
        raise ValueError(f"Unsupported correlation method: {method}")
    common = Z1.index.intersection(Z2.index)
    if len(common) < 3:
        raise ValueError(f"Need at least 3 shared samples to correlate, got {len(common)}.")

    A = Z1.loc[common].values.astype(float)
    B = Z2.loc[common].values.astype(float)
    if method == "spearman":
        A = rankdata(A, axis=0)
        B = rankdata(B, axis=0)
    return pd.DataFrame(_column_corr(A, B), index=Z1.columns, columns=Z2.columns)


def best_matches(corr: pd.DataFrame) -> pd.DataFrame:
    """For each row factor, the column factor with the largest absolute correlation."""
    abs_corr = corr.abs()
    rows = []
    for factor in corr.index:
        row = abs_corr.loc[factor]
        if row.notna().sum() == 0:
            rows.append({"factor": factor, "match": None, "corr": np.nan, "abs_corr": np.nan})
            continue
        match = row.idxmax()
        rows.append(
            {
                "factor": factor,
                "match": match,
                "corr": float(corr.loc[factor, match]),
                "abs_corr": float(row[match]),
            }
        )
    return pd.DataFrame(rows)


def method_similarity(results: dict[str, FactorResult], method: str = "pearson") -> pd.DataFrame:
    """Mean best-match absolute correlation of row-method factors against column-method factors."""
    names = list(results)
    out = pd.DataFrame(np.nan, index=names, columns=names, dtype=float)
    for a in names:
        for b in names:
            if a == b:
                out.loc[a, b] = 1.0
                continue
            corr = cross_correlation(results[a].transformed, results[b].transformed, method=method)
            out.loc[a, b] = float(best_matches(corr)["abs_corr"].mean())
    return out


def loading_correlation(L1: pd.DataFrame, L2: pd.DataFrame) -> pd.DataFrame:
    """Correlation of factor loadings (factors x features) over shared features."""
    shared = L1.columns.intersection(L2.columns)
    if len(shared) < 3:
        raise ValueError(f"Need at least 3 shared features to correlate loadings, got {len(shared)}.")
    return cross_correlation(L1.loc[:, shared].T, L2.loc[:, shared].T)


def all_pairs(results: dict[str, FactorResult], method: str = "pearson") -> dict[tuple[str, str], pd.DataFrame]:
    """Factor correlation matrices for every unordered pair of methods."""
    names = list(results)
    out: dict[tuple[str, str], pd.DataFrame] = {}
    for i, a in enumerate(names):
        for b in names[i + 1 :]:
            out[(a, b)] = cross_correlation(results[a].transformed, results[b].transformed, method=method)
    return out
