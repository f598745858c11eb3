"""Reconstruction error and per-factor variance explained."""

from __future__ import annotations

import numpy as np
import pandas as pd
from numpy.linalg import lstsq


def reconstruction_metrics(y_true: pd.DataFrame, y_pred: pd.DataFrame) -> dict[str, float]:
    """MSE, MAE and R2 of a reconstruction over all samples and features."""
    if y_true.shape != y_pred.shape:
        raise ValueError(f"Shape mismatch: {y_true.shape} vs {y_pred.shape}")
    err = y_true.values - y_pred.values
    mse = float(np.mean(err**2))
    mae = float(np.mean(np.abs(err)))

    y_centered = y_true.values - y_true.values.mean(axis=0, keepdims=True)
    ss_res = float(np.sum(err**2))
    ss_tot = float(np.sum(y_centered**2))
    r2 = 0.0 if ss_tot == 0.0 else 1.0 - ss_res / ss_tot
    return {"mse": mse, "mae": mae, "r2": r2}


def per_factor_r2(views: dict[str, pd.DataFrame], transformed: pd.DataFrame) -> pd.DataFrame:
    """R2 of each view reconstructed from each single factor (factors x views).

    The view is centered and regressed on one factor at a time by least squares.
    """
    out = pd.DataFrame(index=transformed.columns, columns=list(views), dtype=float)
    for name, X_df in views.items():
        common = X_df.index.intersection(transformed.index)
        if len(common) == 0:
            continue
        X = X_df.loc[common].values.astype(float)
        X_centered = X - X.mean(axis=0, keepdims=True)
        sst = float(np.sum(X_centered**2))
        Z = transformed.loc[common].values.astype(float)
        for k, factor in enumerate(transformed.columns):
            z_k = Z[:, [k]] - Z[:, [k]].mean()
            W_k, *_ = lstsq(z_k, X_centered, rcond=None)
            sse = float(np.sum((X_centered - z_k @ W_k) ** 2))
            out.loc[factor, name] = 0.0 if sst == 0.0 else 1.0 - sse / sst
    return out
