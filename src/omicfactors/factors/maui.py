"""MAUI latent factors with correlation-based loadings."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from omicfactors.config import AnalysisConfig
from omicfactors.data_models import FactorResult, PreparedData
from omicfactors.factors.base import FactorMethod
from omicfactors.io.load import load_maui_factors

logger = logging.getLogger(__name__)


def correlation_loadings(X: pd.DataFrame, Z: pd.DataFrame) -> pd.DataFrame:
    """Pearson correlation of every factor in ``Z`` with every feature in ``X``.

    Rows of both frames are matched by index. Constant features or factors get 0.
    """
    shared = X.index.intersection(Z.index)
    if len(shared) < 3:
        raise ValueError(f"Need at least 3 shared samples, got {len(shared)}.")
    x = X.loc[shared].values.astype(float)
    z = Z.loc[shared].values.astype(float)

    xc = x - x.mean(axis=0)
    zc = z - z.mean(axis=0)
    x_norm = np.sqrt((xc**2).sum(axis=0))
    z_norm = np.sqrt((zc**2).sum(axis=0))
    denom = np.outer(z_norm, x_norm)
    with np.errstate(divide="ignore", invalid="ignore"):
        corr = np.where(denom > 0.0, (zc.T @ xc) / denom, 0.0)
    return pd.DataFrame(corr, index=Z.columns, columns=X.columns)


class MAUIMethod(FactorMethod):
    """MAUI autoencoder factors trained elsewhere and saved as CSV."""

    name = "MAUI"

    def __init__(self, factors_path: str | Path):
        self.factors_path = Path(factors_path)

    def run(self, data: PreparedData, analysis: AnalysisConfig) -> FactorResult:
        Z = load_maui_factors(self.factors_path)
        shared = [s for s in data.X.index if s in Z.index]
        if len(shared) < data.X.shape[0]:
            logger.warning(
                "MAUI factors lack %d of %d samples for %s",
                data.X.shape[0] - len(shared),
                data.X.shape[0],
                data.dataset,
            )
        Z = Z.loc[shared].iloc[:, : analysis.n_factors]
        return FactorResult(
            method=self.name,
            transformed=Z,
            loadings=correlation_loadings(data.X, Z),
            feature_types=data.feature_types,
            extras={"factors_path": str(self.factors_path)},
        )
