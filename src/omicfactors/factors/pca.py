"""PCA on the concatenated multi-omics matrix."""

from __future__ import annotations

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA

from omicfactors.config import AnalysisConfig
from omicfactors.data_models import FactorResult, PreparedData
from omicfactors.factors.base import FactorMethod, check_n_components, factor_names


def fit_pca(X: pd.DataFrame, n_components: int, random_state: int = 7) -> PCA:
    """Fit PCA on input features."""
    check_n_components(X, n_components)
    model = PCA(n_components=n_components, random_state=random_state)
    model.fit(X.values)
    return model


def transform(model: PCA, X: pd.DataFrame) -> pd.DataFrame:
    """Project input data to PCA factor scores."""
    scores = model.transform(X.values)
    return pd.DataFrame(scores, index=X.index, columns=factor_names("PC", scores.shape[1]))


def loadings(model: PCA, columns: list[str]) -> pd.DataFrame:
    """Return PCA components as a factors x features frame."""
    return pd.DataFrame(
        model.components_,
        index=factor_names("PC", model.components_.shape[0]),
        columns=columns,
    )


def reconstruct(model: PCA, scores: pd.DataFrame, columns: list[str]) -> pd.DataFrame:
    """Reconstruct feature space from PCA scores."""
    recon = model.inverse_transform(scores.values)
    return pd.DataFrame(recon, index=scores.index, columns=columns)


def explained_variance_ratio(model: PCA) -> pd.Series:
    ratio = np.asarray(model.explained_variance_ratio_, dtype=float)
    return pd.Series(ratio, index=factor_names("PC", len(ratio)), name="explained_variance_ratio")


class PCAMethod(FactorMethod):
    name = "PCA"

    def run(self, data: PreparedData, analysis: AnalysisConfig) -> FactorResult:
        model = fit_pca(data.X, n_components=analysis.n_factors, random_state=analysis.random_state)
        return FactorResult(
            method=self.name,
            transformed=transform(model, data.X),
            loadings=loadings(model, list(data.X.columns)),
            feature_types=data.feature_types,
            extras={"explained_variance_ratio": explained_variance_ratio(model)},
        )
