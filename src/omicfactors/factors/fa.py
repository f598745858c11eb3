"""Factor Analysis baseline using scikit-learn."""

from __future__ import annotations

import numpy as np
import pandas as pd
from sklearn.decomposition import FactorAnalysis

from omicfactors.config import AnalysisConfig
from omicfactors.data_models import FactorResult, PreparedData
from omicfactors.factors.base import FactorMethod, check_n_components, factor_names


def fit_fa(X: pd.DataFrame, n_components: int, random_state: int = 7) -> FactorAnalysis:
    """Fit a Gaussian latent-factor model with per-feature noise."""
    check_n_components(X, n_components)
    model = FactorAnalysis(n_components=n_components, random_state=random_state)
    model.fit(X.values)
    return model


def transform(model: FactorAnalysis, X: pd.DataFrame) -> pd.DataFrame:
    """Transform data into posterior mean factor scores."""
    factors = model.transform(X.values)
    return pd.DataFrame(factors, index=X.index, columns=factor_names("FA", factors.shape[1]))


def loadings(model: FactorAnalysis, columns: list[str]) -> pd.DataFrame:
    """Return model loadings matrix in dataframe form."""
    return pd.DataFrame(
        model.components_,
        index=factor_names("FA", model.components_.shape[0]),
        columns=columns,
    )


def reconstruct(model: FactorAnalysis, factors: pd.DataFrame, columns: list[str]) -> pd.DataFrame:
    """Approximate original space from latent factors."""
    X_hat = factors.values @ model.components_ + np.asarray(model.mean_)
    return pd.DataFrame(X_hat, index=factors.index, columns=columns)


class FAMethod(FactorMethod):
    name = "FA"

    def run(self, data: PreparedData, analysis: AnalysisConfig) -> FactorResult:
        model = fit_fa(data.X, n_components=analysis.n_factors, random_state=analysis.random_state)
        noise = pd.Series(model.noise_variance_, index=data.X.columns, name="noise_variance")
        return FactorResult(
            method=self.name,
            transformed=transform(model, data.X),
            loadings=loadings(model, list(data.X.columns)),
            feature_types=data.feature_types,
            extras={"noise_variance": noise},
        )
