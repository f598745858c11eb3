from __future__ import annotations

from abc import ABC, abstractmethod

import pandas as pd

from omicfactors.config import AnalysisConfig
from omicfactors.data_models import FactorResult, PreparedData


def check_n_components(X: pd.DataFrame, n_components: int) -> None:
    """Raise if ``n_components`` cannot be fitted on ``X``."""
    limit = min(X.shape)
    if n_components <= 0 or n_components > limit:
        raise ValueError(
            f"n_components must be between 1 and min(n_samples, n_features)={limit}, got {n_components}."
        )


def factor_names(prefix: str, n: int) -> list[str]:
    return [f"{prefix}{i + 1}" for i in range(n)]


class FactorMethod(ABC):
    """Abstract factorization method interface."""

    name: str = "base"

    @abstractmethod
    def run(self, data: PreparedData, analysis: AnalysisConfig) -> FactorResult:
        """Produce transformed samples and loadings for one dataset."""
