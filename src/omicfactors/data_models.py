from __future__ import annotations

from dataclasses import dataclass, field

import pandas as pd


@dataclass(slots=True)
class PreparedData:
    """Aligned, filtered and standardized inputs for one dataset."""

    dataset: str
    views: dict[str, pd.DataFrame]
    X: pd.DataFrame
    feature_types: pd.Series
    metadata: pd.DataFrame | None = None


@dataclass(slots=True)
class FactorResult:
    """Output of one factorization method on one dataset."""

    method: str
    transformed: pd.DataFrame
    loadings: pd.DataFrame
    feature_types: pd.Series
    extras: dict[str, object] = field(default_factory=dict)

    @property
    def n_factors(self) -> int:
        return int(self.transformed.shape[1])
