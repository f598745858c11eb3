"""MOFA factors read from a trained MOFA2 model file."""

from __future__ import annotations

import logging
from pathlib import Path

from omicfactors.config import AnalysisConfig
from omicfactors.data_models import FactorResult, PreparedData
from omicfactors.factors.base import FactorMethod
from omicfactors.io.load import load_mofa_hdf5

logger = logging.getLogger(__name__)


class MOFAMethod(FactorMethod):
    """Load MOFA2 expectations of Z and W; the model itself is trained elsewhere."""

    name = "MOFA"

    def __init__(self, model_path: str | Path):
        self.model_path = Path(model_path)

    def run(self, data: PreparedData, analysis: AnalysisConfig) -> FactorResult:
        transformed, weights, feature_types = load_mofa_hdf5(self.model_path)

        shared = [s for s in data.X.index if s in transformed.index]
        if len(shared) == 0:
            raise ValueError(f"MOFA model {self.model_path} shares no samples with dataset {data.dataset}.")
        missing = data.X.shape[0] - len(shared)
        if missing > 0:
            logger.warning("MOFA model lacks %d of %d samples for %s", missing, data.X.shape[0], data.dataset)

        if transformed.shape[1] > analysis.n_factors:
            keep = list(transformed.columns[: analysis.n_factors])
            transformed = transformed.loc[:, keep]
            weights = weights.loc[keep]

        return FactorResult(
            method=self.name,
            transformed=transformed.loc[shared],
            loadings=weights,
            feature_types=feature_types.reindex(weights.columns),
            extras={"model_path": str(self.model_path)},
        )
