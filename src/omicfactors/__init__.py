"""Comparison of multi-omics factorization methods."""

from .config import AnalysisConfig, DatasetConfig
from .data_models import FactorResult, PreparedData

__all__ = ["AnalysisConfig", "DatasetConfig", "FactorResult", "PreparedData"]
