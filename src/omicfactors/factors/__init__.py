"""Factor model implementations."""

from __future__ import annotations

from pathlib import Path

from omicfactors.factors.ae import AEMethod, Autoencoder
from omicfactors.factors.base import FactorMethod
from omicfactors.factors.fa import FAMethod, fit_fa
from omicfactors.factors.maui import MAUIMethod, correlation_loadings
from omicfactors.factors.mofa import MOFAMethod
from omicfactors.factors.pca import PCAMethod, fit_pca

PRECOMPUTED = {"MOFA": "mofa.hdf5", "MAUI": "maui_factors.csv"}


class MethodRegistry(dict):
    """Fitted methods by name. Precomputed methods need ``build_method``."""

    def __missing__(self, name: str) -> FactorMethod:
        available = sorted([*self, *PRECOMPUTED])
        if name in PRECOMPUTED:
            raise KeyError(
                f"Factor method '{name}' reads precomputed outputs; use build_method(name, processed_dir). "
                f"Available: {available}"
            )
        raise KeyError(f"Unknown factor method '{name}'. Available: {available}")


METHODS: dict[str, FactorMethod] = MethodRegistry(
    PCA=PCAMethod(),
    FA=FAMethod(),
    AE=AEMethod(),
)


def build_method(name: str, processed_dir: str | Path) -> FactorMethod:
    """Return the method registered under ``name``.

    Precomputed methods read their outputs from ``processed_dir``.
    """
    if name == "MOFA":
        return MOFAMethod(Path(processed_dir) / PRECOMPUTED["MOFA"])
    if name == "MAUI":
        return MAUIMethod(Path(processed_dir) / PRECOMPUTED["MAUI"])
    return METHODS[name]


__all__ = [
    "METHODS",
    "PRECOMPUTED",
    "MethodRegistry",
    "build_method",
    "fit_pca",
    "fit_fa",
    "correlation_loadings",
    "Autoencoder",
    "FactorMethod",
]
