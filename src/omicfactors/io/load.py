"""Loaders for omics views, sample metadata and precomputed factor outputs."""

from __future__ import annotations

import logging
from pathlib import Path

import h5py
import numpy as np
import pandas as pd

from omicfactors.config import DatasetConfig
from omicfactors.data_models import FactorResult

logger = logging.getLogger(__name__)


def _decode(values) -> list[str]:
    return [v.decode("utf-8") if isinstance(v, bytes) else str(v) for v in values]


def load_view(path: str | Path) -> pd.DataFrame:
    """Load one omics view.

    Parameters
    ----------
    path : str or Path
        CSV where the first column is the sample id and remaining columns are features.

    Returns
    -------
    pd.DataFrame
        Float matrix indexed by sample id (str) with feature-name (str) columns.
    """
    df = pd.read_csv(path, index_col=0)
    if df.shape[1] < 1:
        raise ValueError(f"View file {path} must contain a sample column plus at least one feature.")
    df.index = df.index.astype(str)
    df.columns = df.columns.astype(str)
    if df.index.has_duplicates:
        dupes = df.index[df.index.duplicated()].unique().tolist()
        raise ValueError(f"Duplicated sample ids in {path}: {dupes[:5]}")
    return df.astype(float)


def load_views(dataset_dir: str | Path, views: list[str]) -> dict[str, pd.DataFrame]:
    """Load ``<dataset_dir>/<view>.csv`` for every requested view."""
    dataset_dir = Path(dataset_dir)
    out: dict[str, pd.DataFrame] = {}
    for view in views:
        path = dataset_dir / f"{view}.csv"
        if not path.exists():
            raise FileNotFoundError(f"Missing view file: {path}")
        out[view] = load_view(path)
        logger.info("Loaded view %s: %d samples x %d features", view, *out[view].shape)
    return out


def load_metadata(path: str | Path, config: DatasetConfig) -> pd.DataFrame:
    """Load sample metadata, apply column renames and index by sample id."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing metadata file: {path}")
    df = pd.read_csv(path)
    df = df.rename(columns=config.rename)
    if config.sample_column not in df.columns:
        raise ValueError(f"Metadata {path} has no sample column '{config.sample_column}'.")
    df[config.sample_column] = df[config.sample_column].astype(str)
    df = df.set_index(config.sample_column)
    if config.drop_samples:
        df = df.drop(index=config.drop_samples, errors="ignore")
    return df


def load_mofa_hdf5(path: str | Path) -> tuple[pd.DataFrame, pd.DataFrame, pd.Series]:
    """Read factors and weights from a MOFA2 model file.

    Returns
    -------
    tuple[pd.DataFrame, pd.DataFrame, pd.Series]
        ``(transformed, loadings, feature_types)``: samples x factors over all
        groups, factors x ``"<view>:<feature>"`` weights, and feature -> view.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing MOFA model: {path}")

    with h5py.File(path, "r") as f:
        views = _decode(f["views"]["views"][:])
        groups = _decode(f["groups"]["groups"][:])

        z_blocks = []
        for group in groups:
            z = np.asarray(f["expectations"]["Z"][group][:], dtype=float)  # factors x samples
            samples = _decode(f["samples"][group][:])
            if z.shape[1] != len(samples):
                raise ValueError(f"Group '{group}' has {len(samples)} samples but Z has {z.shape[1]} columns.")
            z_blocks.append(pd.DataFrame(z.T, index=samples))

        w_blocks = []
        types: dict[str, str] = {}
        for view in views:
            w = np.asarray(f["expectations"]["W"][view][:], dtype=float)  # factors x features
            keys = [f"{view}:{feat}" for feat in _decode(f["features"][view][:])]
            if w.shape[1] != len(keys):
                raise ValueError(f"View '{view}' has {len(keys)} features but W has {w.shape[1]} columns.")
            w_blocks.append(pd.DataFrame(w, columns=keys))
            types.update({k: view for k in keys})

    transformed = pd.concat(z_blocks, axis=0)
    factor_names = [f"MOFA{i + 1}" for i in range(transformed.shape[1])]
    transformed.columns = factor_names
    loadings = pd.concat(w_blocks, axis=1)
    loadings.index = factor_names
    return transformed, loadings, pd.Series(types, name="view")


def load_maui_factors(path: str | Path) -> pd.DataFrame:
    """Load MAUI latent factors (samples x factors)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing MAUI factors: {path}")
    df = pd.read_csv(path, index_col=0)
    df.index = df.index.astype(str)
    df.columns = [f"MAUI{i + 1}" for i in range(df.shape[1])]
    return df.astype(float)


def save_factor_result(result: FactorResult, out_dir: str | Path) -> tuple[Path, Path]:
    """Write ``<method>_loadings.csv`` and ``<method>_transformed.csv``."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    stem = result.method.lower()
    loadings_path = out_dir / f"{stem}_loadings.csv"
    transformed_path = out_dir / f"{stem}_transformed.csv"
    result.loadings.to_csv(loadings_path)
    result.transformed.to_csv(transformed_path)
    return loadings_path, transformed_path


def load_factor_result(method: str, in_dir: str | Path, feature_types: pd.Series) -> FactorResult:
    """Reload a result previously written by :func:`save_factor_result`."""
    in_dir = Path(in_dir)
    stem = method.lower()
    loadings_path = in_dir / f"{stem}_loadings.csv"
    transformed_path = in_dir / f"{stem}_transformed.csv"
    for p in (loadings_path, transformed_path):
        if not p.exists():
            raise FileNotFoundError(f"Missing factor output: {p}")

    loadings = pd.read_csv(loadings_path, index_col=0)
    transformed = pd.read_csv(transformed_path, index_col=0)
    transformed.index = transformed.index.astype(str)
    return FactorResult(
        method=method,
        transformed=transformed.astype(float),
        loadings=loadings.astype(float),
        feature_types=feature_types.reindex(loadings.columns),
    )
