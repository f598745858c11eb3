from __future__ import annotations

import os
import sys
from pathlib import Path

import h5py
import numpy as np
import pandas as pd
import pytest

os.environ.setdefault("PANDAS_NO_IMPORT_PYARROW", "1")

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))


def write_mofa_file(path: Path, views: dict[str, pd.DataFrame], n_factors: int, seed: int = 0) -> None:
    """Write a small file in the MOFA2 hdf5 layout with random factors."""
    rng = np.random.default_rng(seed)
    samples = list(next(iter(views.values())).index)
    with h5py.File(path, "w") as f:
        f.create_dataset("views/views", data=np.array(list(views), dtype="S"))
        f.create_dataset("groups/groups", data=np.array(["group_0"], dtype="S"))
        f.create_dataset("samples/group_0", data=np.array(samples, dtype="S"))
        f.create_dataset("expectations/Z/group_0", data=rng.normal(size=(n_factors, len(samples))))
        for name, df in views.items():
            f.create_dataset(f"features/{name}", data=np.array(list(df.columns), dtype="S"))
            f.create_dataset(f"expectations/W/{name}", data=rng.normal(size=(n_factors, df.shape[1])))


@pytest.fixture
def omics_views() -> dict[str, pd.DataFrame]:
    rng = np.random.default_rng(3)
    samples = [f"S{i:02d}" for i in range(30)]
    shared = rng.normal(size=(30, 1))
    views = {}
    for name, n_features in [("rna", 12), ("protein", 8)]:
        X = shared @ rng.normal(size=(1, n_features)) + 0.3 * rng.normal(size=(30, n_features))
        views[name] = pd.DataFrame(X, index=samples, columns=[f"{name}_{j}" for j in range(n_features)])
    return views


@pytest.fixture
def sample_metadata() -> pd.DataFrame:
    rows = []
    for i in range(30):
        rows.append(
            {
                "sample": f"S{i:02d}",
                "subject": f"P{i // 3}",
                "diagnosis": "disease" if (i // 3) % 2 == 0 else "control",
                "visit": f"week {4 * (i % 3)}",
            }
        )
    return pd.DataFrame(rows)
