"""Generate a synthetic longitudinal multi-omics dataset for local smoke runs.

Writes three views, sample metadata, and stand-in MOFA (hdf5) and MAUI (CSV)
outputs so every method in the comparison has something to load.
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

import h5py
import numpy as np

os.environ.setdefault("PANDAS_NO_IMPORT_PYARROW", "1")
import pandas as pd

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT / "src"))

from omicfactors.config import default_paths

VIEW_SIZES = {"rna": 300, "protein": 120, "metabolite": 80}


def make_dataset(n_subjects: int, n_visits: int, seed: int) -> tuple[dict[str, pd.DataFrame], pd.DataFrame]:
    rng = np.random.default_rng(seed)
    subjects = [f"S{i:03d}" for i in range(n_subjects)]
    disease = rng.random(n_subjects) < 0.5
    subject_effect = rng.normal(0.0, 1.0, n_subjects)

    rows = []
    for s, subject in enumerate(subjects):
        for visit in range(n_visits):
            rows.append(
                {
                    "sample": f"{subject}_V{visit}",
                    "subject": subject,
                    "diagnosis": "disease" if disease[s] else "control",
                    "visit": f"week {4 * visit}",
                    "_disease": float(disease[s]),
                    "_time": float(visit) / max(n_visits - 1, 1),
                    "_subject": subject_effect[s],
                }
            )
    meta = pd.DataFrame(rows)
    n = len(meta)

    # Shared disease factor, time factor, subject factor, plus view-private noise factors.
    latent = np.column_stack(
        [
            1.5 * meta["_disease"].to_numpy() + rng.normal(0.0, 0.5, n),
            2.0 * meta["_time"].to_numpy() + rng.normal(0.0, 0.3, n),
            meta["_subject"].to_numpy() + rng.normal(0.0, 0.2, n),
        ]
    )

    views: dict[str, pd.DataFrame] = {}
    for v, (name, n_features) in enumerate(VIEW_SIZES.items()):
        W = rng.normal(0.0, 1.0, (latent.shape[1], n_features))
        W[:, rng.random(n_features) < 0.6] = 0.0
        private = rng.normal(0.0, 1.0, (n, 2)) @ rng.normal(0.0, 1.0, (2, n_features))
        X = latent @ W + 0.5 * private + rng.normal(0.0, 1.0, (n, n_features)) + 5.0 * (v + 1)
        cols = [f"{name}_{j:04d}" for j in range(n_features)]
        views[name] = pd.DataFrame(X, index=meta["sample"], columns=cols)

    meta = meta.drop(columns=["_disease", "_time", "_subject"])
    return views, meta


def write_mofa_stand_in(views: dict[str, pd.DataFrame], n_factors: int, path: Path) -> None:
    """Write an SVD factorization in the MOFA2 hdf5 layout."""
    blocks = []
    for df in views.values():
        z = (df - df.mean()) / df.std().replace(0.0, 1.0)
        blocks.append(z / np.sqrt(df.shape[1]))
    X = pd.concat(blocks, axis=1).to_numpy()
    u, s, vt = np.linalg.svd(X, full_matrices=False)
    Z = (u[:, :n_factors] * s[:n_factors]).T
    W = vt[:n_factors]

    samples = list(next(iter(views.values())).index)
    path.parent.mkdir(parents=True, exist_ok=True)
    with h5py.File(path, "w") as f:
        f.create_dataset("views/views", data=np.array(list(views), dtype="S"))
        f.create_dataset("groups/groups", data=np.array(["group_0"], dtype="S"))
        f.create_dataset("samples/group_0", data=np.array(samples, dtype="S"))
        f.create_dataset("expectations/Z/group_0", data=Z)
        start = 0
        for name, df in views.items():
            stop = start + df.shape[1]
            f.create_dataset(f"features/{name}", data=np.array(list(df.columns), dtype="S"))
            f.create_dataset(f"expectations/W/{name}", data=W[:, start:stop])
            start = stop


def write_maui_stand_in(views: dict[str, pd.DataFrame], n_factors: int, seed: int, path: Path) -> None:
    """Write nonlinear random projections in place of MAUI latent factors."""
    rng = np.random.default_rng(seed)
    X = pd.concat([(df - df.mean()) / df.std().replace(0.0, 1.0) for df in views.values()], axis=1)
    proj = rng.normal(0.0, 1.0 / np.sqrt(X.shape[1]), (X.shape[1], n_factors))
    Z = np.tanh(X.to_numpy() @ proj)
    cols = [f"LatentFactor{i}" for i in range(n_factors)]
    path.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(Z, index=X.index, columns=cols).to_csv(path)


def main() -> None:
    parser = argparse.ArgumentParser(description="Write a synthetic multi-omics dataset.")
    parser.add_argument("--name", default="synthetic", help="Dataset name under data/raw.")
    parser.add_argument("--subjects", type=int, default=24)
    parser.add_argument("--visits", type=int, default=4)
    parser.add_argument("--factors", type=int, default=10)
    parser.add_argument("--seed", type=int, default=42)
    args = parser.parse_args()

    paths = default_paths()
    views, meta = make_dataset(args.subjects, args.visits, args.seed)

    raw_dir = paths["data_raw"] / args.name
    raw_dir.mkdir(parents=True, exist_ok=True)
    for name, df in views.items():
        df.to_csv(raw_dir / f"{name}.csv", index_label="sample")
    meta.to_csv(raw_dir / "metadata.csv", index=False)

    processed_dir = paths["data_processed"] / args.name
    write_mofa_stand_in(views, args.factors, processed_dir / "mofa.hdf5")
    write_maui_stand_in(views, args.factors, args.seed, processed_dir / "maui_factors.csv")

    print("Wrote sample data to", raw_dir)
    print("Wrote stand-in MOFA/MAUI outputs to", processed_dir)


if __name__ == "__main__":
    main()
