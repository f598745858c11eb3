"""Project paths and run configuration."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path

ALL_METHODS = ("PCA", "FA", "AE", "MOFA", "MAUI")


def default_paths() -> dict[str, Path]:
    """Return commonly used repository paths.

    Returns
    -------
    dict[str, Path]
        Mapping of logical names to absolute paths rooted at repository base.
    """
    repo_root = Path(__file__).resolve().parents[2]
    return {
        "repo_root": repo_root,
        "data_raw": repo_root / "data" / "raw",
        "data_processed": repo_root / "data" / "processed",
        "data_sample": repo_root / "data" / "sample",
        "results_tables": repo_root / "results" / "tables",
        "results_figures": repo_root / "results" / "figures",
        "configs": repo_root / "configs",
    }


@dataclass(slots=True)
class DatasetConfig:
    """Where a dataset lives and how its metadata maps to canonical columns."""

    name: str
    views: list[str]
    label_column: str
    case_values: list[str]
    sample_column: str = "sample"
    subject_column: str | None = None
    time_column: str | None = None
    rename: dict[str, str] = field(default_factory=dict)
    drop_samples: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, name: str, raw: dict) -> "DatasetConfig":
        known = {f.name for f in fields(cls)} - {"name"}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ValueError(f"Unknown keys for dataset '{name}': {unknown}")
        for key in ("views", "label_column", "case_values"):
            if key not in raw:
                raise ValueError(f"Dataset '{name}' is missing required key '{key}'.")
        if len(raw["views"]) == 0:
            raise ValueError(f"Dataset '{name}' must list at least one view.")
        return cls(
            name=name,
            views=[str(v) for v in raw["views"]],
            label_column=str(raw["label_column"]),
            case_values=[str(v) for v in raw["case_values"]],
            sample_column=str(raw.get("sample_column", "sample")),
            subject_column=raw.get("subject_column"),
            time_column=raw.get("time_column"),
            rename={str(k): str(v) for k, v in raw.get("rename", {}).items()},
            drop_samples=[str(s) for s in raw.get("drop_samples", [])],
        )


@dataclass(slots=True)
class AnalysisConfig:
    """Shared settings for one comparison run."""

    n_factors: int = 10
    top_n: int = 50
    top_variable: int = 2000
    block_scale: bool = True
    methods: tuple[str, ...] = ALL_METHODS
    random_state: int = 7
    ae_epochs: int = 300
    mixed_threshold: float = 0.9
    fdr_alpha: float = 0.05


def load_dataset_configs(path: str | Path) -> dict[str, DatasetConfig]:
    """Read dataset definitions from a TOML file, one table per dataset."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing dataset config: {path}")
    with path.open("rb") as fh:
        raw = tomllib.load(fh)
    return {name: DatasetConfig.from_dict(name, table) for name, table in raw.items()}
