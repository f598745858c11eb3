"""Write aligned, filtered views so MOFA and MAUI can be trained on the same inputs."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

os.environ.setdefault("PANDAS_NO_IMPORT_PYARROW", "1")

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT / "src"))

from omicfactors.analysis.association import harmonize_metadata
from omicfactors.config import AnalysisConfig, default_paths, load_dataset_configs
from omicfactors.io.load import load_metadata, load_views
from omicfactors.preprocess.transforms import prepare_dataset


def main() -> None:
    parser = argparse.ArgumentParser(description="Prepare one configured dataset.")
    parser.add_argument("dataset", help="Dataset name in the config file.")
    parser.add_argument("--config", default=None, help="Dataset TOML file (default: configs/datasets.toml).")
    parser.add_argument("--top-variable", type=int, default=2000, help="Most variable features kept per view.")
    args = parser.parse_args()

    paths = default_paths()
    config_path = Path(args.config) if args.config else paths["configs"] / "datasets.toml"
    config = load_dataset_configs(config_path)[args.dataset]

    raw_dir = paths["data_raw"] / config.name
    views = load_views(raw_dir, config.views)
    metadata = harmonize_metadata(load_metadata(raw_dir / "metadata.csv", config), config)
    data = prepare_dataset(config.name, views, metadata, AnalysisConfig(top_variable=args.top_variable))

    out = paths["data_processed"] / config.name
    out.mkdir(parents=True, exist_ok=True)
    for name, df in data.views.items():
        df.to_csv(out / f"prepared_{name}.csv")
    data.feature_types.to_csv(out / "feature_types.csv", header=["view"])
    data.metadata.to_csv(out / "metadata_harmonized.csv")

    print("Saved processed files to", out)
    print(f"Samples retained: {data.X.shape[0]}")
    for name, df in data.views.items():
        print(f"  {name}: {df.shape[1]} features")


if __name__ == "__main__":
    main()
