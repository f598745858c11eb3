"""Run the factor-method comparison report on configured multi-omics datasets."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

os.environ.setdefault("PANDAS_NO_IMPORT_PYARROW", "1")

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT / "src"))

from omicfactors.config import ALL_METHODS, AnalysisConfig, default_paths, load_dataset_configs
from omicfactors.pipelines.compare import run_all


def main() -> None:
    parser = argparse.ArgumentParser(description="Compare PCA, FA, AE, MOFA and MAUI factors across datasets.")
    parser.add_argument(
        "--config",
        default=None,
        help="Dataset TOML file (default: configs/datasets.toml).",
    )
    parser.add_argument(
        "--datasets",
        nargs="+",
        default=None,
        help="Dataset names to run (default: every dataset in the config).",
    )
    parser.add_argument(
        "--methods",
        nargs="+",
        default=list(ALL_METHODS),
        help="Factor methods to compare.",
    )
    parser.add_argument("--n-factors", type=int, default=10, help="Factors per method.")
    parser.add_argument("--top-n", type=int, default=50, help="Top-weighted features per factor for mixing.")
    parser.add_argument(
        "--top-variable",
        type=int,
        default=2000,
        help="Most variable features kept per view (0 keeps all).",
    )
    parser.add_argument("--ae-epochs", type=int, default=300, help="Autoencoder training epochs.")
    parser.add_argument("--no-block-scale", action="store_true", help="Do not equalize view variance.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress messages.")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    paths = default_paths()
    config_path = Path(args.config) if args.config else paths["configs"] / "datasets.toml"
    configs = load_dataset_configs(config_path)
    if args.datasets:
        missing = [d for d in args.datasets if d not in configs]
        if missing:
            raise KeyError(f"Datasets not in {config_path}: {missing}")
        configs = {d: configs[d] for d in args.datasets}

    analysis = AnalysisConfig(
        n_factors=args.n_factors,
        top_n=args.top_n,
        top_variable=args.top_variable,
        block_scale=not args.no_block_scale,
        methods=tuple(args.methods),
        ae_epochs=args.ae_epochs,
    )
    reports, written = run_all(configs, analysis, paths)

    print("Saved outputs:")
    for path in written:
        print(" -", path)
    print("")
    for report in reports:
        print(f"[{report.dataset}] feature-type mixing")
        print(report.mixing_summary.to_string(index=False))
        print("")


if __name__ == "__main__":
    main()
