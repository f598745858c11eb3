"""Compare factorization methods on one or more configured datasets."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd

from omicfactors.analysis.association import associate_factors, harmonize_metadata
from omicfactors.analysis.correlation import all_pairs, best_matches, method_similarity
from omicfactors.analysis.mixing import summarize_mixing, view_weight_share
from omicfactors.analysis.reconstruction import per_factor_r2
from omicfactors.config import AnalysisConfig, DatasetConfig, default_paths, load_dataset_configs
from omicfactors.data_models import FactorResult
from omicfactors.factors import build_method
from omicfactors.io.load import load_metadata, load_views, save_factor_result
from omicfactors.plots.figures import (
    plot_association,
    plot_correlation_heatmap,
    plot_method_similarity,
    plot_pca_scree,
    plot_view_composition,
)
from omicfactors.preprocess.transforms import prepare_dataset

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DatasetReport:
    dataset: str
    n_samples: int
    views: dict[str, int]
    results: dict[str, FactorResult]
    correlations: dict[tuple[str, str], pd.DataFrame]
    similarity: pd.DataFrame
    mixing: pd.DataFrame
    mixing_summary: pd.DataFrame
    weight_share: pd.DataFrame
    variance_explained: pd.DataFrame
    association: pd.DataFrame
    skipped_methods: dict[str, str] = field(default_factory=dict)


def run_dataset(
    config: DatasetConfig,
    analysis: AnalysisConfig,
    paths: dict[str, Path] | None = None,
) -> DatasetReport:
    """Load one dataset, run every method and compute the comparison tables."""
    paths = default_paths() if paths is None else paths
    raw_dir = paths["data_raw"] / config.name
    processed_dir = paths["data_processed"] / config.name

    views = load_views(raw_dir, config.views)
    metadata = harmonize_metadata(load_metadata(raw_dir / "metadata.csv", config), config)
    data = prepare_dataset(config.name, views, metadata, analysis)

    results: dict[str, FactorResult] = {}
    skipped: dict[str, str] = {}
    for name in analysis.methods:
        method = build_method(name, processed_dir)
        try:
            result = method.run(data, analysis)
        except FileNotFoundError as exc:
            logger.warning("%s: skipping %s, %s", config.name, name, exc)
            skipped[name] = str(exc)
            continue
        results[name] = result
        save_factor_result(result, processed_dir)
        logger.info("%s: %s produced %d factors", config.name, name, result.n_factors)

    if len(results) == 0:
        raise ValueError(f"No factor method produced results for dataset {config.name}.")

    mixing, mixing_summary = summarize_mixing(results, top_n=analysis.top_n, threshold=analysis.mixed_threshold)

    shares = []
    r2_tables = []
    assoc_tables = []
    for name, result in results.items():
        share = view_weight_share(result.loadings, result.feature_types)
        share.insert(0, "factor", share.index)
        share.insert(0, "method", name)
        shares.append(share.reset_index(drop=True))

        r2 = per_factor_r2(data.views, result.transformed)
        r2.insert(0, "factor", r2.index)
        r2.insert(0, "method", name)
        r2_tables.append(r2.reset_index(drop=True))

        assoc = associate_factors(result.transformed, data.metadata, alpha=analysis.fdr_alpha)
        assoc.insert(0, "method", name)
        assoc_tables.append(assoc)

    return DatasetReport(
        dataset=config.name,
        n_samples=int(data.X.shape[0]),
        views={name: int(df.shape[1]) for name, df in data.views.items()},
        results=results,
        correlations=all_pairs(results),
        similarity=method_similarity(results),
        mixing=mixing,
        mixing_summary=mixing_summary,
        weight_share=pd.concat(shares, ignore_index=True),
        variance_explained=pd.concat(r2_tables, ignore_index=True),
        association=pd.concat(assoc_tables, ignore_index=True),
        skipped_methods=skipped,
    )


def write_report(report: DatasetReport, tables_dir: Path, figures_dir: Path) -> list[Path]:
    """Write CSV tables and figures for one dataset; return written paths."""
    tables_dir.mkdir(parents=True, exist_ok=True)
    ds = report.dataset
    written: list[Path] = []

    for suffix, table in [
        ("similarity", report.similarity),
        ("mixing", report.mixing),
        ("mixing_summary", report.mixing_summary),
        ("weight_share", report.weight_share),
        ("variance_explained", report.variance_explained),
        ("association", report.association),
    ]:
        path = tables_dir / f"{ds}_{suffix}.csv"
        table.to_csv(path, index=suffix == "similarity")
        written.append(path)

    matches = []
    for (a, b), corr in report.correlations.items():
        path = tables_dir / f"{ds}_corr_{a}_vs_{b}.csv"
        corr.to_csv(path)
        written.append(path)
        bm = best_matches(corr)
        bm.insert(0, "other", b)
        bm.insert(0, "method", a)
        matches.append(bm)
        fig_path = figures_dir / f"{ds}_corr_{a}_vs_{b}.png"
        plot_correlation_heatmap(corr, f"{ds}: {a} vs {b}", fig_path)
        written.append(fig_path)
    if matches:
        path = tables_dir / f"{ds}_best_matches.csv"
        pd.concat(matches, ignore_index=True).to_csv(path, index=False)
        written.append(path)

    fig_path = figures_dir / f"{ds}_method_similarity.png"
    plot_method_similarity(report.similarity, ds, fig_path)
    written.append(fig_path)

    fig_path = figures_dir / f"{ds}_view_composition.png"
    plot_view_composition(report.mixing, list(report.views), ds, fig_path)
    written.append(fig_path)

    if report.association["qvalue"].notna().any():
        fig_path = figures_dir / f"{ds}_association.png"
        plot_association(report.association, ds, fig_path)
        written.append(fig_path)

    pca = report.results.get("PCA")
    if pca is not None and "explained_variance_ratio" in pca.extras:
        fig_path = figures_dir / f"{ds}_pca_scree.png"
        plot_pca_scree(pca.extras["explained_variance_ratio"], ds, fig_path)
        written.append(fig_path)
    return written


def to_markdown(reports: list[DatasetReport], analysis: AnalysisConfig) -> str:
    lines = ["# Multi-Omics Factor Method Comparison", ""]
    lines.append("## Settings")
    lines.append("")
    lines.append(f"- factors per method: {analysis.n_factors}")
    lines.append(f"- top features per factor for mixing: {analysis.top_n}")
    lines.append(f"- variable features kept per view: {analysis.top_variable or 'all'}")
    lines.append(f"- mixed factor: no view above {analysis.mixed_threshold:.0%} of top features")
    lines.append(f"- association: mixed model with random subject intercept, BH q < {analysis.fdr_alpha}")
    lines.append("")
    lines.append("## Datasets")
    lines.append("")
    lines.append("| dataset | n_samples | views | methods | skipped |")
    lines.append("|---|---:|---|---|---|")
    for r in reports:
        views = ", ".join(f"{k} ({v})" for k, v in r.views.items())
        skipped = ", ".join(r.skipped_methods) or "-"
        lines.append(f"| {r.dataset} | {r.n_samples} | {views} | {', '.join(r.results)} | {skipped} |")
    lines.append("")

    for r in reports:
        lines.append(f"## {r.dataset}")
        lines.append("")
        lines.append("### Feature-type mixing")
        lines.append("")
        lines.append("| method | n_factors | mean_mixing | median_mixing | n_mixed |")
        lines.append("|---|---:|---:|---:|---:|")
        for _, row in r.mixing_summary.iterrows():
            lines.append(
                f"| {row['method']} | {row['n_factors']} | {row['mean_mixing']:.3f} | {row['median_mixing']:.3f} | {row['n_mixed']} |"
            )
        lines.append("")
        lines.append("### Method similarity (mean best |r|)")
        lines.append("")
        cols = list(r.similarity.columns)
        lines.append("| | " + " | ".join(cols) + " |")
        lines.append("|---|" + "---:|" * len(cols))
        for idx, row in r.similarity.iterrows():
            lines.append(f"| {idx} | " + " | ".join(f"{v:.3f}" for v in row.values) + " |")
        lines.append("")
        lines.append("### Significant associations")
        lines.append("")
        sig = r.association[r.association["significant"]].sort_values("qvalue")
        if sig.empty:
            lines.append("None.")
        else:
            lines.append("| method | factor | covariate | model | coef | qvalue |")
            lines.append("|---|---|---|---|---:|---:|")
            for _, row in sig.iterrows():
                lines.append(
                    f"| {row['method']} | {row['factor']} | {row['covariate']} | {row['model']} | {row['coef']:.3f} | {row['qvalue']:.2e} |"
                )
        lines.append("")
    return "\n".join(lines)


def run_all(
    configs: dict[str, DatasetConfig],
    analysis: AnalysisConfig,
    paths: dict[str, Path] | None = None,
) -> tuple[list[DatasetReport], list[Path]]:
    """Run and write every dataset, then the combined Markdown report."""
    paths = default_paths() if paths is None else paths
    reports: list[DatasetReport] = []
    written: list[Path] = []
    for config in configs.values():
        report = run_dataset(config, analysis, paths)
        written.extend(write_report(report, paths["results_tables"], paths["results_figures"]))
        reports.append(report)

    md_path = paths["results_tables"] / "factor_comparison_report.md"
    md_path.parent.mkdir(parents=True, exist_ok=True)
    md_path.write_text(to_markdown(reports, analysis), encoding="utf-8")
    written.append(md_path)
    return reports, written


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    paths = default_paths()
    configs = load_dataset_configs(paths["configs"] / "datasets.toml")
    _, written = run_all(configs, AnalysisConfig(), paths)
    print(f"Wrote {len(written)} files under {paths['repo_root'] / 'results'}")


if __name__ == "__main__":
    main()
