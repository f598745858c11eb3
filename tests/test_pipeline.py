import logging
from pathlib import Path

import pandas as pd
import pytest
from matplotlib.figure import Figure

from conftest import write_mofa_file
from omicfactors.config import AnalysisConfig, DatasetConfig
from omicfactors.pipelines.compare import run_all, run_dataset, to_markdown, write_report
from omicfactors.plots.figures import plot_correlation_heatmap, plot_pca_scree
from omicfactors.preprocess.transforms import align_samples, concat_views, filter_top_variable, prepare_dataset


def _paths(tmp_path: Path) -> dict[str, Path]:
    return {
        "repo_root": tmp_path,
        "data_raw": tmp_path / "data" / "raw",
        "data_processed": tmp_path / "data" / "processed",
        "results_tables": tmp_path / "results" / "tables",
        "results_figures": tmp_path / "results" / "figures",
        "configs": tmp_path / "configs",
    }


def _write_dataset(paths: dict[str, Path], views: dict[str, pd.DataFrame], metadata: pd.DataFrame) -> DatasetConfig:
    raw = paths["data_raw"] / "demo"
    raw.mkdir(parents=True)
    for name, df in views.items():
        df.to_csv(raw / f"{name}.csv", index_label="sample")
    metadata.to_csv(raw / "metadata.csv", index=False)
    processed = paths["data_processed"] / "demo"
    processed.mkdir(parents=True)
    write_mofa_file(processed / "mofa.hdf5", views, n_factors=4)
    return DatasetConfig(
        name="demo",
        views=list(views),
        label_column="diagnosis",
        case_values=["disease"],
        subject_column="subject",
        time_column="visit",
    )


def test_align_filter_and_concat(omics_views) -> None:
    views = {k: v.copy() for k, v in omics_views.items()}
    views["protein"] = views["protein"].iloc[2:]
    aligned, _ = align_samples(views)
    assert aligned["rna"].index.tolist() == aligned["protein"].index.tolist()
    assert aligned["rna"].shape[0] == 28

    with pytest.raises(ValueError, match="No samples"):
        align_samples({"a": views["rna"].iloc[:2], "b": views["rna"].iloc[2:4]})


    X = views["rna"].assign(flat=1.0)
    kept = filter_top_variable(X, 5)
    assert kept.shape[1] == 5
    assert "flat" not in filter_top_variable(X, 0).columns

    joined, types = concat_views(aligned, block_scale=True)
    assert joined.shape == (28, 20)
    assert types["rna:rna_0"] == "rna"
    assert joined.columns[-1] == "protein:protein_7"


def test_prepare_dataset_standardizes(omics_views) -> None:
    data = prepare_dataset("demo", omics_views, None, AnalysisConfig(top_variable=5, block_scale=False))
    assert data.X.shape == (30, 10)
    assert data.X.std().round(6).eq(1.0).all()


def test_run_dataset_end_to_end(tmp_path: Path, omics_views, sample_metadata) -> None:
    paths = _paths(tmp_path)
    config = _write_dataset(paths, omics_views, sample_metadata)
    analysis = AnalysisConfig(
        n_factors=3,
        top_n=5,
        top_variable=0,
        methods=("PCA", "FA", "MOFA", "MAUI"),
    )

    report = run_dataset(config, analysis, paths)
    assert list(report.results) == ["PCA", "FA", "MOFA"]
    assert "MAUI" in report.skipped_methods
    assert report.n_samples == 30
    assert report.views == {"rna": 12, "protein": 8}
    assert set(report.correlations) == {("PCA", "FA"), ("PCA", "MOFA"), ("FA", "MOFA")}
    assert report.similarity.shape == (3, 3)
    assert set(report.mixing_summary["method"]) == {"PCA", "FA", "MOFA"}
    assert set(report.association["covariate"]) == {"label", "time"}
    assert report.association.shape[0] == 3 * 3 * 2
    assert (paths["data_processed"] / "demo" / "pca_loadings.csv").exists()

    written = write_report(report, paths["results_tables"], paths["results_figures"])
    assert all(p.exists() for p in written)
    assert (paths["results_figures"] / "demo_pca_scree.png").exists()

    md = to_markdown([report], analysis)
    assert "## demo" in md
    assert "Feature-type mixing" in md


def test_run_all_writes_markdown(tmp_path: Path, omics_views, sample_metadata) -> None:
    paths = _paths(tmp_path)
    config = _write_dataset(paths, omics_views, sample_metadata)
    analysis = AnalysisConfig(n_factors=2, top_n=4, top_variable=0, methods=("PCA", "AE"), ae_epochs=5)

    reports, written = run_all({"demo": config}, analysis, paths)
    assert len(reports) == 1
    assert written[-1].name == "factor_comparison_report.md"
    assert written[-1].read_text(encoding="utf-8").startswith("# Multi-Omics Factor Method Comparison")


def test_align_samples_logs_metadata_drops(omics_views, sample_metadata, caplog) -> None:
    meta = sample_metadata.set_index("sample")
    views = {k: v.iloc[5:] for k, v in omics_views.items()}
    with caplog.at_level(logging.INFO, logger="omicfactors.preprocess.transforms"):
        aligned, meta_out = align_samples(views, meta)
    assert meta_out.shape[0] == 25
    assert meta_out.index.tolist() == aligned["rna"].index.tolist()
    assert "Metadata: dropping 5 samples" in caplog.text


def test_figures_create_parent_dirs_at_160_dpi(tmp_path: Path, monkeypatch) -> None:
    saved = []
    real_savefig = Figure.savefig

    def recording_savefig(self, fname, *args, **kwargs):
        saved.append((Path(fname), kwargs.get("dpi")))
        return real_savefig(self, fname, *args, **kwargs)

    monkeypatch.setattr(Figure, "savefig", recording_savefig)
    corr = pd.DataFrame([[0.9, -0.1], [0.2, 0.7]], index=["PC1", "PC2"], columns=["FA1", "FA2"])
    heatmap = tmp_path / "figures" / "demo" / "pca_fa.png"
    scree = tmp_path / "other" / "scree.png"

    plot_correlation_heatmap(corr, "PCA vs FA", heatmap)
    plot_pca_scree(pd.Series([0.5, 0.3, 0.2], index=["PC1", "PC2", "PC3"]), "demo", scree)

    assert heatmap.exists() and heatmap.stat().st_size > 0
    assert scree.exists()
    assert saved == [(heatmap, 160), (scree, 160)]
