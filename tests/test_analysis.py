from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from omicfactors.analysis.association import associate_factors, fit_factor_association, harmonize_metadata
from omicfactors.analysis.correlation import (
    best_matches,
    cross_correlation,
    loading_correlation,
    method_similarity,
)
from omicfactors.analysis.mixing import (
    mixing_scores,
    summarize_mixing,
    top_features,
    type_composition,
    view_weight_share,
)
from omicfactors.analysis.reconstruction import per_factor_r2, reconstruction_metrics
from omicfactors.config import DatasetConfig
from omicfactors.data_models import FactorResult
from omicfactors.io.load import load_metadata


def _loadings() -> tuple[pd.DataFrame, pd.Series]:
    cols = ["a:1", "a:2", "b:1", "b:2"]
    L = pd.DataFrame(
        [[5.0, -4.0, 0.1, 0.2], [5.0, 0.1, -4.0, 0.2]],
        index=["F1", "F2"],
        columns=cols,
    )
    types = pd.Series({"a:1": "a", "a:2": "a", "b:1": "b", "b:2": "b"})
    return L, types


def test_top_features_and_composition() -> None:
    L, types = _loadings()
    assert top_features(L, "F1", 2).tolist() == ["a:1", "a:2"]
    assert top_features(L, "F2", 2).tolist() == ["a:1", "b:1"]

    comp = type_composition(L, types, top_n=2)
    assert comp.loc["F1"].tolist() == [1.0, 0.0]
    assert comp.loc["F2"].tolist() == [0.5, 0.5]

    scores = mixing_scores(comp)
    assert scores["F1"] == pytest.approx(0.0)
    assert scores["F2"] == pytest.approx(1.0)

    with pytest.raises(ValueError):
        top_features(L, "F1", 0)


def test_single_view_mixing_is_zero() -> None:
    comp = pd.DataFrame({"a": [1.0, 1.0]}, index=["F1", "F2"])
    assert mixing_scores(comp).tolist() == [0.0, 0.0]


def test_view_weight_share_rows_sum_to_one() -> None:
    L, types = _loadings()
    share = view_weight_share(L, types)
    np.testing.assert_allclose(share.sum(axis=1).values, [1.0, 1.0])
    assert share.loc["F1", "a"] > 0.99


def test_summarize_mixing_counts_mixed_factors() -> None:
    L, types = _loadings()
    result = FactorResult(
        method="PCA",
        transformed=pd.DataFrame(np.zeros((3, 2)), columns=["F1", "F2"]),
        loadings=L,
        feature_types=types,
    )
    per_factor, summary = summarize_mixing({"PCA": result}, top_n=2, threshold=0.9)
    assert per_factor["dominant_view"].tolist() == ["a", "a"]
    assert summary.loc[0, "n_mixed"] == 1
    assert summary.loc[0, "mean_mixing"] == pytest.approx(0.5)


def test_cross_correlation_and_best_matches() -> None:
    rng = np.random.default_rng(0)
    base = rng.normal(size=(20, 2))
    Z1 = pd.DataFrame(base, columns=["PC1", "PC2"], index=[f"s{i}" for i in range(20)])
    Z2 = pd.DataFrame(
        np.column_stack([base[:, 1], -base[:, 0]]),
        columns=["FA1", "FA2"],
        index=Z1.index,
    ).iloc[::-1]

    corr = cross_correlation(Z1, Z2)
    assert corr.loc["PC1", "FA2"] == pytest.approx(-1.0)
    assert corr.loc["PC2", "FA1"] == pytest.approx(1.0)

    spearman = cross_correlation(Z1, Z2, method="spearman")
    assert spearman.loc["PC1", "FA2"] == pytest.approx(-1.0)

    bm = best_matches(corr)
    assert bm["match"].tolist() == ["FA2", "FA1"]
    assert bm["abs_corr"].tolist() == pytest.approx([1.0, 1.0])

    with pytest.raises(ValueError):
        cross_correlation(Z1.iloc[:2], Z2)
    with pytest.raises(ValueError):
        cross_correlation(Z1, Z2, method="kendall")


def test_method_similarity_and_loading_correlation() -> None:
    rng = np.random.default_rng(1)
    idx = [f"s{i}" for i in range(15)]
    Z = pd.DataFrame(rng.normal(size=(15, 2)), index=idx, columns=["PC1", "PC2"])
    L, types = _loadings()
    a = FactorResult("PCA", Z, L, types)
    b = FactorResult("FA", Z.rename(columns={"PC1": "FA1", "PC2": "FA2"}), L.rename(index={"F1": "G1", "F2": "G2"}), types)

    sim = method_similarity({"PCA": a, "FA": b})
    assert sim.loc["PCA", "PCA"] == 1.0
    assert sim.loc["PCA", "FA"] == pytest.approx(1.0)

    lc = loading_correlation(a.loadings, b.loadings)
    assert lc.shape == (2, 2)
    assert lc.loc["F1", "G1"] == pytest.approx(1.0)


def test_harmonize_metadata(sample_metadata) -> None:
    meta = sample_metadata.set_index("sample")
    meta.loc["S05", "diagnosis"] = np.nan
    config = DatasetConfig(
        name="demo",
        views=["rna"],
        label_column="diagnosis",
        case_values=["disease"],
        subject_column="subject",
        time_column="visit",
    )
    out = harmonize_metadata(meta, config)
    assert "S05" not in out.index
    assert out.loc["S00", "label"] == 1
    assert out.loc["S03", "label"] == 0
    assert out.loc["S02", "time"] == 8.0
    assert out.loc["S04", "subject"] == "P1"

    no_subject = DatasetConfig(name="demo", views=["rna"], label_column="diagnosis", case_values=["disease"])
    out2 = harmonize_metadata(meta, no_subject)
    assert out2["subject"].nunique() == len(out2)
    assert "time" not in out2.columns


def test_harmonize_metadata_numeric_labels_with_blanks(tmp_path: Path) -> None:
    path = tmp_path / "metadata.csv"
    path.write_text("sample,disease\nA,1\nB,0\nC,1\nD,\nE,0\n")
    config = DatasetConfig.from_dict("demo", {"views": ["rna"], "label_column": "disease", "case_values": [1]})

    meta = load_metadata(path, config)
    assert meta["disease"].dtype == float
    out = harmonize_metadata(meta, config)
    assert out.index.tolist() == ["A", "B", "C", "E"]
    assert out["label"].tolist() == [1, 0, 1, 0]

    as_text = DatasetConfig(name="demo", views=["rna"], label_column="disease", case_values=["1.0"])
    assert harmonize_metadata(meta, as_text)["label"].tolist() == [1, 0, 1, 0]


def _association_inputs():
    rng = np.random.default_rng(5)
    rows = []
    for s in range(12):
        label = s % 2
        subject_effect = rng.normal(0.0, 0.3)
        for t in range(3):
            rows.append(
                {
                    "sample": f"P{s}_T{t}",
                    "subject": f"P{s}",
                    "label": label,
                    "time": float(t),
                    "F1": 2.0 * label + subject_effect + rng.normal(0.0, 0.1),
                    "F2": 1.5 * t + subject_effect + rng.normal(0.0, 0.1),
                }
            )
    df = pd.DataFrame(rows).set_index("sample")
    return df[["F1", "F2"]], df[["subject", "label", "time"]]


def test_associate_factors_mixed_model() -> None:
    Z, meta = _association_inputs()
    out = associate_factors(Z, meta)
    assert out.shape[0] == 4
    assert set(out["model"]) == {"mixedlm"}

    label_f1 = out[(out["factor"] == "F1") & (out["covariate"] == "label")].iloc[0]
    assert label_f1["coef"] > 0
    assert label_f1["significant"]

    time_f2 = out[(out["factor"] == "F2") & (out["covariate"] == "time")].iloc[0]
    assert time_f2["coef"] > 0
    assert time_f2["qvalue"] < 0.05


def test_associate_factors_ols_fallback_and_constant_covariate() -> None:
    Z, meta = _association_inputs()
    meta = meta.assign(subject=meta.index, time=1.0)
    out = associate_factors(Z, meta)
    assert set(out["covariate"]) == {"label"}
    assert set(out["model"]) == {"ols"}

    row = fit_factor_association(pd.concat([Z, meta], axis=1).iloc[:2], "F1", "label")
    assert row["model"] is None
    assert np.isnan(row["pvalue"])


def test_reconstruction_metrics_and_per_factor_r2() -> None:
    y = pd.DataFrame({"a": [1.0, 2.0, 3.0], "b": [2.0, 4.0, 6.0]})
    m = reconstruction_metrics(y, y)
    assert m["mse"] == 0.0
    assert m["r2"] == 1.0

    idx = [f"s{i}" for i in range(6)]
    z = np.array([-2.0, -1.0, 0.0, 1.0, 2.0, 3.0])
    view = pd.DataFrame({"g1": 2.0 * z, "g2": -z + 1.0}, index=idx)
    Z = pd.DataFrame({"F1": z, "F2": [1.0, -1.0, 1.0, -1.0, 1.0, -1.0]}, index=idx)
    r2 = per_factor_r2({"rna": view}, Z)
    assert r2.loc["F1", "rna"] == pytest.approx(1.0)
    assert r2.loc["F2", "rna"] < 0.5


def test_associate_factors_keeps_failed_fits_as_nan_rows(monkeypatch) -> None:
    from omicfactors.analysis import association

    real_fit = association.fit_factor_association

    def flaky_fit(df, factor, covariate, group="subject"):
        if factor == "F2":
            raise np.linalg.LinAlgError("Singular matrix")
        return real_fit(df, factor, covariate, group)

    monkeypatch.setattr(association, "fit_factor_association", flaky_fit)
    Z, meta = _association_inputs()
    out = associate_factors(Z, meta)

    failed = out[out["factor"] == "F2"]
    assert len(failed) == 2
    assert set(failed["model"]) == {"failed"}
    assert failed[["coef", "std_err", "pvalue", "qvalue"]].isna().all().all()
    assert not failed["significant"].any()
    assert not failed["converged"].any()
    assert set(out.loc[out["factor"] == "F1", "model"]) == {"mixedlm"}
    assert out.loc[out["factor"] == "F1", "qvalue"].notna().all()
