from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from conftest import write_mofa_file
from omicfactors.config import AnalysisConfig
from omicfactors.data_models import PreparedData
from omicfactors.factors import METHODS, build_method
from omicfactors.factors.ae import (
    AEMethod,
    Autoencoder,
    decoder_jacobian,
    loadings as ae_loadings,
    reconstruction_mse,
    select_autoencoder_by_validation,
)
from omicfactors.factors.fa import fit_fa, reconstruct as reconstruct_fa, transform as transform_fa
from omicfactors.factors.maui import correlation_loadings
from omicfactors.factors.pca import fit_pca, loadings as pca_loadings, reconstruct as reconstruct_pca
from omicfactors.factors.pca import transform as transform_pca
from omicfactors.preprocess.transforms import prepare_dataset


def _prepared(omics_views):
    return prepare_dataset("demo", omics_views, None, AnalysisConfig(top_variable=0))


def test_pca_and_fa_smoke(omics_views) -> None:
    X = _prepared(omics_views).X

    pca = fit_pca(X, n_components=3)
    scores = transform_pca(pca, X)
    assert scores.columns.tolist() == ["PC1", "PC2", "PC3"]
    L = pca_loadings(pca, list(X.columns))
    assert L.shape == (3, 20)
    assert reconstruct_pca(pca, scores, list(X.columns)).shape == X.shape

    fa = fit_fa(X, n_components=2, random_state=1)
    f = transform_fa(fa, X)
    assert f.shape == (30, 2)
    assert reconstruct_fa(fa, f, list(X.columns)).shape == X.shape


def test_n_components_bounds(omics_views) -> None:
    X = _prepared(omics_views).X
    with pytest.raises(ValueError, match="n_components"):
        fit_pca(X, n_components=0)
    with pytest.raises(ValueError, match="n_components"):
        fit_fa(X, n_components=31)


def test_autoencoder_smoke(omics_views) -> None:
    X = _prepared(omics_views).X
    ae = Autoencoder(n_latent=2, epochs=20, random_state=1).fit(X)
    z = ae.encode(X)
    X_hat = ae.decode(z)
    assert z.columns.tolist() == ["AE1", "AE2"]
    assert X_hat.shape == X.shape
    assert X_hat.columns.tolist() == list(X.columns)
    assert np.isfinite(reconstruction_mse(ae, X))

    jac = decoder_jacobian(ae, X.iloc[:5])
    assert jac.shape == (5, 2, 20)
    mean_jac = decoder_jacobian(ae, X.iloc[:5], average=True)
    np.testing.assert_allclose(mean_jac, jac.mean(axis=0))
    assert ae_loadings(ae, X).shape == (2, 20)

    with pytest.raises(ValueError, match="not fitted"):
        Autoencoder(n_latent=2).encode(X)


def test_ae_validation_selection_smoke(omics_views) -> None:
    X = _prepared(omics_views).X
    model, summary = select_autoencoder_by_validation(
        X.iloc[:22],
        X.iloc[22:],
        latent_grid=[1, 2, 3],
        epochs=10,
        random_state=1,
    )
    assert summary.shape[0] == 3
    assert int(summary.iloc[0]["n_latent"]) in [1, 2, 3]
    assert model.decode(model.encode(X.iloc[22:])).shape == (8, 20)


def test_correlation_loadings_values() -> None:
    X = pd.DataFrame(
        {"a": [1.0, 2.0, 3.0, 4.0], "b": [4.0, 3.0, 2.0, 1.0], "c": [1.0, 1.0, 1.0, 1.0]},
        index=list("wxyz"),
    )
    Z = pd.DataFrame({"MAUI1": [0.0, 1.0, 2.0, 3.0]}, index=list("zyxw"))
    L = correlation_loadings(X, Z)
    assert L.shape == (1, 3)
    assert L.loc["MAUI1", "a"] == pytest.approx(-1.0)
    assert L.loc["MAUI1", "b"] == pytest.approx(1.0)
    assert L.loc["MAUI1", "c"] == 0.0


def test_registry_and_precomputed_methods(tmp_path: Path, omics_views) -> None:
    data = _prepared(omics_views)
    analysis = AnalysisConfig(n_factors=3)

    for name in ["PCA", "FA"]:
        result = build_method(name, tmp_path).run(data, analysis)
        assert result.method == name
        assert result.transformed.shape == (30, 3)
        assert result.loadings.shape == (3, 20)

    write_mofa_file(tmp_path / "mofa.hdf5", omics_views, n_factors=5)
    mofa = build_method("MOFA", tmp_path).run(data, analysis)
    assert mofa.transformed.columns.tolist() == ["MOFA1", "MOFA2", "MOFA3"]
    assert mofa.loadings.shape == (3, 20)
    assert set(mofa.feature_types.unique()) == {"rna", "protein"}

    with pytest.raises(FileNotFoundError):
        build_method("MAUI", tmp_path).run(data, analysis)

    with pytest.raises(KeyError, match="Unknown factor method"):
        build_method("NMF", tmp_path)

    with pytest.raises(KeyError, match="Available"):
        METHODS["MOFA"]
    with pytest.raises(KeyError, match=r"Available: \['AE', 'FA', 'MAUI', 'MOFA', 'PCA'\]"):
        METHODS["NMF"]
    assert build_method("AE", tmp_path) is METHODS["AE"]


def test_ae_method_rejects_too_many_factors() -> None:
    rng = np.random.default_rng(0)
    X = pd.DataFrame(rng.normal(size=(5, 20)), index=[f"S{i}" for i in range(5)])
    X.columns = [f"rna:g{j}" for j in range(20)]
    data = PreparedData(
        dataset="tiny",
        views={"rna": X},
        X=X,
        feature_types=pd.Series("rna", index=X.columns),
        metadata=None,
    )
    with pytest.raises(ValueError, match="n_components"):
        AEMethod().run(data, AnalysisConfig(n_factors=10, ae_epochs=5))
