"""Nonlinear autoencoder on the concatenated omics matrix, implemented with NumPy."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from omicfactors.config import AnalysisConfig
from omicfactors.data_models import FactorResult, PreparedData
from omicfactors.factors.base import FactorMethod, check_n_components, factor_names

logger = logging.getLogger(__name__)

_PARAM_KEYS = ("w1", "b1", "w2", "b2", "w3", "b3", "w4", "b4")


@dataclass
class Autoencoder:
    """Two-hidden-layer autoencoder with a linear bottleneck and Adam optimization.

    Encoder: x -> h -> z, decoder: z -> h -> x_hat.
    """

    n_latent: int
    activation: str = "tanh"
    learning_rate: float = 1e-3
    epochs: int = 300
    batch_size: int = 64
    hidden_multiplier: int = 8
    hidden_min: int = 32
    l2_penalty: float = 1e-4
    grad_clip: float = 5.0
    validation_split: float = 0.1
    early_stop_patience: int = 30
    beta1: float = 0.9
    beta2: float = 0.999
    eps: float = 1e-8
    random_state: int = 7

    _params: dict[str, np.ndarray] | None = field(default=None, repr=False)
    _columns: list[str] | None = field(default=None, repr=False)
    n_epochs_: int = 0
    best_val_loss_: float = float("nan")

    def fit(self, X: pd.DataFrame) -> "Autoencoder":
        x = X.values.astype(float)
        n_samples, n_features = x.shape
        if self.n_latent <= 0 or self.n_latent > n_features:
            raise ValueError("n_latent must be between 1 and number of features.")

        rng = np.random.default_rng(self.random_state)
        params = self._init_params(n_features, rng)
        m = {k: np.zeros_like(val) for k, val in params.items()}
        v = {k: np.zeros_like(val) for k, val in params.items()}
        t = 0

        val_size = int(n_samples * self.validation_split)
        if 0 < val_size < n_samples:
            perm = rng.permutation(n_samples)
            x_val, x_train = x[perm[:val_size]], x[perm[val_size:]]
        else:
            x_train = x_val = x
        n_train = x_train.shape[0]
        batch_size = n_train if self.batch_size <= 0 else min(self.batch_size, n_train)

        best_loss = np.inf
        best_params = {k: p.copy() for k, p in params.items()}
        stall = 0
        epoch = 0
        for epoch in range(1, self.epochs + 1):
            order = rng.permutation(n_train)
            for start in range(0, n_train, batch_size):
                xb = x_train[order[start : start + batch_size]]
                grads = self._gradients(xb, params)
                t += 1
                for k in _PARAM_KEYS:
                    g = grads[k]
                    if self.grad_clip > 0:
                        g = np.clip(g, -self.grad_clip, self.grad_clip)
                    m[k] = self.beta1 * m[k] + (1.0 - self.beta1) * g
                    v[k] = self.beta2 * v[k] + (1.0 - self.beta2) * (g * g)
                    m_hat = m[k] / (1.0 - self.beta1**t)
                    v_hat = v[k] / (1.0 - self.beta2**t)
                    params[k] -= self.learning_rate * (m_hat / (np.sqrt(v_hat) + self.eps))

            val_loss = float(np.mean((self._reconstruct(x_val, params) - x_val) ** 2))
            if val_loss < best_loss - 1e-8:
                best_loss = val_loss
                best_params = {k: p.copy() for k, p in params.items()}
                stall = 0
            else:
                stall += 1
                if stall >= self.early_stop_patience:
                    break

        self._params = best_params
        self._columns = [str(c) for c in X.columns]
        self.n_epochs_ = epoch
        self.best_val_loss_ = float(best_loss)
        logger.debug("Autoencoder(n_latent=%d) stopped after %d epochs, val mse %.5f", self.n_latent, epoch, best_loss)
        return self

    def encode(self, X: pd.DataFrame) -> pd.DataFrame:
        p = self._fitted_params()
        h1 = self._activate(X.values.astype(float) @ p["w1"] + p["b1"])
        z = h1 @ p["w2"] + p["b2"]
        return pd.DataFrame(z, index=X.index, columns=factor_names("AE", z.shape[1]))

    def decode(self, Z: pd.DataFrame) -> pd.DataFrame:
        p = self._fitted_params()
        h2 = self._activate(Z.values.astype(float) @ p["w3"] + p["b3"])
        X_hat = h2 @ p["w4"] + p["b4"]
        return pd.DataFrame(X_hat, index=Z.index, columns=self._columns)

    def _fitted_params(self) -> dict[str, np.ndarray]:
        if self._params is None or self._columns is None:
            raise ValueError("Model not fitted. Call fit() first.")
        return self._params

    def _init_params(self, n_features: int, rng: np.random.Generator) -> dict[str, np.ndarray]:
        h = max(self.hidden_min, self.n_latent * self.hidden_multiplier)
        shapes = [(n_features, h), (h, self.n_latent), (self.n_latent, h), (h, n_features)]
        params: dict[str, np.ndarray] = {}
        for i, (fan_in, fan_out) in enumerate(shapes, start=1):
            params[f"w{i}"] = rng.normal(0.0, np.sqrt(2.0 / max(fan_in, 1)), size=(fan_in, fan_out))
            params[f"b{i}"] = np.zeros((1, fan_out), dtype=float)
        return params

    def _gradients(self, xb: np.ndarray, p: dict[str, np.ndarray]) -> dict[str, np.ndarray]:
        nb = xb.shape[0]
        h1_pre = xb @ p["w1"] + p["b1"]
        h1 = self._activate(h1_pre)
        z = h1 @ p["w2"] + p["b2"]
        h2_pre = z @ p["w3"] + p["b3"]
        h2 = self._activate(h2_pre)
        x_hat = h2 @ p["w4"] + p["b4"]

        grads: dict[str, np.ndarray] = {}
        dx_hat = (2.0 / nb) * (x_hat - xb)
        grads["w4"] = h2.T @ dx_hat + self.l2_penalty * p["w4"]
        grads["b4"] = dx_hat.sum(axis=0, keepdims=True)

        dh2_pre = (dx_hat @ p["w4"].T) * self._activate_grad(h2_pre)
        grads["w3"] = z.T @ dh2_pre + self.l2_penalty * p["w3"]
        grads["b3"] = dh2_pre.sum(axis=0, keepdims=True)

        dz = dh2_pre @ p["w3"].T
        grads["w2"] = h1.T @ dz + self.l2_penalty * p["w2"]
        grads["b2"] = dz.sum(axis=0, keepdims=True)

        dh1_pre = (dz @ p["w2"].T) * self._activate_grad(h1_pre)
        grads["w1"] = xb.T @ dh1_pre + self.l2_penalty * p["w1"]
        grads["b1"] = dh1_pre.sum(axis=0, keepdims=True)
        return grads

    def _reconstruct(self, x: np.ndarray, p: dict[str, np.ndarray]) -> np.ndarray:
        h1 = self._activate(x @ p["w1"] + p["b1"])
        z = h1 @ p["w2"] + p["b2"]
        h2 = self._activate(z @ p["w3"] + p["b3"])
        return h2 @ p["w4"] + p["b4"]

    def _activate(self, x: np.ndarray) -> np.ndarray:
        if self.activation == "tanh":
            return np.tanh(x)
        if self.activation == "relu":
            return np.maximum(x, 0.0)
        if self.activation == "leaky_relu":
            return np.where(x > 0.0, x, 0.01 * x)
        if self.activation == "sigmoid":
            return 1.0 / (1.0 + np.exp(-x))
        raise ValueError(f"Unsupported activation: {self.activation}")

    def _activate_grad(self, x: np.ndarray) -> np.ndarray:
        if self.activation == "tanh":
            y = np.tanh(x)
            return 1.0 - y * y
        if self.activation == "relu":
            return (x > 0.0).astype(float)
        if self.activation == "leaky_relu":
            return np.where(x < 0.0, 0.01, 1.0)
        if self.activation == "sigmoid":
            y = 1.0 / (1.0 + np.exp(-x))
            return y * (1.0 - y)
        raise ValueError(f"Unsupported activation: {self.activation}")


def reconstruction_mse(model: Autoencoder, X: pd.DataFrame) -> float:
    """Compute reconstruction MSE for a fitted autoencoder on a dataset."""
    x_hat = model.decode(model.encode(X))
    return float(np.mean((x_hat.values - X.values) ** 2))


def decoder_jacobian(model: Autoencoder, X: pd.DataFrame, average: bool = False) -> np.ndarray:
    """Return decoder Jacobian ``d x_hat / d z`` at the encoding of each row in ``X``.

    Output shape is ``(n_samples, n_latent, n_features)``, or
    ``(n_latent, n_features)`` when ``average`` is set.
    """
    p = model._fitted_params()
    z = model.encode(X).values
    g2 = model._activate_grad(z @ p["w3"] + p["b3"])

    n_latent, n_features = p["w2"].shape[1], p["w4"].shape[1]
    if average:
        total = np.zeros((n_latent, n_features), dtype=float)
        for i in range(z.shape[0]):
            total += (p["w3"] * g2[i][None, :]) @ p["w4"]
        return total / max(z.shape[0], 1)

    out = np.zeros((z.shape[0], n_latent, n_features), dtype=float)
    for i in range(z.shape[0]):
        out[i] = (p["w3"] * g2[i][None, :]) @ p["w4"]
    return out


def loadings(model: Autoencoder, X: pd.DataFrame) -> pd.DataFrame:
    """Mean decoder Jacobian over samples as a factors x features frame."""
    jac = decoder_jacobian(model, X, average=True)
    return pd.DataFrame(jac, index=factor_names("AE", jac.shape[0]), columns=model._columns)


def select_autoencoder_by_validation(
    X_train: pd.DataFrame,
    X_val: pd.DataFrame,
    latent_grid: list[int],
    *,
    refit_on_train_val: bool = False,
    **autoencoder_kwargs: Any,
) -> tuple[Autoencoder, pd.DataFrame]:
    """Pick bottleneck size by validation MSE.

    Returns
    -------
    tuple[Autoencoder, pd.DataFrame]
        Fitted best model and per-candidate metrics.
    """
    if len(latent_grid) == 0:
        raise ValueError("latent_grid must contain at least one candidate latent dimension.")

    n_features = X_train.shape[1]
    valid_grid = sorted({k for k in latent_grid if 1 <= k <= n_features})
    if len(valid_grid) == 0:
        raise ValueError(
            f"No valid latent dimensions in grid for n_features={n_features}. "
            "Each candidate must be between 1 and n_features."
        )

    rows: list[dict[str, float | int]] = []
    best_model: Autoencoder | None = None
    best_val_mse = np.inf
    best_k = -1
    for k in valid_grid:
        model = Autoencoder(n_latent=k, **autoencoder_kwargs).fit(X_train)
        train_mse = reconstruction_mse(model, X_train)
        val_mse = reconstruction_mse(model, X_val)
        rows.append({"n_latent": k, "train_mse": train_mse, "val_mse": val_mse})
        if val_mse < best_val_mse - 1e-12:
            best_val_mse, best_k, best_model = val_mse, k, model

    if best_model is None:
        raise RuntimeError("Failed to select autoencoder model from latent grid.")

    if refit_on_train_val:
        merged = pd.concat([X_train, X_val], axis=0)
        best_model = Autoencoder(n_latent=best_k, **autoencoder_kwargs).fit(merged)

    summary = pd.DataFrame(rows).sort_values(["val_mse", "train_mse", "n_latent"]).reset_index(drop=True)
    return best_model, summary


class AEMethod(FactorMethod):
    name = "AE"

    def run(self, data: PreparedData, analysis: AnalysisConfig) -> FactorResult:
        X = data.X
        check_n_components(X, analysis.n_factors)
        model = Autoencoder(
            n_latent=analysis.n_factors,
            epochs=analysis.ae_epochs,
            random_state=analysis.random_state,
        ).fit(X)
        return FactorResult(
            method=self.name,
            transformed=model.encode(X),
            loadings=loadings(model, X),
            feature_types=data.feature_types,
            extras={"reconstruction_mse": reconstruction_mse(model, X), "epochs": model.n_epochs_},
        )
