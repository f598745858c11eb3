"""Figures for the factor comparison report."""

from __future__ import annotations

from pathlib import Path

import matplotlib
import numpy as np
import pandas as pd

matplotlib.use("Agg")
import matplotlib.pyplot as plt

VIEW_COLORS = ["#1f77b4", "#ff7f0e", "#2ca02c", "#d62728", "#9467bd", "#8c564b", "#e377c2"]


def _save(fig, out_path: Path) -> None:
    fig.tight_layout()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out_path, dpi=160)
    plt.close(fig)


def _heatmap(ax, values: pd.DataFrame, vmin: float, vmax: float, cmap: str, annotate: bool):
    im = ax.imshow(values.values.astype(float), cmap=cmap, vmin=vmin, vmax=vmax, aspect="auto")
    ax.set_xticks(np.arange(values.shape[1]))
    ax.set_xticklabels(values.columns, rotation=90)
    ax.set_yticks(np.arange(values.shape[0]))
    ax.set_yticklabels(values.index)
    if annotate:
        for i in range(values.shape[0]):
            for j in range(values.shape[1]):
                v = values.iat[i, j]
                if np.isfinite(v):
                    ax.text(j, i, f"{v:.2f}", ha="center", va="center", fontsize=7)
    return im


def plot_correlation_heatmap(corr: pd.DataFrame, title: str, out_path: Path) -> None:
    """Signed factor-factor correlation between two methods."""
    fig, ax = plt.subplots(figsize=(1.0 + 0.5 * corr.shape[1], 1.0 + 0.45 * corr.shape[0]))
    im = _heatmap(ax, corr, vmin=-1.0, vmax=1.0, cmap="RdBu_r", annotate=max(corr.shape) <= 15)
    fig.colorbar(im, ax=ax, label="correlation")
    ax.set_title(title)
    _save(fig, out_path)


def plot_method_similarity(similarity: pd.DataFrame, dataset: str, out_path: Path) -> None:
    """Mean best-match absolute correlation between every pair of methods."""
    fig, ax = plt.subplots(figsize=(5.5, 4.8))
    im = _heatmap(ax, similarity, vmin=0.0, vmax=1.0, cmap="viridis", annotate=True)
    fig.colorbar(im, ax=ax, label="mean best |r|")
    ax.set_title(f"{dataset}: Method Similarity")
    _save(fig, out_path)


def plot_view_composition(per_factor: pd.DataFrame, views: list[str], dataset: str, out_path: Path) -> None:
    """Stacked bars of view fractions among top-weighted features, one panel per method."""
    methods = list(dict.fromkeys(per_factor["method"]))
    fig, axes = plt.subplots(len(methods), 1, figsize=(10, 2.8 * len(methods)), squeeze=False)
    for i, method in enumerate(methods):
        ax = axes[i, 0]
        sub = per_factor[per_factor["method"] == method]
        x = np.arange(len(sub))
        bottom = np.zeros(len(sub))
        for j, view in enumerate(views):
            vals = sub[view].to_numpy(dtype=float) if view in sub else np.zeros(len(sub))
            ax.bar(x, vals, bottom=bottom, color=VIEW_COLORS[j % len(VIEW_COLORS)], label=view)
            bottom += vals
        ax.plot(x, sub["mixing"].to_numpy(dtype=float), color="black", marker="o", linewidth=1.2, label="mixing")
        ax.set_xticks(x)
        ax.set_xticklabels(sub["factor"], rotation=90)
        ax.set_ylim(0.0, 1.05)
        ax.set_ylabel("fraction")
        ax.set_title(f"{dataset}: {method} top-feature view composition")
        ax.legend(ncols=len(views) + 1, fontsize=7, loc="upper right")
    _save(fig, out_path)


def plot_association(assoc: pd.DataFrame, dataset: str, out_path: Path) -> None:
    """Heatmap of -log10(q) for every factor and covariate."""
    if assoc.empty:
        return
    data = assoc.assign(score=-np.log10(assoc["qvalue"].clip(lower=1e-300)))
    data["row"] = data["method"] + ":" + data["factor"] if "method" in data else data["factor"]
    pivot = data.pivot_table(index="row", columns="covariate", values="score", sort=False)
    if pivot.empty:
        return
    fig, ax = plt.subplots(figsize=(4.5, 1.0 + 0.22 * pivot.shape[0]))
    vmax = max(2.0, float(np.nanmax(pivot.values)) if np.isfinite(pivot.values).any() else 2.0)
    im = _heatmap(ax, pivot, vmin=0.0, vmax=vmax, cmap="magma_r", annotate=False)
    fig.colorbar(im, ax=ax, label="-log10(q)")
    ax.set_title(f"{dataset}: Factor-Metadata Association")
    _save(fig, out_path)


def plot_pca_scree(ratio: pd.Series, dataset: str, out_path: Path) -> None:
    """Explained variance ratio per PC with the cumulative curve."""
    cum = np.cumsum(ratio.values)
    k = np.arange(1, len(ratio) + 1)

    fig, ax1 = plt.subplots(figsize=(9, 4.8))
    ax1.bar(k, ratio.values, color="#4c72b0", alpha=0.85, label="Explained variance ratio")
    ax1.set_xlabel("Principal Component")
    ax1.set_ylabel("Explained Variance Ratio")
    ax1.set_xticks(k)
    ax1.grid(axis="y", alpha=0.25)

    ax2 = ax1.twinx()
    ax2.plot(k, cum, color="#dd8452", marker="o", linewidth=2.0, label="Cumulative explained variance")
    ax2.set_ylabel("Cumulative Explained Variance")
    ax2.set_ylim(0.0, 1.02)

    lines_1, labels_1 = ax1.get_legend_handles_labels()
    lines_2, labels_2 = ax2.get_legend_handles_labels()
    ax1.legend(lines_1 + lines_2, labels_1 + labels_2, loc="lower right")
    ax1.set_title(f"{dataset}: PCA Scree Plot")
    _save(fig, out_path)
