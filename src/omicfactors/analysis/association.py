"""Mixed-model association tests between factors and sample metadata."""

from __future__ import annotations

import logging
import re
import warnings

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from statsmodels.stats.multitest import multipletests
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from omicfactors.config import DatasetConfig

logger = logging.getLogger(__name__)

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def _label_key(value: object) -> str:
    """Text form of a label that treats 1, 1.0 and "1.0" alike."""
    if isinstance(value, (int, float, np.integer, np.floating)) and float(value).is_integer():
        return str(int(value))
    text = str(value).strip()
    try:
        number = float(text)
    except ValueError:
        return text
    return str(int(number)) if number.is_integer() else text


def _parse_time(value: object) -> float:
    if isinstance(value, (int, float, np.integer, np.floating)):
        return float(value)
    match = _NUMBER.search(str(value))
    return float(match.group()) if match is not None else np.nan


def harmonize_metadata(metadata: pd.DataFrame, config: DatasetConfig) -> pd.DataFrame:
    """Map dataset-specific metadata onto ``subject``, ``label`` and ``time`` columns.

    Parameters
    ----------
    metadata : pd.DataFrame
        Metadata indexed by sample id, columns already renamed by ``config.rename``.
    config : DatasetConfig
        Column names and case values for this dataset.

    Returns
    -------
    pd.DataFrame
        ``label`` is 1 for case samples and 0 otherwise; samples with no label are
        dropped. Without a subject column each sample is its own subject. ``time`` is
        only present when the dataset has a time column; values like ``"week 4"``
        are parsed to their first number.
    """
    if config.label_column not in metadata.columns:
        raise ValueError(f"Metadata has no label column '{config.label_column}'.")

    raw_label = metadata[config.label_column]
    keep = raw_label.notna()
    if (~keep).any():
        logger.info("%s: dropping %d samples without a label", config.name, int((~keep).sum()))
    meta = metadata.loc[keep]

    out = pd.DataFrame(index=meta.index)
    case_values = {_label_key(v) for v in config.case_values}
    out["label"] = meta[config.label_column].map(_label_key).isin(case_values).astype(int)

    if config.subject_column is not None:
        if config.subject_column not in meta.columns:
            raise ValueError(f"Metadata has no subject column '{config.subject_column}'.")
        out["subject"] = meta[config.subject_column].astype(str)
    else:
        out["subject"] = meta.index.astype(str)

    if config.time_column is not None:
        if config.time_column not in meta.columns:
            raise ValueError(f"Metadata has no time column '{config.time_column}'.")
        out["time"] = meta[config.time_column].map(_parse_time).astype(float)
    return out


def fit_factor_association(
    df: pd.DataFrame,
    factor: str,
    covariate: str,
    group: str = "subject",
) -> dict[str, object]:
    """Fit ``factor ~ covariate`` with a random intercept per ``group``.

    Falls back to OLS when no group has more than one sample.
    """
    groups = df[group] if group in df.columns else pd.Series(df.index.astype(str), index=df.index)
    data = pd.DataFrame({"y": df[factor], "x": df[covariate], "g": groups}).dropna()
    row: dict[str, object] = {
        "factor": factor,
        "covariate": covariate,
        "model": None,
        "coef": np.nan,
        "std_err": np.nan,
        "pvalue": np.nan,
        "n": int(len(data)),
        "n_groups": int(data["g"].nunique()),
        "converged": False,
    }
    if len(data) < 3 or data["x"].nunique() < 2:
        return row

    repeated = bool((data["g"].value_counts() > 1).any())
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", ConvergenceWarning)
        if repeated:
            fit = smf.mixedlm("y ~ x", data, groups=data["g"]).fit(reml=True)
            row["model"] = "mixedlm"
            converged = bool(getattr(fit, "converged", True))
        else:
            fit = smf.ols("y ~ x", data).fit()
            row["model"] = "ols"
            converged = True
    if any(issubclass(w.category, ConvergenceWarning) for w in caught):
        converged = False

    row["coef"] = float(fit.params["x"])
    row["std_err"] = float(fit.bse["x"])
    row["pvalue"] = float(fit.pvalues["x"])
    row["converged"] = converged
    return row


def associate_factors(
    transformed: pd.DataFrame,
    metadata: pd.DataFrame,
    covariates: tuple[str, ...] = ("label", "time"),
    alpha: float = 0.05,
) -> pd.DataFrame:
    """Test every factor against every covariate, with BH q-values per covariate.

    Covariates missing from ``metadata`` or constant over the shared samples are skipped.
    Factor columns are z-scored first so coefficients are comparable across methods.
    """
    shared = transformed.index.intersection(metadata.index)
    if len(shared) < 3:
        raise ValueError(f"Need at least 3 samples with both factors and metadata, got {len(shared)}.")

    Z = transformed.loc[shared]
    Z = (Z - Z.mean(axis=0)) / Z.std(axis=0).replace(0.0, 1.0)
    meta = metadata.loc[shared]

    usable = []
    for cov in covariates:
        if cov not in meta.columns:
            continue
        if meta[cov].dropna().nunique() < 2:
            logger.info("Skipping covariate %s: constant over %d samples", cov, len(shared))
            continue
        usable.append(cov)

    df = pd.concat([Z, meta[[c for c in meta.columns if c not in Z.columns]]], axis=1)
    rows = []
    for cov in usable:
        for factor in Z.columns:
            try:
                rows.append(fit_factor_association(df, factor, cov))
            except (np.linalg.LinAlgError, ValueError) as exc:
                logger.warning("Association fit failed for %s ~ %s: %s", factor, cov, exc)
                rows.append(
                    {
                        "factor": factor,
                        "covariate": cov,
                        "model": "failed",
                        "coef": np.nan,
                        "std_err": np.nan,
                        "pvalue": np.nan,
                        "n": int(df[[factor, cov]].dropna().shape[0]),
                        "n_groups": int(df["subject"].nunique()) if "subject" in df else 0,
                        "converged": False,
                    }
                )

    columns = ["factor", "covariate", "model", "coef", "std_err", "pvalue", "n", "n_groups", "converged"]
    out = pd.DataFrame(rows, columns=columns)
    out["qvalue"] = np.nan
    for cov in usable:
        mask = (out["covariate"] == cov) & out["pvalue"].notna()
        if mask.any():
            out.loc[mask, "qvalue"] = multipletests(out.loc[mask, "pvalue"].values, method="fdr_bh")[1]
    out["significant"] = out["qvalue"] < alpha
    return out
