"""Limma-style moderated t-test between two sample groups.

This module provides:
  - `moderated_t_test`: OLS per row, eBayes variance moderation, BH adjustment,
    ranked result table
  - `run_limma_pipeline`: the same test on a Dataset AnnData, stored in
    `.varm` / `.uns`
"""

import warnings
from dataclasses import dataclass, field
from typing import List, Mapping, Sequence

import anndata as ad
import numpy as np
import pandas as pd

from omicsflux.analysis.ebayes_moderator import EbayesModerator
from omicsflux.analysis.linearmodelfitter import LinearModelFitter
from omicsflux.analysis.statisticaltester import StatisticalTester
from omicsflux.config import AnalysisConfig, GroupAssignment
from omicsflux.design.contrast import apply_contrasts
from omicsflux.design.contrastbuilder import ContrastBuilder
from omicsflux.design.designmatrixbuilder import DesignMatrixBuilder
from omicsflux.utils.errors import ColumnMissingError, FitError
from omicsflux.utils.semantics import GROUP_COLUMN
from omicsflux.utils.utils import log_info, log_time, log_warning


@dataclass
class DifferentialResults:
    table: pd.DataFrame                      # fitted rows, ranked by adj_p_value
    excluded: List[FitError] = field(default_factory=list)
    d0: float = np.nan                       # prior degrees of freedom
    s0: float = np.nan                       # prior variance
    contrast_name: str = ""

    @property
    def n_excluded(self) -> int:
        return len(self.excluded)


@log_time("Moderated t-test")
def moderated_t_test(
    matrix: pd.DataFrame,
    groups: Mapping[str, Sequence[str]],
    group_a: str,
    group_b: str,
) -> DifferentialResults:
    """Test group_a against group_b on every row of a (features × samples) log matrix.

    Only the samples of the two compared groups enter the model; NaN marks
    a missing value. Rows that cannot be fitted are reported in `excluded`.
    """
    assignment = GroupAssignment(
        groups={str(k): tuple(v) for k, v in groups.items()},
        group_a=group_a,
        group_b=group_b,
    )
    samples = list(assignment.comparison_columns)
    absent = [s for s in samples if s not in matrix.columns]
    if absent:
        raise ColumnMissingError(absent, available=list(matrix.columns))

    meta = assignment.sample_metadata(comparison_only=True).loc[samples]
    design, design_info = DesignMatrixBuilder(
        meta, {"group_column": GROUP_COLUMN, "group_a": group_a, "group_b": group_b}
    ).build()
    contrast, names = ContrastBuilder(design_info, baseline=group_b).make_contrast(group_a, group_b)

    values = matrix[samples].to_numpy(dtype=float)       # (n_features x n_samples)
    index = matrix.index

    fit = LinearModelFitter(values.T, design).fit()
    results = fit.get_results()
    estimates, unscaled, names = apply_contrasts(results, contrast, names)

    moderator = EbayesModerator(results["residual_variance"], results["df_residual"])
    d0, s0 = moderator.fit()
    stats = moderator.apply_to_contrasts(estimates, unscaled)

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        ave_expr = np.nanmean(values, axis=1)

    table = pd.DataFrame(
        {
            "log_ratio": estimates[:, 0],
            "ave_expr": ave_expr,
            "t": stats["t_ebayes"][:, 0],
            "p_value": stats["p_ebayes"][:, 0],
            "adj_p_value": stats["q_ebayes"][:, 0],
            "df_total": stats["df_total"],
        },
        index=index,
    )
    missing = StatisticalTester.compute_missingness(
        values, meta[GROUP_COLUMN].tolist(), list(index)
    )
    table = table.join(missing.add_prefix("missing_"))

    table = table[results["fitted"]]
    table = table.sort_values("adj_p_value", kind="mergesort", na_position="last")

    excluded = [FitError(index[e.row], e.reason) for e in results["errors"]]
    log_info(f"{names[0]}: {len(table)} rows tested, {len(excluded)} excluded.")

    return DifferentialResults(
        table=table,
        excluded=excluded,
        d0=d0,
        s0=s0,
        contrast_name=names[0],
    )


@log_time("Analysis pipeline")
def run_limma_pipeline(adata: ad.AnnData, config: AnalysisConfig) -> ad.AnnData:
    """Moderated t-test on `adata.X` (samples × features); results stored on a copy."""
    obs = adata.obs
    labels = obs[GROUP_COLUMN].astype(str)
    groups = {lvl: tuple(obs.index[labels == lvl]) for lvl in dict.fromkeys(labels)}

    for lvl in (config.group_a, config.group_b):
        if len(groups.get(lvl, ())) <= 1:
            log_warning(f"Group '{lvl}' has {len(groups.get(lvl, ()))} sample(s); most rows cannot be fitted.")

    matrix = pd.DataFrame(np.asarray(adata.X, dtype=float).T, index=adata.var_names, columns=adata.obs_names)
    res = moderated_t_test(matrix, groups, config.group_a, config.group_b)

    full = res.table.reindex(adata.var_names)
    out = adata.copy()

    missing_df = StatisticalTester.compute_missingness(
        intensity_matrix=np.asarray(adata.layers["raw"] if "raw" in adata.layers else adata.X, dtype=float).T,
        conditions=labels.tolist(),
        feature_ids=adata.var_names.tolist(),
    )
    StatisticalTester.export_to_anndata(
        out,
        {
            "log_ratio": full["log_ratio"].to_numpy(),
            "t": full["t"].to_numpy(),
            "p": full["p_value"].to_numpy(),
            "q": full["adj_p_value"].to_numpy(),
        },
        contrast_names=[res.contrast_name],
        missingness_df=missing_df,
    )

    out.uns["results"] = res.table
    out.uns["excluded"] = {
        "rows": np.asarray([str(e.row) for e in res.excluded], dtype=str),
        "reasons": np.asarray([e.reason for e in res.excluded], dtype=str),
    }
    out.uns["n_excluded"] = res.n_excluded
    out.uns["ebayes"] = {"d0": float(res.d0), "s0": float(res.s0)}
    out.uns["sig_threshold"] = float(config.sig_threshold)

    n_sig = int((res.table["adj_p_value"] < config.sig_threshold).sum())
    log_info(f"{n_sig} row(s) with adjusted p < {config.sig_threshold}.")
    return out
