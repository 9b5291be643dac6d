from typing import Dict, List

import numpy as np
import pandas as pd
from anndata import AnnData


class StatisticalTester:
    """
    Per-feature summaries around the moderated test: missing counts per
    group, and the AnnData layout of the test statistics.
    """

    @staticmethod
    def compute_missingness(
        intensity_matrix: np.ndarray,
        conditions: List[str],
        feature_ids: List[str]
    ) -> pd.DataFrame:
        """
        Count missing values per feature for each condition.

        Args:
            intensity_matrix: Numeric array (n_features × n_samples), NaN = missing.
            conditions: Condition label per sample.
            feature_ids: Feature IDs for the index.

        Returns:
            DataFrame of counts, shape (n_features, n_conditions), columns in
            order of first appearance.
        """
        condition_array = np.array(conditions)
        unique_conditions = list(dict.fromkeys(conditions))

        counts: Dict[str, np.ndarray] = {}
        for cond in unique_conditions:
            mask = condition_array == cond
            sub = np.asarray(intensity_matrix, dtype=float)[:, mask]
            counts[cond] = np.isnan(sub).sum(axis=1)

        return pd.DataFrame(counts, index=feature_ids)

    @staticmethod
    def export_to_anndata(
        adata: AnnData,
        stats_dict: Dict[str, np.ndarray],
        contrast_names: List[str],
        missingness_df: pd.DataFrame,
    ) -> AnnData:
        """
        Stats go to .varm (n_features × n_contrasts), missingness to .uns['missingness'].
        """
        for key, arr in stats_dict.items():
            arr = np.asarray(arr, dtype=float)
            adata.varm[key] = arr[:, None] if arr.ndim == 1 else arr

        adata.uns["contrast_names"] = list(contrast_names)
        adata.uns["missingness"] = missingness_df
        return adata
