import pandas as pd
import numpy as np
import patsy
from typing import Optional, Dict, Any

from omicsflux.utils.semantics import GROUP_COLUMN


class DesignMatrixBuilder:
    def __init__(
        self,
        sample_metadata: pd.DataFrame,
        config: Optional[Dict[str, Any]] = None,
    ):
        """
        Parameters:
        - sample_metadata: one row per sample, in matrix column order
        - config: {"group_column", "group_a", "group_b"}
        """
        self.meta = sample_metadata.copy()
        self.config = config or {}
        self.formula: Optional[str] = None
        self.design_matrix: Optional[np.ndarray] = None
        self.design_info: Optional[patsy.DesignInfo] = None

    def build(self):
        """Intercept plus one treatment column (1 for group_a, 0 for the group_b baseline)."""
        group_col = self.config.get("group_column", GROUP_COLUMN)
        group_a = self.config.get("group_a")
        group_b = self.config.get("group_b")
        if group_col not in self.meta.columns:
            raise ValueError(f"{group_col} not found in sample metadata.")

        labels = self.meta[group_col].astype(str)
        if group_a is None or group_b is None:
            levels = sorted(labels.unique())
            if len(levels) != 2:
                raise ValueError(f"Need exactly 2 groups without explicit group_a/group_b; found {levels}")
            group_b, group_a = levels

        unexpected = sorted(set(labels) - {group_a, group_b})
        if unexpected:
            raise ValueError(f"Sample metadata holds groups outside the comparison: {unexpected}")

        # Only the two compared levels, baseline first
        self.meta[group_col] = pd.Categorical(labels, categories=[group_b, group_a])
        self.formula = f"1 + C({group_col}, Treatment(reference={group_b!r}))"
        self.design_df = patsy.dmatrix(self.formula, self.meta, return_type="dataframe")

        self.design_matrix = self.design_df.to_numpy()
        self.design_info = self.design_df.design_info

        return self.design_matrix, self.design_info
