import numpy as np


class ContrastBuilder:
    def __init__(self, design_info, baseline=None):
        """
        Parameters:
        - design_info: patsy DesignInfo object from the design matrix
        - baseline: str (optional), reference level of the treatment coding
        """
        self.design_info = design_info
        self.column_names = design_info.column_names
        self.factor_infos = design_info.factor_infos
        self.levels = self._extract_levels()
        self.baseline = baseline or self.levels[0]

    def _extract_levels(self):
        # Support only one categorical factor for now
        for factor, info in self.factor_infos.items():
            if info.type == "categorical":
                return [str(c) for c in info.categories]
        raise ValueError("No categorical factor found in design matrix.")

    def _coefficient(self, level):
        """Column index of the treatment coefficient for `level`; None for the baseline."""
        if level == self.baseline:
            return None
        for i, name in enumerate(self.column_names):
            if name.endswith(f"[T.{level}]"):
                return i
        raise ValueError(f"Level '{level}' has no coefficient in {self.column_names}")

    def _contrast_vector(self, group1, group2):
        """
        Create contrast vector for group1 - group2
        """
        vec = np.zeros(len(self.column_names))

        # Intercept is always 0
        i1 = self._coefficient(group1)
        i2 = self._coefficient(group2)
        if i1 is not None:
            vec[i1] += 1
        if i2 is not None:
            vec[i2] -= 1
        return vec

    def make_contrast(self, group1, group2):
        """
        Contrast group1 - group2.

        Returns:
        - contrast_matrix: np.ndarray (p x 1)
        - contrast_names: ["group1_vs_group2"]
        """
        for g in (group1, group2):
            if g not in self.levels:
                raise ValueError(f"Unknown group '{g}'; design levels are {self.levels}")
        vec = self._contrast_vector(group1, group2)
        return vec[:, None], [f"{group1}_vs_{group2}"]
