from __future__ import annotations

import numpy as np
from statsmodels.stats.multitest import multipletests


def bh_adjust(p: np.ndarray) -> np.ndarray:
    """
    Benjamini-Hochberg adjusted p-values.

    NaN entries are left out of the family and stay NaN. A 2D array is
    adjusted per column (n_features x n_contrasts).
    """
    p = np.asarray(p, dtype=float)
    if p.ndim == 2:
        return np.column_stack([bh_adjust(p[:, j]) for j in range(p.shape[1])]) if p.shape[1] else p.copy()
    if p.ndim != 1:
        raise ValueError(f"Expected 1D or 2D p-value array, got shape {p.shape}")

    q = np.full_like(p, np.nan)
    ok = np.isfinite(p)
    if ok.any():
        q[ok] = multipletests(p[ok], method="fdr_bh")[1]
    return q
