import numpy as np
from omicsflux.utils.utils import log_time

@log_time("Apply Contrasts")
def apply_contrasts(fit_results, contrast_matrix, contrast_names=None):
    """
    Applies contrast matrix to fitted model results.

    Parameters:
    - fit_results: output of LinearModelFitter.get_results()
    - contrast_matrix: shape (p x m) → p = design coefficients, m = contrasts
    - contrast_names: list of contrast names, optional

    Returns:
    - estimates: (n_features x m) contrast estimates (log ratios)
    - unscaled_variances: (n_features x m), c' (X'X)^-1 c per row
    - contrast_names: list of str
    """
    B = fit_results["coefficients"]      # (n_features x p)
    XtX_inv = fit_results["xtx_inv"]     # (n_features x p x p), per-row observed design

    C = np.asarray(contrast_matrix, dtype=float)
    if C.ndim == 1:
        C = C[:, None]
    if C.shape[0] != B.shape[1]:
        raise ValueError(f"Contrast matrix has {C.shape[0]} rows, design has {B.shape[1]} coefficients")

    # Log ratios
    estimates = B @ C  # (n_features x m)

    # v_j = c_j' (X'X)^-1 c_j for each row
    unscaled = np.einsum("pj,npq,qj->nj", C, XtX_inv, C)

    contrast_names = contrast_names or [f"contrast_{i}" for i in range(C.shape[1])]
    return estimates, unscaled, contrast_names
