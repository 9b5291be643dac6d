import numpy as np
from scipy.special import polygamma, digamma


def squeeze_var_input_filter(s2: np.ndarray, df) -> tuple[np.ndarray, np.ndarray]:
    s2 = np.asarray(s2, dtype=float)
    # If df is scalar, broadcast it to shape of s2
    if np.isscalar(df) or np.ndim(df) == 0:
        df = np.full_like(s2, df)
    df = np.asarray(df, dtype=float)

    mask = np.isfinite(s2) & (s2 > 0) & np.isfinite(df) & (df > 0)
    return s2[mask], df[mask]


def trigamma_inverse(y: float, tol: float = 1e-8, maxiter: int = 50) -> float:
    """Solve trigamma(x) = y for x > 0 (Newton iteration on 1/x scale, as in limma)."""
    if not np.isfinite(y) or y <= 0:
        raise ValueError(f"trigamma_inverse needs a positive finite value, got {y}")
    if y > 1e7:
        return 1.0 / np.sqrt(y)
    if y < 1e-6:
        return 1.0 / y

    # Initial guess
    x = 0.5 + 1.0 / y
    for _ in range(maxiter):
        tri = polygamma(1, x)
        dif = tri * (1 - tri / y) / polygamma(2, x)
        x = x + dif
        if -dif / x < tol:
            return float(x)
    return float(x)


def fit_fdist(s2: np.ndarray, df1) -> tuple[float, float]:
    """
    Moment estimation of the scaled F prior on the variances (limma fitFDist).

    Returns (s20, df2): prior variance and prior degrees of freedom.
    df2 is inf when the observed spread of log variances is fully explained
    by sampling noise, and s20 is NaN when no usable variance is given.
    """
    x, d = squeeze_var_input_filter(s2, df1)
    n = x.size

    if n == 0:
        return np.nan, np.nan
    if n == 1:
        return float(x[0]), 0.0

    # Avoid zeros like limma does
    x = np.maximum(x, 1e-5 * np.median(x))
    z = np.log(x)

    e = z - digamma(d / 2.0) + np.log(d / 2.0)
    emean = np.mean(e)
    evar = np.var(e, ddof=1) - np.mean(polygamma(1, d / 2.0))

    if evar > 0:
        df2 = 2 * trigamma_inverse(evar)
        s20 = np.exp(emean + digamma(df2 / 2.0) - np.log(df2 / 2.0))
    else:
        df2 = np.inf
        s20 = np.exp(emean)

    return float(s20), float(df2)
