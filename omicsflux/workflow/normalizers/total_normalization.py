from typing import Dict, Sequence, Tuple

import numpy as np
import polars as pl

from omicsflux.utils.errors import NormalizationError


def normalize_total_abundance(
    df: pl.DataFrame, columns: Sequence[str], rtol: float = 1e-9
) -> Tuple[pl.DataFrame, Dict[str, float]]:
    """
    Equalize per-sample total abundance.

    Parameters:
        df (pl.DataFrame): table with one abundance column per sample (nulls allowed).
        columns (Sequence[str]): abundance columns to rescale.
        rtol (float): relative tolerance of the post-normalization sum check.

    Returns:
        Tuple[pl.DataFrame, dict]: new frame where every column in `columns`
        sums to the mean of the original column sums, and the factor applied
        to each column.
    """
    if not columns:
        raise NormalizationError([], "no abundance columns given")

    sums = df.select([pl.col(c).sum().alias(c) for c in columns]).row(0)
    sums = np.asarray([np.nan if s is None else s for s in sums], dtype=float)

    bad = [c for c, s in zip(columns, sums) if not np.isfinite(s) or s == 0]
    if bad:
        raise NormalizationError(bad, "column sum is zero or not finite")

    target = float(np.mean(sums))
    factors = {c: target / s for c, s in zip(columns, sums)}

    out = df.with_columns([(pl.col(c) * factors[c]).alias(c) for c in columns])

    new_sums = np.asarray(out.select([pl.col(c).sum() for c in columns]).row(0), dtype=float)
    off = [c for c, s in zip(columns, new_sums) if not np.isfinite(s) or not np.isclose(s, target, rtol=rtol, atol=0)]
    if off:
        raise NormalizationError(off, f"scaled sums do not match target {target:.6g}")

    return out, factors


def log_transform(df: pl.DataFrame, columns: Sequence[str]) -> pl.DataFrame:
    """Natural log of `columns`; zero or negative values become missing."""
    return df.with_columns([
        pl.when(pl.col(c) > 0).then(pl.col(c).log()).otherwise(None).alias(c)
        for c in columns
    ])
