import logging
import time
from contextlib import contextmanager
from functools import wraps
from typing import Optional, Tuple

import numpy as np
import polars as pl

logger = logging.getLogger("omicsflux")

_INDENT = {"level": 0}


def _prefix(msg: str) -> str:
    return "  " * _INDENT["level"] + msg


def log_info(msg: str) -> None:
    logger.info(_prefix(msg))


def log_warning(msg: str) -> None:
    logger.warning(_prefix(msg))


@contextmanager
def log_indent():
    """Indent every log line emitted inside the block by one level."""
    _INDENT["level"] += 1
    try:
        yield
    finally:
        _INDENT["level"] -= 1


def log_time(label: str):
    """Decorator logging start, end and wall time of a pipeline step."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            log_info(f"{label}...")
            start = time.perf_counter()
            with log_indent():
                result = func(*args, **kwargs)
            log_info(f"{label} done in {time.perf_counter() - start:.2f}s")
            return result
        return wrapper
    return decorator


def setup_logging(level: str = "INFO") -> None:
    """Attach a console handler to the package logger (CLI entry point only)."""
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", "%H:%M:%S"))
        logger.addHandler(handler)
    logger.setLevel(level.upper())
    logger.propagate = False


def polars_matrix_to_numpy(
    df: Optional[pl.DataFrame], index_col: str = "INDEX"
) -> Tuple[Optional[np.ndarray], Optional[np.ndarray]]:
    """Split a wide frame into (float matrix, index array). None passes through."""
    if df is None:
        return None, None
    index = df.select(index_col).to_series().to_numpy()
    value_cols = [c for c in df.columns if c != index_col]
    mat = df.select(value_cols).cast(pl.Float64).to_numpy()
    return mat, index
