from typing import Iterable, Optional, Sequence, Tuple

import polars as pl

from omicsflux.utils.errors import ColumnMissingError
from omicsflux.utils.semantics import EVIDENCE_MARKER, GENE_MARKER, GENE_NAME_COLUMN, REFERENCE_FLAG_COLUMN


def extract_gene_name(description: Optional[str]) -> str:
    """
    Gene symbol from a UniProt-style description.

    "Stromal interaction molecule 1 OS=Mus musculus GN=Stim1 PE=1 SV=1" -> "Stim1"
    No "GN=" marker -> "". Whitespace inside the symbol is removed.
    """
    if description is None:
        return ""
    _, sep, rest = str(description).partition(GENE_MARKER)
    if not sep:
        return ""
    rest = rest.split(EVIDENCE_MARKER, 1)[0]
    return "".join(rest.split())


def annotate_gene_names(
    df: pl.DataFrame, description_column: str, target: str = GENE_NAME_COLUMN
) -> pl.DataFrame:
    """Prepend `target` parsed from `description_column`; rows are untouched."""
    if description_column not in df.columns:
        raise ColumnMissingError([description_column], available=df.columns)
    genes = df.get_column(description_column).cast(pl.Utf8).map_elements(
        extract_gene_name, return_dtype=pl.Utf8, skip_nulls=False
    ).fill_null("").alias(target)
    rest = [c for c in df.columns if c != target]
    return df.select(rest).insert_column(0, genes)


def flag_reference_membership(
    df: pl.DataFrame,
    genes: Iterable[str],
    key: str = GENE_NAME_COLUMN,
    target: str = REFERENCE_FLAG_COLUMN,
) -> pl.DataFrame:
    """Boolean column: is the row's key in the reference gene set (case-insensitive)."""
    ref = sorted({str(g).strip().upper() for g in genes if g is not None and str(g).strip()})
    return df.with_columns(
        pl.col(key).cast(pl.Utf8).str.to_uppercase().is_in(pl.Series(ref, dtype=pl.Utf8)).fill_null(False).alias(target)
    )


def build_index(df: pl.DataFrame, index_columns: Sequence[str], sep: str = "|") -> pl.DataFrame:
    """Prepend an INDEX column built from one or more key columns."""
    absent = [c for c in index_columns if c not in df.columns]
    if absent:
        raise ColumnMissingError(absent, available=df.columns)
    if len(index_columns) == 1:
        expr = pl.col(index_columns[0]).cast(pl.Utf8)
    else:
        expr = pl.concat_str([pl.col(c).cast(pl.Utf8).fill_null("") for c in index_columns], separator=sep)
    rest = [c for c in df.columns if c != "INDEX"]
    return df.select([expr.alias("INDEX")] + rest)


def deduplicate_by_key(df: pl.DataFrame, key: str) -> Tuple[pl.DataFrame, int, int]:
    """
    Keep the first row per key, in row order.

    Rows with a null or empty key cannot index a matrix and are dropped.
    Returns (frame, n_empty_dropped, n_duplicates_dropped).
    """
    keyed = df.filter(pl.col(key).is_not_null() & (pl.col(key).cast(pl.Utf8) != ""))
    n_empty = df.height - keyed.height
    unique = keyed.unique(subset=[key], keep="first", maintain_order=True)
    return unique, n_empty, keyed.height - unique.height
