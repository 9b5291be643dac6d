"""Preprocessing pipeline for omicsflux.

This module performs, in order:
1) Column selection (explicit allow-list + abundance prefix)
2) Missingness filtering (per-row null count over abundance columns)
3) Quality filtering (protein: master flag + q-value; peptide: modification marker)
4) Annotation (gene names, reference membership; protein tables)
5) Total-abundance normalization and natural-log transform
6) Keyed matrix construction (deduplicated INDEX + sample columns)

Each step is a plain function `(frame, params) -> new frame`. `Preprocessor`
chains them and records intermediate artifacts in `IntermediateResults`,
assembled into a `PreprocessResults` container consumed by `Dataset`.
"""

import re
from typing import Iterable, List, Optional, Sequence, Set, Tuple

import polars as pl

from omicsflux.config import QualityConfig, TableConfig
from omicsflux.dataset.intermediateresults import IntermediateResults
from omicsflux.dataset.preprocessresults import PreprocessResults
from omicsflux.utils.errors import ColumnMissingError
from omicsflux.utils.harmonizer import clean_column_name
from omicsflux.utils.semantics import GENE_NAME_COLUMN, REFERENCE_FLAG_COLUMN
from omicsflux.utils.utils import log_info, log_time
from omicsflux.workflow.annotation import (
    annotate_gene_names,
    build_index,
    deduplicate_by_key,
    flag_reference_membership,
)
from omicsflux.workflow.normalizers.total_normalization import log_transform, normalize_total_abundance


def abundance_columns(columns: Iterable[str], prefix: str) -> List[str]:
    """Columns whose normalized name matches the prefix pattern (anchored at start)."""
    pattern = re.compile(prefix)
    return [c for c in columns if pattern.match(c)]


def select_columns(df: pl.DataFrame, keep: Sequence[str], abundance_prefix: str) -> pl.DataFrame:
    """
    Keep the allow-listed metadata columns and every abundance column.

    Allow-list names are matched after normalization (case-insensitive).
    Source column order is preserved. Abundance columns are cast to Float64,
    with unparsable entries and NaN turned into nulls.
    """
    wanted = {clean_column_name(k) for k in keep}
    missing = sorted(wanted - set(df.columns))
    if missing:
        raise ColumnMissingError(missing, available=df.columns)

    samples = abundance_columns(df.columns, abundance_prefix)
    if not samples:
        raise ColumnMissingError([f"{abundance_prefix}*"], available=df.columns)

    sample_set = set(samples)
    ordered = [c for c in df.columns if c in wanted or c in sample_set]
    return df.select(ordered).with_columns(
        [pl.col(c).cast(pl.Float64, strict=False).fill_nan(None).alias(c) for c in samples]
    )


def missing_counts(df: pl.DataFrame, columns: Sequence[str]) -> pl.Series:
    if not columns:
        return pl.Series("n_missing", [0] * df.height, dtype=pl.UInt32)
    return df.select(
        pl.sum_horizontal([pl.col(c).is_null().cast(pl.UInt32) for c in columns]).alias("n_missing")
    ).to_series()


def drop_high_missing(df: pl.DataFrame, columns: Sequence[str], max_missing: int) -> pl.DataFrame:
    """Discard rows with more than `max_missing` nulls across `columns`; order-preserving."""
    counts = missing_counts(df, columns)
    return df.filter(counts <= max_missing)


def protein_quality_predicate(
    master_column: str,
    qvalue_column: str,
    master_value: str = "IsMasterProtein",
    qvalue_cutoff: float = 0.01,
) -> pl.Expr:
    """Representative protein entries with a combined q-value below the cutoff."""
    return (pl.col(master_column) == master_value) & (
        pl.col(qvalue_column).cast(pl.Float64, strict=False) < qvalue_cutoff
    )


def peptide_quality_predicate(modification_column: str, marker: str = "Phospho") -> pl.Expr:
    """Case-sensitive literal containment of `marker` in the modification text."""
    return pl.col(modification_column).cast(pl.Utf8).str.contains(marker, literal=True)


def quality_predicate(quality: QualityConfig) -> Tuple[pl.Expr, List[str]]:
    """Predicate expression for a table kind, plus the columns it reads."""
    if quality.kind == "protein":
        expr = protein_quality_predicate(
            quality.master_column, quality.qvalue_column, quality.master_value, quality.qvalue_cutoff
        )
        return expr, [quality.master_column, quality.qvalue_column]
    if quality.kind == "peptide":
        expr = peptide_quality_predicate(quality.modification_column, quality.modification_marker)
        return expr, [quality.modification_column]
    raise ValueError(f"No quality predicate for table kind '{quality.kind}'")


def apply_quality_predicate(df: pl.DataFrame, predicate: pl.Expr) -> pl.DataFrame:
    """Keep rows where the predicate is true; nulls count as false."""
    return df.filter(predicate.fill_null(False))


class Preprocessor:
    """Handles filtering, annotation and normalization for one table."""

    def __init__(self, config: TableConfig, reference_genes: Optional[Set[str]] = None):
        self.config = config
        self.reference_genes = reference_genes
        self.intermediate_results = IntermediateResults()

    def fit_transform(self, df: pl.DataFrame) -> PreprocessResults:
        """Run the full preprocessing pipeline and return a `PreprocessResults` bundle."""
        self.intermediate_results.add_df("raw", df)

        self._filter(df)
        self._annotate()
        self._normalize()
        self._build_matrix()

        ir = self.intermediate_results
        return PreprocessResults(
            raw=ir.dfs["raw"],
            selected=ir.dfs["selected"],
            filtered=ir.dfs["filtered"],
            abundance_columns=list(ir.columns),
            meta_missing=ir.metadata["filtering"]["meta_missing"],
            meta_quality=ir.metadata["filtering"]["meta_quality"],
            annotated=ir.dfs["annotated"],
            normalized=ir.dfs["normalized"],
            lognormalized=ir.dfs["lognormalized"],
            matrix=ir.dfs["matrix"],
            matrix_rows=ir.arrays["matrix_rows"],
            meta_annotation=ir.metadata["annotation"],
            meta_normalization=ir.metadata["normalization"],
        )

    @log_time("Filtering")
    def _filter(self, df: pl.DataFrame) -> None:
        cfg = self.config
        ir = self.intermediate_results

        selected = select_columns(df, cfg.keep_columns, cfg.abundance_prefix)
        samples = abundance_columns(selected.columns, cfg.abundance_prefix)
        ir.set_columns(samples)
        ir.add_df("selected", selected)
        log_info(f"Column selection: {len(cfg.keep_columns)} metadata + {len(samples)} abundance columns.")

        predicate, needed = quality_predicate(cfg.quality)
        absent = [c for c in needed if c not in selected.columns]
        if absent:
            raise ColumnMissingError(absent, available=selected.columns)

        counts = missing_counts(selected, samples)
        ir.add_array("missing_counts", counts.to_numpy())
        x = drop_high_missing(selected, samples, cfg.max_missing)
        ir.add_metadata("filtering", "meta_missing", {
            "threshold": cfg.max_missing,
            "number_kept": x.height,
            "number_dropped": selected.height - x.height,
        })
        log_info(f"Missingness filtering: kept={x.height} dropped={selected.height - x.height} (max_missing={cfg.max_missing}).")

        before = x.height
        x = apply_quality_predicate(x, predicate)
        ir.add_metadata("filtering", "meta_quality", {
            "kind": cfg.quality.kind,
            "number_kept": x.height,
            "number_dropped": before - x.height,
        })
        log_info(f"Quality filtering ({cfg.quality.kind}): kept={x.height} dropped={before - x.height}.")

        ir.add_df("filtered", x)

    @log_time("Annotation")
    def _annotate(self) -> None:
        cfg = self.config
        ir = self.intermediate_results
        df = ir.dfs["filtered"]

        if cfg.description_column:
            if cfg.description_column not in df.columns:
                raise ColumnMissingError([cfg.description_column], available=df.columns)
            df = annotate_gene_names(df, cfg.description_column, target=GENE_NAME_COLUMN)
            n_empty = df.filter(pl.col(GENE_NAME_COLUMN) == "").height
            ir.add_metadata("annotation", "empty_gene_names", n_empty)
            log_info(f"Gene names: {df.height - n_empty} parsed, {n_empty} empty.")

        if self.reference_genes is not None and GENE_NAME_COLUMN in df.columns:
            df = flag_reference_membership(df, self.reference_genes, key=GENE_NAME_COLUMN, target=REFERENCE_FLAG_COLUMN)
            n_ref = int(df.select(pl.col(REFERENCE_FLAG_COLUMN).sum()).item())
            ir.add_metadata("annotation", "reference_hits", n_ref)
            log_info(f"Reference membership: {n_ref} rows flagged.")

        ir.add_df("annotated", df)

    @log_time("Normalization")
    def _normalize(self) -> None:
        ir = self.intermediate_results
        normalized, factors = normalize_total_abundance(ir.dfs["annotated"], ir.columns)
        ir.add_metadata("normalization", "factors", factors)
        ir.add_df("normalized", normalized)
        ir.add_df("lognormalized", log_transform(normalized, ir.columns))

    def _build_matrix(self) -> None:
        cfg = self.config
        ir = self.intermediate_results
        df = build_index(ir.dfs["lognormalized"], cfg.index_columns).with_row_index("ROW")
        deduped, n_empty, n_dup = deduplicate_by_key(df, "INDEX")
        ir.add_metadata("annotation", "dropped_empty_key", n_empty)
        ir.add_metadata("annotation", "dropped_duplicate_key", n_dup)
        log_info(f"Keyed matrix: {deduped.height} unique rows (dropped {n_empty} empty, {n_dup} duplicate keys).")

        ir.add_array("matrix_rows", deduped.get_column("ROW").to_numpy())
        ir.add_df("matrix", deduped.drop("ROW"))
