"""Typed configuration for omicsflux.

The YAML config (see `templates/user_template.yaml`) is parsed into the frozen
dataclasses below. Every column list, threshold and group assignment is
explicit; names are stored in normalized snake_case so they can be matched
directly against harmonized tables.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import pandas as pd

from omicsflux.utils import semantics as sem
from omicsflux.utils.harmonizer import clean_column_name


def _clean_all(names) -> Tuple[str, ...]:
    if isinstance(names, str):
        names = [names]
    return tuple(clean_column_name(n) for n in (names or []))


def _table_kind(raw) -> str:
    kind = str(raw if raw is not None else "protein").strip().lower()
    if kind not in sem.TABLE_KINDS_CANONICAL:
        raise ValueError(
            f"Unsupported table kind {raw!r}; use one of {list(sem.TABLE_KINDS_CANONICAL)}"
        )
    return kind


@dataclass(frozen=True)
class QualityConfig:
    """Table-specific row predicate parameters."""
    kind: str = "protein"
    master_column: str = sem.MASTER_COLUMN
    master_value: str = sem.MASTER_VALUE
    qvalue_column: str = sem.QVALUE_COLUMN
    qvalue_cutoff: float = sem.QVALUE_CUTOFF
    modification_column: str = sem.MODIFICATION_COLUMN
    modification_marker: str = sem.MODIFICATION_MARKER

    @classmethod
    def from_dict(cls, kind: str, cfg: Optional[dict]) -> "QualityConfig":
        cfg = cfg or {}
        cutoff = float(cfg.get("qvalue_cutoff", sem.QVALUE_CUTOFF))
        if not 0 < cutoff <= 1:
            raise ValueError(f"qvalue_cutoff must be in (0, 1], got {cutoff}")
        return cls(
            kind=kind,
            master_column=clean_column_name(cfg.get("master_column", sem.MASTER_COLUMN)),
            master_value=str(cfg.get("master_value", sem.MASTER_VALUE)),
            qvalue_column=clean_column_name(cfg.get("qvalue_column", sem.QVALUE_COLUMN)),
            qvalue_cutoff=cutoff,
            modification_column=clean_column_name(cfg.get("modification_column", sem.MODIFICATION_COLUMN)),
            modification_marker=str(cfg.get("modification_marker", sem.MODIFICATION_MARKER)),
        )


@dataclass(frozen=True)
class TableConfig:
    kind: str
    input_file: Optional[str]
    keep_columns: Tuple[str, ...]
    abundance_prefix: str
    max_missing: int = sem.MAX_MISSING
    quality: QualityConfig = field(default_factory=QualityConfig)
    groups: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    index_columns: Tuple[str, ...] = (sem.GENE_NAME_COLUMN,)
    description_column: Optional[str] = "description"
    rename: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, cfg: Optional[dict]) -> "TableConfig":
        """Build from one `tables:` entry; `kind` defaults to protein."""
        cfg = cfg or {}
        kind = _table_kind(cfg.get("kind"))
        is_protein = kind == "protein"

        keep_default = sem.PROTEIN_KEEP_COLUMNS if is_protein else sem.PEPTIDE_KEEP_COLUMNS
        prefix_default = sem.PROTEIN_ABUNDANCE_PREFIX if is_protein else sem.PEPTIDE_ABUNDANCE_PREFIX
        index_default = (sem.GENE_NAME_COLUMN,) if is_protein else ("annotated_sequence", "modifications")

        max_missing = int(cfg.get("max_missing", sem.MAX_MISSING))
        if max_missing < 0:
            raise ValueError(f"max_missing must be >= 0, got {max_missing}")

        groups = {
            str(label): _clean_all(cols)
            for label, cols in (cfg.get("groups") or {}).items()
        }

        description = cfg.get("description_column", "description" if is_protein else None)

        return cls(
            kind=kind,
            input_file=cfg.get("input_file"),
            keep_columns=_clean_all(cfg.get("keep_columns", keep_default)),
            abundance_prefix=str(cfg.get("abundance_prefix", prefix_default)),
            max_missing=max_missing,
            quality=QualityConfig.from_dict(kind, cfg.get("quality")),
            groups=groups,
            index_columns=_clean_all(cfg.get("index_columns", index_default)),
            description_column=clean_column_name(description) if description else None,
            rename=dict(cfg.get("rename") or {}),
        )


@dataclass(frozen=True)
class GroupAssignment:
    """Partition of sample columns into labeled groups; two of them are compared."""
    groups: Dict[str, Tuple[str, ...]]
    group_a: str
    group_b: str

    def __post_init__(self):
        for label in (self.group_a, self.group_b):
            if label not in self.groups:
                raise ValueError(f"Group '{label}' not defined; available: {sorted(self.groups)}")
            if len(self.groups[label]) == 0:
                raise ValueError(f"Group '{label}' has no samples.")
        if self.group_a == self.group_b:
            raise ValueError("group_a and group_b must differ.")
        seen = {}
        for label, cols in self.groups.items():
            for c in cols:
                if c in seen:
                    raise ValueError(f"Sample '{c}' assigned to both '{seen[c]}' and '{label}'.")
                seen[c] = label

    @property
    def all_columns(self) -> Tuple[str, ...]:
        return tuple(c for cols in self.groups.values() for c in cols)

    @property
    def comparison_columns(self) -> Tuple[str, ...]:
        """group_a samples followed by group_b samples."""
        return self.groups[self.group_a] + self.groups[self.group_b]

    @property
    def contrast_name(self) -> str:
        return f"{self.group_a}_vs_{self.group_b}"

    def sample_metadata(self, comparison_only: bool = False) -> pd.DataFrame:
        """One row per sample (index) with its label in the GROUP column."""
        labels = [self.group_a, self.group_b] if comparison_only else list(self.groups)
        rows = [(c, label) for label in labels for c in self.groups[label]]
        return pd.DataFrame(rows, columns=["Sample", sem.GROUP_COLUMN]).set_index("Sample")


@dataclass(frozen=True)
class ReferenceConfig:
    input_file: str
    gene_column: str = "symbol"

    @classmethod
    def from_dict(cls, cfg: Optional[dict]) -> Optional["ReferenceConfig"]:
        if not cfg or not cfg.get("input_file"):
            return None
        return cls(
            input_file=cfg["input_file"],
            gene_column=clean_column_name(cfg.get("gene_column", "symbol")),
        )


@dataclass(frozen=True)
class AnalysisConfig:
    group_a: str = "KO"
    group_b: str = "WT"
    sig_threshold: float = 0.05

    @classmethod
    def from_dict(cls, cfg: Optional[dict]) -> "AnalysisConfig":
        cfg = cfg or {}
        return cls(
            group_a=str(cfg.get("group_a", "KO")),
            group_b=str(cfg.get("group_b", "WT")),
            sig_threshold=float(cfg.get("sign_threshold", cfg.get("sig_threshold", 0.05))),
        )


@dataclass(frozen=True)
class ExportConfig:
    path_table: Optional[str] = None
    path_h5ad: Optional[str] = None
    use_xlsx: bool = False

    @classmethod
    def from_dict(cls, cfg: Optional[dict]) -> "ExportConfig":
        cfg = cfg or {}
        return cls(
            path_table=cfg.get("path_table"),
            path_h5ad=cfg.get("path_h5ad"),
            use_xlsx=bool(cfg.get("use_xlsx", False)),
        )


@dataclass(frozen=True)
class PipelineConfig:
    tables: Dict[str, TableConfig]
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    reference: Optional[ReferenceConfig] = None
    exports: ExportConfig = field(default_factory=ExportConfig)

    @classmethod
    def from_dict(cls, config: dict) -> "PipelineConfig":
        tables_cfg = (config or {}).get("tables") or {}
        if not tables_cfg:
            raise ValueError("Config must define at least one entry under 'tables'.")
        tables = {name: TableConfig.from_dict(cfg) for name, cfg in tables_cfg.items()}
        return cls(
            tables=tables,
            analysis=AnalysisConfig.from_dict(config.get("analysis")),
            reference=ReferenceConfig.from_dict(config.get("reference")),
            exports=ExportConfig.from_dict(config.get("exports")),
        )

    def group_assignment(self, table_name: str) -> GroupAssignment:
        table = self.tables[table_name]
        return GroupAssignment(
            groups=table.groups,
            group_a=self.analysis.group_a,
            group_b=self.analysis.group_b,
        )
