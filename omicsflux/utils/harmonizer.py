import re
import polars as pl
from typing import Dict, List, Optional
from omicsflux.utils.utils import log_info, log_warning

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def clean_column_name(name: str) -> str:
    """
    Normalize a raw header to snake_case.

      "Exp. q-value: Combined"          -> "exp_q_value_combined"
      "# Peptides"                      -> "number_peptides"
      "Abundance: F1: 126, Sample, KO"  -> "abundance_f1_126_sample_ko"
    """
    s = str(name).replace("#", " number ").replace("%", " percent ")
    s = _CAMEL_BOUNDARY.sub("_", s)
    s = _NON_ALNUM.sub("_", s.lower())
    s = s.strip("_")
    return s or "x"


def clean_column_names(columns: List[str]) -> List[str]:
    """Clean every header; repeated results get a numeric suffix (_2, _3, ...)."""
    seen: Dict[str, int] = {}
    out = []
    for col in columns:
        base = clean_column_name(col)
        n = seen.get(base, 0) + 1
        seen[base] = n
        out.append(base if n == 1 else f"{base}_{n}")
    return out


class DataHarmonizer:
    """Harmonizes input data by renaming columns to a common format."""

    def __init__(self, column_config: Optional[dict] = None):
        """Initialize optional explicit renames (keys raw or cleaned, values target names)."""
        column_config = column_config or {}
        self.column_map: Dict[str, str] = {
            clean_column_name(src): clean_column_name(dst)
            for src, dst in (column_config.get("rename") or {}).items()
        }

    def _rename_columns_safely(self, df: pl.DataFrame) -> pl.DataFrame:
        """
        Apply explicit renames, raising only if we'd clobber a different
        existing column.
        """
        rename_map: Dict[str, str] = {}

        for original, target in self.column_map.items():
            if original in df.columns:
                if target in df.columns and original != target:
                    raise ValueError(
                        f"Cannot rename '{original}' to '{target}' because "
                        f"'{target}' already exists in the dataset."
                    )
                rename_map[original] = target
            else:
                log_warning(f"Column '{original}' not found in input data, skipping rename.")

        return df.rename(rename_map) if rename_map else df

    def harmonize(self, df: pl.DataFrame) -> pl.DataFrame:
        """Clean all headers, then apply configured renames."""
        cleaned = clean_column_names(df.columns)
        changed = sum(a != b for a, b in zip(df.columns, cleaned))
        df = df.rename(dict(zip(df.columns, cleaned)))
        log_info(f"Harmonized column names: {changed}/{len(cleaned)} renamed.")
        return self._rename_columns_safely(df)
