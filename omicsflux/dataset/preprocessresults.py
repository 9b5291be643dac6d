from dataclasses import dataclass, field
import numpy as np
import polars as pl
from typing import Dict, List, Optional

@dataclass
class PreprocessResults:
    raw: pl.DataFrame                        # harmonized input
    selected: pl.DataFrame                   # allow-list + abundance columns
    filtered: pl.DataFrame                   # after missingness + quality predicate
    abundance_columns: List[str]
    meta_missing: Dict
    meta_quality: Dict
    annotated: Optional[pl.DataFrame] = None     # gene_name only when a description column is set
    normalized: Optional[pl.DataFrame] = None
    lognormalized: Optional[pl.DataFrame] = None
    matrix: Optional[pl.DataFrame] = None        # deduplicated, INDEX first
    matrix_rows: Optional[np.ndarray] = None     # positions of matrix rows in `normalized`
    meta_annotation: Dict = field(default_factory=dict)
    meta_normalization: Dict = field(default_factory=dict)
