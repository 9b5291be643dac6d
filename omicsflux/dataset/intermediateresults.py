from dataclasses import dataclass, field
from typing import Dict, Optional, Any
import numpy as np
import polars as pl

STEPS = ("loading", "filtering", "annotation", "normalization")


@dataclass
class IntermediateResults:
    # Store Polars DataFrames at various stages
    dfs: Dict[str, pl.DataFrame] = field(default_factory=dict)

    # Metadata per step (counts, thresholds, factors)
    metadata: Dict[str, Any] = field(default_factory=lambda: {step: {} for step in STEPS})

    # Lightweight numeric arrays (e.g. per-row missing counts before filtering)
    arrays: Dict[str, np.ndarray] = field(default_factory=dict)

    # Abundance columns (samples) retained by column selection
    columns: Optional[list] = None

    def set_columns(self, columns: list):
        """Set the sample columns once, right after column selection."""
        self.columns = list(columns)

    def add_array(self, name: str, array: np.ndarray):
        self.arrays[name] = array

    def add_df(self, name: str, df: pl.DataFrame):
        """Add a DataFrame; sample columns must be present once they are set."""
        if self.columns is not None:
            missing = [c for c in self.columns if c not in df.columns]
            if missing:
                raise ValueError(f"DataFrame '{name}' lacks sample columns {missing}.")
        self.dfs[name] = df

    def add_metadata(self, step: str, key: str, value: Any):
        """Store metadata like thresholds, kept/dropped counts, scaling factors."""
        if step not in STEPS:
            raise ValueError(f"step must be one of {STEPS}")
        self.metadata[step][key] = value
