import csv
import warnings
from pathlib import Path
from typing import Optional, Set, Union

import anndata as ad
import numpy as np
import polars as pl

from omicsflux.config import GroupAssignment, TableConfig
from omicsflux.utils.errors import ColumnMissingError, ParseError
from omicsflux.utils.harmonizer import DataHarmonizer, clean_column_name
from omicsflux.utils.semantics import GROUP_COLUMN
from omicsflux.utils.utils import log_info, log_time, log_warning, polars_matrix_to_numpy
from omicsflux.workflow.preprocessing import Preprocessor

NULL_VALUES = ["NA", "NaN", "N/A", ""]

# Supress the ImplicitModificationWarning from AnnData
warnings.filterwarnings("ignore", category=UserWarning, message=".*Transforming to str index.*")


def _check_structure(path: Path, separator: str) -> None:
    """Header present, at least one data row, same field count on every line."""
    bad, n_rows = [], 0
    try:
        with path.open("r", newline="", encoding="utf-8-sig") as fh:
            reader = csv.reader(fh, delimiter=separator)
            header = next(reader, None)
            if not header or all(not h.strip() for h in header):
                raise ParseError(path, "file is empty")
            for row in reader:
                if not row:
                    continue
                n_rows += 1
                if len(row) != len(header):
                    bad.append(reader.line_num)
    except UnicodeDecodeError as e:
        raise ParseError(path, f"not UTF-8 encoded (byte {e.start}: {e.reason})") from e
    except csv.Error as e:
        raise ParseError(path, f"malformed delimited text: {e}") from e
    if bad:
        raise ParseError(path, f"{len(bad)} line(s) do not have {len(header)} fields", rows=bad)
    if n_rows == 0:
        raise ParseError(path, "no data rows")


@log_time("Data Loading")
def load_table(
    file_path: Union[str, Path],
    separator: str = "\t",
    harmonizer: Optional[DataHarmonizer] = None,
) -> pl.DataFrame:
    """Load a delimited table and normalize its column names."""
    path = Path(file_path)
    if not path.is_file():
        raise ParseError(path, "file not found")

    _check_structure(path, separator)

    try:
        df = pl.read_csv(
            path,
            separator=separator,
            infer_schema_length=None,
            null_values=NULL_VALUES,
        )
    except (pl.exceptions.ComputeError, pl.exceptions.NoDataError) as e:
        raise ParseError(path, str(e)) from e

    log_info(f"Loaded {path.name}: {df.height} rows, {df.width} columns.")
    return (harmonizer or DataHarmonizer()).harmonize(df)


def load_reference_genes(file_path: Union[str, Path], column: str = "symbol") -> Set[str]:
    """Gene symbols listed in the reference table (e.g. a mitochondrial gene inventory)."""
    df = load_table(file_path)
    column = clean_column_name(column)
    if column not in df.columns:
        raise ColumnMissingError([column], available=df.columns)
    genes = {
        str(g).strip()
        for g in df.get_column(column).drop_nulls().cast(pl.Utf8).to_list()
        if str(g).strip()
    }
    log_info(f"Reference genes: {len(genes)} symbols from {Path(file_path).name}.")
    return genes


class Dataset:
    """Loads one table, preprocesses it and converts it to AnnData."""

    def __init__(
        self,
        config: TableConfig,
        groups: GroupAssignment,
        reference_genes: Optional[Set[str]] = None,
        rawinput: Optional[pl.DataFrame] = None,
    ):
        """
        Initialize the dataset object.

        Args:
            config: table configuration (columns, thresholds, predicate).
            groups: sample-to-group assignment for this table.
            reference_genes: optional gene set used to flag reference membership.
            rawinput: already-loaded frame; when given, `config.input_file` is not read.
        """
        self.config = config
        self.groups = groups
        self.harmonizer = DataHarmonizer({"rename": config.rename})
        self.preprocessor = Preprocessor(config, reference_genes=reference_genes)
        self.rawinput = rawinput

        self._load_and_process()

    def _load_and_process(self):
        if self.rawinput is None:
            if not self.config.input_file:
                raise ValueError(f"No input_file configured for the {self.config.kind} table.")
            self.rawinput = load_table(self.config.input_file, harmonizer=self.harmonizer)
        else:
            self.rawinput = self.harmonizer.harmonize(self.rawinput)

        self.preprocessed_data = self._apply_preprocessing(self.rawinput)
        self._validate_groups()
        self._convert_to_anndata()

    @log_time("Data Processing")
    def _apply_preprocessing(self, df: pl.DataFrame):
        return self.preprocessor.fit_transform(df)

    def _validate_groups(self) -> None:
        samples = set(self.preprocessed_data.abundance_columns)
        missing = [c for c in self.groups.all_columns if c not in samples]
        if missing:
            raise ColumnMissingError(missing, available=sorted(samples))
        unassigned = sorted(samples - set(self.groups.all_columns))
        if unassigned:
            log_warning(f"{len(unassigned)} abundance column(s) not assigned to any group: {unassigned}")

    @log_time("Conversion to AnnData")
    def _convert_to_anndata(self):
        """Samples as obs, keyed analytes as var; X holds the log-normalized values."""
        pre = self.preprocessed_data
        sample_names = list(self.groups.all_columns)
        rows = pre.matrix_rows

        matrix = pre.matrix
        meta_cols = [c for c in matrix.columns if c not in pre.abundance_columns]
        var = (
            matrix.select(meta_cols)
            .with_columns(pl.col(pl.Utf8).fill_null(""))
            .to_pandas()
            .set_index("INDEX")
        )
        var.index = var.index.astype(str)

        X, _ = polars_matrix_to_numpy(matrix.select(["INDEX"] + sample_names), index_col="INDEX")

        def _layer(df: pl.DataFrame) -> np.ndarray:
            return df.select(sample_names).cast(pl.Float64).to_numpy()[rows]

        obs = self.groups.sample_metadata().loc[sample_names]
        obs[GROUP_COLUMN] = obs[GROUP_COLUMN].astype(str)

        self.adata = ad.AnnData(X=X.T, obs=obs, var=var)
        self.adata.layers["raw"] = _layer(pre.annotated).T
        self.adata.layers["normalized"] = _layer(pre.normalized).T

        self.adata.uns["preprocessing"] = {
            "kind": self.config.kind,
            "filtering": {
                "missing": pre.meta_missing,
                "quality": pre.meta_quality,
            },
            "annotation": {k: int(v) for k, v in pre.meta_annotation.items()},
            "normalization": {"factors": pre.meta_normalization.get("factors", {})},
        }
        self.adata.uns["groups"] = {
            "group_a": self.groups.group_a,
            "group_b": self.groups.group_b,
        }

        assert list(self.adata.var_names) == [str(i) for i in matrix.get_column("INDEX").to_list()]

    def get_anndata(self) -> ad.AnnData:
        """Export the processed dataset as an AnnData object."""
        return self.adata
