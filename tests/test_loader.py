"""Tests for table loading."""

import polars as pl
import pytest

from omicsflux.utils.errors import ColumnMissingError, ParseError
from omicsflux.workflow.dataset import load_reference_genes, load_table

from conftest import write_tsv


class TestLoadTable:
    """Tests for load_table."""

    def test_loads_and_normalizes_names(self, protein_file):
        df = load_table(protein_file)
        assert df.height == 22
        assert df.columns[:5] == ["master", "accession", "description", "exp_q_value_combined", "number_peptides"]
        assert "abundance_f11_sample_pool" in df.columns

    def test_empty_fields_and_na_tokens_are_null(self, tmp_path):
        path = write_tsv(tmp_path / "t.txt", ["id", "Value"], [["a", "NA"], ["b", "NaN"], ["c", None], ["d", "1.5"]])
        df = load_table(path)
        assert df.get_column("value").null_count() == 3
        assert df.get_column("value").drop_nulls().to_list() == [1.5]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ParseError, match="not found"):
            load_table(tmp_path / "nope.txt")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.txt"
        path.write_text("")
        with pytest.raises(ParseError, match="empty"):
            load_table(path)

    def test_header_only(self, tmp_path):
        path = tmp_path / "header.txt"
        path.write_text("a\tb\n")
        with pytest.raises(ParseError, match="no data rows"):
            load_table(path)

    def test_ragged_rows_report_line_numbers(self, tmp_path):
        path = tmp_path / "ragged.txt"
        path.write_text("a\tb\tc\n1\t2\t3\n4\t5\n6\t7\t8\t9\n")
        with pytest.raises(ParseError) as exc:
            load_table(path)
        assert exc.value.rows == [3, 4]
        assert "3 fields" in str(exc.value)

    def test_non_utf8_file(self, tmp_path):
        path = tmp_path / "latin1.txt"
        path.write_bytes("Accession\tDescription\nP1\t5 µM buffer protein\n".encode("latin-1"))
        with pytest.raises(ParseError, match="UTF-8") as exc:
            load_table(path)
        assert exc.value.path == str(path)

    def test_malformed_quoting(self, tmp_path):
        path = tmp_path / "quotes.txt"
        path.write_text("a\tb\n1\t" + "x" * (200 * 1024) + "\n")
        with pytest.raises(ParseError, match="malformed"):
            load_table(path)

    def test_is_error_subclass_of_value_error(self, tmp_path):
        with pytest.raises(ValueError):
            load_table(tmp_path / "nope.txt")


class TestLoadReferenceGenes:
    """Tests for load_reference_genes."""

    def test_symbols(self, reference_file):
        genes = load_reference_genes(reference_file, "Symbol")
        assert genes == {"Gene1", "GENE2", "Other"}

    def test_missing_column(self, reference_file):
        with pytest.raises(ColumnMissingError):
            load_reference_genes(reference_file, "gene")

    def test_returns_strings_for_numeric_column(self, tmp_path):
        path = write_tsv(tmp_path / "ref.txt", ["Symbol"], [["1"], ["2"]])
        assert load_reference_genes(path) == {"1", "2"}
        assert isinstance(load_table(path), pl.DataFrame)
