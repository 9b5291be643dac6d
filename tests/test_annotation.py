"""Tests for gene-name annotation and keyed deduplication."""

import polars as pl
import pytest

from omicsflux.utils.errors import ColumnMissingError
from omicsflux.workflow.annotation import (
    annotate_gene_names,
    build_index,
    deduplicate_by_key,
    extract_gene_name,
    flag_reference_membership,
)


class TestExtractGeneName:
    """Tests for extract_gene_name."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("Stromal interaction molecule 1 OS=Mus musculus OX=10090 GN=Stim1 PE=1 SV=1", "Stim1"),
            ("...GN=Stim1 PE=1...", "Stim1"),
            ("no markers here", ""),
            ("Uncharacterized protein GN=Gm 12345", "Gm12345"),
            ("GN=Abc PE=1 GN=Xyz PE=2", "Abc"),
            ("PE=1 only evidence", ""),
            ("", ""),
            (None, ""),
        ],
    )
    def test_examples(self, text, expected):
        assert extract_gene_name(text) == expected


class TestAnnotateGeneNames:
    """Tests for annotate_gene_names."""

    def test_prepends_column(self):
        df = pl.DataFrame({"accession": ["P1", "P2", "P3"], "description": ["x GN=A PE=1", None, "none"]})
        out = annotate_gene_names(df, "description")
        assert out.columns == ["gene_name", "accession", "description"]
        assert out.get_column("gene_name").to_list() == ["A", "", ""]
        assert out.drop("gene_name").equals(df)

    def test_missing_description_column(self):
        with pytest.raises(ColumnMissingError):
            annotate_gene_names(pl.DataFrame({"a": [1]}), "description")


class TestDeduplicate:
    """Tests for deduplicate_by_key and build_index."""

    def test_first_occurrence_kept(self):
        df = pl.DataFrame({"gene_name": ["B", "A", "B", "C", "A"], "v": [1, 2, 3, 4, 5]})
        out, n_empty, n_dup = deduplicate_by_key(df, "gene_name")
        assert out.get_column("gene_name").to_list() == ["B", "A", "C"]
        assert out.get_column("v").to_list() == [1, 2, 4]
        assert (n_empty, n_dup) == (0, 2)

    def test_empty_keys_dropped(self):
        df = pl.DataFrame({"gene_name": ["", "A", None, "A"], "v": [1, 2, 3, 4]})
        out, n_empty, n_dup = deduplicate_by_key(df, "gene_name")
        assert out.get_column("v").to_list() == [2]
        assert (n_empty, n_dup) == (2, 1)

    def test_build_index_composite(self):
        df = pl.DataFrame({"seq": ["PEPK", "PEPK"], "mod": ["1xPhospho", None], "v": [1.0, 2.0]})
        out = build_index(df, ["seq", "mod"])
        assert out.columns == ["INDEX", "seq", "mod", "v"]
        assert out.get_column("INDEX").to_list() == ["PEPK|1xPhospho", "PEPK|"]

    def test_build_index_missing_column(self):
        with pytest.raises(ColumnMissingError):
            build_index(pl.DataFrame({"a": [1]}), ["gene_name"])


class TestReferenceMembership:
    """Tests for flag_reference_membership."""

    def test_case_insensitive(self):
        df = pl.DataFrame({"gene_name": ["Stim1", "ATP5A1", "", None]})
        out = flag_reference_membership(df, {"STIM1", "atp5a1", ""})
        assert out.get_column("in_reference").to_list() == [True, True, False, False]

    def test_empty_reference(self):
        df = pl.DataFrame({"gene_name": ["Stim1"]})
        assert flag_reference_membership(df, []).get_column("in_reference").to_list() == [False]
