"""Tests for column selection, missingness and quality filtering."""

import polars as pl
import pytest

from omicsflux.config import QualityConfig, TableConfig
from omicsflux.utils.errors import ColumnMissingError
from omicsflux.workflow.dataset import load_table
from omicsflux.workflow.preprocessing import (
    Preprocessor,
    abundance_columns,
    apply_quality_predicate,
    drop_high_missing,
    missing_counts,
    peptide_quality_predicate,
    protein_quality_predicate,
    quality_predicate,
    select_columns,
)


@pytest.fixture
def small_table():
    return pl.DataFrame({
        "master": ["IsMasterProtein", "IsMasterProtein", "IsMasterProteinCandidate", None, "IsMasterProtein"],
        "accession": ["P1", "P2", "P3", "P4", "P5"],
        "other": ["x"] * 5,
        "exp_q_value_combined": [0.001, 0.02, 0.001, 0.001, None],
        "abundance_f1_ko": [1.0, None, 3.0, None, 5.0],
        "abundance_f2_wt": [1.0, None, None, None, float("nan")],
        "abundance_f3_wt": ["1", "2", "n/a", None, "5"],
    })


class TestSelectColumns:
    """Tests for select_columns."""

    def test_column_set(self, small_table):
        out = select_columns(small_table, ["Master", "Accession"], r"abundance_f\d+")
        assert out.columns == ["master", "accession", "abundance_f1_ko", "abundance_f2_wt", "abundance_f3_wt"]

    def test_column_set_is_allow_list_plus_prefix(self, small_table):
        keep = ["master", "exp_q_value_combined"]
        out = select_columns(small_table, keep, r"abundance_f\d+")
        expected = set(keep) | set(abundance_columns(small_table.columns, r"abundance_f\d+"))
        assert set(out.columns) == expected
        assert "other" not in out.columns

    def test_preserves_source_order(self, small_table):
        out = select_columns(small_table, ["exp_q_value_combined", "master"], r"abundance_f\d+")
        assert out.columns[:2] == ["master", "exp_q_value_combined"]

    def test_missing_allow_list_names_listed(self, small_table):
        with pytest.raises(ColumnMissingError) as exc:
            select_columns(small_table, ["master", "Gene Symbol", "Coverage"], r"abundance_f\d+")
        assert sorted(exc.value.columns) == ["coverage", "gene_symbol"]

    def test_no_abundance_columns(self, small_table):
        with pytest.raises(ColumnMissingError):
            select_columns(small_table, ["master"], r"intensity_")

    def test_abundance_cast_to_float_with_nulls(self, small_table):
        out = select_columns(small_table, ["master"], r"abundance_f\d+")
        assert out.schema["abundance_f3_wt"] == pl.Float64
        assert out.get_column("abundance_f3_wt").to_list() == [1.0, 2.0, None, None, 5.0]
        assert out.get_column("abundance_f2_wt").to_list()[-1] is None

    def test_prefix_is_anchored(self):
        df = pl.DataFrame({"raw_abundance_f1": [1.0], "abundance_f1": [2.0]})
        assert select_columns(df, [], r"abundance_f\d+").columns == ["abundance_f1"]


class TestDropHighMissing:
    """Tests for drop_high_missing."""

    def test_threshold_property(self, small_table):
        df = select_columns(small_table, ["accession"], r"abundance_f\d+")
        cols = abundance_columns(df.columns, r"abundance_f\d+")
        counts = dict(zip(df.get_column("accession"), missing_counts(df, cols)))
        for k in range(0, 4):
            kept = drop_high_missing(df, cols, k).get_column("accession").to_list()
            assert all(counts[a] <= k for a in kept)
            assert all(counts[a] > k for a in counts if a not in kept)

    def test_order_preserved(self, small_table):
        df = select_columns(small_table, ["accession"], r"abundance_f\d+")
        cols = abundance_columns(df.columns, r"abundance_f\d+")
        assert drop_high_missing(df, cols, 1).get_column("accession").to_list() == ["P1", "P5"]
        assert drop_high_missing(df, cols, 2).get_column("accession").to_list() == ["P1", "P2", "P3", "P5"]


class TestQualityPredicates:
    """Tests for the protein and peptide predicates."""

    def test_protein(self, small_table):
        pred = protein_quality_predicate("master", "exp_q_value_combined")
        out = apply_quality_predicate(small_table, pred)
        # P2 fails the q-value, P3 is not master, P4 has null master, P5 null q-value
        assert out.get_column("accession").to_list() == ["P1"]

    def test_protein_cutoff(self, small_table):
        pred = protein_quality_predicate("master", "exp_q_value_combined", qvalue_cutoff=0.05)
        assert apply_quality_predicate(small_table, pred).get_column("accession").to_list() == ["P1", "P2"]

    def test_peptide_case_sensitive(self):
        df = pl.DataFrame({"modifications": ["1xPhospho [S5]", "1xphospho [S1]", None, "1xOxidation", "2xPhospho"]})
        out = apply_quality_predicate(df, peptide_quality_predicate("modifications"))
        assert out.get_column("modifications").to_list() == ["1xPhospho [S5]", "2xPhospho"]

    def test_peptide_literal_marker(self):
        df = pl.DataFrame({"modifications": ["a.b", "axb"]})
        out = apply_quality_predicate(df, peptide_quality_predicate("modifications", marker="."))
        assert out.get_column("modifications").to_list() == ["a.b"]

    def test_quality_predicate_columns(self):
        _, cols = quality_predicate(QualityConfig(kind="peptide"))
        assert cols == ["modifications"]
        with pytest.raises(ValueError):
            quality_predicate(QualityConfig(kind="metabolite"))


class TestPreprocessor:
    """Tests for the full preprocessing chain."""

    def test_protein_chain(self, protein_file):
        config = TableConfig.from_dict({})
        res = Preprocessor(config, reference_genes={"gene1", "Gene3"}).fit_transform(load_table(protein_file))

        assert res.raw.height == 22
        assert res.meta_missing["number_kept"] == 22
        assert res.meta_quality == {"kind": "protein", "number_kept": 20, "number_dropped": 2}
        assert len(res.abundance_columns) == 11

        assert res.annotated.columns[0] == "gene_name"
        assert res.annotated.get_column("gene_name").to_list()[:3] == ["Gene0", "Gene1", "Gene2"]
        assert res.annotated.get_column("in_reference").sum() == 2

        assert res.matrix.columns[0] == "INDEX"
        assert res.matrix.height == 20
        assert list(res.matrix_rows) == list(range(20))

    def test_inputs_not_mutated(self, protein_file):
        df = load_table(protein_file)
        before = df.clone()
        Preprocessor(TableConfig.from_dict({})).fit_transform(df)
        assert df.equals(before)

    def test_peptide_chain(self, peptide_file):
        config = TableConfig.from_dict({"kind": "peptide"})
        res = Preprocessor(config).fit_transform(load_table(peptide_file))
        assert "gene_name" not in res.annotated.columns
        assert res.filtered.get_column("modifications").to_list() == [
            "1xPhospho [S5(100)]", "1xPhospho [T2(99.1)]", "2xPhospho [S2; S7]"
        ]
        assert res.matrix.get_column("INDEX").to_list()[0] == "[K].PEPTIDE0K.[R]|1xPhospho [S5(100)]"
        assert "checked" not in res.selected.columns
