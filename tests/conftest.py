"""
Pytest configuration and fixtures for omicsflux tests
"""

import numpy as np
import pytest

from omicsflux.utils.harmonizer import clean_column_name

KO = [f"Abundance: F{i}: Sample, KO" for i in range(1, 6)]
WT = [f"Abundance: F{i}: Sample, WT" for i in range(6, 11)]
POOL = ["Abundance: F11: Sample, pool"]

PEP_KO = [f"Abundances (Normalized): F{i}: Sample, KO" for i in range(1, 6)]
PEP_WT = [f"Abundances (Normalized): F{i}: Sample, WT" for i in range(6, 11)]
PEP_POOL = ["Abundances (Normalized): F11: Sample, pool"]


def write_tsv(path, header, rows):
    """Write a tab-separated table; None becomes an empty field."""
    lines = ["\t".join(header)]
    for row in rows:
        lines.append("\t".join("" if v is None else str(v) for v in row))
    path.write_text("\n".join(lines) + "\n")
    return path


def cleaned(names):
    return [clean_column_name(n) for n in names]


def protein_values(seed=0, n_rows=20):
    """
    Abundance matrix (n_rows x 11) for KO, WT, pool.

    Row 0 is differential (KO 8x WT) on a small baseline; row n_rows-1 has
    every KO value missing. All other rows only carry multiplicative noise.
    """
    rng = np.random.default_rng(seed)
    baseline = 10 ** rng.uniform(6, 7, size=n_rows)
    baseline[0] = 1e5
    baseline[n_rows - 1] = 1e5
    values = baseline[:, None] * np.exp(rng.normal(0, 0.1, size=(n_rows, 11)))
    values[0, :5] *= 8
    values = values.astype(object)
    values[n_rows - 1, :5] = None
    return values


@pytest.fixture
def protein_header():
    return (
        ["Master", "Accession", "Description", "Exp. q-value: Combined", "# Peptides"]
        + KO + WT + POOL
    )


@pytest.fixture
def protein_file(tmp_path, protein_header):
    """20 flagged protein rows plus two rows failing the quality predicate."""
    values = protein_values()
    rows = []
    for i in range(20):
        rows.append(
            ["IsMasterProtein", f"P{i:05d}", f"Protein {i} OS=Mus musculus GN=Gene{i} PE=1 SV=1", 0.001, 3]
            + list(values[i])
        )
    rows.append(["IsMasterProteinCandidate", "Q00001", "Other OS=Mus musculus GN=Cand PE=2 SV=1", 0.001, 2] + [1e6] * 11)
    rows.append(["IsMasterProtein", "Q00002", "Weak OS=Mus musculus GN=Weak PE=1 SV=1", 0.05, 1] + [1e6] * 11)
    return write_tsv(tmp_path / "proteins.txt", protein_header, rows)


@pytest.fixture
def peptide_file(tmp_path):
    header = ["Checked", "Annotated Sequence", "Modifications", "Master Protein Accessions"] + PEP_KO + PEP_WT + PEP_POOL
    rng = np.random.default_rng(1)
    rows = []
    mods = ["1xPhospho [S5(100)]", "1xOxidation [M3]", "1xPhospho [T2(99.1)]", "", "1xphospho [S1]", "2xPhospho [S2; S7]"]
    for i, mod in enumerate(mods):
        vals = list(10 ** rng.uniform(5, 6) * np.exp(rng.normal(0, 0.1, 11)))
        rows.append(["False", f"[K].PEPTIDE{i}K.[R]", mod, f"P{i:05d}"] + vals)
    return write_tsv(tmp_path / "peptides.txt", header, rows)


@pytest.fixture
def reference_file(tmp_path):
    return write_tsv(
        tmp_path / "reference.txt",
        ["Symbol", "Description"],
        [["Gene1", "mito"], ["GENE2", "mito"], ["", "blank"], ["Other", "mito"]],
    )


@pytest.fixture
def protein_groups():
    return {"KO": cleaned(KO), "WT": cleaned(WT), "pool": cleaned(POOL)}


@pytest.fixture
def peptide_groups():
    return {"KO": cleaned(PEP_KO), "WT": cleaned(PEP_WT), "pool": cleaned(PEP_POOL)}


@pytest.fixture
def pipeline_config(tmp_path, protein_file, reference_file):
    return {
        "tables": {
            "protein": {
                "kind": "protein",
                "input_file": str(protein_file),
                "keep_columns": ["Master", "Accession", "Description", "Exp. q-value: Combined"],
                "groups": {"KO": KO, "WT": WT, "pool": POOL},
            }
        },
        "reference": {"input_file": str(reference_file), "gene_column": "Symbol"},
        "analysis": {"group_a": "KO", "group_b": "WT", "sign_threshold": 0.05},
        "exports": {
            "path_table": str(tmp_path / "out" / "results"),
            "path_h5ad": str(tmp_path / "out" / "results.h5ad"),
            "use_xlsx": False,
        },
    }
