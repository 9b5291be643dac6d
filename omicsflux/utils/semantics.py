"""
Canonical semantics for omicsflux.

This module is intentionally small and declarative:
  - Canonical table kinds
  - Default column names (already in normalized snake_case) per table kind
  - Default quality-filter markers and thresholds

Implementation details live elsewhere (preprocessing, annotation, pipelines).
"""

TABLE_KINDS_CANONICAL = ("protein", "peptide")

# Derived columns
GENE_NAME_COLUMN = "gene_name"
REFERENCE_FLAG_COLUMN = "in_reference"
GROUP_COLUMN = "GROUP"

# Description parsing markers (UniProt FASTA header fields)
GENE_MARKER = "GN="
EVIDENCE_MARKER = "PE="

# Protein defaults
PROTEIN_KEEP_COLUMNS = ("master", "accession", "description", "exp_q_value_combined")
PROTEIN_ABUNDANCE_PREFIX = r"abundance_f\d+"
MASTER_COLUMN = "master"
MASTER_VALUE = "IsMasterProtein"
QVALUE_COLUMN = "exp_q_value_combined"
QVALUE_CUTOFF = 0.01

# Peptide defaults
PEPTIDE_KEEP_COLUMNS = ("annotated_sequence", "modifications", "master_protein_accessions")
PEPTIDE_ABUNDANCE_PREFIX = r"abundances_normalized_f\d+"
MODIFICATION_COLUMN = "modifications"
MODIFICATION_MARKER = "Phospho"

# Shared
MAX_MISSING = 5
