from pathlib import Path
from typing import Dict

import anndata as ad

from omicsflux.analysis.limma_pipeline import run_limma_pipeline
from omicsflux.config import PipelineConfig
from omicsflux.export.de_exporter import DEExporter
from omicsflux.utils.utils import log_info, log_indent, log_time
from omicsflux.workflow.dataset import Dataset, load_reference_genes


def _per_table_path(path: str, name: str, n_tables: int) -> str:
    """Suffix output paths with the table name when several tables are run."""
    if n_tables == 1:
        return path
    p = Path(path)
    return str(p.with_name(f"{p.stem}_{name}{p.suffix}"))


@log_time("omicsflux Pipeline")
def run_pipeline(config: dict) -> Dict[str, ad.AnnData]:
    """Load, filter, annotate, normalize and test every configured table."""
    cfg = PipelineConfig.from_dict(config)
    analysis = cfg.analysis

    reference_genes = None
    if cfg.reference:
        reference_genes = load_reference_genes(cfg.reference.input_file, cfg.reference.gene_column)

    results = {}
    for name, table in cfg.tables.items():
        log_info(f"Table '{name}' ({table.kind})")
        with log_indent():
            dataset = Dataset(table, cfg.group_assignment(name), reference_genes=reference_genes)
            adata = run_limma_pipeline(dataset.get_anndata(), analysis)

            exports = cfg.exports
            if exports.path_table:
                exporter = DEExporter(
                    adata,
                    output_path=_per_table_path(exports.path_table, name, len(cfg.tables)),
                    use_xlsx=exports.use_xlsx,
                    sig_threshold=analysis.sig_threshold,
                )
                exporter.export()
                if exports.path_h5ad:
                    exporter.export_adata(_per_table_path(exports.path_h5ad, name, len(cfg.tables)))
            elif exports.path_h5ad:
                DEExporter(adata, output_path=None).export_adata(
                    _per_table_path(exports.path_h5ad, name, len(cfg.tables))
                )

        results[name] = adata
    return results
