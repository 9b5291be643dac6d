"""Export differential-abundance results to Excel/CSV and write the .h5ad.

The "Summary" table holds, per analyte: metadata, log ratio, moderated
t-statistic, p/adjusted p-values, a significance flag, per-group missing
counts and the processed and raw intensities. Rows that could not be fitted
are listed in a separate "Excluded" table.
"""
import pandas as pd
from pathlib import Path
from datetime import datetime, timezone
from typing import Dict, Optional
from importlib.metadata import version as _pkg_version, PackageNotFoundError

from omicsflux.utils.utils import log_info, log_time


class DEExporter:
    def __init__(
        self,
        adata,
        output_path,
        use_xlsx=False,
        sig_threshold=0.05,
    ):
        """Excel/CSV and .h5ad exporter for a tested `AnnData`."""
        self.adata = adata
        self.output_path = Path(output_path) if output_path else None
        self.use_xlsx = use_xlsx
        self.sig_threshold = sig_threshold
        self.contrasts = self.adata.uns.get("contrast_names", [])

    def _get_dataframe(self, matrix_name: str) -> Optional[pd.DataFrame]:
        """Return varm[matrix_name] as a (features × contrasts) DataFrame, or None."""
        if matrix_name in self.adata.varm:
            return pd.DataFrame(self.adata.varm[matrix_name],
                                index=self.adata.var.index,
                                columns=self.contrasts)
        return None

    def summary_table(self) -> pd.DataFrame:
        """Wide per-analyte table, in the ranked order of the test results."""
        ad = self.adata

        log_ratio = self._get_dataframe("log_ratio")
        if log_ratio is None:
            raise AssertionError("Missing required varm matrix: log_ratio")
        t_stat = self._get_dataframe("t")
        p_val = self._get_dataframe("p")
        q_val = self._get_dataframe("q")

        meta_df = ad.var.copy()

        blocks = [meta_df, log_ratio.add_prefix("LOG_RATIO_")]
        if t_stat is not None:
            blocks.append(t_stat.add_prefix("T_"))
        if q_val is not None:
            blocks.append(q_val.add_prefix("QVALUE_"))
            sig = (q_val < self.sig_threshold).add_prefix("SIGNIFICANT_")
            blocks.append(sig)
        if p_val is not None:
            blocks.append(p_val.add_prefix("PVALUE_"))

        missing = ad.uns.get("missingness")
        if missing is not None:
            blocks.append(missing.reindex(ad.var.index).add_prefix("MISSING_"))

        # Intensities (samples × features) -> (features × samples)
        X = pd.DataFrame(ad.X, index=ad.obs_names, columns=ad.var_names).T
        blocks.append(X.add_prefix("processed_log_"))
        if "raw" in ad.layers:
            raw = pd.DataFrame(ad.layers["raw"], index=ad.obs_names, columns=ad.var_names).T
            blocks.append(raw.add_prefix("Raw_"))

        summary_df = pd.concat(blocks, axis=1)
        summary_df.index.name = "INDEX"

        results = ad.uns.get("results")
        if results is not None:
            ranked = [i for i in results.index if i in summary_df.index]
            seen = set(ranked)
            rest = [i for i in summary_df.index if i not in seen]
            summary_df = summary_df.loc[ranked + rest]
        return summary_df

    def excluded_table(self) -> Optional[pd.DataFrame]:
        exc = self.adata.uns.get("excluded")
        if exc is None or len(exc["rows"]) == 0:
            return None
        return pd.DataFrame({"REASON": list(exc["reasons"])}, index=pd.Index(list(exc["rows"]), name="INDEX"))

    def _export_excel(self, tables: Dict[str, Optional[pd.DataFrame]], readme: str) -> Path:
        """Write selected tables to a single XLSX with a README sheet."""
        out_file = self.output_path.with_suffix(".xlsx")
        with pd.ExcelWriter(out_file, engine="xlsxwriter") as writer:
            pd.DataFrame({"README": readme.split("\n")}).to_excel(
                writer, index=False, sheet_name="README"
            )

            header_fmt = writer.book.add_format({"bold": False, "align": "left", "border": 0})

            for name, df in tables.items():
                if df is None:
                    continue

                ws = writer.book.add_worksheet(name)
                df_out = df.reset_index()
                columns = list(df_out.columns)
                ws.write_row(0, 0, columns, header_fmt)
                df_out.to_excel(writer, sheet_name=name, startrow=1, index=False, header=False)
                ws.set_column(0, len(columns) - 1, 14)
        return out_file

    def _export_csvs(self, tables: Dict[str, Optional[pd.DataFrame]]) -> Path:
        """Write each table to a separate CSV with a shared filename prefix."""
        prefix = self.output_path.with_suffix("")
        first = None
        for name, df in tables.items():
            if df is not None:
                path = Path(f"{prefix}_{name}.csv")
                df.to_csv(path)
                first = first or path
        return first

    @log_time("Differential abundance - exporting table")
    def export(self) -> Path:
        """Export Summary (+ Excluded) as xlsx or csv."""
        if self.output_path is None:
            raise ValueError("No output path configured for the result table.")
        self.output_path.parent.mkdir(parents=True, exist_ok=True)

        readme = (
            "omicsflux differential abundance export\n\n"
            f"Contrast(s): {', '.join(self.contrasts)}\n"
            f"Significance: adjusted p-value < {self.sig_threshold}\n\n"
            "Sheet Descriptions:\n"
            "- Summary: metadata, log ratio (natural log), t, Q/P-values, missing counts, intensities.\n"
            "- Excluded: rows that could not be fitted, with the reason.\n"
        )
        tables = {
            "Summary": self.summary_table(),
            "Excluded": self.excluded_table(),
        }

        if self.use_xlsx:
            out = self._export_excel(tables, readme)
        else:
            out = self._export_csvs(tables)
        log_info(f"Table written to {out}")
        return out

    @log_time("Exporting .h5ad")
    def export_adata(self, h5ad_path: str) -> None:
        """Write a .h5ad with categorical metadata and package version info."""
        for col in ["GROUP", "gene_name", "description", "master"]:
            if col in self.adata.obs.columns:
                self.adata.obs[col] = self.adata.obs[col].astype("category")
            if col in self.adata.var.columns:
                self.adata.var[col] = self.adata.var[col].astype("category")

        meta = self.adata.uns.get("omicsflux", {})
        if not isinstance(meta, dict):
            meta = {}
        try:
            of_version = _pkg_version("omicsflux")
        except PackageNotFoundError:
            of_version = "0+unknown"
        meta.setdefault("version", of_version)
        meta.setdefault("created_at", datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"))
        self.adata.uns["omicsflux"] = meta

        Path(h5ad_path).parent.mkdir(parents=True, exist_ok=True)
        self.adata.write(h5ad_path, compression="gzip")
