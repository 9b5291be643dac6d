import typer
from pathlib import Path
import yaml
from importlib.resources import files

from omicsflux.utils.errors import OmicsFluxError
from omicsflux.utils.utils import setup_logging

app = typer.Typer(help="omicsflux: filtering, normalization and moderated t-tests for proteomics tables")


def _cap_table_display() -> None:
    # Result tables are wide; keep any logged frame to a readable block.
    import pandas as pd
    import polars as pl

    pl.Config.set_tbl_rows(10)
    pl.Config.set_tbl_cols(12)
    pl.Config.set_tbl_width_chars(160)
    pd.set_option("display.max_rows", 10)
    pd.set_option("display.max_columns", 12)
    pd.set_option("display.width", 160)


@app.command()
def init(
    path: Path = Path("omicsflux_config.yaml"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
):
    """
    Write the annotated config template to PATH.
    """
    if path.exists() and not force:
        raise typer.BadParameter(f"{path} already exists (use --force to overwrite)", param_hint="path")
    default_yaml = files("omicsflux.templates").joinpath("user_template.yaml").read_text()

    path.write_text(default_yaml)
    typer.echo(f"Template written to {path}")


@app.command()
def run(
    config: Path = typer.Option(..., help="Path to YAML config file"),
    log_level: str = typer.Option("INFO", help="Logging level"),
):
    """
    Run the omicsflux pipeline on the tables described in the config YAML.
    """
    from omicsflux.main import run_pipeline

    setup_logging(log_level)
    _cap_table_display()

    if not config.is_file():
        raise typer.BadParameter(f"Config file not found: {config}", param_hint="--config")
    config_data = yaml.safe_load(config.read_text()) or {}

    try:
        run_pipeline(config=config_data)
    except OmicsFluxError as e:
        typer.echo(f"{type(e).__name__}: {e}", err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
