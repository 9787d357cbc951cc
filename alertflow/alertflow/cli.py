from __future__ import annotations

from pathlib import Path
from typing import List, Optional
from zipfile import BadZipFile

import typer
from openpyxl.utils.exceptions import InvalidFileException

from .assembler import DOCUMENT_KEYS, OUTPUT_FILES, build_all, to_json
from .config import default_config_json, load_config, load_settings
from .errors import AlertflowError, InputFormatError
from .excel_export import export_excel
from .excel_loader import load_excel
from .json_loader import load_json
from .logging import configure_logging, get_logger
from .schema import FLOW_TYPES, ConverterConfig, LoadedConfiguration, MergeMode, merge_mode_from_flag
from .xml_loader import load_xml


app = typer.Typer(add_completion=False, no_args_is_help=True)
log = get_logger(__name__)

COMBINED_FILE = "DeliveryFlows.json"

# unreadable or corrupt inputs end the command with exit code 1
LOAD_ERRORS = (FileNotFoundError, AlertflowError, InvalidFileException, BadZipFile)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level (default from ALERTFLOW_LOG_LEVEL or WARNING)"),
):
    """Convert hospital alert-routing workbooks and rule packages into delivery-flow JSON."""
    configure_logging(log_level or load_settings().log_level)


def load_any(path: str, config: ConverterConfig) -> LoadedConfiguration:
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix in (".xlsx", ".xlsm"):
        return load_excel(p, config)
    if suffix == ".xml":
        return load_xml(p)
    if suffix == ".json":
        return load_json(p)
    raise InputFormatError(f"unsupported input type {p.suffix or '(none)'}: expected .xlsx, .xml or .json")


@app.command("convert")
def cli_convert(
    input: str = typer.Option(..., "--input", help="Workbook (.xlsx), XML rule package or JSON document"),
    out_dir: str = typer.Option(".", "--out-dir", help="Directory for the generated JSON files"),
    merge_mode: Optional[MergeMode] = typer.Option(None, "--merge-mode", help="Grouping strategy for identical rows"),
    merge: Optional[bool] = typer.Option(None, "--merge/--no-merge", help="Legacy switch: merge across config groups or not at all"),
    config: Optional[str] = typer.Option(None, "--config", help="Converter configuration JSON"),
    combined: bool = typer.Option(False, "--combined", help="Write a single file holding all three documents"),
):
    try:
        cfg = load_config(config)
        loaded = load_any(input, cfg)
    except LOAD_ERRORS as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)

    mode = merge_mode
    if mode is None and merge is not None:
        mode = merge_mode_from_flag(merge)
    documents = build_all(loaded, cfg, mode)

    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []
    if combined:
        path = out / COMBINED_FILE
        path.write_text(to_json({DOCUMENT_KEYS[ft]: documents[ft] for ft in FLOW_TYPES}), encoding="utf-8")
        written.append(path)
    else:
        for ft in FLOW_TYPES:
            path = out / OUTPUT_FILES[ft]
            path.write_text(to_json(documents[ft]), encoding="utf-8")
            written.append(path)
    log.info("conversion_written", input=input, files=[str(p) for p in written])
    for p in written:
        typer.echo(str(p))


@app.command("summary")
def cli_summary(
    input: str = typer.Option(..., "--input", help="Workbook, XML rule package or JSON document"),
    config: Optional[str] = typer.Option(None, "--config", help="Converter configuration JSON"),
):
    try:
        loaded = load_any(input, load_config(config))
    except LOAD_ERRORS as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Unit Breakdown: {len(loaded.units)}")
    typer.echo(f"Nurse Calls: {len(loaded.nurse_calls)}")
    typer.echo(f"Clinicals: {len(loaded.clinicals)}")
    typer.echo(f"Orders: {len(loaded.orders)}")


@app.command("export-excel")
def cli_export_excel(
    input: str = typer.Option(..., "--input", help="Workbook, XML rule package or JSON document"),
    out: str = typer.Option(..., "--out", help="Path of the workbook to write"),
    config: Optional[str] = typer.Option(None, "--config", help="Converter configuration JSON"),
):
    try:
        cfg = load_config(config)
        loaded = load_any(input, cfg)
    except LOAD_ERRORS as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    path = export_excel(loaded, out, cfg, source=Path(input).name)
    typer.echo(str(path))


@app.command("init-config")
def cli_init_config(out: str = typer.Option("alertflow.config.json", "--out")):
    Path(out).write_text(default_config_json(), encoding="utf-8")
    typer.echo(out)


if __name__ == "__main__":
    app()
