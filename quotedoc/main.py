from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from . import config
from .layout.profiles import PROFILES
from .models import GenerationStatus, reset_engine
from .pipeline.ingest import list_records
from .pipeline.run import generate_many, retry_failed

app = typer.Typer(help="Quotation and invoice PDF generator")


def _use_out_dir(out: Optional[Path]) -> None:
    if out:
        config.set_out_dir(out)
        reset_engine()


def _print_results(results: dict[str, list[str]]) -> None:
    typer.echo(f"READY: {len(results['READY'])}")
    typer.echo(f"FAILED: {len(results['FAILED'])}")
    for line in results["FAILED"]:
        typer.echo(f"FAILED: {line}")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log layout decisions")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def generate(
    files: List[Path] = typer.Argument(..., help="JSON document files"),
    kind: str = typer.Option("quotation", "--kind", help="quotation or invoice"),
    page_format: str = typer.Option("a4", "--page-format", help="a4 or letter"),
    out: Optional[Path] = typer.Option(None, "--out", help="Output directory"),
    preview: bool = typer.Option(False, "--preview", help="Also render PNG previews"),
) -> None:
    if kind.lower() not in PROFILES:
        raise typer.BadParameter(f"Unknown document kind: {kind}", param_hint="--kind")
    if page_format.lower() not in config.PAGE_FORMATS:
        raise typer.BadParameter(f"Unknown page format: {page_format}", param_hint="--page-format")
    _use_out_dir(out)
    results = generate_many(files, kind=kind.lower(), page_format=page_format.lower(), preview=preview)
    _print_results(results)
    if results["FAILED"]:
        raise typer.Exit(code=1)


@app.command()
def retry(
    out: Optional[Path] = typer.Option(None, "--out", help="Output directory"),
    kind: Optional[str] = typer.Option(None, "--kind", help="Only retry this document kind"),
) -> None:
    _use_out_dir(out)
    results = retry_failed(kind=kind)
    if not results["READY"] and not results["FAILED"]:
        typer.echo("No documents to retry")
        return
    _print_results(results)


@app.command()
def history(
    out: Optional[Path] = typer.Option(None, "--out", help="Output directory"),
    failed: bool = typer.Option(False, "--failed", help="Show failed documents only"),
) -> None:
    _use_out_dir(out)
    statuses = [GenerationStatus.FAILED] if failed else []
    records = list_records(statuses)
    if not records:
        typer.echo("No documents recorded")
        return
    for record in records:
        line = f"{record.status.value:<6} {record.kind:<9} {record.file_name} ({record.page_count} page(s))"
        if record.fail_detail:
            line += f" - {record.fail_detail}"
        typer.echo(line)


if __name__ == "__main__":
    app()
