"""Typer CLI for the VCF dumper.

Usage:
    # Export two studies into a compressed VCF in ./out
    vcf-dumper -s hsapiens -d eva_hsapiens --study PRJEB1 --study PRJEB2 -o out --store-root /data/store

    # Export one region of one file to stdout
    vcf-dumper -s hsapiens -d eva_hsapiens --study PRJEB1 --file ERZ1 --filter region=22:16000000-17000000 --stdout

    # Restrict to missense variants, 4 windows in parallel
    vcf-dumper -s hsapiens -d eva_hsapiens --study PRJEB1 -o out --filter annot-ct=SO:0001583 -j 4
"""

import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from vcf_dumper import __version__
from vcf_dumper.config import DEFAULT_CELLBASE_URL, DEFAULT_WINDOW_SIZE, ExportConfig
from vcf_dumper.exceptions import InvalidArgumentError, VcfDumperError

app = typer.Typer(
    name="vcf-dumper",
    help="Export variants of one or more studies from a variant store into a single VCF",
    add_completion=False,
)

# VCF may go to stdout, so all console output goes to stderr
console = Console(stderr=True)


def parse_filters(values: list[str]) -> dict[str, list[str]]:
    """Parse repeated NAME=VALUE options into a name -> values mapping.

    Example:
        >>> parse_filters(["region=1:1-100", "region=2", "type=SNV"])
        {"region": ["1:1-100", "2"], "type": ["SNV"]}
    """
    filters: dict[str, list[str]] = {}
    for value in values:
        name, sep, filter_value = value.partition("=")
        if not sep or not name:
            raise typer.BadParameter(f"Expected NAME=VALUE, got '{value}'", param_hint="--filter")
        filters.setdefault(name.strip(), []).append(filter_value.strip())
    return filters


@app.command()
def export(
    species: Annotated[
        str,
        typer.Option("--species", "-s", help="Species name, e.g. hsapiens"),
    ],
    database: Annotated[
        str,
        typer.Option("--database", "-d", help="Variant store database name"),
    ],
    studies: Annotated[
        list[str],
        typer.Option("--study", help="Study identifier (repeatable)"),
    ],
    files: Annotated[
        list[str] | None,
        typer.Option("--file", help="File identifier (repeatable, default: all files)"),
    ] = None,
    output_dir: Annotated[
        Path | None,
        typer.Option(
            "--output-dir", "-o",
            help="Output directory for the compressed VCF",
            file_okay=False,
            dir_okay=True,
        ),
    ] = None,
    stdout: Annotated[
        bool,
        typer.Option("--stdout", help="Write uncompressed VCF to standard output"),
    ] = False,
    filters: Annotated[
        list[str] | None,
        typer.Option("--filter", help="Query filter NAME=VALUE (repeatable)"),
    ] = None,
    store_root: Annotated[
        Path,
        typer.Option(
            "--store-root",
            help="Root directory of the parquet variant store",
            exists=True,
            file_okay=False,
            dir_okay=True,
        ),
    ] = Path("."),
    window_size: Annotated[
        int,
        typer.Option("--window-size", help="Window span in bases", min=1),
    ] = DEFAULT_WINDOW_SIZE,
    workers: Annotated[
        int,
        typer.Option("--workers", "-j", help="Windows exported in parallel", min=1, max=32),
    ] = 1,
    cellbase_url: Annotated[
        str,
        typer.Option("--cellbase-url", help="CellBase REST base URL", envvar="VCF_DUMPER_CELLBASE_URL"),
    ] = DEFAULT_CELLBASE_URL,
    log_dir: Annotated[
        Path | None,
        typer.Option("--log-dir", help="Directory for log files (default: current directory)"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose logging"),
    ] = False,
) -> None:
    """Export the variants of the given studies into one VCF.

    Chromosomes come from the region filter when given, otherwise from the
    CellBase chromosome catalog of the species. Each chromosome is exported
    in windows, and records are ordered by position.
    """
    import logging

    from vcf_dumper.controller import VariantExporterController
    from vcf_dumper.logging_config import setup_logging

    if stdout == (output_dir is not None):
        console.print("[red]ERROR:[/red] Use exactly one of --output-dir and --stdout")
        raise typer.Exit(code=1)

    setup_logging(
        log_dir=str(log_dir) if log_dir else None,
        console_level=logging.DEBUG if verbose else logging.WARNING,
        console=console,
    )

    console.print("\n[bold]VCF dumper[/bold]", style="blue")
    console.print(f"Python implementation v{__version__}\n")

    config = ExportConfig(
        species=species,
        database=database,
        studies=studies,
        files=files or [],
        output_dir=output_dir,
        query_parameters=parse_filters(filters or []),
        window_size=window_size,
        max_workers=workers,
        store_root=store_root,
        cellbase_url=cellbase_url,
    )

    console.print("Options Set:")
    # User values may contain rich markup characters
    console.print(f"Species:                     {escape(config.species)}")
    console.print(f"Database:                    {escape(config.database)}")
    console.print(f"Studies:                     {escape(', '.join(config.studies))}")
    console.print(f"Files:                       {escape(', '.join(config.files)) or '(all)'}")
    console.print(f"Output:                      {escape(str(config.output_dir)) if config.output_dir else '(stdout)'}")
    for name, values in config.query_parameters.items():
        console.print(f"Filter {escape(name + ':'):<21}{escape(','.join(values))}")
    console.print("")

    output_stream = sys.stdout.buffer if stdout else None
    if output_dir is not None:
        output_dir.mkdir(parents=True, exist_ok=True)

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed:,} windows"),
            TimeElapsedColumn(),
            console=console,
            disable=stdout and not console.is_terminal,
        ) as progress:
            task = progress.add_task("Exporting variants...", total=None)

            def on_window(result) -> None:
                progress.update(task, advance=1, description=f"Exporting {result.region.chromosome}...")

            controller = VariantExporterController.from_config(
                config, output_stream=output_stream, on_window=on_window
            )
            controller.run()
    except InvalidArgumentError as e:
        console.print(f"[red]ERROR:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)
    except VcfDumperError as e:
        console.print(f"[red]ERROR:[/red] {escape(str(e))}")
        if verbose:
            import traceback
            console.print(traceback.format_exc())
        raise typer.Exit(code=1)

    console.print("\n[bold]Export summary:[/bold]")
    console.print(f"  Variants written:   {controller.records_written:,}")
    console.print(f"  Variants failed:    {controller.failed_variants:,}")
    if controller.output_file_path is not None:
        console.print(f"  Output file:        {controller.output_file_path}")
    console.print("\n[green]Export complete![/green]\n")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
