"""
CLI Interface
=============
Command-line interface for the PDF tools service.

Usage:
    pdftools serve [--host --port --workers]
    pdftools tools
    pdftools run <operation> <files...> [--param key=value ...]
    pdftools submit <operation> <files...> --server <url> [--download-dir DIR]
    pdftools info <pdf_path>
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click
import fitz  # PyMuPDF
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from . import __version__
from .client import ApiError, JobTimeoutError, PdfToolsClient, PollPolicy
from .config import ServiceConfig, setup_logging
from .dispatcher import OperationDispatcher
from .models import ErrorKind
from .storage import FileStorage
from .tools import tools_by_category

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="pdftools")
def cli():
    """PDF Tools: upload, process and convert PDF documents."""
    pass


# ─── serve ────────────────────────────────────────────────────────────────────


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind host")
@click.option("--port", default=5000, type=int, help="Bind port")
@click.option("--debug", is_flag=True, default=False, help="Flask debug mode")
@click.option("--workers", default=None, type=int, help="Job worker threads")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)
@click.option("--log-file", default=None, help="Path to log file")
def serve(host, port, debug, workers, log_level, log_file):
    """Run the HTTP service."""
    from .server import run_server

    config = ServiceConfig.from_env(workers=workers, log_level=log_level, log_file=log_file)
    console.print(
        Panel.fit(
            f"[bold cyan]PDF Tools v{__version__}[/]\n"
            f"[dim]http://{host}:{port}  ·  {config.workers} worker(s)[/]",
            border_style="cyan",
        )
    )
    run_server(host=host, port=port, debug=debug, config=config)


# ─── tools ────────────────────────────────────────────────────────────────────


@cli.command("tools")
def list_tools():
    """List the available operations."""
    table = Table(title="PDF Tools", border_style="cyan")
    table.add_column("Category", style="bold")
    table.add_column("Tool")
    table.add_column("Operation", style="green")
    table.add_column("Slug", style="dim")

    for category, tools in tools_by_category().items():
        for i, tool in enumerate(tools):
            table.add_row(category if i == 0 else "", tool.title, tool.operation, tool.slug)
        table.add_section()

    console.print(table)


# ─── run ──────────────────────────────────────────────────────────────────────


def parse_params(pairs: tuple[str, ...], params_json: str | None) -> dict:
    """
    Build a parameter dict from ``--params-json`` and ``--param KEY=VALUE``.
    Values are parsed as JSON when possible, so ``degrees=180`` is an int.
    """
    params: dict = {}
    if params_json:
        try:
            loaded = json.loads(params_json)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"not valid JSON: {e}", param_hint="--params-json")
        if not isinstance(loaded, dict):
            raise click.BadParameter("must be a JSON object", param_hint="--params-json")
        params.update(loaded)

    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="--param")
        try:
            params[key] = json.loads(raw)
        except json.JSONDecodeError:
            params[key] = raw
    return params


@cli.command()
@click.argument("operation")
@click.argument("files", nargs=-1, type=click.Path(exists=True, dir_okay=False))
@click.option("--param", "-p", "pairs", multiple=True, help="Operation parameter KEY=VALUE")
@click.option("--params-json", default=None, help="Operation parameters as a JSON object")
@click.option("--output-dir", "-o", default="outputs", help="Directory for results")
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)
def run(operation, files, pairs, params_json, output_dir, log_level):
    """Run one operation locally on FILES."""
    setup_logging(log_level)
    parameters = parse_params(pairs, params_json)

    storage = FileStorage(upload_dir=output_dir, output_dir=output_dir).init()
    dispatcher = OperationDispatcher(storage)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"Running {operation}...", total=None)
        result = dispatcher.dispatch(operation, list(files), parameters)

    if not result.success:
        console.print(f"[red]✗ {result.error_kind.value} error:[/] {result.error}", soft_wrap=True)
        sys.exit(2 if result.error_kind == ErrorKind.ROUTING else 1)

    table = Table(title=f"{operation} outputs", border_style="green")
    table.add_column("File", style="bold")
    table.add_column("Type")
    table.add_column("Size", justify="right")
    for output in result.output_files:
        table.add_row(output.path, output.mime_type, _human_size(output.size_bytes))
    console.print(table)
    _print_notices(result.notices)


# ─── submit ───────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("operation")
@click.argument("files", nargs=-1, type=click.Path(exists=True, dir_okay=False))
@click.option("--server", "-s", default="http://localhost:5000", help="Service base URL")
@click.option("--param", "-p", "pairs", multiple=True, help="Operation parameter KEY=VALUE")
@click.option("--params-json", default=None, help="Operation parameters as a JSON object")
@click.option("--download-dir", "-d", default=None, help="Save outputs here")
@click.option("--interval", default=1.0, type=float, help="Seconds between polls")
@click.option("--timeout", default=300.0, type=float, help="Give up after this many seconds")
def submit(operation, files, server, pairs, params_json, download_dir, interval, timeout):
    """Upload FILES to a running service and wait for the job."""
    parameters = parse_params(pairs, params_json)
    client = PdfToolsClient(server)

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("Uploading...", total=None)
            uploaded = client.upload(list(files)) if files else []
            progress.update(task, description=f"Starting {operation}...")
            job_id = client.process(operation, [f["id"] for f in uploaded], parameters)
            job = client.wait_for_job(
                job_id,
                PollPolicy(interval=interval, timeout=timeout),
                on_poll=lambda j: progress.update(task, description=f"Job {j['status']}..."),
            )
    except ApiError as e:
        console.print(f"[red]✗ {e}[/]")
        sys.exit(1)
    except JobTimeoutError as e:
        console.print(f"[yellow]⚠ {e}[/]")
        sys.exit(1)

    if job["status"] == "failed":
        console.print(f"[red]✗ Job failed:[/] {job.get('errorMessage')}", soft_wrap=True)
        sys.exit(1)

    table = Table(title=f"Job {job_id}", border_style="green")
    table.add_column("Output", style="bold")
    table.add_column("Type")
    table.add_column("Size", justify="right")
    table.add_column("Saved to", style="dim")
    for output in job.get("outputFiles", []):
        saved = ""
        if download_dir:
            Path(download_dir).mkdir(parents=True, exist_ok=True)
            saved = client.download(
                output["id"], os.path.join(download_dir, output["originalName"])
            )
        table.add_row(output["originalName"], output["fileType"], _human_size(output["fileSize"]), saved)
    console.print(table)
    _print_notices(job.get("notices", []))


# ─── info ─────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True))
def info(pdf_path: str):
    """Show PDF file information."""
    try:
        doc = fitz.open(pdf_path)
    except (RuntimeError, ValueError) as e:
        console.print(f"[red]✗ Cannot open {pdf_path}: {e}[/]")
        sys.exit(1)

    with doc:
        table = Table(title=f"PDF Info: {os.path.basename(pdf_path)}", border_style="cyan")
        table.add_column("Property", style="bold")
        table.add_column("Value")

        table.add_row("Pages", str(doc.page_count))
        table.add_row("File Size", _human_size(os.path.getsize(pdf_path)))
        table.add_row("Encrypted", "yes" if doc.needs_pass else "no")
        if doc.page_count and not doc.needs_pass:
            rect = doc[0].rect
            table.add_row("Page Size", f"{rect.width:.0f} x {rect.height:.0f} pt")
        for key, value in (doc.metadata or {}).items():
            if value:
                table.add_row(key.capitalize(), str(value))

    console.print(table)


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _human_size(size: int) -> str:
    if size >= 1024 * 1024:
        return f"{size / (1024 * 1024):.1f} MB"
    return f"{size / 1024:.1f} KB"


def _print_notices(notices: list[str]):
    if notices:
        console.print(
            Panel("\n".join(f"⚠ {n}" for n in notices), title="Limitations", border_style="yellow")
        )


# ─── Entry point (for python -m pdftools.cli) ─────────────────────────────────


if __name__ == "__main__":
    cli()
