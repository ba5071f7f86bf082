"""Command line interface for Firestore Power Tools."""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from fpt.config import AppConfig, default_config_path, load_config, save_config
from fpt.errors import FptError
from fpt.query.builder import parse_query_request, run_query, validate_model
from fpt.query.export import ExportRequest, export_filename, parse_columns, stream_export
from fpt.schema.infer import DEFAULT_SAMPLE_LIMIT, infer_schema
from fpt.store.base import DocumentStore
from fpt.store.firestore import FirestoreStore
from fpt.write import WRITE_TOKEN_HEADER, generate_write_token


console = Console()
app = typer.Typer(help="Firestore Power Tools - inspect Firestore from your machine")
schema_app = typer.Typer(help="Schema tools")
app.add_typer(schema_app, name="schema")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _resolve_config(project: Optional[str], port: Optional[int] = None) -> AppConfig:
    config = load_config()
    if project:
        config.project_id = project
    if port is not None:
        config.port = port
    if not config.project_id:
        raise typer.BadParameter("Missing project id. Run `fpt setup` or pass --project <id>.")
    return config


def _open_store(config: AppConfig) -> DocumentStore:
    try:
        return FirestoreStore.connect(config.project_id, timeout=config.timeout)
    except FptError as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise typer.Exit(code=1) from exc


def _run(coro):
    try:
        return asyncio.run(coro)
    except FptError as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise typer.Exit(code=1) from exc


def _gcloud_default_project() -> str:
    try:
        result = subprocess.run(
            ["gcloud", "config", "get-value", "project"],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return ""
    value = result.stdout.strip()
    if result.returncode != 0 or value == "(unset)":
        return ""
    return value


def _print_schema(collection: str, limit: int, project: Optional[str], verbose: bool) -> None:
    _setup_logging(verbose)
    config = _resolve_config(project)
    store = _open_store(config)
    schema = _run(infer_schema(store, collection, limit))
    console.print_json(json.dumps(schema.to_dict()))


@app.command()
def setup(
    config_path: Path = typer.Option(None, "--config", help="Config file path"),
) -> None:
    """Interactive setup: project id, port and optional write mode."""
    path = config_path or default_config_path()
    existing = load_config(path)

    if shutil.which("gcloud") is None:
        console.print(
            "[yellow]gcloud CLI not found.[/yellow] Install it from "
            "https://cloud.google.com/sdk/docs/install and run `gcloud auth application-default login`."
        )
    elif typer.confirm("Run `gcloud auth application-default login` now?", default=False):
        subprocess.run(["gcloud", "auth", "application-default", "login"], check=False)

    default_project = existing.project_id or _gcloud_default_project()
    project_id = typer.prompt("GCP project id", default=default_project or None)
    port = typer.prompt("Local server port", default=existing.port, type=int)
    if not 0 < port <= 65535:
        raise typer.BadParameter("Invalid port.")

    existing.project_id = project_id.strip()
    existing.port = port
    if typer.confirm("Enable WRITE mode (edit/delete docs)?", default=False):
        existing.write_enabled = True
        existing.write_token = generate_write_token()
        console.print("\n[bold red]WRITE MODE ENABLED.[/bold red] Keep this token secret:")
        console.print(f"  {WRITE_TOKEN_HEADER}: {existing.write_token}\n")

    saved = save_config(existing, path)
    console.print(f"Saved config to [bold]{saved}[/bold]. Next: [bold]fpt serve[/bold]")


@app.command()
def doctor(
    project: Optional[str] = typer.Option(None, "--project", help="GCP project id"),
    port: Optional[int] = typer.Option(None, "--port", help="Local API port"),
) -> None:
    """Sanity-check gcloud, credentials and Firestore access."""
    config = load_config()
    project_id = project or config.project_id

    def line(ok: bool, label: str, detail: str = "") -> None:
        mark = "[green]OK  [/green]" if ok else "[red]FAIL[/red]"
        console.print(f"{mark} {label}" + (f" ({detail})" if detail else ""))

    has_gcloud = shutil.which("gcloud") is not None
    line(has_gcloud, "gcloud installed")
    if has_gcloud:
        adc = subprocess.run(
            ["gcloud", "auth", "application-default", "print-access-token"],
            capture_output=True,
            text=True,
            check=False,
        )
        ok = adc.returncode == 0
        line(ok, "ADC auth", "token OK" if ok else "run: gcloud auth application-default login")

    line(bool(project_id), "project id", project_id or "run: fpt setup (or pass --project)")
    if project_id:
        try:
            store = FirestoreStore.connect(project_id, timeout=config.timeout)
            asyncio.run(store.list_collections())
            line(True, "Firestore access", "listCollections OK")
        except FptError as exc:
            line(False, "Firestore access", exc.message)

    line(config.write_enabled, "write mode", "enabled" if config.write_enabled else "disabled")
    console.print(f"\nAPI: http://{config.host}:{port or config.port}")


@app.command()
def serve(
    project: Optional[str] = typer.Option(None, "--project", help="GCP project id"),
    host: Optional[str] = typer.Option(None, help="Host interface"),
    port: Optional[int] = typer.Option(None, help="Server port"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Start the local API server."""
    import uvicorn

    from fpt.web.app import create_app

    _setup_logging(verbose)
    config = _resolve_config(project, port)
    if host:
        config.host = host

    console.print(
        f"Starting API on http://{config.host}:{config.port} (project: {config.project_id}, "
        f"writes: {'enabled' if config.write_enabled else 'disabled'})"
    )
    uvicorn.run(
        create_app(config, _open_store(config)),
        host=config.host,
        port=config.port,
        reload=False,
        log_level="debug" if verbose else "info",
    )


@app.command()
def collections(
    project: Optional[str] = typer.Option(None, "--project", help="GCP project id"),
) -> None:
    """List collection names."""
    config = _resolve_config(project)
    names = _run(_open_store(config).list_collections())
    if not names:
        console.print("[yellow]No collections found.[/yellow]")
        return
    for name in sorted(names):
        console.print(name)


@app.command()
def infer(
    collection: str = typer.Option(..., "--collection", help="Collection name"),
    limit: int = typer.Option(DEFAULT_SAMPLE_LIMIT, "--limit", help="Sample size"),
    project: Optional[str] = typer.Option(None, "--project", help="GCP project id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Infer observed schema (shorthand for `schema infer`)."""
    _print_schema(collection, limit, project, verbose)


@schema_app.command("infer")
def schema_infer(
    collection: str = typer.Option(..., "--collection", help="Collection name"),
    limit: int = typer.Option(DEFAULT_SAMPLE_LIMIT, "--limit", help="Sample size"),
    project: Optional[str] = typer.Option(None, "--project", help="GCP project id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Infer observed schema from sampled documents."""
    _print_schema(collection, limit, project, verbose)


@app.command()
def query(
    collection: str = typer.Option(..., "--collection", help="Collection name"),
    where: Optional[str] = typer.Option(None, help='JSON array, e.g. \'[{"field":"age","op":">","value":3}]\''),
    order_by: Optional[str] = typer.Option(None, "--order-by", help="Field to sort by"),
    direction: str = typer.Option("asc", help="asc or desc"),
    limit: int = typer.Option(25, help="Page size (max 200)"),
    start_after: Optional[str] = typer.Option(None, "--start-after", help="Resume after this document id"),
    project: Optional[str] = typer.Option(None, "--project", help="GCP project id"),
) -> None:
    """Run a filtered, paginated query."""
    config = _resolve_config(project)
    raw = {
        "collection": collection,
        "where": where,
        "limit": limit,
        "startAfterId": start_after,
    }
    if order_by:
        raw["orderBy"] = {"field": order_by, "direction": direction}
    try:
        request = parse_query_request(raw)
    except FptError as exc:
        raise typer.BadParameter(exc.message) from exc

    response = _run(run_query(_open_store(config), request))
    if not response.docs:
        console.print("[yellow]No documents matched.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID")
    table.add_column("Data")
    for doc in response.docs:
        table.add_row(doc.id, json.dumps(doc.to_dict()["data"], ensure_ascii=False)[:180])
    console.print(table)
    console.print(f"Next page token: {response.next_page_token}")


@app.command()
def export(
    collection: str = typer.Option(..., "--collection", help="Collection name"),
    fmt: str = typer.Option("jsonl", "--format", help="jsonl or csv"),
    limit: int = typer.Option(1000, help="Maximum rows (max 5000)"),
    start_after: Optional[str] = typer.Option(None, "--start-after", help="Resume after this document id"),
    columns: Optional[str] = typer.Option(None, help="Comma-separated CSV columns"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file"),
    project: Optional[str] = typer.Option(None, "--project", help="GCP project id"),
) -> None:
    """Export documents as NDJSON or CSV."""
    config = _resolve_config(project)
    raw = {
        "collection": collection,
        "format": fmt,
        "limit": limit,
        "startAfter": start_after,
        "columns": parse_columns(columns),
    }
    try:
        request = validate_model(ExportRequest, {key: value for key, value in raw.items() if value is not None})
    except FptError as exc:
        raise typer.BadParameter(exc.message) from exc

    target = output or Path(export_filename(request.collection, request.format))
    store = _open_store(config)

    async def _write() -> None:
        with target.open("wb") as handle:
            async for chunk in stream_export(store, request):
                handle.write(chunk)

    _run(_write())
    console.print(f"Wrote [bold]{target}[/bold]")
