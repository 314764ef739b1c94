"""
CLI Main - Typer-based command-line interface.

Usage:
    kbsearch import units.jsonl
    kbsearch init
    kbsearch search "oauth refresh tokens" --limit 5
    kbsearch search "redis" --filter '{"field": "type", "operator": "=", "value": "decision"}'
    kbsearch tag auth
    kbsearch serve
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from kbsearch.config import KBSearchError, get_settings

app = typer.Typer(
    name="kbsearch",
    help="KBSearch - Hybrid search over a personal knowledge base",
    add_completion=False,
)
console = Console()

EMBED_BATCH_SIZE = 64


@app.callback()
def _configure_logging() -> None:
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _open_services() -> tuple[Any, Any]:
    """Initialize the repository and load the vector index if present."""
    from kbsearch.interfaces.api.deps import (
        get_search_pipeline,
        get_sqlite_repository,
        init_services,
    )

    await init_services()
    return get_sqlite_repository(), get_search_pipeline()


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query"),
    limit: int | None = typer.Option(None, "--limit", "-n", help="Results per page"),
    page: int = typer.Option(1, "--page", "-p", help="Result page"),
    lexical: float | None = typer.Option(None, "--lexical", help="Lexical weight"),
    semantic: float | None = typer.Option(None, "--semantic", help="Semantic weight"),
    filter_json: list[str] = typer.Option(
        [], "--filter", "-f", help="Filter node as JSON (repeatable, combined with AND)"
    ),
    preset: str | None = typer.Option(None, "--preset", help="Built-in filter preset id"),
    source: str | None = typer.Option(None, "--source", help="Document source"),
    fmt: str | None = typer.Option(None, "--format", help="Document format"),
    date_from: str | None = typer.Option(None, "--from", help="Earliest timestamp"),
    date_to: str | None = typer.Option(None, "--to", help="Latest timestamp"),
) -> None:
    """Search the knowledge base."""
    try:
        filters = [json.loads(raw) for raw in filter_json]
    except json.JSONDecodeError as e:
        console.print(f"[red]Error:[/red] --filter is not valid JSON: {e}")
        raise typer.Exit(1)

    request: dict[str, Any] = {
        "query": query,
        "limit": limit or get_settings().search_default_limit,
        "page": page,
        "filters": filters,
        "preset": preset,
        "source": source,
        "format": fmt,
        "date_from": date_from,
        "date_to": date_to,
    }
    if lexical is not None or semantic is not None:
        settings = get_settings()
        request["weights"] = {
            "lexical": settings.lexical_weight if lexical is None else lexical,
            "semantic": settings.semantic_weight if semantic is None else semantic,
        }

    asyncio.run(_search_async(request))


async def _search_async(request: dict[str, Any]) -> None:
    """Async search implementation."""
    from kbsearch.interfaces.api.deps import cleanup_services
    from kbsearch.interfaces.api.routes.search import SearchRequest, build_search_query

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task("Searching...", total=None)

        try:
            _, pipeline = await _open_services()
            search_request = SearchRequest(**request)
            response = await pipeline.search(
                build_search_query(search_request), page=search_request.page
            )
        except KBSearchError as e:
            console.print(f"[red]Error:[/red] ({e.code.value}) {e.message}")
            raise typer.Exit(1)
        except ValidationError as e:
            console.print(f"[red]Invalid search options:[/red] {e}")
            raise typer.Exit(1)
        finally:
            await cleanup_services()

    if response.degraded:
        console.print("[yellow]Semantic search unavailable, showing lexical matches only[/yellow]")

    table = Table(title=f"Results for '{response.query}' (page {response.page})")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Score", style="green", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Title")
    table.add_column("Tags", style="magenta")

    offset = (response.page - 1) * response.limit
    for i, item in enumerate(response.results, offset + 1):
        unit = item.unit
        table.add_row(
            str(i),
            f"{item.combined_score:.4f}",
            unit.type if unit else "",
            unit.title if unit else item.unit_id,
            ", ".join(unit.tags) if unit else "",
        )

    console.print(table)
    console.print(
        f"[dim]{response.total} total, {response.query_time_ms:.1f}ms"
        f"{', cached' if response.cache_hit else ''}"
        f"{', more pages available' if response.has_more else ''}[/dim]"
    )


@app.command()
def tag(
    name: str = typer.Argument(..., help="Tag to look up"),
) -> None:
    """List units carrying a tag, newest first."""
    asyncio.run(_tag_async(name))


async def _tag_async(name: str) -> None:
    from kbsearch.interfaces.api.deps import cleanup_services

    try:
        repo, _ = await _open_services()
        units = await repo.units_by_tag(name)
    except KBSearchError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)
    finally:
        await cleanup_services()

    if not units:
        console.print(f"[yellow]No units tagged '{name}'[/yellow]")
        return

    table = Table(title=f"Tagged '{name}'")
    table.add_column("ID", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Title")
    table.add_column("Timestamp", style="green")
    for unit in units:
        table.add_row(unit.id, unit.type, unit.title, unit.timestamp.isoformat(timespec="minutes"))
    console.print(table)


@app.command("import")
def import_units(
    path: Path = typer.Argument(..., help="JSON Lines file, one unit per line"),
) -> None:
    """
    Import units into the database.

    Each line is a unit object; an optional ``document`` key holds
    ``{"id", "source_id", "format"}`` and is stored alongside.
    Run ``kbsearch init`` afterwards to embed the new units.
    """
    if not path.exists():
        console.print(f"[red]Error:[/red] File not found: {path}")
        raise typer.Exit(1)

    asyncio.run(_import_async(path))


async def _import_async(path: Path) -> None:
    from kbsearch.domains.search import DocumentMeta, Unit
    from kbsearch.interfaces.api.deps import cleanup_services, get_sqlite_repository

    settings = get_settings()
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)

    repo = get_sqlite_repository()
    imported = 0
    documents: set[str] = set()
    try:
        await repo.initialize()
        with path.open() as f:
            for line_no, line in enumerate(f, 1):
                if not line.strip():
                    continue
                try:
                    raw = json.loads(line)
                    document = raw.pop("document", None)
                    if document:
                        meta = DocumentMeta(**document)
                        if meta.id not in documents:
                            await repo.insert_document(meta)
                            documents.add(meta.id)
                        raw.setdefault("document_id", meta.id)
                    await repo.insert_unit(Unit(**raw))
                except (json.JSONDecodeError, ValidationError, TypeError, AttributeError) as e:
                    console.print(f"[yellow]Skipping line {line_no}:[/yellow] {e}")
                    continue
                imported += 1
    except KBSearchError as e:
        console.print(f"[red]Error:[/red] ({e.code.value}) {e.message}")
        raise typer.Exit(1)
    finally:
        await cleanup_services()

    console.print(f"[green]Imported {imported} units ({len(documents)} documents)[/green]")


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", "-h", help="Host to bind"),
    port: int | None = typer.Option(None, "--port", "-p", help="Port to bind"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload"),
) -> None:
    """Start the API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    console.print("\n[green]Starting KBSearch API server[/green]")
    console.print(f"[dim]http://{host}:{port}[/dim]\n")

    uvicorn.run(
        "kbsearch.interfaces.api:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


@app.command()
def init(
    rebuild: bool = typer.Option(
        False, "--rebuild", help="Re-embed every unit instead of loading the saved index"
    ),
) -> None:
    """Initialize the database and build the vector index from stored units."""
    asyncio.run(_init_async(rebuild))


async def _init_async(rebuild: bool) -> None:
    """Async initialization."""
    from kbsearch.adapters.faiss import FAISSIndex
    from kbsearch.interfaces.api.deps import (
        cleanup_services,
        get_embedder,
        get_sqlite_repository,
    )

    settings = get_settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)

    repo = get_sqlite_repository()
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Initializing SQLite database...", total=None)
            await repo.initialize()

            index = FAISSIndex(dimension=settings.embedding_dimension)
            units = await repo.all_units()
            if FAISSIndex.exists(settings.faiss_index_path) and not rebuild:
                await index.load(settings.faiss_index_path)
                pending = [u for u in units if u.embedding_status != "completed"]
            else:
                await index.initialize()
                pending = units

            embedder = get_embedder()
            for start in range(0, len(pending), EMBED_BATCH_SIZE):
                batch = pending[start : start + EMBED_BATCH_SIZE]
                progress.update(
                    task,
                    description=f"Embedding units {start + 1}-{start + len(batch)} of {len(pending)}...",
                )
                vectors = await embedder.embed_batch(
                    [f"{u.title}\n{u.content}".strip() for u in batch]
                )
                await index.add_units(vectors, batch)
                await repo.mark_embedded([u.id for u in batch])

            progress.update(task, description="Saving vector index...")
            await index.save(settings.faiss_index_path)
    except KBSearchError as e:
        console.print(f"[red]Error:[/red] ({e.code.value}) {e.message}")
        raise typer.Exit(1)
    finally:
        await cleanup_services()

    console.print("\n[green]Initialization complete![/green]")
    console.print(f"[dim]Units: {len(units)}, newly embedded: {len(pending)}[/dim]")
    console.print(f"[dim]Vector index: {settings.faiss_index_path} ({index.size} vectors)[/dim]")


@app.command()
def version() -> None:
    """Show version information."""
    from kbsearch import __version__

    console.print(f"KBSearch v{__version__}")


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
