"""
Hybrid RAG CLI - Command Line Interface
"""

import asyncio
import logging
from pathlib import Path

import click
from bs4 import BeautifulSoup
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

console = Console()

# Paths
BASE_DIR = Path(__file__).parent.resolve()
DATA_DIR = BASE_DIR / "data"

TEXT_SUFFIXES = {".txt", ".md", ".csv", ".tsv"}
HTML_SUFFIXES = {".html", ".htm"}


def _load_engine(data_dir: str):
    """Build the engine for a data directory with the configured providers."""
    from hybrid_rag.server.config import get_settings
    from hybrid_rag.server.dependencies import create_engine

    settings = get_settings().model_copy(update={"data_dir": Path(data_dir)})
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console
    ) as progress:
        progress.add_task("Loading engine...", total=None)
        return create_engine(settings)


def _read_document(path: Path, name: str | None, origin: str | None, doc_id: str | None):
    from hybrid_rag.models import Document, OriginKind
    from hybrid_rag.parsers import extract_html_sections

    raw = path.read_text(encoding="utf-8", errors="ignore")
    is_html = origin == "html" or (origin is None and path.suffix.lower() in HTML_SUFFIXES)
    if is_html:
        soup = BeautifulSoup(raw, "html.parser")
        return Document(
            doc_id=doc_id or path.stem,
            name=name or path.name,
            text=soup.get_text("\n", strip=True),
            origin=OriginKind.HTML,
            html_sections=extract_html_sections(raw),
        )
    return Document(
        doc_id=doc_id or path.stem,
        name=name or path.name,
        text=raw,
        origin=OriginKind(origin or "plain"),
    )


@click.group()
@click.version_option(version="1.0.0")
@click.option("--verbose", "-v", is_flag=True, help="Show engine logs")
def cli(verbose: bool):
    """Hybrid RAG CLI - Tiered retrieval with semantic caching"""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@cli.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.option("--name", "-n", default=None, help="Display name (single file only)")
@click.option("--origin", "-o", type=click.Choice(["plain", "html", "spreadsheet", "web_pages"]), default=None,
              help="Origin of the extracted text (guessed from the suffix by default)")
@click.option("--doc-id", default=None, help="Document id (single file only, defaults to the file stem)")
@click.option("--data-dir", "-d", default=str(DATA_DIR), help="Directory with persisted state")
def ingest(path: Path, name: str | None, origin: str | None, doc_id: str | None, data_dir: str):
    """Ingest a text/HTML file or every such file in a directory."""
    if path.is_dir():
        files = sorted(p for p in path.iterdir() if p.suffix.lower() in TEXT_SUFFIXES | HTML_SUFFIXES)
        name = doc_id = None
    else:
        files = [path]

    if not files:
        console.print("[red]No documents found![/red]")
        return

    console.print(Panel.fit(
        "[bold blue]Document Ingestion[/bold blue]\n"
        f"Source: {path}\n"
        f"Data: {data_dir}",
        title="📄 Ingesting Documents"
    ))

    from hybrid_rag.errors import DimensionMismatchError

    engine = _load_engine(data_dir)

    async def run():
        reports = []
        try:
            for file in files:
                document = _read_document(file, name, origin, doc_id)
                reports.append((file, await engine.ingest(document)))
        finally:
            await engine.flush()
        return reports

    try:
        reports = asyncio.run(run())
    except DimensionMismatchError as e:
        console.print(f"[red]{e}[/red]")
        console.print("[yellow]Remove the existing documents or switch back to the previous embedding model.[/yellow]")
        raise SystemExit(1)

    table = Table(title="Ingestion Summary")
    table.add_column("Document", style="cyan")
    table.add_column("Lexical chunks", justify="right")
    table.add_column("Embedded", justify="right")
    table.add_column("Replaced", justify="center")

    for file, report in reports:
        table.add_row(
            f"{report.doc_id} ({file.name})",
            str(report.lexical_chunks),
            f"{report.embedded}/{report.embedding_chunks}",
            "✓" if report.replaced else "",
        )

    console.print(table)


@cli.command()
@click.argument("question")
@click.option("--requester", "-r", default=None, help="Requester id for conversation memory")
@click.option("--data-dir", "-d", default=str(DATA_DIR), help="Directory with persisted state")
@click.option("--show-context", is_flag=True, help="Print the context sent to the model")
def ask(question: str, requester: str | None, data_dir: str, show_context: bool):
    """Answer a question against the indexed documents."""
    from hybrid_rag.errors import CompletionError

    engine = _load_engine(data_dir)

    console.print(Panel.fit(
        f"[bold]{question}[/bold]",
        title="❓ Question"
    ))

    async def run():
        try:
            return await engine.ask(question, requester)
        finally:
            await engine.flush()

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console
        ) as progress:
            progress.add_task("Answering...", total=None)
            result = asyncio.run(run())
    except CompletionError as e:
        console.print(f"[red]Completion failed: {e}[/red]")
        raise SystemExit(1)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(2)

    if result.sources:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Citation", style="cyan", width=30)
        table.add_column("Text", width=70)
        table.add_column("Score", justify="right", width=8)
        for source in result.sources:
            text = source.text[:200] + "..." if len(source.text) > 200 else source.text
            table.add_row(source.get_citation(), text, f"{source.score:.3f}")
        console.print(table)

    if show_context and result.context:
        console.print(Panel(result.context, title="📚 Context", border_style="dim"))

    console.print(Panel(
        result.answer,
        title=f"💡 Answer ({result.route.value})",
        border_style="green"
    ))


@cli.command()
@click.argument("doc_id")
@click.option("--data-dir", "-d", default=str(DATA_DIR), help="Directory with persisted state")
def remove(doc_id: str, data_dir: str):
    """Remove a document and its index entries."""
    engine = _load_engine(data_dir)

    async def run():
        removed = await engine.remove(doc_id)
        await engine.flush()
        return removed

    if asyncio.run(run()):
        console.print(f"[green]✓[/green] Removed: {doc_id}")
    else:
        console.print(f"[yellow]Unknown document: {doc_id}[/yellow]")


@cli.command()
@click.option("--data-dir", "-d", default=str(DATA_DIR), help="Directory with persisted state")
def stats(data_dir: str):
    """Show index and cache statistics."""
    engine = _load_engine(data_dir)
    stats = engine.stats()

    console.print(Panel.fit(
        "[bold blue]Engine Statistics[/bold blue]\n"
        f"Corpus hash: {stats['corpus_hash']}",
        title="📊 Stats"
    ))

    table = Table(title="Indices")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    vectors = stats["vector_index"]
    table.add_row("Documents", str(stats["documents"]))
    table.add_row("Lexical chunks", str(stats["lexical_index"]["chunks"]))
    table.add_row("Vectors", str(vectors["vector_count"]))
    table.add_row("Embedding Dimension", str(vectors["dimension"]))
    table.add_row("Graph built", "yes" if vectors["graph_built"] else "no")
    table.add_row("Average connections", str(vectors["avg_connections"]))
    table.add_row("Data Location", data_dir)
    console.print(table)

    caches = Table(title="Caches")
    caches.add_column("Cache", style="cyan")
    caches.add_column("Entries", justify="right")
    caches.add_column("Hits", justify="right")
    caches.add_column("Misses", justify="right")
    caches.add_column("Hit rate", justify="right")
    caches.add_column("Savings", justify="right")

    for label, key in (("Embedding", "embedding_cache"), ("FAQ", "faq_cache"), ("Response", "response_cache")):
        cache = stats[key]
        caches.add_row(
            label,
            str(cache["entries"]),
            str(cache["hits"]),
            str(cache["misses"]),
            f"{cache['hit_rate']:.1%}",
            f"${cache['estimated_savings']:.4f}",
        )
    console.print(caches)


@cli.command()
@click.option("--data-dir", "-d", default=str(DATA_DIR), help="Directory with persisted state")
def rebuild(data_dir: str):
    """Rebuild the vector index proximity graph."""
    engine = _load_engine(data_dir)

    async def run():
        result = engine.rebuild_vectors(show_progress=True)
        await engine.flush()
        return result

    result = asyncio.run(run())
    if result["rebuilt"]:
        console.print(
            f"[green]✓[/green] Rebuilt graph over {result['vector_count']} vectors "
            f"(avg {result['avg_connections']} connections)"
        )
    else:
        console.print("[yellow]Vector index is empty, nothing to rebuild[/yellow]")


@cli.command()
@click.option("--days", type=int, default=None, help="Age threshold in days (cache defaults when omitted)")
@click.option("--data-dir", "-d", default=str(DATA_DIR), help="Directory with persisted state")
def cleanup(days: int | None, data_dir: str):
    """Remove stale cache entries."""
    engine = _load_engine(data_dir)

    async def run():
        result = engine.cleanup(days)
        await engine.flush()
        return result

    result = asyncio.run(run())
    console.print(
        f"[green]✓[/green] Embedding cache: {result['embedding_cache']['removed']} removed, "
        f"response cache: {result['response_cache']['removed']} removed"
    )


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address")
@click.option("--port", "-p", default=8000, help="Port")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: str, port: int, reload: bool):
    """Start the HTTP API server."""
    import uvicorn

    uvicorn.run("hybrid_rag.server.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    cli()
