"""Command line interface for the Loom & Page image resolver."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple

import click
from dotenv import find_dotenv, load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from loompage.context import get_default_context
from loompage.gallery import DEFAULT_GALLERY_LIMIT, MAX_GALLERY_LIMIT, GalleryAggregator
from loompage.models import ImageCandidate, ImageQuery, Orientation
from loompage.providers import ProviderFactory
from loompage.query import images_per_chapter, is_visual_topic
from loompage.session import ImageSession
from loompage.waterfall import WaterfallOrchestrator


console = Console()

ORIENTATIONS = click.Choice([o.value for o in Orientation], case_sensitive=False)


def configure_logging(verbose: bool) -> None:
    """Route log records through rich when running interactively."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _candidate_table(title: str, candidates: List[ImageCandidate]) -> Table:
    table = Table(title=title)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Source", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Print", justify="center")
    table.add_column("Attribution")
    table.add_column("URL", overflow="fold")

    for index, candidate in enumerate(candidates, 1):
        table.add_row(
            str(index),
            candidate.source.display_name,
            f"{candidate.width}x{candidate.height}",
            "[green]yes[/green]" if candidate.is_print_ready else "[yellow]no[/yellow]",
            candidate.attribution,
            candidate.image_url,
        )
    return table


def _load_book_requests(path: str) -> List[Tuple[str, Orientation]]:
    """Read a JSON list of queries (strings or ``{"query", "orientation"}`` objects)."""
    data = json.loads(Path(path).read_text(encoding='utf-8'))
    if not isinstance(data, list):
        raise click.ClickException("Book file must contain a JSON list of image queries")

    requests: List[Tuple[str, Orientation]] = []
    for entry in data:
        if isinstance(entry, str):
            requests.append((entry, Orientation.LANDSCAPE))
        elif isinstance(entry, dict) and entry.get('query'):
            requests.append((entry['query'], Orientation(entry.get('orientation', 'landscape'))))
        else:
            raise click.ClickException(f"Invalid image query entry: {entry!r}")
    return requests


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Show debug logging')
def cli(verbose: bool):
    """Loom & Page - find print-quality photography for generated books."""
    load_dotenv(find_dotenv(usecwd=True))
    configure_logging(verbose)


@cli.command()
@click.argument('query')
@click.option(
    '--orientation',
    type=ORIENTATIONS,
    default='landscape',
    show_default=True,
    help='Requested image orientation'
)
@click.option('--topic', help='Book topic used to anchor the query')
@click.option('--cover', is_flag=True, help='Image will be used on a commercial cover')
@click.option('--exclude', multiple=True, help='URL already used (repeatable)')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
def search(query: str, orientation: str, topic: str | None, cover: bool, exclude: Tuple[str, ...], as_json: bool):
    """Find a single image through the provider waterfall."""
    context = get_default_context()
    orchestrator = WaterfallOrchestrator(ProviderFactory.create_all(context), context)
    image_query = ImageQuery(
        text=query,
        orientation=Orientation(orientation.lower()),
        topic=topic,
        excluded_urls=frozenset(exclude),
        for_cover=cover,
    )

    result = asyncio.run(orchestrator.resolve(image_query))

    if as_json:
        payload: Dict[str, Any] = (
            result.candidate.to_response() if result.candidate
            else {"imageUrl": None, "attribution": "", "source": "none"}
        )
        payload["message"] = result.message
        click.echo(json.dumps(payload, indent=2))
        return

    if result.candidate is None:
        console.print(f"[yellow]No image found:[/yellow] {result.message} ({result.attempts} attempts)")
        return

    console.print(_candidate_table(f"Result for '{result.query}'", [result.candidate]))
    console.print(f"[dim]{result.message} after {result.attempts} attempt(s)[/dim]")


@cli.command()
@click.argument('query')
@click.option(
    '--limit',
    type=click.IntRange(1, MAX_GALLERY_LIMIT),
    default=DEFAULT_GALLERY_LIMIT,
    show_default=True,
    help='Maximum number of images'
)
@click.option(
    '--orientation',
    type=ORIENTATIONS,
    default='landscape',
    show_default=True,
    help='Requested image orientation'
)
@click.option('--topic', help='Book topic used to anchor the query')
@click.option('--cover', is_flag=True, help='Only cover-safe licenses')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
def gallery(query: str, limit: int, orientation: str, topic: str | None, cover: bool, as_json: bool):
    """Search every provider and list the interleaved results."""
    context = get_default_context()
    aggregator = GalleryAggregator(ProviderFactory.create_all(context), context)
    image_query = ImageQuery(
        text=query,
        orientation=Orientation(orientation.lower()),
        topic=topic,
        for_cover=cover,
    )

    result = asyncio.run(aggregator.search(image_query, limit=limit))

    if as_json:
        click.echo(json.dumps({
            "images": [image.to_response() for image in result.images],
            "query": result.query,
            "sources": result.sources,
            "printReadyCount": result.print_ready_count,
            "hasVerifiedArticleImage": result.has_verified_article_image,
            "message": result.message,
        }, indent=2))
        return

    if not result.images:
        console.print(f"[yellow]{result.message or 'No images found'}[/yellow]")
        return

    console.print(_candidate_table(f"Gallery for '{result.query}'", result.images))
    sources = ", ".join(f"{name}: {count}" for name, count in result.sources.items())
    console.print(f"[cyan]{len(result.images)} images ({sources}), {result.print_ready_count} print ready[/cyan]")


@cli.command()
@click.argument('queries_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--topic', help='Book topic shared by every chapter')
@click.option('--cover', is_flag=True, help='Only cover-safe licenses')
@click.option('--output', type=click.Path(dir_okay=False), help='Write the resolved images to a JSON file')
def book(queries_file: str, topic: str | None, cover: bool, output: str | None):
    """Resolve a JSON list of chapter image queries without reusing an image."""
    requests = _load_book_requests(queries_file)
    context = get_default_context()
    orchestrator = WaterfallOrchestrator(ProviderFactory.create_all(context), context)
    session = ImageSession(orchestrator, topic=topic, for_cover=cover)

    if topic:
        kind = "visual" if is_visual_topic(topic) else "informational"
        console.print(Panel(
            f"Topic: [bold]{topic}[/bold]\n"
            f"Layout: {kind}, {images_per_chapter(topic)} images per chapter\n"
            f"Queries: {len(requests)}",
            title="Book images"
        ))

    results = asyncio.run(session.resolve_many(requests))

    table = Table(title="Resolved images")
    table.add_column("Query")
    table.add_column("Source", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("URL", overflow="fold")
    for (text, _), candidate in zip(requests, results):
        if candidate is None:
            table.add_row(text, "[yellow]none[/yellow]", "-", "-")
        else:
            table.add_row(text, candidate.source.display_name, f"{candidate.width}x{candidate.height}", candidate.image_url)
    console.print(table)

    found = sum(1 for c in results if c is not None)
    console.print(f"[green]Resolved {found} of {len(results)} images[/green]")

    if output:
        Path(output).write_text(json.dumps([
            {"query": text, "image": candidate.to_response() if candidate else None}
            for (text, _), candidate in zip(requests, results)
        ], indent=2), encoding='utf-8')
        console.print(f"[green]Saved results to: {output}[/green]")


@cli.command()
def providers():
    """Show which image providers are configured."""
    context = get_default_context()

    table = Table(title="Image providers")
    table.add_column("Priority", justify="right")
    table.add_column("Provider", style="cyan")
    table.add_column("Status")
    for index, provider in enumerate(ProviderFactory.create_all(context), 1):
        status = "[green]available[/green]" if provider.is_available else "[red]missing credential[/red]"
        table.add_row(str(index), provider.display_name, status)
    console.print(table)


@cli.command()
@click.option(
    '--host',
    default='127.0.0.1',
    help='Host to bind to (default: 127.0.0.1)'
)
@click.option(
    '--port',
    default=8000,
    type=int,
    help='Port to bind to (default: 8000)'
)
@click.option(
    '--reload',
    is_flag=True,
    help='Enable auto-reload for development'
)
def serve(host: str, port: int, reload: bool):
    """Start the image API server."""
    from loompage.web.app import run_server

    console.print(f"[green]Starting image API on http://{host}:{port}[/green]")
    run_server(host=host, port=port, reload=reload)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
