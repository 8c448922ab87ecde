"""
Product Lifecycle Research - CLI Entry Point.
Production-grade CLI using Click and Rich.
"""

import asyncio
import csv
import json
import sys
from functools import wraps
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from lifecycle_research import __version__
from lifecycle_research.config.settings import Settings, get_settings
from lifecycle_research.models.schemas import (
    FIELD_LABELS,
    MILESTONE_FIELDS,
    DATE_FIELD_ORDER,
    DateField,
    EnrichedProduct,
    Product,
)
from lifecycle_research.pipeline.orchestrator import LifecycleEnrichmentPipeline
from lifecycle_research.services.research_cache import ResearchCache
from lifecycle_research.utils.logger import setup_logging

# Initialize Rich Console
console = Console()

# =============================================================================
# Helper Functions
# =============================================================================

def async_command(f):
    """Decorator to run async click commands."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))
    return wrapper


def setup_logger(verbose: bool, settings: Optional[Settings] = None):
    """Configure logging based on verbosity."""
    level = "DEBUG" if verbose else "WARNING"
    setup_logging(level, json_format=bool(settings and settings.log_json))


def load_settings(database_url: Optional[str]) -> Settings:
    settings = get_settings()
    if database_url:
        settings = settings.model_copy(update={"database_url": database_url})
    return settings


def read_products(path: Path) -> list[Product]:
    """
    Read products from a CSV file with a header row, or from plain lines.

    CSV files need an ``identifier`` column (``part_number`` is also
    accepted) and may have ``manufacturer``. Plain lines are either
    ``manufacturer,identifier`` or just ``identifier``.
    """
    text = path.read_text(encoding="utf-8")
    lines = [line for line in text.splitlines() if line.strip() and not line.lstrip().startswith("#")]
    if not lines:
        return []

    rows = csv.reader(lines)
    header = [h.strip().lower() for h in next(rows)]
    products: list[Product] = []
    if "identifier" in header or "part_number" in header:
        for row in rows:
            record = dict(zip(header, (c.strip() for c in row)))
            identifier = record.get("identifier") or record.get("part_number") or ""
            if identifier:
                products.append(Product(manufacturer=record.get("manufacturer", ""), identifier=identifier))
        return products

    for row in csv.reader(lines):
        cells = [c.strip() for c in row]
        if len(cells) >= 2 and cells[1]:
            products.append(Product(manufacturer=cells[0], identifier=cells[1]))
        elif cells and cells[0]:
            products.append(Product(identifier=cells[0]))
    return products


def dates_table(enriched: EnrichedProduct) -> Table:
    estimated = set()
    if enriched.estimation:
        estimated = {DateField(f) for f in enriched.estimation.estimated_fields}

    table = Table(title=enriched.product.label, show_header=True, header_style="bold magenta")
    table.add_column("Milestone")
    table.add_column("Date")
    table.add_column("Source")
    for field in DATE_FIELD_ORDER:
        value = enriched.dates.get(field)
        if value is None:
            source = "[dim]-[/dim]"
        elif field in estimated:
            source = "[yellow]Estimated[/yellow]"
        elif enriched.from_cache:
            source = "[blue]Cache[/blue]"
        else:
            source = "[green]Found[/green]"
        table.add_row(FIELD_LABELS[field], value.isoformat() if value else "-", source)
    return table


def summary_row(enriched: EnrichedProduct) -> dict:
    return {
        "manufacturer": enriched.product.manufacturer,
        "identifier": enriched.product.identifier,
        **{f.value: (enriched.dates.get(f).isoformat() if enriched.dates.get(f) else None) for f in DATE_FIELD_ORDER},
        "confidence": enriched.confidence.overall,
        "lifecycle_confidence": enriched.confidence.lifecycle,
        "is_current_product": enriched.is_current_product,
        "from_cache": enriched.from_cache,
        "is_expired": enriched.research.is_expired,
        "estimated_fields": sorted(
            DateField(f).value for f in (enriched.estimation.estimated_fields if enriched.estimation else [])
        ),
        "data_quality_issues": enriched.data_quality_issues,
        "error": enriched.research.error,
    }


# =============================================================================
# CLI Group
# =============================================================================

@click.group()
@click.version_option(version=__version__)
def cli():
    """Product Lifecycle Research Pipeline"""
    pass


# =============================================================================
# Commands
# =============================================================================

@cli.command()
@click.argument('manufacturer')
@click.argument('identifier')
@click.option('--no-cache', is_flag=True, help='Bypass the Research Cache')
@click.option('--database-url', default=None, help='Override DATABASE_URL')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
@click.option('--verbose', is_flag=True, help='Detailed logging')
@async_command
async def enrich(manufacturer: str, identifier: str, no_cache: bool, database_url: Optional[str], as_json: bool, verbose: bool):
    """
    Research lifecycle dates for one product.

    MANUFACTURER: Manufacturer name (use "" when unknown)
    IDENTIFIER: Vendor part or model number
    """
    settings = load_settings(database_url)
    setup_logger(verbose, settings)

    try:
        product = Product(manufacturer=manufacturer, identifier=identifier)
        async with LifecycleEnrichmentPipeline(settings=settings) as pipeline:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
                transient=True,
            ) as progress:
                progress.add_task(f"[cyan]Researching {product.label}...", total=None)
                enriched = await pipeline.enrich(product, use_cache=not no_cache)
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {str(e)}")
        if verbose:
            console.print_exception()
        sys.exit(1)

    if as_json:
        console.print_json(json.dumps(summary_row(enriched)))
    else:
        console.print(dates_table(enriched))
        status = "Current product" if enriched.is_current_product else "End-of-life announced"
        cache_note = " (cached)" if enriched.from_cache else ""
        if enriched.research.is_expired:
            cache_note = " (expired cache entry)"
        console.print(
            f"Confidence: [bold]{enriched.confidence.overall}[/bold] "
            f"(lifecycle {enriched.confidence.lifecycle}) | {status}{cache_note}"
        )
        for issue in enriched.data_quality_issues:
            console.print(f"[yellow]Warning:[/yellow] {issue}")

    if enriched.research.is_degraded:
        console.print(f"[bold red]Research failed:[/bold red] {enriched.research.error}")
        sys.exit(1)


@cli.command()
@click.argument('file_path', type=click.Path(exists=True))
@click.option('--output', 'output_path', type=click.Path(), default=None, help='Write results as JSON lines')
@click.option('--no-cache', is_flag=True, help='Bypass the Research Cache')
@click.option('--database-url', default=None, help='Override DATABASE_URL')
@click.option('--verbose', is_flag=True, help='Detailed logging')
@async_command
async def batch(file_path: str, output_path: Optional[str], no_cache: bool, database_url: Optional[str], verbose: bool):
    """
    Research many products from a file.

    FILE_PATH: CSV with manufacturer/identifier columns, or one product per line.
    """
    settings = load_settings(database_url)
    setup_logger(verbose, settings)

    products = read_products(Path(file_path))
    if not products:
        console.print("[red]No products found in file.[/red]")
        sys.exit(1)

    console.print(f"[bold]Batch Processing [cyan]{len(products)}[/cyan] products[/bold]")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        console=console,
    ) as progress:
        task = progress.add_task("[cyan]Processing...", total=len(products))

        def update_progress(done: int, total: int, enriched: EnrichedProduct):
            progress.update(task, completed=done, description=f"[cyan]{enriched.product.label}")

        try:
            async with LifecycleEnrichmentPipeline(settings=settings, progress_callback=update_progress) as pipeline:
                results = await pipeline.enrich_batch(products, use_cache=not no_cache)
        except Exception as e:
            console.print(f"[bold red]Error:[/bold red] {str(e)}")
            sys.exit(1)

    table = Table(title="Batch Results", show_header=True, header_style="bold magenta")
    table.add_column("Product")
    for field in MILESTONE_FIELDS:
        table.add_column(FIELD_LABELS[field])
    table.add_column("Confidence")
    for enriched in results:
        cells = [enriched.dates.get(f).isoformat() if enriched.dates.get(f) else "-" for f in MILESTONE_FIELDS]
        confidence = str(enriched.confidence.overall)
        if enriched.research.is_degraded:
            confidence = "[red]failed[/red]"
        table.add_row(enriched.product.label, *cells, confidence)
    console.print(table)

    if output_path:
        with open(output_path, "w", encoding="utf-8") as fh:
            for enriched in results:
                fh.write(json.dumps(summary_row(enriched)) + "\n")
        console.print(f"[green]✓[/green] Results written to {output_path}")

    failed = sum(1 for r in results if r.research.is_degraded)
    cached = sum(1 for r in results if r.from_cache)
    console.print(Panel(
        f"Batch Complete\nResearched: [green]{len(results) - failed}[/green]\n"
        f"From cache: [blue]{cached}[/blue]\nFailed: [red]{failed}[/red]"
    ))


@cli.command()
@click.option('--database-url', default=None, help='Override DATABASE_URL')
def cache_stats(database_url: Optional[str]):
    """Show Research Cache statistics."""
    settings = load_settings(database_url)
    try:
        cache = ResearchCache.from_settings(settings)
        stats = cache.stats()
        cache.close()
    except Exception as e:
        console.print(f"[bold red]Cache Error:[/bold red] {e}")
        sys.exit(1)

    table = Table(title="Research Cache", show_header=False)
    table.add_row("Total entries", str(stats["total_entries"]))
    table.add_row("Fresh entries", f"[green]{stats['fresh_entries']}[/green]")
    table.add_row("Stale entries", f"[yellow]{stats['stale_entries']}[/yellow]")
    table.add_row("Manufacturers", str(stats["unique_manufacturers"]))
    table.add_row("Average confidence", str(stats["avg_confidence"] if stats["avg_confidence"] is not None else "-"))
    table.add_row("Oldest entry", str(stats["oldest_entry"] or "-"))
    table.add_row("Newest entry", str(stats["newest_entry"] or "-"))
    table.add_row("Validity (days)", str(settings.cache_validity_days))
    console.print(table)


@cli.command()
@click.option('--database-url', default=None, help='Override DATABASE_URL')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
def purge_stale(database_url: Optional[str], yes: bool):
    """Delete cache entries older than the validity window."""
    settings = load_settings(database_url)
    if not yes and not click.confirm(
        f"Delete cache entries older than {settings.cache_validity_days} days?"
    ):
        console.print("[dim]Aborted.[/dim]")
        return

    try:
        cache = ResearchCache.from_settings(settings)
        removed = cache.purge_stale()
        cache.close()
    except Exception as e:
        console.print(f"[bold red]Cache Error:[/bold red] {e}")
        sys.exit(1)
    console.print(f"[green]✓[/green] Removed {removed} stale entries.")


@cli.command()
def validate_setup():
    """Check API keys and environment configuration."""
    console.print("[bold]Validating Setup...[/bold]")

    try:
        settings = get_settings()

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Check")
        table.add_column("Status")
        table.add_column("Details")

        # Check Search
        provider = settings.get_search_provider()
        has_search = provider != "none"
        status = "[green]Pass[/green]" if has_search else "[red]Fail[/red]"
        table.add_row("Search Provider", status, provider)

        # Check Cache
        try:
            cache = ResearchCache.from_settings(settings)
            total = cache.stats()["total_entries"]
            cache.close()
            table.add_row("Research Cache", "[green]Pass[/green]", f"{total} entries")
            cache_ok = True
        except Exception as e:
            table.add_row("Research Cache", "[red]Fail[/red]", str(e))
            cache_ok = False

        # Configuration
        table.add_row("Max queries", "[blue]Info[/blue]", str(settings.max_queries_per_product))
        table.add_row("Cache validity", "[blue]Info[/blue]", f"{settings.cache_validity_days} days")
        if settings.vendor_intervals_file:
            exists = settings.vendor_intervals_file.exists()
            status = "[green]Pass[/green]" if exists else "[red]Fail[/red]"
            table.add_row("Vendor intervals", status, str(settings.vendor_intervals_file))
        table.add_row("Environment", "[blue]Info[/blue]", settings.app_env)

        console.print(table)

        if not has_search:
            console.print(
                "\n[yellow]Warning: No search provider configured (Google Custom Search or SerpAPI). "
                "Research will return degraded results.[/yellow]"
            )
        if not has_search or not cache_ok:
            sys.exit(1)

    except Exception as e:
        console.print(f"[bold red]Configuration Error:[/bold red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
