"""
Listing Audit - CLI Entry Point.
Production-grade CLI using Click and Rich.
"""

import sys
import asyncio
import logging
from functools import wraps
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from listing_audit import __version__
from listing_audit.config.settings import get_settings
from listing_audit.models.schemas import AnalysisResult, ClientMeta
from listing_audit.pipeline.orchestrator import LeadPipeline
from listing_audit.utils.errors import AppError

# Initialize Rich Console
console = Console()

CLI_USER_AGENT = f"Mozilla/5.0 (compatible; listing-audit-cli/{__version__})"

# =============================================================================
# Helper Functions
# =============================================================================

def async_command(f):
    """Decorator to run async click commands."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))
    return wrapper


def setup_logger(verbose: bool):
    """Configure logging based on verbosity."""
    level = "DEBUG" if verbose else "WARNING"
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)]
    )
    # Silence third-party libs
    logging.getLogger("httpx").setLevel(logging.WARNING)


def cli_meta() -> ClientMeta:
    return ClientMeta(user_agent=CLI_USER_AGENT, referrer="cli")


def print_result(result: AnalysisResult, heading: str) -> None:
    """Render an analysis result as a summary table plus lists."""
    table = Table(title=heading, show_header=False)
    if result.title:
        table.add_row("Title", result.title)
    table.add_row("Score", f"[bold]{result.score}[/bold]/100")
    if result.quality_check:
        qc = result.quality_check
        table.add_row("Quality checks", f"{qc.score}/{qc.max_possible} (grade {qc.grade})")
    console.print(table)

    if result.highlights:
        console.print("\n[bold green]Highlights[/bold green]")
        for item in result.highlights:
            console.print(f"  • {item}")
    if result.recommendations:
        console.print("\n[bold yellow]Recommendations[/bold yellow]")
        for i, item in enumerate(result.recommendations, 1):
            console.print(f"  {i}. {item}")

    pack = result.listing_pack
    if pack is not None:
        console.print(Panel(pack.title or "-", title="Listing title"))
        for bullet in pack.bullets:
            console.print(f"  • {bullet}")
        keywords = pack.keywords.primary + pack.keywords.secondary
        if keywords:
            console.print(f"\n[bold]Keywords:[/bold] {', '.join(keywords)}")


def print_error(error: AppError) -> None:
    console.print(f"[bold red]Error ({error.code}):[/bold red] {error.message}")
    hint = error.details.get("message")
    if hint:
        console.print(f"[yellow]{hint}[/yellow]")


async def run_preview(mode: str, fields: dict) -> Optional[AnalysisResult]:
    settings = get_settings()
    async with LeadPipeline(settings=settings) as pipeline:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("[cyan]Scraping and analysing...", total=None)
            outcome = await pipeline.preview(mode, fields, cli_meta())
            progress.update(task, completed=True, description="[green]Analysis complete!")

    if outcome.scrape_degraded:
        console.print("[yellow]Product page could not be fetched; audit ran without page data.[/yellow]")
    return outcome.result

# =============================================================================
# CLI Group
# =============================================================================

@click.group()
@click.version_option(version=__version__)
def cli():
    """Amazon listing audit and listing-pack generator"""
    pass

# =============================================================================
# Commands
# =============================================================================

@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address")
@click.option("--port", default=8000, show_default=True, type=int, help="Bind port")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: str, port: int, reload: bool):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from listing_audit.utils.logger import setup_logging

    settings = get_settings()
    setup_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        log_file=settings.log_dir / "api.log",
    )
    console.print(Panel.fit(f"[bold blue]Listing Audit API[/bold blue]\nhttp://{host}:{port}"))
    uvicorn.run(
        "listing_audit.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@cli.command()
@click.argument("identifier")
@click.option("--name", default="CLI User", help="Contact name recorded with the request")
@click.option("--email", default="cli@example.com", help="Contact e-mail recorded with the request")
@click.option("--keyword", "keywords", multiple=True, help="Target keyword (repeatable, max 8)")
@click.option("--fulfilment", type=click.Choice(["FBA", "FBM"]), default=None)
@click.option("--verbose", is_flag=True, help="Detailed logging")
@async_command
async def audit(identifier: str, name: str, email: str, keywords: tuple, fulfilment: Optional[str], verbose: bool):
    """
    Audit an existing listing.

    IDENTIFIER: ASIN (e.g. B08N5WRWNW) or Amazon product URL
    """
    setup_logger(verbose)
    console.print(Panel.fit(f"[bold blue]Listing Audit[/bold blue]\nTarget: [cyan]{identifier}[/cyan]"))

    fields = {"asin": identifier, "name": name, "email": email, "keywords": list(keywords)}
    if fulfilment:
        fields["fulfilment"] = fulfilment

    try:
        result = await run_preview("existing", fields)
    except AppError as e:
        print_error(e)
        sys.exit(1)
    print_result(result, "Audit Summary")


@cli.command()
@click.option("--url", default=None, help="Product page to scrape")
@click.option("--about", "no_website_desc", default=None, help="Product description when there is no website")
@click.option("--category", required=True, help="Product category")
@click.option("--description", required=True, help="Short product description (12-400 chars)")
@click.option("--keyword", "keywords", multiple=True, required=True, help="Target keyword (repeatable, 2-5)")
@click.option("--fulfilment", type=click.Choice(["FBA", "FBM", "Unsure"]), default="Unsure", show_default=True)
@click.option("--name", default="CLI User")
@click.option("--email", default="cli@example.com")
@click.option("--verbose", is_flag=True, help="Detailed logging")
@async_command
async def create(
    url: Optional[str],
    no_website_desc: Optional[str],
    category: str,
    description: str,
    keywords: tuple,
    fulfilment: str,
    name: str,
    email: str,
    verbose: bool,
):
    """Generate a listing pack for a product that is not on Amazon yet."""
    setup_logger(verbose)
    console.print(Panel.fit(f"[bold blue]Listing Pack[/bold blue]\nCategory: [cyan]{category}[/cyan]"))

    fields = {
        "websiteUrl": url,
        "noWebsiteDesc": no_website_desc,
        "category": category,
        "description": description,
        "keywords": list(keywords),
        "fulfilmentIntent": fulfilment,
        "name": name,
        "email": email,
    }

    try:
        result = await run_preview("new", fields)
    except AppError as e:
        print_error(e)
        sys.exit(1)
    print_result(result, "Listing Pack Summary")


@cli.command()
@click.argument("kind", type=click.Choice(["keywords", "title"]))
@click.option("--category", required=True)
@click.option("--description", required=True)
@click.option("--keyword", "keywords", multiple=True, help="Keyword to work into titles (repeatable)")
@async_command
async def suggest(kind: str, category: str, description: str, keywords: tuple):
    """Suggest keywords or titles for a product."""
    setup_logger(False)

    data = {"category": category, "description": description, "keywords": list(keywords)}
    try:
        async with LeadPipeline(settings=get_settings()) as pipeline:
            result = await pipeline.suggest(kind, data, cli_meta())
    except AppError as e:
        print_error(e)
        sys.exit(1)

    table = Table(title=f"{kind.title()} suggestions", show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right")
    table.add_column("Suggestion")
    for i, suggestion in enumerate(result.suggestions, 1):
        table.add_row(str(i), suggestion)
    console.print(table)


@cli.command()
def validate_setup():
    """Check API keys and environment configuration."""
    console.print("[bold]Validating Setup...[/bold]")

    try:
        settings = get_settings()
    except Exception as e:
        console.print(f"[bold red]Configuration Error:[/bold red] {e}")
        sys.exit(1)

    services = settings.configured_services()

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Check")
    table.add_column("Status")
    table.add_column("Details")

    for service, configured in services.items():
        status = "[green]Pass[/green]" if configured else "[red]Fail[/red]"
        table.add_row(service.replace("_", " ").title(), status, "configured" if configured else "missing")

    table.add_row("Email Provider", "[blue]Info[/blue]", settings.email_provider)
    table.add_row("Store Backend", "[blue]Info[/blue]", settings.store_backend)
    table.add_row("Environment", "[blue]Info[/blue]", settings.app_env)
    console.print(table)

    if not services.get("ai", False):
        console.print("\n[yellow]Warning: ANTHROPIC_API_KEY is not set. Analysis endpoints will return 503.[/yellow]")
        sys.exit(1)


if __name__ == "__main__":
    cli()
