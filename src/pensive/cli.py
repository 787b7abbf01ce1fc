"""Pensive CLI - typer application entry point."""

from __future__ import annotations

import atexit
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
from dotenv import load_dotenv
from pydantic import TypeAdapter, ValidationError
from rich.console import Console
from rich.table import Table
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from pensive.config import ConfigError, EngineConfig, load_config
from pensive.errors import PensiveError
from pensive.models.taxonomy import PathwayItem
from pensive.observability import (
    DEFAULT_LOG_FILE,
    close_file_logging,
    configure_logging,
    get_logger,
)
from pensive.search.ranking import SortSpec, StoryFilters
from pensive.services import create_discovery_service, open_store
from pensive.store.seed import SeedError, load_seed_file, seed_store

if TYPE_CHECKING:
    from pensive.discovery.orchestrator import DiscoveryService
    from pensive.models.results import ResultItem, ValidationResult

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="pensive",
    help="Pensive: check fandom pathways and rank matching stories.",
    no_args_is_help=True,
)
console = Console()
log = get_logger(__name__)

_PATHWAY = TypeAdapter(list[PathwayItem])

# Global state set by the callback and read by commands
_config_path: Path | None = None
_database: str | None = None

FandomOption = Annotated[str, typer.Option("--fandom", "-f", help="Fandom id.")]
PathwayArgument = Annotated[
    Path,
    typer.Argument(help="YAML or JSON file holding a list of pathway items."),
]


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log_to_file: Annotated[
        bool,
        typer.Option("--log", help="Write all events to ./logs/debug.jsonl."),
    ] = False,
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Config file (default: ./pensive.yaml)."),
    ] = None,
    database: Annotated[
        str | None,
        typer.Option(
            "--database",
            "-d",
            help="SQLite taxonomy database.",
            envvar="PENSIVE_DATABASE",
        ),
    ] = None,
) -> None:
    """Pensive: check fandom pathways and rank matching stories."""
    global _config_path, _database
    _config_path = config
    _database = database

    configure_logging(verbosity=verbose, log_file=DEFAULT_LOG_FILE if log_to_file else None)
    if log_to_file:
        atexit.register(close_file_logging)


def _load_config() -> EngineConfig:
    try:
        return load_config(_config_path)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


def _service() -> DiscoveryService:
    config = _load_config()
    return create_discovery_service(config, open_store(config, _database))


def _read_pathway(path: Path) -> list[PathwayItem]:
    """Read a pathway file; a mapping with a ``pathway`` key is also accepted."""
    if not path.exists():
        console.print(f"[red]Error:[/red] Pathway file not found: {path}")
        raise typer.Exit(1)
    try:
        with path.open("r", encoding="utf-8") as f:
            data: Any = YAML(typ="safe").load(f)
        if isinstance(data, dict):
            data = data.get("pathway", [])
        return _PATHWAY.validate_python(data or [])
    except (YAMLError, ValidationError) as e:
        console.print(f"[red]Error:[/red] Invalid pathway file {path}: {e}")
        raise typer.Exit(1) from e


def _fail(error: PensiveError) -> typer.Exit:
    console.print(f"[red]Error:[/red] {error}")
    return typer.Exit(1)


def _print_validation(result: ValidationResult) -> None:
    buckets: list[tuple[str, str, list[ResultItem]]] = [
        ("error", "red", result.errors),
        ("blocked", "red", result.blocked_combinations),
        ("warning", "yellow", result.warnings),
        ("suggestion", "cyan", result.suggestions),
    ]
    if any(items for _, _, items in buckets):
        table = Table(title="Validation")
        table.add_column("Kind", style="bold")
        table.add_column("Rule", style="dim")
        table.add_column("Message")
        table.add_column("Fix", style="dim")
        for kind, color, items in buckets:
            for item in items:
                table.add_row(f"[{color}]{kind}[/{color}]", item.rule, item.message, item.fix or "")
        console.print(table)

    if result.is_valid:
        console.print("[green]✓[/green] Pathway is valid")
    else:
        console.print("[red]✗[/red] Pathway is invalid")


@app.command()
def version() -> None:
    """Show version information."""
    from pensive import __version__

    console.print(f"Pensive v{__version__}")


@app.command()
def load(
    fixture: Annotated[Path, typer.Argument(help="YAML or JSON taxonomy fixture.")],
) -> None:
    """Load a taxonomy fixture into the database."""
    config = _load_config()
    store = open_store(config, _database)
    try:
        counts = seed_store(store, load_seed_file(fixture))
    except SeedError as e:
        raise _fail(e) from e
    finally:
        store.close()

    table = Table(title=f"Loaded {fixture.name}")
    table.add_column("Section", style="cyan")
    table.add_column("Records", justify="right")
    for section, count in counts.items():
        table.add_row(section, str(count))
    console.print(table)


@app.command()
def validate(pathway_file: PathwayArgument, fandom: FandomOption) -> None:
    """Check a pathway against the fandom's scope and rules."""
    pathway = _read_pathway(pathway_file)
    try:
        result = _service().validate(pathway, fandom)
    except PensiveError as e:
        raise _fail(e) from e

    _print_validation(result)
    if not result.is_valid:
        raise typer.Exit(1)


@app.command()
def search(
    pathway_file: PathwayArgument,
    fandom: FandomOption,
    limit: Annotated[int | None, typer.Option("--limit", "-n", min=0)] = None,
    offset: Annotated[int, typer.Option("--offset", min=0)] = 0,
    sort: Annotated[str, typer.Option(help="relevance, updated_at, kudos or word_count.")] = (
        "relevance"
    ),
    direction: Annotated[str, typer.Option(help="asc or desc.")] = "desc",
    rating: Annotated[list[str] | None, typer.Option(help="Keep only these ratings.")] = None,
    status: Annotated[list[str] | None, typer.Option(help="Keep only these statuses.")] = None,
    min_words: Annotated[int | None, typer.Option(min=0)] = None,
    max_words: Annotated[int | None, typer.Option(min=0)] = None,
    min_relevance: Annotated[float | None, typer.Option(min=0, max=100)] = None,
    include_popular: Annotated[
        bool | None,
        typer.Option(
            "--include-popular/--no-include-popular",
            help="Pad short result lists with popular stories.",
        ),
    ] = None,
) -> None:
    """Rank the fandom's stories against a pathway."""
    pathway = _read_pathway(pathway_file)
    try:
        sort_spec = SortSpec.model_validate({"field": sort, "direction": direction})
        filters = StoryFilters(
            ratings=rating or [],
            statuses=status or [],
            min_word_count=min_words,
            max_word_count=max_words,
            min_relevance=min_relevance,
        )
    except ValidationError as e:
        console.print(f"[red]Error:[/red] {e.errors()[0]['msg']}")
        raise typer.Exit(2) from e

    try:
        response = _service().perform_search(
            pathway,
            fandom,
            filters,
            limit,
            offset=offset,
            sort=sort_spec,
            include_popular=include_popular,
        )
    except PensiveError as e:
        raise _fail(e) from e

    _print_validation(response.validation)
    if not response.results:
        console.print("[yellow]No matching stories[/yellow]")
    else:
        table = Table(title=f"Stories ({response.metadata.total_results} total)")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Title", style="cyan")
        table.add_column("Score", justify="right", style="bold")
        table.add_column("Matched", justify="right")
        table.add_column("Words", justify="right", style="dim")
        for r in response.results:
            matched = len(r.matched_tags) + len(r.matched_plot_blocks)
            title = r.story.title or r.story.id
            if r.padded:
                title += " [dim](popular)[/dim]"
            table.add_row(
                str(r.search_rank),
                title,
                f"{r.relevance_score:.1f}",
                str(matched),
                f"{r.story.word_count:,}",
            )
        console.print(table)

    dist = response.stats.relevance_distribution
    console.print(
        f"[dim]excellent {dist.excellent} · good {dist.good} · "
        f"fair {dist.fair} · poor {dist.poor}[/dim]"
    )
    if response.prompt is not None:
        console.print()
        console.print(response.prompt.text)


@app.command()
def suggest(
    pathway_file: PathwayArgument,
    fandom: FandomOption,
    limit: Annotated[int, typer.Option("--limit", "-n", min=1)] = 5,
) -> None:
    """Suggest tags from categories the pathway does not cover."""
    pathway = _read_pathway(pathway_file)
    try:
        tags = _service().get_completion_suggestions(pathway, fandom, limit)
    except PensiveError as e:
        raise _fail(e) from e

    if not tags:
        console.print("[dim]No suggestions: every category is already covered[/dim]")
        return
    table = Table(title="Suggested tags")
    table.add_column("Tag", style="cyan")
    table.add_column("Category")
    table.add_column("Id", style="dim")
    for tag in tags:
        table.add_row(tag.name, tag.category or "", tag.id)
    console.print(table)


@app.command("check-hierarchy")
def check_hierarchy(fandom: FandomOption) -> None:
    """Audit the fandom's taxonomy for scope problems and hierarchy cycles."""
    try:
        errors = _service().check_hierarchy(fandom)
    except PensiveError as e:
        raise _fail(e) from e

    if not errors:
        console.print("[green]✓[/green] Taxonomy is consistent")
        return

    table = Table(title=f"Taxonomy problems ({len(errors)})")
    table.add_column("Type", style="red")
    table.add_column("Entity", style="cyan")
    table.add_column("Related", style="dim")
    table.add_column("Message")
    for error in errors:
        table.add_row(error.type, error.entity_id, error.related_id or "", error.message)
    console.print(table)
    raise typer.Exit(1)
