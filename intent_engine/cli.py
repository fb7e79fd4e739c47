"""Command-line interface for the intent engine."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .config import settings
from .entities import EntityExtractor
from .errors import IntentEngineError
from .evaluation import IntentEvaluator, load_evaluation_set
from .models import ImplementationStatus, Message, ParseOptions
from .observability import metrics
from .service import IntentParsingService

# Set up logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# CLI app
app = typer.Typer(
    name="intent-engine",
    help="Intent Engine: utterance intent classification with seed embeddings and heuristic rules",
    add_completion=False,
)
console = Console()

STATUS_STYLES = {
    ImplementationStatus.READY: "green",
    ImplementationStatus.INITIALIZING: "yellow",
    ImplementationStatus.NOT_STARTED: "dim",
    ImplementationStatus.FAILED: "red",
}


def _status_text(status: ImplementationStatus) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


async def _with_service(fn):
    """Run ``fn(service)`` and always close the service afterwards."""
    service = IntentParsingService()
    try:
        return await fn(service)
    finally:
        await service.aclose()


@app.command()
def config():
    """Show current configuration (for debugging)."""
    console.print(Panel("Current Configuration", style="bold blue"))

    table = Table(title="Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("DEFAULT_PARSER", settings.default_parser)
    table.add_row("ENABLE_SEMANTIC", str(settings.enable_semantic))
    table.add_row("ENABLE_REMOTE", str(settings.enable_remote))
    table.add_row("ENABLE_LEXICAL", str(settings.enable_lexical))
    table.add_row("ENABLE_KEYWORD", str(settings.enable_keyword))
    table.add_row("SEMANTIC_MODEL", settings.semantic_model)
    table.add_row("EMBEDDING_PROVIDER", settings.embedding_provider)
    if settings.embedding_provider == "ollama":
        table.add_row("OLLAMA_URL", settings.ollama_url)
        table.add_row("OLLAMA_EMBEDDING_MODEL", settings.ollama_embedding_model)
    else:
        api_key_display = f"{settings.openai_api_key[:10]}..." if settings.openai_api_key else "[red]Not set[/red]"
        table.add_row("OPENAI_API_KEY", api_key_display)
        table.add_row("OPENAI_EMBEDDING_MODEL", settings.openai_embedding_model)
    table.add_row("CONFIDENCE_FLOOR", str(settings.confidence_floor))
    table.add_row("TIE_BREAK_EPSILON", str(settings.tie_break_epsilon))
    table.add_row("DEFAULT_INTENT", settings.default_intent)
    table.add_row("EMBEDDING_TIMEOUT_SECONDS", str(settings.embedding_timeout_seconds))
    table.add_row("ENTITY_TIMEOUT_SECONDS", str(settings.entity_timeout_seconds))
    table.add_row("ENABLE_NER", f"{settings.enable_ner} ({settings.spacy_model})")
    table.add_row("SEED_CORPUS_PATH", str(settings.resolve_path(settings.seed_corpus_path)))
    table.add_row("EVALUATION_DATASET_PATH", str(settings.resolve_path(settings.evaluation_dataset_path)))

    console.print(table)


@app.command()
def classify(
    message: str = typer.Argument(..., help="Message to classify"),
    parser: Optional[str] = typer.Option(
        None, "--parser", "-p", help="Implementation to use (semantic, remote, lexical, keyword)"
    ),
    highlighted: Optional[str] = typer.Option(
        None, "--highlighted", help="Text the user has highlighted on screen"
    ),
    previous: Optional[str] = typer.Option(
        None, "--previous", help="Last assistant message, for short replies like 'yes'"
    ),
    no_entities: bool = typer.Option(False, "--no-entities", help="Skip entity extraction"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw result as JSON"),
):
    """Classify a single message."""
    options = ParseOptions(
        include_entities=not no_entities,
        highlighted_text=highlighted,
        conversation_history=[Message(role="assistant", content=previous)] if previous else [],
    )

    try:
        result = asyncio.run(_with_service(lambda s: s.parse_intent(message, options, parser=parser)))
    except IntentEngineError as e:
        console.print(f"[red]Classification failed: {e}")
        raise typer.Exit(1)

    if as_json:
        console.print_json(json.dumps(result.to_dict()))
        return

    flag = " [yellow](low confidence)[/yellow]" if result.low_confidence else ""
    console.print(Panel(
        f"[bold]{result.intent}[/bold] {result.confidence:.2f}{flag}\n"
        f"[dim]parser={result.parser} time={result.processing_time_ms}ms[/dim]",
        title=escape(message),
        border_style="green",
    ))

    table = Table(title="Scores")
    table.add_column("Intent", style="cyan")
    table.add_column("Score", justify="right")
    for intent, score in sorted(result.scores.items(), key=lambda x: x[1], reverse=True):
        style = "bold green" if intent == result.intent else ""
        table.add_row(intent, f"[{style}]{score:.3f}[/{style}]" if style else f"{score:.3f}")
    console.print(table)

    if result.entities:
        console.print("\n[bold]Entities:[/bold]")
        for e in result.entities:
            console.print(f"  - {escape(f'[{e.type}]')} {escape(e.value)} ({e.confidence:.2f})")

    if result.suggested_response:
        console.print(f"\n[dim]Suggested response:[/dim] {result.suggested_response}")


@app.command()
def entities(
    message: str = typer.Argument(..., help="Message to extract entities from"),
    no_ner: bool = typer.Option(False, "--no-ner", help="Regex rules only, skip spaCy"),
):
    """Extract entities from a message."""
    extractor = EntityExtractor(use_spacy=not no_ner)
    try:
        found = extractor.extract(message)
    except IntentEngineError as e:
        console.print(f"[red]Entity extraction failed: {e}")
        raise typer.Exit(1)

    if not found:
        console.print("[yellow]No entities found")
        return

    table = Table(title=f"Entities ({'spaCy + rules' if extractor.has_ner else 'rules only'})")
    table.add_column("Type", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Span", justify="right")
    table.add_column("Confidence", justify="right")
    for e in found:
        table.add_row(e.type, escape(e.value), f"{e.start}-{e.end}", f"{e.confidence:.2f}")
    console.print(table)


@app.command()
def implementations():
    """List enabled classifier implementations."""
    info = IntentParsingService().list_parsers()

    table = Table(title="Classifier Implementations")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Status")
    table.add_column("Accuracy", justify="right")
    table.add_column("Avg latency", justify="right")
    for p in info["parsers"]:
        name = f"{p['name']} [dim](default)[/dim]" if p["name"] == info["default"] else p["name"]
        table.add_row(
            name,
            p["description"],
            _status_text(ImplementationStatus(p["status"])),
            f"{p['accuracy']:.0%}",
            f"{p['avg_latency_ms']}ms",
        )
    console.print(table)


@app.command()
def warmup():
    """Initialize every enabled implementation and report which ones are ready."""
    console.print(Panel("Warming up classifiers", style="bold blue"))

    with console.status("Loading models and seed embeddings...", spinner="dots"):
        statuses = asyncio.run(_with_service(lambda s: s.warmup(force=True)))

    for name, status in statuses.items():
        console.print(f"  {name}: {_status_text(status)}")

    if not any(s == ImplementationStatus.READY for s in statuses.values()):
        console.print("[red]No implementation could be initialized")
        raise typer.Exit(1)


@app.command()
def evaluate(
    parser: Optional[str] = typer.Option(
        None, "--parser", "-p", help="Implementation to evaluate (default: DEFAULT_PARSER)"
    ),
    dataset: Optional[Path] = typer.Option(
        None, "--dataset", "-d", help="Labeled YAML dataset (default: EVALUATION_DATASET_PATH)"
    ),
    category: Optional[list[str]] = typer.Option(
        None, "--category", "-c", help="Only run cases in this category (repeatable)"
    ),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write full results to JSON"),
    show_errors: bool = typer.Option(False, "--show-errors", help="List every misclassified case"),
    metrics_format: Optional[str] = typer.Option(
        None, "--metrics", help="Print engine metrics for the run: json or prometheus"
    ),
):
    """Measure accuracy of an implementation on a labeled dataset."""
    if metrics_format not in (None, "json", "prometheus"):
        console.print(f"[red]Unknown metrics format: {escape(metrics_format)} (use json or prometheus)")
        raise typer.Exit(1)

    try:
        version, cases = load_evaluation_set(dataset)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]{e}")
        raise typer.Exit(1)

    console.print(Panel(f"Evaluating {parser or settings.default_parser} on dataset {version}", style="bold blue"))

    async def _run(service: IntentParsingService):
        return await IntentEvaluator(service, cases, dataset_version=version).run(parser, category)

    metrics.reset_all()
    with console.status(f"Classifying {len(cases)} cases...", spinner="dots"):
        report = asyncio.run(_with_service(_run))

    console.print(
        f"\n[bold]Accuracy:[/bold] {report.accuracy:.1%} ({report.correct}/{report.total})"
        f"   [bold]Mean latency:[/bold] {report.mean_latency_ms:.1f}ms"
        f"   [bold]Answered by:[/bold] {', '.join(report.parsers_used) or '-'}"
    )
    if report.errors:
        console.print(f"[red]Errors: {report.errors}")

    table = Table(title="Per-intent")
    table.add_column("Intent", style="cyan")
    table.add_column("Precision", justify="right")
    table.add_column("Recall", justify="right")
    table.add_column("Support", justify="right")
    for intent, stats in report.per_intent().items():
        table.add_row(intent, f"{stats.precision:.2f}", f"{stats.recall:.2f}", str(stats.support))
    console.print(table)

    pairs = report.confusion_pairs(top=10)
    if pairs:
        confusion = Table(title="Top confusions")
        confusion.add_column("Expected", style="cyan")
        confusion.add_column("Predicted", style="red")
        confusion.add_column("Count", justify="right")
        for expected, predicted, n in pairs:
            confusion.add_row(expected, predicted, str(n))
        console.print(confusion)

    if show_errors:
        console.print("\n[bold]Misclassified:[/bold]")
        for r in report.misclassified():
            got = r.error or f"{r.predicted} ({r.confidence:.2f})"
            console.print(f"  - {escape(f'[{r.case.category}]')} {escape(repr(r.case.text))}: expected {r.case.intent}, got {got}")

    if output:
        report.export_results(output)
        console.print(f"\n[green]Results written to {output}")

    if metrics_format == "json":
        console.print_json(json.dumps(metrics.to_json()))
    elif metrics_format == "prometheus":
        console.print(metrics.to_prometheus(), markup=False, highlight=False, soft_wrap=True)


if __name__ == "__main__":
    app()
