"""Command-line interface for the Seven Stations script analysis engine."""

import logging
import sys
from pathlib import Path
from typing import Optional

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from seven_stations.extraction import DocumentLoadError, load_script
from seven_stations.models import STATION_ORDER, OrchestrationResult
from seven_stations.pipeline import PipelineError, StationFailure, run_pipeline

# Configure structlog for CLI
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

app = typer.Typer(
    name="seven-stations",
    help="Seven Stations - Structural analysis of scripts and story documents",
    add_completion=False,
)
console = Console()


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, StationFailure) and error.retryable


def _run_with_retries(text: str, use_llm: bool, retries: int) -> OrchestrationResult:
    """Run the pipeline, retrying transient generation failures."""
    generator = None
    cache = None
    if use_llm:
        from seven_stations.llm import InMemoryCache, OllamaGenerator

        generator = OllamaGenerator()
        cache = InMemoryCache()

    retrying = Retrying(
        stop=stop_after_attempt(retries + 1),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception(_is_retryable),
        reraise=True,
    )
    return retrying(
        run_pipeline,
        {"text": text, "options": {"use_llm": use_llm}},
        generator=generator,
        cache=cache,
    )


@app.command()
def analyze(
    script_path: Path = typer.Argument(
        ...,
        help="Path to the script (PDF or plain text)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output file path for the JSON result (default: <script_name>_analysis.json)",
    ),
    pretty: bool = typer.Option(
        True,
        "--pretty/--compact",
        help="Pretty-print JSON output",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
    use_llm: bool = typer.Option(
        False,
        "--use-llm/--no-llm",
        help="Consult the configured Ollama model in addition to the heuristics",
    ),
    retries: int = typer.Option(
        0,
        "--retries",
        min=0,
        max=5,
        help="Retry the whole run this many times on transient model failures",
    ),
) -> None:
    """Analyze a script through the seven stations and write the result as JSON."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)

    console.print(
        Panel.fit(
            "[bold blue]Seven Stations[/bold blue]\n"
            "Analyzing script structure...",
            border_style="blue",
        )
    )

    if output is None:
        output = script_path.with_name(f"{script_path.stem}_analysis.json")

    console.print(f"\n[dim]Input:[/dim] {script_path}")
    console.print(f"[dim]Output:[/dim] {output}\n")

    try:
        document = load_script(script_path)
        result = _run_with_retries(document.full_text, use_llm=use_llm, retries=retries)
    except (DocumentLoadError, PipelineError) as e:
        console.print(f"\n[red]Error:[/red] {e}")
        if isinstance(e, PipelineError):
            console.print(f"[dim]Run state:[/dim] {e.state.value}")
        if verbose:
            console.print_exception()
        sys.exit(1)

    with open(output, "w", encoding="utf-8") as f:
        f.write(result.model_dump_json(indent=2 if pretty else None))

    _display_summary(result)
    console.print(f"\n[green]Result saved to:[/green] {output}")


@app.command()
def info() -> None:
    """Display system information and configuration."""
    from seven_stations import __version__
    from seven_stations.config.settings import get_settings

    settings = get_settings()

    console.print(
        Panel.fit(
            "[bold blue]Seven Stations[/bold blue]",
            border_style="blue",
        )
    )

    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="dim")
    table.add_column("Value")

    table.add_row("Version", __version__)
    table.add_row("Stations", " -> ".join(STATION_ORDER))
    table.add_row("LLM Model", settings.llm_model_name)
    table.add_row("Ollama URL", settings.llm_ollama_base_url)
    table.add_row("Generation Timeout", f"{settings.generation_timeout_seconds:g}s")
    table.add_row("Cache TTL", f"{settings.cache_ttl_seconds}s")
    table.add_row("Prompt Budget", f"{settings.prompt_token_budget} tokens")
    table.add_row("Compliance Threshold", f"{settings.compliance_threshold:.2f}")

    console.print(table)


@app.command()
def principles() -> None:
    """List the compliance principles the final report is scored against."""
    from seven_stations.config.settings import get_settings

    settings = get_settings()

    table = Table(title="Compliance Principles")
    table.add_column("Id", style="dim")
    table.add_column("Name")
    table.add_column("Weight", justify="right")
    table.add_column("Description")

    for principle in settings.compliance_principles:
        table.add_row(principle.id, principle.name, f"{principle.weight:g}", principle.description)

    console.print(table)


def _display_summary(result: OrchestrationResult) -> None:
    """Display a summary of the analysis results.

    Args:
        result: The completed orchestration result.
    """
    console.print("\n[bold]Analysis Summary[/bold]")
    console.print("-" * 40)

    table = Table(show_header=True, box=None)
    table.add_column("Station", style="dim")
    table.add_column("Summary")
    table.add_column("Confidence", justify="right")

    for station_id in STATION_ORDER:
        station = result.stations[station_id]
        table.add_row(station_id, station.summary[:80], f"{station.confidence:.2f}")

    console.print(table)

    console.print(f"\n[dim]Total confidence:[/dim] {result.total_confidence:.2f}")

    compliance = result.report_metadata.compliance
    if result.compliance_flagged:
        console.print(
            f"[yellow]Compliance flagged:[/yellow] score {compliance.overall_score:.2f} "
            f"below {result.report_metadata.compliance_flag.threshold:.2f}"
        )
        for recommendation in compliance.recommendations:
            console.print(f"  - {recommendation}")
    else:
        console.print(f"[dim]Compliance score:[/dim] {compliance.overall_score:.2f}")

    console.print(f"\n[dim]Processed in {result.execution_time_ms / 1000:.1f}s[/dim]")


if __name__ == "__main__":
    app()
