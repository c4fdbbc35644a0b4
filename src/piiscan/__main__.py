"""
piiscan CLI entry point.

Usage:
    piiscan scan PATH|- [--kind KIND]... [--locale LOCALE]... [--validate]
    piiscan kinds
    piiscan locales
    piiscan config show
"""

import json
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import Settings, get_settings
from .core.extractors import BaseExtractor, EnsembleExtractor, LLMExtractor, RegexExtractor
from .core.matchers import build_default_registry
from .core.matchers.patterns import LOCALE_ALIASES
from .core.pipeline import ExtractionConfig, ExtractionPipeline, ValidationLayer
from .core.scoring import create_scorer
from .core.types import AggregateResult, EntityKind
from .exceptions import ConfigurationError, ExtractionCancelledError
from .llm_client import create_client
from .logging import run_scope, setup_logging

STRATEGIES = ["none", "union", "intersection", "majority", "weighted"]


@click.group()
@click.version_option(version=__version__, prog_name="piiscan")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Override the configured log level",
)
@click.option("--log-json", is_flag=True, help="Emit structured JSON logs")
def cli(log_level: Optional[str], log_json: bool):
    """piiscan - find sensitive values in free text"""
    logging_settings = get_settings().logging
    setup_logging(
        level=log_level or logging_settings.level,
        json_format=log_json or logging_settings.format == "json",
        log_file=logging_settings.file,
    )


# =============================================================================
# SCAN
# =============================================================================


def build_extractor(settings: Settings, validate: bool) -> BaseExtractor:
    """Compose the extractor described by *settings*."""
    extraction = settings.extraction
    validation = settings.validation

    pipeline = ExtractionPipeline(
        parallel_text_threshold=extraction.parallel_text_threshold,
        parallel_matcher_threshold=extraction.parallel_matcher_threshold,
        max_workers=extraction.max_workers,
        context_cache_min_matches=extraction.context_cache_min_matches,
        timeout=extraction.timeout,
    )
    regex = RegexExtractor(
        pipeline=pipeline,
        scorer=create_scorer(validation) if validate else None,
        validation=ValidationLayer(validation.to_config()),
    )

    strategy = settings.ensemble.to_strategy()
    if strategy is None:
        return regex

    llm_provider = validation.provider if validation.provider != "rules" else None
    client = create_client(
        provider=llm_provider,
        model=validation.model,
        api_key=validation.api_key.get_secret_value() if validation.api_key else None,
        base_url=validation.base_url,
        timeout=validation.timeout,
    )
    return EnsembleExtractor([regex, LLMExtractor(client)], strategy, settings.ensemble.weights)


def _read_input(path: str) -> str:
    if path == "-":
        return click.get_text_stream("stdin").read()
    return Path(path).read_text(encoding="utf-8", errors="replace")


def _print_result(result: AggregateResult) -> None:
    console = Console()

    if result.is_empty:
        console.print("No sensitive values found.")
    else:
        table = Table()
        table.add_column("Kind", style="cyan")
        table.add_column("Value")
        table.add_column("Count", justify="right")
        table.add_column("Attributes", style="dim")
        table.add_column("Validation", justify="center")

        for entity in result.entities:
            if entity.validation is None:
                verdict = "[dim]-[/dim]"
            elif entity.validation.accepted:
                verdict = f"[green]accepted {entity.validation.confidence:.2f}[/green]"
            else:
                verdict = f"[red]rejected {entity.validation.confidence:.2f}[/red]"
            table.add_row(
                entity.kind.value,
                entity.value,
                str(entity.occurrence_count),
                ", ".join(f"{k}={v}" for k, v in entity.attributes.items() if v),
                verdict,
            )
        console.print(table)

    counts = ", ".join(f"{k.value}: {n}" for k, n in result.counts_by_kind.items())
    console.print(f"Entities: {len(result)}" + (f" ({counts})" if counts else ""), highlight=False)

    summary = result.validation_summary
    if summary is not None:
        console.print(
            f"Validation ({summary.provider_id}/{summary.model_id}): "
            f"{summary.accepted} accepted, {summary.rejected} rejected, "
            f"{summary.not_validated} not validated",
            highlight=False,
        )
    if result.failed_sources:
        console.print(f"[yellow]Skipped after failure: {', '.join(result.failed_sources)}[/yellow]")


@cli.command()
@click.argument("path", type=click.Path(allow_dash=True))
@click.option("--kind", "kinds", multiple=True, help="Entity kind to extract (repeatable, default: all)")
@click.option("--locale", "locales", multiple=True, help="Locale to enable (repeatable, default: all)")
@click.option("--validate", is_flag=True, help="Validate entities with the configured scorer")
@click.option("--provider", type=click.Choice(["rules", "ollama", "openai"]), help="Scorer / LLM provider")
@click.option("--model", help="LLM model name")
@click.option("--min-confidence", type=click.FloatRange(0.0, 1.0), help="Minimum confidence to attach an outcome")
@click.option("--strategy", type=click.Choice(STRATEGIES), help="Combine regex and LLM extraction")
@click.option("--format", "output_format", default="table", type=click.Choice(["table", "json"]))
@click.option("--output", "-o", help="Write JSON results to this file")
def scan(
    path: str,
    kinds: Tuple[str, ...],
    locales: Tuple[str, ...],
    validate: bool,
    provider: Optional[str],
    model: Optional[str],
    min_confidence: Optional[float],
    strategy: Optional[str],
    output_format: str,
    output: Optional[str],
):
    """Extract sensitive values from a text file, or stdin with "-".

    Examples:
        piiscan scan ./notes.txt
        piiscan scan ./export.csv --locale US --kind email --kind phone
        cat mail.txt | piiscan scan - --validate --format json
        piiscan scan ./notes.txt --strategy union --provider ollama
    """
    settings = get_settings()

    validation_updates = {}
    if provider:
        validation_updates["provider"] = provider
    if model:
        validation_updates["model"] = model
    if min_confidence is not None:
        validation_updates["min_confidence"] = min_confidence
    ensemble_updates = {"strategy": strategy} if strategy else {}
    settings = settings.model_copy(
        update={
            "validation": settings.validation.model_copy(update=validation_updates),
            "ensemble": settings.ensemble.model_copy(update=ensemble_updates),
        }
    )

    try:
        text = _read_input(path)
    except OSError as e:
        click.echo(f"Error reading {path}: {e}", err=True)
        sys.exit(1)

    try:
        config = ExtractionConfig.from_names(
            kinds or settings.extraction.kinds,
            locales or settings.extraction.locales,
        )
        extractor = build_extractor(settings, validate or settings.validation.enabled)
        with run_scope():
            result = extractor.extract(text, config)
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)
    except ExtractionCancelledError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    if output:
        Path(output).write_text(result.to_json(), encoding="utf-8")
        click.echo(f"Results written to: {output}")
        click.echo(f"Entities: {len(result)}")
    elif output_format == "json":
        click.echo(result.to_json())
    else:
        _print_result(result)


# =============================================================================
# INFO
# =============================================================================


@cli.command()
def kinds():
    """List entity kinds and the locales that provide patterns for them."""
    registry = build_default_registry()
    table = Table()
    table.add_column("Kind", style="cyan")
    table.add_column("Locales")

    for kind in EntityKind:
        matchers = [m for m in registry if m.kind == kind]
        if any(m.is_international for m in matchers):
            where = "international"
        else:
            where = ", ".join(dict.fromkeys(m.locale for m in matchers))
        table.add_row(kind.value, where)
    Console().print(table)


@cli.command()
def locales():
    """List locales, their aliases and the kinds they cover."""
    registry = build_default_registry()
    table = Table()
    table.add_column("Locale", style="cyan")
    table.add_column("Aliases", style="dim")
    table.add_column("Kinds")

    for locale in registry.locales:
        aliases = sorted(alias for alias, target in LOCALE_ALIASES.items() if target == locale)
        covered = [m.kind.value for m in registry if m.locale == locale]
        table.add_row(locale, ", ".join(aliases), ", ".join(covered))
    Console().print(table)


@cli.group()
def config():
    """Configuration management."""
    pass


@config.command("show")
def config_show():
    """Show current configuration."""
    settings = get_settings()
    click.echo(json.dumps(settings.model_dump(mode="json"), indent=2))


def main():
    cli()


if __name__ == "__main__":
    main()
