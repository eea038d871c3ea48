"""Main CLI entry point for newsbias."""

import asyncio
import json
import sys
from typing import Awaitable, Callable, Optional, TypeVar

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from newsbias import __version__

from ..config.provider_config import ProviderConfigManager
from ..config.settings import ServiceSettings, setup_logging
from ..llm.exceptions import ProviderError
from ..llm.models import BiasAnalysisRequest, ProviderType
from ..metrics import render_metrics
from ..services.bias_analysis import BiasAnalysisService

# Load environment variables from .env file
load_dotenv()

console = Console()

T = TypeVar("T")

PROVIDER_CHOICES = [t.value for t in ProviderType]


def _build_service() -> BiasAnalysisService:
    return BiasAnalysisService.from_env()


def _run_with_service(work: Callable[[BiasAnalysisService], Awaitable[T]]) -> T:
    """Run ``work`` against a fresh service and always clean it up."""

    async def _run() -> T:
        service = _build_service()
        try:
            return await work(service)
        finally:
            await service.cleanup()

    try:
        return asyncio.run(_run())
    except ProviderError as e:
        console.print(f"[red]Configuration error:[/red] {e.message}")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="newsbias")
@click.option(
    "--verbose", "-v", is_flag=True, help="Enable verbose output"
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """newsbias: Multi-provider political bias analysis for news articles.

    Scores articles through OpenAI, Grok or a local Ollama model with
    automatic failover between providers.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    settings = ServiceSettings()
    if verbose:
        settings = settings.model_copy(update={"log_level": "DEBUG"})
        console.print(f"[green]newsbias v{__version__}[/green]")
    setup_logging(settings)


@cli.command()
def config() -> None:
    """Show the provider chain and per-provider settings."""
    try:
        manager = ProviderConfigManager()
    except ProviderError as e:
        console.print(f"[red]Configuration error:[/red] {e.message}")
        sys.exit(1)

    summary = manager.get_config_summary()
    console.print(f"[bold]Primary provider:[/bold] {summary['primary_provider']}")
    console.print(f"[bold]Fallback providers:[/bold] {', '.join(summary['fallback_providers']) or 'none'}")
    console.print(f"[bold]Failover enabled:[/bold] {summary['enable_failover']}")

    table = Table(title="Provider Configuration")
    table.add_column("Provider", style="cyan")
    table.add_column("Model")
    table.add_column("Base URL")
    table.add_column("Timeout (s)", justify="right")
    table.add_column("Retries", justify="right")
    table.add_column("Rate/min", justify="right")
    table.add_column("Configured")

    configured = set(summary["configured_providers"])
    for name, details in summary["providers"].items():
        table.add_row(
            name,
            details["model"],
            details["base_url"] or "",
            f"{details['timeout_seconds']:g}",
            str(details["max_retries"]),
            str(details["rate_limit_per_minute"]),
            "[green]yes[/green]" if name in configured else "[red]no[/red]",
        )
    console.print(table)


@cli.command()
def health() -> None:
    """Check every initialized provider once."""

    async def _health(service: BiasAnalysisService):
        await service.initialize()
        statuses = await service.health_monitor.check_all_providers()
        errors = service.factory.get_initialization_errors()
        return statuses, errors

    statuses, errors = _run_with_service(_health)

    table = Table(title="Provider Health")
    table.add_column("Provider", style="cyan")
    table.add_column("Status")
    table.add_column("Response (ms)", justify="right")
    table.add_column("Error")

    for provider_type, status in statuses.items():
        table.add_row(
            provider_type.value,
            "[green]available[/green]" if status.available else "[red]unavailable[/red]",
            f"{status.response_time_ms:.0f}" if status.response_time_ms is not None else "-",
            status.error or "",
        )
    for provider_type, message in errors.items():
        table.add_row(provider_type.value, "[yellow]not initialized[/yellow]", "-", message)
    console.print(table)


@cli.command("test-provider")
@click.argument("provider", type=click.Choice(PROVIDER_CHOICES))
def test_provider(provider: str) -> None:
    """Run a sample analysis against PROVIDER without fallback or caching."""

    async def _test(service: BiasAnalysisService):
        return await service.test_provider(provider)

    outcome = _run_with_service(_test)
    if outcome.success:
        result = outcome.result
        console.print(f"[green][OK][/green] {provider} responded in {outcome.response_time_ms:.0f}ms")
        console.print(
            f"  bias score {result.bias_score:g}, lean {result.bias_analysis.political_lean.value}, "
            f"confidence {result.confidence:g}"
        )
    else:
        kind = f" ({outcome.error_type})" if outcome.error_type else ""
        console.print(f"[red][FAIL][/red] {provider}{kind}: {outcome.error}")
        sys.exit(1)


@cli.command()
@click.option("--title", "-t", required=True, help="Article title")
@click.option("--content", "-c", required=True, help="Article body text")
@click.option("--summary", help="Optional article summary")
@click.option("--source", help="Optional publication name")
@click.option("--provider", "-p", type=click.Choice(PROVIDER_CHOICES), help="Provider to try first")
@click.option("--json", "as_json", is_flag=True, help="Print the raw result as JSON")
def analyze(
    title: str,
    content: str,
    summary: Optional[str],
    source: Optional[str],
    provider: Optional[str],
    as_json: bool,
) -> None:
    """Analyze a single article for political bias."""
    request = BiasAnalysisRequest(title=title, content=content, summary=summary, source=source)

    async def _analyze(service: BiasAnalysisService):
        return await service.analyze_article(request, preferred_provider=provider)

    result = _run_with_service(_analyze)

    if as_json:
        click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
        return

    table = Table(title="Bias Analysis")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Provider", result.provider)
    table.add_row("Bias score", f"{result.bias_score:g}")
    table.add_row("Political lean", result.bias_analysis.political_lean.value)
    table.add_row("Factual accuracy", f"{result.bias_analysis.factual_accuracy:g}")
    table.add_row("Emotional tone", f"{result.bias_analysis.emotional_tone:g}")
    table.add_row("Confidence", f"{result.confidence:g}")
    table.add_row("Processing time (ms)", str(result.processing_time_ms))
    console.print(table)

    if not result.is_genuine:
        console.print(f"[yellow]Warning: degraded result ({result.provider})[/yellow]")


@cli.group()
def cache() -> None:
    """Inspect and clear cached analyses."""
    pass


@cache.command("stats")
def cache_stats() -> None:
    """Show cached analysis counts by provider."""

    async def _stats(service: BiasAnalysisService):
        return await service.get_cache_stats()

    stats = _run_with_service(_stats)
    console.print(f"[bold]Cached analyses:[/bold] {stats['total_keys']}")
    console.print(f"[bold]Fallback copies:[/bold] {stats['stale_keys']}")
    for name, count in sorted(stats["provider_breakdown"].items()):
        console.print(f"  {name}: {count}")


@cache.command("clear")
@click.option("--provider", "-p", type=click.Choice(PROVIDER_CHOICES), help="Only clear this provider's results")
def cache_clear(provider: Optional[str]) -> None:
    """Delete cached analyses."""

    async def _clear(service: BiasAnalysisService):
        if provider:
            return await service.clear_provider_cache(provider)
        return await service.clear_cache()

    removed = _run_with_service(_clear)
    scope = f" for {provider}" if provider else ""
    console.print(f"[green]Cleared {removed} cached analyses{scope}[/green]")


@cli.command()
def metrics() -> None:
    """Print Prometheus metrics in text exposition format."""
    payload, _ = render_metrics()
    click.echo(payload.decode("utf-8"))


def main() -> int:
    """Main entry point for the CLI."""
    try:
        cli()
        return 0
    except KeyboardInterrupt:
        console.print("\n[red]Operation cancelled by user[/red]")
        return 1
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
