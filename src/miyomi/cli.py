"""Command-line interface for Miyomi."""

from typing import List, Optional
import asyncio

import typer
from rich.console import Console
from rich.table import Table

from miyomi.automation.scheduler import MiyomiScheduler
from miyomi.core.config import Settings, settings
from miyomi.core.logging import get_logger
from miyomi.extractors import build_sources
from miyomi.models.market import MarketRecord, Opportunity
from miyomi.pipeline.orchestrator import MiyomiPipeline, PipelineConfig, PipelineExecution
from miyomi.storage.state_store import JsonFileStateStore

app = typer.Typer(
    name="miyomi",
    help="Miyomi - contrarian prediction market picks and social content",
    add_completion=False,
)
console = Console()
logger = get_logger("cli")

MODE_OPTION = typer.Option(None, "--mode", help="Market data mode: live or fixture")
STATE_OPTION = typer.Option(None, "--state-path", help="JSON state file")


def _config(mode: Optional[str]) -> Settings:
    if mode is None:
        return settings
    mode = mode.lower()
    if mode not in ("live", "fixture"):
        raise typer.BadParameter("mode must be 'live' or 'fixture'")
    return settings.model_copy(update={"market_data_mode": mode})


def _build_pipeline(
    mode: Optional[str] = None,
    state_path: Optional[str] = None,
    publish: bool = True
) -> MiyomiPipeline:
    config = _config(mode)
    pipeline_config = PipelineConfig.from_settings()
    pipeline_config.publish = publish
    return MiyomiPipeline(
        config=pipeline_config,
        sources=build_sources(config),
        store=JsonFileStateStore(state_path or config.state_path),
    )


async def _with_pipeline(pipeline: MiyomiPipeline, coro_factory):
    try:
        return await coro_factory(pipeline)
    finally:
        await pipeline.close()


def _markets_table(markets: List[MarketRecord], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Source", style="cyan", no_wrap=True)
    table.add_column("Market", style="white")
    table.add_column("YES", justify="right", style="green")
    table.add_column("NO", justify="right", style="red")
    table.add_column("24h Volume", justify="right")
    table.add_column("Closes", style="dim")
    for market in markets:
        table.add_row(
            market.source,
            market.title,
            f"{market.yes_price}¢",
            f"{market.no_price}¢",
            f"${market.volume_24h:,.0f}",
            market.closes_at.strftime("%Y-%m-%d %H:%M"),
        )
    return table


def _opportunities_table(opportunities: List[Opportunity], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Score", justify="right", style="bold")
    table.add_column("Position", style="magenta")
    table.add_column("Market", style="white")
    table.add_column("YES", justify="right", style="green")
    table.add_column("Hours", justify="right", style="dim")
    table.add_column("Reasoning", style="yellow")
    for opp in opportunities:
        table.add_row(
            f"{opp.score:.1f}",
            opp.recommended_position,
            opp.market.title,
            f"{opp.market.yes_price}¢",
            f"{opp.time_to_close:.0f}",
            opp.reasoning[0] if opp.reasoning else "",
        )
    return table


def _print_execution(execution: PipelineExecution) -> None:
    table = Table(title=f"Run {execution.execution_id[:8]}")
    table.add_column("Stage", style="cyan")
    table.add_column("In", justify="right")
    table.add_column("Out", justify="right")
    table.add_column("Errors", justify="right", style="red")
    table.add_column("Seconds", justify="right", style="dim")
    for metrics in execution.stage_metrics:
        table.add_row(
            metrics.stage,
            str(metrics.input_count),
            str(metrics.output_count),
            str(metrics.error_count),
            f"{metrics.processing_time_seconds:.2f}",
        )
    console.print(table)
    console.print(f"Status: [bold]{execution.status}[/bold]")
    for message in execution.error_messages:
        console.print(f"[red]{message}[/red]")


@app.command()
def info() -> None:
    """Display configuration."""
    logger.info("Displaying system information")
    
    table = Table(title="Miyomi Configuration")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    
    table.add_row("App Name", settings.app_name)
    table.add_row("Version", settings.app_version)
    table.add_row("Debug Mode", str(settings.debug))
    table.add_row("Log Level", settings.log_level)
    table.add_row("Market Data Mode", settings.market_data_mode)
    table.add_row("State Path", settings.state_path)
    table.add_row("LLM Content", "enabled" if settings.llm_enabled else "fallback only")
    table.add_row("Farcaster Publishing", "enabled" if settings.publishing_enabled else "dry run")
    table.add_row("Daily Pick", settings.daily_pick_time)
    table.add_row("Performance Update", settings.performance_update_time)
    
    console.print(table)


@app.command()
def markets(
    mode: Optional[str] = MODE_OPTION,
    limit: int = typer.Option(20, "--limit", "-n", help="Markets to show"),
) -> None:
    """Fetch and list aggregated markets."""
    pipeline = _build_pipeline(mode)
    records = asyncio.run(_with_pipeline(pipeline, lambda p: p.collect_markets()))
    console.print(_markets_table(records[:limit], f"Markets ({len(records)} aggregated)"))


@app.command()
def opportunities(
    mode: Optional[str] = MODE_OPTION,
    limit: int = typer.Option(10, "--limit", "-n", help="Opportunities to show"),
) -> None:
    """Score markets and list ranked opportunities."""
    pipeline = _build_pipeline(mode)
    ranked = asyncio.run(_with_pipeline(pipeline, lambda p: p.find_opportunities()))
    if not ranked:
        console.print("[yellow]No actionable opportunities right now[/yellow]")
        return
    console.print(_opportunities_table(ranked[:limit], f"Opportunities ({len(ranked)} actionable)"))


@app.command()
def pick(
    mode: Optional[str] = MODE_OPTION,
    state_path: Optional[str] = STATE_OPTION,
    publish: bool = typer.Option(True, "--publish/--no-publish", help="Publish to Farcaster"),
) -> None:
    """Run the daily pick pipeline once."""
    pipeline = _build_pipeline(mode, state_path, publish)
    execution = asyncio.run(_with_pipeline(pipeline, lambda p: p.run_daily_pick()))
    _print_execution(execution)
    
    if execution.pick is not None:
        chosen = execution.pick
        console.print(
            f"\n[bold magenta]{chosen.position}[/bold magenta] on [bold]{chosen.market.title}[/bold] "
            f"(entry {chosen.entry_price}¢, target {chosen.target_price}¢, stop {chosen.stop_loss}¢, "
            f"confidence {chosen.confidence:.0%})"
        )
        for reason in chosen.thesis:
            console.print(f"  • {reason}")
    if execution.content is not None:
        console.print(f"\n[dim]{execution.content.post}[/dim]")
    
    if execution.status == "failed":
        raise typer.Exit(code=1)


@app.command("update-performance")
def update_performance(
    mode: Optional[str] = MODE_OPTION,
    state_path: Optional[str] = STATE_OPTION,
    publish: bool = typer.Option(True, "--publish/--no-publish", help="Publish the update to Farcaster"),
) -> None:
    """Re-price the current pick and post how it is doing."""
    pipeline = _build_pipeline(mode, state_path, publish)
    execution = asyncio.run(_with_pipeline(pipeline, lambda p: p.update_performance()))
    
    if execution.performance is None:
        console.print(f"[yellow]No performance update ({execution.status})[/yellow]")
    else:
        performance = execution.performance
        console.print(
            f"Current {performance['current_price']}¢, PnL {performance['pnl']:+}¢ "
            f"({performance['pnl_percent']:+.1f}%) - [bold]{performance['status']}[/bold]"
        )
    if execution.performance_update is not None:
        console.print(f"\n[dim]{execution.performance_update.text}[/dim]")
    if execution.status == "failed":
        raise typer.Exit(code=1)


@app.command()
def stats(state_path: Optional[str] = STATE_OPTION) -> None:
    """Show pick history statistics."""
    pipeline = _build_pipeline(state_path=state_path)
    
    async def collect(p: MiyomiPipeline):
        return await p.ledger.get_statistics(), await p.shortlinks.get_analytics()
    
    ledger_stats, link_stats = asyncio.run(_with_pipeline(pipeline, collect))
    
    table = Table(title="Miyomi Stats")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Total Picks", str(ledger_stats["total_picks"]))
    table.add_row("Stored Picks", str(ledger_stats["stored_picks"]))
    table.add_row("Last Pick", str(ledger_stats["last_pick_time"] or "-"))
    table.add_row("Win Rate", f"{ledger_stats['win_rate']:.0%}")
    table.add_row("Best Pick", str(ledger_stats["best_pick"] or "-"))
    table.add_row("Worst Pick", str(ledger_stats["worst_pick"] or "-"))
    table.add_row("Shortlinks", str(link_stats["total_shortlinks"]))
    table.add_row("Clicks", str(link_stats["total_clicks"]))
    table.add_row("Engagement", str(link_stats["total_engagement"]))
    console.print(table)


@app.command("schedule")
def run_schedule(
    mode: Optional[str] = MODE_OPTION,
    state_path: Optional[str] = STATE_OPTION,
) -> None:
    """Run the daily pick and performance update on schedule until interrupted."""
    pipeline = _build_pipeline(mode, state_path)
    scheduler = MiyomiScheduler(pipeline)
    for job in scheduler.list_jobs():
        console.print(f"[cyan]{job['name']}[/cyan] next run {job['next_run']}")
    
    try:
        asyncio.run(_with_pipeline(pipeline, lambda p: scheduler.run_forever()))
    except KeyboardInterrupt:
        console.print("\nStopping scheduler...")


if __name__ == "__main__":
    app()
