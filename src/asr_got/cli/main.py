from __future__ import annotations

import asyncio
import json
import logging

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from asr_got.settings import settings

console = Console()


def _configure_logging() -> None:
    level = (settings.log_level or "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _build_query(query: str, domains: tuple[str, ...], interdisciplinary: bool):
    from asr_got.pipeline import ResearchQuery

    return ResearchQuery(query=query, domain=list(domains), interdisciplinary=interdisciplinary)


def _execute(query, seed: int | None):
    from asr_got.pipeline import ReasoningPipeline

    pipeline = ReasoningPipeline()
    return pipeline, asyncio.run(pipeline.execute_complete(query, seed=seed))


@click.group()
def cli():
    """ASR-GoT reasoning graph"""
    pass


@cli.command()
def version():
    """Print the package version"""
    from asr_got import __version__

    click.echo(__version__)


@cli.command()
@click.argument("query")
@click.option("--domain", "domains", multiple=True, help="Disciplinary tag (repeatable)")
@click.option("--interdisciplinary", is_flag=True, help="Spread hypotheses across domains")
@click.option("--seed", default=None, type=int, help="Random seed for reproducible runs")
@click.option("--json", "as_json", is_flag=True, help="Print the full execution context as JSON")
def run(query, domains, interdisciplinary, seed, as_json):
    """Run the eight-phase pipeline for QUERY"""
    _configure_logging()
    from asr_got.pipeline import analysis_summary, key_findings

    _, ctx = _execute(_build_query(query, domains, interdisciplinary), seed)

    if as_json:
        payload = ctx.to_dict()
        payload["summary"] = analysis_summary(ctx)
        click.echo(json.dumps(payload, indent=2, default=str))
        return

    table = Table(title=f"Stages ({ctx.mode.value})")
    table.add_column("#", style="cyan")
    table.add_column("Stage")
    table.add_column("Nodes", justify="right")
    table.add_column("Edges", justify="right")
    table.add_column("Warnings", justify="right")
    table.add_column("Errors", justify="right", style="red")
    table.add_column("ms", justify="right")
    for r in ctx.stage_results:
        table.add_row(
            str(r.stage),
            r.name,
            str(len(r.nodes_created)),
            str(len(r.edges_created)),
            str(len(r.warnings)),
            str(len(r.errors)),
            f"{r.execution_time_ms:.1f}",
        )
    console.print(table)

    quality = f"{ctx.quality_score:.2f}" if ctx.quality_score is not None else "n/a"
    console.print(f"Quality score: [bold]{quality}[/bold]  fail-safe: {ctx.fail_safe_active}")
    for finding in key_findings(ctx):
        console.print(f"- {finding}")
    if ctx.narrative:
        console.print(Panel(ctx.narrative, title="Narrative"))


@cli.command()
@click.argument("query")
@click.option("--domain", "domains", multiple=True, help="Disciplinary tag (repeatable)")
@click.option("--seed", default=None, type=int)
def validate(query, domains, seed):
    """Run QUERY, then validate the resulting graph"""
    _configure_logging()
    pipeline, _ = _execute(_build_query(query, domains, False), seed)
    report = pipeline.validator.validate(pipeline.get_graph())

    table = Table(title="Graph statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for key, value in report.statistics.items():
        table.add_row(key, str(value))
    console.print(table)

    for err in report.errors:
        console.print(f"[red]error[/red] {err}")
    console.print(f"{len(report.warnings)} warnings")
    for rec in report.recommendations():
        console.print(f"[yellow]recommendation[/yellow] {rec}")
    console.print("[green]valid[/green]" if report.is_valid else "[red]invalid[/red]")
    raise SystemExit(0 if report.is_valid else 1)


@cli.command()
@click.argument("query")
@click.option(
    "--focus",
    type=click.Choice(["gaps", "interventions", "causality", "temporal_patterns", "interdisciplinary"]),
    default="gaps",
    show_default=True,
)
@click.option("--domain", "domains", multiple=True, help="Disciplinary tag (repeatable)")
@click.option("--interdisciplinary", is_flag=True, help="Spread hypotheses across domains")
@click.option("--seed", default=None, type=int)
def insights(query, focus, domains, interdisciplinary, seed):
    """Run QUERY, then print insights for one focus area as JSON"""
    _configure_logging()
    from asr_got.knowledge_graph import research_insights

    pipeline, ctx = _execute(_build_query(query, domains, interdisciplinary), seed)
    payload = {
        "focus_area": focus,
        "insights": research_insights(pipeline.get_graph(), focus),
        "quality_score": ctx.quality_score,
    }
    click.echo(json.dumps(payload, indent=2, default=str))


def app() -> None:
    cli()


if __name__ == "__main__":
    app()
