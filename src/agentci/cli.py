from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console

from agentci.demo import DEMO_SUITE, DemoProvider
from agentci.errors import ConfigError
from agentci.output import render_results
from agentci.runner import run_suite
from agentci.suite import STARTER_CONFIG, SuiteConfig, load_suite

app = typer.Typer(no_args_is_help=True)

OUTPUT_FORMATS = {"text", "json", "markdown"}


@app.command()
def run(
    config: Path = typer.Option(Path("agentci.yaml"), "--config", "-c", help="Suite config file"),
    model: str | None = typer.Option(None, "--model", "-m", help="Override the model for all tests"),
    output_format: str = typer.Option("text", "--format", "-f", help="text|json|markdown"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate the config without calling any model"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show full responses"),
    demo: bool = typer.Option(False, "--demo", help="Run the demo suite against a built-in mock agent"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Python logging level"),
) -> None:
    """Run a test suite against the configured model."""
    logging.basicConfig(level=log_level.upper(), format="%(message)s")
    console = Console()
    if output_format.lower() not in OUTPUT_FORMATS:
        raise typer.BadParameter("Format must be one of: text, json, markdown.")

    if demo:
        console.print("[bold]agentci demo mode[/bold]")
        console.print(f"[dim]Running {len(DEMO_SUITE.tests)} test cases against a mock customer support agent...[/dim]")
        result = asyncio.run(run_suite(DEMO_SUITE, verbose=verbose, provider=DemoProvider()))
        render_results(result, output_format, verbose, console)
        console.print("\n---")
        console.print("This was a demo against a mock agent.")
        console.print("To test YOUR agent: agentci init && agentci run")
        return

    try:
        suite = load_suite(config)
    except ConfigError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(code=1) from exc

    if model:
        suite = _with_model(suite, model)

    if dry_run:
        console.print(f"Config valid: {len(suite.tests)} test(s) found in {config}")
        for test in suite.tests:
            console.print(f"  - {test.name} ({len(test.assertions)} assertion(s))")
        return

    result = asyncio.run(run_suite(suite, verbose=verbose))
    render_results(result, output_format, verbose, console)
    if result.failed > 0:
        raise typer.Exit(code=1)


@app.command()
def init(
    output: Path = typer.Option(Path("agentci.yaml"), "--output", "-o", help="Where to write the config"),
) -> None:
    """Write a starter agentci.yaml."""
    console = Console()
    if output.exists():
        console.print(
            f"[red]Error: {output} already exists. Remove it first or use -o to pick another path.[/red]"
        )
        raise typer.Exit(code=1)
    output.write_text(STARTER_CONFIG, encoding="utf-8")
    console.print(f"[green]Created {output}[/green]")
    console.print("\nNext steps:")
    console.print(f"  1. Edit {output} with your agent's tests")
    console.print("  2. Run: agentci run")
    console.print("\nOr try the demo: agentci run --demo")


def _with_model(suite: SuiteConfig, model: str) -> SuiteConfig:
    return suite.model_copy(update={"defaults": suite.defaults.model_copy(update={"model": model})})
