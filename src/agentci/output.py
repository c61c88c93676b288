from __future__ import annotations

import json
import sys
from typing import Any

from rich.console import Console
from rich.markup import escape

from agentci.models import RunResult, TestResult
from agentci.version import __version__

RESPONSE_PREVIEW_CHARS = 200


def render_results(
    result: RunResult,
    output_format: str,
    verbose: bool = False,
    console: Console | None = None,
) -> None:
    output_format = output_format.lower()
    if output_format == "json":
        sys.stdout.write(format_json(result) + "\n")
    elif output_format == "markdown":
        sys.stdout.write(format_markdown(result) + "\n")
    else:
        render_text(result, console or Console(), verbose)


def _pass_rate(result: RunResult) -> int:
    return round(result.passed / result.total * 100) if result.total else 0


def render_text(result: RunResult, console: Console, verbose: bool = False) -> None:
    console.print()
    console.print(f"[bold]agentci[/bold] [dim]- Running {result.total} tests[/dim]")
    console.print()

    for test in result.results:
        _render_test(test, console, verbose)

    console.print()
    summary = f"Results: {result.passed}/{result.total} passed ({_pass_rate(result)}%)"
    style = "bold green" if result.failed == 0 else "bold red"
    console.print(summary, style=style)
    console.print()


def _render_test(test: TestResult, console: Console, verbose: bool) -> None:
    name = escape(test.name)
    if test.passed:
        console.print(f"  [green]PASS {name}[/green] [dim]({test.duration:.0f}ms)[/dim]")
    else:
        console.print(f"  [red]FAIL {name}[/red] [dim]({test.duration:.0f}ms)[/dim]")
        if test.error:
            console.print(f"     [red]x Error: {escape(test.error)}[/red]")
        for outcome in test.assertions:
            if not outcome.result.passed:
                console.print(
                    f"     [red]x {outcome.assertion.type}: {escape(outcome.result.message)}[/red]"
                )

    if verbose and test.response is not None:
        content = test.response.content
        preview = content[:RESPONSE_PREVIEW_CHARS] + ("..." if len(content) > RESPONSE_PREVIEW_CHARS else "")
        console.print(f"     [dim]Response: {escape(preview)}[/dim]")
        if test.response.tool_calls:
            calls = json.dumps([call.model_dump() for call in test.response.tool_calls])
            console.print(f"     [dim]Tool calls: {escape(calls)}[/dim]")


def _test_payload(test: TestResult) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": test.name,
        "passed": test.passed,
        "duration": round(test.duration),
    }
    if test.error is not None:
        payload["error"] = test.error
    payload["assertions"] = [
        {
            "type": outcome.assertion.type,
            "passed": outcome.result.passed,
            "message": outcome.result.message,
        }
        for outcome in test.assertions
    ]
    return payload


def format_json(result: RunResult) -> str:
    payload = {
        "version": __version__,
        "total": result.total,
        "passed": result.passed,
        "failed": result.failed,
        "duration": round(result.duration),
        "tests": [_test_payload(test) for test in result.results],
    }
    return json.dumps(payload, indent=2)


def format_markdown(result: RunResult) -> str:
    lines = [
        "# agentci Results",
        "",
        f"**{result.passed}/{result.total} passed ({_pass_rate(result)}%)** in {result.duration:.0f}ms",
        "",
        "| Test | Status | Duration |",
        "|------|--------|----------|",
    ]
    for test in result.results:
        status = "PASS" if test.passed else "FAIL"
        lines.append(f"| {test.name} | {status} | {test.duration:.0f}ms |")

    failures = [test for test in result.results if not test.passed]
    if failures:
        lines.extend(["", "## Failures", ""])
        for test in failures:
            lines.append(f"### {test.name}")
            if test.error:
                lines.append(f"- **Error**: {test.error}")
            for outcome in test.assertions:
                if not outcome.result.passed:
                    lines.append(f"- **{outcome.assertion.type}**: {outcome.result.message}")
            lines.append("")
    return "\n".join(lines)
