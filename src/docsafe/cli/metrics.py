"""
CLI: ``docsafe metrics`` - persisted recovery metrics.
"""

from __future__ import annotations

from enum import Enum

import typer

from docsafe.cli.utils import console, open_container, output

app = typer.Typer(no_args_is_help=True)


class Subsystem(str, Enum):
    documents = "documents"
    session = "session"


@app.command("show")
def show_metrics(
    subsystem: Subsystem = typer.Option(Subsystem.documents, "--subsystem", "-s"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show recovery counters for one subsystem."""
    with open_container(database) as c:
        metrics = c.metrics_recorder(subsystem.value).load()
    if json_out:
        output(metrics.model_dump(by_alias=True), as_json=True)
        return
    output(metrics, title=f"Recovery metrics ({subsystem.value})")


@app.command("reset")
def reset_metrics(
    subsystem: Subsystem = typer.Option(Subsystem.documents, "--subsystem", "-s"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Clear recovery counters for one subsystem."""
    with open_container(database) as c:
        c.metrics_recorder(subsystem.value).reset()
    console.print(f"[green]Reset[/green] {subsystem.value} metrics")
