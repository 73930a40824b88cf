"""
Root Typer application for the docsafe maintenance CLI.
"""

from __future__ import annotations

import sys

import typer
from typer import Typer

from docsafe.core.logging import configure_logging
from docsafe.core.settings import get_settings

app = Typer(
    name="docsafe",
    help="docsafe - inspect and maintain local document backups.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("docsafe")
        except PackageNotFoundError:
            from docsafe import __version__ as v
        typer.echo(f"docsafe {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """docsafe CLI - backups, integrity sweeps, retention and recovery metrics."""
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.json_logs, stream=sys.stderr)


# ── Sub-command registration ─────────────────────────────────────────────

from docsafe.cli.backups import app as backups_app  # noqa: E402
from docsafe.cli.metrics import app as metrics_app  # noqa: E402

app.add_typer(backups_app, name="backups", help="Backup inspection and maintenance.")
app.add_typer(metrics_app, name="metrics", help="Recovery metrics.")
