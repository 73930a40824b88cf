"""
CLI utility helpers - output formatting and container management.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table

from docsafe.container import DocsafeContainer
from docsafe.core.models import BACKUP_PREFIX, BackupKey
from docsafe.core.settings import get_settings

console = Console()
err_console = Console(stderr=True)


# ── Container helper ─────────────────────────────────────────────────────


def open_container(database: str | None = None) -> DocsafeContainer:
    """Container over ``database``; defaults to ``settings.database_path``."""
    settings = get_settings()
    if database is not None:
        settings = settings.model_copy(update={"database_path": Path(database)})
    return DocsafeContainer(settings)


def parse_key(raw: str) -> BackupKey:
    """Accept ``document:<id>``, ``role:<role>`` or a full storage key."""
    text = raw if raw.startswith(BACKUP_PREFIX) else f"{BACKUP_PREFIX}{raw}"
    try:
        return BackupKey.from_storage_key(text)
    except ValueError:
        fail(f"Invalid backup key {raw!r} (expected document:<id> or role:<role>)")


def fail(message: str) -> NoReturn:
    err_console.print(f"[bold red]Error[/bold red]: {message}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a model, dict or list of them to the terminal."""
    if as_json:
        payload = [_to_dict(d) for d in data] if isinstance(data, list | tuple) else _to_dict(data)
        console.print_json(json.dumps(payload, default=str))
        return

    if isinstance(data, list):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(data, title=title)
    else:
        _print_dict(_to_dict(data), title=title)


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list, *, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*(str(v) for v in d.values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
