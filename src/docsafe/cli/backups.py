"""
CLI: ``docsafe backups`` - inspect and maintain the backup store.
"""

from __future__ import annotations

from datetime import timedelta

import typer

from docsafe.cli.utils import console, fail, open_container, output, parse_key
from docsafe.core.integrity import verify
from docsafe.core.timestamps import to_iso8601

app = typer.Typer(no_args_is_help=True)


def _summary(record) -> dict:
    status = verify(record).status
    return {
        "key": record.key.storage_key,
        "title": record.title,
        "size": len(record.content),
        "updated_at": to_iso8601(record.updated_at),
        "integrity": status.value,
    }


@app.command("list")
def list_backups(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List backups, newest first."""
    with open_container(database) as c:
        rows = [_summary(r) for r in c.backup_store.list_records()]
    output(rows, as_json=json_out, title="Backups")


@app.command("show")
def show_backup(
    key: str = typer.Argument(..., help="document:<id> or role:<role>"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show one backup including its content."""
    backup_key = parse_key(key)
    with open_container(database) as c:
        record = c.backup_store.get(backup_key)
    if record is None:
        fail(f"No readable backup under {backup_key}")
    if json_out:
        output(record.model_dump(by_alias=True, exclude_none=True), as_json=True)
        return
    output(_summary(record), title=record.title)
    console.print()
    console.print(record.content, markup=False, highlight=False)


@app.command("verify")
def verify_backups(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Verify every backup and delete the corrupted ones."""
    with open_container(database) as c:
        report = c.backup_store.verify_and_clean_all()
    output(report, as_json=json_out, title="Verification")


@app.command("prune")
def prune_backups(
    max_age_days: int | None = typer.Option(None, "--max-age-days", min=1),
    max_records: int | None = typer.Option(None, "--max-records", min=0),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Delete expired backups and the oldest beyond the record cap."""
    with open_container(database) as c:
        days = max_age_days if max_age_days is not None else c.settings.backup_retention_days
        cap = max_records if max_records is not None else c.settings.backup_max_records
        report = c.backup_store.prune(max_age=timedelta(days=days), max_records=cap)
    output(report.to_dict(), as_json=json_out, title="Prune")


@app.command("remove")
def remove_backup(
    key: str = typer.Argument(..., help="document:<id> or role:<role>"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Delete one backup."""
    backup_key = parse_key(key)
    with open_container(database) as c:
        removed = c.backup_store.remove(backup_key)
    if not removed:
        fail(f"No backup under {backup_key}")
    console.print(f"[green]Removed[/green] {backup_key}")
