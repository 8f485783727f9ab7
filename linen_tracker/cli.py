"""
CLI interface for the Linen Tracker.

Commands:
    list      — Show rooms with their next due dates
    add       — Add a room or update an existing one
    done      — Mark linens as changed today or on an earlier date
    postpone  — Push a room's next due date forward
    pause     — Pause or resume tracking for a room
    delete    — Delete a room and its history
    history   — Show the change log of a room
    export    — Write today's due list as CSV
    backup    — Back up the store and rotate old copies
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

import click
from sqlalchemy.exc import SQLAlchemyError

from linen_tracker import __version__
from linen_tracker.config import TrackerConfig, load_config
from linen_tracker.errors import StoreError, ValidationError


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------

@click.group()
@click.version_option(version=__version__, prog_name="linen-tracker")
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False),
              help="Path to a JSON config file.")
@click.option("--db", default=None, help="Database URL (default: the store in the data directory).")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], db: Optional[str], verbose: bool) -> None:
    """Linen Tracker — keep track of when bed linens are due for a change."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config_path)
    except (OSError, ValueError) as exc:
        raise click.ClickException(f"Could not load config: {exc}")
    ctx.obj["db_url"] = db


def _open_db(ctx: click.Context):
    """Open the tracker, taking the daily backup of a file store first."""
    from linen_tracker.backup.rotation import BackupRotator
    from linen_tracker.tracker.tracker import TrackerDB

    config: TrackerConfig = ctx.obj["config"]
    db_url = ctx.obj.get("db_url")
    if db_url is None:
        config.data_dir.mkdir(parents=True, exist_ok=True)
        BackupRotator(config.db_path, config.backup_dir, keep=config.backup_keep).run_daily()
        db_url = config.db_url
    try:
        return TrackerDB(db_url, default_interval_days=config.default_interval_days)
    except SQLAlchemyError as exc:
        raise click.ClickException(f"Could not open database {db_url}: {exc}")


def _require_room(db, room_number: str):
    row = db.get_room_by_number(room_number)
    if row is None:
        raise click.ClickException(f"Room {room_number} not found.")
    return row


def _format_row(row) -> str:
    if row.paused:
        state = "paused"
    elif row.days_until_due < 0:
        state = f"{abs(row.days_until_due)}d overdue"
    elif row.days_until_due == 0:
        state = "due today"
    else:
        state = f"in {row.days_until_due}d"
    return (
        f"  {row.room_number:10s} | {row.resident_name[:20]:20s} | "
        f"every {row.interval_days:3d}d | last {row.last_changed.isoformat()} | "
        f"next {row.next_due.isoformat()} | {state:14s} | {row.note[:30]}"
    )


# ---------------------------------------------------------------------------
# list
# ---------------------------------------------------------------------------

@cli.command(name="list")
@click.option("--filter", "-f", "room_filter", default="all",
              type=click.Choice(["all", "today", "overdue", "week"], case_sensitive=False),
              help="Which rooms to show.")
@click.option("--search", "-s", default="", help="Match room number, resident or note.")
@click.option("--date", "on_date", default=None, help="Reference day (YYYY-MM-DD, default: today).")
@click.pass_context
def list_rooms(ctx: click.Context, room_filter: str, search: str, on_date: Optional[str]) -> None:
    """Show rooms ordered by urgency."""
    from linen_tracker.tracker.schedule import RoomFilter

    today = _parse_date(on_date) if on_date else date.today()
    db = _open_db(ctx)
    rows = db.list_rooms(RoomFilter(room_filter.lower()), search=search, today=today)
    if not rows:
        click.echo("No rooms match.")
    else:
        click.echo(f"Showing {len(rows)} room(s):")
        for row in rows:
            click.echo(_format_row(row))
    click.echo(f"\n{db.get_summary(today).format_text()}")


# ---------------------------------------------------------------------------
# add
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("room_number")
@click.option("--resident", "-r", default=None, help="Resident name.")
@click.option("--note", "-n", default=None, help="Free-text note.")
@click.option("--last-changed", default=None,
              help="Date linens were last changed (YYYY-MM-DD). New rooms default to today, "
                   "existing rooms keep their stored date.")
@click.option("--interval", "-i", default=None,
              help="Days between changes. New rooms default to the configured interval, "
                   "existing rooms keep their stored interval.")
@click.pass_context
def add(
    ctx: click.Context,
    room_number: str,
    resident: Optional[str],
    note: Optional[str],
    last_changed: Optional[str],
    interval: Optional[str],
) -> None:
    """Add a room, or update it if the room number already exists."""
    last = _parse_date(last_changed) if last_changed else None
    db = _open_db(ctx)
    existing = db.get_room_by_number(room_number) if room_number.strip() else None
    if existing is not None:
        last = last or existing.last_changed
        interval = interval if interval is not None else existing.interval_days
    try:
        row = db.add_or_update_room(
            room_number,
            resident_name=resident,
            note=note,
            last_changed=last,
            interval_days=interval,
        )
    except (ValidationError, StoreError) as exc:
        raise click.ClickException(str(exc))
    click.echo(f"Saved room {row.room_number}, next change due {row.next_due.isoformat()}.")


# ---------------------------------------------------------------------------
# done / postpone / pause
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("room_number")
@click.option("--on", "on_date", default=None, help="Day the linens were changed (YYYY-MM-DD).")
@click.pass_context
def done(ctx: click.Context, room_number: str, on_date: Optional[str]) -> None:
    """Mark a room's linens as changed."""
    db = _open_db(ctx)
    room = _require_room(db, room_number)
    try:
        if on_date:
            row = db.mark_changed_on(room.id, _parse_date(on_date))
        else:
            row = db.mark_changed_today(room.id)
    except (ValidationError, StoreError) as exc:
        raise click.ClickException(str(exc))
    click.echo(
        f"Room {row.room_number}: changed {row.last_changed.isoformat()}, "
        f"next due {row.next_due.isoformat()}."
    )


@cli.command()
@click.argument("room_number")
@click.option("--days", "-d", default=7, type=int, show_default=True, help="Days to postpone.")
@click.pass_context
def postpone(ctx: click.Context, room_number: str, days: int) -> None:
    """Push a room's next due date forward without recording a change."""
    db = _open_db(ctx)
    room = _require_room(db, room_number)
    try:
        row = db.postpone(room.id, days)
    except (ValidationError, StoreError) as exc:
        raise click.ClickException(str(exc))
    click.echo(f"Room {row.room_number}: postponed {days} day(s), next due {row.next_due.isoformat()}.")


@cli.command()
@click.argument("room_number")
@click.pass_context
def pause(ctx: click.Context, room_number: str) -> None:
    """Pause tracking for a room, or resume it if already paused."""
    db = _open_db(ctx)
    room = _require_room(db, room_number)
    try:
        row = db.toggle_pause(room.id)
    except StoreError as exc:
        raise click.ClickException(str(exc))
    click.echo(f"Room {row.room_number}: {'paused' if row.paused else 'resumed'}.")


# ---------------------------------------------------------------------------
# delete / history
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("room_number")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def delete(ctx: click.Context, room_number: str, yes: bool) -> None:
    """Delete a room together with its schedule and change log."""
    db = _open_db(ctx)
    room = _require_room(db, room_number)
    if not yes:
        click.confirm(f"Delete room {room.room_number} and its history?", abort=True)
    try:
        db.delete_room(room.id)
    except StoreError as exc:
        raise click.ClickException(str(exc))
    click.echo(f"Deleted room {room.room_number}.")


@cli.command()
@click.argument("room_number")
@click.pass_context
def history(ctx: click.Context, room_number: str) -> None:
    """Show the change log of a room, newest first."""
    db = _open_db(ctx)
    room = _require_room(db, room_number)
    changes = db.list_changes(room.id)
    if not changes:
        click.echo(f"No history for room {room.room_number}.")
        return
    click.echo(f"History of room {room.room_number} ({len(changes)}):")
    for change in changes:
        click.echo(f"  {change.changed_at.strftime('%Y-%m-%d %H:%M:%S')}  {change.note}")


# ---------------------------------------------------------------------------
# export / backup
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--output-dir", "-o", default=None, type=click.Path(file_okay=False),
              help="Directory for the CSV file (default from config).")
@click.option("--date", "on_date", default=None, help="Day to export (YYYY-MM-DD, default: today).")
@click.option("--stdout", "to_stdout", is_flag=True, help="Print the CSV instead of writing a file.")
@click.pass_context
def export(ctx: click.Context, output_dir: Optional[str], on_date: Optional[str], to_stdout: bool) -> None:
    """Write the list of rooms due today as CSV."""
    from linen_tracker.export.daily_list import build_daily_export, write_daily_export

    today = _parse_date(on_date) if on_date else date.today()
    db = _open_db(ctx)
    result = build_daily_export(db, today=today)
    if to_stdout:
        click.echo(result.content, nl=False)
        return
    config: TrackerConfig = ctx.obj["config"]
    try:
        path = write_daily_export(result, output_dir or config.export_dir)
    except OSError as exc:
        raise click.ClickException(f"Could not write export: {exc}")
    click.echo(f"Saved {len(result.rows)} room(s) to {path}")


@cli.command()
@click.option("--daily", is_flag=True, help="Only back up if there is no backup from today.")
@click.pass_context
def backup(ctx: click.Context, daily: bool) -> None:
    """Back up the store file and keep only the newest copies."""
    from linen_tracker.backup.rotation import BackupRotator

    config: TrackerConfig = ctx.obj["config"]
    rotator = BackupRotator(config.db_path, config.backup_dir, keep=config.backup_keep)
    created = rotator.run_daily() if daily else rotator.run()
    if created:
        click.echo(f"Backup written to {created}")
    else:
        click.echo("No backup written.")
    click.echo(f"{len(rotator.list_backups())} backup(s) in {config.backup_dir}")


# ---------------------------------------------------------------------------
# Utility
# ---------------------------------------------------------------------------

def _parse_date(s: str) -> date:
    try:
        return datetime.strptime(s, "%Y-%m-%d").date()
    except ValueError:
        raise click.BadParameter(f"Invalid date format: {s}. Use YYYY-MM-DD.")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
