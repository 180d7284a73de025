#!/usr/bin/env python3
"""
ToggleMark - command-line front end.

Drives the extension core from a terminal: toggle quick saves, set
reminders, run the expiry sweep, inspect state, and run the alarm loop.
"""
import sys
import argparse
import json
import logging
import threading
from pathlib import Path
from dataclasses import asdict
from rich.console import Console
from rich.table import Table

from togglemark.config import init_config, get_config
from togglemark.db import get_db
from togglemark.extension import Extension, Tab
from togglemark.runtime import Runtime
from togglemark.toggle import ToggleAction, ToolbarState
from togglemark.utils import format_duration, format_timestamp

logger = logging.getLogger(__name__)

console = Console()


def get_extension(args) -> Extension:
    """Build the extension on the configured database."""
    return Extension(get_db(args.db))


def print_json(data):
    print(json.dumps(data, indent=2, default=str))


def cmd_install(args):
    """Bootstrap the quick-saves folder and the sweep alarm."""
    ext = get_extension(args)
    ext.on_installed()
    status = ext.status()
    if args.output == "json":
        print_json(status)
        return
    console.print(f"[green]✓ Quick saves folder: {status['quick_saves_folder_id']}[/green]")
    console.print(f"[green]✓ Daily sweep scheduled ({get_config().sweep_period_minutes} min)[/green]")


def cmd_toggle(args):
    ext = get_extension(args)
    result = ext.on_toolbar_clicked(Tab(id=0, url=args.url, title=args.title))
    if result is None:
        console.print(f"[red]✗ Could not toggle bookmark for {args.url}[/red]")
        sys.exit(1)

    if args.output == "json":
        print_json(result.to_dict())
        return

    if result.action is ToggleAction.ADDED:
        console.print(f"[green]✓ Quick saved {args.url} (expires in {get_config().retention_days} days)[/green]")
    else:
        console.print(f"[yellow]✓ Removed {len(result.bookmark_ids)} bookmark(s) for {args.url}[/yellow]")
    for bid in result.failed_ids:
        console.print(f"[red]✗ Failed to remove bookmark {bid}[/red]")
    label = "bookmarked" if result.state is ToolbarState.BOOKMARKED else "not bookmarked"
    console.print(f"Page is now {label}")


def cmd_status(args):
    ext = get_extension(args)
    if args.url:
        state = ext.update_ui(Tab(id=0, url=args.url))
        if args.output == "json":
            print_json({"url": args.url, "state": state.name if state else None})
        elif state is None:
            console.print(f"[dim]{args.url} is not a trackable page[/dim]")
        else:
            console.print(f"{args.url}: [cyan]{state.name}[/cyan] ({state.icon})")
        return

    status = ext.status()
    if args.output == "json":
        print_json(status)
        return
    table = Table(title="ToggleMark Status", show_header=False)
    table.add_column("Field", style="cyan bold")
    table.add_column("Value")
    for key, value in status.items():
        if key == "now":
            value = format_timestamp(value)
        table.add_row(key.replace("_", " ").title(), str(value))
    console.print(table)


def cmd_remind(args):
    ext = get_extension(args)
    response = ext.request_reminder(Tab(id=0, url=args.url, title=args.title), args.minutes)
    if args.output == "json":
        print_json(response)
    elif response["success"]:
        console.print(f"[green]✓ {response['message']}[/green]")
    else:
        console.print(f"[red]✗ {response['message']}[/red]")
    if not response["success"]:
        sys.exit(1)


def cmd_cancel_reminder(args):
    ext = get_extension(args)
    for bid in args.ids:
        if ext.cancel_reminder(bid):
            console.print(f"[green]✓ Cancelled reminder for {bid}[/green]")
        else:
            console.print(f"[yellow]No reminder for {bid}[/yellow]")


def cmd_sweep(args):
    """Run the expiry sweep now instead of waiting for the alarm."""
    ext = get_extension(args)
    result = ext.cleanup_expired_bookmarks()
    if result is None:
        console.print("[red]✗ Sweep failed, see log[/red]")
        sys.exit(1)
    if args.output == "json":
        print_json(result.to_dict())
        return
    console.print(
        f"Removed {len(result.removed)}, already gone {len(result.already_absent)}, "
        f"failed {len(result.failed)}, pending {len(result.pending)}"
    )


def cmd_list(args):
    """List expiring quick saves and pending reminders."""
    ext = get_extension(args)
    now = ext.clock()
    expiring = ext.expiring.get()
    reminders = ext.reminders.get()

    if args.output == "json":
        print_json({
            "expiringBookmarks": {bid: e.to_dict() for bid, e in expiring.items()},
            "reminders": {bid: r.to_dict() for bid, r in reminders.items()},
        })
        return

    if not expiring and not reminders:
        console.print("[yellow]Nothing is scheduled[/yellow]")
        return

    if expiring:
        table = Table(title="Expiring Quick Saves")
        table.add_column("ID", style="cyan")
        table.add_column("URL", style="blue")
        table.add_column("Created", style="magenta")
        table.add_column("Expires", style="yellow")
        table.add_column("Left", style="green")
        for bid, entry in sorted(expiring.items(), key=lambda item: item[1].expires_at):
            table.add_row(
                bid,
                entry.url[:60],
                format_timestamp(entry.created_at),
                format_timestamp(entry.expires_at),
                format_duration(entry.expires_at - now),
            )
        console.print(table)

    if reminders:
        table = Table(title="Reminders")
        table.add_column("ID", style="cyan")
        table.add_column("Title", style="green")
        table.add_column("URL", style="blue")
        table.add_column("Due", style="yellow")
        table.add_column("In", style="magenta")
        for bid, entry in sorted(reminders.items(), key=lambda item: item[1].reminder_time):
            table.add_row(
                bid,
                entry.title[:40],
                entry.url[:50],
                format_timestamp(entry.reminder_time),
                format_duration(entry.reminder_time - now),
            )
        console.print(table)


def cmd_alarms(args):
    ext = get_extension(args)
    alarms = ext.scheduler.all()
    if args.output == "json":
        print_json([a.to_dict() for a in alarms])
        return
    if not alarms:
        console.print("[yellow]No alarms scheduled[/yellow]")
        return
    table = Table(title="Alarms")
    table.add_column("Name", style="cyan")
    table.add_column("Fires", style="yellow")
    table.add_column("Period (min)", style="magenta")
    for alarm in alarms:
        period = f"{alarm.period_minutes:g}" if alarm.is_recurring else "-"
        table.add_row(alarm.name, format_timestamp(alarm.scheduled_time), period)
    console.print(table)


def cmd_bookmarks(args):
    ext = get_extension(args)
    nodes = ext.bookmarks.search(query=args.query) if args.query else ext.bookmarks.all()
    if args.output == "json":
        print_json([n.to_dict() for n in nodes])
        return
    table = Table(title="Bookmarks")
    table.add_column("ID", style="cyan")
    table.add_column("Title", style="green")
    table.add_column("URL", style="blue")
    table.add_column("Folder", style="magenta")
    table.add_column("Added", style="yellow")
    for node in nodes:
        table.add_row(node.id, node.title[:50], (node.url or "")[:50],
                      node.parent_id or "", format_timestamp(node.date_added))
    console.print(table)


def cmd_events(args):
    db = get_db(args.db)
    events = db.events(event_type=args.type, limit=args.limit)
    if args.output == "json":
        print_json([{
            "id": e.id,
            "type": e.event_type,
            "entity": f"{e.entity_type}:{e.entity_id}",
            "url": e.entity_url,
            "timestamp": e.timestamp.isoformat() if e.timestamp else None,
            "data": e.event_data,
        } for e in events])
        return
    table = Table(title="Activity")
    table.add_column("When", style="yellow")
    table.add_column("Event", style="cyan")
    table.add_column("Entity", style="green")
    table.add_column("URL", style="blue")
    for e in events:
        when = e.timestamp.strftime("%Y-%m-%d %H:%M:%S") if e.timestamp else ""
        table.add_row(when, e.event_type, f"{e.entity_type}:{e.entity_id or '-'}", (e.entity_url or "")[:50])
    console.print(table)


def cmd_run(args):
    """Run the alarm loop."""
    ext = get_extension(args)
    runtime = Runtime(ext, poll_interval=args.interval)
    if args.once:
        runtime.start()
        fired = runtime.tick()
        console.print(f"Fired {len(fired)} alarm(s)")
        return

    stop = threading.Event()
    console.print("[cyan]ToggleMark is running. Press Ctrl+C to stop.[/cyan]")
    try:
        runtime.run_forever(stop)
    except KeyboardInterrupt:
        stop.set()
        console.print("\n[yellow]Stopped[/yellow]")


def cmd_config(args):
    config = get_config()
    data = asdict(config)
    if args.key:
        if args.key not in data:
            console.print(f"[red]Unknown config key: {args.key}[/red]")
            sys.exit(1)
        print(data[args.key])
        return
    if args.output == "json":
        print_json(data)
        return
    table = Table(title="Configuration")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    for key, value in data.items():
        table.add_row(key, str(value))
    console.print(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="togglemark",
        description="ToggleMark - one-click quick saves that expire, and bookmark reminders",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  togglemark install
  togglemark toggle https://example.com --title "Example"
  togglemark remind https://example.com 10
  togglemark list
  togglemark sweep
  togglemark run

Configuration:
  Default database: ./togglemark.db or from config
  Config file: ~/.config/togglemark/config.toml
  Environment: TOGGLEMARK_DATABASE, TOGGLEMARK_RETENTION_DAYS
        """
    )

    parser.add_argument("--db", help="Database file (default: togglemark.db)")
    parser.add_argument("--config", help="Config file path")
    parser.add_argument("-o", "--output", choices=["table", "json"], help="Output format")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True, help="Commands")

    p = subparsers.add_parser("install", help="Create the quick saves folder and sweep alarm")
    p.set_defaults(func=cmd_install)

    p = subparsers.add_parser("toggle", help="Toggle the bookmark state of a page")
    p.add_argument("url", help="Page URL")
    p.add_argument("--title", help="Page title")
    p.set_defaults(func=cmd_toggle)

    p = subparsers.add_parser("status", help="Show overall status or the state of one page")
    p.add_argument("url", nargs="?", help="Page URL")
    p.set_defaults(func=cmd_status)

    p = subparsers.add_parser("remind", help="Set a reminder for a page")
    p.add_argument("url", help="Page URL")
    p.add_argument("minutes", help="Minutes from now")
    p.add_argument("--title", help="Page title")
    p.set_defaults(func=cmd_remind)

    p = subparsers.add_parser("cancel-reminder", help="Cancel reminders by bookmark id")
    p.add_argument("ids", nargs="+", help="Bookmark IDs")
    p.set_defaults(func=cmd_cancel_reminder)

    p = subparsers.add_parser("sweep", help="Remove expired quick saves now")
    p.set_defaults(func=cmd_sweep)

    p = subparsers.add_parser("list", help="List expiring quick saves and reminders")
    p.set_defaults(func=cmd_list)

    p = subparsers.add_parser("alarms", help="List scheduled alarms")
    p.set_defaults(func=cmd_alarms)

    p = subparsers.add_parser("bookmarks", help="List bookmarks")
    p.add_argument("query", nargs="?", help="Substring to search in url/title")
    p.set_defaults(func=cmd_bookmarks)

    p = subparsers.add_parser("events", help="Show recent activity")
    p.add_argument("--type", help="Only this event type")
    p.add_argument("--limit", type=int, default=20, help="Maximum events (default: 20)")
    p.set_defaults(func=cmd_events)

    p = subparsers.add_parser("run", help="Run the alarm loop")
    p.add_argument("--interval", type=float, help="Seconds between alarm polls")
    p.add_argument("--once", action="store_true", help="Fire due alarms once and exit")
    p.set_defaults(func=cmd_run)

    p = subparsers.add_parser("config", help="Show configuration")
    p.add_argument("key", nargs="?", help="Config key")
    p.set_defaults(func=cmd_config)

    return parser


def main(argv=None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config_args = {}
    if args.output:
        config_args["output_format"] = args.output
    if args.config:
        config_args["config_file"] = Path(args.config)
    if args.verbose:
        config_args["log_level"] = "DEBUG"

    config = init_config(database=args.db, **config_args)

    logging.basicConfig(
        level=getattr(logging, str(config.log_level).upper(), logging.INFO),
        format="%(levelname)s: %(message)s"
    )

    if not args.output:
        args.output = config.output_format

    try:
        args.func(args)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
