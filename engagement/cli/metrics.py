# ==============================================================================
# Metrics Commands
# ==============================================================================
"""
Read-only metrics commands for the engagement pipeline CLI.

Link headline metrics, per-connection audience metrics, daily series and
cohort retention, rendered as rich tables or JSON.
"""

from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from engagement.cli.shared import (
    C,
    JsonOutput,
    build_bucketer,
    build_metrics_service,
    open_store,
    print_json,
)

Days = Annotated[int, typer.Option("--days", "-d", help="Number of day keys to include", min=1)]


# ==============================================================================
# Commands
# ==============================================================================


def metrics_link(
    link_id: Annotated[str, typer.Argument(help="Tracking link ID")],
    json_output: JsonOutput = False,
) -> None:
    """Show headline metrics, the last 7 days and recent connections for a link.

    Examples:
        engagement metrics link abc123
        engagement metrics link abc123 --json
    """
    with open_store() as store:
        metrics = build_metrics_service(store).get_link_metrics(link_id)

    if json_output:
        print_json(metrics.model_dump(mode="json"))
        return

    week = metrics.last_7_days
    print()
    print(f"{C.BOLD}Link {link_id}{C.RESET}")
    print()
    print(f"{C.CYAN}All time{C.RESET}")
    print(f"  Connections:     {C.WHITE}{metrics.total_connections:,}{C.RESET}")
    print(f"  Active:          {C.WHITE}{metrics.total_active_listeners:,}{C.RESET}")
    print(f"  Tracks played:   {C.WHITE}{metrics.total_tracks_played:,}{C.RESET}")
    print(f"  Minutes:         {C.WHITE}{metrics.total_minutes_listened:,}{C.RESET}")
    print(f"  Super listeners: {C.WHITE}{metrics.total_super_listeners:,}{C.RESET}")
    print()
    print(f"{C.CYAN}Last 7 days{C.RESET}")
    print(f"  New connections: {C.WHITE}{week.new_connections:,}{C.RESET}")
    print(f"  Listeners:       {C.WHITE}{week.active_listeners:,}{C.RESET}")
    print(f"  Tracks played:   {C.WHITE}{week.tracks_played:,}{C.RESET}")
    print(f"  Super days:      {C.WHITE}{week.super_listeners:,}{C.RESET}")
    print()

    if metrics.recent_connections:
        table = Table(title="Recent connections", show_header=True, header_style="bold")
        table.add_column("Listener")
        table.add_column("Joined")
        table.add_column("Tracks", justify="right")
        table.add_column("Minutes", justify="right")
        for recent in metrics.recent_connections:
            table.add_row(
                recent.display_name or recent.id,
                recent.connected_at.strftime("%Y-%m-%d %H:%M"),
                f"{recent.total_tracks_played:,}",
                f"{recent.total_minutes:,}",
            )
        Console().print(table)
        print()


def metrics_user(
    connection_id: Annotated[str, typer.Argument(help="Listener connection ID")],
    json_output: JsonOutput = False,
) -> None:
    """Show audience metrics for one listener connection."""
    with open_store() as store:
        metrics = build_metrics_service(store).get_user_metrics(connection_id)

    if json_output:
        print_json(metrics.model_dump(mode="json"))
        return

    last_active = metrics.last_active.isoformat() if metrics.last_active else "never"
    print()
    print(f"{C.BOLD}Connection {connection_id}{C.RESET}")
    print(f"  Tracks played:   {C.WHITE}{metrics.total_tracks_played:,}{C.RESET}")
    print(f"  Minutes:         {C.WHITE}{metrics.total_minutes_listened:,}{C.RESET}")
    print(f"  Sessions:        {C.WHITE}{metrics.total_sessions:,}{C.RESET}")
    print(f"  Super sessions:  {C.WHITE}{metrics.super_listener_count:,}{C.RESET}")
    print(f"  Last active:     {C.WHITE}{last_active}{C.RESET}")
    print()


def metrics_daily(
    link_id: Annotated[str, typer.Argument(help="Tracking link ID")],
    days: Days = 30,
    json_output: JsonOutput = False,
) -> None:
    """Show the zero-filled daily series for a link."""
    bucketer = build_bucketer()
    with open_store() as store:
        series = build_metrics_service(store).get_link_daily_metrics(link_id, days=days)

    if json_output:
        print_json(
            [{**point.model_dump(mode="json"), "date": bucketer.format_day(point.day)} for point in series]
        )
        return

    table = Table(title=f"Daily metrics ({days} days)", show_header=True, header_style="bold")
    table.add_column("Date")
    table.add_column("New", justify="right")
    table.add_column("Listeners", justify="right")
    table.add_column("Tracks", justify="right")
    table.add_column("Minutes", justify="right")
    table.add_column("Super", justify="right")
    for point in series:
        table.add_row(
            bucketer.format_day(point.day),
            str(point.connections_new),
            str(point.active_listeners),
            f"{point.tracks_played:,}",
            f"{point.minutes_listened:,}",
            str(point.super_listeners),
        )
    print()
    Console().print(table)
    print()


def metrics_retention(
    link_id: Annotated[str, typer.Argument(help="Tracking link ID")],
    days: Days = 30,
    json_output: JsonOutput = False,
) -> None:
    """Show cohort retention for a link's recent join days."""
    with open_store() as store:
        cohorts = build_metrics_service(store).get_cohort_retention(link_id, days=days)

    if json_output:
        print_json([cohort.model_dump(mode="json") for cohort in cohorts])
        return

    if not cohorts:
        print(f"\n  {C.DIM}No cohorts joined in the last {days} days{C.RESET}\n")
        return

    table = Table(title="Cohort retention", show_header=True, header_style="bold")
    table.add_column("Cohort")
    table.add_column("Size", justify="right")
    table.add_column("Active days", justify="right")
    table.add_column("Latest", justify="right")
    for cohort in cohorts:
        curve = [day for day in cohort.retention_by_day if day.date >= cohort.cohort_date]
        active_days = sum(1 for day in curve if day.active_users > 0)
        latest = curve[-1].retention_rate if curve else 0.0
        table.add_row(
            cohort.cohort_date,
            str(cohort.total_users),
            str(active_days),
            f"{latest:.0%}",
        )
    print()
    Console().print(table)
    print()
