# ==============================================================================
# Sweep Commands
# ==============================================================================
"""
Ingestion sweep commands for the engagement pipeline CLI.

Runs a sweep over all active connections and lists recent sweep summaries
stored in Valkey.
"""

from typing import Annotated, Optional

import typer
from redis.exceptions import RedisError
from rich.console import Console
from rich.table import Table

from engagement.cli.shared import C, I, JsonOutput, TriggerKey, fail, print_json
from engagement.core.errors import UnauthorizedError
from engagement.core.models import SweepSummary
from engagement.infrastructure.cache import ValkeyCache, check_valkey_connection
from engagement.infrastructure.sweep_history import SweepHistory
from engagement.sweep_runner import SweepRunner
from engagement.utils.config import get_settings


def _print_summary(summary: SweepSummary) -> None:
    status_color = C.BRIGHT_GREEN if summary.errors == 0 else C.BRIGHT_YELLOW
    icon = I.CHECK if summary.errors == 0 else I.WARN
    print()
    print(f"{status_color}{icon} Sweep complete{C.RESET} {C.DIM}({summary.duration_seconds:.1f}s){C.RESET}")
    print(f"  Processed:  {C.WHITE}{summary.connections_processed}{C.RESET}")
    print(f"  Failed:     {C.WHITE}{summary.errors}{C.RESET}")
    print(f"  Skipped:    {C.WHITE}{summary.connections_skipped}{C.RESET}")
    print(f"  Plays:      {C.WHITE}{summary.plays_added:,}{C.RESET}")
    print(f"  Sessions:   {C.WHITE}{summary.sessions_derived:,}{C.RESET}")
    print(f"  Link days:  {C.WHITE}{summary.link_days_updated}{C.RESET}")
    print()


# ==============================================================================
# Commands
# ==============================================================================


def sweep_run(
    key: TriggerKey = None,
    workers: Annotated[
        Optional[int],
        typer.Option("--workers", "-w", help="Connections processed concurrently", min=1),
    ] = None,
    no_history: Annotated[
        bool, typer.Option("--no-history", help="Do not record the summary in Valkey")
    ] = False,
    json_output: JsonOutput = False,
) -> None:
    """Poll recently played tracks for every active connection.

    Examples:
        engagement sweep run --key $SWEEP_CRON_KEY
        engagement sweep run -w 4 --json
    """
    runner = SweepRunner(trigger_key=key, workers=workers, record_history=not no_history)
    try:
        summary = runner.run()
    except UnauthorizedError:
        if json_output:
            print_json({"error": "Unauthorized"})
            raise typer.Exit(1)
        fail("Unauthorized")

    if summary is None:
        fail("Sweep interrupted")

    if json_output:
        print_json({"success": True, **summary.model_dump(mode="json")})
        return
    _print_summary(summary)


def sweep_history(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of runs to show")] = 10,
    json_output: JsonOutput = False,
) -> None:
    """Show recent sweep summaries.

    Examples:
        engagement sweep history
        engagement sweep history -n 5 --json
    """
    settings = get_settings()
    if not check_valkey_connection(settings):
        fail(f"Valkey is not reachable at {settings.valkey.host}:{settings.valkey.port}")

    cache = ValkeyCache(settings.valkey.url)
    try:
        runs = SweepHistory(cache, settings.sweep.history_ttl_hours).history(limit)
    except RedisError as e:
        fail(f"Cannot read sweep history from Valkey: {e}")
    finally:
        cache.close()

    if json_output:
        print_json([run.model_dump(mode="json") for run in runs])
        return

    if not runs:
        print(f"\n  {C.BRIGHT_YELLOW}{I.WARN} No sweeps recorded{C.RESET}\n")
        return

    table = Table(title="Recent Sweeps", show_header=True, header_style="bold")
    table.add_column("Started")
    table.add_column("Duration", justify="right")
    table.add_column("Processed", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Plays", justify="right")
    table.add_column("Sessions", justify="right")
    for run in runs:
        table.add_row(
            run.started_at.strftime("%Y-%m-%d %H:%M:%S"),
            f"{run.duration_seconds:.1f}s",
            str(run.connections_processed),
            str(run.errors),
            f"{run.plays_added:,}",
            f"{run.sessions_derived:,}",
        )
    print()
    Console().print(table)
    print()
