# ==============================================================================
# Engagement Pipeline CLI
# ==============================================================================
"""
Command-line interface for the playlist engagement pipeline.

Usage:
    engagement --help
    engagement config show
    engagement db init
    engagement db reset -y
    engagement sweep run --key $SWEEP_CRON_KEY
    engagement sweep history
    engagement metrics link <link-id>
    engagement metrics user <connection-id>
    engagement metrics daily <link-id> --days 30
    engagement metrics retention <link-id> --days 30
    engagement retention sweep --key $SWEEP_CRON_KEY
"""

# ==============================================================================
# App Configuration
# ==============================================================================
# Set consistent terminal width for help output formatting
import os

import typer

if "COLUMNS" not in os.environ:
    os.environ["COLUMNS"] = "115"

app = typer.Typer(
    name="engagement",
    help="Playlist engagement pipeline CLI",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

sweep_app = typer.Typer(
    help="Ingestion sweep operations",
    no_args_is_help=True,
)
app.add_typer(sweep_app, name="sweep")

from engagement.cli.sweep import sweep_history, sweep_run

sweep_app.command("run")(sweep_run)
sweep_app.command("history")(sweep_history)

metrics_app = typer.Typer(
    help="Engagement metrics",
    no_args_is_help=True,
)
app.add_typer(metrics_app, name="metrics")

from engagement.cli.metrics import metrics_daily, metrics_link, metrics_retention, metrics_user

metrics_app.command("link")(metrics_link)
metrics_app.command("user")(metrics_user)
metrics_app.command("daily")(metrics_daily)
metrics_app.command("retention")(metrics_retention)

retention_app = typer.Typer(
    help="Retention window maintenance",
    no_args_is_help=True,
)
app.add_typer(retention_app, name="retention")

from engagement.cli.retention import retention_sweep

retention_app.command("sweep")(retention_sweep)

db_app = typer.Typer(
    help="Database schema management",
    no_args_is_help=True,
)
app.add_typer(db_app, name="db")

from engagement.cli.db import db_init, db_reset

db_app.command("init")(db_init)
db_app.command("reset")(db_reset)

config_app = typer.Typer(
    help="Configuration management",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")

from engagement.cli.config import config_show

config_app.command("show")(config_show)


# ==============================================================================
# Entry Point
# ==============================================================================


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
