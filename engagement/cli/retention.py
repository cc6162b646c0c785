# ==============================================================================
# Retention Commands
# ==============================================================================
"""
Retention window maintenance for the engagement pipeline CLI.
"""

import typer

from engagement.cli.shared import C, I, JsonOutput, TriggerKey, fail, open_store, print_json
from engagement.core.errors import UnauthorizedError
from engagement.pipeline.retention_sweep import deactivate_expired_connections
from engagement.pipeline.sweep import authorize_trigger
from engagement.utils.config import get_settings


def retention_sweep(
    key: TriggerKey = None,
    json_output: JsonOutput = False,
) -> None:
    """Mark connections inactive once they pass the retention window.

    Examples:
        engagement retention sweep --key $SWEEP_CRON_KEY
    """
    settings = get_settings()
    try:
        authorize_trigger(key, settings.sweep.cron_key)
    except UnauthorizedError:
        if json_output:
            print_json({"error": "Unauthorized"})
            raise typer.Exit(1)
        fail("Unauthorized")

    with open_store() as store:
        result = deactivate_expired_connections(
            store, retention_days=settings.engagement.retention_days
        )

    if json_output:
        print_json({"success": True, **result.model_dump(mode="json")})
        return

    print(
        f"{C.BRIGHT_GREEN}{I.CHECK} Marked {C.WHITE}{result.processed}{C.BRIGHT_GREEN} "
        f"connections inactive{C.RESET} "
        f"{C.DIM}(joined before {result.cutoff:%Y-%m-%d %H:%M} UTC){C.RESET}"
    )
