# ==============================================================================
# Config Commands
# ==============================================================================
"""
Configuration commands for the engagement pipeline CLI.
"""

from engagement.cli.shared import C, JsonOutput, print_json
from engagement.utils.config import get_settings


def _mask(secret: str | None) -> str:
    if not secret:
        return "(not set)"
    return "*" * 8


def config_show(json_output: JsonOutput = False) -> None:
    """Display current configuration (includes secrets in JSON mode)."""
    settings = get_settings()

    if json_output:
        print_json(
            {
                "postgresql": {
                    "host": settings.postgres.host,
                    "port": settings.postgres.port,
                    "database": settings.postgres.database,
                    "schema": settings.postgres.schema_name,
                    "user": settings.postgres.user,
                    "password": settings.postgres.password,
                    "sslmode": settings.postgres.sslmode,
                },
                "valkey": {
                    "host": settings.valkey.host,
                    "port": settings.valkey.port,
                    "ssl_enabled": settings.valkey.ssl,
                    "password": settings.valkey.password,
                },
                "spotify": {
                    "client_id": settings.spotify.client_id,
                    "client_secret": settings.spotify.client_secret,
                    "api_base": settings.spotify.api_base,
                    "accounts_base": settings.spotify.accounts_base,
                    "request_timeout_seconds": settings.spotify.request_timeout_seconds,
                    "recently_played_limit": settings.spotify.recently_played_limit,
                },
                "engagement": settings.engagement.model_dump(),
                "sweep": {
                    "cron_key": settings.sweep.cron_key,
                    "workers": settings.sweep.workers,
                    "history_ttl_hours": settings.sweep.history_ttl_hours,
                },
            }
        )
        return

    domain = settings.engagement
    print()
    print(f"{C.BOLD}Configuration{C.RESET}")
    print()

    print(f"{C.CYAN}PostgreSQL{C.RESET}")
    print(f"  Host:       {C.WHITE}{settings.postgres.host}{C.RESET}")
    print(f"  Port:       {C.WHITE}{settings.postgres.port}{C.RESET}")
    print(f"  Database:   {C.WHITE}{settings.postgres.database}{C.RESET}")
    print(f"  Schema:     {C.WHITE}{settings.postgres.schema_name}{C.RESET}")
    print(f"  User:       {C.WHITE}{settings.postgres.user}{C.RESET}")
    print(f"  SSL:        {C.WHITE}{settings.postgres.sslmode}{C.RESET}")
    print()

    print(f"{C.CYAN}Valkey{C.RESET}")
    print(f"  Host:       {C.WHITE}{settings.valkey.host}{C.RESET}")
    print(f"  Port:       {C.WHITE}{settings.valkey.port}{C.RESET}")
    valkey_ssl = "enabled" if settings.valkey.ssl else "disabled"
    print(f"  SSL:        {C.WHITE}{valkey_ssl}{C.RESET}")
    print()

    print(f"{C.CYAN}Spotify{C.RESET}")
    print(f"  Client ID:  {C.WHITE}{settings.spotify.client_id or '(not set)'}{C.RESET}")
    print(f"  Secret:     {C.WHITE}{_mask(settings.spotify.client_secret)}{C.RESET}")
    print(f"  Timeout:    {C.WHITE}{settings.spotify.request_timeout_seconds}s{C.RESET}")
    print()

    print(f"{C.CYAN}Engagement{C.RESET}")
    print(f"  Timezone:   {C.WHITE}{domain.timezone}{C.RESET}")
    print(f"  Session gap:{C.WHITE} {domain.session_gap_minutes} minutes{C.RESET}")
    print(f"  Super:      {C.WHITE}{domain.super_listener_threshold} tracks{C.RESET}")
    print(f"  Dedup:      {C.WHITE}±{domain.dedup_tolerance_minutes} minutes{C.RESET}")
    print(f"  Retention:  {C.WHITE}{domain.retention_days} days{C.RESET}")
    print()

    print(f"{C.CYAN}Sweep{C.RESET}")
    print(f"  Cron key:   {C.WHITE}{_mask(settings.sweep.cron_key)}{C.RESET}")
    print(f"  Workers:    {C.WHITE}{settings.sweep.workers}{C.RESET}")
    print(f"  History:    {C.WHITE}{settings.sweep.history_ttl_hours} hours{C.RESET}")
    print()
