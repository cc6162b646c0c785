# ==============================================================================
# Spotify API Client
# ==============================================================================
"""
Spotify Web API adapters for the sweep.

Provides:
- SpotifyEventSource: Recently played tracks for a listener
- SpotifyCredentialProvider: Stored access token, refreshed when expired

Upstream calls are not retried here. A failed connection is logged and
skipped, and the next scheduled sweep picks it up again.

Sweep workers share one adapter instance, so each thread gets its own
requests.Session.

API Documentation: https://developer.spotify.com/documentation/web-api
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Protocol

import requests

from engagement.base.sources import CredentialProvider, EventSource
from engagement.core.errors import AuthError, UpstreamError
from engagement.core.models import AccessToken, Connection, RawPlay
from engagement.utils.config import SpotifySettings, get_settings

logger = logging.getLogger(__name__)

# Refresh slightly before the stored expiry so a token cannot lapse mid-fetch
EXPIRY_MARGIN = timedelta(seconds=60)


class TokenStore(Protocol):
    """Persistence for OAuth tokens (see PostgreSQLTokenStore)."""

    def get(self, connection_id: str) -> Optional[dict[str, Any]]: ...

    def save_access_token(self, connection_id: str, token: AccessToken) -> None: ...


class ThreadSessions:
    """One requests.Session per thread, or a single injected session."""

    def __init__(self, session: requests.Session | None = None):
        self._injected = session
        self._local = threading.local()

    def get(self) -> requests.Session:
        if self._injected is not None:
            return self._injected
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session


def _request(
    session: requests.Session, method: str, url: str, timeout: float, **kwargs
) -> requests.Response:
    """
    Perform an HTTP request, translating transport failures.

    Raises:
        UpstreamError: On timeout or connection failure
    """
    try:
        return session.request(method, url, timeout=timeout, **kwargs)
    except requests.exceptions.Timeout as e:
        raise UpstreamError(f"Timed out after {timeout}s: {url}") from e
    except requests.exceptions.ConnectionError as e:
        raise UpstreamError(f"Cannot connect to {url}") from e
    except requests.exceptions.RequestException as e:
        raise UpstreamError(f"Request failed: {e}") from e


# ==============================================================================
# Recently Played
# ==============================================================================


class SpotifyEventSource(EventSource):
    """Fetches /me/player/recently-played for a listener."""

    def __init__(
        self,
        settings: SpotifySettings | None = None,
        session: requests.Session | None = None,
    ):
        self._settings = settings or get_settings().spotify
        self._sessions = ThreadSessions(session)

    def fetch_recent_plays(self, connection: Connection, token: AccessToken) -> list[RawPlay]:
        url = f"{self._settings.api_base}/me/player/recently-played"
        response = _request(
            self._sessions.get(),
            "GET",
            url,
            self._settings.request_timeout_seconds,
            params={"limit": self._settings.recently_played_limit},
            headers={"Authorization": f"Bearer {token.access_token}"},
        )

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After", "?")
            raise UpstreamError(f"Rate limited (retry after {retry_after}s)")
        if response.status_code == 401:
            raise UpstreamError("Access token rejected by recently-played endpoint")
        if response.status_code >= 400:
            raise UpstreamError(f"Recently-played returned HTTP {response.status_code}")

        try:
            items = response.json().get("items", [])
        except ValueError as e:
            raise UpstreamError("Recently-played returned invalid JSON") from e

        plays = []
        for item in items:
            track = item.get("track") or {}
            if not track.get("id") or not item.get("played_at"):
                # Local files and podcast episodes have no track id
                continue
            plays.append(
                RawPlay(
                    track_id=track["id"],
                    played_at=item["played_at"],
                    duration_ms=max(track.get("duration_ms") or 0, 0),
                )
            )

        logger.debug("Fetched %d recent plays for connection %s", len(plays), connection.id)
        return plays


# ==============================================================================
# Token Refresh
# ==============================================================================


class SpotifyCredentialProvider(CredentialProvider):
    """Returns the stored access token, refreshing it when it has expired."""

    def __init__(
        self,
        token_store: TokenStore,
        settings: SpotifySettings | None = None,
        session: requests.Session | None = None,
        clock=None,
    ):
        """
        Initialize the provider.

        Args:
            token_store: Reads and updates stored tokens
            settings: Spotify settings. If None, uses get_settings().spotify.
            session: HTTP session shared by all threads (injectable for tests);
                when None each thread opens its own
            clock: Callable returning the current UTC instant
        """
        self._tokens = token_store
        self._settings = settings or get_settings().spotify
        self._sessions = ThreadSessions(session)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def refresh_token(self, connection: Connection) -> AccessToken:
        stored = self._tokens.get(connection.id)
        if stored is None:
            raise AuthError(f"No stored credential for connection {connection.id}")

        current = AccessToken(
            access_token=stored["access_token"], expires_at=stored["expires_at"]
        )
        if current.expires_at - EXPIRY_MARGIN > self._clock():
            return current

        logger.debug("Refreshing access token for connection %s", connection.id)
        token = self._refresh(stored["refresh_token"])
        self._tokens.save_access_token(connection.id, token)
        return token

    def _refresh(self, refresh_token: str) -> AccessToken:
        url = f"{self._settings.accounts_base}/api/token"
        response = _request(
            self._sessions.get(),
            "POST",
            url,
            self._settings.request_timeout_seconds,
            data={"grant_type": "refresh_token", "refresh_token": refresh_token},
            auth=(self._settings.client_id, self._settings.client_secret),
        )

        if response.status_code in (400, 401):
            raise AuthError(f"Token refresh rejected (HTTP {response.status_code})")
        if response.status_code >= 400:
            raise UpstreamError(f"Token endpoint returned HTTP {response.status_code}")

        try:
            payload = response.json()
            return AccessToken(
                access_token=payload["access_token"],
                expires_at=self._clock() + timedelta(seconds=int(payload["expires_in"])),
            )
        except (ValueError, KeyError) as e:
            raise UpstreamError("Token endpoint returned an unexpected payload") from e
