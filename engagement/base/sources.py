# ==============================================================================
# Upstream Source Abstract Base Classes
# ==============================================================================
"""
Interfaces to the streaming service the sweep reads from.

Implementations are constructed by the caller and passed in, so tests can
substitute fakes without any process-wide client.
"""

from abc import ABC, abstractmethod

from engagement.core.models import AccessToken, Connection, RawPlay


class CredentialProvider(ABC):
    """Supplies a usable access token for a connection's listener."""

    @abstractmethod
    def refresh_token(self, connection: Connection) -> AccessToken:
        """
        Return a valid token, refreshing the stored one if it has expired.

        Raises:
            AuthError: If the refresh token is invalid or revoked
            UpstreamError: If the token endpoint is unreachable or times out
        """
        ...


class EventSource(ABC):
    """Reports a listener's recently played tracks."""

    @abstractmethod
    def fetch_recent_plays(self, connection: Connection, token: AccessToken) -> list[RawPlay]:
        """
        Fetch recent plays, most recent first.

        Returns:
            Possibly empty list of plays

        Raises:
            UpstreamError: On transport, rate-limit, timeout or auth failure
        """
        ...
