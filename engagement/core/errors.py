# ==============================================================================
# Error Taxonomy
# ==============================================================================
"""
Exceptions raised by the engagement pipeline.

Every per-connection failure is an EngagementError subclass so the sweep can
catch, count and log it at the connection boundary without aborting the
remaining connections.
"""


class EngagementError(Exception):
    """Base class for all pipeline errors."""


class UpstreamError(EngagementError):
    """Event source or streaming API unreachable, rate-limited or timed out."""


class AuthError(EngagementError):
    """Expired or revoked listener credential; refresh failed."""


class PersistenceError(EngagementError):
    """A write to the play, session or aggregate store failed."""


class InternalInvariantError(EngagementError):
    """A logic defect, e.g. building a session from an empty play group."""


class UnauthorizedError(EngagementError):
    """The sweep trigger did not present a valid shared secret."""
