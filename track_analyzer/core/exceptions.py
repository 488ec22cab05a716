"""
Exception classes for track-analyzer.

Every failure is classified at the point of detection and travels upward
as one of the exceptions below. The analysis failures carry a FailureKind
so callers can map each category to a distinct message and exit code
without string matching.

Exception Hierarchy:
    TrackAnalyzerError (base)
        ConfigError - Configuration file issues
        SessionStoreError - Persisted session cannot be read or written
        ExportError - Export file cannot be written
        AnalysisError - Classified failure of an analysis request
            InvalidLinkError - Input holds no recognizable track id
            AuthenticationRequiredError - Login flow must be completed
            SessionExpiredError - Credential rejected mid-flow
            AnalysisSupersededError - A newer request replaced this one
            UpstreamUnavailableError - Upstream call did not succeed
                UnauthorizedError - HTTP 401 from the provider
                UpstreamRejectedError - Any other non-success status
                TransportError - Network-level failure
"""

from enum import Enum


class FailureKind(str, Enum):
    """Discriminator for classified analysis failures."""

    INVALID_LINK = "invalid_link"
    AUTHENTICATION_REQUIRED = "authentication_required"
    SESSION_EXPIRED = "session_expired"
    SUPERSEDED = "superseded"
    UNAUTHORIZED = "unauthorized"
    UPSTREAM_REJECTED = "upstream_rejected"
    TRANSPORT = "transport"


class TrackAnalyzerError(Exception):
    """
    Base exception for all track-analyzer errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (track id,
                 HTTP status, endpoint...). Never holds full tokens.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(TrackAnalyzerError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that should stop program execution.

    Example:
        raise ConfigError(
            "'auth.client_id' must be a non-empty string",
            details={'field': 'auth.client_id'}
        )
    """
    pass


class SessionStoreError(TrackAnalyzerError):
    """
    Raised when the persisted session file cannot be read or written.

    A credential that cannot be made durable must not be adopted, so this
    error aborts the login that produced it.
    """
    pass


class ExportError(TrackAnalyzerError):
    """
    Raised when an export file cannot be written.

    Example:
        raise ExportError(
            "Cannot write export file",
            details={'path': str(path), 'original_error': str(e)}
        )
    """
    pass


class AnalysisError(TrackAnalyzerError):
    """
    Base class for classified analysis failures.

    Subclasses set `kind` and `user_message`. The user message is the
    category-level text shown to the user; `message` keeps the specific
    cause for logs.
    """

    kind: FailureKind
    user_message: str = "The analysis failed."


class InvalidLinkError(AnalysisError):
    """
    Raised when the input contains no recognizable track identifier.

    User-correctable; never retried.
    """

    kind = FailureKind.INVALID_LINK
    user_message = (
        "That doesn't look like a track link. Paste a track URL, "
        "a track URI or a 22-character track id."
    )


class AuthenticationRequiredError(AnalysisError):
    """
    Raised when there is no usable credential and the login flow must run.

    When raised by the orchestrator, details['authorization_url'] holds the
    consent URL produced by begin_login().
    """

    kind = FailureKind.AUTHENTICATION_REQUIRED
    user_message = "You need to log in before tracks can be analyzed."

    @property
    def authorization_url(self) -> str | None:
        return self.details.get("authorization_url")


class SessionExpiredError(AnalysisError):
    """
    Raised when the provider rejects the credential in the middle of a flow.

    The credential has already been cleared when this is raised; the caller
    must restart from login. No silent retry.
    """

    kind = FailureKind.SESSION_EXPIRED
    user_message = "Your session has expired. Log in again and retry."


class AnalysisSupersededError(AnalysisError):
    """Raised by an analysis whose result was discarded for a newer request."""

    kind = FailureKind.SUPERSEDED
    user_message = "This analysis was replaced by a newer request."


class UpstreamUnavailableError(AnalysisError):
    """
    Base class for failed upstream calls.

    Attributes:
        status: HTTP status code, or None for network-level failures.
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        status: int | None = None
    ) -> None:
        super().__init__(message, details)
        self.status = status


class UnauthorizedError(UpstreamUnavailableError):
    """
    Raised on HTTP 401: the credential is expired or invalid.

    The orchestrator converts this into SessionExpiredError after clearing
    the credential.
    """

    kind = FailureKind.UNAUTHORIZED
    user_message = "The provider rejected the access token."


class UpstreamRejectedError(UpstreamUnavailableError):
    """
    Raised on any non-auth, non-success response from the provider.

    Surfaced verbatim; not retried automatically.
    """

    kind = FailureKind.UPSTREAM_REJECTED
    user_message = "The music service refused the request."


class TransportError(UpstreamUnavailableError):
    """
    Raised when the request never produced an HTTP response.

    Timeouts, DNS failures, refused connections. Safe to retry manually.
    """

    kind = FailureKind.TRANSPORT
    user_message = "Could not reach the music service. Check your connection and try again."
