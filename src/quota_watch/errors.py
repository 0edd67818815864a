"""Error types for quota-watch.

Every error carries a process exit code and a suggestion the CLI prints
below it. Messages never carry upstream response bodies; those go to
``details``.
"""

from __future__ import annotations

from enum import IntEnum
from typing import ClassVar


class ExitCode(IntEnum):
    """Process exit codes, grouped by tens: usage 1-9, auth 10-19, network
    20-29, upstream API 30-39, local system 40-49.
    """

    SUCCESS = 0

    USAGE_ERROR = 1
    CONFIG_ERROR = 2
    SETUP_REQUIRED = 3
    INVALID_ARGUMENT = 4

    AUTH_EXPIRED = 10
    AUTH_MISSING = 12
    AUTH_PERMISSION = 13

    NETWORK_OFFLINE = 20
    NETWORK_TIMEOUT = 21
    NETWORK_DNS = 22
    NETWORK_PROXY = 23

    API_ERROR = 30
    API_RATE_LIMIT = 31
    API_SERVER_ERROR = 32
    API_BLOCKED = 33
    API_BAD_RESPONSE = 34

    FILE_NOT_FOUND = 40
    FILE_PERMISSION = 41
    SYSTEM_ERROR = 49


class QuotaWatchError(Exception):
    """Base for every error the CLI reports.

    Subclasses set ``code`` and a default ``suggestion``; an instance may
    override the suggestion. ``details`` holds context shown only with
    --verbose.
    """

    code: ClassVar[ExitCode] = ExitCode.USAGE_ERROR
    suggestion: ClassVar[str] = ""

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        details: str | None = None,
    ):
        self.message = message
        self._suggestion = suggestion
        self.details = details
        super().__init__(message)

    def get_suggestion(self) -> str:
        return self._suggestion or self.suggestion

    def format_full(self) -> str:
        """Message, details and suggestion, one per line."""
        parts = [f"Error: {self.message}"]
        if self.details:
            parts.append(f"Details: {self.details}")
        suggestion = self.get_suggestion()
        if suggestion:
            parts.append(f"Suggestion: {suggestion}")
        return "\n".join(parts)


# Authentication Errors


class AuthenticationMissingError(QuotaWatchError):
    """No usable token for an account."""

    code = ExitCode.AUTH_MISSING
    suggestion = (
        "Store a token with 'quota-watch --set-token SERVICE:ID' or import one "
        "with 'quota-watch --import-cli-token SERVICE'."
    )

    def __init__(self, message: str = "Token is required", **kwargs):
        super().__init__(message, **kwargs)


class UnsupportedServiceError(QuotaWatchError, ValueError):
    """Service name is neither claude nor codex."""

    code = ExitCode.INVALID_ARGUMENT
    suggestion = "Supported services are 'claude' and 'codex'."

    def __init__(self, service: str = ""):
        self.service = service
        message = f"Unsupported service: {service}" if service else "Unsupported service"
        super().__init__(message)


# Upstream HTTP Errors


class APIError(QuotaWatchError):
    """Upstream request failed with an HTTP error status."""

    code = ExitCode.API_ERROR
    suggestion = "Try again later. If the problem persists, check the vendor's status page."

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        suggestion: str | None = None,
        details: str | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, suggestion=suggestion, details=details)


class BadRequestError(APIError):
    """Upstream rejected the request (400)."""


class AuthenticationFailedError(APIError):
    """Token was rejected (401)."""

    code = ExitCode.AUTH_EXPIRED
    suggestion = (
        "The token may have expired. Log in again with the vendor CLI and "
        "re-import it, or store a fresh token with --set-token."
    )


class PermissionDeniedError(APIError):
    """Upstream denied access (403)."""

    code = ExitCode.AUTH_PERMISSION
    suggestion = "Ensure the token belongs to an account with usage access."


class UpstreamBlockedError(APIError):
    """An edge proxy answered with an HTML block page instead of the API."""

    code = ExitCode.API_BLOCKED
    suggestion = (
        "The request was blocked before reaching the API. "
        "Try again later or from a different network."
    )


class EndpointNotFoundError(APIError):
    """Usage endpoint does not exist (404)."""

    suggestion = "The vendor may have moved the usage endpoint. Check for a quota-watch update."


class RateLimitError(APIError):
    """Upstream rate limit exceeded (429)."""

    code = ExitCode.API_RATE_LIMIT
    suggestion = "Wait a few minutes, or raise poll_interval with --config set poll_interval 300."


class ServerError(APIError):
    """Upstream server error (5xx)."""

    code = ExitCode.API_SERVER_ERROR
    suggestion = "The vendor API is having issues. Try again later."


class NonJSONResponseError(APIError):
    """A successful response whose body is not JSON."""

    code = ExitCode.API_BAD_RESPONSE
    suggestion = "The endpoint returned an unexpected page. Try again later."

    def __init__(self, message: str = "Upstream returned non-JSON response", **kwargs):
        super().__init__(message, **kwargs)


# Network Errors


class NetworkOfflineError(QuotaWatchError):
    """No connection could be made."""

    code = ExitCode.NETWORK_OFFLINE
    suggestion = "Check your internet connection and try again."


class NetworkTimeoutError(QuotaWatchError):
    """Upstream did not answer in time."""

    code = ExitCode.NETWORK_TIMEOUT
    suggestion = "The request timed out. Try again, or increase timeout with --timeout flag."


class NetworkDNSError(QuotaWatchError):
    """Vendor hostname did not resolve."""

    code = ExitCode.NETWORK_DNS
    suggestion = "DNS lookup failed. Check your network configuration."


class NetworkProxyError(QuotaWatchError):
    """HTTP(S) proxy refused or failed the tunnel."""

    code = ExitCode.NETWORK_PROXY
    suggestion = (
        "Proxy connection failed. Check your proxy settings "
        "(HTTP_PROXY, HTTPS_PROXY environment variables)."
    )


# Config Errors


class ConfigError(QuotaWatchError):
    """Config file could not be read or written."""

    code = ExitCode.CONFIG_ERROR
    suggestion = "Run 'quota-watch --config reset' to reset configuration to defaults."


class SetupRequiredError(QuotaWatchError):
    """No accounts have been configured yet."""

    code = ExitCode.SETUP_REQUIRED
    suggestion = "Add an account with 'quota-watch --add-account claude NAME'."


# Status -> (error class, message); 5xx and unlisted codes are handled below
_HTTP_ERRORS: dict[int, tuple[type[APIError], str]] = {
    400: (BadRequestError, "Upstream rejected request (HTTP 400)"),
    401: (AuthenticationFailedError, "Authentication failed (HTTP 401)"),
    403: (PermissionDeniedError, "Permission denied by upstream (HTTP 403)"),
    404: (EndpointNotFoundError, "Upstream endpoint not found (HTTP 404)"),
    429: (RateLimitError, "Upstream rate limit exceeded (HTTP 429)"),
}

# Checked in order; the first matching fragment decides
_NETWORK_ERRORS: tuple[tuple[tuple[str, ...], type[QuotaWatchError], str], ...] = (
    (("timed out", "timeout"), NetworkTimeoutError, "Connection timed out"),
    (("name or service not known", "getaddrinfo"), NetworkDNSError, "DNS resolution failed"),
    (("proxy", "tunnel"), NetworkProxyError, "Proxy error"),
    (("connection refused", "no route"), NetworkOfflineError, "Connection failed"),
)

_BUILTIN_EXIT_CODES: tuple[tuple[type[Exception], ExitCode], ...] = (
    (FileNotFoundError, ExitCode.FILE_NOT_FOUND),
    (PermissionError, ExitCode.FILE_PERMISSION),
    (ValueError, ExitCode.INVALID_ARGUMENT),
)


def categorize_http_error(
    status_code: int,
    content_type: str = "",
    body: str | None = None,
) -> APIError:
    """Map a failed upstream response to an APIError subclass.

    A 403 served as HTML is an edge block page rather than an API answer.
    The body is kept on ``details`` and never reaches the message.
    """
    details = body or None

    if status_code == 403 and "text/html" in (content_type or "").lower():
        return UpstreamBlockedError(
            "Upstream blocked request (OpenAI edge / Cloudflare)", status_code, details=details
        )
    if status_code in _HTTP_ERRORS:
        error_class, message = _HTTP_ERRORS[status_code]
        return error_class(message, status_code, details=details)
    if status_code >= 500:
        return ServerError(f"Upstream server error (HTTP {status_code})", status_code, details=details)
    return APIError(f"Upstream request failed (HTTP {status_code})", status_code, details=details)


def categorize_network_error(error_reason: str) -> QuotaWatchError:
    """Map a URLError reason to a network error. Unrecognized reasons mean offline."""
    reason = error_reason.lower()
    for fragments, error_class, label in _NETWORK_ERRORS:
        if any(fragment in reason for fragment in fragments):
            return error_class(f"{label}: {error_reason}")
    return NetworkOfflineError(f"Network error: {error_reason}")


def format_error_for_user(error: Exception, verbose: bool = False) -> str:
    """One-line error text, or the full text with details and suggestion when verbose."""
    if not isinstance(error, QuotaWatchError):
        return f"Error: {error}"
    return error.format_full() if verbose else f"Error: {error.message}"


def get_exit_code(error: Exception) -> int:
    """Process exit code for ``error``. Unexpected exceptions give SYSTEM_ERROR."""
    if isinstance(error, QuotaWatchError):
        return error.code
    for error_class, code in _BUILTIN_EXIT_CODES:
        if isinstance(error, error_class):
            return code
    return ExitCode.SYSTEM_ERROR


__all__ = [
    "ExitCode",
    "QuotaWatchError",
    # Authentication / input errors
    "AuthenticationMissingError",
    "UnsupportedServiceError",
    # Upstream errors
    "APIError",
    "BadRequestError",
    "AuthenticationFailedError",
    "PermissionDeniedError",
    "UpstreamBlockedError",
    "EndpointNotFoundError",
    "RateLimitError",
    "ServerError",
    "NonJSONResponseError",
    # Network errors
    "NetworkOfflineError",
    "NetworkTimeoutError",
    "NetworkDNSError",
    "NetworkProxyError",
    # Config errors
    "ConfigError",
    "SetupRequiredError",
    "categorize_http_error",
    "categorize_network_error",
    "format_error_for_user",
    "get_exit_code",
]
