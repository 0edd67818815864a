"""API client for the Claude and Codex usage endpoints.

The raw fetch layer returns a RawUsageResponse for every HTTP answer,
including error statuses. ``fetch_normalized_usage`` turns a raw response
into parsed usage windows or a categorized error.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from quota_watch._version import __version__
from quota_watch.api.retry import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT,
    is_retryable_error,
    retry_request,
)
from quota_watch.config.audit import log_api_request
from quota_watch.errors import (
    AuthenticationMissingError,
    NonJSONResponseError,
    UnsupportedServiceError,
    categorize_http_error,
    categorize_network_error,
)
from quota_watch.usage.models import RawUsageResponse, UsageResult
from quota_watch.usage.parsers import PARSERS

# API endpoints
CLAUDE_USAGE_URL = "https://api.anthropic.com/api/oauth/usage"
CODEX_USAGE_URL = "https://chatgpt.com/backend-api/wham/usage"
ANTHROPIC_BETA_HEADER = "oauth-2025-04-20"

RawFetcher = Callable[[str, str], RawUsageResponse]


def _response_headers(headers: Any) -> dict[str, str]:
    if headers is None:
        return {}
    return {k.lower(): v for k, v in headers.items()}


def fetch_usage_raw(
    url: str,
    headers: dict[str, str],
    timeout: int = DEFAULT_TIMEOUT,
    max_retries: int = DEFAULT_MAX_RETRIES,
    on_retry: Callable[[int, Exception, float], None] | None = None,
) -> RawUsageResponse:
    """GET a usage endpoint and capture the response as is.

    HTTP error statuses are returned with ``ok=False``, not raised.
    Retryable statuses and connection failures are retried first.

    Args:
        url: Endpoint URL.
        headers: Request headers.
        timeout: Request timeout in seconds.
        max_retries: Maximum number of retry attempts.
        on_retry: Optional callback for retry events.

    Returns:
        RawUsageResponse for the final attempt.

    Raises:
        QuotaWatchError: Categorized network error if no response arrived.
    """
    req = Request(
        url,
        headers={"User-Agent": f"quota-watch/{__version__}", **headers},
    )
    endpoint = url.split("://", 1)[-1]
    retry_count = 0

    def make_request() -> RawUsageResponse:
        nonlocal retry_count
        try:
            with urlopen(req, timeout=timeout) as response:
                resp_headers = _response_headers(response.headers)
                return RawUsageResponse(
                    ok=True,
                    status=response.status,
                    content_type=resp_headers.get("content-type", ""),
                    body=response.read().decode("utf-8", errors="replace"),
                    headers=resp_headers,
                )
        except HTTPError as e:
            if is_retryable_error(e) and retry_count < max_retries:
                retry_count += 1
                raise
            resp_headers = _response_headers(e.headers)
            try:
                body = e.read().decode("utf-8", errors="replace")
            except OSError:
                body = ""
            return RawUsageResponse(
                ok=False,
                status=e.code,
                content_type=resp_headers.get("content-type", ""),
                body=body,
                headers=resp_headers,
            )
        except URLError as e:
            if is_retryable_error(e) and retry_count < max_retries:
                retry_count += 1
            raise

    try:
        raw = retry_request(make_request, max_retries=max_retries, on_retry=on_retry)
    except URLError as e:
        log_api_request(endpoint, success=False, error=str(e.reason), retry_count=retry_count)
        raise categorize_network_error(str(e.reason)) from e
    except (TimeoutError, OSError) as e:
        log_api_request(endpoint, success=False, error=str(e), retry_count=retry_count)
        raise categorize_network_error(str(e)) from e

    log_api_request(
        endpoint,
        success=raw.ok,
        status_code=raw.status,
        retry_count=retry_count,
    )
    return raw


def fetch_claude_usage_raw(token: str, timeout: int = DEFAULT_TIMEOUT) -> RawUsageResponse:
    """Raw response of the Claude OAuth usage endpoint."""
    return fetch_usage_raw(
        CLAUDE_USAGE_URL,
        {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            "anthropic-beta": ANTHROPIC_BETA_HEADER,
        },
        timeout=timeout,
    )


def fetch_codex_usage_raw(token: str, timeout: int = DEFAULT_TIMEOUT) -> RawUsageResponse:
    """Raw response of the ChatGPT "wham" usage endpoint."""
    return fetch_usage_raw(
        CODEX_USAGE_URL,
        {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        },
        timeout=timeout,
    )


RAW_FETCHERS = {
    "claude": fetch_claude_usage_raw,
    "codex": fetch_codex_usage_raw,
}


def safe_json_parse(body: str) -> Optional[Any]:
    """Decode a JSON body, or None if it is empty or not JSON."""
    if not body:
        return None
    try:
        return json.loads(body)
    except (json.JSONDecodeError, ValueError):
        return None


def fetch_normalized_usage(
    service: str,
    token: str,
    fetch_raw: Optional[RawFetcher] = None,
) -> UsageResult:
    """Fetch one account's usage and normalize it into windows.

    Args:
        service: "claude" or "codex".
        token: Bearer token for the account.
        fetch_raw: Optional raw fetcher ``(service, token) -> RawUsageResponse``.
            Defaults to the urllib client for the service.

    Returns:
        UsageResult with the decoded body and the parsed windows.

    Raises:
        UnsupportedServiceError: If service is unknown. Checked before anything else.
        AuthenticationMissingError: If the token is empty.
        APIError: Categorized upstream error for non-2xx responses.
        NonJSONResponseError: If a successful response is not JSON.
    """
    if service not in PARSERS:
        raise UnsupportedServiceError(service)
    if not token or not token.strip():
        raise AuthenticationMissingError()

    if fetch_raw is None:
        raw = RAW_FETCHERS[service](token.strip())
    else:
        raw = fetch_raw(service, token.strip())

    if not raw.ok:
        raise categorize_http_error(raw.status, raw.content_type, raw.body)

    parsed = safe_json_parse(raw.body)
    if parsed is None:
        raise NonJSONResponseError(status_code=raw.status, details=raw.body[:500] or None)

    return UsageResult(raw=parsed, windows=PARSERS[service](parsed))


__all__ = [
    "CLAUDE_USAGE_URL",
    "CODEX_USAGE_URL",
    "ANTHROPIC_BETA_HEADER",
    "fetch_usage_raw",
    "fetch_claude_usage_raw",
    "fetch_codex_usage_raw",
    "RAW_FETCHERS",
    "safe_json_parse",
    "fetch_normalized_usage",
]
