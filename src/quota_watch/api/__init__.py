"""Upstream API access.

Modules:
    client: Raw usage fetch for Claude and Codex, and normalization
    retry: Exponential backoff for transient failures
"""

from quota_watch.api.client import (
    CLAUDE_USAGE_URL,
    CODEX_USAGE_URL,
    fetch_claude_usage_raw,
    fetch_codex_usage_raw,
    fetch_normalized_usage,
    fetch_usage_raw,
    safe_json_parse,
)

__all__ = [
    "CLAUDE_USAGE_URL",
    "CODEX_USAGE_URL",
    "fetch_usage_raw",
    "fetch_claude_usage_raw",
    "fetch_codex_usage_raw",
    "safe_json_parse",
    "fetch_normalized_usage",
]
