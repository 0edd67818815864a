"""
Pytest fixtures for quota-watch tests.

Test imports use the src/quota_watch/ package via --import-mode=importlib (see pyproject.toml).
"""

import copy
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from quota_watch.config import audit as audit_module
from quota_watch.usage.models import Account, NotifySettings, Severity, UsageWindow, UsageResult
from quota_watch.usage.parsers import FIVE_HOURS, SEVEN_DAYS


# ═══════════════════════════════════════════════════════════════════════════════
# Path Constants
# ═══════════════════════════════════════════════════════════════════════════════

PROJECT_ROOT = Path(__file__).parent.parent
SRC_DIR = PROJECT_ROOT / "src"

# Load fixtures data
FIXTURES_DIR = Path(__file__).parent / "fixtures"
with open(FIXTURES_DIR / "api_responses.json") as f:
    FIXTURES = json.load(f)

# Fixed reference time for everything that formats relative times
NOW = datetime(2026, 2, 13, 3, 30, tzinfo=timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════════
# API Response Fixtures
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def fixtures():
    """Deep copy of every canned response."""
    return copy.deepcopy(FIXTURES)


@pytest.fixture
def claude_normal():
    """Claude response with 5-hour, 7-day and one unknown bucket."""
    return copy.deepcopy(FIXTURES["claude_normal"])


@pytest.fixture
def codex_wham():
    """Current Codex response with primary and secondary windows."""
    return copy.deepcopy(FIXTURES["codex_wham"])


# ═══════════════════════════════════════════════════════════════════════════════
# Model Fixtures
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def now():
    """Fixed aware 'now' (2026-02-13 03:30 UTC)."""
    return NOW


@pytest.fixture
def settings():
    """Default notification settings: warning 75, critical 90."""
    return NotifySettings(critical=True, recovery=True, warning=True)


@pytest.fixture
def critical_windows():
    """A critical 5-hour window resetting in 2h30m plus an ok 7-day window."""
    return [
        UsageWindow(
            name="5-hour",
            utilization=95,
            resets_at=(NOW + timedelta(hours=2, minutes=30)).isoformat(),
            window_seconds=FIVE_HOURS,
            status=Severity.CRITICAL,
        ),
        UsageWindow(
            name="7-day",
            utilization=40,
            resets_at=(NOW + timedelta(days=3, hours=4)).isoformat(),
            window_seconds=SEVEN_DAYS,
            status=Severity.OK,
        ),
    ]


@pytest.fixture
def make_account():
    """Factory for accounts."""

    def _make(service="claude", account_id="work", name="Work", has_token=True):
        return Account(service=service, id=account_id, name=name, has_token=has_token)

    return _make


@pytest.fixture
def make_result():
    """Factory for a successful UsageResult with the given utilizations."""

    def _make(*utilizations, window_seconds=FIVE_HOURS):
        windows = [
            UsageWindow(name=f"w{i}", utilization=u, window_seconds=window_seconds)
            for i, u in enumerate(utilizations)
        ]
        return UsageResult(raw={"utilizations": list(utilizations)}, windows=windows)

    return _make


# ═══════════════════════════════════════════════════════════════════════════════
# Environment Fixtures
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def temp_config_dir(tmp_path, monkeypatch):
    """Point the config file and token store at a temporary directory."""
    config_dir = tmp_path / "quota-watch"
    config_dir.mkdir()
    monkeypatch.setenv("QUOTA_WATCH_CONFIG", str(config_dir / "config.json"))
    monkeypatch.setenv("QUOTA_WATCH_TOKENS", str(config_dir / "tokens.json"))
    return config_dir


@pytest.fixture(autouse=True)
def audit_disabled():
    """Keep audit logging off and reset between tests."""
    audit_module.disable_audit_logging()
    yield
    audit_module.disable_audit_logging()
