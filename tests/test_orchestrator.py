"""
Tests for the polling orchestrator: history, activity log, poll cycles,
reclassification, countdown and the poll loop.
"""

import json
import threading
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from quota_watch.errors import (
    AuthenticationFailedError,
    NonJSONResponseError,
    UnsupportedServiceError,
)
from quota_watch.poller.orchestrator import (
    ActivityLog,
    AppState,
    UsageHistory,
    compute_polling_state,
    ordered_accounts,
    poll_account,
    poll_all,
    reclassify_all,
    run_poll_loop,
)
from quota_watch.usage.models import STATUS_ERROR, NotifySettings, Severity, UsageResult
from quota_watch.usage.parsers import parse_claude_usage, parse_codex_usage


def fixed_clock(now):
    return lambda: now


def scripted_fetch(results):
    """Fetcher returning (or raising) per-service results from a dict of lists."""
    calls = []

    def _fetch(service, token):
        calls.append((service, token))
        outcome = results[service].pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    _fetch.calls = calls
    return _fetch


# ═══════════════════════════════════════════════════════════════════════════════
# History and Log
# ═══════════════════════════════════════════════════════════════════════════════


class TestUsageHistory:
    """Tests for UsageHistory."""

    def test_appends(self):
        history = UsageHistory()
        for value in (10, 12, 15):
            history.record("claude:work:5-hour", value)
        assert history.get("claude:work:5-hour") == [10, 12, 15]

    def test_capped_at_ten_points(self):
        history = UsageHistory()
        for value in range(15):
            history.record("k", value)
        assert history.get("k") == list(range(5, 15))

    def test_sharp_drop_resets(self):
        """A drop of more than 5 points means the window reset."""
        history = UsageHistory()
        for value in (40, 50, 60):
            history.record("k", value)

        history.record("k", 3)

        assert history.get("k") == [3]

    def test_small_drop_kept(self):
        history = UsageHistory()
        history.record("k", 60)
        history.record("k", 55)
        assert history.get("k") == [60, 55]

    def test_get_returns_copy(self):
        history = UsageHistory()
        history.record("k", 1)
        history.get("k").append(99)
        assert history.get("k") == [1]

    def test_unknown_key(self):
        assert UsageHistory().get("missing") == []


class TestActivityLog:
    """Tests for ActivityLog."""

    def test_newest_first(self, now):
        logs = ActivityLog()
        logs.add("first", now=now)
        logs.add("second", level="warn", now=now + timedelta(seconds=1))

        assert [e.message for e in logs] == ["second", "first"]
        assert logs.entries[0].level == "warn"

    def test_capped(self):
        logs = ActivityLog(max_entries=200)
        for i in range(250):
            logs.add(f"entry {i}")

        assert len(logs) == 200
        assert logs.entries[0].message == "entry 249"
        assert logs.entries[-1].message == "entry 50"


# ═══════════════════════════════════════════════════════════════════════════════
# Poll Cycle
# ═══════════════════════════════════════════════════════════════════════════════


class TestPollAccount:
    """Tests for poll_account."""

    def test_success(self, make_account, make_result, now):
        state = AppState()
        account = make_account()

        result = poll_account(state, account, lambda s, t: make_result(42, 80), "tok", now)

        assert result.status == Severity.WARNING
        assert result.label == "Claude Code: Work"
        assert state.raw_responses["claude:work"] == {"utilizations": [42, 80]}
        assert state.history.get("claude:work:w0") == [42]
        assert state.logs.entries[0].message == "Claude Code: Work fetched: w0=42%, w1=80%"

    @pytest.mark.parametrize(
        "error,message",
        [
            (AuthenticationFailedError("Authentication failed (HTTP 401)", 401), "Authentication failed (HTTP 401)"),
            (NonJSONResponseError(), "Upstream returned non-JSON response"),
            (OSError("disk"), "disk"),
            (RuntimeError("boom"), "boom"),
        ],
    )
    def test_failure_becomes_error_state(self, make_account, now, error, message):
        state = AppState()

        def failing(service, token):
            raise error

        result = poll_account(state, make_account(), failing, "tok", now)

        assert result.status == STATUS_ERROR
        assert result.windows == []
        assert result.error == message
        assert state.logs.entries[0].level == "warn"
        assert state.logs.entries[0].message == f"Claude Code: Work error: {message}"

    def test_unsupported_service_propagates(self, make_account, now):
        def failing(service, token):
            raise UnsupportedServiceError(service)

        with pytest.raises(UnsupportedServiceError):
            poll_account(AppState(), make_account(), failing, "tok", now)


class TestPollAll:
    """Tests for poll_all."""

    def test_order_and_token_skip(self, make_account, make_result, now):
        accounts = [
            make_account("codex", "c1", "Codex One"),
            make_account("claude", "a1", "Work"),
            make_account("claude", "a2", "Personal"),
        ]
        state = AppState(accounts=accounts)
        tokens = {"claude:a1": "tok-a1", "codex:c1": "tok-c1"}
        fetch = scripted_fetch({"claude": [make_result(10)], "codex": [make_result(20)]})

        assert poll_all(state, fetch, lambda a: tokens.get(a.key), now_func=fixed_clock(now)) is True

        assert fetch.calls == [("claude", "tok-a1"), ("codex", "tok-c1")]
        assert list(state.services) == ["claude:a1", "codex:c1"]
        assert [a.has_token for a in accounts] == [True, True, False]
        assert state.last_fetched_at == now

    def test_failure_isolated(self, make_account, make_result, now):
        """One account failing does not stop the others."""
        accounts = [make_account("claude", "a1"), make_account("codex", "c1")]
        state = AppState(accounts=accounts)
        fetch = scripted_fetch(
            {"claude": [AuthenticationFailedError("Authentication failed (HTTP 401)", 401)], "codex": [make_result(5)]}
        )

        assert poll_all(state, fetch, lambda a: "tok", now_func=fixed_clock(now)) is True

        assert state.services["claude:a1"].status == STATUS_ERROR
        assert state.services["codex:c1"].status == Severity.OK

    def test_unexpected_error_isolated(self, make_account, make_result, now):
        """An exception outside the error hierarchy only fails its own account."""
        accounts = [make_account("claude", "a1"), make_account("codex", "c1")]
        state = AppState(accounts=accounts)
        fetch = scripted_fetch({"claude": [RuntimeError("boom")], "codex": [make_result(5)]})

        assert poll_all(state, fetch, lambda a: "tok", now_func=fixed_clock(now)) is True

        assert state.services["claude:a1"].status == STATUS_ERROR
        assert state.services["claude:a1"].error == "boom"
        assert state.services["codex:c1"].status == Severity.OK

    @pytest.mark.parametrize(
        "service,body",
        [
            ("codex", {"rate_limit": {"primary_window": {"used": 1e308, "limit": 1e-10}}}),
            ("claude", {"five_hour": {"utilization": 10**400}}),
        ],
    )
    def test_overflowing_payload_isolated(self, make_account, make_result, now, service, body):
        """Numbers that overflow a float neither abort the cycle nor skip siblings."""
        parsers = {"claude": parse_claude_usage, "codex": parse_codex_usage}
        sibling = "codex" if service == "claude" else "claude"
        accounts = [make_account(service, "odd"), make_account(sibling, "ok")]
        state = AppState(accounts=accounts)

        def fetch(svc, token):
            if svc == service:
                return UsageResult(raw=body, windows=parsers[svc](body))
            return make_result(5)

        assert poll_all(state, fetch, lambda a: "tok", now_func=fixed_clock(now)) is True

        assert state.services[f"{service}:odd"].status == Severity.OK
        assert state.services[f"{sibling}:ok"].status == Severity.OK

    def test_all_failed(self, make_account, now):
        state = AppState(accounts=[make_account()])
        fetch = scripted_fetch({"claude": [NonJSONResponseError()]})
        assert poll_all(state, fetch, lambda a: "tok", now_func=fixed_clock(now)) is False

    def test_no_token_warning(self, make_account, now):
        state = AppState(accounts=[make_account(), make_account("codex", "c")])
        fetch = MagicMock()

        assert poll_all(state, fetch, lambda a: None, now_func=fixed_clock(now)) is False

        fetch.assert_not_called()
        assert state.services == {}
        assert state.logs.entries[0].message == "No account has a token"
        assert state.logs.entries[0].level == "warn"

    def test_services_replaced_each_cycle(self, make_account, make_result, now):
        """An account losing its token disappears from the next status map."""
        account = make_account()
        state = AppState(accounts=[account])
        fetch = scripted_fetch({"claude": [make_result(10)]})
        poll_all(state, fetch, lambda a: "tok", now_func=fixed_clock(now))

        poll_all(state, fetch, lambda a: None, now_func=fixed_clock(now))

        assert state.services == {}

    def test_transition_dispatched(self, make_account, make_result, now):
        state = AppState(accounts=[make_account()], settings=NotifySettings(critical=True))
        fetch = scripted_fetch({"claude": [make_result(10), make_result(95)]})
        dispatch = MagicMock(return_value=[])
        clock = fixed_clock(now)

        poll_all(state, fetch, lambda a: "tok", dispatch, clock)
        dispatch.assert_not_called()

        poll_all(state, fetch, lambda a: "tok", dispatch, clock)

        dispatch.assert_called_once()
        title, body, level = dispatch.call_args[0]
        assert title == "Claude Code: Work ⚠️"
        assert "ステータス: critical" in body
        assert level == "critical"
        assert any(e.level == "crit" for e in state.logs)

    def test_no_transition_after_error(self, make_account, make_result, now):
        """error -> ok is not an observable transition."""
        state = AppState(accounts=[make_account()])
        fetch = scripted_fetch(
            {"claude": [make_result(95), NonJSONResponseError(), make_result(10)]}
        )
        dispatch = MagicMock(return_value=[])
        clock = fixed_clock(now)

        for _ in range(3):
            poll_all(state, fetch, lambda a: "tok", dispatch, clock)

        dispatch.assert_not_called()

    def test_delivery_errors_logged(self, make_account, make_result, now):
        state = AppState(accounts=[make_account()])
        fetch = scripted_fetch({"claude": [make_result(10), make_result(100)]})
        dispatch = MagicMock(return_value=["Discord: connection failed"])
        clock = fixed_clock(now)

        poll_all(state, fetch, lambda a: "tok", dispatch, clock)
        poll_all(state, fetch, lambda a: "tok", dispatch, clock)

        assert state.logs.entries[0].message == "Notification failed: Discord: connection failed"

    def test_snapshot_written(self, make_account, make_result, now, tmp_path):
        export = tmp_path / "usage.json"
        state = AppState(accounts=[make_account()], usage_export_path=export)
        fetch = scripted_fetch({"claude": [make_result(33)]})

        poll_all(state, fetch, lambda a: "tok", now_func=fixed_clock(now))

        snapshot = json.loads(export.read_text())
        assert snapshot["fetchedAt"] == now.isoformat()
        assert snapshot["entries"][0]["windows"][0]["utilization"] == 33

    def test_snapshot_failure_reported_once(self, make_account, make_result, now, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        state = AppState(accounts=[make_account()], usage_export_path=blocker / "usage.json")
        fetch = scripted_fetch({"claude": [make_result(1), make_result(1)]})

        poll_all(state, fetch, lambda a: "tok", now_func=fixed_clock(now))
        poll_all(state, fetch, lambda a: "tok", now_func=fixed_clock(now))

        failures = [e for e in state.logs if e.message.startswith("Usage export failed")]
        assert len(failures) == 1
        assert state.export_error_logged is True


class TestReclassifyAll:
    """Tests for reclassify_all."""

    def test_threshold_change_triggers_transition(self, make_account, make_result, now):
        state = AppState(accounts=[make_account()], settings=NotifySettings(critical=True))
        poll_all(state, scripted_fetch({"claude": [make_result(85)]}), lambda a: "tok", now_func=fixed_clock(now))
        assert state.services["claude:work"].status == Severity.WARNING
        dispatch = MagicMock(return_value=[])

        state.settings = NotifySettings(critical=True, threshold_critical=80)
        reclassify_all(state, dispatch, now)

        assert state.services["claude:work"].status == Severity.CRITICAL
        dispatch.assert_called_once()

    def test_error_accounts_untouched(self, make_account, now):
        state = AppState(accounts=[make_account()])
        poll_all(state, scripted_fetch({"claude": [NonJSONResponseError()]}), lambda a: "tok", now_func=fixed_clock(now))

        reclassify_all(state, now=now)

        assert state.services["claude:work"].status == STATUS_ERROR


# ═══════════════════════════════════════════════════════════════════════════════
# Countdown and Loop
# ═══════════════════════════════════════════════════════════════════════════════


class TestComputePollingState:
    """Tests for compute_polling_state."""

    def test_not_polling(self, now):
        assert compute_polling_state(False, now, 120, now) is None
        assert compute_polling_state(True, None, 120, now) is None

    @pytest.mark.parametrize("interval", [0, -5, "abc", None, float("inf")])
    def test_invalid_interval(self, now, interval):
        assert compute_polling_state(True, now, interval, now) is None

    @pytest.mark.parametrize(
        "elapsed,band",
        [(0, "ok"), (60, "ok"), (84, "warn"), (108, "crit"), (500, "crit")],
    )
    def test_bands(self, now, elapsed, band):
        state = compute_polling_state(True, now - timedelta(seconds=elapsed), 120, now)
        assert state.band == band

    def test_values(self, now):
        state = compute_polling_state(True, now - timedelta(seconds=30), 120, now)

        assert state.elapsed == 30
        assert state.remaining == 90
        assert state.fraction == 0.75


class TestRunPollLoop:
    """Tests for run_poll_loop."""

    def test_max_cycles(self):
        state = AppState(poll_interval=30)
        poll = MagicMock()

        cycles = run_poll_loop(state, poll, max_cycles=1)

        assert cycles == 1
        poll.assert_called_once()
        assert state.polling is False
        assert state.poll_started_at is not None

    def test_stop_event_between_cycles(self):
        state = AppState(poll_interval=30)
        stop = threading.Event()
        poll = MagicMock(side_effect=stop.set)

        assert run_poll_loop(state, poll, stop_event=stop) == 1

    def test_on_tick_called_while_waiting(self, monkeypatch):
        state = AppState(poll_interval=30)
        stop = threading.Event()
        ticks = []

        def on_tick(current):
            ticks.append(current.polling)
            if len(ticks) == 2:
                stop.set()

        monkeypatch.setattr(stop, "wait", lambda timeout=None: stop.is_set())
        cycles = run_poll_loop(state, MagicMock(), stop_event=stop, on_tick=on_tick)

        assert cycles == 1
        assert ticks == [True, True]

    def test_keyboard_interrupt_ends_loop(self):
        state = AppState()
        poll = MagicMock(side_effect=KeyboardInterrupt)

        assert run_poll_loop(state, poll) == 0
        assert state.polling is False


class TestOrderedAccounts:
    """Tests for ordered_accounts."""

    def test_claude_then_codex(self, make_account):
        accounts = [make_account("codex", "x"), make_account("claude", "b"), make_account("claude", "a")]
        assert [a.key for a in ordered_accounts(accounts)] == ["claude:b", "claude:a", "codex:x"]
