"""
Tests for the command-line interface.
"""

import io
import json
from unittest.mock import MagicMock, patch

import pytest

from quota_watch.cli import create_parser, handle_config_command, main, print_version, slugify_account_id
from quota_watch.errors import AuthenticationFailedError, ExitCode
from quota_watch.usage.models import RawUsageResponse

CLAUDE_TOKEN = "sk-ant-REDACTED"


def run_main(*argv):
    """Run main and return its exit code (0 when it returns normally)."""
    try:
        main(list(argv))
    except SystemExit as e:
        return e.code
    return 0


def read_config(config_dir):
    return json.loads((config_dir / "config.json").read_text())


def read_tokens(config_dir):
    return json.loads((config_dir / "tokens.json").read_text())


@pytest.fixture
def claude_account(temp_config_dir, monkeypatch):
    """A configured claude:work account with a stored token."""
    assert run_main("--add-account", "claude", "Work") == 0
    monkeypatch.setattr("sys.stdin", io.StringIO(CLAUDE_TOKEN + "\n"))
    assert run_main("--set-token", "claude:work") == 0
    return temp_config_dir


def fake_fetcher(body, ok=True, status=200):
    def _fetch(token, timeout=30):
        return RawUsageResponse(ok=ok, status=status, body=json.dumps(body))

    return _fetch


# ═══════════════════════════════════════════════════════════════════════════════
# Parser
# ═══════════════════════════════════════════════════════════════════════════════


class TestParser:
    """Tests for argument parsing."""

    def test_defaults(self):
        args = create_parser().parse_args([])

        assert args.watch is None
        assert args.config is None
        assert args.timeout == 30
        assert args.json is False

    def test_watch_without_interval(self):
        assert create_parser().parse_args(["--watch"]).watch == 0
        assert create_parser().parse_args(["-w", "60"]).watch == 60

    def test_notify_test_channel(self):
        assert create_parser().parse_args(["--notify-test"]).notify_test == "all"
        assert create_parser().parse_args(["--notify-test", "discord"]).notify_test == "discord"

    def test_import_rejects_unknown_service(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["--import-cli-token", "gemini"])

    def test_show_audit_default(self):
        assert create_parser().parse_args(["--show-audit"]).show_audit == 50


class TestHelpers:
    """Tests for small CLI helpers."""

    @pytest.mark.parametrize(
        "name,expected",
        [("Work", "work"), ("My Work", "my-work"), ("  Team / Shared ", "team-shared"), ("!!!", "default")],
    )
    def test_slugify(self, name, expected):
        assert slugify_account_id(name) == expected

    def test_print_version(self, capsys):
        print_version()

        assert capsys.readouterr().out.startswith("quota-watch ")

    def test_config_command_dispatch(self):
        show, reset, set_ = MagicMock(), MagicMock(), MagicMock()

        handle_config_command([], show, reset, set_, {})
        handle_config_command(["reset"], show, reset, set_, {})
        handle_config_command(["set", "poll_interval", "60"], show, reset, set_, {})

        show.assert_called_once()
        reset.assert_called_once()
        set_.assert_called_once_with("poll_interval", "60")

    def test_config_set_missing_value(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            handle_config_command(["set", "poll_interval"], MagicMock(), MagicMock(), MagicMock(), {"poll_interval": 1, "accounts": []})

        assert exc_info.value.code == ExitCode.INVALID_ARGUMENT
        assert "Valid keys: poll_interval" in capsys.readouterr().out


# ═══════════════════════════════════════════════════════════════════════════════
# Configuration and Accounts
# ═══════════════════════════════════════════════════════════════════════════════


class TestConfigCommands:
    """Tests for --config."""

    def test_set_persists(self, temp_config_dir):
        assert run_main("--config", "set", "threshold_warning", "70") == 0

        assert read_config(temp_config_dir)["threshold_warning"] == 70

    def test_set_unknown_key(self, temp_config_dir):
        assert run_main("--config", "set", "bogus", "1") == ExitCode.INVALID_ARGUMENT

    def test_set_bad_bool(self, temp_config_dir):
        assert run_main("--config", "set", "notify_warning", "maybe") == ExitCode.INVALID_ARGUMENT

    def test_show_masks_secrets(self, temp_config_dir, capsys):
        run_main("--config", "set", "pushover_user_key", "uQiRzpo4DXghDmr9QzzfQu27cmVRsG")
        capsys.readouterr()

        assert run_main("--config") == 0
        out = capsys.readouterr().out
        assert "Current Configuration" in out
        assert "uQiRzpo4DXghDmr9QzzfQu27cmVRsG" not in out


class TestAccountCommands:
    """Tests for account and token management."""

    def test_add_account(self, temp_config_dir, capsys):
        assert run_main("--add-account", "claude", "My Work") == 0

        assert read_config(temp_config_dir)["accounts"] == [{"service": "claude", "id": "my-work", "name": "My Work"}]
        assert "--set-token claude:my-work" in capsys.readouterr().out

    def test_add_account_explicit_id(self, temp_config_dir):
        run_main("--add-account", "codex", "Personal", "--account-id", "p1")

        assert read_config(temp_config_dir)["accounts"][0]["id"] == "p1"

    def test_add_duplicate(self, temp_config_dir):
        run_main("--add-account", "claude", "Work")

        assert run_main("--add-account", "claude", "Work") == ExitCode.INVALID_ARGUMENT

    def test_add_unknown_service(self, temp_config_dir):
        assert run_main("--add-account", "gemini", "Work") != 0
        assert not (temp_config_dir / "config.json").exists()

    def test_set_token_from_stdin(self, claude_account):
        tokens = read_tokens(claude_account)

        assert tokens == {"claude:work": CLAUDE_TOKEN}
        assert (claude_account / "tokens.json").stat().st_mode & 0o777 == 0o600

    def test_set_token_unknown_account(self, temp_config_dir, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO(CLAUDE_TOKEN + "\n"))

        assert run_main("--set-token", "claude:nobody") == ExitCode.INVALID_ARGUMENT

    def test_set_token_rejects_empty(self, temp_config_dir, monkeypatch):
        run_main("--add-account", "claude", "Work")
        monkeypatch.setattr("sys.stdin", io.StringIO("\n"))

        assert run_main("--set-token", "claude:work") == ExitCode.AUTH_MISSING

    def test_remove_account_deletes_token(self, claude_account):
        assert run_main("--remove-account", "claude:work") == 0

        assert read_config(claude_account)["accounts"] == []
        assert read_tokens(claude_account) == {}

    def test_remove_unknown(self, temp_config_dir):
        assert run_main("--remove-account", "claude:nobody") == ExitCode.INVALID_ARGUMENT

    def test_import_cli_token_adds_account(self, temp_config_dir, fixtures):
        codex_token = fixtures["codex_auth"]["tokens"]["access_token"]
        with patch.dict("quota_watch.config.tokens.CLI_TOKEN_READERS", {"codex": lambda: codex_token}):
            assert run_main("--import-cli-token", "codex") == 0

        assert read_config(temp_config_dir)["accounts"] == [{"service": "codex", "id": "default", "name": "default"}]
        assert read_tokens(temp_config_dir) == {"codex:default": codex_token}

    def test_import_cli_token_uses_existing_account(self, temp_config_dir):
        run_main("--add-account", "claude", "Work")
        with patch.dict("quota_watch.config.tokens.CLI_TOKEN_READERS", {"claude": lambda: CLAUDE_TOKEN}):
            run_main("--import-cli-token", "claude")

        assert len(read_config(temp_config_dir)["accounts"]) == 1
        assert "claude:work" in read_tokens(temp_config_dir)

    def test_import_without_cli_login(self, temp_config_dir):
        with patch.dict("quota_watch.config.tokens.CLI_TOKEN_READERS", {"claude": lambda: None}):
            assert run_main("--import-cli-token", "claude") == ExitCode.AUTH_MISSING

    def test_list_accounts(self, claude_account, capsys):
        run_main("--add-account", "codex", "Personal")
        capsys.readouterr()

        assert run_main("--list-accounts", "--no-color") == 0
        lines = capsys.readouterr().out.splitlines()
        assert "claude:work" in lines[0]
        assert not lines[0].rstrip().endswith("no token")
        assert "codex:personal" in lines[1]
        assert lines[1].rstrip().endswith("no token")


# ═══════════════════════════════════════════════════════════════════════════════
# Polling
# ═══════════════════════════════════════════════════════════════════════════════


class TestPolling:
    """Tests for one-shot polling."""

    def test_no_accounts(self, temp_config_dir, capsys):
        assert run_main() == ExitCode.SETUP_REQUIRED
        assert "No accounts configured" in capsys.readouterr().err

    def test_no_tokens(self, temp_config_dir):
        run_main("--add-account", "claude", "Work")

        assert run_main("--quiet") == ExitCode.AUTH_MISSING

    @patch("quota_watch.notify.notifier.dispatch_notification", return_value=[])
    def test_json_output(self, mock_dispatch, claude_account, claude_normal, capsys):
        capsys.readouterr()
        with patch.dict("quota_watch.api.client.RAW_FETCHERS", {"claude": fake_fetcher(claude_normal)}):
            assert run_main("--json", "--raw") == 0

        output = json.loads(capsys.readouterr().out)
        service = output["services"]["claude:work"]
        assert service["label"] == "Claude Code: Work"
        assert service["status"] == "warning"
        assert [w["name"] for w in service["windows"]] == ["5-hour", "7-day", "custom bucket"]
        assert output["raw"]["claude:work"] == claude_normal

    @patch("quota_watch.notify.notifier.dispatch_notification", return_value=[])
    def test_dashboard_output(self, mock_dispatch, claude_account, claude_normal, capsys):
        capsys.readouterr()
        with patch.dict("quota_watch.api.client.RAW_FETCHERS", {"claude": fake_fetcher(claude_normal)}):
            run_main("--no-color")

        out = capsys.readouterr().out
        assert "Usage limits" in out
        assert "87% used" in out

    def test_upstream_error_exit_code(self, claude_account, capsys):
        def failing(token, timeout=30):
            raise AuthenticationFailedError("Authentication failed", status_code=401)

        with patch.dict("quota_watch.api.client.RAW_FETCHERS", {"claude": failing}):
            assert run_main("--json") == ExitCode.API_ERROR

        output = json.loads(capsys.readouterr().out)
        assert output["services"]["claude:work"]["status"] == "error"

    @patch("quota_watch.notify.notifier.dispatch_notification", return_value=[])
    def test_export_snapshot(self, mock_dispatch, claude_account, claude_normal, tmp_path, capsys):
        export_path = tmp_path / "out" / "usage.json"
        with patch.dict("quota_watch.api.client.RAW_FETCHERS", {"claude": fake_fetcher(claude_normal)}):
            assert run_main("--export", str(export_path), "--quiet") == 0

        snapshot = json.loads(export_path.read_text())
        assert snapshot["appName"] == "quota-watch"
        assert snapshot["entries"][0]["status"] == "warning"

    def test_timeout_passed_to_fetcher(self, claude_account, claude_normal):
        fetcher = MagicMock(return_value=RawUsageResponse(ok=True, status=200, body=json.dumps(claude_normal)))

        with patch.dict("quota_watch.api.client.RAW_FETCHERS", {"claude": fetcher}), patch(
            "quota_watch.notify.notifier.dispatch_notification", return_value=[]
        ):
            run_main("--quiet", "--timeout", "5")

        fetcher.assert_called_once_with(CLAUDE_TOKEN, timeout=5)


class TestNotifyTest:
    """Tests for --notify-test."""

    def test_desktop_success(self, temp_config_dir, capsys):
        with patch("quota_watch.notify.notifier.send_notification", return_value=True):
            assert run_main("--notify-test", "desktop") == ExitCode.SUCCESS

        assert "Test notification sent" in capsys.readouterr().out

    def test_discord_not_configured(self, temp_config_dir, capsys):
        assert run_main("--notify-test", "discord") == ExitCode.USAGE_ERROR
        assert "Discord: not configured" in capsys.readouterr().err
