"""Command-line interface for quota-watch.

One-shot runs poll every account once and print the dashboard (or JSON);
--watch keeps polling. Account and token management, config editing and the
audit log viewer are flags on the same command.
"""

import argparse
import getpass
import json
import platform
import re
import sys
from pathlib import Path
from typing import Optional

from quota_watch._version import __version__
from quota_watch.display.colors import Colors, disable_colors
from quota_watch.errors import (
    AuthenticationMissingError,
    ConfigError,
    ExitCode,
    QuotaWatchError,
    SetupRequiredError,
    format_error_for_user,
    get_exit_code,
)

SERVICE_CHOICES = ["claude", "codex"]

# Audit event prefix -> (Colors attribute, icon)
AUDIT_STYLES = {
    "credential": ("YELLOW", "⚡"),
    "api": ("CYAN", "→"),
    "config": ("MAGENTA", "⚙"),
    "notification": ("GREEN", "✉"),
    "activity": ("WHITE", "•"),
}


def create_parser() -> argparse.ArgumentParser:
    """Build the quota-watch argument parser."""
    parser = argparse.ArgumentParser(
        prog="quota-watch",
        description="Monitor Claude Code and Codex usage limits across accounts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  quota-watch                         Poll every account once and show usage
  quota-watch --watch                 Poll continuously (config poll_interval)
  quota-watch --watch 60              Poll every 60 seconds
  quota-watch --json                  Output normalized usage as JSON
  quota-watch --add-account claude Work     Add a Claude account named "Work"
  quota-watch --set-token claude:work       Store a token (prompted)
  quota-watch --import-cli-token codex      Import the Codex CLI login
  quota-watch --list-accounts         List accounts and token status
  quota-watch --config                Show current configuration
  quota-watch --config set threshold_warning 70
  quota-watch --notify-test           Send a test notification
  quota-watch --export usage.json     Poll once and write a usage snapshot
  quota-watch --audit                 Enable audit logging for operations
  quota-watch --show-audit            Show recent audit log entries
""",
    )

    parser.add_argument(
        "--json", "-j", action="store_true", help="Output normalized usage as JSON"
    )
    parser.add_argument(
        "--raw",
        action="store_true",
        help="With --json, include the raw upstream responses",
    )
    parser.add_argument(
        "--watch",
        "-w",
        nargs="?",
        const=0,
        type=int,
        metavar="SECONDS",
        help="Poll continuously. Interval defaults to poll_interval (30-600).",
    )
    parser.add_argument(
        "--config",
        "-c",
        nargs="*",
        metavar="COMMAND",
        help="Configuration commands: show (default), reset, set KEY VALUE",
    )

    # Accounts and tokens
    parser.add_argument(
        "--add-account",
        nargs=2,
        metavar=("SERVICE", "NAME"),
        help="Add an account (SERVICE is claude or codex)",
    )
    parser.add_argument(
        "--account-id",
        metavar="ID",
        help="Account id for --add-account or --import-cli-token (default: derived from name)",
    )
    parser.add_argument(
        "--remove-account",
        metavar="KEY",
        help="Remove an account and its token (KEY is service:id)",
    )
    parser.add_argument(
        "--set-token",
        metavar="KEY",
        help="Store a token for an account (read from prompt or stdin)",
    )
    parser.add_argument(
        "--import-cli-token",
        choices=SERVICE_CHOICES,
        metavar="SERVICE",
        help="Import the token of a logged-in Claude Code or Codex CLI",
    )
    parser.add_argument(
        "--list-accounts", action="store_true", help="List accounts and token status"
    )

    parser.add_argument(
        "--notify-test",
        nargs="?",
        const="all",
        choices=["all", "desktop", "discord", "pushover"],
        metavar="CHANNEL",
        help="Send a test notification (all, desktop, discord, pushover)",
    )
    parser.add_argument(
        "--export",
        metavar="PATH",
        help="Poll once and write a usage snapshot JSON to PATH",
    )

    # Output
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Suppress all output except errors",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show error details and suggestions",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=30,
        metavar="SECONDS",
        help="Request timeout in seconds (default: 30)",
    )
    parser.add_argument(
        "--version",
        "-V",
        action="store_true",
        help="Show version and system information",
    )

    # Audit trail
    parser.add_argument(
        "--audit",
        action="store_true",
        help="Enable audit logging for security-relevant operations.",
    )
    parser.add_argument(
        "--audit-log",
        metavar="PATH",
        help="Custom path for audit log file (default: ~/.config/quota-watch/audit/audit.log).",
    )
    parser.add_argument(
        "--show-audit",
        nargs="?",
        const=50,
        type=int,
        metavar="N",
        help="Show last N audit log entries (default: 50).",
    )

    return parser


def print_version() -> None:
    """Print version and system information."""
    print(
        f"quota-watch {__version__} "
        f"(Python {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}, "
        f"{platform.system()} {platform.machine()})"
    )


def handle_config_command(
    config_args: list,
    show_config_func,
    reset_config_func,
    set_config_func,
    default_config: dict,
) -> None:
    """Run ``--config [show | reset | set KEY VALUE]``.

    The three actions are passed in so main can bind them to the loaded
    config and its file.
    """
    command, *rest = config_args or ["show"]

    if command == "show" and not rest:
        show_config_func()
        return
    if command == "reset" and not rest:
        reset_config_func()
        return
    if command == "set":
        if len(rest) == 2:
            set_config_func(*rest)
            return
        settable = sorted(k for k in default_config if k not in ("accounts", "_config_version"))
        print(f"{Colors.RED}Error: 'set' needs a KEY and a VALUE{Colors.RESET}")
        print("Usage: quota-watch --config set KEY VALUE")
        print(f"\nValid keys: {', '.join(settable)}")
        sys.exit(ExitCode.INVALID_ARGUMENT)

    print(f"{Colors.RED}Error: Unknown config command '{' '.join(config_args)}'{Colors.RESET}")
    print("Config commands: show, reset, set KEY VALUE")
    sys.exit(ExitCode.INVALID_ARGUMENT)


def slugify_account_id(name: str) -> str:
    """Derive an account id from a display name ("My Work" -> "my-work")."""
    slug = re.sub(r"[^A-Za-z0-9_.-]+", "-", name.strip().lower()).strip("-")
    return slug[:128] or "default"


def print_error(error: Exception, quiet: bool = False, verbose: bool = False) -> None:
    """Print an error (and its suggestion) to stderr."""
    if quiet and not isinstance(error, QuotaWatchError):
        return
    print(f"{Colors.RED}{format_error_for_user(error, verbose=verbose)}{Colors.RESET}", file=sys.stderr)
    if isinstance(error, QuotaWatchError) and error.get_suggestion() and not verbose:
        print(f"{Colors.YELLOW}Suggestion: {error.get_suggestion()}{Colors.RESET}", file=sys.stderr)


def show_audit_log(limit: int, log_path: Optional[Path], verbose: bool) -> int:
    """Print the last ``limit`` audit entries. Returns an exit code."""
    from quota_watch.config.audit import AUDIT_LOG_FILE, read_audit_log

    path = log_path or AUDIT_LOG_FILE
    if not path.exists():
        print(f"{Colors.YELLOW}No audit log found at {path}{Colors.RESET}")
        print("Run with --audit to start recording.")
        return ExitCode.SUCCESS

    entries = read_audit_log(path, limit=limit)
    if not entries:
        print(f"{Colors.DIM}Audit log {path} is empty.{Colors.RESET}")
        return ExitCode.SUCCESS

    print()
    print(f"{Colors.BOLD}{Colors.CYAN}Audit Log{Colors.RESET} {Colors.DIM}newest first, {len(entries)} shown{Colors.RESET}")

    for entry in entries:
        timestamp = entry.get("timestamp", "")[:19]
        event = entry.get("event", "unknown")
        message = entry.get("message", "")

        if entry.get("success", True):
            color_name, icon = AUDIT_STYLES.get(event.split(".")[0], ("WHITE", "•"))
        else:
            color_name, icon = "RED", "✗"
        color = getattr(Colors, color_name)

        print(f"{Colors.DIM}{timestamp}{Colors.RESET} {color}{icon} {event}{Colors.RESET}")
        if message:
            print(f"  {message}")
        if verbose:
            for k, v in (entry.get("details") or {}).items():
                print(f"    {Colors.DIM}{k}: {v}{Colors.RESET}")

    print()
    print(f"{Colors.DIM}Log file: {path}{Colors.RESET}")
    return ExitCode.SUCCESS


def show_config(config: dict, config_file: Path) -> None:
    """Display current configuration with secrets masked."""
    from quota_watch.config.security import mask_token

    print()
    print(f"{Colors.BOLD}{Colors.CYAN}Current Configuration{Colors.RESET}")
    print()
    print(f"  Poll interval:       {config['poll_interval']}s")
    print(
        f"  Thresholds:          warning {config['threshold_warning']}%, "
        f"critical {config['threshold_critical']}%"
    )

    def on_off(value: bool) -> str:
        return f"{Colors.GREEN}on{Colors.RESET}" if value else f"{Colors.DIM}off{Colors.RESET}"

    print(
        f"  Notify:              critical {on_off(config['notify_critical'])}, "
        f"recovery {on_off(config['notify_recovery'])}, "
        f"warning {on_off(config['notify_warning'])}"
    )
    print()

    webhook = config.get("discord_webhook_url")
    print(f"  Discord:             {on_off(config['discord_enabled'])}", end="")
    print(f" ({mask_token(webhook, 24, 4)})" if webhook else "")
    user_key = config.get("pushover_user_key")
    print(f"  Pushover:            {on_off(config['pushover_enabled'])}", end="")
    print(f" (user {mask_token(user_key, 4, 4)})" if user_key else "")
    export_path = config.get("usage_export_path")
    print(f"  Usage export:        {on_off(config['usage_export_enabled'])}", end="")
    print(f" ({export_path})" if export_path else "")
    print()
    print(f"  Accounts:            {len(config.get('accounts') or [])}")
    print(f"  Config File:         {config_file}")
    print()


def main(argv: Optional[list] = None) -> None:
    """Entry point. Exits with an ExitCode on failure."""
    from quota_watch.api.client import RAW_FETCHERS, fetch_normalized_usage
    from quota_watch.config.audit import enable_audit_logging, log_config_change
    from quota_watch.config.security import (
        check_secrets_security,
        validate_account_id,
        validate_account_name,
    )
    from quota_watch.config.settings import (
        DEFAULT_CONFIG,
        clamp_poll_interval,
        convert_config_value,
        get_config_file,
        get_notify_settings,
        load_accounts,
        load_config,
        reset_config,
        save_config,
    )
    from quota_watch.config.tokens import FileTokenStore, ensure_service, import_cli_token
    from quota_watch.display.dashboard import (
        build_json_output,
        display_activity_log,
        display_services,
    )
    from quota_watch.export.snapshot import (
        build_usage_snapshot,
        resolve_export_path,
        write_usage_snapshot,
    )
    from quota_watch.notify.notifier import dispatch_notification, send_notification
    from quota_watch.poller.orchestrator import AppState, ordered_accounts, poll_all
    from quota_watch.usage.models import SERVICE_LABELS
    from quota_watch.webhook.sender import send_external_notification

    parser = create_parser()
    args = parser.parse_args(argv)

    if args.no_color:
        disable_colors()

    if args.version:
        print_version()
        return

    config_file = get_config_file()
    config = load_config(config_file=config_file, silent=args.quiet)
    store = FileTokenStore()

    if args.audit or args.audit_log:
        enable_audit_logging(Path(args.audit_log) if args.audit_log else None)

    if args.show_audit is not None:
        sys.exit(show_audit_log(args.show_audit, Path(args.audit_log) if args.audit_log else None, args.verbose))

    for warning in check_secrets_security([config_file, store.path]):
        if not args.quiet:
            print(f"{Colors.YELLOW}Warning: {warning}{Colors.RESET}", file=sys.stderr)

    def persist(key: str, value=None) -> None:
        try:
            save_config(config, config_file=config_file)
        except OSError as e:
            error = ConfigError(f"Cannot write config {config_file}: {e}")
            print_error(error, verbose=args.verbose)
            sys.exit(get_exit_code(error))
        log_config_change("write", key, None if value is None else str(value))

    if args.config is not None:

        def reset_to_defaults():
            reset_config(config_file=config_file)
            log_config_change("reset")
            print(f"{Colors.GREEN}Config reset to defaults ({config_file}).{Colors.RESET}")

        def set_value(key: str, value: str):
            try:
                converted = convert_config_value(key, value)
            except KeyError:
                print(f"{Colors.RED}Error: {key!r} is not a settable config key{Colors.RESET}")
                sys.exit(ExitCode.INVALID_ARGUMENT)
            except ValueError as e:
                print(f"{Colors.RED}Error: {e}{Colors.RESET}")
                sys.exit(ExitCode.INVALID_ARGUMENT)
            config[key] = converted
            persist(key, converted)
            print(f"{Colors.GREEN}{key} = {converted}{Colors.RESET}")

        handle_config_command(
            args.config,
            lambda: show_config(config, config_file),
            reset_to_defaults,
            set_value,
            DEFAULT_CONFIG,
        )
        return

    accounts_cfg = config.setdefault("accounts", [])

    # --add-account
    if args.add_account:
        service, name = args.add_account
        try:
            ensure_service(service)
        except QuotaWatchError as e:
            print_error(e)
            sys.exit(get_exit_code(e))
        account_id = args.account_id or slugify_account_id(name)
        for is_valid, error in (validate_account_name(name), validate_account_id(account_id)):
            if not is_valid:
                print(f"{Colors.RED}Error: {error}{Colors.RESET}", file=sys.stderr)
                sys.exit(ExitCode.INVALID_ARGUMENT)
        if any(a.get("service") == service and a.get("id") == account_id for a in accounts_cfg):
            print(f"{Colors.RED}Error: Account {service}:{account_id} already exists{Colors.RESET}", file=sys.stderr)
            sys.exit(ExitCode.INVALID_ARGUMENT)
        accounts_cfg.append({"service": service, "id": account_id, "name": name.strip()})
        persist("accounts")
        print(f"{Colors.GREEN}Added {SERVICE_LABELS[service]}: {name.strip()} ({service}:{account_id}){Colors.RESET}")
        print(f"Store a token with: quota-watch --set-token {service}:{account_id}")
        return

    # --remove-account
    if args.remove_account:
        service, _, account_id = args.remove_account.partition(":")
        remaining = [
            a for a in accounts_cfg if not (a.get("service") == service and a.get("id") == account_id)
        ]
        if len(remaining) == len(accounts_cfg):
            print(f"{Colors.RED}Error: No account {args.remove_account}{Colors.RESET}", file=sys.stderr)
            sys.exit(ExitCode.INVALID_ARGUMENT)
        config["accounts"] = remaining
        persist("accounts")
        store.delete(args.remove_account)
        print(f"{Colors.GREEN}Removed {args.remove_account}{Colors.RESET}")
        return

    # --set-token
    if args.set_token:
        key = args.set_token
        if not any(f"{a.get('service')}:{a.get('id')}" == key for a in accounts_cfg):
            print(f"{Colors.RED}Error: No account {key}. Add it with --add-account first.{Colors.RESET}", file=sys.stderr)
            sys.exit(ExitCode.INVALID_ARGUMENT)
        if sys.stdin.isatty():
            token = getpass.getpass(f"Token for {key}: ")
        else:
            token = sys.stdin.readline()
        try:
            store.set(key, token)
        except QuotaWatchError as e:
            print_error(e, verbose=args.verbose)
            sys.exit(get_exit_code(e))
        print(f"{Colors.GREEN}Token stored for {key}{Colors.RESET}")
        return

    # --import-cli-token
    if args.import_cli_token:
        service = args.import_cli_token
        existing = [a for a in accounts_cfg if a.get("service") == service]
        if args.account_id:
            account_id = args.account_id
        elif existing:
            account_id = existing[0]["id"]
        else:
            account_id = "default"
        try:
            key = import_cli_token(store, service, account_id)
        except QuotaWatchError as e:
            print_error(e, verbose=args.verbose)
            sys.exit(get_exit_code(e))
        if not any(a.get("service") == service and a.get("id") == account_id for a in accounts_cfg):
            accounts_cfg.append({"service": service, "id": account_id, "name": account_id})
            persist("accounts")
        print(f"{Colors.GREEN}Imported {SERVICE_LABELS[service]} CLI token into {key}{Colors.RESET}")
        return

    accounts = load_accounts(config, has_token=store.has)

    # --list-accounts
    if args.list_accounts:
        if not accounts:
            print(f"{Colors.DIM}No accounts configured.{Colors.RESET}")
            return
        for account in ordered_accounts(accounts):
            token_state = (
                f"{Colors.GREEN}token{Colors.RESET}"
                if account.has_token
                else f"{Colors.YELLOW}no token{Colors.RESET}"
            )
            print(f"  {account.key:<32} {account.label:<36} {token_state}")
        return

    # --notify-test
    if args.notify_test:
        title = "quota-watch test"
        body = "Notifications are working"
        channel = args.notify_test
        if channel == "desktop":
            errors = [] if send_notification(title, body) else ["Desktop: notification command not available"]
        elif channel in ("discord", "pushover"):
            errors = send_external_notification(config, title, body, "ok", channel=channel)
            if not errors and not config.get(
                "discord_webhook_url" if channel == "discord" else "pushover_user_key"
            ):
                errors = [f"{channel.capitalize()}: not configured"]
        else:
            errors = dispatch_notification(title, body, "ok", config)
        for error in errors:
            print(f"{Colors.RED}{error}{Colors.RESET}", file=sys.stderr)
        if not errors and not args.quiet:
            print(f"{Colors.GREEN}Test notification sent{Colors.RESET}")
        sys.exit(ExitCode.SUCCESS if not errors else ExitCode.USAGE_ERROR)

    if not accounts:
        e = SetupRequiredError("No accounts configured")
        print_error(e, verbose=args.verbose)
        sys.exit(get_exit_code(e))

    # Build polling state
    state = AppState(
        accounts=accounts,
        settings=get_notify_settings(config),
        poll_interval=config["poll_interval"],
    )
    if config.get("usage_export_enabled") and config.get("usage_export_path"):
        try:
            state.usage_export_path = resolve_export_path(config["usage_export_path"])
        except ValueError:
            state.usage_export_path = None

    def fetch(service: str, token: str):
        return fetch_normalized_usage(
            service,
            token,
            fetch_raw=lambda s, t: RAW_FETCHERS[s](t, timeout=args.timeout),
        )

    def token_lookup(account) -> Optional[str]:
        return store.get(account.key)

    def dispatch(title: str, body: str, level: str) -> list:
        return dispatch_notification(title, body, level, config)

    # --watch loops until interrupted
    if args.watch is not None:
        from quota_watch.display.watch import run_watch_mode

        if args.watch:
            state.poll_interval = clamp_poll_interval(args.watch)
        run_watch_mode(state, lambda: poll_all(state, fetch, token_lookup, dispatch))
        return

    # One-shot poll
    any_success = poll_all(state, fetch, token_lookup, dispatch)

    if args.export:
        try:
            path = resolve_export_path(args.export, base_dir=Path.cwd())
            write_usage_snapshot(
                build_usage_snapshot(ordered_accounts(state.accounts), state.services, state.last_fetched_at),
                path,
            )
        except (OSError, ValueError) as e:
            print(f"{Colors.RED}Export failed: {e}{Colors.RESET}", file=sys.stderr)
            sys.exit(ExitCode.SYSTEM_ERROR)
        if not args.quiet:
            print(f"{Colors.GREEN}Usage snapshot written to {path}{Colors.RESET}")

    if args.json:
        print(json.dumps(build_json_output(state, include_raw=args.raw), indent=2, ensure_ascii=False))
    elif not args.quiet:
        display_services(state)
        display_activity_log(state.logs)

    if not any(a.has_token for a in state.accounts):
        e = AuthenticationMissingError("No account has a token")
        print_error(e, quiet=args.quiet, verbose=args.verbose)
        sys.exit(get_exit_code(e))
    if not any_success:
        sys.exit(ExitCode.API_ERROR)


__all__ = [
    "create_parser",
    "main",
    "print_version",
    "handle_config_command",
    "slugify_account_id",
]
