"""Configuration management for quota-watch.

Provides functions for loading, saving, validating, clamping and migrating
the configuration file, and for turning it into the typed settings the
poller works with.
"""

import copy
import json
import os
import sys
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from quota_watch.usage.models import SUPPORTED_SERVICES, Account, NotifySettings

CONFIG_DIR = Path.home() / ".config" / "quota-watch"
CONFIG_FILE = CONFIG_DIR / "config.json"
CONFIG_ENV_VAR = "QUOTA_WATCH_CONFIG"

# Allowed ranges
POLL_INTERVAL_MIN = 30
POLL_INTERVAL_MAX = 600
THRESHOLD_MIN = 1
THRESHOLD_MAX = 99

CONFIG_VERSION = 3

DEFAULT_CONFIG = {
    "poll_interval": 120,
    "notify_critical": True,
    "notify_recovery": True,
    "notify_warning": False,
    "threshold_warning": 75,
    "threshold_critical": 90,
    "discord_enabled": False,
    "discord_webhook_url": None,
    "pushover_enabled": False,
    "pushover_api_token": None,
    "pushover_user_key": None,
    "usage_export_enabled": False,
    "usage_export_path": None,
    "accounts": [],
    "_config_version": CONFIG_VERSION,
}

# (version, keys added in that version); v1 had polling, notify and accounts
MIGRATIONS = (
    (2, ("discord_enabled", "discord_webhook_url", "pushover_enabled", "pushover_api_token", "pushover_user_key")),
    (3, ("usage_export_enabled", "usage_export_path")),
)

ValidatorFunc = Callable[[Union[str, int, float, bool, list, None]], Tuple[bool, str]]


def _in_range(low: int, high: int) -> ValidatorFunc:
    return lambda v: (True, "") if low <= v <= high else (False, f"must be between {low} and {high}")


def _validate_accounts(accounts: list) -> Tuple[bool, str]:
    for entry in accounts:
        if not isinstance(entry, dict):
            return False, "entries must be objects"
        if entry.get("service") not in SUPPORTED_SERVICES:
            return False, f"service must be one of: {', '.join(SUPPORTED_SERVICES)}"
        if not entry.get("id"):
            return False, "entries need an 'id'"
    return True, ""


# key -> (accepted types, required, validator returning (ok, message))
CONFIG_SCHEMA: dict[str, tuple[tuple, bool, Optional[ValidatorFunc]]] = {
    "poll_interval": ((int,), False, _in_range(POLL_INTERVAL_MIN, POLL_INTERVAL_MAX)),
    "notify_critical": ((bool,), False, None),
    "notify_recovery": ((bool,), False, None),
    "notify_warning": ((bool,), False, None),
    "threshold_warning": ((int, float), False, _in_range(THRESHOLD_MIN, THRESHOLD_MAX)),
    "threshold_critical": ((int, float), False, _in_range(THRESHOLD_MIN, THRESHOLD_MAX)),
    "discord_enabled": ((bool,), False, None),
    "discord_webhook_url": (
        (str, type(None)),
        False,
        lambda v: (True, "")
        if v.startswith("https://")
        else (False, "must be an HTTPS URL"),
    ),
    "pushover_enabled": ((bool,), False, None),
    "pushover_api_token": ((str, type(None)), False, None),
    "pushover_user_key": ((str, type(None)), False, None),
    "usage_export_enabled": ((bool,), False, None),
    "usage_export_path": ((str, type(None)), False, None),
    "accounts": ((list,), False, _validate_accounts),
    "_config_version": ((int,), False, None),
}


def get_config_file() -> Path:
    """Config file path, honouring the QUOTA_WATCH_CONFIG override."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return CONFIG_FILE


def validate_config(config: dict) -> List[str]:
    """Problems found in ``config``, as readable messages. Empty when valid."""
    errors = []

    for key in config:
        if key not in CONFIG_SCHEMA:
            errors.append(f"Unknown config key: '{key}'")

    for key, (expected_types, required, validator) in CONFIG_SCHEMA.items():
        if required and key not in config:
            errors.append(f"Missing required key: '{key}'")
            continue

        if key not in config:
            continue

        value = config[key]

        # bool is an int subclass, reject it for numeric keys
        if isinstance(value, bool) and bool not in expected_types:
            errors.append(f"'{key}' has invalid type: expected number, got bool")
            continue

        if not isinstance(value, expected_types):
            type_names = " or ".join(t.__name__ for t in expected_types)
            errors.append(
                f"'{key}' has invalid type: expected {type_names}, got {type(value).__name__}"
            )
            continue

        if validator and value is not None:
            is_valid, error_msg = validator(value)
            if not is_valid:
                errors.append(f"'{key}' {error_msg}")

    warning = config.get("threshold_warning")
    critical = config.get("threshold_critical")
    if (
        isinstance(warning, (int, float))
        and isinstance(critical, (int, float))
        and warning >= critical
    ):
        errors.append(
            "'threshold_warning' is not below 'threshold_critical'; "
            "warning will never be reported"
        )

    return errors


def migrate_config(config: dict) -> Tuple[dict, bool]:
    """Bring a config written by an older version up to CONFIG_VERSION.

    Keys introduced after the file's version are added with their defaults;
    values already present are never touched.

    Returns:
        Tuple of (migrated_config, was_migrated).
    """
    migrated = config.copy()
    version = migrated.get("_config_version", 1)

    changed = False
    for introduced_in, keys in MIGRATIONS:
        if version >= introduced_in:
            continue
        for key in keys:
            if key not in migrated:
                migrated[key] = DEFAULT_CONFIG[key]
                changed = True

    if changed or version != CONFIG_VERSION:
        migrated["_config_version"] = CONFIG_VERSION
        changed = True
    return migrated, changed


def clamp_poll_interval(value) -> int:
    """Clamp a poll interval to the supported range, falling back to the default."""
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIG["poll_interval"]
    return max(POLL_INTERVAL_MIN, min(POLL_INTERVAL_MAX, seconds))


def clamp_threshold(value, default: int) -> float:
    """Clamp a threshold into [1, 99]. Non-numeric values give the default."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if value != value:  # NaN
        return default
    return max(THRESHOLD_MIN, min(THRESHOLD_MAX, value))


def normalize_config(config: dict) -> dict:
    """Clamp numeric settings and disable export when it has no path.

    Thresholds are clamped independently; an inverted pair is kept as is.
    """
    normalized = {**copy.deepcopy(DEFAULT_CONFIG), **config}
    normalized["poll_interval"] = clamp_poll_interval(normalized.get("poll_interval"))
    for key in ("threshold_warning", "threshold_critical"):
        normalized[key] = clamp_threshold(normalized.get(key), DEFAULT_CONFIG[key])
    for key in ("notify_critical", "notify_recovery", "notify_warning"):
        if not isinstance(normalized.get(key), bool):
            normalized[key] = DEFAULT_CONFIG[key]
    if not normalized.get("usage_export_path"):
        normalized["usage_export_enabled"] = False
    if not isinstance(normalized.get("accounts"), list):
        normalized["accounts"] = []
    return normalized


def load_config(
    validate: bool = True,
    auto_migrate: bool = True,
    config_file: Optional[Path] = None,
    silent: bool = False,
) -> dict:
    """Read the config file, merged with defaults and normalized.

    A missing, unreadable or non-object file yields the defaults. Older
    files are migrated and written back when ``auto_migrate`` is set.
    Validation problems are printed to stderr unless ``silent``; they never
    stop loading.
    """
    if config_file is None:
        config_file = get_config_file()

    if not config_file.exists():
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(config_file) as f:
            config = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        if not silent:
            print(f"Warning: Cannot read config {config_file}: {e}", file=sys.stderr)
        return copy.deepcopy(DEFAULT_CONFIG)

    if not isinstance(config, dict):
        if not silent:
            print(f"Warning: Config {config_file} is not a JSON object", file=sys.stderr)
        return copy.deepcopy(DEFAULT_CONFIG)

    if auto_migrate:
        config, was_migrated = migrate_config(config)
        if was_migrated:
            try:
                save_config(config, config_file=config_file)
            except OSError:
                pass
            if not silent:
                print(f"Config migrated to version {CONFIG_VERSION}", file=sys.stderr)

    if validate and not silent:
        errors = validate_config(config)
        if errors:
            print("Warning: Config validation errors:", file=sys.stderr)
            for error in errors:
                print(f"  - {error}", file=sys.stderr)

    return normalize_config(config)


def save_config(config: dict, config_file: Optional[Path] = None) -> None:
    """Write ``config`` as JSON, owner-only, creating the directory if needed."""
    if config_file is None:
        config_file = get_config_file()

    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, "w") as f:
        json.dump(config, f, indent=2)

    # Webhook URLs and Pushover keys are secrets
    os.chmod(config_file, 0o600)


def reset_config(config_file: Optional[Path] = None) -> None:
    """Overwrite the config file with the defaults."""
    save_config(copy.deepcopy(DEFAULT_CONFIG), config_file=config_file)


def convert_config_value(key: str, value: str):
    """Convert a command-line string to the type a config key expects.

    Raises:
        KeyError: If the key is unknown or not settable from the command line.
        ValueError: If the value cannot be converted.
    """
    if key not in DEFAULT_CONFIG or key in ("accounts", "_config_version"):
        raise KeyError(key)

    expected_types = CONFIG_SCHEMA[key][0]
    if bool in expected_types:
        lowered = value.lower()
        if lowered in ("true", "1", "yes", "on"):
            return True
        if lowered in ("false", "0", "no", "off"):
            return False
        raise ValueError(f"'{key}' must be true or false")
    if int in expected_types:
        try:
            return int(value)
        except ValueError:
            pass
        if float in expected_types:
            try:
                return float(value)
            except ValueError:
                pass
        raise ValueError(f"'{key}' must be a number")
    return value if value.lower() != "null" else None


def get_notify_settings(config: dict) -> NotifySettings:
    """Build NotifySettings from a loaded config."""
    normalized = normalize_config(config)
    return NotifySettings(
        critical=normalized["notify_critical"],
        recovery=normalized["notify_recovery"],
        warning=normalized["notify_warning"],
        threshold_warning=normalized["threshold_warning"],
        threshold_critical=normalized["threshold_critical"],
    )


def load_accounts(config: dict, has_token: Optional[Callable[[str], bool]] = None) -> List[Account]:
    """Accounts from config, Claude accounts first, then Codex.

    Entries with an unsupported service or no id are skipped. Within a
    service the configured order is kept.

    Args:
        config: Loaded configuration.
        has_token: Optional predicate on the account key, used to fill has_token.
    """
    accounts = []
    entries = config.get("accounts") or []
    for service in SUPPORTED_SERVICES:
        for entry in entries:
            if not isinstance(entry, dict) or entry.get("service") != service:
                continue
            account_id = str(entry.get("id") or "")
            if not account_id:
                continue
            account = Account(
                service=service,
                id=account_id,
                name=str(entry.get("name") or account_id),
            )
            if has_token is not None:
                account.has_token = has_token(account.key)
            accounts.append(account)
    return accounts


__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE",
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG",
    "CONFIG_VERSION",
    "CONFIG_SCHEMA",
    "POLL_INTERVAL_MIN",
    "POLL_INTERVAL_MAX",
    "THRESHOLD_MIN",
    "THRESHOLD_MAX",
    "get_config_file",
    "validate_config",
    "migrate_config",
    "clamp_poll_interval",
    "clamp_threshold",
    "normalize_config",
    "load_config",
    "save_config",
    "reset_config",
    "convert_config_value",
    "get_notify_settings",
    "load_accounts",
]
