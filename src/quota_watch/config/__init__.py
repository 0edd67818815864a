"""Configuration management.

Modules:
    settings: Config loading, saving, validation, clamping and migration
    tokens: Account token store and vendor CLI token import
    security: Token/account validation and file permission checks
    audit: Opt-in audit log
"""

from quota_watch.config.settings import (
    CONFIG_DIR,
    CONFIG_FILE,
    CONFIG_SCHEMA,
    CONFIG_VERSION,
    DEFAULT_CONFIG,
    get_config_file,
    get_notify_settings,
    load_accounts,
    load_config,
    migrate_config,
    normalize_config,
    reset_config,
    save_config,
    validate_config,
)
from quota_watch.config.tokens import (
    FileTokenStore,
    get_tokens_path,
    import_cli_token,
)

__all__ = [
    # Settings
    "CONFIG_DIR",
    "CONFIG_FILE",
    "DEFAULT_CONFIG",
    "CONFIG_VERSION",
    "CONFIG_SCHEMA",
    "get_config_file",
    "get_notify_settings",
    "load_accounts",
    "validate_config",
    "migrate_config",
    "normalize_config",
    "load_config",
    "save_config",
    "reset_config",
    # Tokens
    "FileTokenStore",
    "get_tokens_path",
    "import_cli_token",
]
