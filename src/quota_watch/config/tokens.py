"""Token storage for monitored accounts.

Tokens are kept out of the config file, in a separate JSON object mapping
account keys ("service:id") to bearer tokens, readable only by the owner.
Tokens can also be imported from the credential files the Claude Code and
Codex CLIs write after login.
"""

from __future__ import annotations

import json
import os
import platform
import subprocess
from pathlib import Path

from quota_watch.config.audit import log_credential_access
from quota_watch.config.security import validate_token
from quota_watch.config.settings import CONFIG_DIR
from quota_watch.errors import AuthenticationMissingError, UnsupportedServiceError
from quota_watch.usage.models import SUPPORTED_SERVICES

TOKENS_FILE = CONFIG_DIR / "tokens.json"
TOKENS_ENV_VAR = "QUOTA_WATCH_TOKENS"

CLAUDE_KEYCHAIN_SERVICE = "Claude Code-credentials"


def get_tokens_path() -> Path:
    """Token store path, honouring the QUOTA_WATCH_TOKENS override."""
    override = os.environ.get(TOKENS_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return TOKENS_FILE


def ensure_service(service: str) -> None:
    """Raise UnsupportedServiceError unless service is claude or codex."""
    if service not in SUPPORTED_SERVICES:
        raise UnsupportedServiceError(service)


class FileTokenStore:
    """Account tokens in a 0600 JSON file."""

    def __init__(self, path: Path | None = None):
        self.path = path or get_tokens_path()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str) and v}

    def _save(self, tokens: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        with open(self.path, "w") as f:
            json.dump(tokens, f, indent=2, sort_keys=True)
        os.chmod(self.path, 0o600)

    def get(self, key: str) -> str | None:
        """Token for an account key, or None."""
        token = self._load().get(key)
        log_credential_access("read", key, success=token is not None)
        return token

    def has(self, key: str) -> bool:
        return key in self._load()

    def keys(self) -> list[str]:
        return sorted(self._load())

    def set(self, key: str, token: str) -> None:
        """Store a token after validating its format.

        Raises:
            AuthenticationMissingError: If the token is empty or malformed.
            UnsupportedServiceError: If the key names an unknown service.
        """
        ensure_service(key.partition(":")[0])
        token = token.strip()
        is_valid, error = validate_token(token)
        if not is_valid:
            log_credential_access("write", key, success=False, error=error)
            raise AuthenticationMissingError(error or "Token is required")

        tokens = self._load()
        tokens[key] = token
        self._save(tokens)
        log_credential_access("write", key)

    def delete(self, key: str) -> None:
        """Remove a token. Deleting a missing key is not an error."""
        tokens = self._load()
        if tokens.pop(key, None) is not None:
            self._save(tokens)
        log_credential_access("delete", key)


def get_claude_credentials_path() -> Path:
    """Claude Code CLI credentials file for the current platform."""
    if platform.system() == "Windows":
        base = Path(os.environ.get("APPDATA", "~")).expanduser()
    else:
        base = Path.home()
    return base / ".claude" / ".credentials.json"


def get_codex_auth_path() -> Path:
    """Codex CLI auth file (CODEX_HOME or ~/.codex)."""
    codex_home = os.environ.get("CODEX_HOME")
    base = Path(codex_home).expanduser() if codex_home else Path.home() / ".codex"
    return base / "auth.json"


def get_macos_keychain_credentials() -> dict | None:
    """Claude Code credentials from the macOS Keychain, or None."""
    try:
        result = subprocess.run(
            ["security", "find-generic-password", "-s", CLAUDE_KEYCHAIN_SERVICE, "-w"],
            capture_output=True,
            text=True,
            check=True,
        )
        return json.loads(result.stdout.strip())
    except (subprocess.CalledProcessError, json.JSONDecodeError, FileNotFoundError):
        return None


def _read_json(path: Path) -> dict | None:
    if not path.exists():
        return None
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError):
        return None
    return data if isinstance(data, dict) else None


def read_claude_cli_token() -> str | None:
    """Access token written by the Claude Code CLI, if logged in.

    Tries the macOS Keychain first on Darwin, then the credentials file.
    """
    creds = None
    if platform.system() == "Darwin":
        creds = get_macos_keychain_credentials()
    if not creds:
        creds = _read_json(get_claude_credentials_path())
    if not creds:
        return None
    oauth = creds.get("claudeAiOauth") or {}
    token = oauth.get("accessToken") if isinstance(oauth, dict) else None
    return token.strip() if isinstance(token, str) and token.strip() else None


def read_codex_cli_token() -> str | None:
    """Access token (or API key) written by the Codex CLI, if logged in."""
    auth = _read_json(get_codex_auth_path())
    if not auth:
        return None
    tokens = auth.get("tokens") or {}
    token = tokens.get("access_token") if isinstance(tokens, dict) else None
    if not isinstance(token, str) or not token.strip():
        token = auth.get("OPENAI_API_KEY")
    return token.strip() if isinstance(token, str) and token.strip() else None


CLI_TOKEN_READERS = {
    "claude": read_claude_cli_token,
    "codex": read_codex_cli_token,
}


def import_cli_token(store: FileTokenStore, service: str, account_id: str) -> str:
    """Copy a vendor CLI's token into the store for service:account_id.

    Returns:
        The account key the token was stored under.

    Raises:
        UnsupportedServiceError: If service is not claude or codex.
        AuthenticationMissingError: If the CLI has no usable token.
    """
    ensure_service(service)
    key = f"{service}:{account_id}"
    token = CLI_TOKEN_READERS[service]()
    if not token:
        log_credential_access("import", key, success=False, error="no CLI token")
        raise AuthenticationMissingError(f"No {service} CLI login found")
    store.set(key, token)
    log_credential_access("import", key)
    return key


__all__ = [
    "TOKENS_FILE",
    "TOKENS_ENV_VAR",
    "get_tokens_path",
    "ensure_service",
    "FileTokenStore",
    "get_claude_credentials_path",
    "get_codex_auth_path",
    "get_macos_keychain_credentials",
    "read_claude_cli_token",
    "read_codex_cli_token",
    "import_cli_token",
]
