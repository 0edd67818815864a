"""Security utilities for token and account validation and file protection."""

from __future__ import annotations

import os
import re
import stat
from pathlib import Path

# Bearer tokens from either vendor: JWTs, opaque OAuth tokens and API keys
TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_\-./]+$")
TOKEN_MAX_LENGTH = 4096

ACCOUNT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_\-.]+$")
ACCOUNT_ID_MAX_LENGTH = 128
ACCOUNT_NAME_MAX_LENGTH = 256


def validate_token(token: str) -> tuple[bool, str | None]:
    """Validate bearer token format.

    Args:
        token: Token string to validate.

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not token:
        return False, "Token is required"

    if len(token) > TOKEN_MAX_LENGTH:
        return False, f"Token is too long (maximum {TOKEN_MAX_LENGTH} characters)"

    if not TOKEN_PATTERN.match(token):
        return False, "Token contains invalid characters"

    return True, None


def validate_account_id(account_id: str) -> tuple[bool, str | None]:
    """Validate an account id (letters, digits, '-', '_', '.')."""
    if not account_id:
        return False, "Account id is required"
    if len(account_id) > ACCOUNT_ID_MAX_LENGTH:
        return False, f"Account id is too long (maximum {ACCOUNT_ID_MAX_LENGTH} characters)"
    if not ACCOUNT_ID_PATTERN.match(account_id):
        return False, "Account id contains invalid characters"
    return True, None


def validate_account_name(name: str) -> tuple[bool, str | None]:
    """Validate an account display name."""
    if not name or not name.strip():
        return False, "Account name is required"
    if len(name) > ACCOUNT_NAME_MAX_LENGTH:
        return False, f"Account name is too long (maximum {ACCOUNT_NAME_MAX_LENGTH} characters)"
    if any(ord(ch) < 32 or ord(ch) == 127 for ch in name):
        return False, "Account name contains control characters"
    return True, None


def mask_token(token: str, prefix_len: int = 8, suffix_len: int = 4) -> str:
    """Shorten a secret for display ("sk-ant-o...wxyz").

    Secrets too short to keep both ends are starred out entirely.
    """
    if not token:
        return "<empty>"
    if len(token) > prefix_len + suffix_len:
        return f"{token[:prefix_len]}...{token[-suffix_len:]}"
    return "*" * len(token)


# Any group or other permission bit makes a secret file insecure
_SHARED_BITS = stat.S_IRWXG | stat.S_IRWXO


def check_file_permissions(path: Path) -> tuple[bool, str | None]:
    """Whether a secret file is private to its owner.

    Missing files are secure: nothing to leak yet.

    Returns:
        ``(is_secure, warning)``. The warning names the current mode.
    """
    try:
        mode = path.stat().st_mode
    except FileNotFoundError:
        return True, None
    except OSError as e:
        return False, f"Cannot check permissions for {path}: {e}"
    if mode & _SHARED_BITS:
        return False, f"File {path} has insecure permissions ({stat.S_IMODE(mode):o}), should be 600"
    return True, None


def fix_file_permissions(path: Path) -> tuple[bool, str | None]:
    """chmod a secret file to 0600. Returns ``(fixed, error)``."""
    try:
        os.chmod(path, 0o600)
    except FileNotFoundError:
        return True, None
    except OSError as e:
        return False, f"Cannot fix permissions for {path}: {e}"
    return True, None


def check_secrets_security(paths: list[Path], auto_fix: bool = True) -> list[str]:
    """Audit the config file and token store, tightening them when allowed.

    Args:
        paths: Files that hold secrets.
        auto_fix: Repair insecure modes instead of only reporting them.

    Returns:
        One message per insecure file. Empty when everything is private.
    """
    messages = []
    for path in paths:
        is_secure, warning = check_file_permissions(path)
        if is_secure:
            continue
        if not auto_fix:
            messages.append(warning or f"File {path} is not private")
            continue
        fixed, fix_error = fix_file_permissions(path)
        messages.append(
            f"Fixed insecure permissions on {path}" if fixed else f"{warning}. Auto-fix failed: {fix_error}"
        )
    return messages


__all__ = [
    "TOKEN_PATTERN",
    "TOKEN_MAX_LENGTH",
    "validate_token",
    "validate_account_id",
    "validate_account_name",
    "mask_token",
    "check_file_permissions",
    "fix_file_permissions",
    "check_secrets_security",
]
