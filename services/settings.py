"""Settings service - persistent key-value configuration.

Settings live in the ``settings`` table of the local embedded store so the
client keeps its configuration even when the remote store is down. The
SETTINGS_REGISTRY defines all known settings with their defaults,
categories, and optional validators.
"""
import logging

from db.local_store import get_connection
from shared.constants import DEFAULT_REMOTE_API_URL
from shared.exceptions import SettingsError

logger = logging.getLogger(__name__)


# --- Validators ---

def _validate_bool(value: str) -> str | None:
    """Validate a boolean flag string.

    Args:
        value: String to validate.

    Returns:
        Error message string if invalid, None if valid.
    """
    if value and value.strip().lower() not in ("true", "false", "1", "0", "yes", "no"):
        return f"Must be true or false, got '{value}'"
    return None


def _validate_url(value: str) -> str | None:
    """Validate an http(s) base URL.

    Args:
        value: URL string to validate.

    Returns:
        Error message string if invalid, None if valid.
    """
    if value and not value.startswith(("http://", "https://")):
        return f"Must be an http(s) URL, got '{value}'"
    return None


def _validate_positive_int(value: str) -> str | None:
    """Validate that value is a positive integer string."""
    if value and not value.strip().isdigit():
        return f"Must be a positive integer, got '{value}'"
    return None


def _validate_positive_float(value: str) -> str | None:
    """Validate that value is a non-negative float string."""
    if not value:
        return None
    try:
        f = float(value)
        if f < 0:
            return f"Must be non-negative, got '{value}'"
    except ValueError:
        return f"Must be a number, got '{value}'"
    return None


def _validate_log_level(value: str) -> str | None:
    """Validate Python logging level name."""
    valid = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
    if value and value.upper() not in valid:
        return f"Invalid log level '{value}'. Must be one of: {', '.join(valid)}"
    return None


# --- Settings Registry ---
# Each entry: (default, category, validator_fn_or_None)

SETTINGS_REGISTRY = {
    # Remote store
    "remote_api_url":          (DEFAULT_REMOTE_API_URL, "remote", _validate_url),
    "use_remote_api":          ("true", "remote", _validate_bool),
    # Empty = no timeout; a hung request only blocks its own save
    "remote_timeout_seconds":  ("", "remote", _validate_positive_float),

    # System
    "log_level":               ("INFO", "system", _validate_log_level),
    "log_retention_days":      ("30", "system", _validate_positive_int),
}


def init_settings():
    """Insert default settings if they don't exist yet. Call on app startup."""
    with get_connection() as conn:
        for key, (default_value, _cat, _val) in SETTINGS_REGISTRY.items():
            conn.execute(
                "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?)",
                (key, default_value)
            )
        conn.commit()


def get_setting(key: str) -> str:
    """Get a setting value.

    Args:
        key: Setting key name.

    Returns:
        The setting value as a string, or the default if not stored.
    """
    with get_connection() as conn:
        row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
    if row is None or row["value"] is None:
        reg = SETTINGS_REGISTRY.get(key)
        return reg[0] if reg else ""
    return row["value"]


def get_bool_setting(key: str) -> bool:
    return get_setting(key).strip().lower() in ("true", "1", "yes")


def get_float_setting(key: str) -> float | None:
    """Float value of a setting, None when empty."""
    value = get_setting(key).strip()
    if not value:
        return None
    try:
        return float(value)
    except ValueError as e:
        raise SettingsError(f"Setting '{key}' is not a number: {value!r}") from e


def set_setting(key: str, value: str) -> str:
    """Set a setting value after validation.

    Args:
        key: Setting key name.
        value: New value to store.

    Returns:
        Empty string on success, error message string on validation failure.
    """
    reg = SETTINGS_REGISTRY.get(key)
    if reg and reg[2]:
        error = reg[2](value)
        if error:
            logger.warning("Setting validation failed for '%s': %s", key, error)
            return error

    with get_connection() as conn:
        conn.execute(
            """INSERT INTO settings (key, value)
               VALUES (?, ?)
               ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                              updated_at = CURRENT_TIMESTAMP""",
            (key, value)
        )
        conn.commit()
    return ""


def get_all_settings() -> dict:
    """Get all settings as a dict, registry defaults filled in."""
    result = {key: reg[0] for key, reg in SETTINGS_REGISTRY.items()}
    with get_connection() as conn:
        rows = conn.execute("SELECT key, value FROM settings").fetchall()
    for row in rows:
        result[row["key"]] = row["value"]
    return result


def get_settings_by_category(category: str) -> dict:
    """Get all settings for a given category.

    Args:
        category: One of 'remote', 'system'.

    Returns:
        Dict of {key: value} for settings in that category.
    """
    keys = [k for k, v in SETTINGS_REGISTRY.items() if v[1] == category]
    return {key: get_setting(key) for key in keys}
