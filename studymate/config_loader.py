"""Configuration loader with YAML defaults and environment variable overrides."""

import os
import yaml

_USER_CONFIG_PATH = "~/.config/studymate/config.yaml"

_TRUTHY = {"1", "true", "yes", "on"}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _expand_paths(config: dict) -> dict:
    """Expand ~ in any string values that look like paths."""
    result = {}
    for key, value in config.items():
        if isinstance(value, dict):
            result[key] = _expand_paths(value)
        elif isinstance(value, str) and value.startswith("~"):
            result[key] = os.path.expanduser(value)
        else:
            result[key] = value
    return result


def _apply_env_overrides(config: dict) -> dict:
    """Apply environment variable overrides."""
    server_url = os.environ.get("STUDYMATE_SERVER_URL")
    if server_url:
        config.setdefault("server", {})["base_url"] = server_url

    storage_path = os.environ.get("STUDYMATE_STORAGE_PATH")
    if storage_path:
        config.setdefault("storage", {})["path"] = storage_path

    log_level = os.environ.get("STUDYMATE_LOG_LEVEL")
    if log_level:
        config.setdefault("logging", {})["level"] = log_level

    # Only seeds the durable flag on first run; see app.build_app
    demo_mode = os.environ.get("STUDYMATE_DEMO_MODE")
    if demo_mode:
        config["demo_mode"] = demo_mode.strip().lower() in _TRUTHY

    return config


def _get_default_config_path() -> str:
    """Get the packaged default config path."""
    return os.path.join(os.path.dirname(os.path.abspath(__file__)), "config", "default.yaml")


def load_config(config_path: str | None = None) -> dict:
    """Load configuration from YAML file with env overrides.

    Args:
        config_path: Path to YAML config file. Uses the packaged
            config/default.yaml if None.

    Returns:
        Merged configuration dict.
    """
    path = config_path or _get_default_config_path()

    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        config = yaml.safe_load(f) or {}

    user_config_path = os.path.expanduser(_USER_CONFIG_PATH)
    if os.path.exists(user_config_path):
        with open(user_config_path) as f:
            user_config = yaml.safe_load(f) or {}
        config = _deep_merge(config, user_config)

    config = _apply_env_overrides(config)
    config = _expand_paths(config)

    return config


_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config(config: dict) -> list[str]:
    """Validate configuration values. Returns a list of error strings (empty = valid)."""
    errors: list[str] = []

    server = config.get("server", {})
    base_url = server.get("base_url", "")
    if not isinstance(base_url, str) or not base_url.startswith(("http://", "https://")):
        errors.append(f"server.base_url must be an http(s) URL, got '{base_url}'")

    conn = config.get("connection", {})
    for name in ("check_interval", "timeout", "base_delay", "max_delay"):
        value = conn.get(name, 1)
        if not _is_number(value) or value <= 0:
            errors.append(f"connection.{name} must be a positive number")

    max_retries = conn.get("max_retries", 5)
    if not isinstance(max_retries, int) or isinstance(max_retries, bool) or max_retries < 1:
        errors.append("connection.max_retries must be a positive integer")

    base_delay, max_delay = conn.get("base_delay", 1.0), conn.get("max_delay", 30.0)
    if _is_number(base_delay) and _is_number(max_delay) and base_delay > max_delay:
        errors.append("connection.base_delay must not exceed connection.max_delay")

    storage = config.get("storage", {})
    path = storage.get("path", "")
    if not isinstance(path, str) or not path:
        errors.append("storage.path must be a non-empty string")

    quota = storage.get("quota_bytes", 1)
    if not isinstance(quota, int) or quota <= 0:
        errors.append("storage.quota_bytes must be a positive integer")

    level = str(config.get("logging", {}).get("level", "INFO")).upper()
    if level not in _VALID_LOG_LEVELS:
        errors.append(f"Invalid logging level '{level}', must be one of {_VALID_LOG_LEVELS}")

    return errors
