"""Settings needed before the database is opened or the server is bound.

Lives in ~/.ledgercal/config.json and imports nothing else from the app.
Missing keys fall back to DEFAULTS.
"""
import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".ledgercal"
CONFIG_FILE = CONFIG_DIR / "config.json"

DEFAULTS = {
    "db_folder": None,
    "host": "127.0.0.1",
    "port": 3000,
    "persist_delay_seconds": 0.5,
    "server_expansion_months": 12,
    "log_level": "INFO",
}

_CASTS = {
    "port": int,
    "persist_delay_seconds": float,
    "server_expansion_months": int,
    "log_level": str.upper,
}


def load_config() -> dict:
    """Stored settings only; an absent or unreadable file reads as {}."""
    if not CONFIG_FILE.exists():
        return {}
    try:
        data = json.loads(CONFIG_FILE.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        logger.warning("Ignoring unreadable config file %s", CONFIG_FILE)
        return {}
    return data if isinstance(data, dict) else {}


def save_config(config: dict) -> None:
    """Write through a temporary file so a crash never leaves half a config."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    tmp = CONFIG_FILE.with_suffix(".tmp")
    try:
        tmp.write_text(json.dumps(config, indent=2), encoding="utf-8")
        os.replace(tmp, CONFIG_FILE)
    except OSError:
        logger.exception("Could not save config to %s", CONFIG_FILE)
        tmp.unlink(missing_ok=True)


def effective_config() -> dict:
    """DEFAULTS overlaid with the stored settings."""
    return {**DEFAULTS, **load_config()}


def update_config(key: str, value) -> dict:
    """Store one setting (None removes it) and return the effective config.

    Raises ValueError for unknown keys or values of the wrong type.
    """
    if key not in DEFAULTS:
        raise ValueError(f"Unknown setting '{key}'. Known: {', '.join(DEFAULTS)}.")
    config = load_config()
    if value is None:
        config.pop(key, None)
    else:
        cast = _CASTS.get(key, str)
        try:
            config[key] = cast(value)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid value for {key}: {value!r}") from None
    save_config(config)
    return effective_config()
