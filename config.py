"""
Settings for the tracker: config.json defaults with environment overrides.
Env vars take precedence so API keys and PINs can live in .env instead of config.json.
"""

import json
import os
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_AUTO_REFRESH_MINUTES = 60
MIN_AUTO_REFRESH_MINUTES = 5

LOCAL_USER = {
    "id": "local",
    "email": "",
    "displayName": "Local User",
    "photo": "",
}


def load_config(config_path: Path) -> dict:
    """Load configuration from JSON. Missing file means defaults only."""
    if not Path(config_path).exists():
        return {}
    with open(config_path, "r", encoding="utf-8") as f:
        return json.load(f)


def get_effective_api_keys(config: dict) -> dict:
    """API keys with environment overrides."""
    keys = dict(config.get("api_keys") or {})
    for env_name, key in (
        ("GOLDAPI_IO", "goldapi_io"),
        ("ALPHA_VANTAGE_KEY", "alpha_vantage"),
        ("COMMODITIES_API_KEY", "commodities_api"),
    ):
        if os.environ.get(env_name):
            keys[key] = os.environ.get(env_name, "")
    return keys


def get_users(config: dict) -> list:
    """Identities for the PIN login. TRACKER_PIN adds a single local user."""
    users = [dict(u) for u in config.get("users", []) if u.get("id") and u.get("pin")]
    pin = os.environ.get("TRACKER_PIN", "")
    if pin:
        users.append(dict(LOCAL_USER, pin=pin))
    return users


def load_settings(base: Path, load_env: bool = True) -> dict:
    base = Path(base)
    if load_env:
        load_dotenv(base / ".env")
    config = load_config(base / "config.json")

    data_dir = os.environ.get("TRACKER_DATA_DIR") or config.get("data_dir") or "data"
    data_dir = Path(data_dir)
    if not data_dir.is_absolute():
        data_dir = base / data_dir

    auto_cfg = dict(config.get("auto_refresh") or {})
    interval = int(auto_cfg.get("interval_minutes", DEFAULT_AUTO_REFRESH_MINUTES))
    auto_cfg["interval_minutes"] = max(interval, MIN_AUTO_REFRESH_MINUTES)
    auto_cfg.setdefault("enabled", True)

    return {
        "base": base,
        "data_dir": data_dir,
        "api_keys": get_effective_api_keys(config),
        "price_timeout_seconds": float(
            os.environ.get("PRICE_TIMEOUT_SECONDS") or config.get("price_timeout_seconds", 5)
        ),
        "users": get_users(config),
        "auto_refresh": auto_cfg,
        "secret_key": os.environ.get("FLASK_SECRET") or config.get("secret_key") or "tracker-dev-key-change-me",
        "host": os.environ.get("HOST", "0.0.0.0"),
        "port": int(os.environ.get("PORT", config.get("port", 9000))),
    }
