import json

from config import load_settings
from models import InvestmentType, format_timestamp, parse_timestamp
from conftest import T0


def test_defaults_without_config(tmp_path, monkeypatch):
    for name in ("GOLDAPI_IO", "ALPHA_VANTAGE_KEY", "COMMODITIES_API_KEY", "TRACKER_PIN", "TRACKER_DATA_DIR",
                 "PRICE_TIMEOUT_SECONDS", "PORT"):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings(tmp_path, load_env=False)
    assert settings["data_dir"] == tmp_path / "data"
    assert settings["users"] == []
    assert settings["price_timeout_seconds"] == 5
    assert settings["auto_refresh"] == {"enabled": True, "interval_minutes": 60}
    assert settings["port"] == 9000


def test_env_overrides_config(tmp_path, monkeypatch):
    (tmp_path / "config.json").write_text(json.dumps({
        "api_keys": {"goldapi_io": "from-config", "alpha_vantage": "av"},
        "users": [{"id": "u1", "email": "a@b.c", "displayName": "A", "photo": "", "pin": "9"}, {"id": "nopin"}],
        "auto_refresh": {"interval_minutes": 1},
        "data_dir": "ledgers",
    }), encoding="utf-8")
    monkeypatch.setenv("GOLDAPI_IO", "from-env")
    monkeypatch.setenv("TRACKER_PIN", "4321")
    monkeypatch.setenv("PRICE_TIMEOUT_SECONDS", "2.5")
    for name in ("TRACKER_DATA_DIR", "ALPHA_VANTAGE_KEY", "COMMODITIES_API_KEY"):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings(tmp_path, load_env=False)
    assert settings["api_keys"] == {"goldapi_io": "from-env", "alpha_vantage": "av"}
    assert [u["id"] for u in settings["users"]] == ["u1", "local"]
    assert settings["users"][1]["pin"] == "4321"
    assert settings["auto_refresh"]["interval_minutes"] == 5
    assert settings["data_dir"] == tmp_path / "ledgers"
    assert settings["price_timeout_seconds"] == 2.5


def test_timestamp_format_round_trip():
    text = format_timestamp(T0)
    assert text == "2025-01-15T10:00:00.000Z"
    assert parse_timestamp(text) == T0
    assert parse_timestamp("2025-01-15T10:00:00+00:00") == T0


def test_investment_type_groups():
    assert InvestmentType.GOLD.is_metal and not InvestmentType.GOLD.is_crypto
    assert InvestmentType.SOL.is_crypto
    assert not InvestmentType.CUSTOM.is_crypto and not InvestmentType.CUSTOM.is_metal
