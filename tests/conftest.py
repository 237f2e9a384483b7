from datetime import datetime, timedelta, timezone

import pytest

from errors import PriceUnavailable, UnsupportedAssetType
from ledger import Ledger
from models import InvestmentType
from rate_limiter import RateLimiter
from server import create_app
from tracker import InvestmentTracker

T0 = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeResolver:
    """Fixed prices per symbol; symbols in `failing` raise PriceUnavailable."""

    def __init__(self, prices=None, failing=()):
        self.prices = dict(prices or {"GOLD": 2700.0, "SILVER": 31.0, "BTC": 60000.0})
        self.failing = set(failing)
        self.calls = []

    def resolve_price(self, investment_type):
        symbol = getattr(investment_type, "value", investment_type)
        self.calls.append(symbol)
        if symbol == "CUSTOM" or symbol not in InvestmentType.__members__:
            raise UnsupportedAssetType(f"No price source for {symbol}")
        if symbol in self.failing or symbol not in self.prices:
            raise PriceUnavailable(f"Failed to fetch {symbol} price")
        return self.prices[symbol]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def ledger(tmp_path, clock):
    return Ledger(tmp_path / "data", clock=clock)


@pytest.fixture
def limiter(clock):
    return RateLimiter(clock=clock)


@pytest.fixture
def tracker(ledger, limiter, resolver, clock):
    return InvestmentTracker(ledger, limiter, resolver, clock=clock)


def make_settings(tmp_path, users=None):
    return {
        "base": tmp_path,
        "data_dir": tmp_path / "data",
        "api_keys": {},
        "price_timeout_seconds": 1,
        "users": users or [],
        "auto_refresh": {"enabled": False, "interval_minutes": 60},
        "secret_key": "test-secret",
        "host": "127.0.0.1",
        "port": 0,
    }


@pytest.fixture
def app(tmp_path, tracker):
    app = create_app(make_settings(tmp_path), tracker)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
