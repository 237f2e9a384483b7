"""
Price lookups for tracked assets.

Metals (GOLD, SILVER) walk an ordered chain of providers: Yahoo Finance futures
(free, no key), then GoldAPI.io, Alpha Vantage and Commodities-API when their keys
are set, then the last good price in price_cache.json, then a fixed constant.
Metals never fail.

Crypto goes to CoinGecko (free, no key) only. No cache and no constant: a bad
response raises PriceUnavailable.
"""

import json
from collections import namedtuple
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import requests
import yfinance as yf

from errors import PriceUnavailable, UnsupportedAssetType
from models import InvestmentType

DEFAULT_TIMEOUT = 5

# Approximate spot prices per troy ounce, used only when every source fails
FALLBACK_METALS = {
    "GOLD": 2650.0,
    "SILVER": 30.5,
}

# Reasonable price ranges for sanity checking
_METALS_SANITY = {
    "GOLD":   (1500, 15000),
    "SILVER": (15, 300),
}

_YAHOO_SYMBOLS = {"GOLD": "GC=F", "SILVER": "SI=F"}
_ISO_METALS = {"GOLD": "XAU", "SILVER": "XAG"}

# CoinGecko symbol to API id mapping
COINGECKO_IDS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "LTC": "litecoin",
    "SOL": "solana",
    "XRP": "ripple",
}

PriceProvider = namedtuple("PriceProvider", ["name", "fetch"])


def _metal_sane(metal: str, price) -> bool:
    lo, hi = _METALS_SANITY.get(metal, (0, 1e9))
    return price is not None and lo <= price <= hi


# ── Metals providers ──

def yahoo_metal_provider(timeout: float = DEFAULT_TIMEOUT) -> PriceProvider:
    """Gold/silver futures via yfinance (GC=F, SI=F)."""
    def fetch(metal: str) -> Optional[float]:
        ticker = yf.Ticker(_YAHOO_SYMBOLS[metal])
        hist = ticker.history(period="5d", timeout=timeout)
        if hist is None or len(hist) == 0:
            raise ValueError("empty history")
        return float(hist["Close"].dropna().iloc[-1])
    return PriceProvider("yahoo", fetch)


def goldapi_provider(api_key: str, timeout: float = DEFAULT_TIMEOUT) -> PriceProvider:
    def fetch(metal: str) -> Optional[float]:
        if not (api_key and api_key.strip()):
            return None
        headers = {"x-access-token": api_key.strip(), "Content-Type": "application/json"}
        r = requests.get(f"https://www.goldapi.io/api/{_ISO_METALS[metal]}/USD", headers=headers, timeout=timeout)
        r.raise_for_status()
        return float(r.json()["price"])
    return PriceProvider("goldapi", fetch)


def alpha_vantage_provider(api_key: str, timeout: float = DEFAULT_TIMEOUT) -> PriceProvider:
    def fetch(metal: str) -> Optional[float]:
        if not (api_key and api_key.strip()):
            return None
        params = {
            "function": "CURRENCY_EXCHANGE_RATE",
            "from_currency": _ISO_METALS[metal],
            "to_currency": "USD",
            "apikey": api_key.strip(),
        }
        r = requests.get("https://www.alphavantage.co/query", params=params, timeout=timeout)
        r.raise_for_status()
        rate = r.json()["Realtime Currency Exchange Rate"]
        return float(rate["5. Exchange Rate"])
    return PriceProvider("alphavantage", fetch)


def commodities_api_provider(api_key: str, timeout: float = DEFAULT_TIMEOUT) -> PriceProvider:
    """Commodities-API quotes metals as units per USD, so the price is the inverse."""
    def fetch(metal: str) -> Optional[float]:
        if not (api_key and api_key.strip()):
            return None
        params = {"access_key": api_key.strip(), "base": "USD", "symbols": metal}
        r = requests.get("https://commodities-api.com/api/latest", params=params, timeout=timeout)
        r.raise_for_status()
        data = r.json()
        if not data.get("success", True):
            raise ValueError("unsuccessful response")
        rate = float(data["data"]["rates"][metal])
        if rate <= 0:
            raise ValueError(f"bad rate {rate}")
        return 1 / rate
    return PriceProvider("commodities-api", fetch)


# ── Crypto provider ──

def coingecko_provider(timeout: float = DEFAULT_TIMEOUT) -> PriceProvider:
    def fetch(symbol: str) -> Optional[float]:
        cg_id = COINGECKO_IDS[symbol]
        url = f"https://api.coingecko.com/api/v3/simple/price?ids={cg_id}&vs_currencies=usd"
        r = requests.get(url, timeout=timeout)
        r.raise_for_status()
        return float(r.json()[cg_id]["usd"])
    return PriceProvider("coingecko", fetch)


# ── Price cache (last good live price per symbol) ──

def _price_cache_path(base: Path) -> Path:
    return Path(base) / "price_cache.json"


def load_price_cache(base: Path) -> dict:
    """Load cached prices. Used when every live metals source fails."""
    path = _price_cache_path(base)
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        print(f"[Prices] Cache unreadable ({e})")
        return {}


def save_price_cache(base: Path, symbol: str, price: float) -> None:
    """Record one live price. Merges with existing cache."""
    path = _price_cache_path(base)
    cache = load_price_cache(base)
    cache.setdefault("prices", {})[symbol] = price
    cache.setdefault("updated", {})[symbol] = datetime.now().isoformat()
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(cache, f, indent=2)
    except OSError as e:
        print(f"[Prices] Cache write failed: {e}")


class PriceResolver:
    """Resolve a current USD unit price for an investment type."""

    def __init__(
        self,
        metal_providers: list,
        crypto_providers: list,
        cache_dir: Optional[Path] = None,
        fallback: Optional[dict] = None,
    ):
        self.metal_providers = list(metal_providers)
        self.crypto_providers = list(crypto_providers)
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self.fallback = dict(FALLBACK_METALS if fallback is None else fallback)

    @classmethod
    def from_settings(cls, settings: dict) -> "PriceResolver":
        keys = settings.get("api_keys", {})
        timeout = float(settings.get("price_timeout_seconds", DEFAULT_TIMEOUT))
        return cls(
            metal_providers=[
                yahoo_metal_provider(timeout),
                goldapi_provider(keys.get("goldapi_io", ""), timeout),
                alpha_vantage_provider(keys.get("alpha_vantage", ""), timeout),
                commodities_api_provider(keys.get("commodities_api", ""), timeout),
            ],
            crypto_providers=[coingecko_provider(timeout)],
            cache_dir=settings.get("base"),
        )

    def resolve_price(self, investment_type) -> float:
        price, _ = self.resolve_with_source(investment_type)
        return price

    def resolve_with_source(self, investment_type) -> tuple:
        """Return (price, source name). Raises UnsupportedAssetType or PriceUnavailable."""
        symbol = _normalize_symbol(investment_type)
        itype = InvestmentType.__members__.get(symbol)
        if itype is not None and itype.is_metal:
            return self._resolve_metal(symbol)
        if itype is not None and itype.is_crypto:
            return self._resolve_crypto(symbol)
        raise UnsupportedAssetType(f"No price source for {symbol or 'empty symbol'}")

    def _try_chain(self, symbol: str, providers: list, accept: Callable[[float], bool]):
        for provider in providers:
            try:
                price = provider.fetch(symbol)
            except Exception as e:
                print(f"[Prices] {symbol} {provider.name} failed: {e}")
                continue
            if price is None:
                continue  # not configured
            if price > 0 and accept(price):
                return price, provider.name
            print(f"[Prices] {symbol} {provider.name} rejected implausible value {price}")
        return None, None

    def _resolve_metal(self, metal: str) -> tuple:
        price, source = self._try_chain(metal, self.metal_providers, lambda p: _metal_sane(metal, p))
        if price is not None:
            if self.cache_dir:
                save_price_cache(self.cache_dir, metal, price)
        elif self.cache_dir:
            cached = load_price_cache(self.cache_dir).get("prices", {}).get(metal)
            if cached and _metal_sane(metal, cached):
                price, source = float(cached), "cache"
        if price is None:
            print(f"[Prices] Using fallback price for {metal}; all sources unavailable")
            price, source = self.fallback[metal], "fallback"
        print(f"[Prices] {metal} ${price:,.2f} via {source}")
        return price, source

    def _resolve_crypto(self, symbol: str) -> tuple:
        price, source = self._try_chain(symbol, self.crypto_providers, lambda p: True)
        if price is None:
            raise PriceUnavailable(f"Failed to fetch {symbol} price")
        print(f"[Prices] {symbol} ${price:,.2f} via {source}")
        return price, source


def _normalize_symbol(investment_type) -> str:
    if isinstance(investment_type, InvestmentType):
        return investment_type.value
    return (investment_type or "").strip().upper()
