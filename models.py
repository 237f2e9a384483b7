"""Snapshot record and investment types for the tracker."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

LEDGER_FIELDS = ["investmentName", "investmentType", "amount", "value", "timestamp"]


class InvestmentType(str, Enum):
    GOLD = "GOLD"
    SILVER = "SILVER"
    BTC = "BTC"
    ETH = "ETH"
    LTC = "LTC"
    SOL = "SOL"
    XRP = "XRP"
    CUSTOM = "CUSTOM"

    @property
    def is_metal(self) -> bool:
        return self in (InvestmentType.GOLD, InvestmentType.SILVER)

    @property
    def is_crypto(self) -> bool:
        return not self.is_metal and self is not InvestmentType.CUSTOM


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix (2025-01-15T10:00:00.000Z)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse a ledger timestamp back into an aware UTC datetime."""
    s = (value or "").strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def truncate_ms(dt: datetime) -> datetime:
    return dt.replace(microsecond=(dt.microsecond // 1000) * 1000)


ONE_MS = timedelta(milliseconds=1)


@dataclass(frozen=True)
class Snapshot:
    investment_name: str
    investment_type: InvestmentType
    amount: float
    value: float
    timestamp: datetime

    @property
    def timestamp_iso(self) -> str:
        return format_timestamp(self.timestamp)

    def to_dict(self) -> dict:
        return {
            "investmentName": self.investment_name,
            "investmentType": self.investment_type.value,
            "amount": self.amount,
            "value": self.value,
            "timestamp": self.timestamp_iso,
        }

    def to_row(self) -> list:
        return [
            self.investment_name,
            self.investment_type.value,
            repr(float(self.amount)),
            repr(float(self.value)),
            self.timestamp_iso,
        ]

    @classmethod
    def from_row(cls, row: list) -> "Snapshot":
        """Build from one ledger row. Raises ValueError on malformed input."""
        if len(row) != len(LEDGER_FIELDS):
            raise ValueError(f"expected {len(LEDGER_FIELDS)} fields, got {len(row)}")
        name, itype, amount, value, ts = row
        return cls(
            investment_name=name,
            investment_type=InvestmentType(itype.strip().upper()),
            amount=float(amount),
            value=float(value),
            timestamp=parse_timestamp(ts),
        )
