"""
Investment tracker: records new investments and refreshes their market value.

refresh() is the rate-limited path: admission check, latest snapshot lookup,
price resolution, ledger append, then the limiter records the update. save()
records a user-entered snapshot and is never rate-limited.

Investments whose latest snapshot is older than a day are refreshed automatically
when a view loads (load_view), once per load.
"""

import math
from datetime import timedelta
from typing import Callable, Optional

from errors import (
    NotFound,
    PriceFetchFailed,
    PriceUnavailable,
    RateLimited,
    TrackerError,
    UnsupportedAssetType,
    ValidationError,
)
from models import InvestmentType, utc_now

STALE_AFTER = timedelta(days=1)


def latest_by_name(snapshots) -> dict:
    """Latest snapshot per investment name. Equal timestamps: whichever comes first wins."""
    latest = {}
    for s in snapshots:
        current = latest.get(s.investment_name)
        if current is None or s.timestamp > current.timestamp:
            latest[s.investment_name] = s
    return latest


def stale_investment_names(snapshots, now, max_age: timedelta = STALE_AFTER) -> list:
    return [
        name for name, s in latest_by_name(snapshots).items()
        if s.investment_type is not InvestmentType.CUSTOM and now - s.timestamp >= max_age
    ]


def _parse_number(payload: dict, field: str) -> float:
    raw = payload.get(field)
    if raw is None or (isinstance(raw, str) and not raw.strip()) or isinstance(raw, bool):
        raise ValidationError(f"{field} is required")
    try:
        num = float(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not math.isfinite(num):
        raise ValidationError(f"{field} must be a finite number")
    return num


def validate_investment_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("investmentName is required")
    if any(ch in name for ch in ",\r\n"):
        raise ValidationError("investmentName must not contain commas or line breaks")
    if name != name.strip():
        raise ValidationError("investmentName must not start or end with whitespace")
    return name


def validate_snapshot_payload(payload: dict) -> tuple:
    """Return (name, type, amount, value) or raise ValidationError."""
    name = validate_investment_name(payload.get("investmentName"))
    raw_type = payload.get("investmentType")
    try:
        itype = InvestmentType(str(raw_type or "").strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown investmentType: {raw_type}")
    amount = _parse_number(payload, "amount")
    if amount <= 0:
        raise ValidationError("amount must be greater than zero")
    value = _parse_number(payload, "value")
    if value < 0:
        raise ValidationError("value must not be negative")
    if itype is InvestmentType.CUSTOM and value == 0:
        raise ValidationError("Please enter a custom value")
    return name, itype, amount, value


class InvestmentTracker:
    def __init__(self, ledger, limiter, resolver, clock: Callable = utc_now):
        self.ledger = ledger
        self.limiter = limiter
        self.resolver = resolver
        self.clock = clock

    def save(self, user_id: str, payload: dict):
        name, itype, amount, value = validate_snapshot_payload(payload or {})
        snapshot = self.ledger.append(user_id, name, itype, amount, value)
        print(f"[Save] {user_id}: {name} ({itype.value}) amount={amount:g} value=${value:,.2f}")
        return snapshot

    def refresh(self, user_id: str, investment_name: str) -> dict:
        name = validate_investment_name(investment_name)
        with self.limiter.hold(user_id, name):
            admission = self.limiter.check_admit(user_id, name)
            if not admission.admitted:
                raise RateLimited(admission.seconds_remaining)

            latest = self.ledger.latest(user_id, name)
            if latest is None:
                raise NotFound(f"No history for investment '{name}'")
            if latest.investment_type is InvestmentType.CUSTOM:
                raise UnsupportedAssetType("Custom investments cannot be updated automatically")

            try:
                unit_price = self.resolver.resolve_price(latest.investment_type)
            except (PriceUnavailable, UnsupportedAssetType) as e:
                raise PriceFetchFailed(f"Failed to fetch current price: {e.message}")

            total = unit_price * latest.amount
            snapshot = self.ledger.append(user_id, name, latest.investment_type, latest.amount, total)
            self.limiter.record_success(user_id, name)

        print(f"[Update] {user_id}: {name} {latest.amount:g} x ${unit_price:,.2f} = ${total:,.2f}")
        return {
            "timestamp": snapshot.timestamp_iso,
            "unitPrice": unit_price,
            "totalValue": total,
            "investmentType": latest.investment_type.value,
            "amount": latest.amount,
        }

    def history(self, user_id: str, investment_name: Optional[str] = None) -> list:
        if investment_name is None:
            return self.ledger.read(user_id)
        return self.ledger.read_investment(user_id, investment_name)

    def investment_names(self, user_id: str) -> list:
        return self.ledger.investment_names(user_id)

    def refresh_stale(self, user_id: str, snapshots=None) -> list:
        """Best-effort refresh of every stale investment. Returns names that were updated.

        Failures are logged and skipped; nothing is raised to the caller.
        """
        if snapshots is None:
            snapshots = self.ledger.read(user_id)
        updated = []
        for name in stale_investment_names(snapshots, self.clock()):
            try:
                self.refresh(user_id, name)
            except (TrackerError, OSError) as e:
                print(f"[Auto-refresh] {user_id}: {name} skipped ({e})")
                continue
            print(f"[Auto-refresh] {user_id}: {name} updated")
            updated.append(name)
        return updated

    def load_view(self, user_id: str, investment_name: Optional[str] = None, auto_refresh: bool = True) -> tuple:
        """(snapshots, refreshed names) for display.

        Stale investments in view are refreshed once, then data is reloaded without
        another staleness pass.
        """
        snapshots = self.history(user_id, investment_name)
        if not auto_refresh:
            return snapshots, []
        refreshed = self.refresh_stale(user_id, snapshots)
        if refreshed:
            snapshots = self.history(user_id, investment_name)
        return snapshots, refreshed
