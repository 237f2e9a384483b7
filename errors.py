"""Error taxonomy for save/refresh requests. Each error knows its HTTP status."""

import math


class TrackerError(Exception):
    status = 500
    default_message = "Request failed"

    def __init__(self, message: str = ""):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(TrackerError):
    status = 400
    default_message = "Invalid request"


class NotFound(TrackerError):
    status = 404
    default_message = "Investment not found"


class UnsupportedAssetType(TrackerError):
    status = 400
    default_message = "Unsupported asset type"


class PriceUnavailable(TrackerError):
    """Raised by the price resolver when no source produced a usable price."""
    status = 500
    default_message = "Failed to fetch price"


class PriceFetchFailed(TrackerError):
    status = 500
    default_message = "Failed to fetch current price"


class RateLimited(TrackerError):
    status = 429

    def __init__(self, seconds_remaining: int, reason: str = "update"):
        self.seconds_remaining = max(1, int(seconds_remaining))
        self.reason = reason
        super().__init__(
            f"Investment was recently updated. Try again in {self.minutes_remaining} minute"
            + ("" if self.minutes_remaining == 1 else "s")
        )

    @property
    def minutes_remaining(self) -> int:
        return math.ceil(self.seconds_remaining / 60)

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "minutesRemaining": self.minutes_remaining,
            "secondsRemaining": self.seconds_remaining,
            "reason": self.reason,
        }
