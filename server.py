"""
Local server for the investment tracker.
Run: python server.py
Then open http://localhost:9000. Each user's history is appended to data/<user>.csv.
"""

import os
from pathlib import Path

from flask import Flask

from config import load_settings
from ledger import Ledger
from prices import PriceResolver
from rate_limiter import RateLimiter
from routes import bp, init_routes
from tracker import InvestmentTracker

BASE = Path(__file__).resolve().parent


def build_tracker(settings: dict, resolver=None, clock=None) -> InvestmentTracker:
    resolver = resolver or PriceResolver.from_settings(settings)
    clock_kw = {"clock": clock} if clock else {}
    return InvestmentTracker(
        ledger=Ledger(settings["data_dir"], **clock_kw),
        limiter=RateLimiter(**clock_kw),
        resolver=resolver,
        **clock_kw,
    )


def create_app(settings: dict = None, tracker: InvestmentTracker = None) -> Flask:
    settings = settings if settings is not None else load_settings(BASE)
    tracker = tracker or build_tracker(settings)

    app = Flask(__name__)
    app.secret_key = settings["secret_key"]
    app.config["TRACKER_SETTINGS"] = settings

    init_routes({
        "tracker": tracker,
        "resolver": tracker.resolver,
        "users": settings.get("users", []),
    })
    app.register_blueprint(bp)
    return app


def sweep_stale(tracker: InvestmentTracker) -> dict:
    """Refresh stale investments for every user with a ledger. Returns {user: [names]}."""
    results = {}
    for user_id in tracker.ledger.user_ids():
        updated = tracker.refresh_stale(user_id)
        if updated:
            results[user_id] = updated
    return results


def start_scheduler(tracker: InvestmentTracker, settings: dict):
    """Background stale sweep, so investments refresh even when no browser is open."""
    auto_cfg = settings.get("auto_refresh", {})
    if not auto_cfg.get("enabled", True):
        print("[Auto-refresh] Disabled in config")
        return None
    from apscheduler.schedulers.background import BackgroundScheduler

    def scheduled_sweep():
        try:
            updated = sweep_stale(tracker)
            if updated:
                print(f"[Auto-refresh] Updated {sum(len(v) for v in updated.values())} investment(s)")
        except OSError as e:
            print(f"[Auto-refresh] Error: {e}")

    scheduler = BackgroundScheduler(daemon=True)
    scheduler.add_job(scheduled_sweep, "interval", minutes=auto_cfg["interval_minutes"], id="stale_sweep")
    scheduler.start()
    print(f"[Auto-refresh] Stale sweep every {auto_cfg['interval_minutes']} min")
    return scheduler


def main():
    settings = load_settings(BASE)
    tracker = build_tracker(settings)
    app = create_app(settings, tracker)

    # Only start scheduler in the reloader child process (or when reloader is off)
    if os.environ.get("WERKZEUG_RUN_MAIN") == "true":
        start_scheduler(tracker, settings)

    print(f"[Startup] Data directory: {settings['data_dir']}")
    if not settings["users"]:
        print("[Startup] No users configured (set TRACKER_PIN or config.json users); auth disabled")
    print(f"Investment Tracker: http://{settings['host']}:{settings['port']}")
    print("Ctrl+C to stop.")
    app.run(host=settings["host"], port=settings["port"], debug=False, use_reloader=True)


if __name__ == "__main__":
    main()
