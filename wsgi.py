"""WSGI entry point for production deployment (gunicorn wsgi:app)."""

import os

from server import BASE, build_tracker, create_app, start_scheduler
from config import load_settings

settings = load_settings(BASE)
tracker = build_tracker(settings)
app = create_app(settings, tracker)

# Set TRACKER_SCHEDULER on exactly one worker process.
if os.environ.get("TRACKER_SCHEDULER", "").lower() in ("1", "true", "yes"):
    start_scheduler(tracker, settings)
