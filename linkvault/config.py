import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent.parent


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "default-secret-key")
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", f"sqlite:///{BASE_DIR / 'linkvault.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "1") == "1"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    SYNC_STRATEGY = os.environ.get("SYNC_STRATEGY", "auto").strip().lower()
    POLL_INTERVAL_SECONDS = float(os.environ.get("POLL_INTERVAL_SECONDS", "3"))
    REALTIME_PUMP_SECONDS = float(os.environ.get("REALTIME_PUMP_SECONDS", "1"))
    OPTIMISTIC_DELETE = os.environ.get("OPTIMISTIC_DELETE", "1") == "1"
    CHANGE_RETENTION_HOURS = int(os.environ.get("CHANGE_RETENTION_HOURS", "72"))
    CHANGE_FEED_PAGE_SIZE = int(os.environ.get("CHANGE_FEED_PAGE_SIZE", "200"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SCHEDULER_ENABLED = False
    LOG_LEVEL = "DEBUG"
