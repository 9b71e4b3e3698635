"""
NotifyHub Configuration

Configuration class for the NotifyHub notification pipeline.
"""
import os
from pathlib import Path
from urllib.parse import quote_plus
from dotenv import load_dotenv

# Load .env file from project root
_env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(_env_path)


class Config:
    """Configuration class for NotifyHub"""

    # Base paths
    BASE_DIR = Path(__file__).parent.parent.parent
    MIGRATIONS_DIR = Path(__file__).parent / "migrations"

    # Database settings
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "notifyhub")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")

    # Explicit DSN wins over the DB_* parts
    POSTGRES_DSN = os.getenv("POSTGRES_DSN", "")

    # API settings
    API_HOST = os.getenv("API_HOST", "127.0.0.1")
    API_PORT = int(os.getenv("API_PORT", "8100"))

    # JWT settings
    JWT_SECRET = os.getenv("JWT_SECRET", "notifyhub-secret-key-change-in-production")
    JWT_ALGORITHM = "HS256"
    JWT_EXPIRATION_HOURS = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))

    # Audit gate: rule matrix cache lifetime (seconds)
    AUDIT_CACHE_TTL = float(os.getenv("AUDIT_CACHE_TTL", "1.0"))

    # Scheduler settings
    SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "true").lower() == "true"
    AUTOPILOT_POLL_INTERVAL = int(os.getenv("AUTOPILOT_POLL_INTERVAL", "300"))
    READ_RECEIPT_POLL_INTERVAL = int(os.getenv("READ_RECEIPT_POLL_INTERVAL", "600"))

    # Shared secret for the job endpoints (X-Job-Token); empty disables the check
    JOBS_TOKEN = os.getenv("JOBS_TOKEN", "")

    # Autopilot fires within this many minutes after auto_process_time
    AUTOPILOT_WINDOW_MINUTES = int(os.getenv("AUTOPILOT_WINDOW_MINUTES", "30"))

    # Telegram (MTProto user session)
    TELEGRAM_TIMEOUT = float(os.getenv("TELEGRAM_TIMEOUT", "30"))
    TELEGRAM_CONNECTION_RETRIES = int(os.getenv("TELEGRAM_CONNECTION_RETRIES", "3"))
    TELEGRAM_SEND_DELAY = float(os.getenv("TELEGRAM_SEND_DELAY", "18"))

    # Max Bot API
    MAX_API_BASE = os.getenv("MAX_API_BASE", "https://platform-api.max.ru")
    MAX_SEND_DELAY = float(os.getenv("MAX_SEND_DELAY", "2"))

    @staticmethod
    def get_postgres_dsn() -> str:
        """Get PostgreSQL DSN with password handling"""
        if Config.POSTGRES_DSN:
            return Config.POSTGRES_DSN
        if Config.DB_PASSWORD:
            password = quote_plus(Config.DB_PASSWORD)
            return f"postgresql://{Config.DB_USER}:{password}@{Config.DB_HOST}:{Config.DB_PORT}/{Config.DB_NAME}"
        return f"postgresql://{Config.DB_USER}@{Config.DB_HOST}:{Config.DB_PORT}/{Config.DB_NAME}"
