import os
from typing import Optional
from dotenv import load_dotenv
load_dotenv(".venv/.env")


def require_env(var_name: str, default: Optional[str] = None) -> str:
    val = os.getenv(var_name)
    if not val:
        if default is None:
            raise ValueError(f"Missing required environment variable: {var_name}")
        val = default
    return val


def _int_env(var_name: str, default: int) -> int:
    raw = os.getenv(var_name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {var_name} must be an integer, got {raw!r}")


def _csv_env(var_name: str) -> list[str]:
    raw = os.getenv(var_name) or ""
    return [p.strip() for p in raw.split(",") if p.strip()]


def telegram_bot_token() -> str:
    # read lazily so tests and tools can import modules without a token
    return require_env("TELEGRAM_BOT_TOKEN")


def parse_reminder_times(raw: str) -> list[tuple[int, int, int]]:
    """
    "09:00=today,18:00=tomorrow" -> [(9, 0, 0), (18, 0, 1)]
    The right-hand side is the day offset the sweep targets.
    """
    offsets = {"today": 0, "tomorrow": 1}
    out: list[tuple[int, int, int]] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        at, _, day = part.partition("=")
        hh, _, mm = at.strip().partition(":")
        day = (day or "tomorrow").strip().lower()
        if day not in offsets:
            raise ValueError(f"Unknown reminder day {day!r} in REMINDER_TIMES")
        out.append((int(hh), int(mm or 0), offsets[day]))
    return out


SECRETS_DIR = os.getenv("SECRETS_DIR", ".secrets")
FIREBASE_STORAGE_BUCKET = os.getenv("FIREBASE_STORAGE_BUCKET", "")

OUTBOUND_COLLECTION = require_env("OUTBOUND_COLLECTION", "outbound_messages")
OUTBOUND_POLL_SECONDS = _int_env("OUTBOUND_POLL_SECONDS", 3)
STALE_PROCESSING_MINUTES = _int_env("STALE_PROCESSING_MINUTES", 0)

BOT_TIMEZONE = require_env("BOT_TIMEZONE", "Asia/Tashkent")
REMINDER_TIMES = parse_reminder_times(require_env("REMINDER_TIMES", "09:00=today,18:00=tomorrow"))
CLEANUP_TIME = require_env("CLEANUP_TIME", "03:00")

BOT_PID_FILE = require_env("BOT_PID_FILE", ".bot.pid")
ADMIN_CHAT_IDS = set(_csv_env("ADMIN_CHAT_IDS"))
OPS_TOKEN = os.getenv("OPS_TOKEN", "")

TELEGRAM_WEBHOOK_URL = os.getenv("TELEGRAM_WEBHOOK_URL", "")
TELEGRAM_WEBHOOK_SECRET = os.getenv("TELEGRAM_WEBHOOK_SECRET", "")
SESSION_TTL_MINUTES = _int_env("SESSION_TTL_MINUTES", 30)
DEFAULT_LANGUAGE = require_env("DEFAULT_LANGUAGE", "uz")
