import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parents[1]


def _parse_bool(value: str | None, fallback: bool) -> bool:
    if value is None:
        return fallback
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return fallback


def _parse_csv(value: str | None, fallback: list[str]) -> list[str]:
    if not value:
        return fallback
    parsed = [item.strip() for item in value.split(",") if item.strip()]
    return parsed or fallback


def _parse_int(value: str | None, fallback: int, *, minimum: int = 0) -> int:
    if value is None or not value.strip():
        return fallback
    try:
        return max(minimum, int(value.strip()))
    except ValueError:
        return fallback


def _parse_float(value: str | None, fallback: float) -> float:
    if value is None or not value.strip():
        return fallback
    try:
        return float(value.strip())
    except ValueError:
        return fallback


def _parse_choice(value: str | None, choices: set[str], fallback: str) -> str:
    normalized = (value or "").strip().lower()
    if normalized in choices:
        return normalized
    return fallback


# Storage
DB_PATH = Path(os.getenv("EDUSCAN_DB_PATH", BASE_DIR / "database" / "eduscan.db"))
STORE_BACKEND = _parse_choice(os.getenv("EDUSCAN_STORE_BACKEND"), {"sqlite", "memory"}, "sqlite")
STORE_NAMESPACE = os.getenv("EDUSCAN_STORE_NAMESPACE", "attendance").strip() or "attendance"
# Bumping the version suffix rotates schema-incompatible seed data in.
DIRECTORY_KEY = os.getenv("EDUSCAN_DIRECTORY_KEY", "students_v2").strip() or "students_v2"
SEED_DEMO_STUDENTS = _parse_bool(os.getenv("EDUSCAN_SEED_DEMO_STUDENTS"), True)

# Scanner
SCAN_COOLDOWN_MS = _parse_int(os.getenv("EDUSCAN_SCAN_COOLDOWN_MS"), 4500)
SCAN_REOPEN_DELAY_MS = _parse_int(os.getenv("EDUSCAN_SCAN_REOPEN_DELAY_MS"), 2000)
TIME_FORMAT = "%H:%M"
DATE_FORMAT = "%Y-%m-%d"

# Text generation
GEMINI_API_KEY = (
    os.getenv("EDUSCAN_GEMINI_API_KEY", "").strip()
    or os.getenv("API_KEY", "").strip()
)
TEXT_MODEL = os.getenv("EDUSCAN_TEXT_MODEL", "gemini-2.0-flash").strip()
TEXT_API_URL = os.getenv(
    "EDUSCAN_TEXT_API_URL",
    "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent",
).strip()
TEXT_TIMEOUT_SECONDS = max(0.1, _parse_float(os.getenv("EDUSCAN_TEXT_TIMEOUT_SECONDS"), 8.0))
TEXT_TEMPERATURE = _parse_float(os.getenv("EDUSCAN_TEXT_TEMPERATURE"), 0.7)
TEXT_MAX_OUTPUT_TOKENS = _parse_int(os.getenv("EDUSCAN_TEXT_MAX_OUTPUT_TOKENS"), 150, minimum=1)
MESSAGE_POLICY = _parse_choice(os.getenv("EDUSCAN_MESSAGE_POLICY"), {"free", "exact"}, "free")

# Delivery
PHONE_COUNTRY_CODE = os.getenv("EDUSCAN_PHONE_COUNTRY_CODE", "51").strip() or "51"
AUTO_DELIVER_PRESENT = _parse_bool(os.getenv("EDUSCAN_AUTO_DELIVER_PRESENT"), True)
AUTO_DELIVER_ABSENCES = _parse_bool(os.getenv("EDUSCAN_AUTO_DELIVER_ABSENCES"), False)
NOTIFICATION_BUFFER_SIZE = _parse_int(os.getenv("EDUSCAN_NOTIFICATION_BUFFER_SIZE"), 100, minimum=1)

# HTTP
CORS_ALLOW_ORIGINS = _parse_csv(
    os.getenv("EDUSCAN_CORS_ALLOW_ORIGINS"),
    ["http://localhost:5173", "http://127.0.0.1:5173"],
)
HOST = os.getenv("EDUSCAN_HOST", "127.0.0.1").strip() or "127.0.0.1"
PORT = _parse_int(os.getenv("EDUSCAN_PORT"), 8000, minimum=1)

# Logging
LOG_LEVEL = os.getenv("EDUSCAN_LOG_LEVEL", "INFO").strip().upper() or "INFO"
LOG_FILE = os.getenv("EDUSCAN_LOG_FILE", "").strip() or None
