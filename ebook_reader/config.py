"""
Application configuration from environment variables.

Load with python-dotenv in main so env vars are available before imports.
Validates signing secrets at module load; missing values raise RuntimeError.
"""
import os

# --- Required (raise if missing) ---
JWT_ACCESS_SECRET = os.getenv("JWT_ACCESS_SECRET")
JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET")

for name, val in [
    ("JWT_ACCESS_SECRET", JWT_ACCESS_SECRET),
    ("JWT_REFRESH_SECRET", JWT_REFRESH_SECRET),
]:
    if not val or not str(val).strip():
        raise RuntimeError(f"Required env var {name} is missing or empty")

JWT_ALGORITHM = "HS256"


def _int_env(key: str, default: int, minimum: int = 1) -> int:
    try:
        return max(minimum, int(os.getenv(key, str(default))))
    except ValueError:
        return default


def _bool_env(key: str, default: str = "false") -> bool:
    return os.getenv(key, default).lower() in ("1", "true", "yes")


# --- Token lifetimes ---
ACCESS_TOKEN_TTL_MINUTES = _int_env("ACCESS_TOKEN_TTL_MINUTES", 15)
REFRESH_TOKEN_TTL_DAYS = _int_env("REFRESH_TOKEN_TTL_DAYS", 7)

# --- Twilio Verify (OTP provider) ---
# Optional so the API can boot without SMS; send/check fail with 502 until set
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID", "")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN", "")
TWILIO_VERIFY_SERVICE_SID = os.getenv("TWILIO_VERIFY_SERVICE_SID", "")
TWILIO_VERIFY_BASE_URL = os.getenv(
    "TWILIO_VERIFY_BASE_URL", "https://verify.twilio.com/v2"
).rstrip("/")

# Request timeouts (connect, read) in seconds
TWILIO_REQUEST_TIMEOUT = (5, _int_env("TWILIO_REQUEST_TIMEOUT", 15))

# Phone numbers that receive the admin role at signup (comma-separated, E.164)
ADMIN_PHONE_NUMBERS = frozenset(
    p.strip() for p in os.getenv("ADMIN_PHONE_NUMBERS", "").split(",") if p.strip()
)

# --- Pagination ---
DEFAULT_PAGE_SIZE = _int_env("DEFAULT_PAGE_SIZE", 10)
MAX_PAGE_SIZE = _int_env("MAX_PAGE_SIZE", 100)

# --- HTTP ---
# Bearer tokens in headers, no cookies, so "*" is acceptable here
CORS_ORIGINS = [
    o.strip().rstrip("/") for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
]

# Database URL (SQLite default; use Postgres URL in production)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./ebook_reader.db")

# Skip create_all at startup (set in production when using migrations)
SKIP_DB_INIT = _bool_env("SKIP_DB_INIT")

# Startup connection retry: attempts and fixed delay in seconds
DB_CONNECT_RETRIES = _int_env("DB_CONNECT_RETRIES", 5)
DB_CONNECT_RETRY_DELAY = _int_env("DB_CONNECT_RETRY_DELAY", 5, minimum=0)

# Environment: development | production (affects .env loading, error details)
ENV = os.getenv("ENV", "development").lower()

# Include tracebacks in 500 responses; honoured only when ENV is development
DEBUG_ERRORS = _bool_env("DEBUG_ERRORS")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
