"""
Ebook reader backend: phone/OTP auth, books, authors, categories, reading progress.

Load .env in development only (production uses env vars directly). Process-wide
services (database, OTP client, token signer) are created once in the lifespan
and injected into routes from app.state. Errors are returned as
{"success": false, "message": ...}; stack traces only in development with
DEBUG_ERRORS set.
"""
import logging
import os
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, UTC
from pathlib import Path

from dotenv import load_dotenv

# Load .env only in development; production should set env vars directly
if os.getenv("ENV", "development").lower() == "development":
    load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ebook_reader import config
from ebook_reader.authors import router as authors_router
from ebook_reader.auth import router as auth_router
from ebook_reader.books import router as books_router
from ebook_reader.categories import router as categories_router
from ebook_reader.database import engine, init_db
from ebook_reader.errors import AppError
from ebook_reader.progress import router as progress_router
from ebook_reader.responses import error_response
from ebook_reader.security import TokenIssuer
from ebook_reader.services.otp_service import OtpVerifier

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def build_token_issuer() -> TokenIssuer:
    return TokenIssuer(
        config.JWT_ACCESS_SECRET,
        config.JWT_REFRESH_SECRET,
        access_ttl=timedelta(minutes=config.ACCESS_TOKEN_TTL_MINUTES),
        refresh_ttl=timedelta(days=config.REFRESH_TOKEN_TTL_DAYS),
        algorithm=config.JWT_ALGORITHM,
    )


def build_otp_verifier() -> OtpVerifier:
    return OtpVerifier(
        config.TWILIO_ACCOUNT_SID,
        config.TWILIO_AUTH_TOKEN,
        config.TWILIO_VERIFY_SERVICE_SID,
        base_url=config.TWILIO_VERIFY_BASE_URL,
        timeout=config.TWILIO_REQUEST_TIMEOUT,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create process-wide services on startup; release them on shutdown."""
    init_db()
    app.state.token_issuer = build_token_issuer()
    app.state.otp_verifier = build_otp_verifier()
    if not app.state.otp_verifier.check_configuration():
        logger.warning("Twilio Verify is not reachable or not configured; OTP calls will fail")
    logger.info("Server started in %s mode", config.ENV)

    yield

    app.state.otp_verifier.close()
    engine.dispose()
    logger.info("Server shut down")


app = FastAPI(
    title="Ebook Reader Backend",
    description="Phone/OTP auth, book catalogue, chapter reading and reading progress.",
    lifespan=lifespan,
)

# Bearer tokens only, no cookies, so credentials are not allowed cross-origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.msg)
    return error_response(exc.status_code, exc.msg)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ())[1:])
        messages.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    logger.warning("Validation failed on %s %s: %s", request.method, request.url.path, messages)
    return error_response(400, "Validation error: " + ", ".join(messages))


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return error_response(409, "Duplicate field value entered")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions; log and return generic 500."""
    logging.exception("Unhandled exception: %s", exc)
    extra = {}
    if config.ENV == "development" and config.DEBUG_ERRORS:
        extra["traceback"] = traceback.format_exception(exc)
    return error_response(500, "Internal server error", **extra)


@app.get("/health")
def health():
    return {
        "status": "ok",
        "environment": config.ENV,
        "timestamp": datetime.now(UTC).isoformat(),
    }


app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(books_router, prefix=API_PREFIX)
app.include_router(authors_router, prefix=API_PREFIX)
app.include_router(categories_router, prefix=API_PREFIX)
app.include_router(progress_router, prefix=API_PREFIX)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
