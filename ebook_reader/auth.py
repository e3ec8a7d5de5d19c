"""
Phone-number authentication: signup, OTP verification, login, token refresh,
logout, profile, and the current-user dependencies.

- Signup creates an inactive user and sends an OTP; the first approved OTP
  activates the account and returns a token pair.
- Login sends an OTP to an active user; verify-login-otp exchanges it for tokens.
- refresh-token rotates the pair; the previous renewal token stops working.
- get_current_user reads the Bearer access token and returns the User.
- require_admin additionally checks the admin role.
"""
import logging

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from ebook_reader.config import ADMIN_PHONE_NUMBERS
from ebook_reader.database import get_db
from ebook_reader.errors import (
    Conflict,
    Forbidden,
    TokenInvalid,
    Unauthorized,
    UserNotFound,
    ValidationError,
)
from ebook_reader.models import User
from ebook_reader.responses import ok
from ebook_reader.security import TokenIssuer
from ebook_reader.services.otp_service import OtpVerifier, validate_phone_number

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")


# --- Service dependencies (instances live on app.state, set in the lifespan) ---


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.token_issuer


def get_otp_verifier(request: Request) -> OtpVerifier:
    return request.app.state.otp_verifier


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> User:
    """
    FastAPI dependency: read the Bearer access token, verify it, load User.
    Raises 401 if the header is missing, the token is invalid/expired, or
    the user no longer exists.
    """
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized("Authorization header missing or invalid")
    payload = issuer.verify_access(token.strip())
    user = db.get(User, payload["sub"])
    if not user:
        raise Unauthorized("User not found")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise Forbidden("Admin access required")
    return user


def serialize_user(user: User, *, with_stats: bool = False) -> dict:
    data = {
        "id": user.id,
        "phone_number": user.phone_number,
        "name": user.name,
        "role": user.role,
        "is_premium": user.is_premium,
    }
    if with_stats:
        data["is_active"] = user.is_active
        data["stats"] = {
            "total_reading_minutes": user.total_reading_minutes,
            "current_streak": user.current_streak,
            "last_read_date": user.last_read_date,
        }
    return data


def _find_by_phone(db: Session, phone_number: str) -> User | None:
    return db.scalars(select(User).where(User.phone_number == phone_number)).first()


# --- Request models ---


class SignupBody(BaseModel):
    phone_number: str = Field(..., min_length=3, max_length=16)
    name: str = Field(..., min_length=2, max_length=50)


class PhoneBody(BaseModel):
    phone_number: str = Field(..., min_length=3, max_length=16)


class VerifyOtpBody(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=36)
    otp: str = Field(..., min_length=1, max_length=16)


class RefreshBody(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class ProfileBody(BaseModel):
    name: str | None = Field(None, min_length=2, max_length=50)


# --- Endpoints ---


@router.post("/signup")
def signup(
    body: SignupBody,
    db: Session = Depends(get_db),
    otp: OtpVerifier = Depends(get_otp_verifier),
):
    """Create an inactive user for this phone number and send the first OTP."""
    phone_number = validate_phone_number(body.phone_number.strip())
    if _find_by_phone(db, phone_number):
        raise Conflict("User already exists")

    user = User(
        phone_number=phone_number,
        name=body.name.strip(),
        is_active=False,
        role="admin" if phone_number in ADMIN_PHONE_NUMBERS else "user",
    )
    db.add(user)
    db.commit()
    logger.info("User signup initiated for phone: %s", phone_number)

    otp.send(phone_number)
    return ok({"user_id": user.id}, "OTP sent to phone number")


@router.post("/send-otp")
def send_otp(
    body: PhoneBody,
    db: Session = Depends(get_db),
    otp: OtpVerifier = Depends(get_otp_verifier),
):
    phone_number = validate_phone_number(body.phone_number.strip())
    user = _find_by_phone(db, phone_number)
    if not user:
        raise UserNotFound()
    otp.send(phone_number)
    return ok({"user_id": user.id}, "OTP sent to phone number")


def _check_otp(otp: OtpVerifier, user: User, code: str) -> None:
    if not otp.check(user.phone_number, code):
        logger.warning("Rejected OTP for user %s", user.id)
        raise ValidationError("Invalid or expired OTP")


@router.post("/verify-otp")
def verify_otp(
    body: VerifyOtpBody,
    db: Session = Depends(get_db),
    otp: OtpVerifier = Depends(get_otp_verifier),
    issuer: TokenIssuer = Depends(get_token_issuer),
):
    """Check the OTP, activate the account on first success, return a token pair."""
    user = db.get(User, body.user_id)
    if not user:
        raise UserNotFound()
    _check_otp(otp, user, body.otp)

    if not user.is_active:
        user.is_active = True
        db.commit()
        logger.info("User activated: %s", user.phone_number)

    tokens = issuer.issue_token_pair(db, user)
    return ok({"user": serialize_user(user), **tokens}, "OTP verified successfully")


@router.post("/login")
def login(
    body: PhoneBody,
    db: Session = Depends(get_db),
    otp: OtpVerifier = Depends(get_otp_verifier),
):
    phone_number = validate_phone_number(body.phone_number.strip())
    user = _find_by_phone(db, phone_number)
    if not user:
        raise UserNotFound("User not found. Please signup first.")
    if not user.is_active:
        raise Forbidden("Account not activated. Please verify OTP.")
    otp.send(phone_number)
    logger.info("Login OTP sent for phone: %s", phone_number)
    return ok({"user_id": user.id}, "OTP sent to phone number")


@router.post("/verify-login-otp")
def verify_login_otp(
    body: VerifyOtpBody,
    db: Session = Depends(get_db),
    otp: OtpVerifier = Depends(get_otp_verifier),
    issuer: TokenIssuer = Depends(get_token_issuer),
):
    user = db.get(User, body.user_id)
    if not user:
        raise UserNotFound()
    if not user.is_active:
        raise Forbidden("Account not activated")
    _check_otp(otp, user, body.otp)

    tokens = issuer.issue_token_pair(db, user)
    logger.info("Login successful for user: %s", user.phone_number)
    return ok({"user": serialize_user(user), **tokens}, "Login successful")


@router.post("/refresh-token")
def refresh_token(
    body: RefreshBody,
    db: Session = Depends(get_db),
    issuer: TokenIssuer = Depends(get_token_issuer),
):
    """Exchange the current renewal token for a new pair; the old one is invalidated."""
    user_id = issuer.verify_renewal(db, body.refresh_token)
    user = db.get(User, user_id)
    if not user:
        raise TokenInvalid()
    if not user.is_active:
        raise Forbidden("Account not activated")
    tokens = issuer.issue_token_pair(db, user)
    return ok(tokens, "Token refreshed successfully")


@router.post("/logout")
def logout(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    issuer: TokenIssuer = Depends(get_token_issuer),
):
    """
    Revoke the stored renewal token. The access token stays valid until it
    expires; clients should discard it.
    """
    issuer.revoke(db, user)
    return ok(message="Logged out")


@router.get("/profile")
def get_profile(user: User = Depends(get_current_user)):
    return ok({"user": serialize_user(user, with_stats=True)})


@router.put("/profile")
def update_profile(
    body: ProfileBody,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if body.name:
        user.name = body.name.strip()
    db.commit()
    logger.info("Profile updated for user: %s", user.phone_number)
    return ok({"user": serialize_user(user)}, "Profile updated successfully")
