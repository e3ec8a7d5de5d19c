"""
JWT creation and verification for session management.

Two tokens per login: a short-lived access token sent as a Bearer header on
every request, and a long-lived renewal token exchanged at /auth/refresh-token.
Each kind has its own secret so one cannot be replayed as the other. Only the
most recently issued renewal token is accepted: its encrypted copy is stored on
the User and compared on verification, so issuing a new pair (or logging out)
invalidates the previous one. Algorithm: HS256.
"""
import logging
import secrets
from datetime import datetime, timedelta, UTC

from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

from ebook_reader.crypto import encrypt, matches_stored
from ebook_reader.errors import TokenExpired, TokenInvalid
from ebook_reader.models import User

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"


class TokenIssuer:
    """Process-wide signer; created once in the app lifespan."""

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        *,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        algorithm: str = "HS256",
    ):
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.algorithm = algorithm

    def _encode(self, claims: dict, secret: str, ttl: timedelta) -> str:
        payload = {**claims, "exp": datetime.now(UTC) + ttl}
        return jwt.encode(payload, secret, algorithm=self.algorithm)

    def _decode(self, token: str, secret: str, expected_type: str) -> dict:
        try:
            payload = jwt.decode(token, secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise TokenExpired()
        except JWTError:
            raise TokenInvalid()
        if payload.get("type") != expected_type or not payload.get("sub"):
            raise TokenInvalid()
        return payload

    def issue_token_pair(self, db: Session, user: User) -> dict:
        """
        Mint access + renewal tokens for user and store the renewal token
        (encrypted) on the row, replacing any earlier one. Commits.
        """
        access_token = self._encode(
            {
                "sub": user.id,
                "phone_number": user.phone_number,
                "is_premium": bool(user.is_premium),
                "type": ACCESS,
            },
            self._access_secret,
            self.access_ttl,
        )
        # jti keeps two pairs minted within the same second distinct
        refresh_token = self._encode(
            {"sub": user.id, "type": REFRESH, "jti": secrets.token_hex(16)},
            self._refresh_secret,
            self.refresh_ttl,
        )
        user.refresh_token = encrypt(refresh_token)
        db.commit()
        logger.info("Tokens issued for user %s", user.id)
        return {"access_token": access_token, "refresh_token": refresh_token}

    def verify_access(self, token: str) -> dict:
        """Decode an access token; raises TokenExpired or TokenInvalid."""
        return self._decode(token, self._access_secret, ACCESS)

    def verify_renewal(self, db: Session, token: str) -> str:
        """
        Return the user id of a renewal token that is still the one stored on
        its user. Any failure, expiry included, raises TokenInvalid.
        """
        try:
            payload = self._decode(token, self._refresh_secret, REFRESH)
        except TokenExpired:
            raise TokenInvalid("Invalid or expired refresh token")
        user = db.get(User, payload["sub"])
        if not user or not matches_stored(token, user.refresh_token):
            raise TokenInvalid("Invalid or expired refresh token")
        return user.id

    def revoke(self, db: Session, user: User) -> None:
        """Forget the stored renewal token (logout). Commits."""
        user.refresh_token = None
        db.commit()
        logger.info("Refresh token revoked for user %s", user.id)
