"""
Encryption of stored renewal tokens using Fernet (symmetric, from cryptography).

The latest renewal token is kept on the User row so a presented token can be
compared against it. It is encrypted before storage and only decrypted for
that comparison, so a database dump does not yield usable sessions.
"""
import os
import secrets

from cryptography.fernet import Fernet, InvalidToken

FERNET_KEY = os.environ.get("TOKEN_ENCRYPTION_KEY")
if not FERNET_KEY:
    raise RuntimeError("TOKEN_ENCRYPTION_KEY environment variable is required")
fernet = Fernet(FERNET_KEY.encode() if isinstance(FERNET_KEY, str) else FERNET_KEY)


def encrypt(value: str) -> str:
    """Encrypt a string (a renewal token) for storage."""
    return fernet.encrypt(value.encode()).decode()


def decrypt(value: str | None) -> str | None:
    """
    Decrypt a stored token. Returns None if value is None (nothing stored) or
    if the ciphertext was produced with a different key.
    """
    if value is None:
        return None
    try:
        return fernet.decrypt(value.encode()).decode()
    except InvalidToken:
        return None


def matches_stored(presented: str, stored: str | None) -> bool:
    """Constant-time comparison of a presented token with its encrypted stored copy."""
    plain = decrypt(stored)
    if plain is None:
        return False
    return secrets.compare_digest(presented, plain)
