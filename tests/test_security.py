from datetime import timedelta

import pytest

from ebook_reader.errors import TokenExpired, TokenInvalid
from ebook_reader.security import TokenIssuer
from tests.conftest import make_user


def test_access_token_carries_identity_claims(db, issuer):
    user = make_user(db)
    user.is_premium = True
    db.commit()

    tokens = issuer.issue_token_pair(db, user)
    claims = issuer.verify_access(tokens["access_token"])

    assert claims["sub"] == user.id
    assert claims["phone_number"] == user.phone_number
    assert claims["is_premium"] is True


def test_renewal_token_is_stored_encrypted(db, issuer):
    user = make_user(db)

    tokens = issuer.issue_token_pair(db, user)

    db.refresh(user)
    assert user.refresh_token
    assert user.refresh_token != tokens["refresh_token"]
    assert issuer.verify_renewal(db, tokens["refresh_token"]) == user.id


def test_new_pair_invalidates_previous_renewal_token(db, issuer):
    user = make_user(db)
    old = issuer.issue_token_pair(db, user)["refresh_token"]
    new = issuer.issue_token_pair(db, user)["refresh_token"]

    assert old != new
    with pytest.raises(TokenInvalid):
        issuer.verify_renewal(db, old)
    assert issuer.verify_renewal(db, new) == user.id


def test_revoke_invalidates_renewal_token(db, issuer):
    user = make_user(db)
    token = issuer.issue_token_pair(db, user)["refresh_token"]

    issuer.revoke(db, user)

    with pytest.raises(TokenInvalid):
        issuer.verify_renewal(db, token)


def test_expired_access_token(db):
    expired = TokenIssuer(
        "a-secret",
        "r-secret",
        access_ttl=timedelta(seconds=-60),
        refresh_ttl=timedelta(seconds=-60),
    )
    user = make_user(db)
    tokens = expired.issue_token_pair(db, user)

    with pytest.raises(TokenExpired):
        expired.verify_access(tokens["access_token"])
    # Expired renewal tokens are reported as invalid
    with pytest.raises(TokenInvalid):
        expired.verify_renewal(db, tokens["refresh_token"])


def test_tokens_are_not_interchangeable(db, issuer):
    user = make_user(db)
    tokens = issuer.issue_token_pair(db, user)

    with pytest.raises(TokenInvalid):
        issuer.verify_access(tokens["refresh_token"])
    with pytest.raises(TokenInvalid):
        issuer.verify_renewal(db, tokens["access_token"])


@pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
def test_malformed_tokens(db, issuer, token):
    with pytest.raises(TokenInvalid):
        issuer.verify_access(token)
    with pytest.raises(TokenInvalid):
        issuer.verify_renewal(db, token)


def test_token_signed_with_other_secret(db, issuer):
    other = TokenIssuer(
        "other-access",
        "other-refresh",
        access_ttl=timedelta(minutes=5),
        refresh_ttl=timedelta(days=1),
    )
    user = make_user(db)
    tokens = other.issue_token_pair(db, user)

    with pytest.raises(TokenInvalid):
        issuer.verify_access(tokens["access_token"])
    with pytest.raises(TokenInvalid):
        issuer.verify_renewal(db, tokens["refresh_token"])
