import os

from cryptography.fernet import Fernet

# Required settings must exist before the package is imported
os.environ.setdefault("JWT_ACCESS_SECRET", "test-access-secret")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret")
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENV"] = "test"
os.environ["ADMIN_PHONE_NUMBERS"] = "+15550000001"

from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from ebook_reader import models  # noqa: E402
from ebook_reader.auth import get_otp_verifier, get_token_issuer  # noqa: E402
from ebook_reader.database import Base, enable_sqlite_foreign_keys, get_db  # noqa: E402
from ebook_reader.main import app  # noqa: E402
from ebook_reader.security import TokenIssuer  # noqa: E402
from ebook_reader.services.content_service import recompute_statistics, set_status  # noqa: E402
from ebook_reader.services.otp_service import validate_code, validate_phone_number  # noqa: E402

VALID_CODE = "123456"


class FakeOtpVerifier:
    """Stands in for Twilio: approves VALID_CODE for any number that was sent a code."""

    def __init__(self):
        self.sent: list[str] = []
        self.checked: list[tuple[str, str]] = []

    def send(self, phone_number: str) -> str:
        validate_phone_number(phone_number)
        self.sent.append(phone_number)
        return "pending"

    def check(self, phone_number: str, code: str) -> bool:
        validate_phone_number(phone_number)
        validate_code(code)
        self.checked.append((phone_number, code))
        return phone_number in self.sent and code == VALID_CODE

    def check_configuration(self) -> bool:
        return True

    def close(self) -> None:
        pass


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def issuer():
    return TokenIssuer(
        "test-access-secret",
        "test-refresh-secret",
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=7),
    )


@pytest.fixture
def otp():
    return FakeOtpVerifier()


@pytest.fixture
def client(session_factory, issuer, otp):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_token_issuer] = lambda: issuer
    app.dependency_overrides[get_otp_verifier] = lambda: otp
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def make_user(db, phone_number="+15551234567", *, active=True, role="user", name="Reader"):
    user = models.User(phone_number=phone_number, name=name, is_active=active, role=role)
    db.add(user)
    db.commit()
    return user


def make_book(db, orders=(1, 2, 3, 4), *, status="published", words=400, title="The Book", author_id=None):
    book = models.Book(title=title, description="A description", author_id=author_id)
    set_status(book, status)
    book.chapters = [
        models.Chapter(title=f"Chapter {o}", content=" ".join(["word"] * words), order=o)
        for o in orders
    ]
    recompute_statistics(book)
    db.add(book)
    db.commit()
    return book


def auth_headers(issuer, db, user) -> dict:
    tokens = issuer.issue_token_pair(db, user)
    return {"Authorization": f"Bearer {tokens['access_token']}"}
