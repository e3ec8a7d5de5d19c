"""
Data models for the ebook reader backend.

References to authors and categories are plain foreign keys; read paths join
them explicitly (see services.content_service) rather than through lazy
relationships. Chapters are owned by their book and loaded with it.
"""
import uuid
from datetime import datetime, UTC

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ebook_reader.database import Base

ROLES = ("user", "admin")
CONTENT_STATUSES = ("draft", "published", "archived")


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


class User(Base):
    """
    Identity record: one row per phone number.

    - is_active: false until the first successful OTP verification.
    - refresh_token: Fernet-encrypted copy of the latest renewal token
      (crypto.encrypt); overwritten on every issue, cleared on logout.
    - total_reading_minutes / current_streak / last_read_date: rolled up by
      the progress tracker, never written by clients.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    phone_number = Column(String(16), unique=True, nullable=False, index=True)
    name = Column(String(50), nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)
    role = Column(String(10), nullable=False, default="user")
    is_premium = Column(Boolean, nullable=False, default=False)

    total_reading_minutes = Column(Integer, nullable=False, default=0)
    current_streak = Column(Integer, nullable=False, default=0)
    last_read_date = Column(Date, nullable=True, index=True)

    refresh_token = Column(String(2048), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class Author(Base):
    __tablename__ = "authors"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(100), nullable=False, index=True)
    bio = Column(String(500), nullable=False, default="")
    profile_image = Column(String(2048), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)


class Category(Base):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(50), unique=True, nullable=False)
    description = Column(String(500), nullable=False, default="")

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)


book_categories = Table(
    "book_categories",
    Base.metadata,
    Column("book_id", String(36), ForeignKey("books.id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", String(36), ForeignKey("categories.id"), primary_key=True, index=True),
)


class Book(Base):
    """
    A work composed of ordered chapters.

    Statistics other than total_reads/average_rating/total_reviews are derived
    from the chapters by content_service.recompute_statistics and must not be
    set directly.
    """
    __tablename__ = "books"

    id = Column(String(36), primary_key=True, default=_uuid)
    title = Column(String(100), nullable=False, index=True)
    description = Column(String(1000), nullable=False, default="")
    author_id = Column(String(36), ForeignKey("authors.id"), nullable=True, index=True)
    cover_image = Column(String(2048), nullable=True)
    content_status = Column(String(10), nullable=False, default="draft")
    published_at = Column(DateTime(timezone=True), nullable=True, index=True)

    total_reads = Column(Integer, nullable=False, default=0, index=True)
    average_rating = Column(Float, nullable=False, default=0.0)
    total_reviews = Column(Integer, nullable=False, default=0)
    total_word_count = Column(Integer, nullable=False, default=0)
    total_estimated_minutes = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    chapters = relationship(
        "Chapter",
        order_by="Chapter.order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_published(self) -> bool:
        return self.content_status == "published"


class Chapter(Base):
    __tablename__ = "chapters"
    __table_args__ = (UniqueConstraint("book_id", "order", name="uq_chapter_book_order"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    book_id = Column(String(36), ForeignKey("books.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(100), nullable=False)
    content = Column(Text, nullable=False)
    # 1-based addressing key used by progress tracking; gaps allowed
    order = Column(Integer, nullable=False)
    word_count = Column(Integer, nullable=False, default=0)
    estimated_reading_minutes = Column(Integer, nullable=False, default=0)


class Progress(Base):
    """Reading position of one user in one book; (user_id, book_id) is unique."""
    __tablename__ = "progress"
    __table_args__ = (UniqueConstraint("user_id", "book_id", name="uq_progress_user_book"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    book_id = Column(String(36), ForeignKey("books.id", ondelete="CASCADE"), nullable=False)
    last_chapter_order = Column(Integer, nullable=False, default=1)
    completion_percentage = Column(Integer, nullable=False, default=0)
    last_read_at = Column(DateTime(timezone=True), nullable=False, default=_now, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)
