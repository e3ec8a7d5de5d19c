"""
Progress service: per-(user, book) reading position and the stats rollup.

A progress row moves from absent to in-progress on the first advance and
stays there; 100% is not a separate state. Each advance writes the progress
row and the user's reading stats in one transaction, so a failed rollup
leaves no half-applied update behind.
"""
import logging
from datetime import date, datetime, timedelta, UTC

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ebook_reader.errors import ChapterNotFound, Conflict, ProgressNotFound
from ebook_reader.models import Book, Progress, User
from ebook_reader.services.content_service import find_chapter, get_published_book

logger = logging.getLogger(__name__)


def completion_percentage(chapter_orders: list[int], chapter_order: int) -> int:
    """
    Share of chapters whose order is at or below chapter_order, as an integer
    percentage rounded half up. Counting by order, not position, tolerates gaps
    in the numbering.
    """
    total = len(chapter_orders)
    read = sum(1 for o in chapter_orders if o <= chapter_order)
    return (200 * read + total) // (2 * total)


def roll_up_reading_stats(user: User, minutes: int, today: date) -> None:
    """Add reading time and move the day streak (calendar days, UTC)."""
    user.total_reading_minutes = (user.total_reading_minutes or 0) + minutes
    last = user.last_read_date
    if last != today:
        if last == today - timedelta(days=1):
            user.current_streak = (user.current_streak or 0) + 1
        else:
            user.current_streak = 1
    user.last_read_date = today


def find_progress(db: Session, user_id: str, book_id: str) -> Progress | None:
    return db.scalars(
        select(Progress).where(Progress.user_id == user_id, Progress.book_id == book_id)
    ).first()


def create_progress(db: Session, user_id: str, book_id: str) -> Progress:
    """
    Insert a fresh progress row (order 1, 0%). Flushes so the unique
    (user, book) constraint is checked now; a duplicate raises Conflict.
    """
    progress = Progress(
        user_id=user_id,
        book_id=book_id,
        last_chapter_order=1,
        completion_percentage=0,
    )
    db.add(progress)
    try:
        db.flush()
    except IntegrityError as e:
        db.rollback()
        raise Conflict("Progress already exists for this book") from e
    return progress


def advance(
    db: Session,
    user: User,
    book_id: str,
    chapter_order: int,
    now: datetime | None = None,
) -> Progress:
    """Record that user has read up to chapter_order of book_id."""
    now = now or datetime.now(UTC)
    book = get_published_book(db, book_id)

    progress = find_progress(db, user.id, book.id)
    if progress is None:
        progress = create_progress(db, user.id, book.id)

    chapter = find_chapter(book, chapter_order)
    if chapter is None:
        db.rollback()
        raise ChapterNotFound(f"Chapter with order {chapter_order} not found")

    # Re-reading an earlier chapter moves progress back; no high-water mark
    progress.last_chapter_order = chapter_order
    progress.completion_percentage = completion_percentage(
        [c.order for c in book.chapters], chapter_order
    )
    progress.last_read_at = now
    db.flush()

    roll_up_reading_stats(user, chapter.estimated_reading_minutes, now.date())
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise Conflict("Progress already exists for this book") from e
    db.refresh(progress)

    logger.info(
        "Progress updated for book %s by user %s: chapter %d (%d%%)",
        book.id,
        user.id,
        chapter_order,
        progress.completion_percentage,
    )
    return progress


def serialize_progress(progress: Progress, book: Book | None = None) -> dict:
    data = {
        "id": progress.id,
        "user_id": progress.user_id,
        "book_id": progress.book_id,
        "last_chapter_order": progress.last_chapter_order,
        "completion_percentage": progress.completion_percentage,
        "last_read_at": progress.last_read_at,
    }
    if book is not None:
        data["book"] = {"id": book.id, "title": book.title, "cover_image": book.cover_image}
    return data


def get_progress(db: Session, user: User, book_id: str) -> dict:
    progress = find_progress(db, user.id, book_id)
    if progress is None:
        raise ProgressNotFound()
    return serialize_progress(progress, db.get(Book, progress.book_id))


def list_progress(db: Session, user: User, page: int, limit: int) -> tuple[list[dict], int]:
    """One page of the user's progress, most recently read first, plus the total count."""
    rows = db.scalars(
        select(Progress)
        .where(Progress.user_id == user.id)
        .order_by(Progress.last_read_at.desc(), Progress.id)
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    total = db.scalar(select(func.count()).select_from(Progress).where(Progress.user_id == user.id))

    book_ids = {p.book_id for p in rows}
    books = {}
    if book_ids:
        books = {b.id: b for b in db.scalars(select(Book).where(Book.id.in_(book_ids)))}
    return [serialize_progress(p, books.get(p.book_id)) for p in rows], total
