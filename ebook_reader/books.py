"""
Books router: public catalogue, authenticated chapter reads, admin CRUD.

Delegates derived statistics and reference joins to services.content_service.
Static paths (search, trending, suggestions) are declared before /{book_id}
so they are not captured as ids.
"""
import logging
from datetime import datetime, timedelta, UTC
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Path, Query
from pydantic import AfterValidator, BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ebook_reader.auth import get_current_user, require_admin
from ebook_reader.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ebook_reader.database import get_db
from ebook_reader.errors import BookNotFound, ChapterNotFound, ValidationError
from ebook_reader.models import Author, Book, User, book_categories
from ebook_reader.responses import ok
from ebook_reader.services.content_service import (
    build_chapters,
    ensure_author,
    find_chapter,
    get_published_book,
    increment_read_count,
    load_categories,
    paginate,
    recompute_statistics,
    serialize_book_detail,
    serialize_books,
    serialize_chapter,
    set_book_categories,
    set_status,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/books")

URL_PATTERN = r"^https?://\S+$"

SORT_COLUMNS = {
    "published_at": Book.published_at,
    "title": Book.title,
    "created_at": Book.created_at,
    "total_reads": Book.total_reads,
}

TRENDING_PERIODS = {
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}


# --- Request models ---


class ChapterBody(BaseModel):
    title: str = Field(..., min_length=2, max_length=100)
    content: str = Field(..., min_length=1)
    order: int = Field(..., ge=1, le=2**31 - 1)


def _unique_orders(chapters: list[ChapterBody]) -> list[ChapterBody]:
    orders = [c.order for c in chapters]
    if len(orders) != len(set(orders)):
        raise ValueError("Chapter orders must be unique within a book")
    return chapters


ChapterList = Annotated[list[ChapterBody], AfterValidator(_unique_orders)]


class BookCreateBody(BaseModel):
    title: str = Field(..., min_length=2, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    author_id: str | None = None
    category_ids: list[str] = Field(default_factory=list)
    cover_image: str | None = Field(None, max_length=2048, pattern=URL_PATTERN)
    content_status: Literal["draft", "published", "archived"] = "draft"
    chapters: ChapterList = Field(default_factory=list)


class BookUpdateBody(BaseModel):
    title: str | None = Field(None, min_length=2, max_length=100)
    description: str | None = Field(None, min_length=1, max_length=1000)
    author_id: str | None = None
    category_ids: list[str] | None = None
    cover_image: str | None = Field(None, max_length=2048, pattern=URL_PATTERN)
    content_status: Literal["draft", "published", "archived"] | None = None
    chapters: ChapterList | None = None


def _published_query():
    return select(Book).where(Book.content_status == "published")


def _in_category(query, category_id: str):
    return query.where(
        Book.id.in_(
            select(book_categories.c.book_id).where(book_categories.c.category_id == category_id)
        )
    )


def _page(db: Session, query, page: int, limit: int, order_by) -> tuple[list[Book], int]:
    total = db.scalar(select(func.count()).select_from(query.subquery()))
    books = db.scalars(
        query.order_by(*order_by).offset((page - 1) * limit).limit(limit)
    ).all()
    return books, total


# --- Public endpoints ---


@router.get("")
def list_books(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    category: str | None = None,
    sort_by: Literal["published_at", "title", "created_at", "total_reads"] = "published_at",
    sort_order: Literal["asc", "desc"] = "desc",
    db: Session = Depends(get_db),
):
    """Paginated list of published books, optionally filtered by category."""
    query = _published_query()
    if category:
        query = _in_category(query, category)
    column = SORT_COLUMNS[sort_by]
    order = column.desc() if sort_order == "desc" else column.asc()
    books, total = _page(db, query, page, limit, (order, Book.id))
    logger.info("Retrieved %d books for page %d", len(books), page)
    return ok({"books": serialize_books(db, books), "pagination": paginate(page, limit, total)})


@router.get("/search")
def search_books(
    q: str | None = Query(None, max_length=200),
    author: str | None = Query(None, max_length=100),
    category: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    """
    Search published books by text (title or description, case-insensitive),
    exact author name, and/or category. An unknown author yields no results.
    """
    query = _published_query()
    if q:
        query = query.where(
            Book.title.icontains(q, autoescape=True)
            | Book.description.icontains(q, autoescape=True)
        )
    if author:
        author_ids = select(Author.id).where(func.lower(Author.name) == author.strip().lower())
        query = query.where(Book.author_id.in_(author_ids))
    if category:
        query = _in_category(query, category)
    books, total = _page(db, query, page, limit, (Book.title.asc(), Book.id))
    logger.info("Search returned %d books for query: %s", len(books), q or author)
    return ok({"books": serialize_books(db, books), "pagination": paginate(page, limit, total)})


@router.get("/trending")
def trending_books(
    period: Literal["day", "week", "month"] = "week",
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    """Most-read books among those published within the period."""
    threshold = datetime.now(UTC) - TRENDING_PERIODS[period]
    books = db.scalars(
        _published_query()
        .where(Book.published_at >= threshold)
        .order_by(Book.total_reads.desc(), Book.id)
        .limit(limit)
    ).all()
    logger.info("Retrieved %d trending books for period: %s", len(books), period)
    return ok({"books": serialize_books(db, books)})


@router.get("/suggestions")
def suggested_books(
    author_id: str | None = None,
    limit: int = Query(5, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    """Most-read published books by the given author."""
    if not author_id:
        raise ValidationError("Author ID is required")
    books = db.scalars(
        _published_query()
        .where(Book.author_id == author_id)
        .order_by(Book.total_reads.desc(), Book.id)
        .limit(limit)
    ).all()
    return ok({"books": serialize_books(db, books)})


@router.get("/{book_id}")
def get_book(book_id: str, db: Session = Depends(get_db)):
    book = db.get(Book, book_id)
    if not book:
        raise BookNotFound("Book not found")
    return ok({"book": serialize_book_detail(db, book)})


@router.get("/{book_id}/chapters/{order}")
def get_chapter(
    book_id: str,
    order: int = Path(..., ge=1),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Return one chapter of a published book and count the read."""
    book = get_published_book(db, book_id)
    chapter = find_chapter(book, order)
    if chapter is None:
        raise ChapterNotFound(f"Chapter with order {order} not found")
    data = serialize_chapter(chapter)
    increment_read_count(db, book.id)
    logger.info("Retrieved chapter %d for book %s by user %s", order, book.id, user.id)
    return ok({"chapter": data})


# --- Admin endpoints ---


@router.post("", status_code=201)
def create_book(
    body: BookCreateBody,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_author(db, body.author_id)
    category_ids = load_categories(db, body.category_ids)

    book = Book(
        title=body.title.strip(),
        description=body.description.strip(),
        author_id=body.author_id,
        cover_image=body.cover_image,
    )
    set_status(book, body.content_status)
    book.chapters = build_chapters([c.model_dump() for c in body.chapters])
    recompute_statistics(book)
    db.add(book)
    db.flush()
    set_book_categories(db, book, category_ids)
    db.commit()

    logger.info("Book created: %s by admin %s", book.id, admin.id)
    return ok({"book": serialize_book_detail(db, book)}, "Book created successfully")


@router.put("/{book_id}")
def update_book(
    book_id: str,
    body: BookUpdateBody,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    book = db.get(Book, book_id)
    if not book:
        raise BookNotFound("Book not found")

    changes = body.model_dump(exclude_unset=True)
    if "author_id" in changes:
        ensure_author(db, changes["author_id"])
        book.author_id = changes["author_id"]
    if changes.get("title") is not None:
        book.title = changes["title"].strip()
    if changes.get("description") is not None:
        book.description = changes["description"].strip()
    if "cover_image" in changes:
        book.cover_image = changes["cover_image"]
    if changes.get("content_status") is not None:
        set_status(book, changes["content_status"])
    if changes.get("category_ids") is not None:
        set_book_categories(db, book, load_categories(db, changes["category_ids"]))
    if changes.get("chapters") is not None:
        # Old rows must be gone before the new ones reuse their orders
        book.chapters.clear()
        db.flush()
        book.chapters.extend(build_chapters(changes["chapters"]))

    recompute_statistics(book)
    db.commit()

    logger.info("Book updated: %s by admin %s", book.id, admin.id)
    return ok({"book": serialize_book_detail(db, book)}, "Book updated successfully")


@router.delete("/{book_id}")
def delete_book(
    book_id: str,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Delete a book; its chapters, category links and progress rows go with it."""
    book = db.get(Book, book_id)
    if not book:
        raise BookNotFound("Book not found")
    db.delete(book)
    db.commit()
    logger.info("Book deleted: %s by admin %s", book_id, admin.id)
    return ok(message="Book deleted successfully")
