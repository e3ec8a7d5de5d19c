"""
Content service: derived book statistics, read counter, reference joins.

Business logic separated from the HTTP layer (books, authors, categories
routers). Derived fields are recomputed by an explicit call after every
content mutation; nothing recomputes them implicitly on flush.
"""
import math
import re
from datetime import datetime, UTC

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ebook_reader.errors import BookNotFound, CategoryNotFound, AuthorNotFound
from ebook_reader.models import Author, Book, Category, Chapter, book_categories

WORDS_PER_MINUTE = 200

_WHITESPACE = re.compile(r"\s+")


def count_words(text: str) -> int:
    return len([w for w in _WHITESPACE.split(text) if w])


def reading_minutes(word_count: int) -> int:
    return math.ceil(word_count / WORDS_PER_MINUTE)


def recompute_statistics(book: Book) -> Book:
    """
    Refresh every chapter's word count and reading time, then the book
    totals. Pure with respect to the session: only mutates the objects.
    """
    total_words = 0
    total_minutes = 0
    for chapter in book.chapters:
        chapter.word_count = count_words(chapter.content)
        chapter.estimated_reading_minutes = reading_minutes(chapter.word_count)
        total_words += chapter.word_count
        total_minutes += chapter.estimated_reading_minutes
    book.total_word_count = total_words
    book.total_estimated_minutes = total_minutes
    return book


def set_status(book: Book, status: str) -> None:
    """Apply a content status; the first transition to published stamps published_at."""
    book.content_status = status
    if status == "published" and book.published_at is None:
        book.published_at = datetime.now(UTC)


def build_chapters(items: list[dict]) -> list[Chapter]:
    return [
        Chapter(title=c["title"], content=c["content"], order=c["order"])
        for c in items
    ]


def get_published_book(db: Session, book_id: str) -> Book:
    book = db.get(Book, book_id)
    if not book or not book.is_published:
        raise BookNotFound()
    return book


def find_chapter(book: Book, order: int) -> Chapter | None:
    return next((c for c in book.chapters if c.order == order), None)


def increment_read_count(db: Session, book_id: str) -> None:
    """Add one read in a single UPDATE so concurrent readers never lose counts."""
    db.execute(
        update(Book)
        .where(Book.id == book_id)
        .values(total_reads=Book.total_reads + 1)
    )
    db.commit()


def ensure_author(db: Session, author_id: str | None) -> None:
    if author_id is not None and db.get(Author, author_id) is None:
        raise AuthorNotFound()


def load_categories(db: Session, category_ids: list[str]) -> list[str]:
    """Validate category ids exist; returns them de-duplicated in input order."""
    unique_ids = list(dict.fromkeys(category_ids))
    if not unique_ids:
        return []
    found = set(db.scalars(select(Category.id).where(Category.id.in_(unique_ids))))
    missing = [cid for cid in unique_ids if cid not in found]
    if missing:
        raise CategoryNotFound(f"Category not found: {missing[0]}")
    return unique_ids


def set_book_categories(db: Session, book: Book, category_ids: list[str]) -> None:
    db.execute(book_categories.delete().where(book_categories.c.book_id == book.id))
    if category_ids:
        db.execute(
            book_categories.insert(),
            [{"book_id": book.id, "category_id": cid} for cid in category_ids],
        )


# --- Read-side joins ---


def category_ids_by_book(db: Session, book_ids: list[str]) -> dict[str, list[str]]:
    result: dict[str, list[str]] = {bid: [] for bid in book_ids}
    if not book_ids:
        return result
    rows = db.execute(
        select(book_categories.c.book_id, book_categories.c.category_id).where(
            book_categories.c.book_id.in_(book_ids)
        )
    )
    for book_id, category_id in rows:
        result[book_id].append(category_id)
    return result


def serialize_author_ref(author: Author | None) -> dict | None:
    if author is None:
        return None
    return {"id": author.id, "name": author.name}


def serialize_book_summary(book: Book, author: Author | None, categories: list[Category]) -> dict:
    return {
        "id": book.id,
        "title": book.title,
        "description": book.description,
        "author": serialize_author_ref(author),
        "categories": [{"id": c.id, "name": c.name} for c in categories],
        "cover_image": book.cover_image,
        "content_status": book.content_status,
        "published_at": book.published_at,
        "statistics": {
            "total_reads": book.total_reads,
            "average_rating": book.average_rating,
            "total_reviews": book.total_reviews,
            "total_word_count": book.total_word_count,
            "total_estimated_minutes": book.total_estimated_minutes,
        },
    }


def serialize_books(db: Session, books: list[Book]) -> list[dict]:
    """
    Serialize books with their author and categories: one query for the
    category links, one for authors and one for categories, whatever the
    number of books.
    """
    book_ids = [b.id for b in books]
    links = category_ids_by_book(db, book_ids)

    author_ids = {b.author_id for b in books if b.author_id}
    authors = {}
    if author_ids:
        authors = {a.id: a for a in db.scalars(select(Author).where(Author.id.in_(author_ids)))}

    category_ids = {cid for ids in links.values() for cid in ids}
    categories = {}
    if category_ids:
        categories = {
            c.id: c for c in db.scalars(select(Category).where(Category.id.in_(category_ids)))
        }

    return [
        serialize_book_summary(
            b,
            authors.get(b.author_id),
            [categories[cid] for cid in links[b.id] if cid in categories],
        )
        for b in books
    ]


def serialize_book_detail(db: Session, book: Book) -> dict:
    data = serialize_books(db, [book])[0]
    data["chapters"] = [{"title": c.title, "order": c.order} for c in book.chapters]
    return data


def serialize_chapter(chapter: Chapter) -> dict:
    return {
        "id": chapter.id,
        "title": chapter.title,
        "content": chapter.content,
        "order": chapter.order,
        "word_count": chapter.word_count,
        "estimated_reading_minutes": chapter.estimated_reading_minutes,
    }


def paginate(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }
