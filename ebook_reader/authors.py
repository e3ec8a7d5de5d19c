"""
Authors router: public listing and lookup, admin create/update/delete.

An author that still has books cannot be deleted.
"""
import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ebook_reader.auth import require_admin
from ebook_reader.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ebook_reader.database import get_db
from ebook_reader.errors import AuthorNotFound, Conflict
from ebook_reader.models import Author, Book, User
from ebook_reader.responses import ok
from ebook_reader.services.content_service import paginate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/authors")

URL_PATTERN = r"^https?://\S+$"


class AuthorCreateBody(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    bio: str = Field("", max_length=500)
    profile_image: str | None = Field(None, max_length=2048, pattern=URL_PATTERN)


class AuthorUpdateBody(BaseModel):
    name: str | None = Field(None, min_length=2, max_length=100)
    bio: str | None = Field(None, max_length=500)
    profile_image: str | None = Field(None, max_length=2048, pattern=URL_PATTERN)


def serialize_author(author: Author) -> dict:
    return {
        "id": author.id,
        "name": author.name,
        "bio": author.bio,
        "profile_image": author.profile_image,
    }


def _get_author(db: Session, author_id: str) -> Author:
    author = db.get(Author, author_id)
    if not author:
        raise AuthorNotFound()
    return author


@router.get("")
def list_authors(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    q: str | None = Query(None, max_length=100),
    db: Session = Depends(get_db),
):
    query = select(Author)
    if q:
        query = query.where(Author.name.icontains(q, autoescape=True))
    total = db.scalar(select(func.count()).select_from(query.subquery()))
    authors = db.scalars(
        query.order_by(Author.name, Author.id).offset((page - 1) * limit).limit(limit)
    ).all()
    logger.info("Retrieved %d authors for page %d", len(authors), page)
    return ok({
        "authors": [serialize_author(a) for a in authors],
        "pagination": paginate(page, limit, total),
    })


@router.get("/{author_id}")
def get_author(author_id: str, db: Session = Depends(get_db)):
    """Author with their published books."""
    author = _get_author(db, author_id)
    books = db.scalars(
        select(Book)
        .where(Book.author_id == author.id, Book.content_status == "published")
        .order_by(Book.title)
    ).all()
    data = serialize_author(author)
    data["books"] = [
        {"id": b.id, "title": b.title, "description": b.description, "cover_image": b.cover_image}
        for b in books
    ]
    return ok({"author": data})


@router.post("", status_code=201)
def create_author(
    body: AuthorCreateBody,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    author = Author(
        name=body.name.strip(),
        bio=body.bio.strip(),
        profile_image=body.profile_image,
    )
    db.add(author)
    db.commit()
    logger.info("Author created: %s by admin %s", author.id, admin.id)
    return ok({"author": serialize_author(author)}, "Author created successfully")


@router.put("/{author_id}")
def update_author(
    author_id: str,
    body: AuthorUpdateBody,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    author = _get_author(db, author_id)
    changes = body.model_dump(exclude_unset=True)
    if changes.get("name") is not None:
        author.name = changes["name"].strip()
    if changes.get("bio") is not None:
        author.bio = changes["bio"].strip()
    if "profile_image" in changes:
        author.profile_image = changes["profile_image"]
    db.commit()
    logger.info("Author updated: %s by admin %s", author.id, admin.id)
    return ok({"author": serialize_author(author)}, "Author updated successfully")


@router.delete("/{author_id}")
def delete_author(
    author_id: str,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    author = _get_author(db, author_id)
    book_count = db.scalar(select(func.count()).select_from(Book).where(Book.author_id == author.id))
    if book_count:
        raise Conflict("Cannot delete author with associated books")
    db.delete(author)
    db.commit()
    logger.info("Author deleted: %s by admin %s", author_id, admin.id)
    return ok(message="Author deleted successfully")
