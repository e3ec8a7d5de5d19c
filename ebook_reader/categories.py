"""
Categories router: public listing and lookup, admin create/update/delete.

Category names are unique (store constraint); duplicates surface as 409.
A category still linked to books cannot be deleted.
"""
import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ebook_reader.auth import require_admin
from ebook_reader.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ebook_reader.database import get_db
from ebook_reader.errors import CategoryNotFound, Conflict
from ebook_reader.models import Book, Category, User, book_categories
from ebook_reader.responses import ok
from ebook_reader.services.content_service import paginate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/categories")


class CategoryCreateBody(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    description: str = Field("", max_length=500)


class CategoryUpdateBody(BaseModel):
    name: str | None = Field(None, min_length=2, max_length=50)
    description: str | None = Field(None, max_length=500)


def serialize_category(category: Category) -> dict:
    return {"id": category.id, "name": category.name, "description": category.description}


def _get_category(db: Session, category_id: str) -> Category:
    category = db.get(Category, category_id)
    if not category:
        raise CategoryNotFound()
    return category


@router.get("")
def list_categories(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    q: str | None = Query(None, max_length=50),
    db: Session = Depends(get_db),
):
    query = select(Category)
    if q:
        query = query.where(Category.name.icontains(q, autoescape=True))
    total = db.scalar(select(func.count()).select_from(query.subquery()))
    categories = db.scalars(
        query.order_by(Category.name).offset((page - 1) * limit).limit(limit)
    ).all()
    logger.info("Retrieved %d categories for page %d", len(categories), page)
    return ok({
        "categories": [serialize_category(c) for c in categories],
        "pagination": paginate(page, limit, total),
    })


@router.get("/{category_id}")
def get_category(category_id: str, db: Session = Depends(get_db)):
    """Category with its published books."""
    category = _get_category(db, category_id)
    books = db.scalars(
        select(Book)
        .join(book_categories, book_categories.c.book_id == Book.id)
        .where(
            book_categories.c.category_id == category.id,
            Book.content_status == "published",
        )
        .order_by(Book.title)
    ).all()
    data = serialize_category(category)
    data["books"] = [
        {"id": b.id, "title": b.title, "description": b.description, "cover_image": b.cover_image}
        for b in books
    ]
    return ok({"category": data})


@router.post("", status_code=201)
def create_category(
    body: CategoryCreateBody,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    category = Category(name=body.name.strip(), description=body.description.strip())
    db.add(category)
    db.commit()
    logger.info("Category created: %s by admin %s", category.name, admin.id)
    return ok({"category": serialize_category(category)}, "Category created successfully")


@router.put("/{category_id}")
def update_category(
    category_id: str,
    body: CategoryUpdateBody,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    category = _get_category(db, category_id)
    changes = body.model_dump(exclude_unset=True)
    if changes.get("name") is not None:
        category.name = changes["name"].strip()
    if changes.get("description") is not None:
        category.description = changes["description"].strip()
    db.commit()
    logger.info("Category updated: %s by admin %s", category.name, admin.id)
    return ok({"category": serialize_category(category)}, "Category updated successfully")


@router.delete("/{category_id}")
def delete_category(
    category_id: str,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    category = _get_category(db, category_id)
    book_count = db.scalar(
        select(func.count())
        .select_from(book_categories)
        .where(book_categories.c.category_id == category.id)
    )
    if book_count:
        raise Conflict("Cannot delete category with associated books")
    db.delete(category)
    db.commit()
    logger.info("Category deleted: %s by admin %s", category.name, admin.id)
    return ok(message="Category deleted successfully")
