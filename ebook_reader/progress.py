"""
Progress router: record and read the current user's reading progress.

All endpoints require a valid access token. Logic lives in
services.progress_service.
"""
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ebook_reader.auth import get_current_user
from ebook_reader.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ebook_reader.database import get_db
from ebook_reader.models import User
from ebook_reader.responses import ok
from ebook_reader.services import progress_service
from ebook_reader.services.content_service import paginate

router = APIRouter(prefix="/progress")


class ProgressBody(BaseModel):
    """Request body for advancing progress in a book."""
    book_id: str = Field(..., min_length=1, max_length=36)
    chapter_order: int = Field(..., ge=1)


@router.post("")
def update_progress(
    body: ProgressBody,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    progress = progress_service.advance(db, user, body.book_id, body.chapter_order)
    return ok(
        {"progress": progress_service.serialize_progress(progress)},
        "Progress updated successfully",
    )


@router.get("")
def list_progress(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    items, total = progress_service.list_progress(db, user, page, limit)
    return ok({"progress": items, "pagination": paginate(page, limit, total)})


@router.get("/{book_id}")
def get_progress(
    book_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ok({"progress": progress_service.get_progress(db, user, book_id)})
