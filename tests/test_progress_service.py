from datetime import date, datetime, timedelta, UTC

import pytest
from sqlalchemy import func, select

from ebook_reader.errors import BookNotFound, ChapterNotFound, Conflict, ProgressNotFound
from ebook_reader.models import Progress
from ebook_reader.services import progress_service
from ebook_reader.services.progress_service import (
    advance,
    completion_percentage,
    create_progress,
    roll_up_reading_stats,
)
from tests.conftest import make_book, make_user

DAY = datetime(2026, 3, 10, 9, 30, tzinfo=UTC)


def _progress_count(db):
    return db.scalar(select(func.count()).select_from(Progress))


def test_four_chapter_scenario_including_regression(db):
    user = make_user(db)
    book = make_book(db, orders=(1, 2, 3, 4))

    p = advance(db, user, book.id, 2, now=DAY)
    assert (p.last_chapter_order, p.completion_percentage) == (2, 50)

    p = advance(db, user, book.id, 4, now=DAY)
    assert (p.last_chapter_order, p.completion_percentage) == (4, 100)

    # Re-reading an earlier chapter moves progress back
    p = advance(db, user, book.id, 1, now=DAY)
    assert (p.last_chapter_order, p.completion_percentage) == (1, 25)
    assert _progress_count(db) == 1


def test_non_contiguous_orders_count_chapters_at_or_below(db):
    user = make_user(db)
    book = make_book(db, orders=(1, 5, 10))

    p = advance(db, user, book.id, 5, now=DAY)

    assert p.completion_percentage == 67


def test_advance_is_idempotent_on_percentage(db):
    user = make_user(db)
    book = make_book(db, orders=(1, 2, 3))

    first = advance(db, user, book.id, 2, now=DAY).completion_percentage
    second = advance(db, user, book.id, 2, now=DAY).completion_percentage

    assert first == second == 67


@pytest.mark.parametrize("k", range(1, 8))
def test_contiguous_orders_give_rounded_share(db, k):
    user = make_user(db)
    book = make_book(db, orders=range(1, 8))

    p = advance(db, user, book.id, k, now=DAY)

    assert p.completion_percentage == int(100 * k / 7 + 0.5)


def test_completion_percentage_rounds_half_up():
    assert completion_percentage(list(range(1, 9)), 1) == 13
    assert completion_percentage(list(range(1, 9)), 3) == 38
    assert completion_percentage([1], 1) == 100


def test_first_advance_creates_record_lazily(db):
    user = make_user(db)
    book = make_book(db)
    assert progress_service.find_progress(db, user.id, book.id) is None

    advance(db, user, book.id, 1, now=DAY)

    stored = progress_service.find_progress(db, user.id, book.id)
    assert stored.last_chapter_order == 1
    assert stored.completion_percentage == 25


def test_second_progress_for_same_pair_conflicts(db):
    user = make_user(db)
    book = make_book(db)
    create_progress(db, user.id, book.id)
    db.commit()

    with pytest.raises(Conflict):
        create_progress(db, user.id, book.id)
    assert _progress_count(db) == 1


def test_unknown_or_unpublished_book_is_not_found(db):
    user = make_user(db)
    draft = make_book(db, status="draft")

    with pytest.raises(BookNotFound):
        advance(db, user, "missing-id", 1)
    with pytest.raises(BookNotFound):
        advance(db, user, draft.id, 1)


def test_unknown_chapter_leaves_no_progress_behind(db):
    user = make_user(db)
    book = make_book(db, orders=(1, 2))

    with pytest.raises(ChapterNotFound):
        advance(db, user, book.id, 3, now=DAY)
    assert _progress_count(db) == 0


def test_rollup_adds_chapter_reading_minutes(db):
    user = make_user(db)
    # 450 words -> ceil(450 / 200) = 3 minutes per chapter
    book = make_book(db, orders=(1, 2), words=450)

    advance(db, user, book.id, 1, now=DAY)
    advance(db, user, book.id, 2, now=DAY)

    db.refresh(user)
    assert user.total_reading_minutes == 6
    assert user.last_read_date == DAY.date()


def test_streak_unchanged_on_same_day(db):
    user = make_user(db)
    book = make_book(db)

    advance(db, user, book.id, 1, now=DAY)
    advance(db, user, book.id, 2, now=DAY + timedelta(hours=5))

    db.refresh(user)
    assert user.current_streak == 1


def test_streak_increments_on_next_day(db):
    user = make_user(db)
    book = make_book(db)

    advance(db, user, book.id, 1, now=DAY)
    advance(db, user, book.id, 2, now=DAY + timedelta(days=1))

    db.refresh(user)
    assert user.current_streak == 2


def test_streak_resets_after_gap(db):
    user = make_user(db)
    book = make_book(db)

    advance(db, user, book.id, 1, now=DAY)
    advance(db, user, book.id, 2, now=DAY + timedelta(days=1))
    advance(db, user, book.id, 3, now=DAY + timedelta(days=4))

    db.refresh(user)
    assert user.current_streak == 1


class _Stats:
    def __init__(self, streak=0, last=None):
        self.total_reading_minutes = 0
        self.current_streak = streak
        self.last_read_date = last


def test_roll_up_reading_stats_rules():
    today = date(2026, 3, 10)

    fresh = _Stats()
    roll_up_reading_stats(fresh, 4, today)
    assert (fresh.current_streak, fresh.total_reading_minutes) == (1, 4)

    yesterday = _Stats(streak=5, last=today - timedelta(days=1))
    roll_up_reading_stats(yesterday, 0, today)
    assert yesterday.current_streak == 6

    same_day = _Stats(streak=5, last=today)
    roll_up_reading_stats(same_day, 0, today)
    assert same_day.current_streak == 5

    gap = _Stats(streak=5, last=today - timedelta(days=3))
    roll_up_reading_stats(gap, 0, today)
    assert gap.current_streak == 1
    assert gap.last_read_date == today


def test_get_progress_missing_raises(db):
    user = make_user(db)
    book = make_book(db)

    with pytest.raises(ProgressNotFound):
        progress_service.get_progress(db, user, book.id)


def test_list_progress_orders_by_last_read_descending(db):
    user = make_user(db)
    older = make_book(db, title="Older")
    newer = make_book(db, title="Newer")
    advance(db, user, older.id, 1, now=DAY)
    advance(db, user, newer.id, 1, now=DAY + timedelta(hours=1))

    items, total = progress_service.list_progress(db, user, page=1, limit=10)

    assert total == 2
    assert [i["book"]["title"] for i in items] == ["Newer", "Older"]

    items, total = progress_service.list_progress(db, user, page=2, limit=1)
    assert total == 2
    assert [i["book"]["title"] for i in items] == ["Older"]
