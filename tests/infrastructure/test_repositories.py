from datetime import datetime, timedelta, timezone

import pytest

from memora.domain.result import ConcurrencyConflictError
from memora.domain.srs.study_record import StudyRecord
from memora.domain.srs.values import ReviewFeedback
from memora.infrastructure.clock import FixedClock

T0 = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


def record(student_id, created_at, feedback=ReviewFeedback.GOOD, response_time=None):
    return StudyRecord(
        student_id=student_id,
        item_id="item-1",
        feedback=feedback,
        is_correct=feedback.is_correct,
        created_at=created_at,
        response_time=response_time,
    )


# --- Clock ---


def test_fixed_clock_treats_naive_datetimes_as_utc():
    clock = FixedClock(datetime(2024, 1, 15, 10, 0))
    assert clock.now() == T0
    assert clock.advance(hours=2) == T0 + timedelta(hours=2)
    clock.set(datetime(2024, 2, 1))
    assert clock.now().tzinfo is timezone.utc


# --- Schedules ---


@pytest.mark.asyncio
async def test_save_bumps_version_and_returns_detached_copies(schedule_repo, schedule):
    await schedule_repo.save(schedule)
    assert schedule.version == 1

    loaded = await schedule_repo.find_by_id(schedule.id)
    assert loaded is not schedule
    assert loaded.props == schedule.props


@pytest.mark.asyncio
async def test_stale_write_is_rejected(schedule_repo, schedule, policy, clock):
    await schedule_repo.save(schedule)
    first = await schedule_repo.find_by_id(schedule.id)
    second = await schedule_repo.find_by_id(schedule.id)

    clock.set(first.next_review_at)
    first.process_review_feedback(ReviewFeedback.GOOD, policy, clock)
    second.process_review_feedback(ReviewFeedback.AGAIN, policy, clock)

    await schedule_repo.save(first)
    with pytest.raises(ConcurrencyConflictError, match="modified concurrently"):
        await schedule_repo.save(second)

    stored = await schedule_repo.find_by_id(schedule.id)
    assert stored.version == 2
    assert stored.consecutive_failures == 0


@pytest.mark.asyncio
async def test_duplicate_student_item_pair_is_rejected(schedule_repo, schedule, factory):
    await schedule_repo.save(schedule)
    twin = factory.create(schedule.student_id, schedule.item_id).unwrap()
    with pytest.raises(ConcurrencyConflictError, match="already exists"):
        await schedule_repo.save(twin)


@pytest.mark.asyncio
async def test_queries_by_student_and_item(schedule_repo, factory):
    a = factory.create("alice", "item-1").unwrap()
    b = factory.create("alice", "item-2").unwrap()
    c = factory.create("bob", "item-1").unwrap()
    for s in (a, b, c):
        await schedule_repo.save(s)

    assert {s.id for s in await schedule_repo.find_by_student_id("alice")} == {a.id, b.id}
    assert {s.id for s in await schedule_repo.find_by_item_id("item-1")} == {a.id, c.id}
    assert (await schedule_repo.find_by_student_and_item("bob", "item-1")).id == c.id
    assert await schedule_repo.find_by_student_and_item("bob", "item-2") is None
    assert [s.id for s in await schedule_repo.find_by_ids([c.id, "missing"])] == [c.id]
    assert await schedule_repo.count_by_student("alice") == 2


@pytest.mark.asyncio
async def test_due_overdue_and_today_queries(schedule_repo, factory, clock):
    due_now = factory.create("alice", "due").unwrap()
    later = factory.create("alice", "later").unwrap()
    later.postpone_review(30, clock)
    for s in (due_now, later):
        await schedule_repo.save(s)

    at_due = due_now.next_review_at
    assert [s.id for s in await schedule_repo.find_due_reviews("alice", at_due)] == [due_now.id]
    assert await schedule_repo.find_overdue_reviews("alice", at_due) == []
    assert await schedule_repo.count_by_student_and_status("alice", "due", at_due) == 1
    assert await schedule_repo.count_by_student_and_status("alice", "overdue", at_due) == 0
    assert await schedule_repo.count_by_student_and_status("alice", "upcoming", at_due) == 1

    later_on = at_due + timedelta(hours=1)
    overdue = await schedule_repo.find_overdue_by_student_id("alice", later_on)
    assert [s.id for s in overdue] == [due_now.id]
    assert await schedule_repo.count_overdue_by_student_id("alice", later_on) == 1
    assert len(await schedule_repo.find_overdue_schedules(later_on, limit=5)) == 1

    today = await schedule_repo.find_today_reviews("alice", at_due)
    assert [s.id for s in today] == [due_now.id]


@pytest.mark.asyncio
async def test_unknown_status_raises(schedule_repo):
    with pytest.raises(ValueError):
        await schedule_repo.count_by_student_and_status("alice", "archived", T0)


@pytest.mark.asyncio
async def test_delete(schedule_repo, schedule):
    await schedule_repo.save(schedule)
    assert await schedule_repo.delete(schedule.id) is True
    assert await schedule_repo.delete(schedule.id) is False
    assert await schedule_repo.find_by_id(schedule.id) is None


# --- Study records ---


@pytest.mark.asyncio
async def test_study_records_newest_first(record_repo):
    for hours in (1, 3, 2):
        await record_repo.save(record("alice", T0 + timedelta(hours=hours)))
    await record_repo.save(record("bob", T0))

    latest = await record_repo.find_by_student("alice", limit=2)
    assert [r.created_at for r in latest] == [T0 + timedelta(hours=3), T0 + timedelta(hours=2)]
    assert len(await record_repo.find_by_student("alice")) == 3
    assert await record_repo.count() == 4


@pytest.mark.asyncio
async def test_study_records_by_date_range(record_repo):
    await record_repo.save(record("alice", T0 - timedelta(days=1)))
    await record_repo.save(record("alice", T0))
    await record_repo.save(record("alice", T0 + timedelta(hours=5)))

    found = await record_repo.find_by_date_range("alice", T0, T0 + timedelta(hours=12))
    assert [r.created_at for r in found] == [T0, T0 + timedelta(hours=5)]
