"""
In-memory repositories.

Reference implementations of the repository ports, used by the HTTP server,
the CLI simulator and the tests. Aggregates are copied on the way in and out;
callers never share state with the store.
"""

import asyncio
import copy
import logging
from datetime import datetime, time

from memora.domain.result import ConcurrencyConflictError
from memora.domain.srs.ports import (
    ReviewScheduleRepository,
    ScheduleStatus,
    StudyRecordRepository,
)
from memora.domain.srs.schedule import ReviewSchedule
from memora.domain.srs.study_record import StudyRecord

logger = logging.getLogger(__name__)


def _end_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.max, tzinfo=moment.tzinfo)


def _snapshot(schedule: ReviewSchedule) -> ReviewSchedule:
    """Detached copy without pending events."""
    return ReviewSchedule.reconstitute(schedule.props, schedule.id)


class InMemoryReviewScheduleRepository(ReviewScheduleRepository):
    def __init__(self) -> None:
        self._items: dict[str, ReviewSchedule] = {}
        self._lock = asyncio.Lock()

    async def find_by_id(self, schedule_id: str) -> ReviewSchedule | None:
        stored = self._items.get(schedule_id)
        return _snapshot(stored) if stored else None

    async def find_by_ids(self, schedule_ids: list[str]) -> list[ReviewSchedule]:
        return [_snapshot(self._items[sid]) for sid in schedule_ids if sid in self._items]

    async def find_by_student_id(self, student_id: str) -> list[ReviewSchedule]:
        return self._select(lambda s: s.student_id == student_id)

    async def find_by_item_id(self, item_id: str) -> list[ReviewSchedule]:
        return self._select(lambda s: s.item_id == item_id)

    async def find_by_student_and_item(
        self, student_id: str, item_id: str
    ) -> ReviewSchedule | None:
        matches = self._select(lambda s: s.student_id == student_id and s.item_id == item_id)
        return matches[0] if matches else None

    async def find_due_reviews(self, student_id: str, as_of: datetime) -> list[ReviewSchedule]:
        return self._select(
            lambda s: s.student_id == student_id and s.next_review_at <= as_of,
        )

    async def find_today_reviews(self, student_id: str, as_of: datetime) -> list[ReviewSchedule]:
        cutoff = _end_of_day(as_of)
        return self._select(
            lambda s: s.student_id == student_id and s.next_review_at <= cutoff,
            key=lambda s: (s.next_review_at, s.ease_factor),
        )

    async def find_overdue_reviews(self, student_id: str, as_of: datetime) -> list[ReviewSchedule]:
        return self._select(lambda s: s.student_id == student_id and s.next_review_at < as_of)

    async def find_overdue_schedules(
        self, as_of: datetime, limit: int | None = None
    ) -> list[ReviewSchedule]:
        overdue = self._select(lambda s: s.next_review_at < as_of)
        return overdue[:limit] if limit is not None else overdue

    async def save(self, schedule: ReviewSchedule) -> None:
        async with self._lock:
            stored = self._items.get(schedule.id)
            stored_version = stored.version if stored else 0
            if stored is not None and stored_version != schedule.version:
                logger.warning(
                    f"Version conflict for schedule {schedule.id}: "
                    f"stored={stored_version} loaded={schedule.version}"
                )
                raise ConcurrencyConflictError(
                    f"schedule {schedule.id} was modified concurrently "
                    f"(stored version {stored_version}, loaded version {schedule.version})"
                )
            if stored is None:
                duplicate = next(
                    (
                        s
                        for s in self._items.values()
                        if s.student_id == schedule.student_id and s.item_id == schedule.item_id
                    ),
                    None,
                )
                if duplicate is not None:
                    raise ConcurrencyConflictError(
                        f"a schedule already exists for student {schedule.student_id} "
                        f"and item {schedule.item_id}"
                    )
            schedule.mark_persisted(stored_version + 1)
            self._items[schedule.id] = _snapshot(schedule)
            logger.debug(f"Saved schedule {schedule.id} at version {schedule.version}")

    async def delete(self, schedule_id: str) -> bool:
        async with self._lock:
            return self._items.pop(schedule_id, None) is not None

    async def count_by_student(self, student_id: str) -> int:
        return len(self._select(lambda s: s.student_id == student_id))

    async def count_by_student_and_status(
        self, student_id: str, status: ScheduleStatus, as_of: datetime
    ) -> int:
        if status == "due":
            predicate = lambda s: s.next_review_at <= as_of  # noqa: E731
        elif status == "overdue":
            predicate = lambda s: s.next_review_at < as_of  # noqa: E731
        elif status == "upcoming":
            predicate = lambda s: s.next_review_at > as_of  # noqa: E731
        else:
            raise ValueError(f"unknown schedule status {status!r}")
        return len(self._select(lambda s: s.student_id == student_id and predicate(s)))

    def _select(self, predicate, key=None) -> list[ReviewSchedule]:
        matches = [s for s in self._items.values() if predicate(s)]
        matches.sort(key=key or (lambda s: s.next_review_at))
        return [_snapshot(s) for s in matches]


class InMemoryStudyRecordRepository(StudyRecordRepository):
    def __init__(self) -> None:
        self._records: list[StudyRecord] = []

    async def save(self, record: StudyRecord) -> None:
        self._records.append(copy.deepcopy(record))

    async def find_by_student(self, student_id: str, limit: int | None = None) -> list[StudyRecord]:
        records = sorted(
            (r for r in self._records if r.student_id == student_id),
            key=lambda r: r.created_at,
            reverse=True,
        )
        return records[:limit] if limit is not None else records

    async def find_by_date_range(
        self, student_id: str, start: datetime, end: datetime
    ) -> list[StudyRecord]:
        return sorted(
            (
                r
                for r in self._records
                if r.student_id == student_id and start <= r.created_at <= end
            ),
            key=lambda r: r.created_at,
        )

    async def count(self) -> int:
        return len(self._records)
