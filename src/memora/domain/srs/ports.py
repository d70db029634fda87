"""
Ports (interfaces) of the scheduling core.

These define the contracts that infrastructure adapters must implement.
The aggregate depends only on ``Clock``; application services depend on the
repository abstractions, never on concrete storage.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from memora.domain.srs.schedule import ReviewSchedule
    from memora.domain.srs.study_record import StudyRecord

ScheduleStatus = Literal["due", "overdue", "upcoming"]


class Clock(ABC):
    """
    Time source.

    Implementations:
        - SystemClock: wall-clock UTC time.
        - FixedClock: settable time for tests and simulations.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Current time as a timezone-aware datetime."""


class ReviewScheduleRepository(ABC):
    """
    Port for loading and saving ``ReviewSchedule`` aggregates.

    ``save`` must apply optimistic concurrency: it raises
    ``ConcurrencyConflictError`` when the stored version differs from the
    version the aggregate was loaded with, then bumps the version.

    Implementations:
        - InMemoryReviewScheduleRepository: process-local dictionary store.
    """

    @abstractmethod
    async def find_by_id(self, schedule_id: str) -> ReviewSchedule | None:
        pass

    @abstractmethod
    async def find_by_ids(self, schedule_ids: list[str]) -> list[ReviewSchedule]:
        pass

    @abstractmethod
    async def find_by_student_id(self, student_id: str) -> list[ReviewSchedule]:
        pass

    @abstractmethod
    async def find_by_item_id(self, item_id: str) -> list[ReviewSchedule]:
        pass

    @abstractmethod
    async def find_by_student_and_item(
        self, student_id: str, item_id: str
    ) -> ReviewSchedule | None:
        pass

    @abstractmethod
    async def find_due_reviews(self, student_id: str, as_of: datetime) -> list[ReviewSchedule]:
        """Schedules with ``next_review_at <= as_of``, earliest first."""
        pass

    @abstractmethod
    async def find_today_reviews(self, student_id: str, as_of: datetime) -> list[ReviewSchedule]:
        """
        Schedules due before the end of ``as_of``'s day.

        Ordered by due time, then by ease factor (harder items first).
        """
        pass

    @abstractmethod
    async def find_overdue_reviews(self, student_id: str, as_of: datetime) -> list[ReviewSchedule]:
        """Schedules with ``next_review_at < as_of``, most overdue first."""
        pass

    @abstractmethod
    async def find_overdue_schedules(
        self, as_of: datetime, limit: int | None = None
    ) -> list[ReviewSchedule]:
        """Overdue schedules of every student, for background sweeps."""
        pass

    @abstractmethod
    async def save(self, schedule: ReviewSchedule) -> None:
        pass

    @abstractmethod
    async def delete(self, schedule_id: str) -> bool:
        pass

    @abstractmethod
    async def count_by_student(self, student_id: str) -> int:
        pass

    @abstractmethod
    async def count_by_student_and_status(
        self, student_id: str, status: ScheduleStatus, as_of: datetime
    ) -> int:
        pass

    async def find_overdue_by_student_id(
        self, student_id: str, as_of: datetime
    ) -> list[ReviewSchedule]:
        return await self.find_overdue_reviews(student_id, as_of)

    async def count_overdue_by_student_id(self, student_id: str, as_of: datetime) -> int:
        return await self.count_by_student_and_status(student_id, "overdue", as_of)


class StudyRecordRepository(ABC):
    """
    Port for the append-only study log.

    Implementations:
        - InMemoryStudyRecordRepository
    """

    @abstractmethod
    async def save(self, record: StudyRecord) -> None:
        pass

    @abstractmethod
    async def find_by_student(self, student_id: str, limit: int | None = None) -> list[StudyRecord]:
        """Newest records first."""
        pass

    @abstractmethod
    async def find_by_date_range(
        self, student_id: str, start: datetime, end: datetime
    ) -> list[StudyRecord]:
        """Records with ``start <= created_at <= end``, oldest first."""
        pass
