"""
Review queue service: application-layer orchestrator for the review loop.

Loads schedules from the repository, runs the aggregate's operations with the
injected policy and clock, saves the result and dispatches the produced
events. Depends only on domain ports, never on concrete adapters.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Any, Literal

from memora.application.events import DispatchReport, EventDispatcher, HandlerFailure
from memora.domain import constants as c
from memora.domain.result import (
    AccessDeniedError,
    ConcurrencyConflictError,
    NotFoundError,
    Result,
)
from memora.domain.srs.factory import ReviewScheduleFactory
from memora.domain.srs.policy import SpacedRepetitionPolicy
from memora.domain.srs.ports import Clock, ReviewScheduleRepository, StudyRecordRepository
from memora.domain.srs.schedule import ReviewSchedule
from memora.domain.srs.study_record import StudyRecord
from memora.domain.srs.values import DifficultyLevel, ReviewFeedback, round_half_up

logger = logging.getLogger(__name__)

QueuePriority = Literal["high", "medium", "low"]
_PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


@dataclass
class ReviewQueueItem:
    schedule_id: str
    student_id: str
    item_id: str
    next_review_at: datetime
    current_interval: int
    ease_factor: float
    review_count: int
    consecutive_failures: int
    priority: QueuePriority
    is_overdue: bool
    minutes_until_due: int
    difficulty_level: DifficultyLevel
    retention_probability: float


@dataclass
class ReviewCompletionResult:
    schedule_id: str
    previous_interval: int
    new_interval: int
    previous_ease_factor: float
    new_ease_factor: float
    next_review_at: datetime
    review_count: int
    consecutive_failures: int
    delivery_failures: list[str] = field(default_factory=list)


@dataclass
class ScheduleUpdateResult:
    schedule_id: str
    previous_next_review_at: datetime
    new_next_review_at: datetime
    previous_interval: int
    new_interval: int
    previous_ease_factor: float
    new_ease_factor: float
    updated_fields: list[str]
    updated_at: datetime


@dataclass
class ReviewStatistics:
    total_scheduled: int
    due_today: int
    overdue: int
    completed_today: int
    streak_days: int
    average_retention: int  # percent correct over recent records
    total_time_spent: float  # minutes


class ReviewQueueService:
    """
    Application service for the student review loop.

    Follows Dependency Inversion: depends on repository, policy and clock
    abstractions, so tests and alternative algorithms plug in freely.
    """

    def __init__(
        self,
        schedules: ReviewScheduleRepository,
        records: StudyRecordRepository,
        policy: SpacedRepetitionPolicy,
        clock: Clock,
        dispatcher: EventDispatcher | None = None,
    ):
        self._schedules = schedules
        self._records = records
        self._policy = policy
        self._clock = clock
        self._dispatcher = dispatcher or EventDispatcher()
        self._factory = ReviewScheduleFactory(policy, clock)
        self._failed_deliveries: list[HandlerFailure] = []

    @property
    def policy(self) -> SpacedRepetitionPolicy:
        return self._policy

    @property
    def failed_deliveries(self) -> list[HandlerFailure]:
        """Event deliveries that failed and await ``retry_failed_deliveries``."""
        return list(self._failed_deliveries)

    # ---------- Tracking ----------

    async def start_tracking(self, student_id: str, item_id: str) -> Result[ReviewSchedule]:
        """Return the existing schedule for the pair, or create one on first exposure."""
        try:
            existing = await self._schedules.find_by_student_and_item(student_id, item_id)
            if existing is not None:
                return Result.success(existing)

            created = self._factory.create(student_id, item_id)
            if created.is_failure:
                return created
            schedule = created.unwrap()
            await self._schedules.save(schedule)
            await self._publish(schedule)
            logger.info(f"Started tracking {item_id} for {student_id} as {schedule.id}")
            return Result.success(schedule)
        except ConcurrencyConflictError as e:
            logger.warning(f"Concurrent creation for {student_id}/{item_id}: {e}")
            return Result.fail(str(e), cause=e)
        except Exception as e:
            logger.error(f"Failed to start tracking {student_id}/{item_id}: {e}", exc_info=True)
            return Result.fail(f"Failed to start tracking: {e}", cause=e)

    async def get_schedule(self, schedule_id: str) -> ReviewSchedule | None:
        return await self._schedules.find_by_id(schedule_id)

    # ---------- Queues ----------

    async def get_today_reviews(self, student_id: str) -> Result[list[ReviewQueueItem]]:
        """
        Today's review queue.

        Order: priority (high, medium, low), overdue first, earliest due,
        then lower ease factor (harder) first.
        """
        try:
            schedules = await self._schedules.find_today_reviews(student_id, self._clock.now())
            items = [self._to_queue_item(s) for s in schedules]
            return Result.success(self._sort_by_priority(items))
        except Exception as e:
            logger.error(f"Failed to get today reviews for {student_id}: {e}", exc_info=True)
            return Result.fail(f"Failed to get today reviews: {e}", cause=e)

    async def get_overdue_reviews(self, student_id: str) -> Result[list[ReviewQueueItem]]:
        try:
            schedules = await self._schedules.find_overdue_reviews(student_id, self._clock.now())
            items = [self._to_queue_item(s) for s in schedules]
            items = [item for item in items if item.is_overdue]
            items.sort(key=lambda item: item.next_review_at)
            return Result.success(items)
        except Exception as e:
            logger.error(f"Failed to get overdue reviews for {student_id}: {e}", exc_info=True)
            return Result.fail(f"Failed to get overdue reviews: {e}", cause=e)

    # ---------- Review loop ----------

    async def mark_review_completed(
        self,
        student_id: str,
        schedule_id: str,
        feedback: ReviewFeedback | str,
        response_time: float | None = None,
        answer_content: Any = None,
    ) -> Result[ReviewCompletionResult]:
        """
        Process one review, save the schedule and dispatch its events.

        The review is committed even when an event handler fails; such
        failures are listed in ``delivery_failures`` and kept for
        ``retry_failed_deliveries``.
        """
        parsed = ReviewFeedback.create(feedback)
        if parsed.is_failure:
            return Result.fail(parsed.error or "invalid feedback")

        try:
            loaded = await self._load_owned(student_id, schedule_id)
            if loaded.is_failure:
                return Result.fail(loaded.error or "schedule unavailable", cause=loaded.cause)
            schedule = loaded.unwrap()

            previous_interval = schedule.current_interval
            previous_ease = schedule.ease_factor

            study_info: dict[str, Any] = {}
            if response_time is not None:
                study_info["response_time"] = response_time
            if answer_content is not None:
                study_info["answer_content"] = answer_content

            processed = schedule.process_review_feedback(
                parsed.unwrap(), self._policy, self._clock, study_info  # type: ignore[arg-type]
            )
            if processed.is_failure:
                logger.warning(f"Review of {schedule_id} rejected: {processed.error}")
                return Result.fail(processed.error or "review failed", cause=processed.cause)

            await self._schedules.save(schedule)
            report = await self._publish(schedule)

            logger.info(
                f"Review {schedule_id} {parsed.value.value}: "
                f"interval {previous_interval}->{schedule.current_interval}d, "
                f"ease {previous_ease}->{schedule.ease_factor}"
            )
            return Result.success(
                ReviewCompletionResult(
                    schedule_id=schedule.id,
                    previous_interval=previous_interval,
                    new_interval=schedule.current_interval,
                    previous_ease_factor=previous_ease,
                    new_ease_factor=schedule.ease_factor,
                    next_review_at=schedule.next_review_at,
                    review_count=schedule.review_count,
                    consecutive_failures=schedule.consecutive_failures,
                    delivery_failures=[
                        f"{f.handler}: {f.event.event_type}: {f.error}" for f in report.failures
                    ],
                )
            )
        except ConcurrencyConflictError as e:
            logger.warning(f"Concurrent review of {schedule_id}: {e}")
            return Result.fail(str(e), cause=e)
        except Exception as e:
            logger.error(f"Failed to complete review {schedule_id}: {e}", exc_info=True)
            return Result.fail(f"Failed to complete review: {e}", cause=e)

    async def retry_failed_deliveries(self) -> DispatchReport:
        """Redeliver previously failed events; deliveries that fail again stay queued."""
        pending, self._failed_deliveries = self._failed_deliveries, []
        report = await self._dispatcher.redeliver(pending)
        self._failed_deliveries.extend(report.failures)
        if report.delivered:
            logger.info(f"Redelivered {report.delivered} event(s)")
        return report

    # ---------- Administrative overrides ----------

    async def postpone_review(
        self, student_id: str, schedule_id: str, hours: float
    ) -> Result[ReviewSchedule]:
        return await self._override(
            student_id, schedule_id, lambda s: s.postpone_review(hours, self._clock)
        )

    async def advance_review(
        self, student_id: str, schedule_id: str, hours: float
    ) -> Result[ReviewSchedule]:
        return await self._override(
            student_id, schedule_id, lambda s: s.advance_review(hours, self._clock)
        )

    async def update_schedule(
        self,
        student_id: str,
        schedule_id: str,
        postpone_hours: float | None = None,
        advance_hours: float | None = None,
        next_review_at: datetime | None = None,
        interval_days: int | None = None,
        ease_factor: float | None = None,
    ) -> Result[ScheduleUpdateResult]:
        """
        Apply several manual adjustments in one save.

        Order: postpone, advance, explicit review time, interval, ease factor.
        If any step fails nothing is saved.
        """
        steps = [
            ("postponed", postpone_hours, lambda s: s.postpone_review(postpone_hours, self._clock)),
            ("advanced", advance_hours, lambda s: s.advance_review(advance_hours, self._clock)),
            (
                "next_review_at",
                next_review_at,
                lambda s: s.set_next_review_time(next_review_at, self._clock),
            ),
            ("interval", interval_days, lambda s: s.update_interval(interval_days, self._clock)),
            ("ease_factor", ease_factor, lambda s: s.update_ease_factor(ease_factor, self._clock)),
        ]
        requested = [(name, op) for name, value, op in steps if value is not None]
        if not requested:
            return Result.fail("No schedule updates requested")

        captured: dict[str, Any] = {}

        def apply_all(schedule: ReviewSchedule) -> Result[None]:
            captured.update(
                next_review_at=schedule.next_review_at,
                interval=schedule.current_interval,
                ease_factor=schedule.ease_factor,
            )
            for name, op in requested:
                outcome = op(schedule)
                if outcome.is_failure:
                    return Result.fail(f"{name}: {outcome.error}", cause=outcome.cause)
            return Result.success()

        updated = await self._override(student_id, schedule_id, apply_all)
        if updated.is_failure:
            return Result.fail(updated.error or "update failed", cause=updated.cause)
        schedule = updated.unwrap()
        return Result.success(
            ScheduleUpdateResult(
                schedule_id=schedule.id,
                previous_next_review_at=captured["next_review_at"],
                new_next_review_at=schedule.next_review_at,
                previous_interval=captured["interval"],
                new_interval=schedule.current_interval,
                previous_ease_factor=captured["ease_factor"],
                new_ease_factor=schedule.ease_factor,
                updated_fields=[name for name, _ in requested],
                updated_at=schedule.updated_at,
            )
        )

    async def _override(self, student_id, schedule_id, operation) -> Result[ReviewSchedule]:
        try:
            loaded = await self._load_owned(student_id, schedule_id)
            if loaded.is_failure:
                return loaded
            schedule = loaded.unwrap()
            outcome = operation(schedule)
            if outcome.is_failure:
                return Result.fail(outcome.error or "override failed", cause=outcome.cause)
            await self._schedules.save(schedule)
            logger.info(f"Schedule {schedule_id} moved to {schedule.next_review_at.isoformat()}")
            return Result.success(schedule)
        except ConcurrencyConflictError as e:
            return Result.fail(str(e), cause=e)
        except Exception as e:
            logger.error(f"Override of {schedule_id} failed: {e}", exc_info=True)
            return Result.fail(f"Failed to update review schedule: {e}", cause=e)

    # ---------- Background sweep ----------

    async def sweep_overdue(self, limit: int | None = None) -> Result[int]:
        """
        Emit one overdue notification per overdue schedule.

        The aggregate keeps no dedup memory; schedule this sweep at most once
        per overdue window.
        """
        try:
            now = self._clock.now()
            triggered = 0
            for schedule in await self._schedules.find_overdue_schedules(now, limit=limit):
                if schedule.trigger_overdue_notification(self._clock):
                    triggered += 1
                    await self._publish(schedule)
            if triggered:
                logger.info(f"Overdue sweep emitted {triggered} notification(s)")
            return Result.success(triggered)
        except Exception as e:
            logger.error(f"Overdue sweep failed: {e}", exc_info=True)
            return Result.fail(f"Failed to sweep overdue reviews: {e}", cause=e)

    # ---------- Statistics ----------

    async def get_review_statistics(self, student_id: str) -> Result[ReviewStatistics]:
        try:
            now = self._clock.now()
            start_of_day = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
            end_of_day = datetime.combine(now.date(), time.max, tzinfo=now.tzinfo)

            total = await self._schedules.count_by_student(student_id)
            due = await self._schedules.count_by_student_and_status(student_id, "due", now)
            overdue = await self._schedules.count_by_student_and_status(student_id, "overdue", now)
            today_records = await self._records.find_by_date_range(
                student_id, start_of_day, end_of_day
            )
            recent_records = await self._records.find_by_student(
                student_id, c.STATISTICS_HISTORY_LIMIT
            )

            return Result.success(
                ReviewStatistics(
                    total_scheduled=total,
                    due_today=due,
                    overdue=overdue,
                    completed_today=len(today_records),
                    streak_days=self._streak_days(recent_records, now),
                    average_retention=self._average_retention(recent_records),
                    total_time_spent=self._total_time_spent(today_records),
                )
            )
        except Exception as e:
            logger.error(f"Failed to get review statistics for {student_id}: {e}", exc_info=True)
            return Result.fail(f"Failed to get review statistics: {e}", cause=e)

    # ------------------------------------------------------------------

    async def _load_owned(self, student_id: str, schedule_id: str) -> Result[ReviewSchedule]:
        schedule = await self._schedules.find_by_id(schedule_id)
        if schedule is None:
            return Result.fail("Review schedule not found", cause=NotFoundError(schedule_id))
        if schedule.student_id != student_id:
            logger.warning(f"Student {student_id} tried to modify schedule {schedule_id}")
            return Result.fail(
                "Unauthorized access to review schedule",
                cause=AccessDeniedError(f"{student_id} does not own {schedule_id}"),
            )
        return Result.success(schedule)

    async def _publish(self, schedule: ReviewSchedule) -> DispatchReport:
        events = schedule.pull_domain_events()
        report = await self._dispatcher.dispatch(events)
        if not report.ok:
            self._failed_deliveries.extend(report.failures)
            logger.warning(
                f"{len(report.failures)} handler failure(s) while dispatching "
                f"events of schedule {schedule.id}; queued for retry"
            )
        return report

    def _to_queue_item(self, schedule: ReviewSchedule) -> ReviewQueueItem:
        is_overdue = schedule.is_overdue(self._clock)
        minutes = schedule.minutes_until_due(self._clock)
        level = schedule.get_difficulty_level()

        priority: QueuePriority
        if is_overdue or minutes <= 0:
            priority = "high"
        elif schedule.consecutive_failures > 0 or level == "advanced":
            priority = "high"
        elif minutes <= c.SOON_DUE_MINUTES:
            priority = "medium"
        else:
            priority = "low"

        return ReviewQueueItem(
            schedule_id=schedule.id,
            student_id=schedule.student_id,
            item_id=schedule.item_id,
            next_review_at=schedule.next_review_at,
            current_interval=schedule.current_interval,
            ease_factor=schedule.ease_factor,
            review_count=schedule.review_count,
            consecutive_failures=schedule.consecutive_failures,
            priority=priority,
            is_overdue=is_overdue,
            minutes_until_due=minutes,
            difficulty_level=level,
            retention_probability=schedule.get_retention_probability(self._clock),
        )

    @staticmethod
    def _sort_by_priority(items: list[ReviewQueueItem]) -> list[ReviewQueueItem]:
        return sorted(
            items,
            key=lambda item: (
                _PRIORITY_ORDER[item.priority],
                not item.is_overdue,
                item.next_review_at,
                item.ease_factor,
            ),
        )

    @staticmethod
    def _streak_days(records: list[StudyRecord], now: datetime) -> int:
        """Consecutive days with at least one review, counting back from today."""
        days = {r.created_at.date() for r in records}
        streak = 0
        day = now.date()
        while day in days:
            streak += 1
            day -= timedelta(days=1)
        return streak

    @staticmethod
    def _average_retention(records: list[StudyRecord]) -> int:
        recent = records[: c.RETENTION_SAMPLE_SIZE]
        if not recent:
            return 0
        correct = sum(1 for r in recent if r.is_correct)
        return round_half_up(correct / len(recent) * 100)

    @staticmethod
    def _total_time_spent(records: list[StudyRecord]) -> float:
        return sum(r.response_time / 60 for r in records if r.response_time)
