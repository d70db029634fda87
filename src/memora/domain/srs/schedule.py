"""
ReviewSchedule aggregate root.

One schedule exists per (student, item) pair. All state changes flow through
this class; ``process_review_feedback`` computes a new immutable
``ReviewState`` first and swaps it in as the single mutation point.
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, TypedDict

from ulid import ULID

from memora.domain import constants as c
from memora.domain.result import Result, guard_required
from memora.domain.srs.events import (
    DomainEvent,
    ReviewCompleted,
    ReviewNotificationScheduled,
    ReviewScheduled,
)
from memora.domain.srs.policy import SpacedRepetitionPolicy
from memora.domain.srs.ports import Clock
from memora.domain.srs.values import (
    DifficultyLevel,
    EaseFactor,
    NotificationPriority,
    ReviewFeedback,
    ReviewInterval,
    ReviewState,
    ensure_utc,
)


def generate_schedule_id() -> str:
    return f"rs_{ULID()}"


class StudyInfo(TypedDict, total=False):
    response_time: float
    answer_content: Any


@dataclass(frozen=True)
class ReviewScheduleProps:
    """Persistent fields of a schedule, exactly as stored."""

    student_id: str
    item_id: str
    review_state: ReviewState
    consecutive_failures: int
    created_at: datetime
    updated_at: datetime
    version: int = 0


class AggregateRoot:
    """Identity plus a buffer of domain events awaiting dispatch."""

    def __init__(self, id: str):
        self._id = id
        self._domain_events: list[DomainEvent] = []

    @property
    def id(self) -> str:
        return self._id

    @property
    def domain_events(self) -> tuple[DomainEvent, ...]:
        return tuple(self._domain_events)

    def pull_domain_events(self) -> list[DomainEvent]:
        """Return buffered events and clear the buffer."""
        events, self._domain_events = self._domain_events, []
        return events

    def clear_domain_events(self) -> None:
        self._domain_events = []

    def _record(self, *events: DomainEvent) -> None:
        self._domain_events.extend(events)


class ReviewSchedule(AggregateRoot):
    """
    Spaced-repetition schedule for one student and one item.

    States are implicit: Scheduled (``now < next_review_at``), Due
    (``now >= next_review_at``) and Overdue (``now > next_review_at``).
    Processing feedback always returns the schedule to Scheduled.
    """

    def __init__(self, props: ReviewScheduleProps, id: str | None = None):
        super().__init__(id or generate_schedule_id())
        self._props = props

    # ---------- Construction ----------

    @classmethod
    def create(
        cls,
        student_id: str,
        item_id: str,
        review_state: ReviewState,
        clock: Clock,
        consecutive_failures: int = 0,
        id: str | None = None,
    ) -> Result["ReviewSchedule"]:
        guard = guard_required(
            student_id=student_id, item_id=item_id, review_state=review_state, clock=clock
        )
        if guard.is_failure:
            return Result.fail(guard.error or "invalid arguments")
        if consecutive_failures < 0:
            return Result.fail(f"consecutive failures must be >= 0, got {consecutive_failures}")

        now = clock.now()
        schedule = cls(
            ReviewScheduleProps(
                student_id=student_id,
                item_id=item_id,
                review_state=review_state,
                consecutive_failures=consecutive_failures,
                created_at=now,
                updated_at=now,
            ),
            id,
        )
        schedule._record(
            ReviewScheduled(
                schedule_id=schedule.id,
                student_id=student_id,
                item_id=item_id,
                scheduled_at=review_state.next_review_at,
                occurred_at=now,
            )
        )
        return Result.success(schedule)

    @classmethod
    def reconstitute(cls, props: ReviewScheduleProps, id: str) -> "ReviewSchedule":
        """Rebuild a stored schedule verbatim: no validation, no events."""
        return cls(props, id)

    # ---------- Accessors ----------

    @property
    def props(self) -> ReviewScheduleProps:
        return self._props

    @property
    def student_id(self) -> str:
        return self._props.student_id

    @property
    def item_id(self) -> str:
        return self._props.item_id

    @property
    def review_state(self) -> ReviewState:
        return self._props.review_state

    @property
    def consecutive_failures(self) -> int:
        return self._props.consecutive_failures

    @property
    def created_at(self) -> datetime:
        return self._props.created_at

    @property
    def updated_at(self) -> datetime:
        return self._props.updated_at

    @property
    def version(self) -> int:
        return self._props.version

    @property
    def current_interval(self) -> int:
        return self.review_state.interval.days

    @property
    def ease_factor(self) -> float:
        return self.review_state.ease_factor.value

    @property
    def review_count(self) -> int:
        return self.review_state.review_count

    @property
    def last_reviewed_at(self) -> datetime | None:
        return self.review_state.last_reviewed_at

    @property
    def next_review_at(self) -> datetime:
        return self.review_state.next_review_at

    def mark_persisted(self, version: int) -> None:
        """Called by repositories after a successful save."""
        self._props = replace(self._props, version=version)

    # ---------- Review loop ----------

    def process_review_feedback(
        self,
        feedback: ReviewFeedback,
        policy: SpacedRepetitionPolicy,
        clock: Clock,
        study_info: StudyInfo | None = None,
    ) -> Result[None]:
        """
        Apply one review and schedule the next one.

        Nothing on the aggregate changes unless the whole computation
        succeeds; the final block is the only place that assigns state.
        """
        guard = guard_required(feedback=feedback, policy=policy, clock=clock)
        if guard.is_failure:
            return Result.fail(guard.error or "invalid arguments")
        if not isinstance(feedback, ReviewFeedback):
            return Result.fail(f"invalid feedback {feedback!r}")

        try:
            reviewed_at = clock.now()
            current_state = self.review_state
            current_failures = self.consecutive_failures

            working_state = current_state
            if reviewed_at > current_state.next_review_at:
                late = policy.adjust_for_late_review(current_state, reviewed_at)
                working_state = current_state.with_adjustment(late.new_interval, late.new_ease_factor)

            calculation = policy.calculate_next_interval(working_state, feedback)
            new_failures = current_failures + 1 if feedback.is_again() else 0

            final_interval = calculation.new_interval
            final_ease = calculation.new_ease_factor
            if policy.should_reset_interval(current_state, new_failures):
                reset = policy.reset_values(current_state)
                final_interval = reset.new_interval
                final_ease = reset.new_ease_factor

            new_state = current_state.with_new_review(final_interval, final_ease, reviewed_at)

            info = study_info or {}
            completed = ReviewCompleted(
                schedule_id=self.id,
                student_id=self.student_id,
                item_id=self.item_id,
                feedback=feedback,
                previous_interval=current_state.interval.days,
                new_interval=final_interval.days,
                previous_ease_factor=current_state.ease_factor.value,
                new_ease_factor=final_ease.value,
                review_count=new_state.review_count,
                next_review_at=new_state.next_review_at,
                is_correct=feedback.is_correct,
                response_time=info.get("response_time"),
                answer_content=info.get("answer_content"),
                occurred_at=reviewed_at,
            )
            reminders = self._build_reminders(new_state, new_failures, reviewed_at, policy)
        except Exception as e:
            return Result.fail(f"Review processing failed: {e}", cause=e)

        self._props = replace(
            self._props,
            review_state=new_state,
            consecutive_failures=new_failures,
            updated_at=reviewed_at,
        )
        self._record(completed, *reminders)
        return Result.success()

    def _build_reminders(
        self,
        next_state: ReviewState,
        failures: int,
        now: datetime,
        policy: SpacedRepetitionPolicy,
    ) -> list[ReviewNotificationScheduled]:
        cfg = policy.config
        due_at = next_state.next_review_at
        reminders: list[ReviewNotificationScheduled] = []

        reminder_at = due_at - timedelta(minutes=cfg.default_reminder_minutes)
        if reminder_at > now:
            reminders.append(
                ReviewNotificationScheduled.review_due(
                    schedule_id=self.id,
                    student_id=self.student_id,
                    item_id=self.item_id,
                    review_due_at=due_at,
                    scheduled_for=reminder_at,
                    occurred_at=now,
                    metadata={
                        "reminder_minutes_before": cfg.default_reminder_minutes,
                        "notification_reason": "scheduled_review",
                    },
                )
            )

        ease = next_state.ease_factor.value
        difficult = (
            failures >= cfg.extra_reminder_failure_threshold
            or ease <= cfg.extra_reminder_ease_threshold
            or self._level_for(ease, cfg.extra_reminder_ease_threshold, cfg.intermediate_ease_threshold)
            == "advanced"
        )
        early_at = due_at - timedelta(minutes=cfg.early_reminder_minutes)
        if difficult and early_at > now:
            reminders.append(
                ReviewNotificationScheduled.review_due(
                    schedule_id=self.id,
                    student_id=self.student_id,
                    item_id=self.item_id,
                    review_due_at=due_at,
                    scheduled_for=early_at,
                    occurred_at=now,
                    priority=NotificationPriority.HIGH,
                    metadata={
                        "reminder_minutes_before": cfg.early_reminder_minutes,
                        "notification_reason": "difficult_problem_early_reminder",
                        "consecutive_failures": failures,
                        "ease_factor": ease,
                    },
                )
            )
        return reminders

    # ---------- Predicates ----------

    def is_due(self, clock: Clock) -> bool:
        return self.review_state.is_due(clock.now())

    def is_overdue(self, clock: Clock) -> bool:
        return self.review_state.is_overdue(clock.now())

    def minutes_until_due(self, clock: Clock) -> int:
        return self.review_state.minutes_until_due(clock.now())

    @staticmethod
    def _level_for(
        ease: float,
        advanced_ceiling: float = c.EXTRA_REMINDER_EASE_THRESHOLD,
        intermediate_ceiling: float = c.INTERMEDIATE_EASE_THRESHOLD,
    ) -> DifficultyLevel:
        if ease <= advanced_ceiling:
            return "advanced"
        if ease <= intermediate_ceiling:
            return "intermediate"
        return "beginner"

    def get_difficulty_level(self) -> DifficultyLevel:
        return self._level_for(self.ease_factor)

    def get_retention_probability(self, clock: Clock) -> float:
        """
        Ebbinghaus-style estimate for display only.

        R = exp(-t / I) where t = days since last review, I = interval days,
        clamped to [0.1, 1.0]. Not used for scheduling.
        """
        days_since = self.review_state.days_since_last_review(clock.now())
        if days_since <= 0:
            return 1.0
        retention = math.exp(-days_since / self.current_interval)
        return max(c.MIN_RETENTION_PROBABILITY, min(1.0, retention))

    def trigger_overdue_notification(self, clock: Clock) -> bool:
        """
        Emit an overdue notification if the review is overdue right now.

        Meant for a background sweep. The aggregate keeps no record of
        previous triggers, so the caller must avoid repeating one overdue window.
        """
        now = clock.now()
        if not self.review_state.is_overdue(now):
            return False

        overdue_hours = math.floor((now - self.next_review_at).total_seconds() / 3600)
        priority = (
            NotificationPriority.CRITICAL
            if overdue_hours >= c.CRITICAL_OVERDUE_HOURS
            else NotificationPriority.HIGH
        )
        self._record(
            ReviewNotificationScheduled.overdue(
                schedule_id=self.id,
                student_id=self.student_id,
                item_id=self.item_id,
                review_due_at=self.next_review_at,
                overdue_hours=overdue_hours,
                occurred_at=now,
                priority=priority,
            )
        )
        return True

    # ---------- Administrative overrides (bypass the policy) ----------

    def postpone_review(self, hours: float, clock: Clock) -> Result[None]:
        if hours is None or hours < 0:
            return Result.fail(f"hours must be >= 0, got {hours}")
        new_time = self.next_review_at + timedelta(hours=hours)
        return self._override(self.review_state.with_new_review_time(new_time), clock)

    def advance_review(self, hours: float, clock: Clock) -> Result[None]:
        """Move the review earlier, but never before now."""
        if hours is None or hours < 0:
            return Result.fail(f"hours must be >= 0, got {hours}")
        now = clock.now()
        new_time = max(self.next_review_at - timedelta(hours=hours), now)
        return self._override(self.review_state.with_new_review_time(new_time), clock)

    def set_next_review_time(self, review_time: datetime, clock: Clock) -> Result[None]:
        if not isinstance(review_time, datetime):
            return Result.fail("review_time must be a datetime")
        return self._override(
            self.review_state.with_new_review_time(ensure_utc(review_time)), clock
        )

    def update_interval(self, days: int, clock: Clock) -> Result[None]:
        interval = ReviewInterval.create(days)
        if interval.is_failure:
            return Result.fail(interval.error or "invalid interval", cause=interval.cause)
        return self._override(self.review_state.with_new_interval(interval.unwrap()), clock)

    def update_ease_factor(self, value: float, clock: Clock) -> Result[None]:
        ease = EaseFactor.create(value)
        if ease.is_failure:
            return Result.fail(ease.error or "invalid ease factor", cause=ease.cause)
        return self._override(self.review_state.with_new_ease_factor(ease.unwrap()), clock)

    def _override(self, new_state: ReviewState, clock: Clock) -> Result[None]:
        if clock is None:
            return Result.fail("clock is required")
        self._props = replace(self._props, review_state=new_state, updated_at=clock.now())
        return Result.success()

    def __repr__(self) -> str:
        return (
            f"ReviewSchedule(id={self.id!r}, student_id={self.student_id!r}, "
            f"item_id={self.item_id!r}, interval={self.current_interval}, "
            f"ease={self.ease_factor}, next_review_at={self.next_review_at.isoformat()})"
        )
