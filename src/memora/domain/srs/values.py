"""
Value objects of the review scheduler.

These are pure, immutable data structures with no I/O. Every bounded value
validates itself on construction; ``create`` helpers turn validation
failures into a failed ``Result`` instead of raising.
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Literal

from memora.domain import constants as c
from memora.domain.result import Result, ValidationError

DifficultyLevel = Literal["beginner", "intermediate", "advanced"]
EaseBand = Literal["easy", "medium", "hard"]


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def ensure_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC; aware ones are returned unchanged."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ReviewFeedback(str, Enum):
    """Learner's self-assessment after a review attempt."""

    AGAIN = "AGAIN"
    HARD = "HARD"
    GOOD = "GOOD"
    EASY = "EASY"

    @classmethod
    def create(cls, raw: "str | ReviewFeedback | None") -> Result["ReviewFeedback"]:
        if raw is None:
            return Result.fail("feedback is required")
        if isinstance(raw, ReviewFeedback):
            return Result.success(raw)
        try:
            return Result.success(cls(str(raw).strip().upper()))
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            return Result.fail(f"invalid feedback {raw!r}; expected one of {allowed}")

    def is_again(self) -> bool:
        return self is ReviewFeedback.AGAIN

    @property
    def is_correct(self) -> bool:
        return self is not ReviewFeedback.AGAIN


class NotificationType(str, Enum):
    REVIEW_DUE = "review_due"
    REVIEW_OVERDUE = "review_overdue"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class EaseFactor:
    """
    SM-2 ease coefficient.

    Attributes:
        value: Multiplier applied to the interval after a successful review,
            always within [MIN_EASE_FACTOR, MAX_EASE_FACTOR].
    """

    value: float = c.DEFAULT_EASE_FACTOR

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, (int, float)):
            raise ValidationError(f"ease factor must be a number, got {self.value!r}")
        if not math.isfinite(self.value):
            raise ValidationError(f"ease factor must be finite, got {self.value}")
        if not c.MIN_EASE_FACTOR <= self.value <= c.MAX_EASE_FACTOR:
            raise ValidationError(
                f"ease factor {self.value} outside [{c.MIN_EASE_FACTOR}, {c.MAX_EASE_FACTOR}]"
            )

    @classmethod
    def create(cls, value: float) -> Result["EaseFactor"]:
        try:
            return Result.success(cls(value))
        except ValidationError as e:
            return Result.fail(str(e), cause=e)

    @classmethod
    def clamp(cls, value: float) -> "EaseFactor":
        if not math.isfinite(value):
            raise ValidationError(f"ease factor must be finite, got {value}")
        # Two decimals keeps repeated +/- deltas from drifting (2.5 - 0.15 + 0.15 == 2.5).
        bounded = min(c.MAX_EASE_FACTOR, max(c.MIN_EASE_FACTOR, value))
        return cls(round(bounded, 2))

    @classmethod
    def default(cls) -> "EaseFactor":
        return cls(c.DEFAULT_EASE_FACTOR)

    @classmethod
    def minimum(cls) -> "EaseFactor":
        return cls(c.MIN_EASE_FACTOR)

    @classmethod
    def maximum(cls) -> "EaseFactor":
        return cls(c.MAX_EASE_FACTOR)

    def adjust_by(self, delta: float) -> "EaseFactor":
        return EaseFactor.clamp(self.value + delta)

    def adjust_for_feedback(
        self,
        feedback: ReviewFeedback,
        again_penalty: float = c.AGAIN_EASE_PENALTY,
        hard_penalty: float = c.HARD_EASE_PENALTY,
        easy_bonus: float = c.EASY_EASE_BONUS,
    ) -> "EaseFactor":
        """Return the ease factor after applying the feedback's delta (always clamped)."""
        if feedback is ReviewFeedback.AGAIN:
            return self.adjust_by(-again_penalty)
        if feedback is ReviewFeedback.HARD:
            return self.adjust_by(-hard_penalty)
        if feedback is ReviewFeedback.EASY:
            return self.adjust_by(easy_bonus)
        return self

    def difficulty_level(self) -> EaseBand:
        if self.value <= c.EXTRA_REMINDER_EASE_THRESHOLD:
            return "hard"
        if self.value < c.EASY_BAND_EASE_THRESHOLD:
            return "medium"
        return "easy"


@dataclass(frozen=True)
class ReviewInterval:
    """
    Days until the next review.

    Attributes:
        days: Whole days within [MIN_INTERVAL_DAYS, MAX_INTERVAL_DAYS].
    """

    days: int = c.INITIAL_INTERVAL_DAYS

    def __post_init__(self) -> None:
        if isinstance(self.days, bool) or not isinstance(self.days, int):
            raise ValidationError(f"interval must be a whole number of days, got {self.days!r}")
        if not c.MIN_INTERVAL_DAYS <= self.days <= c.MAX_INTERVAL_DAYS:
            raise ValidationError(
                f"interval {self.days} days outside [{c.MIN_INTERVAL_DAYS}, {c.MAX_INTERVAL_DAYS}]"
            )

    @classmethod
    def create(cls, days: int) -> Result["ReviewInterval"]:
        try:
            return Result.success(cls(days))
        except ValidationError as e:
            return Result.fail(str(e), cause=e)

    @classmethod
    def clamp(
        cls,
        days: float,
        floor: int = c.MIN_INTERVAL_DAYS,
        ceiling: int = c.MAX_INTERVAL_DAYS,
    ) -> "ReviewInterval":
        if not math.isfinite(days):
            raise ValidationError(f"interval must be finite, got {days}")
        floor = max(floor, c.MIN_INTERVAL_DAYS)
        ceiling = min(ceiling, c.MAX_INTERVAL_DAYS)
        return cls(min(ceiling, max(floor, round_half_up(days))))

    @classmethod
    def minimum(cls) -> "ReviewInterval":
        return cls(c.MIN_INTERVAL_DAYS)

    @classmethod
    def maximum(cls) -> "ReviewInterval":
        return cls(c.MAX_INTERVAL_DAYS)

    def multiply_by(self, factor: float) -> "ReviewInterval":
        if not math.isfinite(factor):
            raise ValidationError(f"multiplier must be finite, got {factor}")
        return ReviewInterval(round_half_up(self.days * factor))

    def add_days(self, days: int) -> "ReviewInterval":
        return ReviewInterval(self.days + days)

    def next_review_date(self, from_date: datetime) -> datetime:
        return from_date + timedelta(days=self.days)

    def min(self, other: "ReviewInterval") -> "ReviewInterval":
        return self if self.days <= other.days else other

    def max(self, other: "ReviewInterval") -> "ReviewInterval":
        return self if self.days >= other.days else other


@dataclass(frozen=True)
class ReviewState:
    """
    Immutable snapshot of an item's review schedule.

    ``next_review_at`` is always ``interval`` applied to the review time that
    produced the snapshot (or to the creation time for the initial state).
    Every change yields a new snapshot.
    """

    interval: ReviewInterval
    ease_factor: EaseFactor
    review_count: int
    last_reviewed_at: datetime | None
    next_review_at: datetime

    def __post_init__(self) -> None:
        if not isinstance(self.interval, ReviewInterval):
            raise ValidationError("interval must be a ReviewInterval")
        if not isinstance(self.ease_factor, EaseFactor):
            raise ValidationError("ease_factor must be an EaseFactor")
        if isinstance(self.review_count, bool) or not isinstance(self.review_count, int):
            raise ValidationError(f"review count must be an integer, got {self.review_count!r}")
        if self.review_count < 0:
            raise ValidationError(f"review count must be >= 0, got {self.review_count}")
        if not isinstance(self.next_review_at, datetime):
            raise ValidationError("next_review_at must be a datetime")

    @classmethod
    def create(
        cls,
        interval: ReviewInterval,
        ease_factor: EaseFactor,
        review_count: int,
        last_reviewed_at: datetime | None,
        next_review_at: datetime,
    ) -> Result["ReviewState"]:
        try:
            return Result.success(
                cls(interval, ease_factor, review_count, last_reviewed_at, next_review_at)
            )
        except ValidationError as e:
            return Result.fail(str(e), cause=e)

    @classmethod
    def initial(
        cls,
        base_date: datetime,
        interval: ReviewInterval | None = None,
        ease_factor: EaseFactor | None = None,
    ) -> "ReviewState":
        interval = interval or ReviewInterval(c.INITIAL_INTERVAL_DAYS)
        return cls(
            interval=interval,
            ease_factor=ease_factor or EaseFactor.default(),
            review_count=0,
            last_reviewed_at=None,
            next_review_at=interval.next_review_date(base_date),
        )

    @property
    def anchor(self) -> datetime:
        """The moment the current interval is counted from."""
        if self.last_reviewed_at is not None:
            return self.last_reviewed_at
        return self.next_review_at - timedelta(days=self.interval.days)

    def with_new_review(
        self, interval: ReviewInterval, ease_factor: EaseFactor, reviewed_at: datetime
    ) -> "ReviewState":
        return ReviewState(
            interval=interval,
            ease_factor=ease_factor,
            review_count=self.review_count + 1,
            last_reviewed_at=reviewed_at,
            next_review_at=interval.next_review_date(reviewed_at),
        )

    def with_adjustment(self, interval: ReviewInterval, ease_factor: EaseFactor) -> "ReviewState":
        """Swap interval and ease without counting a review or moving the due date."""
        return replace(self, interval=interval, ease_factor=ease_factor)

    def with_new_review_time(self, next_review_at: datetime) -> "ReviewState":
        return replace(self, next_review_at=next_review_at)

    def with_new_interval(self, interval: ReviewInterval) -> "ReviewState":
        return replace(
            self, interval=interval, next_review_at=interval.next_review_date(self.anchor)
        )

    def with_new_ease_factor(self, ease_factor: EaseFactor) -> "ReviewState":
        return replace(self, ease_factor=ease_factor)

    def is_due(self, now: datetime) -> bool:
        return now >= self.next_review_at

    def is_overdue(self, now: datetime) -> bool:
        return now > self.next_review_at

    def minutes_until_due(self, now: datetime) -> int:
        return math.floor((self.next_review_at - now).total_seconds() / 60)

    def days_since_last_review(self, now: datetime) -> float:
        if self.last_reviewed_at is None:
            return 0.0
        return (now - self.last_reviewed_at).total_seconds() / 86400.0
