"""
Spaced-repetition policy: the port and the SM-2 implementation.

The policy is injected into ``ReviewSchedule`` so an alternative algorithm
(e.g. FSRS) can replace it without touching the aggregate. Implementations
are pure functions of their inputs.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, fields
from datetime import datetime

from memora.domain import constants as c
from memora.domain.result import ValidationError
from memora.domain.srs.values import (
    EaseFactor,
    ReviewFeedback,
    ReviewInterval,
    ReviewState,
    round_half_up,
)


@dataclass(frozen=True)
class IntervalCalculation:
    """Interval and ease factor proposed by a policy step."""

    new_interval: ReviewInterval
    new_ease_factor: EaseFactor


@dataclass(frozen=True)
class PolicyConfig:
    """
    Tunable constants of the SM-2 policy.

    Defaults come from ``memora.domain.constants``. Bounds may be narrowed
    but never widened past the value objects' own limits.
    """

    min_interval_days: int = c.MIN_INTERVAL_DAYS
    initial_interval_days: int = c.INITIAL_INTERVAL_DAYS
    max_interval_days: int = c.MAX_INTERVAL_DAYS
    min_ease_factor: float = c.MIN_EASE_FACTOR
    default_ease_factor: float = c.DEFAULT_EASE_FACTOR
    max_ease_factor: float = c.MAX_EASE_FACTOR
    hard_interval_multiplier: float = c.HARD_INTERVAL_MULTIPLIER
    easy_bonus_multiplier: float = c.EASY_BONUS_MULTIPLIER
    again_ease_penalty: float = c.AGAIN_EASE_PENALTY
    hard_ease_penalty: float = c.HARD_EASE_PENALTY
    easy_ease_bonus: float = c.EASY_EASE_BONUS
    late_ease_penalty_per_day: float = c.LATE_EASE_PENALTY_PER_DAY
    late_ease_penalty_cap: float = c.LATE_EASE_PENALTY_CAP
    reset_threshold_failures: int = c.RESET_THRESHOLD_FAILURES
    default_reminder_minutes: int = c.DEFAULT_REMINDER_MINUTES
    early_reminder_minutes: int = c.EARLY_REMINDER_MINUTES
    extra_reminder_failure_threshold: int = c.EXTRA_REMINDER_FAILURE_THRESHOLD
    extra_reminder_ease_threshold: float = c.EXTRA_REMINDER_EASE_THRESHOLD
    intermediate_ease_threshold: float = c.INTERMEDIATE_EASE_THRESHOLD

    def __post_init__(self) -> None:
        if not (
            c.MIN_INTERVAL_DAYS
            <= self.min_interval_days
            <= self.initial_interval_days
            <= self.max_interval_days
            <= c.MAX_INTERVAL_DAYS
        ):
            raise ValidationError(
                "interval bounds must satisfy "
                f"{c.MIN_INTERVAL_DAYS} <= min <= initial <= max <= {c.MAX_INTERVAL_DAYS}"
            )
        if not (
            c.MIN_EASE_FACTOR
            <= self.min_ease_factor
            <= self.default_ease_factor
            <= self.max_ease_factor
            <= c.MAX_EASE_FACTOR
        ):
            raise ValidationError(
                "ease bounds must satisfy "
                f"{c.MIN_EASE_FACTOR} <= min <= default <= max <= {c.MAX_EASE_FACTOR}"
            )
        if not 0 < self.hard_interval_multiplier <= 1:
            raise ValidationError("hard_interval_multiplier must be in (0, 1]")
        if self.easy_bonus_multiplier < 1:
            raise ValidationError("easy_bonus_multiplier must be >= 1")
        for name in (
            "again_ease_penalty",
            "hard_ease_penalty",
            "easy_ease_bonus",
            "late_ease_penalty_per_day",
            "late_ease_penalty_cap",
        ):
            if getattr(self, name) < 0:
                raise ValidationError(f"{name} must be >= 0")
        for name in (
            "reset_threshold_failures",
            "default_reminder_minutes",
            "early_reminder_minutes",
            "extra_reminder_failure_threshold",
        ):
            if getattr(self, name) < 1:
                raise ValidationError(f"{name} must be >= 1")

    def as_dict(self) -> dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


class SpacedRepetitionPolicy(ABC):
    """
    Port for the scheduling algorithm.

    Implementations:
        - Sm2Policy: SM-2 style interval growth with bounded ease factor.
    """

    config: PolicyConfig

    @abstractmethod
    def create_initial_state(self, base_date: datetime) -> ReviewState:
        """State for an item seen for the first time at ``base_date``."""

    @abstractmethod
    def calculate_next_interval(
        self, current_state: ReviewState, feedback: ReviewFeedback
    ) -> IntervalCalculation:
        """Map (state, feedback) to the next interval and ease factor."""

    @abstractmethod
    def should_reset_interval(self, current_state: ReviewState, consecutive_failures: int) -> bool:
        """True when repeated failures must force the schedule back to the floor."""

    @abstractmethod
    def adjust_for_late_review(
        self, current_state: ReviewState, actual_review_date: datetime
    ) -> IntervalCalculation:
        """Penalize a review that happens after ``next_review_at``."""

    def reset_values(self, current_state: ReviewState) -> IntervalCalculation:
        """Values forced when ``should_reset_interval`` holds."""
        return IntervalCalculation(ReviewInterval.minimum(), EaseFactor.minimum())


class Sm2Policy(SpacedRepetitionPolicy):
    """
    SM-2 family policy.

    Growth: ``interval' = interval * ease`` (times the EASY bonus for EASY),
    always at least one day longer than the current interval on success, and
    clamped to the configured bounds. Stateless apart from its config.
    """

    def __init__(self, config: PolicyConfig | None = None):
        self.config = config or PolicyConfig()

    def create_initial_state(self, base_date: datetime) -> ReviewState:
        cfg = self.config
        return ReviewState.initial(
            base_date,
            interval=ReviewInterval(cfg.initial_interval_days),
            ease_factor=self._ease(cfg.default_ease_factor),
        )

    def calculate_next_interval(
        self, current_state: ReviewState, feedback: ReviewFeedback
    ) -> IntervalCalculation:
        cfg = self.config
        days = current_state.interval.days
        ease = current_state.ease_factor.value

        if feedback is ReviewFeedback.AGAIN:
            return IntervalCalculation(
                self._interval(cfg.min_interval_days),
                self._ease(ease - cfg.again_ease_penalty),
            )

        if feedback is ReviewFeedback.HARD:
            return IntervalCalculation(
                self._interval(days * cfg.hard_interval_multiplier),
                self._ease(ease - cfg.hard_ease_penalty),
            )

        if feedback is ReviewFeedback.EASY:
            new_ease = self._ease(ease + cfg.easy_ease_bonus)
            grown = days * new_ease.value * cfg.easy_bonus_multiplier
            return IntervalCalculation(self._grow(days, grown), new_ease)

        return IntervalCalculation(self._grow(days, days * ease), self._ease(ease))

    def should_reset_interval(self, current_state: ReviewState, consecutive_failures: int) -> bool:
        return consecutive_failures >= self.config.reset_threshold_failures

    def adjust_for_late_review(
        self, current_state: ReviewState, actual_review_date: datetime
    ) -> IntervalCalculation:
        if actual_review_date <= current_state.next_review_at:
            return IntervalCalculation(current_state.interval, current_state.ease_factor)

        cfg = self.config
        days_late = (actual_review_date - current_state.next_review_at).total_seconds() / 86400.0
        penalty = min(cfg.late_ease_penalty_per_day * days_late, cfg.late_ease_penalty_cap)
        new_ease = self._ease(current_state.ease_factor.value - penalty)

        interval = current_state.interval
        if days_late >= interval.days:
            interval = self._interval(interval.days * cfg.hard_interval_multiplier)
        return IntervalCalculation(interval, new_ease)

    def reset_values(self, current_state: ReviewState) -> IntervalCalculation:
        cfg = self.config
        return IntervalCalculation(
            ReviewInterval(cfg.min_interval_days), EaseFactor(cfg.min_ease_factor)
        )

    # ------------------------------------------------------------------

    def _grow(self, current_days: int, grown: float) -> ReviewInterval:
        return self._interval(max(round_half_up(grown), current_days + 1))

    def _interval(self, days: float) -> ReviewInterval:
        cfg = self.config
        return ReviewInterval.clamp(days, floor=cfg.min_interval_days, ceiling=cfg.max_interval_days)

    def _ease(self, value: float) -> EaseFactor:
        cfg = self.config
        return EaseFactor.clamp(min(cfg.max_ease_factor, max(cfg.min_ease_factor, value)))
