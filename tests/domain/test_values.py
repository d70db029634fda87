from datetime import datetime, timedelta, timezone

import pytest

from memora.domain.result import Result, ValidationError, guard_required
from memora.domain.srs.values import (
    EaseFactor,
    ReviewFeedback,
    ReviewInterval,
    ReviewState,
    round_half_up,
)

NOW = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


# --- Result ---


def test_result_unwrap_failure_raises():
    result = Result.fail("boom")
    assert result.is_failure
    with pytest.raises(ValidationError, match="boom"):
        result.unwrap()


def test_guard_required_reports_first_missing_argument():
    assert guard_required(a="x", b=1).ok
    guard = guard_required(a="x", b=None, c=None)
    assert guard.error == "b is required"
    assert guard_required(name="   ").error == "name is required"


# --- Feedback ---


def test_feedback_parsing_is_case_insensitive():
    assert ReviewFeedback.create("good").unwrap() is ReviewFeedback.GOOD
    assert ReviewFeedback.create(" Easy ").unwrap() is ReviewFeedback.EASY
    assert ReviewFeedback.create(ReviewFeedback.HARD).unwrap() is ReviewFeedback.HARD


def test_feedback_parsing_rejects_unknown_values():
    result = ReviewFeedback.create("maybe")
    assert result.is_failure
    assert "AGAIN, HARD, GOOD, EASY" in result.error
    assert ReviewFeedback.create(None).error == "feedback is required"


def test_only_again_counts_as_incorrect():
    assert ReviewFeedback.AGAIN.is_again()
    assert not ReviewFeedback.AGAIN.is_correct
    assert all(f.is_correct for f in ReviewFeedback if f is not ReviewFeedback.AGAIN)


# --- EaseFactor ---


@pytest.mark.parametrize("value", [1.3, 2.5, 4.0])
def test_ease_factor_accepts_bounds(value):
    assert EaseFactor.create(value).unwrap().value == value


@pytest.mark.parametrize("value", [1.29, 4.01, float("nan"), float("inf")])
def test_ease_factor_rejects_out_of_range(value):
    result = EaseFactor.create(value)
    assert result.is_failure
    assert isinstance(result.cause, ValidationError)


def test_ease_factor_error_names_the_bounds():
    assert EaseFactor.create(5.0).error == "ease factor 5.0 outside [1.3, 4.0]"


def test_ease_factor_adjustments_are_clamped():
    assert EaseFactor(1.5).adjust_for_feedback(ReviewFeedback.AGAIN).value == 1.3
    assert EaseFactor(3.95).adjust_for_feedback(ReviewFeedback.EASY).value == 4.0
    assert EaseFactor(2.5).adjust_for_feedback(ReviewFeedback.HARD).value == 2.35
    assert EaseFactor(2.5).adjust_for_feedback(ReviewFeedback.GOOD).value == 2.5


def test_ease_factor_deltas_do_not_drift():
    ease = EaseFactor.default()
    for _ in range(10):
        ease = ease.adjust_by(-0.15).adjust_by(0.15)
    assert ease.value == 2.5


@pytest.mark.parametrize(
    "value, band",
    [(1.3, "hard"), (1.8, "hard"), (1.81, "medium"), (2.49, "medium"), (2.5, "easy"), (4.0, "easy")],
)
def test_ease_factor_difficulty_bands(value, band):
    assert EaseFactor(value).difficulty_level() == band


# --- ReviewInterval ---


def test_interval_validation():
    assert ReviewInterval.create(1).ok
    assert ReviewInterval.create(30).ok
    assert ReviewInterval.create(0).is_failure
    assert ReviewInterval.create(31).is_failure
    assert ReviewInterval.create(True).is_failure
    assert ReviewInterval.create(2.5).is_failure


def test_interval_arithmetic():
    interval = ReviewInterval(10)
    assert interval.multiply_by(2.5).days == 25
    assert interval.add_days(5).days == 15
    assert interval.min(ReviewInterval(3)).days == 3
    assert interval.max(ReviewInterval(3)).days == 10
    assert interval.next_review_date(NOW) == NOW + timedelta(days=10)


def test_interval_arithmetic_out_of_bounds_raises():
    with pytest.raises(ValidationError):
        ReviewInterval(20).multiply_by(2)
    with pytest.raises(ValidationError):
        ReviewInterval(1).add_days(-1)


def test_interval_clamp_rounds_half_up():
    assert ReviewInterval.clamp(2.5).days == 3
    assert ReviewInterval.clamp(0.2).days == 1
    assert ReviewInterval.clamp(99).days == 30
    assert ReviewInterval.clamp(12, ceiling=10).days == 10


def test_round_half_up_differs_from_bankers_rounding():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.49) == 2


# --- ReviewState ---


def test_initial_state():
    state = ReviewState.initial(NOW)
    assert state.interval.days == 1
    assert state.ease_factor.value == 2.5
    assert state.review_count == 0
    assert state.last_reviewed_at is None
    assert state.next_review_at == NOW + timedelta(days=1)
    assert state.anchor == NOW


def test_state_rejects_negative_review_count():
    result = ReviewState.create(
        ReviewInterval(1), EaseFactor(2.5), -1, None, NOW + timedelta(days=1)
    )
    assert result.is_failure
    assert "review count" in result.error


def test_with_new_review_recomputes_next_review():
    reviewed_at = NOW + timedelta(days=1)
    state = ReviewState.initial(NOW).with_new_review(ReviewInterval(3), EaseFactor(2.5), reviewed_at)
    assert state.review_count == 1
    assert state.last_reviewed_at == reviewed_at
    assert state.next_review_at == reviewed_at + timedelta(days=3)


def test_with_new_interval_uses_last_review_as_anchor():
    reviewed_at = NOW + timedelta(days=1)
    state = ReviewState.initial(NOW).with_new_review(ReviewInterval(3), EaseFactor(2.5), reviewed_at)
    updated = state.with_new_interval(ReviewInterval(7))
    assert updated.next_review_at == reviewed_at + timedelta(days=7)
    assert updated.review_count == 1


def test_due_and_overdue_predicates():
    state = ReviewState.initial(NOW)
    due_at = state.next_review_at
    assert not state.is_due(due_at - timedelta(seconds=1))
    assert state.is_due(due_at)
    assert not state.is_overdue(due_at)
    assert state.is_overdue(due_at + timedelta(seconds=1))


def test_minutes_until_due_is_floored():
    state = ReviewState.initial(NOW)
    assert state.minutes_until_due(NOW) == 1440
    assert state.minutes_until_due(state.next_review_at + timedelta(seconds=30)) == -1


def test_days_since_last_review():
    state = ReviewState.initial(NOW)
    assert state.days_since_last_review(NOW + timedelta(days=3)) == 0.0
    reviewed = state.with_new_review(ReviewInterval(2), EaseFactor(2.5), NOW)
    assert reviewed.days_since_last_review(NOW + timedelta(hours=36)) == 1.5
