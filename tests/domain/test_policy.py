from datetime import datetime, timedelta, timezone

import pytest

from memora.domain.result import ValidationError
from memora.domain.srs.policy import PolicyConfig, Sm2Policy
from memora.domain.srs.values import EaseFactor, ReviewFeedback, ReviewInterval, ReviewState

NOW = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


def state(days=1, ease=2.5, next_review_at=None):
    return ReviewState(
        interval=ReviewInterval(days),
        ease_factor=EaseFactor(ease),
        review_count=1,
        last_reviewed_at=NOW - timedelta(days=days),
        next_review_at=next_review_at or NOW,
    )


@pytest.fixture
def sm2():
    return Sm2Policy()


def test_initial_state_uses_configured_defaults(sm2):
    initial = sm2.create_initial_state(NOW)
    assert initial.interval.days == 1
    assert initial.ease_factor.value == 2.5
    assert initial.next_review_at == NOW + timedelta(days=1)


def test_again_resets_interval_and_drops_ease(sm2):
    calc = sm2.calculate_next_interval(state(days=10, ease=2.5), ReviewFeedback.AGAIN)
    assert calc.new_interval.days == 1
    assert calc.new_ease_factor.value == 1.7


def test_hard_shrinks_interval(sm2):
    calc = sm2.calculate_next_interval(state(days=10, ease=2.5), ReviewFeedback.HARD)
    assert calc.new_interval.days == 8
    assert calc.new_ease_factor.value == 2.35


def test_good_multiplies_by_ease(sm2):
    calc = sm2.calculate_next_interval(state(days=4, ease=2.5), ReviewFeedback.GOOD)
    assert calc.new_interval.days == 10
    assert calc.new_ease_factor.value == 2.5


def test_good_always_grows_by_at_least_a_day(sm2):
    calc = sm2.calculate_next_interval(state(days=1, ease=1.3), ReviewFeedback.GOOD)
    assert calc.new_interval.days == 2


def test_easy_applies_bonus_on_raised_ease(sm2):
    # 2 * 2.65 * 1.3 = 6.89
    calc = sm2.calculate_next_interval(state(days=2, ease=2.5), ReviewFeedback.EASY)
    assert calc.new_ease_factor.value == 2.65
    assert calc.new_interval.days == 7


def test_growth_is_capped_at_max_interval(sm2):
    calc = sm2.calculate_next_interval(state(days=20, ease=3.0), ReviewFeedback.EASY)
    assert calc.new_interval.days == 30


def test_should_reset_at_threshold(sm2):
    s = state()
    assert not sm2.should_reset_interval(s, 2)
    assert sm2.should_reset_interval(s, 3)
    assert sm2.should_reset_interval(s, 4)


def test_reset_values_are_the_floor(sm2):
    calc = sm2.reset_values(state(days=12, ease=3.1))
    assert calc.new_interval.days == 1
    assert calc.new_ease_factor.value == 1.3


def test_on_time_review_is_not_adjusted(sm2):
    s = state(days=5, ease=2.5)
    calc = sm2.adjust_for_late_review(s, s.next_review_at)
    assert calc.new_interval == s.interval
    assert calc.new_ease_factor == s.ease_factor


def test_late_review_penalizes_ease(sm2):
    s = state(days=5, ease=2.5)
    calc = sm2.adjust_for_late_review(s, s.next_review_at + timedelta(days=2))
    assert calc.new_ease_factor.value == 2.4
    assert calc.new_interval.days == 5


def test_late_review_penalty_is_capped(sm2):
    s = state(days=5, ease=2.5)
    calc = sm2.adjust_for_late_review(s, s.next_review_at + timedelta(days=20))
    assert calc.new_ease_factor.value == 2.2
    assert calc.new_interval.days == 4


def test_late_review_shrinks_long_overdue_interval(sm2):
    s = state(days=10, ease=2.5)
    calc = sm2.adjust_for_late_review(s, s.next_review_at + timedelta(days=10))
    assert calc.new_interval.days == 8


def test_custom_config_narrows_bounds():
    sm2 = Sm2Policy(PolicyConfig(max_interval_days=10, reset_threshold_failures=2))
    calc = sm2.calculate_next_interval(state(days=6, ease=2.5), ReviewFeedback.GOOD)
    assert calc.new_interval.days == 10
    assert sm2.should_reset_interval(state(), 2)


@pytest.mark.parametrize(
    "overrides",
    [
        {"min_interval_days": 5, "initial_interval_days": 1},
        {"max_interval_days": 31},
        {"min_ease_factor": 1.0},
        {"default_ease_factor": 4.5},
        {"hard_interval_multiplier": 0},
        {"easy_bonus_multiplier": 0.9},
        {"again_ease_penalty": -0.1},
        {"reset_threshold_failures": 0},
    ],
)
def test_invalid_config_rejected(overrides):
    with pytest.raises(ValidationError):
        PolicyConfig(**overrides)


def test_config_as_dict_lists_every_constant():
    data = PolicyConfig().as_dict()
    assert data["max_interval_days"] == 30
    assert data["easy_bonus_multiplier"] == 1.3
    assert data["late_ease_penalty_cap"] == 0.3
