"""Centralized constants for the memora scheduling engine.

All tunable numbers of the spaced-repetition policy live here so the
policy, the aggregate and the configuration layer import from a single
source of truth.
"""

# ---------- Interval (days) ----------
MIN_INTERVAL_DAYS = 1
INITIAL_INTERVAL_DAYS = 1
MAX_INTERVAL_DAYS = 30

# ---------- Ease factor ----------
MIN_EASE_FACTOR = 1.3
DEFAULT_EASE_FACTOR = 2.5
MAX_EASE_FACTOR = 4.0

# ---------- Feedback multipliers / penalties ----------
HARD_INTERVAL_MULTIPLIER = 0.8
EASY_BONUS_MULTIPLIER = 1.3
AGAIN_EASE_PENALTY = 0.8
HARD_EASE_PENALTY = 0.15
EASY_EASE_BONUS = 0.15

# ---------- Late reviews ----------
LATE_EASE_PENALTY_PER_DAY = 0.05
LATE_EASE_PENALTY_CAP = 0.3

# ---------- Failure handling ----------
RESET_THRESHOLD_FAILURES = 3

# ---------- Notifications (minutes) ----------
DEFAULT_REMINDER_MINUTES = 30
EARLY_REMINDER_MINUTES = 120
EXTRA_REMINDER_FAILURE_THRESHOLD = 2
EXTRA_REMINDER_EASE_THRESHOLD = 1.8
CRITICAL_OVERDUE_HOURS = 24

# ---------- Difficulty bands ----------
INTERMEDIATE_EASE_THRESHOLD = 2.0
EASY_BAND_EASE_THRESHOLD = 2.5

# ---------- Review queue ----------
SOON_DUE_MINUTES = 60
RETENTION_SAMPLE_SIZE = 30
STATISTICS_HISTORY_LIMIT = 200
MIN_RETENTION_PROBABILITY = 0.1
