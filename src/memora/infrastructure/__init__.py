# Infrastructure Package
from .clock import FixedClock, SystemClock
from .repositories import InMemoryReviewScheduleRepository, InMemoryStudyRecordRepository

__all__ = [
    "FixedClock",
    "SystemClock",
    "InMemoryReviewScheduleRepository",
    "InMemoryStudyRecordRepository",
]
