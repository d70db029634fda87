# Domain SRS Package
from .events import DomainEvent, ReviewCompleted, ReviewNotificationScheduled, ReviewScheduled
from .factory import ReviewScheduleFactory
from .policy import IntervalCalculation, PolicyConfig, Sm2Policy, SpacedRepetitionPolicy
from .ports import Clock, ReviewScheduleRepository, ScheduleStatus, StudyRecordRepository
from .schedule import ReviewSchedule, ReviewScheduleProps, StudyInfo
from .study_record import StudyRecord
from .values import (
    DifficultyLevel,
    EaseFactor,
    NotificationPriority,
    NotificationType,
    ReviewFeedback,
    ReviewInterval,
    ReviewState,
)

__all__ = [
    "Clock",
    "DifficultyLevel",
    "DomainEvent",
    "EaseFactor",
    "IntervalCalculation",
    "NotificationPriority",
    "NotificationType",
    "PolicyConfig",
    "ReviewCompleted",
    "ReviewFeedback",
    "ReviewInterval",
    "ReviewNotificationScheduled",
    "ReviewSchedule",
    "ReviewScheduleFactory",
    "ReviewScheduleProps",
    "ReviewScheduleRepository",
    "ReviewScheduled",
    "ReviewState",
    "ScheduleStatus",
    "Sm2Policy",
    "SpacedRepetitionPolicy",
    "StudyInfo",
    "StudyRecord",
    "StudyRecordRepository",
]
