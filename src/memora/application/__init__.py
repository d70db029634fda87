# Application Package
from .config import AppConfig, resolve_config
from .events import (
    DispatchReport,
    EventDispatcher,
    HandlerFailure,
    NotificationOutbox,
    StudyRecordProjector,
    build_dispatcher,
)
from .review_service import (
    ReviewCompletionResult,
    ReviewQueueItem,
    ReviewQueueService,
    ReviewStatistics,
    ScheduleUpdateResult,
)

__all__ = [
    "AppConfig",
    "DispatchReport",
    "EventDispatcher",
    "HandlerFailure",
    "NotificationOutbox",
    "ReviewCompletionResult",
    "ReviewQueueItem",
    "ReviewQueueService",
    "ReviewStatistics",
    "ScheduleUpdateResult",
    "StudyRecordProjector",
    "build_dispatcher",
    "resolve_config",
]
