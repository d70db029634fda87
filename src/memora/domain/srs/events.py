"""
Domain events emitted by ``ReviewSchedule``.

Events are the engine's only outbound interface besides persistence. The
aggregate buffers them; the application layer dispatches them to
notification, statistics and study-record consumers.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar

from ulid import ULID

from memora.domain.srs.values import NotificationPriority, NotificationType, ReviewFeedback


def new_event_id() -> str:
    return f"evt_{ULID()}"


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    """Base class; ``occurred_at`` always comes from the injected clock."""

    event_type: ClassVar[str] = "DomainEvent"

    occurred_at: datetime
    event_id: str = field(default_factory=new_event_id)

    def to_dict(self) -> dict[str, Any]:
        payload = {k: _jsonable(v) for k, v in asdict(self).items()}
        payload["event_type"] = self.event_type
        return payload


@dataclass(frozen=True, kw_only=True)
class ReviewScheduled(DomainEvent):
    event_type: ClassVar[str] = "ReviewScheduled"

    schedule_id: str
    student_id: str
    item_id: str
    scheduled_at: datetime


@dataclass(frozen=True, kw_only=True)
class ReviewCompleted(DomainEvent):
    """
    A processed review.

    This is the only channel from which a ``StudyRecord`` can be built.
    """

    event_type: ClassVar[str] = "ReviewCompleted"

    schedule_id: str
    student_id: str
    item_id: str
    feedback: ReviewFeedback
    previous_interval: int
    new_interval: int
    previous_ease_factor: float
    new_ease_factor: float
    review_count: int
    next_review_at: datetime
    is_correct: bool
    response_time: float | None = None
    answer_content: Any = None


@dataclass(frozen=True, kw_only=True)
class ReviewNotificationScheduled(DomainEvent):
    event_type: ClassVar[str] = "ReviewNotificationScheduled"

    schedule_id: str
    student_id: str
    item_id: str
    notification_type: NotificationType
    scheduled_for: datetime
    review_due_at: datetime
    priority: NotificationPriority
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def review_due(
        cls,
        *,
        schedule_id: str,
        student_id: str,
        item_id: str,
        review_due_at: datetime,
        scheduled_for: datetime,
        occurred_at: datetime,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        metadata: dict[str, Any] | None = None,
    ) -> "ReviewNotificationScheduled":
        return cls(
            schedule_id=schedule_id,
            student_id=student_id,
            item_id=item_id,
            notification_type=NotificationType.REVIEW_DUE,
            scheduled_for=scheduled_for,
            review_due_at=review_due_at,
            priority=priority,
            metadata=metadata or {},
            occurred_at=occurred_at,
        )

    @classmethod
    def overdue(
        cls,
        *,
        schedule_id: str,
        student_id: str,
        item_id: str,
        review_due_at: datetime,
        overdue_hours: int,
        occurred_at: datetime,
        priority: NotificationPriority = NotificationPriority.HIGH,
    ) -> "ReviewNotificationScheduled":
        return cls(
            schedule_id=schedule_id,
            student_id=student_id,
            item_id=item_id,
            notification_type=NotificationType.REVIEW_OVERDUE,
            scheduled_for=occurred_at,
            review_due_at=review_due_at,
            priority=priority,
            metadata={"overdue_hours": overdue_hours, "notification_reason": "review_overdue"},
            occurred_at=occurred_at,
        )
