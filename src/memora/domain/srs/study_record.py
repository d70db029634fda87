"""Study log entry derived from a processed review."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from memora.domain.srs.events import ReviewCompleted
from memora.domain.srs.values import ReviewFeedback


@dataclass(frozen=True)
class StudyRecord:
    """
    Immutable fact: a student reviewed an item.

    Correlated with its schedule by (student_id, item_id, created_at); the
    schedule never references it.

    Attributes:
        response_time: Seconds the learner took to answer, if measured.
        answer_content: Free-form answer payload from the client.
    """

    student_id: str
    item_id: str
    feedback: ReviewFeedback
    is_correct: bool
    created_at: datetime
    response_time: float | None = None
    answer_content: Any = None

    @classmethod
    def from_event(cls, event: ReviewCompleted) -> "StudyRecord":
        return cls(
            student_id=event.student_id,
            item_id=event.item_id,
            feedback=event.feedback,
            is_correct=event.is_correct,
            created_at=event.occurred_at,
            response_time=event.response_time,
            answer_content=event.answer_content,
        )
