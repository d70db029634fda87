"""
In-process event dispatch.

Events produced by one aggregate call are handed to independent consumers
(study log, notification outbox, statistics). Delivery is at-least-once from
the caller's perspective: a failing handler is logged and reported so the
caller can retry, and never blocks the other handlers.
"""

import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field

from memora.domain.srs.events import (
    DomainEvent,
    ReviewCompleted,
    ReviewNotificationScheduled,
)
from memora.domain.srs.ports import StudyRecordRepository
from memora.domain.srs.study_record import StudyRecord

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], "Awaitable[None] | None"]


@dataclass
class HandlerFailure:
    event: DomainEvent
    handler: str
    error: str
    target: "EventHandler | None" = field(default=None, repr=False, compare=False)


@dataclass
class DispatchReport:
    delivered: int = 0
    failures: list[HandlerFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class EventDispatcher:
    """Routes domain events to handlers subscribed by ``event_type`` (or ``"*"``)."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)

    def handlers_for(self, event: DomainEvent) -> list[EventHandler]:
        return [*self._handlers.get(event.event_type, []), *self._handlers.get("*", [])]

    async def dispatch(self, events: Iterable[DomainEvent]) -> DispatchReport:
        report = DispatchReport()
        for event in events:
            for handler in self.handlers_for(event):
                await self._deliver(event, handler, report)
        return report

    async def redeliver(self, failures: Iterable[HandlerFailure]) -> DispatchReport:
        """Retry each failed delivery against the one handler that failed."""
        report = DispatchReport()
        for failure in failures:
            if failure.target is None:
                report.failures.append(failure)
                continue
            await self._deliver(failure.event, failure.target, report)
        return report

    async def _deliver(
        self, event: DomainEvent, handler: EventHandler, report: DispatchReport
    ) -> None:
        name = getattr(handler, "__qualname__", type(handler).__name__)
        try:
            outcome = handler(event)
            if inspect.isawaitable(outcome):
                await outcome
            report.delivered += 1
        except Exception as e:
            logger.error(
                f"Handler {name} failed for {event.event_type} {event.event_id}: {e}",
                exc_info=True,
            )
            report.failures.append(
                HandlerFailure(event=event, handler=name, error=str(e), target=handler)
            )


class StudyRecordProjector:
    """Materializes a ``StudyRecord`` for every ``ReviewCompleted`` event."""

    def __init__(self, records: StudyRecordRepository):
        self._records = records

    async def __call__(self, event: DomainEvent) -> None:
        if not isinstance(event, ReviewCompleted):
            return
        await self._records.save(StudyRecord.from_event(event))
        logger.debug(f"Recorded study entry for {event.student_id}/{event.item_id}")


class NotificationOutbox:
    """
    Collects scheduled notifications for a delivery worker.

    Delivery itself (push, e-mail, ...) happens outside this package.
    """

    def __init__(self) -> None:
        self._pending: list[ReviewNotificationScheduled] = []

    def __call__(self, event: DomainEvent) -> None:
        if isinstance(event, ReviewNotificationScheduled):
            self._pending.append(event)

    @property
    def pending(self) -> list[ReviewNotificationScheduled]:
        return list(self._pending)

    def drain(self) -> list[ReviewNotificationScheduled]:
        pending, self._pending = self._pending, []
        return sorted(pending, key=lambda n: n.scheduled_for)


def build_dispatcher(
    records: StudyRecordRepository, outbox: NotificationOutbox | None = None
) -> EventDispatcher:
    dispatcher = EventDispatcher()
    dispatcher.subscribe(ReviewCompleted.event_type, StudyRecordProjector(records))
    if outbox is not None:
        dispatcher.subscribe(ReviewNotificationScheduled.event_type, outbox)
    return dispatcher
