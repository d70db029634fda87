from datetime import datetime, timezone

import pytest

from memora.application.events import NotificationOutbox, build_dispatcher
from memora.application.review_service import ReviewQueueService
from memora.domain.srs.factory import ReviewScheduleFactory
from memora.domain.srs.policy import Sm2Policy
from memora.infrastructure.clock import FixedClock
from memora.infrastructure.repositories import (
    InMemoryReviewScheduleRepository,
    InMemoryStudyRecordRepository,
)

T0 = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FixedClock(T0)


@pytest.fixture
def policy():
    return Sm2Policy()


@pytest.fixture
def factory(policy, clock):
    return ReviewScheduleFactory(policy, clock)


@pytest.fixture
def schedule(factory):
    """A freshly created schedule with its creation event already drained."""
    created = factory.create("student-1", "item-1")
    assert created.ok
    s = created.unwrap()
    s.clear_domain_events()
    return s


@pytest.fixture
def schedule_repo():
    return InMemoryReviewScheduleRepository()


@pytest.fixture
def record_repo():
    return InMemoryStudyRecordRepository()


@pytest.fixture
def outbox():
    return NotificationOutbox()


@pytest.fixture
def service(schedule_repo, record_repo, policy, clock, outbox):
    return ReviewQueueService(
        schedules=schedule_repo,
        records=record_repo,
        policy=policy,
        clock=clock,
        dispatcher=build_dispatcher(record_repo, outbox),
    )
