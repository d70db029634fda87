"""
ReviewSchedule factory.

Builds the schedule for a student's first exposure to an item, using the
injected policy for the initial state and the injected clock for time.
"""

from memora.domain.result import Result, guard_required
from memora.domain.srs.policy import SpacedRepetitionPolicy
from memora.domain.srs.ports import Clock
from memora.domain.srs.schedule import ReviewSchedule


class ReviewScheduleFactory:
    def __init__(self, policy: SpacedRepetitionPolicy, clock: Clock):
        self.policy = policy
        self.clock = clock

    def create(
        self, student_id: str, item_id: str, id: str | None = None
    ) -> Result[ReviewSchedule]:
        guard = guard_required(
            student_id=student_id, item_id=item_id, policy=self.policy, clock=self.clock
        )
        if guard.is_failure:
            return Result.fail(guard.error or "invalid arguments")

        initial_state = self.policy.create_initial_state(self.clock.now())
        return ReviewSchedule.create(
            student_id=student_id,
            item_id=item_id,
            review_state=initial_state,
            clock=self.clock,
            id=id,
        )
