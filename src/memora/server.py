import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from memora.application.config import resolve_config
from memora.application.events import NotificationOutbox, build_dispatcher
from memora.application.review_service import ReviewQueueService
from memora.consts import VERSION
from memora.domain.result import (
    AccessDeniedError,
    ConcurrencyConflictError,
    NotFoundError,
    Result,
    ValidationError,
)
from memora.domain.srs.policy import Sm2Policy
from memora.domain.srs.schedule import ReviewSchedule
from memora.infrastructure.clock import SystemClock
from memora.infrastructure.repositories import (
    InMemoryReviewScheduleRepository,
    InMemoryStudyRecordRepository,
)

logger = logging.getLogger("memora.server")


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class CreateScheduleRequest(BaseModel):
    student_id: str = Field(min_length=1)
    item_id: str = Field(min_length=1)


class ScheduleResponse(BaseModel):
    id: str
    student_id: str
    item_id: str
    interval_days: int
    ease_factor: float
    review_count: int
    consecutive_failures: int
    last_reviewed_at: datetime | None
    next_review_at: datetime
    difficulty_level: str
    version: int

    @classmethod
    def from_schedule(cls, schedule: ReviewSchedule) -> "ScheduleResponse":
        return cls(
            id=schedule.id,
            student_id=schedule.student_id,
            item_id=schedule.item_id,
            interval_days=schedule.current_interval,
            ease_factor=schedule.ease_factor,
            review_count=schedule.review_count,
            consecutive_failures=schedule.consecutive_failures,
            last_reviewed_at=schedule.last_reviewed_at,
            next_review_at=schedule.next_review_at,
            difficulty_level=schedule.get_difficulty_level(),
            version=schedule.version,
        )


class ReviewRequest(BaseModel):
    student_id: str
    feedback: str
    response_time: float | None = Field(default=None, ge=0)
    answer_content: Any = None


class ReviewResponse(BaseModel):
    schedule_id: str
    previous_interval: int
    new_interval: int
    previous_ease_factor: float
    new_ease_factor: float
    next_review_at: datetime
    review_count: int
    consecutive_failures: int
    delivery_failures: list[str] = []


class ShiftRequest(BaseModel):
    student_id: str
    hours: float = Field(ge=0)


class UpdateScheduleRequest(BaseModel):
    student_id: str
    postpone_hours: float | None = Field(default=None, ge=0)
    advance_hours: float | None = Field(default=None, ge=0)
    next_review_at: datetime | None = None
    interval_days: int | None = None
    ease_factor: float | None = None


class ScheduleUpdateResponse(BaseModel):
    schedule_id: str
    previous_next_review_at: datetime
    new_next_review_at: datetime
    previous_interval: int
    new_interval: int
    previous_ease_factor: float
    new_ease_factor: float
    updated_fields: list[str]
    updated_at: datetime


class QueueItemResponse(BaseModel):
    schedule_id: str
    item_id: str
    next_review_at: datetime
    current_interval: int
    ease_factor: float
    priority: str
    is_overdue: bool
    minutes_until_due: int
    difficulty_level: str
    retention_probability: float


class StatisticsResponse(BaseModel):
    total_scheduled: int
    due_today: int
    overdue: int
    completed_today: int
    streak_days: int
    average_retention: int
    total_time_spent: float


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def build_default_service() -> ReviewQueueService:
    config = resolve_config()
    records = InMemoryStudyRecordRepository()
    return ReviewQueueService(
        schedules=InMemoryReviewScheduleRepository(),
        records=records,
        policy=Sm2Policy(config.to_policy_config()),
        clock=SystemClock(),
        dispatcher=build_dispatcher(records, NotificationOutbox()),
    )


def _raise_for(result: Result) -> None:
    """Map a failed service result onto an HTTP error, keyed on its cause."""
    if result.ok:
        return
    error = result.error or "request failed"
    cause = result.cause
    if isinstance(cause, NotFoundError):
        raise HTTPException(status_code=404, detail=error)
    if isinstance(cause, AccessDeniedError):
        raise HTTPException(status_code=403, detail=error)
    if isinstance(cause, ConcurrencyConflictError):
        raise HTTPException(status_code=409, detail=error)
    if cause is None or isinstance(cause, ValidationError):
        raise HTTPException(status_code=400, detail=error)
    logger.error(f"Unexpected failure: {error}")
    raise HTTPException(status_code=500, detail=error)


def create_app(service: ReviewQueueService | None = None) -> FastAPI:
    service = service or build_default_service()
    start_time = time.time()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"memora API v{VERSION} starting up...")
        yield
        logger.info("memora API shutting down...")

    app = FastAPI(
        title="memora",
        description="Spaced-repetition review scheduling API.",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.service = service

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return HealthResponse(
            status="ok", version=VERSION, uptime_seconds=time.time() - start_time
        )

    @app.get("/version")
    async def get_version():
        return {"version": VERSION}

    @app.post("/schedules", response_model=ScheduleResponse, status_code=201)
    async def create_schedule(req: CreateScheduleRequest):
        result = await service.start_tracking(req.student_id, req.item_id)
        _raise_for(result)
        return ScheduleResponse.from_schedule(result.unwrap())

    @app.get("/schedules/{schedule_id}", response_model=ScheduleResponse)
    async def get_schedule(schedule_id: str):
        schedule = await service.get_schedule(schedule_id)
        if schedule is None:
            raise HTTPException(status_code=404, detail="Review schedule not found")
        return ScheduleResponse.from_schedule(schedule)

    @app.post("/schedules/{schedule_id}/reviews", response_model=ReviewResponse)
    async def submit_review(schedule_id: str, req: ReviewRequest):
        logger.info(f"Review submitted for {schedule_id}: {req.feedback}")
        result = await service.mark_review_completed(
            req.student_id,
            schedule_id,
            req.feedback,
            response_time=req.response_time,
            answer_content=req.answer_content,
        )
        _raise_for(result)
        outcome = result.unwrap()
        return ReviewResponse(**outcome.__dict__)

    @app.post("/schedules/{schedule_id}/postpone", response_model=ScheduleResponse)
    async def postpone(schedule_id: str, req: ShiftRequest):
        result = await service.postpone_review(req.student_id, schedule_id, req.hours)
        _raise_for(result)
        return ScheduleResponse.from_schedule(result.unwrap())

    @app.post("/schedules/{schedule_id}/advance", response_model=ScheduleResponse)
    async def advance(schedule_id: str, req: ShiftRequest):
        result = await service.advance_review(req.student_id, schedule_id, req.hours)
        _raise_for(result)
        return ScheduleResponse.from_schedule(result.unwrap())

    @app.patch("/schedules/{schedule_id}", response_model=ScheduleUpdateResponse)
    async def update_schedule(schedule_id: str, req: UpdateScheduleRequest):
        result = await service.update_schedule(
            req.student_id,
            schedule_id,
            postpone_hours=req.postpone_hours,
            advance_hours=req.advance_hours,
            next_review_at=req.next_review_at,
            interval_days=req.interval_days,
            ease_factor=req.ease_factor,
        )
        _raise_for(result)
        return ScheduleUpdateResponse(**result.unwrap().__dict__)

    @app.get("/students/{student_id}/reviews/today", response_model=list[QueueItemResponse])
    async def today_reviews(student_id: str):
        result = await service.get_today_reviews(student_id)
        _raise_for(result)
        return [QueueItemResponse(**item.__dict__) for item in result.unwrap()]

    @app.get("/students/{student_id}/reviews/overdue", response_model=list[QueueItemResponse])
    async def overdue_reviews(student_id: str):
        result = await service.get_overdue_reviews(student_id)
        _raise_for(result)
        return [QueueItemResponse(**item.__dict__) for item in result.unwrap()]

    @app.get("/students/{student_id}/statistics", response_model=StatisticsResponse)
    async def statistics(student_id: str):
        result = await service.get_review_statistics(student_id)
        _raise_for(result)
        return StatisticsResponse(**result.unwrap().__dict__)

    return app


logging.basicConfig(level=resolve_config().log_level)
app = create_app()
