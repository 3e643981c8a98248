"""HTTP API for the reminder engine."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, status
from pydantic import BaseModel, Field, ValidationError

from remindly.app.reminder_app import ReminderApp
from remindly.models.errors import IndexOutOfRange, PersistenceError, ReminderError
from remindly.models.reminder import (
    CreateReminder,
    DeleteReminder,
    ListReminders,
    Reminder,
    SetTimeZone,
)
from remindly.utils.time_normalizer import format_local


class ChatRequest(BaseModel):
    user_id: str = Field(..., description="Sender of the message")
    message: str = Field(..., description="Chat message to process")


class ChatResponse(BaseModel):
    message: str


class CreateReminderRequest(BaseModel):
    task: str = Field(..., description="Text delivered when the reminder fires")
    local_time: str = Field(..., description="HH:MM in the user's time zone")
    frequency: Optional[str] = Field(default=None, description="daily or weekly; omit for one-time")


class TimeZoneRequest(BaseModel):
    time_zone: str = Field(..., description="IANA time zone name")


class TimeZoneResponse(BaseModel):
    user_id: str
    time_zone: str


class ReminderResponse(BaseModel):
    id: str
    task: str
    local_time: str
    time_zone: str
    due_at: datetime
    due_local: str
    frequency: Optional[str] = None
    state: str

    @classmethod
    def from_reminder(cls, reminder: Reminder) -> "ReminderResponse":
        return cls(
            id=reminder.id,
            task=reminder.task,
            local_time=reminder.local_time,
            time_zone=reminder.time_zone,
            due_at=reminder.due_at,
            due_local=format_local(reminder.due_at, reminder.time_zone),
            frequency=reminder.frequency.value if reminder.frequency else None,
            state=reminder.state.value,
        )


class StatsResponse(BaseModel):
    reminders: Dict[str, Any]


class NotificationBatch(BaseModel):
    notifications: List[Dict[str, Any]]


def get_reminder_app(app: FastAPI) -> ReminderApp:
    reminder_app = getattr(app.state, "reminder_app", None)
    if reminder_app is None:
        raise RuntimeError("ReminderApp instance is not configured on the application state")
    return reminder_app


def to_http_error(exc: ReminderError) -> HTTPException:
    """Map engine errors to HTTP errors carrying the user-facing message."""
    if isinstance(exc, IndexOutOfRange):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.user_message)
    if isinstance(exc, PersistenceError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.user_message)
    return HTTPException(status_code=422, detail=exc.user_message)


def create_app(reminder_app_instance: ReminderApp | None = None) -> FastAPI:
    reminder_app = reminder_app_instance or ReminderApp()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.reminder_app = reminder_app
        await reminder_app.startup()
        try:
            yield
        finally:
            await reminder_app.shutdown()

    app = FastAPI(
        title="Remindly API",
        version="1.0.0",
        description="REST API for scheduling time-zone aware personal reminders.",
        lifespan=lifespan,
    )

    @app.post("/chat", response_model=ChatResponse)
    async def chat_endpoint(payload: ChatRequest) -> ChatResponse:
        reply = await get_reminder_app(app).handle_message(payload.user_id, payload.message)
        return ChatResponse(message=reply)

    @app.post(
        "/users/{user_id}/reminders",
        response_model=ReminderResponse,
        status_code=status.HTTP_201_CREATED,
    )
    async def create_reminder_endpoint(user_id: str, payload: CreateReminderRequest) -> ReminderResponse:
        try:
            reminder = await get_reminder_app(app).reminder_service.create_reminder(
                CreateReminder(user_id=user_id, **payload.model_dump())
            )
        except ReminderError as exc:
            raise to_http_error(exc) from exc
        except ValidationError as exc:
            raise HTTPException(
                status_code=422,
                detail="A reminder needs a non-empty task.",
            ) from exc
        return ReminderResponse.from_reminder(reminder)

    @app.get("/users/{user_id}/reminders", response_model=List[ReminderResponse])
    async def list_reminders_endpoint(user_id: str) -> List[ReminderResponse]:
        try:
            reminders = await get_reminder_app(app).reminder_service.list_reminders(
                ListReminders(user_id=user_id)
            )
        except ReminderError as exc:
            raise to_http_error(exc) from exc
        return [ReminderResponse.from_reminder(reminder) for reminder in reminders]

    @app.delete("/users/{user_id}/reminders/{position}", response_model=ReminderResponse)
    async def delete_reminder_endpoint(user_id: str, position: int) -> ReminderResponse:
        try:
            reminder = await get_reminder_app(app).reminder_service.delete_reminder(
                DeleteReminder(user_id=user_id, position=position)
            )
        except ReminderError as exc:
            raise to_http_error(exc) from exc
        return ReminderResponse.from_reminder(reminder)

    @app.put("/users/{user_id}/timezone", response_model=TimeZoneResponse)
    async def set_time_zone_endpoint(user_id: str, payload: TimeZoneRequest) -> TimeZoneResponse:
        try:
            zone = await get_reminder_app(app).reminder_service.set_time_zone(
                SetTimeZone(user_id=user_id, zone=payload.time_zone)
            )
        except ReminderError as exc:
            raise to_http_error(exc) from exc
        return TimeZoneResponse(user_id=user_id, time_zone=zone)

    @app.get("/users/{user_id}/timezone", response_model=TimeZoneResponse)
    async def get_time_zone_endpoint(user_id: str) -> TimeZoneResponse:
        try:
            zone = await get_reminder_app(app).reminder_service.get_time_zone(user_id)
        except ReminderError as exc:
            raise to_http_error(exc) from exc
        return TimeZoneResponse(user_id=user_id, time_zone=zone)

    @app.get("/stats", response_model=StatsResponse)
    async def stats_endpoint() -> StatsResponse:
        return StatsResponse(reminders=get_reminder_app(app).get_reminder_stats())

    @app.get("/notifications", response_model=NotificationBatch)
    async def notifications_endpoint(
        limit: int = 20,
        flush: bool = True,
        user_id: Optional[str] = None,
    ) -> NotificationBatch:
        notifications = await get_reminder_app(app).get_notifications(
            limit=limit, flush=flush, user_id=user_id
        )
        return NotificationBatch(notifications=notifications)

    @app.get("/health")
    async def health_endpoint() -> Dict[str, Any]:
        reminder_app = get_reminder_app(app)
        return {**reminder_app.snapshot(), "store_ready": await reminder_app.readiness()}

    return app


app = create_app()
