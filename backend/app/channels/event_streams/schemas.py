"""Esquemas para los eventos de Twilio Event Streams."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

RESERVATION_WRAPUP = "com.twilio.taskrouter.reservation.wrapup"
TASK_CANCELED = "com.twilio.taskrouter.task.canceled"
TASK_CREATED = "com.twilio.taskrouter.task.created"
RESERVATION_ACCEPTED = "com.twilio.taskrouter.reservation.accepted"
ENQUEUE_FINISHED = "com.twilio.voice.twiml.enqueue.finished"


class EventEnvelope(BaseModel):
    """Unidad `{type, data}` dentro del lote enviado por el sink webhook.

    Twilio envía CloudEvents; sólo se usan `type`, `data` e `id`.
    """

    model_config = ConfigDict(extra="allow")

    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    id: str | None = Field(default=None, description="Identificador CloudEvents del evento.")


class TaskRouterPayload(BaseModel):
    """Campos de `data.payload` que se proyectan a la tabla de reportes."""

    model_config = ConfigDict(extra="allow")

    task_sid: str | None = None
    task_attributes: str | None = None
    timestamp: Any = None
    task_date_created: Any = None
    task_age: int | float | None = None
    task_canceled_reason: str | None = None
    task_assignment_status: str | None = None
    task_channel_unique_name: str | None = None
    task_queue_name: str | None = None
    workflow_name: str | None = None
    worker_sid: str | None = None


class VoiceParameters(BaseModel):
    """Parámetros de `data.request.parameters` en eventos de Voice."""

    model_config = ConfigDict(extra="allow")

    CallSid: str | None = None
    QueueTime: Any = None
