"""Fila de la tabla de reportes `reporting.conversations`."""

from typing import Any

from pydantic import BaseModel, ConfigDict


class ConversationChanges(BaseModel):
    """Columnas escribibles de una conversación; todas opcionales.

    Se serializa con `exclude_unset=True` para distinguir entre una columna que
    no se toca y una que se escribe explícitamente como `null`.
    """

    model_config = ConfigDict(extra="forbid")

    # Columnas que vienen de `task_attributes` se escriben tal cual llegan
    phone_number: Any = None
    direction: Any = None
    date: str | None = None
    communication_channel: str | None = None
    workflow: str | None = None
    in_business_hours: Any = None
    contact_id: int | float | None = None
    company_id: int | float | None = None
    talk_time: int | None = None
    abandoned: str | None = None
    abandoned_phase: Any = None
    abandon_time: int | float | None = None
    outcome: Any = None
    agent: str | None = None
    queue: str | None = None
    queue_time: int | float | None = None

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class Conversation(ConversationChanges):
    """Conversación completa identificada por `id` (task sid o call sid)."""

    id: str
