"""Proyección de eventos de TaskRouter y Voice a la tabla de conversaciones.

Cada evento del lote se procesa en orden y genera a lo sumo una escritura
(update por `id` o upsert) sobre `reporting.conversations`. Las escrituras se
esperan una por una y su resultado queda en un `EventOutcome`; los errores de
base de datos sólo se registran. Un `task_attributes` inválido detiene el lote.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Literal, Protocol

from pydantic import ValidationError

from app.core.logging import get_logger, log_event
from app.models.conversation import Conversation, ConversationChanges
from app.repositories.conversations import ReportingStoreError

from . import schemas
from .schemas import EventEnvelope, TaskRouterPayload, VoiceParameters

logger = get_logger("app.channels.event_streams")

Operation = Literal["update", "upsert"]
OutcomeStatus = Literal["written", "failed", "ignored", "skipped"]

DEFAULT_ABANDONED_PHASE = "Queue"
VOICEMAIL_WORKFLOW = "Voicemail"

_JS_NUMBER = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class EventPayloadError(ValueError):
    """Payload con forma inválida; aborta el resto del lote."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.index: int | None = None
        self.event_type: str | None = None


class ConversationStore(Protocol):
    """Operaciones de escritura que necesita el despachador."""

    async def update(self, record_id: str, values: dict[str, Any]) -> list[dict[str, Any]]: ...

    async def upsert(
        self, values: dict[str, Any] | list[dict[str, Any]]
    ) -> list[dict[str, Any]]: ...


@dataclass(slots=True)
class EventContext:
    """Datos ya extraídos de un sobre `{type, data}`."""

    index: int
    envelope: EventEnvelope
    payload: TaskRouterPayload | None
    parameters: VoiceParameters | None
    attributes: dict[str, Any]

    @property
    def conversation_id(self) -> str | None:
        """`task_sid` para llamadas salientes, `call_sid` para entrantes."""
        if self.attributes.get("direction") == "outbound":
            return self.payload.task_sid if self.payload else None
        call_sid = self.attributes.get("call_sid")
        return str(call_sid) if call_sid is not None else None


@dataclass(slots=True)
class ConversationWrite:
    operation: Operation
    record_id: str | None
    changes: ConversationChanges

    def row(self) -> dict[str, Any]:
        if self.operation == "upsert":
            return Conversation(id=self.record_id, **self.changes.to_row()).to_row()
        return self.changes.to_row()


@dataclass(slots=True)
class EventOutcome:
    index: int
    event_type: str
    status: OutcomeStatus
    operation: Operation | None = None
    record_id: str | None = None
    rows: int = 0
    error: str | None = None


@dataclass(slots=True)
class BatchResult:
    """Resultados por evento de un lote procesado."""

    outcomes: list[EventOutcome] = field(default_factory=list)

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    def summary(self) -> dict[str, int]:
        return {
            "written": self.count("written"),
            "failed": self.count("failed"),
            "ignored": self.count("ignored"),
            "skipped": self.count("skipped"),
        }


# --- conversiones con semántica de JavaScript ---------------------------------


def js_truthy(value: Any) -> bool:
    if value is None or value is False or value == "":
        return False
    if isinstance(value, (int, float)) and (value == 0 or math.isnan(value)):
        return False
    return True


def to_number(value: Any) -> int | float:
    """Equivalente a `Number(value)`: no numérico da NaN, cadena vacía da 0."""
    if value is None:
        return math.nan
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        if text in {"Infinity", "+Infinity", "-Infinity"}:
            return -math.inf if text.startswith("-") else math.inf
        if not _JS_NUMBER.fullmatch(text):
            return math.nan
        number = float(text)
    else:
        return math.nan
    if isinstance(number, float) and number.is_integer() and abs(number) <= 2**53:
        return int(number)
    return number


def parse_timestamp(value: Any) -> datetime | None:
    """Acepta milisegundos epoch o ISO-8601; retorna `None` si no es válido."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.isascii() and text.isdigit():
            return parse_timestamp(int(text))
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def format_timestamp(value: datetime) -> str:
    """ISO-8601 en UTC con milisegundos y sufijo `Z`."""
    utc = value.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_task_attributes(payload: TaskRouterPayload) -> dict[str, Any]:
    raw = payload.task_attributes
    if raw is None:
        raise EventPayloadError("task_attributes ausente en el payload")
    try:
        attributes = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise EventPayloadError(f"task_attributes no es JSON válido: {exc}") from exc
    if not isinstance(attributes, dict):
        raise EventPayloadError("task_attributes debe ser un objeto JSON")
    return attributes


def build_context(index: int, envelope: EventEnvelope) -> EventContext:
    data = envelope.data
    raw_payload = data.get("payload")
    payload: TaskRouterPayload | None = None
    if raw_payload is not None:
        if not isinstance(raw_payload, dict):
            raise EventPayloadError("data.payload debe ser un objeto")
        try:
            payload = TaskRouterPayload.model_validate(raw_payload)
        except ValidationError as exc:
            raise EventPayloadError(f"data.payload inválido: {exc}") from exc

    request = data.get("request")
    raw_parameters = request.get("parameters") if isinstance(request, dict) else None
    parameters: VoiceParameters | None = None
    if isinstance(raw_parameters, dict):
        try:
            parameters = VoiceParameters.model_validate(raw_parameters)
        except ValidationError as exc:
            raise EventPayloadError(f"data.request.parameters inválido: {exc}") from exc

    attributes = parse_task_attributes(payload) if payload is not None else {}
    return EventContext(
        index=index,
        envelope=envelope,
        payload=payload,
        parameters=parameters,
        attributes=attributes,
    )


# --- constructores por tipo de evento -----------------------------------------


def _require_payload(ctx: EventContext) -> TaskRouterPayload:
    if ctx.payload is None:
        raise EventPayloadError(f"{ctx.envelope.type} sin data.payload")
    return ctx.payload


def _conversation_meta(attributes: dict[str, Any]) -> dict[str, Any]:
    meta = attributes.get("conversations")
    return meta if isinstance(meta, dict) else {}


def _copy_present(source: dict[str, Any], key: str, target: dict[str, Any], column: str) -> None:
    # Una llave ausente no se envía, igual que `undefined` en JSON.stringify
    if key in source:
        target[column] = source[key]


def _reservation_wrapup(ctx: EventContext) -> ConversationWrite:
    payload = _require_payload(ctx)
    finished = parse_timestamp(payload.timestamp)
    created = parse_timestamp(payload.task_date_created)
    talk_time: int | None = None
    if finished is None or created is None:
        logger.warning(
            "event_streams.invalid_timestamp",
            extra={
                "event_type": ctx.envelope.type,
                "task_sid": payload.task_sid,
                "event_timestamp": payload.timestamp,
                "task_date_created": payload.task_date_created,
            },
        )
    else:
        talk_time = (finished - created) // timedelta(seconds=1)
    return ConversationWrite(
        "update", ctx.conversation_id, ConversationChanges(talk_time=talk_time)
    )


def _task_canceled(ctx: EventContext) -> ConversationWrite:
    payload = _require_payload(ctx)
    phase = _conversation_meta(ctx.attributes).get("abandoned_phase")
    changes = ConversationChanges(
        abandoned="Yes",
        abandoned_phase=phase if js_truthy(phase) else DEFAULT_ABANDONED_PHASE,
        abandon_time=payload.task_age,
        outcome=payload.task_canceled_reason,
    )
    return ConversationWrite("update", ctx.conversation_id, changes)


def _task_created(ctx: EventContext) -> ConversationWrite:
    payload = _require_payload(ctx)
    attributes = ctx.attributes
    created_at = parse_timestamp(payload.timestamp)
    if created_at is None:
        raise EventPayloadError(f"timestamp inválido en task.created: {payload.timestamp!r}")

    values: dict[str, Any] = {}
    _copy_present(attributes, "from", values, "phone_number")
    _copy_present(attributes, "direction", values, "direction")
    values["date"] = format_timestamp(created_at)
    sent = payload.model_dump(exclude_unset=True)
    _copy_present(sent, "task_channel_unique_name", values, "communication_channel")
    _copy_present(sent, "workflow_name", values, "workflow")
    _copy_present(attributes, "in_business_hours", values, "in_business_hours")
    user_id = attributes.get("userId")
    company_id = attributes.get("companyId")
    values["contact_id"] = to_number(user_id) if js_truthy(user_id) else None
    values["company_id"] = to_number(company_id) if js_truthy(company_id) else None
    return ConversationWrite("upsert", ctx.conversation_id, ConversationChanges(**values))


def _reservation_accepted(ctx: EventContext) -> ConversationWrite:
    payload = _require_payload(ctx)
    # Se calcula para diagnóstico; la tabla no tiene todavía una columna para esto
    is_abandoned = js_truthy(_conversation_meta(ctx.attributes).get("abandoned")) or (
        payload.task_assignment_status == "canceled" and payload.task_canceled_reason == "hangup"
    )
    log_event(
        logger,
        "event_streams.reservation_accepted",
        level=logging.DEBUG,
        task_sid=payload.task_sid,
        worker_sid=payload.worker_sid,
        is_abandoned=is_abandoned,
    )
    changes = ConversationChanges(agent=payload.worker_sid, queue=payload.task_queue_name)
    return ConversationWrite("update", ctx.conversation_id, changes)


def _enqueue_finished(ctx: EventContext) -> ConversationWrite:
    if ctx.parameters is None:
        raise EventPayloadError(f"{ctx.envelope.type} sin data.request.parameters")
    changes = ConversationChanges(queue_time=to_number(ctx.parameters.QueueTime))
    return ConversationWrite("upsert", ctx.parameters.CallSid, changes)


_BUILDERS: dict[str, Callable[[EventContext], ConversationWrite]] = {
    schemas.RESERVATION_WRAPUP: _reservation_wrapup,
    schemas.TASK_CANCELED: _task_canceled,
    schemas.TASK_CREATED: _task_created,
    schemas.RESERVATION_ACCEPTED: _reservation_accepted,
    schemas.ENQUEUE_FINISHED: _enqueue_finished,
}


def build_write(ctx: EventContext) -> ConversationWrite | None:
    """Retorna la escritura para el evento o `None` si el tipo es desconocido."""
    builder = _BUILDERS.get(ctx.envelope.type)
    if builder is None:
        return None
    try:
        return builder(ctx)
    except ValidationError as exc:
        raise EventPayloadError(f"valores inválidos para {ctx.envelope.type}: {exc}") from exc


# --- ejecución ------------------------------------------------------------------


async def _apply(write: ConversationWrite, store: ConversationStore) -> list[dict[str, Any]]:
    if write.operation == "update":
        return await store.update(write.record_id, write.row())
    return await store.upsert(write.row())


async def handle_event(
    index: int, envelope: EventEnvelope, store: ConversationStore
) -> EventOutcome:
    """Procesa un sobre y espera su escritura; sólo `EventPayloadError` escapa."""
    ctx = build_context(index, envelope)
    if ctx.payload is not None and ctx.payload.workflow_name != VOICEMAIL_WORKFLOW:
        log_event(
            logger,
            "event_streams.payload",
            event_type=envelope.type,
            event_id=envelope.id,
            payload=ctx.payload.model_dump(),
        )

    write = build_write(ctx)
    if write is None:
        log_event(
            logger,
            "event_streams.unknown_event",
            event_type=envelope.type,
            event_id=envelope.id,
            data=envelope.data,
        )
        return EventOutcome(index=index, event_type=envelope.type, status="ignored")

    if not write.record_id:
        logger.warning(
            "event_streams.missing_conversation_id",
            extra={"index": index, "event_type": envelope.type, "operation": write.operation},
        )
        return EventOutcome(
            index=index, event_type=envelope.type, status="skipped", operation=write.operation
        )

    try:
        rows = await _apply(write, store)
    except ReportingStoreError as exc:
        logger.error(
            "event_streams.write_failed",
            extra={
                "index": index,
                "event_type": envelope.type,
                "operation": write.operation,
                "record_id": write.record_id,
                "error": str(exc),
            },
        )
        return EventOutcome(
            index=index,
            event_type=envelope.type,
            status="failed",
            operation=write.operation,
            record_id=write.record_id,
            error=str(exc),
        )

    if write.operation == "update" and not rows:
        # El evento llegó antes que task.created o la fila no existe
        logger.warning(
            "event_streams.conversation_not_found",
            extra={"index": index, "event_type": envelope.type, "record_id": write.record_id},
        )
    log_event(
        logger,
        "event_streams.write_succeeded",
        index=index,
        event_type=envelope.type,
        operation=write.operation,
        record_id=write.record_id,
        rows=len(rows),
    )
    return EventOutcome(
        index=index,
        event_type=envelope.type,
        status="written",
        operation=write.operation,
        record_id=write.record_id,
        rows=len(rows),
    )


async def process_batch(
    envelopes: list[EventEnvelope], store: ConversationStore
) -> BatchResult:
    """Procesa el lote en orden; un payload inválido aborta los eventos restantes."""
    result = BatchResult()
    for index, envelope in enumerate(envelopes):
        try:
            outcome = await handle_event(index, envelope, store)
        except EventPayloadError as exc:
            exc.index = index
            exc.event_type = envelope.type
            logger.error(
                "event_streams.batch_aborted",
                extra={
                    "index": index,
                    "event_type": envelope.type,
                    "error": str(exc),
                    "total": len(envelopes),
                    **result.summary(),
                },
            )
            raise
        result.outcomes.append(outcome)

    log_event(logger, "event_streams.batch_processed", total=len(envelopes), **result.summary())
    return result
