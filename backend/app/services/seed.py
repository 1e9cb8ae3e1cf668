"""Datos sintéticos para poblar `reporting.conversations` en ambientes locales."""

from __future__ import annotations

import random
import string
from datetime import datetime, timedelta, timezone

from app.channels.event_streams.service import ConversationStore, format_timestamp
from app.core.logging import get_logger, log_event
from app.models.conversation import Conversation

logger = get_logger(__name__)

CHANNELS = ("voice", "voice", "voice", "chat", "sms")
WORKFLOWS = ("Inbound Sales", "Support", "Callbacks", "Voicemail")
QUEUES = ("Sales", "Support", "Everyone")
OUTCOMES = ("hangup", "Task TTL Exceeded", "voicemail")
ABANDONED_PHASES = ("Queue", "IVR", "Ringing")


def _sid(rng: random.Random, prefix: str) -> str:
    return prefix + "".join(rng.choices("0123456789abcdef", k=32))


def _phone(rng: random.Random) -> str:
    return "+1" + "".join(rng.choices(string.digits, k=10))


def build_seed_conversations(
    count: int,
    *,
    seed: int | None = None,
    now: datetime | None = None,
) -> list[Conversation]:
    """Genera `count` conversaciones reproducibles para una semilla dada."""
    if count < 0:
        raise ValueError("count debe ser mayor o igual a cero")
    rng = random.Random(seed)
    now = now or datetime.now(timezone.utc)
    workers = [_sid(rng, "WK") for _ in range(5)]

    conversations: list[Conversation] = []
    for _ in range(count):
        direction = rng.choice(("inbound", "inbound", "outbound"))
        record_id = _sid(rng, "WT") if direction == "outbound" else _sid(rng, "CA")
        started = now - timedelta(minutes=rng.randint(0, 60 * 24 * 30))
        abandoned = rng.random() < 0.2
        values = {
            "id": record_id,
            "phone_number": _phone(rng),
            "direction": direction,
            "date": format_timestamp(started),
            "communication_channel": rng.choice(CHANNELS),
            "workflow": rng.choice(WORKFLOWS),
            "in_business_hours": rng.random() < 0.8,
            "contact_id": rng.randint(1, 5000) if rng.random() < 0.7 else None,
            "company_id": rng.randint(1, 500) if rng.random() < 0.5 else None,
            "queue": rng.choice(QUEUES),
            "queue_time": rng.randint(0, 600),
        }
        if abandoned:
            values.update(
                abandoned="Yes",
                abandoned_phase=rng.choice(ABANDONED_PHASES),
                abandon_time=rng.randint(5, 900),
                outcome=rng.choice(OUTCOMES),
            )
        else:
            values.update(agent=rng.choice(workers), talk_time=rng.randint(30, 1800))
        conversations.append(Conversation(**values))
    return conversations


async def seed_conversations(
    store: ConversationStore,
    conversations: list[Conversation],
    *,
    batch_size: int = 100,
) -> int:
    """Hace upsert por lotes y retorna el número de filas enviadas."""
    if batch_size <= 0:
        raise ValueError("batch_size debe ser positivo")
    written = 0
    for start in range(0, len(conversations), batch_size):
        chunk = conversations[start : start + batch_size]
        # PostgREST exige las mismas llaves en todas las filas de un insert masivo
        await store.upsert([conversation.model_dump() for conversation in chunk])
        written += len(chunk)
        log_event(logger, "seed.batch_written", written=written, total=len(conversations))
    return written
