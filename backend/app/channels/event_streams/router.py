"""Webhook para el sink de Twilio Event Streams."""

from fastapi import APIRouter, Depends, HTTPException, status

from app.repositories.conversations import ReportingRepository

from . import service
from .deps import get_reporting_repository, verify_event_streams_signature
from .schemas import EventEnvelope

router = APIRouter(prefix="/event-streams", tags=["event-streams"])


@router.post("", summary="Recibe un lote de eventos de TaskRouter y Voice")
async def receive_events(
    envelopes: list[EventEnvelope],
    _: None = Depends(verify_event_streams_signature),
    repository: ReportingRepository = Depends(get_reporting_repository),
) -> dict[str, int]:
    """Proyecta cada evento a `reporting.conversations`.

    La respuesta no refleja el resultado de cada escritura; los fallos de
    Supabase sólo quedan en los logs.
    """
    try:
        await service.process_batch(envelopes, repository)
    except service.EventPayloadError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Evento {exc.index} ({exc.event_type}): {exc}",
        ) from exc
    return {"status": 200}
