"""Dependencias del webhook de Event Streams."""

from __future__ import annotations

from typing import AsyncIterator

from fastapi import Header, HTTPException, Request, status

from app.core.config import settings
from app.core.logging import get_logger
from app.core.security import SignatureError, mask_secret, verify_twilio_signature
from app.repositories.conversations import ReportingRepository, ReportingStoreError

logger = get_logger("app.channels.event_streams")


async def get_reporting_repository() -> AsyncIterator[ReportingRepository]:
    """Entrega un repositorio con cliente propio que se cierra al terminar el request."""
    try:
        async with ReportingRepository.connect(settings) as repository:
            yield repository
    except ReportingStoreError as exc:
        logger.error("event_streams.store_unavailable", extra={"error": str(exc)})
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


def _signed_url(request: Request) -> str:
    if not settings.public_base_url:
        return str(request.url)
    base = settings.public_base_url.rstrip("/")
    query = f"?{request.url.query}" if request.url.query else ""
    return f"{base}{request.url.path}{query}"


async def verify_event_streams_signature(
    request: Request,
    x_twilio_signature: str | None = Header(default=None),
) -> None:
    """Valida `X-Twilio-Signature` cuando la validación está habilitada."""
    if not settings.validate_twilio_signature:
        return
    if not settings.twilio_auth_token:
        logger.error("event_streams.signature_not_configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="TWILIO_AUTH_TOKEN no está configurado",
        )
    body = (await request.body()).decode("utf-8")
    url = _signed_url(request)
    try:
        verify_twilio_signature(settings.twilio_auth_token, url, body, x_twilio_signature)
    except SignatureError as exc:
        logger.warning(
            "event_streams.invalid_signature",
            extra={"url": url, "token": mask_secret(settings.twilio_auth_token)},
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
