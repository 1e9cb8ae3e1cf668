"""Validación de firmas de Twilio para webhooks entrantes."""

from urllib.parse import parse_qs, urlparse

from twilio.request_validator import RequestValidator


class SignatureError(Exception):
    """Excepción para firmas ausentes o inválidas."""


def verify_twilio_signature(auth_token: str, url: str, body: str, signature: str | None) -> None:
    """Verifica `X-Twilio-Signature` para un webhook con cuerpo JSON.

    Event Streams firma la URL completa, que incluye `bodySHA256` en el query
    string; el validador de Twilio compara ese hash contra el cuerpo bruto.

    Args:
        auth_token: Token de la cuenta de Twilio.
        url: URL pública exacta a la que Twilio envió el request.
        body: Cuerpo bruto decodificado.
        signature: Valor recibido en el encabezado.
    """
    if not signature:
        raise SignatureError("Missing X-Twilio-Signature header")
    validator = RequestValidator(auth_token)
    # Sin `bodySHA256` la firma cubre sólo la URL
    signed: str | dict[str, str] = body if "bodySHA256" in parse_qs(urlparse(url).query) else {}
    if not validator.validate(url, signed, signature):
        raise SignatureError("Invalid signature received")


def mask_secret(value: str | None) -> str | None:
    """Enmascara secretos para logging seguro."""
    if not value:
        return value
    if len(value) <= 4:
        return "***"
    return f"{value[:2]}***{value[-2:]}"
