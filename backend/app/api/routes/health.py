"""Endpoint de salud mínimo para validaciones rápidas."""
from fastapi import APIRouter

from app.core.config import settings

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", summary="Estado del servicio")
def healthcheck() -> dict[str, str | bool]:
    """Indica que la API está viva y si Supabase tiene credenciales."""
    return {
        "status": "ok",
        "supabase_configured": bool(settings.supabase_url and settings.supabase_anon),
    }
