"""Repositorio de la tabla de reportes vía Supabase REST (PostgREST)."""

from __future__ import annotations

import math
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx

from app.core.config import Settings, settings
from app.core.logging import get_logger

logger = get_logger(__name__)

Row = dict[str, Any]


class ReportingStoreError(RuntimeError):
    """Errores derivados de llamadas a Supabase para la tabla de reportes."""


def _finite_json(value: Any) -> Any:
    """Reemplaza NaN/Infinity por `None`, igual que `JSON.stringify`."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {key: _finite_json(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_finite_json(item) for item in value]
    return value


class ReportingRepository:
    """Escrituras por fila sobre una tabla de un esquema expuesto por PostgREST.

    El cliente httpx se recibe ya abierto; `connect()` lo crea y lo cierra al
    terminar el request.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        api_key: str,
        schema: str = "reporting",
        table: str = "conversations",
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._schema = schema
        self._table = table

    @classmethod
    @asynccontextmanager
    async def connect(
        cls,
        config: Settings | None = None,
        *,
        use_service_role: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> AsyncIterator[ReportingRepository]:
        """Abre un repositorio con su propio cliente y lo libera al salir."""
        config = config or settings
        if not config.supabase_url:
            raise ReportingStoreError("Supabase no está configurado (SUPABASE_URL)")
        api_key = config.supabase_anon
        if use_service_role and config.supabase_service_role:
            api_key = config.supabase_service_role
        if not api_key:
            raise ReportingStoreError("Supabase no está configurado (SUPABASE_ANON_KEY)")

        async with httpx.AsyncClient(
            timeout=config.supabase_timeout_seconds, transport=transport
        ) as client:
            yield cls(
                client,
                base_url=config.supabase_url,
                api_key=api_key,
                schema=config.reporting_schema,
                table=config.conversations_table,
            )

    @property
    def table(self) -> str:
        return f"{self._schema}.{self._table}"

    async def update(self, record_id: str, values: Row) -> list[Row]:
        """Actualiza la fila con `id = record_id`; sin coincidencias no crea nada."""
        response = await self._request(
            "PATCH",
            params={"id": f"eq.{record_id}"},
            json=values,
            prefer="return=representation",
        )
        return self._json_list(response)

    async def upsert(self, values: Row | list[Row]) -> list[Row]:
        """Inserta o combina filas usando la llave primaria como conflicto."""
        response = await self._request(
            "POST",
            json=values,
            prefer="resolution=merge-duplicates,return=representation",
        )
        return self._json_list(response)

    async def _request(
        self,
        method: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        path = f"/rest/v1/{self._table}"
        url = f"{self._base_url}{path}"
        try:
            response = await self._client.request(
                method,
                url,
                params=params,
                json=_finite_json(json),
                headers=self._headers(prefer, has_body=json is not None),
            )
        except httpx.RequestError as exc:
            logger.exception(
                "supabase.request_failed",
                extra={"path": path, "table": self.table, "error": str(exc)},
            )
            raise ReportingStoreError(f"Error al conectar a Supabase: {exc}") from exc
        if response.status_code >= 400:
            logger.error(
                "supabase.response_error",
                extra={
                    "path": path,
                    "table": self.table,
                    "status": response.status_code,
                    "body": response.text,
                },
            )
            raise ReportingStoreError(
                f"Supabase respondió {response.status_code}: {response.text}"
            )
        return response

    def _headers(self, prefer: str | None, *, has_body: bool) -> dict[str, str]:
        headers: dict[str, str] = {
            "Accept": "application/json",
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
            "Accept-Profile": self._schema,
        }
        if prefer:
            headers["Prefer"] = prefer
        if has_body:
            headers["Content-Type"] = "application/json"
            headers["Content-Profile"] = self._schema
        return headers

    @staticmethod
    def _json_list(response: httpx.Response) -> list[Row]:
        if not response.content:
            return []
        payload = response.json() or []
        if not isinstance(payload, list):
            raise ReportingStoreError("Respuesta inesperada de Supabase")
        return [row for row in payload if isinstance(row, dict)]
