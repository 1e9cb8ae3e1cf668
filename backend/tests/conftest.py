"""Fixtures compartidas para las pruebas."""

from __future__ import annotations

import json
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from app.channels.event_streams.deps import get_reporting_repository
from app.main import app
from app.repositories.conversations import ReportingStoreError


class FakeConversationStore:
    """Registra las escrituras en memoria en lugar de llamar a Supabase."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.fail_for: set[str] = set()

    async def update(self, record_id: str, values: dict[str, Any]) -> list[dict[str, Any]]:
        self.calls.append(("update", record_id, values))
        if record_id in self.fail_for:
            raise ReportingStoreError(f"boom {record_id}")
        return [{"id": record_id, **values}]

    async def upsert(
        self, values: dict[str, Any] | list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        self.calls.append(("upsert", None, values))
        rows = values if isinstance(values, list) else [values]
        if any(row.get("id") in self.fail_for for row in rows):
            raise ReportingStoreError("boom upsert")
        return list(rows)


def taskrouter_event(
    event_type: str, attributes: dict[str, Any] | str | None = None, **payload: Any
) -> dict[str, Any]:
    """Construye un sobre de TaskRouter como lo envía Event Streams."""
    if attributes is None:
        attributes = {}
    body = {
        "task_sid": "WT123",
        "workflow_name": "Inbound Sales",
        "timestamp": "2024-05-01T10:00:05.500Z",
        "task_attributes": attributes if isinstance(attributes, str) else json.dumps(attributes),
    }
    body.update(payload)
    return {"type": f"com.twilio.taskrouter.{event_type}", "data": {"payload": body}}


@pytest.fixture(name="store")
def fixture_store() -> FakeConversationStore:
    return FakeConversationStore()


@pytest.fixture(name="async_client")
async def fixture_async_client(store: FakeConversationStore) -> AsyncClient:
    """Retorna un cliente asíncrono contra la app principal utilizando ASGITransport."""
    app.dependency_overrides[get_reporting_repository] = lambda: store
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="make_event")
def fixture_make_event():
    return taskrouter_event
