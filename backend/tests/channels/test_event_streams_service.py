"""Pruebas unitarias del despachador de eventos de Event Streams."""

from __future__ import annotations

import logging
import math
from typing import Any

import pytest

from app.channels.event_streams import service
from app.channels.event_streams.schemas import EventEnvelope


def _envelopes(*raw: dict[str, Any]) -> list[EventEnvelope]:
    return [EventEnvelope.model_validate(item) for item in raw]


@pytest.mark.asyncio
async def test_task_created_outbound_targets_task_sid(store, make_event) -> None:
    event = make_event(
        "task.created",
        {"direction": "outbound", "call_sid": "CA999", "from": "+15550001111", "userId": "42"},
        task_channel_unique_name="voice",
    )

    result = await service.process_batch(_envelopes(event), store)

    assert result.summary()["written"] == 1
    operation, _, row = store.calls[0]
    assert operation == "upsert"
    assert row == {
        "id": "WT123",
        "phone_number": "+15550001111",
        "direction": "outbound",
        "date": "2024-05-01T10:00:05.500Z",
        "communication_channel": "voice",
        "workflow": "Inbound Sales",
        "contact_id": 42,
        "company_id": None,
    }


@pytest.mark.asyncio
async def test_task_created_inbound_targets_call_sid(store, make_event) -> None:
    event = make_event(
        "task.created",
        {"direction": "inbound", "call_sid": "CA1", "companyId": 7, "in_business_hours": True},
    )

    await service.process_batch(_envelopes(event), store)

    _, _, row = store.calls[0]
    assert row["id"] == "CA1"
    assert row["company_id"] == 7
    assert row["contact_id"] is None
    assert row["in_business_hours"] is True


@pytest.mark.asyncio
async def test_task_created_with_invalid_timestamp_aborts(store, make_event) -> None:
    event = make_event("task.created", {"call_sid": "CA1"}, timestamp="not-a-date")

    with pytest.raises(service.EventPayloadError):
        await service.process_batch(_envelopes(event), store)
    assert store.calls == []


@pytest.mark.asyncio
async def test_wrapup_talk_time_is_floored_seconds(store, make_event) -> None:
    event = make_event(
        "reservation.wrapup",
        {"direction": "inbound", "call_sid": "CA1"},
        timestamp=5500,
        task_date_created=0,
    )

    await service.process_batch(_envelopes(event), store)

    assert store.calls == [("update", "CA1", {"talk_time": 5})]


@pytest.mark.asyncio
async def test_wrapup_accepts_iso_timestamps(store, make_event) -> None:
    event = make_event(
        "reservation.wrapup",
        {"direction": "outbound"},
        timestamp="2024-05-01T10:02:00.999Z",
        task_date_created="2024-05-01T10:00:00.000Z",
    )

    await service.process_batch(_envelopes(event), store)

    assert store.calls == [("update", "WT123", {"talk_time": 120})]


@pytest.mark.asyncio
async def test_task_canceled_defaults_abandoned_phase(store, make_event) -> None:
    event = make_event(
        "task.canceled",
        {"call_sid": "CA1"},
        task_age=33,
        task_canceled_reason="hangup",
    )

    await service.process_batch(_envelopes(event), store)

    assert store.calls == [
        (
            "update",
            "CA1",
            {
                "abandoned": "Yes",
                "abandoned_phase": "Queue",
                "abandon_time": 33,
                "outcome": "hangup",
            },
        )
    ]


@pytest.mark.asyncio
async def test_task_canceled_keeps_reported_phase(store, make_event) -> None:
    event = make_event(
        "task.canceled",
        {"call_sid": "CA1", "conversations": {"abandoned_phase": "IVR"}},
    )

    await service.process_batch(_envelopes(event), store)

    assert store.calls[0][2]["abandoned_phase"] == "IVR"


@pytest.mark.asyncio
async def test_reservation_accepted_sets_agent_and_queue(store, make_event) -> None:
    event = make_event(
        "reservation.accepted",
        {"call_sid": "CA1"},
        worker_sid="WK1",
        task_queue_name="Sales",
    )

    await service.process_batch(_envelopes(event), store)

    assert store.calls == [("update", "CA1", {"agent": "WK1", "queue": "Sales"})]


@pytest.mark.asyncio
async def test_enqueue_finished_upserts_queue_time(store) -> None:
    event = {
        "type": "com.twilio.voice.twiml.enqueue.finished",
        "data": {"request": {"parameters": {"CallSid": "CA1", "QueueTime": "37"}}},
    }

    await service.process_batch(_envelopes(event), store)

    assert store.calls == [("upsert", None, {"id": "CA1", "queue_time": 37})]


@pytest.mark.asyncio
async def test_enqueue_finished_non_numeric_queue_time_is_nan(store) -> None:
    event = {
        "type": "com.twilio.voice.twiml.enqueue.finished",
        "data": {"request": {"parameters": {"CallSid": "CA1", "QueueTime": "soon"}}},
    }

    await service.process_batch(_envelopes(event), store)

    assert math.isnan(store.calls[0][2]["queue_time"])


@pytest.mark.asyncio
async def test_unknown_event_is_logged_without_writes(
    store, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO, logger="app.channels.event_streams")
    event = {"type": "com.twilio.taskrouter.worker.activity.update", "data": {"foo": "bar"}}

    result = await service.process_batch(_envelopes(event), store)

    assert store.calls == []
    assert result.outcomes[0].status == "ignored"
    assert any(r.getMessage() == "event_streams.unknown_event" for r in caplog.records)


@pytest.mark.asyncio
async def test_malformed_attributes_abort_remaining_events(store, make_event) -> None:
    batch = _envelopes(
        make_event("task.created", {"call_sid": "CA1"}),
        make_event("reservation.accepted", "{not json"),
        make_event("reservation.accepted", {"call_sid": "CA1"}, worker_sid="WK1"),
    )

    with pytest.raises(service.EventPayloadError) as excinfo:
        await service.process_batch(batch, store)

    assert excinfo.value.index == 1
    assert excinfo.value.event_type == "com.twilio.taskrouter.reservation.accepted"
    assert len(store.calls) == 1


@pytest.mark.asyncio
async def test_store_failure_does_not_stop_batch(store, make_event) -> None:
    store.fail_for = {"CA1"}
    batch = _envelopes(
        make_event("reservation.accepted", {"call_sid": "CA1"}, worker_sid="WK1"),
        make_event("reservation.accepted", {"call_sid": "CA2"}, worker_sid="WK2"),
    )

    result = await service.process_batch(batch, store)

    assert [outcome.status for outcome in result.outcomes] == ["failed", "written"]
    assert result.outcomes[0].error == "boom CA1"


@pytest.mark.asyncio
async def test_missing_conversation_id_skips_write(store, make_event) -> None:
    event = make_event("reservation.accepted", {"direction": "inbound"}, worker_sid="WK1")

    result = await service.process_batch(_envelopes(event), store)

    assert store.calls == []
    assert result.outcomes[0].status == "skipped"


@pytest.mark.asyncio
async def test_voicemail_payloads_are_not_logged(
    store, make_event, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO, logger="app.channels.event_streams")
    event = make_event("reservation.accepted", {"call_sid": "CA1"}, workflow_name="Voicemail")

    await service.process_batch(_envelopes(event), store)

    assert not any(r.getMessage() == "event_streams.payload" for r in caplog.records)


@pytest.mark.parametrize(
    ("value", "expected"),
    [("12", 12), (" 3.5 ", 3.5), ("", 0), (7, 7), (2.0, 2), (True, 1), ("1e3", 1000)],
)
def test_to_number_matches_javascript(value: Any, expected: float) -> None:
    assert service.to_number(value) == expected


@pytest.mark.parametrize("value", [None, "abc", "1_000", "0x", {}])
def test_to_number_returns_nan_for_non_numeric(value: Any) -> None:
    assert math.isnan(service.to_number(value))


@pytest.mark.parametrize("value", [None, "", 0, 0.0, False, math.nan])
def test_js_truthy_falsy_values(value: Any) -> None:
    assert service.js_truthy(value) is False


def test_js_truthy_keeps_zero_string() -> None:
    assert service.js_truthy("0") is True


@pytest.mark.asyncio
async def test_wrapup_accepts_epoch_millisecond_strings(store, make_event) -> None:
    event = make_event(
        "reservation.wrapup",
        {"call_sid": "CA1"},
        timestamp="1714557605500",
        task_date_created="1714557600000",
    )

    await service.process_batch(_envelopes(event), store)

    assert store.calls == [("update", "CA1", {"talk_time": 5})]


@pytest.mark.asyncio
async def test_task_created_accepts_epoch_millisecond_string(store, make_event) -> None:
    event = make_event("task.created", {"call_sid": "CA1"}, timestamp="1714557605500")

    await service.process_batch(_envelopes(event), store)

    assert store.calls[0][2]["date"] == "2024-05-01T10:00:05.500Z"


def test_parse_timestamp_digit_strings_are_milliseconds() -> None:
    assert service.parse_timestamp("5500") == service.parse_timestamp(5500)
    assert service.parse_timestamp("²") is None


@pytest.mark.asyncio
async def test_attribute_values_are_written_as_received(store, make_event) -> None:
    batch = _envelopes(
        make_event("task.created", {"call_sid": "CA1", "from": 15550001111, "direction": 1}),
        make_event("task.canceled", {"call_sid": "CA1", "conversations": {"abandoned_phase": 2}}),
        make_event("reservation.accepted", {"call_sid": "CA1"}, worker_sid="WK1"),
    )

    result = await service.process_batch(batch, store)

    assert [outcome.status for outcome in result.outcomes] == ["written"] * 3
    assert store.calls[0][2]["phone_number"] == 15550001111
    assert store.calls[0][2]["direction"] == 1
    assert store.calls[1][2]["abandoned_phase"] == 2


@pytest.mark.asyncio
async def test_task_created_omits_payload_fields_not_sent(store) -> None:
    event = {
        "type": "com.twilio.taskrouter.task.created",
        "data": {
            "payload": {
                "task_sid": "WT1",
                "timestamp": 0,
                "task_attributes": '{"call_sid": "CA1"}',
            }
        },
    }

    await service.process_batch(_envelopes(event), store)

    row = store.calls[0][2]
    assert "communication_channel" not in row
    assert "workflow" not in row
    assert row["date"] == "1970-01-01T00:00:00.000Z"
