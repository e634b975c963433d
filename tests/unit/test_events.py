import json
import logging

import pytest

from src.domain.events import (
    WebhookEvent,
    extract_correlation_target,
    parse_webhook_event,
)
from src.domain.exceptions import MalformedEventError
from src.domain.state_machine import TargetType


def _event(payload: dict | None = None, **top_level) -> WebhookEvent:
    data = {"id": "evt_1", "type": "payment.succeeded", "payload": payload or {"id": "p_1"}}
    data.update(top_level)
    return WebhookEvent.model_validate(data)


# ---------------------
# PARSING
# ---------------------

def test_parse_valid_event():
    body = json.dumps(
        {
            "id": "evt_1",
            "type": "payment.succeeded",
            "createdDate": "2026-10-19T08:00:00Z",
            "payload": {"id": "p_1", "status": "succeeded", "amount": 15000},
        }
    ).encode()

    event = parse_webhook_event(body)

    assert event.id == "evt_1"
    assert event.status == "succeeded"
    assert event.created_date.year == 2026


@pytest.mark.parametrize(
    "body",
    [b"", b"{broken", b"\xff\xfe", b"[1, 2]", b'"text"'],
)
def test_unparseable_body_is_malformed(body):
    with pytest.raises(MalformedEventError):
        parse_webhook_event(body)


@pytest.mark.parametrize(
    "data",
    [
        {"type": "payment.succeeded", "payload": {}},
        {"id": "evt_1", "payload": {}},
        {"id": "evt_1", "type": "payment.succeeded"},
        {"id": "", "type": "payment.succeeded", "payload": {}},
        {"id": "evt_1", "type": "payment.succeeded", "payload": "not-an-object"},
    ],
)
def test_missing_required_fields_are_malformed(data):
    with pytest.raises(MalformedEventError):
        parse_webhook_event(json.dumps(data).encode())


@pytest.mark.parametrize("metadata", ["n/a", [], 42, None])
def test_non_object_top_level_metadata_is_ignored(metadata):
    body = json.dumps(
        {
            "id": "evt_1",
            "type": "payment.succeeded",
            "metadata": metadata,
            "payload": {"id": "p_1", "metadata": {"orderId": "O1"}},
        }
    ).encode()

    event = parse_webhook_event(body)

    assert extract_correlation_target(event).target_id == "O1"


def test_non_object_top_level_metadata_does_not_hide_later_locations():
    event = _event({"data": {"metadata": {"orderId": "O3"}}}, metadata=["orderId", "X"])

    target = extract_correlation_target(event)

    assert target.source == "payload.data.metadata"
    assert target.target_id == "O3"


@pytest.mark.parametrize("created_date", ["19/10/2026 08:00", "yesterday", {"at": 1}, True])
def test_unparseable_created_date_is_dropped(created_date, caplog):
    body = json.dumps(
        {
            "id": "evt_1",
            "type": "payment.succeeded",
            "createdDate": created_date,
            "payload": {"id": "p_1"},
        }
    ).encode()

    with caplog.at_level(logging.WARNING):
        event = parse_webhook_event(body)

    assert event.created_date is None
    assert "createdDate" in caplog.text


def test_unix_created_date_is_accepted():
    event = _event(createdDate=1792396800)

    assert event.created_date.year == 2026


def test_non_string_status_is_ignored():
    assert _event({"id": "p_1", "status": 3}).status is None


# ---------------------
# CORRELATION TARGET
# ---------------------

def test_order_id_in_payload_metadata():
    target = extract_correlation_target(_event({"metadata": {"orderId": "O1"}}))

    assert target.source == "payload.metadata"
    assert target.target_type is TargetType.ORDER
    assert target.target_id == "O1"


def test_top_level_metadata():
    target = extract_correlation_target(_event(metadata={"orderId": "O2"}))

    assert target.source == "metadata"
    assert target.target_id == "O2"


def test_data_metadata():
    target = extract_correlation_target(_event({"data": {"metadata": {"order_id": 77}}}))

    assert target.source == "payload.data.metadata"
    assert target.target_id == "77"


def test_object_metadata():
    target = extract_correlation_target(_event({"object": {"metadata": {"orderId": "O4"}}}))

    assert target.source == "payload.object.metadata"


def test_first_location_with_identifier_wins():
    event = _event(
        {"metadata": {"checkoutId": "ch_1"}, "data": {"metadata": {"orderId": "LATER"}}},
        metadata={"orderId": "FIRST"},
    )

    assert extract_correlation_target(event).target_id == "FIRST"


def test_booking_with_marker_routes_to_hall_booking():
    target = extract_correlation_target(
        _event({"metadata": {"orderId": "B1", "bookingId": "B1", "bookingType": "hall_booking"}})
    )

    assert target.target_type is TargetType.HALL_BOOKING
    assert target.target_id == "B1"


def test_booking_without_marker_routes_to_order():
    target = extract_correlation_target(
        _event({"metadata": {"orderId": "O5", "bookingId": "B5", "bookingType": "table"}})
    )

    assert target.target_type is TargetType.ORDER
    assert target.target_id == "O5"


def test_booking_without_marker_or_order_is_unroutable():
    target = extract_correlation_target(_event({"metadata": {"bookingId": "B6"}}))

    assert target is not None
    assert target.target_type is None
    assert target.target_id is None


def test_blank_identifiers_are_skipped():
    event = _event({"metadata": {"orderId": "  "}}, metadata={"orderId": "O7"})

    assert extract_correlation_target(event).target_id == "O7"


def test_no_identifier_anywhere():
    assert extract_correlation_target(_event({"metadata": {"checkoutId": "ch_1"}})) is None
