"""Integration tests for API endpoints."""

from datetime import date, timedelta
from uuid import uuid4

import pytest

DESTINATION = "8f3b2a8e-1f53-4d7e-9a8c-6a2f0f6d9b10"


def _trip_date(days: int = 21) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


def _slot_payload(package_id, **overrides) -> dict:
    payload = {
        "package_id": str(package_id),
        "destination_id": DESTINATION,
        "destination_name": "Goa",
        "trip_date": _trip_date(),
        "guest_details": [{"age": 30, "name": "Asha"}, {"age": 10}],
        "max_capacity": 4,
    }
    payload.update(overrides)
    return payload


async def _create_slot(test_client, auth_headers, package_id, user_id="creator-1", **overrides) -> dict:
    response = await test_client.post(
        "/v1/slot/create",
        json=_slot_payload(package_id, **overrides),
        headers=auth_headers(user_id)
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_slot_endpoint(test_client, auth_headers, package, outbox):
    """Test slot creation with the creator's priced seed booking."""
    data = await _create_slot(test_client, auth_headers, package.id)

    slot = data["slot"]
    assert slot["slot_name"] == "Slot 1 - Goa"
    assert slot["status"] == "AVAILABLE"
    assert slot["occupied_capacity"] == 2
    assert slot["available_capacity"] == 2
    assert slot["creator_id"] == "creator-1"
    assert slot["booking_ids"] == [data["booking"]["id"]]

    booking = data["booking"]
    assert booking["guest_count"] == 2
    assert booking["final_amount"] == 1500
    assert booking["currency"] == "INR"
    assert booking["payment_status"] == "pending"

    assert [event.event_type for event in outbox.events] == ["SlotCreated"]


@pytest.mark.asyncio
async def test_create_slot_missing_auth(test_client, package):
    """Test slot creation without authentication."""
    response = await test_client.post("/v1/slot/create", json=_slot_payload(package.id))

    assert response.status_code == 401
    data = response.json()
    assert data["status"] == 401
    assert "authorization" in data["title"].lower()
    assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_create_slot_invalid_token(test_client, package):
    response = await test_client.post(
        "/v1/slot/create",
        json=_slot_payload(package.id),
        headers={"Authorization": "Bearer not-a-jwt"}
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_slot_invalid_data(test_client, auth_headers, package):
    """Test slot creation with invalid data."""
    response = await test_client.post(
        "/v1/slot/create",
        json=_slot_payload(package.id, guest_details=[], max_capacity=0),
        headers=auth_headers("creator-1")
    )

    assert response.status_code == 422
    data = response.json()
    assert data["status"] == 422
    paths = {violation["path"] for violation in data["violations"]}
    assert {"guest_details", "max_capacity"} <= paths


@pytest.mark.asyncio
async def test_create_slot_negative_age(test_client, auth_headers, package):
    response = await test_client.post(
        "/v1/slot/create",
        json=_slot_payload(package.id, guest_details=[{"age": -1}]),
        headers=auth_headers("creator-1")
    )

    assert response.status_code == 422
    assert response.json()["code"] == "INVALID_GUEST_DATA"


@pytest.mark.asyncio
async def test_create_duplicate_slot_endpoint(test_client, auth_headers, package):
    package_id = package.id
    first = await _create_slot(test_client, auth_headers, package_id)

    response = await test_client.post(
        "/v1/slot/create",
        json=_slot_payload(package_id),
        headers=auth_headers("creator-2")
    )

    assert response.status_code == 409
    data = response.json()
    assert data["code"] == "DUPLICATE_SLOT"
    assert data["existing_slot_id"] == first["slot"]["id"]
    assert data["slot"]["available_capacity"] == 2
    assert data["retryable"] is False


@pytest.mark.asyncio
async def test_create_slot_capacity_exceeded(test_client, auth_headers, package):
    response = await test_client.post(
        "/v1/slot/create",
        json=_slot_payload(package.id, max_capacity=1),
        headers=auth_headers("creator-1")
    )

    assert response.status_code == 422
    assert response.json()["code"] == "CAPACITY_EXCEEDED"


@pytest.mark.asyncio
async def test_get_and_find_open_slot(test_client, auth_headers, package):
    package_id = package.id
    created = await _create_slot(test_client, auth_headers, package_id)

    response = await test_client.post("/v1/slot/get", json={"slot_id": created["slot"]["id"]})
    assert response.status_code == 200
    assert response.json()["id"] == created["slot"]["id"]

    response = await test_client.post(
        "/v1/slot/find-open",
        json={"package_id": str(package_id), "destination_id": DESTINATION, "trip_date": _trip_date()}
    )
    assert response.status_code == 200
    assert response.json()["slot"]["id"] == created["slot"]["id"]

    response = await test_client.post(
        "/v1/slot/find-open",
        json={"package_id": str(package_id), "destination_id": DESTINATION, "trip_date": _trip_date(22)}
    )
    assert response.status_code == 200
    assert response.json()["slot"] is None


@pytest.mark.asyncio
async def test_get_unknown_slot(test_client):
    response = await test_client.post("/v1/slot/get", json={"slot_id": str(uuid4())})

    assert response.status_code == 404
    data = response.json()
    assert data["resource_type"] == "slot"


@pytest.mark.asyncio
async def test_close_slot_requires_admin(test_client, auth_headers, package):
    created = await _create_slot(test_client, auth_headers, package.id)
    body = {"slot_id": created["slot"]["id"]}

    response = await test_client.post("/v1/slot/close", json=body, headers=auth_headers("creator-1"))
    assert response.status_code == 403
    assert response.json()["code"] == "NOT_AUTHORIZED"

    response = await test_client.post("/v1/slot/close", json=body, headers=auth_headers("ops-1", ["admin"]))
    assert response.status_code == 200
    assert response.json()["status"] == "CLOSED"


@pytest.mark.asyncio
async def test_join_request_flow(test_client, auth_headers, test_session, package, make_booking, outbox):
    """Submit, list, approve and observe the new member."""
    booking = await make_booking(test_session, package, "traveler-2", guest_count=2)
    booking_id = str(booking.id)
    created = await _create_slot(test_client, auth_headers, package.id)
    slot_id = created["slot"]["id"]

    response = await test_client.post(
        "/v1/join-request/submit",
        json={
            "slot_id": slot_id,
            "booking_id": booking_id,
            "guest_details": [{"age": 29}, {"age": 31}],
            "message": "Two of us, flexible on rooms"
        },
        headers=auth_headers("traveler-2")
    )
    assert response.status_code == 201, response.text
    request = response.json()
    assert request["status"] == "PENDING"
    assert request["guest_count"] == 2

    response = await test_client.post(
        "/v1/join-request/pending", json={}, headers=auth_headers("creator-1")
    )
    assert response.status_code == 200
    assert [item["id"] for item in response.json()["items"]] == [request["id"]]

    response = await test_client.post(
        "/v1/join-request/approve",
        json={"request_id": request["id"]},
        headers=auth_headers("traveler-2")
    )
    assert response.status_code == 403

    response = await test_client.post(
        "/v1/join-request/respond",
        json={"request_id": request["id"], "decision": "APPROVE"},
        headers=auth_headers("creator-1")
    )
    assert response.status_code == 200
    assert response.json()["status"] == "APPROVED"

    response = await test_client.post("/v1/slot/get", json={"slot_id": slot_id})
    slot = response.json()
    assert slot["status"] == "FULL"
    assert booking_id in slot["booking_ids"]

    response = await test_client.post(
        "/v1/join-request/decline",
        json={"request_id": request["id"]},
        headers=auth_headers("creator-1")
    )
    assert response.status_code == 409
    assert response.json()["code"] == "REQUEST_ALREADY_RESOLVED"

    assert [event.event_type for event in outbox.events] == [
        "SlotCreated",
        "JoinRequestSubmitted",
        "JoinRequestApproved",
        "SlotBecameFull",
    ]


@pytest.mark.asyncio
async def test_join_request_cancel_endpoint(test_client, auth_headers, test_session, package, make_booking):
    booking = await make_booking(test_session, package, "traveler-2")
    booking_id = str(booking.id)
    created = await _create_slot(test_client, auth_headers, package.id)

    response = await test_client.post(
        "/v1/join-request/submit",
        json={"slot_id": created["slot"]["id"], "booking_id": booking_id, "guest_details": [{"age": 40}]},
        headers=auth_headers("traveler-2")
    )
    request_id = response.json()["id"]

    response = await test_client.post(
        "/v1/join-request/cancel", json={"request_id": request_id}, headers=auth_headers("traveler-2")
    )

    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"


@pytest.mark.asyncio
async def test_remove_booking_endpoint(test_client, auth_headers, test_session, package, make_booking):
    booking = await make_booking(test_session, package, "traveler-2")
    booking_id = str(booking.id)
    created = await _create_slot(test_client, auth_headers, package.id)
    slot_id = created["slot"]["id"]

    response = await test_client.post(
        "/v1/join-request/submit",
        json={"slot_id": slot_id, "booking_id": booking_id, "guest_details": [{"age": 40}]},
        headers=auth_headers("traveler-2")
    )
    await test_client.post(
        "/v1/join-request/approve", json={"request_id": response.json()["id"]}, headers=auth_headers("creator-1")
    )

    body = {"slot_id": slot_id, "booking_id": booking_id}
    response = await test_client.post("/v1/slot/remove-booking", json=body, headers=auth_headers("stranger"))
    assert response.status_code == 403

    response = await test_client.post("/v1/slot/remove-booking", json=body, headers=auth_headers("traveler-2"))
    assert response.status_code == 200
    data = response.json()
    assert booking_id not in data["booking_ids"]
    assert data["available_capacity"] == 2


@pytest.mark.asyncio
async def test_match_search_endpoint(test_client, auth_headers, package):
    """Test the ranked slot search endpoint."""
    created = await _create_slot(test_client, auth_headers, package.id)

    response = await test_client.post(
        "/v1/match/search",
        json={"destination_name": "goa", "budget": 1000, "min_available": 1, "limit": 10}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    [item] = data["items"]
    assert item["slot"]["id"] == created["slot"]["id"]
    assert item["package"]["title"] == "Goa Beach Escape"
    assert 0 < item["match_percentage"] <= 100


@pytest.mark.asyncio
async def test_match_similar_endpoint(test_client, auth_headers, package):
    package_id = package.id
    reference = await _create_slot(test_client, auth_headers, package_id)
    alternative = await _create_slot(test_client, auth_headers, package_id, trip_date=_trip_date(28))

    response = await test_client.post("/v1/match/similar", json={"slot_id": reference["slot"]["id"]})

    assert response.status_code == 200
    assert [item["slot"]["id"] for item in response.json()["items"]] == [alternative["slot"]["id"]]


@pytest.mark.asyncio
async def test_price_quote_endpoint(test_client, package):
    response = await test_client.post(
        "/v1/pricing/quote",
        json={"package_id": str(package.id), "guest_details": [{"age": 30}, {"age": 10}, {"age": 2}]}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == {"amount": 1500, "currency": "INR"}
    assert data["breakdown"] == {"adults": 1, "children": 1, "infants": 1}


@pytest.mark.asyncio
async def test_request_id_is_echoed(test_client):
    response = await test_client.post("/v1/health/ping", json={}, headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"


@pytest.mark.asyncio
async def test_metrics_endpoint(test_client, auth_headers, package):
    """Test the Prometheus metrics endpoint."""
    await _create_slot(test_client, auth_headers, package.id)

    response = await test_client.get("/metrics")

    assert response.status_code == 200
    assert "slots_created_total" in response.text
    assert "http_requests_total" in response.text


@pytest.mark.asyncio
async def test_submit_join_request_guest_mismatch(test_client, auth_headers, test_session, package, make_booking):
    booking = await make_booking(test_session, package, "traveler-2", guest_count=3)
    booking_id = str(booking.id)
    created = await _create_slot(test_client, auth_headers, package.id)

    response = await test_client.post(
        "/v1/join-request/submit",
        json={"slot_id": created["slot"]["id"], "booking_id": booking_id, "guest_details": [{"age": 40}]},
        headers=auth_headers("traveler-2")
    )

    assert response.status_code == 422
    data = response.json()
    assert data["code"] == "INVALID_GUEST_DATA"
    assert data["slot"]["slot_id"] == created["slot"]["id"]
    assert data["slot"]["available_capacity"] == 2
