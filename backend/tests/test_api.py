"""
HTTP API Tests.

End-to-end flows through the FastAPI application: ordering, payment
webhooks, allocation and the read-only endpoints.
"""

import pytest
from decimal import Decimal

from backend.app.core.config import settings

API = f"/{settings.api_version}"


def _webhook(reference, amount, transaction_number, status="SUCCESS", description=""):
    return {
        "transaction_number": transaction_number,
        "status": status,
        "amount": amount,
        "description": description,
        "timestamp": "2026-03-02T10:15:00Z",
        "from": "9876543210",
        "to": settings.collection_account_number,
        "reference": reference,
    }


async def _place_order(client, quantity=10, company_name="Acme Phones"):
    response = await client.post(f"{API}/pickups", json={
        "company_name": company_name,
        "quantity": quantity,
        "recipient_name": "Jane Receiver",
        "pickup_location": "Warehouse A",
        "delivery_location": "Store B",
    })
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["event_channel"] == "up"


@pytest.mark.asyncio
async def test_create_pickup_returns_payment_instructions(client):
    data = await _place_order(client, quantity=12)

    assert Decimal(data["amount_due"]) == Decimal("120.00")
    assert data["account_number"] == settings.collection_account_number
    assert data["reference_number"]

    response = await client.get(f"{API}/pickups/{data['pickup_id']}")
    assert response.status_code == 200
    pickup = response.json()
    assert pickup["company_name"] == "Acme Phones"
    assert pickup["payment_status"] == "AWAITING_PAYMENT"
    assert pickup["logistics_status"] == "PENDING_PLANNING"
    assert pickup["pickup_status"] == "Order Received"
    assert pickup["display_status"] == "Awaiting Payment"
    assert pickup["paid"] is False


@pytest.mark.asyncio
async def test_create_pickup_validation_error(client):
    response = await client.post(f"{API}/pickups", json={
        "company_name": "Acme Phones",
        "quantity": 0,
        "recipient_name": "Jane Receiver",
    })
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_missing_pickup_returns_error_envelope(client):
    response = await client.get(f"{API}/pickups/9999")

    assert response.status_code == 404
    body = response.json()
    assert body["error_code"] == "ERR_NOT_FOUND_001"
    assert body["details"] == {"resource": "Pickup", "id": 9999}


@pytest.mark.asyncio
async def test_status_catalog_in_display_order(client):
    response = await client.get(f"{API}/pickups/statuses")

    assert response.status_code == 200
    data = response.json()
    assert data["pickup_statuses"] == [
        "Order Received", "Ready for Collection", "Collected", "Delivered", "Cancelled",
    ]
    assert data["display_statuses"][0] == "Awaiting Payment"


@pytest.mark.asyncio
async def test_list_pickups_by_company_and_status(client):
    await _place_order(client, company_name="Globex")
    await _place_order(client, company_name="Globex")
    await _place_order(client, company_name="Initech")

    response = await client.get(f"{API}/pickups", params={"company_name": "Globex"})
    assert response.json()["total"] == 2

    response = await client.get(f"{API}/pickups", params={"company_name": "Globex", "status": "Delivered"})
    assert response.json() == {"pickups": [], "total": 0}


@pytest.mark.asyncio
async def test_webhook_partial_full_and_replay(client):
    order = await _place_order(client, quantity=50)
    reference = order["reference_number"]

    first = await client.post(f"{API}/webhooks/payments", json=_webhook(reference, "300.00", "TXN-A"))
    assert first.status_code == 200
    assert first.json()["payment_status"] == "PARTIALLY_PAID"
    assert first.json()["replayed"] is False

    second = await client.post(f"{API}/webhooks/payments", json=_webhook(reference, "200.00", "TXN-B"))
    assert second.json()["payment_status"] == "PAID"
    assert second.json()["paid"] is True

    replay = await client.post(f"{API}/webhooks/payments", json=_webhook(reference, "300.00", "TXN-A"))
    assert replay.status_code == 200
    assert replay.json()["replayed"] is True
    assert replay.json()["payment_status"] == "PARTIALLY_PAID"

    ledger = (await client.get(f"{API}/invoices/{order['invoice_id']}/ledger")).json()
    assert Decimal(ledger["balance"]) == Decimal("500.00")
    assert [e["transaction_type"] for e in ledger["entries"]] == ["PAYMENT_RECEIVED", "PAYMENT_RECEIVED"]

    invoice = (await client.get(f"{API}/invoices/by-reference/{reference}")).json()
    assert invoice["payment_status"] == "PAID"
    assert invoice["id"] == order["invoice_id"]


@pytest.mark.asyncio
async def test_webhook_unknown_reference(client):
    response = await client.post(f"{API}/webhooks/payments", json=_webhook("nope", "10.00", "TXN-X"))

    assert response.status_code == 422
    body = response.json()
    assert body["error_code"] == "ERR_PAYMENT_UNRESOLVED"
    assert body["details"]["transaction_number"] == "TXN-X"

    record = await client.get(f"{API}/payments/TXN-X")
    assert record.status_code == 200
    assert record.json()["reconciliation_status"] == "UNRESOLVED"
    assert record.json()["invoice_id"] is None


@pytest.mark.asyncio
async def test_webhook_rejects_bad_payload(client):
    payload = _webhook("ref", "10.00", "TXN-Y")
    payload["status"] = "PENDING"

    response = await client.post(f"{API}/webhooks/payments", json=payload)
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_unknown_payment_record(client):
    response = await client.get(f"{API}/payments/TXN-NONE")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_allocation_flow_over_http(client, truck_factory):
    truck = await truck_factory(max_capacity=100)
    order = await _place_order(client, quantity=10)
    ld_id = order["logistics_details_id"]

    gated = await client.post(f"{API}/logistics/{ld_id}/allocate")
    assert gated.status_code == 409
    assert gated.json()["error_code"] == "ERR_PAYMENT_GATE"

    await client.post(
        f"{API}/webhooks/payments",
        json=_webhook(order["reference_number"], "100.00", "TXN-PAY"),
    )

    allocated = await client.post(f"{API}/logistics/{ld_id}/allocate")
    assert allocated.status_code == 200
    assert allocated.json()["logistics_status"] == "READY_FOR_COLLECTION"
    assert allocated.json()["allocations"] == [{"truck_id": truck.id, "quantity": 10}]

    for status in ("COLLECTED", "OUT_FOR_DELIVERY", "DELIVERED"):
        response = await client.post(f"{API}/logistics/{ld_id}/status", json={"status": status})
        assert response.status_code == 200
        assert response.json()["logistics_status"] == status

    pickup = (await client.get(f"{API}/pickups/{order['pickup_id']}")).json()
    assert pickup["display_status"] == "Delivered"

    cancel = await client.post(f"{API}/pickups/{order['pickup_id']}/cancel")
    assert cancel.status_code == 409
    assert cancel.json()["error_code"] == "ERR_INVALID_TRANSITION"


@pytest.mark.asyncio
async def test_insufficient_capacity_over_http(client, truck_factory):
    await truck_factory(max_capacity=5)
    order = await _place_order(client, quantity=10)
    await client.post(
        f"{API}/webhooks/payments",
        json=_webhook(order["reference_number"], "100.00", "TXN-PAY"),
    )

    response = await client.post(f"{API}/logistics/{order['logistics_details_id']}/allocate")

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_INSUFFICIENT_CAPACITY"


@pytest.mark.asyncio
async def test_webhook_auto_allocates_when_enabled(client, truck_factory, monkeypatch):
    monkeypatch.setattr(settings, "auto_allocate_on_payment", True)
    truck = await truck_factory()
    order = await _place_order(client, quantity=10)

    await client.post(
        f"{API}/webhooks/payments",
        json=_webhook(order["reference_number"], "100.00", "TXN-AUTO"),
    )

    details = (await client.get(f"{API}/logistics/{order['logistics_details_id']}")).json()
    assert details["logistics_status"] == "READY_FOR_COLLECTION"
    assert details["allocations"] == [{"truck_id": truck.id, "quantity": 10}]


@pytest.mark.asyncio
async def test_cancel_and_refund_over_http(client):
    order = await _place_order(client, quantity=10)
    await client.post(
        f"{API}/webhooks/payments",
        json=_webhook(order["reference_number"], "40.00", "TXN-PART"),
    )

    cancelled = await client.post(f"{API}/pickups/{order['pickup_id']}/cancel")
    assert cancelled.status_code == 200
    assert cancelled.json()["payment_status"] == "CANCELLED"
    assert cancelled.json()["pickup_status"] == "Cancelled"

    too_much = await client.post(f"{API}/invoices/{order['invoice_id']}/refunds", json={"amount": "50.00"})
    assert too_much.status_code == 400
    assert too_much.json()["error_code"] == "ERR_LEDGER_RULE"

    refund = await client.post(f"{API}/invoices/{order['invoice_id']}/refunds", json={"amount": "40.00"})
    assert refund.status_code == 201
    assert Decimal(refund.json()["amount"]) == Decimal("-40.00")

    invoice = (await client.get(f"{API}/invoices/{order['invoice_id']}")).json()
    assert Decimal(invoice["balance"]) == Decimal("0.00")


@pytest.mark.asyncio
async def test_manual_ledger_entries(client):
    order = await _place_order(client)
    url = f"{API}/invoices/{order['invoice_id']}/ledger-entries"

    loan = await client.post(url, json={"transaction_type": "LOAN_DISBURSEMENT", "amount": "30.00"})
    assert loan.status_code == 201

    payment = await client.post(url, json={"transaction_type": "PAYMENT_RECEIVED", "amount": "30.00"})
    assert payment.status_code == 400

    invoice = (await client.get(f"{API}/invoices/{order['invoice_id']}")).json()
    assert Decimal(invoice["financed_amount"]) == Decimal("30.00")
    assert Decimal(invoice["balance"]) == Decimal("0.00")


@pytest.mark.asyncio
async def test_fleet_endpoints(client, truck_factory):
    truck = await truck_factory(max_pickups=3, max_dropoffs=2, max_capacity=40)
    await truck_factory(is_available=False)

    trucks = (await client.get(f"{API}/fleet/trucks")).json()
    assert len(trucks) == 2

    available = (await client.get(f"{API}/fleet/trucks/available")).json()
    assert [t["id"] for t in available] == [truck.id]

    capacity = (await client.get(f"{API}/fleet/trucks/{truck.id}/capacity")).json()
    assert capacity["max_pickups"] == 3
    assert capacity["max_dropoffs"] == 2
    assert Decimal(capacity["max_capacity"]) == Decimal("40")

    missing = await client.get(f"{API}/fleet/trucks/9999/capacity")
    assert missing.status_code == 404

    types = (await client.get(f"{API}/fleet/truck-types")).json()
    assert len(types) == 1


@pytest.mark.asyncio
async def test_ledger_summary_endpoint(client):
    order = await _place_order(client)
    await client.post(
        f"{API}/webhooks/payments",
        json=_webhook(order["reference_number"], "100.00", "TXN-SUM"),
    )

    response = await client.get(f"{API}/ledger/summary", params={"period": "month"})
    assert response.status_code == 200
    summaries = response.json()
    assert len(summaries) == 1
    assert Decimal(summaries[0]["net"]) == Decimal("100.00")

    bad = await client.get(f"{API}/ledger/summary", params={"period": "year"})
    assert bad.status_code == 422


@pytest.mark.asyncio
async def test_webhook_without_timestamp_uses_receipt_time(client, session_factory):
    order = await _place_order(client, quantity=5)
    payload = _webhook(order["reference_number"], "50.00", "TXN-NOTIME")
    del payload["timestamp"]

    response = await client.post(f"{API}/webhooks/payments", json=payload)

    assert response.status_code == 200
    assert response.json()["payment_status"] == "PAID"

    record = await client.get(f"{API}/payments/TXN-NOTIME")
    assert record.status_code == 200
    assert record.json()["timestamp"] is not None

    ledger = (await client.get(f"{API}/invoices/{order['invoice_id']}/ledger")).json()
    assert ledger["entries"][0]["transaction_date"] is not None


@pytest.mark.asyncio
async def test_webhook_rejects_sub_cent_amounts(client):
    order = await _place_order(client, quantity=5)

    response = await client.post(
        f"{API}/webhooks/payments",
        json=_webhook(order["reference_number"], "0.005", "TXN-SUBCENT"),
    )

    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"
    assert (await client.get(f"{API}/payments/TXN-SUBCENT")).status_code == 404


@pytest.mark.asyncio
async def test_allocation_conflict_is_retryable(client, truck_factory, mocker):
    from backend.app.core.exceptions import ConcurrencyConflictError

    truck = await truck_factory(max_capacity=100)
    order = await _place_order(client, quantity=10)
    ld_id = order["logistics_details_id"]
    await client.post(
        f"{API}/webhooks/payments",
        json=_webhook(order["reference_number"], "100.00", "TXN-RACE"),
    )

    bump = mocker.patch(
        "backend.app.domain.allocation.scheduler._bump_truck_version",
        side_effect=ConcurrencyConflictError("Truck", truck.id),
    )
    conflicted = await client.post(f"{API}/logistics/{ld_id}/allocate")

    assert conflicted.status_code == 409
    assert conflicted.json()["error_code"] == "ERR_CONCURRENCY_CONFLICT"
    # One transparent retry before surfacing
    assert bump.call_count == 2
    details = (await client.get(f"{API}/logistics/{ld_id}")).json()
    assert details["logistics_status"] == "PENDING_PLANNING"
    assert details["allocations"] == []

    mocker.stopall()
    retried = await client.post(f"{API}/logistics/{ld_id}/allocate")
    assert retried.status_code == 200
    assert retried.json()["allocations"] == [{"truck_id": truck.id, "quantity": 10}]
