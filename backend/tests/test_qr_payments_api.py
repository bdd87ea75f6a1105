import io

import pytest
from PIL import Image

from qrpay.config import settings
from qrpay.mocks.payment_gateway import mock_gateway
from qrpay.services.emv_payload import decode_payload
from qrpay.services.webhook_signature import sign_payload

pytestmark = [pytest.mark.api, pytest.mark.payment]

BASE = "/api/qr-payments"


async def create(client, **body):
    body.setdefault("order_id", "ORD1")
    body.setdefault("amount", 150.00)
    response = await client.post(f"{BASE}/create", json=body)
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def test_health(client):
    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_health_reports_mock_gateway_in_demo_mode(client, clock, monkeypatch):
    monkeypatch.setattr(settings, "demo_mode", True)
    transaction_id = (await create(client))["transaction_id"]
    mock_gateway.mark_paid(transaction_id)

    gateway = (await client.get("/api/health")).json()["gateway"]
    assert gateway["status"] == "operational"
    assert gateway["gateway"] == "mock_qrph"
    assert gateway["pending_notifications"] == 1

    monkeypatch.setattr(settings, "demo_mode", False)
    assert "gateway" not in (await client.get("/api/health")).json()


async def test_create_with_oversized_merchant_id_leaves_no_row(client, clock):
    response = await client.post(
        f"{BASE}/create", json={"order_id": "ORD1", "amount": 10, "merchant_id": "M" * 70}
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "qr_payment:validation_error"
    assert (await client.get(f"{BASE}/history")).json()["data"] == []


async def test_history_date_bounds_honor_utc_offset(client, clock):
    transaction_id = (await create(client))["transaction_id"]

    # 12:00 UTC is 20:00 in +08:00
    response = await client.get(f"{BASE}/history", params={"date_from": "2024-06-01T19:59:00+08:00"})
    assert [p["transaction_id"] for p in response.json()["data"]] == [transaction_id]

    response = await client.get(f"{BASE}/history", params={"date_from": "2024-06-01T20:01:00+08:00"})
    assert response.json()["data"] == []


async def test_create_returns_envelope(client, clock):
    data = await create(client, customer_info={"name": "Juan"})

    assert set(data) == {"transaction_id", "qr_data", "expires_at"}
    assert data["transaction_id"].startswith("QR")
    assert decode_payload(data["qr_data"])["54"] == "150.00"
    assert data["expires_at"].startswith("2024-06-01T12:05:00")


async def test_create_rejects_non_positive_amount(client, clock):
    response = await client.post(f"{BASE}/create", json={"order_id": "ORD1", "amount": 0})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "qr_payment:validation_error"


async def test_create_requires_order_and_amount(client, clock):
    response = await client.post(f"{BASE}/create", json={"order_id": "ORD1"})
    assert response.status_code == 422


async def test_status_lifecycle(client, clock):
    data = await create(client)
    transaction_id = data["transaction_id"]

    response = await client.get(f"{BASE}/status/{transaction_id}")
    assert response.status_code == 200
    status = response.json()["data"]
    assert status["status"] == "pending"
    assert status["currency"] == "PHP"
    assert status["completed_at"] is None

    clock.advance(minutes=5, seconds=1)
    response = await client.get(f"{BASE}/status/{transaction_id}")
    assert response.json()["data"]["status"] == "expired"


async def test_status_unknown_is_404(client, clock):
    response = await client.get(f"{BASE}/status/QR0000000000000NOTHERE")
    assert response.status_code == 404
    assert response.json()["error_code"] == "qr_payment:not_found"


async def test_confirm_then_conflict(client, clock):
    transaction_id = (await create(client))["transaction_id"]
    clock.advance(seconds=10)

    body = {
        "gateway_transaction_id": "GW-1",
        "gateway_reference": "REF-1",
        "payment_gateway": "paymongo",
        "gateway_response": {"status": "paid"},
    }
    response = await client.post(f"{BASE}/confirm/{transaction_id}", json=body)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "completed"
    assert data["completed_at"] is not None

    response = await client.post(f"{BASE}/confirm/{transaction_id}", json=body)
    assert response.status_code == 404
    assert response.json()["error_code"] == "qr_payment:state_conflict"


async def test_confirm_after_expiry_is_400(client, clock):
    transaction_id = (await create(client))["transaction_id"]
    clock.advance(minutes=6)

    response = await client.post(f"{BASE}/confirm/{transaction_id}", json={"gateway_transaction_id": "GW-1"})

    assert response.status_code == 400
    assert response.json()["error_code"] == "qr_payment:expired"


async def test_confirm_requires_signature_when_secret_set(client, clock, webhook_secret):
    transaction_id = (await create(client))["transaction_id"]
    body = {"gateway_transaction_id": "GW-1", "gateway_reference": "REF-1"}

    response = await client.post(f"{BASE}/confirm/{transaction_id}", json=body)
    assert response.status_code == 401

    response = await client.post(
        f"{BASE}/confirm/{transaction_id}",
        json=body,
        headers={"X-Gateway-Signature": "0" * 64}
    )
    assert response.status_code == 401
    assert response.json()["error_code"] == "qr_payment:signature_invalid"

    response = await client.post(
        f"{BASE}/confirm/{transaction_id}",
        json=body,
        headers={"X-Gateway-Signature": sign_payload(body, webhook_secret)}
    )
    assert response.status_code == 200


async def test_cancel_without_body_uses_default_reason(client, clock):
    transaction_id = (await create(client))["transaction_id"]

    response = await client.post(f"{BASE}/cancel/{transaction_id}")
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "cancelled"

    history = (await client.get(f"{BASE}/history")).json()["data"]
    assert history[0]["cancelled_reason"] == "User cancelled"


async def test_cancel_twice_is_404(client, clock):
    transaction_id = (await create(client))["transaction_id"]

    response = await client.post(f"{BASE}/cancel/{transaction_id}", json={"reason": "changed mind"})
    assert response.status_code == 200

    response = await client.post(f"{BASE}/cancel/{transaction_id}", json={"reason": "changed mind"})
    assert response.status_code == 404


async def test_history_filters(client, clock):
    first = (await create(client, order_id="A"))["transaction_id"]
    clock.advance(seconds=1)
    second = (await create(client, order_id="B"))["transaction_id"]
    await client.post(f"{BASE}/cancel/{first}")

    response = await client.get(f"{BASE}/history")
    assert [p["transaction_id"] for p in response.json()["data"]] == [second, first]

    response = await client.get(f"{BASE}/history", params={"status": "cancelled"})
    assert [p["transaction_id"] for p in response.json()["data"]] == [first]

    response = await client.get(f"{BASE}/history", params={"limit": 1, "offset": 1})
    assert [p["transaction_id"] for p in response.json()["data"]] == [first]


async def test_history_rejects_unknown_status(client, clock):
    response = await client.get(f"{BASE}/history", params={"status": "refunded"})
    assert response.status_code == 422


async def test_image_is_png(client, clock):
    transaction_id = (await create(client))["transaction_id"]

    response = await client.get(f"{BASE}/image/{transaction_id}")

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.content.startswith(b"\x89PNG")
    assert Image.open(io.BytesIO(response.content)).size == (256, 256)


async def test_simulate_confirms_through_mock_gateway(client, clock):
    transaction_id = (await create(client))["transaction_id"]

    response = await client.post(f"{BASE}/simulate/{transaction_id}")
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "completed"

    history = (await client.get(f"{BASE}/history")).json()["data"]
    assert history[0]["payment_gateway"] == "mock_qrph"
    assert history[0]["gateway_transaction_id"].startswith("mock_")
