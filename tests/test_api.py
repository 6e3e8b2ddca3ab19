# tests/test_api.py
import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.anyio


async def test_health(test_client: AsyncClient):
    r = await test_client.get("/health")
    assert r.status_code == 200, r.text
    assert r.json()["ok"] is True


async def test_otp_round_trip(test_client: AsyncClient):
    r = await test_client.post("/otp/request", json={"contact": "9999999999", "purpose": "login"})
    assert r.status_code == 200, r.text
    code = r.json()["code"]
    wrong = "000000" if code != "000000" else "111111"

    r = await test_client.post("/otp/verify", json={"contact": "9999999999", "purpose": "login", "code": wrong})
    assert r.status_code == 400
    assert r.json()["attempts_remaining"] == 4
    assert r.json()["error"] == "validation_error"

    r = await test_client.post("/otp/verify", json={"contact": "9999999999", "purpose": "login", "code": code})
    assert r.status_code == 200 and r.json() == {"success": True}

    r = await test_client.post("/otp/verify", json={"contact": "9999999999", "purpose": "login", "code": code})
    assert r.status_code == 404


async def test_status_advance_and_legacy_view(test_client: AsyncClient, make_order):
    order = await make_order()
    r = await test_client.post(f"/orders/{order.id}/status?legacy=true", json={"status": "confirmed"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["canonical_status"] == "pickup_assigned"
    assert body["status"] == "confirmed"

    r = await test_client.post(f"/orders/{order.id}/status", json={"status": "picked_up"})
    assert r.json()["status"] == "pickup_completed"

    r = await test_client.post(f"/orders/{order.id}/status", json={"status": "pending"})
    assert r.status_code == 400
    assert r.json()["from_status"] == "pickup_completed"

    r = await test_client.get(f"/orders/{order.id}?legacy=true")
    assert r.json()["status"] == "in_progress"


async def test_assign_endpoint(test_client: AsyncClient, make_order, make_rider):
    idle = await make_rider(is_active=False)
    ready = await make_rider(contact="+91 9000000009")
    order = await make_order()

    r = await test_client.post(f"/orders/{order.id}/assign", json={"rider_id": idle.id})
    assert r.status_code == 400

    r = await test_client.post(f"/orders/{order.id}/assign", json={"rider_id": ready.id})
    assert r.status_code == 200, r.text
    assert r.json()["order"]["status"] == "pickup_assigned"
    assert r.json()["notification_sent"] is True

    r = await test_client.get(f"/notifications/recipient/{ready.id}/count")
    assert r.json() == {"unread": 1}


async def test_edit_and_decision_endpoints(test_client: AsyncClient, co, make_order, make_rider):
    rider = await make_rider()
    order = await make_order()
    await co.assign_order_to_rider(order.id, rider.id)

    items = [{"name": "Shirt", "quantity": 3, "unit_price": 50}]
    r = await test_client.post(f"/orders/{order.id}/edits", json={"items": items, "note": "one more"})
    assert r.status_code == 201, r.text
    vid = r.json()["id"]
    assert r.json()["pricing"]["price_change"] == -30

    r = await test_client.post(f"/orders/{order.id}/edits", json={"items": items})
    assert r.status_code == 409

    r = await test_client.get(f"/verifications/customer/{order.customer_id}")
    assert [v["id"] for v in r.json()["verifications"]] == [vid]

    r = await test_client.post(f"/verifications/{vid}/decision", json={"approved": True})
    assert r.status_code == 200 and r.json()["status"] == "approved"

    r = await test_client.get(f"/orders/{order.id}")
    assert r.json()["final_amount"] == 150


async def test_nearest_riders_endpoints(test_client: AsyncClient, make_order, make_rider):
    order = await make_order()
    near = await make_rider()
    far = await make_rider(contact="2", location={"lat": 28.9, "lng": 77.5})

    r = await test_client.get(f"/orders/{order.id}/nearest-riders")
    assert [m["rider"]["id"] for m in r.json()] == [near.id, far.id]
    assert r.json()[0]["freshness"] == "fresh"

    r = await test_client.get(f"/orders/{order.id}/nearest-riders?radius_km=5")
    assert [m["rider"]["id"] for m in r.json()] == [near.id]

    r = await test_client.post("/riders/nearest", json={
        "pickup": {"lat": 28.41, "lng": 77.01},
        "riders": [{"id": "x", "contact": "x"}, {"id": "y", "contact": "y", "location": {"lat": 28.4, "lng": 77.0}}],
    })
    assert [m["rider"]["id"] for m in r.json()] == ["y", "x"]


async def test_location_ping_and_notifications(test_client: AsyncClient, make_rider, clock):
    rider = await make_rider(location=None, last_location_update=None)
    r = await test_client.post(f"/riders/{rider.id}/location", json={"lat": 28.5, "lng": 77.1})
    assert r.status_code == 200
    assert r.json()["location"] == {"lat": 28.5, "lng": 77.1}

    r = await test_client.post("/riders/ghost/location", json={"lat": 1, "lng": 1})
    assert r.status_code == 404

    r = await test_client.post("/notifications/nope/read")
    assert r.status_code == 404
    r = await test_client.post(f"/notifications/recipient/{rider.id}/read-all")
    assert r.json() == {"modified": 0}


async def test_otp_verify_rejects_non_ascii_code(test_client: AsyncClient, co):
    await co.request_otp("9999999999", "login")
    r = await test_client.post("/otp/verify", json={"contact": "9999999999", "purpose": "login",
                                                    "code": "١٢٣٤٥٦"})
    assert r.status_code == 400
    assert r.json()["attempts_remaining"] == 4
