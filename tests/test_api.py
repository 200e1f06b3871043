from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi import WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import Reservation
from routers.live import live_updates
from services.broadcaster import broadcaster
from services.ledger import utcnow


async def _reserve(client, catalog, quantity=1, *, client_id=1, containing=None):
    return await client.post(
        "/cart/reserve",
        json={
            "clientId": client_id,
            "recipeId": catalog.lager.id,
            "conteningId": (containing or catalog.bottle).id,
            "quantity": quantity,
        },
    )


@pytest.mark.asyncio
async def test_root(client):
    r = await client.get("/")
    assert r.status_code == 200
    assert r.json() == {"info": "Brewery shop API"}


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_list_and_get_beers(client, catalog, brew):
    await brew(catalog.lager, catalog.bottle, 4)
    await brew(catalog.lager, catalog.can, 2)

    r = await client.get("/beers")
    assert r.status_code == 200
    beers = {b["name"]: b for b in r.json()}
    lager = beers["Golden Lager"]
    assert lager["basePrice"] == 5.0
    assert lager["totalQuantity"] == 6
    assert lager["inStock"] is True
    assert lager["imageUrl"].endswith(f"/{catalog.lager.id}.png")
    assert [(c["volume"], c["stock"], c["price"]) for c in lager["contenants"]] == [
        (330, 2, 1.65),
        (500, 4, 2.5),
    ]
    assert beers["Midnight Stout"]["inStock"] is False

    r = await client.get(f"/beers/{catalog.lager.id}")
    assert r.status_code == 200
    assert r.json()["name"] == "Golden Lager"


@pytest.mark.asyncio
async def test_unknown_beer_is_404(client, catalog):
    r = await client.get("/beers/9999")
    assert r.status_code == 404
    assert r.json() == {"error": "Beer not found"}


@pytest.mark.asyncio
async def test_stats(client, catalog, brew):
    await brew(catalog.lager, catalog.bottle, 10)

    r = await client.get("/stats")
    assert r.status_code == 200
    assert r.json() == {"products": 2, "litersProduced": 5.0, "orders": 0}


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_reserve_and_read_cart(client, catalog, brew):
    await brew(catalog.lager, catalog.bottle, 5)

    r = await _reserve(client, catalog, 2)
    assert r.status_code == 200
    body = r.json()
    reservation = body["reservation"]
    assert reservation["clientId"] == 1
    assert reservation["recipeName"] == "Golden Lager"
    assert reservation["conteningId"] == catalog.bottle.id
    assert reservation["volume"] == 500
    assert reservation["quantity"] == 2
    assert reservation["price"] == 2.5
    assert body["expiresAt"] == reservation["expires_at"]
    assert body["expiresAt"].endswith("Z")

    r = await client.get("/cart/1")
    assert r.status_code == 200
    assert [h["id"] for h in r.json()] == [reservation["id"]]
    assert (await client.get("/cart/2")).json() == []


@pytest.mark.asyncio
async def test_reserve_errors(client, catalog, brew):
    await brew(catalog.lager, catalog.bottle, 2)

    r = await _reserve(client, catalog, 3)
    assert r.status_code == 400
    body = r.json()
    assert body["available"] == 2
    assert body["recipe"] == "Golden Lager"
    assert "error" in body

    r = await _reserve(client, catalog, 0)
    assert r.status_code == 400

    r = await client.post(
        "/cart/reserve",
        json={"clientId": 1, "recipeId": 9999, "conteningId": catalog.bottle.id, "quantity": 1},
    )
    assert r.status_code == 404
    assert r.json() == {"error": "Recipe not found"}

    r = await client.post("/cart/reserve", json={"recipeId": catalog.lager.id})
    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "Invalid request"
    assert {d["field"] for d in body["details"]} == {"clientId", "conteningId"}


@pytest.mark.asyncio
async def test_update_and_delete_reservation(client, catalog, brew):
    await brew(catalog.lager, catalog.bottle, 5)
    hold_id = (await _reserve(client, catalog, 2)).json()["reservation"]["id"]

    r = await client.patch(f"/cart/reservation/{hold_id}", json={"quantity": 5})
    assert r.status_code == 200
    assert r.json()["reservation"]["quantity"] == 5

    r = await client.patch(f"/cart/reservation/{hold_id}", json={"quantity": 6})
    assert r.status_code == 400
    assert r.json()["available"] == 0

    r = await client.patch("/cart/reservation/9999", json={"quantity": 1})
    assert r.status_code == 404

    r = await client.delete(f"/cart/reservation/{hold_id}")
    assert r.status_code == 200
    assert r.json() == {"ok": True}
    assert (await client.delete(f"/cart/reservation/{hold_id}")).status_code == 404


@pytest.mark.asyncio
async def test_expired_reservation_update_is_404(client, db: AsyncSession, catalog, brew):
    await brew(catalog.lager, catalog.bottle, 5)
    now = utcnow()
    hold = Reservation(
        client_id=1,
        recipe_id=catalog.lager.id,
        containing_id=catalog.bottle.id,
        quantity=1,
        price=Decimal("2.50"),
        expires_at=now - timedelta(seconds=1),
        created_at=now - timedelta(minutes=15),
    )
    db.add(hold)
    await db.commit()

    r = await client.patch(f"/cart/reservation/{hold.id}", json={"quantity": 2})
    assert r.status_code == 404
    assert "error" in r.json()


@pytest.mark.asyncio
async def test_extend_and_clear_cart(client, catalog, brew):
    await brew(catalog.lager, catalog.bottle, 5)
    await brew(catalog.lager, catalog.can, 5)
    await _reserve(client, catalog, 1)
    await _reserve(client, catalog, 1, containing=catalog.can)

    r = await client.post("/cart/extend/1")
    assert r.status_code == 200
    assert r.json()["count"] == 2
    assert r.json()["expiresAt"]

    r = await client.post("/cart/extend/42")
    assert r.json()["count"] == 0

    r = await client.delete("/cart/1")
    assert r.status_code == 200
    assert r.json() == {"count": 2}
    assert (await client.get("/cart/1")).json() == []


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_checkout_and_order_lifecycle(client, catalog, brew):
    await brew(catalog.lager, catalog.bottle, 10)
    await _reserve(client, catalog, 5)

    r = await client.post("/orders", json={"clientId": 1, "customAmount": 20.0})
    assert r.status_code == 200
    body = r.json()
    assert body["total"] == 20.0
    order = body["order"]
    assert order["status"] == "PENDING_PAYMENT"
    assert order["amount"] == 20.0
    assert [(i["recipeName"], i["quantity"], i["price"]) for i in order["items"]] == [("Golden Lager", 5, 2.5)]

    assert (await client.get("/cart/1")).json() == []
    assert (await client.get(f"/orders/{order['id']}")).json()["id"] == order["id"]
    assert [o["id"] for o in (await client.get("/orders/client/1")).json()] == [order["id"]]

    r = await client.patch(f"/orders/{order['id']}/status", json={"status": "paid"})
    assert r.status_code == 200
    assert r.json()["status"] == "PAID"

    r = await client.get("/admin/orders", params={"status": "PAID"})
    assert [o["id"] for o in r.json()] == [order["id"]]
    r = await client.get("/admin/orders", params={"status": "DELIVERED"})
    assert r.json() == []

    r = await client.get("/stats")
    assert r.json()["orders"] == 1


@pytest.mark.asyncio
async def test_checkout_low_custom_amount_charges_calculated_total(client, catalog, brew):
    await brew(catalog.lager, catalog.bottle, 10)
    await _reserve(client, catalog, 5)

    r = await client.post("/orders", json={"clientId": 1, "customAmount": 5.0})
    assert r.status_code == 200
    assert r.json()["total"] == 12.5


@pytest.mark.asyncio
async def test_checkout_empty_cart(client, catalog):
    r = await client.post("/orders", json={"clientId": 1})
    assert r.status_code == 400
    assert r.json() == {"error": "Cart is empty"}


@pytest.mark.asyncio
async def test_order_errors(client, catalog, brew):
    assert (await client.get("/orders/9999")).status_code == 404
    r = await client.patch("/orders/9999/status", json={"status": "PAID"})
    assert r.status_code == 404

    await brew(catalog.lager, catalog.bottle, 10)
    await _reserve(client, catalog, 1)
    order_id = (await client.post("/orders", json={"clientId": 1})).json()["order"]["id"]

    r = await client.patch(f"/orders/{order_id}/status", json={"status": "LOST"})
    assert r.status_code == 400
    assert "PAID" in r.json()["allowed"]


# ---------------------------------------------------------------------------
# Live channel
# ---------------------------------------------------------------------------


class _FakeSocket:
    def __init__(self):
        self.accepted = False
        self.seen_connections = None

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        pass

    async def receive_text(self):
        self.seen_connections = broadcaster.connection_count
        raise WebSocketDisconnect()


@pytest.mark.asyncio
async def test_live_route_registers_until_disconnect():
    before = broadcaster.connection_count
    ws = _FakeSocket()

    await live_updates(ws)

    assert ws.accepted
    assert ws.seen_connections == before + 1
    assert broadcaster.connection_count == before


@pytest.mark.asyncio
async def test_timestamps_carry_utc_offset(client, catalog, brew):
    await brew(catalog.lager, catalog.bottle, 5)

    reserved = (await _reserve(client, catalog, 1)).json()
    expires_at = datetime.fromisoformat(reserved["expiresAt"].replace("Z", "+00:00"))
    assert expires_at.utcoffset() == timedelta(0)
    assert reserved["reservation"]["expires_at"].endswith("Z")
    # TTL counted from now, in UTC
    remaining = expires_at - datetime.now(timezone.utc)
    assert timedelta(minutes=14) < remaining <= timedelta(minutes=15)

    extended = (await client.post("/cart/extend/1")).json()
    assert extended["expiresAt"].endswith("Z")

    order = (await client.post("/orders", json={"clientId": 1})).json()["order"]
    assert order["createdAt"].endswith("Z")

    r = await client.patch(f"/orders/{order['id']}/status", json={"status": "PAID"})
    assert r.json()["updatedAt"].endswith("Z")
