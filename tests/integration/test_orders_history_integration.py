from datetime import datetime, timedelta, timezone

import pytest

from boutique.models import Order, OrderItem
from boutique.utils.cursor import Cursor, encode_cursor

BASE = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

@pytest.fixture()
def make_order(db, make_product):
    product = make_product(price=1000, stock=100)

    def _make(id: str, minutes: int, user_id: str = "test-user") -> Order:
        order = Order(
            id=id,
            user_id=user_id,
            subtotal=1000,
            total=1000,
            payment_reference=f"checkout-{id}",
            shipping_address={"city": "Paris"},
            created_at=BASE + timedelta(minutes=minutes),
        )
        db.add(order)
        db.flush()
        db.add(OrderItem(order_id=order.id, product_id=product.id, quantity=1, product_name=product.name, price_per_item=1000, total_price=1000))
        db.commit()
        return order
    return _make

def test_pages_walk_history_newest_first(client, make_order):
    for i, oid in enumerate(["o1", "o2", "o3", "o4", "o5"]):
        make_order(oid, minutes=i)

    first = client.get("/api/v1/orders", params={"limit": 2}).json()
    assert [o["id"] for o in first["orders"]] == ["o5", "o4"]
    assert first["hasMore"] is True
    assert first["nextCursor"]

    second = client.get("/api/v1/orders", params={"limit": 2, "cursor": first["nextCursor"]}).json()
    assert [o["id"] for o in second["orders"]] == ["o3", "o2"]

    last = client.get("/api/v1/orders", params={"limit": 2, "cursor": second["nextCursor"]}).json()
    assert [o["id"] for o in last["orders"]] == ["o1"]
    assert last["hasMore"] is False
    assert last["nextCursor"] is None

def test_same_timestamp_breaks_ties_by_id(client, make_order):
    make_order("a", minutes=0)
    make_order("b", minutes=0)
    make_order("c", minutes=0)

    first = client.get("/api/v1/orders", params={"limit": 2}).json()
    rest = client.get("/api/v1/orders", params={"limit": 2, "cursor": first["nextCursor"]}).json()
    assert [o["id"] for o in first["orders"] + rest["orders"]] == ["c", "b", "a"]

def test_only_own_orders_are_listed(client, make_order):
    make_order("mine", minutes=0)
    make_order("theirs", minutes=1, user_id="someone-else")

    body = client.get("/api/v1/orders").json()
    assert [o["id"] for o in body["orders"]] == ["mine"]
    order = body["orders"][0]
    assert order["items"][0]["pricePerItem"] == 1000
    assert order["shippingAddress"] == {"city": "Paris"}

def test_forged_or_garbled_cursor_restarts_at_first_page(client, make_order):
    make_order("o1", minutes=0)
    make_order("o2", minutes=1)

    forged = encode_cursor(Cursor(id="o2", created_at=BASE + timedelta(minutes=1)), key="not-the-server-key")
    for token in (forged, "%%%garbage", "e30"):
        body = client.get("/api/v1/orders", params={"cursor": token}).json()
        assert [o["id"] for o in body["orders"]] == ["o2", "o1"]

def test_limit_bounds_are_validated(client):
    assert client.get("/api/v1/orders", params={"limit": 0}).status_code == 422
    assert client.get("/api/v1/orders", params={"limit": 101}).status_code == 422
    body = client.get("/api/v1/orders").json()
    assert body == {"orders": [], "nextCursor": None, "hasMore": False}
