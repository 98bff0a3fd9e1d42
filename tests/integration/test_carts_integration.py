import json
import urllib.parse

from boutique import config
from boutique.models import Cart, CartItem

def _items(db, user_id="test-user"):
    db.expire_all()
    cart = db.query(Cart).filter_by(user_id=user_id).one_or_none()
    if cart is None:
        return {}
    return {i.product_id: i.quantity for i in db.query(CartItem).filter_by(cart_id=cart.id)}

def test_merge_caps_new_line_at_stock(client, db, make_product):
    a = make_product(price=1200, stock=3)

    res = client.post("/api/v1/carts/merge", json=[{"productId": a.id, "quantity": 5}])
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["success"] is True
    assert body["mergedItemsCount"] == 1
    assert body["updatedItemsCount"] == 0
    assert body["cartId"]
    assert _items(db) == {a.id: 3}

def test_merge_adds_to_existing_lines_and_aggregates_duplicates(client, db, make_product, make_cart):
    a = make_product(stock=10)
    b = make_product(stock=10)
    make_cart("test-user", [(a, 2)])

    res = client.post("/api/v1/carts/merge", json=[
        {"productId": a.id, "quantity": 1},
        {"productId": b.id, "quantity": 1},
        {"productId": b.id, "quantity": 2},
    ])
    assert res.status_code == 200
    assert (res.json()["mergedItemsCount"], res.json()["updatedItemsCount"]) == (1, 1)
    assert _items(db) == {a.id: 3, b.id: 3}

def test_merge_skips_unknown_and_inactive_products(client, db, make_product):
    a = make_product(stock=4)
    archived = make_product(stock=4, status="archived")

    res = client.post("/api/v1/carts/merge", json=[
        {"productId": a.id, "quantity": 1},
        {"productId": archived.id, "quantity": 1},
        {"productId": "ghost", "quantity": 1},
    ])
    assert res.json()["mergedItemsCount"] == 1
    assert _items(db) == {a.id: 1}

def test_merge_empty_guest_cart_creates_nothing(client, db):
    res = client.post("/api/v1/carts/merge", json=[])
    assert res.status_code == 200
    assert res.json()["cartId"] is None
    assert db.query(Cart).count() == 0

def test_merge_reads_guest_cookie_and_clears_it(client, db, make_product):
    a = make_product(stock=5)
    client.cookies.set(config.GUEST_CART_COOKIE, urllib.parse.quote(json.dumps([{"productId": a.id, "quantity": 2}])))

    res = client.post("/api/v1/carts/merge")
    assert res.status_code == 200
    assert res.json()["mergedItemsCount"] == 1
    set_cookie = res.headers.get("set-cookie", "")
    assert config.GUEST_CART_COOKIE in set_cookie
    assert "Max-Age=0" in set_cookie
    assert _items(db) == {a.id: 2}

def test_merge_rejects_malformed_lines(client):
    res = client.post("/api/v1/carts/merge", json=[{"productId": "x", "quantity": 0}])
    assert res.status_code == 422
    assert res.json()["errors"][0]["path"].endswith("quantity")

def test_add_caps_at_stock_and_refreshes_price(client, db, make_product, make_cart):
    a = make_product(price=1000, stock=4)
    make_cart("test-user", [(a, 1, 800)])

    res = client.post("/api/v1/carts/items", json={"productId": a.id, "quantity": 10})
    assert res.status_code == 200, res.text
    assert res.json()["quantity"] == 4

    db.expire_all()
    assert db.query(CartItem).one().price_at_add == 1000

def test_add_unknown_or_out_of_stock_product(client, make_product):
    assert client.post("/api/v1/carts/items", json={"productId": "ghost"}).status_code == 404
    empty = make_product(stock=0)
    res = client.post("/api/v1/carts/items", json={"productId": empty.id})
    assert res.status_code == 400
    assert res.json()["code"] == "business_rule"

def test_remove_decrements_then_deletes(client, db, make_product, make_cart):
    a = make_product(stock=10)
    make_cart("test-user", [(a, 3)])

    res = client.delete(f"/api/v1/carts/items/{a.id}", params={"quantity": 2})
    assert res.json()["quantity"] == 1
    res = client.delete(f"/api/v1/carts/items/{a.id}")
    assert res.json()["removed"] is True
    assert _items(db) == {}

    assert client.delete(f"/api/v1/carts/items/{a.id}").status_code == 404

def test_subtotal_uses_captured_prices(client, make_product, make_cart):
    a = make_product(price=2500, stock=10)
    b = make_product(price=700, stock=10)
    cart = make_cart("test-user", [(a, 2, 2000), (b, 1)])

    res = client.get("/api/v1/carts/subtotal")
    assert res.status_code == 200
    assert res.json() == {"cartId": cart.id, "subtotal": 4700, "itemCount": 2}

def test_subtotal_without_cart_is_404(client):
    assert client.get("/api/v1/carts/subtotal").status_code == 404

def test_cart_view_hides_unavailable_products(client, db, make_product, make_cart):
    a = make_product(stock=2)
    b = make_product(stock=5)
    make_cart("test-user", [(a, 5), (b, 1)])
    b.status = "archived"
    db.commit()

    items = client.get("/api/v1/carts").json()["items"]
    assert [(i["productId"], i["quantity"]) for i in items] == [(a.id, 2)]

def test_guest_cart_view_reads_cookie(client, make_product):
    a = make_product(stock=2)
    client.cookies.set(config.GUEST_CART_COOKIE, urllib.parse.quote(json.dumps([{"productId": a.id, "quantity": 3}])))

    items = client.get("/api/v1/carts/guest").json()["items"]
    assert items[0]["quantity"] == 2

    client.cookies.set(config.GUEST_CART_COOKIE, "pas-du-json")
    assert client.get("/api/v1/carts/guest").json()["items"] == []
