from boutique import config
from boutique.models import Order, Payment
from boutique.payments.metadata import decode_metadata

def test_checkout_returns_url_and_reference_without_writing_payment(client, db, fake_stripe, make_product, make_cart, checkout_payload):
    p = make_product(price=2500, stock=5)
    make_cart("test-user", [(p, 2)])

    res = client.post("/api/v1/payments/checkout", json=checkout_payload)
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["url"].startswith("https://checkout.stripe.test/pay/")
    assert body["reference"].startswith("checkout-")

    call = fake_stripe.initialize_calls[0]
    assert call["amount_minor"] == 5000
    assert call["reference"] == body["reference"]
    assert call["email"] == "test@example.com"
    assert call["callback_url"].endswith(config.CHECKOUT_CALLBACK_PATH)

    meta = decode_metadata(call["metadata"])
    assert meta.user_id == "test-user"
    assert meta.items[0].product_id == p.id
    assert meta.items[0].unit_price == 2500
    assert meta.address.city == "Paris"

    # aucun paiement ni commande avant confirmation
    assert db.query(Payment).count() == 0
    assert db.query(Order).count() == 0

def test_checkout_applies_discount_against_live_subtotal(client, fake_stripe, make_product, make_cart, make_discount, checkout_payload):
    p = make_product(price=2500, stock=5)
    make_cart("test-user", [(p, 2)])
    d = make_discount(code="SAVE10", type="percentage", value=10)

    res = client.post("/api/v1/payments/checkout", json={**checkout_payload, "discountCode": "SAVE10"})
    assert res.status_code == 200, res.text
    call = fake_stripe.initialize_calls[0]
    assert call["amount_minor"] == 4500
    meta = decode_metadata(call["metadata"])
    assert (meta.subtotal, meta.discount_amount, meta.total) == (5000, 500, 4500)
    assert meta.discount_id == d.id
    assert meta.discount_code == "SAVE10"

def test_checkout_adds_flat_shipping_and_tax(client, fake_stripe, make_product, make_cart, checkout_payload, monkeypatch):
    monkeypatch.setattr(config, "SHIPPING_FEE", 300)
    monkeypatch.setattr(config, "TAX_AMOUNT", 200)
    p = make_product(price=1000, stock=5)
    make_cart("test-user", [(p, 1)])

    assert client.post("/api/v1/payments/checkout", json=checkout_payload).status_code == 200
    assert fake_stripe.initialize_calls[0]["amount_minor"] == 1500

def test_checkout_rejects_price_drift(client, fake_stripe, make_product, make_cart, checkout_payload):
    p = make_product(price=2500, stock=5, name="Lampe")
    make_cart("test-user", [(p, 1, 2000)])

    res = client.post("/api/v1/payments/checkout", json=checkout_payload)
    assert res.status_code == 400
    assert res.json()["code"] == "business_rule"
    assert "prix a changé" in res.json()["detail"]
    assert fake_stripe.initialize_calls == []

def test_checkout_rejects_insufficient_stock(client, fake_stripe, make_product, make_cart, checkout_payload):
    p = make_product(price=1000, stock=1, name="Chaise")
    make_cart("test-user", [(p, 2)])

    res = client.post("/api/v1/payments/checkout", json=checkout_payload)
    assert res.status_code == 400
    assert "Stock insuffisant" in res.json()["detail"]
    assert fake_stripe.initialize_calls == []

def test_checkout_rejects_inactive_product(client, fake_stripe, make_product, make_cart, checkout_payload):
    p = make_product(price=1000, stock=3, status="archived")
    make_cart("test-user", [(p, 1)])

    res = client.post("/api/v1/payments/checkout", json=checkout_payload)
    assert res.status_code == 400
    assert fake_stripe.initialize_calls == []

def test_checkout_rejects_empty_or_missing_cart(client, fake_stripe, make_cart, checkout_payload):
    assert client.post("/api/v1/payments/checkout", json=checkout_payload).status_code == 400
    make_cart("test-user", [])
    res = client.post("/api/v1/payments/checkout", json=checkout_payload)
    assert res.status_code == 400
    assert res.json()["detail"] == "Panier vide"

def test_checkout_rejects_invalid_discount(client, fake_stripe, make_product, make_cart, make_discount, checkout_payload):
    p = make_product(price=1000, stock=3)
    make_cart("test-user", [(p, 1)])
    make_discount(code="BIG", minimum_order_amount=5000)

    res = client.post("/api/v1/payments/checkout", json={**checkout_payload, "discountCode": "BIG"})
    assert res.status_code == 400
    assert "minimum" in res.json()["detail"]
    res = client.post("/api/v1/payments/checkout", json={**checkout_payload, "discountCode": "UNKNOWN"})
    assert res.status_code == 400
    assert fake_stripe.initialize_calls == []

def test_checkout_validates_payload(client, fake_stripe):
    res = client.post("/api/v1/payments/checkout", json={"firstName": "Ada"})
    assert res.status_code == 422
    assert res.json()["code"] == "invalid_input"
    assert res.json()["errors"]
