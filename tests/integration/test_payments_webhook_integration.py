import hashlib
import hmac
import json
import time

from boutique.models import Order, Payment, Product

def _signed(secret: str, event: dict):
    payload = json.dumps(event).encode()
    ts = int(time.time())
    sig = hmac.new(secret.encode(), f"{ts}.".encode() + payload, hashlib.sha256).hexdigest()
    return payload, {"Stripe-Signature": f"t={ts},v1={sig}", "Content-Type": "application/json"}

def _completed(session_id: str, event_type: str = "checkout.session.completed") -> dict:
    return {"id": "evt_1", "type": event_type, "data": {"object": {"id": session_id, "object": "checkout.session"}}}

def _paid_checkout(client, fake_stripe, make_product, make_cart, checkout_payload):
    product = make_product(price=1500, stock=4)
    make_cart("test-user", [(product, 3)])
    res = client.post("/api/v1/payments/checkout", json=checkout_payload)
    reference = res.json()["reference"]
    return product, reference, fake_stripe.pay(reference)

def test_webhook_get_is_liveness_probe(client):
    res = client.get("/api/v1/payments/webhook")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}

def test_webhook_completed_creates_order_once(client, db, fake_stripe, webhook_secret, make_product, make_cart, checkout_payload):
    product, reference, session_id = _paid_checkout(client, fake_stripe, make_product, make_cart, checkout_payload)
    payload, headers = _signed(webhook_secret, _completed(session_id))

    first = client.post("/api/v1/payments/webhook", content=payload, headers=headers)
    assert first.status_code == 200, first.text
    assert first.json()["status"] == "ok"
    assert first.json()["created"] is True

    # Stripe rejoue l'événement
    again = client.post("/api/v1/payments/webhook", content=payload, headers=headers)
    assert again.status_code == 200
    assert again.json()["created"] is False

    # puis le navigateur revient
    confirm = client.get("/api/v1/payments/confirm", params={"session_id": session_id})
    assert confirm.json()["orderId"] == first.json()["orderId"]

    db.expire_all()
    assert db.query(Order).count() == 1
    assert db.get(Product, product.id).stock == 1

def test_webhook_rejects_bad_signature_before_processing(client, db, fake_stripe, webhook_secret, make_product, make_cart, checkout_payload):
    _, _, session_id = _paid_checkout(client, fake_stripe, make_product, make_cart, checkout_payload)
    payload, _ = _signed("whsec_wrong", _completed(session_id))

    res = client.post(
        "/api/v1/payments/webhook",
        content=payload,
        headers={"Stripe-Signature": "t=1,v1=deadbeef", "Content-Type": "application/json"},
    )
    assert res.status_code == 401
    assert res.json()["code"] == "invalid_signature"

    res = client.post("/api/v1/payments/webhook", content=payload, headers={"Content-Type": "application/json"})
    assert res.status_code == 401

    assert fake_stripe.verify_calls == []
    db.expire_all()
    assert db.query(Order).count() == 0

def test_webhook_acknowledges_unknown_events(client, db, fake_stripe, webhook_secret):
    payload, headers = _signed(webhook_secret, {"id": "evt_2", "type": "customer.created", "data": {"object": {"id": "cus_1"}}})
    res = client.post("/api/v1/payments/webhook", content=payload, headers=headers)
    assert res.status_code == 200
    assert res.json() == {"status": "ignored"}
    assert fake_stripe.verify_calls == []

def test_webhook_async_failure_records_failed_payment(client, db, fake_stripe, webhook_secret, make_product, make_cart, checkout_payload):
    product = make_product(price=1500, stock=4)
    make_cart("test-user", [(product, 1)])
    reference = client.post("/api/v1/payments/checkout", json=checkout_payload).json()["reference"]
    session_id = fake_stripe.by_reference[reference]

    payload, headers = _signed(webhook_secret, _completed(session_id, "checkout.session.async_payment_failed"))
    res = client.post("/api/v1/payments/webhook", content=payload, headers=headers)
    assert res.status_code == 200
    assert res.json() == {"status": "failed"}

    db.expire_all()
    assert db.query(Payment).filter_by(reference=reference).one().status == "failed"
    assert db.query(Order).count() == 0

def test_webhook_internal_failure_is_500(client, fake_stripe, webhook_secret, monkeypatch):
    from boutique.payments import reconciliation

    def _boom(*args, **kwargs):
        raise RuntimeError("db down")

    monkeypatch.setattr(reconciliation, "reconcile_payment", _boom)
    payload, headers = _signed(webhook_secret, _completed("cs_any"))
    res = client.post("/api/v1/payments/webhook", content=payload, headers=headers)
    assert res.status_code == 500

def test_webhook_completed_but_unpaid_records_pending(client, db, fake_stripe, webhook_secret, make_product, make_cart, checkout_payload):
    product = make_product(price=1500, stock=4)
    make_cart("test-user", [(product, 1)])
    reference = client.post("/api/v1/payments/checkout", json=checkout_payload).json()["reference"]
    session_id = fake_stripe.by_reference[reference]

    # moyen de paiement différé: session terminée, paiement pas encore reçu
    payload, headers = _signed(webhook_secret, _completed(session_id))
    res = client.post("/api/v1/payments/webhook", content=payload, headers=headers)
    assert res.status_code == 200
    assert res.json() == {"status": "pending"}

    db.expire_all()
    assert db.query(Payment).filter_by(reference=reference).one().status == "pending"

    fake_stripe.pay(reference)
    payload, headers = _signed(webhook_secret, _completed(session_id, "checkout.session.async_payment_succeeded"))
    res = client.post("/api/v1/payments/webhook", content=payload, headers=headers)
    assert res.json()["created"] is True
    db.expire_all()
    assert db.query(Payment).filter_by(reference=reference).one().status == "success"
