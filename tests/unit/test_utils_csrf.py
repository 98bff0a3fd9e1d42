from fastapi import FastAPI
from fastapi.testclient import TestClient

from boutique.utils.csrf import CSRF_COOKIE_NAME, CSRF_HEADER_NAME, register_csrf_middleware
from boutique.utils.security import COOKIE_NAME


def _make_app():
    app = FastAPI()
    register_csrf_middleware(app)

    @app.get("/simple")
    def simple_get():
        return {"ok": True}

    @app.post("/simple")
    def simple_post():
        return {"ok": True}

    # Exempt path (doit passer sans CSRF)
    @app.post("/api/v1/payments/webhook")
    def webhook():
        return {"ok": True}

    return app


def test_get_sets_csrf_cookie():
    client = TestClient(_make_app())
    res = client.get("/simple")
    assert res.status_code == 200
    assert CSRF_COOKIE_NAME in res.cookies


def test_post_without_session_is_not_checked():
    client = TestClient(_make_app())
    assert client.post("/simple").status_code == 200


def test_post_with_session_requires_matching_header():
    client = TestClient(_make_app())
    client.cookies.set(COOKIE_NAME, "jwt")
    client.cookies.set(CSRF_COOKIE_NAME, "tok")

    assert client.post("/simple").status_code == 403
    assert client.post("/simple", headers={CSRF_HEADER_NAME: "other"}).status_code == 403
    assert client.post("/simple", headers={CSRF_HEADER_NAME: "tok"}).status_code == 200


def test_webhook_is_exempt():
    client = TestClient(_make_app())
    client.cookies.set(COOKIE_NAME, "jwt")
    assert client.post("/api/v1/payments/webhook").status_code == 200
    assert client.post("/api/v1/payments/webhook/").status_code in (200, 307)
