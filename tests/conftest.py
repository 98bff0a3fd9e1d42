import os

# Avant tout import de boutique: pas de Redis ni de clés réelles en tests
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")
os.environ.setdefault("CURSOR_SIGNING_KEY", "test-cursor-key")

import itertools
from typing import Any, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient

from boutique import config
from boutique.app_setup.factory import create_app
from boutique.infra.database import SessionLocal, configure_engine, init_db
from boutique.models import Cart, CartItem, Discount, Product
from boutique.payments import stripe_client
from boutique.payments.stripe_client import Verification
from boutique.utils.security import require_user

TEST_USER: Dict[str, Any] = {
    "id": "test-user",
    "email": "test@example.com",
    "role": "user",
}

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)

@pytest.fixture(autouse=True)
def engine(tmp_path):
    """Base SQLite fichier par test (plusieurs connexions possibles, y compris entre threads)."""
    eng = configure_engine(f"sqlite:///{tmp_path / 'boutique-test.db'}")
    init_db()
    yield eng
    eng.dispose()

@pytest.fixture()
def db(engine) -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture(scope="session")
def app():
    return create_app()

@pytest.fixture()
def client(app, engine) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

# Simuler un utilisateur authentifié pour les endpoints protégés
@pytest.fixture(autouse=True)
def _override_require_user(app):
    app.dependency_overrides[require_user] = lambda: dict(TEST_USER)
    try:
        yield
    finally:
        app.dependency_overrides.pop(require_user, None)

@pytest.fixture()
def as_user(app):
    """Change l'utilisateur de session renvoyé par require_user."""
    def _set(user_id: str, email: str = "other@example.com"):
        app.dependency_overrides[require_user] = lambda: {"id": user_id, "email": email, "role": "user"}
    return _set

# --- Fabriques de données ---

@pytest.fixture()
def make_product(db):
    counter = itertools.count(1)

    def _make(price: int = 2500, stock: int = 10, status: str = "active", name: Optional[str] = None, id: Optional[str] = None) -> Product:
        n = next(counter)
        product = Product(id=id or f"prod-{n}", name=name or f"Produit {n}", price=price, stock=stock, status=status)
        db.add(product)
        db.commit()
        return product
    return _make

@pytest.fixture()
def make_cart(db):
    def _make(user_id: str, lines: List[tuple]) -> Cart:
        """lines: [(product, quantity)] ou [(product, quantity, price_at_add)]"""
        cart = Cart(user_id=user_id)
        db.add(cart)
        db.flush()
        for line in lines:
            product, qty = line[0], line[1]
            price = line[2] if len(line) > 2 else product.price
            db.add(CartItem(cart_id=cart.id, product_id=product.id, quantity=qty, price_at_add=price))
        db.commit()
        return cart
    return _make

@pytest.fixture()
def make_discount(db):
    def _make(code: str = "SAVE10", type: str = "percentage", value: int = 10, **kw) -> Discount:
        discount = Discount(code=code, name=code, type=type, value=value, **kw)
        db.add(discount)
        db.commit()
        return discount
    return _make

# --- Stripe simulé ---

class FakeStripe:
    """
    Remplace initialize/verify: garde les sessions créées en mémoire.
    pay(reference) marque la session payée; verify renvoie le statut courant.
    """
    def __init__(self):
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.by_reference: Dict[str, str] = {}
        self.initialize_calls: List[Dict[str, Any]] = []
        self.verify_calls: List[str] = []
        self._seq = itertools.count(1)

    def initialize(self, **kwargs) -> str:
        self.initialize_calls.append(kwargs)
        session_id = f"cs_test_{next(self._seq)}"
        self.sessions[session_id] = {
            "id": session_id,
            "client_reference_id": kwargs["reference"],
            "payment_status": "unpaid",
            "amount_total": kwargs["amount_minor"],
            "currency": kwargs["currency"],
            "metadata": dict(kwargs["metadata"]),
        }
        self.by_reference[kwargs["reference"]] = session_id
        return f"https://checkout.stripe.test/pay/{session_id}"

    def pay(self, reference: str) -> str:
        session_id = self.by_reference[reference]
        self.sessions[session_id]["payment_status"] = "paid"
        return session_id

    def verify(self, session_id: str) -> Verification:
        self.verify_calls.append(session_id)
        s = self.sessions[session_id]
        paid = s["payment_status"] == "paid"
        return Verification(
            session_id=session_id,
            reference=s["client_reference_id"],
            status="success" if paid else s["payment_status"],
            metadata=dict(s["metadata"]),
            amount_total=s["amount_total"],
            currency=s["currency"],
            raw=dict(s),
        )

@pytest.fixture()
def fake_stripe(monkeypatch) -> FakeStripe:
    fake = FakeStripe()
    monkeypatch.setattr(stripe_client, "initialize", fake.initialize)
    monkeypatch.setattr(stripe_client, "verify", fake.verify)
    return fake

@pytest.fixture()
def webhook_secret(monkeypatch) -> str:
    secret = "whsec_test_secret"
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", secret)
    return secret

@pytest.fixture()
def checkout_payload() -> Dict[str, Any]:
    return {
        "firstName": "Ada",
        "lastName": "Lovelace",
        "street": "1 rue de la Paix",
        "city": "Paris",
        "state": "IDF",
        "postalCode": "75002",
        "country": "FR",
        "discountCode": None,
    }
