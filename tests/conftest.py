import os

os.environ["BCRYPT_SALT_ROUNDS"] = "4"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("DATABASE_NAME", None)

import mongomock
import pytest
from fastapi.testclient import TestClient

import auth
import database
import main
import site_settings
from inventory import create_product
from payments import RazorpayGateway, compute_signature
from schemas import CheckoutRequest, ProductCreate, ProductVariant

GATEWAY_SECRET = "rzp_test_secret"
ADMIN_EMAIL = "admin@swathoops.com"
ADMIN_PASSWORD = "correct-horse"


class FakeGateway(RazorpayGateway):
    """Keeps the real signature check, replaces the HTTP call."""

    def __init__(self):
        super().__init__("rzp_test_key", GATEWAY_SECRET)
        self.created = []

    def create_order(self, amount_minor, receipt, notes=None):
        order = {
            "id": f"order_gw{len(self.created) + 1}",
            "amount": amount_minor,
            "currency": self.currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        self.created.append(order)
        return order


def sign(gateway_order_id, payment_id):
    return compute_signature(gateway_order_id, payment_id, GATEWAY_SECRET)


def checkout_payload(*items, email="Asha.Rao@Gmail.com ", phone=" 9876543210", name=" Asha Rao "):
    return {
        "customer": {"name": name, "email": email, "phone": phone},
        "address": {
            "address_line1": " 12 MG Road ",
            "city": "Bengaluru",
            "state": "Karnataka",
            "pincode": "560001",
        },
        "items": [
            {"product_id": pid, "quantity": qty, "size": 8} for pid, qty in items
        ],
    }


def checkout(*items, **kwargs) -> CheckoutRequest:
    return CheckoutRequest(**checkout_payload(*items, **kwargs))


@pytest.fixture
def db():
    d = mongomock.MongoClient()["store_test"]
    database.ensure_indexes(d)
    return d


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def cod_on(db):
    site_settings.update_settings(db, {"cod_enabled": True})


@pytest.fixture
def make_product(db):
    counter = {"n": 0}

    def _make(name=None, price=2499, stock=10, sizes=(8,), **extra):
        counter["n"] += 1
        n = counter["n"]
        per_size = [stock // len(sizes)] * len(sizes)
        per_size[0] += stock - sum(per_size)
        return create_product(db, ProductCreate(
            name=name or f"Moccasin {n}",
            sku=f"SW-TEST-{n:03d}",
            price=price,
            description="Test shoe",
            material="Leather",
            images=[f"/images/test-{n}.jpg"],
            variants=[ProductVariant(size=s, stock=q) for s, q in zip(sizes, per_size)],
            **extra,
        ))

    return _make


@pytest.fixture
def client(db, gateway):
    main.app.dependency_overrides[database.get_db] = lambda: db
    main.app.dependency_overrides[main.get_gateway] = lambda: gateway
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()


@pytest.fixture
def admin(db):
    return auth.create_admin(db, ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture
def admin_headers(client, admin):
    resp = client.post("/api/admin/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    # requests should authenticate through the header only
    client.cookies.clear()
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}
