import logging
from contextlib import contextmanager

from fastapi.testclient import TestClient

from agromarket.config import Settings
from agromarket.logging_config import setup_logging
from agromarket.main import create_app, seed_data
from agromarket.storage import MemStorage


def test_seeded_app_is_usable():
    app = create_app(settings=Settings(seed_demo_data=True))
    client = TestClient(app)

    products = client.get("/api/products").json()
    assert [p["name"] for p in products] == ["Soybean", "Mustard", "Groundnut"]
    assert {p["status"] for p in products} == {"available"}

    login = client.post("/api/login", json={"username": "buyer1", "password": "password123"})
    assert login.status_code == 200
    assert login.json()["role"] == "buyer"

    response = client.post("/api/contracts", json={
        "productId": products[0]["id"],
        "quantity": "200 kg",
        "price": "44.50",
        "deliveryDate": "2026-12-15T08:00:00+00:00",
    })
    assert response.status_code == 201
    assert response.json()["farmerId"] == products[0]["farmerId"]


def test_injected_storage_is_used_and_not_seeded():
    storage = MemStorage()

    app = create_app(storage=storage, settings=Settings(seed_demo_data=True))

    assert app.state.storage is storage
    assert storage.stats()["users"] == 0


def test_seed_data_populates_storage():
    storage = MemStorage()

    seed_data(storage)

    roles = sorted(u.role.value for u in storage.list_users())
    assert roles == ["buyer", "buyer", "farmer", "farmer"]
    assert len(storage.list_products()) == 3


def test_session_cookie_settings():
    app = create_app(storage=MemStorage(), settings=Settings(session_cookie_name="market_session"))
    client = TestClient(app)

    client.post("/api/register", json={
        "username": "ana",
        "password": "pw",
        "role": "farmer",
        "fullName": "Ana",
        "email": "ana@agromarket.com",
    })

    assert client.cookies.get("market_session")
    assert client.get("/api/user").status_code == 200


@contextmanager
def bare_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    root.handlers.clear()
    try:
        yield root
    finally:
        root.handlers[:] = handlers
        root.setLevel(level)


def test_setup_logging_installs_one_handler():
    with bare_root_logger() as root:
        setup_logging("debug")
        setup_logging("warning")

        assert len(root.handlers) == 1
        assert root.level == logging.DEBUG


def test_setup_logging_unknown_level():
    with bare_root_logger() as root:
        setup_logging("chatty")

        assert root.level == logging.INFO
