import itertools

import pytest
from fastapi.testclient import TestClient

from agromarket.config import Settings
from agromarket.main import create_app
from agromarket.storage import MemStorage

PASSWORD = "password123"


@pytest.fixture
def storage():
    return MemStorage()


@pytest.fixture
def app(storage):
    return create_app(storage=storage, settings=Settings(seed_demo_data=False))


@pytest.fixture
def client(app):
    """Anonymous client."""
    return TestClient(app)


@pytest.fixture
def register(app):
    """Register a user and return a client logged in as them.

    The created user (as returned by the API) is attached as ``client.user``.
    """
    counter = itertools.count(1)

    def _register(role, username=None):
        n = next(counter)
        username = username or f"{role}{n}"
        user_client = TestClient(app)
        response = user_client.post("/api/register", json={
            "username": username,
            "password": PASSWORD,
            "role": role,
            "fullName": f"{role.title()} Number {n}",
            "email": f"{username}@agromarket.com",
        })
        assert response.status_code == 201, response.text
        user_client.user = response.json()
        return user_client

    return _register


@pytest.fixture
def farmer(register):
    return register("farmer")


@pytest.fixture
def buyer(register):
    return register("buyer")


def product_payload(**overrides):
    payload = {
        "name": "Tomatoes",
        "description": "Vine ripened",
        "quantity": "5",
        "unit": "kg",
        "price": "10.00",
    }
    payload.update(overrides)
    return payload


def contract_payload(product_id, **overrides):
    payload = {
        "productId": product_id,
        "quantity": "5",
        "price": "10.00",
        "deliveryDate": "2026-11-01T09:00:00Z",
    }
    payload.update(overrides)
    return payload
