from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

import app.cqrs.commands.raffles as raffles_commands
from app.api.dependencies import get_content_generator, get_store
from app.main import app
from app.models.schemas import RaffleCreate
from app.services.content import ContentGenerator
from app.store.memory import MemoryDocumentStore

TODAY = date(2030, 1, 15)


def raffle_payload(**overrides) -> RaffleCreate:
    data = {
        "name": "PS5 Console Giveaway",
        "description": "Win a brand new PlayStation 5.",
        "terms": "Winner must claim the prize within 7 days.",
        "slot_price": Decimal("1000"),
    }
    data.update(overrides)
    return RaffleCreate(**data)


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def client(store, monkeypatch):
    monkeypatch.setattr(raffles_commands, "local_today", lambda: TODAY)
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_content_generator] = lambda: ContentGenerator(client=None)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    def _register(name: str, email: str, password: str = "secret123") -> dict:
        response = client.post(
            "/rifas/auth/register", json={"name": name, "email": email, "password": password}
        )
        assert response.status_code == 201, response.text
        response = client.post("/rifas/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        body = response.json()
        return {
            "id": body["user"]["id"],
            "headers": {"Authorization": f"Bearer {body['token']}"},
        }

    return _register
