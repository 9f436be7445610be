from datetime import timedelta

from app.cqrs.commands import raffles as raffles_commands
from app.cqrs.queries import raffles as raffles_queries
from conftest import TODAY


def _create(client, user, **overrides):
    body = {
        "name": "Bicycle raffle",
        "description": "A brand new mountain bike.",
        "terms": "Prize delivered within 10 days.",
        "slot_price": "1000",
    }
    body.update(overrides)
    return client.post("/rifas/raffles", json=body, headers=user["headers"])


def test_health(client):
    response = client.get("/rifas/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_register_login_and_me(client, register):
    user = register("Ana", "ana@example.com")

    response = client.get("/rifas/auth/me", headers=user["headers"])
    assert response.status_code == 200
    assert response.json()["email"] == "ana@example.com"


def test_duplicate_registration_conflicts(client, register):
    register("Ana", "ana@example.com")
    response = client.post(
        "/rifas/auth/register",
        json={"name": "Ana", "email": "ANA@example.com", "password": "secret123"},
    )
    assert response.status_code == 409
    assert response.json()["kind"] == "conflict"


def test_login_with_wrong_password(client, register):
    register("Ana", "ana@example.com")
    response = client.post(
        "/rifas/auth/login", json={"email": "ana@example.com", "password": "wrong-pass"}
    )
    assert response.status_code == 401
    assert response.json()["kind"] == "unauthenticated"


def test_mutations_require_a_valid_token(client):
    response = client.post("/rifas/raffles", json={})
    assert response.status_code == 401
    assert response.json() == {
        "detail": "Missing authentication token",
        "kind": "unauthenticated",
        "type": "domain_error",
    }

    response = client.put(
        "/rifas/raffles/abc/slots/1",
        json={"participant_name": "Bob", "status": "paid"},
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert response.status_code == 401


def test_create_raffle_and_read_it_publicly(client, register):
    user = register("Ana", "ana@example.com")

    response = _create(client, user)
    assert response.status_code == 201, response.text
    raffle = response.json()
    assert raffle["status"] == "active"
    assert raffle["owner_id"] == user["id"]
    assert raffle["counts"]["available"] == 100

    public = client.get(f"/rifas/raffles/{raffle['id']}")
    assert public.status_code == 200
    assert public.json()["name"] == "Bicycle raffle"

    slots = client.get(f"/rifas/raffles/{raffle['id']}/slots").json()
    assert len(slots) == 100
    assert slots[0] == {"slot_number": 1, "participant_name": "", "status": "available"}


def test_missing_raffle_is_not_found(client):
    response = client.get("/rifas/raffles/nope")
    assert response.status_code == 404
    assert response.json()["kind"] == "not_found"


def test_quota_exceeded_over_http(client, register):
    user = register("Ana", "ana@example.com")
    assert _create(client, user).status_code == 201
    assert _create(client, user).status_code == 201

    response = _create(client, user)
    assert response.status_code == 409
    assert response.json()["kind"] == "quota_exceeded"

    count = client.get("/rifas/raffles/active-count", headers=user["headers"]).json()
    assert count == {"user_id": user["id"], "active_raffles": 2, "limit": 2}


def test_full_owner_flow(client, register):
    owner = register("Ana", "ana@example.com")
    raffle_id = _create(client, owner).json()["id"]

    response = client.put(
        f"/rifas/raffles/{raffle_id}/slots/42",
        json={"participant_name": "Jane", "status": "paid"},
        headers=owner["headers"],
    )
    assert response.status_code == 200
    assert response.json() == {"slot_number": 42, "participant_name": "Jane", "status": "paid"}

    response = client.post(
        f"/rifas/raffles/{raffle_id}/finalize",
        json={"winner_slot_number": 42},
        headers=owner["headers"],
    )
    assert response.status_code == 409
    assert response.json()["kind"] == "no_scheduled_date"

    response = client.patch(
        f"/rifas/raffles/{raffle_id}",
        json={"finalization_date": TODAY.isoformat()},
        headers=owner["headers"],
    )
    assert response.status_code == 200
    assert response.json()["finalization_date"] == TODAY.isoformat()

    response = client.post(
        f"/rifas/raffles/{raffle_id}/finalize",
        json={"winner_slot_number": 42},
        headers=owner["headers"],
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "finalized"
    assert body["winner_slot_number"] == 42
    assert body["finalized_at"] is not None

    response = client.post(
        f"/rifas/raffles/{raffle_id}/finalize",
        json={"winner_slot_number": 7},
        headers=owner["headers"],
    )
    assert response.status_code == 409
    assert response.json()["kind"] == "already_finalized"

    activity = client.get(f"/rifas/raffles/{raffle_id}/activity", headers=owner["headers"])
    assert activity.status_code == 200
    assert {record["action"] for record in activity.json()} == {
        "raffle_created",
        "slot_updated",
        "raffle_updated",
        "raffle_finalized",
    }


def test_finalize_validation_and_schedule_errors(client, register):
    owner = register("Ana", "ana@example.com")
    tomorrow = (TODAY + timedelta(days=1)).isoformat()
    early_id = _create(client, owner, finalization_date=tomorrow).json()["id"]
    ready_id = _create(client, owner, finalization_date=TODAY.isoformat()).json()["id"]

    response = client.post(
        f"/rifas/raffles/{early_id}/finalize",
        json={"winner_slot_number": 42},
        headers=owner["headers"],
    )
    assert response.json()["kind"] == "too_early"

    for winner in (0, 101):
        response = client.post(
            f"/rifas/raffles/{ready_id}/finalize",
            json={"winner_slot_number": winner},
            headers=owner["headers"],
        )
        assert response.status_code == 400
        assert response.json()["kind"] == "validation_error"
    assert client.get(f"/rifas/raffles/{ready_id}").json()["status"] == "active"


def test_other_user_cannot_touch_raffle(client, register):
    owner = register("Ana", "ana@example.com")
    intruder = register("Bob", "bob@example.com")
    raffle_id = _create(client, owner).json()["id"]

    response = client.put(
        f"/rifas/raffles/{raffle_id}/slots/1",
        json={"participant_name": "Bob", "status": "paid"},
        headers=intruder["headers"],
    )
    assert response.status_code == 403
    assert response.json()["kind"] == "forbidden"

    slot = client.get(f"/rifas/raffles/{raffle_id}/slots").json()[0]
    assert slot == {"slot_number": 1, "participant_name": "", "status": "available"}

    response = client.get(f"/rifas/raffles/{raffle_id}/activity", headers=intruder["headers"])
    assert response.status_code == 403


def test_slot_number_out_of_range(client, register):
    owner = register("Ana", "ana@example.com")
    raffle_id = _create(client, owner).json()["id"]

    response = client.put(
        f"/rifas/raffles/{raffle_id}/slots/101",
        json={"participant_name": "Bob", "status": "paid"},
        headers=owner["headers"],
    )
    assert response.status_code == 400
    assert response.json()["kind"] == "validation_error"


def test_non_numeric_slot_number_is_a_domain_error(client, register):
    owner = register("Ana", "ana@example.com")
    intruder = register("Bob", "bob@example.com")
    raffle_id = _create(client, owner).json()["id"]
    body = {"participant_name": "Bob", "status": "paid"}

    response = client.put(f"/rifas/raffles/{raffle_id}/slots/five", json=body, headers=owner["headers"])
    assert response.status_code == 400
    assert response.json()["kind"] == "validation_error"

    response = client.put(f"/rifas/raffles/{raffle_id}/slots/five", json=body, headers=intruder["headers"])
    assert response.status_code == 403


def test_draw_over_http(client, register):
    owner = register("Ana", "ana@example.com")
    raffle_id = _create(client, owner, finalization_date=TODAY.isoformat()).json()["id"]
    client.put(
        f"/rifas/raffles/{raffle_id}/slots/8",
        json={"participant_name": "Ann", "status": "paid"},
        headers=owner["headers"],
    )

    response = client.post(f"/rifas/raffles/{raffle_id}/draw", headers=owner["headers"])
    assert response.status_code == 200
    assert response.json()["winner_slot_number"] == 8


def test_list_own_raffles(client, register):
    owner = register("Ana", "ana@example.com")
    other = register("Bob", "bob@example.com")
    _create(client, owner)
    _create(client, other)

    response = client.get("/rifas/raffles", headers=owner["headers"])
    assert response.status_code == 200
    assert [raffle["owner_id"] for raffle in response.json()] == [owner["id"]]


def test_content_endpoints_fall_back_without_model(client, register, monkeypatch):
    monkeypatch.setattr("app.services.content.content_configured", lambda: False)
    user = register("Ana", "ana@example.com")

    response = client.post(
        "/rifas/content/raffle-text", json={"prompt": "A weekend at the beach"}, headers=user["headers"]
    )
    assert response.status_code == 200
    assert response.json()["generated"] is False
    assert response.json()["description"] == "A weekend at the beach"

    response = client.post(
        "/rifas/content/raffle-images",
        json={"description": "Beach house"},
        headers=user["headers"],
    )
    assert response.status_code == 200
    assert len(response.json()["image_urls"]) == 3


def test_live_feed_sends_snapshot_and_slot_changes(client, register):
    owner = register("Ana", "ana@example.com")
    raffle_id = _create(client, owner).json()["id"]

    with client.websocket_connect(f"/rifas/raffles/{raffle_id}/live") as websocket:
        snapshot = websocket.receive_json()
        assert snapshot["type"] == "snapshot"
        assert snapshot["raffle"]["id"] == raffle_id
        assert len(snapshot["slots"]) == 100

        client.put(
            f"/rifas/raffles/{raffle_id}/slots/5",
            json={"participant_name": "Eve", "status": "reserved"},
            headers=owner["headers"],
        )
        change = websocket.receive_json()
        assert change["type"] == "change"
        assert change["collection"] == f"raffles/{raffle_id}/slots"
        assert change["data"]["participant_name"] == "Eve"


def test_live_feed_delivers_writes_made_during_snapshot(client, register, monkeypatch):
    owner = register("Ana", "ana@example.com")
    raffle_id = _create(client, owner).json()["id"]
    read_slots = raffles_queries.list_slots

    def _slots_then_write(feed_store, feed_raffle_id):
        slots = read_slots(feed_store, feed_raffle_id)
        raffles_commands.update_slot(feed_store, feed_raffle_id, 5, "Gap", "paid", owner["id"])
        return slots

    monkeypatch.setattr(raffles_queries, "list_slots", _slots_then_write)

    with client.websocket_connect(f"/rifas/raffles/{raffle_id}/live") as websocket:
        snapshot = websocket.receive_json()
        assert snapshot["slots"][4]["status"] == "available"

        change = websocket.receive_json()
        assert change["id"] == "5"
        assert change["data"]["status"] == "paid"
        assert change["data"]["participant_name"] == "Gap"
