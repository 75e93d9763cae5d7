import json
import logging

import pytest

fastapi = pytest.importorskip("fastapi")
pytest.importorskip("httpx")
from fastapi.testclient import TestClient

from encounterkeep.backend.api import create_app
from encounterkeep.backend.config import Settings
from encounterkeep.backend.errors import IntegrityError
from encounterkeep.backend.models import MonsterDefinition, UserRecord
from encounterkeep.backend.monsters import InMemoryMonsterCatalog
from encounterkeep.backend.store import InMemoryEncounterStore
from encounterkeep.backend.users import InMemoryUserDirectory


ALICE = {"Authorization": "Bearer alice-token"}
BOB = {"Authorization": "Bearer bob-token"}
ADMIN = {"Authorization": "Bearer root-token"}


@pytest.fixture()
def store() -> InMemoryEncounterStore:
    return InMemoryEncounterStore()


@pytest.fixture()
def client(store: InMemoryEncounterStore) -> TestClient:
    users = InMemoryUserDirectory(server_salt="test-salt")
    users.add_user(UserRecord("alice", "Alice", "Smith", "alice@example.com"), token="alice-token")
    users.add_user(UserRecord("bob", "Bob", "Jones", "bob@example.com"), token="bob-token")
    users.add_user(UserRecord("root", "Ada", "Admin", "root@example.com", is_admin=True), token="root-token")
    store.users = users
    monsters = InMemoryMonsterCatalog.from_definitions(
        MonsterDefinition(ref=ref, name=ref.split("-")[0].title()) for ref in ("goblin-1", "goblin-2", "ogre-1")
    )
    settings = Settings(server_salt="test-salt", database_url=None, host="127.0.0.1", port=8000, log_level="INFO")
    return TestClient(create_app(store=store, users=users, monsters=monsters, settings=settings))


def _create(client: TestClient, monsters: list[str] | None = None, username: str = "alice", headers=ALICE) -> dict:
    body: dict = {"name": "Goblin Ambush", "description": "forest trap"}
    if monsters is not None:
        body["monsters"] = monsters
    response = client.post(f"/users/{username}/encounter", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["encounter"]


def test_goblin_ambush_lifecycle(client: TestClient, store: InMemoryEncounterStore) -> None:
    created = _create(client, monsters=["goblin-1", "goblin-2"])
    encounter_id = created["id"]
    assert created["username"] == "alice"
    assert created["name"] == "Goblin Ambush"
    assert created["description"] == "forest trap"
    assert set(created["monsters"]) == {"goblin-1", "goblin-2"}

    replaced = client.put(f"/users/alice/encounter/{encounter_id}", json={"monsters": ["ogre-1"]}, headers=ALICE)
    assert replaced.status_code == 200
    assert replaced.json()["encounter"]["monsters"] == ["ogre-1"]

    fetched = client.get(f"/users/alice/encounter/{encounter_id}", headers=ALICE)
    assert fetched.json()["encounter"]["monsters"] == ["ogre-1"]

    deleted = client.delete(f"/users/alice/encounter/{encounter_id}", headers=ALICE)
    assert deleted.status_code == 200
    assert deleted.json() == {"deleted": encounter_id}

    missing = client.get(f"/users/alice/encounter/{encounter_id}", headers=ALICE)
    assert missing.status_code == 404
    assert store.list_encounters_for_user("alice") == {}


def test_list_encounters_maps_ids_to_rosters(client: TestClient) -> None:
    first = _create(client, monsters=["goblin-1"])
    second = _create(client)

    response = client.get("/users/alice/encounter", headers=ALICE)

    assert response.status_code == 200
    assert response.json() == {"encounters": {str(first["id"]): ["goblin-1"], str(second["id"]): []}}
    assert client.get("/users/bob/encounter", headers=BOB).json() == {"encounters": {}}


def test_create_rejects_unknown_monster_with_bad_request(client: TestClient) -> None:
    response = client.post(
        "/users/alice/encounter",
        json={"name": "Lair", "monsters": ["goblin-1", "dragon-1"]},
        headers=ALICE,
    )

    assert response.status_code == 400
    assert "dragon-1" in response.json()["detail"]
    assert client.get("/users/alice/encounter", headers=ALICE).json() == {"encounters": {}}


@pytest.mark.parametrize(
    "body",
    [
        {"description": "no name"},
        {"name": ""},
        {"name": "Ambush", "monsters": "goblin-1"},
        {"name": "Ambush", "monsters": [""]},
        {"name": "Ambush", "extra": True},
    ],
)
def test_create_rejects_malformed_payload(client: TestClient, body: dict) -> None:
    response = client.post("/users/alice/encounter", json=body, headers=ALICE)

    assert response.status_code == 400
    assert isinstance(response.json()["detail"], list)


def test_admin_creating_for_unknown_user_gets_not_found(client: TestClient) -> None:
    response = client.post("/users/mallory/encounter", json={"name": "Ghost"}, headers=ADMIN)

    assert response.status_code == 404


def test_replace_roster_with_empty_list_clears(client: TestClient) -> None:
    created = _create(client, monsters=["goblin-1", "goblin-2"])

    response = client.put(f"/users/alice/encounter/{created['id']}", json={"monsters": []}, headers=ALICE)

    assert response.status_code == 200
    assert response.json()["encounter"]["monsters"] == []


def test_replace_roster_on_missing_encounter_is_not_found(client: TestClient) -> None:
    response = client.put("/users/alice/encounter/999", json={"monsters": ["ogre-1"]}, headers=ALICE)

    assert response.status_code == 404


def test_requests_without_valid_token_are_unauthorized(client: TestClient) -> None:
    assert client.get("/users/alice/encounter").status_code == 401
    assert client.get("/users/alice/encounter", headers={"Authorization": "Bearer nope"}).status_code == 401
    assert client.get("/users/alice/encounter", headers={"Authorization": "Token alice-token"}).status_code == 401


def test_other_user_path_is_unauthorized(client: TestClient) -> None:
    _create(client)

    assert client.get("/users/alice/encounter", headers=BOB).status_code == 401


def test_encounter_of_other_owner_is_forbidden_on_own_path(client: TestClient) -> None:
    created = _create(client, monsters=["goblin-1"])
    encounter_id = created["id"]

    assert client.get(f"/users/bob/encounter/{encounter_id}", headers=BOB).status_code == 403
    assert (
        client.put(f"/users/bob/encounter/{encounter_id}", json={"monsters": []}, headers=BOB).status_code == 403
    )
    assert client.delete(f"/users/bob/encounter/{encounter_id}", headers=BOB).status_code == 403
    assert client.get(f"/users/alice/encounter/{encounter_id}", headers=ALICE).json()["encounter"]["monsters"] == [
        "goblin-1"
    ]


def test_admin_may_act_on_any_user_path(client: TestClient) -> None:
    created = _create(client, username="alice", headers=ADMIN)

    response = client.get(f"/users/alice/encounter/{created['id']}", headers=ADMIN)

    assert response.status_code == 200
    assert response.json()["encounter"]["username"] == "alice"


def test_list_users_requires_admin(client: TestClient) -> None:
    assert client.get("/users", headers=ALICE).status_code == 401

    response = client.get("/users", headers=ADMIN)

    assert response.status_code == 200
    users = response.json()["users"]
    assert [user["username"] for user in users] == ["alice", "bob", "root"]
    assert users[0] == {"username": "alice", "firstName": "Alice", "lastName": "Smith", "email": "alice@example.com"}


def test_get_and_patch_own_user(client: TestClient) -> None:
    fetched = client.get("/users/alice", headers=ALICE)
    assert fetched.status_code == 200
    assert fetched.json()["user"]["isAdmin"] is False

    patched = client.patch("/users/alice", json={"firstName": "Alicia"}, headers=ALICE)
    assert patched.status_code == 200
    assert patched.json()["user"]["firstName"] == "Alicia"
    assert patched.json()["user"]["lastName"] == "Smith"


@pytest.mark.parametrize("body", [{}, {"password": "hunter22"}, {"isAdmin": True}, {"email": "not-an-email"}])
def test_patch_user_rejects_invalid_payload(client: TestClient, body: dict) -> None:
    response = client.patch("/users/alice", json=body, headers=ALICE)

    assert response.status_code == 400


def test_delete_user_purges_their_encounters(client: TestClient, store: InMemoryEncounterStore) -> None:
    _create(client, monsters=["goblin-1"])

    response = client.delete("/users/alice", headers=ADMIN)

    assert response.status_code == 200
    assert response.json() == {"deleted": "alice"}
    assert store.list_encounters_for_user("alice") == {}
    assert client.get("/users/alice", headers=ADMIN).status_code == 404


def test_non_integer_encounter_id_is_bad_request(client: TestClient) -> None:
    assert client.get("/users/alice/encounter/abc", headers=ALICE).status_code == 400


def test_storage_integrity_failure_is_logged_and_reported_generically(
    client: TestClient, store: InMemoryEncounterStore, monkeypatch, caplog
) -> None:
    created = _create(client)

    def failing_replace(encounter_id: int, monster_refs) -> None:
        raise IntegrityError("Roster references an unknown monster", {"encounter_id": encounter_id})

    monkeypatch.setattr(store, "replace_roster", failing_replace)

    with caplog.at_level(logging.ERROR, logger="encounterkeep.backend.api"):
        response = client.put(f"/users/alice/encounter/{created['id']}", json={"monsters": ["ogre-1"]}, headers=ALICE)

    assert response.status_code == 500
    assert response.json() == {"detail": "Storage constraint violated"}
    errors = [record for record in caplog.records if record.levelno == logging.ERROR]
    assert errors
    assert "unknown monster" in errors[0].getMessage()


def test_delete_user_removes_record_before_purging_encounters(client: TestClient, monkeypatch) -> None:
    _create(client, monsters=["goblin-1"])
    service = client.app.state.encounter_service
    owner_present_during_purge: list[bool] = []
    original_purge = service.purge_owner

    def recording_purge(username: str) -> list[int]:
        owner_present_during_purge.append(service.users.exists(username))
        return original_purge(username)

    monkeypatch.setattr(service, "purge_owner", recording_purge)

    assert client.delete("/users/alice", headers=ALICE).status_code == 200
    assert owner_present_during_purge == [False]
    assert service.list_owned("alice") == {}


def test_default_app_is_usable_with_seed_file(tmp_path) -> None:
    seed_path = tmp_path / "seed.json"
    seed_path.write_text(
        json.dumps(
            {
                "users": [
                    {
                        "username": "gm",
                        "firstName": "Game",
                        "lastName": "Master",
                        "email": "gm@example.com",
                        "isAdmin": True,
                        "token": "gm-dev-token",
                    },
                    {
                        "username": "alice",
                        "firstName": "Alice",
                        "lastName": "Smith",
                        "email": "alice@example.com",
                        "token": "alice-dev-token",
                    },
                ],
                "monsters": [{"ref": "goblin-1", "name": "Goblin"}],
            }
        ),
        encoding="utf-8",
    )
    settings = Settings(
        server_salt="seed-salt",
        database_url=None,
        host="127.0.0.1",
        port=8000,
        log_level="INFO",
        seed_file=str(seed_path),
    )
    seeded = TestClient(create_app(settings=settings))

    users = seeded.get("/users", headers={"Authorization": "Bearer gm-dev-token"})
    created = seeded.post(
        "/users/alice/encounter",
        json={"name": "Ambush", "monsters": ["goblin-1"]},
        headers={"Authorization": "Bearer alice-dev-token"},
    )

    assert users.status_code == 200
    assert [user["username"] for user in users.json()["users"]] == ["alice", "gm"]
    assert created.status_code == 201
    assert created.json()["encounter"]["monsters"] == ["goblin-1"]
