import pytest
from fastapi.testclient import TestClient

from ..core.dependencies import get_ledger_service
from ..main import app
from ..services import LedgerService, LedgerStore

@pytest.fixture
def service(tmp_path) -> LedgerService:
    store = LedgerStore(tmp_path / "data" / "balances.db")
    ledger = LedgerService(store, starting_balance=1000)
    yield ledger
    store.dispose()

@pytest.fixture
def client(service: LedgerService) -> TestClient:
    app.dependency_overrides[get_ledger_service] = lambda: service

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def test_profile_creates_account_with_starting_balance(client: TestClient) -> None:
    response = client.get("/api/profile", params={"username": "  alice  "})
    assert response.status_code == 200
    assert response.json() == {"ok": True, "username": "alice", "balance": 1000}

def test_profile_requires_username(client: TestClient) -> None:
    response = client.get("/api/profile", params={"username": "   "})
    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "USERNAME_REQUIRED"}

    missing = client.get("/api/profile")
    assert missing.status_code == 400
    assert missing.json()["error"] == "USERNAME_REQUIRED"

def test_charge_and_payout_flow(client: TestClient) -> None:
    charge = client.post(
        "/api/game/charge",
        json={"username": "alice", "game": "slots", "amount": 200},
    )
    assert charge.status_code == 200
    assert charge.json() == {"ok": True, "balance": 800}

    rejected = client.post(
        "/api/game/charge",
        json={"username": "alice", "game": "slots", "amount": 900},
    )
    assert rejected.status_code == 200
    assert rejected.json() == {"ok": False, "error": "INSUFFICIENT_FUNDS", "balance": 800}

    payout = client.post(
        "/api/game/payout",
        json={"username": "alice", "game": "slots", "amount": 500},
    )
    assert payout.status_code == 200
    assert payout.json() == {"ok": True, "balance": 1300}

    detail = client.get("/api/admin/user-detail", params={"username": "alice"}).json()
    assert detail["ok"] is True
    assert [entry["delta"] for entry in detail["history"]] == [0, -200, 500]
    assert detail["history"][1]["game"] == "slots"

def test_charge_rejects_invalid_amounts(client: TestClient) -> None:
    for amount in (0, -5, 0.5, "100", None):
        response = client.post(
            "/api/game/charge",
            json={"username": "bob", "amount": amount},
        )
        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "INVALID_AMOUNT"}

    # invalid charges never create the account
    users = client.get("/api/admin/users").json()["users"]
    assert users == []

def test_payout_rejects_negative_amount(client: TestClient) -> None:
    response = client.post(
        "/api/game/payout",
        json={"username": "carol", "amount": -10},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_AMOUNT"

def test_payout_defaults_labels(client: TestClient) -> None:
    client.post("/api/game/payout", json={"username": "carol", "amount": 25.9})

    detail = client.get("/api/admin/user-detail", params={"username": "carol"}).json()
    assert detail["balance"] == 1025
    last = detail["history"][-1]
    assert last["game"] == "unknown-game"
    assert last["desc"] == "payout"
    assert last["delta"] == 25

def test_profile_save_floors_and_clamps_balance(client: TestClient) -> None:
    response = client.post("/api/profile/save", json={"username": "dave", "balance": 42.7})
    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert client.get("/api/profile", params={"username": "dave"}).json()["balance"] == 42

    client.post("/api/profile/save", json={"username": "dave", "balance": -3})
    assert client.get("/api/profile", params={"username": "dave"}).json()["balance"] == 0

    client.post("/api/profile/save", json={"username": "dave", "balance": "lots"})
    detail = client.get("/api/admin/user-detail", params={"username": "dave"}).json()
    assert detail["balance"] == 0
    assert [entry["game"] for entry in detail["history"]] == [
        "system",
        "manual-save",
        "manual-save",
        "manual-save",
    ]

def test_admin_set_balance_records_delta(client: TestClient) -> None:
    client.get("/api/profile", params={"username": "erin"})
    response = client.post(
        "/api/admin/set-balance",
        json={"username": "erin", "balance": 250, "note": "refund"},
    )
    assert response.json() == {"ok": True, "balance": 250}

    detail = client.get("/api/admin/user-detail", params={"username": "erin"}).json()
    last = detail["history"][-1]
    assert last == {**last, "game": "admin-adjust", "delta": -750, "desc": "refund"}

def test_admin_listing_and_delete(client: TestClient) -> None:
    client.get("/api/profile", params={"username": "frank"})
    client.get("/api/profile", params={"username": "grace"})

    users = client.get("/api/admin/users").json()
    assert users["ok"] is True
    assert sorted(users["users"], key=lambda u: u["username"]) == [
        {"username": "frank", "balance": 1000},
        {"username": "grace", "balance": 1000},
    ]

    deleted = client.post("/api/admin/delete-user", json={"username": "frank"})
    assert deleted.json() == {"ok": True}
    missing = client.get("/api/admin/user-detail", params={"username": "frank"})
    assert missing.status_code == 200
    assert missing.json() == {"ok": False, "error": "NO_SUCH_USER"}

    again = client.post("/api/admin/delete-user", json={"username": "frank"})
    assert again.json() == {"ok": True}

def test_admin_endpoints_require_username(client: TestClient) -> None:
    assert client.get("/api/admin/user-detail").status_code == 400
    response = client.post("/api/admin/delete-user", json={"username": ""})
    assert response.status_code == 400
    assert response.json()["error"] == "USERNAME_REQUIRED"

def test_malformed_body_is_client_error(client: TestClient) -> None:
    response = client.post("/api/game/charge", json={"username": 12, "amount": 5})
    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "INVALID_REQUEST"}

def test_storage_failure_returns_server_error(
    client: TestClient, service: LedgerService, monkeypatch
) -> None:
    from ..core.errors import StorageError

    def _broken_save(state):
        raise StorageError("disk full")

    monkeypatch.setattr(service.store, "save", _broken_save)

    response = client.get("/api/profile", params={"username": "heidi"})
    assert response.status_code == 500
    assert response.json() == {"ok": False, "error": "SERVER_ERROR"}
    assert service.get_account("heidi") is None

def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}

def test_oversized_payout_is_client_error(client: TestClient) -> None:
    response = client.post("/api/game/payout", json={"username": "ivan", "amount": 1e19})
    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "INVALID_AMOUNT"}

def test_unexpected_failure_returns_generic_error(service: LedgerService, monkeypatch) -> None:
    def _explode(*args, **kwargs):
        raise RuntimeError("boom: /secret/path")

    monkeypatch.setattr(service, "payout", _explode)
    app.dependency_overrides[get_ledger_service] = lambda: service

    with TestClient(app, raise_server_exceptions=False) as test_client:
        response = test_client.post("/api/game/payout", json={"username": "jill", "amount": 5})

    app.dependency_overrides.clear()
    assert response.status_code == 500
    assert response.json() == {"ok": False, "error": "SERVER_ERROR"}

def test_numeric_labels_are_stored_as_text(client: TestClient) -> None:
    response = client.post(
        "/api/game/charge",
        json={"username": "kyle", "game": 5, "amount": 10, "desc": 1.5},
    )
    assert response.status_code == 200
    client.post("/api/admin/set-balance", json={"username": "kyle", "balance": 3, "note": 42})

    history = client.get("/api/admin/user-detail", params={"username": "kyle"}).json()["history"]
    assert (history[1]["game"], history[1]["desc"]) == ("5", "1.5")
    assert history[2]["desc"] == "42"
