from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from solcases_backend.engine.service import CaseEngineService
from solcases_backend.main import create_app


@pytest.fixture
def client(engine: CaseEngineService) -> Iterator[TestClient]:
    app = create_app(engine_service=engine, run_sweeper=False)
    with TestClient(app) as test_client:
        test_client.headers["x-session-id"] = "api-session"
        yield test_client


def _fund(client: TestClient, amount: float = 1.0) -> None:
    assert client.post("/api/create-wallet").json()["success"] is True
    assert client.post("/api/deposit", json={"amount": amount}).json()["new_balance"] == amount


def test_health(client: TestClient) -> None:
    body = client.get("/api/health").json()
    assert body["status"] == "healthy"
    assert body["uses_privy"] is False
    assert client.get("/healthz").json() == {"status": "ok"}


def test_session_cookie_is_issued_without_header(engine: CaseEngineService) -> None:
    with TestClient(create_app(engine_service=engine, run_sweeper=False)) as client:
        response = client.get("/api/balance")
    assert response.status_code == 200
    assert response.json()["source"] == "new_user"
    assert "privy-session" in response.headers["set-cookie"]


def test_wallet_lifecycle(client: TestClient) -> None:
    assert client.get("/api/wallet").json()["success"] is False

    created = client.post("/api/create-wallet").json()
    assert created["message"] == "Solana wallet created successfully!"
    again = client.post("/api/create-wallet").json()
    assert again["message"] == "Existing wallet found"
    assert again["wallet_address"] == created["wallet_address"]

    wallet = client.get("/api/wallet").json()
    assert wallet["success"] is True
    assert wallet["session_id"] == "api-session"

    assert client.post("/api/clear-session").json()["success"] is True
    assert client.get("/api/wallet").json()["success"] is False


def test_open_case_and_verify(client: TestClient) -> None:
    _fund(client)
    commitment = client.get("/api/provably-fair/hash").json()["server_seed_hash"]

    response = client.post("/api/open-case", json={"case_type": "starter"})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    result = body["result"]
    assert len(result["pack"]["cards"]) == 5
    assert result["next_server_seed_hash"] != commitment
    assert client.get("/api/balance").json()["balance"] == pytest.approx(result["new_balance"])

    seeds = result["pack"]["seed_pair"]
    verified = client.post(
        "/api/provably-fair/verify",
        json={"server_seed": seeds["server_seed"], "client_seed": seeds["client_seed"], "case_type": "starter"},
    ).json()
    assert verified["initial_hash"] == result["pack"]["initial_hash"]
    assert [card["roll"] for card in verified["cards"]] == [card["roll"] for card in result["pack"]["cards"]]
    assert verified["total_win_amount"] == pytest.approx(result["pack"]["total_win_amount"])


def test_open_case_errors_use_the_envelope(client: TestClient) -> None:
    response = client.post("/api/open-case", json={"case_type": "starter"})
    assert response.status_code == 401
    assert response.json()["success"] is False
    assert response.json()["error"]["code"] == "NOT_AUTHENTICATED"

    _fund(client, amount=0.5)
    response = client.post("/api/open-case", json={"case_type": "whale"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INSUFFICIENT_BALANCE"

    assert client.post("/api/open-case", json={"case_type": "mega"}).status_code == 422


def test_rejected_actions_map_to_status_codes(client: TestClient) -> None:
    response = client.get("/api/provably-fair/hash")
    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "error": {"code": "NOT_AUTHENTICATED", "message": "Not authenticated", "retryable": False},
    }

    _fund(client)
    response = client.post("/api/collections/claim", json={"rarity": "common"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "COLLECTION_NOT_COMPLETED"

    response = client.post("/api/force-complete-transaction")
    assert response.json()["error"]["code"] == "NO_PENDING_TRANSACTION"

    response = client.post("/api/deposit", json={"amount": -1})
    assert response.json()["error"]["code"] == "INVALID_AMOUNT"


def test_verify_rejects_bad_bet(client: TestClient) -> None:
    response = client.post(
        "/api/provably-fair/verify",
        json={"server_seed": "a" * 64, "client_seed": "b" * 32, "case_type": "pro", "bet_amount": 0},
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_VERIFICATION_INPUT"


def test_progress_endpoints(client: TestClient) -> None:
    _fund(client)
    client.post("/api/open-case", json={"case_type": "pro"})

    level = client.get("/api/level").json()["level"]
    assert level["xp"] == 10
    assert level["level"] == 1

    collections = client.get("/api/collections").json()
    assert set(collections["progress"]) == {"common", "uncommon", "rare", "epic", "legendary", "mythic", "divine"}
    assert client.get("/api/transaction-status").json()["status"]["has_pending_transaction"] is False
    assert client.get("/api/stats").json()["stats"]["packs_opened"] == 1


def test_chat_socket(client: TestClient) -> None:
    _fund(client, amount=0.1)
    client.post("/api/save-username", json={"username": "degen"})

    with client.websocket_connect("/ws/chat?sessionId=api-session") as socket:
        assert socket.receive_json() == {"type": "username_loaded", "username": "degen"}
        assert socket.receive_json()["type"] == "chat_history"
        assert socket.receive_json() == {"type": "online_count", "count": 1}

        socket.send_json({"type": "chat_message", "content": "gm"})
        message = socket.receive_json()
        assert message["type"] == "user"
        assert message["username"] == "degen"
        assert message["content"] == "gm"


def test_chat_socket_rejects_unknown_session(client: TestClient) -> None:
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws/chat?sessionId=ghost") as socket:
            socket.receive_json()
    assert exc_info.value.code == 1008


def test_deposit_rejects_non_finite_amounts(client: TestClient) -> None:
    _fund(client)

    for literal in ("Infinity", "-Infinity", "NaN"):
        response = client.post(
            "/api/deposit",
            content='{"amount": %s}' % literal,
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 422

    assert client.get("/api/balance").json()["balance"] == pytest.approx(1.0)


def test_inventory_endpoints(client: TestClient) -> None:
    assert client.get("/api/inventory").json() == {"success": True, "inventory": {}}

    response = client.post("/api/inventory", json={"inventory": {"Red Cube": {"count": 1}}})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "NOT_AUTHENTICATED"

    _fund(client)
    saved = client.post("/api/inventory", json={"inventory": {"Red Cube": {"count": 3}}}).json()
    assert saved == {"success": True, "message": "Inventory saved successfully"}

    body = client.get("/api/inventory").json()
    assert body["inventory"] == {"Red Cube": {"count": 3}}
