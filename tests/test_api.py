"""Tests for the FastAPI HyperRoom interface."""

from __future__ import annotations

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from hyperroom.config import Settings
from hyperroom.server import create_app


@pytest.fixture
def client():
    app = create_app(Settings(max_depth=3, identity_source="query"))
    with TestClient(app) as test_client:
        yield test_client


def receive_until(websocket, kind):
    """Skip unrelated frames until one of ``kind`` arrives."""

    for _ in range(50):
        message = websocket.receive_json()
        if message["type"] == kind:
            return message
    raise AssertionError(f"no {kind!r} message received")


def test_health_and_online_users(client):
    assert client.get("/healthz").json() == {
        "status": "ok",
        "sessions": 0,
        "challenges": 0,
        "games": 0,
    }
    with client.websocket_connect("/ws?userId=1&username=ann") as ann:
        receive_until(ann, "previous-messages")
        users = client.get("/api/online").json()["users"]
        assert users == [{"userId": 1, "username": "ann", "profileImageUrl": None}]


def test_connection_without_identity_is_refused(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws") as websocket:
            websocket.receive_json()


def test_missing_game_returns_404(client):
    response = client.get("/api/games/unknown")
    assert response.status_code == 404
    assert response.json()["detail"] == "Game not found"


def test_challenge_and_play_over_websocket(client):
    with client.websocket_connect("/ws?userId=1&username=ann") as ann, client.websocket_connect(
        "/ws?userId=2&username=bob"
    ) as bob:
        receive_until(ann, "previous-messages")
        receive_until(bob, "previous-messages")

        ann.send_json({"type": "game-challenge", "targetUserId": 2, "size": 0, "gameName": "Quick"})
        challenge = receive_until(bob, "game-challenge")["challenge"]
        assert challenge["challengerName"] == "ann"
        assert challenge["gameName"] == "Quick"

        bob.send_json({"type": "game-accepted", "challengeId": challenge["challengeId"]})
        started = receive_until(ann, "game-started")
        assert started["yourSymbol"] == "X"
        assert receive_until(bob, "game-started")["yourSymbol"] == "O"
        game_id = started["gameState"]["gameId"]

        for mover, cell in ((ann, 0), (bob, 3), (ann, 1), (bob, 4)):
            mover.send_json(
                {"type": "game-move", "gameId": game_id, "boardPath": [], "cellIndex": cell}
            )
            for websocket in (ann, bob):
                update = receive_until(websocket, "game-state-update")
                assert update["gameState"]["board"][cell] is not None

        ann.send_json({"type": "game-move", "gameId": game_id, "boardPath": [], "cellIndex": 2})
        final = receive_until(bob, "game-over")["gameState"]
        assert final["winner"] == "X"
        assert final["status"] == "won"

        state = client.get(f"/api/games/{game_id}").json()
        assert state["gameOver"] is True
        assert state["board"][:3] == ["X", "X", "X"]


def test_rejected_move_reports_game_error(client):
    with client.websocket_connect("/ws?userId=1&username=ann") as ann:
        receive_until(ann, "previous-messages")
        ann.send_json({"type": "game-move", "gameId": "nope", "boardPath": [], "cellIndex": 0})
        error = receive_until(ann, "game-error")
        assert error == {"type": "game-error", "error": "Game not found", "code": "NotFound"}

        ann.send_text("{not json")
        assert receive_until(ann, "game-error")["code"] == "InvalidMessage"

        ann.send_bytes(b"\x00\x01")
        assert receive_until(ann, "game-error")["code"] == "InvalidMessage"

        ann.send_json({"type": "notifications-read"})
        ann.send_json({"type": "game-forfeit", "gameId": "nope"})
        assert receive_until(ann, "game-error")["code"] == "NotFound"


def test_chat_reaches_other_members(client):
    with client.websocket_connect("/ws?userId=1&username=ann") as ann, client.websocket_connect(
        "/ws?userId=2&username=bob"
    ) as bob:
        receive_until(ann, "previous-messages")
        receive_until(bob, "previous-messages")

        ann.send_json({"type": "chat-message", "text": "gg"})
        message = receive_until(bob, "chat-message")["message"]
        assert message["text"] == "gg"
        assert message["username"] == "ann"


def test_headers_are_the_default_identity_source():
    app = create_app(Settings())
    with TestClient(app) as client:
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws?userId=1&username=ann") as websocket:
                websocket.receive_json()

        headers = {"X-User-Id": "42", "X-Username": "dee"}
        with client.websocket_connect("/ws", headers=headers) as dee:
            users = receive_until(dee, "online-users")["users"]
            assert users[0]["userId"] == 42
            assert users[0]["username"] == "dee"
