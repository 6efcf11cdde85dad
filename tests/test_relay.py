"""End-to-end tests for the WebSocket relay and HTTP endpoints.

All sockets in a test share one TestClient (and so one event loop), which is
what lets a broadcast from one session reach another session's socket.
"""
import json


def join(ws, room_id, username):
    ws.send_json({"type": "join", "roomId": room_id, "username": username})
    joined = ws.receive_json()
    assert joined["type"] == "joined"
    return joined


def say(ws, content):
    ws.send_json({"type": "message", "content": content})


def test_room_lifecycle_scenario(client, app):
    """Join, chat, leave and last-leave against one room, from two clients."""
    registry = app.state.registry

    with client.websocket_connect("/") as ws_a, client.websocket_connect("/") as ws_b:
        # A joins "lobby" as alice
        joined_a = join(ws_a, "lobby", "alice")
        assert joined_a["roomId"] == "lobby"
        assert joined_a["userId"]
        assert "timestamp" in joined_a
        first = ws_a.receive_json()
        assert first["type"] == "user-joined"
        assert first["users"] == [{"username": "alice", "id": joined_a["userId"]}]
        assert registry.count("lobby") == 1

        # B joins "lobby" as bob; both see the full member list
        joined_b = join(ws_b, "lobby", "bob")
        expected_users = [
            {"username": "alice", "id": joined_a["userId"]},
            {"username": "bob", "id": joined_b["userId"]},
        ]
        for ws in (ws_a, ws_b):
            notice = ws.receive_json()
            assert notice["type"] == "user-joined"
            assert notice["username"] == "bob"
            assert notice["users"] == expected_users

        # A says hi; each member gets exactly one copy
        say(ws_a, "hi")
        for ws in (ws_a, ws_b):
            chat = ws.receive_json()
            assert chat["type"] == "message"
            assert chat["content"] == "hi"
            assert chat["username"] == "alice"
            assert chat["userId"] == joined_a["userId"]
        say(ws_b, "marker")
        for ws in (ws_a, ws_b):
            assert ws.receive_json()["content"] == "marker"

        # A leaves; B sees the refreshed member list
        ws_a.close()
        left = ws_b.receive_json()
        assert left["type"] == "user-left"
        assert left["username"] == "alice"
        assert left["users"] == [{"username": "bob", "id": joined_b["userId"]}]
        assert registry.count("lobby") == 1

    # B gone too; the room no longer exists
    assert "lobby" not in registry
    assert len(registry) == 0


def test_join_with_empty_room_id_is_rejected(client, app):
    with client.websocket_connect("/") as ws:
        ws.send_json({"type": "join", "roomId": "", "username": "alice"})
        assert ws.receive_json() == {"type": "error", "message": "Room ID is required"}

        # Still unjoined: a correct join works afterwards
        join(ws, "lobby", "alice")
    assert len(app.state.registry) == 0


def test_join_without_username_is_rejected(client):
    with client.websocket_connect("/") as ws:
        ws.send_json({"type": "join", "roomId": "lobby"})
        assert ws.receive_json() == {"type": "error", "message": "Username is required"}


def test_message_before_join_is_silently_dropped(client):
    with client.websocket_connect("/") as ws:
        say(ws, "anyone?")
        # The next frame is the join confirmation, not an error
        joined = join(ws, "lobby", "alice")
        assert joined["roomId"] == "lobby"


def test_malformed_frames_get_generic_error(client):
    with client.websocket_connect("/") as ws:
        ws.send_text("definitely not json")
        assert ws.receive_json() == {"type": "error", "message": "Failed to process your message"}

        ws.send_json({"type": "shout", "content": "hey"})
        assert ws.receive_json() == {"type": "error", "message": "Failed to process your message"}

        # The connection keeps working
        join(ws, "lobby", "alice")


def test_binary_frames_are_accepted(client):
    with client.websocket_connect("/") as ws:
        ws.send_bytes(json.dumps({"type": "join", "roomId": "lobby", "username": "alice"}).encode())
        assert ws.receive_json()["type"] == "joined"


def test_rooms_are_isolated(client):
    with client.websocket_connect("/") as ws_a, client.websocket_connect("/ws") as ws_b:
        join(ws_a, "lobby", "alice")
        ws_a.receive_json()
        join(ws_b, "games", "bob")
        ws_b.receive_json()

        say(ws_a, "lobby only")
        assert ws_a.receive_json()["content"] == "lobby only"

        say(ws_b, "games only")
        chat = ws_b.receive_json()
        assert chat["content"] == "games only"
        assert chat["username"] == "bob"


def test_unjoined_disconnect_leaves_no_trace(client, app):
    with client.websocket_connect("/"):
        pass
    assert len(app.state.registry) == 0


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.text == "Server is running"


def test_room_details(client):
    with client.websocket_connect("/") as ws:
        joined = join(ws, "lobby", "alice")

        response = client.get("/rooms/lobby")
        assert response.status_code == 200
        assert response.json() == {
            "room_id": "lobby",
            "online_users_count": 1,
            "users": [{"username": "alice", "id": joined["userId"]}],
        }

        listing = client.get("/rooms").json()
        assert listing == {"rooms": [{"room_id": "lobby", "online_users_count": 1}], "count": 1}


def test_unknown_room_is_404(client):
    response = client.get("/rooms/nowhere")
    assert response.status_code == 404
    assert response.json()["detail"] == "Room not found"


def test_apps_do_not_share_registries(app):
    from app import create_app

    other = create_app()
    assert other.state.registry is not app.state.registry
