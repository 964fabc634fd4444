"""
End-to-end tests for the /ws relay endpoint
"""
import pytest
from fastapi import WebSocketDisconnect

from conftest import ALLOWED_HEADERS


def register(websocket, name, user_id=None):
    data = {"displayName": name}
    if user_id:
        data["userId"] = user_id
    websocket.send_json({"event": "register", "data": data})


def names(payload):
    return [session["displayName"] for session in payload["data"]]


class TestWebSocketAccess:

    def test_foreign_origin_is_closed(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws", headers={"origin": "https://evil.example.com"}):
                pass
        assert exc_info.value.code == 1008

    def test_missing_origin_is_closed(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws"):
                pass


class TestWebSocketRelay:

    def test_alice_and_bob(self, client, backend):
        with client.websocket_connect("/ws", headers=ALLOWED_HEADERS) as alice:
            register(alice, "Alice")
            update = alice.receive_json()
            assert update["event"] == "users_update"
            assert names(update) == ["Alice"]
            alice_id = update["data"][0]["userId"]
            assert backend.rooms.get("general").members == {alice_id: "Alice"}

            with client.websocket_connect("/ws", headers=ALLOWED_HEADERS) as bob:
                register(bob, "Bob")

                joined = alice.receive_json()
                assert joined["event"] == "user_joined"
                assert joined["data"]["user"]["displayName"] == "Bob"
                assert "Bob" in joined["data"]["message"]
                assert names(alice.receive_json()) == ["Alice", "Bob"]
                assert names(bob.receive_json()) == ["Alice", "Bob"]
                assert len(backend.rooms.get("general").members) == 2

                alice.send_json({
                    "event": "send_message",
                    "data": {"roomId": "general", "content": "hi", "kind": "text"},
                })
                for websocket in (alice, bob):
                    received = websocket.receive_json()
                    assert received["event"] == "new_message"
                    assert received["data"]["senderDisplayName"] == "Alice"
                    assert received["data"]["content"] == "hi"

                history = backend.messages.history("general")
                assert [(m.sender_display_name, m.content) for m in history] == [("Alice", "hi")]

            left = alice.receive_json()
            assert left["event"] == "user_left"
            assert left["data"]["user"]["displayName"] == "Bob"
            assert names(alice.receive_json()) == ["Alice"]
            assert backend.rooms.get("general").members == {alice_id: "Alice"}

    def test_unregistered_message_is_dropped(self, client):
        with client.websocket_connect("/ws", headers=ALLOWED_HEADERS) as carol:
            carol.send_json({"event": "send_message", "data": {"roomId": "general", "content": "ghost"}})
            register(carol, "Carol")
            # Frames on one socket are handled in order, so the drop has happened by now
            assert carol.receive_json()["event"] == "users_update"

            response = client.get("/api/messages/general", headers=ALLOWED_HEADERS)
            assert response.json() == []

    def test_bad_frames_keep_the_connection_open(self, client):
        with client.websocket_connect("/ws", headers=ALLOWED_HEADERS) as dave:
            dave.send_bytes(b"\x00\x01binary")
            dave.send_text("not json")
            dave.send_text("[" * 100000 + "]" * 100000)
            register(dave, "Dave")

            update = dave.receive_json()
            assert update["event"] == "users_update"
            assert names(update) == ["Dave"]

    def test_typing_reaches_others_only(self, client):
        with client.websocket_connect("/ws", headers=ALLOWED_HEADERS) as alice, \
                client.websocket_connect("/ws", headers=ALLOWED_HEADERS) as bob:
            register(alice, "Alice")
            alice.receive_json()
            # users_update is global, so Bob hears about Alice before registering
            assert names(bob.receive_json()) == ["Alice"]
            register(bob, "Bob")
            alice.receive_json()
            alice.receive_json()
            assert names(bob.receive_json()) == ["Alice", "Bob"]

            alice.send_json({"event": "typing", "data": {"roomId": "general"}})
            typing = bob.receive_json()
            assert typing["event"] == "user_typing"
            assert typing["data"]["displayName"] == "Alice"

            alice.send_json({"event": "stop_typing", "data": {"roomId": "general"}})
            assert bob.receive_json()["event"] == "user_stop_typing"

            alice.send_json({"event": "send_message", "data": {"roomId": "general", "content": "done"}})
            assert alice.receive_json()["event"] == "new_message"

    def test_join_chat_scopes_delivery(self, client, backend):
        with client.websocket_connect("/ws", headers=ALLOWED_HEADERS) as alice, \
                client.websocket_connect("/ws", headers=ALLOWED_HEADERS) as bob:
            register(alice, "Alice")
            alice.receive_json()
            # users_update is global, so Bob hears about Alice before registering
            assert names(bob.receive_json()) == ["Alice"]
            register(bob, "Bob")
            alice.receive_json()
            alice.receive_json()
            assert names(bob.receive_json()) == ["Alice", "Bob"]

            alice.send_json({"event": "join_chat", "data": {"roomId": "side"}})
            alice.send_json({"event": "send_message", "data": {"roomId": "side", "content": "anyone?"}})
            assert alice.receive_json()["data"]["content"] == "anyone?"

            bob.send_json({"event": "join_chat", "data": "side"})
            bob.send_json({"event": "send_message", "data": {"roomId": "side", "content": "psst"}})

            for websocket in (alice, bob):
                received = websocket.receive_json()
                assert received["event"] == "new_message"
                assert received["data"]["roomId"] == "side"
                assert received["data"]["content"] == "psst"

            chats = {chat["roomId"]: chat for chat in client.get("/api/chats", headers=ALLOWED_HEADERS).json()}
            assert chats["side"]["members"] == {}
            assert chats["side"]["messageCount"] == 2
