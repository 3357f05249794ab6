"""
End-to-end tests for the /ws endpoint.

Each client processes its frames in order, so a probe frame that always gets
an answer (an unknown event type) is used to show that nothing else was
delivered before it.
"""

import pytest
from starlette.websockets import WebSocketDisconnect

from peerchat.access_policy import REASON_ADULTS_ONLY
from peerchat.constants import ERROR_MESSAGES
from peerchat.db_models import AuditLog, Message

from support import ANXIETY_ROOM, GENERAL_ROOM, make_token

PROBE = {"type": "probe"}
PROBE_REPLY = {"type": "error", "message": "Unknown message type: probe"}


def connect(client, user_id):
    return client.websocket_connect(f"/ws?token={make_token(user_id)}")


def join(ws, slug, user_id):
    ws.send_json({"type": "joinRoom", "slug": slug, "userId": user_id})
    reply = ws.receive_json()
    assert reply["type"] == "joinedRoom", reply
    return reply


def assert_nothing_pending(ws):
    ws.send_json(PROBE)
    assert ws.receive_json() == PROBE_REPLY


class TestHandshake:

    def test_missing_token_refused(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws"):
                pass

        assert exc_info.value.code == 1008

    def test_invalid_token_refused(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws?token=not-a-jwt"):
                pass

        assert exc_info.value.code == 1008

    def test_bearer_header_accepted(self, client):
        headers = {"Authorization": f"Bearer {make_token('alice')}"}
        with client.websocket_connect("/ws", headers=headers) as ws:
            join(ws, ANXIETY_ROOM, "alice")

    def test_invalid_json_keeps_connection_open(self, client):
        with connect(client, "alice") as ws:
            ws.send_text("{not json")
            assert ws.receive_json() == {"type": "error", "message": ERROR_MESSAGES["invalid_json"]}
            join(ws, ANXIETY_ROOM, "alice")


class TestConversation:

    def test_clean_message_reaches_both_members(self, client, db):
        with connect(client, "alice") as ws_a, connect(client, "bob") as ws_b:
            join(ws_a, ANXIETY_ROOM, "alice")
            join(ws_b, ANXIETY_ROOM, "bob")
            assert ws_a.receive_json() == {
                "type": "userJoined", "userId": "bob", "displayName": "Bob", "roomSlug": ANXIETY_ROOM
            }

            ws_a.send_json({"type": "sendMessage", "slug": ANXIETY_ROOM,
                            "body": "I feel anxious about exams", "authorId": "alice"})

            received_a = ws_a.receive_json()
            received_b = ws_b.receive_json()

        assert received_a == received_b
        assert received_a["type"] == "receiveMessage"
        assert received_a["body"] == "I feel anxious about exams"
        assert received_a["flagged"] is False
        assert received_a["flags"] == []
        assert received_a["author"] == {"id": "alice", "displayName": "Alice"}

    def test_flagged_message_alerts_moderator_only(self, client, db):
        with connect(client, "mod") as ws_mod, connect(client, "alice") as ws_a, \
                connect(client, "bob") as ws_b:
            # The moderator joins another room so its session is known to be active
            join(ws_mod, GENERAL_ROOM, "mod")
            join(ws_a, ANXIETY_ROOM, "alice")
            join(ws_b, ANXIETY_ROOM, "bob")
            ws_a.receive_json()  # userJoined for bob

            ws_a.send_json({"type": "sendMessage", "slug": ANXIETY_ROOM,
                            "body": "I want to kill myself", "authorId": "alice"})

            received_a = ws_a.receive_json()
            received_b = ws_b.receive_json()
            alert = ws_mod.receive_json()

            assert_nothing_pending(ws_a)
            assert_nothing_pending(ws_b)

        for received in (received_a, received_b):
            assert received["type"] == "receiveMessage"
            assert received["flagged"] is True
            assert received["flags"] == ["self-harm"]

        assert alert == {
            "type": "messageFlagged",
            "messageId": received_a["id"],
            "roomSlug": ANXIETY_ROOM,
            "roomTitle": "Anxiety Support",
            "userId": "alice",
            "flags": ["self-harm"],
        }

        with db() as session:
            assert session.query(AuditLog).count() == 1

    def test_message_length_limits(self, client, db):
        with connect(client, "alice") as ws:
            join(ws, ANXIETY_ROOM, "alice")

            ws.send_json({"type": "sendMessage", "slug": ANXIETY_ROOM, "body": "a" * 1001})
            too_long = ws.receive_json()

            ws.send_json({"type": "sendMessage", "slug": ANXIETY_ROOM, "body": "a" * 1000})
            accepted = ws.receive_json()

            ws.send_json({"type": "sendMessage", "slug": ANXIETY_ROOM, "body": "    "})
            empty = ws.receive_json()

        assert too_long == {"type": "error", "message": ERROR_MESSAGES["message_too_long"]}
        assert accepted["type"] == "receiveMessage"
        assert empty == {"type": "error", "message": ERROR_MESSAGES["empty_message"]}

        with db() as session:
            assert session.query(Message).count() == 1


class TestAccessAndMembership:

    def test_minor_without_consent_rejected(self, client):
        with connect(client, "alice") as ws_a, connect(client, "teen") as ws_teen:
            join(ws_a, GENERAL_ROOM, "alice")

            ws_teen.send_json({"type": "joinRoom", "slug": GENERAL_ROOM, "userId": "teen"})
            assert ws_teen.receive_json() == {"type": "error", "message": REASON_ADULTS_ONLY}

            assert_nothing_pending(ws_teen)
            assert_nothing_pending(ws_a)

    def test_unknown_room(self, client):
        with connect(client, "alice") as ws:
            ws.send_json({"type": "joinRoom", "slug": "no-such-room", "userId": "alice"})
            assert ws.receive_json() == {"type": "error", "message": ERROR_MESSAGES["room_not_found"]}

    def test_leave_never_joined_room_is_a_no_op(self, client):
        with connect(client, "alice") as ws_a, connect(client, "bob") as ws_b:
            join(ws_a, ANXIETY_ROOM, "alice")

            ws_b.send_json({"type": "leaveRoom", "slug": ANXIETY_ROOM})
            assert_nothing_pending(ws_b)
            assert_nothing_pending(ws_a)

    def test_leave_notifies_and_stops_delivery(self, client):
        with connect(client, "alice") as ws_a, connect(client, "bob") as ws_b:
            join(ws_a, ANXIETY_ROOM, "alice")
            join(ws_b, ANXIETY_ROOM, "bob")
            ws_a.receive_json()  # userJoined for bob

            ws_b.send_json({"type": "leaveRoom", "slug": ANXIETY_ROOM})
            assert ws_a.receive_json() == {"type": "userLeft", "userId": "bob", "roomSlug": ANXIETY_ROOM}

            ws_a.send_json({"type": "sendMessage", "slug": ANXIETY_ROOM, "body": "still here?"})
            assert ws_a.receive_json()["type"] == "receiveMessage"
            assert_nothing_pending(ws_b)

    def test_member_of_several_rooms(self, client):
        with connect(client, "alice") as ws_a, connect(client, "bob") as ws_b:
            join(ws_a, ANXIETY_ROOM, "alice")
            join(ws_a, GENERAL_ROOM, "alice")
            join(ws_b, GENERAL_ROOM, "bob")
            ws_a.receive_json()  # userJoined for bob in general-wellness

            ws_b.send_json({"type": "sendMessage", "slug": GENERAL_ROOM, "body": "hello"})
            assert ws_b.receive_json()["type"] == "receiveMessage"
            received = ws_a.receive_json()

        assert received["type"] == "receiveMessage"
        assert received["author"]["id"] == "bob"
