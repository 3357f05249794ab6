"""
Helpers shared by the test modules: tokens, directory seed data and an
in-process stand-in for a WebSocket.
"""

import json
from typing import Any, Dict, Iterable, List

import jwt

from peerchat.config import get_settings
from peerchat.models import ClientConnection, UserIdentity
from peerchat.room_manager import RoomManager

ANXIETY_ROOM = "anxiety-support"   # minor-safe
GENERAL_ROOM = "general-wellness"  # adults only

USERS = {
    "alice": {"display_name": "Alice", "role": "student", "age_bracket": "ADULT", "consent_minor_ok": True},
    "bob": {"display_name": "Bob", "role": "student", "age_bracket": "ADULT", "consent_minor_ok": True},
    "mod": {"display_name": "Alex", "role": "moderator", "age_bracket": "ADULT", "consent_minor_ok": True},
    "teen": {"display_name": "Teen", "role": "student", "age_bracket": "MINOR", "consent_minor_ok": False},
    "teen-ok": {"display_name": "Teen OK", "role": "student", "age_bracket": "MINOR", "consent_minor_ok": True},
}


def seed_directory(session):
    from peerchat.db_models import Room, User

    for user_id, attrs in USERS.items():
        session.add(User(id=user_id, email=f"{user_id}@example.edu", name=attrs["display_name"], **attrs))
    session.add(Room(slug=ANXIETY_ROOM, title="Anxiety Support",
                     topic="Anxiety & Stress Management", is_minor_safe=True))
    session.add(Room(slug=GENERAL_ROOM, title="General Wellness",
                     topic="Mental Health & Wellbeing", is_minor_safe=False))
    session.commit()


def make_token(user_id: str, secret: str = None, **overrides) -> str:
    """Token with the claims the auth service issues for a seeded user"""
    attrs = USERS.get(user_id, {})
    claims = {
        "id": user_id,
        "role": attrs.get("role", "student"),
        "ageBracket": attrs.get("age_bracket", "ADULT"),
        "consentMinorOk": attrs.get("consent_minor_ok", True),
    }
    claims.update(overrides)
    return jwt.encode(claims, secret or get_settings().JWT_SECRET, algorithm="HS256")


def identity_for(user_id: str) -> UserIdentity:
    attrs = USERS[user_id]
    return UserIdentity(
        user_id=user_id,
        role=attrs["role"],
        age_bracket=attrs["age_bracket"],
        consent_minor_ok=attrs["consent_minor_ok"],
    )


class FakeWebSocket:
    """Collects sent frames; optionally fails every send"""

    def __init__(self, fail: bool = False):
        self.sent: List[Dict[str, Any]] = []
        self.fail = fail

    async def send_text(self, data: str):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(data))

    def events(self, event_type: str) -> List[Dict[str, Any]]:
        return [frame for frame in self.sent if frame.get("type") == event_type]

    @property
    def types(self) -> List[str]:
        return [frame.get("type") for frame in self.sent]


async def add_member(manager: RoomManager, user_id: str, channels: Iterable[str] = (),
                     fail: bool = False) -> ClientConnection:
    """Register a connection for a seeded user and join it to channels"""
    client = ClientConnection(
        identity=identity_for(user_id),
        websocket=FakeWebSocket(fail=fail),
        display_name=USERS[user_id]["display_name"],
    )
    await manager.register(client)
    for channel in channels:
        await manager.join(client.connection_id, channel)
    return client
