"""
Tests for the channel membership registry.
"""

import asyncio

from peerchat.constants import MODERATORS_CHANNEL
from peerchat.room_manager import RoomManager, room_channel

from support import ANXIETY_ROOM, GENERAL_ROOM, add_member

ANXIETY = room_channel(ANXIETY_ROOM)
GENERAL = room_channel(GENERAL_ROOM)


class TestMembership:

    def test_channel_name(self):
        assert room_channel("anxiety-support") == "room:anxiety-support"

    def test_join_multiple_channels(self):
        async def scenario():
            manager = RoomManager()
            alice = await add_member(manager, "alice", [ANXIETY, GENERAL])
            return alice, await manager.is_member(alice.connection_id, ANXIETY), \
                await manager.is_member(alice.connection_id, GENERAL)

        alice, in_anxiety, in_general = asyncio.run(scenario())

        assert in_anxiety and in_general
        assert alice.channels == {ANXIETY, GENERAL}

    def test_join_requires_registration(self):
        async def scenario():
            manager = RoomManager()
            return await manager.join("ws_unknown", ANXIETY)

        assert asyncio.run(scenario()) is False

    def test_leave_reports_whether_membership_was_held(self):
        async def scenario():
            manager = RoomManager()
            alice = await add_member(manager, "alice", [ANXIETY])
            first = await manager.leave(alice.connection_id, ANXIETY)
            second = await manager.leave(alice.connection_id, ANXIETY)
            never = await manager.leave(alice.connection_id, GENERAL)
            return first, second, never

        assert asyncio.run(scenario()) == (True, False, False)

    def test_unregister_releases_everything(self):
        async def scenario():
            manager = RoomManager()
            alice = await add_member(manager, "alice", [ANXIETY, GENERAL, MODERATORS_CHANNEL])
            released = await manager.unregister(alice.connection_id)
            members = await manager.get_clients_in_channel(ANXIETY)
            stats = await manager.get_connection_stats()
            return released, members, stats, alice

        released, members, stats, alice = asyncio.run(scenario())

        assert released == sorted([ANXIETY, GENERAL, MODERATORS_CHANNEL])
        assert members == []
        assert alice.channels == set()
        assert stats["total_connections"] == 0
        assert stats["active_rooms"] == 0

    def test_unregister_unknown_connection(self):
        assert asyncio.run(RoomManager().unregister("ws_missing")) == []


class TestBroadcast:

    def test_broadcast_reaches_channel_members_only(self):
        async def scenario():
            manager = RoomManager()
            alice = await add_member(manager, "alice", [ANXIETY])
            bob = await add_member(manager, "bob", [ANXIETY])
            teen = await add_member(manager, "teen-ok", [GENERAL])
            sent = await manager.broadcast(ANXIETY, {"type": "ping"})
            return sent, alice, bob, teen

        sent, alice, bob, teen = asyncio.run(scenario())

        assert sent == 2
        assert alice.websocket.types == ["ping"]
        assert bob.websocket.types == ["ping"]
        assert teen.websocket.sent == []

    def test_broadcast_excludes_sender(self):
        async def scenario():
            manager = RoomManager()
            alice = await add_member(manager, "alice", [ANXIETY])
            bob = await add_member(manager, "bob", [ANXIETY])
            sent = await manager.broadcast(ANXIETY, {"type": "ping"}, exclude=alice.connection_id)
            return sent, alice, bob

        sent, alice, bob = asyncio.run(scenario())

        assert sent == 1
        assert alice.websocket.sent == []
        assert bob.websocket.types == ["ping"]

    def test_failed_member_does_not_stop_delivery(self):
        async def scenario():
            manager = RoomManager()
            broken = await add_member(manager, "alice", [ANXIETY], fail=True)
            bob = await add_member(manager, "bob", [ANXIETY])
            sent = await manager.broadcast(ANXIETY, {"type": "ping"})
            return sent, bob

        sent, bob = asyncio.run(scenario())

        assert sent == 1
        assert bob.websocket.types == ["ping"]

    def test_broadcast_to_empty_channel(self):
        assert asyncio.run(RoomManager().broadcast("room:nobody", {"type": "ping"})) == 0

    def test_stats(self):
        async def scenario():
            manager = RoomManager()
            await add_member(manager, "alice", [ANXIETY])
            await add_member(manager, "bob", [ANXIETY, GENERAL])
            await add_member(manager, "mod", [MODERATORS_CHANNEL])
            return await manager.get_connection_stats()

        stats = asyncio.run(scenario())

        assert stats == {
            "total_connections": 3,
            "active_rooms": 2,
            "room_memberships": 3,
            "moderators_online": 1,
        }
