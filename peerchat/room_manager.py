"""
Channel membership registry for live connections
"""

import asyncio
from typing import Any, Dict, List, Optional

from .constants import MODERATORS_CHANNEL, ROOM_CHANNEL_PREFIX
from .logger import get_logger, log_security_event
from .models import ClientConnection

logger = get_logger()


def room_channel(slug: str) -> str:
    """Broadcast channel name of a room"""
    return f"{ROOM_CHANNEL_PREFIX}{slug}"


class RoomManager:
    """Maps connections to broadcast channels"""

    def __init__(self):
        # connection_id -> ClientConnection
        self._connections: Dict[str, ClientConnection] = {}
        # channel -> {connection_id: ClientConnection}
        self._channels: Dict[str, Dict[str, ClientConnection]] = {}
        self._lock = asyncio.Lock()

    async def register(self, client: ClientConnection):
        """
        Track a newly authenticated connection

        Args:
            client: Connection to register
        """
        async with self._lock:
            self._connections[client.connection_id] = client
        logger.info(f"Connection registered: {client.connection_id} (user={client.user_id})")

    async def unregister(self, connection_id: str) -> List[str]:
        """
        Forget a connection and release every channel it belongs to

        Args:
            connection_id: Connection identifier

        Returns:
            Channels the connection was removed from
        """
        async with self._lock:
            client = self._connections.pop(connection_id, None)
            if client is None:
                return []

            released = sorted(client.channels)
            for channel in released:
                self._discard(channel, connection_id)
            client.channels.clear()

        logger.info(f"Connection unregistered: {connection_id} (released {len(released)} channels)")
        return released

    async def join(self, connection_id: str, channel: str) -> bool:
        """
        Add a registered connection to a channel

        Args:
            connection_id: Connection identifier
            channel: Channel name

        Returns:
            True if the connection is now a member, False if it is not registered
        """
        async with self._lock:
            client = self._connections.get(connection_id)
            if client is None:
                return False

            self._channels.setdefault(channel, {})[connection_id] = client
            client.channels.add(channel)
            return True

    async def leave(self, connection_id: str, channel: str) -> bool:
        """
        Remove a connection from a channel

        Args:
            connection_id: Connection identifier
            channel: Channel name

        Returns:
            True if a membership was released, False if none was held
        """
        async with self._lock:
            client = self._connections.get(connection_id)
            if client is None or channel not in client.channels:
                return False

            client.channels.discard(channel)
            self._discard(channel, connection_id)
            return True

    def _discard(self, channel: str, connection_id: str):
        members = self._channels.get(channel)
        if members is None:
            return
        members.pop(connection_id, None)
        if not members:
            del self._channels[channel]

    async def is_member(self, connection_id: str, channel: str) -> bool:
        async with self._lock:
            return connection_id in self._channels.get(channel, {})

    async def get_clients_in_channel(self, channel: str) -> List[ClientConnection]:
        """
        Snapshot of the members of a channel

        Args:
            channel: Channel name

        Returns:
            List of ClientConnection objects
        """
        async with self._lock:
            return list(self._channels.get(channel, {}).values())

    async def broadcast(self, channel: str, payload: Dict[str, Any], exclude: Optional[str] = None) -> int:
        """
        Send an event to every member of a channel

        Members are read under the lock and sent to outside it, so a slow
        client never blocks joins and leaves elsewhere.

        Args:
            channel: Channel name
            payload: Event frame
            exclude: Connection id to skip, usually the sender

        Returns:
            Number of successful recipients
        """
        clients = await self.get_clients_in_channel(channel)
        successful_sends = 0

        for client in clients:
            if client.connection_id == exclude:
                continue
            try:
                await client.send_json(payload)
                successful_sends += 1
            except Exception as e:
                # Log send failure but continue with other clients
                logger.error(f"Failed to send {payload.get('type')} to {client.connection_id}: {e}")
                log_security_event("send_failed", {
                    "recipient": client.connection_id,
                    "channel": channel,
                    "error": str(e)
                })

        logger.debug(f"Broadcast {payload.get('type')} on {channel} to {successful_sends} recipients")
        return successful_sends

    async def send_to(self, client: ClientConnection, payload: Dict[str, Any]) -> bool:
        """
        Send an event to one connection

        Returns:
            True if the frame was written
        """
        try:
            await client.send_json(payload)
            return True
        except Exception as e:
            logger.error(f"Failed to send {payload.get('type')} to {client.connection_id}: {e}")
            return False

    async def get_connection_stats(self) -> Dict[str, int]:
        """
        Get overall connection statistics

        Returns:
            Dictionary with connection stats
        """
        async with self._lock:
            room_channels = [name for name in self._channels if name.startswith(ROOM_CHANNEL_PREFIX)]
            return {
                "total_connections": len(self._connections),
                "active_rooms": len(room_channels),
                "room_memberships": sum(len(self._channels[name]) for name in room_channels),
                "moderators_online": len(self._channels.get(MODERATORS_CHANNEL, {})),
            }
