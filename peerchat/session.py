"""
Connection sessions: authentication, room membership and event dispatch
"""

from typing import Any, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool

from . import storage
from .access_policy import can_access
from .auth import verify_token
from .constants import (
    ERROR_MESSAGES,
    EVENT_JOIN_ROOM,
    EVENT_JOINED_ROOM,
    EVENT_LEAVE_ROOM,
    EVENT_SEND_MESSAGE,
    EVENT_USER_JOINED,
    EVENT_USER_LEFT,
    MODERATORS_CHANNEL,
    ROOM_CHANNEL_PREFIX,
)
from .logger import get_logger, log_connection_event, log_room_event, log_security_event
from .message_handler import MessageHandler
from .models import ClientConnection, SessionState, UserIdentity
from .room_manager import RoomManager, room_channel
from .validators import clean_display_name, clean_slug, extract_display_hint, validate_json_payload

logger = get_logger()


class ConnectionSession:
    """Operations of one authenticated connection, bound to its verified identity"""

    def __init__(self, client: ClientConnection, room_manager: RoomManager, message_handler: MessageHandler):
        self.client = client
        self.room_manager = room_manager
        self.message_handler = message_handler
        self.state = SessionState.UNAUTHENTICATED

    @property
    def identity(self) -> UserIdentity:
        return self.client.identity

    @property
    def rooms(self) -> List[str]:
        """Slugs of the rooms this connection has joined"""
        return sorted(
            channel[len(ROOM_CHANNEL_PREFIX):]
            for channel in self.client.channels
            if channel.startswith(ROOM_CHANNEL_PREFIX)
        )

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.AUTHENTICATED

    async def start(self):
        """Register the connection; moderators and admins also get the moderators channel"""
        await self.room_manager.register(self.client)
        self.state = SessionState.AUTHENTICATED

        if self.identity.is_moderator:
            await self.room_manager.join(self.client.connection_id, MODERATORS_CHANNEL)
            logger.info(f"Moderator {self.identity.user_id} joined {MODERATORS_CHANNEL}")

        log_connection_event(self.identity.user_id, "connect", self.client.ip_address,
                             f"role={self.identity.role}")

    async def handle_event(self, payload: Any):
        """
        Dispatch one decoded client frame

        Args:
            payload: Decoded JSON frame
        """
        if not self.is_active:
            return

        is_valid, error_msg = validate_json_payload(payload)
        if not is_valid:
            await self.message_handler.send_error_message(self.client, error_msg)
            return

        message_type = payload["type"]

        if message_type == EVENT_JOIN_ROOM:
            await self.join_room(payload["slug"], extract_display_hint(payload), payload.get("userId"))
        elif message_type == EVENT_SEND_MESSAGE:
            await self.send_message(payload["slug"], payload["body"], payload.get("authorId"))
        elif message_type == EVENT_LEAVE_ROOM:
            await self.leave_room(payload["slug"])

    async def join_room(self, slug: Any, display_name: Optional[str] = None, declared_user_id: Any = None) -> bool:
        """
        Join a room after checking it exists and the access policy allows it

        Args:
            slug: Room slug
            display_name: Display hint shown to other members
            declared_user_id: userId field sent by the client, logged on mismatch

        Returns:
            True if the connection joined the room
        """
        if not self.is_active:
            return False

        user_id = self.identity.user_id
        slug = clean_slug(slug)
        self._check_declared_id(declared_user_id, "joinRoom")

        try:
            room = await run_in_threadpool(storage.find_room, slug) if slug else None
        except Exception as e:
            logger.error(f"Join room error for {user_id} in {slug}: {e}")
            await self.message_handler.send_error_message(self.client, ERROR_MESSAGES["join_failed"])
            return False

        if room is None:
            await self.message_handler.send_error_message(self.client, ERROR_MESSAGES["room_not_found"])
            return False

        decision = can_access(self.identity.age_bracket, self.identity.consent_minor_ok, room.is_minor_safe)
        if not decision.allowed:
            log_room_event(user_id, room.slug, "denied", decision.reason or "")
            await self.message_handler.send_error_message(self.client, decision.reason)
            return False

        channel = room_channel(room.slug)
        await self.room_manager.join(self.client.connection_id, channel)

        await self.room_manager.send_to(self.client, {
            "type": EVENT_JOINED_ROOM,
            "roomSlug": room.slug,
            "roomTitle": room.title,
            "roomId": room.id,
        })
        await self.room_manager.broadcast(channel, {
            "type": EVENT_USER_JOINED,
            "userId": user_id,
            "displayName": clean_display_name(display_name) or self.client.display_name,
            "roomSlug": room.slug,
        }, exclude=self.client.connection_id)

        log_room_event(user_id, room.slug, "join")
        return True

    async def send_message(self, slug: Any, body: Any, declared_author_id: Any = None) -> Optional[Dict[str, Any]]:
        if not self.is_active:
            return None
        return await self.message_handler.send_message(self.client, slug, body, declared_author_id)

    async def leave_room(self, slug: Any) -> bool:
        """
        Leave a room; a no-op when the connection is not a member

        Returns:
            True if a membership was released
        """
        if not self.is_active:
            return False

        slug = clean_slug(slug)
        channel = room_channel(slug)
        if not await self.room_manager.leave(self.client.connection_id, channel):
            return False

        await self.room_manager.broadcast(channel, {
            "type": EVENT_USER_LEFT,
            "userId": self.identity.user_id,
            "roomSlug": slug,
        }, exclude=self.client.connection_id)

        log_room_event(self.identity.user_id, slug, "leave")
        return True

    async def disconnect(self):
        """Release every membership; the session accepts no further operations"""
        if self.state == SessionState.DISCONNECTED:
            return

        self.state = SessionState.DISCONNECTED
        released = await self.room_manager.unregister(self.client.connection_id)
        log_connection_event(self.identity.user_id, "disconnect", self.client.ip_address,
                             f"released={len(released)}")

    def _check_declared_id(self, declared_id: Any, event: str):
        if declared_id is not None and str(declared_id) != self.identity.user_id:
            log_security_event("identity_mismatch", {
                "event": event,
                "connection": self.client.connection_id,
                "verified_user": self.identity.user_id,
                "declared_user": str(declared_id)
            })


class SessionManager:
    """Creates sessions for verified connections"""

    def __init__(self, room_manager: RoomManager, message_handler: MessageHandler):
        self.room_manager = room_manager
        self.message_handler = message_handler

    def authenticate(self, token: Optional[str], ip_address: str = "unknown") -> Optional[UserIdentity]:
        """
        Verify the handshake credential

        Returns:
            UserIdentity, or None when the connection must be refused
        """
        identity = verify_token(token)
        if identity is None:
            log_connection_event("anonymous", "refused", ip_address,
                                 "missing token" if not token else "invalid token")
        return identity

    async def open_session(self, websocket: Any, identity: UserIdentity, ip_address: str = "unknown") -> ConnectionSession:
        """
        Start a session for an accepted connection

        Args:
            websocket: Accepted WebSocket
            identity: Verified identity from the handshake
            ip_address: Client IP address

        Returns:
            Active ConnectionSession
        """
        try:
            display_name = await run_in_threadpool(storage.get_user_display_name, identity.user_id)
        except Exception as e:
            logger.error(f"User directory lookup failed for {identity.user_id}: {e}")
            display_name = None

        client = ClientConnection(
            identity=identity,
            websocket=websocket,
            display_name=display_name,
            ip_address=ip_address,
        )
        session = ConnectionSession(client, self.room_manager, self.message_handler)
        await session.start()
        return session
