"""
Message pipeline: validation, access, moderation, persistence and fan-out
"""

from typing import Any, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool

from . import storage
from .access_policy import can_access
from .constants import (
    AUDIT_ACTION_MESSAGE_FLAGGED,
    AUDIT_PREVIEW_LENGTH,
    ERROR_MESSAGES,
    EVENT_ERROR,
    EVENT_MESSAGE_FLAGGED,
    EVENT_RECEIVE_MESSAGE,
    MODERATORS_CHANNEL,
)
from .logger import get_logger, log_message_event, log_moderation_event, log_room_event, log_security_event
from .models import ClientConnection, UserIdentity
from .moderation import moderate
from .room_manager import RoomManager, room_channel
from .validators import clean_slug, validate_message_body

logger = get_logger()


class MessageRejected(Exception):
    """A message stopped before delivery; status_code maps it onto HTTP"""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class MessageHandler:
    """Runs each inbound message through moderation, storage and broadcast"""

    def __init__(self, room_manager: RoomManager, rate_limit_per_minute: int = 0):
        self.room_manager = room_manager
        self.rate_limit_per_minute = rate_limit_per_minute

    async def send_error_message(self, client: ClientConnection, error_message: str):
        """
        Send an error event to one connection only

        Args:
            client: Originating connection
            error_message: Error description
        """
        await self.room_manager.send_to(client, {"type": EVENT_ERROR, "message": error_message})
        logger.info(f"Error sent to {client.connection_id}: {error_message}")

    async def send_message(
        self,
        client: ClientConnection,
        room_slug: Any,
        body: Any,
        declared_author_id: Any = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Handle one sendMessage event

        Authorship always comes from the verified connection identity;
        declared_author_id is only compared against it for logging.

        Args:
            client: Sender connection
            room_slug: Target room slug
            body: Raw message body
            declared_author_id: authorId field sent by the client

        Returns:
            The broadcast message, or None when the pipeline stopped early
        """
        user_id = client.user_id

        if declared_author_id is not None and str(declared_author_id) != user_id:
            log_security_event("author_mismatch", {
                "connection": client.connection_id,
                "verified_user": user_id,
                "declared_author": str(declared_author_id)
            })

        try:
            return await self.post_message(client.identity, room_slug, body, client=client)
        except MessageRejected as e:
            await self.send_error_message(client, e.message)
            return None

    async def post_message(
        self,
        identity: UserIdentity,
        room_slug: Any,
        body: Any,
        client: Optional[ClientConnection] = None,
    ) -> Dict[str, Any]:
        """
        Validate, moderate, store and broadcast one message

        Shared by the WebSocket event and the HTTP route. The rate limit
        only applies when a live connection is given.

        Raises:
            MessageRejected: before anything is stored or broadcast
        """
        user_id = identity.user_id
        slug = clean_slug(room_slug)

        is_valid, error_msg = validate_message_body(body, user_id, slug)
        if not is_valid:
            raise MessageRejected(error_msg, 400)

        if client is not None and not client.can_send_message(self.rate_limit_per_minute):
            log_security_event("rate_limit_exceeded", {
                "user_id": user_id,
                "message_count": client.message_count,
                "max_per_minute": self.rate_limit_per_minute
            })
            raise MessageRejected(ERROR_MESSAGES["rate_limit"], 429)

        try:
            room = await run_in_threadpool(storage.find_room, slug) if slug else None
        except Exception as e:
            logger.error(f"Room lookup failed for {slug}: {e}")
            raise MessageRejected(ERROR_MESSAGES["send_failed"], 500)

        if room is None:
            raise MessageRejected(ERROR_MESSAGES["room_not_found"], 404)

        decision = can_access(identity.age_bracket, identity.consent_minor_ok, room.is_minor_safe)
        if not decision.allowed:
            log_room_event(user_id, room.slug, "send_denied", decision.reason or "")
            raise MessageRejected(decision.reason, 403)

        text = body.strip()
        moderation = moderate(text, room.is_minor_safe)

        try:
            message = await run_in_threadpool(
                storage.save_message, room.id, user_id, text, moderation.flagged, moderation.flags
            )
        except Exception as e:
            # Nothing has been broadcast yet; the moderation result is dropped
            logger.error(f"Failed to persist message from {user_id} in {slug}: {e}")
            raise MessageRejected(ERROR_MESSAGES["send_failed"], 500)

        if client is not None:
            client.update_message_stats()

        recipients = await self.room_manager.broadcast(
            room_channel(room.slug), {"type": EVENT_RECEIVE_MESSAGE, **message}
        )
        log_message_event(message["id"], user_id, room.slug, "broadcast", f"recipients={recipients}")

        if moderation.flagged:
            log_moderation_event(message["id"], user_id, room.slug, moderation.flags)
            await self._record_flag(message, user_id, room, moderation.flags, text)
            await self._notify_moderators(message, user_id, room, moderation.flags)

        return message

    async def _record_flag(self, message: Dict[str, Any], user_id: str, room: Any, flags: List[str], text: str):
        """Write the audit entry for a flagged message; failures are logged only"""
        metadata = {
            "messageId": message["id"],
            "roomSlug": room.slug,
            "roomTitle": room.title,
            "flags": list(flags),
            "preview": text[:AUDIT_PREVIEW_LENGTH],
        }
        try:
            await run_in_threadpool(storage.write_audit_log, user_id, AUDIT_ACTION_MESSAGE_FLAGGED, metadata)
        except Exception as e:
            logger.error(f"Audit write failed for message {message['id']}: {e}")

    async def _notify_moderators(self, message: Dict[str, Any], user_id: str, room: Any, flags: List[str]):
        """Tell the moderators channel about a flagged message; failures are logged only"""
        payload = {
            "type": EVENT_MESSAGE_FLAGGED,
            "messageId": message["id"],
            "roomSlug": room.slug,
            "roomTitle": room.title,
            "userId": user_id,
            "flags": list(flags),
        }
        try:
            await self.room_manager.broadcast(MODERATORS_CHANNEL, payload)
        except Exception as e:
            logger.error(f"Moderator notification failed for message {message['id']}: {e}")
