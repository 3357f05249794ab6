"""
Peer room chat service
Real-time room messaging with access control and keyword moderation
"""

from .models import AccessDecision, ClientConnection, ModerationResult, SessionState, UserIdentity
from .moderation import Category, moderate
from .access_policy import can_access
from .room_manager import RoomManager, room_channel
from .message_handler import MessageHandler, MessageRejected
from .session import ConnectionSession, SessionManager
from .logger import (
    configure_logging,
    get_logger,
    log_security_event,
    log_connection_event,
    log_room_event,
    log_message_event,
    log_moderation_event,
    log_websocket_event,
    log_system_event,
)

__all__ = [
    'AccessDecision',
    'ClientConnection',
    'ModerationResult',
    'SessionState',
    'UserIdentity',
    'Category',
    'moderate',
    'can_access',
    'RoomManager',
    'room_channel',
    'MessageHandler',
    'MessageRejected',
    'ConnectionSession',
    'SessionManager',
    'configure_logging',
    'get_logger',
    'log_security_event',
    'log_connection_event',
    'log_room_event',
    'log_message_event',
    'log_moderation_event',
    'log_websocket_event',
    'log_system_event',
]
