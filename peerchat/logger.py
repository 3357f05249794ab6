"""
Logging configuration for the peer room chat service
"""

import logging
import re
import sys
from typing import Optional

_SECRET_PATTERN = re.compile(r'(password|token)=([^\s&|,]+)', re.IGNORECASE)


class SecureFormatter(logging.Formatter):
    """Custom formatter that masks credentials in log lines"""

    def format(self, record):
        message = super().format(record)
        return _SECRET_PATTERN.sub(r'\1=***', message)


def get_logger(name: str = "peerchat") -> logging.Logger:
    """
    Get a logger instance with the service formatting

    Args:
        name: Logger name

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)

        formatter = SecureFormatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        handler.setFormatter(formatter)

        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

        # Prevent propagation to root logger
        logger.propagate = False

    return logger


def configure_logging(level: str = "INFO") -> logging.Logger:
    """
    Apply the configured level to the service logger

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
    """
    logger = get_logger()
    logger.setLevel(level.upper())
    return logger


def log_security_event(event_type: str, details: dict, logger: Optional[logging.Logger] = None):
    """
    Log security-related events with structured data

    Args:
        event_type: Type of security event
        details: Event details
        logger: Logger instance (optional)
    """
    if logger is None:
        logger = get_logger()

    logger.warning(f"SECURITY_EVENT: {event_type} | {details}")


def log_connection_event(user_id: str, action: str, ip_address: str = "unknown", details: str = ""):
    """
    Log connection lifecycle events

    Args:
        user_id: Verified user identifier
        action: Action (connect/disconnect/refused)
        ip_address: Client IP address
        details: Additional details
    """
    logger = get_logger()
    logger.info(f"CONNECTION_EVENT: {action} | user={user_id} | ip={ip_address} | {details}")


def log_room_event(user_id: str, room_slug: str, action: str, details: str = ""):
    """
    Log room membership events

    Args:
        user_id: Verified user identifier
        room_slug: Room slug
        action: Action (join/leave/denied)
        details: Additional details
    """
    logger = get_logger()
    logger.info(f"ROOM_EVENT: {action} | user={user_id} | room={room_slug} | {details}")


def log_message_event(message_id: str, user_id: str, room_slug: str, action: str, details: str = ""):
    """
    Log message-related events

    Args:
        message_id: Message identifier
        user_id: Author identifier
        room_slug: Room slug
        action: Action (persisted/broadcast/error)
        details: Additional details
    """
    logger = get_logger()
    logger.info(f"MESSAGE_EVENT: {action} | id={message_id} | user={user_id} | room={room_slug} | {details}")


def log_moderation_event(message_id: str, user_id: str, room_slug: str, flags: list):
    """
    Log a message flagged by keyword moderation

    Args:
        message_id: Message identifier
        user_id: Author identifier
        room_slug: Room slug
        flags: Matched categories
    """
    logger = get_logger()
    logger.warning(f"MODERATION_EVENT: flagged | id={message_id} | user={user_id} | room={room_slug} | flags={','.join(flags)}")


def log_websocket_event(event_type: str, connection_id: str, details: str = ""):
    """
    Log WebSocket protocol events

    Args:
        event_type: Type of WebSocket event
        connection_id: Connection identifier
        details: Additional details
    """
    logger = get_logger()
    logger.debug(f"WEBSOCKET_EVENT: {event_type} | conn={connection_id} | {details}")


def log_system_event(event_type: str, details: str, level: str = "info"):
    """
    Log system-level events

    Args:
        event_type: Type of system event
        details: Event details
        level: Log level (info/warning/error)
    """
    logger = get_logger()
    log_message = f"SYSTEM_EVENT: {event_type} | {details}"

    if level == "warning":
        logger.warning(log_message)
    elif level == "error":
        logger.error(log_message)
    else:
        logger.info(log_message)
