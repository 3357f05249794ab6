"""
Input validation for inbound WebSocket events
"""

import re
from typing import Any, Dict, Optional, Tuple

from .constants import (
    CONTROL_CHARS_PATTERN,
    ERROR_MESSAGES,
    MAX_DISPLAY_NAME_LENGTH,
    MAX_MESSAGE_LENGTH,
    REQUIRED_FIELDS,
)
from .logger import get_logger, log_security_event

logger = get_logger()


def validate_message_body(body: Any, user_id: str = "", room_slug: str = "") -> Tuple[bool, str]:
    """
    Validate a message body before moderation or persistence

    Args:
        body: Raw body from the client
        user_id: Sender id (for logging)
        room_slug: Target room (for logging)

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(body, str) or not body.strip():
        return False, ERROR_MESSAGES["empty_message"]

    # The limit applies to the body as sent, before trimming
    if len(body) > MAX_MESSAGE_LENGTH:
        log_security_event("message_too_long", {
            "user_id": user_id,
            "room": room_slug,
            "length": len(body)
        })
        return False, ERROR_MESSAGES["message_too_long"]

    logger.debug(f"Message validated: user={user_id}, room={room_slug}, length={len(body)}")
    return True, ""


def validate_json_payload(payload: Any) -> Tuple[bool, str]:
    """
    Validate the structure of a client event frame

    Args:
        payload: Decoded JSON frame

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(payload, dict):
        log_security_event("invalid_payload_type", {"payload_type": type(payload).__name__})
        return False, ERROR_MESSAGES["invalid_payload"]

    message_type = payload.get("type")

    if message_type not in REQUIRED_FIELDS:
        return False, ERROR_MESSAGES["unknown_type"].format(type=message_type)

    for field in REQUIRED_FIELDS[message_type]:
        if field not in payload:
            log_security_event("missing_required_field", {
                "message_type": message_type,
                "missing_field": field
            })
            return False, ERROR_MESSAGES["missing_field"].format(field=field)

    return True, ""


def clean_slug(slug: Any) -> str:
    """Slugs arrive from clients; anything but a string is treated as empty"""
    if not isinstance(slug, str):
        return ""
    return slug.strip()


def clean_display_name(name: Any) -> Optional[str]:
    """Strip control characters and cap the length; None when nothing is left"""
    if not isinstance(name, str):
        return None
    cleaned = re.sub(CONTROL_CHARS_PATTERN, '', name).strip()
    return cleaned[:MAX_DISPLAY_NAME_LENGTH].rstrip() or None


def extract_display_hint(payload: Dict[str, Any]) -> Optional[str]:
    """Client-supplied display name; never used for authorization"""
    return clean_display_name(payload.get("displayName"))
