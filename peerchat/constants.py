"""
Limits, channel names and protocol constants for the peer room chat service
"""

# Message limits
MAX_MESSAGE_LENGTH = 1000
AUDIT_PREVIEW_LENGTH = 100
MAX_DISPLAY_NAME_LENGTH = 50
MAX_HISTORY_LIMIT = 100
DEFAULT_HISTORY_LIMIT = 50

# Broadcast channels
ROOM_CHANNEL_PREFIX = "room:"
MODERATORS_CHANNEL = "moderators"

# Roles
ROLE_STUDENT = "student"
ROLE_COUNSELOR = "counselor"
ROLE_MODERATOR = "moderator"
ROLE_ADMIN = "admin"
MODERATOR_ROLES = frozenset({ROLE_MODERATOR, ROLE_ADMIN})

# Age brackets
AGE_MINOR = "MINOR"
AGE_ADULT = "ADULT"

# Audit actions
AUDIT_ACTION_MESSAGE_FLAGGED = "MESSAGE_FLAGGED_REALTIME"

# Control characters stripped from display names
CONTROL_CHARS_PATTERN = r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]'

# WebSocket close codes
WS_POLICY_VIOLATION = 1008

# Client -> server events
EVENT_JOIN_ROOM = "joinRoom"
EVENT_SEND_MESSAGE = "sendMessage"
EVENT_LEAVE_ROOM = "leaveRoom"

# Server -> client events
EVENT_JOINED_ROOM = "joinedRoom"
EVENT_USER_JOINED = "userJoined"
EVENT_RECEIVE_MESSAGE = "receiveMessage"
EVENT_MESSAGE_FLAGGED = "messageFlagged"
EVENT_USER_LEFT = "userLeft"
EVENT_ERROR = "error"

# Required payload fields per client event
REQUIRED_FIELDS = {
    EVENT_JOIN_ROOM: ["slug"],
    EVENT_SEND_MESSAGE: ["slug", "body"],
    EVENT_LEAVE_ROOM: ["slug"],
}

# Demo rooms created when SEED_DEMO_ROOMS is enabled
DEMO_ROOMS = [
    {"slug": "anxiety-support", "title": "Anxiety Support",
     "topic": "Anxiety & Stress Management", "is_minor_safe": True},
    {"slug": "academic-stress", "title": "Academic Stress",
     "topic": "Study & Exam Pressure", "is_minor_safe": True},
    {"slug": "freshman-chat", "title": "Freshman Chat",
     "topic": "New Student Connection", "is_minor_safe": True},
    {"slug": "general-wellness", "title": "General Wellness",
     "topic": "Mental Health & Wellbeing", "is_minor_safe": False},
]

# Error messages
ERROR_MESSAGES = {
    "empty_message": "Message cannot be empty",
    "message_too_long": f"Message too long (max {MAX_MESSAGE_LENGTH} characters)",
    "room_not_found": "Room not found",
    "join_failed": "Failed to join room",
    "send_failed": "Failed to send message",
    "rate_limit": "Rate limit exceeded, please slow down",
    "invalid_json": "Invalid JSON format",
    "invalid_payload": "Payload must be a JSON object",
    "unknown_type": "Unknown message type: {type}",
    "missing_field": "Missing required field: {field}",
}
