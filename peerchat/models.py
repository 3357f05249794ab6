"""
In-memory data models for the peer room chat service
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from .constants import MODERATOR_ROLES
from .validators import clean_display_name


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ModerationResult:
    """Outcome of keyword moderation; flagged is true iff flags is non-empty"""
    flagged: bool
    flags: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class AccessDecision:
    """Outcome of the room access policy"""
    allowed: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class UserIdentity:
    """Identity decoded from a verified bearer token"""
    user_id: str
    role: str = ""
    age_bracket: Optional[str] = None
    consent_minor_ok: bool = False

    @property
    def is_moderator(self) -> bool:
        return self.role in MODERATOR_ROLES


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    DISCONNECTED = "disconnected"


@dataclass
class ClientConnection:
    """One live WebSocket connection and the channels it belongs to"""
    identity: UserIdentity
    websocket: Any = None
    connection_id: str = field(default_factory=lambda: f"ws_{uuid.uuid4().hex[:12]}")
    display_name: Optional[str] = None
    ip_address: str = "unknown"
    connected_at: datetime = field(default_factory=_utcnow)
    channels: Set[str] = field(default_factory=set)
    message_count: int = 0
    window_started_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        """Strip control characters from the display name and cap its length"""
        if self.display_name:
            self.display_name = clean_display_name(self.display_name)

    @property
    def user_id(self) -> str:
        return self.identity.user_id

    async def send_json(self, payload: Dict[str, Any]):
        """Serialize and send one event frame"""
        await self.websocket.send_text(json.dumps(payload, default=str))

    def can_send_message(self, rate_limit_per_minute: int) -> bool:
        """Check the rolling one-minute send window; a limit of 0 disables it"""
        if rate_limit_per_minute <= 0:
            return True
        if _utcnow() - self.window_started_at >= timedelta(seconds=60):
            return True
        return self.message_count < rate_limit_per_minute

    def update_message_stats(self):
        """Count a sent message in the current window"""
        now = _utcnow()
        if now - self.window_started_at >= timedelta(seconds=60):
            self.window_started_at = now
            self.message_count = 1
        else:
            self.message_count += 1
