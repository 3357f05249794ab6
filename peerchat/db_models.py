"""
SQLAlchemy ORM models for the peer room tables.

Users and rooms are owned by other services (auth, admin tooling) and are only
read here. Messages and audit entries are insert-only.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from .storage import Base


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """ISO-8601 UTC with a Z suffix; SQLite returns naive datetimes"""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=_new_id)
    email = Column(String, unique=True, nullable=True)
    name = Column(String, nullable=True)
    display_name = Column(String, nullable=True)
    role = Column(String, nullable=False, default="student")
    age_bracket = Column(String, nullable=True)  # MINOR / ADULT
    consent_minor_ok = Column(Boolean, nullable=False, default=False)

    @property
    def public_name(self):
        return self.display_name or self.name


class Room(Base):
    __tablename__ = "peer_rooms"

    id = Column(String, primary_key=True, default=_new_id)
    slug = Column(String, unique=True, nullable=False, index=True)
    title = Column(String, nullable=False)
    topic = Column(String, nullable=True)
    is_minor_safe = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "slug": self.slug,
            "title": self.title,
            "topic": self.topic,
            "isMinorSafe": self.is_minor_safe,
        }


class Message(Base):
    __tablename__ = "peer_messages"

    id = Column(String, primary_key=True, default=_new_id)
    room_id = Column(String, ForeignKey("peer_rooms.id"), nullable=False, index=True)
    author_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    body = Column(Text, nullable=False)
    flagged = Column(Boolean, nullable=False, default=False)
    flags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=_utcnow, index=True)

    author = relationship("User", lazy="joined")

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape of a receiveMessage event"""
        return {
            "id": self.id,
            "body": self.body,
            "createdAt": format_timestamp(self.created_at),
            "flagged": self.flagged,
            "flags": list(self.flags or []),
            "author": {
                "id": self.author_id,
                "displayName": self.author.public_name if self.author else None,
            },
        }


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String, primary_key=True, default=_new_id)
    actor_id = Column(String, nullable=False, index=True)
    action = Column(String, nullable=False, index=True)
    metadata_json = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=_utcnow)
