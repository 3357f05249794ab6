import logging
from typing import Any, Dict, Generator, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import get_settings

logger = logging.getLogger("peerchat.storage")

settings = get_settings()


def _engine_kwargs(url: str) -> Dict[str, Any]:
    # Sessions are used from the request threadpool, so SQLite must allow
    # cross-thread use; in-memory databases need a single shared connection.
    if not url.startswith("sqlite"):
        return {}
    kwargs: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return kwargs


engine = create_engine(settings.DATABASE_URL, echo=False, **_engine_kwargs(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

Base = declarative_base()


def init_db() -> None:
    """
    Create all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from peerchat import db_models  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get a database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check that the database is reachable.

    Returns:
        True if a trivial query succeeds, False otherwise.
    """
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Directory lookups (users and rooms are read-only here)
# =============================================================================

def get_user(db: Session, user_id: str):
    from peerchat.db_models import User

    return db.get(User, user_id)


def get_user_display_name(user_id: str) -> Optional[str]:
    """
    Look up a user's public name in the user directory.

    Returns:
        display name, falling back to the full name, or None for unknown users
    """
    with SessionLocal() as db:
        user = get_user(db, user_id)
        return user.public_name if user else None


def get_room_by_slug(db: Session, slug: str):
    """
    Retrieve a room by its slug.

    Returns:
        Room object if found, None otherwise
    """
    from peerchat.db_models import Room

    logger.debug(f"Looking up room by slug: {slug}")
    return db.query(Room).filter(Room.slug == slug).first()


def find_room(slug: str):
    """Room lookup in a short-lived session, for callers outside a request."""
    with SessionLocal() as db:
        return get_room_by_slug(db, slug)


def list_rooms(db: Session) -> List[Dict[str, Any]]:
    from peerchat.db_models import Room

    rooms = db.query(Room).order_by(Room.created_at.asc(), Room.slug.asc()).all()
    return [room.to_dict() for room in rooms]


# =============================================================================
# Message and audit stores (insert-only)
# =============================================================================

def create_message(
    db: Session,
    room_id: str,
    author_id: str,
    body: str,
    flagged: bool,
    flags: List[str],
) -> Dict[str, Any]:
    """
    Insert a new message.

    Args:
        db: Database session
        room_id: Owning room
        author_id: Verified author id
        body: Trimmed message body
        flagged: Moderation verdict
        flags: Moderation categories

    Returns:
        The stored message in its wire shape

    Raises:
        Any database error, after rolling the session back
    """
    from peerchat.db_models import Message

    logger.debug(f"Creating message: room={room_id}, author={author_id}, flagged={flagged}")
    try:
        message = Message(
            room_id=room_id,
            author_id=author_id,
            body=body,
            flagged=flagged,
            flags=list(flags),
        )
        db.add(message)
        db.commit()
        db.refresh(message)
        return message.to_dict()
    except Exception:
        db.rollback()
        raise


def save_message(room_id: str, author_id: str, body: str, flagged: bool, flags: List[str]) -> Dict[str, Any]:
    """create_message in its own session."""
    with SessionLocal() as db:
        return create_message(db, room_id, author_id, body, flagged, flags)


def get_room_messages(db: Session, room_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    """
    Retrieve the most recent messages of a room, oldest first.

    Args:
        db: Database session
        room_id: Room identifier
        limit: Maximum number of messages to return

    Returns:
        List of messages in wire shape
    """
    from peerchat.db_models import Message

    recent = (
        db.query(Message)
        .filter(Message.room_id == room_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(limit)
        .all()
    )
    logger.debug(f"Retrieved {len(recent)} messages for room {room_id}")
    return [message.to_dict() for message in reversed(recent)]


def create_audit_log(db: Session, actor_id: str, action: str, metadata: Dict[str, Any]) -> str:
    """
    Insert an audit entry.

    Returns:
        The audit entry id
    """
    from peerchat.db_models import AuditLog

    try:
        entry = AuditLog(actor_id=actor_id, action=action, metadata_json=metadata)
        db.add(entry)
        db.commit()
        return entry.id
    except Exception:
        db.rollback()
        raise


def write_audit_log(actor_id: str, action: str, metadata: Dict[str, Any]) -> str:
    """create_audit_log in its own session."""
    with SessionLocal() as db:
        return create_audit_log(db, actor_id, action, metadata)


def seed_demo_rooms(db: Session) -> int:
    """
    Create the demo rooms that do not exist yet.

    Returns:
        Number of rooms created
    """
    from peerchat.constants import DEMO_ROOMS
    from peerchat.db_models import Room

    created = 0
    for room_data in DEMO_ROOMS:
        if get_room_by_slug(db, room_data["slug"]) is None:
            db.add(Room(**room_data))
            created += 1
    db.commit()
    if created:
        logger.info(f"Seeded {created} demo rooms")
    return created
