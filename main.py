"""
Peer Room Chat Server
Real-time peer support rooms with access control, keyword moderation and moderator alerts
"""

import json
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from peerchat import (
    MessageHandler,
    MessageRejected,
    RoomManager,
    SessionManager,
    UserIdentity,
    can_access,
    configure_logging,
    get_logger,
    log_security_event,
    log_system_event,
    log_websocket_event,
)
from peerchat import storage
from peerchat.auth import extract_bearer_token, verify_token
from peerchat.config import get_settings
from peerchat.schemas import MessageCreate
from peerchat.constants import (
    DEFAULT_HISTORY_LIMIT,
    ERROR_MESSAGES,
    EVENT_ERROR,
    MAX_HISTORY_LIMIT,
    WS_POLICY_VIOLATION,
)

settings = get_settings()
logger = configure_logging(settings.LOG_LEVEL)

# Global instances
room_manager = RoomManager()
message_handler = MessageHandler(room_manager, settings.RATE_LIMIT_MESSAGES_PER_MINUTE)
session_manager = SessionManager(room_manager, message_handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    logger.info("Peer Room Chat Server starting up...")
    storage.init_db()

    if settings.SEED_DEMO_ROOMS:
        with storage.SessionLocal() as db:
            storage.seed_demo_rooms(db)

    yield

    logger.info("Peer Room Chat Server shutting down...")


app = FastAPI(
    title="Peer Room Chat Server",
    description="Real-time peer support rooms with moderation",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


def get_current_identity(authorization: Optional[str] = Header(None)) -> UserIdentity:
    """Bearer authentication for HTTP routes"""
    token = extract_bearer_token({}, {"authorization": authorization or ""})
    identity = verify_token(token)
    if identity is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return identity


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    connection_stats = await room_manager.get_connection_stats()
    if not storage.check_db_health():
        raise HTTPException(status_code=503, detail="Database unavailable")

    return {
        "status": "healthy",
        "connections": connection_stats,
    }


@app.get("/stats")
async def get_stats():
    """Get live connection statistics"""
    return {
        "server": "Peer Room Chat Server",
        "connections": await room_manager.get_connection_stats(),
    }


@app.get("/rooms")
def list_rooms(db: Session = Depends(storage.get_db)):
    """Public room list"""
    return {"rooms": storage.list_rooms(db)}


@app.get("/rooms/{slug}")
def get_room(slug: str, identity: UserIdentity = Depends(get_current_identity),
             db: Session = Depends(storage.get_db)):
    """Room metadata for signed-in users"""
    room = storage.get_room_by_slug(db, slug)
    if room is None:
        raise HTTPException(status_code=404, detail=ERROR_MESSAGES["room_not_found"])
    return room.to_dict()


@app.get("/rooms/{slug}/messages")
def get_room_messages(
    slug: str,
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=MAX_HISTORY_LIMIT),
    identity: UserIdentity = Depends(get_current_identity),
    db: Session = Depends(storage.get_db),
):
    """Recent message history, subject to the same access policy as joining"""
    room = storage.get_room_by_slug(db, slug)
    if room is None:
        raise HTTPException(status_code=404, detail=ERROR_MESSAGES["room_not_found"])

    decision = can_access(identity.age_bracket, identity.consent_minor_ok, room.is_minor_safe)
    if not decision.allowed:
        raise HTTPException(status_code=403, detail=decision.reason)

    return {
        "room": room.to_dict(),
        "messages": storage.get_room_messages(db, room.id, limit),
    }


@app.post("/rooms/{slug}/messages", status_code=201)
async def post_room_message(slug: str, payload: MessageCreate,
                            identity: UserIdentity = Depends(get_current_identity)):
    """Post a message over HTTP; live room members receive it like any other"""
    try:
        return await message_handler.post_message(identity, slug, payload.body)
    except MessageRejected as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Main WebSocket endpoint: authenticate, then dispatch events until disconnect"""
    client_ip = websocket.client.host if websocket.client else "unknown"

    # Phase 1: Handshake - refuse before accepting unless the token verifies
    token = extract_bearer_token(websocket.query_params, websocket.headers)
    identity = session_manager.authenticate(token, client_ip)
    if identity is None:
        await websocket.close(code=WS_POLICY_VIOLATION, reason="Authentication error")
        return

    await websocket.accept()
    session = await session_manager.open_session(websocket, identity, client_ip)
    connection_id = session.client.connection_id
    log_websocket_event("connection_accepted", connection_id, f"user={identity.user_id}")

    # Phase 2: Event loop
    try:
        while True:
            message_data = await websocket.receive_text()

            try:
                payload = json.loads(message_data)
            except json.JSONDecodeError:
                await websocket.send_text(json.dumps({
                    "type": EVENT_ERROR,
                    "message": ERROR_MESSAGES["invalid_json"]
                }))
                continue

            try:
                await session.handle_event(payload)
            except WebSocketDisconnect:
                raise
            except Exception as e:
                logger.error(f"Event handling error for {identity.user_id}: {e}")
                log_security_event("message_loop_error", {
                    "user_id": identity.user_id,
                    "connection": connection_id,
                    "error": str(e)
                })

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for {identity.user_id}")

    finally:
        # Phase 3: Cleanup - release every membership
        await session.disconnect()


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Log unexpected HTTP errors without leaking details"""
    logger.error(f"Unhandled exception: {exc}")
    log_system_event("unhandled_exception", f"path={request.url.path} | error={exc}", level="error")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


if __name__ == "__main__":
    logger.info("Starting Peer Room Chat Server...")

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
        log_level=settings.LOG_LEVEL.lower(),
        access_log=True,
        ws_ping_interval=20,
        ws_ping_timeout=10,
    )
