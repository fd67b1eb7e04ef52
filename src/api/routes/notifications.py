"""
Notification routes
Polling endpoint, mark-all-read, focus hand-off and the live websocket feed
"""
import asyncio
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from loguru import logger
from pydantic import BaseModel

from api.auth import session_from_token
from api.dependencies import AppSettings, CurrentSession, Store
from services.errors import ServiceError
from services.focus import focus_store
from services.notifications import (
    NotificationFeed, NotificationState, collect_notifications, mark_notifications_read
)

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


class FocusRequest(BaseModel):
    submission_id: str


@router.get("")
async def get_notifications(session: CurrentSession, store: Store, settings: AppSettings):
    """The 10 most recent comments concerning the current user plus the unread count"""
    state = collect_notifications(
        store, session, limit=settings.notification_limit, batch_size=settings.batch_size
    )
    return state.as_dict()


@router.post("/read")
async def mark_all_read(session: CurrentSession, store: Store):
    last_read_at = mark_notifications_read(store, session)
    return {"last_read_at": last_read_at, "unread_count": 0}


@router.post("/focus")
async def focus_submission(data: FocusRequest, session: CurrentSession):
    """Remember which submission's discussion to open next"""
    focus_store.remember(session.uid, data.submission_id)
    return {"focus_submission_id": data.submission_id}


@router.websocket("/ws")
async def notifications_socket(
    websocket: WebSocket,
    store: Store,
    settings: AppSettings,
    token: str = Query(...),
):
    """
    Live notification feed

    Sends the full notification state after every change. The client may send
    `{"action": "mark_all_read"}` to move the read watermark to now.
    """
    try:
        session = session_from_token(store, token, settings)
    except ServiceError as e:
        logger.warning(f"Notification socket rejected: {e.message}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    updates: asyncio.Queue = asyncio.Queue()
    feed = NotificationFeed(store, session, limit=settings.notification_limit, batch_size=settings.batch_size)
    feed.add_listener(updates.put_nowait)

    async def send_updates():
        while True:
            state: NotificationState = await updates.get()
            await websocket.send_json(state.as_dict())

    sender = asyncio.create_task(send_updates())
    try:
        async with feed:
            while True:
                message = await websocket.receive_json()
                if isinstance(message, dict) and message.get("action") == "mark_all_read":
                    feed.mark_all_read()
                else:
                    await websocket.send_json({"error": "Unknown action"})
    except WebSocketDisconnect:
        logger.info(f"Notification socket closed for {session.uid}")
    finally:
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)
