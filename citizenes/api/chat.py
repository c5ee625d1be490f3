from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..services.dependencies import get_notifier
from ..services.notifications import FeedbackNotifier
from ..websockets.chat import ChatRelay

router = APIRouter()


@router.websocket("/ws/chat")
async def websocket_chat_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None, description="Optional access token; when given, messages are sent as this user"),
    db: Session = Depends(get_db),
    notifier: FeedbackNotifier = Depends(get_notifier)
):
    """Live chat on feedback threads"""
    chat_relay = ChatRelay(db, notifier)
    await chat_relay.handle_connection(websocket, token)
