from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..services.event_broker import EventBroker, get_event_broker
from ..websockets.subscriptions import (
    COMMENT_UPDATES,
    FEEDBACK_UPDATES,
    RESPONSE_UPDATES,
    SubscriptionWebSocket,
)

router = APIRouter()


@router.websocket("/ws/feedback/{feedback_id}")
async def feedback_updated(
    websocket: WebSocket,
    feedback_id: str,
    token: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    broker: EventBroker = Depends(get_event_broker)
):
    """Updated snapshots of one feedback"""
    await SubscriptionWebSocket(db, broker).stream_feedback(websocket, feedback_id, FEEDBACK_UPDATES, token)


@router.websocket("/ws/feedback/{feedback_id}/comments")
async def comment_added(
    websocket: WebSocket,
    feedback_id: str,
    token: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    broker: EventBroker = Depends(get_event_broker)
):
    """New and edited comments on one feedback"""
    await SubscriptionWebSocket(db, broker).stream_feedback(websocket, feedback_id, COMMENT_UPDATES, token)


@router.websocket("/ws/feedback/{feedback_id}/responses")
async def response_added(
    websocket: WebSocket,
    feedback_id: str,
    token: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    broker: EventBroker = Depends(get_event_broker)
):
    """New and edited official responses on one feedback"""
    await SubscriptionWebSocket(db, broker).stream_feedback(websocket, feedback_id, RESPONSE_UPDATES, token)


@router.websocket("/ws/users/{user_id}/feedback")
async def user_feedback_updated(
    websocket: WebSocket,
    user_id: str,
    token: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    broker: EventBroker = Depends(get_event_broker)
):
    """Updates to feedback the user authored or follows"""
    await SubscriptionWebSocket(db, broker).stream_user_feedback(websocket, user_id, token)
