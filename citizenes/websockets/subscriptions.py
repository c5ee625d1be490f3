"""
WebSocket subscription streams.

Each stream needs a valid token, checked once when the client subscribes.
Events are forwarded as JSON with the viewer-relative fields worked out for
the subscribing user. Close codes: 4401 no valid token, 4403 not allowed,
4404 unknown feedback.
"""
import asyncio
from typing import Iterable, Optional

from fastapi import WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from ..core.logging_config import get_logger, log_websocket_connection
from ..models import Feedback, User
from ..services.dependencies import resolve_token_user
from ..services.event_broker import EventBroker, EventType, Subscription, feedback_topic, user_topic

logger = get_logger("ws")

CLOSE_UNAUTHENTICATED = 4401
CLOSE_FORBIDDEN = 4403
CLOSE_NOT_FOUND = 4404

FEEDBACK_UPDATES = (EventType.FEEDBACK_UPDATED,)
COMMENT_UPDATES = (EventType.COMMENT_ADDED, EventType.COMMENT_UPDATED)
RESPONSE_UPDATES = (EventType.RESPONSE_ADDED, EventType.RESPONSE_UPDATED)
USER_FEEDBACK_UPDATES = (EventType.USER_FEEDBACK_UPDATED,)


class SubscriptionWebSocket:
    def __init__(self, db: Session, broker: EventBroker):
        self.db = db
        self.broker = broker

    async def stream_feedback(
        self,
        websocket: WebSocket,
        feedback_id: str,
        event_types: Iterable[EventType],
        token: Optional[str] = None
    ):
        """Stream one kind of activity on a feedback"""
        user = await self._authenticate(websocket, token)
        if user is None:
            return

        if not self.db.query(Feedback.id).filter(Feedback.id == feedback_id).first():
            await websocket.close(code=CLOSE_NOT_FOUND, reason="Feedback not found")
            return

        subscription = self.broker.subscribe(feedback_topic(feedback_id), event_types)
        await self._forward(websocket, subscription, user)

    async def stream_user_feedback(self, websocket: WebSocket, user_id: str, token: Optional[str] = None):
        """Stream updates to feedback a user authored or follows; self or admin only"""
        user = await self._authenticate(websocket, token)
        if user is None:
            return

        if user.id != user_id and not user.is_admin:
            await websocket.close(code=CLOSE_FORBIDDEN, reason="Not authorized to subscribe to these updates")
            return

        subscription = self.broker.subscribe(user_topic(user_id), USER_FEEDBACK_UPDATES)
        await self._forward(websocket, subscription, user)

    async def _authenticate(self, websocket: WebSocket, token: Optional[str]) -> Optional[User]:
        user = resolve_token_user(self.db, token)
        if user is None:
            await websocket.close(code=CLOSE_UNAUTHENTICATED, reason="You must be logged in")
        return user

    async def _forward(self, websocket: WebSocket, subscription: Subscription, user: User):
        # Subscribed before accepting, so nothing published after the handshake is missed
        receiver = None
        try:
            await websocket.accept()
            log_websocket_connection("subscribe", subscription.topic, user_id=user.id)

            receiver = asyncio.create_task(self._wait_for_disconnect(websocket))
            while True:
                getter = asyncio.create_task(subscription.get())
                done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
                if getter not in done:
                    getter.cancel()
                    break

                event = getter.result()
                await websocket.send_json(event.to_message(user.id))

        except (WebSocketDisconnect, RuntimeError) as e:
            logger.info(f"Subscription stream ended: {e}", topic=subscription.topic)
        finally:
            if receiver is not None:
                receiver.cancel()
            subscription.close()
            log_websocket_connection("unsubscribe", subscription.topic, user_id=user.id)

    @staticmethod
    async def _wait_for_disconnect(websocket: WebSocket):
        # Incoming frames carry nothing; keep reading until the client goes away
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            return
