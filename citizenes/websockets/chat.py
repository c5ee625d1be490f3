"""
Chat relay for feedback threads.

Clients send JSON frames ``{"event": ..., "data": ...}``:

- ``join-feedback`` with the feedback id joins that feedback's room
- ``send-message`` with ``feedback_id``, ``message``, ``author_id`` and
  optionally ``author_name`` stores the message as a comment and broadcasts
  ``new-message`` to everyone in the room, the sender included

Problems are reported with an ``error`` frame to the offending connection only.
"""
import json
import uuid
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from ..core.exceptions import CitizenESException
from ..core.logging_config import get_logger, log_chat_message, log_websocket_connection
from ..models import Feedback, User
from ..schemas.comment import ChatMessage, CommentCreate
from ..services.comment_service import CommentService
from ..services.dependencies import resolve_token_user
from ..services.notifications import FeedbackNotifier

logger = get_logger("ws")

JOIN_FEEDBACK = "join-feedback"
SEND_MESSAGE = "send-message"
NEW_MESSAGE = "new-message"
JOINED = "joined"
ERROR = "error"


class ConnectionManager:
    def __init__(self):
        # feedback_id -> connection ids in that room
        self.rooms: Dict[str, Set[str]] = {}
        # connection_id -> WebSocket
        self.connections: Dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket) -> str:
        await websocket.accept()
        connection_id = str(uuid.uuid4())
        self.connections[connection_id] = websocket
        return connection_id

    def join(self, connection_id: str, feedback_id: str):
        self.rooms.setdefault(feedback_id, set()).add(connection_id)

    def disconnect(self, connection_id: str):
        self.connections.pop(connection_id, None)
        for feedback_id in list(self.rooms):
            members = self.rooms[feedback_id]
            members.discard(connection_id)
            if not members:
                del self.rooms[feedback_id]

    def room_size(self, feedback_id: str) -> int:
        return len(self.rooms.get(feedback_id, ()))

    async def send_personal_message(self, connection_id: str, event: str, data: Any):
        websocket = self.connections.get(connection_id)
        if websocket is not None:
            await websocket.send_text(json.dumps({"event": event, "data": data}, default=str))

    async def broadcast(self, feedback_id: str, event: str, data: Any) -> int:
        """Send to every connection in the room; a failing connection is dropped."""
        message = json.dumps({"event": event, "data": data}, default=str)
        sent = 0
        for connection_id in list(self.rooms.get(feedback_id, ())):
            websocket = self.connections.get(connection_id)
            if websocket is None:
                continue
            try:
                await websocket.send_text(message)
                sent += 1
            except Exception as e:
                logger.warning(f"Dropping chat connection after failed send: {e}", connection_id=connection_id)
                self.disconnect(connection_id)
        return sent


manager = ConnectionManager()


class ChatRelay:
    def __init__(self, db: Session, notifier: Optional[FeedbackNotifier] = None, connections: ConnectionManager = None):
        self.db = db
        self.notifier = notifier or FeedbackNotifier()
        self.manager = connections or manager

    async def handle_connection(self, websocket: WebSocket, token: Optional[str] = None):
        user = resolve_token_user(self.db, token)
        connection_id = await self.manager.connect(websocket)
        log_websocket_connection("connect", "chat", connection_id=connection_id, user_id=user.id if user else None)

        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    frame = json.loads(raw)
                except json.JSONDecodeError:
                    await self._error(connection_id, "Invalid message format")
                    continue

                if not isinstance(frame, dict):
                    await self._error(connection_id, "Invalid message format")
                    continue

                event = frame.get("event")
                data = frame.get("data")
                if event == JOIN_FEEDBACK:
                    await self.join_feedback(connection_id, data)
                elif event == SEND_MESSAGE:
                    await self.send_message(connection_id, data, user)
                else:
                    await self._error(connection_id, f"Unknown event: {event}")

        except WebSocketDisconnect:
            pass
        finally:
            self.manager.disconnect(connection_id)
            log_websocket_connection("disconnect", "chat", connection_id=connection_id)

    async def join_feedback(self, connection_id: str, data: Any):
        feedback_id = data.get("feedback_id") if isinstance(data, dict) else data
        if not isinstance(feedback_id, str) or not feedback_id:
            await self._error(connection_id, "Feedback id is required")
            return

        try:
            feedback = self._get_feedback(feedback_id)
        except Exception as e:
            logger.error(f"Error joining feedback room: {e}", feedback_id=feedback_id)
            await self._error(connection_id, "Failed to join feedback room")
            return

        if feedback is None:
            await self._error(connection_id, "Feedback not found")
            return
        if not feedback.chat_enabled:
            await self._error(connection_id, "Chat is not enabled for this feedback")
            return

        self.manager.join(connection_id, feedback_id)
        logger.info("Connection joined feedback room", connection_id=connection_id, feedback_id=feedback_id)
        await self.manager.send_personal_message(connection_id, JOINED, {"feedback_id": feedback_id})

    async def send_message(self, connection_id: str, data: Any, user: Optional[User] = None):
        if not isinstance(data, dict):
            await self._error(connection_id, "Invalid message format")
            return

        feedback_id = data.get("feedback_id")
        message = (data.get("message") or "").strip()
        author_id = data.get("author_id") or (user.id if user else None)
        author_name = data.get("author_name")

        if not feedback_id or not message or not author_id:
            await self._error(connection_id, "feedback_id, message and author_id are required")
            return
        if user is not None and author_id != user.id:
            await self._error(connection_id, "Author does not match the authenticated user")
            return

        try:
            feedback = self._get_feedback(feedback_id)
            if feedback is None or not feedback.chat_enabled:
                await self._error(connection_id, "Invalid feedback or chat disabled")
                return

            author = user or self.db.query(User).filter(User.id == author_id).first()
            if author is None:
                await self._error(connection_id, "Author not found")
                return

            comment = CommentService(self.db, self.notifier).create_comment(
                CommentCreate(feedback_id=feedback_id, message=message),
                author,
                author_name=author_name
            )
        except CitizenESException as e:
            await self._error(connection_id, e.message)
            return
        except Exception as e:
            logger.error(f"Error sending chat message: {e}", feedback_id=feedback_id)
            await self._error(connection_id, "Failed to send message")
            return

        payload = ChatMessage(
            id=comment.id,
            message=comment.message,
            author_name=comment.author_name,
            created_at=comment.created_at
        ).model_dump(mode="json")
        await self.manager.broadcast(feedback_id, NEW_MESSAGE, payload)
        log_chat_message(feedback_id, author.id, message_length=len(message))

    def _get_feedback(self, feedback_id: str) -> Optional[Feedback]:
        # The session outlives single messages; always read current chat settings
        return self.db.query(Feedback).populate_existing().filter(Feedback.id == feedback_id).first()

    async def _error(self, connection_id: str, message: str):
        await self.manager.send_personal_message(connection_id, ERROR, {"message": message})
