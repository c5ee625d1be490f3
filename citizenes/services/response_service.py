"""
Response service: official replies from staff.

A response carries a status_update; when it differs from the feedback's
current status the feedback moves to it through the status lifecycle in the
same transaction that stores the response.
"""
import uuid
from typing import Optional

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..core.exceptions import ForbiddenError, NotFoundError
from ..core.logging_config import get_logger
from ..models import Comment, CommentLike, Feedback, Response, ResponseLike, User
from ..schemas.response import ResponseCreate, ResponseDetail, ResponseList, ResponseUpdate
from .engagement import EngagementEngine
from .notifications import FeedbackNotifier
from .status_lifecycle import SOURCE_RESPONSE, apply_status_change

logger = get_logger("response_service")


class ResponseService:
    """Service for managing official responses"""

    def __init__(self, db: Session, notifier: Optional[FeedbackNotifier] = None):
        self.db = db
        self.notifier = notifier or FeedbackNotifier()
        self.engine = EngagementEngine(db)

    def create_response(self, data: ResponseCreate, caller: User) -> ResponseDetail:
        """
        Respond to a feedback, applying its status_update.

        Args:
            data: Response creation data
            caller: Admin writing the response

        Returns:
            Created response

        Raises:
            ForbiddenError: If caller is not an admin
            NotFoundError: If the feedback does not exist
        """
        if not caller.is_admin:
            raise ForbiddenError("Only admins can respond to feedback")

        feedback = self.db.query(Feedback).filter(Feedback.id == data.feedback_id).first()
        if not feedback:
            raise NotFoundError("Feedback", data.feedback_id)

        try:
            response = Response(
                id=str(uuid.uuid4()),
                feedback_id=feedback.id,
                by_id=caller.id,
                message=data.message,
                attachments=list(data.attachments),
                status_update=data.status_update.value,
                likes=0
            )
            self.db.add(response)
            apply_status_change(
                self.db, feedback, data.status_update, caller, note=data.message, source=SOURCE_RESPONSE
            )
            self.db.commit()
            self.db.refresh(response)
            self.db.refresh(feedback)

        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create response: {e}")
            raise

        logger.info(
            "Created response",
            response_id=response.id,
            feedback_id=feedback.id,
            status_update=response.status_update
        )
        self.notifier.response_added(response, feedback)
        return ResponseDetail.from_response(response, caller.id)

    def get_entity(self, response_id: str) -> Response:
        response = self.db.query(Response).filter(Response.id == response_id).first()
        if not response:
            raise NotFoundError("Response", response_id)
        return response

    def get_response(self, response_id: str, viewer: Optional[User] = None) -> ResponseDetail:
        return ResponseDetail.from_response(self.get_entity(response_id), viewer.id if viewer else None)

    def list_responses(
        self,
        feedback_id: str,
        limit: int = 10,
        offset: int = 0,
        viewer: Optional[User] = None
    ) -> ResponseList:
        """Responses to a feedback, newest first"""
        if not self.db.query(Feedback.id).filter(Feedback.id == feedback_id).first():
            raise NotFoundError("Feedback", feedback_id)

        query = self.db.query(Response).filter(Response.feedback_id == feedback_id)
        total = query.count()
        responses = query.order_by(desc(Response.created_at), desc(Response.id)).offset(offset).limit(limit).all()
        viewer_id = viewer.id if viewer else None
        return ResponseList(
            responses=[ResponseDetail.from_response(r, viewer_id) for r in responses],
            total=total,
            limit=limit,
            offset=offset
        )

    def update_response(self, response_id: str, data: ResponseUpdate, caller: User) -> ResponseDetail:
        """
        Edit a response; only its author may.

        Raises:
            NotFoundError: If response not found
            ForbiddenError: If caller is not the author
        """
        response = self.get_entity(response_id)
        if response.by_id != caller.id:
            raise ForbiddenError("Not authorized to update this response")

        response.message = data.message
        if data.attachments is not None:
            response.attachments = list(data.attachments)
        self.db.commit()
        self.db.refresh(response)

        logger.info("Updated response", response_id=response_id)
        self.notifier.response_updated(response)
        return ResponseDetail.from_response(response, caller.id)

    def delete_response(self, response_id: str, caller: User) -> bool:
        """
        Delete a response and the comments replying to it.

        Raises:
            NotFoundError: If response not found
            ForbiddenError: If caller is neither the author nor an admin
        """
        response = self.get_entity(response_id)
        if response.by_id != caller.id and not caller.is_admin:
            raise ForbiddenError("Not authorized to delete this response")

        try:
            replies = select(Comment.id).where(Comment.parent_id == response_id)
            self.db.query(CommentLike).filter(CommentLike.comment_id.in_(replies)).delete(
                synchronize_session=False
            )
            self.db.query(Comment).filter(Comment.parent_id == response_id).delete(synchronize_session=False)
            self.db.query(ResponseLike).filter(ResponseLike.response_id == response_id).delete(
                synchronize_session=False
            )
            self.db.query(Response).filter(Response.id == response_id).delete(synchronize_session=False)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete response {response_id}: {e}")
            raise

        logger.info("Deleted response", response_id=response_id)
        return True

    def like_response(self, response_id: str, caller: User) -> ResponseDetail:
        self.engine.like_response(response_id, caller.id)
        return self._engagement_changed(response_id, caller)

    def unlike_response(self, response_id: str, caller: User) -> ResponseDetail:
        self.engine.unlike_response(response_id, caller.id)
        return self._engagement_changed(response_id, caller)

    def _engagement_changed(self, response_id: str, caller: User) -> ResponseDetail:
        response = self.get_entity(response_id)
        self.notifier.response_updated(response)
        return ResponseDetail.from_response(response, caller.id)
