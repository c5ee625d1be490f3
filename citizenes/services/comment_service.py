"""
Comment service: public discussion on a feedback thread.

Comments form at most two levels: a reply's parent is a top-level comment or
an official response of the same feedback. The author's display name is
stored with the comment when it is written and is not refreshed later.
"""
import uuid
from typing import Optional

from sqlalchemy import desc, or_, select
from sqlalchemy.orm import Session

from ..core.exceptions import ForbiddenError, InputValidationError, NotFoundError
from ..core.logging_config import get_logger
from ..models import Comment, CommentLike, Feedback, Response, User
from ..schemas.comment import CommentCreate, CommentDetail, CommentList, CommentUpdate
from .engagement import EngagementEngine
from .notifications import FeedbackNotifier

logger = get_logger("comment_service")


class CommentService:
    """Service for managing comments"""

    def __init__(self, db: Session, notifier: Optional[FeedbackNotifier] = None):
        self.db = db
        self.notifier = notifier or FeedbackNotifier()
        self.engine = EngagementEngine(db)

    def create_comment(
        self,
        data: CommentCreate,
        author: User,
        author_name: Optional[str] = None
    ) -> CommentDetail:
        """
        Add a comment to a feedback.

        Args:
            data: Comment creation data
            author: Logged-in author
            author_name: Name to show instead of the author's display name

        Returns:
            Created comment as seen by its author

        Raises:
            NotFoundError: If the feedback does not exist
            InputValidationError: If parent_id is not a valid parent on this feedback
        """
        feedback = self._get_feedback(data.feedback_id)
        if data.parent_id:
            self._validate_parent(data.parent_id, feedback.id)

        try:
            comment = Comment(
                id=str(uuid.uuid4()),
                feedback_id=feedback.id,
                parent_id=data.parent_id,
                message=data.message,
                author_id=author.id,
                author_name=author_name or author.display_name,
                attachments=list(data.attachments),
                likes=0
            )
            self.db.add(comment)
            self.db.commit()
            self.db.refresh(comment)

        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create comment: {e}")
            raise

        logger.info("Created comment", comment_id=comment.id, feedback_id=feedback.id)
        self.notifier.comment_added(comment, feedback)
        return CommentDetail.from_comment(comment, author.id)

    def get_entity(self, comment_id: str) -> Comment:
        comment = self.db.query(Comment).filter(Comment.id == comment_id).first()
        if not comment:
            raise NotFoundError("Comment", comment_id)
        return comment

    def get_comment(self, comment_id: str, viewer: Optional[User] = None) -> CommentDetail:
        return CommentDetail.from_comment(self.get_entity(comment_id), viewer.id if viewer else None)

    def list_comments(
        self,
        feedback_id: str,
        limit: int = 10,
        offset: int = 0,
        viewer: Optional[User] = None
    ) -> CommentList:
        """Comments on a feedback, newest first"""
        self._get_feedback(feedback_id)
        query = self.db.query(Comment).filter(Comment.feedback_id == feedback_id)
        return self._page(query, limit, offset, viewer)

    def list_by_author(self, user_id: str, caller: User, limit: int = 10, offset: int = 0) -> CommentList:
        """
        Comments written by a user.

        Raises:
            ForbiddenError: If caller is neither the user nor an admin
        """
        if not caller.is_admin and caller.id != user_id:
            raise ForbiddenError("Not authorized to view this user's comments")
        query = self.db.query(Comment).filter(Comment.author_id == user_id)
        return self._page(query, limit, offset, caller)

    def update_comment(self, comment_id: str, data: CommentUpdate, caller: User) -> CommentDetail:
        """
        Edit a comment; only its author may.

        Raises:
            NotFoundError: If comment not found
            ForbiddenError: If caller is not the author
        """
        comment = self.get_entity(comment_id)
        if comment.author_id != caller.id:
            raise ForbiddenError("Not authorized to update this comment")

        comment.message = data.message
        if data.attachments is not None:
            comment.attachments = list(data.attachments)
        self.db.commit()
        self.db.refresh(comment)

        logger.info("Updated comment", comment_id=comment_id)
        self.notifier.comment_updated(comment)
        return CommentDetail.from_comment(comment, caller.id)

    def delete_comment(self, comment_id: str, caller: User) -> bool:
        """
        Delete a comment together with its replies.

        Raises:
            NotFoundError: If comment not found
            ForbiddenError: If caller is neither the author nor an admin
        """
        comment = self.get_entity(comment_id)
        if comment.author_id != caller.id and not caller.is_admin:
            raise ForbiddenError("Not authorized to delete this comment")

        try:
            doomed = select(Comment.id).where(or_(Comment.id == comment_id, Comment.parent_id == comment_id))
            self.db.query(CommentLike).filter(CommentLike.comment_id.in_(doomed)).delete(
                synchronize_session=False
            )
            self.db.query(Comment).filter(
                or_(Comment.id == comment_id, Comment.parent_id == comment_id)
            ).delete(synchronize_session=False)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete comment {comment_id}: {e}")
            raise

        logger.info("Deleted comment", comment_id=comment_id)
        return True

    def like_comment(self, comment_id: str, caller: User) -> CommentDetail:
        self.engine.like_comment(comment_id, caller.id)
        return self._engagement_changed(comment_id, caller)

    def unlike_comment(self, comment_id: str, caller: User) -> CommentDetail:
        self.engine.unlike_comment(comment_id, caller.id)
        return self._engagement_changed(comment_id, caller)

    def _engagement_changed(self, comment_id: str, caller: User) -> CommentDetail:
        comment = self.get_entity(comment_id)
        self.notifier.comment_updated(comment)
        return CommentDetail.from_comment(comment, caller.id)

    def _get_feedback(self, feedback_id: str) -> Feedback:
        feedback = self.db.query(Feedback).filter(Feedback.id == feedback_id).first()
        if not feedback:
            raise NotFoundError("Feedback", feedback_id)
        return feedback

    def _validate_parent(self, parent_id: str, feedback_id: str) -> None:
        parent_comment = self.db.query(Comment).filter(Comment.id == parent_id).first()
        if parent_comment:
            if parent_comment.feedback_id != feedback_id:
                raise InputValidationError("Parent comment belongs to another feedback")
            if parent_comment.parent_id is not None:
                raise InputValidationError("Replies cannot be nested more than one level")
            return

        parent_response = self.db.query(Response.feedback_id).filter(Response.id == parent_id).first()
        if not parent_response:
            raise InputValidationError("Parent comment or response not found")
        if parent_response.feedback_id != feedback_id:
            raise InputValidationError("Parent response belongs to another feedback")

    def _page(self, query, limit: int, offset: int, viewer: Optional[User]) -> CommentList:
        total = query.count()
        comments = query.order_by(desc(Comment.created_at), desc(Comment.id)).offset(offset).limit(limit).all()
        viewer_id = viewer.id if viewer else None
        return CommentList(
            comments=[CommentDetail.from_comment(c, viewer_id) for c in comments],
            total=total,
            limit=limit,
            offset=offset
        )
