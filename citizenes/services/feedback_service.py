"""
Feedback service: submission, lookup, updates, engagement and statistics.
"""
import secrets
import uuid
from typing import Dict, List, Optional

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    AuthenticationRequiredError,
    ConflictError,
    ForbiddenError,
    InputValidationError,
    NotFoundError,
)
from ..core.logging_config import get_logger
from ..models import (
    Comment,
    CommentLike,
    Feedback,
    FeedbackFollower,
    FeedbackLike,
    FeedbackStatus,
    FeedbackStatusChange,
    PRIORITY_BY_TYPE,
    Response,
    ResponseLike,
    User,
)
from ..schemas.feedback import (
    FeedbackCreate,
    FeedbackDetail,
    FeedbackFilters,
    FeedbackList,
    FeedbackStats,
    FeedbackStatusUpdate,
    FeedbackUpdate,
    StatusChangeResponse,
)
from .engagement import EngagementEngine
from .notifications import FeedbackNotifier
from .status_lifecycle import apply_status_change, authorize_feedback_change, record_initial_status

logger = get_logger("feedback_service")

MAX_TICKET_ATTEMPTS = 20
USER_RELATIONS = ("authored", "assigned", "liked", "followed")


def generate_ticket_id(db: Session) -> str:
    """
    Random ticket code that no feedback uses yet.

    Raises:
        ConflictError: If no free code was found
    """
    for _ in range(MAX_TICKET_ATTEMPTS):
        ticket_id = "".join(
            secrets.choice(settings.TICKET_ID_ALPHABET) for _ in range(settings.TICKET_ID_LENGTH)
        )
        if not db.query(Feedback.id).filter(Feedback.ticket_id == ticket_id).first():
            return ticket_id
        logger.debug("Ticket id collision, regenerating", ticket_id=ticket_id)

    raise ConflictError("Could not allocate a unique ticket id")


def _viewer_id(viewer: Optional[User]) -> Optional[str]:
    return viewer.id if viewer else None


class FeedbackService:
    """Service for managing feedback tickets"""

    def __init__(self, db: Session, notifier: Optional[FeedbackNotifier] = None):
        self.db = db
        self.notifier = notifier or FeedbackNotifier()
        self.engine = EngagementEngine(db)

    def create_feedback(self, data: FeedbackCreate, caller: Optional[User]) -> FeedbackDetail:
        """
        Submit feedback.

        Anonymous feedback may be submitted without logging in and never
        records an author. Otherwise the caller becomes author and first
        follower.

        Args:
            data: Feedback creation data
            caller: Logged-in user, if any

        Returns:
            Created feedback as seen by the caller

        Raises:
            AuthenticationRequiredError: Non-anonymous feedback without a caller
        """
        if not data.is_anonymous and caller is None:
            raise AuthenticationRequiredError("You must be logged in for non-anonymous feedback")

        author = None if data.is_anonymous else caller
        location = data.location

        try:
            feedback = Feedback(
                id=str(uuid.uuid4()),
                ticket_id=generate_ticket_id(self.db),
                title=data.title,
                description=data.description,
                type=data.type.value,
                status=FeedbackStatus.OPEN.value,
                category=data.category,
                subcategory=data.subcategory,
                priority=PRIORITY_BY_TYPE[data.type.value],
                author_id=author.id if author else None,
                attachments=list(data.attachments),
                chat_enabled=data.chat_enabled,
                is_anonymous=data.is_anonymous,
                likes=0,
                location_country=location.country if location else None,
                location_province=location.province if location else None,
                location_district=location.district if location else None,
                location_sector=location.sector if location else None,
                location_details=location.other_details if location else None,
            )
            self.db.add(feedback)
            if author:
                feedback.follower_rows.append(FeedbackFollower(user_id=author.id))
            record_initial_status(self.db, feedback, author)

            self.db.commit()
            self.db.refresh(feedback)

        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create feedback: {e}")
            raise

        logger.info(
            "Created feedback",
            feedback_id=feedback.id,
            ticket_id=feedback.ticket_id,
            is_anonymous=feedback.is_anonymous
        )
        self.notifier.feedback_updated(feedback)
        return FeedbackDetail.from_feedback(feedback, _viewer_id(caller))

    def get_entity(self, feedback_id: str) -> Feedback:
        feedback = self.db.query(Feedback).filter(Feedback.id == feedback_id).first()
        if not feedback:
            raise NotFoundError("Feedback", feedback_id)
        return feedback

    def get_feedback(self, feedback_id: str, viewer: Optional[User] = None) -> FeedbackDetail:
        """
        Get a feedback by ID.

        Raises:
            NotFoundError: If feedback not found
        """
        return FeedbackDetail.from_feedback(self.get_entity(feedback_id), _viewer_id(viewer))

    def get_by_ticket_id(self, ticket_id: str, viewer: Optional[User] = None) -> FeedbackDetail:
        feedback = self.db.query(Feedback).filter(Feedback.ticket_id == ticket_id.upper()).first()
        if not feedback:
            raise NotFoundError("Feedback", ticket_id)
        return FeedbackDetail.from_feedback(feedback, _viewer_id(viewer))

    def list_feedbacks(
        self,
        filters: Optional[FeedbackFilters] = None,
        limit: int = 10,
        offset: int = 0,
        viewer: Optional[User] = None
    ) -> FeedbackList:
        """List feedback matching the filters, newest first"""
        filters = filters or FeedbackFilters()
        query = self.db.query(Feedback)

        if filters.category:
            query = query.filter(Feedback.category == filters.category)
        if filters.subcategory:
            query = query.filter(Feedback.subcategory == filters.subcategory)
        if filters.status:
            query = query.filter(Feedback.status == filters.status.value)
        if filters.type:
            query = query.filter(Feedback.type == filters.type.value)
        if filters.is_anonymous is not None:
            query = query.filter(Feedback.is_anonymous == filters.is_anonymous)
        if filters.country:
            query = query.filter(Feedback.location_country == filters.country)
        if filters.province:
            query = query.filter(Feedback.location_province == filters.province)
        if filters.author_id:
            query = query.filter(Feedback.author_id == filters.author_id)

        return self._page(query, limit, offset, viewer)

    def list_for_user(
        self,
        user_id: str,
        relation: str,
        caller: User,
        limit: int = 10,
        offset: int = 0
    ) -> FeedbackList:
        """
        Feedback related to a user: authored, assigned, liked or followed.

        Raises:
            ForbiddenError: If caller is neither the user nor an admin
            InputValidationError: If the relation is unknown
        """
        if not caller.is_admin and caller.id != user_id:
            raise ForbiddenError("Not authorized to view this user's feedback")

        query = self.db.query(Feedback)
        if relation == "authored":
            query = query.filter(Feedback.author_id == user_id)
        elif relation == "assigned":
            query = query.filter(Feedback.assigned_to_id == user_id)
        elif relation == "liked":
            query = query.join(FeedbackLike, FeedbackLike.feedback_id == Feedback.id).filter(
                FeedbackLike.user_id == user_id
            )
        elif relation == "followed":
            query = query.join(FeedbackFollower, FeedbackFollower.feedback_id == Feedback.id).filter(
                FeedbackFollower.user_id == user_id
            )
        else:
            raise InputValidationError(f"Unknown relation '{relation}'")

        return self._page(query, limit, offset, caller)

    def update_feedback(self, feedback_id: str, data: FeedbackUpdate, caller: Optional[User]) -> FeedbackDetail:
        """
        Update feedback fields. A status change goes through the lifecycle log.

        Raises:
            NotFoundError: If feedback not found
            ForbiddenError / AuthenticationRequiredError: See authorize_feedback_change
        """
        feedback = self.get_entity(feedback_id)
        authorize_feedback_change(feedback, caller)

        update_data = data.model_dump(exclude_unset=True, exclude_none=True)
        new_status = update_data.pop("status", None)
        note = update_data.pop("note", None)
        location = update_data.pop("location", None)

        try:
            for field, value in update_data.items():
                setattr(feedback, field, getattr(value, "value", value))

            if location is not None:
                feedback.location_country = location["country"]
                feedback.location_province = location["province"]
                feedback.location_district = location["district"]
                feedback.location_sector = location["sector"]
                feedback.location_details = location.get("other_details")

            if new_status is not None:
                apply_status_change(self.db, feedback, new_status, caller, note=note)

            self.db.commit()
            self.db.refresh(feedback)

        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update feedback {feedback_id}: {e}")
            raise

        logger.info("Updated feedback", feedback_id=feedback_id, fields=sorted(update_data))
        self.notifier.feedback_updated(feedback)
        return FeedbackDetail.from_feedback(feedback, _viewer_id(caller))

    def update_status(
        self,
        feedback_id: str,
        status_data: FeedbackStatusUpdate,
        caller: Optional[User]
    ) -> FeedbackDetail:
        """
        Change the status of a feedback and append to its history.

        Raises:
            NotFoundError: If feedback not found
            ForbiddenError / AuthenticationRequiredError: See authorize_feedback_change
        """
        feedback = self.get_entity(feedback_id)
        authorize_feedback_change(feedback, caller)

        try:
            change = apply_status_change(
                self.db, feedback, status_data.status, caller, note=status_data.note
            )
            self.db.commit()
            self.db.refresh(feedback)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update status of feedback {feedback_id}: {e}")
            raise

        if change is not None:
            self.notifier.feedback_updated(feedback)
        return FeedbackDetail.from_feedback(feedback, _viewer_id(caller))

    def assign_feedback(self, feedback_id: str, assignee_id: Optional[str], caller: User) -> FeedbackDetail:
        """
        Assign feedback to a user, or clear the assignment with None.

        Raises:
            ForbiddenError: If caller is not an admin
            NotFoundError: If feedback or assignee not found
        """
        if not caller.is_admin:
            raise ForbiddenError("Only admins can assign feedback")

        feedback = self.get_entity(feedback_id)
        if assignee_id is not None:
            if not self.db.query(User.id).filter(User.id == assignee_id).first():
                raise NotFoundError("User", assignee_id)

        feedback.assigned_to_id = assignee_id
        self.db.commit()
        self.db.refresh(feedback)

        logger.info("Assigned feedback", feedback_id=feedback_id, assignee_id=assignee_id)
        self.notifier.feedback_updated(feedback)
        return FeedbackDetail.from_feedback(feedback, caller.id)

    def delete_feedback(self, feedback_id: str, caller: Optional[User]) -> bool:
        """
        Delete feedback with its comments, responses, memberships and history.

        Raises:
            NotFoundError: If feedback not found
            ForbiddenError / AuthenticationRequiredError: See authorize_feedback_change
        """
        feedback = self.get_entity(feedback_id)
        authorize_feedback_change(feedback, caller)

        try:
            comment_ids = select(Comment.id).where(Comment.feedback_id == feedback_id)
            response_ids = select(Response.id).where(Response.feedback_id == feedback_id)
            self.db.query(CommentLike).filter(CommentLike.comment_id.in_(comment_ids)).delete(
                synchronize_session=False
            )
            self.db.query(ResponseLike).filter(ResponseLike.response_id.in_(response_ids)).delete(
                synchronize_session=False
            )
            self.db.query(Comment).filter(Comment.feedback_id == feedback_id).delete(synchronize_session=False)
            self.db.query(Response).filter(Response.feedback_id == feedback_id).delete(synchronize_session=False)
            self.db.query(FeedbackStatusChange).filter(FeedbackStatusChange.feedback_id == feedback_id).delete(
                synchronize_session=False
            )
            self.db.delete(feedback)
            self.db.commit()

        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete feedback {feedback_id}: {e}")
            raise

        logger.info("Deleted feedback", feedback_id=feedback_id)
        return True

    def like_feedback(self, feedback_id: str, caller: User) -> FeedbackDetail:
        self.engine.like_feedback(feedback_id, caller.id)
        return self._engagement_changed(feedback_id, caller)

    def unlike_feedback(self, feedback_id: str, caller: User) -> FeedbackDetail:
        self.engine.unlike_feedback(feedback_id, caller.id)
        return self._engagement_changed(feedback_id, caller)

    def follow_feedback(self, feedback_id: str, caller: User) -> FeedbackDetail:
        self.engine.follow_feedback(feedback_id, caller.id)
        return self._engagement_changed(feedback_id, caller)

    def unfollow_feedback(self, feedback_id: str, caller: User) -> FeedbackDetail:
        self.engine.unfollow_feedback(feedback_id, caller.id)
        return self._engagement_changed(feedback_id, caller)

    def status_history(self, feedback_id: str) -> List[StatusChangeResponse]:
        """Status history of a feedback, oldest first"""
        self.get_entity(feedback_id)
        changes = self.db.query(FeedbackStatusChange).filter(
            FeedbackStatusChange.feedback_id == feedback_id
        ).order_by(FeedbackStatusChange.sequence).all()
        return [StatusChangeResponse.model_validate(change) for change in changes]

    def feedback_stats(self) -> FeedbackStats:
        """Counts of feedback by status, type, priority and category"""
        return FeedbackStats(
            total=self.db.query(func.count(Feedback.id)).scalar() or 0,
            by_status=self._count_by(Feedback.status),
            by_type=self._count_by(Feedback.type),
            by_priority=self._count_by(Feedback.priority),
            by_category=self._count_by(Feedback.category),
        )

    def _count_by(self, column) -> Dict[str, int]:
        rows = self.db.query(column, func.count(Feedback.id)).group_by(column).all()
        return {value: count for value, count in rows}

    def _engagement_changed(self, feedback_id: str, caller: User) -> FeedbackDetail:
        feedback = self.get_entity(feedback_id)
        self.notifier.feedback_updated(feedback)
        return FeedbackDetail.from_feedback(feedback, caller.id)

    def _page(self, query, limit: int, offset: int, viewer: Optional[User]) -> FeedbackList:
        total = query.count()
        feedbacks = query.order_by(desc(Feedback.created_at), desc(Feedback.id)).offset(offset).limit(limit).all()
        viewer_id = _viewer_id(viewer)
        return FeedbackList(
            feedbacks=[FeedbackDetail.from_feedback(f, viewer_id) for f in feedbacks],
            total=total,
            limit=limit,
            offset=offset
        )
