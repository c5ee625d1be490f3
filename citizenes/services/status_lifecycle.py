"""
Feedback status lifecycle.

Any status may follow any other (a closed ticket can be reopened); what is
enforced is who may change a feedback and that every change is appended to
the ``feedback_status_changes`` log, which is never edited.
"""
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.exceptions import AuthenticationRequiredError, ForbiddenError
from ..core.logging_config import get_logger
from ..models.feedback import Feedback, FeedbackStatus, FeedbackStatusChange
from ..models.user import User

logger = get_logger("status_lifecycle")

SOURCE_UPDATE = "update"
SOURCE_RESPONSE = "response"


def authorize_feedback_change(feedback: Feedback, caller: Optional[User]) -> None:
    """
    Check that caller may modify the feedback (fields or status).

    Anonymous feedback can only be changed by admins. Otherwise the author or
    an admin may change it.

    Raises:
        ForbiddenError: Non-admin on anonymous feedback, or neither author nor admin
        AuthenticationRequiredError: No caller on non-anonymous feedback
    """
    if feedback.is_anonymous:
        if caller is None or not caller.is_admin:
            raise ForbiddenError("Only admins can update anonymous feedback")
        return

    if caller is None:
        raise AuthenticationRequiredError()

    if not caller.is_admin and feedback.author_id != caller.id:
        raise ForbiddenError("Not authorized to update this feedback")


def apply_status_change(
    db: Session,
    feedback: Feedback,
    new_status: FeedbackStatus,
    changed_by: Optional[User],
    note: Optional[str] = None,
    source: str = SOURCE_UPDATE
) -> Optional[FeedbackStatusChange]:
    """
    Move feedback to new_status and append one history entry.

    Nothing is written when the status is unchanged. The caller owns the
    transaction and commits it together with any other changes.

    Returns:
        The appended history entry, or None if the status did not change
    """
    new_value = FeedbackStatus(new_status).value
    if feedback.status == new_value:
        return None

    last_sequence = db.query(func.max(FeedbackStatusChange.sequence)).filter(
        FeedbackStatusChange.feedback_id == feedback.id
    ).scalar()

    change = FeedbackStatusChange(
        feedback_id=feedback.id,
        sequence=(last_sequence or 0) + 1,
        from_status=feedback.status,
        to_status=new_value,
        note=note,
        changed_by_id=changed_by.id if changed_by else None,
        source=source
    )
    db.add(change)

    logger.info(
        "Feedback status changed",
        feedback_id=feedback.id,
        from_status=feedback.status,
        to_status=new_value,
        source=source
    )
    feedback.status = new_value
    return change


def record_initial_status(db: Session, feedback: Feedback, created_by: Optional[User]) -> FeedbackStatusChange:
    """First history entry, written when the feedback is submitted"""
    change = FeedbackStatusChange(
        feedback_id=feedback.id,
        sequence=1,
        from_status=None,
        to_status=feedback.status,
        note="Feedback submitted",
        changed_by_id=created_by.id if created_by else None,
        source=SOURCE_UPDATE
    )
    db.add(change)
    return change
