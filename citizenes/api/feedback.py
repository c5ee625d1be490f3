from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.database import get_db
from ..core.exceptions import CitizenESException, to_http_exception
from ..core.logging_config import get_logger
from ..models.feedback import FeedbackStatus
from ..models.user import User
from ..schemas.comment import CommentList
from ..schemas.feedback import (
    FeedbackAssign,
    FeedbackCreate,
    FeedbackDetail,
    FeedbackFilters,
    FeedbackList,
    FeedbackStats,
    FeedbackStatusUpdate,
    FeedbackUpdate,
    StatusChangeResponse,
)
from ..schemas.response import ResponseList
from ..services.comment_service import CommentService
from ..services.dependencies import get_current_user, get_notifier, get_optional_user, require_admin
from ..services.feedback_service import FeedbackService
from ..services.notifications import FeedbackNotifier
from ..services.response_service import ResponseService

router = APIRouter()
logger = get_logger("feedback_api")


@router.get("/", response_model=FeedbackList)
async def list_feedbacks(
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    status: Optional[FeedbackStatus] = None,
    type: Optional[str] = None,
    is_anonymous: Optional[bool] = None,
    country: Optional[str] = None,
    province: Optional[str] = None,
    author_id: Optional[str] = None,
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user)
) -> FeedbackList:
    """List feedback, newest first"""
    try:
        filters = FeedbackFilters(
            category=category,
            subcategory=subcategory,
            status=status,
            type=type,
            is_anonymous=is_anonymous,
            country=country,
            province=province,
            author_id=author_id
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    try:
        return FeedbackService(db).list_feedbacks(filters, limit=limit, offset=offset, viewer=viewer)
    except Exception as e:
        logger.error(f"Error listing feedback: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/stats", response_model=FeedbackStats)
async def feedback_stats(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin)
) -> FeedbackStats:
    """Aggregate counts (admin only)"""
    try:
        return FeedbackService(db).feedback_stats()
    except Exception as e:
        logger.error(f"Error computing feedback stats: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/ticket/{ticket_id}", response_model=FeedbackDetail)
async def get_feedback_by_ticket_id(
    ticket_id: str,
    db: Session = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user)
) -> FeedbackDetail:
    """Look up feedback by its ticket code"""
    try:
        return FeedbackService(db).get_by_ticket_id(ticket_id, viewer)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error retrieving ticket {ticket_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/", response_model=FeedbackDetail, status_code=status.HTTP_201_CREATED)
async def create_feedback(
    data: FeedbackCreate,
    db: Session = Depends(get_db),
    notifier: FeedbackNotifier = Depends(get_notifier),
    caller: Optional[User] = Depends(get_optional_user)
) -> FeedbackDetail:
    """Submit feedback; anonymous submissions need no login"""
    try:
        feedback = FeedbackService(db, notifier).create_feedback(data, caller)
        logger.info(f"Feedback created successfully {feedback.id}")
        return feedback
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception creating feedback: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{feedback_id}", response_model=FeedbackDetail)
async def get_feedback(
    feedback_id: str,
    db: Session = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user)
) -> FeedbackDetail:
    """Get a feedback by ID"""
    try:
        return FeedbackService(db).get_feedback(feedback_id, viewer)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception retrieving feedback {feedback_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{feedback_id}", response_model=FeedbackDetail)
async def update_feedback(
    feedback_id: str,
    data: FeedbackUpdate,
    db: Session = Depends(get_db),
    notifier: FeedbackNotifier = Depends(get_notifier),
    caller: Optional[User] = Depends(get_optional_user)
) -> FeedbackDetail:
    """Update feedback fields"""
    try:
        return FeedbackService(db, notifier).update_feedback(feedback_id, data, caller)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception updating feedback {feedback_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{feedback_id}/status", response_model=FeedbackDetail)
async def update_feedback_status(
    feedback_id: str,
    data: FeedbackStatusUpdate,
    db: Session = Depends(get_db),
    notifier: FeedbackNotifier = Depends(get_notifier),
    caller: Optional[User] = Depends(get_optional_user)
) -> FeedbackDetail:
    """Change the status of a feedback"""
    try:
        return FeedbackService(db, notifier).update_status(feedback_id, data, caller)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception updating status of feedback {feedback_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{feedback_id}/assign", response_model=FeedbackDetail)
async def assign_feedback(
    feedback_id: str,
    data: FeedbackAssign,
    db: Session = Depends(get_db),
    notifier: FeedbackNotifier = Depends(get_notifier),
    admin: User = Depends(require_admin)
) -> FeedbackDetail:
    """Assign feedback to a user (admin only)"""
    try:
        return FeedbackService(db, notifier).assign_feedback(feedback_id, data.assignee_id, admin)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception assigning feedback {feedback_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{feedback_id}")
async def delete_feedback(
    feedback_id: str,
    db: Session = Depends(get_db),
    caller: Optional[User] = Depends(get_optional_user)
):
    """Delete a feedback and everything attached to it"""
    try:
        FeedbackService(db).delete_feedback(feedback_id, caller)
        return {"message": "Feedback deleted successfully"}
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception deleting feedback {feedback_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{feedback_id}/like", response_model=FeedbackDetail)
async def like_feedback(
    feedback_id: str,
    db: Session = Depends(get_db),
    notifier: FeedbackNotifier = Depends(get_notifier),
    current_user: User = Depends(get_current_user)
) -> FeedbackDetail:
    try:
        return FeedbackService(db, notifier).like_feedback(feedback_id, current_user)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception liking feedback {feedback_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{feedback_id}/unlike", response_model=FeedbackDetail)
async def unlike_feedback(
    feedback_id: str,
    db: Session = Depends(get_db),
    notifier: FeedbackNotifier = Depends(get_notifier),
    current_user: User = Depends(get_current_user)
) -> FeedbackDetail:
    try:
        return FeedbackService(db, notifier).unlike_feedback(feedback_id, current_user)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception unliking feedback {feedback_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{feedback_id}/follow", response_model=FeedbackDetail)
async def follow_feedback(
    feedback_id: str,
    db: Session = Depends(get_db),
    notifier: FeedbackNotifier = Depends(get_notifier),
    current_user: User = Depends(get_current_user)
) -> FeedbackDetail:
    try:
        return FeedbackService(db, notifier).follow_feedback(feedback_id, current_user)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception following feedback {feedback_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{feedback_id}/unfollow", response_model=FeedbackDetail)
async def unfollow_feedback(
    feedback_id: str,
    db: Session = Depends(get_db),
    notifier: FeedbackNotifier = Depends(get_notifier),
    current_user: User = Depends(get_current_user)
) -> FeedbackDetail:
    try:
        return FeedbackService(db, notifier).unfollow_feedback(feedback_id, current_user)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception unfollowing feedback {feedback_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{feedback_id}/history", response_model=List[StatusChangeResponse])
async def status_history(
    feedback_id: str,
    db: Session = Depends(get_db)
) -> List[StatusChangeResponse]:
    """Status changes of a feedback, oldest first"""
    try:
        return FeedbackService(db).status_history(feedback_id)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception retrieving history of feedback {feedback_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{feedback_id}/comments", response_model=CommentList)
async def list_comments(
    feedback_id: str,
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user)
) -> CommentList:
    try:
        return CommentService(db).list_comments(feedback_id, limit=limit, offset=offset, viewer=viewer)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception listing comments of feedback {feedback_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{feedback_id}/responses", response_model=ResponseList)
async def list_responses(
    feedback_id: str,
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user)
) -> ResponseList:
    try:
        return ResponseService(db).list_responses(feedback_id, limit=limit, offset=offset, viewer=viewer)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception listing responses of feedback {feedback_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
