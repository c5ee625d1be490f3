from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..core.exceptions import CitizenESException, to_http_exception
from ..core.logging_config import get_logger
from ..models.user import User
from ..schemas.comment import CommentCreate, CommentDetail, CommentUpdate
from ..services.comment_service import CommentService
from ..services.dependencies import get_current_user, get_notifier, get_optional_user
from ..services.notifications import FeedbackNotifier

router = APIRouter()
logger = get_logger("comments_api")


@router.post("/", response_model=CommentDetail, status_code=status.HTTP_201_CREATED)
async def create_comment(
    data: CommentCreate,
    db: Session = Depends(get_db),
    notifier: FeedbackNotifier = Depends(get_notifier),
    current_user: User = Depends(get_current_user)
) -> CommentDetail:
    """Comment on a feedback, or reply to a comment or response"""
    try:
        return CommentService(db, notifier).create_comment(data, current_user)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception creating comment: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{comment_id}", response_model=CommentDetail)
async def get_comment(
    comment_id: str,
    db: Session = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user)
) -> CommentDetail:
    try:
        return CommentService(db).get_comment(comment_id, viewer)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception retrieving comment {comment_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{comment_id}", response_model=CommentDetail)
async def update_comment(
    comment_id: str,
    data: CommentUpdate,
    db: Session = Depends(get_db),
    notifier: FeedbackNotifier = Depends(get_notifier),
    current_user: User = Depends(get_current_user)
) -> CommentDetail:
    """Edit a comment (author only)"""
    try:
        return CommentService(db, notifier).update_comment(comment_id, data, current_user)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception updating comment {comment_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{comment_id}")
async def delete_comment(
    comment_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete a comment and its replies (author or admin)"""
    try:
        CommentService(db).delete_comment(comment_id, current_user)
        return {"message": "Comment deleted successfully"}
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception deleting comment {comment_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{comment_id}/like", response_model=CommentDetail)
async def like_comment(
    comment_id: str,
    db: Session = Depends(get_db),
    notifier: FeedbackNotifier = Depends(get_notifier),
    current_user: User = Depends(get_current_user)
) -> CommentDetail:
    try:
        return CommentService(db, notifier).like_comment(comment_id, current_user)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception liking comment {comment_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{comment_id}/unlike", response_model=CommentDetail)
async def unlike_comment(
    comment_id: str,
    db: Session = Depends(get_db),
    notifier: FeedbackNotifier = Depends(get_notifier),
    current_user: User = Depends(get_current_user)
) -> CommentDetail:
    try:
        return CommentService(db, notifier).unlike_comment(comment_id, current_user)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception unliking comment {comment_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
