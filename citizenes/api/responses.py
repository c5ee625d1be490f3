from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..core.exceptions import CitizenESException, to_http_exception
from ..core.logging_config import get_logger
from ..models.user import User
from ..schemas.response import ResponseCreate, ResponseDetail, ResponseUpdate
from ..services.response_service import ResponseService
from ..services.dependencies import get_current_user, get_notifier, get_optional_user
from ..services.notifications import FeedbackNotifier

router = APIRouter()
logger = get_logger("responses_api")


@router.post("/", response_model=ResponseDetail, status_code=status.HTTP_201_CREATED)
async def create_response(
    data: ResponseCreate,
    db: Session = Depends(get_db),
    notifier: FeedbackNotifier = Depends(get_notifier),
    current_user: User = Depends(get_current_user)
) -> ResponseDetail:
    """Respond to a feedback (admin only); applies its status_update"""
    try:
        return ResponseService(db, notifier).create_response(data, current_user)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception creating response: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{response_id}", response_model=ResponseDetail)
async def get_response(
    response_id: str,
    db: Session = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user)
) -> ResponseDetail:
    try:
        return ResponseService(db).get_response(response_id, viewer)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception retrieving response {response_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{response_id}", response_model=ResponseDetail)
async def update_response(
    response_id: str,
    data: ResponseUpdate,
    db: Session = Depends(get_db),
    notifier: FeedbackNotifier = Depends(get_notifier),
    current_user: User = Depends(get_current_user)
) -> ResponseDetail:
    """Edit a response (author only)"""
    try:
        return ResponseService(db, notifier).update_response(response_id, data, current_user)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception updating response {response_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{response_id}")
async def delete_response(
    response_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete a response and the comments replying to it (author or admin)"""
    try:
        ResponseService(db).delete_response(response_id, current_user)
        return {"message": "Response deleted successfully"}
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception deleting response {response_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{response_id}/like", response_model=ResponseDetail)
async def like_response(
    response_id: str,
    db: Session = Depends(get_db),
    notifier: FeedbackNotifier = Depends(get_notifier),
    current_user: User = Depends(get_current_user)
) -> ResponseDetail:
    try:
        return ResponseService(db, notifier).like_response(response_id, current_user)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception liking response {response_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{response_id}/unlike", response_model=ResponseDetail)
async def unlike_response(
    response_id: str,
    db: Session = Depends(get_db),
    notifier: FeedbackNotifier = Depends(get_notifier),
    current_user: User = Depends(get_current_user)
) -> ResponseDetail:
    try:
        return ResponseService(db, notifier).unlike_response(response_id, current_user)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Exception unliking response {response_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
