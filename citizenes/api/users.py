from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.database import get_db
from ..core.exceptions import CitizenESException, to_http_exception
from ..core.logging_config import get_logger
from ..models.user import User, UserRole
from ..schemas.comment import CommentList
from ..schemas.feedback import FeedbackList
from ..schemas.user import UserActivityUpdate, UserDetail, UserList, UserRoleUpdate, UserUpdate
from ..services.comment_service import CommentService
from ..services.dependencies import get_current_user, require_admin
from ..services.feedback_service import FeedbackService
from ..services.user_service import UserService

router = APIRouter()
logger = get_logger("users_api")


@router.get("/", response_model=UserList)
async def list_users(
    role: Optional[UserRole] = None,
    category: Optional[str] = None,
    is_active: Optional[bool] = None,
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin)
) -> UserList:
    """List users (admin only)"""
    try:
        return UserService(db).list_users(
            role=role.value if role else None,
            category=category,
            is_active=is_active,
            limit=limit,
            offset=offset
        )
    except Exception as e:
        logger.error(f"Error listing users: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{user_id}", response_model=UserDetail)
async def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> UserDetail:
    """Get a user; users may read themselves, admins anyone"""
    try:
        return UserService(db).get_user(user_id, current_user)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error retrieving user {user_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{user_id}", response_model=UserDetail)
async def update_user(
    user_id: str,
    data: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> UserDetail:
    """Update a profile"""
    try:
        return UserService(db).update_user(user_id, data, current_user)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error updating user {user_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{user_id}/role", response_model=UserDetail)
async def update_user_role(
    user_id: str,
    data: UserRoleUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin)
) -> UserDetail:
    """Change a user's role (admin only)"""
    try:
        return UserService(db).update_user_role(user_id, data.role)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error changing role of user {user_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{user_id}/activity", response_model=UserDetail)
async def update_user_activity(
    user_id: str,
    data: UserActivityUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin)
) -> UserDetail:
    """Activate or deactivate a user (admin only)"""
    try:
        return UserService(db).update_user_activity(user_id, data.is_active)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error changing activity of user {user_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{user_id}/feedback", response_model=FeedbackList)
async def user_feedback(
    user_id: str,
    relation: str = Query("authored", pattern="^(authored|assigned|liked|followed)$"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> FeedbackList:
    """Feedback the user authored, is assigned, liked or follows"""
    try:
        return FeedbackService(db).list_for_user(user_id, relation, current_user, limit=limit, offset=offset)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error listing {relation} feedback of user {user_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{user_id}/comments", response_model=CommentList)
async def user_comments(
    user_id: str,
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> CommentList:
    """Comments the user wrote"""
    try:
        return CommentService(db).list_by_author(user_id, current_user, limit=limit, offset=offset)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error listing comments of user {user_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
