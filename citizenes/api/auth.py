from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..core.exceptions import CitizenESException, to_http_exception
from ..core.logging_config import get_logger
from ..models.user import User
from ..schemas.user import AuthPayload, UserDetail, UserLogin, UserRegister
from ..services.dependencies import get_current_user
from ..services.user_service import UserService

router = APIRouter()
logger = get_logger("auth_api")


@router.post("/register", response_model=AuthPayload, status_code=status.HTTP_201_CREATED)
async def register(
    data: UserRegister,
    db: Session = Depends(get_db)
) -> AuthPayload:
    """Create an account and return an access token"""
    try:
        return UserService(db).register(data)
    except CitizenESException as e:
        logger.info(f"Registration rejected: {e.message}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Registration error: {str(e)}")
        raise HTTPException(status_code=500, detail="Registration failed")


@router.post("/login", response_model=AuthPayload)
async def login(
    data: UserLogin,
    db: Session = Depends(get_db)
) -> AuthPayload:
    """Exchange email and password for an access token"""
    try:
        return UserService(db).login(data)
    except CitizenESException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Login error: {str(e)}")
        raise HTTPException(status_code=500, detail="Login failed")


@router.get("/me", response_model=UserDetail)
async def me(current_user: User = Depends(get_current_user)) -> UserDetail:
    """Profile of the logged-in user"""
    return UserDetail.model_validate(current_user)
