from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..core.exceptions import AuthenticationRequiredError, ForbiddenError, to_http_exception
from ..core.logging_config import get_logger, set_request_context
from ..models.user import User
from .auth import AuthService
from .event_broker import EventBroker, get_event_broker
from .notifications import FeedbackNotifier

logger = get_logger("dependencies")
# Configure HTTPBearer to return 401 instead of 403 for authentication failures
security = HTTPBearer(auto_error=False)


def resolve_token_user(db: Session, token: Optional[str]) -> Optional[User]:
    """
    Resolve a bearer token to an active user.

    Returns None for a missing, invalid or expired token, an unknown user or
    a deactivated account.
    """
    if not token:
        return None

    user_id = AuthService.verify_token(token)
    if not user_id:
        return None

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        logger.info("Token subject is unknown or inactive", user_id=user_id)
        return None

    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Optional[User]:
    """Caller identity for endpoints anonymous readers may also use"""
    token = credentials.credentials if credentials else None
    user = resolve_token_user(db, token)
    if user:
        set_request_context(user_id=user.id)
    return user


async def get_current_user(
    user: Optional[User] = Depends(get_optional_user)
) -> User:
    """Caller identity; 401 when there is none"""
    if user is None:
        raise to_http_exception(AuthenticationRequiredError())
    return user


async def require_admin(
    user: User = Depends(get_current_user)
) -> User:
    """Ensure the user has admin privileges"""
    if not user.is_admin:
        raise to_http_exception(ForbiddenError("Admin privileges required"))
    return user


def get_notifier(broker: EventBroker = Depends(get_event_broker)) -> FeedbackNotifier:
    """Fan-out helper bound to the application's event broker"""
    return FeedbackNotifier(broker)
