"""
User accounts: registration, login, profile and admin management.
"""
from typing import Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from ..core.database import utcnow
from ..core.exceptions import (
    AuthenticationRequiredError,
    ConflictError,
    ForbiddenError,
    InputValidationError,
    NotFoundError,
)
from ..core.config import settings
from ..core.logging_config import get_logger
from ..models.user import User, UserRole
from ..schemas.user import (
    AuthPayload,
    UserDetail,
    UserList,
    UserLogin,
    UserRegister,
    UserUpdate,
)
from .auth import AuthService

logger = get_logger("user_service")


class UserService:
    """Service for managing user accounts"""

    def __init__(self, db: Session):
        self.db = db

    def register(self, data: UserRegister) -> AuthPayload:
        """
        Register a new account. Registration always creates role ``user``.

        Args:
            data: Registration data

        Returns:
            Access token and the created user

        Raises:
            InputValidationError: If the password is too short or no name is given
            ConflictError: If email, username or phone number is taken
        """
        if not AuthService.validate_password(data.password):
            raise InputValidationError(
                f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters"
            )
        if not (data.first_name or data.last_name):
            raise InputValidationError("First name or last name is required")
        if data.category is None:
            raise InputValidationError("Category is required")

        self._ensure_unique(email=data.email, username=data.username, phone_number=data.phone_number)

        try:
            user = User(
                email=data.email,
                password_hash=AuthService.get_password_hash(data.password),
                first_name=data.first_name,
                last_name=data.last_name,
                username=data.username,
                phone_number=data.phone_number,
                profile_url=data.profile_url,
                category=data.category.value,
                role=UserRole.USER.value,
                is_active=True
            )
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)

        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to register user: {e}")
            raise

        logger.info("Registered user", user_id=user.id)
        return self._auth_payload(user)

    def login(self, data: UserLogin) -> AuthPayload:
        """
        Authenticate with email and password.

        Raises:
            AuthenticationRequiredError: Unknown email, wrong password or inactive account
        """
        user = self.db.query(User).filter(User.email == data.email).first()
        if not user:
            raise AuthenticationRequiredError("User not found")

        if not AuthService.verify_password(data.password, user.password_hash):
            logger.info("Rejected login with invalid password", user_id=user.id)
            raise AuthenticationRequiredError("Invalid password")

        if not user.is_active:
            raise AuthenticationRequiredError("Account is deactivated")

        user.last_login_at = utcnow()
        user.last_activity_at = user.last_login_at
        self.db.commit()
        self.db.refresh(user)

        logger.info("User logged in", user_id=user.id)
        return self._auth_payload(user)

    def get_entity(self, user_id: str) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User", user_id)
        return user

    def get_user(self, user_id: str, caller: User) -> UserDetail:
        """
        Get a user profile; callers may read their own, admins any.

        Raises:
            ForbiddenError: If caller is neither the user nor an admin
            NotFoundError: If the user does not exist
        """
        if not caller.is_admin and caller.id != user_id:
            raise ForbiddenError("Not authorized to view this user")
        return UserDetail.model_validate(self.get_entity(user_id))

    def list_users(
        self,
        role: Optional[str] = None,
        category: Optional[str] = None,
        is_active: Optional[bool] = None,
        limit: int = 10,
        offset: int = 0
    ) -> UserList:
        """List users, newest first"""
        query = self.db.query(User)
        if role:
            query = query.filter(User.role == role)
        if category:
            query = query.filter(User.category == category)
        if is_active is not None:
            query = query.filter(User.is_active == is_active)

        total = query.count()
        users = query.order_by(desc(User.created_at)).offset(offset).limit(limit).all()

        return UserList(
            users=[UserDetail.model_validate(u) for u in users],
            total=total,
            limit=limit,
            offset=offset
        )

    def update_user(self, user_id: str, data: UserUpdate, caller: User) -> UserDetail:
        """
        Update a profile. Non-admins may only edit themselves and never their role.

        Raises:
            ForbiddenError: If caller is neither the user nor an admin
            NotFoundError: If the user does not exist
            ConflictError: If the new email, username or phone number is taken
        """
        if not caller.is_admin and caller.id != user_id:
            raise ForbiddenError("Not authorized to update this user")

        user = self.get_entity(user_id)
        update_data = data.model_dump(exclude_unset=True, exclude_none=True)

        if not caller.is_admin:
            update_data.pop("role", None)

        self._ensure_unique(
            email=update_data.get("email"),
            username=update_data.get("username"),
            phone_number=update_data.get("phone_number"),
            exclude_id=user.id
        )

        password = update_data.pop("password", None)
        if password is not None:
            if not AuthService.validate_password(password):
                raise InputValidationError(
                    f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters"
                )
            user.password_hash = AuthService.get_password_hash(password)

        try:
            for field, value in update_data.items():
                setattr(user, field, getattr(value, "value", value))
            self.db.commit()
            self.db.refresh(user)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update user {user_id}: {e}")
            raise

        logger.info("Updated user", user_id=user_id, fields=sorted(update_data))
        return UserDetail.model_validate(user)

    def update_user_role(self, user_id: str, role: UserRole) -> UserDetail:
        user = self.get_entity(user_id)
        user.role = role.value
        self.db.commit()
        self.db.refresh(user)
        logger.info("Changed user role", user_id=user_id, role=role.value)
        return UserDetail.model_validate(user)

    def update_user_activity(self, user_id: str, is_active: bool) -> UserDetail:
        user = self.get_entity(user_id)
        user.is_active = is_active
        user.last_activity_at = utcnow()
        self.db.commit()
        self.db.refresh(user)
        logger.info("Changed user activity", user_id=user_id, is_active=is_active)
        return UserDetail.model_validate(user)

    def _ensure_unique(
        self,
        email: Optional[str] = None,
        username: Optional[str] = None,
        phone_number: Optional[str] = None,
        exclude_id: Optional[str] = None
    ) -> None:
        checks = (
            (User.email, email, "Email already registered"),
            (User.username, username, "Username already taken"),
            (User.phone_number, phone_number, "Phone number already registered"),
        )
        for column, value, message in checks:
            if not value:
                continue
            query = self.db.query(User.id).filter(column == value)
            if exclude_id:
                query = query.filter(User.id != exclude_id)
            if query.first():
                raise ConflictError(message)

    @staticmethod
    def _auth_payload(user: User) -> AuthPayload:
        return AuthPayload(
            token=AuthService.create_access_token(user.id),
            user=UserDetail.model_validate(user)
        )
