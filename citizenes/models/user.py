from sqlalchemy import Column, String, DateTime, Boolean
import uuid
import enum

from ..core.database import Base, utcnow


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class UserCategory(str, enum.Enum):
    CITIZEN = "citizen"
    GOVERNMENT = "government"
    INFRASTRUCTURE = "infrastructure"
    PUBLIC_SERVICES = "public-services"
    SAFETY = "safety"
    ENVIRONMENT = "environment"
    OTHER = "other"


class User(Base):
    """Account that authors feedback, comments and responses"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, index=True, default=lambda: str(uuid.uuid4()))

    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)

    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    username = Column(String(100), unique=True, nullable=True, index=True)
    phone_number = Column(String(32), unique=True, nullable=True, index=True)
    profile_url = Column(String(500), nullable=True)

    role = Column(String(20), default=UserRole.USER.value, nullable=False)
    category = Column(String(50), nullable=True)  # Topic area an admin/staff user works on
    is_active = Column(Boolean, default=True, nullable=False)

    last_login_at = Column(DateTime(timezone=True), nullable=True)
    last_activity_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def display_name(self) -> str:
        full_name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full_name or self.username or self.email

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
