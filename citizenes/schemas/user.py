from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime

from ..models.user import UserRole, UserCategory


# Request Schemas
class UserRegister(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    username: Optional[str] = Field(None, max_length=100)
    phone_number: Optional[str] = Field(None, max_length=32)
    profile_url: Optional[str] = None
    category: Optional[UserCategory] = None

    @field_validator("email", "username")
    @classmethod
    def lower_case(cls, value):
        return value.strip().lower() if value else value


class UserLogin(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def lower_case(cls, value):
        return value.strip().lower()


class UserUpdate(BaseModel):
    email: Optional[str] = Field(None, min_length=3, max_length=255)
    password: Optional[str] = None
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    username: Optional[str] = Field(None, max_length=100)
    phone_number: Optional[str] = Field(None, max_length=32)
    profile_url: Optional[str] = None
    category: Optional[UserCategory] = None
    role: Optional[UserRole] = None

    @field_validator("email", "username")
    @classmethod
    def lower_case(cls, value):
        return value.strip().lower() if value else value


class UserRoleUpdate(BaseModel):
    role: UserRole


class UserActivityUpdate(BaseModel):
    is_active: bool


# Response Schemas
class UserSummary(BaseModel):
    id: str
    display_name: str
    username: Optional[str]
    profile_url: Optional[str]
    role: UserRole

    class Config:
        from_attributes = True


class UserDetail(BaseModel):
    id: str
    email: str
    first_name: Optional[str]
    last_name: Optional[str]
    username: Optional[str]
    phone_number: Optional[str]
    profile_url: Optional[str]
    display_name: str
    role: UserRole
    category: Optional[str]
    is_active: bool
    last_login_at: Optional[datetime]
    last_activity_at: Optional[datetime]
    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class UserList(BaseModel):
    users: List[UserDetail]
    total: int
    limit: int
    offset: int


class AuthPayload(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserDetail
