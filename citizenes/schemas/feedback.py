from pydantic import BaseModel, Field, field_validator
from typing import Dict, List, Optional
from datetime import datetime

from ..models.feedback import Feedback, FeedbackType, FeedbackStatus, FeedbackPriority
from ..services.engagement import membership_flag
from .user import UserSummary


class LocationInput(BaseModel):
    country: str = Field(..., min_length=1)
    province: str = Field(..., min_length=1)
    district: str = Field(..., min_length=1)
    sector: str = Field(..., min_length=1)
    other_details: Optional[str] = None


class Location(BaseModel):
    country: Optional[str] = None
    province: Optional[str] = None
    district: Optional[str] = None
    sector: Optional[str] = None
    other_details: Optional[str] = None


def _normalise_type(value):
    # "complaint" and "COMPLAINT" are both accepted as Complaint
    if isinstance(value, str):
        return value.strip().capitalize()
    return value


# Request Schemas
class FeedbackCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    type: FeedbackType
    category: str = Field(..., min_length=1, max_length=100)
    subcategory: Optional[str] = Field(None, max_length=100)
    attachments: List[str] = Field(default_factory=list)
    chat_enabled: bool = True
    is_anonymous: bool = False
    location: Optional[LocationInput] = None

    normalise_type = field_validator("type", mode="before")(_normalise_type)


class FeedbackUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    type: Optional[FeedbackType] = None
    status: Optional[FeedbackStatus] = None
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    subcategory: Optional[str] = Field(None, max_length=100)
    priority: Optional[FeedbackPriority] = None
    attachments: Optional[List[str]] = None
    chat_enabled: Optional[bool] = None
    location: Optional[LocationInput] = None
    note: Optional[str] = None

    normalise_type = field_validator("type", mode="before")(_normalise_type)


class FeedbackStatusUpdate(BaseModel):
    status: FeedbackStatus
    note: Optional[str] = None


class FeedbackAssign(BaseModel):
    assignee_id: Optional[str] = None


class FeedbackFilters(BaseModel):
    category: Optional[str] = None
    subcategory: Optional[str] = None
    status: Optional[FeedbackStatus] = None
    type: Optional[FeedbackType] = None
    is_anonymous: Optional[bool] = None
    country: Optional[str] = None
    province: Optional[str] = None
    author_id: Optional[str] = None

    normalise_type = field_validator("type", mode="before")(_normalise_type)


# Response Schemas
class FeedbackDetail(BaseModel):
    id: str
    ticket_id: str
    title: str
    description: str
    type: FeedbackType
    status: FeedbackStatus
    category: str
    subcategory: Optional[str]
    priority: FeedbackPriority
    author: Optional[UserSummary]
    assigned_to: Optional[UserSummary]
    attachments: List[str]
    chat_enabled: bool
    is_anonymous: bool
    location: Optional[Location]
    likes: int
    liked_by: List[str]
    followers: List[str]
    likes_count: int
    follower_count: int
    has_liked: Optional[bool] = None
    is_following: Optional[bool] = None
    created_at: datetime
    updated_at: Optional[datetime]

    @classmethod
    def from_feedback(cls, feedback: Feedback, viewer_id: Optional[str] = None) -> "FeedbackDetail":
        liked_by = sorted(feedback.liked_by_ids)
        followers = sorted(feedback.follower_ids)
        detail = cls(
            id=feedback.id,
            ticket_id=feedback.ticket_id,
            title=feedback.title,
            description=feedback.description,
            type=feedback.type,
            status=feedback.status,
            category=feedback.category,
            subcategory=feedback.subcategory,
            priority=feedback.priority,
            author=UserSummary.model_validate(feedback.author) if feedback.author else None,
            assigned_to=UserSummary.model_validate(feedback.assigned_to) if feedback.assigned_to else None,
            attachments=feedback.attachments or [],
            chat_enabled=feedback.chat_enabled,
            is_anonymous=feedback.is_anonymous,
            location=feedback.location,
            likes=feedback.likes,
            liked_by=liked_by,
            followers=followers,
            likes_count=len(liked_by),
            follower_count=len(followers),
            created_at=feedback.created_at,
            updated_at=feedback.updated_at,
        )
        return detail.for_viewer(viewer_id)

    def for_viewer(self, viewer_id: Optional[str]) -> "FeedbackDetail":
        """Copy with has_liked/is_following derived for this viewer."""
        return self.model_copy(update={
            "has_liked": membership_flag(self.liked_by, viewer_id),
            "is_following": membership_flag(self.followers, viewer_id),
        })


class FeedbackList(BaseModel):
    feedbacks: List[FeedbackDetail]
    total: int
    limit: int
    offset: int


class StatusChangeResponse(BaseModel):
    id: str
    feedback_id: str
    sequence: int
    from_status: Optional[FeedbackStatus]
    to_status: FeedbackStatus
    note: Optional[str]
    changed_by_id: Optional[str]
    source: str
    created_at: datetime

    class Config:
        from_attributes = True


class FeedbackStats(BaseModel):
    total: int
    by_status: Dict[str, int]
    by_type: Dict[str, int]
    by_priority: Dict[str, int]
    by_category: Dict[str, int]
