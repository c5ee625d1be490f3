from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from ..models.feedback import FeedbackStatus
from ..models.response import Response
from ..services.engagement import membership_flag
from .user import UserSummary


class ResponseCreate(BaseModel):
    feedback_id: str
    message: str = Field(..., min_length=1)
    status_update: FeedbackStatus
    attachments: List[str] = Field(default_factory=list)


class ResponseUpdate(BaseModel):
    message: str = Field(..., min_length=1)
    attachments: Optional[List[str]] = None


class ResponseDetail(BaseModel):
    id: str
    feedback_id: str
    by: Optional[UserSummary]
    message: str
    attachments: List[str]
    status_update: FeedbackStatus
    likes: int
    liked_by: List[str]
    likes_count: int
    has_liked: Optional[bool] = None
    created_at: datetime
    updated_at: Optional[datetime]

    @classmethod
    def from_response(cls, response: Response, viewer_id: Optional[str] = None) -> "ResponseDetail":
        liked_by = sorted(response.liked_by_ids)
        return cls(
            id=response.id,
            feedback_id=response.feedback_id,
            by=UserSummary.model_validate(response.by) if response.by else None,
            message=response.message,
            attachments=response.attachments or [],
            status_update=response.status_update,
            likes=response.likes,
            liked_by=liked_by,
            likes_count=len(liked_by),
            created_at=response.created_at,
            updated_at=response.updated_at,
        ).for_viewer(viewer_id)

    def for_viewer(self, viewer_id: Optional[str]) -> "ResponseDetail":
        return self.model_copy(update={"has_liked": membership_flag(self.liked_by, viewer_id)})


class ResponseList(BaseModel):
    responses: List[ResponseDetail]
    total: int
    limit: int
    offset: int
