from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from ..models.comment import Comment
from ..services.engagement import membership_flag


class CommentCreate(BaseModel):
    feedback_id: str
    message: str = Field(..., min_length=1)
    attachments: List[str] = Field(default_factory=list)
    parent_id: Optional[str] = None


class CommentUpdate(BaseModel):
    message: str = Field(..., min_length=1)
    attachments: Optional[List[str]] = None


class CommentDetail(BaseModel):
    id: str
    feedback_id: str
    parent_id: Optional[str]
    message: str
    author_id: str
    author_name: str
    attachments: List[str]
    likes: int
    liked_by: List[str]
    likes_count: int
    has_liked: Optional[bool] = None
    created_at: datetime
    updated_at: Optional[datetime]

    @classmethod
    def from_comment(cls, comment: Comment, viewer_id: Optional[str] = None) -> "CommentDetail":
        liked_by = sorted(comment.liked_by_ids)
        return cls(
            id=comment.id,
            feedback_id=comment.feedback_id,
            parent_id=comment.parent_id,
            message=comment.message,
            author_id=comment.author_id,
            author_name=comment.author_name,
            attachments=comment.attachments or [],
            likes=comment.likes,
            liked_by=liked_by,
            likes_count=len(liked_by),
            created_at=comment.created_at,
            updated_at=comment.updated_at,
        ).for_viewer(viewer_id)

    def for_viewer(self, viewer_id: Optional[str]) -> "CommentDetail":
        return self.model_copy(update={"has_liked": membership_flag(self.liked_by, viewer_id)})


class CommentList(BaseModel):
    comments: List[CommentDetail]
    total: int
    limit: int
    offset: int


class ChatMessage(BaseModel):
    """Projection of a chat comment broadcast to a feedback room"""
    id: str
    message: str
    author_name: str
    created_at: datetime

    class Config:
        from_attributes = True
