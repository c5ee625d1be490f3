from sqlalchemy import Column, String, Text, DateTime, Integer, JSON, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship
import uuid

from ..core.database import Base, utcnow


class Response(Base):
    """Official reply from staff, optionally moving the feedback to a new status"""
    __tablename__ = "responses"
    __table_args__ = (
        CheckConstraint("likes >= 0", name="ck_responses_likes_non_negative"),
        Index("ix_responses_feedback_created", "feedback_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    feedback_id = Column(String(36), ForeignKey("feedbacks.id", ondelete="CASCADE"), nullable=False)
    by_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    message = Column(Text, nullable=False)
    attachments = Column(JSON, default=list)
    status_update = Column(String(20), nullable=False)

    likes = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    by = relationship("User", lazy="joined")
    like_rows = relationship(
        "ResponseLike", lazy="selectin", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def liked_by_ids(self) -> frozenset:
        return frozenset(row.user_id for row in self.like_rows)

    def __repr__(self):
        return f"<Response(id={self.id}, feedback_id={self.feedback_id}, status_update={self.status_update})>"


class ResponseLike(Base):
    __tablename__ = "response_likes"

    response_id = Column(String(36), ForeignKey("responses.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
