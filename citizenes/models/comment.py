from sqlalchemy import Column, String, Text, DateTime, Integer, JSON, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship
import uuid

from ..core.database import Base, utcnow


class Comment(Base):
    """Public comment on a feedback thread, also used for chat messages"""
    __tablename__ = "comments"
    __table_args__ = (
        CheckConstraint("likes >= 0", name="ck_comments_likes_non_negative"),
        Index("ix_comments_feedback_created", "feedback_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    feedback_id = Column(String(36), ForeignKey("feedbacks.id", ondelete="CASCADE"), nullable=False)
    # Either a top-level comment or a response of the same feedback
    parent_id = Column(String(36), nullable=True, index=True)

    message = Column(Text, nullable=False)
    author_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    # Display name at the time of writing; never refreshed
    author_name = Column(String(255), nullable=False)
    attachments = Column(JSON, default=list)

    likes = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    like_rows = relationship(
        "CommentLike", lazy="selectin", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def liked_by_ids(self) -> frozenset:
        return frozenset(row.user_id for row in self.like_rows)

    def __repr__(self):
        return f"<Comment(id={self.id}, feedback_id={self.feedback_id})>"


class CommentLike(Base):
    __tablename__ = "comment_likes"

    comment_id = Column(String(36), ForeignKey("comments.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
