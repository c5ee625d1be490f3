from sqlalchemy import (
    Column, String, Text, Boolean, DateTime, Integer, JSON, ForeignKey, Index, CheckConstraint
)
from sqlalchemy.orm import relationship
import uuid
import enum

from ..core.database import Base, utcnow


class FeedbackType(str, enum.Enum):
    COMPLAINT = "Complaint"
    POSITIVE = "Positive"
    SUGGESTION = "Suggestion"


class FeedbackStatus(str, enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class FeedbackPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


PRIORITY_BY_TYPE = {
    FeedbackType.COMPLAINT.value: FeedbackPriority.HIGH.value,
    FeedbackType.SUGGESTION.value: FeedbackPriority.MEDIUM.value,
    FeedbackType.POSITIVE.value: FeedbackPriority.LOW.value,
}


class Feedback(Base):
    """Issue, complaint, suggestion or positive feedback ticket"""
    __tablename__ = "feedbacks"
    __table_args__ = (
        CheckConstraint("likes >= 0", name="ck_feedbacks_likes_non_negative"),
        Index("ix_feedbacks_category_status", "category", "status"),
        Index("ix_feedbacks_category_subcategory", "category", "subcategory"),
        Index("ix_feedbacks_location", "location_country", "location_province"),
    )

    id = Column(String(36), primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    ticket_id = Column(String(16), unique=True, nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    type = Column(String(20), nullable=False)
    status = Column(String(20), default=FeedbackStatus.OPEN.value, nullable=False)
    category = Column(String(100), nullable=False)
    subcategory = Column(String(100), nullable=True)
    priority = Column(String(20), default=FeedbackPriority.MEDIUM.value, nullable=False)

    author_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    assigned_to_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)

    attachments = Column(JSON, default=list)
    chat_enabled = Column(Boolean, default=True, nullable=False)
    is_anonymous = Column(Boolean, default=False, nullable=False, index=True)

    # Mirrors |liked_by|; only ever changed together with a feedback_likes row
    likes = Column(Integer, default=0, nullable=False)

    # Location
    location_country = Column(String(100), nullable=True)
    location_province = Column(String(100), nullable=True)
    location_district = Column(String(100), nullable=True)
    location_sector = Column(String(100), nullable=True)
    location_details = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    author = relationship("User", foreign_keys=[author_id], lazy="joined")
    assigned_to = relationship("User", foreign_keys=[assigned_to_id], lazy="joined")

    like_rows = relationship(
        "FeedbackLike", lazy="selectin", cascade="all, delete-orphan", passive_deletes=True
    )
    follower_rows = relationship(
        "FeedbackFollower", lazy="selectin", cascade="all, delete-orphan", passive_deletes=True
    )
    status_changes = relationship(
        "FeedbackStatusChange",
        order_by="FeedbackStatusChange.sequence",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    @property
    def liked_by_ids(self) -> frozenset:
        return frozenset(row.user_id for row in self.like_rows)

    @property
    def follower_ids(self) -> frozenset:
        return frozenset(row.user_id for row in self.follower_rows)

    @property
    def location(self):
        if not any((self.location_country, self.location_province, self.location_district,
                    self.location_sector, self.location_details)):
            return None
        return {
            "country": self.location_country,
            "province": self.location_province,
            "district": self.location_district,
            "sector": self.location_sector,
            "other_details": self.location_details,
        }

    def __repr__(self):
        return f"<Feedback(id={self.id}, ticket_id={self.ticket_id}, status={self.status})>"


class FeedbackLike(Base):
    """Membership row of a feedback's liked_by set"""
    __tablename__ = "feedback_likes"

    feedback_id = Column(String(36), ForeignKey("feedbacks.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class FeedbackFollower(Base):
    """Membership row of a feedback's followers set"""
    __tablename__ = "feedback_followers"

    feedback_id = Column(String(36), ForeignKey("feedbacks.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class FeedbackStatusChange(Base):
    """Append-only audit log of status transitions"""
    __tablename__ = "feedback_status_changes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    feedback_id = Column(
        String(36), ForeignKey("feedbacks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sequence = Column(Integer, nullable=False)
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)
    note = Column(Text, nullable=True)
    changed_by_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    source = Column(String(20), nullable=False, default="update")  # update | response
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<FeedbackStatusChange(feedback_id={self.feedback_id}, {self.from_status}->{self.to_status})>"
