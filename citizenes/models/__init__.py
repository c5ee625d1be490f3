from .user import User, UserRole, UserCategory
from .feedback import (
    Feedback,
    FeedbackType,
    FeedbackStatus,
    FeedbackPriority,
    FeedbackLike,
    FeedbackFollower,
    FeedbackStatusChange,
    PRIORITY_BY_TYPE,
)
from .comment import Comment, CommentLike
from .response import Response, ResponseLike

__all__ = [
    "User",
    "UserRole",
    "UserCategory",
    "Feedback",
    "FeedbackType",
    "FeedbackStatus",
    "FeedbackPriority",
    "FeedbackLike",
    "FeedbackFollower",
    "FeedbackStatusChange",
    "PRIORITY_BY_TYPE",
    "Comment",
    "CommentLike",
    "Response",
    "ResponseLike",
]
