"""
Notification fan-out for feedback activity.

Two channels carry every change: the feedback's own topic, for whoever is
viewing it, and each interested user's topic (the author and the followers),
so owners hear about their feedback wherever they are. Events are published
after the change has been committed.
"""
from typing import Optional, Set

from ..models.comment import Comment
from ..models.feedback import Feedback
from ..models.response import Response
from ..schemas.comment import CommentDetail
from ..schemas.feedback import FeedbackDetail
from ..schemas.response import ResponseDetail
from .event_broker import Event, EventBroker, EventType, event_broker, feedback_topic, user_topic


class FeedbackNotifier:
    """Builds change events and hands them to the broker"""

    def __init__(self, broker: Optional[EventBroker] = None):
        self.broker = broker or event_broker

    def feedback_updated(self, feedback: Feedback) -> FeedbackDetail:
        """Publish the feedback snapshot on its own topic and to its owners"""
        snapshot = FeedbackDetail.from_feedback(feedback)
        self.broker.publish(Event(EventType.FEEDBACK_UPDATED, feedback_topic(feedback.id), snapshot))
        self._notify_owners(feedback, snapshot)
        return snapshot

    def comment_added(self, comment: Comment, feedback: Feedback) -> None:
        self.broker.publish(Event(
            EventType.COMMENT_ADDED,
            feedback_topic(comment.feedback_id),
            CommentDetail.from_comment(comment)
        ))
        self._notify_owners(feedback)

    def comment_updated(self, comment: Comment) -> None:
        self.broker.publish(Event(
            EventType.COMMENT_UPDATED,
            feedback_topic(comment.feedback_id),
            CommentDetail.from_comment(comment)
        ))

    def response_added(self, response: Response, feedback: Feedback) -> None:
        self.broker.publish(Event(
            EventType.RESPONSE_ADDED,
            feedback_topic(response.feedback_id),
            ResponseDetail.from_response(response)
        ))
        self.feedback_updated(feedback)

    def response_updated(self, response: Response) -> None:
        self.broker.publish(Event(
            EventType.RESPONSE_UPDATED,
            feedback_topic(response.feedback_id),
            ResponseDetail.from_response(response)
        ))

    def _notify_owners(self, feedback: Feedback, snapshot: FeedbackDetail = None) -> None:
        snapshot = snapshot or FeedbackDetail.from_feedback(feedback)
        for user_id in sorted(self.owner_ids(feedback)):
            self.broker.publish(Event(EventType.USER_FEEDBACK_UPDATED, user_topic(user_id), snapshot))

    @staticmethod
    def owner_ids(feedback: Feedback) -> Set[str]:
        owners: Set[str] = set(feedback.follower_ids)
        if feedback.author_id:
            owners.add(feedback.author_id)
        return owners
