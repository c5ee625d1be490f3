"""
Engagement engine: like/unlike and follow/unfollow membership sets.

Every membership set is an association table keyed by (entity id, user id).
Adding or removing a member and moving the matching counter happen in one
transaction, with the counter changed by SQL (``likes = likes + 1``) rather
than by writing back a value read earlier. The composite primary key rejects
a second like from the same user even when two requests race.
"""
from dataclasses import dataclass
from typing import Iterable, Optional, Type

from sqlalchemy import delete, insert, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.exceptions import (
    AlreadyFollowingError,
    AlreadyLikedError,
    EngagementError,
    NotFollowingError,
    NotFoundError,
    NotLikedError,
)
from ..core.logging_config import get_logger
from ..models import (
    Comment,
    CommentLike,
    Feedback,
    FeedbackFollower,
    FeedbackLike,
    Response,
    ResponseLike,
)

logger = get_logger("engagement")


@dataclass(frozen=True)
class MembershipSet:
    """Describes one membership set and the counter kept in step with it"""
    entity: str
    model: Type
    table: Type
    key: str
    counter: Optional[str]
    already_member: Type[EngagementError]
    not_member: Type[EngagementError]

    @property
    def label(self) -> str:
        return self.entity.capitalize()


FEEDBACK_LIKES = MembershipSet(
    "feedback", Feedback, FeedbackLike, "feedback_id", "likes", AlreadyLikedError, NotLikedError
)
FEEDBACK_FOLLOWERS = MembershipSet(
    "feedback", Feedback, FeedbackFollower, "feedback_id", None, AlreadyFollowingError, NotFollowingError
)
COMMENT_LIKES = MembershipSet(
    "comment", Comment, CommentLike, "comment_id", "likes", AlreadyLikedError, NotLikedError
)
RESPONSE_LIKES = MembershipSet(
    "response", Response, ResponseLike, "response_id", "likes", AlreadyLikedError, NotLikedError
)


def membership_flag(member_ids: Iterable[str], viewer_id: Optional[str]) -> Optional[bool]:
    """Viewer-relative flag such as has_liked; None when nobody is logged in."""
    if viewer_id is None:
        return None
    return viewer_id in member_ids


class EngagementEngine:
    """Adds and removes members of like/follow sets"""

    def __init__(self, db: Session):
        self.db = db

    def like_feedback(self, feedback_id: str, user_id: str) -> None:
        self.add_member(FEEDBACK_LIKES, feedback_id, user_id)

    def unlike_feedback(self, feedback_id: str, user_id: str) -> None:
        self.remove_member(FEEDBACK_LIKES, feedback_id, user_id)

    def follow_feedback(self, feedback_id: str, user_id: str) -> None:
        self.add_member(FEEDBACK_FOLLOWERS, feedback_id, user_id)

    def unfollow_feedback(self, feedback_id: str, user_id: str) -> None:
        self.remove_member(FEEDBACK_FOLLOWERS, feedback_id, user_id)

    def like_comment(self, comment_id: str, user_id: str) -> None:
        self.add_member(COMMENT_LIKES, comment_id, user_id)

    def unlike_comment(self, comment_id: str, user_id: str) -> None:
        self.remove_member(COMMENT_LIKES, comment_id, user_id)

    def like_response(self, response_id: str, user_id: str) -> None:
        self.add_member(RESPONSE_LIKES, response_id, user_id)

    def unlike_response(self, response_id: str, user_id: str) -> None:
        self.remove_member(RESPONSE_LIKES, response_id, user_id)

    def add_member(self, members: MembershipSet, entity_id: str, user_id: str) -> None:
        """
        Insert user_id into the set and bump the counter in one transaction.

        Raises:
            NotFoundError: If the entity does not exist
            EngagementError: If the user is already a member
        """
        try:
            self._ensure_exists(members, entity_id)

            self.db.execute(
                insert(members.table).values({members.key: entity_id, "user_id": user_id})
            )
            if members.counter:
                counter = getattr(members.model, members.counter)
                self.db.execute(
                    update(members.model)
                    .where(members.model.id == entity_id)
                    .values({members.counter: counter + 1})
                    .execution_options(synchronize_session=False)
                )
            self.db.commit()

        except IntegrityError:
            self.db.rollback()
            # The entity may have been deleted between the check and the insert
            self._ensure_exists(members, entity_id)
            logger.info(
                "Rejected duplicate membership",
                entity=members.entity,
                entity_id=entity_id,
                table=members.table.__tablename__,
            )
            raise members.already_member(members.entity)
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Membership added",
            entity=members.entity,
            entity_id=entity_id,
            table=members.table.__tablename__,
        )

    def remove_member(self, members: MembershipSet, entity_id: str, user_id: str) -> None:
        """
        Delete user_id from the set and decrement the counter in one transaction.

        The counter only moves when the delete removed a row, so it can never
        go below the size of the set.

        Raises:
            NotFoundError: If the entity does not exist
            EngagementError: If the user is not a member
        """
        try:
            self._ensure_exists(members, entity_id)

            table = members.table
            result = self.db.execute(
                delete(table)
                .where(getattr(table, members.key) == entity_id, table.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.db.rollback()
                raise members.not_member(members.entity)

            if members.counter:
                counter = getattr(members.model, members.counter)
                self.db.execute(
                    update(members.model)
                    .where(members.model.id == entity_id, counter > 0)
                    .values({members.counter: counter - 1})
                    .execution_options(synchronize_session=False)
                )
            self.db.commit()

        except EngagementError:
            raise
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Membership removed",
            entity=members.entity,
            entity_id=entity_id,
            table=members.table.__tablename__,
        )

    def _ensure_exists(self, members: MembershipSet, entity_id: str) -> None:
        found = self.db.query(members.model.id).filter(members.model.id == entity_id).first()
        if not found:
            raise NotFoundError(members.label, entity_id)
