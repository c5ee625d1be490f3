"""
Tests for the engagement engine: like/unlike and follow/unfollow on
feedback, comments and responses.
"""

import threading

import pytest
from sqlalchemy.orm import sessionmaker

from citizenes.core.database import Base, build_engine
from citizenes.core.exceptions import (
    AlreadyFollowingError,
    AlreadyLikedError,
    NotFollowingError,
    NotFoundError,
    NotLikedError,
)
from citizenes.models import Feedback, FeedbackLike
from citizenes.schemas.comment import CommentCreate
from citizenes.schemas.feedback import FeedbackDetail
from citizenes.schemas.response import ResponseCreate
from citizenes.services.comment_service import CommentService
from citizenes.services.engagement import EngagementEngine, membership_flag
from citizenes.services.feedback_service import FeedbackService
from citizenes.services.response_service import ResponseService

from .conftest import make_user


def stored_likes(db, feedback_id):
    db.expire_all()
    row = db.query(Feedback).filter(Feedback.id == feedback_id).one()
    return row.likes, set(row.liked_by_ids)


class TestMembershipFlag:

    def test_unauthenticated_viewer_gets_none(self):
        assert membership_flag({"u1"}, None) is None

    def test_member_and_non_member(self):
        assert membership_flag({"u1", "u2"}, "u1") is True
        assert membership_flag({"u1", "u2"}, "u3") is False
        assert membership_flag(set(), "u3") is False


class TestFeedbackLikes:

    @pytest.fixture
    def service(self, db, notifier):
        return FeedbackService(db, notifier)

    def test_like_adds_member_and_increments(self, service, db, feedback, neighbour):
        before_count, before_set = stored_likes(db, feedback.id)

        result = service.like_feedback(feedback.id, neighbour)

        assert result.likes_count == before_count + 1
        assert result.likes == before_count + 1
        assert neighbour.id in result.liked_by
        assert result.has_liked is True
        assert stored_likes(db, feedback.id) == (before_count + 1, before_set | {neighbour.id})

    def test_second_like_is_rejected_and_changes_nothing(self, service, db, feedback, neighbour):
        service.like_feedback(feedback.id, neighbour)
        snapshot = stored_likes(db, feedback.id)

        with pytest.raises(AlreadyLikedError) as exc_info:
            service.like_feedback(feedback.id, neighbour)

        assert exc_info.value.message == "You have already liked this feedback"
        assert stored_likes(db, feedback.id) == snapshot

    def test_like_then_unlike_restores_state(self, service, db, feedback, neighbour):
        original = stored_likes(db, feedback.id)

        service.like_feedback(feedback.id, neighbour)
        result = service.unlike_feedback(feedback.id, neighbour)

        assert stored_likes(db, feedback.id) == original
        assert result.has_liked is False
        assert result.likes_count == 0

    def test_unlike_without_like_is_rejected(self, service, db, feedback, neighbour):
        with pytest.raises(NotLikedError):
            service.unlike_feedback(feedback.id, neighbour)

        assert stored_likes(db, feedback.id) == (0, set())

    def test_unknown_feedback(self, service, neighbour):
        with pytest.raises(NotFoundError) as exc_info:
            service.like_feedback("does-not-exist", neighbour)
        assert exc_info.value.message == "Feedback not found"

        with pytest.raises(NotFoundError):
            service.unlike_feedback("does-not-exist", neighbour)

    def test_count_matches_set_after_interleaved_users(self, service, db, feedback, citizen, neighbour, admin):
        service.like_feedback(feedback.id, neighbour)
        service.like_feedback(feedback.id, admin)
        service.unlike_feedback(feedback.id, neighbour)
        service.like_feedback(feedback.id, citizen)
        with pytest.raises(AlreadyLikedError):
            service.like_feedback(feedback.id, admin)
        service.like_feedback(feedback.id, neighbour)

        likes, liked_by = stored_likes(db, feedback.id)
        assert likes == len(liked_by) == 3
        assert liked_by == {citizen.id, neighbour.id, admin.id}

    def test_viewer_relative_fields(self, service, db, feedback, citizen, neighbour):
        """B likes A's feedback: B sees has_liked, A does not, anonymous viewers see None"""
        service.like_feedback(feedback.id, neighbour)

        assert service.get_feedback(feedback.id, neighbour).has_liked is True
        as_author = service.get_feedback(feedback.id, citizen)
        assert as_author.has_liked is False
        assert as_author.likes == 1
        assert as_author.liked_by == [neighbour.id]
        assert service.get_feedback(feedback.id, None).has_liked is None
        assert service.get_feedback(feedback.id, None).is_following is None


class TestFeedbackFollowers:

    @pytest.fixture
    def service(self, db, notifier):
        return FeedbackService(db, notifier)

    def test_author_follows_own_feedback_exactly_once(self, feedback, citizen):
        assert feedback.followers == [citizen.id]
        assert feedback.follower_count == 1
        assert feedback.is_following is True
        assert feedback.likes == 0

    def test_anonymous_feedback_has_no_followers(self, anonymous_feedback):
        assert anonymous_feedback.author is None
        assert anonymous_feedback.followers == []
        assert anonymous_feedback.follower_count == 0

    def test_author_cannot_follow_again(self, service, feedback, citizen):
        with pytest.raises(AlreadyFollowingError):
            service.follow_feedback(feedback.id, citizen)

    def test_follow_then_unfollow_restores_state(self, service, feedback, citizen, neighbour):
        followed = service.follow_feedback(feedback.id, neighbour)
        assert followed.follower_count == 2
        assert followed.is_following is True

        with pytest.raises(AlreadyFollowingError):
            service.follow_feedback(feedback.id, neighbour)

        unfollowed = service.unfollow_feedback(feedback.id, neighbour)
        assert unfollowed.followers == [citizen.id]
        assert unfollowed.is_following is False

        with pytest.raises(NotFollowingError):
            service.unfollow_feedback(feedback.id, neighbour)

    def test_follow_does_not_touch_likes(self, service, feedback, neighbour):
        result = service.follow_feedback(feedback.id, neighbour)
        assert result.likes == 0
        assert result.liked_by == []


class TestCommentAndResponseLikes:

    @pytest.fixture
    def comment(self, db, notifier, feedback, citizen):
        return CommentService(db, notifier).create_comment(
            CommentCreate(feedback_id=feedback.id, message="Same problem on my street"), citizen
        )

    @pytest.fixture
    def response(self, db, notifier, feedback, admin):
        return ResponseService(db, notifier).create_response(
            ResponseCreate(feedback_id=feedback.id, message="A crew is scheduled", status_update="in-progress"),
            admin
        )

    def test_comment_like_round_trip(self, db, notifier, comment, neighbour):
        service = CommentService(db, notifier)

        liked = service.like_comment(comment.id, neighbour)
        assert liked.likes_count == 1
        assert liked.has_liked is True

        with pytest.raises(AlreadyLikedError) as exc_info:
            service.like_comment(comment.id, neighbour)
        assert exc_info.value.message == "You have already liked this comment"

        unliked = service.unlike_comment(comment.id, neighbour)
        assert unliked.likes == 0
        assert unliked.liked_by == []

        with pytest.raises(NotLikedError):
            service.unlike_comment(comment.id, neighbour)

    def test_response_like_round_trip(self, db, notifier, response, citizen):
        service = ResponseService(db, notifier)

        liked = service.like_response(response.id, citizen)
        assert liked.likes == 1
        assert liked.has_liked is True
        assert service.get_response(response.id, None).has_liked is None

        with pytest.raises(AlreadyLikedError) as exc_info:
            service.like_response(response.id, citizen)
        assert exc_info.value.message == "You have already liked this response"
        assert service.get_response(response.id, citizen).likes == 1

        unliked = service.unlike_response(response.id, citizen)
        assert unliked.likes_count == 0
        assert unliked.liked_by == []

        with pytest.raises(NotLikedError) as exc_info:
            service.unlike_response(response.id, citizen)
        assert exc_info.value.message == "You have not liked this response"
        assert service.get_response(response.id, citizen).likes == 0

    def test_unknown_comment(self, db, neighbour):
        with pytest.raises(NotFoundError) as exc_info:
            EngagementEngine(db).like_comment("missing", neighbour.id)
        assert exc_info.value.message == "Comment not found"


class TestCounterGuards:

    def test_decrement_never_goes_negative(self, db, feedback, neighbour):
        """A membership row without a counted like (corrupt data) still cannot push likes below zero"""
        db.add(FeedbackLike(feedback_id=feedback.id, user_id=neighbour.id))
        db.commit()

        EngagementEngine(db).unlike_feedback(feedback.id, neighbour.id)

        likes, liked_by = stored_likes(db, feedback.id)
        assert likes == 0
        assert liked_by == set()


class TestConcurrentLikes:

    def test_two_users_liking_at_once_both_count(self, tmp_path, feedback_input):
        """Separate connections racing on the same feedback lose no update"""
        engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        setup = Session()
        author = make_user(setup, "author@example.com", "Author")
        users = [make_user(setup, f"user{i}@example.com", f"User{i}") for i in range(4)]
        created = FeedbackService(setup).create_feedback(feedback_input, author)
        user_ids = [u.id for u in users]
        setup.close()

        barrier = threading.Barrier(len(user_ids))
        errors = []

        def like(user_id):
            session = Session()
            try:
                barrier.wait()
                EngagementEngine(session).like_feedback(created.id, user_id)
            except Exception as e:  # surfaced through the assertion below
                errors.append(e)
            finally:
                session.close()

        threads = [threading.Thread(target=like, args=(user_id,)) for user_id in user_ids]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        check = Session()
        result = FeedbackDetail.from_feedback(check.query(Feedback).filter(Feedback.id == created.id).one())
        check.close()
        engine.dispose()

        assert errors == []
        assert result.likes == 4
        assert result.likes_count == 4
        assert set(result.liked_by) == set(user_ids)
