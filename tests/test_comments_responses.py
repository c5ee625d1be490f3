"""
Tests for comments and official responses
"""

import pytest

from citizenes.core.exceptions import ForbiddenError, InputValidationError, NotFoundError
from citizenes.models import Comment, CommentLike, Feedback
from citizenes.schemas.comment import CommentCreate, CommentUpdate
from citizenes.schemas.response import ResponseCreate
from citizenes.services.comment_service import CommentService
from citizenes.services.response_service import ResponseService

from .conftest import auth_headers

COMMENTS = "/api/v1/comments"
RESPONSES = "/api/v1/responses"
FEEDBACK = "/api/v1/feedback"


class TestCommentService:

    @pytest.fixture
    def service(self, db, notifier):
        return CommentService(db, notifier)

    @pytest.fixture
    def comment(self, service, feedback, neighbour):
        return service.create_comment(
            CommentCreate(feedback_id=feedback.id, message="Same here, it is very dark at night"), neighbour
        )

    def test_create_uses_display_name(self, comment, neighbour):
        assert comment.author_id == neighbour.id
        assert comment.author_name == "Jean Habimana"
        assert comment.likes == 0
        assert comment.has_liked is False

    def test_create_on_unknown_feedback(self, service, neighbour):
        with pytest.raises(NotFoundError):
            service.create_comment(CommentCreate(feedback_id="missing", message="Hello"), neighbour)

    def test_reply_to_comment(self, service, feedback, comment, citizen):
        reply = service.create_comment(
            CommentCreate(feedback_id=feedback.id, message="Reported to the sector", parent_id=comment.id), citizen
        )
        assert reply.parent_id == comment.id

        with pytest.raises(InputValidationError):
            service.create_comment(
                CommentCreate(feedback_id=feedback.id, message="Too deep", parent_id=reply.id), citizen
            )

    def test_reply_to_response(self, db, notifier, service, feedback, citizen, admin):
        response = ResponseService(db, notifier).create_response(
            ResponseCreate(feedback_id=feedback.id, message="Crew on the way", status_update="in-progress"),
            admin
        )

        reply = service.create_comment(
            CommentCreate(feedback_id=feedback.id, message="Thank you", parent_id=response.id), citizen
        )
        assert reply.parent_id == response.id

    def test_parent_from_other_feedback_is_rejected(self, service, comment, anonymous_feedback, citizen):
        with pytest.raises(InputValidationError):
            service.create_comment(
                CommentCreate(feedback_id=anonymous_feedback.id, message="Wrong thread", parent_id=comment.id),
                citizen
            )
        with pytest.raises(InputValidationError):
            service.create_comment(
                CommentCreate(feedback_id=anonymous_feedback.id, message="Orphan", parent_id="missing"), citizen
            )

    def test_only_author_edits(self, service, comment, citizen, neighbour):
        with pytest.raises(ForbiddenError):
            service.update_comment(comment.id, CommentUpdate(message="Edited"), citizen)

        updated = service.update_comment(comment.id, CommentUpdate(message="Edited"), neighbour)
        assert updated.message == "Edited"

    def test_delete_removes_replies_and_likes(self, service, db, feedback, comment, citizen, neighbour, admin):
        reply = service.create_comment(
            CommentCreate(feedback_id=feedback.id, message="Reply", parent_id=comment.id), citizen
        )
        service.like_comment(comment.id, citizen)

        with pytest.raises(ForbiddenError):
            service.delete_comment(comment.id, citizen)

        assert service.delete_comment(comment.id, admin) is True

        db.expire_all()
        assert db.query(Comment).filter(Comment.id.in_([comment.id, reply.id])).count() == 0
        assert db.query(CommentLike).filter(CommentLike.comment_id == comment.id).count() == 0

    def test_list_comments_is_viewer_relative(self, service, feedback, comment, citizen, neighbour):
        service.like_comment(comment.id, citizen)

        as_citizen = service.list_comments(feedback.id, viewer=citizen)
        as_neighbour = service.list_comments(feedback.id, viewer=neighbour)

        assert as_citizen.total == 1
        assert as_citizen.comments[0].has_liked is True
        assert as_neighbour.comments[0].has_liked is False
        assert service.list_comments(feedback.id).comments[0].has_liked is None


class TestResponseService:

    @pytest.fixture
    def service(self, db, notifier):
        return ResponseService(db, notifier)

    def test_only_admins_respond(self, service, db, feedback, citizen):
        with pytest.raises(ForbiddenError) as exc_info:
            service.create_response(
                ResponseCreate(feedback_id=feedback.id, message="I fixed it", status_update="resolved"), citizen
            )

        assert exc_info.value.message == "Only admins can respond to feedback"
        db.expire_all()
        assert db.get(Feedback, feedback.id).status == "open"

    def test_response_applies_status_update(self, service, db, feedback, admin):
        response = service.create_response(
            ResponseCreate(feedback_id=feedback.id, message="Repaired", status_update="resolved"), admin
        )

        assert response.by.id == admin.id
        assert response.status_update == "resolved"
        db.expire_all()
        assert db.get(Feedback, feedback.id).status == "resolved"

    def test_unknown_feedback(self, service, admin):
        with pytest.raises(NotFoundError):
            service.create_response(
                ResponseCreate(feedback_id="missing", message="Hello", status_update="open"), admin
            )

    def test_delete_removes_reply_comments(self, service, db, notifier, feedback, citizen, admin):
        response = service.create_response(
            ResponseCreate(feedback_id=feedback.id, message="Scheduled", status_update="in-progress"), admin
        )
        CommentService(db, notifier).create_comment(
            CommentCreate(feedback_id=feedback.id, message="When?", parent_id=response.id), citizen
        )

        with pytest.raises(ForbiddenError):
            service.delete_response(response.id, citizen)
        assert service.delete_response(response.id, admin) is True

        db.expire_all()
        assert db.query(Comment).filter(Comment.parent_id == response.id).count() == 0
        assert service.list_responses(feedback.id).total == 0


class TestCommentsAPI:

    def test_comment_lifecycle(self, client, feedback, citizen, neighbour):
        created = client.post(
            f"{COMMENTS}/",
            json={"feedback_id": feedback.id, "message": "Any update?"},
            headers=auth_headers(neighbour)
        )
        assert created.status_code == 201
        comment_id = created.json()["id"]

        liked = client.post(f"{COMMENTS}/{comment_id}/like", headers=auth_headers(citizen))
        assert liked.json()["likes"] == 1
        assert client.post(f"{COMMENTS}/{comment_id}/like", headers=auth_headers(citizen)).status_code == 409

        listed = client.get(f"{FEEDBACK}/{feedback.id}/comments", headers=auth_headers(citizen)).json()
        assert listed["total"] == 1
        assert listed["comments"][0]["has_liked"] is True

        edited = client.put(
            f"{COMMENTS}/{comment_id}", json={"message": "Any update yet?"}, headers=auth_headers(neighbour)
        )
        assert edited.json()["message"] == "Any update yet?"

        assert client.delete(f"{COMMENTS}/{comment_id}", headers=auth_headers(citizen)).status_code == 403
        assert client.delete(f"{COMMENTS}/{comment_id}", headers=auth_headers(neighbour)).status_code == 200
        assert client.get(f"{COMMENTS}/{comment_id}").status_code == 404

    def test_comment_requires_login(self, client, feedback):
        response = client.post(f"{COMMENTS}/", json={"feedback_id": feedback.id, "message": "Hi"})
        assert response.status_code == 401

    def test_user_comments_listing(self, client, feedback, citizen, neighbour):
        client.post(
            f"{COMMENTS}/", json={"feedback_id": feedback.id, "message": "First"}, headers=auth_headers(neighbour)
        )

        mine = client.get(f"/api/v1/users/{neighbour.id}/comments", headers=auth_headers(neighbour))
        assert mine.json()["total"] == 1
        assert client.get(
            f"/api/v1/users/{neighbour.id}/comments", headers=auth_headers(citizen)
        ).status_code == 403


class TestResponsesAPI:

    def test_admin_response_resolves_feedback(self, client, feedback, citizen, admin):
        created = client.post(
            f"{RESPONSES}/",
            json={"feedback_id": feedback.id, "message": "Fixed", "status_update": "resolved"},
            headers=auth_headers(admin)
        )
        assert created.status_code == 201
        response_id = created.json()["id"]

        assert client.get(f"{FEEDBACK}/{feedback.id}").json()["status"] == "resolved"

        listed = client.get(f"{FEEDBACK}/{feedback.id}/responses").json()
        assert [r["id"] for r in listed["responses"]] == [response_id]

        liked = client.post(f"{RESPONSES}/{response_id}/like", headers=auth_headers(citizen))
        assert liked.json()["has_liked"] is True

    def test_citizen_cannot_respond(self, client, feedback, citizen):
        response = client.post(
            f"{RESPONSES}/",
            json={"feedback_id": feedback.id, "message": "Fixed", "status_update": "resolved"},
            headers=auth_headers(citizen)
        )
        assert response.status_code == 403
