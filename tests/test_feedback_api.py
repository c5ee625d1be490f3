"""
Tests for the feedback API
"""

import pytest

from citizenes.models import Feedback, FeedbackLike

from .conftest import auth_headers

FEEDBACK = "/api/v1/feedback"


@pytest.fixture
def payload():
    return {
        "title": "Water outage in Kicukiro",
        "description": "No water since Monday morning.",
        "type": "complaint",
        "category": "public-services",
        "subcategory": "water",
        "location": {
            "country": "Rwanda",
            "province": "Kigali",
            "district": "Kicukiro",
            "sector": "Niboye"
        }
    }


class TestCreateFeedback:

    def test_create_as_logged_in_user(self, client, citizen, payload):
        response = client.post(f"{FEEDBACK}/", json=payload, headers=auth_headers(citizen))

        assert response.status_code == 201
        body = response.json()
        assert body["type"] == "Complaint"
        assert body["status"] == "open"
        assert body["priority"] == "high"
        assert len(body["ticket_id"]) == 6
        assert body["author"]["id"] == citizen.id
        assert body["author"]["display_name"] == "Amina Uwase"
        assert body["followers"] == [citizen.id]
        assert body["is_following"] is True
        assert body["has_liked"] is False
        assert body["likes"] == 0
        assert body["location"]["district"] == "Kicukiro"

    def test_anonymous_submission_needs_no_login(self, client, payload):
        payload["is_anonymous"] = True

        response = client.post(f"{FEEDBACK}/", json=payload)

        assert response.status_code == 201
        body = response.json()
        assert body["author"] is None
        assert body["followers"] == []
        assert body["has_liked"] is None

    def test_anonymous_flag_hides_logged_in_author(self, client, citizen, payload):
        payload["is_anonymous"] = True

        body = client.post(f"{FEEDBACK}/", json=payload, headers=auth_headers(citizen)).json()

        assert body["author"] is None
        assert body["followers"] == []

    def test_non_anonymous_submission_requires_login(self, client, payload):
        response = client.post(f"{FEEDBACK}/", json=payload)

        assert response.status_code == 401
        assert response.json()["detail"] == "You must be logged in for non-anonymous feedback"

    def test_invalid_type_is_rejected(self, client, citizen, payload):
        payload["type"] = "rant"
        assert client.post(f"{FEEDBACK}/", json=payload, headers=auth_headers(citizen)).status_code == 422

    def test_location_requires_all_levels(self, client, citizen, payload):
        del payload["location"]["sector"]
        assert client.post(f"{FEEDBACK}/", json=payload, headers=auth_headers(citizen)).status_code == 422


class TestReadFeedback:

    def test_get_and_ticket_lookup(self, client, feedback):
        by_id = client.get(f"{FEEDBACK}/{feedback.id}")
        assert by_id.status_code == 200
        assert by_id.json()["title"] == "Broken streetlight on KN 5 Rd"

        by_ticket = client.get(f"{FEEDBACK}/ticket/{feedback.ticket_id.lower()}")
        assert by_ticket.status_code == 200
        assert by_ticket.json()["id"] == feedback.id

    def test_unknown_feedback(self, client):
        response = client.get(f"{FEEDBACK}/missing")
        assert response.status_code == 404
        assert response.json()["detail"] == "Feedback not found"

    def test_list_with_filters(self, client, feedback, anonymous_feedback):
        everything = client.get(f"{FEEDBACK}/").json()
        assert everything["total"] == 2

        anonymous = client.get(f"{FEEDBACK}/", params={"is_anonymous": "true"}).json()
        assert [f["id"] for f in anonymous["feedbacks"]] == [anonymous_feedback.id]

        complaints = client.get(f"{FEEDBACK}/", params={"type": "complaint", "province": "Kigali"}).json()
        assert complaints["total"] == 2

        suggestions = client.get(f"{FEEDBACK}/", params={"type": "suggestion"}).json()
        assert suggestions["total"] == 0

    def test_list_paginates(self, client, feedback, anonymous_feedback):
        page = client.get(f"{FEEDBACK}/", params={"limit": 1, "offset": 1}).json()

        assert page["total"] == 2
        assert page["limit"] == 1
        assert len(page["feedbacks"]) == 1

    def test_viewer_relative_fields_follow_the_token(self, client, feedback, citizen, neighbour):
        client.post(f"{FEEDBACK}/{feedback.id}/like", headers=auth_headers(neighbour))

        as_neighbour = client.get(f"{FEEDBACK}/{feedback.id}", headers=auth_headers(neighbour)).json()
        as_author = client.get(f"{FEEDBACK}/{feedback.id}", headers=auth_headers(citizen)).json()
        as_guest = client.get(f"{FEEDBACK}/{feedback.id}").json()

        assert as_neighbour["has_liked"] is True
        assert as_neighbour["is_following"] is False
        assert as_author["has_liked"] is False
        assert as_author["is_following"] is True
        assert as_guest["has_liked"] is None
        assert as_guest["likes"] == 1


class TestEngagementAPI:

    def test_like_twice_conflicts(self, client, feedback, neighbour):
        first = client.post(f"{FEEDBACK}/{feedback.id}/like", headers=auth_headers(neighbour))
        assert first.status_code == 200
        assert first.json()["likes_count"] == 1

        second = client.post(f"{FEEDBACK}/{feedback.id}/like", headers=auth_headers(neighbour))
        assert second.status_code == 409
        assert second.json()["detail"] == "You have already liked this feedback"

    def test_unlike_without_like_conflicts(self, client, feedback, neighbour):
        response = client.post(f"{FEEDBACK}/{feedback.id}/unlike", headers=auth_headers(neighbour))
        assert response.status_code == 409
        assert response.json()["detail"] == "You have not liked this feedback"

    def test_follow_round_trip(self, client, feedback, neighbour):
        followed = client.post(f"{FEEDBACK}/{feedback.id}/follow", headers=auth_headers(neighbour))
        assert followed.json()["follower_count"] == 2

        unfollowed = client.post(f"{FEEDBACK}/{feedback.id}/unfollow", headers=auth_headers(neighbour))
        assert unfollowed.json()["follower_count"] == 1
        assert unfollowed.json()["is_following"] is False

    def test_engagement_requires_login(self, client, feedback):
        for action in ("like", "unlike", "follow", "unfollow"):
            assert client.post(f"{FEEDBACK}/{feedback.id}/{action}").status_code == 401

    def test_like_unknown_feedback(self, client, neighbour):
        assert client.post(f"{FEEDBACK}/missing/like", headers=auth_headers(neighbour)).status_code == 404

    def test_liked_and_followed_relations(self, client, feedback, neighbour):
        client.post(f"{FEEDBACK}/{feedback.id}/like", headers=auth_headers(neighbour))

        liked = client.get(
            f"/api/v1/users/{neighbour.id}/feedback", params={"relation": "liked"}, headers=auth_headers(neighbour)
        ).json()
        followed = client.get(
            f"/api/v1/users/{neighbour.id}/feedback", params={"relation": "followed"}, headers=auth_headers(neighbour)
        ).json()

        assert [f["id"] for f in liked["feedbacks"]] == [feedback.id]
        assert followed["total"] == 0


class TestUpdateFeedback:

    def test_author_updates_fields(self, client, feedback, citizen):
        response = client.put(
            f"{FEEDBACK}/{feedback.id}",
            json={"title": "Two streetlights out", "chat_enabled": False},
            headers=auth_headers(citizen)
        )

        assert response.status_code == 200
        assert response.json()["title"] == "Two streetlights out"
        assert response.json()["chat_enabled"] is False

    def test_other_user_cannot_update(self, client, feedback, neighbour):
        response = client.put(f"{FEEDBACK}/{feedback.id}", json={"title": "Hijacked"}, headers=auth_headers(neighbour))
        assert response.status_code == 403

    def test_anonymous_feedback_forbids_guests_and_citizens(self, client, anonymous_feedback, citizen, admin):
        url = f"{FEEDBACK}/{anonymous_feedback.id}/status"

        assert client.put(url, json={"status": "closed"}).status_code == 403
        assert client.put(url, json={"status": "closed"}, headers=auth_headers(citizen)).status_code == 403

        response = client.put(url, json={"status": "in-progress"}, headers=auth_headers(admin))
        assert response.status_code == 200
        assert response.json()["status"] == "in-progress"

        history = client.get(f"{FEEDBACK}/{anonymous_feedback.id}/history").json()
        assert [entry["to_status"] for entry in history] == ["open", "in-progress"]

    def test_invalid_status_is_rejected(self, client, feedback, citizen):
        response = client.put(
            f"{FEEDBACK}/{feedback.id}/status", json={"status": "archived"}, headers=auth_headers(citizen)
        )
        assert response.status_code == 422

    def test_assign_is_admin_only(self, client, feedback, citizen, admin):
        denied = client.put(
            f"{FEEDBACK}/{feedback.id}/assign", json={"assignee_id": admin.id}, headers=auth_headers(citizen)
        )
        assert denied.status_code == 403

        assigned = client.put(
            f"{FEEDBACK}/{feedback.id}/assign", json={"assignee_id": admin.id}, headers=auth_headers(admin)
        )
        assert assigned.status_code == 200
        assert assigned.json()["assigned_to"]["id"] == admin.id


class TestDeleteAndStats:

    def test_delete_removes_feedback_and_memberships(self, client, db, feedback, citizen, neighbour):
        client.post(f"{FEEDBACK}/{feedback.id}/like", headers=auth_headers(neighbour))

        assert client.delete(f"{FEEDBACK}/{feedback.id}", headers=auth_headers(neighbour)).status_code == 403

        response = client.delete(f"{FEEDBACK}/{feedback.id}", headers=auth_headers(citizen))
        assert response.status_code == 200
        assert response.json() == {"message": "Feedback deleted successfully"}

        db.expire_all()
        assert db.query(Feedback).filter(Feedback.id == feedback.id).first() is None
        assert db.query(FeedbackLike).filter(FeedbackLike.feedback_id == feedback.id).count() == 0
        assert client.get(f"{FEEDBACK}/{feedback.id}").status_code == 404

    def test_stats_admin_only(self, client, feedback, anonymous_feedback, citizen, admin):
        assert client.get(f"{FEEDBACK}/stats", headers=auth_headers(citizen)).status_code == 403

        stats = client.get(f"{FEEDBACK}/stats", headers=auth_headers(admin)).json()
        assert stats["total"] == 2
        assert stats["by_status"] == {"open": 2}
        assert stats["by_type"] == {"Complaint": 2}
        assert stats["by_category"] == {"infrastructure": 2}
