"""API tests for progress endpoints."""

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient


STRUCTURE_PAYLOAD = {
    "title": "Sanskrit Foundations",
    "units": [
        {
            "unit_id": "u1",
            "title": "Alphabet",
            "lessons": [
                {
                    "lesson_id": "l1",
                    "title": "Vowels",
                    "lectures": [
                        {"lecture_id": "a", "title": "Short vowels", "duration": 100},
                        {"lecture_id": "b", "title": "Long vowels", "duration": 200},
                    ],
                },
            ],
        },
    ],
}


@pytest.fixture
def enrolled_course(client: TestClient, auth_headers, teacher_headers, course_id):
    """Course with a published structure and the current user enrolled."""
    response = client.put(
        f"/v1/courses/{course_id}/structure",
        json=STRUCTURE_PAYLOAD,
        headers=teacher_headers,
    )
    assert response.status_code == 200
    response = client.post(f"/v1/courses/{course_id}/enroll", headers=auth_headers)
    assert response.status_code == 201
    return str(course_id)


class TestUpdateEndpoint:
    def test_requires_token(self, client: TestClient, course_id) -> None:
        response = client.post(
            "/v1/progress/update",
            json={"course_id": str(course_id), "lecture_id": "a", "action": "start"},
        )

        assert response.status_code == 401

    def test_not_enrolled(
        self, client: TestClient, enrolled_course, token_for
    ) -> None:
        response = client.post(
            "/v1/progress/update",
            json={"course_id": enrolled_course, "lecture_id": "a", "action": "start"},
            headers=token_for(uuid4()),
        )

        assert response.status_code == 403

    def test_progress_report(
        self, client: TestClient, auth_headers, enrolled_course
    ) -> None:
        # Act
        response = client.post(
            "/v1/progress/update",
            json={
                "course_id": enrolled_course,
                "lecture_id": "a",
                "action": "progress",
                "watch_data": {
                    "total_duration": 100,
                    "watched_duration": 40,
                    "last_position": 40,
                    "session_start": "2024-03-04T10:00:00Z",
                    "session_end": "2024-03-04T10:01:00Z",
                },
            },
            headers=auth_headers,
        )

        # Assert
        assert response.status_code == 200
        data = response.json()
        assert data["lecture"]["status"] == "in_progress"
        assert data["lecture"]["watch_percentage"] == 40.0
        assert data["lecture"]["sessions"] == 1
        assert data["overall"] == 0
        assert data["next_lecture"]["lecture_id"] == "a"

    def test_complete_returns_cascade(
        self, client: TestClient, auth_headers, enrolled_course
    ) -> None:
        response = client.post(
            "/v1/progress/update",
            json={"course_id": enrolled_course, "lecture_id": "a", "action": "complete"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["overall"] == 50.0
        assert data["lesson_percent"] == 50.0
        assert [a["type"] for a in data["new_achievements"]] == [
            "first_lecture",
            "halfway_point",
        ]

    def test_unknown_lecture(
        self, client: TestClient, auth_headers, enrolled_course
    ) -> None:
        response = client.post(
            "/v1/progress/update",
            json={"course_id": enrolled_course, "lecture_id": "zz", "action": "start"},
            headers=auth_headers,
        )

        assert response.status_code == 404

    def test_invalid_action(
        self, client: TestClient, auth_headers, enrolled_course
    ) -> None:
        response = client.post(
            "/v1/progress/update",
            json={"course_id": enrolled_course, "lecture_id": "a", "action": "rewind"},
            headers=auth_headers,
        )

        assert response.status_code == 422


class TestCompleteEndpoint:
    def test_complete_all_lectures(
        self, client: TestClient, auth_headers, enrolled_course
    ) -> None:
        client.patch(
            "/v1/progress/lecture/a/complete",
            json={"course_id": enrolled_course},
            headers=auth_headers,
        )

        response = client.patch(
            "/v1/progress/lecture/b/complete",
            json={"course_id": enrolled_course, "completion_note": "Done"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["lecture_id"] == "b"
        assert data["lesson_percent"] == 100.0
        assert data["unit_percent"] == 100.0
        assert data["overall"] == 100.0
        assert data["completion_status"] == "completed"


class TestCourseProgressEndpoint:
    def test_breakdown(
        self, client: TestClient, auth_headers, enrolled_course
    ) -> None:
        # Arrange
        client.patch(
            "/v1/progress/lecture/a/complete",
            json={"course_id": enrolled_course},
            headers=auth_headers,
        )

        # Act
        response = client.get(
            f"/v1/progress/course/{enrolled_course}", headers=auth_headers
        )

        # Assert
        assert response.status_code == 200
        data = response.json()
        assert data["completion_status"] == "in_progress"
        assert data["statistics"]["completion"]["overall"] == 50.0
        unit = data["units"][0]
        assert unit["title"] == "Alphabet"
        lesson = unit["lessons"][0]
        assert lesson["lectures_completed"] == 1
        assert lesson["lectures_total"] == 2
        assert lesson["lectures"][0]["title"] == "Short vowels"
        assert data["next_lecture"]["lecture_id"] == "b"
        assert data["statistics"]["engagement"]["streak"]["current"] == 1

    def test_analytics(
        self, client: TestClient, auth_headers, enrolled_course
    ) -> None:
        client.patch(
            "/v1/progress/lecture/a/complete",
            json={"course_id": enrolled_course},
            headers=auth_headers,
        )

        response = client.get("/v1/progress/analytics", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total_courses"] == 1
        assert data["average_progress"] == 50.0

    def test_course_analytics_requires_teacher(
        self, client: TestClient, auth_headers, teacher_headers, enrolled_course
    ) -> None:
        denied = client.get(
            f"/v1/progress/course/{enrolled_course}/analytics", headers=auth_headers
        )
        allowed = client.get(
            f"/v1/progress/course/{enrolled_course}/analytics", headers=teacher_headers
        )

        assert denied.status_code == 403
        assert allowed.status_code == 200
        assert allowed.json()["total_students"] == 0


class TestAnnotationEndpoints:
    def test_bookmark_roundtrip(
        self, client: TestClient, auth_headers, enrolled_course
    ) -> None:
        # Act
        created = client.post(
            "/v1/progress/bookmark",
            json={
                "course_id": enrolled_course,
                "lecture_id": "b",
                "position_seconds": 33,
                "note": "dirgha",
            },
            headers=auth_headers,
        )
        listed = client.get(
            f"/v1/progress/bookmarks/{enrolled_course}", headers=auth_headers
        )

        # Assert
        assert created.status_code == 201
        assert listed.status_code == 200
        data = listed.json()
        assert data["total"] == 1
        assert data["items"][0]["lecture_title"] == "Long vowels"
        assert data["items"][0]["id"] == created.json()["id"]

    def test_bookmark_note_too_long(
        self, client: TestClient, auth_headers, enrolled_course
    ) -> None:
        response = client.post(
            "/v1/progress/bookmark",
            json={
                "course_id": enrolled_course,
                "lecture_id": "b",
                "position_seconds": 1,
                "note": "x" * 101,
            },
            headers=auth_headers,
        )

        assert response.status_code == 422

    def test_note(self, client: TestClient, auth_headers, enrolled_course) -> None:
        response = client.post(
            "/v1/progress/lecture/a/note",
            json={"course_id": enrolled_course, "content": "a i u", "position_seconds": 5},
            headers=auth_headers,
        )

        assert response.status_code == 201
        assert response.json()["content"] == "a i u"

    def test_rating(self, client: TestClient, auth_headers, enrolled_course) -> None:
        response = client.post(
            "/v1/progress/lecture/a/rating",
            json={"course_id": enrolled_course, "self_rating": 5},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["self_rating"] == 5
        assert response.json()["difficulty_rating"] is None

    def test_rating_without_values(
        self, client: TestClient, auth_headers, enrolled_course
    ) -> None:
        response = client.post(
            "/v1/progress/lecture/a/rating",
            json={"course_id": enrolled_course},
            headers=auth_headers,
        )

        assert response.status_code == 422
