"""Shared fixtures.

The app is created without running its lifespan, so no Redis or Cassandra
connection is attempted; services are wired with in-memory stores.
"""

import os
import tempfile
from collections.abc import Iterator
from datetime import UTC, datetime
from uuid import UUID, uuid4

import pytest


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="shlokayug-logs-"))
os.environ.setdefault("LOG_LEVEL", "WARNING")

from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from shlokayug.auth.security import create_access_token  # noqa: E402
from shlokayug.config import get_settings  # noqa: E402
from shlokayug.courses.models import (  # noqa: E402
    CourseStructure,
    LectureNode,
    LessonNode,
    UnitNode,
)
from shlokayug.courses.service import InMemoryCourseService  # noqa: E402
from shlokayug.progress.locks import ProgressLockManager  # noqa: E402
from shlokayug.progress.models import ProgressAggregate  # noqa: E402
from shlokayug.progress.repository import InMemoryProgressRepository  # noqa: E402
from shlokayug.progress.service import ProgressService  # noqa: E402


NOW = datetime(2024, 3, 4, 10, 0, tzinfo=UTC)


def build_structure(course_id: UUID) -> CourseStructure:
    """Two units: u1 (l1: a, b; l2: c) and u2 (l3: d)."""
    return CourseStructure(
        course_id=course_id,
        title="Sanskrit Foundations",
        units=[
            UnitNode(
                unit_id="u1",
                title="Alphabet",
                lessons=[
                    LessonNode(
                        lesson_id="l1",
                        title="Vowels",
                        lectures=[
                            LectureNode("a", "Short vowels", 100),
                            LectureNode("b", "Long vowels", 200),
                        ],
                    ),
                    LessonNode(
                        lesson_id="l2",
                        title="Consonants",
                        lectures=[LectureNode("c", "Stops", 300)],
                    ),
                ],
            ),
            UnitNode(
                unit_id="u2",
                title="Chanting",
                lessons=[
                    LessonNode(
                        lesson_id="l3",
                        title="Meter",
                        lectures=[LectureNode("d", "Anushtubh", 400)],
                    ),
                ],
            ),
        ],
    )


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def course_id() -> UUID:
    return uuid4()


@pytest.fixture
def structure(course_id: UUID) -> CourseStructure:
    return build_structure(course_id)


@pytest.fixture
def aggregate(user_id: UUID, course_id: UUID, structure: CourseStructure) -> ProgressAggregate:
    """Fresh aggregate seeded from the sample structure."""
    return ProgressAggregate.new(
        user_id=user_id,
        course_id=course_id,
        enrollment_id=uuid4(),
        lecture_paths=structure.lecture_paths(),
    )


@pytest.fixture
def course_service() -> InMemoryCourseService:
    return InMemoryCourseService()


@pytest.fixture
def repository() -> InMemoryProgressRepository:
    return InMemoryProgressRepository()


@pytest.fixture
def progress_service(
    repository: InMemoryProgressRepository, course_service: InMemoryCourseService
) -> ProgressService:
    return ProgressService(
        repository=repository,
        course_service=course_service,
        lock_manager=ProgressLockManager(),
        settings=get_settings(),
    )


@pytest.fixture
def app(
    course_service: InMemoryCourseService, progress_service: ProgressService
) -> FastAPI:
    from shlokayug.main import create_app

    application = create_app()
    application.state.course_service = course_service
    application.state.progress_service = progress_service
    application.state.storage = "memory"
    return application


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    # Lifespan is not entered: no external connections in tests
    yield TestClient(app)


def make_token(user_id: UUID, role: str = "student") -> str:
    return create_access_token(
        {"sub": str(user_id), "email": "learner@example.com", "role": role}
    )


@pytest.fixture
def auth_headers(user_id: UUID) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def teacher_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(uuid4(), role='teacher')}"}


@pytest.fixture
def token_for():
    """Build Authorization headers for any user and role."""

    def _headers(user_id: UUID, role: str = "student") -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id, role)}"}

    return _headers
