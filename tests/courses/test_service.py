"""Tests for course structures and enrollments."""

from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import orjson
import pytest
from cassandra.cluster import Session

from shlokayug.courses.models import (
    CourseStructure,
    Enrollment,
    EnrollmentStatus,
    LectureNode,
    LessonNode,
    UnitNode,
)
from shlokayug.courses.service import (
    AlreadyEnrolledError,
    CourseNotFoundError,
    CourseService,
    InMemoryCourseService,
    InvalidStructureError,
    validate_structure,
)


class TestCourseStructure:
    def test_lecture_paths_follow_course_order(self, structure: CourseStructure) -> None:
        assert list(structure.lecture_paths()) == [
            ("u1", "l1", "a"),
            ("u1", "l1", "b"),
            ("u1", "l2", "c"),
            ("u2", "l3", "d"),
        ]
        assert structure.lecture_count == 4

    def test_locate_lecture(self, structure: CourseStructure) -> None:
        unit, lesson, lecture = structure.locate_lecture("d")

        assert unit.unit_id == "u2"
        assert lesson.title == "Meter"
        assert lecture.duration == 400
        assert structure.locate_lecture("zz") is None

    def test_has_lecture_checks_the_full_path(self, structure: CourseStructure) -> None:
        assert structure.has_lecture("u1", "l2", "c")
        assert not structure.has_lecture("u1", "l1", "c")

    def test_document_roundtrip(self, structure: CourseStructure) -> None:
        document = orjson.dumps(structure.to_dict())

        restored = CourseStructure.from_dict(orjson.loads(document))

        assert restored.course_id == structure.course_id
        assert restored.lecture_titles() == structure.lecture_titles()
        assert restored.updated_at == structure.updated_at


class TestValidateStructure:
    def test_duplicate_lecture_across_lessons(self, course_id) -> None:
        structure = CourseStructure(
            course_id=course_id,
            units=[
                UnitNode("u1", lessons=[LessonNode("l1", lectures=[LectureNode("a")])]),
                UnitNode("u2", lessons=[LessonNode("l2", lectures=[LectureNode("a")])]),
            ],
        )

        with pytest.raises(InvalidStructureError, match="Duplicate lecture id: a"):
            validate_structure(structure)

    def test_duplicate_unit(self, course_id) -> None:
        structure = CourseStructure(course_id=course_id, units=[UnitNode("u1"), UnitNode("u1")])

        with pytest.raises(InvalidStructureError):
            validate_structure(structure)

    def test_lesson_ids_may_repeat_across_units(self, course_id) -> None:
        structure = CourseStructure(
            course_id=course_id,
            units=[
                UnitNode("u1", lessons=[LessonNode("intro")]),
                UnitNode("u2", lessons=[LessonNode("intro")]),
            ],
        )

        validate_structure(structure)


class TestEnrollment:
    @pytest.mark.parametrize(
        "status,active",
        [
            (EnrollmentStatus.ACTIVE.value, True),
            (EnrollmentStatus.COMPLETED.value, True),
            (EnrollmentStatus.CANCELLED.value, False),
        ],
    )
    def test_is_active(self, status: str, active: bool) -> None:
        enrollment = Enrollment(course_id=uuid4(), user_id=uuid4(), status=status)

        assert enrollment.is_active is active


class TestCassandraCourseService:
    """CourseService against a mocked Cassandra session."""

    @pytest.fixture
    def session(self) -> Mock:
        session = Mock(spec=Session)
        session.prepare.side_effect = lambda cql: Mock(name="stmt", query=cql)
        session.aexecute = AsyncMock()
        return session

    @pytest.fixture
    def service(self, session: Mock) -> CourseService:
        return CourseService(session, "shlokayug_test")

    @pytest.mark.asyncio
    async def test_save_structure_stores_document(
        self, service: CourseService, session: Mock, structure: CourseStructure
    ) -> None:
        # Act
        await service.save_structure(structure)

        # Assert
        stmt, params = session.aexecute.call_args.args
        assert "course_structures" in stmt.query
        assert params[0] == structure.course_id
        assert params[1] == "Sanskrit Foundations"
        assert orjson.loads(params[2])["units"][0]["unit_id"] == "u1"

    @pytest.mark.asyncio
    async def test_get_structure_missing(
        self, service: CourseService, session: Mock
    ) -> None:
        session.aexecute.return_value = Mock(one=Mock(return_value=None))

        assert await service.get_structure(uuid4()) is None

    @pytest.mark.asyncio
    async def test_enroll_requires_structure(
        self, service: CourseService, session: Mock
    ) -> None:
        session.aexecute.return_value = Mock(one=Mock(return_value=None))

        with pytest.raises(CourseNotFoundError):
            await service.enroll_user(uuid4(), uuid4())

    @pytest.mark.asyncio
    async def test_enroll_rejects_active_enrollment(
        self, service: CourseService, session: Mock, structure: CourseStructure
    ) -> None:
        # Arrange
        user_id = uuid4()
        structure_row = Mock(document=orjson.dumps(structure.to_dict()).decode())
        enrollment_row = Mock(
            id=uuid4(),
            course_id=structure.course_id,
            user_id=user_id,
            status="active",
            enrolled_at=None,
        )
        session.aexecute.side_effect = [
            Mock(one=Mock(return_value=structure_row)),
            Mock(one=Mock(return_value=enrollment_row)),
        ]

        # Act / Assert
        with pytest.raises(AlreadyEnrolledError):
            await service.enroll_user(user_id, structure.course_id)

    @pytest.mark.asyncio
    async def test_cancelled_enrollment_grants_no_access(
        self, service: CourseService, session: Mock
    ) -> None:
        row = Mock(
            id=uuid4(),
            course_id=uuid4(),
            user_id=uuid4(),
            status="cancelled",
            enrolled_at=None,
        )
        session.aexecute.return_value = Mock(one=Mock(return_value=row))

        assert await service.get_active_enrollment(row.user_id, row.course_id) is None


class TestInMemoryCourseService:
    @pytest.mark.asyncio
    async def test_structure_is_copied(self, structure: CourseStructure) -> None:
        service = InMemoryCourseService()
        await service.save_structure(structure)

        loaded = await service.get_structure(structure.course_id)
        loaded.units.clear()

        again = await service.get_structure(structure.course_id)
        assert again.lecture_count == 4

    @pytest.mark.asyncio
    async def test_enroll_twice(self, structure: CourseStructure, user_id) -> None:
        service = InMemoryCourseService()
        await service.save_structure(structure)
        await service.enroll_user(user_id, structure.course_id)

        with pytest.raises(AlreadyEnrolledError):
            await service.enroll_user(user_id, structure.course_id)

        enrollment = await service.get_active_enrollment(user_id, structure.course_id)
        assert enrollment.status == "active"
