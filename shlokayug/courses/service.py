"""Course structure and enrollment service layer.

The course structure is the authoritative Unit -> Lesson -> Lecture tree
that seeds progress aggregates; enrollments decide who may report
progress on a course.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import orjson
import structlog

from .models import CourseStructure, Enrollment, EnrollmentStatus


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class CourseError(Exception):
    """Base course error."""

    def __init__(self, message: str, code: str = "course_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class CourseNotFoundError(CourseError):
    def __init__(self, message: str = "Course not found"):
        super().__init__(message, "course_not_found")


class InvalidStructureError(CourseError):
    def __init__(self, message: str = "Invalid course structure"):
        super().__init__(message, "invalid_structure")


class AlreadyEnrolledError(CourseError):
    def __init__(self, message: str = "User already enrolled in course"):
        super().__init__(message, "already_enrolled")


def validate_structure(structure: CourseStructure) -> None:
    """Reject structures with duplicate ids.

    Raises:
        InvalidStructureError: If a unit, lesson or lecture id repeats
    """
    unit_ids: set[str] = set()
    lecture_ids: set[str] = set()
    for unit in structure.units:
        if unit.unit_id in unit_ids:
            raise InvalidStructureError(f"Duplicate unit id: {unit.unit_id}")
        unit_ids.add(unit.unit_id)
        lesson_ids: set[str] = set()
        for lesson in unit.lessons:
            if lesson.lesson_id in lesson_ids:
                raise InvalidStructureError(f"Duplicate lesson id: {lesson.lesson_id}")
            lesson_ids.add(lesson.lesson_id)
            for lecture in lesson.lectures:
                if lecture.lecture_id in lecture_ids:
                    raise InvalidStructureError(
                        f"Duplicate lecture id: {lecture.lecture_id}"
                    )
                lecture_ids.add(lecture.lecture_id)


# ==============================================================================
# Course Service
# ==============================================================================


class CourseService:
    """Service for course structures and enrollments."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_structure = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.course_structures WHERE course_id = ?
        """)

        self._upsert_structure = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.course_structures
            (course_id, title, document, updated_at)
            VALUES (?, ?, ?, ?)
        """)

        self._get_enrollment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments
            WHERE course_id = ? AND user_id = ?
        """)

        self._insert_enrollment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments
            (course_id, user_id, id, status, enrolled_at)
            VALUES (?, ?, ?, ?, ?)
        """)

    # ==========================================================================
    # Structure Operations
    # ==========================================================================

    async def save_structure(self, structure: CourseStructure) -> CourseStructure:
        """Create or replace the structure of a course."""
        validate_structure(structure)
        structure.updated_at = datetime.now(UTC)

        await self.session.aexecute(
            self._upsert_structure,
            [
                structure.course_id,
                structure.title,
                orjson.dumps(structure.to_dict()).decode(),
                structure.updated_at,
            ],
        )

        logger.info(
            "course_structure_saved",
            course_id=str(structure.course_id),
            lectures=structure.lecture_count,
        )
        return structure

    async def get_structure(self, course_id: UUID) -> CourseStructure | None:
        """Get the structure of a course."""
        result = await self.session.aexecute(self._get_structure, [course_id])
        row = result.one()
        if not row:
            return None
        return CourseStructure.from_dict(orjson.loads(row.document))

    # ==========================================================================
    # Enrollment Operations
    # ==========================================================================

    async def enroll_user(self, user_id: UUID, course_id: UUID) -> Enrollment:
        """Enroll user in a course.

        Raises:
            CourseNotFoundError: If the course has no structure
            AlreadyEnrolledError: If user already enrolled
        """
        if await self.get_structure(course_id) is None:
            raise CourseNotFoundError

        existing = await self.get_enrollment(user_id, course_id)
        if existing and existing.is_active:
            raise AlreadyEnrolledError

        enrollment = Enrollment(
            course_id=course_id,
            user_id=user_id,
            status=EnrollmentStatus.ACTIVE.value,
        )
        await self.session.aexecute(
            self._insert_enrollment,
            [
                enrollment.course_id,
                enrollment.user_id,
                enrollment.id,
                enrollment.status,
                enrollment.enrolled_at,
            ],
        )

        logger.info("user_enrolled", user_id=str(user_id), course_id=str(course_id))
        return enrollment

    async def get_enrollment(self, user_id: UUID, course_id: UUID) -> Enrollment | None:
        """Get enrollment by user and course."""
        result = await self.session.aexecute(self._get_enrollment, [course_id, user_id])
        row = result.one()
        return Enrollment.from_row(row) if row else None

    async def get_active_enrollment(
        self, user_id: UUID, course_id: UUID
    ) -> Enrollment | None:
        """Get the enrollment only if it still grants access."""
        enrollment = await self.get_enrollment(user_id, course_id)
        if enrollment is None or not enrollment.is_active:
            return None
        return enrollment


class InMemoryCourseService(CourseService):
    """Process-local course service, used when Cassandra is unavailable."""

    def __init__(self):
        self._structures: dict[UUID, CourseStructure] = {}
        self._enrollments: dict[tuple[UUID, UUID], Enrollment] = {}

    async def save_structure(self, structure: CourseStructure) -> CourseStructure:
        validate_structure(structure)
        structure.updated_at = datetime.now(UTC)
        self._structures[structure.course_id] = structure
        logger.info(
            "course_structure_saved",
            course_id=str(structure.course_id),
            lectures=structure.lecture_count,
        )
        return structure

    async def get_structure(self, course_id: UUID) -> CourseStructure | None:
        structure = self._structures.get(course_id)
        if structure is None:
            return None
        return CourseStructure.from_dict(structure.to_dict())

    async def enroll_user(self, user_id: UUID, course_id: UUID) -> Enrollment:
        if course_id not in self._structures:
            raise CourseNotFoundError
        existing = self._enrollments.get((user_id, course_id))
        if existing and existing.is_active:
            raise AlreadyEnrolledError

        enrollment = Enrollment(course_id=course_id, user_id=user_id)
        self._enrollments[(user_id, course_id)] = enrollment
        logger.info("user_enrolled", user_id=str(user_id), course_id=str(course_id))
        return enrollment

    async def get_enrollment(self, user_id: UUID, course_id: UUID) -> Enrollment | None:
        return self._enrollments.get((user_id, course_id))
