"""Course structure and enrollment models.

Cassandra table definitions for:
- Course structures: Unit -> Lesson -> Lecture tree stored as one document
- Enrollments: Which learners may report progress on a course
"""

from collections.abc import Iterator
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EnrollmentStatus(str, Enum):
    """Course enrollment status."""

    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSE_STRUCTURES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_structures (
    course_id UUID PRIMARY KEY,
    title TEXT,
    document TEXT,
    updated_at TIMESTAMP
)
"""

# Partition key: course_id so enrollment checks are a single-row read
ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments (
    course_id UUID,
    user_id UUID,
    id UUID,
    status TEXT,
    enrolled_at TIMESTAMP,
    PRIMARY KEY ((course_id), user_id)
)
"""

COURSES_TABLES_CQL = [
    COURSE_STRUCTURES_TABLE_CQL,
    ENROLLMENTS_TABLE_CQL,
]


# ==============================================================================
# Course Structure
# ==============================================================================


class LectureNode:
    """Lecture as defined by the course author."""

    def __init__(self, lecture_id: str, title: str = "", duration: float = 0):
        self.lecture_id = lecture_id
        self.title = title
        self.duration = duration

    def to_dict(self) -> dict[str, Any]:
        return {
            "lecture_id": self.lecture_id,
            "title": self.title,
            "duration": self.duration,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LectureNode":
        return cls(
            lecture_id=str(data["lecture_id"]),
            title=data.get("title", ""),
            duration=data.get("duration", 0),
        )


class LessonNode:
    def __init__(self, lesson_id: str, title: str = "", lectures: list[LectureNode] | None = None):
        self.lesson_id = lesson_id
        self.title = title
        self.lectures = lectures or []

    def to_dict(self) -> dict[str, Any]:
        return {
            "lesson_id": self.lesson_id,
            "title": self.title,
            "lectures": [lec.to_dict() for lec in self.lectures],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LessonNode":
        return cls(
            lesson_id=str(data["lesson_id"]),
            title=data.get("title", ""),
            lectures=[LectureNode.from_dict(lec) for lec in data.get("lectures", [])],
        )


class UnitNode:
    def __init__(self, unit_id: str, title: str = "", lessons: list[LessonNode] | None = None):
        self.unit_id = unit_id
        self.title = title
        self.lessons = lessons or []

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit_id": self.unit_id,
            "title": self.title,
            "lessons": [lesson.to_dict() for lesson in self.lessons],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UnitNode":
        return cls(
            unit_id=str(data["unit_id"]),
            title=data.get("title", ""),
            lessons=[LessonNode.from_dict(ls) for ls in data.get("lessons", [])],
        )


class CourseStructure:
    """Authoritative Unit -> Lesson -> Lecture tree of a course.

    Lecture ids are unique within a course, so a lecture can be located
    from its id alone.
    """

    def __init__(
        self,
        course_id: UUID,
        title: str = "",
        units: list[UnitNode] | None = None,
        updated_at: datetime | None = None,
    ):
        self.course_id = course_id
        self.title = title
        self.units = units or []
        self.updated_at = ensure_utc_aware(updated_at) or datetime.now(UTC)

    def lecture_paths(self) -> Iterator[tuple[str, str, str]]:
        """Yield (unit_id, lesson_id, lecture_id) in course order."""
        for unit in self.units:
            for lesson in unit.lessons:
                for lecture in lesson.lectures:
                    yield unit.unit_id, lesson.lesson_id, lecture.lecture_id

    def has_lecture(self, unit_id: str, lesson_id: str, lecture_id: str) -> bool:
        return (unit_id, lesson_id, lecture_id) in set(self.lecture_paths())

    def locate_lecture(self, lecture_id: str) -> tuple[UnitNode, LessonNode, LectureNode] | None:
        """Find a lecture and its ancestors by lecture id."""
        for unit in self.units:
            for lesson in unit.lessons:
                for lecture in lesson.lectures:
                    if lecture.lecture_id == lecture_id:
                        return unit, lesson, lecture
        return None

    def lecture_titles(self) -> dict[str, str]:
        return {
            lecture.lecture_id: lecture.title
            for unit in self.units
            for lesson in unit.lessons
            for lecture in lesson.lectures
        }

    @property
    def lecture_count(self) -> int:
        return sum(1 for _ in self.lecture_paths())

    def to_dict(self) -> dict[str, Any]:
        return {
            "course_id": self.course_id,
            "title": self.title,
            "units": [u.to_dict() for u in self.units],
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CourseStructure":
        updated_at = data.get("updated_at")
        if isinstance(updated_at, str):
            updated_at = datetime.fromisoformat(updated_at)
        return cls(
            course_id=UUID(str(data["course_id"])),
            title=data.get("title", ""),
            units=[UnitNode.from_dict(u) for u in data.get("units", [])],
            updated_at=updated_at,
        )

    def __repr__(self) -> str:
        return f"<CourseStructure {self.course_id} units={len(self.units)}>"


# ==============================================================================
# Enrollment
# ==============================================================================


class Enrollment:
    """Course enrollment entity.

    Attributes:
        id: Enrollment UUID, referenced by progress aggregates
        course_id: Course UUID
        user_id: User UUID
        status: Enrollment status (active, completed, cancelled)
        enrolled_at: Enrollment timestamp
    """

    def __init__(
        self,
        course_id: UUID,
        user_id: UUID,
        id: UUID | None = None,
        status: str = EnrollmentStatus.ACTIVE.value,
        enrolled_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.course_id = course_id
        self.user_id = user_id
        self.status = status
        self.enrolled_at = ensure_utc_aware(enrolled_at) or datetime.now(UTC)

    @property
    def is_active(self) -> bool:
        """Check if the learner may still report progress."""
        return self.status in (EnrollmentStatus.ACTIVE.value, EnrollmentStatus.COMPLETED.value)

    @classmethod
    def from_row(cls, row: Any) -> "Enrollment":
        """Create instance from Cassandra row."""
        return cls(
            id=row.id,
            course_id=row.course_id,
            user_id=row.user_id,
            status=row.status or EnrollmentStatus.ACTIVE.value,
            enrolled_at=ensure_utc_aware(row.enrolled_at),
        )

    def __repr__(self) -> str:
        return f"<Enrollment {self.user_id} -> {self.course_id} ({self.status})>"
