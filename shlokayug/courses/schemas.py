"""Pydantic schemas for course structures and enrollments."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import (
    CourseStructure,
    Enrollment,
    EnrollmentStatus,
    LectureNode,
    LessonNode,
    UnitNode,
)


# ==============================================================================
# Structure Schemas
# ==============================================================================


class LectureNodeSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lecture_id: str = Field(..., min_length=1, max_length=100)
    title: str = Field("", max_length=200)
    duration: float = Field(0, ge=0, description="Video duration in seconds")


class LessonNodeSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lesson_id: str = Field(..., min_length=1, max_length=100)
    title: str = Field("", max_length=200)
    lectures: list[LectureNodeSchema] = Field(default_factory=list)


class UnitNodeSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    unit_id: str = Field(..., min_length=1, max_length=100)
    title: str = Field("", max_length=200)
    lessons: list[LessonNodeSchema] = Field(default_factory=list)


class CourseStructureRequest(BaseModel):
    """Course structure creation/replacement request."""

    title: str = Field(..., min_length=1, max_length=200, description="Course title")
    units: list[UnitNodeSchema] = Field(default_factory=list)

    def to_structure(self, course_id: UUID) -> CourseStructure:
        return CourseStructure(
            course_id=course_id,
            title=self.title,
            units=[
                UnitNode(
                    unit_id=unit.unit_id,
                    title=unit.title,
                    lessons=[
                        LessonNode(
                            lesson_id=lesson.lesson_id,
                            title=lesson.title,
                            lectures=[
                                LectureNode(
                                    lecture_id=lec.lecture_id,
                                    title=lec.title,
                                    duration=lec.duration,
                                )
                                for lec in lesson.lectures
                            ],
                        )
                        for lesson in unit.lessons
                    ],
                )
                for unit in self.units
            ],
        )


class CourseStructureResponse(BaseModel):
    """Course structure response."""

    model_config = ConfigDict(from_attributes=True)

    course_id: UUID
    title: str
    units: list[UnitNodeSchema]
    lecture_count: int
    updated_at: datetime

    @classmethod
    def from_entity(cls, structure: CourseStructure) -> "CourseStructureResponse":
        return cls.model_validate(structure)


# ==============================================================================
# Enrollment Schemas
# ==============================================================================


class EnrollmentResponse(BaseModel):
    """Enrollment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    course_id: UUID
    user_id: UUID
    status: EnrollmentStatus
    enrolled_at: datetime

    @classmethod
    def from_entity(cls, enrollment: Enrollment) -> "EnrollmentResponse":
        return cls.model_validate(enrollment)
