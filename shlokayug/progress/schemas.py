"""Pydantic schemas for student progress tracking.

Request and response models for:
- Watch progress updates and lecture completion
- Notes, ratings and bookmarks
- Course progress breakdown and analytics
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from shlokayug.courses.models import CourseStructure

from .models import (
    Achievement,
    Bookmark,
    LectureProgress,
    LessonProgress,
    ProgressAggregate,
    ProgressStatus,
    SessionData,
    UnitProgress,
)
from .service import (
    CompletionOutcome,
    CourseAnalytics,
    CourseProgressView,
    UpdateOutcome,
    UserAnalytics,
)
from .tracker import NextLecture


class UpdateAction(str, Enum):
    START = "start"
    PROGRESS = "progress"
    COMPLETE = "complete"


# ==============================================================================
# Request Schemas
# ==============================================================================


class WatchData(BaseModel):
    """Playback figures reported by the player. Omitted fields are kept."""

    total_duration: float | None = Field(None, ge=0, description="Video length (s)")
    watched_duration: float | None = Field(None, ge=0, description="Seconds watched")
    last_position: float | None = Field(None, ge=0, description="Resume position (s)")
    session_start: datetime | None = None
    session_end: datetime | None = None
    progress_start: float | None = Field(None, ge=0)
    progress_end: float | None = Field(None, ge=0)
    playback_speed: float | None = Field(None, gt=0, le=4)

    def to_session_data(self) -> SessionData:
        return SessionData(**self.model_dump())


class UpdateProgressRequest(BaseModel):
    """Progress report for one lecture."""

    course_id: UUID
    lecture_id: str = Field(..., min_length=1)
    unit_id: str | None = None
    lesson_id: str | None = None
    action: UpdateAction = UpdateAction.PROGRESS
    watch_data: WatchData | None = None
    notes: str | None = Field(None, max_length=1000)


class CompleteLectureRequest(BaseModel):
    course_id: UUID
    completion_note: str | None = Field(None, max_length=1000)


class CreateBookmarkRequest(BaseModel):
    course_id: UUID
    lecture_id: str = Field(..., min_length=1)
    position_seconds: float = Field(..., ge=0)
    note: str = Field("", max_length=100)


class CreateNoteRequest(BaseModel):
    course_id: UUID
    content: str = Field(..., min_length=1, max_length=1000)
    position_seconds: float = Field(0, ge=0)
    is_private: bool = True


class RateLectureRequest(BaseModel):
    course_id: UUID
    self_rating: int | None = Field(None, ge=1, le=5)
    difficulty_rating: int | None = Field(None, ge=1, le=5)


# ==============================================================================
# Lecture Schemas
# ==============================================================================


class LectureProgressResponse(BaseModel):
    """Lecture progress response."""

    lecture_id: str
    title: str = ""
    status: ProgressStatus
    started_at: datetime | None = None
    completed_at: datetime | None = None
    last_watched_at: datetime | None = None
    total_duration: float = 0
    watched_duration: float = 0
    watch_percentage: float = Field(0, description="0-100 percentage")
    last_position: float = Field(0, description="Resume position")
    playback_speed: float = 1.0
    sessions: int = 0
    notes: int = 0
    self_rating: int | None = None
    difficulty_rating: int | None = None

    @classmethod
    def from_entity(cls, lecture: LectureProgress, title: str = "") -> "LectureProgressResponse":
        watch = lecture.watch_progress
        return cls(
            lecture_id=lecture.lecture_id,
            title=title,
            status=lecture.status,
            started_at=lecture.started_at,
            completed_at=lecture.completed_at,
            last_watched_at=lecture.last_watched_at,
            total_duration=watch.total_duration,
            watched_duration=watch.watched_duration,
            watch_percentage=watch.watch_percentage,
            last_position=watch.last_position,
            playback_speed=watch.playback_speed,
            sessions=len(watch.sessions),
            notes=len(lecture.notes),
            self_rating=lecture.comprehension.self_rating,
            difficulty_rating=lecture.comprehension.difficulty_rating,
        )


class AchievementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: str
    title: str
    description: str
    earned_at: datetime
    value: float | None = None
    points: int = 0

    @classmethod
    def from_list(cls, achievements: list[Achievement]) -> list["AchievementResponse"]:
        return [cls.model_validate(a) for a in achievements]


class NextLectureResponse(BaseModel):
    unit_id: str
    unit_title: str
    lesson_id: str
    lesson_title: str
    lecture_id: str
    lecture_title: str
    last_position: float = 0

    @classmethod
    def from_next(cls, next_lecture: NextLecture | None) -> "NextLectureResponse | None":
        if next_lecture is None:
            return None
        return cls(**next_lecture._asdict())


class UpdateProgressResponse(BaseModel):
    lecture: LectureProgressResponse
    overall: float
    next_lecture: NextLectureResponse | None = None
    new_achievements: list[AchievementResponse] = Field(default_factory=list)
    lesson_percent: float | None = None
    unit_percent: float | None = None

    @classmethod
    def from_outcome(cls, outcome: UpdateOutcome) -> "UpdateProgressResponse":
        return cls(
            lecture=LectureProgressResponse.from_entity(outcome.lecture),
            overall=outcome.overall,
            next_lecture=NextLectureResponse.from_next(outcome.next_lecture),
            new_achievements=AchievementResponse.from_list(outcome.new_achievements),
            lesson_percent=outcome.completion.lesson_percent if outcome.completion else None,
            unit_percent=outcome.completion.unit_percent if outcome.completion else None,
        )


class CompleteLectureResponse(BaseModel):
    lecture_id: str
    lesson_percent: float
    unit_percent: float
    overall: float
    completion_status: str
    new_achievements: list[AchievementResponse] = Field(default_factory=list)

    @classmethod
    def from_outcome(cls, outcome: CompletionOutcome) -> "CompleteLectureResponse":
        return cls(
            lecture_id=outcome.lecture_id,
            lesson_percent=outcome.completion.lesson_percent,
            unit_percent=outcome.completion.unit_percent,
            overall=outcome.overall,
            completion_status=outcome.completion_status,
            new_achievements=AchievementResponse.from_list(outcome.new_achievements),
        )


# ==============================================================================
# Statistics Schemas
# ==============================================================================


class CompletionStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    overall: float
    units: float
    lessons: float
    lectures: float


class TimeStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_spent: float
    total_sessions: int
    average_session_duration: float
    longest_session: float
    last_active_at: datetime | None = None


class StreakResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    current: int
    longest: int
    last_activity_date: date | None = None


class WeeklyGoalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    target_minutes: int
    achieved_minutes: float
    week_start: date | None = None
    is_met: bool


class EngagementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    streak: StreakResponse
    total_days_active: int
    weekly_goal: WeeklyGoalResponse


class StatisticsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    completion: CompletionStatsResponse
    time: TimeStatsResponse
    engagement: EngagementResponse


# ==============================================================================
# Course Progress Schemas
# ==============================================================================


class LessonBreakdown(BaseModel):
    lesson_id: str
    title: str
    status: ProgressStatus
    completed_at: datetime | None = None
    time_spent: float
    lectures_completed: int
    lectures_total: int
    progress_percent: float
    lectures: list[LectureProgressResponse]

    @classmethod
    def from_entity(
        cls, lesson: LessonProgress, title: str, lecture_titles: dict[str, str]
    ) -> "LessonBreakdown":
        done = sum(1 for lec in lesson.lectures if lec.is_completed)
        total = len(lesson.lectures)
        return cls(
            lesson_id=lesson.lesson_id,
            title=title,
            status=lesson.status,
            completed_at=lesson.completed_at,
            time_spent=lesson.time_spent,
            lectures_completed=done,
            lectures_total=total,
            progress_percent=done / total * 100 if total else 0.0,
            lectures=[
                LectureProgressResponse.from_entity(
                    lec, lecture_titles.get(lec.lecture_id, "")
                )
                for lec in lesson.lectures
            ],
        )


class UnitBreakdown(BaseModel):
    unit_id: str
    title: str
    status: ProgressStatus
    completed_at: datetime | None = None
    time_spent: float
    lessons_completed: int
    lessons_total: int
    progress_percent: float
    lessons: list[LessonBreakdown]

    @classmethod
    def from_entity(
        cls, unit: UnitProgress, structure: CourseStructure, lecture_titles: dict[str, str]
    ) -> "UnitBreakdown":
        node = next((u for u in structure.units if u.unit_id == unit.unit_id), None)
        lesson_titles = {ls.lesson_id: ls.title for ls in node.lessons} if node else {}
        done = sum(1 for ls in unit.lessons if ls.is_completed)
        total = len(unit.lessons)
        return cls(
            unit_id=unit.unit_id,
            title=node.title if node else "",
            status=unit.status,
            completed_at=unit.completed_at,
            time_spent=unit.time_spent,
            lessons_completed=done,
            lessons_total=total,
            progress_percent=done / total * 100 if total else 0.0,
            lessons=[
                LessonBreakdown.from_entity(
                    ls, lesson_titles.get(ls.lesson_id, ""), lecture_titles
                )
                for ls in unit.lessons
            ],
        )


class InteractionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: str
    lecture_id: str | None = None
    content: str
    created_at: datetime


class CourseProgressResponse(BaseModel):
    """Full progress of a learner in one course."""

    course_id: UUID
    enrollment_id: UUID
    completion_status: str
    completed_at: datetime | None = None
    statistics: StatisticsResponse
    units: list[UnitBreakdown]
    recent_activity: list[InteractionResponse]
    achievements: list[AchievementResponse]
    next_lecture: NextLectureResponse | None = None
    bookmarks: int = 0

    @classmethod
    def from_view(cls, view: CourseProgressView) -> "CourseProgressResponse":
        aggregate: ProgressAggregate = view.aggregate
        titles = view.structure.lecture_titles()
        return cls(
            course_id=aggregate.course_id,
            enrollment_id=aggregate.enrollment_id,
            completion_status=aggregate.completion.status,
            completed_at=aggregate.completion.completed_at,
            statistics=StatisticsResponse.model_validate(aggregate.statistics),
            units=[UnitBreakdown.from_entity(u, view.structure, titles) for u in aggregate.units],
            recent_activity=[InteractionResponse.model_validate(i) for i in view.recent_activity],
            achievements=AchievementResponse.from_list(aggregate.achievements),
            next_lecture=NextLectureResponse.from_next(view.next_lecture),
            bookmarks=len(aggregate.bookmarks),
        )


# ==============================================================================
# Analytics Schemas
# ==============================================================================


class UserAnalyticsResponse(BaseModel):
    total_courses: int
    completed_courses: int
    in_progress_courses: int
    total_time_spent_minutes: float
    average_progress: float
    total_achievements: int
    longest_streak: int

    @classmethod
    def from_analytics(cls, analytics: UserAnalytics) -> "UserAnalyticsResponse":
        return cls(**analytics._asdict())


class CourseAnalyticsResponse(BaseModel):
    course_id: UUID
    total_students: int
    average_completion: float
    average_time_spent_minutes: float
    completed_students: int

    @classmethod
    def from_analytics(cls, analytics: CourseAnalytics) -> "CourseAnalyticsResponse":
        return cls(**analytics._asdict())


# ==============================================================================
# Annotation Schemas
# ==============================================================================


class BookmarkResponse(BaseModel):
    id: UUID
    lecture_id: str
    lecture_title: str = ""
    position_seconds: float
    note: str
    created_at: datetime

    @classmethod
    def from_entity(cls, bookmark: Bookmark, lecture_title: str = "") -> "BookmarkResponse":
        return cls(
            id=bookmark.id,
            lecture_id=bookmark.lecture_id,
            lecture_title=lecture_title,
            position_seconds=bookmark.position_seconds,
            note=bookmark.note,
            created_at=bookmark.created_at,
        )


class BookmarkListResponse(BaseModel):
    items: list[BookmarkResponse]
    total: int


class NoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lecture_id: str
    content: str
    position_seconds: float
    is_private: bool
    created_at: datetime


class RatingResponse(BaseModel):
    lecture_id: str
    self_rating: int | None = None
    difficulty_rating: int | None = None
