"""Student progress tracking service layer.

Every write runs the same pipeline under the aggregate's write lock:
load (or seed from the course structure) -> engine transforms -> streak
and statistics -> achievements -> save.

Business logic for:
- Watch progress updates (start, progress, complete)
- Lecture completion with the lesson/unit cascade
- Notes, ratings and bookmarks
- Per-course breakdown and analytics
"""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import NamedTuple, TypeVar
from uuid import UUID
from zoneinfo import ZoneInfo

import structlog

from shlokayug.config.settings import Settings, get_settings
from shlokayug.core.context import set_course_id
from shlokayug.courses.models import CourseStructure, Enrollment
from shlokayug.courses.service import CourseService

from .achievements import evaluate_achievements
from .exceptions import NotEnrolledError, NotFoundError, ValidationError
from .locks import ProgressLockManager
from .models import (
    Achievement,
    Bookmark,
    Comprehension,
    InteractionType,
    LectureNote,
    LectureProgress,
    ProgressAggregate,
    SessionData,
)
from .recorder import record_session
from .repository import ProgressRepository
from .rollup import recompute_statistics
from .streak import record_study_time, touch_activity
from .tracker import (
    CompletionResult,
    NextLecture,
    add_bookmark,
    add_note,
    complete_lecture,
    find_next_lecture,
    rate_lecture,
    recent_activity,
    settle_completion,
    start_lecture,
)


logger = structlog.get_logger(__name__)

T = TypeVar("T")

UPDATE_ACTIONS = ("start", "progress", "complete")


# ==============================================================================
# Results
# ==============================================================================


class LecturePath(NamedTuple):
    unit_id: str
    lesson_id: str
    lecture_id: str


class UpdateOutcome(NamedTuple):
    lecture: LectureProgress
    overall: float
    next_lecture: NextLecture | None
    new_achievements: list[Achievement]
    completion: CompletionResult | None = None


class CompletionOutcome(NamedTuple):
    lecture_id: str
    completion: CompletionResult
    overall: float
    completion_status: str
    new_achievements: list[Achievement]


class CourseProgressView(NamedTuple):
    aggregate: ProgressAggregate
    structure: CourseStructure
    recent_activity: list
    next_lecture: NextLecture | None


class UserAnalytics(NamedTuple):
    total_courses: int
    completed_courses: int
    in_progress_courses: int
    total_time_spent_minutes: float
    average_progress: float
    total_achievements: int
    longest_streak: int


class CourseAnalytics(NamedTuple):
    course_id: UUID
    total_students: int
    average_completion: float
    average_time_spent_minutes: float
    completed_students: int


def resolve_path(
    structure: CourseStructure,
    lecture_id: str,
    unit_id: str | None = None,
    lesson_id: str | None = None,
) -> LecturePath:
    """Locate a lecture in the course structure.

    Raises:
        NotFoundError: If the lecture is not in the course, or not under the
            given unit/lesson
    """
    located = structure.locate_lecture(lecture_id)
    if located is None:
        raise NotFoundError(f"Lecture {lecture_id} not found in course")
    unit, lesson, _ = located
    if (unit_id and unit_id != unit.unit_id) or (lesson_id and lesson_id != lesson.lesson_id):
        raise NotFoundError(f"Lecture {lecture_id} is not part of the given unit/lesson")
    return LecturePath(unit.unit_id, lesson.lesson_id, lecture_id)


# ==============================================================================
# Progress Service
# ==============================================================================


class ProgressService:
    """Service for student progress tracking."""

    def __init__(
        self,
        repository: ProgressRepository,
        course_service: CourseService,
        lock_manager: ProgressLockManager | None = None,
        settings: Settings | None = None,
    ):
        self.repository = repository
        self.course_service = course_service
        self.lock_manager = lock_manager or ProgressLockManager()
        self.settings = settings or get_settings()
        self.tz = ZoneInfo(self.settings.progress_timezone)

    # ==========================================================================
    # Pipeline
    # ==========================================================================

    async def _require_enrollment(self, user_id: UUID, course_id: UUID) -> Enrollment:
        enrollment = await self.course_service.get_active_enrollment(user_id, course_id)
        if enrollment is None:
            logger.warning(
                "progress_access_denied",
                user_id=str(user_id),
                course_id=str(course_id),
            )
            raise NotEnrolledError
        return enrollment

    async def _require_structure(self, course_id: UUID) -> CourseStructure:
        structure = await self.course_service.get_structure(course_id)
        if structure is None:
            raise NotFoundError(f"Course {course_id} has no structure")
        return structure

    def _new_aggregate(
        self, enrollment: Enrollment, structure: CourseStructure
    ) -> ProgressAggregate:
        return ProgressAggregate.new(
            user_id=enrollment.user_id,
            course_id=enrollment.course_id,
            enrollment_id=enrollment.id,
            lecture_paths=structure.lecture_paths(),
            weekly_goal_minutes=self.settings.progress_weekly_goal_minutes,
        )

    async def _load(
        self, enrollment: Enrollment, structure: CourseStructure
    ) -> ProgressAggregate:
        """Load the aggregate, seeding a new one on first use.

        The tree is reshaped to the current course structure: new lectures
        are added as not started, moved lectures keep their progress and
        removed lectures are dropped.
        """
        aggregate = await self.repository.get(enrollment.user_id, enrollment.course_id)
        if aggregate is None:
            logger.info(
                "progress_created",
                user_id=str(enrollment.user_id),
                course_id=str(enrollment.course_id),
                lectures=structure.lecture_count,
            )
            return self._new_aggregate(enrollment, structure)

        dropped = aggregate.sync_structure(structure.lecture_paths())
        if dropped:
            logger.info(
                "progress_lectures_dropped",
                user_id=str(enrollment.user_id),
                course_id=str(enrollment.course_id),
                lecture_ids=dropped,
            )
        settle_completion(aggregate)
        return aggregate

    async def _write(
        self,
        user_id: UUID,
        course_id: UUID,
        transform: Callable[[ProgressAggregate, CourseStructure], T],
    ) -> tuple[T, ProgressAggregate, CourseStructure]:
        """Run ``transform`` on the aggregate under its write lock and save."""
        set_course_id(course_id)
        enrollment = await self._require_enrollment(user_id, course_id)
        structure = await self._require_structure(course_id)

        async with self.lock_manager.acquire(user_id, course_id):
            aggregate = await self._load(enrollment, structure)
            value = transform(aggregate, structure)
            await self.repository.save(aggregate)

        logger.debug(
            "progress_saved",
            user_id=str(user_id),
            course_id=str(course_id),
            version=aggregate.version,
        )
        return value, aggregate, structure

    def _finish(self, aggregate: ProgressAggregate, now: datetime) -> list[Achievement]:
        """Refresh streak, statistics and achievements after an activity."""
        touch_activity(aggregate, now, tz=self.tz)
        recompute_statistics(aggregate, now=now)
        return evaluate_achievements(aggregate, now=now)

    # ==========================================================================
    # Watch Progress Operations
    # ==========================================================================

    async def update_progress(
        self,
        user_id: UUID,
        course_id: UUID,
        lecture_id: str,
        action: str,
        session_data: SessionData | None = None,
        notes: str | None = None,
        unit_id: str | None = None,
        lesson_id: str | None = None,
        now: datetime | None = None,
    ) -> UpdateOutcome:
        """Apply a player report to a lecture.

        Args:
            action: ``start``, ``progress`` or ``complete``
            session_data: Watch figures reported by the player
            notes: Optional note attached to the lecture

        Raises:
            NotEnrolledError: If the user has no active enrollment
            NotFoundError: If the lecture is not part of the course
            ValidationError: If the action is unknown
        """
        if action not in UPDATE_ACTIONS:
            raise ValidationError(f"Unknown action: {action}")
        now = now or datetime.now(UTC)

        def transform(aggregate: ProgressAggregate, structure: CourseStructure):
            path = resolve_path(structure, lecture_id, unit_id, lesson_id)
            completion = None

            if action == "start":
                start_lecture(aggregate, *path, create_missing=True, now=now)
            if session_data is not None:
                lecture = record_session(
                    aggregate, *path, session_data, create_missing=True, now=now
                )
                has_span = (
                    session_data.session_start is not None
                    and session_data.session_end is not None
                )
                if has_span:
                    session = lecture.watch_progress.sessions[-1]
                    record_study_time(aggregate, session.duration, now, tz=self.tz)
            elif action == "progress":
                start_lecture(aggregate, *path, create_missing=True, now=now)
            if action == "complete":
                completion = complete_lecture(aggregate, *path, create_missing=True, now=now)
            if notes:
                add_note(aggregate, *path, notes, now=now)

            new_achievements = self._finish(aggregate, now)
            lecture = aggregate.find_lecture(*path)
            return lecture, completion, new_achievements

        (lecture, completion, new_achievements), aggregate, structure = await self._write(
            user_id, course_id, transform
        )

        logger.info(
            "progress_updated",
            user_id=str(user_id),
            course_id=str(course_id),
            lecture_id=lecture_id,
            action=action,
            watch_percentage=round(lecture.watch_progress.watch_percentage, 2),
            overall=round(aggregate.statistics.completion.overall, 2),
        )

        return UpdateOutcome(
            lecture=lecture,
            overall=aggregate.statistics.completion.overall,
            next_lecture=find_next_lecture(aggregate, structure),
            new_achievements=new_achievements,
            completion=completion,
        )

    async def mark_lecture_complete(
        self,
        user_id: UUID,
        course_id: UUID,
        lecture_id: str,
        completion_note: str | None = None,
        now: datetime | None = None,
    ) -> CompletionOutcome:
        """Mark a lecture completed, optionally with a completion note."""
        now = now or datetime.now(UTC)

        def transform(aggregate: ProgressAggregate, structure: CourseStructure):
            path = resolve_path(structure, lecture_id)
            result = complete_lecture(aggregate, *path, create_missing=True, now=now)
            if completion_note:
                add_note(
                    aggregate,
                    *path,
                    completion_note,
                    interaction_type=InteractionType.COMPLETION_NOTE,
                    now=now,
                )
            return result, self._finish(aggregate, now)

        (result, new_achievements), aggregate, _ = await self._write(
            user_id, course_id, transform
        )

        return CompletionOutcome(
            lecture_id=lecture_id,
            completion=result,
            overall=aggregate.statistics.completion.overall,
            completion_status=aggregate.completion.status,
            new_achievements=new_achievements,
        )

    # ==========================================================================
    # Annotations
    # ==========================================================================

    async def add_note(
        self,
        user_id: UUID,
        course_id: UUID,
        lecture_id: str,
        content: str,
        position_seconds: float = 0,
        is_private: bool = True,
    ) -> LectureNote:
        def transform(aggregate: ProgressAggregate, structure: CourseStructure):
            path = resolve_path(structure, lecture_id)
            return add_note(
                aggregate,
                *path,
                content,
                position_seconds=position_seconds,
                is_private=is_private,
            )

        note, _, _ = await self._write(user_id, course_id, transform)
        return note

    async def rate_lecture(
        self,
        user_id: UUID,
        course_id: UUID,
        lecture_id: str,
        self_rating: int | None = None,
        difficulty_rating: int | None = None,
    ) -> Comprehension:
        def transform(aggregate: ProgressAggregate, structure: CourseStructure):
            path = resolve_path(structure, lecture_id)
            return rate_lecture(
                aggregate,
                *path,
                self_rating=self_rating,
                difficulty_rating=difficulty_rating,
            )

        comprehension, _, _ = await self._write(user_id, course_id, transform)
        return comprehension

    async def add_bookmark(
        self,
        user_id: UUID,
        course_id: UUID,
        lecture_id: str,
        position_seconds: float,
        note: str = "",
    ) -> Bookmark:
        def transform(aggregate: ProgressAggregate, structure: CourseStructure):
            resolve_path(structure, lecture_id)
            return add_bookmark(aggregate, lecture_id, position_seconds, note)

        bookmark, _, _ = await self._write(user_id, course_id, transform)
        logger.info(
            "bookmark_created",
            user_id=str(user_id),
            course_id=str(course_id),
            lecture_id=lecture_id,
        )
        return bookmark

    async def get_bookmarks(
        self, user_id: UUID, course_id: UUID
    ) -> list[tuple[Bookmark, str]]:
        """Bookmarks of a course with the title of their lecture."""
        view = await self.get_course_progress(user_id, course_id)
        titles = view.structure.lecture_titles()
        return [(b, titles.get(b.lecture_id, "")) for b in view.aggregate.bookmarks]

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def get_course_progress(
        self, user_id: UUID, course_id: UUID
    ) -> CourseProgressView:
        """Progress of one course; an unsaved, empty aggregate before first use."""
        set_course_id(course_id)
        enrollment = await self._require_enrollment(user_id, course_id)
        structure = await self._require_structure(course_id)
        aggregate = await self._load(enrollment, structure)
        recompute_statistics(aggregate)

        return CourseProgressView(
            aggregate=aggregate,
            structure=structure,
            recent_activity=recent_activity(
                aggregate, self.settings.progress_recent_activity_limit
            ),
            next_lecture=find_next_lecture(aggregate, structure),
        )

    async def get_user_analytics(self, user_id: UUID) -> UserAnalytics:
        """Summary of a learner's progress across all courses."""
        aggregates = await self.repository.list_for_user(user_id)

        completed = sum(1 for a in aggregates if a.completion.is_completed)
        total_seconds = sum(a.statistics.time.total_spent for a in aggregates)
        average = (
            sum(a.statistics.completion.overall for a in aggregates) / len(aggregates)
            if aggregates
            else 0.0
        )

        return UserAnalytics(
            total_courses=len(aggregates),
            completed_courses=completed,
            in_progress_courses=len(aggregates) - completed,
            total_time_spent_minutes=round(total_seconds / 60, 1),
            average_progress=round(average, 1),
            total_achievements=sum(len(a.achievements) for a in aggregates),
            longest_streak=max(
                (a.statistics.engagement.streak.longest for a in aggregates), default=0
            ),
        )

    async def get_course_analytics(self, course_id: UUID) -> CourseAnalytics:
        """Course-wide figures for teachers."""
        summaries = await self.repository.list_for_course(course_id)
        count = len(summaries)

        return CourseAnalytics(
            course_id=course_id,
            total_students=count,
            average_completion=(
                round(sum(s.overall_percent for s in summaries) / count, 1) if count else 0.0
            ),
            average_time_spent_minutes=(
                round(sum(s.total_time_spent for s in summaries) / count / 60, 1)
                if count
                else 0.0
            ),
            completed_students=sum(1 for s in summaries if s.is_completed),
        )
