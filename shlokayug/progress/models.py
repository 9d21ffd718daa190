"""Progress aggregate entities.

One ``ProgressAggregate`` exists per (user, course) pair. It owns the whole
unit -> lesson -> lecture tree, the derived statistics block and the
append-only achievement, bookmark and interaction logs.

The aggregate is persisted as a single document (see ``repository``); every
entity here round-trips through ``to_dict`` / ``from_dict``.
"""

from collections.abc import Iterable, Iterator
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from shlokayug.courses.models import ensure_utc_aware

from .exceptions import InvalidStateError


class ProgressStatus(str, Enum):
    """Status of a unit, lesson or lecture."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class CompletionStatus(str, Enum):
    """Course-level completion status."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CERTIFIED = "certified"


class AchievementType(str, Enum):
    """Achievements a learner can unlock once per course."""

    FIRST_LECTURE = "first_lecture"
    HALFWAY_POINT = "halfway_point"
    FIRST_COMPLETION = "first_completion"
    WEEK_STREAK = "week_streak"
    MONTH_STREAK = "month_streak"


class InteractionType(str, Enum):
    """Kinds of user-initiated events kept in the interaction log."""

    NOTE = "note"
    COMPLETION_NOTE = "completion_note"
    BOOKMARK = "bookmark"
    RATING = "rating"


# ==============================================================================
# Helper Functions
# ==============================================================================


def parse_datetime(value: datetime | str | None) -> datetime | None:
    """Parse an ISO-8601 value read back from a stored document."""
    if value is None or isinstance(value, datetime):
        return ensure_utc_aware(value)
    return ensure_utc_aware(datetime.fromisoformat(value))


def parse_date(value: date | str | None) -> date | None:
    """Parse an ISO date read back from a stored document."""
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)


_STATUS_RANK = {
    ProgressStatus.NOT_STARTED.value: 0,
    ProgressStatus.SKIPPED.value: 0,
    ProgressStatus.IN_PROGRESS.value: 1,
    ProgressStatus.COMPLETED.value: 2,
}


def advance_status(current: str, target: ProgressStatus) -> str:
    """Return the status after moving ``current`` towards ``target``.

    Status only moves forward (not_started -> in_progress -> completed).
    ``skipped`` may be set from any state except completed, and a skipped
    node may later be started or completed.

    Raises:
        InvalidStateError: If the move would go backwards
    """
    if target is ProgressStatus.SKIPPED:
        if current == ProgressStatus.COMPLETED.value:
            raise InvalidStateError("Cannot skip a completed item")
        return target.value

    if _STATUS_RANK[target.value] < _STATUS_RANK[current]:
        raise InvalidStateError(f"Cannot move status from {current} to {target.value}")
    return target.value


def percent(part: int, total: int) -> float:
    """Percentage of ``part`` in ``total``, 0 when there is nothing to count."""
    if total <= 0:
        return 0.0
    return part / total * 100


# ==============================================================================
# Lecture Level
# ==============================================================================


class WatchSession:
    """One contiguous playback interval. Immutable once appended."""

    __slots__ = ("duration", "ended_at", "progress_end", "progress_start", "started_at")

    def __init__(
        self,
        started_at: datetime,
        ended_at: datetime,
        duration: float,
        progress_start: float = 0,
        progress_end: float = 0,
    ):
        self.started_at = ensure_utc_aware(started_at)
        self.ended_at = ensure_utc_aware(ended_at)
        self.duration = duration
        self.progress_start = progress_start
        self.progress_end = progress_end

    @classmethod
    def between(
        cls,
        started_at: datetime,
        ended_at: datetime,
        progress_start: float | None = None,
        progress_end: float | None = None,
    ) -> "WatchSession":
        """Build a session whose duration is the wall-clock span, never negative."""
        started = ensure_utc_aware(started_at)
        ended = ensure_utc_aware(ended_at)
        return cls(
            started_at=started,
            ended_at=ended,
            duration=max(0.0, (ended - started).total_seconds()),
            progress_start=progress_start or 0,
            progress_end=progress_end or 0,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "duration": self.duration,
            "progress_start": self.progress_start,
            "progress_end": self.progress_end,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WatchSession":
        return cls(
            started_at=parse_datetime(data["started_at"]),
            ended_at=parse_datetime(data["ended_at"]),
            duration=data.get("duration", 0),
            progress_start=data.get("progress_start", 0),
            progress_end=data.get("progress_end", 0),
        )


class WatchProgress:
    """Playback state of a lecture.

    ``watched_duration`` is stored exactly as reported and may exceed
    ``total_duration`` (replays, scrubbing); only the percentage is clamped.
    """

    def __init__(
        self,
        total_duration: float = 0,
        watched_duration: float = 0,
        watch_percentage: float = 0,
        last_position: float = 0,
        playback_speed: float = 1.0,
        sessions: list[WatchSession] | None = None,
    ):
        self.total_duration = total_duration
        self.watched_duration = watched_duration
        self.watch_percentage = watch_percentage
        self.last_position = last_position
        self.playback_speed = playback_speed
        self.sessions = sessions or []

    def recompute_percentage(self) -> float:
        """Clamp watched/total to [0, 100]; 0 when the duration is unknown."""
        if self.total_duration > 0:
            ratio = self.watched_duration / self.total_duration * 100
            self.watch_percentage = max(0.0, min(100.0, ratio))
        else:
            self.watch_percentage = 0.0
        return self.watch_percentage

    @property
    def time_spent(self) -> float:
        """Seconds spent across all recorded sessions."""
        return sum(s.duration for s in self.sessions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_duration": self.total_duration,
            "watched_duration": self.watched_duration,
            "watch_percentage": self.watch_percentage,
            "last_position": self.last_position,
            "playback_speed": self.playback_speed,
            "sessions": [s.to_dict() for s in self.sessions],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WatchProgress":
        return cls(
            total_duration=data.get("total_duration", 0),
            watched_duration=data.get("watched_duration", 0),
            watch_percentage=data.get("watch_percentage", 0),
            last_position=data.get("last_position", 0),
            playback_speed=data.get("playback_speed", 1.0),
            sessions=[WatchSession.from_dict(s) for s in data.get("sessions", [])],
        )


class LectureNote:
    """Note taken by the learner at a playback position."""

    def __init__(
        self,
        content: str,
        position_seconds: float = 0,
        is_private: bool = True,
        created_at: datetime | None = None,
    ):
        self.content = content
        self.position_seconds = position_seconds
        self.is_private = is_private
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "position_seconds": self.position_seconds,
            "is_private": self.is_private,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LectureNote":
        return cls(
            content=data["content"],
            position_seconds=data.get("position_seconds", 0),
            is_private=data.get("is_private", True),
            created_at=parse_datetime(data.get("created_at")),
        )


class Comprehension:
    """Self-assessment of a lecture on 1-5 scales."""

    def __init__(
        self,
        self_rating: int | None = None,
        difficulty_rating: int | None = None,
    ):
        self.self_rating = self_rating
        self.difficulty_rating = difficulty_rating

    def to_dict(self) -> dict[str, Any]:
        return {
            "self_rating": self.self_rating,
            "difficulty_rating": self.difficulty_rating,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Comprehension":
        return cls(
            self_rating=data.get("self_rating"),
            difficulty_rating=data.get("difficulty_rating"),
        )


class LectureProgress:
    """Leaf node of the progress tree.

    Attributes:
        lecture_id: Lecture identifier from the course structure
        status: Derived from watch events and explicit completion
        started_at: First time the lecture was opened
        completed_at: First completion timestamp
        last_watched_at: Last recorded watch event
        watch_progress: Durations, percentage, resume position and sessions
        notes: Learner notes
        comprehension: Self and difficulty ratings
    """

    def __init__(
        self,
        lecture_id: str,
        status: str = ProgressStatus.NOT_STARTED.value,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        last_watched_at: datetime | None = None,
        watch_progress: WatchProgress | None = None,
        notes: list[LectureNote] | None = None,
        comprehension: Comprehension | None = None,
    ):
        self.lecture_id = lecture_id
        self.status = status
        self.started_at = ensure_utc_aware(started_at)
        self.completed_at = ensure_utc_aware(completed_at)
        self.last_watched_at = ensure_utc_aware(last_watched_at)
        self.watch_progress = watch_progress or WatchProgress()
        self.notes = notes or []
        self.comprehension = comprehension or Comprehension()

    @property
    def is_completed(self) -> bool:
        """Check if lecture is completed."""
        return self.status == ProgressStatus.COMPLETED.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "lecture_id": self.lecture_id,
            "status": self.status,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "last_watched_at": self.last_watched_at,
            "watch_progress": self.watch_progress.to_dict(),
            "notes": [n.to_dict() for n in self.notes],
            "comprehension": self.comprehension.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LectureProgress":
        return cls(
            lecture_id=data["lecture_id"],
            status=data.get("status") or ProgressStatus.NOT_STARTED.value,
            started_at=parse_datetime(data.get("started_at")),
            completed_at=parse_datetime(data.get("completed_at")),
            last_watched_at=parse_datetime(data.get("last_watched_at")),
            watch_progress=WatchProgress.from_dict(data.get("watch_progress") or {}),
            notes=[LectureNote.from_dict(n) for n in data.get("notes", [])],
            comprehension=Comprehension.from_dict(data.get("comprehension") or {}),
        )

    def __repr__(self) -> str:
        return (
            f"<LectureProgress {self.lecture_id} {self.status} "
            f"{self.watch_progress.watch_percentage:.1f}%>"
        )


# ==============================================================================
# Lesson and Unit Level
# ==============================================================================


class LessonProgress:
    """Lesson node; completed only through the lecture cascade."""

    def __init__(
        self,
        lesson_id: str,
        status: str = ProgressStatus.NOT_STARTED.value,
        completed_at: datetime | None = None,
        time_spent: float = 0,
        lectures: list[LectureProgress] | None = None,
    ):
        self.lesson_id = lesson_id
        self.status = status
        self.completed_at = ensure_utc_aware(completed_at)
        self.time_spent = time_spent
        self.lectures = lectures or []

    @property
    def is_completed(self) -> bool:
        return self.status == ProgressStatus.COMPLETED.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "lesson_id": self.lesson_id,
            "status": self.status,
            "completed_at": self.completed_at,
            "time_spent": self.time_spent,
            "lectures": [lec.to_dict() for lec in self.lectures],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LessonProgress":
        return cls(
            lesson_id=data["lesson_id"],
            status=data.get("status") or ProgressStatus.NOT_STARTED.value,
            completed_at=parse_datetime(data.get("completed_at")),
            time_spent=data.get("time_spent", 0),
            lectures=[LectureProgress.from_dict(lec) for lec in data.get("lectures", [])],
        )

    def __repr__(self) -> str:
        done = sum(1 for lec in self.lectures if lec.is_completed)
        return f"<LessonProgress {self.lesson_id} {self.status} {done}/{len(self.lectures)}>"


class UnitProgress:
    """Unit node; completed only through the lesson cascade."""

    def __init__(
        self,
        unit_id: str,
        status: str = ProgressStatus.NOT_STARTED.value,
        completed_at: datetime | None = None,
        time_spent: float = 0,
        lessons: list[LessonProgress] | None = None,
    ):
        self.unit_id = unit_id
        self.status = status
        self.completed_at = ensure_utc_aware(completed_at)
        self.time_spent = time_spent
        self.lessons = lessons or []

    @property
    def is_completed(self) -> bool:
        return self.status == ProgressStatus.COMPLETED.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit_id": self.unit_id,
            "status": self.status,
            "completed_at": self.completed_at,
            "time_spent": self.time_spent,
            "lessons": [lesson.to_dict() for lesson in self.lessons],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UnitProgress":
        return cls(
            unit_id=data["unit_id"],
            status=data.get("status") or ProgressStatus.NOT_STARTED.value,
            completed_at=parse_datetime(data.get("completed_at")),
            time_spent=data.get("time_spent", 0),
            lessons=[LessonProgress.from_dict(ls) for ls in data.get("lessons", [])],
        )

    def __repr__(self) -> str:
        return f"<UnitProgress {self.unit_id} {self.status} lessons={len(self.lessons)}>"


# ==============================================================================
# Statistics
# ==============================================================================


class CompletionStats:
    """Completion percentages; ``overall`` always equals ``lectures``."""

    def __init__(
        self,
        overall: float = 0,
        units: float = 0,
        lessons: float = 0,
        lectures: float = 0,
    ):
        self.overall = overall
        self.units = units
        self.lessons = lessons
        self.lectures = lectures

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall": self.overall,
            "units": self.units,
            "lessons": self.lessons,
            "lectures": self.lectures,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CompletionStats":
        return cls(
            overall=data.get("overall", 0),
            units=data.get("units", 0),
            lessons=data.get("lessons", 0),
            lectures=data.get("lectures", 0),
        )


class TimeStats:
    """Watch time figures in seconds."""

    def __init__(
        self,
        total_spent: float = 0,
        total_sessions: int = 0,
        average_session_duration: float = 0,
        longest_session: float = 0,
        last_active_at: datetime | None = None,
    ):
        self.total_spent = total_spent
        self.total_sessions = total_sessions
        self.average_session_duration = average_session_duration
        self.longest_session = longest_session
        self.last_active_at = ensure_utc_aware(last_active_at)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_spent": self.total_spent,
            "total_sessions": self.total_sessions,
            "average_session_duration": self.average_session_duration,
            "longest_session": self.longest_session,
            "last_active_at": self.last_active_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TimeStats":
        return cls(
            total_spent=data.get("total_spent", 0),
            total_sessions=data.get("total_sessions", 0),
            average_session_duration=data.get("average_session_duration", 0),
            longest_session=data.get("longest_session", 0),
            last_active_at=parse_datetime(data.get("last_active_at")),
        )


class StreakState:
    """Consecutive active days. ``current <= longest`` after every update."""

    def __init__(
        self,
        current: int = 0,
        longest: int = 0,
        last_activity_date: date | None = None,
    ):
        self.current = current
        self.longest = longest
        self.last_activity_date = last_activity_date

    def to_dict(self) -> dict[str, Any]:
        return {
            "current": self.current,
            "longest": self.longest,
            "last_activity_date": self.last_activity_date,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StreakState":
        return cls(
            current=data.get("current", 0),
            longest=data.get("longest", 0),
            last_activity_date=parse_date(data.get("last_activity_date")),
        )

    def __repr__(self) -> str:
        return f"<StreakState current={self.current} longest={self.longest}>"


class WeeklyGoal:
    """Minutes studied in the current week against a target."""

    def __init__(
        self,
        target_minutes: int = 120,
        achieved_minutes: float = 0,
        week_start: date | None = None,
    ):
        self.target_minutes = target_minutes
        self.achieved_minutes = achieved_minutes
        self.week_start = week_start

    @property
    def is_met(self) -> bool:
        return self.achieved_minutes >= self.target_minutes

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_minutes": self.target_minutes,
            "achieved_minutes": self.achieved_minutes,
            "week_start": self.week_start,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WeeklyGoal":
        return cls(
            target_minutes=data.get("target_minutes", 120),
            achieved_minutes=data.get("achieved_minutes", 0),
            week_start=parse_date(data.get("week_start")),
        )


class EngagementStats:
    def __init__(
        self,
        streak: StreakState | None = None,
        total_days_active: int = 0,
        weekly_goal: WeeklyGoal | None = None,
    ):
        self.streak = streak or StreakState()
        self.total_days_active = total_days_active
        self.weekly_goal = weekly_goal or WeeklyGoal()

    def to_dict(self) -> dict[str, Any]:
        return {
            "streak": self.streak.to_dict(),
            "total_days_active": self.total_days_active,
            "weekly_goal": self.weekly_goal.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EngagementStats":
        return cls(
            streak=StreakState.from_dict(data.get("streak") or {}),
            total_days_active=data.get("total_days_active", 0),
            weekly_goal=WeeklyGoal.from_dict(data.get("weekly_goal") or {}),
        )


class Statistics:
    """Derived statistics block. Never edited by hand, see ``rollup``."""

    def __init__(
        self,
        completion: CompletionStats | None = None,
        time: TimeStats | None = None,
        engagement: EngagementStats | None = None,
    ):
        self.completion = completion or CompletionStats()
        self.time = time or TimeStats()
        self.engagement = engagement or EngagementStats()

    def to_dict(self) -> dict[str, Any]:
        return {
            "completion": self.completion.to_dict(),
            "time": self.time.to_dict(),
            "engagement": self.engagement.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Statistics":
        return cls(
            completion=CompletionStats.from_dict(data.get("completion") or {}),
            time=TimeStats.from_dict(data.get("time") or {}),
            engagement=EngagementStats.from_dict(data.get("engagement") or {}),
        )


class CourseCompletion:
    def __init__(
        self,
        status: str = CompletionStatus.NOT_STARTED.value,
        completed_at: datetime | None = None,
    ):
        self.status = status
        self.completed_at = ensure_utc_aware(completed_at)

    @property
    def is_completed(self) -> bool:
        return self.status in (
            CompletionStatus.COMPLETED.value,
            CompletionStatus.CERTIFIED.value,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "completed_at": self.completed_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CourseCompletion":
        return cls(
            status=data.get("status") or CompletionStatus.NOT_STARTED.value,
            completed_at=parse_datetime(data.get("completed_at")),
        )


# ==============================================================================
# Append-only Logs
# ==============================================================================


class Achievement:
    """Unlocked achievement. At most one per type per aggregate."""

    def __init__(
        self,
        type: str,
        title: str,
        description: str = "",
        earned_at: datetime | None = None,
        value: float | None = None,
        points: int = 0,
    ):
        self.type = type
        self.title = title
        self.description = description
        self.earned_at = ensure_utc_aware(earned_at) or datetime.now(UTC)
        self.value = value
        self.points = points

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "earned_at": self.earned_at,
            "value": self.value,
            "points": self.points,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Achievement":
        return cls(
            type=data["type"],
            title=data["title"],
            description=data.get("description", ""),
            earned_at=parse_datetime(data.get("earned_at")),
            value=data.get("value"),
            points=data.get("points", 0),
        )

    def __repr__(self) -> str:
        return f"<Achievement {self.type} +{self.points}>"


class Bookmark:
    def __init__(
        self,
        lecture_id: str,
        position_seconds: float,
        note: str = "",
        id: UUID | None = None,
        created_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.lecture_id = lecture_id
        self.position_seconds = position_seconds
        self.note = note
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "lecture_id": self.lecture_id,
            "position_seconds": self.position_seconds,
            "note": self.note,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Bookmark":
        return cls(
            id=UUID(str(data["id"])),
            lecture_id=data["lecture_id"],
            position_seconds=data.get("position_seconds", 0),
            note=data.get("note", ""),
            created_at=parse_datetime(data.get("created_at")),
        )


class Interaction:
    def __init__(
        self,
        type: str,
        lecture_id: str | None = None,
        content: str = "",
        created_at: datetime | None = None,
    ):
        self.type = type
        self.lecture_id = lecture_id
        self.content = content
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "lecture_id": self.lecture_id,
            "content": self.content,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Interaction":
        return cls(
            type=data["type"],
            lecture_id=data.get("lecture_id"),
            content=data.get("content", ""),
            created_at=parse_datetime(data.get("created_at")),
        )


# ==============================================================================
# Session Input
# ==============================================================================


class SessionData:
    """Watch event reported by the player.

    Every field is optional; ``None`` means "not reported" and leaves the
    stored value untouched.
    """

    def __init__(
        self,
        total_duration: float | None = None,
        watched_duration: float | None = None,
        last_position: float | None = None,
        session_start: datetime | None = None,
        session_end: datetime | None = None,
        progress_start: float | None = None,
        progress_end: float | None = None,
        playback_speed: float | None = None,
    ):
        self.total_duration = total_duration
        self.watched_duration = watched_duration
        self.last_position = last_position
        self.session_start = session_start
        self.session_end = session_end
        self.progress_start = progress_start
        self.progress_end = progress_end
        self.playback_speed = playback_speed


# ==============================================================================
# Aggregate Root
# ==============================================================================


class ProgressAggregate:
    """Full progress document for one (user, course) pair.

    Child lists keep course order; lookups go through path indexes built
    once when the aggregate is constructed and maintained by ``ensure_*``.
    """

    def __init__(
        self,
        user_id: UUID,
        course_id: UUID,
        enrollment_id: UUID,
        units: list[UnitProgress] | None = None,
        statistics: Statistics | None = None,
        completion: CourseCompletion | None = None,
        achievements: list[Achievement] | None = None,
        bookmarks: list[Bookmark] | None = None,
        interactions: list[Interaction] | None = None,
        version: int = 0,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.user_id = user_id
        self.course_id = course_id
        self.enrollment_id = enrollment_id
        self.units = units or []
        self.statistics = statistics or Statistics()
        self.completion = completion or CourseCompletion()
        self.achievements = achievements or []
        self.bookmarks = bookmarks or []
        self.interactions = interactions or []
        self.version = version
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at) or self.created_at

        self._units_by_id: dict[str, UnitProgress] = {}
        self._lessons_by_path: dict[tuple[str, str], LessonProgress] = {}
        self._lectures_by_path: dict[tuple[str, str, str], LectureProgress] = {}
        self.rebuild_index()

    @classmethod
    def new(
        cls,
        user_id: UUID,
        course_id: UUID,
        enrollment_id: UUID,
        lecture_paths: Iterable[tuple[str, str, str]] = (),
        weekly_goal_minutes: int = 120,
    ) -> "ProgressAggregate":
        """Create an aggregate seeded with every lecture of the course, not started."""
        aggregate = cls(user_id=user_id, course_id=course_id, enrollment_id=enrollment_id)
        aggregate.statistics.engagement.weekly_goal.target_minutes = weekly_goal_minutes
        for unit_id, lesson_id, lecture_id in lecture_paths:
            aggregate.ensure_lecture(unit_id, lesson_id, lecture_id)
        return aggregate

    # --------------------------------------------------------------------------
    # Index
    # --------------------------------------------------------------------------

    def rebuild_index(self) -> None:
        self._units_by_id.clear()
        self._lessons_by_path.clear()
        self._lectures_by_path.clear()
        for unit in self.units:
            self._units_by_id[unit.unit_id] = unit
            for lesson in unit.lessons:
                self._lessons_by_path[(unit.unit_id, lesson.lesson_id)] = lesson
                for lecture in lesson.lectures:
                    key = (unit.unit_id, lesson.lesson_id, lecture.lecture_id)
                    self._lectures_by_path[key] = lecture

    def find_unit(self, unit_id: str) -> UnitProgress | None:
        return self._units_by_id.get(unit_id)

    def find_lesson(self, unit_id: str, lesson_id: str) -> LessonProgress | None:
        return self._lessons_by_path.get((unit_id, lesson_id))

    def find_lecture(
        self, unit_id: str, lesson_id: str, lecture_id: str
    ) -> LectureProgress | None:
        return self._lectures_by_path.get((unit_id, lesson_id, lecture_id))

    def find_lecture_by_id(self, lecture_id: str) -> LectureProgress | None:
        """Find a lecture by its id alone (ids are unique within a course)."""
        for (_, _, lid), lecture in self._lectures_by_path.items():
            if lid == lecture_id:
                return lecture
        return None

    def locate_lecture(self, lecture_id: str) -> tuple[str, str] | None:
        """Return the (unit_id, lesson_id) holding ``lecture_id``."""
        for unit_id, lesson_id, lid in self._lectures_by_path:
            if lid == lecture_id:
                return unit_id, lesson_id
        return None

    def ensure_unit(self, unit_id: str) -> UnitProgress:
        unit = self._units_by_id.get(unit_id)
        if unit is None:
            unit = UnitProgress(unit_id=unit_id)
            self.units.append(unit)
            self._units_by_id[unit_id] = unit
        return unit

    def ensure_lesson(self, unit_id: str, lesson_id: str) -> LessonProgress:
        lesson = self._lessons_by_path.get((unit_id, lesson_id))
        if lesson is None:
            lesson = LessonProgress(lesson_id=lesson_id)
            self.ensure_unit(unit_id).lessons.append(lesson)
            self._lessons_by_path[(unit_id, lesson_id)] = lesson
        return lesson

    def ensure_lecture(
        self, unit_id: str, lesson_id: str, lecture_id: str
    ) -> LectureProgress:
        key = (unit_id, lesson_id, lecture_id)
        lecture = self._lectures_by_path.get(key)
        if lecture is None:
            lecture = LectureProgress(lecture_id=lecture_id)
            self.ensure_lesson(unit_id, lesson_id).lectures.append(lecture)
            self._lectures_by_path[key] = lecture
        return lecture

    def sync_structure(self, lecture_paths: Iterable[tuple[str, str, str]]) -> list[str]:
        """Reshape the tree to match the course structure.

        Nodes follow the given course order. A lecture moved to another
        lesson keeps its progress; lectures no longer in the course are
        dropped, together with units and lessons left without lectures.

        Returns:
            Ids of the dropped lectures
        """
        lectures_by_id = {lecture.lecture_id: lecture for _, _, lecture in self.iter_lectures()}
        old_units = dict(self._units_by_id)
        old_lessons = dict(self._lessons_by_path)

        units: list[UnitProgress] = []
        units_by_id: dict[str, UnitProgress] = {}
        lessons_by_path: dict[tuple[str, str], LessonProgress] = {}
        for unit_id, lesson_id, lecture_id in lecture_paths:
            unit = units_by_id.get(unit_id)
            if unit is None:
                unit = old_units.get(unit_id) or UnitProgress(unit_id=unit_id)
                unit.lessons = []
                units_by_id[unit_id] = unit
                units.append(unit)

            lesson = lessons_by_path.get((unit_id, lesson_id))
            if lesson is None:
                lesson = old_lessons.get((unit_id, lesson_id)) or LessonProgress(
                    lesson_id=lesson_id
                )
                lesson.lectures = []
                lessons_by_path[(unit_id, lesson_id)] = lesson
                unit.lessons.append(lesson)

            lecture = lectures_by_id.pop(lecture_id, None) or LectureProgress(
                lecture_id=lecture_id
            )
            lesson.lectures.append(lecture)

        self.units = units
        self.rebuild_index()
        return sorted(lectures_by_id)

    def iter_lectures(self) -> Iterator[tuple[UnitProgress, LessonProgress, LectureProgress]]:
        """Yield every lecture with its ancestors, in course order."""
        for unit in self.units:
            for lesson in unit.lessons:
                for lecture in lesson.lectures:
                    yield unit, lesson, lecture

    def has_achievement(self, achievement_type: str) -> bool:
        return any(a.type == achievement_type for a in self.achievements)

    # --------------------------------------------------------------------------
    # Serialization
    # --------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "course_id": self.course_id,
            "enrollment_id": self.enrollment_id,
            "units": [u.to_dict() for u in self.units],
            "statistics": self.statistics.to_dict(),
            "completion": self.completion.to_dict(),
            "achievements": [a.to_dict() for a in self.achievements],
            "bookmarks": [b.to_dict() for b in self.bookmarks],
            "interactions": [i.to_dict() for i in self.interactions],
            "version": self.version,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProgressAggregate":
        return cls(
            user_id=UUID(str(data["user_id"])),
            course_id=UUID(str(data["course_id"])),
            enrollment_id=UUID(str(data["enrollment_id"])),
            units=[UnitProgress.from_dict(u) for u in data.get("units", [])],
            statistics=Statistics.from_dict(data.get("statistics") or {}),
            completion=CourseCompletion.from_dict(data.get("completion") or {}),
            achievements=[Achievement.from_dict(a) for a in data.get("achievements", [])],
            bookmarks=[Bookmark.from_dict(b) for b in data.get("bookmarks", [])],
            interactions=[Interaction.from_dict(i) for i in data.get("interactions", [])],
            version=data.get("version", 0),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )

    def __repr__(self) -> str:
        return (
            f"<ProgressAggregate user={self.user_id} course={self.course_id} "
            f"{self.completion.status} {self.statistics.completion.overall:.1f}%>"
        )
