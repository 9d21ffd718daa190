"""Watch session recording.

Applies one player report to a lecture: overwrites the reported playback
figures, appends a session when both ends are known and promotes the
lecture and its ancestors out of ``not_started``.
"""

from datetime import UTC, datetime

from .exceptions import NotFoundError
from .models import (
    LectureProgress,
    ProgressAggregate,
    ProgressStatus,
    SessionData,
    WatchSession,
    advance_status,
)


def resolve_lecture(
    aggregate: ProgressAggregate,
    unit_id: str,
    lesson_id: str,
    lecture_id: str,
    *,
    create_missing: bool = False,
) -> LectureProgress:
    """Resolve a lecture path through the aggregate index.

    Raises:
        NotFoundError: If a level is missing and ``create_missing`` is false
    """
    lecture = aggregate.find_lecture(unit_id, lesson_id, lecture_id)
    if lecture is not None:
        return lecture
    if create_missing:
        return aggregate.ensure_lecture(unit_id, lesson_id, lecture_id)

    if aggregate.find_unit(unit_id) is None:
        raise NotFoundError(f"Unit {unit_id} not found in progress")
    if aggregate.find_lesson(unit_id, lesson_id) is None:
        raise NotFoundError(f"Lesson {lesson_id} not found in unit {unit_id}")
    raise NotFoundError(f"Lecture {lecture_id} not found in lesson {lesson_id}")


def promote_path(
    aggregate: ProgressAggregate, unit_id: str, lesson_id: str, lecture: LectureProgress
) -> None:
    """Move the lecture, its lesson and its unit from not_started to in_progress."""
    nodes = (
        lecture,
        aggregate.find_lesson(unit_id, lesson_id),
        aggregate.find_unit(unit_id),
    )
    for node in nodes:
        if node.status in (ProgressStatus.NOT_STARTED.value, ProgressStatus.SKIPPED.value):
            node.status = advance_status(node.status, ProgressStatus.IN_PROGRESS)


def record_session(
    aggregate: ProgressAggregate,
    unit_id: str,
    lesson_id: str,
    lecture_id: str,
    session_data: SessionData,
    *,
    create_missing: bool = False,
    now: datetime | None = None,
) -> LectureProgress:
    """Record a watch report against one lecture.

    Reported values overwrite stored ones (last write wins); ``None`` leaves
    the stored value untouched. The watch percentage is recomputed with a
    clamp to [0, 100].

    Returns:
        The updated lecture
    """
    now = now or datetime.now(UTC)
    lecture = resolve_lecture(
        aggregate, unit_id, lesson_id, lecture_id, create_missing=create_missing
    )
    watch = lecture.watch_progress

    if session_data.total_duration is not None:
        watch.total_duration = session_data.total_duration
    if session_data.watched_duration is not None:
        watch.watched_duration = session_data.watched_duration
    if session_data.last_position is not None:
        watch.last_position = session_data.last_position
    if session_data.playback_speed is not None:
        watch.playback_speed = session_data.playback_speed
    watch.recompute_percentage()

    if session_data.session_start is not None and session_data.session_end is not None:
        watch.sessions.append(
            WatchSession.between(
                session_data.session_start,
                session_data.session_end,
                progress_start=session_data.progress_start,
                progress_end=session_data.progress_end,
            )
        )

    if lecture.started_at is None:
        lecture.started_at = now
    lecture.last_watched_at = now
    promote_path(aggregate, unit_id, lesson_id, lecture)
    aggregate.statistics.time.last_active_at = now

    return lecture
