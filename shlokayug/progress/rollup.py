"""Tree rollup.

Recomputes the derived statistics block of an aggregate from its tree in a
single walk. Repeated calls without a mutation in between give identical
results.
"""

from datetime import UTC, datetime

import structlog

from .models import (
    CompletionStatus,
    ProgressAggregate,
    ProgressStatus,
    Statistics,
    percent,
)


logger = structlog.get_logger(__name__)


def recompute_statistics(
    aggregate: ProgressAggregate, *, now: datetime | None = None
) -> Statistics:
    """Recompute completion percentages, time figures and course status.

    Lesson and unit ``time_spent`` are refreshed from their lectures'
    sessions on the way. ``now`` is only used to stamp course completion.
    """
    total_units = completed_units = 0
    total_lessons = completed_lessons = 0
    total_lectures = completed_lectures = 0
    any_started = False
    durations: list[float] = []

    for unit in aggregate.units:
        total_units += 1
        completed_units += unit.is_completed
        unit_time = 0.0
        for lesson in unit.lessons:
            total_lessons += 1
            completed_lessons += lesson.is_completed
            lesson_time = 0.0
            for lecture in lesson.lectures:
                total_lectures += 1
                completed_lectures += lecture.is_completed
                if lecture.status != ProgressStatus.NOT_STARTED.value:
                    any_started = True
                for session in lecture.watch_progress.sessions:
                    durations.append(session.duration)
                    lesson_time += session.duration
            lesson.time_spent = lesson_time
            unit_time += lesson_time
        unit.time_spent = unit_time

    stats = aggregate.statistics

    completion = stats.completion
    completion.lectures = percent(completed_lectures, total_lectures)
    completion.lessons = percent(completed_lessons, total_lessons)
    completion.units = percent(completed_units, total_units)
    completion.overall = completion.lectures

    time_stats = stats.time
    time_stats.total_spent = sum(durations)
    time_stats.total_sessions = len(durations)
    time_stats.average_session_duration = (
        time_stats.total_spent / len(durations) if durations else 0.0
    )
    time_stats.longest_session = max(durations, default=0.0)

    course = aggregate.completion
    if total_lectures > 0 and completed_lectures == total_lectures:
        if not course.is_completed:
            course.status = CompletionStatus.COMPLETED.value
            course.completed_at = now or datetime.now(UTC)
            logger.info(
                "course_completed",
                user_id=str(aggregate.user_id),
                course_id=str(aggregate.course_id),
            )
    elif not course.is_completed:
        course.status = (
            CompletionStatus.IN_PROGRESS.value
            if any_started
            else CompletionStatus.NOT_STARTED.value
        )

    return stats
