"""Lecture progress tracking.

Lecture start and completion (with the lesson -> unit cascade), learner
notes, comprehension ratings, bookmarks and the interaction log.
"""

from datetime import UTC, datetime
from typing import NamedTuple

import structlog

from .exceptions import InvalidStateError, NotFoundError, ValidationError
from .models import (
    Bookmark,
    Comprehension,
    Interaction,
    InteractionType,
    LectureNote,
    LectureProgress,
    LessonProgress,
    ProgressAggregate,
    ProgressStatus,
    UnitProgress,
    advance_status,
    percent,
)
from .recorder import promote_path, resolve_lecture
from .rollup import recompute_statistics


logger = structlog.get_logger(__name__)

NOTE_MAX_LENGTH = 1000
BOOKMARK_NOTE_MAX_LENGTH = 100
RATING_RANGE = range(1, 6)


class CompletionResult(NamedTuple):
    """Completion ratios of the ancestors of a completed lecture."""

    lesson_percent: float
    unit_percent: float


class NextLecture(NamedTuple):
    unit_id: str
    unit_title: str
    lesson_id: str
    lesson_title: str
    lecture_id: str
    lecture_title: str
    last_position: float = 0


# ==============================================================================
# Start / Complete
# ==============================================================================


def start_lecture(
    aggregate: ProgressAggregate,
    unit_id: str,
    lesson_id: str,
    lecture_id: str,
    *,
    create_missing: bool = False,
    now: datetime | None = None,
) -> LectureProgress:
    """Open a lecture: promote the path to in_progress and stamp timestamps."""
    now = now or datetime.now(UTC)
    lecture = resolve_lecture(
        aggregate, unit_id, lesson_id, lecture_id, create_missing=create_missing
    )
    if lecture.started_at is None:
        lecture.started_at = now
    lecture.last_watched_at = now
    promote_path(aggregate, unit_id, lesson_id, lecture)
    aggregate.statistics.time.last_active_at = now
    return lecture


def _mark_lesson_completed(lesson: LessonProgress, now: datetime) -> None:
    if any(not lecture.is_completed for lecture in lesson.lectures):
        raise InvalidStateError(
            f"Lesson {lesson.lesson_id} still has incomplete lectures"
        )
    lesson.status = advance_status(lesson.status, ProgressStatus.COMPLETED)
    if lesson.completed_at is None:
        lesson.completed_at = now


def _mark_unit_completed(unit: UnitProgress, now: datetime) -> None:
    if any(not lesson.is_completed for lesson in unit.lessons):
        raise InvalidStateError(f"Unit {unit.unit_id} still has incomplete lessons")
    unit.status = advance_status(unit.status, ProgressStatus.COMPLETED)
    if unit.completed_at is None:
        unit.completed_at = now


def _promote(node: LessonProgress | UnitProgress) -> None:
    if node.status in (ProgressStatus.NOT_STARTED.value, ProgressStatus.SKIPPED.value):
        node.status = advance_status(node.status, ProgressStatus.IN_PROGRESS)


def _has_progress(node: LectureProgress | LessonProgress) -> bool:
    return node.status != ProgressStatus.NOT_STARTED.value


def settle_completion(aggregate: ProgressAggregate, now: datetime | None = None) -> None:
    """Bring lesson and unit statuses in line with their children.

    Needed after the tree was reshaped to a new course structure: the
    lectures left in a lesson may all be completed already, or a started
    lecture may have moved into an untouched lesson.
    """
    now = now or datetime.now(UTC)
    for unit in aggregate.units:
        for lesson in unit.lessons:
            if lesson.is_completed or not lesson.lectures:
                continue
            if all(lecture.is_completed for lecture in lesson.lectures):
                _mark_lesson_completed(lesson, now)
            elif any(_has_progress(lecture) for lecture in lesson.lectures):
                _promote(lesson)

        if unit.is_completed or not unit.lessons:
            continue
        if all(lesson.is_completed for lesson in unit.lessons):
            _mark_unit_completed(unit, now)
        elif any(_has_progress(lesson) for lesson in unit.lessons):
            _promote(unit)


def complete_lecture(
    aggregate: ProgressAggregate,
    unit_id: str,
    lesson_id: str,
    lecture_id: str,
    *,
    create_missing: bool = False,
    now: datetime | None = None,
) -> CompletionResult:
    """Mark a lecture completed and cascade completion upward.

    The lesson completes once all of its lectures are completed, the unit
    once all of its lessons are. Statistics are recomputed before returning.
    Completing an already completed lecture keeps its first ``completed_at``.

    Returns:
        CompletionResult with the lesson and unit completion percentages
    """
    now = now or datetime.now(UTC)
    lecture = resolve_lecture(
        aggregate, unit_id, lesson_id, lecture_id, create_missing=create_missing
    )
    lesson = aggregate.find_lesson(unit_id, lesson_id)
    unit = aggregate.find_unit(unit_id)

    already_completed = lecture.is_completed
    lecture.status = advance_status(lecture.status, ProgressStatus.COMPLETED)
    if lecture.completed_at is None:
        lecture.completed_at = now
    if lecture.started_at is None:
        lecture.started_at = now

    if all(lec.is_completed for lec in lesson.lectures):
        _mark_lesson_completed(lesson, now)
    else:
        _promote(lesson)

    if all(ls.is_completed for ls in unit.lessons):
        _mark_unit_completed(unit, now)
    else:
        _promote(unit)

    recompute_statistics(aggregate, now=now)

    result = CompletionResult(
        lesson_percent=percent(
            sum(1 for lec in lesson.lectures if lec.is_completed), len(lesson.lectures)
        ),
        unit_percent=percent(
            sum(1 for ls in unit.lessons if ls.is_completed), len(unit.lessons)
        ),
    )

    if not already_completed:
        logger.info(
            "lecture_completed",
            lecture_id=lecture_id,
            lesson_id=lesson_id,
            unit_id=unit_id,
            lesson_percent=round(result.lesson_percent, 2),
            unit_percent=round(result.unit_percent, 2),
        )
    return result


# ==============================================================================
# Annotations
# ==============================================================================


def add_interaction(
    aggregate: ProgressAggregate,
    type: InteractionType | str,
    lecture_id: str | None = None,
    content: str = "",
    *,
    now: datetime | None = None,
) -> Interaction:
    """Append an event to the interaction log."""
    try:
        interaction_type = InteractionType(type)
    except ValueError as e:
        raise ValidationError(f"Unknown interaction type: {type}") from e

    interaction = Interaction(
        type=interaction_type.value,
        lecture_id=lecture_id,
        content=content,
        created_at=now or datetime.now(UTC),
    )
    aggregate.interactions.append(interaction)
    return interaction


def add_note(
    aggregate: ProgressAggregate,
    unit_id: str,
    lesson_id: str,
    lecture_id: str,
    content: str,
    *,
    position_seconds: float = 0,
    is_private: bool = True,
    interaction_type: InteractionType = InteractionType.NOTE,
    now: datetime | None = None,
) -> LectureNote:
    """Attach a note to a lecture and log it as an interaction.

    Raises:
        ValidationError: If the content is empty or longer than 1000 chars
    """
    now = now or datetime.now(UTC)
    if not content or not content.strip():
        raise ValidationError("Note content cannot be empty")
    if len(content) > NOTE_MAX_LENGTH:
        raise ValidationError(f"Note exceeds {NOTE_MAX_LENGTH} characters")

    lecture = resolve_lecture(aggregate, unit_id, lesson_id, lecture_id)
    note = LectureNote(
        content=content,
        position_seconds=max(0, position_seconds),
        is_private=is_private,
        created_at=now,
    )
    lecture.notes.append(note)
    add_interaction(aggregate, interaction_type, lecture_id, content, now=now)
    return note


def rate_lecture(
    aggregate: ProgressAggregate,
    unit_id: str,
    lesson_id: str,
    lecture_id: str,
    *,
    self_rating: int | None = None,
    difficulty_rating: int | None = None,
    now: datetime | None = None,
) -> Comprehension:
    """Record comprehension ratings (1-5) for a lecture.

    Raises:
        ValidationError: If no rating is given or a rating is out of range
    """
    if self_rating is None and difficulty_rating is None:
        raise ValidationError("At least one rating is required")
    for name, value in (("self_rating", self_rating), ("difficulty_rating", difficulty_rating)):
        if value is not None and value not in RATING_RANGE:
            raise ValidationError(f"{name} must be between 1 and 5")

    lecture = resolve_lecture(aggregate, unit_id, lesson_id, lecture_id)
    if self_rating is not None:
        lecture.comprehension.self_rating = self_rating
    if difficulty_rating is not None:
        lecture.comprehension.difficulty_rating = difficulty_rating

    add_interaction(
        aggregate,
        InteractionType.RATING,
        lecture_id,
        f"self={lecture.comprehension.self_rating} "
        f"difficulty={lecture.comprehension.difficulty_rating}",
        now=now,
    )
    return lecture.comprehension


def add_bookmark(
    aggregate: ProgressAggregate,
    lecture_id: str,
    position_seconds: float,
    note: str = "",
    *,
    now: datetime | None = None,
) -> Bookmark:
    """Bookmark a playback position in a lecture.

    Raises:
        NotFoundError: If the lecture is not part of the aggregate
        ValidationError: If the note is too long or the position negative
    """
    if aggregate.find_lecture_by_id(lecture_id) is None:
        raise NotFoundError(f"Lecture {lecture_id} not found in progress")
    if position_seconds < 0:
        raise ValidationError("Bookmark position cannot be negative")
    if len(note) > BOOKMARK_NOTE_MAX_LENGTH:
        raise ValidationError(f"Bookmark note exceeds {BOOKMARK_NOTE_MAX_LENGTH} characters")

    now = now or datetime.now(UTC)
    bookmark = Bookmark(
        lecture_id=lecture_id,
        position_seconds=position_seconds,
        note=note,
        created_at=now,
    )
    aggregate.bookmarks.append(bookmark)
    add_interaction(aggregate, InteractionType.BOOKMARK, lecture_id, note, now=now)
    return bookmark


def recent_activity(aggregate: ProgressAggregate, limit: int = 10) -> list[Interaction]:
    """Last ``limit`` interactions, newest first."""
    if limit <= 0:
        return []
    return list(reversed(aggregate.interactions[-limit:]))


# ==============================================================================
# Navigation
# ==============================================================================


def find_next_lecture(aggregate: ProgressAggregate, structure) -> NextLecture | None:
    """First lecture in course order that is not completed.

    Args:
        aggregate: Learner progress
        structure: Course structure providing order and titles

    Returns:
        NextLecture, or None when every lecture is completed
    """
    for unit in structure.units:
        for lesson in unit.lessons:
            for lecture in lesson.lectures:
                progress = aggregate.find_lecture(
                    unit.unit_id, lesson.lesson_id, lecture.lecture_id
                )
                if progress is not None and progress.is_completed:
                    continue
                return NextLecture(
                    unit_id=unit.unit_id,
                    unit_title=unit.title,
                    lesson_id=lesson.lesson_id,
                    lesson_title=lesson.title,
                    lecture_id=lecture.lecture_id,
                    lecture_title=lecture.title,
                    last_position=(
                        progress.watch_progress.last_position if progress else 0
                    ),
                )
    return None
