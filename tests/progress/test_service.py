"""Tests for the progress service pipeline."""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
import pytest_asyncio

from shlokayug.courses.models import CourseStructure, LectureNode
from shlokayug.courses.service import InMemoryCourseService
from shlokayug.progress.exceptions import (
    NotEnrolledError,
    NotFoundError,
    ValidationError,
)
from shlokayug.progress.models import (
    AchievementType,
    CompletionStatus,
    InteractionType,
    ProgressStatus,
    SessionData,
)
from shlokayug.progress.repository import InMemoryProgressRepository
from shlokayug.progress.service import ProgressService, resolve_path


NOW = datetime(2024, 3, 4, 10, 0, tzinfo=UTC)


@pytest_asyncio.fixture
async def enrolled(
    course_service: InMemoryCourseService, structure: CourseStructure, user_id
):
    await course_service.save_structure(structure)
    await course_service.enroll_user(user_id, structure.course_id)
    return structure


class TestResolvePath:
    def test_finds_unit_and_lesson(self, structure: CourseStructure) -> None:
        assert resolve_path(structure, "c") == ("u1", "l2", "c")

    def test_unknown_lecture(self, structure: CourseStructure) -> None:
        with pytest.raises(NotFoundError):
            resolve_path(structure, "zz")

    def test_mismatched_lesson(self, structure: CourseStructure) -> None:
        with pytest.raises(NotFoundError):
            resolve_path(structure, "c", unit_id="u1", lesson_id="l1")


class TestUpdateProgress:
    """Player reports flowing through the write pipeline."""

    @pytest.mark.asyncio
    async def test_start_seeds_and_saves_aggregate(
        self,
        progress_service: ProgressService,
        repository: InMemoryProgressRepository,
        enrolled: CourseStructure,
        user_id,
        course_id,
    ) -> None:
        # Act
        outcome = await progress_service.update_progress(
            user_id, course_id, "a", "start", now=NOW
        )

        # Assert
        assert outcome.lecture.status == ProgressStatus.IN_PROGRESS.value
        assert outcome.lecture.started_at == NOW
        assert outcome.overall == 0
        assert outcome.next_lecture.lecture_id == "a"

        stored = await repository.get(user_id, course_id)
        assert stored is not None
        assert stored.version == 1
        assert stored.find_unit("u1").status == ProgressStatus.IN_PROGRESS.value
        assert stored.statistics.engagement.streak.current == 1

    @pytest.mark.asyncio
    async def test_progress_records_session_and_study_time(
        self,
        progress_service: ProgressService,
        repository: InMemoryProgressRepository,
        enrolled: CourseStructure,
        user_id,
        course_id,
    ) -> None:
        # Arrange
        data = SessionData(
            total_duration=200,
            watched_duration=50,
            last_position=50,
            session_start=NOW - timedelta(minutes=2),
            session_end=NOW,
        )

        # Act
        outcome = await progress_service.update_progress(
            user_id, course_id, "b", "progress", session_data=data, now=NOW
        )

        # Assert
        assert outcome.lecture.watch_progress.watch_percentage == 25.0
        assert outcome.lecture.watch_progress.last_position == 50
        assert len(outcome.lecture.watch_progress.sessions) == 1

        stored = await repository.get(user_id, course_id)
        assert stored.statistics.time.total_sessions == 1
        assert stored.statistics.engagement.weekly_goal.achieved_minutes == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_complete_cascades_and_unlocks_first_lecture(
        self,
        progress_service: ProgressService,
        enrolled: CourseStructure,
        user_id,
        course_id,
    ) -> None:
        # Act
        outcome = await progress_service.update_progress(
            user_id, course_id, "c", "complete", now=NOW
        )

        # Assert
        assert outcome.lecture.is_completed
        assert outcome.overall == 25.0
        assert outcome.completion.lesson_percent == 100.0
        assert outcome.completion.unit_percent == 50.0
        assert [a.type for a in outcome.new_achievements] == [
            AchievementType.FIRST_LECTURE.value
        ]
        assert outcome.next_lecture.lecture_id == "a"

    @pytest.mark.asyncio
    async def test_notes_are_attached(
        self,
        progress_service: ProgressService,
        enrolled: CourseStructure,
        user_id,
        course_id,
    ) -> None:
        outcome = await progress_service.update_progress(
            user_id, course_id, "a", "progress", notes="Remember the long a", now=NOW
        )

        assert outcome.lecture.notes[0].content == "Remember the long a"

    @pytest.mark.asyncio
    async def test_unknown_action(
        self, progress_service: ProgressService, enrolled, user_id, course_id
    ) -> None:
        with pytest.raises(ValidationError):
            await progress_service.update_progress(user_id, course_id, "a", "rewind")

    @pytest.mark.asyncio
    async def test_unknown_lecture(
        self,
        progress_service: ProgressService,
        repository: InMemoryProgressRepository,
        enrolled,
        user_id,
        course_id,
    ) -> None:
        with pytest.raises(NotFoundError):
            await progress_service.update_progress(user_id, course_id, "zz", "start")

        assert await repository.get(user_id, course_id) is None

    @pytest.mark.asyncio
    async def test_not_enrolled(
        self, progress_service: ProgressService, enrolled, course_id
    ) -> None:
        with pytest.raises(NotEnrolledError):
            await progress_service.update_progress(uuid4(), course_id, "a", "start")

    @pytest.mark.asyncio
    async def test_new_lectures_are_synced_on_load(
        self,
        progress_service: ProgressService,
        course_service: InMemoryCourseService,
        repository: InMemoryProgressRepository,
        enrolled: CourseStructure,
        user_id,
        course_id,
    ) -> None:
        # Arrange
        await progress_service.update_progress(user_id, course_id, "a", "complete", now=NOW)
        enrolled.units[1].lessons[0].lectures.append(LectureNode("e", "Gayatri", 500))
        await course_service.save_structure(enrolled)

        # Act
        outcome = await progress_service.update_progress(
            user_id, course_id, "e", "start", now=NOW
        )

        # Assert
        assert outcome.overall == 20.0
        stored = await repository.get(user_id, course_id)
        assert stored.find_lecture("u2", "l3", "e") is not None


class TestMarkLectureComplete:
    @pytest.mark.asyncio
    async def test_completion_note_is_logged(
        self,
        progress_service: ProgressService,
        repository: InMemoryProgressRepository,
        enrolled,
        user_id,
        course_id,
    ) -> None:
        # Act
        outcome = await progress_service.mark_lecture_complete(
            user_id, course_id, "d", completion_note="Chanted it twice", now=NOW
        )

        # Assert
        assert outcome.lecture_id == "d"
        assert outcome.completion.unit_percent == 100.0
        assert outcome.completion_status == CompletionStatus.IN_PROGRESS.value

        stored = await repository.get(user_id, course_id)
        types = [i.type for i in stored.interactions]
        assert InteractionType.COMPLETION_NOTE.value in types

    @pytest.mark.asyncio
    async def test_completing_every_lecture_completes_course(
        self, progress_service: ProgressService, enrolled, user_id, course_id
    ) -> None:
        outcome = None
        for lecture_id in ("a", "b", "c", "d"):
            outcome = await progress_service.mark_lecture_complete(
                user_id, course_id, lecture_id, now=NOW
            )

        assert outcome.overall == 100.0
        assert outcome.completion_status == CompletionStatus.COMPLETED.value
        assert AchievementType.FIRST_COMPLETION.value in [
            a.type for a in outcome.new_achievements
        ]


class TestAnnotations:
    @pytest.mark.asyncio
    async def test_add_note(
        self, progress_service: ProgressService, enrolled, user_id, course_id
    ) -> None:
        note = await progress_service.add_note(
            user_id, course_id, "b", "Pluta is three morae", position_seconds=42
        )

        assert note.position_seconds == 42
        assert note.is_private

    @pytest.mark.asyncio
    async def test_add_empty_note_rejected(
        self, progress_service: ProgressService, enrolled, user_id, course_id
    ) -> None:
        with pytest.raises(ValidationError):
            await progress_service.add_note(user_id, course_id, "b", "")

    @pytest.mark.asyncio
    async def test_rate_lecture(
        self, progress_service: ProgressService, enrolled, user_id, course_id
    ) -> None:
        comprehension = await progress_service.rate_lecture(
            user_id, course_id, "a", self_rating=4, difficulty_rating=2
        )

        assert comprehension.self_rating == 4
        assert comprehension.difficulty_rating == 2

    @pytest.mark.asyncio
    async def test_rating_out_of_range(
        self, progress_service: ProgressService, enrolled, user_id, course_id
    ) -> None:
        with pytest.raises(ValidationError):
            await progress_service.rate_lecture(user_id, course_id, "a", self_rating=6)

    @pytest.mark.asyncio
    async def test_bookmarks_carry_lecture_titles(
        self, progress_service: ProgressService, enrolled, user_id, course_id
    ) -> None:
        # Arrange
        await progress_service.add_bookmark(user_id, course_id, "c", 12.5, "ka kha")

        # Act
        bookmarks = await progress_service.get_bookmarks(user_id, course_id)

        # Assert
        assert len(bookmarks) == 1
        bookmark, title = bookmarks[0]
        assert bookmark.position_seconds == 12.5
        assert title == "Stops"

    @pytest.mark.asyncio
    async def test_bookmark_unknown_lecture(
        self, progress_service: ProgressService, enrolled, user_id, course_id
    ) -> None:
        with pytest.raises(NotFoundError):
            await progress_service.add_bookmark(user_id, course_id, "zz", 1)


class TestQueries:
    @pytest.mark.asyncio
    async def test_course_progress_before_first_use(
        self,
        progress_service: ProgressService,
        repository: InMemoryProgressRepository,
        enrolled,
        user_id,
        course_id,
    ) -> None:
        view = await progress_service.get_course_progress(user_id, course_id)

        assert view.aggregate.statistics.completion.overall == 0
        assert view.next_lecture.lecture_id == "a"
        assert view.recent_activity == []
        assert await repository.get(user_id, course_id) is None

    @pytest.mark.asyncio
    async def test_unknown_course_is_denied(
        self, progress_service: ProgressService, user_id
    ) -> None:
        with pytest.raises(NotEnrolledError):
            await progress_service.get_course_progress(user_id, uuid4())

    @pytest.mark.asyncio
    async def test_user_analytics(
        self, progress_service: ProgressService, enrolled, user_id, course_id
    ) -> None:
        # Arrange
        await progress_service.mark_lecture_complete(user_id, course_id, "a", now=NOW)
        await progress_service.mark_lecture_complete(user_id, course_id, "b", now=NOW)

        # Act
        analytics = await progress_service.get_user_analytics(user_id)

        # Assert
        assert analytics.total_courses == 1
        assert analytics.completed_courses == 0
        assert analytics.in_progress_courses == 1
        assert analytics.average_progress == 50.0
        assert analytics.total_achievements == 2
        assert analytics.longest_streak == 1

    @pytest.mark.asyncio
    async def test_user_analytics_without_courses(
        self, progress_service: ProgressService
    ) -> None:
        analytics = await progress_service.get_user_analytics(uuid4())

        assert analytics.total_courses == 0
        assert analytics.average_progress == 0.0

    @pytest.mark.asyncio
    async def test_course_analytics(
        self,
        progress_service: ProgressService,
        course_service: InMemoryCourseService,
        enrolled,
        user_id,
        course_id,
    ) -> None:
        # Arrange
        other = uuid4()
        await course_service.enroll_user(other, course_id)
        for lecture_id in ("a", "b", "c", "d"):
            await progress_service.mark_lecture_complete(user_id, course_id, lecture_id, now=NOW)
        await progress_service.update_progress(other, course_id, "a", "start", now=NOW)

        # Act
        analytics = await progress_service.get_course_analytics(course_id)

        # Assert
        assert analytics.total_students == 2
        assert analytics.completed_students == 1
        assert analytics.average_completion == 50.0


class TestInvalidTransitions:
    @pytest.mark.asyncio
    async def test_failed_transform_does_not_save(
        self,
        progress_service: ProgressService,
        repository: InMemoryProgressRepository,
        enrolled,
        user_id,
        course_id,
    ) -> None:
        await progress_service.mark_lecture_complete(user_id, course_id, "a", now=NOW)

        with pytest.raises(ValidationError):
            await progress_service.rate_lecture(user_id, course_id, "a")

        stored = await repository.get(user_id, course_id)
        assert stored.version == 1


class TestMixedTimestamps:
    @pytest.mark.asyncio
    async def test_naive_session_start_counts_study_time(
        self,
        progress_service: ProgressService,
        repository: InMemoryProgressRepository,
        enrolled,
        user_id,
        course_id,
    ) -> None:
        # Arrange
        data = SessionData(
            session_start=datetime(2024, 3, 4, 9, 0),
            session_end=datetime(2024, 3, 4, 9, 5, tzinfo=UTC),
        )

        # Act
        outcome = await progress_service.update_progress(
            user_id, course_id, "a", "progress", session_data=data, now=NOW
        )

        # Assert
        assert outcome.lecture.watch_progress.sessions[0].duration == 300
        stored = await repository.get(user_id, course_id)
        assert stored.statistics.engagement.weekly_goal.achieved_minutes == pytest.approx(5.0)

    @pytest.mark.asyncio
    async def test_reversed_session_adds_no_study_time(
        self,
        progress_service: ProgressService,
        repository: InMemoryProgressRepository,
        enrolled,
        user_id,
        course_id,
    ) -> None:
        data = SessionData(session_start=NOW, session_end=NOW - timedelta(minutes=3))

        await progress_service.update_progress(
            user_id, course_id, "a", "progress", session_data=data, now=NOW
        )

        stored = await repository.get(user_id, course_id)
        assert stored.statistics.engagement.weekly_goal.achieved_minutes == 0


class TestCourseEdits:
    """Aggregates follow the course structure after it changes."""

    @pytest.mark.asyncio
    async def test_removed_lecture_no_longer_blocks_completion(
        self,
        progress_service: ProgressService,
        course_service: InMemoryCourseService,
        repository: InMemoryProgressRepository,
        enrolled: CourseStructure,
        user_id,
        course_id,
    ) -> None:
        # Arrange
        await progress_service.update_progress(user_id, course_id, "a", "start", now=NOW)
        enrolled.units.pop()
        await course_service.save_structure(enrolled)

        # Act
        outcome = None
        for lecture_id in ("a", "b", "c"):
            outcome = await progress_service.mark_lecture_complete(
                user_id, course_id, lecture_id, now=NOW
            )

        # Assert
        assert outcome.overall == 100.0
        assert outcome.completion_status == CompletionStatus.COMPLETED.value
        stored = await repository.get(user_id, course_id)
        assert [u.unit_id for u in stored.units] == ["u1"]
        assert stored.has_achievement(AchievementType.FIRST_COMPLETION.value)

    @pytest.mark.asyncio
    async def test_removing_last_open_lecture_completes_lesson(
        self,
        progress_service: ProgressService,
        course_service: InMemoryCourseService,
        enrolled: CourseStructure,
        user_id,
        course_id,
    ) -> None:
        # Arrange
        await progress_service.mark_lecture_complete(user_id, course_id, "a", now=NOW)
        enrolled.units[0].lessons[0].lectures.pop()
        await course_service.save_structure(enrolled)

        # Act
        view = await progress_service.get_course_progress(user_id, course_id)

        # Assert
        lesson = view.aggregate.find_lesson("u1", "l1")
        assert lesson.status == ProgressStatus.COMPLETED.value
        assert view.aggregate.find_lecture("u1", "l1", "b") is None
        assert view.aggregate.statistics.completion.overall == pytest.approx(100 / 3)

    @pytest.mark.asyncio
    async def test_moved_lecture_keeps_progress(
        self,
        progress_service: ProgressService,
        course_service: InMemoryCourseService,
        enrolled: CourseStructure,
        user_id,
        course_id,
    ) -> None:
        # Arrange
        await progress_service.mark_lecture_complete(user_id, course_id, "b", now=NOW)
        moved = enrolled.units[0].lessons[0].lectures.pop()
        enrolled.units[1].lessons[0].lectures.insert(0, moved)
        await course_service.save_structure(enrolled)

        # Act
        view = await progress_service.get_course_progress(user_id, course_id)

        # Assert
        lecture = view.aggregate.find_lecture("u2", "l3", "b")
        assert lecture.is_completed
        assert lecture.completed_at == NOW
        assert view.aggregate.find_lesson("u2", "l3").status == ProgressStatus.IN_PROGRESS.value
        assert view.aggregate.find_lecture("u1", "l1", "b") is None
        assert view.aggregate.statistics.completion.overall == 25.0
