"""Student progress tracking API endpoints.

Provides routes for:
- Watch progress updates and lecture completion
- Course progress breakdown and analytics
- Bookmarks, notes and ratings
"""

from uuid import UUID

from fastapi import APIRouter, status

from shlokayug.auth.dependencies import CurrentUser, TeacherUser

from .dependencies import ProgressServiceDep, handle_progress_error
from .exceptions import ProgressError
from .schemas import (
    BookmarkListResponse,
    BookmarkResponse,
    CompleteLectureRequest,
    CompleteLectureResponse,
    CourseAnalyticsResponse,
    CourseProgressResponse,
    CreateBookmarkRequest,
    CreateNoteRequest,
    NoteResponse,
    RateLectureRequest,
    RatingResponse,
    UpdateProgressRequest,
    UpdateProgressResponse,
    UserAnalyticsResponse,
)


router = APIRouter(prefix="/v1/progress", tags=["progress"])


# ==============================================================================
# Watch Progress
# ==============================================================================


@router.post(
    "/update",
    response_model=UpdateProgressResponse,
    summary="Update lecture progress",
)
async def update_progress(
    data: UpdateProgressRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> UpdateProgressResponse:
    """Report playback of a lecture.

    ``start`` opens the lecture, ``progress`` records watch figures and
    ``complete`` also marks it completed. Returns the lecture state, overall
    completion, the next lecture to watch and newly unlocked achievements.
    """
    try:
        outcome = await progress_service.update_progress(
            user_id=user.id,
            course_id=data.course_id,
            lecture_id=data.lecture_id,
            action=data.action.value,
            session_data=data.watch_data.to_session_data() if data.watch_data else None,
            notes=data.notes,
            unit_id=data.unit_id,
            lesson_id=data.lesson_id,
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return UpdateProgressResponse.from_outcome(outcome)


@router.patch(
    "/lecture/{lecture_id}/complete",
    response_model=CompleteLectureResponse,
    summary="Mark lecture as completed",
)
async def mark_lecture_complete(
    lecture_id: str,
    data: CompleteLectureRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> CompleteLectureResponse:
    try:
        outcome = await progress_service.mark_lecture_complete(
            user_id=user.id,
            course_id=data.course_id,
            lecture_id=lecture_id,
            completion_note=data.completion_note,
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return CompleteLectureResponse.from_outcome(outcome)


# ==============================================================================
# Queries
# ==============================================================================


@router.get(
    "/course/{course_id}",
    response_model=CourseProgressResponse,
    summary="Get course progress",
)
async def get_course_progress(
    course_id: UUID,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> CourseProgressResponse:
    """Breakdown by unit and lesson, recent activity, achievements and statistics."""
    try:
        view = await progress_service.get_course_progress(user.id, course_id)
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return CourseProgressResponse.from_view(view)


@router.get(
    "/analytics",
    response_model=UserAnalyticsResponse,
    summary="Get my progress analytics",
)
async def get_progress_analytics(
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> UserAnalyticsResponse:
    try:
        analytics = await progress_service.get_user_analytics(user.id)
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return UserAnalyticsResponse.from_analytics(analytics)


@router.get(
    "/course/{course_id}/analytics",
    response_model=CourseAnalyticsResponse,
    summary="Get course analytics",
)
async def get_course_analytics(
    course_id: UUID,
    progress_service: ProgressServiceDep,
    user: TeacherUser,
) -> CourseAnalyticsResponse:
    """Course-wide completion figures (TEACHER or ADMIN only)."""
    try:
        analytics = await progress_service.get_course_analytics(course_id)
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return CourseAnalyticsResponse.from_analytics(analytics)


# ==============================================================================
# Bookmarks, Notes and Ratings
# ==============================================================================


@router.post(
    "/bookmark",
    response_model=BookmarkResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Bookmark a lecture position",
)
async def create_bookmark(
    data: CreateBookmarkRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> BookmarkResponse:
    try:
        bookmark = await progress_service.add_bookmark(
            user_id=user.id,
            course_id=data.course_id,
            lecture_id=data.lecture_id,
            position_seconds=data.position_seconds,
            note=data.note,
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return BookmarkResponse.from_entity(bookmark)


@router.get(
    "/bookmarks/{course_id}",
    response_model=BookmarkListResponse,
    summary="List course bookmarks",
)
async def get_bookmarks(
    course_id: UUID,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> BookmarkListResponse:
    try:
        bookmarks = await progress_service.get_bookmarks(user.id, course_id)
    except ProgressError as e:
        raise handle_progress_error(e) from e
    items = [BookmarkResponse.from_entity(b, title) for b, title in bookmarks]
    return BookmarkListResponse(items=items, total=len(items))


@router.post(
    "/lecture/{lecture_id}/note",
    response_model=NoteResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a lecture note",
)
async def add_note(
    lecture_id: str,
    data: CreateNoteRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> NoteResponse:
    try:
        note = await progress_service.add_note(
            user_id=user.id,
            course_id=data.course_id,
            lecture_id=lecture_id,
            content=data.content,
            position_seconds=data.position_seconds,
            is_private=data.is_private,
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return NoteResponse(
        lecture_id=lecture_id,
        content=note.content,
        position_seconds=note.position_seconds,
        is_private=note.is_private,
        created_at=note.created_at,
    )


@router.post(
    "/lecture/{lecture_id}/rating",
    response_model=RatingResponse,
    summary="Rate lecture comprehension",
)
async def rate_lecture(
    lecture_id: str,
    data: RateLectureRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> RatingResponse:
    try:
        comprehension = await progress_service.rate_lecture(
            user_id=user.id,
            course_id=data.course_id,
            lecture_id=lecture_id,
            self_rating=data.self_rating,
            difficulty_rating=data.difficulty_rating,
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return RatingResponse(
        lecture_id=lecture_id,
        self_rating=comprehension.self_rating,
        difficulty_rating=comprehension.difficulty_rating,
    )
