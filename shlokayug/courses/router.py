"""Course structure and enrollment API endpoints."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from shlokayug.auth.dependencies import CurrentUser, TeacherUser

from .dependencies import CourseServiceDep, handle_course_error
from .schemas import CourseStructureRequest, CourseStructureResponse, EnrollmentResponse
from .service import CourseError


router = APIRouter(prefix="/v1/courses", tags=["courses"])


@router.put(
    "/{course_id}/structure",
    response_model=CourseStructureResponse,
    summary="Create or replace course structure",
)
async def put_course_structure(
    course_id: UUID,
    data: CourseStructureRequest,
    course_service: CourseServiceDep,
    user: TeacherUser,
) -> CourseStructureResponse:
    """Create or replace the Unit -> Lesson -> Lecture tree (TEACHER or ADMIN only)."""
    try:
        structure = await course_service.save_structure(data.to_structure(course_id))
    except CourseError as e:
        raise handle_course_error(e) from e
    return CourseStructureResponse.from_entity(structure)


@router.get(
    "/{course_id}/structure",
    response_model=CourseStructureResponse,
    summary="Get course structure",
)
async def get_course_structure(
    course_id: UUID,
    course_service: CourseServiceDep,
    user: CurrentUser,
) -> CourseStructureResponse:
    structure = await course_service.get_structure(course_id)
    if structure is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Course not found",
        )
    return CourseStructureResponse.from_entity(structure)


@router.post(
    "/{course_id}/enroll",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll in course",
)
async def enroll_in_course(
    course_id: UUID,
    course_service: CourseServiceDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    """Enroll the current user in a course."""
    try:
        enrollment = await course_service.enroll_user(UUID(str(user.id)), course_id)
    except CourseError as e:
        raise handle_course_error(e) from e
    return EnrollmentResponse.from_entity(enrollment)
