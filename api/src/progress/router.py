"""Learning API endpoints.

Provides routes for:
- Enrolled course list
- Course and chapter detail with progressive unlocking
- Video heartbeats
- Manual completion of empty chapters
- Exam detail and exam-result hook
"""

from uuid import UUID

from fastapi import APIRouter, status

from src.auth.dependencies import StudentUser
from src.core.exceptions import LearningError

from .dependencies import LearningServiceDep, handle_learning_error
from .schemas import (
    ChapterCompletionResponse,
    ChapterDetailResponse,
    CourseDetailResponse,
    EnrolledCourseListResponse,
    ExamDetailResponse,
    HeartbeatRequest,
    HeartbeatResponse,
)


router = APIRouter(prefix="/v1/learning", tags=["learning"])


# ==============================================================================
# Access Validation Helper
# ==============================================================================


async def validate_enrollment(
    course_id: UUID,
    user: StudentUser,
    learning_service: LearningServiceDep,
) -> None:
    """Validate the student is actively enrolled before any course access.

    Raises:
        HTTPException 403: If the student is not enrolled
    """
    try:
        await learning_service.ensure_enrolled(user.id, course_id)
    except LearningError as e:
        raise handle_learning_error(e) from e


# ==============================================================================
# Course Endpoints
# ==============================================================================


@router.get(
    "/courses",
    response_model=EnrolledCourseListResponse,
    summary="List my courses",
)
async def list_my_courses(
    learning_service: LearningServiceDep,
    user: StudentUser,
) -> EnrolledCourseListResponse:
    """Actively enrolled courses with chapter/video progress."""
    return await learning_service.list_enrolled_courses(user.id)


@router.get(
    "/courses/{course_id}",
    response_model=CourseDetailResponse,
    summary="Get course detail",
)
async def get_course_detail(
    course_id: UUID,
    learning_service: LearningServiceDep,
    user: StudentUser,
) -> CourseDetailResponse:
    """Chapters grouped by year with lock state and progress."""
    await validate_enrollment(course_id, user, learning_service)

    try:
        return await learning_service.get_course_detail(user.id, course_id)
    except LearningError as e:
        raise handle_learning_error(e) from e


@router.get(
    "/courses/{course_id}/chapters/{chapter_id}",
    response_model=ChapterDetailResponse,
    summary="Get chapter detail",
)
async def get_chapter_detail(
    course_id: UUID,
    chapter_id: UUID,
    learning_service: LearningServiceDep,
    user: StudentUser,
) -> ChapterDetailResponse:
    """Chapter videos and exam with lock state.

    A locked chapter returns only its prerequisites; video assets of locked
    videos are never returned.
    """
    await validate_enrollment(course_id, user, learning_service)

    try:
        return await learning_service.get_chapter_detail(
            user.id, course_id, chapter_id
        )
    except LearningError as e:
        raise handle_learning_error(e) from e


# ==============================================================================
# Progress Endpoints
# ==============================================================================


@router.post(
    "/courses/{course_id}/chapters/{chapter_id}/videos/{video_id}/heartbeat",
    response_model=HeartbeatResponse,
    status_code=status.HTTP_200_OK,
    summary="Record video heartbeat",
)
async def record_video_heartbeat(
    course_id: UUID,
    chapter_id: UUID,
    video_id: UUID,
    data: HeartbeatRequest,
    learning_service: LearningServiceDep,
    user: StudentUser,
) -> HeartbeatResponse:
    """Record playback progress (sent periodically by the player).

    Progress never decreases; a video only accepts heartbeats once the
    previous video of the chapter is fully watched.
    """
    await validate_enrollment(course_id, user, learning_service)

    try:
        return await learning_service.record_heartbeat(
            student_id=user.id,
            course_id=course_id,
            chapter_id=chapter_id,
            video_id=video_id,
            current_time=data.current_time,
            duration=data.duration,
            reported_watched_percent=data.watched_percent,
        )
    except LearningError as e:
        raise handle_learning_error(e) from e


@router.post(
    "/courses/{course_id}/chapters/{chapter_id}/complete",
    response_model=ChapterCompletionResponse,
    status_code=status.HTTP_200_OK,
    summary="Mark chapter as complete",
)
async def mark_chapter_complete(
    course_id: UUID,
    chapter_id: UUID,
    learning_service: LearningServiceDep,
    user: StudentUser,
) -> ChapterCompletionResponse:
    """Complete a chapter that has no videos and no exam."""
    await validate_enrollment(course_id, user, learning_service)

    try:
        return await learning_service.mark_chapter_complete(
            user.id, course_id, chapter_id
        )
    except LearningError as e:
        raise handle_learning_error(e) from e


# ==============================================================================
# Exam Endpoints
# ==============================================================================


@router.get(
    "/courses/{course_id}/chapters/{chapter_id}/exams/{exam_id}",
    response_model=ExamDetailResponse,
    summary="Get exam detail",
)
async def get_exam_detail(
    course_id: UUID,
    chapter_id: UUID,
    exam_id: UUID,
    learning_service: LearningServiceDep,
    user: StudentUser,
) -> ExamDetailResponse:
    """Exam with the student's attempts once all chapter videos are watched."""
    await validate_enrollment(course_id, user, learning_service)

    try:
        return await learning_service.get_exam_detail(
            user.id, course_id, chapter_id, exam_id
        )
    except LearningError as e:
        raise handle_learning_error(e) from e


@router.post(
    "/courses/{course_id}/chapters/{chapter_id}/exams/{exam_id}/result-recorded",
    response_model=ChapterCompletionResponse,
    status_code=status.HTTP_200_OK,
    summary="Recompute chapter after exam result",
)
async def exam_result_recorded(
    course_id: UUID,
    chapter_id: UUID,
    exam_id: UUID,
    learning_service: LearningServiceDep,
    user: StudentUser,
) -> ChapterCompletionResponse:
    """Recompute chapter completion after an exam attempt was stored."""
    await validate_enrollment(course_id, user, learning_service)

    try:
        return await learning_service.record_exam_result(
            user.id, course_id, chapter_id, exam_id
        )
    except LearningError as e:
        raise handle_learning_error(e) from e
