"""Learning service layer.

Orchestrates the engine for the API:
- Enrolled course list with progress summaries
- Course and chapter detail with lock verdicts re-derived on every read
- Video heartbeats (delegated to the heartbeat processor)
- Manual completion of empty chapters
- Exam detail and the exam-result hook
"""

from uuid import UUID

import structlog

from src.config import Settings, get_settings
from src.core.exceptions import (
    ContentLockedError,
    CourseNotFoundError,
    ExamNotFoundError,
    NotEnrolledError,
    ValidationError,
)
from src.courses.models import Chapter, Course, CourseStructure, Exam
from src.courses.service import CourseStructureReader
from src.enrollments.service import EnrollmentReader, ExamResultsReader

from .aggregator import (
    ChapterCompletion,
    ChapterCompletionAggregator,
    EmptyChapterPolicy,
)
from .heartbeat import HeartbeatProcessor, round_half_up
from .models import VIDEO_COMPLETE_PERCENT
from .repository import ProgressStore
from .schemas import (
    ChapterCompletionResponse,
    ChapterDetailResponse,
    ChapterHeader,
    ChapterSummary,
    ChapterVideoProgress,
    CourseDetailResponse,
    CourseHeader,
    CourseProgressSummary,
    EnrolledCourseListResponse,
    EnrolledCourseResponse,
    ExamAttemptItem,
    ExamDetailResponse,
    ExamItem,
    HeartbeatChapterProgress,
    HeartbeatMilestones,
    HeartbeatResponse,
    NextVideoInfo,
    Prerequisites,
    RequiredChapter,
    RequiredChapterProgress,
    VideoItem,
    VideoProgressSummary,
    YearGroup,
)
from .unlocking import (
    UNLOCKED,
    LockDecision,
    ProgressSnapshot,
    resolve_chapter_locks,
    resolve_exam_lock,
    resolve_video_locks,
)


logger = structlog.get_logger(__name__)


def _percent(part: int, whole: int) -> float:
    return part / whole * 100 if whole else 0.0


def _course_header(course: Course) -> CourseHeader:
    return CourseHeader(
        id=course.id,
        title=course.title,
        description=course.description,
        duration_years=course.duration_years,
        cover_image_url=course.cover_image_url,
    )


def _chapter_header(chapter: Chapter, lock: LockDecision) -> ChapterHeader:
    return ChapterHeader(
        id=chapter.id,
        title=chapter.title,
        description=chapter.description,
        order_index=chapter.order_index,
        course_year=chapter.course_year,
        is_locked=lock.is_locked,
        lock_reason=lock.lock_reason,
    )


def _exam_item(exam: Exam, lock: LockDecision) -> ExamItem:
    return ExamItem(
        id=exam.id,
        title=exam.title,
        description=exam.description,
        passing_score=exam.passing_score,
        time_limit_minutes=exam.time_limit_minutes,
        is_locked=lock.is_locked,
        lock_reason=lock.lock_reason,
    )


class LearningService:
    """Student-facing learning operations."""

    def __init__(
        self,
        courses: CourseStructureReader,
        store: ProgressStore,
        enrollments: EnrollmentReader,
        exam_results: ExamResultsReader,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.courses = courses
        self.store = store
        self.enrollments = enrollments
        self.exam_results = exam_results
        self.empty_chapter_policy = EmptyChapterPolicy(
            settings.progress_empty_chapter_policy
        )
        self.aggregator = ChapterCompletionAggregator(
            courses=courses,
            store=store,
            exam_results=exam_results,
            empty_chapter_policy=self.empty_chapter_policy,
        )
        self.heartbeats = HeartbeatProcessor(
            courses=courses,
            store=store,
            aggregator=self.aggregator,
            tolerance_percent=settings.progress_report_tolerance_percent,
            milestone_step_percent=settings.progress_milestone_step_percent,
        )

    # ==========================================================================
    # Enrollment
    # ==========================================================================

    async def ensure_enrolled(self, student_id: UUID, course_id: UUID) -> None:
        """Raise NotEnrolledError unless the student is actively enrolled."""
        if not await self.enrollments.is_actively_enrolled(student_id, course_id):
            logger.warning(
                "learning_access_denied_not_enrolled",
                student_id=str(student_id),
                course_id=str(course_id),
            )
            raise NotEnrolledError

    async def list_enrolled_courses(
        self, student_id: UUID
    ) -> EnrolledCourseListResponse:
        """Actively enrolled courses with progress, most recent enrollment first."""
        items = []
        for enrollment in await self.enrollments.list_active_enrollments(student_id):
            try:
                structure = await self.courses.get_course_structure(
                    enrollment.course_id
                )
            except CourseNotFoundError:
                logger.warning(
                    "enrolled_course_missing",
                    student_id=str(student_id),
                    course_id=str(enrollment.course_id),
                )
                continue

            snapshot = await self._load_snapshot(student_id, structure)
            total_chapters = len(structure.chapters)
            completed_chapters = sum(
                1 for c in structure.chapters if snapshot.is_chapter_completed(c.id)
            )
            total_videos = sum(c.total_videos for c in structure.chapters)
            watched_videos = sum(
                snapshot.videos_completed(c) for c in structure.chapters
            )
            overall = (
                _percent(completed_chapters, total_chapters)
                + _percent(watched_videos, total_videos)
            ) / 2

            items.append(
                EnrolledCourseResponse(
                    course=_course_header(structure.course),
                    enrolled_at=enrollment.enrolled_at,
                    total_chapters=total_chapters,
                    completed_chapters=completed_chapters,
                    total_videos=total_videos,
                    watched_videos=watched_videos,
                    overall_progress=round_half_up(overall),
                )
            )

        return EnrolledCourseListResponse(items=items, total=len(items))

    # ==========================================================================
    # Course / Chapter Detail
    # ==========================================================================

    async def get_course_detail(
        self, student_id: UUID, course_id: UUID
    ) -> CourseDetailResponse:
        """Year-grouped chapters with lock state and progress.

        Raises:
            CourseNotFoundError: If the course does not exist
        """
        structure = await self.courses.get_course_structure(course_id)
        snapshot = await self._load_snapshot(student_id, structure)
        chapter_locks = resolve_chapter_locks(structure.chapters, snapshot)
        passed_exams = await self.exam_results.passed_exams(
            student_id,
            [c.exam.id for c in structure.chapters if c.exam.is_present],
        )

        summaries: dict[int, list[ChapterSummary]] = {}
        for chapter in structure.chapters:
            lock = chapter_locks[chapter.id]
            summaries.setdefault(chapter.course_year, []).append(
                ChapterSummary(
                    id=chapter.id,
                    title=chapter.title,
                    description=chapter.description,
                    order_index=chapter.order_index,
                    course_year=chapter.course_year,
                    is_locked=lock.is_locked,
                    lock_reason=lock.lock_reason,
                    is_completed=snapshot.is_chapter_completed(chapter.id),
                    total_videos=chapter.total_videos,
                    videos_completed=snapshot.videos_completed(chapter),
                    has_exam=chapter.exam.is_present,
                    exam_passed=(
                        not chapter.exam.is_present or chapter.exam.id in passed_exams
                    ),
                )
            )

        years = sorted(
            {*range(1, structure.course.duration_years + 1), *summaries.keys()}
        )
        year_structure = []
        for year in years:
            chapters = summaries.get(year, [])
            year_structure.append(
                YearGroup(
                    year=year,
                    chapters=chapters,
                    total_chapters=len(chapters),
                    unlocked_chapters=sum(1 for c in chapters if not c.is_locked),
                    completed_chapters=sum(1 for c in chapters if c.is_completed),
                )
            )

        total_chapters = len(structure.chapters)
        completed_chapters = sum(g.completed_chapters for g in year_structure)
        logger.debug(
            "course_detail_resolved",
            student_id=str(student_id),
            course_id=str(course_id),
            completed_chapters=completed_chapters,
        )
        return CourseDetailResponse(
            course=_course_header(structure.course),
            year_structure=year_structure,
            progress=CourseProgressSummary(
                overall_progress=round_half_up(
                    _percent(completed_chapters, total_chapters)
                ),
                total_chapters=total_chapters,
                completed_chapters=completed_chapters,
                unlocked_chapters=sum(g.unlocked_chapters for g in year_structure),
            ),
        )

    async def get_chapter_detail(
        self, student_id: UUID, course_id: UUID, chapter_id: UUID
    ) -> ChapterDetailResponse:
        """Chapter with videos and exam, or only prerequisites when locked.

        Raises:
            CourseNotFoundError: If the course does not exist
            ChapterNotFoundError: If the chapter is not part of the course
        """
        structure, chapter = await self.courses.get_chapter_in_course(
            course_id, chapter_id
        )
        previous = structure.previous_chapter(chapter.id)
        snapshot = await self._load_snapshot(
            student_id, structure, [c for c in (previous, chapter) if c is not None]
        )
        lock = resolve_chapter_locks(structure.chapters, snapshot)[chapter.id]
        header = _chapter_header(chapter, lock)
        course = _course_header(structure.course)

        if lock.is_locked:
            return ChapterDetailResponse(
                course=course,
                chapter=header,
                prerequisites=Prerequisites(
                    previous_chapter_completed=False,
                    can_access=False,
                    required_chapter=RequiredChapter(
                        id=previous.id,
                        title=previous.title,
                        progress=RequiredChapterProgress(
                            videos_completed=snapshot.videos_completed(previous),
                            total_videos=previous.total_videos,
                            exam_passed=await self._exam_passed(student_id, previous),
                        ),
                    ),
                ),
            )

        video_locks = resolve_video_locks(chapter, snapshot)
        videos = []
        for video in chapter.videos:
            video_lock = video_locks[video.id]
            watched = snapshot.watched_percent(video.id)
            videos.append(
                VideoItem(
                    id=video.id,
                    title=video.title,
                    description=video.description,
                    duration_seconds=video.duration_seconds,
                    order_index=video.order_index,
                    asset_url=None if video_lock.is_locked else video.asset_url,
                    is_locked=video_lock.is_locked,
                    lock_reason=video_lock.lock_reason,
                    progress=VideoProgressSummary(
                        watched_percent=watched,
                        is_completed=watched == VIDEO_COMPLETE_PERCENT,
                    ),
                )
            )

        exam_lock = resolve_exam_lock(chapter, snapshot)
        videos_completed = snapshot.videos_completed(chapter)
        return ChapterDetailResponse(
            course=course,
            chapter=header,
            videos=videos,
            exam=_exam_item(chapter.exam, exam_lock) if exam_lock else None,
            progress=ChapterVideoProgress(
                videos_completed=videos_completed,
                total_videos=chapter.total_videos,
                all_videos_completed=(
                    chapter.total_videos > 0
                    and videos_completed == chapter.total_videos
                ),
                can_take_exam=exam_lock is not None and not exam_lock.is_locked,
            ),
            prerequisites=Prerequisites(
                previous_chapter_completed=True, can_access=True
            ),
        )

    # ==========================================================================
    # Heartbeat / Completion
    # ==========================================================================

    async def record_heartbeat(
        self,
        student_id: UUID,
        course_id: UUID,
        chapter_id: UUID,
        video_id: UUID,
        current_time: float,
        duration: float,
        reported_watched_percent: float | None = None,
    ) -> HeartbeatResponse:
        """Record a playback heartbeat and report transitions."""
        result = await self.heartbeats.record_heartbeat(
            student_id=student_id,
            course_id=course_id,
            chapter_id=chapter_id,
            video_id=video_id,
            current_time=current_time,
            duration=duration,
            reported_watched_percent=reported_watched_percent,
        )
        next_video = result.next_video
        return HeartbeatResponse(
            video_id=result.video_id,
            watched_percent=result.watched_percent,
            is_completed=result.is_completed,
            next_video_unlocked=result.next_video_unlocked,
            next_video=(
                NextVideoInfo(
                    id=next_video.id,
                    title=next_video.title,
                    order_index=next_video.order_index,
                )
                if next_video
                else None
            ),
            chapter_progress=HeartbeatChapterProgress(
                videos_completed=result.chapter.videos_completed,
                total_videos=result.chapter.total_videos,
                all_videos_completed=result.chapter.all_videos_completed,
                exam_unlocked=result.chapter.exam_unlocked,
            ),
            should_update_ui=result.should_update_ui,
            milestones=HeartbeatMilestones(
                just_completed=result.was_just_completed,
                chapter_completed=result.chapter.became_completed,
            ),
        )

    async def mark_chapter_complete(
        self, student_id: UUID, course_id: UUID, chapter_id: UUID
    ) -> ChapterCompletionResponse:
        """Manually complete a chapter that has no videos and no exam.

        Raises:
            ContentLockedError: Manual completion disabled, or chapter locked
            ValidationError: The chapter has videos or an exam
        """
        if self.empty_chapter_policy is not EmptyChapterPolicy.MANUAL:
            raise ContentLockedError("Manual chapter completion is not enabled")

        structure, chapter = await self.courses.get_chapter_in_course(
            course_id, chapter_id
        )
        if not chapter.is_empty:
            raise ValidationError(
                "Only chapters without videos or exam can be marked complete"
            )

        snapshot = await self._load_snapshot(student_id, structure, [])
        lock = resolve_chapter_locks(structure.chapters, snapshot)[chapter.id]
        if lock.is_locked:
            raise ContentLockedError(lock.lock_reason)

        completion = await self.aggregator.mark_manually_completed(student_id, chapter)
        logger.info(
            "chapter_marked_complete",
            student_id=str(student_id),
            chapter_id=str(chapter_id),
        )
        return self._completion_response(structure, completion)

    # ==========================================================================
    # Exams
    # ==========================================================================

    async def get_exam_detail(
        self, student_id: UUID, course_id: UUID, chapter_id: UUID, exam_id: UUID
    ) -> ExamDetailResponse:
        """Exam with the student's attempts; attempts are withheld when locked.

        Raises:
            ExamNotFoundError: If the exam is not the chapter's exam
        """
        structure, chapter = await self.courses.get_chapter_in_course(
            course_id, chapter_id
        )
        exam = self._chapter_exam(chapter, exam_id)

        snapshot = await self._load_snapshot(student_id, structure, [chapter])
        chapter_lock = resolve_chapter_locks(structure.chapters, snapshot)[chapter.id]
        exam_lock = chapter_lock
        if not chapter_lock.is_locked:
            exam_lock = resolve_exam_lock(chapter, snapshot) or UNLOCKED

        detail = ExamDetailResponse(
            chapter=_chapter_header(chapter, chapter_lock),
            exam=_exam_item(exam, exam_lock),
        )
        if exam_lock.is_locked:
            return detail

        attempts = await self.exam_results.list_attempts(student_id, exam.id)
        items = [
            ExamAttemptItem(
                id=a.attempt_id,
                score=a.score,
                is_passed=a.is_passed,
                started_at=a.started_at,
                ended_at=a.ended_at,
            )
            for a in attempts
        ]
        scores = [a.score for a in attempts if a.score is not None]
        ongoing = next(
            (item for item, a in zip(items, attempts, strict=True) if a.is_ongoing),
            None,
        )

        detail.attempts = items
        detail.has_passed = any(a.is_passed for a in attempts)
        detail.best_score = max(scores, default=None)
        detail.ongoing_attempt = ongoing
        detail.can_start_exam = ongoing is None
        return detail

    async def record_exam_result(
        self, student_id: UUID, course_id: UUID, chapter_id: UUID, exam_id: UUID
    ) -> ChapterCompletionResponse:
        """Recompute chapter completion after an exam attempt was stored.

        Called by the exam submission handler.

        Raises:
            ExamNotFoundError: If the exam is not the chapter's exam
        """
        structure, chapter = await self.courses.get_chapter_in_course(
            course_id, chapter_id
        )
        self._chapter_exam(chapter, exam_id)

        completion = await self.aggregator.recompute_chapter_completion(
            student_id, chapter.id, chapter=chapter
        )
        logger.info(
            "exam_result_recorded",
            student_id=str(student_id),
            chapter_id=str(chapter_id),
            exam_id=str(exam_id),
            exam_passed=completion.exam_passed,
            chapter_completed=completion.is_completed,
        )
        return self._completion_response(structure, completion)

    # ==========================================================================
    # Helpers
    # ==========================================================================

    async def _load_snapshot(
        self,
        student_id: UUID,
        structure: CourseStructure,
        chapters: list[Chapter] | None = None,
    ) -> ProgressSnapshot:
        """Read the student's progress for the course.

        Video progress is loaded for ``chapters`` (all chapters by default).
        Under the ``auto`` empty-chapter policy, unlocked empty chapters are
        completed on the way.
        """
        chapter_progress = await self.store.get_course_chapter_progress(
            student_id, structure.course.id
        )
        video_progress = []
        for chapter in structure.chapters if chapters is None else chapters:
            video_progress.extend(
                await self.store.get_chapter_video_progress(student_id, chapter.id)
            )
        snapshot = ProgressSnapshot.from_records(video_progress, chapter_progress)

        if self.empty_chapter_policy is EmptyChapterPolicy.AUTO:
            await self._complete_empty_chapters(student_id, structure, snapshot)
        return snapshot

    async def _complete_empty_chapters(
        self, student_id: UUID, structure: CourseStructure, snapshot: ProgressSnapshot
    ) -> None:
        previous_completed = True
        for chapter in structure.chapters:
            if (
                previous_completed
                and chapter.is_empty
                and not snapshot.is_chapter_completed(chapter.id)
            ):
                completion = await self.aggregator.recompute_chapter_completion(
                    student_id, chapter.id, chapter=chapter
                )
                if completion.is_completed:
                    snapshot.completed_chapters.add(chapter.id)
            previous_completed = snapshot.is_chapter_completed(chapter.id)

    async def _exam_passed(self, student_id: UUID, chapter: Chapter) -> bool:
        if not chapter.exam.is_present:
            return True
        return await self.exam_results.has_passed_attempt(student_id, chapter.exam.id)

    @staticmethod
    def _chapter_exam(chapter: Chapter, exam_id: UUID) -> Exam:
        if not chapter.exam.is_present or chapter.exam.id != exam_id:
            raise ExamNotFoundError
        return chapter.exam

    @staticmethod
    def _completion_response(
        structure: CourseStructure, completion: ChapterCompletion
    ) -> ChapterCompletionResponse:
        next_chapter = None
        if completion.is_completed:
            following = structure.next_chapter(completion.chapter_id)
            if following is not None:
                next_chapter = _chapter_header(following, UNLOCKED)

        return ChapterCompletionResponse(
            chapter_id=completion.chapter_id,
            is_completed=completion.is_completed,
            completed_at=completion.progress.completed_at,
            videos_completed=completion.videos_completed,
            total_videos=completion.total_videos,
            all_videos_completed=completion.all_videos_completed,
            exam_passed=completion.exam_passed,
            next_chapter_unlocked=next_chapter is not None,
            next_chapter=next_chapter,
        )
