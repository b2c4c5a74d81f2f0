"""Chapter completion aggregator.

Derives a chapter's completion flag from durable counts only (video progress
records and passed exam attempts), so it can be called any number of times
and concurrent callers converge on the same row.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from uuid import UUID

import structlog

from src.courses.models import Chapter
from src.courses.service import CourseStructureReader
from src.enrollments.service import ExamResultsReader

from .models import ChapterProgress
from .repository import ProgressStore
from .unlocking import ProgressSnapshot


logger = structlog.get_logger(__name__)


class EmptyChapterPolicy(str, Enum):
    """How a chapter with no videos and no exam may become completed."""

    MANUAL = "manual"
    AUTO = "auto"
    NEVER = "never"


@dataclass
class ChapterCompletion:
    """Outcome of one recomputation."""

    chapter_id: UUID
    total_videos: int
    videos_completed: int
    all_videos_completed: bool
    has_exam: bool
    exam_passed: bool
    is_completed: bool
    became_completed: bool
    progress: ChapterProgress

    @property
    def exam_unlocked(self) -> bool:
        return self.has_exam and self.videos_completed == self.total_videos


class ChapterCompletionAggregator:
    """Recomputes and upserts ChapterProgress rows."""

    def __init__(
        self,
        courses: CourseStructureReader,
        store: ProgressStore,
        exam_results: ExamResultsReader,
        empty_chapter_policy: EmptyChapterPolicy | str = EmptyChapterPolicy.MANUAL,
    ):
        self.courses = courses
        self.store = store
        self.exam_results = exam_results
        self.empty_chapter_policy = EmptyChapterPolicy(empty_chapter_policy)

    async def recompute_chapter_completion(
        self,
        student_id: UUID,
        chapter_id: UUID,
        chapter: Chapter | None = None,
    ) -> ChapterCompletion:
        """Recompute the completion state of one chapter for one student.

        Safe to call before any activity exists: all-zero inputs yield a
        not-completed row.

        Args:
            student_id: Student UUID
            chapter_id: Chapter UUID
            chapter: Already loaded chapter, skips the structure read

        Raises:
            ChapterNotFoundError: If the chapter does not exist
        """
        if chapter is None:
            chapter = await self.courses.get_chapter(chapter_id)
        return await self._recompute(student_id, chapter)

    async def mark_manually_completed(
        self, student_id: UUID, chapter: Chapter
    ) -> ChapterCompletion:
        """Record a manual completion mark, then recompute."""
        return await self._recompute(student_id, chapter, manually_completed=True)

    async def _recompute(
        self,
        student_id: UUID,
        chapter: Chapter,
        manually_completed: bool = False,
    ) -> ChapterCompletion:
        video_progress = await self.store.get_chapter_video_progress(
            student_id, chapter.id
        )
        snapshot = ProgressSnapshot.from_records(video_progress)

        total_videos = chapter.total_videos
        videos_completed = snapshot.videos_completed(chapter)
        all_videos_completed = total_videos > 0 and videos_completed == total_videos

        if chapter.exam.is_present:
            exam_passed = await self.exam_results.has_passed_attempt(
                student_id, chapter.exam.id
            )
        else:
            exam_passed = True

        existing = await self.store.get_chapter_progress(
            student_id, chapter.course_id, chapter.id
        )
        was_completed = bool(existing and existing.is_completed)
        manually_completed = manually_completed or bool(
            existing and existing.manually_completed
        )

        if chapter.is_empty:
            is_completed = self._empty_chapter_completed(manually_completed)
        else:
            is_completed = all_videos_completed and exam_passed

        if is_completed and was_completed:
            completed_at = existing.completed_at
        elif is_completed:
            completed_at = datetime.now(UTC)
        else:
            completed_at = None

        started = snapshot.videos_started(chapter)
        progress = ChapterProgress(
            student_id=student_id,
            course_id=chapter.course_id,
            chapter_id=chapter.id,
            is_completed=is_completed,
            completed_at=completed_at,
            last_video_watched=max((v.order_index for v in started), default=None),
            manually_completed=manually_completed,
        )

        if existing is None or existing != progress:
            await self.store.save_chapter_progress(progress)

        became_completed = is_completed and not was_completed
        logger.info(
            "chapter_completion_recomputed",
            student_id=str(student_id),
            chapter_id=str(chapter.id),
            videos_completed=videos_completed,
            total_videos=total_videos,
            exam_passed=exam_passed,
            is_completed=is_completed,
            became_completed=became_completed,
        )

        return ChapterCompletion(
            chapter_id=chapter.id,
            total_videos=total_videos,
            videos_completed=videos_completed,
            all_videos_completed=all_videos_completed,
            has_exam=chapter.exam.is_present,
            exam_passed=exam_passed,
            is_completed=is_completed,
            became_completed=became_completed,
            progress=progress,
        )

    def _empty_chapter_completed(self, manually_completed: bool) -> bool:
        if self.empty_chapter_policy is EmptyChapterPolicy.AUTO:
            return True
        if self.empty_chapter_policy is EmptyChapterPolicy.MANUAL:
            return manually_completed
        return False
