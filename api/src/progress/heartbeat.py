"""Video heartbeat processor.

Ingests periodic playback telemetry:

1. Validate the time values and that the video belongs to the chapter/course
2. Re-check chapter and video locks at write time
3. Raise the stored watched percent (never lower it)
4. Detect completion and milestone transitions
5. Recompute chapter completion
"""

import math
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

import structlog

from src.core.exceptions import (
    ContentLockedError,
    PreviousVideoIncompleteError,
    ValidationError,
    VideoNotFoundError,
)
from src.courses.models import Video
from src.courses.service import CourseStructureReader

from .aggregator import ChapterCompletion, ChapterCompletionAggregator
from .models import VIDEO_COMPLETE_PERCENT, VideoProgress
from .repository import ProgressStore
from .unlocking import ProgressSnapshot, resolve_chapter_locks, resolve_video_locks


logger = structlog.get_logger(__name__)


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _clamp_percent(value: int) -> int:
    return max(0, min(value, VIDEO_COMPLETE_PERCENT))


def compute_watched_percent(
    current_time: float,
    duration: float,
    reported_percent: float | None = None,
    tolerance: int = 5,
) -> int:
    """Watched percent for a heartbeat.

    The server computes ``round(current_time / duration * 100)``. When the
    client reports a value more than ``tolerance`` points away, the reported
    value wins (rounded, then clamped to 0-100). The deviation is measured
    on the reported value as sent.
    """
    computed = _clamp_percent(round_half_up(current_time / duration * 100))
    if reported_percent is None:
        return computed
    if abs(reported_percent - computed) > tolerance:
        return _clamp_percent(round_half_up(reported_percent))
    return computed


@dataclass
class HeartbeatResult:
    """Outcome of one heartbeat."""

    video_id: UUID
    watched_percent: int
    is_completed: bool
    was_just_completed: bool
    should_update_ui: bool
    next_video: Video | None
    chapter: ChapterCompletion

    @property
    def next_video_unlocked(self) -> bool:
        return self.next_video is not None


class HeartbeatProcessor:
    """Records watch progress for one video at a time."""

    def __init__(
        self,
        courses: CourseStructureReader,
        store: ProgressStore,
        aggregator: ChapterCompletionAggregator,
        tolerance_percent: int = 5,
        milestone_step_percent: int = 25,
    ):
        self.courses = courses
        self.store = store
        self.aggregator = aggregator
        self.tolerance_percent = tolerance_percent
        self.milestone_step_percent = milestone_step_percent

    async def record_heartbeat(
        self,
        student_id: UUID,
        course_id: UUID,
        chapter_id: UUID,
        video_id: UUID,
        current_time: float,
        duration: float,
        reported_watched_percent: float | None = None,
    ) -> HeartbeatResult:
        """Record one playback heartbeat.

        The caller must have validated the enrollment already. Redundant
        heartbeats are accepted and only refresh ``last_watched_at``.

        Raises:
            ValidationError: duration <= 0 or current_time outside [0, duration]
            CourseNotFoundError / ChapterNotFoundError / VideoNotFoundError
            ContentLockedError: The chapter itself is locked
            PreviousVideoIncompleteError: The previous video is not at 100%
        """
        values = [current_time, duration]
        if reported_watched_percent is not None:
            values.append(reported_watched_percent)
        if not all(math.isfinite(v) for v in values):
            raise ValidationError
        if duration <= 0 or current_time < 0 or current_time > duration:
            raise ValidationError

        structure, chapter = await self.courses.get_chapter_in_course(
            course_id, chapter_id
        )
        video = chapter.get_video(video_id)
        if video is None:
            raise VideoNotFoundError

        chapter_progress = await self.store.get_course_chapter_progress(
            student_id, course_id
        )
        chapter_snapshot = ProgressSnapshot.from_records(
            chapter_progress=chapter_progress
        )
        chapter_lock = resolve_chapter_locks(structure.chapters, chapter_snapshot)[
            chapter.id
        ]
        if chapter_lock.is_locked:
            logger.warning(
                "heartbeat_rejected_chapter_locked",
                student_id=str(student_id),
                chapter_id=str(chapter_id),
                video_id=str(video_id),
            )
            raise ContentLockedError(chapter_lock.lock_reason)

        video_progress = {
            p.video_id: p
            for p in await self.store.get_chapter_video_progress(student_id, chapter_id)
        }
        video_lock = resolve_video_locks(
            chapter, ProgressSnapshot.from_records(video_progress.values())
        )[video.id]
        if video_lock.is_locked:
            logger.warning(
                "heartbeat_rejected_previous_video_incomplete",
                student_id=str(student_id),
                chapter_id=str(chapter_id),
                video_id=str(video_id),
            )
            raise PreviousVideoIncompleteError

        percent = compute_watched_percent(
            current_time, duration, reported_watched_percent, self.tolerance_percent
        )
        old_percent, new_percent = await self._store_percent(
            student_id,
            course_id,
            chapter_id,
            video_id,
            percent,
            video_progress.get(video_id),
        )

        was_just_completed = new_percent == VIDEO_COMPLETE_PERCENT and (
            old_percent is None or old_percent < VIDEO_COMPLETE_PERCENT
        )
        should_update_ui = (
            old_percent is None
            or was_just_completed
            or self._milestone(old_percent) != self._milestone(new_percent)
        )
        next_video = chapter.next_video(video) if was_just_completed else None

        completion = await self.aggregator.recompute_chapter_completion(
            student_id, chapter_id, chapter=chapter
        )

        logger.info(
            "video_heartbeat_processed",
            student_id=str(student_id),
            chapter_id=str(chapter_id),
            video_id=str(video_id),
            watched_percent=new_percent,
            was_just_completed=was_just_completed,
            chapter_completed=completion.is_completed,
        )

        return HeartbeatResult(
            video_id=video_id,
            watched_percent=new_percent,
            is_completed=new_percent == VIDEO_COMPLETE_PERCENT,
            was_just_completed=was_just_completed,
            should_update_ui=should_update_ui,
            next_video=next_video,
            chapter=completion,
        )

    async def _store_percent(
        self,
        student_id: UUID,
        course_id: UUID,
        chapter_id: UUID,
        video_id: UUID,
        percent: int,
        existing: VideoProgress | None,
    ) -> tuple[int | None, int]:
        """Apply the monotonic update rule.

        Returns:
            (previous stored percent or None for a first record, stored percent)
        """
        now = datetime.now(UTC)

        if existing is None:
            created = await self.store.create_video_progress(
                VideoProgress(
                    student_id=student_id,
                    chapter_id=chapter_id,
                    video_id=video_id,
                    course_id=course_id,
                    watched_percent=percent,
                    first_watched_at=now,
                    last_watched_at=now,
                )
            )
            if created:
                return None, percent
            # A concurrent heartbeat created the record first
            existing = await self.store.get_video_progress(
                student_id, chapter_id, video_id
            )

        previous = existing.watched_percent
        if percent > previous:
            raised = await self.store.raise_watched_percent(
                student_id, chapter_id, video_id, percent, now
            )
            if raised:
                return previous, percent
            # Lost the race to a higher value; report what is stored
            current = await self.store.get_video_progress(
                student_id, chapter_id, video_id
            )
            return current.watched_percent, current.watched_percent

        await self.store.touch_video_progress(student_id, chapter_id, video_id, now)
        return existing.watched_percent, existing.watched_percent

    def _milestone(self, percent: int) -> int:
        return percent // self.milestone_step_percent
