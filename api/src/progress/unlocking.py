"""Unlock resolver.

Pure functions over a progress snapshot and a course structure. Nothing here
touches the store and no lock state is ever persisted: every read re-derives
the verdicts, so course detail, chapter detail and the heartbeat guard all
agree for the same durable state.

Chapters unlock strictly on the immediately preceding chapter (global order
``(course_year, order_index)``). Videos unlock on the immediately preceding
video of the same chapter. A chapter's exam unlocks once every one of its
videos is fully watched.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from uuid import UUID

from src.courses.models import Chapter, Video

from .models import VIDEO_COMPLETE_PERCENT, ChapterProgress, VideoProgress


CHAPTER_LOCK_REASON = "Complete previous chapter '{title}' to unlock this chapter"
VIDEO_LOCK_REASON = "Complete previous video '{title}' to unlock"
EXAM_LOCK_REASON = "Complete all videos in this chapter to unlock exam"


@dataclass(frozen=True)
class LockDecision:
    """Verdict for one chapter, video or exam."""

    is_locked: bool
    lock_reason: str | None = None


UNLOCKED = LockDecision(is_locked=False)


@dataclass
class ProgressSnapshot:
    """Point-in-time view of one student's progress.

    Missing video records count as 0 percent and missing chapter records as
    not completed.
    """

    video_percent: dict[UUID, int] = field(default_factory=dict)
    completed_chapters: set[UUID] = field(default_factory=set)

    @classmethod
    def from_records(
        cls,
        video_progress: Iterable[VideoProgress] = (),
        chapter_progress: Iterable[ChapterProgress] = (),
    ) -> "ProgressSnapshot":
        return cls(
            video_percent={p.video_id: p.watched_percent for p in video_progress},
            completed_chapters={
                p.chapter_id for p in chapter_progress if p.is_completed
            },
        )

    def watched_percent(self, video_id: UUID) -> int:
        return self.video_percent.get(video_id, 0)

    def is_video_completed(self, video_id: UUID) -> bool:
        return self.watched_percent(video_id) == VIDEO_COMPLETE_PERCENT

    def is_chapter_completed(self, chapter_id: UUID) -> bool:
        return chapter_id in self.completed_chapters

    def videos_completed(self, chapter: Chapter) -> int:
        return sum(1 for video in chapter.videos if self.is_video_completed(video.id))

    def videos_started(self, chapter: Chapter) -> list[Video]:
        return [v for v in chapter.videos if self.watched_percent(v.id) > 0]


def resolve_chapter_locks(
    chapters: list[Chapter], snapshot: ProgressSnapshot
) -> dict[UUID, LockDecision]:
    """Lock verdict for every chapter, keyed by chapter id in global order.

    Args:
        chapters: Chapters already sorted by ``(course_year, order_index)``
        snapshot: Student progress
    """
    decisions: dict[UUID, LockDecision] = {}
    previous: Chapter | None = None
    previous_completed = True

    for chapter in chapters:
        if previous_completed:
            decisions[chapter.id] = UNLOCKED
        else:
            decisions[chapter.id] = LockDecision(
                is_locked=True,
                lock_reason=CHAPTER_LOCK_REASON.format(title=previous.title),
            )
        previous = chapter
        previous_completed = snapshot.is_chapter_completed(chapter.id)

    return decisions


def resolve_video_locks(
    chapter: Chapter, snapshot: ProgressSnapshot
) -> dict[UUID, LockDecision]:
    """Lock verdict for every video of an unlocked chapter, in order."""
    decisions: dict[UUID, LockDecision] = {}
    previous: Video | None = None
    previous_completed = True

    for video in chapter.videos:
        if previous_completed:
            decisions[video.id] = UNLOCKED
        else:
            decisions[video.id] = LockDecision(
                is_locked=True,
                lock_reason=VIDEO_LOCK_REASON.format(title=previous.title),
            )
        previous = video
        previous_completed = snapshot.is_video_completed(video.id)

    return decisions


def resolve_exam_lock(
    chapter: Chapter, snapshot: ProgressSnapshot
) -> LockDecision | None:
    """Lock verdict for the chapter's exam, or None when it has no exam.

    A chapter without videos has its exam unlocked.
    """
    if not chapter.exam.is_present:
        return None
    if snapshot.videos_completed(chapter) == chapter.total_videos:
        return UNLOCKED
    return LockDecision(is_locked=True, lock_reason=EXAM_LOCK_REASON)
