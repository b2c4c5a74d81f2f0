"""Database models for student progress.

Cassandra table definitions for:
- Video progress: Watched percent per (student, video), never decreasing
- Chapter progress: Completion flag per (student, chapter), derived by the
  completion aggregator

Partitioning follows the read paths: all video progress of a chapter and all
chapter progress of a course are single-partition reads.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from src.courses.models import ensure_utc_aware


# A video counts as completed only at exactly this percent
VIDEO_COMPLETE_PERCENT = 100


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Video progress per student
# Partition key: (student_id, chapter_id) so a chapter aggregates in one read
VIDEO_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.video_progress (
    student_id UUID,
    chapter_id UUID,
    video_id UUID,
    course_id UUID,
    watched_percent INT,
    first_watched_at TIMESTAMP,
    last_watched_at TIMESTAMP,
    PRIMARY KEY ((student_id, chapter_id), video_id)
)
"""

# Chapter progress per student
# Partition key: (student_id, course_id) so course-wide locking is one read
CHAPTER_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.chapter_progress (
    student_id UUID,
    course_id UUID,
    chapter_id UUID,
    is_completed BOOLEAN,
    completed_at TIMESTAMP,
    last_video_watched INT,
    manually_completed BOOLEAN,
    PRIMARY KEY ((student_id, course_id), chapter_id)
)
"""

PROGRESS_TABLES_CQL = [
    VIDEO_PROGRESS_TABLE_CQL,
    CHAPTER_PROGRESS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class VideoProgress:
    """Watch progress of one student on one video.

    Attributes:
        student_id: Student UUID
        chapter_id: Chapter UUID (partition key)
        video_id: Video UUID
        course_id: Course UUID
        watched_percent: 0-100, never decreases
        first_watched_at: First heartbeat timestamp
        last_watched_at: Last heartbeat timestamp
    """

    def __init__(
        self,
        student_id: UUID,
        chapter_id: UUID,
        video_id: UUID,
        course_id: UUID,
        watched_percent: int = 0,
        first_watched_at: datetime | None = None,
        last_watched_at: datetime | None = None,
    ):
        self.student_id = student_id
        self.chapter_id = chapter_id
        self.video_id = video_id
        self.course_id = course_id
        self.watched_percent = watched_percent
        self.first_watched_at = ensure_utc_aware(first_watched_at)
        self.last_watched_at = ensure_utc_aware(last_watched_at) or datetime.now(UTC)

    @property
    def is_completed(self) -> bool:
        return self.watched_percent == VIDEO_COMPLETE_PERCENT

    @classmethod
    def from_row(cls, row: Any) -> "VideoProgress":
        """Create VideoProgress instance from Cassandra row."""
        return cls(
            student_id=row.student_id,
            chapter_id=row.chapter_id,
            video_id=row.video_id,
            course_id=row.course_id,
            watched_percent=row.watched_percent or 0,
            first_watched_at=row.first_watched_at,
            last_watched_at=row.last_watched_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "student_id": self.student_id,
            "chapter_id": self.chapter_id,
            "video_id": self.video_id,
            "course_id": self.course_id,
            "watched_percent": self.watched_percent,
            "first_watched_at": self.first_watched_at,
            "last_watched_at": self.last_watched_at,
        }

    def __repr__(self) -> str:
        return (
            f"<VideoProgress student={self.student_id} video={self.video_id} "
            f"{self.watched_percent}%>"
        )


class ChapterProgress:
    """Completion state of one student on one chapter.

    Attributes:
        student_id: Student UUID
        course_id: Course UUID (partition key)
        chapter_id: Chapter UUID
        is_completed: All videos watched and exam passed (or no exam)
        completed_at: Set on the transition to completed, cleared when it
            flips back
        last_video_watched: Highest video order_index with nonzero progress
        manually_completed: Set by the manual "mark complete" action for
            chapters without videos and exam
    """

    def __init__(
        self,
        student_id: UUID,
        course_id: UUID,
        chapter_id: UUID,
        is_completed: bool = False,
        completed_at: datetime | None = None,
        last_video_watched: int | None = None,
        manually_completed: bool = False,
    ):
        self.student_id = student_id
        self.course_id = course_id
        self.chapter_id = chapter_id
        self.is_completed = is_completed
        self.completed_at = ensure_utc_aware(completed_at)
        self.last_video_watched = last_video_watched
        self.manually_completed = manually_completed

    @classmethod
    def from_row(cls, row: Any) -> "ChapterProgress":
        """Create ChapterProgress instance from Cassandra row."""
        return cls(
            student_id=row.student_id,
            course_id=row.course_id,
            chapter_id=row.chapter_id,
            is_completed=bool(row.is_completed),
            completed_at=row.completed_at,
            last_video_watched=row.last_video_watched,
            manually_completed=bool(row.manually_completed),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "student_id": self.student_id,
            "course_id": self.course_id,
            "chapter_id": self.chapter_id,
            "is_completed": self.is_completed,
            "completed_at": self.completed_at,
            "last_video_watched": self.last_video_watched,
            "manually_completed": self.manually_completed,
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ChapterProgress):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return (
            f"<ChapterProgress student={self.student_id} chapter={self.chapter_id} "
            f"completed={self.is_completed}>"
        )
