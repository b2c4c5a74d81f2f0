"""Progress store backed by Cassandra.

Every write is a single-row statement, so it either applies fully or not at
all. Raising ``watched_percent`` uses a lightweight transaction conditioned on
the stored value being lower, which keeps progress monotonic even when two
heartbeats for the same video race.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from .models import ChapterProgress, VideoProgress


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class ProgressStore:
    """Data access for video and chapter progress."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        # Video Progress
        self._get_video_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.video_progress
            WHERE student_id = ? AND chapter_id = ? AND video_id = ?
        """)

        self._get_chapter_video_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.video_progress
            WHERE student_id = ? AND chapter_id = ?
        """)

        self._insert_video_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.video_progress
            (student_id, chapter_id, video_id, course_id, watched_percent,
             first_watched_at, last_watched_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._raise_watched_percent = self.session.prepare(f"""
            UPDATE {self.keyspace}.video_progress
            SET watched_percent = ?, last_watched_at = ?
            WHERE student_id = ? AND chapter_id = ? AND video_id = ?
            IF watched_percent < ?
        """)

        self._touch_video_progress = self.session.prepare(f"""
            UPDATE {self.keyspace}.video_progress
            SET last_watched_at = ?
            WHERE student_id = ? AND chapter_id = ? AND video_id = ?
            IF EXISTS
        """)

        # Chapter Progress
        self._get_chapter_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.chapter_progress
            WHERE student_id = ? AND course_id = ? AND chapter_id = ?
        """)

        self._get_course_chapter_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.chapter_progress
            WHERE student_id = ? AND course_id = ?
        """)

        self._upsert_chapter_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.chapter_progress
            (student_id, course_id, chapter_id, is_completed, completed_at,
             last_video_watched, manually_completed)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)

    # ==========================================================================
    # Video Progress
    # ==========================================================================

    async def get_video_progress(
        self, student_id: UUID, chapter_id: UUID, video_id: UUID
    ) -> VideoProgress | None:
        """Get progress for one video."""
        result = await self.session.aexecute(
            self._get_video_progress, [student_id, chapter_id, video_id]
        )
        row = result.one()
        return VideoProgress.from_row(row) if row else None

    async def get_chapter_video_progress(
        self, student_id: UUID, chapter_id: UUID
    ) -> list[VideoProgress]:
        """Get progress for every watched video of a chapter."""
        rows = await self.session.aexecute(
            self._get_chapter_video_progress, [student_id, chapter_id]
        )
        return [VideoProgress.from_row(row) for row in rows]

    async def create_video_progress(self, progress: VideoProgress) -> bool:
        """Insert the first progress record for a video.

        Returns:
            False when a record already existed (nothing was written)
        """
        result = await self.session.aexecute(
            self._insert_video_progress,
            [
                progress.student_id,
                progress.chapter_id,
                progress.video_id,
                progress.course_id,
                progress.watched_percent,
                progress.first_watched_at,
                progress.last_watched_at,
            ],
        )
        return bool(result.was_applied)

    async def raise_watched_percent(
        self,
        student_id: UUID,
        chapter_id: UUID,
        video_id: UUID,
        watched_percent: int,
        watched_at: datetime,
    ) -> bool:
        """Store a higher watched percent.

        Returns:
            False when the stored value was already >= ``watched_percent``
        """
        result = await self.session.aexecute(
            self._raise_watched_percent,
            [
                watched_percent,
                watched_at,
                student_id,
                chapter_id,
                video_id,
                watched_percent,
            ],
        )
        return bool(result.was_applied)

    async def touch_video_progress(
        self,
        student_id: UUID,
        chapter_id: UUID,
        video_id: UUID,
        watched_at: datetime,
    ) -> None:
        """Refresh ``last_watched_at`` without changing the percent."""
        await self.session.aexecute(
            self._touch_video_progress,
            [watched_at, student_id, chapter_id, video_id],
        )

    # ==========================================================================
    # Chapter Progress
    # ==========================================================================

    async def get_chapter_progress(
        self, student_id: UUID, course_id: UUID, chapter_id: UUID
    ) -> ChapterProgress | None:
        """Get progress for one chapter."""
        result = await self.session.aexecute(
            self._get_chapter_progress, [student_id, course_id, chapter_id]
        )
        row = result.one()
        return ChapterProgress.from_row(row) if row else None

    async def get_course_chapter_progress(
        self, student_id: UUID, course_id: UUID
    ) -> list[ChapterProgress]:
        """Get progress for every chapter of a course the student touched."""
        rows = await self.session.aexecute(
            self._get_course_chapter_progress, [student_id, course_id]
        )
        return [ChapterProgress.from_row(row) for row in rows]

    async def save_chapter_progress(self, progress: ChapterProgress) -> None:
        """Upsert the whole chapter progress row."""
        await self.session.aexecute(
            self._upsert_chapter_progress,
            [
                progress.student_id,
                progress.course_id,
                progress.chapter_id,
                progress.is_completed,
                progress.completed_at,
                progress.last_video_watched,
                progress.manually_completed,
            ],
        )
