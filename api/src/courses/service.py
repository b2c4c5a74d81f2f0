"""Course structure reader.

Read-only access to a course's chapters (ordered by course year, then
order index), each chapter's ordered videos and its optional exam.
"""

from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from src.core.exceptions import ChapterNotFoundError, CourseNotFoundError
from src.courses.models import (
    NO_EXAM,
    Chapter,
    Course,
    CourseStructure,
    Exam,
    ExamSlot,
    Video,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class CourseStructureReader:
    """Loads course/chapter/video/exam read models."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements."""
        self._get_course_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.courses WHERE id = ?"
        )
        self._get_chapter_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.chapters WHERE id = ?"
        )
        self._get_course_chapters = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.chapters_by_course WHERE course_id = ?"
        )
        self._get_chapter_videos = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.videos_by_chapter WHERE chapter_id = ?"
        )
        self._get_chapter_exam = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.exams_by_chapter WHERE chapter_id = ?"
        )

    async def get_course(self, course_id: UUID) -> Course:
        """Get course metadata.

        Raises:
            CourseNotFoundError: If the course does not exist
        """
        result = await self.session.aexecute(self._get_course_by_id, [course_id])
        row = result.one()
        if not row:
            raise CourseNotFoundError
        return Course.from_row(row)

    async def get_course_structure(self, course_id: UUID) -> CourseStructure:
        """Get a course with all chapters, videos and exams in locking order.

        Raises:
            CourseNotFoundError: If the course does not exist
        """
        course = await self.get_course(course_id)
        rows = await self.session.aexecute(self._get_course_chapters, [course_id])

        chapters = []
        for row in rows:
            chapters.append(
                Chapter(
                    id=row.chapter_id,
                    course_id=row.course_id,
                    course_year=row.course_year,
                    order_index=row.order_index,
                    title=row.title,
                    description=row.description,
                    videos=await self._load_videos(row.chapter_id),
                    exam=await self._load_exam(row.chapter_id),
                )
            )

        logger.debug(
            "course_structure_loaded",
            course_id=str(course_id),
            chapters=len(chapters),
        )
        return CourseStructure(course=course, chapters=chapters)

    async def get_chapter(self, chapter_id: UUID) -> Chapter:
        """Get a single chapter with its videos and exam.

        Raises:
            ChapterNotFoundError: If the chapter does not exist
        """
        result = await self.session.aexecute(self._get_chapter_by_id, [chapter_id])
        row = result.one()
        if not row:
            raise ChapterNotFoundError("Chapter not found")
        return Chapter(
            id=row.id,
            course_id=row.course_id,
            course_year=row.course_year,
            order_index=row.order_index,
            title=row.title,
            description=row.description,
            videos=await self._load_videos(row.id),
            exam=await self._load_exam(row.id),
        )

    async def get_chapter_in_course(
        self, course_id: UUID, chapter_id: UUID
    ) -> tuple[CourseStructure, Chapter]:
        """Get the course structure and one of its chapters.

        Raises:
            CourseNotFoundError: If the course does not exist
            ChapterNotFoundError: If the chapter is not part of the course
        """
        structure = await self.get_course_structure(course_id)
        chapter = structure.get_chapter(chapter_id)
        if chapter is None:
            raise ChapterNotFoundError
        return structure, chapter

    async def _load_videos(self, chapter_id: UUID) -> list[Video]:
        rows = await self.session.aexecute(self._get_chapter_videos, [chapter_id])
        return [Video.from_row(row) for row in rows]

    async def _load_exam(self, chapter_id: UUID) -> ExamSlot:
        result = await self.session.aexecute(self._get_chapter_exam, [chapter_id])
        row = result.one()
        return Exam.from_row(row) if row else NO_EXAM
