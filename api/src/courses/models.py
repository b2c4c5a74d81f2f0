"""Read models for course structure.

Cassandra table definitions for:
- Courses: Course metadata and duration in years
- Chapters: Lookup by id and ordered listing per course (course_year, order_index)
- Videos: Ordered listing per chapter
- Exams: At most one per chapter

Courses are authored by the admin console; this service only reads them.
A chapter's optional exam is modeled as ``Exam | NoExam`` so that the
"no exam counts as passed" rule lives in one place.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    id UUID PRIMARY KEY,
    title TEXT,
    description TEXT,
    duration_years INT,
    cover_image_url TEXT
)
"""

# Chapter lookup by id (heartbeats and exam hooks only know the chapter id)
CHAPTER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.chapters (
    id UUID PRIMARY KEY,
    course_id UUID,
    course_year INT,
    order_index INT,
    title TEXT,
    description TEXT
)
"""

# Chapters of a course in global locking order
CHAPTERS_BY_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.chapters_by_course (
    course_id UUID,
    course_year INT,
    order_index INT,
    chapter_id UUID,
    title TEXT,
    description TEXT,
    PRIMARY KEY (course_id, course_year, order_index)
) WITH CLUSTERING ORDER BY (course_year ASC, order_index ASC)
"""

VIDEOS_BY_CHAPTER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.videos_by_chapter (
    chapter_id UUID,
    order_index INT,
    video_id UUID,
    title TEXT,
    description TEXT,
    duration_seconds INT,
    asset_url TEXT,
    PRIMARY KEY (chapter_id, order_index)
) WITH CLUSTERING ORDER BY (order_index ASC)
"""

EXAMS_BY_CHAPTER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.exams_by_chapter (
    chapter_id UUID PRIMARY KEY,
    exam_id UUID,
    title TEXT,
    description TEXT,
    passing_score INT,
    time_limit_minutes INT
)
"""

COURSES_TABLES_CQL = [
    COURSE_TABLE_CQL,
    CHAPTER_TABLE_CQL,
    CHAPTERS_BY_COURSE_TABLE_CQL,
    VIDEOS_BY_CHAPTER_TABLE_CQL,
    EXAMS_BY_CHAPTER_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Course:
    """Course metadata.

    Attributes:
        id: Course UUID
        title: Course title
        description: Optional description
        duration_years: Number of course years (chapters are grouped 1..N)
        cover_image_url: Optional cover image
    """

    def __init__(
        self,
        id: UUID,
        title: str,
        duration_years: int = 1,
        description: str | None = None,
        cover_image_url: str | None = None,
    ):
        self.id = id
        self.title = title
        self.duration_years = max(duration_years, 1)
        self.description = description
        self.cover_image_url = cover_image_url

    @classmethod
    def from_row(cls, row: Any) -> "Course":
        """Create Course instance from Cassandra row."""
        return cls(
            id=row.id,
            title=row.title,
            duration_years=row.duration_years or 1,
            description=row.description,
            cover_image_url=row.cover_image_url,
        )

    def __repr__(self) -> str:
        return f"<Course {self.id} {self.title!r} years={self.duration_years}>"


class Video:
    """Video inside a chapter; ``order_index`` defines the unlock sequence."""

    def __init__(
        self,
        id: UUID,
        chapter_id: UUID,
        order_index: int,
        title: str,
        duration_seconds: int,
        asset_url: str | None = None,
        description: str | None = None,
    ):
        self.id = id
        self.chapter_id = chapter_id
        self.order_index = order_index
        self.title = title
        self.duration_seconds = duration_seconds
        self.asset_url = asset_url
        self.description = description

    @classmethod
    def from_row(cls, row: Any) -> "Video":
        """Create Video instance from a ``videos_by_chapter`` row."""
        return cls(
            id=row.video_id,
            chapter_id=row.chapter_id,
            order_index=row.order_index,
            title=row.title,
            duration_seconds=row.duration_seconds or 0,
            asset_url=row.asset_url,
            description=row.description,
        )

    def __repr__(self) -> str:
        return f"<Video {self.id} #{self.order_index} {self.title!r}>"


class Exam:
    """Exam attached to a chapter."""

    is_present = True

    def __init__(
        self,
        id: UUID,
        chapter_id: UUID,
        title: str,
        passing_score: int = 70,
        description: str | None = None,
        time_limit_minutes: int | None = None,
    ):
        self.id = id
        self.chapter_id = chapter_id
        self.title = title
        self.passing_score = passing_score
        self.description = description
        self.time_limit_minutes = time_limit_minutes

    @classmethod
    def from_row(cls, row: Any) -> "Exam":
        """Create Exam instance from an ``exams_by_chapter`` row."""
        return cls(
            id=row.exam_id,
            chapter_id=row.chapter_id,
            title=row.title,
            passing_score=row.passing_score if row.passing_score is not None else 70,
            description=row.description,
            time_limit_minutes=row.time_limit_minutes,
        )

    def __repr__(self) -> str:
        return f"<Exam {self.id} {self.title!r}>"


class NoExam:
    """Placeholder for a chapter without an exam (counts as passed)."""

    is_present = False
    id = None

    def __repr__(self) -> str:
        return "<NoExam>"


NO_EXAM = NoExam()

ExamSlot = Exam | NoExam


class Chapter:
    """Chapter with its ordered videos and optional exam.

    Attributes:
        id: Chapter UUID
        course_id: Owning course
        course_year: Year group (1..duration_years)
        order_index: Position within the year (zero-based, dense)
        title: Chapter title
        videos: Videos sorted by order_index
        exam: ``Exam`` or ``NO_EXAM``
    """

    def __init__(
        self,
        id: UUID,
        course_id: UUID,
        course_year: int,
        order_index: int,
        title: str,
        description: str | None = None,
        videos: list[Video] | None = None,
        exam: ExamSlot = NO_EXAM,
    ):
        self.id = id
        self.course_id = course_id
        self.course_year = course_year
        self.order_index = order_index
        self.title = title
        self.description = description
        self.videos = sorted(videos or [], key=lambda v: v.order_index)
        self.exam = exam

    @property
    def sort_key(self) -> tuple[int, int]:
        """Global locking order: (course_year, order_index)."""
        return (self.course_year, self.order_index)

    @property
    def total_videos(self) -> int:
        return len(self.videos)

    @property
    def is_empty(self) -> bool:
        """No videos and no exam."""
        return not self.videos and not self.exam.is_present

    def get_video(self, video_id: UUID) -> Video | None:
        return next((v for v in self.videos if v.id == video_id), None)

    def previous_video(self, video: Video) -> Video | None:
        """Video immediately before ``video`` in the chapter's order."""
        index = self.videos.index(video)
        return self.videos[index - 1] if index > 0 else None

    def next_video(self, video: Video) -> Video | None:
        """Video immediately after ``video`` in the chapter's order."""
        index = self.videos.index(video)
        return self.videos[index + 1] if index + 1 < len(self.videos) else None

    def __repr__(self) -> str:
        return (
            f"<Chapter {self.id} y{self.course_year}#{self.order_index} "
            f"videos={len(self.videos)} exam={self.exam.is_present}>"
        )


@dataclass
class CourseStructure:
    """Snapshot of a course and its chapters in global locking order."""

    course: Course
    chapters: list[Chapter] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.chapters.sort(key=lambda c: c.sort_key)

    def get_chapter(self, chapter_id: UUID) -> Chapter | None:
        return next((c for c in self.chapters if c.id == chapter_id), None)

    def position_of(self, chapter_id: UUID) -> int:
        """Index of the chapter in global order (-1 when absent)."""
        for index, chapter in enumerate(self.chapters):
            if chapter.id == chapter_id:
                return index
        return -1

    def previous_chapter(self, chapter_id: UUID) -> Chapter | None:
        index = self.position_of(chapter_id)
        return self.chapters[index - 1] if index > 0 else None

    def next_chapter(self, chapter_id: UUID) -> Chapter | None:
        index = self.position_of(chapter_id)
        if index < 0 or index + 1 >= len(self.chapters):
            return None
        return self.chapters[index + 1]

    def chapters_in_year(self, year: int) -> list[Chapter]:
        return [c for c in self.chapters if c.course_year == year]
