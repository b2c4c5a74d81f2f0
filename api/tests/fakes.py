"""In-memory doubles of the Cassandra-backed readers and store, plus builders.

Sample course from ``make_course`` (global locking order):

    year 1  #0 "Foundations"   2 videos, no exam
    year 1  #1 "Core Skills"   2 videos, exam
    year 1  #2 "Reading List"  no videos, no exam
    year 2  #0 "Capstone"      1 video, no exam
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

from src.core.exceptions import ChapterNotFoundError, CourseNotFoundError
from src.courses.models import (
    NO_EXAM,
    Chapter,
    Course,
    CourseStructure,
    Exam,
    Video,
)
from src.enrollments.models import CourseEnrollment, ExamAttempt
from src.progress.models import ChapterProgress, VideoProgress


# ==============================================================================
# In-memory doubles
# ==============================================================================


class InMemoryCourseReader:
    """Course structure reader over prebuilt structures."""

    def __init__(self, *structures: CourseStructure):
        self.structures = {s.course.id: s for s in structures}

    async def get_course(self, course_id: UUID) -> Course:
        return (await self.get_course_structure(course_id)).course

    async def get_course_structure(self, course_id: UUID) -> CourseStructure:
        if course_id not in self.structures:
            raise CourseNotFoundError
        return self.structures[course_id]

    async def get_chapter(self, chapter_id: UUID) -> Chapter:
        for structure in self.structures.values():
            chapter = structure.get_chapter(chapter_id)
            if chapter is not None:
                return chapter
        raise ChapterNotFoundError("Chapter not found")

    async def get_chapter_in_course(
        self, course_id: UUID, chapter_id: UUID
    ) -> tuple[CourseStructure, Chapter]:
        structure = await self.get_course_structure(course_id)
        chapter = structure.get_chapter(chapter_id)
        if chapter is None:
            raise ChapterNotFoundError
        return structure, chapter


class InMemoryProgressStore:
    """Progress store with the same conditional-write semantics as Cassandra."""

    def __init__(self):
        self.videos: dict[tuple[UUID, UUID, UUID], VideoProgress] = {}
        self.chapters: dict[tuple[UUID, UUID, UUID], ChapterProgress] = {}
        self.chapter_saves = 0

    async def get_video_progress(self, student_id, chapter_id, video_id):
        return self.videos.get((student_id, chapter_id, video_id))

    async def get_chapter_video_progress(self, student_id, chapter_id):
        return [
            p
            for (s, c, _), p in self.videos.items()
            if s == student_id and c == chapter_id
        ]

    async def create_video_progress(self, progress: VideoProgress) -> bool:
        key = (progress.student_id, progress.chapter_id, progress.video_id)
        if key in self.videos:
            return False
        self.videos[key] = progress
        return True

    async def raise_watched_percent(
        self, student_id, chapter_id, video_id, watched_percent, watched_at
    ) -> bool:
        current = self.videos.get((student_id, chapter_id, video_id))
        if current is None or current.watched_percent >= watched_percent:
            return False
        current.watched_percent = watched_percent
        current.last_watched_at = watched_at
        return True

    async def touch_video_progress(self, student_id, chapter_id, video_id, watched_at):
        current = self.videos.get((student_id, chapter_id, video_id))
        if current is not None:
            current.last_watched_at = watched_at

    async def get_chapter_progress(self, student_id, course_id, chapter_id):
        return self.chapters.get((student_id, course_id, chapter_id))

    async def get_course_chapter_progress(self, student_id, course_id):
        return [
            p
            for (s, c, _), p in self.chapters.items()
            if s == student_id and c == course_id
        ]

    async def save_chapter_progress(self, progress: ChapterProgress) -> None:
        self.chapter_saves += 1
        key = (progress.student_id, progress.course_id, progress.chapter_id)
        self.chapters[key] = ChapterProgress(**progress.to_dict())

    # Test helpers

    def set_video(self, student_id, chapter: Chapter, video: Video, percent: int):
        self.videos[(student_id, chapter.id, video.id)] = VideoProgress(
            student_id=student_id,
            chapter_id=chapter.id,
            video_id=video.id,
            course_id=chapter.course_id,
            watched_percent=percent,
        )

    def complete_chapter(self, student_id, chapter: Chapter):
        self.chapters[(student_id, chapter.course_id, chapter.id)] = ChapterProgress(
            student_id=student_id,
            course_id=chapter.course_id,
            chapter_id=chapter.id,
            is_completed=True,
            completed_at=datetime.now(UTC),
        )


class InMemoryEnrollments:
    def __init__(self):
        self.enrollments: list[CourseEnrollment] = []

    def enroll(self, student_id, course_id, is_active=True, days_ago=0):
        self.enrollments.append(
            CourseEnrollment(
                student_id=student_id,
                course_id=course_id,
                is_active=is_active,
                enrolled_at=datetime.now(UTC) - timedelta(days=days_ago),
            )
        )

    async def is_actively_enrolled(self, student_id, course_id) -> bool:
        return any(
            e.student_id == student_id and e.course_id == course_id and e.is_active
            for e in self.enrollments
        )

    async def list_active_enrollments(self, student_id):
        active = [
            e for e in self.enrollments if e.student_id == student_id and e.is_active
        ]
        return sorted(active, key=lambda e: e.enrolled_at, reverse=True)


class InMemoryExamResults:
    def __init__(self):
        self.attempts: dict[tuple[UUID, UUID], list[ExamAttempt]] = {}
        self.queries = 0

    def add_attempt(
        self, student_id, exam_id, *, score=None, is_passed=False, ongoing=False
    ) -> ExamAttempt:
        started = datetime.now(UTC)
        attempt = ExamAttempt(
            attempt_id=uuid4(),
            student_id=student_id,
            exam_id=exam_id,
            is_passed=is_passed,
            score=score,
            started_at=started,
            ended_at=None if ongoing else started + timedelta(minutes=20),
        )
        self.attempts.setdefault((student_id, exam_id), []).insert(0, attempt)
        return attempt

    async def list_attempts(self, student_id, exam_id):
        self.queries += 1
        return list(self.attempts.get((student_id, exam_id), []))

    async def has_passed_attempt(self, student_id, exam_id) -> bool:
        return any(a.is_passed for a in await self.list_attempts(student_id, exam_id))

    async def passed_exams(self, student_id, exam_ids) -> set[UUID]:
        if not exam_ids:
            return set()
        self.queries += 1
        return {
            exam_id
            for exam_id in exam_ids
            for a in self.attempts.get((student_id, exam_id), [])
            if a.is_passed
        }


# ==============================================================================
# Builders
# ==============================================================================


def make_chapter(
    course_id: UUID,
    title: str,
    course_year: int,
    order_index: int,
    video_count: int,
    with_exam: bool = False,
) -> Chapter:
    chapter_id = uuid4()
    videos = [
        Video(
            id=uuid4(),
            chapter_id=chapter_id,
            order_index=i + 1,
            title=f"{title} video {i + 1}",
            duration_seconds=600,
            asset_url=f"https://cdn.example.com/{chapter_id}/{i + 1}.m3u8",
        )
        for i in range(video_count)
    ]
    exam = (
        Exam(id=uuid4(), chapter_id=chapter_id, title=f"{title} exam", passing_score=70)
        if with_exam
        else NO_EXAM
    )
    return Chapter(
        id=chapter_id,
        course_id=course_id,
        course_year=course_year,
        order_index=order_index,
        title=title,
        videos=videos,
        exam=exam,
    )


def make_course() -> CourseStructure:
    course = Course(id=uuid4(), title="Clinical Pharmacy", duration_years=2)
    chapters = [
        # Deliberately out of order: the structure sorts by (year, index)
        make_chapter(course.id, "Capstone", 2, 0, video_count=1),
        make_chapter(course.id, "Foundations", 1, 0, video_count=2),
        make_chapter(course.id, "Core Skills", 1, 1, video_count=2, with_exam=True),
        make_chapter(course.id, "Reading List", 1, 2, video_count=0),
    ]
    return CourseStructure(course=course, chapters=chapters)

