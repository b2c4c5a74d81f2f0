"""Course structure read models.

Provides:
- Course, chapter, video and exam entities
- Ordered course structure snapshots for unlock resolution
"""

from .models import (
    COURSES_TABLES_CQL,
    NO_EXAM,
    Chapter,
    Course,
    CourseStructure,
    Exam,
    ExamSlot,
    NoExam,
    Video,
)


__all__ = [
    "COURSES_TABLES_CQL",
    "NO_EXAM",
    "Chapter",
    "Course",
    "CourseStructure",
    "Exam",
    "ExamSlot",
    "NoExam",
    "Video",
]
