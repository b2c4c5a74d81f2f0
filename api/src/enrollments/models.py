"""Enrollment and exam attempt read models.

Both entities are owned by other services (payments/enrollment and exam
submission); the learning engine only reads them:
- Course enrollments: "is this student actively enrolled?"
- Exam attempts: "does a passed attempt exist?" plus attempt history
"""

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from src.courses.models import ensure_utc_aware


if TYPE_CHECKING:
    from cassandra.cluster import Row


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSE_ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_enrollments (
    student_id UUID,
    course_id UUID,
    is_active BOOLEAN,
    enrolled_at TIMESTAMP,
    PRIMARY KEY ((student_id), course_id)
)
"""

EXAM_ATTEMPTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.exam_attempts (
    student_id UUID,
    exam_id UUID,
    attempt_id TIMEUUID,
    is_passed BOOLEAN,
    score INT,
    started_at TIMESTAMP,
    ended_at TIMESTAMP,
    PRIMARY KEY ((student_id, exam_id), attempt_id)
) WITH CLUSTERING ORDER BY (attempt_id DESC)
"""

ENROLLMENTS_TABLES_CQL = [
    COURSE_ENROLLMENTS_TABLE_CQL,
    EXAM_ATTEMPTS_TABLE_CQL,
]


# ==============================================================================
# Domain Models
# ==============================================================================


@dataclass
class CourseEnrollment:
    """Student enrollment in a course."""

    student_id: UUID
    course_id: UUID
    is_active: bool
    enrolled_at: datetime | None = None

    @classmethod
    def from_row(cls, row: "Row") -> "CourseEnrollment":
        """Create from Cassandra row."""
        return cls(
            student_id=row.student_id,
            course_id=row.course_id,
            is_active=bool(row.is_active),
            enrolled_at=ensure_utc_aware(row.enrolled_at),
        )


@dataclass
class ExamAttempt:
    """One attempt at a chapter exam.

    An attempt without ``ended_at`` is still in progress.
    """

    attempt_id: UUID
    student_id: UUID
    exam_id: UUID
    is_passed: bool = False
    score: int | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None

    @property
    def is_ongoing(self) -> bool:
        return self.ended_at is None

    @classmethod
    def from_row(cls, row: "Row") -> "ExamAttempt":
        """Create from Cassandra row."""
        return cls(
            attempt_id=row.attempt_id,
            student_id=row.student_id,
            exam_id=row.exam_id,
            is_passed=bool(row.is_passed),
            score=row.score,
            started_at=ensure_utc_aware(row.started_at),
            ended_at=ensure_utc_aware(row.ended_at),
        )
