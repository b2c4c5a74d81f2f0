"""Enrollment and exam result lookups.

Read contracts consumed by the learning engine. Writes happen in the
enrollment/payment and exam submission services.
"""

from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from .models import CourseEnrollment, ExamAttempt


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class EnrollmentReader:
    """Answers enrollment questions for a student."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_enrollment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.course_enrollments
            WHERE student_id = ? AND course_id = ?
        """)
        self._get_student_enrollments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.course_enrollments
            WHERE student_id = ?
        """)

    async def is_actively_enrolled(self, student_id: UUID, course_id: UUID) -> bool:
        """Check whether the student has an active enrollment in the course."""
        result = await self.session.aexecute(
            self._get_enrollment, [student_id, course_id]
        )
        row = result.one()
        return bool(row and row.is_active)

    async def list_active_enrollments(self, student_id: UUID) -> list[CourseEnrollment]:
        """Active enrollments, most recent first."""
        rows = await self.session.aexecute(self._get_student_enrollments, [student_id])
        enrollments = [CourseEnrollment.from_row(row) for row in rows]
        active = [e for e in enrollments if e.is_active]
        active.sort(
            key=lambda e: e.enrolled_at.timestamp() if e.enrolled_at else 0.0,
            reverse=True,
        )
        return active


class ExamResultsReader:
    """Answers exam attempt questions for a student."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_attempts = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.exam_attempts
            WHERE student_id = ? AND exam_id = ?
        """)
        self._get_attempts_for_exams = self.session.prepare(f"""
            SELECT exam_id, is_passed FROM {self.keyspace}.exam_attempts
            WHERE student_id = ? AND exam_id IN ?
        """)

    async def list_attempts(self, student_id: UUID, exam_id: UUID) -> list[ExamAttempt]:
        """All attempts of the student at the exam, newest first."""
        rows = await self.session.aexecute(self._get_attempts, [student_id, exam_id])
        return [ExamAttempt.from_row(row) for row in rows]

    async def has_passed_attempt(self, student_id: UUID, exam_id: UUID) -> bool:
        """Check whether any attempt of the student passed the exam."""
        attempts = await self.list_attempts(student_id, exam_id)
        return any(attempt.is_passed for attempt in attempts)

    async def passed_exams(self, student_id: UUID, exam_ids: list[UUID]) -> set[UUID]:
        """Exams among ``exam_ids`` the student has passed, in one query."""
        if not exam_ids:
            return set()
        rows = await self.session.aexecute(
            self._get_attempts_for_exams, [student_id, exam_ids]
        )
        return {row.exam_id for row in rows if row.is_passed}
