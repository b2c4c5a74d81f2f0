"""Enrollment and exam attempt lookups (read-only)."""

from .models import ENROLLMENTS_TABLES_CQL, CourseEnrollment, ExamAttempt


__all__ = [
    "ENROLLMENTS_TABLES_CQL",
    "CourseEnrollment",
    "ExamAttempt",
]
