"""Shared fixtures."""

import os
from uuid import UUID, uuid4

import pytest


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_DIR", "/tmp/learnpath-test-logs")

from fakes import (  # noqa: E402
    InMemoryCourseReader,
    InMemoryEnrollments,
    InMemoryExamResults,
    InMemoryProgressStore,
    make_course,
)
from src.config import Settings  # noqa: E402
from src.courses.models import CourseStructure  # noqa: E402
from src.progress.service import LearningService  # noqa: E402


@pytest.fixture
def student_id() -> UUID:
    return uuid4()


@pytest.fixture
def structure() -> CourseStructure:
    return make_course()


@pytest.fixture
def reader(structure) -> InMemoryCourseReader:
    return InMemoryCourseReader(structure)


@pytest.fixture
def store() -> InMemoryProgressStore:
    return InMemoryProgressStore()


@pytest.fixture
def enrollments(student_id, structure) -> InMemoryEnrollments:
    enrollments = InMemoryEnrollments()
    enrollments.enroll(student_id, structure.course.id)
    return enrollments


@pytest.fixture
def exam_results() -> InMemoryExamResults:
    return InMemoryExamResults()


@pytest.fixture
def settings() -> Settings:
    return Settings(environment="testing", progress_empty_chapter_policy="manual")


@pytest.fixture
def service(reader, store, enrollments, exam_results, settings) -> LearningService:
    return LearningService(
        courses=reader,
        store=store,
        enrollments=enrollments,
        exam_results=exam_results,
        settings=settings,
    )


@pytest.fixture
def client():
    """Test client without lifespan (no database connection)."""
    from fastapi.testclient import TestClient

    from src.main import create_app

    return TestClient(create_app())
