"""Tests for the Cassandra progress store."""

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from cassandra.cluster import Session

from src.enrollments.service import ExamResultsReader
from src.progress.models import ChapterProgress, VideoProgress
from src.progress.repository import ProgressStore


@pytest.fixture
def mock_session():
    """Create mock Cassandra session."""
    session = Mock(spec=Session)
    session.prepare = Mock(return_value=Mock())
    session.aexecute = AsyncMock()
    return session


@pytest.fixture
def progress_store(mock_session):
    """Create ProgressStore with mock session."""
    return ProgressStore(session=mock_session, keyspace="test_keyspace")


def video_row(**overrides):
    values = {
        "student_id": uuid4(),
        "chapter_id": uuid4(),
        "video_id": uuid4(),
        "course_id": uuid4(),
        "watched_percent": 45,
        "first_watched_at": datetime(2024, 3, 1, 10, 0),
        "last_watched_at": datetime(2024, 3, 1, 10, 5),
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def chapter_row(**overrides):
    values = {
        "student_id": uuid4(),
        "course_id": uuid4(),
        "chapter_id": uuid4(),
        "is_completed": True,
        "completed_at": datetime(2024, 3, 2, 9, 0),
        "last_video_watched": 2,
        "manually_completed": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class TestPreparedStatements:
    """Tests for statement preparation."""

    def test_statements_use_keyspace(self, mock_session, progress_store):
        """Every statement targets the configured keyspace."""
        statements = [call.args[0] for call in mock_session.prepare.call_args_list]
        assert statements
        assert all("test_keyspace." in cql for cql in statements)

    def test_percent_update_is_conditional(self, mock_session, progress_store):
        """Raising the percent is guarded by a lightweight transaction."""
        statements = [call.args[0] for call in mock_session.prepare.call_args_list]
        assert any("IF watched_percent < ?" in cql for cql in statements)
        assert any("IF NOT EXISTS" in cql for cql in statements)


class TestVideoProgress:
    """Tests for video progress access."""

    @pytest.mark.asyncio
    async def test_get_video_progress(self, mock_session, progress_store):
        """A row is mapped to a UTC-aware VideoProgress."""
        row = video_row()
        mock_session.aexecute.return_value = Mock(one=Mock(return_value=row))

        progress = await progress_store.get_video_progress(
            row.student_id, row.chapter_id, row.video_id
        )

        assert progress.watched_percent == 45
        assert progress.last_watched_at.tzinfo is UTC
        assert progress.is_completed is False

    @pytest.mark.asyncio
    async def test_get_video_progress_missing(self, mock_session, progress_store):
        """No row returns None."""
        mock_session.aexecute.return_value = Mock(one=Mock(return_value=None))

        progress = await progress_store.get_video_progress(uuid4(), uuid4(), uuid4())

        assert progress is None

    @pytest.mark.asyncio
    async def test_get_chapter_video_progress(self, mock_session, progress_store):
        """All rows of the chapter partition are returned."""
        mock_session.aexecute.return_value = [
            video_row(watched_percent=100),
            video_row(watched_percent=None),
        ]

        progress = await progress_store.get_chapter_video_progress(uuid4(), uuid4())

        assert [p.watched_percent for p in progress] == [100, 0]
        assert progress[0].is_completed is True

    @pytest.mark.asyncio
    async def test_create_reports_was_applied(self, mock_session, progress_store):
        """Insert returns False when the record already existed."""
        mock_session.aexecute.return_value = Mock(was_applied=False)
        progress = VideoProgress(uuid4(), uuid4(), uuid4(), uuid4(), 30)

        assert await progress_store.create_video_progress(progress) is False

    @pytest.mark.asyncio
    async def test_raise_watched_percent_binds_condition(
        self, mock_session, progress_store
    ):
        """The new percent is bound both as value and as condition."""
        mock_session.aexecute.return_value = Mock(was_applied=True)
        student_id, chapter_id, video_id = uuid4(), uuid4(), uuid4()
        now = datetime.now(UTC)

        applied = await progress_store.raise_watched_percent(
            student_id, chapter_id, video_id, 80, now
        )

        assert applied is True
        args = mock_session.aexecute.call_args.args[1]
        assert args == [80, now, student_id, chapter_id, video_id, 80]


class TestChapterProgress:
    """Tests for chapter progress access."""

    @pytest.mark.asyncio
    async def test_get_course_chapter_progress(self, mock_session, progress_store):
        """Null booleans from Cassandra map to False."""
        mock_session.aexecute.return_value = [chapter_row()]

        (progress,) = await progress_store.get_course_chapter_progress(
            uuid4(), uuid4()
        )

        assert progress.is_completed is True
        assert progress.manually_completed is False
        assert progress.completed_at.tzinfo is UTC

    @pytest.mark.asyncio
    async def test_save_chapter_progress(self, mock_session, progress_store):
        """The whole row is written in column order."""
        progress = ChapterProgress(
            student_id=uuid4(),
            course_id=uuid4(),
            chapter_id=uuid4(),
            is_completed=False,
            last_video_watched=1,
        )

        await progress_store.save_chapter_progress(progress)

        args = mock_session.aexecute.call_args.args[1]
        assert args == [
            progress.student_id,
            progress.course_id,
            progress.chapter_id,
            False,
            None,
            1,
            False,
        ]


class TestExamResults:
    """Tests for exam pass lookups."""

    @pytest.fixture
    def exam_results(self, mock_session):
        return ExamResultsReader(session=mock_session, keyspace="test_keyspace")

    @pytest.mark.asyncio
    async def test_passed_exams_single_query(self, mock_session, exam_results):
        """All exams are checked with one IN query."""
        student_id, passed, failed = uuid4(), uuid4(), uuid4()
        mock_session.aexecute.return_value = [
            SimpleNamespace(exam_id=failed, is_passed=False),
            SimpleNamespace(exam_id=passed, is_passed=False),
            SimpleNamespace(exam_id=passed, is_passed=True),
        ]

        result = await exam_results.passed_exams(student_id, [passed, failed])

        assert result == {passed}
        mock_session.aexecute.assert_awaited_once()
        assert mock_session.aexecute.call_args.args[1] == [student_id, [passed, failed]]
        statements = [call.args[0] for call in mock_session.prepare.call_args_list]
        assert any("exam_id IN ?" in cql for cql in statements)

    @pytest.mark.asyncio
    async def test_passed_exams_without_exams(self, mock_session, exam_results):
        """No exam ids means no query."""
        assert await exam_results.passed_exams(uuid4(), []) == set()
        mock_session.aexecute.assert_not_awaited()
