"""Tests for video heartbeat processing."""

import math
from uuid import uuid4

import pytest

from src.core.exceptions import (
    ContentLockedError,
    PreviousVideoIncompleteError,
    ValidationError,
    VideoNotFoundError,
)
from src.progress.heartbeat import compute_watched_percent, round_half_up
from src.progress.models import VideoProgress

from fakes import InMemoryProgressStore


DURATION = 600


class TestComputeWatchedPercent:
    """Tests for the percent computation and client reconciliation."""

    def test_computed_from_position(self):
        """Percent is current_time / duration * 100, rounded."""
        assert compute_watched_percent(360, DURATION) == 60
        assert compute_watched_percent(0, DURATION) == 0
        assert compute_watched_percent(DURATION, DURATION) == 100

    def test_rounds_half_up(self):
        """12.5 rounds to 13, not to the even neighbour."""
        assert round_half_up(12.5) == 13
        assert round_half_up(0.5) == 1
        assert compute_watched_percent(75, DURATION) == 13

    def test_near_end_rounds_to_complete(self):
        """99.98 percent rounds to 100."""
        assert compute_watched_percent(599.9, DURATION) == 100

    def test_reported_value_wins_outside_tolerance(self):
        """A reported 95 against a computed 70 uses 95."""
        assert compute_watched_percent(420, DURATION, reported_percent=95) == 95

    def test_computed_value_wins_inside_tolerance(self):
        """A reported value within 5 points is ignored."""
        assert compute_watched_percent(420, DURATION, reported_percent=74) == 70
        assert compute_watched_percent(420, DURATION, reported_percent=75) == 70
        assert compute_watched_percent(420, DURATION, reported_percent=76) == 76

    def test_tolerance_uses_reported_value_as_sent(self):
        """75.4 is 5.4 points from a computed 70, so it wins and rounds to 75."""
        assert compute_watched_percent(420, DURATION, reported_percent=75.4) == 75
        assert compute_watched_percent(420, DURATION, reported_percent=64.6) == 65
        assert compute_watched_percent(420, DURATION, reported_percent=74.9) == 70

    def test_reported_value_is_clamped(self):
        """Out-of-range client values are clamped to 0-100."""
        assert compute_watched_percent(420, DURATION, reported_percent=150) == 100
        assert compute_watched_percent(420, DURATION, reported_percent=-20) == 0

    def test_tolerance_is_configurable(self):
        """A wider tolerance keeps the computed value."""
        assert (
            compute_watched_percent(420, DURATION, reported_percent=95, tolerance=30)
            == 70
        )


class TestRecordHeartbeat:
    """Tests for HeartbeatProcessor.record_heartbeat."""

    @pytest.fixture
    def chapters(self, structure):
        return structure.chapters

    async def beat(self, service, student_id, chapter, video, current_time, **kwargs):
        return await service.heartbeats.record_heartbeat(
            student_id=student_id,
            course_id=chapter.course_id,
            chapter_id=chapter.id,
            video_id=video.id,
            current_time=current_time,
            duration=DURATION,
            **kwargs,
        )

    @pytest.mark.asyncio
    async def test_partial_then_full_watch(self, service, store, student_id, chapters):
        """Watching to 60 then 100 percent completes the video and unlocks the next."""
        chapter = chapters[0]
        v1, v2 = chapter.videos

        first = await self.beat(service, student_id, chapter, v1, 360)
        assert first.watched_percent == 60
        assert first.is_completed is False
        assert first.was_just_completed is False
        assert first.next_video is None
        assert first.should_update_ui is True

        detail = await service.get_chapter_detail(
            student_id, chapter.course_id, chapter.id
        )
        assert [v.is_locked for v in detail.videos] == [False, True]

        second = await self.beat(service, student_id, chapter, v1, DURATION)
        assert second.watched_percent == 100
        assert second.is_completed is True
        assert second.was_just_completed is True
        assert second.next_video is v2
        assert second.next_video_unlocked is True
        assert store.videos[(student_id, chapter.id, v1.id)].watched_percent == 100

    @pytest.mark.asyncio
    async def test_percent_never_decreases(self, service, store, student_id, chapters):
        """Seeking backwards keeps the stored maximum."""
        chapter = chapters[0]
        video = chapter.videos[0]

        await self.beat(service, student_id, chapter, video, 360)
        result = await self.beat(service, student_id, chapter, video, 60)

        assert result.watched_percent == 60
        assert result.should_update_ui is False
        assert store.videos[(student_id, chapter.id, video.id)].watched_percent == 60

    @pytest.mark.asyncio
    async def test_replay_after_completion(self, service, student_id, chapters):
        """A completed video stays completed and is not reported as new."""
        chapter = chapters[0]
        video = chapter.videos[0]

        await self.beat(service, student_id, chapter, video, DURATION)
        replay = await self.beat(service, student_id, chapter, video, 30)

        assert replay.watched_percent == 100
        assert replay.is_completed is True
        assert replay.was_just_completed is False
        assert replay.next_video is None

    @pytest.mark.asyncio
    async def test_milestone_crossings_update_ui(self, service, student_id, chapters):
        """The UI refreshes only when a 25 percent band is crossed."""
        chapter = chapters[0]
        video = chapter.videos[0]

        first = await self.beat(service, student_id, chapter, video, 60)
        assert first.should_update_ui is True
        same_band = await self.beat(service, student_id, chapter, video, 120)
        next_band = await self.beat(service, student_id, chapter, video, 180)

        assert same_band.watched_percent == 20
        assert same_band.should_update_ui is False
        assert next_band.watched_percent == 30
        assert next_band.should_update_ui is True

    @pytest.mark.asyncio
    async def test_reported_percent_outside_tolerance(
        self, service, student_id, chapters
    ):
        """The client-reported value is stored when it deviates by more than 5."""
        chapter = chapters[0]
        result = await self.beat(
            service,
            student_id,
            chapter,
            chapter.videos[0],
            420,
            reported_watched_percent=95,
        )
        assert result.watched_percent == 95

    @pytest.mark.asyncio
    async def test_previous_video_incomplete(
        self, service, store, student_id, chapters
    ):
        """A heartbeat on video 2 before video 1 is complete is rejected."""
        chapter = chapters[0]
        v1, v2 = chapter.videos
        await self.beat(service, student_id, chapter, v1, 300)

        with pytest.raises(PreviousVideoIncompleteError):
            await self.beat(service, student_id, chapter, v2, 300)

        assert (student_id, chapter.id, v2.id) not in store.videos
        assert store.videos[(student_id, chapter.id, v1.id)].watched_percent == 50

    @pytest.mark.asyncio
    async def test_locked_chapter_rejected(self, service, store, student_id, chapters):
        """Videos of a locked chapter cannot record progress."""
        chapter = chapters[1]

        with pytest.raises(ContentLockedError) as exc_info:
            await self.beat(service, student_id, chapter, chapter.videos[0], 300)

        assert "Foundations" in exc_info.value.message
        assert store.videos == {}

    @pytest.mark.asyncio
    async def test_unknown_video(self, service, student_id, chapters):
        """A video id outside the chapter is a not-found error."""
        chapter = chapters[0]
        foreign = chapters[1].videos[0]

        with pytest.raises(VideoNotFoundError):
            await self.beat(service, student_id, chapter, foreign, 300)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("current_time", "duration"),
        [(10, 0), (10, -5), (-1, DURATION), (DURATION + 1, DURATION)],
    )
    async def test_invalid_time_values(
        self, service, store, student_id, chapters, current_time, duration
    ):
        """Bad time values fail validation before anything is written."""
        chapter = chapters[0]

        with pytest.raises(ValidationError):
            await service.heartbeats.record_heartbeat(
                student_id=student_id,
                course_id=chapter.course_id,
                chapter_id=chapter.id,
                video_id=chapter.videos[0].id,
                current_time=current_time,
                duration=duration,
            )

        assert store.videos == {}
        assert store.chapter_saves == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("current_time", "duration", "reported"),
        [
            (10, DURATION, math.nan),
            (10, DURATION, math.inf),
            (math.inf, math.inf, None),
            (math.nan, DURATION, None),
            (10, math.nan, None),
        ],
    )
    async def test_non_finite_values(
        self, service, store, student_id, chapters, current_time, duration, reported
    ):
        """NaN and infinity are validation errors, not crashes."""
        chapter = chapters[0]

        with pytest.raises(ValidationError):
            await service.heartbeats.record_heartbeat(
                student_id=student_id,
                course_id=chapter.course_id,
                chapter_id=chapter.id,
                video_id=chapter.videos[0].id,
                current_time=current_time,
                duration=duration,
                reported_watched_percent=reported,
            )

        assert store.videos == {}

    @pytest.mark.asyncio
    async def test_last_video_completes_chapter(
        self, service, store, student_id, chapters
    ):
        """Completing every video of an exam-less chapter completes the chapter."""
        chapter = chapters[0]
        v1, v2 = chapter.videos

        await self.beat(service, student_id, chapter, v1, DURATION)
        result = await self.beat(service, student_id, chapter, v2, DURATION)

        assert result.next_video is None
        assert result.chapter.is_completed is True
        assert result.chapter.became_completed is True
        assert result.chapter.videos_completed == 2
        row = store.chapters[(student_id, chapter.course_id, chapter.id)]
        assert row.is_completed is True
        assert row.completed_at is not None
        assert row.last_video_watched == v2.order_index

    @pytest.mark.asyncio
    async def test_exam_unlocked_after_last_video(
        self, service, store, student_id, chapters
    ):
        """In a chapter with an exam, finishing the videos unlocks the exam only."""
        store.complete_chapter(student_id, chapters[0])
        chapter = chapters[1]
        v1, v2 = chapter.videos

        await self.beat(service, student_id, chapter, v1, DURATION)
        result = await self.beat(service, student_id, chapter, v2, DURATION)

        assert result.chapter.exam_unlocked is True
        assert result.chapter.is_completed is False
        assert result.chapter.became_completed is False


class CreateRaceStore(InMemoryProgressStore):
    """Store where another heartbeat creates the record first."""

    def __init__(self, competing_percent: int):
        super().__init__()
        self.competing_percent = competing_percent

    async def create_video_progress(self, progress: VideoProgress) -> bool:
        key = (progress.student_id, progress.chapter_id, progress.video_id)
        self.videos[key] = VideoProgress(
            student_id=progress.student_id,
            chapter_id=progress.chapter_id,
            video_id=progress.video_id,
            course_id=progress.course_id,
            watched_percent=self.competing_percent,
        )
        return False


class TestConcurrentHeartbeats:
    """Tests for conditional-write races."""

    @pytest.mark.asyncio
    async def test_lost_create_keeps_higher_value(
        self, reader, enrollments, exam_results, settings, structure
    ):
        """Losing the insert race to a higher value reports the stored maximum."""
        from src.progress.service import LearningService

        store = CreateRaceStore(competing_percent=80)
        service = LearningService(reader, store, enrollments, exam_results, settings)
        chapter = structure.chapters[0]
        video = chapter.videos[0]
        student_id = uuid4()

        result = await service.heartbeats.record_heartbeat(
            student_id=student_id,
            course_id=chapter.course_id,
            chapter_id=chapter.id,
            video_id=video.id,
            current_time=240,
            duration=DURATION,
        )

        assert result.watched_percent == 80
        assert store.videos[(student_id, chapter.id, video.id)].watched_percent == 80

    @pytest.mark.asyncio
    async def test_lost_create_raises_lower_value(
        self, reader, enrollments, exam_results, settings, structure
    ):
        """Losing the insert race to a lower value still raises the record."""
        from src.progress.service import LearningService

        store = CreateRaceStore(competing_percent=10)
        service = LearningService(reader, store, enrollments, exam_results, settings)
        chapter = structure.chapters[0]
        video = chapter.videos[0]
        student_id = uuid4()

        result = await service.heartbeats.record_heartbeat(
            student_id=student_id,
            course_id=chapter.course_id,
            chapter_id=chapter.id,
            video_id=video.id,
            current_time=240,
            duration=DURATION,
        )

        assert result.watched_percent == 40
        assert store.videos[(student_id, chapter.id, video.id)].watched_percent == 40
