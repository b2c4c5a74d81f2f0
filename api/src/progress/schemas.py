"""Pydantic schemas for the learning API.

Request and response models for:
- Enrolled course list
- Course detail (year-grouped chapters with lock state)
- Chapter detail (videos, exam, prerequisites)
- Video heartbeats
- Exam detail and exam-result hook
- Manual chapter completion

Responses are serialized with camelCase aliases.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializerFunctionWrapHandler,
    model_serializer,
)
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model with camelCase aliases, populated by field name."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ==============================================================================
# Shared Pieces
# ==============================================================================


class CourseHeader(CamelModel):
    id: UUID
    title: str
    description: str | None = None
    duration_years: int = 1
    cover_image_url: str | None = None


class ChapterHeader(CamelModel):
    id: UUID
    title: str
    description: str | None = None
    order_index: int
    course_year: int
    is_locked: bool
    lock_reason: str | None = None


class VideoProgressSummary(CamelModel):
    watched_percent: int = 0
    is_completed: bool = False


class VideoItem(CamelModel):
    """Video entry of a chapter; the asset reference is withheld when locked."""

    id: UUID
    title: str
    description: str | None = None
    duration_seconds: int
    order_index: int
    asset_url: str | None = None
    is_locked: bool
    lock_reason: str | None = None
    progress: VideoProgressSummary

    @model_serializer(mode="wrap")
    def _withhold_locked_asset(
        self, handler: SerializerFunctionWrapHandler
    ) -> dict[str, Any]:
        data = handler(self)
        if self.is_locked:
            data.pop("assetUrl", None)
            data.pop("asset_url", None)
        return data


class ExamItem(CamelModel):
    id: UUID
    title: str
    description: str | None = None
    passing_score: int
    time_limit_minutes: int | None = None
    is_locked: bool
    lock_reason: str | None = None


# ==============================================================================
# Enrolled Courses
# ==============================================================================


class EnrolledCourseResponse(CamelModel):
    """Course card in the student's learning list."""

    course: CourseHeader
    enrolled_at: datetime | None = None
    total_chapters: int
    completed_chapters: int
    total_videos: int
    watched_videos: int
    overall_progress: int = Field(description="0-100 percentage")


class EnrolledCourseListResponse(CamelModel):
    items: list[EnrolledCourseResponse]
    total: int


# ==============================================================================
# Course Detail
# ==============================================================================


class ChapterSummary(CamelModel):
    """Chapter row of the course detail."""

    id: UUID
    title: str
    description: str | None = None
    order_index: int
    course_year: int
    is_locked: bool
    lock_reason: str | None = None
    is_completed: bool
    total_videos: int
    videos_completed: int
    has_exam: bool
    exam_passed: bool


class YearGroup(CamelModel):
    year: int
    chapters: list[ChapterSummary]
    total_chapters: int
    unlocked_chapters: int
    completed_chapters: int


class CourseProgressSummary(CamelModel):
    overall_progress: int
    total_chapters: int
    completed_chapters: int
    unlocked_chapters: int


class LockingRules(CamelModel):
    description: str = "Chapters unlock progressively"
    rules: list[str] = Field(
        default_factory=lambda: [
            "First chapter is always unlocked",
            "Complete all videos and exams in a chapter to unlock the next chapter",
            "Chapters within each year follow sequential unlocking",
        ]
    )


class CourseDetailResponse(CamelModel):
    course: CourseHeader
    year_structure: list[YearGroup]
    progress: CourseProgressSummary
    locking_rules: LockingRules = Field(default_factory=LockingRules)


# ==============================================================================
# Chapter Detail
# ==============================================================================


class ChapterVideoProgress(CamelModel):
    videos_completed: int
    total_videos: int
    all_videos_completed: bool
    can_take_exam: bool


class RequiredChapterProgress(CamelModel):
    videos_completed: int
    total_videos: int
    exam_passed: bool


class RequiredChapter(CamelModel):
    id: UUID
    title: str
    progress: RequiredChapterProgress


class Prerequisites(CamelModel):
    previous_chapter_completed: bool
    can_access: bool
    required_chapter: RequiredChapter | None = None


class ChapterDetailResponse(CamelModel):
    """Chapter detail; content is null for a locked chapter."""

    course: CourseHeader
    chapter: ChapterHeader
    videos: list[VideoItem] | None = None
    exam: ExamItem | None = None
    progress: ChapterVideoProgress | None = None
    prerequisites: Prerequisites


# ==============================================================================
# Heartbeat
# ==============================================================================


class HeartbeatRequest(CamelModel):
    """Playback telemetry sent periodically by the player."""

    current_time: float = Field(
        ..., ge=0, allow_inf_nan=False, description="Current position in seconds"
    )
    duration: float = Field(
        ..., gt=0, allow_inf_nan=False, description="Video duration in seconds"
    )
    watched_percent: float | None = Field(
        default=None,
        allow_inf_nan=False,
        description="Client-computed watched percent",
    )


class NextVideoInfo(CamelModel):
    id: UUID
    title: str
    order_index: int


class HeartbeatChapterProgress(CamelModel):
    videos_completed: int
    total_videos: int
    all_videos_completed: bool
    exam_unlocked: bool


class HeartbeatMilestones(CamelModel):
    just_completed: bool
    chapter_completed: bool


class HeartbeatResponse(CamelModel):
    video_id: UUID
    watched_percent: int
    is_completed: bool
    next_video_unlocked: bool
    next_video: NextVideoInfo | None = None
    chapter_progress: HeartbeatChapterProgress
    should_update_ui: bool
    milestones: HeartbeatMilestones


# ==============================================================================
# Chapter Completion / Exam
# ==============================================================================


class ChapterCompletionResponse(CamelModel):
    """Recomputed chapter state after a manual mark or an exam result."""

    chapter_id: UUID
    is_completed: bool
    completed_at: datetime | None = None
    videos_completed: int
    total_videos: int
    all_videos_completed: bool
    exam_passed: bool
    next_chapter_unlocked: bool = False
    next_chapter: ChapterHeader | None = None


class ExamAttemptItem(CamelModel):
    id: UUID
    score: int | None = None
    is_passed: bool
    started_at: datetime | None = None
    ended_at: datetime | None = None


class ExamDetailResponse(CamelModel):
    chapter: ChapterHeader
    exam: ExamItem
    attempts: list[ExamAttemptItem] = Field(default_factory=list)
    has_passed: bool = False
    best_score: int | None = None
    ongoing_attempt: ExamAttemptItem | None = None
    can_start_exam: bool = False
