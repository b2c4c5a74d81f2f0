"""Progressive unlocking and progress aggregation.

Provides:
- Progress store (video watch percent, chapter completion)
- Unlock resolver (chapter, video and exam lock verdicts)
- Video heartbeat processor
- Chapter completion aggregator
- Learning service and API routes
"""

from .aggregator import (
    ChapterCompletion,
    ChapterCompletionAggregator,
    EmptyChapterPolicy,
)
from .heartbeat import HeartbeatProcessor, HeartbeatResult, compute_watched_percent
from .models import PROGRESS_TABLES_CQL, ChapterProgress, VideoProgress
from .repository import ProgressStore
from .service import LearningService
from .unlocking import (
    LockDecision,
    ProgressSnapshot,
    resolve_chapter_locks,
    resolve_exam_lock,
    resolve_video_locks,
)


__all__ = [
    "PROGRESS_TABLES_CQL",
    "ChapterCompletion",
    "ChapterCompletionAggregator",
    "ChapterProgress",
    "EmptyChapterPolicy",
    "HeartbeatProcessor",
    "HeartbeatResult",
    "LearningService",
    "LockDecision",
    "ProgressSnapshot",
    "ProgressStore",
    "VideoProgress",
    "compute_watched_percent",
    "resolve_chapter_locks",
    "resolve_exam_lock",
    "resolve_video_locks",
]
