"""Domain errors raised by the learning engine.

Three families reach the API boundary as distinct messages:
- Validation: malformed heartbeat input
- NotFound: course/chapter/video/exam missing or not under its claimed parent
- Authorization: locked content or missing enrollment
"""


class LearningError(Exception):
    """Base learning engine error."""

    def __init__(self, message: str, code: str = "learning_error"):
        self.message = message
        self.code = code
        super().__init__(message)


# ==============================================================================
# Validation
# ==============================================================================


class ValidationError(LearningError):
    """Request values outside their allowed range."""

    def __init__(self, message: str = "Invalid time values provided"):
        super().__init__(message, "validation_error")


# ==============================================================================
# Not Found
# ==============================================================================


class NotFoundError(LearningError):
    """Base for missing or mismatched entities."""

    def __init__(self, message: str, code: str = "not_found"):
        super().__init__(message, code)


class CourseNotFoundError(NotFoundError):
    """Course does not exist."""

    def __init__(self, message: str = "Course not found"):
        super().__init__(message, "course_not_found")


class ChapterNotFoundError(NotFoundError):
    """Chapter does not exist in the given course."""

    def __init__(self, message: str = "Chapter not found in this course"):
        super().__init__(message, "chapter_not_found")


class VideoNotFoundError(NotFoundError):
    """Video does not exist in the given chapter."""

    def __init__(self, message: str = "Video not found in this chapter"):
        super().__init__(message, "video_not_found")


class ExamNotFoundError(NotFoundError):
    """Exam does not exist in the given chapter."""

    def __init__(self, message: str = "Exam not found in this chapter"):
        super().__init__(message, "exam_not_found")


# ==============================================================================
# Authorization
# ==============================================================================


class AuthorizationError(LearningError):
    """Base for access denials."""

    def __init__(self, message: str, code: str = "forbidden"):
        super().__init__(message, code)


class NotEnrolledError(AuthorizationError):
    """Student has no active enrollment in the course."""

    def __init__(self, message: str = "You are not enrolled in this course"):
        super().__init__(message, "not_enrolled")


class PreviousVideoIncompleteError(AuthorizationError):
    """Heartbeat for a video whose predecessor is not fully watched."""

    def __init__(self, message: str = "Complete previous video to access this content"):
        super().__init__(message, "previous_video_incomplete")


class ContentLockedError(AuthorizationError):
    """Chapter, exam or action not available yet."""

    def __init__(self, message: str = "This content is locked"):
        super().__init__(message, "content_locked")
