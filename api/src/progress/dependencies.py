"""FastAPI dependencies for the learning API.

Provides dependency injection for:
- Learning service
- Error translation
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from src.core.exceptions import LearningError

from .service import LearningService


async def get_learning_service(request: Request) -> LearningService:
    """Get learning service from app state."""
    app_state = request.app.state
    if not getattr(app_state, "learning_service", None):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Learning service not available",
        )
    return app_state.learning_service


# Type alias for dependency injection
LearningServiceDep = Annotated[LearningService, Depends(get_learning_service)]


def handle_learning_error(error: LearningError) -> HTTPException:
    """Convert learning errors to HTTP exceptions.

    Args:
        error: Learning error

    Returns:
        HTTPException with appropriate status code
    """
    status_map = {
        "validation_error": status.HTTP_400_BAD_REQUEST,
        "not_found": status.HTTP_404_NOT_FOUND,
        "course_not_found": status.HTTP_404_NOT_FOUND,
        "chapter_not_found": status.HTTP_404_NOT_FOUND,
        "video_not_found": status.HTTP_404_NOT_FOUND,
        "exam_not_found": status.HTTP_404_NOT_FOUND,
        "forbidden": status.HTTP_403_FORBIDDEN,
        "not_enrolled": status.HTTP_403_FORBIDDEN,
        "previous_video_incomplete": status.HTTP_403_FORBIDDEN,
        "content_locked": status.HTTP_403_FORBIDDEN,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    return HTTPException(
        status_code=status_code,
        detail=error.message,
    )
