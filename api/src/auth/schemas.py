"""Authenticated principal extracted from an access token."""

from uuid import UUID

from pydantic import BaseModel


class AuthenticatedUser(BaseModel):
    """Claims of a verified access token."""

    id: UUID
    email: str | None = None
    role: str
