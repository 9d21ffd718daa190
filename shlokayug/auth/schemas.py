"""Pydantic schemas for authenticated users."""

from uuid import UUID

from pydantic import BaseModel


class UserResponse(BaseModel):
    """User identity taken from the access token."""

    id: UUID
    email: str = ""
    role: str = "user"
