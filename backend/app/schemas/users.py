"""Schemas related to user accounts."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, constr


class PublicUser(BaseModel):
    """Minimal public-facing user information."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    display_name: str | None = None
    avatar_url: str | None = None


class UserCreate(BaseModel):
    """Payload for registering a new account."""

    username: constr(strip_whitespace=True, to_lower=True, min_length=3, max_length=64) = Field(
        ..., description="Unique username, stored lower-cased"
    )
    password: constr(min_length=8, max_length=128) = Field(
        ..., description="Plain text password that will be hashed before storing"
    )
    display_name: constr(strip_whitespace=True, min_length=1, max_length=128) | None = Field(
        default=None, description="Optional display name to show in the UI"
    )


class UserRead(PublicUser):
    """Representation of an account returned from the API."""

    created_at: datetime
    updated_at: datetime
