from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class User(BaseModel):
    id: str
    email: str | None = None
    role: str | None = None
    created_at: str | None = None
    user_metadata: dict[str, Any] = Field(default_factory=dict)


class Session(BaseModel):
    """Bearer credential issued by the auth provider at sign-in."""
    access_token: str
    token_type: str = 'bearer'
    refresh_token: str | None = None
    expires_in: int | None = None
    expires_at: int | None = None  # epoch seconds
    user: User
