"""User profile bodies for /api/auth."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from legallens.schemas.documents import CamelModel


class UserProfile(CamelModel):
    uid:            str
    email:          str
    display_name:   str | None = None
    photo_url:      str | None = Field(None, alias="photoURL")
    email_verified: bool = False
    created_at:     datetime | None = None
    last_login_at:  datetime | None = None

    @classmethod
    def from_model(cls, user, email_verified: bool = False) -> "UserProfile":
        return cls(
            uid=user.uid,
            email=user.email,
            display_name=user.display_name,
            photo_url=user.photo_url,
            email_verified=email_verified,
            created_at=user.created_at,
            last_login_at=user.last_login_at,
        )


class UserEnvelope(CamelModel):
    success: bool = True
    user:    UserProfile


class ProfileUpdateRequest(CamelModel):
    display_name: str | None = Field(None, min_length=1, max_length=100)
    photo_url:    str | None = Field(None, alias="photoURL", max_length=2048)
