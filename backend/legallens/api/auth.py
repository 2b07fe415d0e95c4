"""
Auth API Router

GET  /api/auth/me        → profile; mirrors the token's identity into users
PUT  /api/auth/profile   → update display name / photo URL
POST /api/auth/logout    → acknowledgement only

Sign-up and sign-in happen in the Firebase client SDK; the backend only
ever sees verified ID tokens. ID tokens are stateless, so logout has
nothing to revoke server-side.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter

from legallens.auth.dependencies import CurrentUser, Users
from legallens.core.errors import ErrorCode, NotFoundError, ValidationError
from legallens.schemas.documents import ErrorResponse, MessageResponse
from legallens.schemas.users import ProfileUpdateRequest, UserEnvelope, UserProfile

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.get(
    "/me",
    response_model=UserEnvelope,
    summary="Current user profile",
    responses={401: {"model": ErrorResponse}},
)
async def me(user: CurrentUser, users: Users) -> UserEnvelope:
    record = await users.mirror_sign_in(
        uid=user.uid,
        email=user.email,
        display_name=user.display_name,
        photo_url=user.picture,
    )
    await users.commit()
    return UserEnvelope(user=UserProfile.from_model(record, email_verified=user.email_verified))


@router.put(
    "/profile",
    response_model=UserEnvelope,
    summary="Update profile",
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_profile(body: ProfileUpdateRequest, user: CurrentUser, users: Users) -> UserEnvelope:
    if body.display_name is None and body.photo_url is None:
        raise ValidationError("No updatable fields supplied")

    record = await users.update_profile(user.uid, body.display_name, body.photo_url)
    if record is None:
        raise NotFoundError("User not found", code=ErrorCode.USER_NOT_FOUND)
    await users.commit()
    logger.info("Profile updated | user=%s", user.uid)
    return UserEnvelope(user=UserProfile.from_model(record, email_verified=user.email_verified))


@router.post("/logout", response_model=MessageResponse, summary="Log out")
async def logout(user: CurrentUser) -> MessageResponse:
    logger.info("Logout | user=%s", user.uid)
    return MessageResponse(message="Logged out successfully")
