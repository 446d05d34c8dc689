"""
Authentication endpoints.

- Email/password registration & login (bearer JWT)
- Profile read/update
- Google Calendar consent (authorization URL + OAuth callback)
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import create_access_token, get_current_user
from app.core.config import get_settings
from app.core.database import get_session
from app.integrations import google_calendar
from app.models.user import User
from app.services import users as user_service
from taskmate_shared.schemas.users import (
    AuthResponse,
    AuthUrlResponse,
    LoginRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    UserRead,
)

log = structlog.get_logger()
settings = get_settings()
router = APIRouter()


# ---------------------------------------------------------------------------
# Email/Password
# ---------------------------------------------------------------------------


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    body: RegisterRequest,
    session: AsyncSession = Depends(get_session),
):
    """Register a new user. New users have no organization until they create or join one."""
    user = await user_service.register_user(body, session)
    await session.commit()
    await session.refresh(user)
    return AuthResponse(
        user=await user_service.build_user_read(user, session),
        token=create_access_token(user.id),
        needs_onboarding=True,
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    session: AsyncSession = Depends(get_session),
):
    """Authenticate with email/password and receive a bearer token."""
    user = await user_service.authenticate(body.email, body.password, session)
    user_read = await user_service.build_user_read(user, session)
    return AuthResponse(
        user=user_read,
        token=create_access_token(user.id),
        needs_onboarding=not user_read.memberships,
    )


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@router.get("/profile", response_model=UserRead)
async def get_profile(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await user_service.build_user_read(user, session)


@router.put("/profile", response_model=AuthResponse)
async def update_profile(
    body: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    user = await user_service.update_profile(user, body, session)
    await session.commit()
    await session.refresh(user)
    user_read = await user_service.build_user_read(user, session)
    return AuthResponse(
        user=user_read,
        token=create_access_token(user.id),
        needs_onboarding=not user_read.memberships,
    )


# ---------------------------------------------------------------------------
# Google Calendar consent
# ---------------------------------------------------------------------------


@router.get("/google", response_model=AuthUrlResponse)
async def google_auth(user: User = Depends(get_current_user)):
    """Authorization URL for Google Calendar access; the client redirects to it."""
    return AuthUrlResponse(auth_url=google_calendar.build_authorization_url(user.id))


@router.get("/google/callback")
async def google_auth_callback(
    code: str = Query(min_length=1),
    state: str = Query(min_length=1),
    session: AsyncSession = Depends(get_session),
):
    """Exchange the authorization code, store the tokens, and send the user back to the app."""
    user_id = google_calendar.decode_oauth_state(state)
    tokens = await google_calendar.GoogleCalendarClient().exchange_code(code)
    await user_service.store_google_tokens(user_id, tokens, session)
    await session.commit()
    return RedirectResponse(f"{settings.client_url.rstrip('/')}/user/dashboard", status_code=302)
