"""
Google Calendar: OAuth consent, token exchange/refresh, and event insert.

Only what is needed to put one task on the caller's primary calendar:
a one-hour event starting at the task's due date.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx
import jwt
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import create_access_token, decode_access_token
from app.core.config import get_settings
from app.core.errors import CalendarAuthorizationRequired, IntegrationError, ValidationError
from app.models.base import utcnow
from app.models.task import Task
from app.models.user import User

log = structlog.get_logger()

AUTH_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
EVENTS_ENDPOINT = "https://www.googleapis.com/calendar/v3/calendars/primary/events"
CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar.events"
OAUTH_STATE_PURPOSE = "google-oauth"
OAUTH_STATE_TTL = timedelta(minutes=10)
EVENT_DURATION = timedelta(hours=1)


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------


def encode_oauth_state(user_id: uuid.UUID) -> str:
    """Signed, short-lived state binding the callback to the requesting user."""
    return create_access_token(user_id, expires_delta=OAUTH_STATE_TTL, purpose=OAUTH_STATE_PURPOSE)


def decode_oauth_state(state: str) -> uuid.UUID:
    try:
        payload = decode_access_token(state, purpose=OAUTH_STATE_PURPOSE)
        return uuid.UUID(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError):
        raise ValidationError("Invalid or expired OAuth state")


def build_authorization_url(user_id: uuid.UUID) -> str:
    settings = get_settings()
    params = {
        "client_id": settings.google_client_id,
        "redirect_uri": settings.google_redirect_uri,
        "response_type": "code",
        "scope": CALENDAR_SCOPE,
        "access_type": "offline",
        "prompt": "consent",
        "state": encode_oauth_state(user_id),
    }
    return f"{AUTH_ENDPOINT}?{urlencode(params)}"


def build_task_event(task: Task, timezone_name: str) -> dict[str, Any]:
    if task.due_date is None:
        raise ValidationError("Task has no due date to schedule")
    # Stored due dates are naive UTC; the offset keeps Google from reading them in `timezone_name`.
    start = task.due_date.replace(tzinfo=timezone.utc)
    end = start + EVENT_DURATION
    return {
        "summary": task.title,
        "description": task.description or "",
        "start": {"dateTime": start.isoformat(), "timeZone": timezone_name},
        "end": {"dateTime": end.isoformat(), "timeZone": timezone_name},
    }


class GoogleCalendarClient:
    """Thin async client over the Google OAuth and Calendar REST endpoints."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        settings = get_settings()
        self._client_id = settings.google_client_id
        self._client_secret = settings.google_client_secret
        self._redirect_uri = settings.google_redirect_uri
        self._timeout = settings.google_request_timeout_seconds
        self._transport = transport

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=httpx.Timeout(self._timeout), transport=self._transport)

    async def _post(self, url: str, **kwargs) -> dict:
        try:
            async with self._http() as client:
                resp = await client.post(url, **kwargs)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as exc:
            log.error("calendar.http_error", url=url, status=exc.response.status_code)
            raise IntegrationError(
                f"Google API request failed ({exc.response.status_code})"
            ) from exc
        except httpx.HTTPError as exc:
            log.error("calendar.unreachable", url=url, error=str(exc))
            raise IntegrationError("Google API is unreachable") from exc

    async def exchange_code(self, code: str) -> dict:
        return await self._post(
            TOKEN_ENDPOINT,
            data={
                "code": code,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "redirect_uri": self._redirect_uri,
                "grant_type": "authorization_code",
            },
        )

    async def refresh_access_token(self, refresh_token: str) -> dict:
        return await self._post(
            TOKEN_ENDPOINT,
            data={
                "refresh_token": refresh_token,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "grant_type": "refresh_token",
            },
        )

    async def insert_event(self, access_token: str, event: dict) -> dict:
        return await self._post(
            EVENTS_ENDPOINT,
            json=event,
            headers={"Authorization": f"Bearer {access_token}"},
        )


def _token_is_fresh(user: User, now: datetime) -> bool:
    return bool(
        user.google_access_token
        and user.google_token_expiry
        and user.google_token_expiry > now + timedelta(minutes=1)
    )


async def schedule_task(
    session: AsyncSession,
    user: User,
    task: Task,
    client: GoogleCalendarClient | None = None,
) -> dict:
    """Insert a calendar event for the task; returns the created event."""
    if not user.google_refresh_token:
        raise CalendarAuthorizationRequired(authUrl=build_authorization_url(user.id))

    event = build_task_event(task, get_settings().google_calendar_timezone)
    client = client or GoogleCalendarClient()

    now = utcnow()
    if not _token_is_fresh(user, now):
        tokens = await client.refresh_access_token(user.google_refresh_token)
        if not tokens.get("access_token"):
            raise IntegrationError("Google token refresh returned no access token")
        user.google_access_token = tokens["access_token"]
        expires_in = tokens.get("expires_in")
        user.google_token_expiry = now + timedelta(seconds=int(expires_in)) if expires_in else None
        session.add(user)
        await session.flush()
        log.info("calendar.token_refreshed", user_id=str(user.id))

    created = await client.insert_event(user.google_access_token, event)
    log.info(
        "calendar.event_created",
        user_id=str(user.id),
        task_id=str(task.id),
        event_id=created.get("id"),
    )
    return created
