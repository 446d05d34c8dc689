"""
Tests for Google Calendar scheduling with a mocked HTTP transport.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timedelta

import httpx
import pytest

from app.core.errors import CalendarAuthorizationRequired, IntegrationError, ValidationError
from app.integrations import google_calendar
from app.integrations.google_calendar import GoogleCalendarClient, schedule_task
from app.models.base import utcnow
from app.models.task import Task
from app.models.user import User


class GoogleStub:
    """Records requests and answers like the token and events endpoints."""

    def __init__(self, event_status: int = 200):
        self.requests: list[httpx.Request] = []
        self.event_status = event_status

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "oauth2.googleapis.com":
            return httpx.Response(200, json={"access_token": "fresh-token", "expires_in": 3600})
        if self.event_status != 200:
            return httpx.Response(self.event_status, json={"error": "boom"})
        return httpx.Response(200, json={"id": "evt-1", "htmlLink": "https://calendar.example/evt-1"})

    def client(self) -> GoogleCalendarClient:
        return GoogleCalendarClient(transport=httpx.MockTransport(self))


class TestBuildTaskEvent:
    def test_due_date_sent_as_utc_in_any_zone(self):
        task = Task(org_id=uuid.uuid4(), created_by=uuid.uuid4(), title="Standup", due_date=datetime(2030, 5, 1, 9, 0))

        event = google_calendar.build_task_event(task, "Asia/Kolkata")

        assert event["start"] == {"dateTime": "2030-05-01T09:00:00+00:00", "timeZone": "Asia/Kolkata"}
        assert event["end"]["dateTime"] == "2030-05-01T10:00:00+00:00"


@pytest.fixture
async def scheduled(db, seed):
    owner = await seed.user(google_refresh_token="refresh-1")
    org = await seed.org(owner)
    async with db() as session:
        task = Task(
            org_id=org.id,
            created_by=owner.id,
            title="Quarterly review",
            description="Bring numbers",
            due_date=datetime(2030, 5, 1, 9, 0),
        )
        session.add(task)
        await session.commit()
    return owner, org, task


class TestScheduleTask:
    @pytest.mark.asyncio
    async def test_refreshes_stale_token_then_inserts(self, db, scheduled):
        owner, _, task = scheduled
        stub = GoogleStub()

        async with db() as session:
            user = await session.get(User, owner.id)
            event = await schedule_task(session, user, task, client=stub.client())
            await session.commit()

        assert event["id"] == "evt-1"
        token_call, event_call = stub.requests
        assert token_call.url.host == "oauth2.googleapis.com"
        assert event_call.headers["Authorization"] == "Bearer fresh-token"
        body = json.loads(event_call.content)
        assert body["summary"] == "Quarterly review"
        assert body["start"]["dateTime"] == "2030-05-01T09:00:00+00:00"
        assert body["end"]["dateTime"] == "2030-05-01T10:00:00+00:00"

        async with db() as session:
            stored = await session.get(User, owner.id)
        assert stored.google_access_token == "fresh-token"

    @pytest.mark.asyncio
    async def test_fresh_token_skips_refresh(self, db, scheduled):
        owner, _, task = scheduled
        stub = GoogleStub()

        async with db() as session:
            user = await session.get(User, owner.id)
            user.google_access_token = "still-good"
            user.google_token_expiry = utcnow() + timedelta(hours=1)
            await schedule_task(session, user, task, client=stub.client())

        assert len(stub.requests) == 1
        assert stub.requests[0].headers["Authorization"] == "Bearer still-good"

    @pytest.mark.asyncio
    async def test_requires_consent(self, db, seed, scheduled):
        _, _, task = scheduled
        unlinked = await seed.user()

        async with db() as session:
            with pytest.raises(CalendarAuthorizationRequired) as exc_info:
                await schedule_task(session, unlinked, task, client=GoogleStub().client())

        assert exc_info.value.extra["authUrl"].startswith(google_calendar.AUTH_ENDPOINT)

    @pytest.mark.asyncio
    async def test_task_without_due_date(self, db, scheduled):
        owner, _, task = scheduled
        task.due_date = None
        async with db() as session:
            user = await session.get(User, owner.id)
            with pytest.raises(ValidationError):
                await schedule_task(session, user, task, client=GoogleStub().client())

    @pytest.mark.asyncio
    async def test_google_failure_is_integration_error(self, db, scheduled):
        owner, _, task = scheduled
        async with db() as session:
            user = await session.get(User, owner.id)
            with pytest.raises(IntegrationError):
                await schedule_task(session, user, task, client=GoogleStub(event_status=500).client())


class TestCalendarEndpoints:
    @pytest.mark.asyncio
    async def test_schedule_without_consent_returns_auth_url(self, client, seed, scheduled, auth_headers):
        _, org, task = scheduled
        member = await seed.user()
        await seed.member(member, org)

        resp = await client.post(f"/api/v1/tasks/{task.id}/schedule", headers=auth_headers(member))

        assert resp.status_code == 401
        error = resp.json()["error"]
        assert error["code"] == "CALENDAR_AUTHORIZATION_REQUIRED"
        assert error["authUrl"]

    @pytest.mark.asyncio
    async def test_schedule_by_outsider(self, client, seed, scheduled, auth_headers):
        _, _, task = scheduled
        outsider = await seed.user()
        resp = await client.post(f"/api/v1/tasks/{task.id}/schedule", headers=auth_headers(outsider))
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_oauth_callback_stores_tokens(self, client, db, seed, monkeypatch):
        user = await seed.user()

        async def fake_exchange(self, code):
            assert code == "auth-code"
            return {"access_token": "a-1", "refresh_token": "r-1", "expires_in": 3600}

        monkeypatch.setattr(GoogleCalendarClient, "exchange_code", fake_exchange)
        state = google_calendar.encode_oauth_state(user.id)

        resp = await client.get("/auth/google/callback", params={"code": "auth-code", "state": state})

        assert resp.status_code == 302
        assert resp.headers["location"].endswith("/user/dashboard")
        async with db() as session:
            stored = await session.get(User, user.id)
        assert stored.google_refresh_token == "r-1"
        assert stored.google_access_token == "a-1"

    @pytest.mark.asyncio
    async def test_oauth_callback_rejects_bad_state(self, client):
        resp = await client.get("/auth/google/callback", params={"code": "x", "state": "forged"})
        assert resp.status_code == 422
