"""Tests for the Google Calendar booking client and the scheduling trigger details."""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from booking.google_calendar import (
    CalendarServerError,
    GoogleCalendarClient,
    MeetingDetails,
    ResilientCalendar,
)
from booking.trigger import MeetingRequested, SchedulingTrigger
from database.models import Customer
from lead_scoring.errors import BookingFailure
from lead_scoring.qualification import DecisionMaker, QualificationProfile
from llm.resilience import CircuitBreaker, ResilientCaller


START = datetime(2025, 3, 4, 15, 30, tzinfo=timezone.utc)


@pytest.fixture
def details():
    return MeetingDetails(
        lead_id="lead-1",
        customer_id="cust-1",
        subject="Sales Consultation - Dana Reyes",
        description="Sales consultation for lead with score 60. Pain points: churn",
        start_time=START,
        end_time=START + timedelta(hours=1),
        attendee_email="dana@example.com",
        attendee_name="Dana Reyes",
    )


def calendar_client(handler, token="ya29.token"):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GoogleCalendarClient(access_token=token, client=http)


class TestEventBody:
    def test_body_shape(self, details):
        body = GoogleCalendarClient(access_token="t").build_event_body(details)

        assert body["summary"] == "Sales Consultation - Dana Reyes"
        assert body["start"] == {"dateTime": START.isoformat(), "timeZone": "UTC"}
        assert body["attendees"] == [{"email": "dana@example.com", "displayName": "Dana Reyes"}]
        assert body["reminders"] == {
            "useDefault": False,
            "overrides": [
                {"method": "email", "minutes": 1440},
                {"method": "popup", "minutes": 10},
            ],
        }
        assert body["extendedProperties"]["private"] == {
            "leadId": "lead-1",
            "customerId": "cust-1",
            "source": "lead_management_system",
        }

    def test_no_attendee_without_email(self, details):
        details.attendee_email = None
        body = GoogleCalendarClient(access_token="t").build_event_body(details)
        assert "attendees" not in body


class TestCreateEvent:
    async def test_creates_event(self, details):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "id": "evt_123",
                "hangoutLink": "https://meet.google.com/xyz",
                "htmlLink": "https://calendar.google.com/event?eid=1",
            })

        result = await calendar_client(handler).create_event(details)

        assert result.event_id == "evt_123"
        assert result.meeting_link == "https://meet.google.com/xyz"
        assert seen["url"] == "https://www.googleapis.com/calendar/v3/calendars/primary/events"
        assert seen["auth"] == "Bearer ya29.token"
        assert seen["body"]["summary"] == details.subject

    async def test_html_link_when_no_hangout(self, details):
        def handler(request):
            return httpx.Response(201, json={"id": "evt_1", "htmlLink": "https://calendar.google.com/e/1"})

        result = await calendar_client(handler).create_event(details)
        assert result.meeting_link == "https://calendar.google.com/e/1"

    async def test_missing_token(self, details):
        def handler(request):
            raise AssertionError("no request expected")

        with pytest.raises(BookingFailure, match="not configured"):
            await calendar_client(handler, token=None).create_event(details)

    async def test_client_error(self, details):
        def handler(request):
            return httpx.Response(403, json={"error": {"code": 403, "message": "Insufficient Permission"}})

        with pytest.raises(BookingFailure, match="Insufficient Permission") as excinfo:
            await calendar_client(handler).create_event(details)
        assert not isinstance(excinfo.value, CalendarServerError)

    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_server_error(self, details, status):
        def handler(request):
            return httpx.Response(status, text="upstream unavailable")

        with pytest.raises(CalendarServerError) as excinfo:
            await calendar_client(handler).create_event(details)
        assert excinfo.value.status_code == status


class TestResilientCalendar:
    def caller(self, attempts=3):
        return ResilientCaller(
            CircuitBreaker("calendar"),
            max_attempts=attempts,
            backoff_min=0,
            backoff_max=0,
            retry_on=(httpx.TransportError, CalendarServerError),
        )

    async def test_retries_server_errors(self, details):
        responses = [httpx.Response(503), httpx.Response(200, json={"id": "evt_9"})]

        def handler(request):
            return responses.pop(0)

        calendar = ResilientCalendar(calendar_client(handler), self.caller())
        result = await calendar.create_event(details)
        assert result.event_id == "evt_9"

    async def test_client_error_not_retried(self, details):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json={"error": {"message": "Invalid start time"}})

        calendar = ResilientCalendar(calendar_client(handler), self.caller())
        with pytest.raises(BookingFailure):
            await calendar.create_event(details)
        assert len(calls) == 1

    async def test_transport_error_becomes_booking_failure(self, details):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        calendar = ResilientCalendar(calendar_client(handler), self.caller(attempts=2))
        with pytest.raises(BookingFailure, match="ConnectError"):
            await calendar.create_event(details)


class TestMeetingDetails:
    def event(self, profile=None):
        return MeetingRequested(
            lead_id="lead-1",
            conversation_id="conv-1",
            customer_id="cust-1",
            attempt=1,
            lead_score=60,
            profile=profile or QualificationProfile(pain_points={"churn", "cost"}),
            requested_at=START,
        )

    def trigger(self):
        return SchedulingTrigger(calendar=None, session_factory=None)

    def test_tomorrow_for_one_hour(self):
        details = self.trigger().build_details(self.event(), Customer(id="cust-1", name="Dana", email="d@x.io"))
        assert details.start_time == START + timedelta(hours=24)
        assert details.end_time == START + timedelta(hours=25)
        assert details.timezone == "UTC"
        assert details.subject == "Sales Consultation - Dana"
        assert details.attendee_email == "d@x.io"

    def test_unknown_customer(self):
        details = self.trigger().build_details(self.event(), None)
        assert details.subject == "Sales Consultation - Customer"
        assert details.attendee_email is None

    def test_description_summarises_profile(self):
        profile = QualificationProfile(
            pain_points={"churn"},
            interests={"sso"},
            budget="$5k/month",
            decision_maker=DecisionMaker.YES,
        )
        description = self.trigger().build_details(self.event(profile), None).description
        assert description.splitlines() == [
            "Sales consultation for lead with score 60. Pain points: churn",
            "Interests: sso",
            "Budget: $5k/month",
            "Decision maker: yes",
        ]
