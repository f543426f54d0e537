"""
Google Calendar booking client.

Creates consultation events through the Calendar v3 REST API with httpx.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import httpx

from lead_scoring.errors import BookingFailure, CircuitOpenError

logger = logging.getLogger(__name__)


class CalendarServerError(BookingFailure):
    """Transient calendar API failure (5xx or rate limited)."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class MeetingDetails:
    """Everything needed to create one calendar event."""
    lead_id: str
    customer_id: str
    subject: str
    description: str
    start_time: datetime
    end_time: datetime
    timezone: str = "UTC"
    attendee_email: Optional[str] = None
    attendee_name: Optional[str] = None
    location: Optional[str] = None


@dataclass
class BookingResult:
    """Created event reference."""
    event_id: str
    meeting_link: Optional[str] = None


@runtime_checkable
class CalendarBooking(Protocol):
    """Protocol for calendar backends. Failures raise BookingFailure."""

    async def create_event(self, details: MeetingDetails) -> BookingResult:
        ...


class GoogleCalendarClient:
    """
    Google Calendar v3 client.

    Events carry the attendee, email and popup reminders, and private
    extended properties linking back to the lead.
    """

    REMINDERS = [
        {"method": "email", "minutes": 24 * 60},
        {"method": "popup", "minutes": 10},
    ]
    SOURCE_TAG = "lead_management_system"

    def __init__(
        self,
        access_token: Optional[str],
        calendar_id: str = "primary",
        api_base: str = "https://www.googleapis.com/calendar/v3",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.access_token = access_token
        self.calendar_id = calendar_id
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def build_event_body(self, details: MeetingDetails) -> Dict[str, Any]:
        """Request body for events.insert."""
        body: Dict[str, Any] = {
            "summary": details.subject,
            "description": details.description,
            "start": {
                "dateTime": details.start_time.isoformat(),
                "timeZone": details.timezone,
            },
            "end": {
                "dateTime": details.end_time.isoformat(),
                "timeZone": details.timezone,
            },
            "reminders": {
                "useDefault": False,
                "overrides": self.REMINDERS,
            },
            "extendedProperties": {
                "private": {
                    "leadId": details.lead_id,
                    "customerId": details.customer_id,
                    "source": self.SOURCE_TAG,
                },
            },
        }
        if details.attendee_email:
            body["attendees"] = [{
                "email": details.attendee_email,
                "displayName": details.attendee_name or "Customer",
            }]
        if details.location:
            body["location"] = details.location
        return body

    async def create_event(self, details: MeetingDetails) -> BookingResult:
        """
        Create the event.

        Raises:
            BookingFailure: missing credentials or a rejected request
            CalendarServerError: 5xx or 429 from the API
        """
        if not self.access_token:
            raise BookingFailure("GOOGLE_CALENDAR_ACCESS_TOKEN is not configured")

        url = f"{self.api_base}/calendars/{self.calendar_id}/events"
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

        response = await self._client.post(url, json=self.build_event_body(details), headers=headers)

        if response.status_code not in [200, 201]:
            message = self._error_message(response)
            if response.status_code >= 500 or response.status_code == 429:
                raise CalendarServerError(f"Google Calendar API error: {message}", response.status_code)
            raise BookingFailure(f"Google Calendar API error: {message}")

        event = response.json()
        logger.info(f"Calendar event {event.get('id')} created for lead {details.lead_id}")
        return BookingResult(event_id=event["id"], meeting_link=event.get("hangoutLink") or event.get("htmlLink"))

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text[:200] or response.reason_phrase
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        return response.reason_phrase

    async def aclose(self) -> None:
        await self._client.aclose()


class ResilientCalendar:
    """CalendarBooking wrapper; every failure surfaces as BookingFailure."""

    def __init__(self, inner: CalendarBooking, caller):
        self.inner = inner
        self.caller = caller

    async def create_event(self, details: MeetingDetails) -> BookingResult:
        try:
            return await self.caller.call(self.inner.create_event, details)
        except BookingFailure:
            raise
        except CircuitOpenError as e:
            raise BookingFailure(str(e)) from e
        except Exception as e:
            raise BookingFailure(f"Calendar booking failed: {e!r}") from e
