"""
Booking Module for the lead qualification engine.

Turns schedule_meeting actions into calendar events:
- Google Calendar client (httpx)
- MeetingRequested events and the booking handler
"""

from .google_calendar import (
    BookingResult,
    CalendarBooking,
    CalendarServerError,
    GoogleCalendarClient,
    MeetingDetails,
    ResilientCalendar,
)
from .trigger import BookingOutcome, MeetingRequested, SchedulingTrigger

__all__ = [
    "BookingResult",
    "CalendarBooking",
    "CalendarServerError",
    "GoogleCalendarClient",
    "MeetingDetails",
    "ResilientCalendar",
    "BookingOutcome",
    "MeetingRequested",
    "SchedulingTrigger",
]
