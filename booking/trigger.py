"""
Scheduling Trigger.

A turn that ends with schedule_meeting records a MeetingRequest row keyed by
(lead_id, attempt) inside the turn's transaction and emits a
MeetingRequested event. The handler books the calendar event afterwards in
its own session. Booking is a non-transactional side effect: a failure is
recorded on the request row and logged, and nothing the turn already
committed is rolled back.

With dedupe off (the default) every schedule_meeting action books a new
event, even when an earlier request for the same lead is already booked.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.models import Customer, Lead
from database.repositories import ConversationRepository, MeetingRequestRepository
from lead_scoring.errors import BookingFailure
from lead_scoring.metrics import record_booking
from lead_scoring.qualification import QualificationProfile

from .google_calendar import CalendarBooking, MeetingDetails

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MeetingRequested:
    """Domain event: a turn asked for a meeting to be booked."""
    lead_id: str
    conversation_id: str
    customer_id: str
    attempt: int
    lead_score: int
    profile: QualificationProfile
    requested_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lead_id": self.lead_id,
            "conversation_id": self.conversation_id,
            "attempt": self.attempt,
            "lead_score": self.lead_score,
            "requested_at": self.requested_at.isoformat(),
        }


@dataclass
class BookingOutcome:
    """What the handler did with one MeetingRequested event."""
    lead_id: str
    attempt: int
    status: str  # booked, failed, skipped
    event_id: Optional[str] = None
    meeting_link: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt": self.attempt,
            "status": self.status,
            "event_id": self.event_id,
            "meeting_link": self.meeting_link,
            "error": self.error,
        }


class SchedulingTrigger:
    """Records meeting requests and books them through CalendarBooking."""

    def __init__(
        self,
        calendar: CalendarBooking,
        session_factory: async_sessionmaker[AsyncSession],
        dedupe: bool = False,
        lead_time_hours: int = 24,
        duration_minutes: int = 60,
        timezone_name: str = "UTC",
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.calendar = calendar
        self.session_factory = session_factory
        self.dedupe = dedupe
        self.lead_time = timedelta(hours=lead_time_hours)
        self.duration = timedelta(minutes=duration_minutes)
        self.timezone_name = timezone_name
        self.clock = clock

    async def request(
        self,
        session: AsyncSession,
        lead: Lead,
        profile: QualificationProfile,
    ) -> MeetingRequested:
        """Record the next attempt for the lead in the caller's transaction."""
        repo = MeetingRequestRepository(session)
        attempt = await repo.next_attempt(lead.id)
        await repo.create(lead.id, lead.conversation_id, attempt)

        return MeetingRequested(
            lead_id=lead.id,
            conversation_id=lead.conversation_id,
            customer_id=lead.customer_id,
            attempt=attempt,
            lead_score=lead.lead_score,
            profile=profile,
            requested_at=self.clock(),
        )

    def build_details(self, event: MeetingRequested, customer: Optional[Customer]) -> MeetingDetails:
        """Meeting for tomorrow at this time, one hour, addressed to the customer."""
        name = customer.name if customer and customer.name else None
        start = event.requested_at + self.lead_time

        return MeetingDetails(
            lead_id=event.lead_id,
            customer_id=event.customer_id,
            subject=f"Sales Consultation - {name or 'Customer'}",
            description=self._describe(event),
            start_time=start,
            end_time=start + self.duration,
            timezone=self.timezone_name,
            attendee_email=customer.email if customer else None,
            attendee_name=name or "Customer",
        )

    @staticmethod
    def _describe(event: MeetingRequested) -> str:
        profile = event.profile
        lines = [
            f"Sales consultation for lead with score {event.lead_score}. "
            f"Pain points: {', '.join(sorted(profile.pain_points))}"
        ]
        if profile.interests:
            lines.append(f"Interests: {', '.join(sorted(profile.interests))}")
        if profile.budget:
            lines.append(f"Budget: {profile.budget}")
        if profile.timeline:
            lines.append(f"Timeline: {profile.timeline}")
        if profile.decision_maker.is_known:
            lines.append(f"Decision maker: {profile.decision_maker.value}")
        return "\n".join(lines)

    async def handle(self, event: MeetingRequested) -> BookingOutcome:
        """
        Book the meeting for one event. Never raises.

        Returns:
            BookingOutcome describing the final state of the request row
        """
        try:
            async with self.session_factory() as session:
                outcome = await self._handle(session, event)
                await session.commit()
        except Exception as e:
            logger.exception(f"Meeting request {event.lead_id}#{event.attempt} could not be processed")
            outcome = BookingOutcome(event.lead_id, event.attempt, "failed", error=repr(e))
            await self._mark_failed(event, outcome.error)

        record_booking(outcome.status)
        return outcome

    async def _mark_failed(self, event: MeetingRequested, error: str) -> None:
        """Record a failure in a fresh session so the row never stays requested."""
        try:
            async with self.session_factory() as session:
                repo = MeetingRequestRepository(session)
                request = await repo.get(event.lead_id, event.attempt)
                if request is not None and request.status == "requested":
                    await repo.mark_failed(request, error)
                    await session.commit()
        except Exception:
            logger.exception(f"Could not mark meeting request {event.lead_id}#{event.attempt} as failed")

    async def _handle(self, session: AsyncSession, event: MeetingRequested) -> BookingOutcome:
        repo = MeetingRequestRepository(session)
        request = await repo.get(event.lead_id, event.attempt)
        if request is None:
            raise BookingFailure(f"No meeting request {event.lead_id}#{event.attempt}")

        if self.dedupe and await repo.has_active(event.lead_id, exclude_attempt=event.attempt):
            await repo.mark_skipped(request, "meeting already requested for this lead")
            logger.info(f"Skipping duplicate meeting request {event.lead_id}#{event.attempt}")
            return BookingOutcome(event.lead_id, event.attempt, "skipped", error=request.error)

        customer = await ConversationRepository(session).get_customer(event.customer_id)
        details = self.build_details(event, customer)
        await repo.set_details(
            request,
            subject=details.subject,
            attendee_email=details.attendee_email,
            start_time=details.start_time.replace(tzinfo=None),
            end_time=details.end_time.replace(tzinfo=None),
        )

        try:
            result = await self.calendar.create_event(details)
        except Exception as e:
            error = str(e) if isinstance(e, BookingFailure) else repr(e)
            logger.error(f"Booking failed for lead {event.lead_id} (attempt {event.attempt}): {error}")
            await repo.mark_failed(request, error)
            return BookingOutcome(event.lead_id, event.attempt, "failed", error=error)

        await repo.mark_booked(request, result.event_id, result.meeting_link)
        logger.info(f"Meeting booked for lead {event.lead_id}: event {result.event_id}")
        return BookingOutcome(
            event.lead_id,
            event.attempt,
            "booked",
            event_id=result.event_id,
            meeting_link=result.meeting_link,
        )
