"""
Repository classes for the lead qualification data access layer.

Each repository encapsulates operations for a specific model. Repositories
flush but never commit; the caller owns the transaction.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from lead_scoring.phase_machine import Phase, ProgressContext
from lead_scoring.qualification import LeadStatus, QualificationProfile, ScoreResult

from .models import (
    AgentState, Conversation, Customer, Lead, LeadEvent, MeetingRequest, Message,
)

logger = logging.getLogger(__name__)


class ConversationRepository:
    """Data access for customers, conversations and messages."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_customer(self, name: Optional[str] = None, email: Optional[str] = None) -> Customer:
        customer = Customer(name=name, email=email)
        self.session.add(customer)
        await self.session.flush()
        return customer

    async def get_customer(self, customer_id: str) -> Optional[Customer]:
        result = await self.session.execute(
            select(Customer).where(Customer.id == customer_id)
        )
        return result.scalar_one_or_none()

    async def create(self, customer_id: str, channel: str = "web") -> Conversation:
        conv = Conversation(customer_id=customer_id, channel=channel)
        self.session.add(conv)
        await self.session.flush()
        return conv

    async def get_by_id(self, conversation_id: str) -> Optional[Conversation]:
        result = await self.session.execute(
            select(Conversation).where(Conversation.id == conversation_id)
        )
        return result.scalar_one_or_none()

    async def add_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        knowledge_snippets: Optional[List[dict]] = None,
    ) -> Message:
        msg = Message(
            conversation_id=conversation_id,
            role=role,
            content=content,
            knowledge_snippets=knowledge_snippets or [],
        )
        self.session.add(msg)
        await self.session.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(last_active_at=datetime.utcnow())
        )
        await self.session.flush()
        return msg

    async def get_messages(self, conversation_id: str, limit: int = 100) -> List[Message]:
        result = await self.session.execute(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())


class LeadRepository:
    """Data access for leads and lead events."""

    DEFAULT_AGENT = "system"
    DEFAULT_PERSONALITY = "consultative"

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_for_conversation(self, conversation: Conversation) -> Tuple[Lead, AgentState]:
        """Create a lead at score 0 together with its agent state in greeting."""
        lead = Lead(
            customer_id=conversation.customer_id,
            conversation_id=conversation.id,
            status=LeadStatus.PROSPECT.value,
            lead_score=0,
            qualification_profile=QualificationProfile().to_dict(),
            assigned_agent=self.DEFAULT_AGENT,
        )
        self.session.add(lead)
        await self.session.flush()

        state = AgentState(
            conversation_id=conversation.id,
            phase=Phase.GREETING.value,
            progress_context=ProgressContext().to_dict(),
            agent_personality=self.DEFAULT_PERSONALITY,
        )
        self.session.add(state)
        self.session.add(LeadEvent(
            lead_id=lead.id,
            event_type="created",
            details_json={"score": 0, "conversation_id": conversation.id},
        ))
        await self.session.flush()

        logger.info(f"Lead {lead.id} created for conversation {conversation.id}")
        return lead, state

    async def get_by_id(self, lead_id: str) -> Optional[Lead]:
        result = await self.session.execute(
            select(Lead).where(Lead.id == lead_id)
        )
        return result.scalar_one_or_none()

    async def get_by_conversation(self, conversation_id: str) -> Optional[Lead]:
        result = await self.session.execute(
            select(Lead).where(Lead.conversation_id == conversation_id)
        )
        return result.scalar_one_or_none()

    async def apply_score(self, lead: Lead, result: ScoreResult) -> Lead:
        """
        Write a scoring outcome. The stored score never decreases and the
        status always follows the stored score.
        """
        stored = lead.lead_score or 0
        if result.score < stored:
            logger.warning(f"Ignoring score decrease {stored} -> {result.score} on lead {lead.id}")

        lead.lead_score = max(stored, result.score)
        lead.status = result.status.value if lead.lead_score == result.score else lead.status
        lead.qualification_profile = result.profile.to_dict()
        lead.last_qualification_at = datetime.utcnow()

        if lead.lead_score != stored:
            self.session.add(LeadEvent(
                lead_id=lead.id,
                event_type="score_updated",
                details_json=result.to_dict(),
            ))
        await self.session.flush()
        return lead

    async def add_event(self, lead_id: str, event_type: str, details: dict) -> LeadEvent:
        event = LeadEvent(lead_id=lead_id, event_type=event_type, details_json=details)
        self.session.add(event)
        await self.session.flush()
        return event

    async def get_events(self, lead_id: str) -> List[LeadEvent]:
        result = await self.session.execute(
            select(LeadEvent)
            .where(LeadEvent.lead_id == lead_id)
            .order_by(LeadEvent.created_at.asc())
        )
        return list(result.scalars().all())

    async def list_leads(self, status: Optional[str] = None, limit: int = 50) -> List[Lead]:
        """Leads by score, highest first, optionally filtered by status."""
        q = select(Lead).order_by(Lead.lead_score.desc(), Lead.created_at.desc()).limit(limit)
        if status:
            q = q.where(Lead.status == status)
        result = await self.session.execute(q)
        return list(result.scalars().all())


class AgentStateRepository:
    """Data access for per-conversation agent state."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_conversation(self, conversation_id: str) -> Optional[AgentState]:
        result = await self.session.execute(
            select(AgentState).where(AgentState.conversation_id == conversation_id)
        )
        return result.scalar_one_or_none()

    async def update(self, state: AgentState, phase: Phase, progress: ProgressContext) -> AgentState:
        state.phase = phase.value
        state.progress_context = progress.to_dict()
        state.last_updated = datetime.utcnow()
        await self.session.flush()
        return state


class MeetingRequestRepository:
    """Data access for meeting requests, keyed by (lead_id, attempt)."""

    ACTIVE_STATUSES = ("requested", "booked")

    def __init__(self, session: AsyncSession):
        self.session = session

    async def next_attempt(self, lead_id: str) -> int:
        result = await self.session.execute(
            select(func.max(MeetingRequest.attempt)).where(MeetingRequest.lead_id == lead_id)
        )
        return (result.scalar() or 0) + 1

    async def create(self, lead_id: str, conversation_id: str, attempt: int) -> MeetingRequest:
        request = MeetingRequest(
            lead_id=lead_id,
            conversation_id=conversation_id,
            attempt=attempt,
            status="requested",
        )
        self.session.add(request)
        await self.session.flush()
        return request

    async def get(self, lead_id: str, attempt: int) -> Optional[MeetingRequest]:
        result = await self.session.execute(
            select(MeetingRequest).where(
                MeetingRequest.lead_id == lead_id,
                MeetingRequest.attempt == attempt,
            )
        )
        return result.scalar_one_or_none()

    async def has_active(self, lead_id: str, exclude_attempt: Optional[int] = None) -> bool:
        """True if an earlier request for the lead is requested or booked."""
        q = select(func.count(MeetingRequest.id)).where(
            MeetingRequest.lead_id == lead_id,
            MeetingRequest.status.in_(self.ACTIVE_STATUSES),
        )
        if exclude_attempt is not None:
            q = q.where(MeetingRequest.attempt != exclude_attempt)
        result = await self.session.execute(q)
        return (result.scalar() or 0) > 0

    async def list_for_lead(self, lead_id: str) -> List[MeetingRequest]:
        result = await self.session.execute(
            select(MeetingRequest)
            .where(MeetingRequest.lead_id == lead_id)
            .order_by(MeetingRequest.attempt.asc())
        )
        return list(result.scalars().all())

    async def list_for_conversation(self, conversation_id: str) -> List[MeetingRequest]:
        result = await self.session.execute(
            select(MeetingRequest)
            .where(MeetingRequest.conversation_id == conversation_id)
            .order_by(MeetingRequest.attempt.asc())
        )
        return list(result.scalars().all())

    async def set_details(
        self,
        request: MeetingRequest,
        subject: str,
        attendee_email: Optional[str],
        start_time: datetime,
        end_time: datetime,
    ) -> MeetingRequest:
        request.subject = subject
        request.attendee_email = attendee_email
        request.start_time = start_time
        request.end_time = end_time
        await self.session.flush()
        return request

    async def mark_booked(self, request: MeetingRequest, event_id: str, meeting_link: Optional[str]) -> MeetingRequest:
        request.status = "booked"
        request.event_id = event_id
        request.meeting_link = meeting_link
        await self.session.flush()
        return request

    async def mark_failed(self, request: MeetingRequest, error: str) -> MeetingRequest:
        request.status = "failed"
        request.error = error
        await self.session.flush()
        return request

    async def mark_skipped(self, request: MeetingRequest, reason: str) -> MeetingRequest:
        request.status = "skipped"
        request.error = reason
        await self.session.flush()
        return request
