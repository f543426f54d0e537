"""
Conversation API Routes for the lead qualification engine.
"""

import logging
from typing import List, Dict, Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..services import get_services
from database.repositories import (
    AgentStateRepository,
    ConversationRepository,
    LeadRepository,
    MeetingRequestRepository,
)
from database.session import get_db
from lead_scoring.errors import (
    ConversationNotFoundError,
    InvalidPhaseTransition,
    MissingAgentStateError,
    MissingLeadError,
    TurnProcessingError,
)
from lead_scoring.phase_machine import Phase
from llm.orchestrator import InboundMessage

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request / Response Models ─────────────────────────────────────

class ConversationCreate(BaseModel):
    customer_name: Optional[str] = Field(default=None, max_length=255)
    customer_email: Optional[str] = Field(default=None, max_length=255)
    channel: str = Field(default="web", max_length=20)


class ConversationOut(BaseModel):
    conversation_id: str
    customer_id: str
    channel: str
    started_at: str


class MessageIn(BaseModel):
    text: str = Field(..., min_length=1, max_length=4000)


class MessageAccepted(BaseModel):
    conversation_id: str
    message_id: str
    dispatched: bool
    delay_seconds: float


class KnowledgeSnippetOut(BaseModel):
    content: str
    source: Optional[str] = None
    relevance_score: float


class MessageOut(BaseModel):
    id: str
    role: str
    content: str
    knowledge_snippets: List[KnowledgeSnippetOut] = []
    created_at: str


class TurnOut(BaseModel):
    conversation_id: str
    lead_id: str
    reply: str
    previous_phase: str
    phase: str
    action: str
    rule: str
    previous_score: int
    lead_score: int
    status: str
    profile: Dict[str, Any]
    knowledge_snippets: List[KnowledgeSnippetOut] = []
    extraction_ok: bool
    used_fallback_reply: bool
    meeting_request: Optional[Dict[str, Any]] = None
    booking: Optional[Dict[str, Any]] = None
    processing_time_ms: float
    timestamp: str


class LeadOut(BaseModel):
    id: str
    customer_id: str
    conversation_id: str
    status: str
    lead_score: int
    qualification_profile: Dict[str, Any]
    last_qualification_at: Optional[str] = None
    assigned_agent: Optional[str] = None
    notes: Optional[str] = None
    created_at: str


class AgentStateOut(BaseModel):
    conversation_id: str
    phase: str
    progress_context: Dict[str, Any]
    agent_personality: Optional[str] = None
    last_updated: Optional[str] = None


class MeetingRequestOut(BaseModel):
    lead_id: str
    attempt: int
    status: str
    subject: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    event_id: Optional[str] = None
    meeting_link: Optional[str] = None
    error: Optional[str] = None


class PhaseOverride(BaseModel):
    phase: Phase


class PhaseOverrideOut(BaseModel):
    conversation_id: str
    previous_phase: str
    phase: str


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def lead_to_out(lead) -> LeadOut:
    return LeadOut(
        id=lead.id,
        customer_id=lead.customer_id,
        conversation_id=lead.conversation_id,
        status=lead.status,
        lead_score=lead.lead_score or 0,
        qualification_profile=lead.qualification_profile or {},
        last_qualification_at=_iso(lead.last_qualification_at),
        assigned_agent=lead.assigned_agent,
        notes=lead.notes,
        created_at=_iso(lead.created_at),
    )


def _require_orchestrator():
    services = get_services()
    if not services.is_ready:
        raise HTTPException(status_code=503, detail="Qualification engine not available")
    return services


async def _require_conversation(db: AsyncSession, conversation_id: str):
    conversation = await ConversationRepository(db).get_by_id(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


# ── Endpoints ─────────────────────────────────────────────────────

@router.post("/conversations", response_model=ConversationOut, status_code=201)
async def create_conversation(request: ConversationCreate, db: AsyncSession = Depends(get_db)):
    """Create a customer and open a conversation for them."""
    repo = ConversationRepository(db)
    customer = await repo.create_customer(name=request.customer_name, email=request.customer_email)
    conversation = await repo.create(customer.id, channel=request.channel)
    await db.commit()

    logger.info(f"Conversation {conversation.id} opened for customer {customer.id}")
    return ConversationOut(
        conversation_id=conversation.id,
        customer_id=customer.id,
        channel=conversation.channel,
        started_at=_iso(conversation.started_at),
    )


@router.post("/conversations/{conversation_id}/messages", response_model=MessageAccepted, status_code=202)
async def post_message(conversation_id: str, request: MessageIn, db: AsyncSession = Depends(get_db)):
    """
    Store an inbound customer message and schedule its turn.

    The reply is written to the message log once the turn completes.
    """
    services = _require_orchestrator()
    await _require_conversation(db, conversation_id)

    message = await ConversationRepository(db).add_message(conversation_id, "customer", request.text)
    await db.commit()

    services.dispatcher.dispatch(InboundMessage(conversation_id=conversation_id, text=request.text))

    return MessageAccepted(
        conversation_id=conversation_id,
        message_id=message.id,
        dispatched=True,
        delay_seconds=services.dispatcher.delay_seconds,
    )


@router.post("/conversations/{conversation_id}/turns", response_model=TurnOut)
async def process_turn(conversation_id: str, request: MessageIn, db: AsyncSession = Depends(get_db)):
    """Store an inbound customer message and process its turn immediately."""
    services = _require_orchestrator()
    await _require_conversation(db, conversation_id)

    await ConversationRepository(db).add_message(conversation_id, "customer", request.text)
    await db.commit()

    try:
        result = await services.orchestrator.process(
            InboundMessage(conversation_id=conversation_id, text=request.text)
        )
    except TurnProcessingError as e:
        cause = e.__cause__
        if isinstance(cause, ConversationNotFoundError):
            raise HTTPException(status_code=404, detail=str(cause))
        if isinstance(cause, (MissingLeadError, MissingAgentStateError)):
            raise HTTPException(status_code=409, detail=str(cause))
        raise HTTPException(status_code=500, detail=str(e))

    return TurnOut(**result.to_dict())


@router.get("/conversations/{conversation_id}/messages", response_model=List[MessageOut])
async def get_messages(conversation_id: str, limit: int = 100, db: AsyncSession = Depends(get_db)):
    """Message log, oldest first, with the knowledge snippets used for each reply."""
    await _require_conversation(db, conversation_id)
    messages = await ConversationRepository(db).get_messages(conversation_id, limit=limit)
    return [
        MessageOut(
            id=m.id,
            role=m.role,
            content=m.content,
            knowledge_snippets=m.knowledge_snippets or [],
            created_at=_iso(m.created_at),
        )
        for m in messages
    ]


@router.get("/conversations/{conversation_id}/lead", response_model=LeadOut)
async def get_conversation_lead(conversation_id: str, db: AsyncSession = Depends(get_db)):
    lead = await LeadRepository(db).get_by_conversation(conversation_id)
    if lead is None:
        raise HTTPException(status_code=404, detail="Lead not found")
    return lead_to_out(lead)


@router.get("/conversations/{conversation_id}/agent-state", response_model=AgentStateOut)
async def get_agent_state(conversation_id: str, db: AsyncSession = Depends(get_db)):
    state = await AgentStateRepository(db).get_by_conversation(conversation_id)
    if state is None:
        raise HTTPException(status_code=404, detail="Agent state not found")
    return AgentStateOut(
        conversation_id=state.conversation_id,
        phase=state.phase,
        progress_context=state.progress_context or {},
        agent_personality=state.agent_personality,
        last_updated=_iso(state.last_updated),
    )


@router.get("/conversations/{conversation_id}/meetings", response_model=List[MeetingRequestOut])
async def get_meeting_requests(conversation_id: str, db: AsyncSession = Depends(get_db)):
    """Meeting requests raised in this conversation, by attempt."""
    requests = await MeetingRequestRepository(db).list_for_conversation(conversation_id)
    return [
        MeetingRequestOut(
            lead_id=r.lead_id,
            attempt=r.attempt,
            status=r.status,
            subject=r.subject,
            start_time=_iso(r.start_time),
            end_time=_iso(r.end_time),
            event_id=r.event_id,
            meeting_link=r.meeting_link,
            error=r.error,
        )
        for r in requests
    ]


@router.post("/conversations/{conversation_id}/phase", response_model=PhaseOverrideOut)
async def override_phase(conversation_id: str, request: PhaseOverride):
    """Operator override: move the conversation forward to a later phase."""
    services = _require_orchestrator()

    try:
        transition = await services.orchestrator.force_phase(conversation_id, request.phase)
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (MissingLeadError, MissingAgentStateError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidPhaseTransition as e:
        raise HTTPException(status_code=409, detail=str(e))

    return PhaseOverrideOut(
        conversation_id=conversation_id,
        previous_phase=transition.previous_phase.value,
        phase=transition.next_phase.value,
    )
