"""
Qualification Orchestrator.

Runs one turn per inbound customer message:
load-or-create -> extract (with knowledge search) -> score -> transition ->
compose -> persist -> optional meeting booking.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from booking.trigger import MeetingRequested, SchedulingTrigger
from database.models import AgentState, Conversation, Lead
from database.repositories import (
    AgentStateRepository,
    ConversationRepository,
    LeadRepository,
)
from lead_scoring.errors import (
    ConversationNotFoundError,
    MissingAgentStateError,
    MissingLeadError,
    TurnProcessingError,
)
from lead_scoring.metrics import (
    record_extraction_fallback,
    record_turn,
    record_turn_failure,
)
from lead_scoring.phase_machine import Phase, PhaseStateMachine, ProgressContext, TransitionResult
from lead_scoring.qualification import QualificationProfile, QualificationScorer
from lead_scoring.signal_extractor import SignalExtractor
from retrieval.context_builder import ContextBuilder
from retrieval.knowledge_search import KnowledgeSnippet

from .conversation_lock import ConversationLockManager
from .response_composer import ResponseComposer

logger = logging.getLogger(__name__)


APOLOGY_MESSAGE = (
    "I apologize, but I'm experiencing technical difficulties. "
    "Let me connect you with a human agent who can better assist you."
)


@dataclass
class InboundMessage:
    """One customer message to process."""
    conversation_id: str
    text: str
    arrival_time: datetime = field(default_factory=datetime.utcnow)


@dataclass
class TurnResult:
    """Outcome of one processed turn."""
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
    profile: Dict[str, Any] = field(default_factory=dict)
    knowledge_snippets: List[Dict[str, Any]] = field(default_factory=list)
    extraction_ok: bool = True
    used_fallback_reply: bool = False
    meeting_request: Optional[Dict[str, Any]] = None
    booking: Optional[Dict[str, Any]] = None
    processing_time_ms: float = 0.0
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "conversation_id": self.conversation_id,
            "lead_id": self.lead_id,
            "reply": self.reply,
            "previous_phase": self.previous_phase,
            "phase": self.phase,
            "action": self.action,
            "rule": self.rule,
            "previous_score": self.previous_score,
            "lead_score": self.lead_score,
            "status": self.status,
            "profile": self.profile,
            "knowledge_snippets": self.knowledge_snippets,
            "extraction_ok": self.extraction_ok,
            "used_fallback_reply": self.used_fallback_reply,
            "meeting_request": self.meeting_request,
            "booking": self.booking,
            "processing_time_ms": self.processing_time_ms,
            "timestamp": self.timestamp,
        }


class QualificationOrchestrator:
    """
    Orchestrates the qualification pipeline.

    Pipeline (one database transaction, under the conversation lock):
    1. Load or create the Lead and AgentState
    2. Extract signals; knowledge search runs concurrently
    3. Score and stage the Lead update
    4. Transition using the new score
    5. Compose the reply for the new phase
    6. Stage the AgentState update
    7. Append the outbound message, record any meeting request, commit
    8. Book the meeting when the action is schedule_meeting

    Any failure in steps 1-7 rolls back, stores an apology message and raises
    TurnProcessingError. Booking failures never fail the turn.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        extractor: SignalExtractor,
        composer: ResponseComposer,
        knowledge_search: Any,
        scorer: Optional[QualificationScorer] = None,
        phase_machine: Optional[PhaseStateMachine] = None,
        context_builder: Optional[ContextBuilder] = None,
        trigger: Optional[SchedulingTrigger] = None,
        locks: Optional[ConversationLockManager] = None,
        knowledge_limit: int = 3,
    ):
        """
        Initialize the orchestrator.

        Args:
            session_factory: Async session factory; each turn opens its own session
            extractor: Signal extractor
            composer: Response composer
            knowledge_search: KnowledgeSearch backend
            scorer: Scoring policy
            phase_machine: Transition policy
            context_builder: Knowledge context builder
            trigger: Scheduling trigger; without one, schedule_meeting is not acted on
            locks: Per-conversation lock arena
            knowledge_limit: Max knowledge snippets per turn
        """
        self.session_factory = session_factory
        self.extractor = extractor
        self.composer = composer
        self.knowledge_search = knowledge_search
        self.scorer = scorer or QualificationScorer()
        self.phase_machine = phase_machine or PhaseStateMachine()
        self.context_builder = context_builder or ContextBuilder()
        self.trigger = trigger
        self.locks = locks or ConversationLockManager()
        self.knowledge_limit = knowledge_limit

    async def process(self, message: InboundMessage) -> TurnResult:
        """
        Process one inbound message.

        Raises:
            TurnProcessingError: the turn was aborted; the cause is chained
        """
        start = time.time()
        conversation_id = message.conversation_id

        async with self.locks.lock(conversation_id):
            try:
                result, event = await self._run_turn(message)
            except Exception as e:
                logger.error(f"Turn failed for conversation {conversation_id}: {e!r}")
                record_turn_failure(type(e).__name__)
                if not isinstance(e, ConversationNotFoundError):
                    await self._persist_apology(conversation_id)
                raise TurnProcessingError(conversation_id) from e

            if event is not None:
                outcome = await self.trigger.handle(event)
                result.booking = outcome.to_dict()

        result.processing_time_ms = round((time.time() - start) * 1000, 2)
        record_turn(result.phase, result.action, result.lead_score)
        logger.info(
            f"Turn {conversation_id}: score {result.previous_score}->{result.lead_score}, "
            f"phase {result.previous_phase}->{result.phase}, action {result.action}"
        )
        return result

    async def _run_turn(self, message: InboundMessage) -> Tuple[TurnResult, Optional[MeetingRequested]]:
        async with self.session_factory() as session:
            try:
                outcome = await self._execute(session, message)
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        return outcome

    async def _execute(
        self,
        session: AsyncSession,
        message: InboundMessage,
    ) -> Tuple[TurnResult, Optional[MeetingRequested]]:
        conversation_id = message.conversation_id
        conversations = ConversationRepository(session)
        leads = LeadRepository(session)
        states = AgentStateRepository(session)

        conversation = await conversations.get_by_id(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)

        # 1. Load or create
        lead, state = await self._load_or_create(conversation, leads, states)
        profile = QualificationProfile.from_dict(lead.qualification_profile)
        current_phase = Phase.parse(state.phase)

        # 2. Extract, with knowledge search alongside
        extraction, snippets = await asyncio.gather(
            self.extractor.extract(message.text, profile),
            self._search_knowledge(message.text),
        )
        if not extraction.ok:
            record_extraction_fallback()
            logger.warning(f"Extraction degraded for {conversation_id}: {extraction.error}")

        # 3. Score
        score = self.scorer.apply(lead.lead_score or 0, profile, extraction.signals)
        await leads.apply_score(lead, score)

        # 4. Transition on the new score
        transition = self.phase_machine.transition(current_phase, score, message.text)

        # 5. Compose
        knowledge = self.context_builder.build(snippets)
        reply = await self.composer.compose(
            transition.next_phase,
            lead_score=lead.lead_score,
            profile=score.profile,
            progress=ProgressContext.from_dict(state.progress_context),
            signals=extraction.signals,
            message=message.text,
            knowledge=knowledge,
        )

        # 6. Agent state
        await states.update(state, transition.next_phase, reply.progress)

        # 7. Outbound message and meeting request
        message_snippets = knowledge.message_snippets()
        await conversations.add_message(conversation_id, "ai", reply.text, message_snippets)

        event = None
        if transition.schedule_meeting and self.trigger is not None:
            event = await self.trigger.request(session, lead, score.profile)

        result = TurnResult(
            conversation_id=conversation_id,
            lead_id=lead.id,
            reply=reply.text,
            previous_phase=current_phase.value,
            phase=transition.next_phase.value,
            action=transition.action.value,
            rule=transition.rule,
            previous_score=score.previous_score,
            lead_score=lead.lead_score,
            status=lead.status,
            profile=score.profile.to_dict(),
            knowledge_snippets=message_snippets,
            extraction_ok=extraction.ok,
            used_fallback_reply=reply.used_fallback,
            meeting_request=event.to_dict() if event else None,
        )
        return result, event

    async def _load_or_create(
        self,
        conversation: Conversation,
        leads: LeadRepository,
        states: AgentStateRepository,
    ) -> Tuple[Lead, AgentState]:
        lead = await leads.get_by_conversation(conversation.id)
        state = await states.get_by_conversation(conversation.id)

        if lead is None and state is None:
            return await leads.create_for_conversation(conversation)
        if lead is None:
            raise MissingLeadError(conversation.id)
        if state is None:
            raise MissingAgentStateError(conversation.id)
        return lead, state

    async def _search_knowledge(self, query: str) -> List[KnowledgeSnippet]:
        try:
            return await self.knowledge_search.search(query, limit=self.knowledge_limit)
        except Exception as e:
            logger.warning(f"Knowledge search failed, continuing without context: {e}")
            return []

    async def _persist_apology(self, conversation_id: str) -> None:
        try:
            async with self.session_factory() as session:
                await ConversationRepository(session).add_message(conversation_id, "ai", APOLOGY_MESSAGE)
                await session.commit()
        except Exception:
            logger.exception(f"Could not store apology message for conversation {conversation_id}")

    async def force_phase(self, conversation_id: str, target: Phase) -> TransitionResult:
        """
        Operator override of the conversation phase. Forward moves only.

        Raises:
            ConversationNotFoundError, MissingLeadError, MissingAgentStateError,
            InvalidPhaseTransition
        """
        async with self.locks.lock(conversation_id):
            async with self.session_factory() as session:
                leads = LeadRepository(session)
                states = AgentStateRepository(session)

                state = await states.get_by_conversation(conversation_id)
                if state is None:
                    if await ConversationRepository(session).get_by_id(conversation_id) is None:
                        raise ConversationNotFoundError(conversation_id)
                    raise MissingAgentStateError(conversation_id)
                lead = await leads.get_by_conversation(conversation_id)
                if lead is None:
                    raise MissingLeadError(conversation_id)

                transition = self.phase_machine.force_phase(Phase.parse(state.phase), target)
                await states.update(state, transition.next_phase, ProgressContext.from_dict(state.progress_context))
                await leads.add_event(lead.id, "phase_forced", transition.to_dict())
                await session.commit()

        return transition
