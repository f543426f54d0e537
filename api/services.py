"""
Service initialization and dependency injection for the Lead Qualification API.

Creates and manages all service instances used by the API. Collaborator
clients are built once here and injected into the orchestrator.
"""

import logging
from typing import Any, Optional

import httpx

from booking.google_calendar import CalendarServerError, GoogleCalendarClient, ResilientCalendar
from booking.trigger import SchedulingTrigger
from config.settings import get_settings, Settings
from database.session import get_session_factory
from lead_scoring.phase_machine import PhaseStateMachine
from lead_scoring.qualification import QualificationScorer
from lead_scoring.signal_extractor import SignalExtractor
from llm.conversation_lock import ConversationLockManager
from llm.dispatcher import TurnDispatcher
from llm.orchestrator import QualificationOrchestrator
from llm.providers import BedrockProvider, OpenAIProvider
from llm.resilience import CircuitBreaker, ResilientCaller, ResilientCompletion
from llm.response_composer import ResponseComposer
from retrieval.context_builder import ContextBuilder
from retrieval.embedder import EmbeddingService, EmbeddingConfig, EmbeddingProvider
from retrieval.knowledge_search import EmptyKnowledgeSearch, PineconeKnowledgeSearch
from retrieval.pinecone_client import PineconeClient, PineconeConfig

logger = logging.getLogger(__name__)


class Services:
    """Container for all application services."""

    def __init__(self):
        self._reset()

    def _reset(self):
        self.settings: Optional[Settings] = None
        self.completion: Optional[Any] = None
        self.knowledge_search: Optional[Any] = None
        self.calendar: Optional[Any] = None
        self.locks: Optional[ConversationLockManager] = None
        self.orchestrator: Optional[QualificationOrchestrator] = None
        self.dispatcher: Optional[TurnDispatcher] = None
        self._closeables = []
        self._initialized = False

    def initialize(self):
        """Initialize all services."""
        if self._initialized:
            return

        self.settings = get_settings()
        logger.info(f"Initializing services with provider: {self.settings.llm_provider}")

        try:
            self._init_completion()
            self._init_knowledge_search()
            self._init_calendar()
            self.build_orchestrator()
            logger.info("All services initialized successfully")
        except Exception as e:
            logger.error(f"Service initialization failed: {e}")
            logger.warning("API starting in degraded mode")
        self._initialized = True

    def _caller(self, name: str, retry_on=(Exception,)) -> ResilientCaller:
        s = self.settings
        return ResilientCaller(
            CircuitBreaker(
                name,
                failure_threshold=s.circuit_breaker_threshold,
                reset_timeout=s.circuit_breaker_reset_seconds,
            ),
            max_attempts=s.retry_max_attempts,
            backoff_min=s.retry_backoff_min,
            backoff_max=s.retry_backoff_max,
            timeout=s.call_timeout_seconds,
            retry_on=retry_on,
        )

    def _init_completion(self):
        """Initialize the text completion provider."""
        s = self.settings

        if s.is_bedrock:
            provider = BedrockProvider(model_id=s.bedrock_llm_model_id, region=s.aws_region)
        else:
            provider = OpenAIProvider(
                api_key=s.openai_api_key,
                model_id=s.openai_llm_model,
                base_url=s.openai_base_url,
            )
            self._closeables.append(provider)

        self.completion = provider
        logger.info(f"Text completion ready: {s.llm_model_id}")

    def _init_knowledge_search(self):
        """Initialize knowledge search (Pinecone + embeddings)."""
        s = self.settings

        if not s.pinecone_api_key:
            logger.warning("PINECONE_API_KEY not set, knowledge search disabled")
            self.knowledge_search = EmptyKnowledgeSearch()
            return

        embedder = EmbeddingService(EmbeddingConfig(
            provider=EmbeddingProvider.OPENAI if s.is_openai else EmbeddingProvider.BEDROCK_TITAN,
            model_id=s.embed_model_id,
            aws_region=s.aws_region,
            openai_api_key=s.openai_api_key,
        ))
        pinecone = PineconeClient(PineconeConfig(
            api_key=s.pinecone_api_key,
            index_name=s.pinecone_index_name,
            namespace=s.pinecone_namespace,
        ))
        self.knowledge_search = PineconeKnowledgeSearch(
            embedder,
            pinecone,
            namespace=s.pinecone_namespace,
            min_score=s.similarity_threshold,
        )
        logger.info("Knowledge search ready")

    def _init_calendar(self):
        """Initialize the Google Calendar client."""
        s = self.settings

        if not s.google_calendar_access_token:
            logger.warning("GOOGLE_CALENDAR_ACCESS_TOKEN not set, bookings will be recorded as failed")

        client = GoogleCalendarClient(
            access_token=s.google_calendar_access_token,
            calendar_id=s.google_calendar_id,
            api_base=s.google_calendar_api_base,
            timeout=s.call_timeout_seconds,
        )
        self._closeables.append(client)
        self.calendar = client

    def build_orchestrator(
        self,
        completion: Optional[Any] = None,
        knowledge_search: Optional[Any] = None,
        calendar: Optional[Any] = None,
        session_factory=None,
    ) -> QualificationOrchestrator:
        """
        Wire the orchestrator and dispatcher from the current collaborators.

        Explicit arguments replace the configured collaborators.
        """
        s = self.settings or get_settings()
        self.settings = s
        self.completion = completion or self.completion
        self.knowledge_search = knowledge_search or self.knowledge_search or EmptyKnowledgeSearch()
        self.calendar = calendar or self.calendar

        llm_caller = self._caller("llm")
        calendar_caller = self._caller(
            "calendar",
            retry_on=(httpx.TransportError, TimeoutError, CalendarServerError),
        )

        extraction = ResilientCompletion(self.completion, llm_caller, operation="extraction")
        composition = ResilientCompletion(self.completion, llm_caller, operation="composition")
        session_factory = session_factory or get_session_factory()

        trigger = None
        if self.calendar is not None:
            trigger = SchedulingTrigger(
                ResilientCalendar(self.calendar, calendar_caller),
                session_factory,
                dedupe=s.booking_dedupe,
                lead_time_hours=s.booking_lead_time_hours,
                duration_minutes=s.booking_duration_minutes,
                timezone_name=s.booking_timezone,
            )

        self.locks = ConversationLockManager()
        self.orchestrator = QualificationOrchestrator(
            session_factory=session_factory,
            extractor=SignalExtractor(
                extraction,
                max_tokens=s.extraction_max_tokens,
                temperature=s.extraction_temperature,
            ),
            composer=ResponseComposer(
                composition,
                brand_name=s.brand_name,
                max_tokens=s.response_max_tokens,
                temperature=s.response_temperature,
            ),
            knowledge_search=self.knowledge_search,
            scorer=QualificationScorer(
                qualified_threshold=s.qualified_threshold,
                nurturing_threshold=s.nurturing_threshold,
            ),
            phase_machine=PhaseStateMachine(
                closing_threshold=s.closing_threshold,
                scheduling_override_threshold=s.scheduling_override_threshold,
            ),
            context_builder=ContextBuilder(),
            trigger=trigger,
            locks=self.locks,
            knowledge_limit=s.knowledge_search_limit,
        )
        self.dispatcher = TurnDispatcher(self.orchestrator.process, delay_seconds=s.response_delay_seconds)
        logger.info("Qualification orchestrator ready")
        return self.orchestrator

    async def shutdown(self):
        """Finish dispatched turns and close collaborator clients."""
        if self.dispatcher:
            await self.dispatcher.drain()
        for closeable in self._closeables:
            try:
                await closeable.aclose()
            except Exception as e:
                logger.warning(f"Error closing {type(closeable).__name__}: {e}")
        self._reset()

    @property
    def is_ready(self) -> bool:
        return self._initialized and self.orchestrator is not None

    def health(self) -> dict:
        """Return health status of all services."""
        return {
            "initialized": self._initialized,
            "completion": self.completion is not None,
            "knowledge_search": not isinstance(self.knowledge_search, EmptyKnowledgeSearch)
            and self.knowledge_search is not None,
            "calendar": self.calendar is not None,
            "orchestrator": self.orchestrator is not None,
        }


# Singleton
_services = Services()


def get_services() -> Services:
    """Get the global services instance."""
    return _services


def initialize_services():
    """Initialize all services (called at startup)."""
    _services.initialize()


async def shutdown_services():
    """Release services (called at shutdown)."""
    await _services.shutdown()
