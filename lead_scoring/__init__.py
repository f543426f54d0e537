"""
Lead Scoring Module for the lead qualification engine.

This module provides the per-conversation qualification core:
- Signal extraction from customer messages (lenient LLM parsing)
- Profile merge and cumulative lead scoring (0-100 scale)
- Sales phase state machine and progress tracking
"""

from .errors import (
    QualificationError,
    ExtractionParseError,
    CompletionFailure,
    CircuitOpenError,
    BookingFailure,
    ConversationNotFoundError,
    MissingLeadError,
    MissingAgentStateError,
    InvalidPhaseTransition,
    TurnProcessingError,
)
from .qualification import (
    DecisionMaker,
    LeadStatus,
    QualificationProfile,
    QualificationScorer,
    QualificationSignals,
    ScoreResult,
)
from .signal_extractor import SignalExtractor, ExtractionResult
from .phase_machine import (
    AgentAction,
    Phase,
    PhaseStateMachine,
    ProgressContext,
    TransitionResult,
)

__all__ = [
    "QualificationError",
    "ExtractionParseError",
    "CompletionFailure",
    "CircuitOpenError",
    "BookingFailure",
    "ConversationNotFoundError",
    "MissingLeadError",
    "MissingAgentStateError",
    "InvalidPhaseTransition",
    "TurnProcessingError",
    "DecisionMaker",
    "LeadStatus",
    "QualificationProfile",
    "QualificationScorer",
    "QualificationSignals",
    "ScoreResult",
    "SignalExtractor",
    "ExtractionResult",
    "AgentAction",
    "Phase",
    "PhaseStateMachine",
    "ProgressContext",
    "TransitionResult",
]
