"""
Error types for the lead qualification engine.
"""

from typing import Optional


class QualificationError(Exception):
    """Base class for qualification engine errors."""


class ExtractionParseError(QualificationError):
    """Completion output could not be parsed into a signal payload."""


class CompletionFailure(QualificationError):
    """The text-completion call raised or returned nothing usable."""


class CircuitOpenError(CompletionFailure):
    """A collaborator's circuit breaker is open; the call was not attempted."""

    def __init__(self, name: str, retry_after: float):
        super().__init__(f"Circuit '{name}' is open, retry in {retry_after:.1f}s")
        self.name = name
        self.retry_after = retry_after


class BookingFailure(QualificationError):
    """The calendar booking call failed."""


class ConversationNotFoundError(QualificationError):
    """The conversation does not exist."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class MissingLeadError(QualificationError):
    """An agent state exists for a conversation that has no lead."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Lead not found for conversation {conversation_id}")
        self.conversation_id = conversation_id


class MissingAgentStateError(QualificationError):
    """A lead exists for a conversation that has no agent state."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Agent state not found for conversation {conversation_id}")
        self.conversation_id = conversation_id


class InvalidPhaseTransition(QualificationError):
    """A requested phase change would move the conversation backward."""


class TurnProcessingError(QualificationError):
    """A turn was aborted. The original cause is chained."""

    def __init__(self, conversation_id: str, message: Optional[str] = None):
        super().__init__(message or f"Turn failed for conversation {conversation_id}")
        self.conversation_id = conversation_id
