"""
LLM Orchestration Module for the lead qualification engine.

This module handles:
- Text completion providers (OpenAI, Bedrock) and their resilience layer
- Phase prompt templates and reply composition
- Per-conversation turn orchestration and delayed dispatch
"""

from .completion import TextCompletion
from .conversation_lock import ConversationLockManager
from .dispatcher import TurnDispatcher
from .orchestrator import InboundMessage, QualificationOrchestrator, TurnResult, APOLOGY_MESSAGE
from .prompt_templates import PromptTemplates
from .resilience import CircuitBreaker, CircuitState, ResilientCaller, ResilientCompletion
from .response_composer import ResponseComposer, ComposedReply, FALLBACK_REPLY

__all__ = [
    "TextCompletion",
    "ConversationLockManager",
    "TurnDispatcher",
    "InboundMessage",
    "QualificationOrchestrator",
    "TurnResult",
    "APOLOGY_MESSAGE",
    "PromptTemplates",
    "CircuitBreaker",
    "CircuitState",
    "ResilientCaller",
    "ResilientCompletion",
    "ResponseComposer",
    "ComposedReply",
    "FALLBACK_REPLY",
]
