"""
Response Composer.

Writes the outbound reply for a turn from the phase template, and advances
the conversation's progress context.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from lead_scoring.metrics import record_composer_fallback
from lead_scoring.phase_machine import Phase, ProgressContext
from lead_scoring.qualification import QualificationProfile, QualificationSignals
from retrieval.context_builder import KnowledgeContext

from .prompt_templates import PromptTemplates

logger = logging.getLogger(__name__)


FALLBACK_REPLY = "I'd be happy to help you with that. Could you tell me more about your needs?"


@dataclass
class ComposedReply:
    """Reply text plus the progress context after this turn."""
    text: str
    progress: ProgressContext
    used_fallback: bool = False
    error: Optional[str] = None


class ResponseComposer:
    """
    Composes phase-aware replies.

    A failed or empty completion never aborts the turn: the reply falls back
    to a generic clarifying question.
    """

    def __init__(
        self,
        completion: Any,
        brand_name: str = "Leadqual",
        max_tokens: int = 300,
        temperature: float = 0.7,
    ):
        self.completion = completion
        self.brand_name = brand_name
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def compose(
        self,
        phase: Phase,
        lead_score: int,
        profile: QualificationProfile,
        progress: ProgressContext,
        signals: QualificationSignals,
        message: str,
        knowledge: KnowledgeContext,
    ) -> ComposedReply:
        """
        Compose the reply for one turn.

        Args:
            phase: Phase whose template is used
            lead_score: Updated lead score
            profile: Merged qualification profile
            progress: Progress context stored before this turn
            signals: This turn's extracted signals
            message: Raw customer message
            knowledge: Knowledge context for grounding

        Returns:
            ComposedReply
        """
        updated = progress.advance(signals)

        system = PromptTemplates.get_phase_prompt(
            phase,
            lead_score=lead_score,
            message=message,
            context=knowledge.text,
            profile=profile.to_dict(),
            objections=updated.objections_raised,
            brand_name=self.brand_name,
        )

        try:
            text = await self.completion.complete(
                system,
                message,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as e:
            logger.warning(f"Reply composition failed, using fallback: {e}")
            record_composer_fallback()
            return ComposedReply(text=FALLBACK_REPLY, progress=updated, used_fallback=True, error=str(e))

        if not text or not text.strip():
            logger.warning("Empty reply from completion, using fallback")
            record_composer_fallback()
            return ComposedReply(text=FALLBACK_REPLY, progress=updated, used_fallback=True, error="empty completion")

        return ComposedReply(text=text.strip(), progress=updated)
