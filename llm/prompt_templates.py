"""
Prompt Templates for the lead qualification engine.

One system instruction per sales phase. Every template receives the lead
score, the customer message and the knowledge-base context; some also take
the qualification profile or the objections raised so far.
"""

import json
from typing import Any, Dict, Iterable, Optional

from lead_scoring.phase_machine import Phase
from retrieval.context_builder import NO_KNOWLEDGE_CONTEXT


class PromptTemplates:
    """
    Manages phase-specific prompt templates for the sales agent.
    """

    PHASE_PROMPTS = {
        Phase.GREETING: """You are a friendly sales agent for {brand_name} in the greeting phase. Your goal is to:
1. Welcome the customer warmly
2. Understand their basic needs
3. Transition to qualification phase

Current lead score: {lead_score}
Customer message: {message}

Knowledge base context:
{context}

Be conversational and build rapport. Ask open-ended questions about their needs.""",

        Phase.QUALIFICATION: """You are a consultative sales agent for {brand_name} in the qualification phase. Your goal is to:
1. Understand their pain points and challenges
2. Identify their budget and timeline
3. Determine if they're a decision maker
4. Assess their interest level

Current lead score: {lead_score}
Qualification data: {profile}
Customer message: {message}

Knowledge base context:
{context}

Ask probing questions to understand their situation better. Be consultative, not pushy.""",

        Phase.OBJECTION_HANDLING: """You are a skilled sales agent for {brand_name} handling objections. Your goal is to:
1. Address their concerns empathetically
2. Provide relevant solutions from knowledge base
3. Overcome objections with value propositions
4. Move toward closing or booking

Current lead score: {lead_score}
Objections raised: {objections}
Customer message: {message}

Knowledge base context:
{context}

Address their concerns directly and provide compelling reasons to move forward.""",

        Phase.CLOSING: """You are a sales agent for {brand_name} in the closing phase. Your goal is to:
1. Summarize the value proposition
2. Create urgency if appropriate
3. Ask for the meeting/appointment
4. Handle final objections

Current lead score: {lead_score}
Qualification data: {profile}
Customer message: {message}

Knowledge base context:
{context}

Be confident and direct about next steps. Offer to schedule a meeting. Mention that you can send them a calendar link to book a convenient time.""",

        Phase.BOOKING: """You are a sales agent for {brand_name} in the booking phase. Your goal is to:
1. Confirm meeting details
2. Provide calendar options
3. Confirm contact information
4. Set expectations for the meeting

Current lead score: {lead_score}
Customer message: {message}

Knowledge base context:
{context}

Focus on scheduling logistics and confirming details. Offer to send a calendar booking link for easy scheduling.""",
    }

    @classmethod
    def get_phase_prompt(
        cls,
        phase: Phase,
        lead_score: int,
        message: str,
        context: Optional[str] = None,
        profile: Optional[Dict[str, Any]] = None,
        objections: Optional[Iterable[str]] = None,
        brand_name: str = "Leadqual",
    ) -> str:
        """
        Build the system instruction for a phase.

        Args:
            phase: Conversation phase the reply is written for
            lead_score: Current lead score
            message: Raw customer message
            context: Knowledge-base context; empty falls back to NO_KNOWLEDGE_CONTEXT
            profile: Qualification profile snapshot
            objections: Objections raised so far
            brand_name: Brand to speak for

        Returns:
            Formatted system prompt
        """
        template = cls.PHASE_PROMPTS[phase]
        objection_list = list(objections or [])

        return template.format(
            brand_name=brand_name,
            lead_score=lead_score,
            message=message,
            context=context or NO_KNOWLEDGE_CONTEXT,
            profile=json.dumps(profile or {}, sort_keys=True),
            objections=", ".join(objection_list) if objection_list else "None",
        )
