"""Tests for phase prompts and the response composer."""

import pytest

from lead_scoring.phase_machine import Phase, ProgressContext
from lead_scoring.qualification import QualificationProfile, QualificationSignals
from llm.prompt_templates import PromptTemplates
from llm.response_composer import FALLBACK_REPLY, ResponseComposer
from retrieval.context_builder import ContextBuilder, KnowledgeContext, NO_KNOWLEDGE_CONTEXT
from retrieval.knowledge_search import KnowledgeSnippet

from fakes import FakeCompletion


def compose_args(**overrides):
    args = dict(
        phase=Phase.QUALIFICATION,
        lead_score=30,
        profile=QualificationProfile(budget="10k", pain_points={"churn"}),
        progress=ProgressContext(),
        signals=QualificationSignals(objections=["price"]),
        message="It feels expensive",
        knowledge=KnowledgeContext(text=NO_KNOWLEDGE_CONTEXT),
    )
    args.update(overrides)
    return args


class TestPhasePrompts:
    def test_every_phase_has_a_template(self):
        assert set(PromptTemplates.PHASE_PROMPTS) == set(Phase)

    def test_qualification_prompt_includes_profile(self):
        prompt = PromptTemplates.get_phase_prompt(
            Phase.QUALIFICATION,
            lead_score=30,
            message="We lose deals",
            context="Our CRM tracks every deal.",
            profile={"budget": "10k"},
            brand_name="Acme",
        )
        assert "Acme" in prompt
        assert "Current lead score: 30" in prompt
        assert 'Qualification data: {"budget": "10k"}' in prompt
        assert "Our CRM tracks every deal." in prompt

    def test_objection_prompt_lists_objections(self):
        prompt = PromptTemplates.get_phase_prompt(
            Phase.OBJECTION_HANDLING, lead_score=40, message="hmm", objections=["price", "timing"],
        )
        assert "Objections raised: price, timing" in prompt

    def test_no_objections_and_no_context(self):
        prompt = PromptTemplates.get_phase_prompt(Phase.OBJECTION_HANDLING, lead_score=0, message="hi")
        assert "Objections raised: None" in prompt
        assert NO_KNOWLEDGE_CONTEXT in prompt

    def test_message_with_braces_is_safe(self):
        prompt = PromptTemplates.get_phase_prompt(Phase.GREETING, lead_score=0, message="{profile} {x}")
        assert "Customer message: {profile} {x}" in prompt


class TestResponseComposer:
    async def test_reply_uses_phase_template(self):
        completion = FakeCompletion(replies=["  What does churn cost you today?  "])
        composer = ResponseComposer(completion, brand_name="Acme")

        reply = await composer.compose(**compose_args())

        assert reply.text == "What does churn cost you today?"
        assert not reply.used_fallback
        call = completion.calls[0]
        assert "qualification phase" in call["system"]
        assert call["user_text"] == "It feels expensive"
        assert call["temperature"] == 0.7

    async def test_progress_advances(self):
        composer = ResponseComposer(FakeCompletion())

        reply = await composer.compose(**compose_args(progress=ProgressContext(qualification_progress=20)))

        assert reply.progress.qualification_progress == 30
        assert reply.progress.objections_raised == ["price"]

    async def test_objections_reach_objection_template(self):
        completion = FakeCompletion()
        composer = ResponseComposer(completion)

        await composer.compose(**compose_args(
            phase=Phase.OBJECTION_HANDLING,
            progress=ProgressContext(objections_raised=["timing"]),
        ))

        assert "Objections raised: timing, price" in completion.calls[0]["system"]

    async def test_knowledge_context_in_prompt(self):
        completion = FakeCompletion()
        composer = ResponseComposer(completion)
        knowledge = ContextBuilder().build([
            KnowledgeSnippet(content="Plans start at $99.", source="pricing.md", relevance_score=0.9),
        ])

        await composer.compose(**compose_args(knowledge=knowledge))

        assert "Plans start at $99." in completion.calls[0]["system"]

    @pytest.mark.parametrize("outcome", [RuntimeError("provider down"), "", "   "])
    async def test_fallback_reply(self, outcome):
        composer = ResponseComposer(FakeCompletion(replies=[outcome]))

        reply = await composer.compose(**compose_args(progress=ProgressContext(qualification_progress=40)))

        assert reply.text == FALLBACK_REPLY
        assert reply.used_fallback
        assert reply.progress.qualification_progress == 50


class TestContextBuilder:
    def test_empty_results(self):
        context = ContextBuilder().build([])
        assert context.text == NO_KNOWLEDGE_CONTEXT
        assert context.is_empty
        assert context.message_snippets() == []

    def test_joins_and_truncates_snippets(self):
        long_text = "x" * 500
        context = ContextBuilder().build([
            KnowledgeSnippet(content="First fact.", source="a.md", relevance_score=0.9),
            KnowledgeSnippet(content=long_text, source="b.md", relevance_score=0.8),
        ])

        assert context.text == "First fact.\n\n" + long_text
        stored = context.message_snippets()
        assert stored[0]["content"] == "First fact...."
        assert stored[1]["content"] == "x" * 200 + "..."
        assert stored[1]["source"] == "b.md"
        assert stored[1]["relevance_score"] == 0.8

    def test_near_duplicates_removed(self):
        context = ContextBuilder().build([
            KnowledgeSnippet(content="Plans start at $99 per month", source="a", relevance_score=0.9),
            KnowledgeSnippet(content="plans start at $99 per month", source="b", relevance_score=0.8),
        ])
        assert len(context.snippets) == 1
