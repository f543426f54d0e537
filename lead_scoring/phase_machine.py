"""
Sales Phase State Machine.

Holds the per-conversation phase and progress context, and decides the next
phase and action once per turn, after the new lead score is known.

Transition rules (evaluated in order, first match wins):
1. greeting -> qualification when the turn adds a new pain point
2. qualification -> closing when the updated score >= 50
3. closing -> booking when the turn adds a new interest (schedule_meeting)
4. any phase -> booking when the message shows scheduling intent and the
   updated score >= 40 (schedule_meeting). Overrides rules 1-3.
5. objection_handling -> closing when the updated score >= 50

objection_handling has no automatic entry; it is reached only through
force_phase. No rule moves a conversation to an earlier phase.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import InvalidPhaseTransition
from .qualification import QualificationSignals, ScoreResult

logger = logging.getLogger(__name__)


class Phase(Enum):
    """Sales conversation phases, in forward order."""
    GREETING = "greeting"
    QUALIFICATION = "qualification"
    OBJECTION_HANDLING = "objection_handling"
    CLOSING = "closing"
    BOOKING = "booking"

    @property
    def ordinal(self) -> int:
        return _PHASE_ORDER.index(self)

    @classmethod
    def parse(cls, value: str) -> "Phase":
        try:
            return cls(value)
        except ValueError:
            raise InvalidPhaseTransition(f"Unknown phase: {value!r}")


_PHASE_ORDER = list(Phase)


class AgentAction(Enum):
    """Action emitted alongside the next phase."""
    CONTINUE_CONVERSATION = "continue_conversation"
    SCHEDULE_MEETING = "schedule_meeting"


SCHEDULING_KEYWORDS = (
    "schedule", "meeting", "call", "demo", "consultation", "book", "calendar",
    "available", "time", "when", "appointment", "discuss", "talk",
)


def has_scheduling_intent(text: str) -> bool:
    """Case-insensitive substring match against the scheduling vocabulary."""
    lowered = (text or "").lower()
    return any(keyword in lowered for keyword in SCHEDULING_KEYWORDS)


@dataclass
class ProgressContext:
    """Per-conversation progress. Sets and booleans only ever grow."""
    qualification_progress: int = 0
    objections_raised: List[str] = field(default_factory=list)
    pain_points_identified: List[str] = field(default_factory=list)
    interests_expressed: List[str] = field(default_factory=list)
    budget_mentioned: bool = False
    timeline_mentioned: bool = False
    decision_maker_confirmed: bool = False  # yes or no, once known

    PROGRESS_STEP = 10
    PROGRESS_MAX = 100

    def advance(self, signals: QualificationSignals) -> "ProgressContext":
        """Return the context after one turn: +10 progress and sticky unions."""
        return ProgressContext(
            qualification_progress=min(self.PROGRESS_MAX, self.qualification_progress + self.PROGRESS_STEP),
            objections_raised=_union(self.objections_raised, signals.objections),
            pain_points_identified=_union(self.pain_points_identified, signals.pain_points),
            interests_expressed=_union(self.interests_expressed, signals.interests),
            budget_mentioned=self.budget_mentioned or signals.budget_mentioned,
            timeline_mentioned=self.timeline_mentioned or signals.timeline_mentioned,
            decision_maker_confirmed=self.decision_maker_confirmed or signals.decision_maker_confirmed,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "qualification_progress": self.qualification_progress,
            "objections_raised": list(self.objections_raised),
            "pain_points_identified": list(self.pain_points_identified),
            "interests_expressed": list(self.interests_expressed),
            "budget_mentioned": self.budget_mentioned,
            "timeline_mentioned": self.timeline_mentioned,
            "decision_maker_confirmed": self.decision_maker_confirmed,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ProgressContext":
        data = data or {}
        return cls(
            qualification_progress=int(data.get("qualification_progress") or 0),
            objections_raised=list(data.get("objections_raised") or []),
            pain_points_identified=list(data.get("pain_points_identified") or []),
            interests_expressed=list(data.get("interests_expressed") or []),
            budget_mentioned=bool(data.get("budget_mentioned")),
            timeline_mentioned=bool(data.get("timeline_mentioned")),
            decision_maker_confirmed=bool(data.get("decision_maker_confirmed")),
        )


def _union(existing: List[str], incoming: List[str]) -> List[str]:
    merged = list(existing)
    for item in incoming:
        if item not in merged:
            merged.append(item)
    return merged


@dataclass
class TransitionResult:
    """Next phase, action and the rule that produced them."""
    previous_phase: Phase
    next_phase: Phase
    action: AgentAction
    rule: str

    @property
    def changed(self) -> bool:
        return self.next_phase is not self.previous_phase

    @property
    def schedule_meeting(self) -> bool:
        return self.action is AgentAction.SCHEDULE_MEETING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "previous_phase": self.previous_phase.value,
            "next_phase": self.next_phase.value,
            "action": self.action.value,
            "rule": self.rule,
        }


class PhaseStateMachine:
    """Applies the transition policy for one turn."""

    def __init__(self, closing_threshold: int = 50, scheduling_override_threshold: int = 40):
        self.closing_threshold = closing_threshold
        self.scheduling_override_threshold = scheduling_override_threshold

    def transition(self, current: Phase, score: ScoreResult, message: str) -> TransitionResult:
        """
        Decide the next phase and action.

        Args:
            current: Phase stored before this turn
            score: This turn's scoring outcome (carries the updated score and new signals)
            message: Raw customer message text

        Returns:
            TransitionResult
        """
        if has_scheduling_intent(message) and score.score >= self.scheduling_override_threshold:
            result = self._result(current, Phase.BOOKING, AgentAction.SCHEDULE_MEETING, "scheduling_intent")
        else:
            result = self._phase_rule(current, score)

        if result.next_phase.ordinal < current.ordinal:
            raise InvalidPhaseTransition(
                f"Transition {current.value} -> {result.next_phase.value} moves backward"
            )

        if result.changed:
            logger.info(f"Phase {current.value} -> {result.next_phase.value} ({result.rule})")
        return result

    def _phase_rule(self, current: Phase, score: ScoreResult) -> TransitionResult:
        if current is Phase.GREETING:
            if score.new_pain_points:
                return self._result(current, Phase.QUALIFICATION, AgentAction.CONTINUE_CONVERSATION, "pain_point_identified")
            return self._stay(current)

        if current is Phase.QUALIFICATION:
            if score.score >= self.closing_threshold:
                return self._result(current, Phase.CLOSING, AgentAction.CONTINUE_CONVERSATION, "score_threshold")
            return self._stay(current)

        if current is Phase.OBJECTION_HANDLING:
            if score.score >= self.closing_threshold:
                return self._result(current, Phase.CLOSING, AgentAction.CONTINUE_CONVERSATION, "objections_resolved")
            return self._stay(current)

        if current is Phase.CLOSING:
            if score.new_interests:
                return self._result(current, Phase.BOOKING, AgentAction.SCHEDULE_MEETING, "interest_in_closing")
            return self._stay(current)

        if current is Phase.BOOKING:
            return self._stay(current)

        raise InvalidPhaseTransition(f"Unhandled phase: {current!r}")

    def force_phase(self, current: Phase, target: Phase) -> TransitionResult:
        """
        Operator override. Only forward (or same-phase) moves are allowed.

        Raises:
            InvalidPhaseTransition: if target precedes current
        """
        if target.ordinal < current.ordinal:
            raise InvalidPhaseTransition(
                f"Cannot move from {current.value} back to {target.value}"
            )
        logger.info(f"Phase forced {current.value} -> {target.value}")
        return self._result(current, target, AgentAction.CONTINUE_CONVERSATION, "operator_override")

    @staticmethod
    def _result(current: Phase, target: Phase, action: AgentAction, rule: str) -> TransitionResult:
        return TransitionResult(previous_phase=current, next_phase=target, action=action, rule=rule)

    @staticmethod
    def _stay(current: Phase) -> TransitionResult:
        return TransitionResult(
            previous_phase=current,
            next_phase=current,
            action=AgentAction.CONTINUE_CONVERSATION,
            rule="no_change",
        )
