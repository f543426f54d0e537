"""
Qualification profile, merge policy and lead scoring.

The score is cumulative: each turn adds an increment computed from the
signals that are new relative to the stored profile, and the result is
clamped to 0-100. There is no decay path.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


class LeadStatus(Enum):
    """Lead status, derived from the score."""
    PROSPECT = "prospect"      # Score < 50
    NURTURING = "nurturing"    # Score 50-79
    QUALIFIED = "qualified"    # Score >= 80


class DecisionMaker(Enum):
    """Tri-state decision-maker flag. UNKNOWN means never mentioned."""
    UNKNOWN = "unknown"
    YES = "yes"
    NO = "no"

    @classmethod
    def from_value(cls, value: Any) -> "DecisionMaker":
        """Read a stored or extracted value; anything unrecognised is UNKNOWN."""
        if value is True:
            return cls.YES
        if value is False:
            return cls.NO
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in ("yes", "true"):
                return cls.YES
            if lowered in ("no", "false"):
                return cls.NO
        return cls.UNKNOWN

    @property
    def is_known(self) -> bool:
        return self is not DecisionMaker.UNKNOWN


@dataclass
class QualificationSignals:
    """Signals extracted from a single customer message."""
    pain_points: List[str] = field(default_factory=list)
    interests: List[str] = field(default_factory=list)
    objections: List[str] = field(default_factory=list)
    budget_mentioned: bool = False
    timeline_mentioned: bool = False
    decision_maker: DecisionMaker = DecisionMaker.UNKNOWN
    budget: Optional[str] = None
    timeline: Optional[str] = None

    @property
    def decision_maker_confirmed(self) -> bool:
        return self.decision_maker.is_known

    @property
    def is_empty(self) -> bool:
        return not (
            self.pain_points or self.interests or self.objections
            or self.budget_mentioned or self.timeline_mentioned
            or self.decision_maker_confirmed
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pain_points": list(self.pain_points),
            "interests": list(self.interests),
            "objections": list(self.objections),
            "budget_mentioned": self.budget_mentioned,
            "timeline_mentioned": self.timeline_mentioned,
            "decision_maker": self.decision_maker.value,
            "budget": self.budget,
            "timeline": self.timeline,
        }


@dataclass
class QualificationProfile:
    """Cumulative qualification profile for one lead."""
    budget: Optional[str] = None
    timeline: Optional[str] = None
    pain_points: Set[str] = field(default_factory=set)
    interests: Set[str] = field(default_factory=set)
    company_size: Optional[str] = None
    decision_maker: DecisionMaker = DecisionMaker.UNKNOWN

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-safe dictionary."""
        return {
            "budget": self.budget,
            "timeline": self.timeline,
            "pain_points": sorted(self.pain_points),
            "interests": sorted(self.interests),
            "company_size": self.company_size,
            "decision_maker": self.decision_maker.value,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "QualificationProfile":
        data = data or {}
        return cls(
            budget=data.get("budget"),
            timeline=data.get("timeline"),
            pain_points=set(data.get("pain_points") or []),
            interests=set(data.get("interests") or []),
            company_size=data.get("company_size"),
            decision_maker=DecisionMaker.from_value(data.get("decision_maker")),
        )


@dataclass
class ScoreResult:
    """Outcome of applying one turn's signals to a lead."""
    previous_score: int
    score: int
    increment: int
    status: LeadStatus
    profile: QualificationProfile
    new_pain_points: List[str] = field(default_factory=list)
    new_interests: List[str] = field(default_factory=list)
    budget_newly_mentioned: bool = False
    timeline_newly_mentioned: bool = False
    decision_maker_newly_confirmed: bool = False
    score_breakdown: Dict[str, int] = field(default_factory=dict)

    @property
    def signal_count(self) -> int:
        return sum([
            bool(self.new_pain_points),
            bool(self.new_interests),
            self.budget_newly_mentioned,
            self.timeline_newly_mentioned,
            self.decision_maker_newly_confirmed,
        ])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "previous_score": self.previous_score,
            "score": self.score,
            "increment": self.increment,
            "status": self.status.value,
            "new_pain_points": self.new_pain_points,
            "new_interests": self.new_interests,
            "score_breakdown": self.score_breakdown,
        }


class QualificationScorer:
    """
    Merges extracted signals into the profile and scores the lead.

    Scoring Rules (per turn, only for signals new to the profile):
    - New pain point(s): +10
    - New interest(s): +15
    - Budget first mentioned: +20
    - Timeline first mentioned: +15
    - Decision maker confirmed (yes or no): +25
    - 3+ of the above in the same turn: +10 bonus

    Thresholds:
    - Score >= 80: qualified
    - Score 50-79: nurturing
    - Score < 50: prospect
    """

    SCORING_RULES = {
        "new_pain_point": 10,
        "new_interest": 15,
        "budget_mentioned": 20,
        "timeline_mentioned": 15,
        "decision_maker_confirmed": 25,
        "multi_signal_bonus": 10,
    }

    MULTI_SIGNAL_MIN = 3
    MAX_SCORE = 100
    MIN_SCORE = 0

    def __init__(self, qualified_threshold: int = 80, nurturing_threshold: int = 50):
        self.qualified_threshold = qualified_threshold
        self.nurturing_threshold = nurturing_threshold

    def status_for(self, score: int) -> LeadStatus:
        """Map a score to a lead status."""
        if score >= self.qualified_threshold:
            return LeadStatus.QUALIFIED
        if score >= self.nurturing_threshold:
            return LeadStatus.NURTURING
        return LeadStatus.PROSPECT

    def apply(
        self,
        previous_score: int,
        profile: QualificationProfile,
        signals: QualificationSignals,
    ) -> ScoreResult:
        """
        Merge signals into the profile and compute the new score.

        Args:
            previous_score: Stored lead score
            profile: Stored qualification profile (not mutated)
            signals: This turn's extraction

        Returns:
            ScoreResult with the merged profile and clamped score
        """
        new_pain_points = sorted(set(signals.pain_points) - profile.pain_points)
        new_interests = sorted(set(signals.interests) - profile.interests)
        budget_new = signals.budget_mentioned and profile.budget is None
        timeline_new = signals.timeline_mentioned and profile.timeline is None
        decision_new = signals.decision_maker_confirmed and not profile.decision_maker.is_known

        merged = QualificationProfile(
            budget=self._merge_value(profile.budget, signals.budget, signals.budget_mentioned),
            timeline=self._merge_value(profile.timeline, signals.timeline, signals.timeline_mentioned),
            pain_points=profile.pain_points | set(signals.pain_points),
            interests=profile.interests | set(signals.interests),
            company_size=profile.company_size,
            decision_maker=(
                signals.decision_maker if signals.decision_maker_confirmed
                else profile.decision_maker
            ),
        )

        breakdown: Dict[str, int] = {}
        if new_pain_points:
            breakdown["new_pain_point"] = self.SCORING_RULES["new_pain_point"]
        if new_interests:
            breakdown["new_interest"] = self.SCORING_RULES["new_interest"]
        if budget_new:
            breakdown["budget_mentioned"] = self.SCORING_RULES["budget_mentioned"]
        if timeline_new:
            breakdown["timeline_mentioned"] = self.SCORING_RULES["timeline_mentioned"]
        if decision_new:
            breakdown["decision_maker_confirmed"] = self.SCORING_RULES["decision_maker_confirmed"]
        if len(breakdown) >= self.MULTI_SIGNAL_MIN:
            breakdown["multi_signal_bonus"] = self.SCORING_RULES["multi_signal_bonus"]

        increment = sum(breakdown.values())
        score = max(self.MIN_SCORE, min(self.MAX_SCORE, previous_score + increment))
        # Stored scores outside the range are never pulled down.
        score = max(score, previous_score)

        if increment:
            logger.debug(f"Score {previous_score} -> {score} ({breakdown})")

        return ScoreResult(
            previous_score=previous_score,
            score=score,
            increment=increment,
            status=self.status_for(score),
            profile=merged,
            new_pain_points=new_pain_points,
            new_interests=new_interests,
            budget_newly_mentioned=budget_new,
            timeline_newly_mentioned=timeline_new,
            decision_maker_newly_confirmed=decision_new,
            score_breakdown=breakdown,
        )

    @staticmethod
    def _merge_value(stored: Optional[str], extracted: Optional[str], mentioned: bool) -> Optional[str]:
        """Overwrite a free-text value only when its flag is set this turn."""
        if not mentioned:
            return stored
        if extracted:
            return extracted
        return stored if stored is not None else "mentioned"
