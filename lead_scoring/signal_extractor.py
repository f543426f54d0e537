"""
Qualification Signal Extractor.

Asks the text-completion provider for a fixed-shape JSON payload describing
the qualification signals in one customer message, and parses the reply
leniently. Completion output is untrusted: malformed payloads degrade to an
empty delta and never raise past this module.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .errors import ExtractionParseError
from .qualification import DecisionMaker, QualificationProfile, QualificationSignals

logger = logging.getLogger(__name__)


@dataclass
class ExtractionResult:
    """Extraction outcome. ``ok`` is False when the delta is a fallback."""
    signals: QualificationSignals
    ok: bool = True
    error: Optional[str] = None
    raw: Optional[str] = None

    @classmethod
    def empty(cls, error: str, raw: Optional[str] = None) -> "ExtractionResult":
        return cls(signals=QualificationSignals(), ok=False, error=error, raw=raw)


class SignalExtractor:
    """
    Extracts qualification signals from customer messages.

    Payload fields (all optional in the reply):
    - painPoints: string[]
    - interests: string[]
    - objections: string[]
    - budgetMentioned / timelineMentioned: bool
    - budget / timeline: free text, used only when the flag is true
    - decisionMakerStatus: "yes" | "no" | "unknown"
    - decisionMakerConfirmed: bool (legacy flag; true means "yes")
    """

    SYSTEM_PROMPT = """Analyze this customer message for lead qualification signals. Extract:
1. Pain points mentioned
2. Interests expressed
3. Objections or concerns raised (price, timing, trust, competitor, etc.)
4. Budget indicators and the budget itself if stated
5. Timeline indicators and the timeline itself if stated
6. Whether the customer says they make the buying decision

Return a JSON object with this structure:
{
  "painPoints": ["pain1", "pain2"],
  "interests": ["interest1", "interest2"],
  "objections": [],
  "budgetMentioned": true,
  "budget": "around $5k per month",
  "timelineMentioned": false,
  "timeline": null,
  "decisionMakerStatus": "unknown",
  "decisionMakerConfirmed": false
}

decisionMakerStatus must be "yes" if they said they decide, "no" if they said someone else decides,
and "unknown" if it was not discussed.

IMPORTANT: Only return valid JSON. Use true/false for boolean values, never undefined or null."""

    # Matches the first {...} block, allowing one level of nesting.
    _JSON_BLOCK = re.compile(r"\{(?:[^{}]|\{[^{}]*\})*\}", re.DOTALL)
    _CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
    # String literals are matched first so their contents are never rewritten.
    _UNDEFINED = re.compile(r'"(?:\\.|[^"\\])*"|\bundefined\b')

    def __init__(
        self,
        completion: Any,
        max_tokens: int = 200,
        temperature: float = 0.3,
    ):
        """
        Initialize the extractor.

        Args:
            completion: TextCompletion provider
            max_tokens: Max tokens for the extraction reply
            temperature: Sampling temperature for extraction
        """
        self.completion = completion
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def extract(
        self,
        message: str,
        profile: Optional[QualificationProfile] = None,
    ) -> ExtractionResult:
        """
        Extract the signal delta for one message.

        Args:
            message: Raw customer message
            profile: Current qualification profile, shown to the model as context

        Returns:
            ExtractionResult; on any failure an all-default delta with ok=False
        """
        try:
            raw = await self.completion.complete(
                self.SYSTEM_PROMPT,
                self._build_user_prompt(message, profile),
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as e:
            logger.warning(f"Signal extraction call failed: {e}")
            return ExtractionResult.empty(error=f"completion failed: {e}")

        try:
            signals = self.parse(raw)
        except ExtractionParseError as e:
            logger.warning(f"Failed to parse extraction payload: {e}. Content: {(raw or '')[:200]}")
            return ExtractionResult.empty(error=str(e), raw=raw)

        return ExtractionResult(signals=signals, raw=raw)

    def _build_user_prompt(self, message: str, profile: Optional[QualificationProfile]) -> str:
        if not profile:
            return message
        known = json.dumps(profile.to_dict())
        return f"Already known about this lead: {known}\n\nCustomer message: {message}"

    @classmethod
    def parse(cls, raw: Optional[str]) -> QualificationSignals:
        """
        Parse a completion reply into signals.

        Field-level problems degrade to defaults. Raises ExtractionParseError
        only when no JSON object can be recovered at all.
        """
        data = cls._load_payload(raw)

        return QualificationSignals(
            pain_points=cls._string_list(data.get("painPoints")),
            interests=cls._string_list(data.get("interests")),
            objections=cls._string_list(data.get("objections")),
            budget_mentioned=cls._strict_bool(data.get("budgetMentioned")),
            timeline_mentioned=cls._strict_bool(data.get("timelineMentioned")),
            decision_maker=cls._decision_maker(data),
            budget=cls._optional_text(data.get("budget")),
            timeline=cls._optional_text(data.get("timeline")),
        )

    @classmethod
    def _load_payload(cls, raw: Optional[str]) -> Dict[str, Any]:
        if not raw or not raw.strip():
            raise ExtractionParseError("empty completion output")

        text = raw.strip()
        fence = cls._CODE_FENCE.search(text)
        if fence:
            text = fence.group(1).strip()

        text = cls._UNDEFINED.sub(lambda m: "null" if m.group() == "undefined" else m.group(), text)

        candidates = [text]
        match = cls._JSON_BLOCK.search(text)
        if match and match.group() != text:
            candidates.append(match.group())

        for candidate in candidates:
            try:
                data = json.loads(candidate)
            except (json.JSONDecodeError, ValueError):
                continue
            if isinstance(data, dict):
                return data

        raise ExtractionParseError("no JSON object found in completion output")

    @staticmethod
    def _string_list(value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        seen = []
        for item in value:
            if isinstance(item, str):
                item = item.strip()
                if item and item not in seen:
                    seen.append(item)
        return seen

    @staticmethod
    def _strict_bool(value: Any) -> bool:
        # "true" strings are accepted; anything else that is not literally True is False.
        if value is True:
            return True
        if isinstance(value, str):
            return value.strip().lower() == "true"
        return False

    @staticmethod
    def _optional_text(value: Any) -> Optional[str]:
        if isinstance(value, str) and value.strip() and value.strip().lower() not in ("null", "none"):
            return value.strip()
        return None

    @classmethod
    def _decision_maker(cls, data: Dict[str, Any]) -> DecisionMaker:
        status = DecisionMaker.from_value(data.get("decisionMakerStatus"))
        if status.is_known:
            return status
        # A bare false is how the model reports "not discussed"; only true is trusted.
        if cls._strict_bool(data.get("decisionMakerConfirmed")):
            return DecisionMaker.YES
        return DecisionMaker.UNKNOWN
