"""Collaborator doubles shared by the test modules."""

import asyncio
import json
from typing import Any, List, Optional

from booking.google_calendar import BookingResult, MeetingDetails
from lead_scoring.errors import BookingFailure
from lead_scoring.signal_extractor import SignalExtractor
from retrieval.knowledge_search import KnowledgeSnippet


class FakeCompletion:
    """
    Scripted TextCompletion.

    Extraction calls pop from ``extractions`` (dicts are JSON-encoded,
    exceptions are raised); reply calls pop from ``replies``.
    """

    def __init__(self, extractions: Optional[List[Any]] = None, replies: Optional[List[Any]] = None,
                 default_reply: str = "Thanks for sharing. What matters most to your team?"):
        self.extractions = list(extractions or [])
        self.replies = list(replies or [])
        self.default_reply = default_reply
        self.calls = []

    async def complete(self, system, user_text, max_tokens=None, temperature=None):
        self.calls.append({"system": system, "user_text": user_text, "temperature": temperature})
        await asyncio.sleep(0)

        if system == SignalExtractor.SYSTEM_PROMPT:
            item = self.extractions.pop(0) if self.extractions else {}
        else:
            item = self.replies.pop(0) if self.replies else self.default_reply

        if isinstance(item, BaseException):
            raise item
        if isinstance(item, dict):
            return json.dumps(item)
        return item

    @property
    def reply_calls(self):
        return [c for c in self.calls if c["system"] != SignalExtractor.SYSTEM_PROMPT]


class FakeKnowledgeSearch:
    def __init__(self, snippets: Optional[List[KnowledgeSnippet]] = None, error: Optional[Exception] = None):
        self.snippets = snippets or []
        self.error = error
        self.queries = []

    async def search(self, query, limit=3):
        self.queries.append(query)
        if self.error:
            raise self.error
        return self.snippets[:limit]


class FakeCalendar:
    def __init__(self, fail: bool = False, errors: Optional[List[Exception]] = None):
        self.fail = fail
        self.errors = list(errors or [])
        self.created: List[MeetingDetails] = []

    async def create_event(self, details: MeetingDetails) -> BookingResult:
        if self.fail:
            raise BookingFailure("Google Calendar API error: Forbidden")
        if self.errors:
            raise self.errors.pop(0)
        self.created.append(details)
        n = len(self.created)
        return BookingResult(event_id=f"evt_{n}", meeting_link=f"https://meet.google.com/abc-{n}")
