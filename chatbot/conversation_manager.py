"""
Conversation Manager — bounded history and answer composition
=============================================================
Owns one chat session: the style selected for it, a FIFO history of the
last 25 exchanges, and the logic that turns ranked topic matches into a
single styled answer.

Answer composition:
  no matches     → style fallback copy (intro + request)
  one match      → the topic's canned response for the style
  several        → intro + top-3 responses joined by a style connector
Then, if the previous related exchange was about the same area, a short
back-reference ("Following up on what we talked about, ...") is prepended.

Storage: in-memory, one instance per session. Nothing is shared between
sessions, so no locking is needed.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from chatbot.exceptions import InvalidStyleError, StyleNotSetError
from chatbot.models import ConversationTurn, Style, TopicMatch, topics_related
from chatbot.style_manager import StyleManager

logger = logging.getLogger("chatbot.conversation")


# ── Composition copy ─────────────────────────────────────────────────────

CONNECTORS = MappingProxyType({
    Style.HR: "Additionally,",
    Style.DEVELOPER: "Also,",
    Style.FRIEND: "Oh, and",
})

MULTI_TOPIC_INTROS = MappingProxyType({
    Style.HR: "Regarding your question,",
    Style.DEVELOPER: "Great question!",
    Style.FRIEND: "Oh, that's a good one! 😊",
})

CONTEXTUAL_PHRASES = MappingProxyType({
    Style.HR: "Building on our previous discussion,",
    Style.DEVELOPER: "Following up on what we talked about,",
    Style.FRIEND: "Speaking of what we just discussed,",
})

# (predicate on the previous user message, phrase per style); first hit wins
SPECIFIC_CONTEXTUAL_PHRASES = (
    (
        lambda text: "more about" in text or "tell me more" in text,
        {
            Style.HR: "To elaborate further,",
            Style.DEVELOPER: "Going deeper into that,",
            Style.FRIEND: "Oh, you want to know more! 😊",
        },
    ),
    (
        lambda text: "how" in text and ("work" in text or "use" in text),
        {
            Style.HR: "Regarding the implementation details,",
            Style.DEVELOPER: "As for how I work with that,",
            Style.FRIEND: "Great question about the how-to! 🤔",
        },
    ),
    (
        lambda text: "example" in text or "show me" in text,
        {
            Style.HR: "To provide a concrete example,",
            Style.DEVELOPER: "Here's a practical example:",
            Style.FRIEND: "Oh, you want to see it in action! 🚀",
        },
    ),
)

_TECHNICAL_TOPIC_MARKERS = ("exp", "experience", "skill", "tech")
_TECHNICAL_RESPONSE_MARKERS = ("experience", "years", "work", "develop", "code", "build")

# Query-type heuristics, first match wins
QUERY_TYPES = (
    ("follow_up", ("more", "detail", "elaborate")),
    ("request_explanation", ("tell me", "show me", "explain")),
    ("request_example", ("example", "demo", "sample")),
    ("question", ("how", "what", "why")),
)

MAX_FOLLOW_UP_SUGGESTIONS = 2


def classify_query(query) -> str:
    if not isinstance(query, str):
        return "general"
    lowered = query.lower()
    for query_type, markers in QUERY_TYPES:
        if any(marker in lowered for marker in markers):
            return query_type
    return "general"


def is_related_topic(last_topic: str, response: str) -> bool:
    """Does a response text plausibly continue the previous topic?

    True when a segment of the topic id (split on . _ -) longer than two
    characters appears in the response, or when the topic is an
    experience/skills topic and the response reads as technical.
    """
    topic_lower = last_topic.lower()
    response_lower = response.lower()

    segments = topic_lower.replace(".", " ").replace("_", " ").replace("-", " ").split()
    if any(len(segment) > 2 and segment in response_lower for segment in segments):
        return True

    is_technical_topic = any(marker in topic_lower for marker in _TECHNICAL_TOPIC_MARKERS)
    is_technical_response = any(marker in response_lower for marker in _TECHNICAL_RESPONSE_MARKERS)
    return is_technical_topic and is_technical_response


@dataclass
class ContextAwareResponse:
    response: str
    context_used: bool
    context_size: int
    conversation_flow: str      # new_topic | topic_continuation | topic_expansion | topic_change
    topic_continuity: float
    query_type: str
    follow_up_suggestions: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "response": self.response,
            "context_used": self.context_used,
            "context_size": self.context_size,
            "conversation_flow": self.conversation_flow,
            "topic_continuity": self.topic_continuity,
            "query_type": self.query_type,
            "follow_up_suggestions": list(self.follow_up_suggestions),
        }


# ── Conversation Manager ─────────────────────────────────────────────────


class ConversationManager:
    """One chat session's history, style, and answer composition."""

    MAX_HISTORY_SIZE = 25
    MAX_CONTEXT_SIZE = 5
    MAX_COMBINED_TOPICS = 3
    BACK_REFERENCE_WINDOW = 3

    def __init__(self, style_manager: Optional[StyleManager] = None,
                 max_history_size: Optional[int] = None,
                 max_context_size: Optional[int] = None):
        self.style_manager = style_manager or StyleManager()
        self.max_history_size = self.MAX_HISTORY_SIZE if max_history_size is None else max_history_size
        self.max_context_size = self.MAX_CONTEXT_SIZE if max_context_size is None else max_context_size
        self._history: deque[ConversationTurn] = deque(maxlen=self.max_history_size)
        self.current_style: Optional[Style] = None
        self.session_id = self._new_session_id()

    @staticmethod
    def _new_session_id() -> str:
        return f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"

    # ── Style ────────────────────────────────────────────────────────

    def set_style(self, style) -> Style:
        resolved = Style.parse(style)
        if resolved is None:
            raise InvalidStyleError(style)
        if resolved != self.current_style:
            logger.info(f"Session {self.session_id} style → {resolved.value}")
        self.current_style = resolved
        return resolved

    # ── History ──────────────────────────────────────────────────────

    @property
    def history(self) -> list[ConversationTurn]:
        return list(self._history)

    def add_message(self, user_message: str, bot_response: str,
                    matched_topic_ids: Optional[Iterable[str]] = None,
                    confidence: float = 0.0) -> ConversationTurn:
        """Record a completed exchange. The oldest turn is evicted past the cap."""
        turn = ConversationTurn(
            user_message=(user_message or "").strip(),
            bot_response=(bot_response or "").strip(),
            matched_topic_ids=list(matched_topic_ids or []),
            confidence=confidence,
            style=self.current_style.value if self.current_style else None,
        )
        self._history.append(turn)
        return turn

    def get_recent_history(self, count: int = 5) -> list[ConversationTurn]:
        if count <= 0:
            return []
        return list(self._history)[-count:]

    def get_context(self, topics: Optional[Iterable[str]] = None,
                    limit: Optional[int] = None) -> list[ConversationTurn]:
        """Turns relevant to ``topics``, oldest first, at most ``limit`` of them.

        Without topics (or history) this is simply the last ``limit`` turns.
        A turn is relevant when any of its matched topics shares an id or
        category with any requested topic. When nothing is relevant the
        most recent turns are returned instead.
        """
        limit = self.max_context_size if limit is None else limit
        if limit <= 0:
            return []

        topics = [t for t in (topics or []) if t]
        history = list(self._history)
        if not topics or not history:
            return history[-limit:]

        related: list[ConversationTurn] = []
        for turn in reversed(history):
            if len(related) >= limit:
                break
            if any(topics_related(seen, current) for seen in turn.matched_topic_ids for current in topics):
                related.append(turn)

        if not related:
            return history[-limit:]
        related.reverse()
        return related

    def clear_history(self):
        self._history.clear()
        self.session_id = self._new_session_id()
        logger.info(f"History cleared, new session {self.session_id}")

    # ── Response generation ──────────────────────────────────────────

    def _require_style(self, style) -> Style:
        target = self.current_style if style is None else style
        if target is None:
            raise StyleNotSetError()
        resolved = Style.parse(target)
        if resolved is None:
            logger.warning(f"Unknown style {target!r}, answering in developer style")
            return Style.DEVELOPER
        return resolved

    def generate_response(self, query: str, matches: Optional[list[TopicMatch]], style=None) -> str:
        """Compose a styled answer from ranked matches.

        Raises:
            StyleNotSetError: no style given and none selected for the session.
        """
        resolved = self._require_style(style)

        if not matches:
            return self.generate_fallback_response(resolved)

        current_topics = [m.topic_id for m in matches]
        ranked = sorted(matches, key=lambda m: m.score, reverse=True)

        if len(ranked) == 1:
            response = ranked[0].topic.responses.for_style(resolved)
        else:
            responses = [m.topic.responses.for_style(resolved) for m in ranked[:self.MAX_COMBINED_TOPICS]]
            joined = f" {CONNECTORS[resolved]} ".join(responses)
            response = f"{MULTI_TOPIC_INTROS[resolved]} {joined}"

        return self._add_contextual_elements(response, resolved, current_topics)

    def generate_fallback_response(self, style) -> str:
        copy = self.style_manager.get_fallback_messages(style)
        return f"{copy['intro']} {copy['request']}"

    def _add_contextual_elements(self, response: str, style: Style, current_topics: list[str]) -> str:
        context = self.get_context(current_topics, self.BACK_REFERENCE_WINDOW)
        if not context or not current_topics:
            return response

        last_topic = context[-1].primary_topic_id
        if not last_topic:
            return response
        if not any(topics_related(topic, last_topic) for topic in current_topics):
            return response
        if not is_related_topic(last_topic, response):
            return response

        phrase = self._specific_contextual_phrase(context, style) or CONTEXTUAL_PHRASES[style]
        return f"{phrase} {response}"

    @staticmethod
    def _specific_contextual_phrase(context: list[ConversationTurn], style: Style) -> Optional[str]:
        last_message = context[-1].user_message.lower() if context else ""
        if not last_message:
            return None
        for matches_pattern, phrases in SPECIFIC_CONTEXTUAL_PHRASES:
            if matches_pattern(last_message):
                return phrases[style]
        return None

    # ── Context-aware response ───────────────────────────────────────

    def generate_context_aware_response(self, query: str, matches: Optional[list[TopicMatch]],
                                        style=None) -> ContextAwareResponse:
        resolved = self._require_style(style)
        matches = matches or []
        current_topics = [m.topic_id for m in matches]

        context = self.get_context(current_topics, self.max_context_size)
        response = self.generate_response(query, matches, resolved)
        flow, continuity = self.analyze_conversation_flow(context, current_topics)

        return ContextAwareResponse(
            response=response,
            context_used=bool(context),
            context_size=len(context),
            conversation_flow=flow,
            topic_continuity=continuity,
            query_type=classify_query(query),
            follow_up_suggestions=self.generate_follow_up_suggestions(matches, resolved),
        )

    @staticmethod
    def analyze_conversation_flow(context: list[ConversationTurn], current_topics: list[str]) -> tuple:
        """Return (flow label, continuity score in [0, 1])."""
        if not context:
            return "new_topic", 0.0

        recent = {topic for turn in context for topic in turn.matched_topic_ids}
        continuity = sum(1 for t in current_topics if t in recent) / max(len(current_topics), 1)

        if continuity > 0.5:
            return "topic_continuation", continuity
        if continuity > 0:
            return "topic_expansion", continuity
        return "topic_change", continuity

    @staticmethod
    def generate_follow_up_suggestions(matches: list[TopicMatch], style: Style) -> list[str]:
        suggestions = []
        for match in matches[:MAX_FOLLOW_UP_SUGGESTIONS]:
            follow_up = match.topic.details.get("follow_up")
            if isinstance(follow_up, Mapping) and follow_up.get(style.value):
                suggestions.append(follow_up[style.value])
        return suggestions

    # ── Stats ────────────────────────────────────────────────────────

    def get_conversation_stats(self) -> dict:
        history = list(self._history)
        topics_seen = dict.fromkeys(topic for turn in history for topic in turn.matched_topic_ids)
        return {
            "session_id": self.session_id,
            "message_count": len(history),
            "current_style": self.current_style.value if self.current_style else None,
            "average_confidence": (
                sum(turn.confidence for turn in history) / len(history) if history else 0
            ),
            "topics_discussed": list(topics_seen),
        }
