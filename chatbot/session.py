"""
Chat Session — one visitor's conversation with the CV assistant
===============================================================
Wires the engine components together for a single session:

  query → classify_intent (advisory)
        → KnowledgeIndex.find_relevant_topics → calculate_confidence
        → FallbackHandler.should_trigger_fallback
            fallback: rephrase / email-offer copy (turn not recorded)
            answer:   ConversationManager.generate_response
                      → StyleManager.format_response → add_message

Each session owns its own StyleManager, ConversationManager and
FallbackHandler; only the (read-only) KnowledgeIndex is shared.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Optional

from chatbot.conversation_manager import ConversationManager
from chatbot.exceptions import StyleNotSetError
from chatbot.fallback_handler import DEFAULT_CONTACT_EMAIL, FallbackHandler
from chatbot.intent_classifier import IntentLabel, classify_intent
from chatbot.knowledge_index import KnowledgeIndex
from chatbot.models import Style, TopicMatch
from chatbot.style_manager import DEFAULT_OWNER_NAME, StyleManager

logger = logging.getLogger("chatbot.session")


@dataclass
class ChatReply:
    answer: str
    confidence: float
    matched_topic_ids: list = field(default_factory=list)
    intent: str = IntentLabel.CONVERSATIONAL_SYNTHESIS.value
    source: str = "knowledge_base"        # knowledge_base | fallback | generated
    fallback_action: Optional[str] = None
    fallback_reason: Optional[str] = None
    ui_action: str = "show_message"
    show_fallback_button: bool = False

    def to_dict(self) -> dict:
        return {
            "answer": self.answer,
            "confidence": self.confidence,
            "matched_topic_ids": list(self.matched_topic_ids),
            "intent": self.intent,
            "source": self.source,
            "fallback_action": self.fallback_action,
            "fallback_reason": self.fallback_reason,
            "ui_action": self.ui_action,
            "show_fallback_button": self.show_fallback_button,
        }


class ChatSession:
    """Session-scoped engine facade."""

    def __init__(self, index: KnowledgeIndex, rng: Optional[random.Random] = None,
                 contact_email: Optional[str] = None):
        self.index = index
        metadata = index.metadata
        owner = metadata.name if metadata else DEFAULT_OWNER_NAME
        contact = contact_email or (metadata.contact_email if metadata else None) or DEFAULT_CONTACT_EMAIL

        self.style_manager = StyleManager(owner_name=owner, rng=rng)
        self.conversation = ConversationManager(style_manager=self.style_manager)
        self.fallback = FallbackHandler(self.style_manager, self.conversation, contact_email=contact)

    @property
    def session_id(self) -> str:
        return self.conversation.session_id

    @property
    def style(self) -> Optional[Style]:
        return self.conversation.current_style

    def set_style(self, style) -> str:
        """Select the session style; returns its greeting.

        Raises:
            InvalidStyleError: unknown style id.
        """
        resolved = self.conversation.set_style(style)
        self.style_manager.set_style(resolved)
        return self.style_manager.get_greeting(resolved)

    # ── Query pipeline ───────────────────────────────────────────────

    def analyze(self, text: str) -> tuple:
        """Return (intent, matches, confidence) without touching session state."""
        intent = classify_intent(text)
        matches = self.index.find_relevant_topics(text)
        confidence = self.index.calculate_confidence(matches)
        return intent, matches, confidence

    def process_message(self, text: str) -> ChatReply:
        """Answer one user message.

        Raises:
            StyleNotSetError: no style selected for this session.
        """
        style = self.style
        if style is None:
            raise StyleNotSetError()

        intent, matches, confidence = self.analyze(text)
        decision = self.fallback.should_trigger_fallback(confidence, text, matches)

        if decision.should_fallback:
            fallback = self.fallback.generate_fallback_response(decision.action, style)
            logger.info(
                f"Fallback ({decision.reason.value} → {decision.action.value}) "
                f"in session {self.session_id}"
            )
            return ChatReply(
                answer=fallback.message,
                confidence=confidence,
                matched_topic_ids=[m.topic_id for m in matches],
                intent=intent.value,
                source="fallback",
                fallback_action=decision.action.value,
                fallback_reason=decision.reason.value,
                ui_action=fallback.ui_action,
                show_fallback_button=fallback.show_fallback_button,
            )

        return self.record_answer(text, self.conversation.generate_response(text, matches, style),
                                  matches, confidence, intent=intent)

    def record_answer(self, text: str, answer: str, matches: list[TopicMatch], confidence: float,
                      intent: Optional[IntentLabel] = None, source: str = "knowledge_base",
                      topic_ids: Optional[list] = None) -> ChatReply:
        """Format an answer for the session style and log it into history."""
        formatted = self.style_manager.format_response(answer, self.style)
        ids = topic_ids if topic_ids is not None else [m.topic_id for m in matches]
        self.conversation.add_message(text, formatted, ids, confidence)
        return ChatReply(
            answer=formatted,
            confidence=confidence,
            matched_topic_ids=list(ids),
            intent=(intent or classify_intent(text)).value,
            source=source,
        )

    # ── Handoff / housekeeping ───────────────────────────────────────

    def request_contact(self, name: str, email: str, original_query: str) -> str:
        """mailto: link for contacting the portfolio owner directly."""
        return self.fallback.generate_mailto_link(name, email, original_query, self.style or Style.DEVELOPER)

    def get_greeting(self) -> str:
        return self.style_manager.get_greeting(self.style)

    def get_stats(self) -> dict:
        stats = self.conversation.get_conversation_stats()
        stats["fallback"] = self.fallback.get_fallback_stats()
        return stats

    def reset(self):
        self.conversation.clear_history()
        self.fallback.reset_fallback_attempts()
