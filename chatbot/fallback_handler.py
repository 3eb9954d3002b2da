"""
Fallback Handler — rephrase / human-handoff escalation
======================================================
Decides when an answer is too weak to show and walks each query through a
two-step ladder:

  NONE ──(1st failure)──▶ REPHRASE_REQUESTED ──(2nd+ failure)──▶ EMAIL_OFFERED

Attempts are keyed by a normalized form of the query and never expire on
their own; a session escalates permanently for a given question until
``reset_fallback_attempts()`` is called (new session).

Also builds the ``mailto:`` handoff link, sanitizing every user-supplied
string before it is embedded.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Optional
from urllib.parse import quote

from chatbot.exceptions import InvalidInputError
from chatbot.models import Style

logger = logging.getLogger("chatbot.fallback")

DEFAULT_CONTACT_EMAIL = "serhii@example.com"


class FallbackAction(str, Enum):
    REPHRASE = "rephrase"
    EMAIL = "email"


class FallbackReason(str, Enum):
    NO_MATCHES = "no_matches"
    VERY_LOW_CONFIDENCE = "very_low_confidence"
    LOW_CONFIDENCE = "low_confidence"
    SUFFICIENT_CONFIDENCE = "sufficient_confidence"


@dataclass
class FallbackDecision:
    should_fallback: bool
    reason: FallbackReason
    action: Optional[FallbackAction] = None

    def to_dict(self) -> dict:
        return {
            "should_fallback": self.should_fallback,
            "reason": self.reason.value,
            "action": self.action.value if self.action else None,
        }


@dataclass
class FallbackResponse:
    type: str              # "rephrase" | "email" | "default"
    message: str
    ui_action: str         # "show_message" | "show_email_form"
    show_fallback_button: bool = False

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "message": self.message,
            "ui_action": self.ui_action,
            "show_fallback_button": self.show_fallback_button,
        }


# ── Copy ─────────────────────────────────────────────────────────────────

REPHRASE_SUGGESTIONS = MappingProxyType({
    Style.HR: (
        "You might ask about my professional experience, technical skills, "
        "project achievements, or career background."
    ),
    Style.DEVELOPER: (
        "Try asking about specific technologies, projects I've worked on, "
        "or technical challenges I've solved."
    ),
    Style.FRIEND: (
        "Maybe ask about my favorite projects, what I love about coding, "
        "or fun tech stuff I've been working on! 😊"
    ),
})

EMAIL_OFFERS = MappingProxyType({
    Style.HR: (
        "I apologize that I couldn't provide the specific information you're "
        "looking for. I'd be happy to connect you directly with {owner} for a "
        "more detailed discussion. Would you like me to help you send an email?"
    ),
    Style.DEVELOPER: (
        "Hmm, seems like I'm not quite getting what you're after. How about we "
        "get you in touch with {owner} directly? I can help you draft an email "
        "if you'd like."
    ),
    Style.FRIEND: (
        "Oops! 😅 I'm not being very helpful, am I? Let's get you connected with "
        "the real {owner}! Want me to help you send an email? The real me is much "
        "better at answering tricky questions! 😊"
    ),
})

EMAIL_GREETINGS = MappingProxyType({
    Style.HR: (
        "Dear {owner},\n\nI hope this message finds you well. I was reviewing your "
        "portfolio and had some questions that your AI assistant couldn't fully address."
    ),
    Style.DEVELOPER: (
        "Hi {owner},\n\nI was checking out your portfolio and chatting with your AI "
        "assistant, but I have some questions that need a human touch."
    ),
    Style.FRIEND: (
        "Hey {owner}! 👋\n\nI was having a fun chat with your AI buddy on your "
        "portfolio, but I think I need to talk to the real you for this one! 😊"
    ),
})

EMAIL_CLOSINGS = MappingProxyType({
    Style.HR: "I would appreciate the opportunity to discuss this further at your convenience.\n\nBest regards,",
    Style.DEVELOPER: "Would love to chat more about this when you have a chance.\n\nCheers,",
    Style.FRIEND: "Hope to hear from you soon!\n\nThanks! 😊",
})


# ── Input validation ─────────────────────────────────────────────────────

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_SCRIPT_TAG = re.compile(r"<script.*?</script>", re.IGNORECASE | re.DOTALL)
_ANGLE_BRACKETS = re.compile(r"[<>]")
_NON_WORD = re.compile(r"[^\w\s]")

MAX_INPUT_LENGTH = 200
MAX_QUERY_KEY_LENGTH = 50
MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 50
CONTEXT_PREVIEW_LENGTH = 100

# encodeURIComponent leaves these unescaped
_URI_COMPONENT_SAFE = "-_.!~*'()"


def validate_email(email) -> bool:
    return isinstance(email, str) and bool(EMAIL_PATTERN.match(email))


def validate_name(name) -> bool:
    if not isinstance(name, str):
        return False
    return MIN_NAME_LENGTH <= len(name.strip()) <= MAX_NAME_LENGTH


def sanitize_input(value) -> str:
    """Trim, drop script blocks, drop remaining angle brackets, cap at 200 chars."""
    if not isinstance(value, str) or not value:
        return ""
    cleaned = _SCRIPT_TAG.sub("", value.strip())
    cleaned = _ANGLE_BRACKETS.sub("", cleaned)
    return cleaned[:MAX_INPUT_LENGTH]


def normalize_query(query) -> str:
    if not isinstance(query, str):
        return ""
    return _NON_WORD.sub("", query.lower().strip())[:MAX_QUERY_KEY_LENGTH]


def encode_uri_component(text: str) -> str:
    return quote(text, safe=_URI_COMPONENT_SAFE)


# ── Fallback Handler ─────────────────────────────────────────────────────


class FallbackHandler:
    """Session-scoped escalation state plus handoff payload builder."""

    CONFIDENCE_THRESHOLD = 0.5
    LOW_CONFIDENCE_THRESHOLD = 0.3
    MAX_ATTEMPTS = 2

    def __init__(self, style_manager, conversation_manager=None,
                 contact_email: str = DEFAULT_CONTACT_EMAIL):
        self.style_manager = style_manager
        self.conversation_manager = conversation_manager
        self.contact_email = contact_email
        # normalized query -> attempts so far
        self._attempts: dict[str, int] = {}

    # ── Decision ─────────────────────────────────────────────────────

    def should_trigger_fallback(self, confidence: float, query: str, matches=None) -> FallbackDecision:
        """Check a scored answer. Advances the attempt ladder when it falls back.

        Match emptiness is checked before confidence.
        """
        if not matches:
            reason = FallbackReason.NO_MATCHES
        elif confidence < self.LOW_CONFIDENCE_THRESHOLD:
            reason = FallbackReason.VERY_LOW_CONFIDENCE
        elif confidence < self.CONFIDENCE_THRESHOLD:
            reason = FallbackReason.LOW_CONFIDENCE
        else:
            return FallbackDecision(False, FallbackReason.SUFFICIENT_CONFIDENCE, None)

        action = self.get_next_fallback_action(query)
        logger.debug(f"Fallback for {query!r}: reason={reason.value} action={action.value}")
        return FallbackDecision(True, reason, action)

    def get_next_fallback_action(self, query: str) -> FallbackAction:
        key = normalize_query(query)
        attempts = self._attempts.get(key, 0)
        if attempts == 0:
            self._attempts[key] = 1
            return FallbackAction.REPHRASE
        self._attempts[key] = self.MAX_ATTEMPTS
        return FallbackAction.EMAIL

    def get_attempt_count(self, query: str) -> int:
        return self._attempts.get(normalize_query(query), 0)

    def has_reached_max_attempts(self, query: str) -> bool:
        return self.get_attempt_count(query) >= self.MAX_ATTEMPTS

    def reset_fallback_attempts(self):
        self._attempts.clear()

    # ── Responses ────────────────────────────────────────────────────

    def _style_key(self, style) -> Style:
        resolved = Style.parse(style)
        if resolved is None:
            logger.warning(f"Unknown style {style!r} in fallback, using developer")
            return Style.DEVELOPER
        return resolved

    def generate_fallback_response(self, action, style) -> FallbackResponse:
        key = self._style_key(style)
        try:
            action = FallbackAction(action) if action else None
        except ValueError:
            action = None

        if action == FallbackAction.REPHRASE:
            message = f"{self.style_manager.get_rephrase_message(key)} {REPHRASE_SUGGESTIONS[key]}"
            return FallbackResponse("rephrase", message, "show_message", False)

        if action == FallbackAction.EMAIL:
            message = EMAIL_OFFERS[key].replace("{owner}", self.style_manager.owner_name)
            return FallbackResponse("email", message, "show_email_form", True)

        copy = self.style_manager.get_fallback_messages(key)
        return FallbackResponse("default", f"{copy['intro']} {copy['request']}", "show_message", False)

    # ── Human handoff ────────────────────────────────────────────────

    def generate_mailto_link(self, name: str, email: str, original_query: str, style) -> str:
        """Build the ``mailto:`` URI for contacting the portfolio owner.

        Raises:
            InvalidInputError: name or email fails validation after sanitizing.
        """
        name = sanitize_input(name)
        email = sanitize_input(email)
        original_query = sanitize_input(original_query)

        if not validate_name(name):
            raise InvalidInputError("name", f"must be {MIN_NAME_LENGTH}-{MAX_NAME_LENGTH} characters")
        if not validate_email(email):
            raise InvalidInputError("email", "must look like name@domain.tld")

        key = self._style_key(style)
        subject = encode_uri_component(f"{self.style_manager.get_email_subject(key)} - {name}")
        body = self.generate_email_body(name, email, original_query, self._conversation_context(), key)

        logger.info(f"Generated handoff link (style={key.value})")
        return f"mailto:{self.contact_email}?subject={subject}&body={encode_uri_component(body)}"

    def generate_email_body(self, name: str, email: str, original_query: str,
                            conversation_context: str, style) -> str:
        key = self._style_key(style)
        owner = self.style_manager.owner_name
        greeting = EMAIL_GREETINGS[key].replace("{owner}", owner)
        context_block = f"Conversation context:\n{conversation_context}\n" if conversation_context else ""

        return (
            f"{greeting}\n\n"
            f"My contact information:\n"
            f"Name: {name}\n"
            f"Email: {email}\n\n"
            f'Original question: "{original_query}"\n\n'
            f"{context_block}\n"
            f"{EMAIL_CLOSINGS[key]}\n"
            f"{name}"
        )

    def _conversation_context(self) -> str:
        if self.conversation_manager is None:
            return ""
        turns = self.conversation_manager.get_context(limit=3)
        entries = []
        for i, turn in enumerate(turns, 1):
            user_message = sanitize_input(turn.user_message)
            preview = turn.bot_response[:CONTEXT_PREVIEW_LENGTH]
            if len(turn.bot_response) > CONTEXT_PREVIEW_LENGTH:
                preview += "..."
            entries.append(f"{i}. User: {user_message}\n   AI: {preview}")
        return "\n\n".join(entries)

    def get_fallback_stats(self) -> dict:
        total = len(self._attempts)
        return {
            "total_queries": total,
            "average_attempts": sum(self._attempts.values()) / total if total else 0,
            "max_attempts": self.MAX_ATTEMPTS,
            "confidence_threshold": self.CONFIDENCE_THRESHOLD,
            "low_confidence_threshold": self.LOW_CONFIDENCE_THRESHOLD,
        }
