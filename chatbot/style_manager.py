"""
Style Manager — persona copy and response post-processing
=========================================================
Holds the fixed copy for each communication style (greeting, rephrase
prompt, error message, fallback copy, email subject) and applies the
light post-processing the "friend" persona gets: contextual emojis and
an occasional enthusiastic opener.

The template table is an immutable constant built at import time. Persona
copy contains an ``{owner}`` placeholder that each StyleManager renders
once with the knowledge-base owner's name.

Randomness goes through an injectable ``random.Random`` so tests can pin
the enthusiasm decision.
"""

from __future__ import annotations

import dataclasses
import logging
import random
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional

from chatbot.exceptions import InvalidStyleError
from chatbot.models import Style

logger = logging.getLogger("chatbot.style")

DEFAULT_OWNER_NAME = "Serhii"


@dataclass(frozen=True)
class StyleTemplate:
    id: Style
    name: str
    icon: str
    description: str
    greeting: str
    rephrase_message: str
    error_message: str
    fallback_intro: str
    fallback_request: str
    email_subject: str
    formality: str
    tone: str
    structure: str
    language: str
    emoji_enabled: bool = False
    enthusiasm_enabled: bool = False

    def render(self, owner: str) -> "StyleTemplate":
        """Copy with the ``{owner}`` placeholder filled in."""
        text_fields = (
            "greeting", "rephrase_message", "error_message",
            "fallback_intro", "fallback_request", "email_subject",
        )
        return dataclasses.replace(
            self, **{name: getattr(self, name).replace("{owner}", owner) for name in text_fields}
        )

    def to_dict(self) -> dict:
        data = dataclasses.asdict(self)
        data["id"] = self.id.value
        return data


# ── Style Templates ──────────────────────────────────────────────────────

STYLE_TEMPLATES: Mapping[Style, StyleTemplate] = MappingProxyType({
    Style.HR: StyleTemplate(
        id=Style.HR,
        name="Professional (HR)",
        icon="👔",
        description="Formal, structured responses about experience and achievements",
        greeting=(
            "Hello! I'm {owner}'s AI assistant. I can help you learn about "
            "{owner}'s professional experience, skills, and achievements. "
            "What would you like to know?"
        ),
        rephrase_message=(
            "I'm not entirely certain about that topic. Could you please rephrase "
            "your question or be more specific about what you'd like to know?"
        ),
        error_message=(
            "I apologize, but I'm experiencing technical difficulties. Please try "
            "rephrasing your question or contact {owner} directly."
        ),
        fallback_intro=(
            "I apologize, but I don't have specific information about that topic "
            "in my current knowledge base."
        ),
        fallback_request=(
            "Could you please rephrase your question or ask about my experience, "
            "skills, or projects?"
        ),
        email_subject="Professional Inquiry from Portfolio Chat",
        formality="formal",
        tone="professional",
        structure="structured",
        language="business",
    ),
    Style.DEVELOPER: StyleTemplate(
        id=Style.DEVELOPER,
        name="Technical (Developer)",
        icon="💻",
        description="Conversational, technical discussion about projects and skills",
        greeting=(
            "Hey there! I'm an AI version of {owner}. Feel free to ask me about "
            "technical experience, projects, or anything development-related. "
            "What's on your mind?"
        ),
        rephrase_message=(
            "I'm not quite sure what you're looking for there. Could you rephrase "
            "that or give me a bit more context?"
        ),
        error_message=(
            "Hmm, something went wrong on my end. Mind trying that again or "
            "rephrasing your question?"
        ),
        fallback_intro="Hmm, I don't have details on that specific topic.",
        fallback_request=(
            "Could you try rephrasing the question? I'd be happy to talk about my "
            "experience, tech stack, or projects."
        ),
        email_subject="Technical Discussion from Portfolio Chat",
        formality="casual",
        tone="collaborative",
        structure="conversational",
        language="technical",
    ),
    Style.FRIEND: StyleTemplate(
        id=Style.FRIEND,
        name="Casual (Friend)",
        icon="😊",
        description="Friendly, enthusiastic chat with personality and emojis",
        greeting=(
            "Hi! 👋 I'm {owner}'s AI buddy! Ask me anything about work, projects, "
            "or just chat about tech stuff. What would you like to know? 😊"
        ),
        rephrase_message=(
            "Hmm, I'm not sure I got that! 🤔 Could you ask that in a different "
            "way? Maybe be a bit more specific?"
        ),
        error_message=(
            "Oops! 😅 Something got mixed up. Can you try asking that again in a "
            "different way?"
        ),
        fallback_intro="Oops! 😅 I don't think I have info about that.",
        fallback_request=(
            "Could you ask me something else? I love talking about my coding "
            "adventures and projects!"
        ),
        email_subject="Friendly Chat from Portfolio Website",
        formality="casual",
        tone="enthusiastic",
        structure="friendly",
        language="conversational",
        emoji_enabled=True,
        enthusiasm_enabled=True,
    ),
})


# ── Post-processing tables ───────────────────────────────────────────────

EMOJI_MAP = MappingProxyType({
    "react": "⚛️",
    "javascript": "🚀",
    "project": "💻",
    "experience": "🎯",
    "skill": "⭐",
    "work": "💼",
    "code": "👨‍💻",
    "development": "🔧",
    "web": "🌐",
    "mobile": "📱",
    "database": "🗄️",
    "api": "🔌",
    "performance": "⚡",
    "testing": "🧪",
    "deployment": "🚀",
})

_EMOJI_RULES = tuple(
    (re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE), emoji)
    for keyword, emoji in EMOJI_MAP.items()
)

_EMOJI_PATTERN = re.compile(
    "[\U0001F600-\U0001F64F\U0001F300-\U0001F5FF\U0001F680-\U0001F6FF"
    "\U0001F1E0-\U0001F1FF\u2600-\u26FF\u2700-\u27BF]"
)

ENTHUSIASTIC_MARKERS = ("!", "😊", "🎉", "🚀", "awesome", "amazing", "love", "excited")

ENTHUSIASTIC_OPENERS = (
    "That's awesome! ",
    "Great question! ",
    "I love talking about this! ",
    "This is exciting! ",
)


# ── Style Manager ────────────────────────────────────────────────────────


class StyleManager:
    """Per-session style selection plus style-scoped copy lookups.

    Accessors take an optional style; without one they use the current
    style. An unknown style degrades to the developer copy.
    """

    ENTHUSIASM_PROBABILITY = 0.3

    def __init__(
        self,
        owner_name: str = DEFAULT_OWNER_NAME,
        rng: Optional[random.Random] = None,
        templates: Mapping[Style, StyleTemplate] = STYLE_TEMPLATES,
        enthusiasm_probability: Optional[float] = None,
    ):
        self.owner_name = owner_name
        self.current_style: Optional[Style] = None
        self._rng = rng or random.Random()
        self._styles = MappingProxyType({style: t.render(owner_name) for style, t in templates.items()})
        if enthusiasm_probability is not None:
            self.ENTHUSIASM_PROBABILITY = enthusiasm_probability

    # ── Selection ────────────────────────────────────────────────────

    def set_style(self, style) -> Style:
        resolved = Style.parse(style)
        if resolved is None or resolved not in self._styles:
            raise InvalidStyleError(style)
        self.current_style = resolved
        return resolved

    def reset_style(self):
        self.current_style = None

    def is_valid_style(self, style) -> bool:
        return Style.parse(style) in self._styles

    def get_available_styles(self) -> list[dict]:
        return [
            {"id": t.id.value, "name": t.name, "icon": t.icon, "description": t.description}
            for t in self._styles.values()
        ]

    # ── Copy lookups ─────────────────────────────────────────────────

    def get_style_data(self, style=None) -> Optional[StyleTemplate]:
        """Template for a style, or None when the style is unknown or unset."""
        target = self.current_style if style is None else style
        resolved = Style.parse(target)
        if resolved is None:
            return None
        return self._styles.get(resolved)

    def _resolve(self, style=None) -> StyleTemplate:
        data = self.get_style_data(style)
        if data is None:
            if style is not None:
                logger.warning(f"Unknown style {style!r}, using developer copy")
            return self._styles[Style.DEVELOPER]
        return data

    def get_greeting(self, style=None) -> str:
        return self._resolve(style).greeting

    def get_rephrase_message(self, style=None) -> str:
        return self._resolve(style).rephrase_message

    def get_error_message(self, style=None) -> str:
        return self._resolve(style).error_message

    def get_fallback_messages(self, style=None) -> dict:
        data = self._resolve(style)
        return {"intro": data.fallback_intro, "request": data.fallback_request}

    def get_email_subject(self, style=None) -> str:
        return self._resolve(style).email_subject

    # ── Formatting ───────────────────────────────────────────────────

    def format_response(self, response: Optional[str], style=None) -> Optional[str]:
        """Apply style post-processing. Empty or None responses pass through."""
        if not response:
            return response

        data = self.get_style_data(style)
        if data is None:
            return response

        formatted = response
        if data.emoji_enabled and not self.has_emojis(response):
            formatted = self._add_emojis(formatted)
        if data.enthusiasm_enabled and not self.has_enthusiastic_tone(response):
            formatted = self._add_enthusiasm(formatted)
        return formatted

    @staticmethod
    def has_emojis(text) -> bool:
        return isinstance(text, str) and bool(_EMOJI_PATTERN.search(text))

    @staticmethod
    def has_enthusiastic_tone(text) -> bool:
        if not isinstance(text, str) or not text:
            return False
        return any(marker in text for marker in ENTHUSIASTIC_MARKERS)

    def _add_emojis(self, text: str) -> str:
        # First occurrence of each keyword only; original casing is kept
        for pattern, emoji in _EMOJI_RULES:
            text = pattern.sub(lambda m: f"{m.group(0)} {emoji}", text, count=1)
        return text

    def _add_enthusiasm(self, text: str) -> str:
        if self._rng.random() < self.ENTHUSIASM_PROBABILITY:
            return self._rng.choice(ENTHUSIASTIC_OPENERS) + text
        return text

    def get_style_stats(self) -> dict:
        return {
            "current_style": self.current_style.value if self.current_style else None,
            "available_styles": [style.value for style in self._styles],
            "style_data": self._styles[self.current_style].to_dict() if self.current_style else None,
            "enthusiasm_probability": self.ENTHUSIASM_PROBABILITY,
        }
