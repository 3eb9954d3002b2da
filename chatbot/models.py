"""
Chatbot Models — Knowledge Base Schema and Session Records
===========================================================
Pydantic models describe the knowledge-base document and are validated
once at load time. Dataclasses describe the per-query and per-session
records the engine produces (matches, conversation turns).

Knowledge base shape:
  {
    "metadata": {"name": ..., "contact_email": ...},
    "knowledge_base": {"<topic_id>": Topic, ...},
    "communication_styles": {"hr" | "developer" | "friend": CommunicationStyle},
    "fallback_responses": {"no_match" | "low_confidence": {<style>: str}}
  }
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Style(str, Enum):
    HR = "hr"
    DEVELOPER = "developer"
    FRIEND = "friend"

    @classmethod
    def parse(cls, value) -> Optional["Style"]:
        """Return the matching Style, or None for anything unrecognized."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                return None
        return None


class MatchType(str, Enum):
    EXACT = "exact"
    SEMANTIC = "semantic"
    SUBSTRING = "substring"


TOPIC_ID_PATTERN = r"^[A-Za-z0-9_.-]+$"


def topic_category(topic_id: str) -> str:
    """Category of a topic id: text before the first '.', else before the first '_'."""
    if "." in topic_id:
        return topic_id.split(".", 1)[0]
    if "_" in topic_id:
        return topic_id.split("_", 1)[0]
    return topic_id


def topics_related(first: str, second: str) -> bool:
    """Same topic id, or same category."""
    return first == second or topic_category(first) == topic_category(second)


def _freeze(value):
    """Read-only copy of nested JSON data: objects become mapping proxies, arrays tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


# ── Knowledge Base Schema ────────────────────────────────────────────────


class _PerStyle(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    def for_style(self, style) -> str:
        return getattr(self, Style(style).value)


class StyleResponses(_PerStyle):
    """Canned topic answer for each style."""

    hr: str = Field(min_length=10)
    developer: str = Field(min_length=10)
    friend: str = Field(min_length=10)


class StyleText(_PerStyle):
    hr: str = Field(min_length=1)
    developer: str = Field(min_length=1)
    friend: str = Field(min_length=1)


class Topic(BaseModel):
    """One knowledge-base entry. Immutable after load."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(pattern=TOPIC_ID_PATTERN)
    keywords: tuple[str, ...] = Field(min_length=1)
    content: str = Field(min_length=10)
    responses: StyleResponses
    details: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)

    @field_validator("keywords")
    @classmethod
    def keywords_must_have_content(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        cleaned = tuple(dict.fromkeys(k.strip().lower() for k in v if k.strip()))
        if not cleaned:
            raise ValueError("keywords must contain at least one non-empty keyword")
        return cleaned

    @field_validator("details")
    @classmethod
    def details_are_read_only(cls, v: Mapping[str, Any]) -> Mapping[str, Any]:
        return _freeze(v)

    @property
    def category(self) -> str:
        return topic_category(self.id)


class CommunicationStyle(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    tone: str = Field(min_length=1)
    greeting: str = ""
    description: str = ""


class CommunicationStyles(BaseModel):
    model_config = ConfigDict(frozen=True)

    hr: CommunicationStyle
    developer: CommunicationStyle
    friend: CommunicationStyle

    def for_style(self, style) -> CommunicationStyle:
        return getattr(self, Style(style).value)


class FallbackResponses(BaseModel):
    model_config = ConfigDict(frozen=True)

    no_match: StyleText
    low_confidence: StyleText


class KnowledgeBaseMetadata(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    name: str = Field(min_length=1, description="Portfolio owner, used in persona copy")
    title: str = ""
    version: str = "1.0"
    contact_email: Optional[str] = None


class KnowledgeBaseDocument(BaseModel):
    """Full knowledge-base document as loaded from JSON."""

    model_config = ConfigDict(frozen=True)

    metadata: KnowledgeBaseMetadata
    knowledge_base: dict[str, Topic] = Field(min_length=1)
    communication_styles: CommunicationStyles
    fallback_responses: FallbackResponses

    @model_validator(mode="before")
    @classmethod
    def inject_topic_ids(cls, data: Any) -> Any:
        # Topic ids come from the mapping keys
        if isinstance(data, dict) and isinstance(data.get("knowledge_base"), dict):
            topics = {}
            for key, body in data["knowledge_base"].items():
                topics[key] = {"id": key, **body} if isinstance(body, dict) else body
            data = {**data, "knowledge_base": topics}
        return data

    @model_validator(mode="after")
    def topic_ids_match_keys(self) -> "KnowledgeBaseDocument":
        mismatched = [key for key, topic in self.knowledge_base.items() if topic.id != key]
        if mismatched:
            raise ValueError(f"topic id does not match its key: {', '.join(mismatched)}")
        return self


# ── Per-query / per-session records ─────────────────────────────────────


@dataclass
class TopicMatch:
    topic_id: str
    topic: Topic
    match_type: MatchType
    score: float = 0.0
    matched_terms: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "topic_id": self.topic_id,
            "match_type": self.match_type.value,
            "score": self.score,
            "matched_terms": list(self.matched_terms),
        }


@dataclass
class ConversationTurn:
    user_message: str
    bot_response: str
    matched_topic_ids: list = field(default_factory=list)
    confidence: float = 0.0
    style: Optional[str] = None
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()

    @property
    def primary_topic_id(self) -> Optional[str]:
        return self.matched_topic_ids[0] if self.matched_topic_ids else None

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "user_message": self.user_message,
            "bot_response": self.bot_response,
            "matched_topic_ids": list(self.matched_topic_ids),
            "confidence": self.confidence,
            "style": self.style,
        }
