"""
Knowledge Index — keyword / semantic topic retrieval
====================================================
Builds two inverted indexes over the knowledge base and ranks topics for a
free-text query:

  exact     +3   per query word equal to a topic keyword (any length)
  semantic  +1   per query token equal to a domain term found in topic content
  substring +0.5 per query token found literally in topic content
                 (only consulted when the first two tiers found too few topics)

Replaces embedding search with deterministic heuristics; the same query
against the same knowledge base always yields the same ranking.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional, Union

from chatbot.loader import load_knowledge_base, parse_knowledge_base
from chatbot.models import (
    CommunicationStyles,
    KnowledgeBaseDocument,
    KnowledgeBaseMetadata,
    MatchType,
    Style,
    Topic,
    TopicMatch,
)

logger = logging.getLogger("chatbot.knowledge_index")


# ── Tokenization ─────────────────────────────────────────────────────────

# Domain vocabulary extracted from topic content for the semantic index.
SEMANTIC_PATTERNS = (
    re.compile(r"\b(framework|library|api|database|frontend|backend|fullstack|full-stack)\b", re.IGNORECASE),
    re.compile(r"\b(experience|years|built|developed|created|implemented|worked)\b", re.IGNORECASE),
    re.compile(r"\b(project|application|website|platform|dashboard|system)\b", re.IGNORECASE),
    re.compile(r"\b(performance|optimization|responsive|real-time|scalable)\b", re.IGNORECASE),
)

MIN_TOKEN_LENGTH = 3

# Stripped from both ends of a token; inner characters ("node.js", "c++") survive.
_EDGE_PUNCTUATION = "?!,.;:\"'()[]{}"


def tokenize_query(text: str) -> list[str]:
    """Lower-case whitespace tokens longer than two characters."""
    tokens = []
    for raw in text.lower().split():
        token = raw.strip(_EDGE_PUNCTUATION)
        if len(token) >= MIN_TOKEN_LENGTH:
            tokens.append(token)
    return tokens


def extract_semantic_terms(content: str) -> set[str]:
    terms = set()
    for pattern in SEMANTIC_PATTERNS:
        terms.update(match.lower() for match in pattern.findall(content))
    return terms


# ── Index ────────────────────────────────────────────────────────────────


class KnowledgeIndex:
    """Ranked topic lookup over one validated knowledge base."""

    DEFAULT_MAX_RESULTS = 3

    EXACT_WEIGHT = 3.0
    SEMANTIC_WEIGHT = 1.0
    SUBSTRING_WEIGHT = 0.5

    MIN_CONFIDENCE = 0.1
    MAX_CONFIDENCE = 0.95
    BASE_CONFIDENCE = 0.5
    MATCH_TYPE_BONUS = {
        MatchType.EXACT: 0.3,
        MatchType.SEMANTIC: 0.2,
        MatchType.SUBSTRING: 0.1,
    }

    # Below this the "no match" fallback copy is used instead of "low confidence"
    NO_MATCH_CONFIDENCE = 0.3

    def __init__(self, knowledge_base=None):
        self._document: Optional[KnowledgeBaseDocument] = None
        self._topics: dict[str, Topic] = {}
        self._positions: dict[str, int] = {}
        self._keyword_index: dict[str, list[str]] = {}
        self._phrase_index: dict[str, list[str]] = {}
        self._semantic_index: dict[str, list[str]] = {}
        if knowledge_base is not None:
            self.load(knowledge_base)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "KnowledgeIndex":
        return cls(load_knowledge_base(path))

    # ── Loading ──────────────────────────────────────────────────────

    def load(self, knowledge_base) -> "KnowledgeIndex":
        """Validate a knowledge base and rebuild the indexes.

        Accepts a raw mapping or an already validated KnowledgeBaseDocument.
        Raises ValidationError before any state changes, so a failed load
        leaves a previously loaded index intact.
        """
        document = parse_knowledge_base(knowledge_base)

        keyword_index: dict[str, list[str]] = {}
        phrase_index: dict[str, list[str]] = {}
        semantic_index: dict[str, list[str]] = {}

        for topic_id, topic in document.knowledge_base.items():
            for keyword in topic.keywords:
                # Multi-word keywords can never equal a single token
                target = phrase_index if " " in keyword else keyword_index
                target.setdefault(keyword, []).append(topic_id)
            for term in sorted(extract_semantic_terms(topic.content)):
                semantic_index.setdefault(term, []).append(topic_id)

        self._document = document
        self._topics = dict(document.knowledge_base)
        self._positions = {topic_id: i for i, topic_id in enumerate(self._topics)}
        self._keyword_index = keyword_index
        self._phrase_index = phrase_index
        self._semantic_index = semantic_index

        logger.info(
            f"Indexed {len(self._topics)} topics "
            f"({len(keyword_index) + len(phrase_index)} keywords, {len(semantic_index)} semantic terms)"
        )
        return self

    @property
    def is_loaded(self) -> bool:
        return self._document is not None

    @property
    def document(self) -> Optional[KnowledgeBaseDocument]:
        return self._document

    @property
    def metadata(self) -> Optional[KnowledgeBaseMetadata]:
        return self._document.metadata if self._document else None

    @property
    def communication_styles(self) -> Optional[CommunicationStyles]:
        return self._document.communication_styles if self._document else None

    @property
    def topics(self) -> list[Topic]:
        return list(self._topics.values())

    def get_topic(self, topic_id: str) -> Optional[Topic]:
        return self._topics.get(topic_id)

    # ── Retrieval ────────────────────────────────────────────────────

    def find_relevant_topics(self, query, max_results: int = DEFAULT_MAX_RESULTS) -> list[TopicMatch]:
        """Rank topics against a query. Empty list when nothing matches."""
        if not isinstance(query, str) or not self._topics or max_results <= 0:
            return []

        words = query.lower().split()
        if not words:
            return []
        tokens = tokenize_query(query)

        matches: dict[str, TopicMatch] = {}

        def hit(topic_id: str, match_type: MatchType, weight: float, term: str):
            match = matches.get(topic_id)
            if match is None:
                match = TopicMatch(topic_id, self._topics[topic_id], match_type)
                matches[topic_id] = match
            match.score += weight
            match.matched_terms.append(term)

        for word in words:
            keyword = self._lookup_keyword(word)
            for topic_id in self._keyword_index.get(keyword, ()):
                hit(topic_id, MatchType.EXACT, self.EXACT_WEIGHT, keyword)

        if self._phrase_index:
            stripped = (raw.strip(_EDGE_PUNCTUATION) for raw in words)
            padded = f" {' '.join(w for w in stripped if w)} "
            for phrase, topic_ids in self._phrase_index.items():
                if f" {phrase} " in padded:
                    for topic_id in topic_ids:
                        hit(topic_id, MatchType.EXACT, self.EXACT_WEIGHT, phrase)

        for token in tokens:
            for topic_id in self._semantic_index.get(token, ()):
                hit(topic_id, MatchType.SEMANTIC, self.SEMANTIC_WEIGHT, token)

        if len(matches) < max_results:
            for topic_id, topic in self._topics.items():
                if topic_id in matches:
                    continue
                content = topic.content.lower()
                found = [token for token in tokens if token in content]
                if found:
                    matches[topic_id] = TopicMatch(
                        topic_id, topic, MatchType.SUBSTRING,
                        score=self.SUBSTRING_WEIGHT * len(found),
                        matched_terms=found,
                    )

        ranked = sorted(matches.values(), key=lambda m: (-m.score, self._positions[m.topic_id]))
        result = ranked[:max_results]
        logger.debug(f"Query {query[:80]!r} → {[(m.topic_id, m.match_type.value, m.score) for m in result]}")
        return result

    def _lookup_keyword(self, word: str) -> Optional[str]:
        """Keyword a raw query word stands for, if any.

        Tried as written, then without trailing punctuation, then with both
        edges stripped, so "c#", ".net?" and "ai" still hit even though the
        tokenizer drops or trims them.
        """
        for candidate in (word, word.rstrip(_EDGE_PUNCTUATION), word.strip(_EDGE_PUNCTUATION)):
            if candidate in self._keyword_index:
                return candidate
        return None

    def calculate_confidence(self, matches: list[TopicMatch]) -> float:
        """Heuristic confidence in [0.1, 0.95] from the best (first) match."""
        if not matches:
            return self.MIN_CONFIDENCE

        best = matches[0]
        confidence = self.BASE_CONFIDENCE
        confidence += self.MATCH_TYPE_BONUS.get(best.match_type, 0.1)
        confidence += min(1.0, best.score / 3) * 0.2
        if len(best.matched_terms) > 1:
            confidence += 0.1

        return max(self.MIN_CONFIDENCE, min(self.MAX_CONFIDENCE, confidence))

    def get_fallback_response(self, style=Style.DEVELOPER, confidence: float = 0.0) -> str:
        """Knowledge-base authored fallback copy for a style."""
        if self._document is None:
            return ""
        resolved = Style.parse(style) or Style.DEVELOPER
        fallbacks = self._document.fallback_responses
        bucket = fallbacks.no_match if confidence < self.NO_MATCH_CONFIDENCE else fallbacks.low_confidence
        return bucket.for_style(resolved)

    def build_context(self, matches: list[TopicMatch]) -> Optional[str]:
        """Plain-text digest of the primary match for a generation backend."""
        if not matches or self._document is None:
            return None

        topic = matches[0].topic
        lines = [f"About {self._document.metadata.name}:", topic.content]

        details = topic.details
        if details.get("years"):
            lines.append(f"Experience: {details['years']} years")
        if details.get("level"):
            lines.append(f"Skill level: {details['level']}")
        if details.get("key_skills"):
            lines.append(f"Key skills: {', '.join(map(str, details['key_skills']))}")
        if details.get("achievements"):
            lines.append(f"Notable achievements: {', '.join(map(str, details['achievements']))}")

        return "\n".join(lines).strip()
