"""
Intent Classifier — fact lookup vs. open conversation
======================================================
Labels a query as a short factual lookup ("how many years...", "what's your
email") or as something that needs a synthesized conversational answer.
The label is advisory metadata: it is reported alongside each reply but
does not change how the answer is produced.
"""

from __future__ import annotations

import logging
from enum import Enum

logger = logging.getLogger("chatbot.intent")


class IntentLabel(str, Enum):
    FACT_RETRIEVAL = "fact_retrieval"
    CONVERSATIONAL_SYNTHESIS = "conversational_synthesis"


# Checked in order against the start of the query; first hit wins.
FACT_PREFIXES = (
    "how many", "how much",
    "what is", "what's", "what are",
    "when did", "when was",
    "where is", "where did", "where can",
    "who is", "which",
)

# Checked anywhere in the query once no prefix matched.
FACT_KEYWORDS = (
    "email", "contact", "phone", "linkedin", "github",
    "years", "experience", "education", "degree",
    "university", "college", "certification",
    "location", "address", "website", "portfolio",
)


def classify_intent(query) -> IntentLabel:
    """Classify a query. Pure; never raises.

    Non-string or blank input is treated as conversational.
    """
    if not isinstance(query, str) or not query.strip():
        logger.debug("Invalid query input, defaulting to conversational synthesis")
        return IntentLabel.CONVERSATIONAL_SYNTHESIS

    normalized = query.lower().strip()

    for prefix in FACT_PREFIXES:
        if normalized.startswith(prefix):
            logger.debug(f"Fact retrieval: query starts with {prefix!r}")
            return IntentLabel.FACT_RETRIEVAL

    found = [kw for kw in FACT_KEYWORDS if kw in normalized]
    if found:
        logger.debug(f"Fact retrieval: keywords {found}")
        return IntentLabel.FACT_RETRIEVAL

    return IntentLabel.CONVERSATIONAL_SYNTHESIS
