"""
Generation Prompts
==================
Instruction text handed to an optional answer-generation backend together
with the knowledge digest from ``KnowledgeIndex.build_context``.

Two variants:
  create_prompt              — full prompt with tone and answer rules
  create_constrained_prompt  — short prompt that pins the answer to the
                               first 200 characters of the primary topic
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Optional

from chatbot.models import CommunicationStyles, Style, Topic

STYLE_INSTRUCTIONS = MappingProxyType({
    Style.HR: (
        "Focus on professional achievements, experience, and qualifications. "
        "Be concise and highlight measurable results."
    ),
    Style.DEVELOPER: (
        "Use technical language and share insights about technologies. "
        "Be conversational but knowledgeable."
    ),
    Style.FRIEND: (
        "Be casual and enthusiastic. Use emojis when appropriate and make "
        "technical concepts accessible."
    ),
})

CONSTRAINED_MANNERS = MappingProxyType({
    Style.HR: "professional manner",
    Style.DEVELOPER: "technical manner",
    Style.FRIEND: "casual manner",
})

CONSTRAINED_CONTEXT_LENGTH = 200
MAX_ANSWER_WORDS = 150
MAX_CONSTRAINED_WORDS = 50


def create_prompt(question: str, knowledge: Optional[str], style,
                  communication_styles: CommunicationStyles, owner_name: str) -> str:
    resolved = Style.parse(style) or Style.DEVELOPER
    tone = communication_styles.for_style(resolved).tone

    parts = [
        f"You are {owner_name}, a software developer. Respond in a {tone} manner. "
        f"{STYLE_INSTRUCTIONS[resolved]}",
        "",
    ]
    if knowledge:
        parts += [f"Based on this information:\n{knowledge}", ""]

    parts += [
        f"Question: {question}",
        "",
        "Instructions:",
        f"- Answer as {owner_name} in first person",
        "- Only use information provided in the context",
        "- If context doesn't contain relevant info, say so honestly",
        f"- Keep response focused and under {MAX_ANSWER_WORDS} words",
        "- Be specific and provide examples when possible",
        "",
        "Answer:",
    ]
    return "\n".join(parts)


def create_constrained_prompt(question: str, topic: Topic, style, owner_name: str) -> str:
    resolved = Style.parse(style) or Style.DEVELOPER
    return (
        f"Context: {topic.content[:CONSTRAINED_CONTEXT_LENGTH]}\n\n"
        f"Question: {question}\n\n"
        f"Answer in a {CONSTRAINED_MANNERS[resolved]} as {owner_name} in first person. "
        f"Use only the context above. Keep it under {MAX_CONSTRAINED_WORDS} words.\n\n"
        f"Answer: I"
    )
