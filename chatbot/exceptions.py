"""
Chatbot Exceptions
==================
Error taxonomy for the CV chat engine.

Fatal:
  ValidationError    — malformed knowledge base (no partial load)
  StyleNotSetError   — generation requested before a style was chosen

Recoverable:
  InvalidStyleError  — unknown style id; accessors degrade to "developer"
  InvalidInputError  — bad user-supplied contact details at the handoff
"""

from __future__ import annotations


class ChatbotError(Exception):
    """Base class for all engine errors."""


class ValidationError(ChatbotError):
    """Knowledge base failed schema validation.

    Carries every violation found, not just the first one, so a broken
    data file can be fixed in a single pass.
    """

    def __init__(self, violations: list[str]):
        self.violations = list(violations)
        summary = "; ".join(self.violations[:5])
        if len(self.violations) > 5:
            summary += f"; ... ({len(self.violations) - 5} more)"
        super().__init__(
            f"Knowledge base has {len(self.violations)} violation(s): {summary}"
        )


class StyleNotSetError(ChatbotError):
    """A response was requested before a communication style was selected."""

    def __init__(self, message: str = "Communication style must be set before generating responses"):
        super().__init__(message)


class InvalidStyleError(ChatbotError, ValueError):
    """Unknown communication style id."""

    def __init__(self, style):
        self.style = style
        super().__init__(
            f"Invalid communication style: {style!r}. Valid styles: hr, developer, friend"
        )


class InvalidInputError(ChatbotError, ValueError):
    """User-supplied input failed validation."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")
