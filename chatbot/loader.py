"""
Knowledge Base Loader
=====================
Reads a knowledge-base JSON file and validates it against the schema in
chatbot.models. Every schema violation is collected and reported together.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Union

from pydantic import ValidationError as PydanticValidationError

from chatbot.exceptions import ValidationError
from chatbot.models import KnowledgeBaseDocument

logger = logging.getLogger("chatbot.loader")

DEFAULT_KNOWLEDGE_BASE_PATH = Path(__file__).resolve().parent / "data" / "knowledge_base.json"


def _format_violations(exc: PydanticValidationError) -> list[str]:
    violations = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "<root>"
        violations.append(f"{location}: {error['msg']}")
    return violations


def parse_knowledge_base(data: Any) -> KnowledgeBaseDocument:
    """Validate an already-parsed knowledge-base mapping.

    Raises:
        ValidationError: with the full list of violations.
    """
    if isinstance(data, KnowledgeBaseDocument):
        return data
    if not isinstance(data, dict):
        raise ValidationError([f"<root>: expected an object, got {type(data).__name__}"])
    try:
        return KnowledgeBaseDocument.model_validate(data)
    except PydanticValidationError as e:
        violations = _format_violations(e)
        logger.error(f"Knowledge base rejected with {len(violations)} violation(s)")
        raise ValidationError(violations) from e


def load_knowledge_base(path: Union[str, Path] = DEFAULT_KNOWLEDGE_BASE_PATH) -> KnowledgeBaseDocument:
    """Read and validate a knowledge-base JSON file."""
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationError([f"<file>: invalid JSON in {path.name} (line {e.lineno}): {e.msg}"]) from e

    document = parse_knowledge_base(raw)
    logger.info(
        f"Loaded knowledge base {path.name}: {len(document.knowledge_base)} topics "
        f"(owner={document.metadata.name})"
    )
    return document
