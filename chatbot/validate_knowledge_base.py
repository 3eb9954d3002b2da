"""
Knowledge Base Validator
========================
Loads a knowledge-base JSON file, reports every schema violation, and
prints a summary of what the chat assistant will be able to answer.

Usage:
    # Validate the bundled knowledge base
    python -m chatbot.validate_knowledge_base

    # Validate a custom file
    python -m chatbot.validate_knowledge_base --path /path/to/knowledge_base.json

    # Dry-run a question through a throwaway session
    python -m chatbot.validate_knowledge_base --query "Tell me about React hooks" --style developer

Exit status is 1 when the file is missing or invalid.

Environment variables:
    KNOWLEDGE_BASE_PATH — default for --path
    LOG_LEVEL           — logging level (default WARNING)
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections import Counter
from pathlib import Path
from typing import Optional

from chatbot.exceptions import ValidationError
from chatbot.knowledge_index import KnowledgeIndex
from chatbot.loader import DEFAULT_KNOWLEDGE_BASE_PATH
from chatbot.models import Style
from chatbot.session import ChatSession


def summarize(index: KnowledgeIndex) -> list[str]:
    lines = []
    categories = Counter(topic.category for topic in index.topics)
    total_keywords = sum(len(topic.keywords) for topic in index.topics)

    lines.append(f"  Owner: {index.metadata.name} (contact: {index.metadata.contact_email or 'not set'})")
    lines.append(f"  Topics: {len(index.topics)}  Keywords: {total_keywords}")
    for category, count in categories.items():
        lines.append(f"    {category}: {count} topic(s)")
    for i, topic in enumerate(index.topics, 1):
        lines.append(f"  {i:2}. {topic.id} [{', '.join(topic.keywords)}]")
    return lines


def dry_run(index: KnowledgeIndex, query: str, style: str) -> list[str]:
    session = ChatSession(index)
    session.set_style(style)
    _, matches, confidence = session.analyze(query)
    reply = session.process_message(query)

    lines = [f"  Query: {query!r} (style={style}, intent={reply.intent})"]
    for match in matches:
        lines.append(
            f"    {match.topic_id}: {match.match_type.value} score={match.score} terms={match.matched_terms}"
        )
    lines.append(f"  Confidence: {confidence:.2f}  Source: {reply.source}")
    lines.append(f"  Answer: {reply.answer}")
    return lines


def main(path: Path, query: Optional[str] = None, style: str = Style.DEVELOPER.value) -> int:
    print("=" * 60)
    print("Knowledge Base Validator")
    print("=" * 60)
    print(f"\nReading {path}...")

    if not path.exists():
        print(f"  ERROR: File not found: {path}")
        return 1

    try:
        index = KnowledgeIndex.from_file(path)
    except ValidationError as e:
        print(f"  INVALID: {len(e.violations)} violation(s)")
        for violation in e.violations:
            print(f"    - {violation}")
        return 1

    print("  Valid.")
    for line in summarize(index):
        print(line)

    if query:
        print("\nDry run:")
        for line in dry_run(index, query, style):
            print(line)

    return 0


if __name__ == "__main__":
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    parser = argparse.ArgumentParser(
        description="Validate a chat assistant knowledge base and optionally dry-run a query."
    )
    parser.add_argument(
        "--path",
        type=Path,
        default=Path(os.environ.get("KNOWLEDGE_BASE_PATH", DEFAULT_KNOWLEDGE_BASE_PATH)),
        help=f"Knowledge base JSON file (default: $KNOWLEDGE_BASE_PATH or {DEFAULT_KNOWLEDGE_BASE_PATH})",
    )
    parser.add_argument(
        "--query",
        type=str,
        default=None,
        help="Run this question through a throwaway chat session",
    )
    parser.add_argument(
        "--style",
        choices=[style.value for style in Style],
        default=Style.DEVELOPER.value,
        help="Communication style for --query (default: developer)",
    )

    args = parser.parse_args()
    sys.exit(main(path=args.path, query=args.query, style=args.style))
