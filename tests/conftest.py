"""
Shared Test Fixtures — CV Chat Assistant
========================================
Provides a small hand-written knowledge base, engine components wired
with a pinned random source, and a FastAPI TestClient.

Usage:
  pytest tests/ -v
"""

from __future__ import annotations

import copy
import json
import os
import sys
from unittest.mock import patch

import pytest

# Ensure the project packages are importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from chatbot.conversation_manager import ConversationManager
from chatbot.fallback_handler import FallbackHandler
from chatbot.knowledge_index import KnowledgeIndex
from chatbot.session import ChatSession
from chatbot.style_manager import StyleManager


class StubRandom:
    """Deterministic stand-in for random.Random."""

    def __init__(self, value: float = 0.99):
        self.value = value

    def random(self) -> float:
        return self.value

    def choice(self, seq):
        return seq[0]


# ── Knowledge Base ───────────────────────────────────────────────────────

SAMPLE_KNOWLEDGE_BASE = {
    "metadata": {
        "name": "Alex",
        "title": "Software Engineer",
        "version": "0.1",
        "contact_email": "alex@example.com",
    },
    "knowledge_base": {
        "exp_react": {
            "keywords": ["react", "hooks"],
            "content": "Five years building React interfaces with hooks and context.",
            "responses": {
                "hr": "Alex has five years of professional React experience.",
                "developer": "I use React hooks daily and have shipped five years of React work.",
                "friend": "React hooks are my jam, five years and counting.",
            },
            "details": {
                "years": 5,
                "level": "expert",
                "key_skills": ["Hooks", "Context"],
                "follow_up": {
                    "hr": "Would you like to hear about React project outcomes?",
                    "developer": "Want to talk about custom hooks?",
                    "friend": "Want my favorite hook trick?",
                },
            },
        },
        "exp_node": {
            "keywords": ["node", "express"],
            "content": "Four years of backend experience building APIs with Node and Express.",
            "responses": {
                "hr": "Alex has four years of backend delivery with Node.",
                "developer": "On the server I mostly write Node with Express.",
                "friend": "Node is where I hang out on the server side.",
            },
            "details": {"years": 4},
        },
        "skills_testing": {
            "keywords": ["testing", "pytest", "jest"],
            "content": "Writes unit and end-to-end tests for every project in continuous integration.",
            "responses": {
                "hr": "Alex maintains rigorous automated test coverage.",
                "developer": "I write unit and end-to-end tests that run in CI.",
                "friend": "Green test suites make me so happy.",
            },
        },
        "education.degree": {
            "keywords": ["degree", "university"],
            "content": "Master's degree in computer science from a technical university.",
            "responses": {
                "hr": "Alex holds a master's degree in computer science.",
                "developer": "I did a master's in computer science.",
                "friend": "I studied computer science, master's level.",
            },
        },
    },
    "communication_styles": {
        "hr": {"tone": "professional", "greeting": "Hello."},
        "developer": {"tone": "technical", "greeting": "Hey."},
        "friend": {"tone": "casual", "greeting": "Hi!"},
    },
    "fallback_responses": {
        "no_match": {
            "hr": "No information on that topic.",
            "developer": "No idea about that one.",
            "friend": "Hmm, no clue!",
        },
        "low_confidence": {
            "hr": "Could you clarify the question?",
            "developer": "Could you rephrase that?",
            "friend": "Say that another way?",
        },
    },
}


@pytest.fixture
def kb_data():
    """Fresh deep copy of the sample knowledge base (safe to mutate)."""
    return copy.deepcopy(SAMPLE_KNOWLEDGE_BASE)


@pytest.fixture
def index(kb_data):
    return KnowledgeIndex(kb_data)


# ── Engine Components ────────────────────────────────────────────────────


@pytest.fixture
def style_manager():
    """StyleManager whose enthusiasm roll never fires."""
    return StyleManager(owner_name="Alex", rng=StubRandom(0.99))


@pytest.fixture
def conversation(style_manager):
    manager = ConversationManager(style_manager=style_manager)
    manager.set_style("developer")
    return manager


@pytest.fixture
def fallback_handler(style_manager, conversation):
    return FallbackHandler(style_manager, conversation, contact_email="alex@example.com")


@pytest.fixture
def session(index):
    chat = ChatSession(index, rng=StubRandom(0.99))
    chat.set_style("developer")
    return chat


# ── FastAPI Test Client ──────────────────────────────────────────────────


@pytest.fixture
def kb_file(tmp_path, kb_data):
    path = tmp_path / "knowledge_base.json"
    path.write_text(json.dumps(kb_data), encoding="utf-8")
    return path


@pytest.fixture
def test_client(kb_file):
    """TestClient running the app lifespan against the sample knowledge base."""
    from fastapi.testclient import TestClient

    from api.main import app

    with patch("api.main.KNOWLEDGE_BASE_PATH", str(kb_file)), \
         patch("api.main.MAX_SESSIONS", 3):
        with TestClient(app) as client:
            yield client
