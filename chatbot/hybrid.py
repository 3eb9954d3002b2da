"""
Hybrid Responder — optional generation backend with engine fallback
===================================================================
Lets an external answer generator (a local model, a worker process, ...)
answer queries while the matching engine stays the safety net:

  respond(text)
    → backend.process_query(text, context, style)   bounded by `timeout`
        ok, confidence ≥ 0.5 → format + record, source="generated"
        timeout / error / weak answer → ChatSession.process_message(text)

At most one backend request is in flight per query id; a repeat call for
the same id while one is pending shares the pending reply and does not
record a second turn. A timed-out request is abandoned, not cancelled,
and is dropped from the in-flight table once it settles.

Usage:
    responder = HybridResponder(session, backend=MyBackend(), timeout=10)
    await responder.initialize()
    reply = await responder.respond("What did you build with React?")

Environment:
    GENERATION_TIMEOUT_SECONDS — default backend timeout (10)
"""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol

from chatbot.exceptions import StyleNotSetError
from chatbot.fallback_handler import FallbackHandler
from chatbot.models import ConversationTurn, KnowledgeBaseDocument, TopicMatch
from chatbot.prompts import create_constrained_prompt, create_prompt
from chatbot.session import ChatReply, ChatSession

logger = logging.getLogger("chatbot.hybrid")

GENERATION_TIMEOUT_SECONDS = float(os.environ.get("GENERATION_TIMEOUT_SECONDS", "10"))


@dataclass
class GeneratedAnswer:
    answer: str
    confidence: float = 0.0
    matched_sections: list = field(default_factory=list)


@dataclass
class GenerationContext:
    history: list                    # list[ConversationTurn], oldest first
    knowledge: Optional[str]
    prompt: str


class GenerationBackend(Protocol):
    async def initialize(self, document: KnowledgeBaseDocument, config: dict) -> bool:
        ...

    async def process_query(self, text: str, context: GenerationContext, style: str) -> GeneratedAnswer:
        ...


class HybridResponder:
    """Async front door that prefers the backend and falls back to the engine."""

    DEFAULT_TIMEOUT_SECONDS = GENERATION_TIMEOUT_SECONDS
    INIT_TIMEOUT_SECONDS = 30.0
    MIN_GENERATED_CONFIDENCE = FallbackHandler.CONFIDENCE_THRESHOLD

    def __init__(self, session: ChatSession, backend: Optional[GenerationBackend] = None,
                 timeout: Optional[float] = None, config: Optional[dict] = None):
        self.session = session
        self.backend = backend
        self.timeout = self.DEFAULT_TIMEOUT_SECONDS if timeout is None else timeout
        self.config = dict(config or {})
        self.available = False
        self._in_flight: dict[str, asyncio.Task] = {}
        # query id -> reply being produced for it
        self._replies: dict[str, asyncio.Future] = {}

    async def initialize(self) -> bool:
        """Initialize the backend. Returns False (engine-only mode) on any failure."""
        if self.backend is None:
            self.available = False
            return False

        try:
            ready = await asyncio.wait_for(
                self.backend.initialize(self.session.index.document, self.config),
                timeout=self.INIT_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Generation backend init timed out after {self.INIT_TIMEOUT_SECONDS}s")
            ready = False
        except Exception as e:
            logger.error(f"Generation backend init failed: {e}", exc_info=True)
            ready = False

        self.available = bool(ready)
        logger.info(f"Generation backend {'ready' if self.available else 'unavailable'}; engine fallback active")
        return self.available

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def respond(self, text: str, query_id: Optional[str] = None) -> ChatReply:
        """Answer a message, preferring the backend.

        Raises:
            StyleNotSetError: no style selected for the session.
        """
        if self.session.style is None:
            raise StyleNotSetError()
        if not self.available:
            return self.session.process_message(text)

        query_id = query_id or uuid.uuid4().hex
        pending = self._replies.get(query_id)
        if pending is not None:
            logger.debug(f"Query {query_id} already being answered, sharing its reply")
            return await asyncio.shield(pending)

        reply_future = asyncio.get_running_loop().create_future()
        self._replies[query_id] = reply_future
        try:
            reply = await self._answer(text, query_id)
            reply_future.set_result(reply)
            return reply
        except Exception as e:
            reply_future.set_exception(e)
            raise
        finally:
            del self._replies[query_id]
            if not reply_future.done():
                reply_future.cancel()

    async def _answer(self, text: str, query_id: str) -> ChatReply:
        """One backend round trip with engine fallback; records exactly one turn."""
        intent, matches, _ = self.session.analyze(text)

        try:
            task = self._submit(query_id, text, matches)
            generated = await asyncio.wait_for(asyncio.shield(task), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Generation timed out after {self.timeout}s (query {query_id}), using engine answer")
            return self.session.process_message(text)
        except Exception as e:
            logger.error(f"Generation failed for query {query_id}: {e}", exc_info=True)
            return self.session.process_message(text)

        if not generated or not generated.answer or generated.confidence < self.MIN_GENERATED_CONFIDENCE:
            logger.info(f"Generated answer too weak for query {query_id}, using engine answer")
            return self.session.process_message(text)

        return self.session.record_answer(
            text,
            generated.answer.strip(),
            matches,
            generated.confidence,
            intent=intent,
            source="generated",
            topic_ids=list(generated.matched_sections) or None,
        )

    # ── Internals ────────────────────────────────────────────────────

    def _submit(self, query_id: str, text: str, matches: list[TopicMatch]) -> asyncio.Task:
        pending = self._in_flight.get(query_id)
        if pending is not None and not pending.done():
            logger.debug(f"Query {query_id} already in flight, joining it")
            return pending

        context = self.build_generation_context(text, matches)
        task = asyncio.create_task(
            self.backend.process_query(text, context, self.session.style.value)
        )
        self._in_flight[query_id] = task
        task.add_done_callback(lambda t, qid=query_id: self._settle(qid, t))
        return task

    def _settle(self, query_id: str, task: asyncio.Task):
        if self._in_flight.get(query_id) is task:
            del self._in_flight[query_id]
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Backend request {query_id} settled with error: {task.exception()}")

    def build_generation_context(self, text: str, matches: list[TopicMatch]) -> GenerationContext:
        index = self.session.index
        style = self.session.style
        owner = self.session.style_manager.owner_name
        history: list[ConversationTurn] = self.session.conversation.get_context(
            [m.topic_id for m in matches]
        )
        knowledge = index.build_context(matches)

        if self.config.get("constrained") and matches:
            prompt = create_constrained_prompt(text, matches[0].topic, style, owner)
        else:
            prompt = create_prompt(text, knowledge, style, index.communication_styles, owner)

        return GenerationContext(history=history, knowledge=knowledge, prompt=prompt)
