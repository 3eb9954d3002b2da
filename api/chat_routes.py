"""
Chat API — FastAPI Router
=========================
HTTP surface for the CV chat assistant. Each visitor gets an in-memory
chat session; the knowledge index loaded at startup is shared read-only.

Endpoints:
  POST   /chat/sessions                 — Start a session (optionally with a style)
  PUT    /chat/sessions/{id}/style      — Select / change the communication style
  POST   /chat/sessions/{id}/messages   — Ask a question
  POST   /chat/sessions/{id}/contact    — Build the mailto: handoff link
  GET    /chat/sessions/{id}/stats      — Conversation + fallback statistics
  DELETE /chat/sessions/{id}            — End a session
  POST   /chat/classify                 — Intent label for a message
  GET    /chat/styles                   — Available communication styles

Errors:
  404 unknown session · 409 no style selected · 422 invalid style / contact details
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, EmailStr, Field, field_validator

from chatbot.exceptions import InvalidInputError, InvalidStyleError, StyleNotSetError
from chatbot.intent_classifier import classify_intent
from chatbot.models import Style
from chatbot.session import ChatSession
from chatbot.style_manager import StyleManager

logger = logging.getLogger("api.chat")

router = APIRouter(prefix="/chat", tags=["chat"])

VALID_STYLES = [style.value for style in Style]


# ── Request / Response Models ────────────────────────────────────────────


class StartSessionRequest(BaseModel):
    style: Optional[str] = Field(default=None, description="hr, developer or friend")


class StyleRequest(BaseModel):
    style: str = Field(description="hr, developer or friend")

    @field_validator("style")
    @classmethod
    def style_must_be_valid(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in VALID_STYLES:
            raise ValueError(f"Style must be one of: {VALID_STYLES}")
        return v


class MessageRequest(BaseModel):
    message: str = Field(min_length=1, max_length=2000, description="Visitor's question")

    @field_validator("message")
    @classmethod
    def message_must_have_content(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Message must not be blank")
        return v


class ContactRequest(BaseModel):
    name: str = Field(min_length=2, max_length=50, description="Visitor's name")
    email: EmailStr = Field(description="Visitor's email address")
    original_query: str = Field(default="", max_length=2000, description="Question the assistant couldn't answer")


class SessionResponse(BaseModel):
    session_id: str
    style: Optional[str] = None
    greeting: Optional[str] = None


class ChatReplyResponse(BaseModel):
    session_id: str
    answer: str
    confidence: float
    matched_topic_ids: list[str] = Field(default_factory=list)
    intent: str
    source: str
    fallback_action: Optional[str] = None
    fallback_reason: Optional[str] = None
    ui_action: str = "show_message"
    show_fallback_button: bool = False


# ── Helpers ──────────────────────────────────────────────────────────────


def _get_session(request: Request, session_id: str) -> ChatSession:
    session = request.app.state.sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return session


def _register(request: Request, session: ChatSession):
    sessions = request.app.state.sessions
    limit = request.app.state.max_sessions
    while len(sessions) >= limit:
        oldest = next(iter(sessions))
        sessions.pop(oldest)
        logger.info(f"Session limit reached, evicted {oldest}")
    sessions[session.session_id] = session


# ── Endpoints ────────────────────────────────────────────────────────────


@router.post("/sessions", response_model=SessionResponse, status_code=201)
async def start_session(request: Request, body: Optional[StartSessionRequest] = None):
    """Create a chat session. A style may be chosen now or later."""
    session = ChatSession(request.app.state.index, contact_email=request.app.state.contact_email)
    greeting = None
    if body and body.style:
        try:
            greeting = session.set_style(body.style)
        except InvalidStyleError as e:
            raise HTTPException(status_code=422, detail=str(e))

    _register(request, session)
    logger.info(f"Started {session.session_id} (style={session.style.value if session.style else None})")
    return SessionResponse(
        session_id=session.session_id,
        style=session.style.value if session.style else None,
        greeting=greeting,
    )


@router.put("/sessions/{session_id}/style", response_model=SessionResponse)
async def set_style(session_id: str, body: StyleRequest, request: Request):
    session = _get_session(request, session_id)
    greeting = session.set_style(body.style)
    return SessionResponse(session_id=session_id, style=session.style.value, greeting=greeting)


@router.post("/sessions/{session_id}/messages", response_model=ChatReplyResponse)
async def send_message(session_id: str, body: MessageRequest, request: Request):
    """Answer a question in the session's style.

    Low-confidence answers come back as fallback copy; on the second miss
    for the same question `ui_action` is `show_email_form`.
    """
    session = _get_session(request, session_id)
    try:
        reply = session.process_message(body.message)
    except StyleNotSetError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return ChatReplyResponse(session_id=session_id, **reply.to_dict())


@router.post("/sessions/{session_id}/contact")
async def request_contact(session_id: str, body: ContactRequest, request: Request):
    session = _get_session(request, session_id)
    try:
        mailto = session.request_contact(body.name, str(body.email), body.original_query)
    except InvalidInputError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"session_id": session_id, "mailto": mailto}


@router.get("/sessions/{session_id}/stats")
async def session_stats(session_id: str, request: Request):
    return _get_session(request, session_id).get_stats()


@router.delete("/sessions/{session_id}")
async def end_session(session_id: str, request: Request):
    _get_session(request, session_id)
    request.app.state.sessions.pop(session_id, None)
    logger.info(f"Ended {session_id}")
    return {"session_id": session_id, "status": "closed"}


@router.post("/classify")
async def classify(body: MessageRequest):
    return {"message": body.message, "intent": classify_intent(body.message).value}


@router.get("/styles")
async def list_styles(request: Request):
    owner = request.app.state.index.metadata.name
    return {"styles": StyleManager(owner_name=owner).get_available_styles()}
