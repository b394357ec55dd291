"""
Pydantic data models for Tamagotchat.

This module defines the closed vocabularies (actions, verdict codes, penalty
categories) and every structure that flows through the moderation pipeline,
plus the request/response models of the HTTP layer.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Any
from pydantic import BaseModel, Field, validator
from enum import Enum


# UTC datetime factory function
def utc_now():
    """Factory function to get current UTC datetime."""
    return datetime.now(timezone.utc)


# Enums for controlled vocabulary
class MessageRole(str, Enum):
    """Message roles in conversation."""
    USER = "user"
    ASSISTANT = "assistant"


class QueryAction(str, Enum):
    """Action chosen by the query action analyzer."""
    ANSWER = "answer"        # Forward to the LLM
    GOOGLE = "google"        # Redirect to a search engine
    DOCS = "docs"            # Redirect to official documentation
    MANPAGE = "manpage"      # Redirect to a manual page


class VerdictCode(str, Enum):
    """Verdict codes produced by the intermediate classifier."""
    NO_SUBSTANCE = "NO_SUBSTANCE"
    GOOGLE = "GOOGLE"
    DOC = "DOC"
    MAN = "MAN"
    GOOD = "GOOD"


class PenaltyCategory(str, Enum):
    """Outcome categories charged by the score ledger."""
    POLITENESS = "politeness"
    GOOGLEABLE = "googleable"
    DOCUMENTATION = "documentation"
    MANPAGE = "manpage"
    NO_SUBSTANCE = "no_substance"
    INVALID_FORMAT = "invalid_format"
    TECHNICAL_ANSWER = "technical_answer"


class RedirectionType(str, Enum):
    """Kinds of redirection the LLM may attach to an answer."""
    GOOGLE = "google"
    DOCUMENTATION = "documentation"
    LETMEGOOGLETHAT = "letmegooglethat"
    MANPAGE = "manpage"
    HISTORY = "history"


# Conversation models
class Message(BaseModel):
    """Individual message in a conversation."""
    role: MessageRole = Field(..., description="Role of the message sender")
    content: str = Field(..., description="Message content")
    timestamp: Optional[datetime] = Field(default_factory=utc_now, description="Message timestamp")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Additional message metadata")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "role": "user",
                "content": "How do I implement a binary search tree in Python?",
                "timestamp": "2025-04-02T10:30:45.123Z",
                "metadata": {}
            }
        }


# Classification results
class PolitenessCheck(BaseModel):
    """Result of the politeness filter."""
    is_only_politeness: bool = Field(..., description="Message carries nothing but social noise")
    contains_politeness: bool = Field(..., description="Message contains at least one politeness phrase")

    class Config:
        frozen = True


class ActionVerdict(BaseModel):
    """Action decided for an inbound message by the query action analyzer."""
    action: QueryAction = Field(..., description="Chosen action")
    redirect_url: Optional[str] = Field(None, description="Where to send the user for non-answer actions")
    doc_source: Optional[str] = Field(None, description="Tool or technology whose docs were matched")
    command: Optional[str] = Field(None, description="Shell command whose man page was matched")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "action": "docs",
                "redirect_url": "https://docs.docker.com/engine/reference/commandline/",
                "doc_source": "docker",
                "command": None
            }
        }


class TechnicalAnalysis(BaseModel):
    """Outcome of the technical domain filter."""
    is_technical: bool = Field(..., description="Whether the question is on-topic")
    confidence: int = Field(..., ge=0, le=100, description="Advisory confidence 0-100")
    domain: Optional[str] = Field(None, description="Detected domain")
    reason: Optional[str] = Field(None, description="Why this decision was made")


class DomainClassification(BaseModel):
    """Structured schema the tier-2 domain classifier must answer with."""
    is_technical: bool = Field(..., description="Whether the question is about a technical topic")
    confidence: int = Field(..., ge=0, le=100, description="Confidence in the classification (0-100)")
    domain: str = Field(..., description="The detected domain of the question")
    reason: str = Field(..., description="Reasoning behind the classification")


class TechFilterResult(BaseModel):
    """Decision of the technical filter, with the canned reply when rejecting."""
    should_answer: bool
    response: Optional[str] = None
    analysis: TechnicalAnalysis


class IntermediateVerdict(BaseModel):
    """One of the five verdicts of the intermediate classifier."""
    code: VerdictCode = Field(..., description="Verdict code")
    search_terms: Optional[str] = Field(None, description="Search terms for GOOGLE")
    technology: Optional[str] = Field(None, description="Technology for DOC")
    url: Optional[str] = Field(None, description="Documentation URL for DOC")
    command: Optional[str] = Field(None, description="Command for MAN")

    class Config:
        frozen = True

    @classmethod
    def no_substance(cls) -> "IntermediateVerdict":
        return cls(code=VerdictCode.NO_SUBSTANCE)

    @classmethod
    def good(cls) -> "IntermediateVerdict":
        return cls(code=VerdictCode.GOOD)

    @classmethod
    def google(cls, search_terms: str) -> "IntermediateVerdict":
        return cls(code=VerdictCode.GOOGLE, search_terms=search_terms)

    @classmethod
    def doc(cls, technology: Optional[str], url: Optional[str]) -> "IntermediateVerdict":
        return cls(code=VerdictCode.DOC, technology=technology, url=url)

    @classmethod
    def man(cls, command: str) -> "IntermediateVerdict":
        return cls(code=VerdictCode.MAN, command=command)

    @property
    def is_good(self) -> bool:
        return self.code == VerdictCode.GOOD


# LLM answer models
class Redirection(BaseModel):
    """Pointer to an external resource attached to an answer."""
    type: RedirectionType = Field(..., description="Redirection kind")
    url: Optional[str] = Field(None, description="Target URL")
    message: Optional[str] = Field(None, description="Explanation shown to the user")

    @validator('type', pre=True)
    def normalize_type(cls, v):
        if isinstance(v, str):
            value = v.strip().lower()
            # Models regularly misspell this one
            if value in ("letmegooglothat", "lmgtfy"):
                return RedirectionType.LETMEGOOGLETHAT
            if value in ("man", "man page", "man_page"):
                return RedirectionType.MANPAGE
            if value in ("docs", "doc"):
                return RedirectionType.DOCUMENTATION
            return value
        return v


class StructuredReply(BaseModel):
    """Final, repaired answer of the main LLM call."""
    content: str = Field(..., min_length=1, description="Answer text, never empty")
    confidence: int = Field(default=80, ge=0, le=100, description="Model confidence 0-100")
    redirections: List[Redirection] = Field(default_factory=list, description="Ordered redirections")
    parsing_error: bool = Field(default=False, description="Raw text was returned because parsing failed")

    class Config:
        json_schema_extra = {
            "example": {
                "content": "Use a node class with left/right children and insert recursively.",
                "confidence": 85,
                "redirections": [
                    {
                        "type": "documentation",
                        "url": "https://docs.python.org/3/",
                        "message": "Python reference"
                    }
                ],
                "parsing_error": False
            }
        }


# Ledger models
class ScoreState(BaseModel):
    """Point balance of one session."""
    owner: str = Field(..., description="Session identifier")
    points: int = Field(..., ge=0, description="Current balance, never negative")


class LedgerResult(BaseModel):
    """Result of charging a category against a balance."""
    category: PenaltyCategory
    points: int = Field(..., ge=0)
    delta: int
    reason: str


# Pipeline response
class PerformanceMetrics(BaseModel):
    """Timing of one pipeline run."""
    total_time_ms: float = Field(..., description="Total request processing time in milliseconds")
    classification_time_ms: float = Field(default=0.0, description="Time spent in local classifiers")
    llm_generation_time_ms: float = Field(default=0.0, description="Time spent waiting on LLM calls")


class RouterResponse(BaseModel):
    """Complete outcome of the moderation pipeline for one message."""
    content: str = Field(..., description="User-facing reply")
    category: PenaltyCategory = Field(..., description="Outcome category charged by the ledger")
    action: Optional[QueryAction] = Field(None, description="Action chosen by the analyzer, if it ran")
    ledger: LedgerResult = Field(..., description="Ledger delta applied for this request")
    reply: Optional[StructuredReply] = Field(None, description="Structured LLM answer, when one was produced")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Flags for the client")
    performance: PerformanceMetrics


# API models
class ChatMessageIn(BaseModel):
    """Message as sent by a client."""
    role: MessageRole
    content: str

    @validator('content')
    def validate_content(cls, v):
        if not v or v.isspace():
            raise ValueError('Message content cannot be empty or only whitespace')
        return v


class ChatRequest(BaseModel):
    """Request model for the chat endpoint: either one message or a message list."""
    message: Optional[str] = Field(None, max_length=4000, description="Single user message")
    messages: Optional[List[ChatMessageIn]] = Field(None, description="Conversation, last entry from the user")

    def to_messages(self) -> List[Message]:
        """Normalize both accepted shapes into an ordered list of Messages."""
        if self.messages is not None:
            if not self.messages:
                raise ValueError("No messages provided")
            conversation = [Message(role=m.role, content=m.content) for m in self.messages]
        elif self.message is not None and self.message.strip():
            conversation = [Message(role=MessageRole.USER, content=self.message)]
        else:
            raise ValueError("Invalid request format. Expected 'messages' array or 'message' string.")

        if conversation[-1].role != MessageRole.USER:
            raise ValueError("The last message must be from the user")
        return conversation

    class Config:
        json_schema_extra = {
            "example": {
                "message": "How do I implement a binary search tree in Python?"
            }
        }


class ChatResponse(BaseModel):
    """Response model for the chat endpoint."""
    role: MessageRole = Field(default=MessageRole.ASSISTANT)
    content: str = Field(..., description="Assistant reply")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Redirections, confidence and flags")
    session_id: str = Field(..., description="Session identifier")
    points: int = Field(..., ge=0, description="Balance after this request")
    delta: int = Field(..., description="Points charged for this request")
    penalty_reason: str = Field(..., description="Why the delta was applied")


class SessionInfoResponse(BaseModel):
    """Session bootstrap response."""
    session: str
    session_id: str
    pseudo: str
    points: int
    mood: str


class ScoreResponse(BaseModel):
    """Current balance of a session."""
    pseudo: str
    points: int
    mood: str


class ScoreDeltaRequest(BaseModel):
    """Raw delta applied through the score endpoint."""
    delta: int


class ScoreUpdateResponse(BaseModel):
    """Balance after a raw delta or reset."""
    updated: int
    mood: str


class LoginRequest(BaseModel):
    """Demo login payload."""
    username: str
    password: str


class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    request_id: Optional[str] = Field(None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=utc_now, description="Error timestamp")

    class Config:
        json_schema_extra = {
            "example": {
                "error": "INVALID_REQUEST",
                "message": "The last message must be from the user",
                "details": {"points": 98, "delta": -2},
                "request_id": "req_xyz789",
                "timestamp": "2025-04-02T10:30:45.123Z"
            }
        }


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="healthy, degraded or unhealthy")
    timestamp: str
    version: str = Field(default="1.0.0")
    services: Dict[str, str] = Field(default_factory=dict)


class MetricsResponse(BaseModel):
    """Request counts per outcome category."""
    timestamp: str
    total_requests: int = 0
    active_sessions: int = 0
    category_distribution: Dict[str, int] = Field(default_factory=dict)
