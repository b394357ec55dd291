"""FastAPI application entry point for Tamagotchat.

This module provides:
- FastAPI app initialization with request logging middleware
- Chat endpoint running the moderation pipeline and charging the ledger
- Session endpoints (init, score, reset) backed by the session store
- Demo login endpoints
- Health and metrics endpoints
- Error handlers rendering a consistent ErrorResponse body
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError

from .ledger import mascot_mood
from .llm import get_llm_client
from .models import (
    ChatRequest, ChatResponse, ErrorResponse, HealthResponse, LoginRequest,
    Message, MessageRole, MetricsResponse, ScoreDeltaRequest, ScoreResponse,
    ScoreUpdateResponse, SessionInfoResponse
)
from .router import ModerationPipeline, RouterError, invalid_format_response, route_and_respond
from .store import SessionError, SessionState, get_session_store
from .utils import (
    ConfigurationError, generate_request_id, get_config, get_current_timestamp,
    initialize_app, sanitize_for_logging
)

# Initialize logging and configuration
initialize_app()

APP_VERSION = "1.0.0"

SESSION_COOKIE = "session_id"
POINTS_COOKIE = "points"
PSEUDO_COOKIE = "pseudo"
AUTH_COOKIE = "auth_token"
AUTH_TOKEN_VALUE = "dummy-token"

AUTH_MAX_AGE_SECONDS = 60 * 60 * 24
CLEANUP_INTERVAL_SECONDS = 60 * 60

INVALID_MESSAGE_FORMAT = (
    "Invalid message format. Each message must have 'role' ('user' or 'assistant') and 'content'."
)
INVALID_REQUEST_FORMAT = "Invalid request format. Expected 'messages' array or 'message' string."

app = FastAPI(
    title="Tamagotchat",
    description="Moderation and routing backend for a frugal technical-support chat assistant",
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# Request/Response logging and timing middleware
@app.middleware("http")
async def logging_and_timing_middleware(request: Request, call_next):
    """Log requests and responses with timing information."""
    start_time = time.time()
    request_id = generate_request_id()
    request.state.request_id = request_id

    logger.info(
        "Incoming request",
        method=request.method,
        url=str(request.url),
        request_id=request_id,
        client_ip=request.client.host if request.client else "unknown"
    )

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            "Request failed",
            method=request.method,
            url=str(request.url),
            error=str(e),
            error_type=type(e).__name__,
            processing_time_ms=(time.time() - start_time) * 1000,
            request_id=request_id
        )
        raise

    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        processing_time_ms=(time.time() - start_time) * 1000,
        request_id=request_id
    )
    return response


def _error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None
) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        message=message,
        details=details,
        request_id=getattr(request.state, 'request_id', None)
    )
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


# Global exception handlers
@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    """Handle configuration errors."""
    return _error_response(request, 500, "CONFIGURATION_ERROR", "System configuration error",
                           {"error": str(exc)})


@app.exception_handler(RouterError)
async def router_error_handler(request: Request, exc: RouterError):
    """Handle pipeline errors that escaped every filter."""
    return _error_response(request, 500, "ROUTER_ERROR", "Failed to process your request",
                           {"error": str(exc)})


@app.exception_handler(SessionError)
async def session_error_handler(request: Request, exc: SessionError):
    return _error_response(request, 404, "SESSION_NOT_FOUND", str(exc))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent error format."""
    return _error_response(request, exc.status_code, "HTTP_ERROR", str(exc.detail),
                           {"status_code": exc.status_code})


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors."""
    logger.error(
        "Unexpected error occurred",
        error=str(exc),
        error_type=type(exc).__name__,
        request_id=getattr(request.state, 'request_id', None)
    )
    return _error_response(request, 500, "INTERNAL_SERVER_ERROR",
                           "An unexpected error occurred. Please try again later.")


async def _session_cleanup_worker():
    store = get_session_store()
    while True:
        await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
        try:
            await store.cleanup_expired()
        except Exception as e:
            logger.error("Session cleanup failed", error=str(e))


@app.on_event("startup")
async def startup_event():
    """Validate configuration and start the session cleanup worker."""
    config = get_config()
    app.state.cleanup_task = asyncio.create_task(_session_cleanup_worker())
    logger.info(
        "Startup completed",
        version=APP_VERSION,
        llm_base_url=config["LLM_BASE_URL"],
        initial_points=config["INITIAL_POINTS"]
    )


@app.on_event("shutdown")
async def shutdown_event():
    task = getattr(app.state, "cleanup_task", None)
    if task:
        task.cancel()


# Dependencies
_pipeline: Optional[ModerationPipeline] = None


def get_pipeline() -> ModerationPipeline:
    """Shared moderation pipeline built from configuration."""
    global _pipeline
    if _pipeline is None:
        _pipeline = ModerationPipeline()
    return _pipeline


def _cookie_max_age() -> int:
    return get_config()["SESSION_TTL_DAYS"] * 24 * 60 * 60


def _set_session_cookies(response: Response, session: SessionState):
    max_age = _cookie_max_age()
    response.set_cookie(SESSION_COOKIE, session.session_id, max_age=max_age, path="/", httponly=True)
    response.set_cookie(PSEUDO_COOKIE, session.pseudo, max_age=max_age, path="/")
    response.set_cookie(POINTS_COOKIE, str(session.points), max_age=max_age, path="/")


def _parse_points_cookie(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        points = int(value)
    except ValueError:
        return None
    return points if points >= 0 else None


async def _resolve_session(request: Request) -> Tuple[SessionState, bool]:
    """Find the caller's session from cookies, creating it on first contact.

    Returns:
        (session, created) tuple
    """
    store = get_session_store()
    session, created = await store.get_or_create(
        request.cookies.get(SESSION_COOKIE),
        pseudo=request.cookies.get(PSEUDO_COOKIE)
    )

    if created:
        # Carry a balance over from cookies issued before a restart
        cookie_points = _parse_points_cookie(request.cookies.get(POINTS_COOKIE))
        if cookie_points is not None:
            session.points = await store.set_points(session.session_id, cookie_points)

    return session, created


def _parse_chat_request(body: Any) -> List[Message]:
    """Validate a chat payload into messages. Raises ValueError with a user-facing message."""
    if not isinstance(body, dict):
        raise ValueError(INVALID_REQUEST_FORMAT)

    try:
        chat_request = ChatRequest(**body)
    except ValidationError:
        if isinstance(body.get("messages"), list):
            raise ValueError(INVALID_MESSAGE_FORMAT)
        raise ValueError(INVALID_REQUEST_FORMAT)

    return chat_request.to_messages()


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with basic service information."""
    return {
        "service": "Tamagotchat",
        "version": APP_VERSION,
        "status": "running",
        "timestamp": get_current_timestamp(),
        "endpoints": {
            "chat": "/chat",
            "session": "/session/init",
            "score": "/session/score",
            "health": "/health",
            "metrics": "/metrics",
            "docs": "/docs"
        }
    }


@app.post("/chat", response_model=ChatResponse)
async def chat_endpoint(
    http_request: Request,
    pipeline: ModerationPipeline = Depends(get_pipeline)
):
    """
    Main chat endpoint.

    Accepts {"message": "..."} or {"messages": [...]}, runs the moderation
    pipeline, charges the ledger delta against the session balance and
    returns the reply. Malformed payloads are rejected with 400 and still
    charged the invalid-format penalty.
    """
    request_id = getattr(http_request.state, 'request_id', generate_request_id())
    store = get_session_store()
    session, _ = await _resolve_session(http_request)

    try:
        body = await http_request.json()
    except ValueError:
        body = None

    try:
        messages = _parse_chat_request(body)
    except ValueError as e:
        rejection = invalid_format_response(session.points, str(e))
        session.points = await store.set_points(session.session_id, rejection.ledger.points)
        await store.record_outcome(rejection.category)

        logger.warning("Chat request rejected", error=str(e), request_id=request_id,
                       session_id=session.session_id, points=session.points)

        response = _error_response(
            http_request, 400, "INVALID_REQUEST", str(e),
            {"points": session.points, "delta": rejection.ledger.delta,
             "penalty_reason": rejection.ledger.reason}
        )
        _set_session_cookies(response, session)
        return response

    # A bare message continues the stored conversation
    if "messages" not in body:
        messages = await store.get_history(session.session_id) + messages

    router_response = await route_and_respond(
        messages=messages,
        current_points=session.points,
        session_id=session.session_id,
        request_id=request_id,
        pipeline=pipeline
    )

    session.points = await store.set_points(session.session_id, router_response.ledger.points)
    await store.record_outcome(router_response.category)
    await store.append_messages(session.session_id, [
        messages[-1],
        Message(role=MessageRole.ASSISTANT, content=router_response.content,
                metadata={"request_id": request_id, "category": router_response.category.value})
    ])

    logger.info(
        "Chat request completed",
        session_id=session.session_id,
        request_id=request_id,
        category=router_response.category.value,
        points=session.points,
        message_preview=sanitize_for_logging(messages[-1].content, 50)
    )

    chat_response = ChatResponse(
        content=router_response.content,
        metadata=router_response.metadata,
        session_id=session.session_id,
        points=session.points,
        delta=router_response.ledger.delta,
        penalty_reason=router_response.ledger.reason
    )
    response = JSONResponse(content=jsonable_encoder(chat_response))
    _set_session_cookies(response, session)
    return response


@app.get("/session/init", response_model=SessionInfoResponse)
async def session_init(http_request: Request, response: Response) -> SessionInfoResponse:
    """Create the caller's session if needed and return its pseudonym and balance."""
    session, created = await _resolve_session(http_request)
    _set_session_cookies(response, session)
    return SessionInfoResponse(
        session="created" if created else "existing",
        session_id=session.session_id,
        pseudo=session.pseudo,
        points=session.points,
        mood=mascot_mood(session.points)
    )


@app.get("/session/score", response_model=ScoreResponse)
async def get_score(http_request: Request, response: Response) -> ScoreResponse:
    session, _ = await _resolve_session(http_request)
    _set_session_cookies(response, session)
    score = session.score()
    return ScoreResponse(pseudo=session.pseudo, points=score.points, mood=mascot_mood(score.points))


@app.post("/session/score", response_model=ScoreUpdateResponse)
async def update_score(
    delta_request: ScoreDeltaRequest,
    http_request: Request,
    response: Response
) -> ScoreUpdateResponse:
    """Apply a raw delta to the balance, clamped at 0."""
    store = get_session_store()
    session, _ = await _resolve_session(http_request)
    session.points = await store.apply_delta(session.session_id, delta_request.delta)
    _set_session_cookies(response, session)
    return ScoreUpdateResponse(updated=session.points, mood=mascot_mood(session.points))


@app.post("/session/reset", response_model=ScoreUpdateResponse)
async def reset_score(http_request: Request, response: Response) -> ScoreUpdateResponse:
    store = get_session_store()
    session, _ = await _resolve_session(http_request)
    session.points = await store.reset_points(session.session_id)
    _set_session_cookies(response, session)
    return ScoreUpdateResponse(updated=session.points, mood=mascot_mood(session.points))


@app.post("/auth/login")
async def login(credentials: LoginRequest, response: Response):
    """Demo login against the configured credentials."""
    config = get_config()
    if credentials.username != config["ADMIN_USERNAME"] or credentials.password != config["ADMIN_PASSWORD"]:
        logger.warning("Login rejected", username=sanitize_for_logging(credentials.username, 50))
        raise HTTPException(status_code=401, detail="Unauthorized")

    response.set_cookie(
        AUTH_COOKIE, AUTH_TOKEN_VALUE,
        httponly=True, path="/", samesite="strict", max_age=AUTH_MAX_AGE_SECONDS
    )
    return {"message": "Logged in"}


@app.get("/auth/me")
async def whoami(http_request: Request):
    if http_request.cookies.get(AUTH_COOKIE) != AUTH_TOKEN_VALUE:
        return JSONResponse(status_code=401, content={"authenticated": False})
    return {"authenticated": True, "user": get_config()["ADMIN_USERNAME"]}


@app.get("/health", response_model=HealthResponse)
async def health_check() -> JSONResponse:
    """
    Report configuration and LLM endpoint reachability.

    Returns 200 when the LLM endpoint answers, 503 otherwise. The filters
    still work without it, so the service reports itself as degraded.
    """
    services: Dict[str, str] = {}

    try:
        get_config()
        services["configuration"] = "healthy"
    except ConfigurationError as e:
        logger.error("Configuration invalid", error=str(e))
        services["configuration"] = "unhealthy"

    llm_ok = False
    if services["configuration"] == "healthy":
        llm_ok = await get_llm_client().check_health()
    services["llm"] = "healthy" if llm_ok else "unhealthy"

    if all(status == "healthy" for status in services.values()):
        status, status_code = "healthy", 200
    elif services["configuration"] == "healthy":
        status, status_code = "degraded", 503
    else:
        status, status_code = "unhealthy", 503

    health = HealthResponse(
        status=status,
        timestamp=get_current_timestamp(),
        version=APP_VERSION,
        services=services
    )
    return JSONResponse(status_code=status_code, content=jsonable_encoder(health))


@app.get("/metrics", response_model=MetricsResponse)
async def get_metrics() -> MetricsResponse:
    """Request counts per outcome category."""
    metrics = await get_session_store().get_metrics()
    return MetricsResponse(
        timestamp=get_current_timestamp(),
        total_requests=metrics.total_requests,
        active_sessions=metrics.active_sessions,
        category_distribution=dict(metrics.category_counts)
    )


# Application ready
logger.info(
    "Tamagotchat FastAPI application initialized",
    version=APP_VERSION,
    endpoints_count=len(app.routes)
)
