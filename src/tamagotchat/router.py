"""
Moderation pipeline: from an inbound conversation to a reply and a ledger delta.

Stages, each of which may end the request:
1. Politeness filter: pure social noise gets the canned reply
2. Query action analyzer: manpage/docs/google actions get a redirect
3. Technical domain filter (optional): off-topic questions are refused
4. Intermediate verdict classifier (optional): anything but GOOD is refused
5. Main LLM answer, repaired by the sanitizer

Every branch charges exactly one penalty category through the ledger.
"""

import time
import uuid
from typing import Dict, List, Optional, Any
from loguru import logger

from .intermediate import IntermediateClassifier, get_intermediate_classifier, verdict_message
from .ledger import apply_penalty
from .llm import DEGRADED_REPLY, LLMClient, LLMError, get_llm_client
from .models import (
    ActionVerdict,
    IntermediateVerdict,
    Message,
    MessageRole,
    PenaltyCategory,
    PerformanceMetrics,
    QueryAction,
    Redirection,
    RedirectionType,
    RouterResponse,
    StructuredReply,
    VerdictCode,
)
from .politeness import POLITENESS_REPLY, check_politeness
from .query_analyzer import analyze_user_query
from .sanitizer import sanitize_llm_response
from .tech_filter import DomainClassifier, filter_technical_questions
from .utils import get_config, sanitize_for_logging


class RouterError(Exception):
    """Raised when the pipeline fails outside of any filter's own recovery."""
    pass


ACTION_CATEGORIES: Dict[QueryAction, PenaltyCategory] = {
    QueryAction.GOOGLE: PenaltyCategory.GOOGLEABLE,
    QueryAction.DOCS: PenaltyCategory.DOCUMENTATION,
    QueryAction.MANPAGE: PenaltyCategory.MANPAGE,
}

ACTION_REDIRECTION_TYPES: Dict[QueryAction, RedirectionType] = {
    QueryAction.GOOGLE: RedirectionType.LETMEGOOGLETHAT,
    QueryAction.DOCS: RedirectionType.DOCUMENTATION,
    QueryAction.MANPAGE: RedirectionType.MANPAGE,
}

VERDICT_CATEGORIES: Dict[VerdictCode, PenaltyCategory] = {
    VerdictCode.NO_SUBSTANCE: PenaltyCategory.NO_SUBSTANCE,
    VerdictCode.GOOGLE: PenaltyCategory.GOOGLEABLE,
    VerdictCode.DOC: PenaltyCategory.DOCUMENTATION,
    VerdictCode.MAN: PenaltyCategory.MANPAGE,
    VerdictCode.GOOD: PenaltyCategory.TECHNICAL_ANSWER,
}


def redirect_message(verdict: ActionVerdict) -> str:
    """User-facing text for a non-answer action."""
    if verdict.action == QueryAction.GOOGLE:
        return f"This could be easily answered with a Google search: {verdict.redirect_url}"
    # Same wording as the intermediate classifier redirects
    if verdict.action == QueryAction.MANPAGE:
        return verdict_message(IntermediateVerdict.man(verdict.command))
    return verdict_message(IntermediateVerdict.doc(verdict.doc_source, verdict.redirect_url))


class ModerationPipeline:
    """Runs one conversation through every filter and the main LLM call."""

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        domain_classifier: Optional[DomainClassifier] = None,
        intermediate_classifier: Optional[IntermediateClassifier] = None,
        use_tech_filter: Optional[bool] = None,
        use_intermediate_classifier: Optional[bool] = None
    ):
        config = get_config()
        self.llm_client = llm_client
        self.domain_classifier = domain_classifier
        self.intermediate_classifier = intermediate_classifier
        self.use_tech_filter = config["USE_TECH_FILTER"] if use_tech_filter is None else use_tech_filter
        self.use_intermediate_classifier = (
            config["USE_INTERMEDIATE_CLASSIFIER"]
            if use_intermediate_classifier is None else use_intermediate_classifier
        )

    async def run(
        self,
        messages: List[Message],
        current_points: int,
        session_id: str,
        request_id: str
    ) -> RouterResponse:
        start_time = time.time()
        timings = {"classification_time_ms": 0.0, "llm_generation_time_ms": 0.0}

        def finish(
            content: str,
            category: PenaltyCategory,
            action: Optional[QueryAction] = None,
            reply: Optional[StructuredReply] = None,
            metadata: Optional[Dict[str, Any]] = None
        ) -> RouterResponse:
            ledger = apply_penalty(current_points, category)
            performance = PerformanceMetrics(
                total_time_ms=(time.time() - start_time) * 1000,
                **timings
            )
            logger.info(
                "Moderation pipeline completed",
                request_id=request_id,
                session_id=session_id,
                category=category.value,
                action=action.value if action else None,
                delta=ledger.delta,
                points=ledger.points,
                total_time_ms=performance.total_time_ms
            )
            return RouterResponse(
                content=content,
                category=category,
                action=action,
                ledger=ledger,
                reply=reply,
                metadata=metadata or {},
                performance=performance
            )

        user_message = messages[-1].content
        history = [{"role": m.role.value, "content": m.content} for m in messages[:-1]]

        logger.info(
            "Starting moderation pipeline",
            query=sanitize_for_logging(user_message, 100),
            session_id=session_id,
            request_id=request_id,
            conversation_turns=len(history)
        )

        # Step 1: Politeness
        classification_start = time.time()
        politeness = check_politeness(user_message)
        if politeness.is_only_politeness:
            timings["classification_time_ms"] = (time.time() - classification_start) * 1000
            return finish(
                POLITENESS_REPLY,
                PenaltyCategory.POLITENESS,
                metadata={"is_greeting_response": True}
            )

        # Step 2: Action analysis
        verdict = analyze_user_query(user_message)
        timings["classification_time_ms"] = (time.time() - classification_start) * 1000

        if verdict.action != QueryAction.ANSWER:
            redirection = Redirection(
                type=ACTION_REDIRECTION_TYPES[verdict.action],
                url=verdict.redirect_url,
                message=verdict.doc_source or verdict.command
            )
            return finish(
                redirect_message(verdict),
                ACTION_CATEGORIES[verdict.action],
                action=verdict.action,
                metadata={
                    "redirections": [redirection.dict()],
                    "contains_politeness": politeness.contains_politeness
                }
            )

        # Step 3: Technical domain filter
        if self.use_tech_filter:
            filter_start = time.time()
            tech_result = await filter_technical_questions(user_message, self.domain_classifier)
            timings["classification_time_ms"] += (time.time() - filter_start) * 1000

            if not tech_result.should_answer:
                return finish(
                    tech_result.response,
                    PenaltyCategory.GOOGLEABLE,
                    action=verdict.action,
                    metadata={
                        "is_non_technical_response": True,
                        "technical_analysis": tech_result.analysis.dict()
                    }
                )

        # Step 4: Intermediate verdict
        if self.use_intermediate_classifier:
            intermediate_start = time.time()
            classifier = self.intermediate_classifier or get_intermediate_classifier()
            intermediate = await classifier.classify(user_message)
            timings["classification_time_ms"] += (time.time() - intermediate_start) * 1000

            if not intermediate.is_good:
                return finish(
                    verdict_message(intermediate),
                    VERDICT_CATEGORIES[intermediate.code],
                    action=verdict.action,
                    metadata={"intermediate_verdict": intermediate.code.value}
                )

        # Step 5: Main answer
        llm_start = time.time()
        llm_client = self.llm_client or get_llm_client()
        try:
            raw_response = await llm_client.generate_structured_answer(user_message, history)
        except LLMError as e:
            timings["llm_generation_time_ms"] = (time.time() - llm_start) * 1000
            logger.error("Main answer generation failed, sending degraded reply", error=str(e))
            return finish(
                DEGRADED_REPLY,
                PenaltyCategory.TECHNICAL_ANSWER,
                action=verdict.action,
                metadata={"llm_error": True}
            )
        timings["llm_generation_time_ms"] = (time.time() - llm_start) * 1000

        reply = sanitize_llm_response(raw_response)
        return finish(
            reply.content,
            PenaltyCategory.TECHNICAL_ANSWER,
            action=verdict.action,
            reply=reply,
            metadata={
                "confidence": reply.confidence,
                "redirections": [r.dict() for r in reply.redirections],
                "parsing_error": reply.parsing_error
            }
        )


def invalid_format_response(current_points: int, error_message: str) -> RouterResponse:
    """Charge a malformed request without running any classifier."""
    ledger = apply_penalty(current_points, PenaltyCategory.INVALID_FORMAT)
    return RouterResponse(
        content=error_message,
        category=PenaltyCategory.INVALID_FORMAT,
        ledger=ledger,
        metadata={"invalid_format": True},
        performance=PerformanceMetrics(total_time_ms=0.0)
    )


async def route_and_respond(
    messages: List[Message],
    current_points: int,
    session_id: Optional[str] = None,
    request_id: Optional[str] = None,
    pipeline: Optional[ModerationPipeline] = None
) -> RouterResponse:
    """
    Main entry point: classify the last user message, answer or redirect it,
    and compute the ledger delta.

    Args:
        messages: Conversation, oldest first, last entry from the user
        current_points: Session balance before this request
        session_id: Session identifier (generated if not provided)
        request_id: Request identifier (generated if not provided)
        pipeline: Pipeline to use (a default one is built from configuration)

    Returns:
        RouterResponse: Reply, category, ledger result and timings

    Raises:
        RouterError: If the pipeline fails outside of the filters' own recovery

    Example:
        ```python
        response = await route_and_respond(
            messages=[Message(role=MessageRole.USER, content="ls -la")],
            current_points=100
        )
        response.category      # PenaltyCategory.MANPAGE
        response.ledger.points  # 95
        ```
    """
    if session_id is None:
        session_id = f"session_{uuid.uuid4().hex[:8]}"
    if request_id is None:
        request_id = f"req_{uuid.uuid4().hex[:8]}"

    try:
        if not messages or messages[-1].role != MessageRole.USER:
            raise RouterError("The last message must be from the user")

        pipeline = pipeline or ModerationPipeline()
        return await pipeline.run(messages, current_points, session_id, request_id)

    except RouterError:
        raise
    except Exception as e:
        logger.error(
            "Moderation pipeline failed",
            error=str(e),
            request_id=request_id,
            query=sanitize_for_logging(messages[-1].content if messages else "", 100)
        )
        raise RouterError(f"Pipeline failed: {str(e)}")


__all__ = [
    "ModerationPipeline",
    "RouterError",
    "invalid_format_response",
    "redirect_message",
    "route_and_respond",
]
