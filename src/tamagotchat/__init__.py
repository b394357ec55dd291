"""
Tamagotchat
Moderation and routing pipeline in front of an LLM for a frugal technical-support chat
"""

__version__ = "1.0.0"

# Filters
from .politeness import check_politeness, PolitenessCheck
from .query_analyzer import analyze_user_query, QueryActionAnalyzer
from .tech_filter import (
    is_technical_question,
    filter_technical_questions,
    DomainClassifier,
    DomainClassifierError
)
from .intermediate import (
    IntermediateClassifier,
    get_intermediate_response
)

# Answer repair and ledger
from .sanitizer import sanitize_llm_response
from .ledger import apply_penalty, mascot_mood

# Pipeline
from .router import (
    ModerationPipeline,
    route_and_respond,
    RouterError
)

# Session storage
from .store import (
    SessionStore,
    SessionError,
    get_session_store
)

__all__ = [
    "check_politeness",
    "PolitenessCheck",
    "analyze_user_query",
    "QueryActionAnalyzer",
    "is_technical_question",
    "filter_technical_questions",
    "DomainClassifier",
    "DomainClassifierError",
    "IntermediateClassifier",
    "get_intermediate_response",
    "sanitize_llm_response",
    "apply_penalty",
    "mascot_mood",
    "ModerationPipeline",
    "route_and_respond",
    "RouterError",
    "SessionStore",
    "SessionError",
    "get_session_store",
]
