"""
Intermediate verdict classifier.

A small model grades each answerable message with one of five codes before
the expensive generation model sees it:

    ERROR:NO_SUBSTANCE | LMGTFY:<terms> | DOC:<tech>:<url> | MAN:<command> | GOOD

Small reasoning models rarely obey the format, so the decision is dug out of
the raw output defensively. Anything unreadable, and any failure of the call
itself, is treated as NO_SUBSTANCE: this classifier fails closed.
"""

import re
from typing import Optional
from loguru import logger

from .llm import LLMClient, get_llm_client
from .models import IntermediateVerdict, VerdictCode
from .query_analyzer import build_search_url
from .utils import get_config, sanitize_for_logging, Timer


GOOD_SENTINEL = "GOOD"

NO_SUBSTANCE_MESSAGE = "Please provide a specific technical question or request that I can help you with."
GENERIC_DOC_MESSAGE = "Please check the official documentation for this technology."

NO_SUBSTANCE_DECISION = "ERROR:NO_SUBSTANCE"

# Checked in this order, first match wins
DECISION_PATTERNS = (
    re.compile(r"ERROR:NO_SUBSTANCE", re.IGNORECASE),
    re.compile(r"LMGTFY:.+", re.IGNORECASE),
    re.compile(r"DOC:.+", re.IGNORECASE),
    re.compile(r"MAN:.+", re.IGNORECASE),
    re.compile(r"\bGOOD\b", re.IGNORECASE),
)

# A clean single-line answer in one of the five formats
_EXACT_DECISION = re.compile(r"ERROR:NO_SUBSTANCE|LMGTFY:.+|DOC:.+|MAN:.+|GOOD")

INTERMEDIATE_PROMPT = """You are an AI assistant that evaluates whether requests are appropriate for technical assistance.

User Request: "{message}"

STRICT CRITERIA FOR TECHNICAL QUESTIONS:
1. Must relate directly to programming, computer science, IT infrastructure, or specific technologies
2. Must demonstrate effort and clarity (not just "how to code" or single words)
3. Must be specific enough to be answerable with technical knowledge
4. Must not be easily answerable with a basic web search

IMPORTANT: Framework and library-specific questions ARE technical questions, especially questions about:
- Symfony, Laravel, Django, Flask, Spring, Express, Nestjs, Rails (web frameworks)
- React, Vue, Angular, Svelte (frontend frameworks)
- Middleware, plugins, hooks, components, or implementation examples

Examples of NON-TECHNICAL questions (should NOT be "GOOD"):
- "Hello"
- "Test"
- "How are you"
- "What's up"
- Any single word request
- Any request with less than 5 characters
- Any greeting or chitchat
- Any profanity or inappropriate content
- Any request with no clear technical context

Examples of PROPER TECHNICAL questions (should be "GOOD"):
- "How do I implement a binary search tree in Python?"
- "What's the difference between RESTful and GraphQL APIs?"
- "My MongoDB query is slow, how can I optimize: db.users.find({{age: {{$gt: 30}}}})"
- "How do I fix this TypeScript error: Type 'string' is not assignable to type 'number'"
- "Show me an example of Symfony middleware"
- "How to create middleware in Express.js"
- "Can you explain Laravel middleware?"
- "What's the best way to implement JWT authentication in Django?"

EXAMPLES OF "SHOW ME" QUESTIONS THAT ARE VALID TECHNICAL REQUESTS:
- "Show me how to write a React component" - GOOD
- "Show me an example of Symfony middleware" - GOOD
- "Show me how to create a Docker container" - GOOD

Your task is to categorize this request using EXACTLY ONE of these formats:
1. "ERROR:NO_SUBSTANCE" - For greetings, single words, or non-technical/low-effort messages
2. "LMGTFY:" followed by search terms - For simple questions easily answered via search or not technical questions
3. "DOC:" followed by technology name and URL - For questions about specific documentation
4. "MAN:" followed by command name - For bash/terminal command questions
5. "GOOD" - ONLY for genuine technical questions meeting ALL criteria above

RESPONSE FORMAT: Only output one of the exact formats above, no explanations."""


def build_intermediate_prompt(message: str) -> str:
    return INTERMEDIATE_PROMPT.format(message=message)


def extract_decision(raw_response: str) -> str:
    """
    Pull the decision code out of raw model output.

    A single line that is exactly one of the five formats is taken as is.
    Anything else, <think> markup included, is scanned with DECISION_PATTERNS;
    when nothing matches the decision is ERROR:NO_SUBSTANCE.
    """
    trimmed = (raw_response or "").strip()

    if "\n" not in trimmed and "<think>" not in trimmed.lower():
        candidate = trimmed.strip("\"'`")
        if _EXACT_DECISION.fullmatch(candidate):
            return candidate

    for pattern in DECISION_PATTERNS:
        match = pattern.search(trimmed)
        if match:
            return match.group(0).strip()

    return NO_SUBSTANCE_DECISION


def parse_decision(decision: str) -> IntermediateVerdict:
    """Map a decision string onto one of the five verdicts."""
    upper = decision.upper()

    if upper.startswith("LMGTFY:"):
        terms = decision[len("LMGTFY:"):].strip()
        return IntermediateVerdict.google(terms) if terms else IntermediateVerdict.no_substance()

    if NO_SUBSTANCE_DECISION in upper:
        return IntermediateVerdict.no_substance()

    if upper.startswith("DOC:"):
        # Only the first colon separates technology from URL
        parts = decision[len("DOC:"):].split(":", 1)
        if len(parts) == 2:
            return IntermediateVerdict.doc(parts[0].strip(), parts[1].strip())
        return IntermediateVerdict.doc(None, None)

    if upper.startswith("MAN:"):
        command = decision[len("MAN:"):].strip()
        return IntermediateVerdict.man(command) if command else IntermediateVerdict.no_substance()

    # Case-sensitive: a lowercase "good" in prose is not a verdict
    if GOOD_SENTINEL in decision:
        return IntermediateVerdict.good()

    logger.warning("Unrecognized intermediate decision", decision=sanitize_for_logging(decision, 100))
    return IntermediateVerdict.no_substance()


def verdict_message(verdict: IntermediateVerdict) -> str:
    """User-facing text for a verdict. GOOD maps to the sentinel."""
    if verdict.code == VerdictCode.GOOGLE:
        return f"This could be easily answered with a Google search: {build_search_url(verdict.search_terms)}"

    if verdict.code == VerdictCode.DOC:
        if verdict.technology and verdict.url:
            return f"Please refer to the official {verdict.technology} documentation: {verdict.url}"
        return GENERIC_DOC_MESSAGE

    if verdict.code == VerdictCode.MAN:
        return (f"Please refer to the manual page for '{verdict.command}'. "
                f"You can view it by typing 'man {verdict.command}' in your terminal.")

    if verdict.code == VerdictCode.GOOD:
        return GOOD_SENTINEL

    return NO_SUBSTANCE_MESSAGE


class IntermediateClassifier:
    """Grades messages with the small intermediate model."""

    def __init__(self, llm_client: Optional[LLMClient] = None, model: Optional[str] = None):
        self.llm_client = llm_client
        self.model = model
        self.temperature = 0.3

    async def classify(self, message: str) -> IntermediateVerdict:
        """
        Grade a message. Never raises.

        Args:
            message: Raw user message

        Returns:
            IntermediateVerdict, NO_SUBSTANCE on any failure
        """
        try:
            llm_client = self.llm_client or get_llm_client()
            model = self.model or get_config()["INTERMEDIATE_MODEL"]

            with Timer("intermediate_classification"):
                raw_response = await llm_client.invoke(
                    build_intermediate_prompt(message),
                    model=model,
                    temperature=self.temperature
                )

            decision = extract_decision(raw_response)
            verdict = parse_decision(decision)

            logger.info("Intermediate verdict",
                        code=verdict.code.value,
                        decision=sanitize_for_logging(decision, 100))
            return verdict

        except Exception as e:
            logger.error("Intermediate classification failed, failing closed", error=str(e))
            return IntermediateVerdict.no_substance()


_intermediate_classifier: Optional[IntermediateClassifier] = None


def get_intermediate_classifier() -> IntermediateClassifier:
    global _intermediate_classifier
    if _intermediate_classifier is None:
        _intermediate_classifier = IntermediateClassifier()
    return _intermediate_classifier


async def get_intermediate_response(
    message: str,
    classifier: Optional[IntermediateClassifier] = None
) -> str:
    """Classify a message and return its user-facing text, or "GOOD"."""
    verdict = await (classifier or get_intermediate_classifier()).classify(message)
    return verdict_message(verdict)
