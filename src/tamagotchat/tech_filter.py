"""
Technical domain filter.

Two tiers decide whether a question is on-topic:
- Tier 1: keyword heuristics from technical_domains, no LLM call
- Tier 2: an LLM classifier chain answering in a fixed pydantic schema

The filter fails open: when tier 2 breaks, the question is let through.
"""

from typing import Optional
from langchain_core.language_models import BaseChatModel
from langchain_core.output_parsers import PydanticOutputParser, StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.runnables import RunnableLambda
from loguru import logger

from .llm import get_llm_client
from .models import DomainClassification, TechFilterResult, TechnicalAnalysis
from .sanitizer import strip_think_blocks
from .technical_domains import TECHNICAL_DOMAINS, TECHNICAL_KEYWORDS, is_likely_technical
from .utils import get_config, sanitize_for_logging, Timer


class DomainClassifierError(Exception):
    """Raised when the LLM domain classifier cannot produce a classification."""
    pass


NON_TECHNICAL_RESPONSE = "I only answer technical questions related to computer science and programming."

KEYWORD_MATCH_CONFIDENCE = 90
FAIL_OPEN_CONFIDENCE = 50
FAIL_OPEN_REASON = "error, default allow"

CLASSIFIER_TEMPLATE = """You are a specialized filter that determines if a question is related to technical topics, specifically computer science and programming.

Technical domains include: {domains}

Technical keywords include: {keywords}

Question: {question}

Determine if this question is related to a technical domain.
Consider both explicit domain references and implicit technical nature.

{format_instructions}"""


class DomainClassifier:
    """LLM chain: prompt | chat model | think-block stripping | pydantic parser."""

    def __init__(self, llm: Optional[BaseChatModel] = None):
        if llm is None:
            config = get_config()
            llm = get_llm_client().get_langchain_llm(model=config["CLASSIFIER_MODEL"], temperature=0.7)

        self.parser = PydanticOutputParser(pydantic_object=DomainClassification)
        self.prompt = ChatPromptTemplate.from_template(CLASSIFIER_TEMPLATE).partial(
            domains=", ".join(TECHNICAL_DOMAINS),
            keywords=", ".join(TECHNICAL_KEYWORDS),
            format_instructions=self.parser.get_format_instructions()
        )
        self.chain = self.prompt | llm | StrOutputParser() | RunnableLambda(strip_think_blocks) | self.parser

    async def classify(self, question: str) -> DomainClassification:
        """
        Classify a question with the LLM.

        Raises:
            DomainClassifierError: On any chain failure, including unparseable output
        """
        try:
            with Timer("domain_classification"):
                return await self.chain.ainvoke({"question": question})
        except Exception as e:
            logger.error("Domain classification failed",
                         error=str(e),
                         question=sanitize_for_logging(question, 100))
            raise DomainClassifierError(f"Domain classification failed: {str(e)}")


_domain_classifier: Optional[DomainClassifier] = None


def get_domain_classifier() -> DomainClassifier:
    """Get the global domain classifier, building it on first use."""
    global _domain_classifier
    if _domain_classifier is None:
        _domain_classifier = DomainClassifier()
    return _domain_classifier


def _fail_open_analysis() -> TechnicalAnalysis:
    return TechnicalAnalysis(
        is_technical=True,
        confidence=FAIL_OPEN_CONFIDENCE,
        domain="unknown",
        reason=FAIL_OPEN_REASON
    )


async def is_technical_question(
    question: str,
    classifier: Optional[DomainClassifier] = None
) -> TechnicalAnalysis:
    """
    Decide whether a question is technical.

    Args:
        question: Raw user message
        classifier: Tier-2 classifier (defaults to the global one)

    Returns:
        TechnicalAnalysis, never raises
    """
    if is_likely_technical(question):
        return TechnicalAnalysis(
            is_technical=True,
            confidence=KEYWORD_MATCH_CONFIDENCE,
            domain="technical (keyword match)",
            reason="Quick check found technical keywords"
        )

    try:
        classifier = classifier or get_domain_classifier()
        classification = await classifier.classify(question)
    except Exception as e:
        logger.warning("Falling back to fail-open technical analysis", error=str(e))
        return _fail_open_analysis()

    return TechnicalAnalysis(
        is_technical=classification.is_technical,
        confidence=classification.confidence,
        domain=classification.domain,
        reason=classification.reason
    )


async def filter_technical_questions(
    question: str,
    classifier: Optional[DomainClassifier] = None
) -> TechFilterResult:
    """
    Gate a question on its technical nature.

    Returns:
        TechFilterResult with ``should_answer`` and, when rejecting, the canned reply
    """
    try:
        analysis = await is_technical_question(question, classifier)
    except Exception as e:
        logger.error("Technical filter failed, allowing question", error=str(e))
        return TechFilterResult(should_answer=True, analysis=_fail_open_analysis())

    logger.info("Technical filter decision",
                is_technical=analysis.is_technical,
                confidence=analysis.confidence,
                domain=analysis.domain)

    if not analysis.is_technical:
        return TechFilterResult(
            should_answer=False,
            response=NON_TECHNICAL_RESPONSE,
            analysis=analysis
        )

    return TechFilterResult(should_answer=True, analysis=analysis)
