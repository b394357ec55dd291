import asyncio
import json

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from tamagotchat.tech_filter import (
    FAIL_OPEN_REASON,
    NON_TECHNICAL_RESPONSE,
    DomainClassifier,
    DomainClassifierError,
    filter_technical_questions,
    is_technical_question,
)
from tamagotchat.technical_domains import (
    contains_technical_keywords,
    find_technical_keywords,
    is_likely_technical,
)


def _classifier(*responses):
    return DomainClassifier(llm=FakeListChatModel(responses=list(responses)))


def _classification(is_technical, confidence=95, domain="cooking", reason="recipe question"):
    return json.dumps({
        "is_technical": is_technical,
        "confidence": confidence,
        "domain": domain,
        "reason": reason,
    })


class ExplodingClassifier:
    async def classify(self, question):
        raise RuntimeError("classifier offline")


@pytest.mark.parametrize("question", [
    "My python script crashes on startup",
    "There's a bug in my garden",
    "how to get into machine learning",
    "I love c++ templates",
])
def test_quick_check_flags_technical_questions(question):
    assert is_likely_technical(question) is True


@pytest.mark.parametrize("question", [
    "What should I cook tonight",
    "I love curry",
])
def test_quick_check_ignores_everyday_questions(question):
    assert is_likely_technical(question) is False


def test_keywords_match_whole_words_only():
    assert find_technical_keywords("Rust or Go?") == ["go", "rust"]
    assert contains_technical_keywords("a good gorilla") is False


def test_keyword_match_skips_llm():
    analysis = asyncio.run(is_technical_question("How do I fix this python error", ExplodingClassifier()))

    assert analysis.is_technical is True
    assert analysis.confidence == 90
    assert analysis.domain == "technical (keyword match)"


def test_llm_classifier_rejects_non_technical_question():
    classifier = _classifier(_classification(False))

    result = asyncio.run(filter_technical_questions("Tell me a joke", classifier))

    assert result.should_answer is False
    assert result.response == NON_TECHNICAL_RESPONSE
    assert result.analysis.domain == "cooking"
    assert result.analysis.confidence == 95


def test_llm_classifier_output_with_think_block_is_parsed():
    raw = "<think>Jokes are not technical... or are they?</think>\n" + _classification(
        True, confidence=60, domain="humor about programmers", reason="programmer joke"
    )

    analysis = asyncio.run(is_technical_question("Tell me a joke", _classifier(raw)))

    assert analysis.is_technical is True
    assert analysis.confidence == 60


def test_classify_raises_on_unparseable_output():
    with pytest.raises(DomainClassifierError):
        asyncio.run(_classifier("not json at all").classify("Tell me a joke"))


def test_unparseable_classifier_output_fails_open():
    analysis = asyncio.run(is_technical_question("Tell me a joke", _classifier("not json at all")))

    assert analysis.is_technical is True
    assert analysis.confidence == 50
    assert analysis.reason == FAIL_OPEN_REASON


def test_crashing_classifier_lets_question_through():
    result = asyncio.run(filter_technical_questions("Tell me a joke", ExplodingClassifier()))

    assert result.should_answer is True
    assert result.response is None
    assert result.analysis.reason == FAIL_OPEN_REASON
