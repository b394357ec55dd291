import asyncio

import pytest

from tamagotchat.intermediate import (
    GENERIC_DOC_MESSAGE,
    GOOD_SENTINEL,
    NO_SUBSTANCE_MESSAGE,
    IntermediateClassifier,
    extract_decision,
    get_intermediate_response,
    parse_decision,
    verdict_message,
)
from tamagotchat.models import IntermediateVerdict, VerdictCode


@pytest.mark.parametrize("raw,expected", [
    ("GOOD", "GOOD"),
    ('"GOOD"', "GOOD"),
    ("  MAN:tar  ", "MAN:tar"),
    ("<think>The user wants docs</think>\nDOC:Django:https://docs.djangoproject.com/",
     "DOC:Django:https://docs.djangoproject.com/"),
    ("Thinking...\nERROR:NO_SUBSTANCE\nGOOD", "ERROR:NO_SUBSTANCE"),
    ("Let me see.\nLMGTFY:capital of france", "LMGTFY:capital of france"),
    ("Hmm.\nNot sure what to say", "ERROR:NO_SUBSTANCE"),
])
def test_extract_decision(raw, expected):
    assert extract_decision(raw) == expected


def test_parse_doc_keeps_colons_in_url():
    verdict = parse_decision("DOC:Django:https://docs.djangoproject.com/")

    assert verdict.code == VerdictCode.DOC
    assert verdict.technology == "Django"
    assert verdict.url == "https://docs.djangoproject.com/"


@pytest.mark.parametrize("decision,expected", [
    ("GOOD", IntermediateVerdict.good()),
    ("LMGTFY: capital of france", IntermediateVerdict.google("capital of france")),
    ("LMGTFY:", IntermediateVerdict.no_substance()),
    ("MAN:tar", IntermediateVerdict.man("tar")),
    ("MAN:", IntermediateVerdict.no_substance()),
    ("DOC:Django", IntermediateVerdict.doc(None, None)),
    ("ERROR:NO_SUBSTANCE", IntermediateVerdict.no_substance()),
    ("Sure, happy to help", IntermediateVerdict.no_substance()),
])
def test_parse_decision(decision, expected):
    assert parse_decision(decision) == expected


def test_verdict_messages():
    assert verdict_message(IntermediateVerdict.google("python list comprehension")) == (
        "This could be easily answered with a Google search: "
        "https://letmegooglethat.com/?q=python%20list%20comprehension"
    )
    assert verdict_message(IntermediateVerdict.doc("Symfony", "https://symfony.com/doc/current/index.html")) == (
        "Please refer to the official Symfony documentation: https://symfony.com/doc/current/index.html"
    )
    assert verdict_message(IntermediateVerdict.doc(None, None)) == GENERIC_DOC_MESSAGE
    assert verdict_message(IntermediateVerdict.man("tar")) == (
        "Please refer to the manual page for 'tar'. You can view it by typing 'man tar' in your terminal."
    )
    assert verdict_message(IntermediateVerdict.no_substance()) == NO_SUBSTANCE_MESSAGE
    assert verdict_message(IntermediateVerdict.good()) == GOOD_SENTINEL


def test_classify_calls_small_model(fake_llm):
    client = fake_llm(["LMGTFY: capital of france"])
    classifier = IntermediateClassifier(llm_client=client, model="tiny-model")

    verdict = asyncio.run(classifier.classify("What is the capital of France?"))

    assert verdict == IntermediateVerdict.google("capital of france")
    assert client.calls[0]["model"] == "tiny-model"
    assert client.calls[0]["temperature"] == 0.3
    assert 'User Request: "What is the capital of France?"' in client.calls[0]["prompt"]


def test_classify_fails_closed_when_llm_is_down(fake_llm, llm_down):
    classifier = IntermediateClassifier(llm_client=fake_llm(error=llm_down), model="tiny-model")

    assert asyncio.run(classifier.classify("How do closures work?")) == IntermediateVerdict.no_substance()
    assert asyncio.run(get_intermediate_response("How do closures work?", classifier)) == NO_SUBSTANCE_MESSAGE


@pytest.mark.parametrize("raw", [
    "good",
    "Not a good question",
    "this is no good",
    "good luck with that",
])
def test_prose_mentioning_good_is_no_substance(fake_llm, raw):
    classifier = IntermediateClassifier(llm_client=fake_llm([raw]), model="tiny-model")

    assert asyncio.run(classifier.classify("x")) == IntermediateVerdict.no_substance()


def test_reasoning_inside_think_block_is_scanned_first():
    decision = extract_decision("<think>maybe LMGTFY: x</think>\nGOOD")

    assert parse_decision(decision).code == VerdictCode.GOOGLE


def test_good_verdict_returns_sentinel(fake_llm):
    classifier = IntermediateClassifier(llm_client=fake_llm(["<think>fine question</think>GOOD"]), model="tiny-model")

    assert asyncio.run(get_intermediate_response("How do closures work in Python?", classifier)) == "GOOD"
