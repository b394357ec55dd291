import pytest

from tamagotchat.politeness import (
    ALL_POLITENESS_EXPRESSIONS,
    check_politeness,
    normalize_message,
    substantive_words,
)


@pytest.mark.parametrize("expression", ALL_POLITENESS_EXPRESSIONS)
def test_every_lexicon_phrase_alone_is_only_politeness(expression):
    result = check_politeness(expression)

    assert result.contains_politeness is True
    assert result.is_only_politeness is True


@pytest.mark.parametrize("message", [
    "hello",
    "Thanks a lot!",
    "Hello, thank you so much",
    "Good morning, have a nice day.",
    "bye for now and thanks",
    "Sorry about that, my bad",
])
def test_phrases_mixed_with_filler_words_are_only_politeness(message):
    assert check_politeness(message).is_only_politeness is True


@pytest.mark.parametrize("message", [
    "Hello, how do I reverse a list in Python?",
    "Thanks! Now explain closures",
    "please review my dockerfile",
])
def test_substantive_word_defeats_politeness(message):
    result = check_politeness(message)

    assert result.contains_politeness is True
    assert result.is_only_politeness is False


def test_empty_message_is_not_polite():
    result = check_politeness("")

    assert result.contains_politeness is False
    assert result.is_only_politeness is False


def test_message_without_lexicon_phrase_short_circuits():
    result = check_politeness("Docker compose networks")

    assert result.contains_politeness is False
    assert result.is_only_politeness is False


def test_normalize_strips_punctuation_and_lowercases():
    clean, tokens = normalize_message("  Hello, World! How's it; going?  ")

    assert clean == "hello world how's it going"
    assert tokens == ["hello", "world", "how's", "it", "going"]


def test_substantive_words_ignores_short_filler_and_lexicon_tokens():
    tokens = ["i", "thank", "you", "for", "the", "kubernetes", "manifest"]

    assert substantive_words(tokens) == ["kubernetes", "manifest"]
