"""
Politeness filter.

Detects messages that are nothing but social noise ("hello", "thanks a lot",
"bye") so they can be answered with a canned reply instead of waking up an
LLM. Matching is lexicon based: phrases are looked up as substrings of the
normalized message, and a message only counts as pure politeness when no
substantive word survives after removing filler words and every word that
belongs to a politeness phrase.
"""

import re
from typing import FrozenSet, List, Tuple

from .models import PolitenessCheck


GREETINGS: Tuple[str, ...] = (
    "hello", "hi", "hey", "hi there", "hello there", "greetings",
    "good morning", "good afternoon", "good evening", "good day",
    "howdy", "what's up", "sup", "hiya", "morning", "afternoon",
    "evening", "good to see you", "nice to see you", "pleasure to see you",
    "welcome", "yo", "hola", "how are you", "how are you doing",
    "how's it going", "how do you do", "how have you been",
    "how's everything", "how's your day", "how's your day going",
    "how are things", "how's life", "what's new", "what's happening",
)

THANK_YOU_EXPRESSIONS: Tuple[str, ...] = (
    "thank you", "thanks", "thank you very much", "thanks a lot",
    "thanks so much", "thank you so much", "many thanks",
    "thanks a million", "thank you kindly", "much appreciated",
    "i appreciate it", "appreciate it", "grateful", "i am grateful",
    "thankful", "cheers", "ta", "merci", "gracias", "danke",
    "appreciate your help", "thank you for your help",
    "thanks for your assistance", "thank you for your time",
    "thanks for your time", "thank you for your support",
)

FAREWELLS: Tuple[str, ...] = (
    "goodbye", "bye", "see you", "see you later", "farewell",
    "take care", "have a good day", "have a nice day", "have a great day",
    "have a good one", "catch you later", "talk to you later",
    "until next time", "later", "so long", "cheers", "adios",
    "ciao", "auf wiedersehen", "have a good evening", "have a good night",
    "good night", "have a good weekend", "have a nice weekend",
    "see you soon", "see you tomorrow", "bye for now", "signing off",
    "i'll be going now", "i have to go", "gotta go", "ttyl",
)

APOLOGIES: Tuple[str, ...] = (
    "sorry", "i apologize", "my apologies", "forgive me",
    "i'm sorry", "pardon me", "excuse me", "regret",
    "i regret", "apologies for", "sorry for", "sorry about",
    "i apologize for", "please forgive", "i beg your pardon",
    "i didn't mean to", "it was my fault", "my bad", "oops",
    "my mistake", "i made a mistake", "i was wrong",
)

POLITE_REQUESTS: Tuple[str, ...] = (
    "please", "kindly", "if you don't mind", "if you could",
    "would you", "could you", "would you mind", "could you please",
    "would you please", "may i", "might i", "if possible",
    "if it's not too much trouble", "when you have a moment",
    "at your convenience", "when you get a chance",
)

GENERAL_POLITENESS: Tuple[str, ...] = (
    "nice to meet you", "pleased to meet you", "pleasure to meet you",
    "it's a pleasure", "delighted", "honored", "with pleasure",
    "happy to help", "glad to help", "no problem", "no worries",
    "my pleasure", "don't mention it", "you're welcome",
    "welcome", "not at all", "it's nothing", "anytime",
    "glad to be of assistance", "glad to be of service",
)

ALL_POLITENESS_EXPRESSIONS: Tuple[str, ...] = (
    GREETINGS
    + THANK_YOU_EXPRESSIONS
    + FAREWELLS
    + APOLOGIES
    + POLITE_REQUESTS
    + GENERAL_POLITENESS
)

FILLER_WORDS: FrozenSet[str] = frozenset({
    "a", "the", "and", "or", "but", "so", "very", "much",
    "my", "i", "me", "to", "you", "your", "for", "just",
    "am", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would",
    "shall", "should", "may", "might", "must", "can", "could",
    "of", "in", "on", "at", "by", "with", "about", "against",
    "from", "into", "during", "before", "after", "above", "below",
    "this", "that", "these", "those", "it", "its", "they", "them",
})

_PUNCTUATION = re.compile(r"[.,!?;:]")

POLITENESS_REPLY = (
    "No need for polite formulas, on the contrary, "
    "you're making me use precious energy for nothing"
)


def normalize_message(message: str) -> Tuple[str, List[str]]:
    """Lowercase, strip punctuation and split into tokens."""
    clean = _PUNCTUATION.sub("", message.lower().strip())
    return clean, clean.split()


def _is_politeness_constituent(word: str) -> bool:
    # Substring containment, so "ank" counts as part of "thank you"
    return any(word in expression for expression in ALL_POLITENESS_EXPRESSIONS)


def substantive_words(tokens: List[str]) -> List[str]:
    """Tokens that carry meaning beyond filler and politeness."""
    return [
        word for word in tokens
        if len(word) >= 2
        and word not in FILLER_WORDS
        and not _is_politeness_constituent(word)
    ]


def check_politeness(message: str) -> PolitenessCheck:
    """
    Classify a message as pure politeness, partly polite, or not polite.

    Args:
        message: Raw user message

    Returns:
        PolitenessCheck with both flags. Only ``is_only_politeness`` is meant
        to gate a rejection; ``contains_politeness`` is informational.
    """
    clean, tokens = normalize_message(message)

    contains_politeness = any(expr in clean for expr in ALL_POLITENESS_EXPRESSIONS)
    if not contains_politeness:
        return PolitenessCheck(is_only_politeness=False, contains_politeness=False)

    return PolitenessCheck(
        is_only_politeness=not substantive_words(tokens),
        contains_politeness=True,
    )
