"""
Score ledger: maps outcome categories to point deltas.

Pure functions only. The caller supplies the current balance and persists
the new one.
"""

from typing import Dict

from .models import LedgerResult, PenaltyCategory


PENALTIES: Dict[PenaltyCategory, int] = {
    PenaltyCategory.POLITENESS: -5,
    PenaltyCategory.GOOGLEABLE: -10,
    PenaltyCategory.DOCUMENTATION: -5,
    PenaltyCategory.MANPAGE: -5,
    PenaltyCategory.NO_SUBSTANCE: -3,
    PenaltyCategory.INVALID_FORMAT: -2,
    PenaltyCategory.TECHNICAL_ANSWER: 0,
}

REASONS: Dict[PenaltyCategory, str] = {
    PenaltyCategory.POLITENESS: "Polite formulas waste energy",
    PenaltyCategory.GOOGLEABLE: "This could have been a web search",
    PenaltyCategory.DOCUMENTATION: "The official documentation already answers this",
    PenaltyCategory.MANPAGE: "The manual page already answers this",
    PenaltyCategory.NO_SUBSTANCE: "Message without technical substance",
    PenaltyCategory.INVALID_FORMAT: "Malformed request",
    PenaltyCategory.TECHNICAL_ANSWER: "Technical question answered",
}

MOOD_THRESHOLDS = (
    (80, "thriving"),
    (50, "content"),
    (20, "worried"),
)


def apply_penalty(current_points: int, category: PenaltyCategory) -> LedgerResult:
    """
    Charge ``category`` against a balance.

    Args:
        current_points: Balance before this request
        category: Outcome category of the request

    Returns:
        LedgerResult with the clamped new balance, the delta and its reason
    """
    category = PenaltyCategory(category)
    delta = PENALTIES[category]
    return LedgerResult(
        category=category,
        points=clamp_points(current_points + delta),
        delta=delta,
        reason=REASONS[category]
    )


def clamp_points(points: int) -> int:
    return max(0, points)


def mascot_mood(points: int) -> str:
    """Mood of the mascot for a balance."""
    for threshold, mood in MOOD_THRESHOLDS:
        if points >= threshold:
            return mood
    return "distressed"
