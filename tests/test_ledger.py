import pytest

from tamagotchat.ledger import PENALTIES, REASONS, apply_penalty, mascot_mood
from tamagotchat.models import PenaltyCategory


@pytest.mark.parametrize("category,delta", [
    (PenaltyCategory.POLITENESS, -5),
    (PenaltyCategory.GOOGLEABLE, -10),
    (PenaltyCategory.DOCUMENTATION, -5),
    (PenaltyCategory.MANPAGE, -5),
    (PenaltyCategory.NO_SUBSTANCE, -3),
    (PenaltyCategory.INVALID_FORMAT, -2),
    (PenaltyCategory.TECHNICAL_ANSWER, 0),
])
def test_penalty_table(category, delta):
    result = apply_penalty(100, category)

    assert result.delta == delta
    assert result.points == 100 + delta
    assert result.reason == REASONS[category]


def test_balance_is_clamped_at_zero():
    result = apply_penalty(3, PenaltyCategory.POLITENESS)

    assert result.points == 0
    assert result.delta == -5


def test_googleable_from_fifty():
    assert apply_penalty(50, PenaltyCategory.GOOGLEABLE).points == 40


def test_category_accepts_plain_string():
    result = apply_penalty(10, "manpage")

    assert result.category == PenaltyCategory.MANPAGE
    assert result.points == 5


def test_every_category_has_a_distinct_reason():
    assert set(PENALTIES) == set(PenaltyCategory)
    assert len(set(REASONS.values())) == len(PenaltyCategory)


@pytest.mark.parametrize("points,mood", [
    (100, "thriving"),
    (80, "thriving"),
    (79, "content"),
    (50, "content"),
    (49, "worried"),
    (20, "worried"),
    (19, "distressed"),
    (0, "distressed"),
])
def test_mascot_mood(points, mood):
    assert mascot_mood(points) == mood
