"""
Domain models for learning statistics.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class SessionEstimate:
    """
    Sizing of the next study session.

    Attributes:
        new_cards: New cards offered (capped by the new-card limit).
        review_cards: Cards currently due.
        estimated_minutes: Rounded study time for both groups.
    """

    new_cards: int
    review_cards: int
    estimated_minutes: int


@dataclass(frozen=True)
class LearningStats:
    """
    Aggregate view over a learner's scheduling records.

    retention_rate is a fraction (0.0-1.0) of cards reviewed in the
    retention window whose last grade was a pass.
    """

    total_cards: int
    new_cards: int
    learning_cards: int
    mastered_cards: int
    average_ease: float
    average_interval: float
    retention_rate: float
