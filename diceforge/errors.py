"""Exception hierarchy for the dice engine.

Every failure carries structured detail so callers can present an actionable
message. Nothing in the engine retries or recovers silently.
"""

from __future__ import annotations


class DiceError(ValueError):
    """Base class for all dice engine errors."""


class DiceSyntaxError(DiceError):
    """Raised when an expression cannot be parsed.

    Attributes:
        position: Zero-based character offset where the problem was detected.
        reason: Human-readable description of the problem.
    """

    def __init__(self, position: int, reason: str) -> None:
        self.position = position
        self.reason = reason
        super().__init__(f"{reason} (at position {position})")


class ModifierOutOfRange(DiceSyntaxError):
    """Raised when a drop/keep count is not smaller than the group's die count."""

    def __init__(self, position: int, count: int, n: int) -> None:
        self.count = count
        self.n = n
        super().__init__(
            position,
            f"Modifier count {n} must be less than the number of dice ({count})",
        )


class RandomnessUnavailable(DiceError, RuntimeError):
    """Raised when secure randomness was required but the platform has none."""


class DiceRangeError(DiceError, OverflowError):
    """Raised when an intermediate or final total leaves the supported integer range."""

    def __init__(self, value: int, low: int, high: int) -> None:
        self.value = value
        super().__init__(f"Total {value} outside supported range [{low}, {high}]")
