"""Pydantic records returned by the engine.

All records are frozen and hold tuples, so a caller can never mutate a
result after it has been handed out or stored in the history. Serialize with
``model_dump(by_alias=True)`` to get the camelCase field names
(``rawRolls``, ``keptRolls``, ``timestampUtc`` ...).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class GroupResult(_Record):
    sides: int
    count: int
    sign: Literal[1, -1] = Field(
        default=1,
        description="-1 when the group is subtracted from the total.",
    )
    raw_rolls: tuple[int, ...] = Field(description="Every roll in draw order, explosions included.")
    kept_rolls: tuple[int, ...]
    dropped_rolls: tuple[int, ...] = ()
    exploded_count: int = 0

    @property
    def subtotal(self) -> int:
        """Signed contribution of this group to the roll total."""
        return self.sign * sum(self.kept_rolls)


class RollResult(_Record):
    expression: str
    total: int
    groups: tuple[GroupResult, ...] = ()
    timestamp_utc: datetime = Field(default_factory=_utcnow)
    source: str = Field(description="Name of the random source that produced the rolls.")

    @property
    def dice_total(self) -> int:
        """Signed sum of all kept dice, excluding flat modifiers."""
        return sum(group.subtotal for group in self.groups)

    @property
    def modifier_total(self) -> int:
        """Signed sum of all literal terms."""
        return self.total - self.dice_total


class HistoryEntry(_Record):
    sequence_id: int
    result: RollResult


class UniformityReport(_Record):
    sides: int
    sample_size: int
    chi_square: float
    degrees_of_freedom: int
    p_value: float
    passed: bool
    counts: tuple[int, ...] = Field(description="Observed frequency of each face, index 0 is face 1.")


class RollStatistics(_Record):
    expression: str
    iterations: int
    mean: float
    median: float
    minimum: int
    maximum: int


class EngineStats(_Record):
    source: str
    total_rolls: int = Field(description="Successful rolls since the engine was created or last reset.")
    dice_rolled: int = 0
    die_counts: dict[int, int] = Field(
        default_factory=dict,
        description="Dice drawn per die size, explosions included.",
    )
    natural_twenties: int = Field(default=0, description="Kept d20 rolls showing 20.")
    natural_ones: int = Field(default=0, description="Kept d20 rolls showing 1.")
    average_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
