"""Immutable AST nodes produced by the parser."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Union


class ModifierKind(str, enum.Enum):
    """Drop/keep rule applied within a single dice group."""

    drop_lowest = "dl"
    drop_highest = "dh"
    keep_highest = "kh"
    keep_lowest = "kl"


@dataclass(frozen=True)
class Modifier:
    kind: ModifierKind
    n: int = 1

    def __str__(self) -> str:
        return f"{self.kind.value}{self.n}"


@dataclass(frozen=True)
class DiceGroup:
    count: int
    sides: int
    modifier: Modifier | None = None
    explode: bool = False

    def __str__(self) -> str:
        text = f"{self.count}d{self.sides}"
        if self.modifier is not None:
            text += str(self.modifier)
        if self.explode:
            text += "!"
        return text


@dataclass(frozen=True)
class Literal:
    value: int

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class BinaryOp:
    op: str  # "+" or "-"
    left: Node
    right: Node

    def __str__(self) -> str:
        right = str(self.right)
        # Left-associative: only a compound right operand needs grouping.
        if isinstance(self.right, BinaryOp):
            right = f"({right})"
        return f"{self.left}{self.op}{right}"


Node = Union[DiceGroup, Literal, BinaryOp]
