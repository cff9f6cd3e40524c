"""Evaluate parsed dice expressions against a random source.

Evaluation only consumes randomness; it never records history. That is the
engine facade's job, which keeps evaluation testable with a fixed source.
"""

from __future__ import annotations

import logging

from diceforge.errors import DiceRangeError
from diceforge.nodes import BinaryOp, DiceGroup, Literal, ModifierKind, Node
from diceforge.rng import RandomSource, roll_die
from diceforge.schemas import GroupResult, RollResult

logger = logging.getLogger(__name__)

MIN_TOTAL = -(2**31)
MAX_TOTAL = 2**31 - 1

DEFAULT_EXPLODE_CAP = 100

_LOW_FIRST = (ModifierKind.drop_lowest, ModifierKind.keep_lowest)
_DROPS = (ModifierKind.drop_lowest, ModifierKind.drop_highest)


def _checked(value: int) -> int:
    if not MIN_TOTAL <= value <= MAX_TOTAL:
        raise DiceRangeError(value, MIN_TOTAL, MAX_TOTAL)
    return value


def _draw(group: DiceGroup, source: RandomSource, explode_cap: int) -> tuple[list[int], int]:
    """Roll a group's dice, chaining explosions up to ``explode_cap`` extra draws."""
    rolls = [roll_die(source, group.sides) for _ in range(group.count)]
    if not group.explode:
        return rolls, 0
    extra = 0
    i = 0
    while i < len(rolls) and extra < explode_cap:
        if rolls[i] == group.sides:
            rolls.append(roll_die(source, group.sides))
            extra += 1
        i += 1
    if extra >= explode_cap and group.sides in rolls[i:]:
        logger.debug("Explosion cap of %d reached for %s", explode_cap, group)
    return rolls, extra


def partition(rolls: list[int], kind: ModifierKind, n: int) -> tuple[tuple[int, ...], tuple[int, ...]]:
    """Split rolls into (kept, dropped) for a drop/keep modifier.

    Rolls are ranked by a stable sort, so among equal values the earlier roll
    is dropped (or kept) first. Both returned tuples keep original roll order.
    """
    indexed = list(enumerate(rolls))
    if kind in _LOW_FIRST:
        ranked = sorted(indexed, key=lambda pair: pair[1])
    else:
        ranked = sorted(indexed, key=lambda pair: -pair[1])
    chosen = {index for index, _ in ranked[:n]}
    if kind in _DROPS:
        kept = tuple(value for index, value in indexed if index not in chosen)
        dropped = tuple(value for index, value in indexed if index in chosen)
    else:
        kept = tuple(value for index, value in indexed if index in chosen)
        dropped = tuple(value for index, value in indexed if index not in chosen)
    return kept, dropped


class _Evaluation:
    def __init__(self, source: RandomSource, explode_cap: int) -> None:
        self.source = source
        self.explode_cap = explode_cap
        self.groups: list[GroupResult] = []

    def visit(self, node: Node, sign: int) -> int:
        """Return the signed contribution of ``node`` to the total."""
        if isinstance(node, Literal):
            return _checked(sign * node.value)
        if isinstance(node, DiceGroup):
            return self._group(node, sign)
        if isinstance(node, BinaryOp):
            left = self.visit(node.left, sign)
            right = self.visit(node.right, sign if node.op == "+" else -sign)
            return _checked(left + right)
        raise TypeError(f"Unsupported node: {node!r}")

    def _group(self, group: DiceGroup, sign: int) -> int:
        rolls, exploded = _draw(group, self.source, self.explode_cap)
        if group.modifier is None:
            kept, dropped = tuple(rolls), ()
        else:
            kept, dropped = partition(rolls, group.modifier.kind, group.modifier.n)
        result = GroupResult(
            sides=group.sides,
            count=group.count,
            sign=sign,
            raw_rolls=tuple(rolls),
            kept_rolls=kept,
            dropped_rolls=dropped,
            exploded_count=exploded,
        )
        self.groups.append(result)
        return _checked(result.subtotal)


def evaluate(
    node: Node,
    source: RandomSource,
    *,
    expression: str | None = None,
    explode_cap: int = DEFAULT_EXPLODE_CAP,
) -> RollResult:
    """Roll every dice group in ``node`` and combine the results.

    Args:
        node: Parsed expression tree.
        source: Random source to draw from.
        expression: Original text to record; defaults to the canonical form of ``node``.
        explode_cap: Maximum extra draws per exploding group.

    Returns:
        The immutable roll result. Groups appear in left-to-right order.

    Raises:
        DiceRangeError: If any intermediate or final total overflows 32-bit signed range.
    """
    evaluation = _Evaluation(source, explode_cap)
    total = evaluation.visit(node, 1)
    return RollResult(
        expression=expression if expression is not None else str(node),
        total=total,
        groups=tuple(evaluation.groups),
        source=source.name,
    )


def bounds(node: Node, explode_cap: int = DEFAULT_EXPLODE_CAP) -> tuple[int, int]:
    """Return the smallest and largest total ``node`` can produce."""
    if isinstance(node, Literal):
        return node.value, node.value
    if isinstance(node, DiceGroup):
        most_rolls = node.count + (explode_cap if node.explode else 0)
        if node.modifier is None:
            fewest_kept, most_kept = node.count, most_rolls
        elif node.modifier.kind in _DROPS:
            fewest_kept, most_kept = node.count - node.modifier.n, most_rolls - node.modifier.n
        else:
            fewest_kept = most_kept = node.modifier.n
        return fewest_kept, most_kept * node.sides
    if isinstance(node, BinaryOp):
        left_low, left_high = bounds(node.left, explode_cap)
        right_low, right_high = bounds(node.right, explode_cap)
        if node.op == "+":
            return left_low + right_low, left_high + right_high
        return left_low - right_high, left_high - right_low
    raise TypeError(f"Unsupported node: {node!r}")
