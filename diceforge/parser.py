"""Tokenizer and recursive-descent parser for dice notation.

Grammar (precedence low to high)::

    expression := term (('+' | '-') term)*
    term       := dice_group | integer | '(' expression ')' | 'adv' | 'dis'
    dice_group := integer? 'd' integer (modifier | '!')*
    modifier   := ('dl' | 'dh' | 'kh' | 'kl') integer?

Examples: ``d20``, ``4d6dl1``, ``2d20kh1+5``, ``3d8+5-1``, ``4d6!``, ``adv+3``.

``adv`` and ``dis`` are shorthand for ``2d20kh1`` and ``2d20kl1``. A dice
group takes at most one modifier and one explode marker, in either order.
All validation happens here so that malformed expressions fail before any
randomness is consumed.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass

from diceforge.errors import DiceSyntaxError, ModifierOutOfRange
from diceforge.nodes import BinaryOp, DiceGroup, Literal, Modifier, ModifierKind, Node
from diceforge.rng import MAX_SIDES, MIN_SIDES

MAX_DICE = 1000
MAX_LITERAL = 2**31 - 1

_MODIFIER_WORDS = {kind.value: kind for kind in ModifierKind}
_ALIASES = {
    "adv": DiceGroup(2, 20, Modifier(ModifierKind.keep_highest, 1)),
    "dis": DiceGroup(2, 20, Modifier(ModifierKind.keep_lowest, 1)),
}
_SYMBOLS = {"+": "op", "-": "op", "(": "lparen", ")": "rparen", "!": "explode"}


@dataclass(frozen=True)
class Token:
    kind: str  # int, die, mod, alias, op, lparen, rparen, explode, end
    text: str
    position: int


def tokenize(expr: str) -> list[Token]:
    """Split ``expr`` into tokens, ending with an ``end`` token.

    Raises:
        DiceSyntaxError: On characters or words outside the notation.
    """
    tokens: list[Token] = []
    i = 0
    length = len(expr)
    while i < length:
        ch = expr[i]
        if ch.isspace():
            i += 1
            continue
        start = i
        if ch.isascii() and ch.isdigit():
            while i < length and expr[i].isascii() and expr[i].isdigit():
                i += 1
            tokens.append(Token("int", expr[start:i], start))
            continue
        if ch.isascii() and ch.isalpha():
            while i < length and expr[i].isascii() and expr[i].isalpha():
                i += 1
            word = expr[start:i].lower()
            if word == "d":
                tokens.append(Token("die", word, start))
            elif word in _MODIFIER_WORDS:
                tokens.append(Token("mod", word, start))
            elif word in _ALIASES:
                tokens.append(Token("alias", word, start))
            else:
                raise DiceSyntaxError(start, f"Unknown keyword {expr[start:i]!r}")
            continue
        if ch in _SYMBOLS:
            tokens.append(Token(_SYMBOLS[ch], ch, start))
            i += 1
            continue
        raise DiceSyntaxError(start, f"Unexpected character {ch!r}")
    tokens.append(Token("end", "", length))
    return tokens


class _Parser:
    def __init__(self, tokens: list[Token]) -> None:
        self._tokens = tokens
        self._index = 0

    def _peek(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        if token.kind != "end":
            self._index += 1
        return token

    def parse(self) -> Node:
        if self._peek().kind == "end":
            raise DiceSyntaxError(0, "Empty expression")
        node = self._expression()
        token = self._peek()
        if token.kind == "rparen":
            raise DiceSyntaxError(token.position, "Unbalanced parentheses: unexpected ')'")
        if token.kind != "end":
            raise DiceSyntaxError(token.position, f"Unexpected trailing input {token.text!r}")
        return node

    def _expression(self) -> Node:
        node = self._term()
        while self._peek().kind == "op":
            op = self._advance().text
            node = BinaryOp(op, node, self._term())
        return node

    def _term(self) -> Node:
        token = self._advance()
        if token.kind == "lparen":
            node = self._expression()
            closing = self._peek()
            if closing.kind != "rparen":
                raise DiceSyntaxError(closing.position, "Unbalanced parentheses: missing ')'")
            self._advance()
            return node
        if token.kind == "alias":
            return _ALIASES[token.text]
        if token.kind == "die":
            return self._dice_group(1, token)
        if token.kind == "int":
            value = _integer(token)
            if self._peek().kind == "die":
                if value < 1:
                    raise DiceSyntaxError(token.position, "Dice count must be at least 1")
                return self._dice_group(value, self._advance())
            return Literal(value)
        if token.kind == "op" and token.text == "-":
            raise DiceSyntaxError(token.position, "Negative values are not supported")
        if token.kind == "rparen":
            raise DiceSyntaxError(token.position, "Unbalanced parentheses: unexpected ')'")
        if token.kind == "end":
            raise DiceSyntaxError(token.position, "Unexpected end of expression")
        raise DiceSyntaxError(token.position, f"Expected a number, die or '(' but got {token.text!r}")

    def _dice_group(self, count: int, die: Token) -> DiceGroup:
        size = self._peek()
        if size.kind != "int":
            raise DiceSyntaxError(size.position, "Missing die size after 'd'")
        self._advance()
        sides = _integer(size)
        if count > MAX_DICE:
            raise DiceSyntaxError(die.position, f"Too many dice: {count} (max {MAX_DICE})")
        if sides < MIN_SIDES:
            raise DiceSyntaxError(size.position, f"Die must have at least {MIN_SIDES} sides, got {sides}")
        if sides > MAX_SIDES:
            raise DiceSyntaxError(size.position, f"Too many sides: {sides} (max {MAX_SIDES})")

        modifier: Modifier | None = None
        explode = False
        while True:
            token = self._peek()
            if token.kind == "mod":
                if modifier is not None:
                    raise DiceSyntaxError(token.position, "A dice group takes only one modifier")
                self._advance()
                modifier = self._modifier(token, count)
            elif token.kind == "explode":
                if explode:
                    raise DiceSyntaxError(token.position, "Duplicate explode marker '!'")
                self._advance()
                explode = True
            else:
                break
        return DiceGroup(count, sides, modifier, explode)

    def _modifier(self, token: Token, count: int) -> Modifier:
        n = 1
        if self._peek().kind == "int":
            n = _integer(self._advance())
            if n < 1:
                raise DiceSyntaxError(token.position, "Modifier count must be at least 1")
        if n >= count:
            raise ModifierOutOfRange(token.position, count, n)
        return Modifier(_MODIFIER_WORDS[token.text], n)


def _integer(token: Token) -> int:
    # Length check first: int() refuses very long digit strings outright.
    digits = token.text.lstrip("0")
    if len(digits) > len(str(MAX_LITERAL)) or int(digits or "0") > MAX_LITERAL:
        shown = token.text if len(token.text) <= 20 else token.text[:20] + "..."
        raise DiceSyntaxError(token.position, f"Number too large: {shown}")
    return int(digits or "0")



@functools.lru_cache(maxsize=512)
def parse(expr: str) -> Node:
    """Parse a dice expression into an immutable AST.

    Results are cached by expression text; the returned nodes are frozen so
    sharing them between callers is safe.

    Args:
        expr: Dice notation, e.g. ``"4d6dl1+2"``.

    Returns:
        The root node of the expression tree.

    Raises:
        DiceSyntaxError: If the expression is malformed.
        ModifierOutOfRange: If a drop/keep count is not below the die count.
    """
    return _Parser(tokenize(expr)).parse()
