"""Engine facade: parse, evaluate, then record in history."""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from collections.abc import Iterable

from diceforge.config import Settings, settings as default_settings
from diceforge.errors import RandomnessUnavailable
from diceforge.evaluator import evaluate
from diceforge.history import RollHistory
from diceforge.parser import parse
from diceforge.rng import RandomSource, resolve_source
from diceforge.schemas import EngineStats, RollResult

logger = logging.getLogger(__name__)


class DiceEngine:
    """Rolls dice expressions and keeps a bounded history of the results.

    The engine owns its random source and history. Both are safe to share
    between threads; parsing and evaluation hold no other shared state.
    Running statistics are kept under their own lock.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        source: RandomSource | None = None,
        history: RollHistory | None = None,
    ) -> None:
        self.settings = settings if settings is not None else default_settings
        if source is None:
            source = resolve_source(self.settings.require_secure_randomness, self.settings.seed)
        elif self.settings.require_secure_randomness and not source.is_secure:
            raise RandomnessUnavailable(f"Random source {source.name!r} is not cryptographically secure")
        self._source = source
        if history is None:
            history = RollHistory(
                capacity=self.settings.history_capacity,
                byte_budget=self.settings.history_byte_budget,
            )
        self._history = history

        self._stats_lock = threading.Lock()
        self._total_rolls = 0
        self._die_counts: Counter[int] = Counter()
        self._natural_twenties = 0
        self._natural_ones = 0
        self._total_seconds = 0.0
        self._max_seconds = 0.0

    @property
    def source(self) -> RandomSource:
        return self._source

    @property
    def history(self) -> RollHistory:
        return self._history

    def roll(
        self,
        expression: str,
        *,
        require_secure: bool | None = None,
        explode_cap: int | None = None,
    ) -> RollResult:
        """Roll ``expression`` and append the result to history.

        Args:
            expression: Dice notation, e.g. ``"4d6dl1+2"``.
            require_secure: Override ``settings.require_secure_randomness`` for this call.
            explode_cap: Override ``settings.explode_cap`` for this call.

        Returns:
            The roll result.

        Raises:
            DiceSyntaxError: If the expression is malformed.
            ModifierOutOfRange: If a drop/keep count is not below the die count.
            RandomnessUnavailable: If secure randomness is required but the source is not secure.
            DiceRangeError: If the total overflows.
        """
        if require_secure is None:
            require_secure = self.settings.require_secure_randomness
        if explode_cap is None:
            explode_cap = self.settings.explode_cap
        started = time.perf_counter()
        node = parse(expression)
        if require_secure and not self._source.is_secure:
            raise RandomnessUnavailable(
                f"Secure randomness required but engine uses the {self._source.name!r} source"
            )
        result = evaluate(node, self._source, expression=expression, explode_cap=explode_cap)
        elapsed = time.perf_counter() - started
        self._history.append(result)
        self._record(result, elapsed)
        logger.debug(
            "Rolled %s = %d (source=%s, %.3f ms)", expression, result.total, result.source, elapsed * 1000
        )
        return result

    def roll_batch(self, expressions: Iterable[str]) -> list[RollResult]:
        """Roll each expression in order. Stops at the first failure.

        Logs a warning when the batch as a whole runs over
        ``settings.batch_latency_budget_ms``.
        """
        started = time.perf_counter()
        results = [self.roll(expression) for expression in expressions]
        elapsed_ms = (time.perf_counter() - started) * 1000
        budget_ms = self.settings.batch_latency_budget_ms
        if elapsed_ms > budget_ms:
            logger.warning(
                "Batch of %d rolls took %.3f ms, over the %.1f ms budget", len(results), elapsed_ms, budget_ms
            )
        return results

    def stats(self) -> EngineStats:
        """Return a snapshot of the running roll statistics."""
        with self._stats_lock:
            average = self._total_seconds / self._total_rolls if self._total_rolls else 0.0
            return EngineStats(
                source=self._source.name,
                total_rolls=self._total_rolls,
                dice_rolled=sum(self._die_counts.values()),
                die_counts=dict(sorted(self._die_counts.items())),
                natural_twenties=self._natural_twenties,
                natural_ones=self._natural_ones,
                average_duration_ms=round(average * 1000, 3),
                max_duration_ms=round(self._max_seconds * 1000, 3),
            )

    def reset_stats(self) -> None:
        """Zero the running statistics. History is left alone."""
        with self._stats_lock:
            self._total_rolls = 0
            self._die_counts.clear()
            self._natural_twenties = 0
            self._natural_ones = 0
            self._total_seconds = 0.0
            self._max_seconds = 0.0

    def _record(self, result: RollResult, elapsed: float) -> None:
        with self._stats_lock:
            self._total_rolls += 1
            self._total_seconds += elapsed
            self._max_seconds = max(self._max_seconds, elapsed)
            for group in result.groups:
                self._die_counts[group.sides] += len(group.raw_rolls)
                if group.sides == 20:
                    self._natural_twenties += group.kept_rolls.count(20)
                    self._natural_ones += group.kept_rolls.count(1)


_engine: DiceEngine | None = None
_engine_lock = threading.Lock()


def get_engine() -> DiceEngine:
    """Return the process-wide engine, creating it from ``settings`` on first use.

    Safe to call from several threads at once; exactly one engine is built.
    """
    global _engine
    if _engine is None:
        with _engine_lock:
            if _engine is None:
                _engine = DiceEngine()
    return _engine
