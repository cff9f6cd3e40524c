"""Diagnostics for random sources and expressions.

Nothing here runs on the rolling hot path; these helpers are called
explicitly from tests or by tooling that wants to audit a source.
"""

from __future__ import annotations

import math
import statistics

from diceforge.evaluator import DEFAULT_EXPLODE_CAP, evaluate
from diceforge.parser import parse
from diceforge.rng import RandomSource, roll_die
from diceforge.schemas import RollStatistics, UniformityReport

DEFAULT_ALPHA = 0.05

_EPSILON = 1e-14
_TINY = 1e-300
_MAX_ITERATIONS = 10_000


def _gamma_p_series(a: float, x: float) -> float:
    total = term = 1.0 / a
    denominator = a
    for _ in range(_MAX_ITERATIONS):
        denominator += 1.0
        term *= x / denominator
        total += term
        if abs(term) < abs(total) * _EPSILON:
            break
    return total * math.exp(-x + a * math.log(x) - math.lgamma(a))


def _gamma_q_fraction(a: float, x: float) -> float:
    # Modified Lentz evaluation of the continued fraction for Q(a, x).
    b = x + 1.0 - a
    c = 1.0 / _TINY
    d = 1.0 / b
    h = d
    for i in range(1, _MAX_ITERATIONS):
        an = -i * (i - a)
        b += 2.0
        d = an * d + b
        if abs(d) < _TINY:
            d = _TINY
        c = b + an / c
        if abs(c) < _TINY:
            c = _TINY
        d = 1.0 / d
        delta = d * c
        h *= delta
        if abs(delta - 1.0) < _EPSILON:
            break
    return math.exp(-x + a * math.log(x) - math.lgamma(a)) * h


def chi_square_p_value(statistic: float, degrees_of_freedom: int) -> float:
    """Upper-tail probability of the chi-square distribution.

    Computed as the regularized upper incomplete gamma function
    Q(k/2, x/2).
    """
    if degrees_of_freedom < 1:
        raise ValueError(f"Degrees of freedom must be at least 1, got {degrees_of_freedom}")
    if statistic <= 0:
        return 1.0
    a = degrees_of_freedom / 2.0
    x = statistic / 2.0
    if x < a + 1.0:
        return max(0.0, 1.0 - _gamma_p_series(a, x))
    return min(1.0, _gamma_q_fraction(a, x))


def validate(
    sides: int,
    sample_size: int,
    source: RandomSource,
    alpha: float = DEFAULT_ALPHA,
) -> UniformityReport:
    """Run Pearson's chi-square goodness-of-fit test on single-die rolls.

    Args:
        sides: Faces on the die under test.
        sample_size: Number of rolls to draw.
        source: Random source to audit.
        alpha: Significance level; the test passes when p_value > alpha.

    Returns:
        Report with the statistic, p-value, verdict and per-face counts.
    """
    if sample_size < 1:
        raise ValueError(f"Sample size must be positive, got {sample_size}")
    counts = [0] * sides
    for _ in range(sample_size):
        counts[roll_die(source, sides) - 1] += 1
    expected = sample_size / sides
    chi_square = sum((observed - expected) ** 2 / expected for observed in counts)
    degrees_of_freedom = sides - 1
    p_value = chi_square_p_value(chi_square, degrees_of_freedom)
    return UniformityReport(
        sides=sides,
        sample_size=sample_size,
        chi_square=chi_square,
        degrees_of_freedom=degrees_of_freedom,
        p_value=p_value,
        passed=p_value > alpha,
        counts=tuple(counts),
    )


def analyze(
    expression: str,
    iterations: int,
    source: RandomSource,
    explode_cap: int = DEFAULT_EXPLODE_CAP,
) -> RollStatistics:
    """Roll ``expression`` repeatedly and summarize the totals.

    The rolls are not recorded in any history.
    """
    if iterations < 1:
        raise ValueError(f"Iterations must be positive, got {iterations}")
    node = parse(expression)
    totals = [evaluate(node, source, explode_cap=explode_cap).total for _ in range(iterations)]
    return RollStatistics(
        expression=expression,
        iterations=iterations,
        mean=round(statistics.fmean(totals), 2),
        median=statistics.median(totals),
        minimum=min(totals),
        maximum=max(totals),
    )
