"""Random sources and the unbiased die sampler.

Two interchangeable sources supply uniformly distributed 32-bit integers:

SecureRandomSource
    Delegates to the platform CSPRNG through ``secrets``. Stateless from the
    engine's point of view, so it needs no locking.

SeededRandomSource
    A deterministic ``random.Random`` stream for reproducible tests and for
    platforms without a CSPRNG. Its state is shared by every caller holding
    the instance, so each draw is serialized with a lock.

``roll_die`` maps those raw values onto die faces with rejection sampling.
"""

from __future__ import annotations

import logging
import os
import random
import secrets
import threading
import time
from abc import ABC, abstractmethod

from diceforge.errors import RandomnessUnavailable

logger = logging.getLogger(__name__)

MIN_SIDES = 2
MAX_SIDES = 100_000

_U32_RANGE = 1 << 32


class RandomSource(ABC):
    """Base class for sources of uniform unsigned 32-bit integers."""

    name = "abstract"
    is_secure = False

    @abstractmethod
    def next_u32(self) -> int:
        """Return a uniformly distributed integer in [0, 2**32)."""


class SecureRandomSource(RandomSource):
    name = "secure"
    is_secure = True

    @staticmethod
    def available() -> bool:
        """Return True if the platform exposes a CSPRNG."""
        try:
            os.urandom(1)
        except NotImplementedError:
            return False
        return True

    def next_u32(self) -> int:
        return secrets.randbits(32)


class SeededRandomSource(RandomSource):
    """Deterministic generator; identical seeds give identical streams."""

    name = "seeded"
    is_secure = False

    def __init__(self, seed: int | None = None) -> None:
        if seed is None:
            seed = time.time_ns()
        self._seed = seed
        self._rng = random.Random(seed)
        self._lock = threading.Lock()

    @property
    def seed(self) -> int:
        return self._seed

    def reseed(self, seed: int) -> None:
        """Restart the stream from ``seed``. Intended for test reproducibility."""
        with self._lock:
            self._seed = seed
            self._rng.seed(seed)

    def next_u32(self) -> int:
        with self._lock:
            return self._rng.getrandbits(32)


def roll_die(source: RandomSource, sides: int) -> int:
    """Roll one die with ``sides`` faces and return a value in [1, sides].

    Raw draws landing in the trailing partial block of the 32-bit range are
    rejected and redrawn, so every face has probability exactly 1/sides.

    Raises:
        ValueError: If ``sides`` is outside [2, 100000].
    """
    if not MIN_SIDES <= sides <= MAX_SIDES:
        raise ValueError(f"Die sides must be between {MIN_SIDES} and {MAX_SIDES}, got {sides}")
    limit = (_U32_RANGE // sides) * sides
    while True:
        value = source.next_u32()
        if value < limit:
            return value % sides + 1


def resolve_source(require_secure: bool = False, seed: int | None = None) -> RandomSource:
    """Pick the random source for an engine.

    Args:
        require_secure: Fail rather than degrade when no CSPRNG is available.
        seed: Explicit seed; always selects the deterministic source.

    Returns:
        The secure source when available, otherwise a seeded fallback.

    Raises:
        RandomnessUnavailable: If secure randomness is required but cannot be used.
    """
    if seed is not None:
        if require_secure:
            raise RandomnessUnavailable("A fixed seed was given but secure randomness is required")
        return SeededRandomSource(seed)
    if SecureRandomSource.available():
        return SecureRandomSource()
    if require_secure:
        raise RandomnessUnavailable("No cryptographically secure random source on this platform")
    fallback = SeededRandomSource()
    logger.warning(
        "Secure randomness unavailable, falling back to seeded generator (seed=%d)", fallback.seed
    )
    return fallback
