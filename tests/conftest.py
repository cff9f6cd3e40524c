"""Shared test fixtures for the diceforge test suite.

Random sources
--------------
scripted, scripted_raw  (function scope)
    Factory returning a ScriptedSource that yields chosen die faces in order.
    Because the sampler maps a raw draw ``v`` to ``v % sides + 1``, feeding
    ``face - 1`` produces exactly ``face`` for any die. scripted_raw feeds raw
    draws unchanged. Running out of values fails the test instead of
    silently recycling.

seeded  (function scope)
    A SeededRandomSource with a fixed seed, for reproducible statistical tests.

Nothing in the suite touches the process-wide engine; every test builds its
own DiceEngine with an explicit source.
"""

from __future__ import annotations

from collections.abc import Iterable

import pytest

from diceforge.config import Settings
from diceforge.rng import RandomSource, SeededRandomSource


class ScriptedSource(RandomSource):
    """Random source that replays a fixed list of raw 32-bit values."""

    name = "scripted"

    def __init__(self, raw_values: Iterable[int], is_secure: bool = False) -> None:
        self._values = iter(raw_values)
        self.is_secure = is_secure
        self.draws = 0

    @classmethod
    def faces(cls, faces: Iterable[int], is_secure: bool = False) -> ScriptedSource:
        return cls((face - 1 for face in faces), is_secure=is_secure)

    def next_u32(self) -> int:
        try:
            value = next(self._values)
        except StopIteration:
            raise AssertionError("Not enough scripted random values for this test.") from None
        self.draws += 1
        return value


@pytest.fixture
def scripted():
    """Build a ScriptedSource from die faces: ``scripted(4, 5, 2)``."""

    def _make(*faces: int, is_secure: bool = False) -> ScriptedSource:
        return ScriptedSource.faces(faces, is_secure=is_secure)

    return _make


@pytest.fixture
def scripted_raw():
    """Build a ScriptedSource from raw 32-bit draws: ``scripted_raw(0, 2**32 - 1)``."""

    def _make(*values: int) -> ScriptedSource:
        return ScriptedSource(values)

    return _make


@pytest.fixture
def seeded() -> SeededRandomSource:
    return SeededRandomSource(seed=20240601)


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from any DICEFORGE_* variables or .env in the environment."""
    return Settings(
        _env_file=None,
        require_secure_randomness=False,
        explode_cap=100,
        history_capacity=1000,
        history_byte_budget=512_000,
        seed=None,
        batch_latency_budget_ms=10.0,
    )
