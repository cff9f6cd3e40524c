"""Unit tests for random sources and the die sampler."""

from unittest.mock import patch

import pytest

from diceforge.errors import RandomnessUnavailable
from diceforge.rng import (
    RandomSource,
    SecureRandomSource,
    SeededRandomSource,
    resolve_source,
    roll_die,
)


class TestRollDie:
    def test_maps_raw_value_to_face(self, scripted_raw) -> None:
        source = scripted_raw(0, 5, 19)
        assert [roll_die(source, 20) for _ in range(3)] == [1, 6, 20]

    def test_rejects_biased_tail(self, scripted_raw) -> None:
        # For a d6 the largest multiple of 6 below 2**32 is 4294967292.
        # Anything at or above it would favour faces 1-4 and must be redrawn.
        source = scripted_raw(4294967295, 4294967292, 3)
        assert roll_die(source, 6) == 4
        assert source.draws == 3

    def test_accepts_last_unbiased_value(self, scripted_raw) -> None:
        source = scripted_raw(4294967291)
        assert roll_die(source, 6) == 4294967291 % 6 + 1
        assert source.draws == 1

    def test_power_of_two_never_rejects(self, scripted_raw) -> None:
        source = scripted_raw(2**32 - 1)
        assert roll_die(source, 8) == 8

    @pytest.mark.parametrize("sides", [0, 1, 100_001])
    def test_invalid_sides(self, sides, scripted_raw) -> None:
        with pytest.raises(ValueError, match="Die sides"):
            roll_die(scripted_raw(), sides)

    def test_range_on_large_die(self, seeded) -> None:
        for _ in range(200):
            assert 1 <= roll_die(seeded, 100_000) <= 100_000


class TestSeededRandomSource:
    def test_same_seed_same_stream(self) -> None:
        a = SeededRandomSource(seed=42)
        b = SeededRandomSource(seed=42)
        assert [a.next_u32() for _ in range(10)] == [b.next_u32() for _ in range(10)]

    def test_reseed_restarts_stream(self) -> None:
        source = SeededRandomSource(seed=7)
        first = [source.next_u32() for _ in range(5)]
        source.reseed(7)
        assert [source.next_u32() for _ in range(5)] == first

    def test_seed_is_recorded_when_generated(self) -> None:
        source = SeededRandomSource()
        assert isinstance(source.seed, int)

    def test_not_secure(self) -> None:
        source = SeededRandomSource(seed=1)
        assert source.is_secure is False
        assert source.name == "seeded"


class TestRandomSource:
    def test_base_class_is_abstract(self) -> None:
        with pytest.raises(TypeError):
            RandomSource()

    def test_subclass_must_implement_next_u32(self) -> None:
        class Incomplete(RandomSource):
            name = "incomplete"

        with pytest.raises(TypeError):
            Incomplete()


class TestResolveSource:
    def test_prefers_secure(self) -> None:
        source = resolve_source()
        assert isinstance(source, SecureRandomSource)
        assert source.is_secure

    def test_explicit_seed_gives_seeded(self) -> None:
        source = resolve_source(seed=99)
        assert isinstance(source, SeededRandomSource)
        assert source.seed == 99

    def test_seed_conflicts_with_secure_requirement(self) -> None:
        with pytest.raises(RandomnessUnavailable):
            resolve_source(require_secure=True, seed=99)

    def test_falls_back_when_no_csprng(self, caplog) -> None:
        with patch("diceforge.rng.os.urandom", side_effect=NotImplementedError):
            source = resolve_source()
        assert isinstance(source, SeededRandomSource)
        assert "falling back" in caplog.text

    def test_required_secure_fails_without_csprng(self) -> None:
        with patch("diceforge.rng.os.urandom", side_effect=NotImplementedError):
            with pytest.raises(RandomnessUnavailable):
                resolve_source(require_secure=True)

    def test_secure_source_draws_32_bits(self) -> None:
        source = SecureRandomSource()
        for _ in range(50):
            assert 0 <= source.next_u32() < 2**32
