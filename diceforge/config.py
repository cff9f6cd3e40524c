from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="DICEFORGE_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Fail instead of falling back to the seeded generator when no CSPRNG exists.
    require_secure_randomness: bool = False

    # Extra draws allowed per exploding dice group before explosion stops.
    explode_cap: int = Field(default=100, ge=0)

    # Roll history ceilings; whichever is exceeded first triggers FIFO eviction.
    # The byte budget keeps ~1000 typical entries well inside it.
    history_capacity: int = Field(default=1000, ge=1)
    history_byte_budget: int = Field(default=512_000, ge=1)

    # Setting a seed forces the deterministic source (reproducible sessions).
    seed: int | None = None

    # roll_batch logs a warning when a whole batch takes longer than this.
    batch_latency_budget_ms: float = Field(default=10.0, gt=0)


settings = Settings()
