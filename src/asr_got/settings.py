from __future__ import annotations

from pydantic import Field

try:
    from pydantic_settings import BaseSettings, SettingsConfigDict
except Exception as e:  # pragma: no cover
    raise RuntimeError(
        "pydantic-settings is required. Install with: pip install pydantic-settings"
    ) from e


class AsrGotSettings(BaseSettings):
    """Runtime configuration for the ASR-GoT reasoning pipeline.

    Environment variables are prefixed with ASR_GOT_.
    """

    model_config = SettingsConfigDict(env_prefix="ASR_GOT_", extra="ignore")

    # --- Core ---
    log_level: str = Field(default="INFO", description="Python logging level")

    # --- Phase execution ---
    phase_timeout_s: float = Field(default=30.0, gt=0)
    max_attempts: int = Field(default=3, ge=1)
    degraded_max_attempts: int = Field(default=1, ge=1)
    backoff_base_ms: float = Field(default=100.0, ge=0, description="wait = 2^k * base")

    # --- Budget defaults ---
    max_nodes: int = Field(default=1000, ge=1)
    max_edges: int = Field(default=5000, ge=1)
    max_execution_time_ms: int = Field(default=300_000, ge=1)

    # --- Confidence ---
    decay_half_life_days: float = Field(default=365.0, gt=0)

    # --- Generation ---
    random_seed: int | None = Field(default=None, description="Seed for reproducible runs")


settings = AsrGotSettings()
