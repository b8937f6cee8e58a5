"""Pipeline configuration."""

import logging
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)
load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="SIGNALLOOP_", extra="ignore", populate_by_name=True
    )

    # Bars
    bar_interval_seconds: float = 60.0
    bar_retention: int = 1440              # 24h of 1m bars
    bar_check_seconds: float = 0.5         # Close-check cadence
    align_bars_to_wall_clock: bool = False
    bar_update_throttle_seconds: float = 1.0

    # Features
    min_feature_bars: int = 20
    history_for_features: int = 100

    # Model
    predictor_kind: Literal["baseline", "mlp"] = "mlp"
    learning_rate: float = 0.01            # Baseline SGD rate
    min_train_batch: int = 16
    baseline_epochs: int = 10
    mlp_epochs: int = 5
    mlp_batch_size: int = 32
    mlp_learning_rate: float = 0.001

    # Replay buffer
    buffer_capacity: int = 50_000

    # Orchestrator cadences
    generate_interval_seconds: float = 60.0
    verify_interval_seconds: float = 5.0
    train_interval_seconds: float = 10.0
    horizon_seconds: float = 60.0          # Matches bar interval
    min_labeled_for_training: int = 32
    train_batch_size: int = 64

    # Metrics
    metrics_window: int = 100
    signal_history: int = 1000
    signal_lookup_limit: int = 1000
    decay_factor: float = 0.01             # Per hour

    # Storage
    store_kind: Literal["memory", "jsonl"] = "memory"
    store_dir: str = "data/records"

    # Tick source
    tick_interval_seconds: float = 0.1
    persist_ticks: bool = False           # Ticks kind in the record store
    seed: Optional[int] = None

    # Runtime
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[str] = None
    web_host: str = "0.0.0.0"
    web_port: int = 8080

    @property
    def uses_disk_store(self) -> bool:
        return self.store_kind == "jsonl"


def load_settings(**overrides) -> Settings:
    """Build settings from env/.env, applying explicit overrides on top.

    Overrides are validated like any other source; a bad value raises
    ``pydantic.ValidationError``.
    """
    unknown = sorted(set(overrides) - set(Settings.model_fields))
    if unknown:
        logger.warning("Ignoring unknown setting overrides: %s", ", ".join(unknown))
        overrides = {k: v for k, v in overrides.items() if k not in unknown}
    return Settings(**overrides)
