"""Discovery configuration and loading."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from statescope.errors import ConfigurationError
from statescope.explorer.models import ExplorationStrategy


class DiscoveryConfig(BaseSettings):
    """Configuration for a discovery session.

    Every field can be set from the environment with the ``STATESCOPE_``
    prefix (e.g. ``STATESCOPE_MAX_STATES=200``). Timeouts are in seconds.
    """

    model_config = SettingsConfigDict(
        env_prefix="STATESCOPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    strategy: ExplorationStrategy = ExplorationStrategy.BREADTH_FIRST
    max_depth: int = Field(default=10, ge=0)
    max_states: int = Field(default=1000, ge=1)
    timeout_per_interaction: float = Field(default=5.0, gt=0)
    quiescence_timeout: float = Field(default=3.0, gt=0)
    restore_timeout: float = Field(default=10.0, gt=0)
    observation_timeout: float = Field(default=10.0, gt=0)
    session_timeout: float | None = Field(default=None, gt=0)
    parallel_explorers: int = Field(default=1, ge=1)
    enable_visual_diff: bool = True
    capture_screenshots: bool = True
    detect_hidden_elements: bool = False
    simulate_user_behavior: bool = True
    user_behavior_delay: float = Field(default=0.5, ge=0)
    record_self_loops: bool = False
    similarity_merge: bool = True
    merge_threshold: float = Field(default=0.85, ge=0, le=1)
    visual_threshold: float = Field(default=0.95, ge=0, le=1)
    structural_threshold: float = Field(default=0.90, ge=0, le=1)
    max_actions_per_state: int | None = Field(default=None, ge=1)
    max_interactions: int | None = Field(default=None, ge=1)
    random_seed: int | None = None
    input_text: str = "test"
    verify_restore: bool = False
    replay_on_restore_mismatch: bool = Field(
        default=False,
        description=(
            "Replay the shortest recorded path from the initial state when a "
            "verified restore does not match. Replayed steps re-execute actions "
            "already attempted; they are navigation and are not recorded as "
            "interactions."
        ),
    )

    @field_validator("strategy", mode="before")
    @classmethod
    def normalize_strategy(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower().replace("_", "-")
        return v

    @model_validator(mode="after")
    def check_replay_needs_verification(self) -> DiscoveryConfig:
        if self.replay_on_restore_mismatch and not self.verify_restore:
            raise ValueError("replay_on_restore_mismatch requires verify_restore")
        return self


def load_config(
    config_path: str | Path | None = None,
    **overrides: Any,
) -> DiscoveryConfig:
    """Load configuration from a YAML file and the environment.

    Priority: keyword overrides > env vars > config file > defaults
    """
    config_data: dict[str, Any] = {}

    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")
        with open(config_path) as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"Config file must contain a mapping: {config_path}")
        config_data.update(loaded)

    config_data.update(_get_env_overrides())
    config_data.update(overrides)

    try:
        return DiscoveryConfig(**config_data)
    except ValidationError as e:
        raise ConfigurationError(str(e), cause=e) from e


def _get_env_overrides() -> dict[str, Any]:
    """Collect ``STATESCOPE_*`` variables for fields present in the environment.

    File values are passed to the settings class as init arguments, which
    pydantic-settings ranks above the environment; re-reading the
    environment here keeps env vars ahead of the file.
    """
    overrides: dict[str, Any] = {}
    prefix = DiscoveryConfig.model_config.get("env_prefix", "")
    for name in DiscoveryConfig.model_fields:
        value = os.environ.get(f"{prefix}{name}".upper())
        if value is not None:
            overrides[name] = value
    return overrides
