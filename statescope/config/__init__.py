"""Configuration management for statescope."""

from statescope.config.settings import DiscoveryConfig, load_config

__all__ = [
    "DiscoveryConfig",
    "load_config",
]
