"""Configuration"""

from mouthtrack.config.config_loader import Config, config

__all__ = ["Config", "config"]
