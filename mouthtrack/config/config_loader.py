"""Configuration loader for the mouth tracker"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]


class Config:
    """Configuration manager for the mouth tracker

    Every key is optional: components pass their own default to ``get``.
    """

    def __init__(self, config_path: Optional[str] = None):
        explicit = config_path is not None or 'MOUTHTRACK_CONFIG' in os.environ
        if config_path is None:
            config_path = os.getenv('MOUTHTRACK_CONFIG') or self._default_path()

        self.config_path = Path(config_path) if config_path else None
        self._config = self._load_config(required=explicit)

    @staticmethod
    def _default_path() -> Optional[str]:
        env = os.getenv('MOUTHTRACK_ENV', 'development')
        # Environment-specific config first, working directory before project root
        for base in (Path.cwd(), PROJECT_ROOT):
            for name in (f"config.{env}.yaml", "config.yaml"):
                candidate = base / "config" / name
                if candidate.exists():
                    return str(candidate)
        return None

    def _load_config(self, required: bool) -> Dict[str, Any]:
        """Load configuration from YAML file"""
        if self.config_path is None or not self.config_path.exists():
            if required:
                raise FileNotFoundError(f"Config file not found: {self.config_path}")
            logger.warning("No config file found, using built-in defaults")
            return {}

        with open(self.config_path, 'r') as f:
            return yaml.safe_load(f) or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation

        Args:
            key: Configuration key in dot notation (e.g., 'tracker.smoothing_factor')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default

    def __getitem__(self, key: str) -> Any:
        """Allow dictionary-style access"""
        return self.get(key)

    def validate(self) -> None:
        """Validate configuration values"""
        for key in ('tracker.smoothing_factor', 'classifier.smoothing_alpha',
                    'classifier.confidence_threshold'):
            value = self.get(key)
            if value is not None and not 0 <= value <= 1:
                raise ValueError(f"Invalid {key}: {value}, must be in [0, 1]")

        buffer_size = self.get('tracker.temporal_buffer_size')
        if buffer_size is not None and not 1 <= buffer_size <= 120:
            raise ValueError(f"Invalid tracker.temporal_buffer_size: {buffer_size}, must be in [1, 120]")

        history_length = self.get('classifier.history_length')
        if history_length is not None and history_length < 1:
            raise ValueError(f"Invalid classifier.history_length: {history_length}, must be >= 1")

        duration = self.get('calibration.duration')
        interval = self.get('calibration.sample_interval')
        if duration is not None and duration <= 0:
            raise ValueError(f"Invalid calibration.duration: {duration}, must be positive")
        if interval is not None and interval <= 0:
            raise ValueError(f"Invalid calibration.sample_interval: {interval}, must be positive")


# Global config instance
config = Config()
