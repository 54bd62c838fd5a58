"""Structured event hooks for pipeline observability"""

import logging
from abc import ABC, abstractmethod
from typing import Any


logger = logging.getLogger(__name__)


class EventHook(ABC):
    """Receives named events with keyword fields from the pipeline"""

    @abstractmethod
    def emit(self, event: str, **fields: Any) -> None:
        """Record one event

        Args:
            event: Event name, e.g. ``face_lost`` or ``quality_rejected``
            **fields: Event payload
        """
        pass


class LoggingEventHook(EventHook):
    """Writes events as debug log records"""

    def __init__(self, event_logger: logging.Logger = None):
        self.logger = event_logger or logger

    def emit(self, event: str, **fields: Any) -> None:
        if not self.logger.isEnabledFor(logging.DEBUG):
            return
        payload = ", ".join(f"{key}={value}" for key, value in sorted(fields.items()))
        self.logger.debug(f"{event}: {payload}" if payload else event)
