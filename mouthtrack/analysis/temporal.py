"""Temporal Feature Extraction

Keeps a capped, time-ordered buffer of mouth metrics and derives velocity,
acceleration, moving average, standard deviation and trend for any metric
named by attribute or dotted path (e.g. ``mouth_corner_angle.average``).
Timestamps are in seconds.
"""

import logging
import time
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple

import numpy as np

from mouthtrack.models.enums import Trend
from mouthtrack.models.features import MouthMetrics, TemporalFeatures


logger = logging.getLogger(__name__)

MIN_BUFFER_SIZE = 1
MAX_BUFFER_SIZE = 120

TREND_WINDOW = 5
TREND_DEADBAND = 0.001
TREND_DOMINANCE = 1.5

TRACKED_FEATURES = ('openness', 'width', 'aspect_ratio', 'area')


def _clamp_buffer_size(size: int) -> int:
    return min(max(int(size), MIN_BUFFER_SIZE), MAX_BUFFER_SIZE)


class TemporalFeatureExtractor:
    """Derives time-series features from recent mouth metrics.

    Attributes:
        buffer_size: Maximum number of frames kept
    """

    def __init__(self, buffer_size: int = 30):
        self._buffer: Deque[Tuple[float, MouthMetrics]] = deque(maxlen=_clamp_buffer_size(buffer_size))

    @property
    def buffer_size(self) -> int:
        return self._buffer.maxlen

    @property
    def history_length(self) -> int:
        return len(self._buffer)

    def add_frame(self, metrics: MouthMetrics, timestamp: Optional[float] = None) -> None:
        """Append a frame, evicting the oldest beyond capacity

        Args:
            metrics: Metrics of the frame
            timestamp: Frame time in seconds, defaults to a monotonic clock
        """
        if timestamp is None:
            timestamp = time.monotonic()
        self._buffer.append((float(timestamp), metrics))

    def set_buffer_size(self, size: int) -> None:
        """Change capacity (clamped to [1, 120]), keeping the newest frames"""
        self._buffer = deque(self._buffer, maxlen=_clamp_buffer_size(size))
        logger.debug(f"Temporal buffer size set to {self._buffer.maxlen}")

    def reset(self) -> None:
        self._buffer.clear()

    def _values(self, name: str, count: int) -> List[Optional[float]]:
        frames = list(self._buffer)[-count:]
        return [metrics.value(name) for _, metrics in frames]

    def get_velocity(self, name: str) -> float:
        """Change per second between the two most recent frames"""
        if len(self._buffer) < 2:
            return 0.0

        (t_prev, prev), (t_curr, curr) = self._buffer[-2], self._buffer[-1]
        v_prev, v_curr = prev.value(name), curr.value(name)
        if v_prev is None or v_curr is None:
            return 0.0

        dt = t_curr - t_prev
        if dt == 0:
            return 0.0
        return (v_curr - v_prev) / dt

    def get_acceleration(self, name: str) -> float:
        """Change of velocity per second over the three most recent frames"""
        if len(self._buffer) < 3:
            return 0.0

        (t0, m0), (t1, m1), (t2, m2) = self._buffer[-3], self._buffer[-2], self._buffer[-1]
        v0, v1, v2 = m0.value(name), m1.value(name), m2.value(name)
        if v0 is None or v1 is None or v2 is None:
            return 0.0

        dt_recent = t2 - t1
        dt_earlier = t1 - t0
        velocity_recent = (v2 - v1) / dt_recent if dt_recent > 0 else 0.0
        velocity_earlier = (v1 - v0) / dt_earlier if dt_earlier > 0 else 0.0

        mean_dt = (dt_recent + dt_earlier) / 2
        if mean_dt == 0:
            return 0.0
        return (velocity_recent - velocity_earlier) / mean_dt

    def get_moving_average(self, name: str, window: int = 5) -> float:
        values = [v for v in self._values(name, window) if v is not None]
        if not values:
            return 0.0
        return float(np.mean(values))

    def get_standard_deviation(self, name: str, window: int = 10) -> float:
        """Population standard deviation over the most recent window"""
        values = [v for v in self._values(name, window) if v is not None]
        if not values:
            return 0.0
        return float(np.std(values))

    def get_trend(self, name: str) -> Trend:
        if len(self._buffer) < TREND_WINDOW:
            return Trend.STABLE

        values = self._values(name, TREND_WINDOW)
        increases = decreases = 0
        for previous, current in zip(values, values[1:]):
            if previous is None or current is None:
                continue
            diff = current - previous
            if diff > TREND_DEADBAND:
                increases += 1
            elif diff < -TREND_DEADBAND:
                decreases += 1

        if increases > decreases * TREND_DOMINANCE:
            return Trend.INCREASING
        if decreases > increases * TREND_DOMINANCE:
            return Trend.DECREASING
        return Trend.STABLE

    def get_temporal_features(self, name: str) -> TemporalFeatures:
        return TemporalFeatures(
            velocity=self.get_velocity(name),
            acceleration=self.get_acceleration(name),
            moving_average=self.get_moving_average(name),
            standard_deviation=self.get_standard_deviation(name),
            trend=self.get_trend(name),
        )

    def get_all_temporal_features(self) -> Optional[Dict[str, TemporalFeatures]]:
        """Features for openness, width, aspect ratio and area, None when empty"""
        if not self._buffer:
            return None
        return {name: self.get_temporal_features(name) for name in TRACKED_FEATURES}
