"""Landmark Smoother

Per-key exponential moving average over 3D points. Each key (a landmark
name or ``contour_<index>``) keeps its own last emitted value, so points
never bleed into each other.
"""

import logging
from numbers import Real
from typing import Any, Dict, Optional

from mouthtrack.models.landmarks import Point3


logger = logging.getLogger(__name__)


class Smoother:
    """Exponential moving average smoother for landmark coordinates.

    ``smoothed = previous * factor + incoming * (1 - factor)``: a factor of
    0 passes input through, a factor of 1 freezes the first value.

    Attributes:
        factor: Weight given to the previous smoothed value [0, 1]
    """

    def __init__(self, factor: float = 0.5):
        self.factor = self._clamp(factor)
        self._state: Dict[str, Point3] = {}

    @staticmethod
    def _clamp(factor: float) -> float:
        return min(max(float(factor), 0.0), 1.0)

    @staticmethod
    def _is_point(point: Any) -> bool:
        x = getattr(point, 'x', None)
        y = getattr(point, 'y', None)
        return (
            isinstance(x, Real) and not isinstance(x, bool)
            and isinstance(y, Real) and not isinstance(y, bool)
        )

    def smooth(self, key: str, point: Optional[Point3]) -> Optional[Point3]:
        """Smooth one point under ``key``.

        Args:
            key: Identity of the tracked landmark
            point: Incoming position

        Returns:
            The smoothed point. Missing or non-numeric input is returned
            unchanged and leaves the state alone.
        """
        if not self._is_point(point):
            return point

        z = getattr(point, 'z', 0.0)
        incoming = Point3(float(point.x), float(point.y), float(z) if isinstance(z, Real) else 0.0)

        previous = self._state.get(key)
        if previous is None:
            self._state[key] = incoming
            return incoming

        keep = self.factor
        take = 1.0 - keep
        smoothed = Point3(
            previous.x * keep + incoming.x * take,
            previous.y * keep + incoming.y * take,
            previous.z * keep + incoming.z * take,
        )
        self._state[key] = smoothed
        return smoothed

    def reset(self) -> None:
        """Forget every key"""
        self._state.clear()

    def set_factor(self, factor: float) -> None:
        self.factor = self._clamp(factor)
        logger.debug(f"Smoothing factor set to {self.factor}")

    def __len__(self) -> int:
        return len(self._state)
