"""Data models for extracted mouth features"""

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Optional
import math

from mouthtrack.models.enums import OpeningShape, Trend


@dataclass(frozen=True)
class SideValues:
    """A measurement taken on both sides of the mouth"""
    left: float = 0.0
    right: float = 0.0
    average: float = 0.0


@dataclass(frozen=True)
class LipValues:
    """A measurement taken on the upper and the lower lip"""
    upper: float = 0.0
    lower: float = 0.0
    average: float = 0.0


@dataclass(frozen=True)
class MouthMetrics:
    """Geometric mouth measurements for a single frame

    Distances are divided by ``scale`` and areas by ``scale`` squared, so
    values stay comparable when the user moves towards or away from the
    camera. Sub-features that could not be measured are zero, never missing.

    Attributes:
        openness: Vertical separation of the lip centres
        width: Distance between the mouth corners
        area: Ellipse approximation of the opening
        aspect_ratio: width / (openness + epsilon)
        upper_lip_thickness: Mean outer-to-inner distance of the upper lip
        lower_lip_thickness: Mean outer-to-inner distance of the lower lip
        mouth_corner_angle: Corner elevation angles in radians
        lip_curvature: Chord-normalized bulge of each lip
        circularity: Isoperimetric ratio of the lip contour [0, 1]
        ellipticity: Max/min radial distance from the contour centroid (>= 1)
        symmetry: Left/right mirror agreement of the contour [0, 1]
        corner_movement: Corner to adjacent anchor distances
        cheek_movement: Cheek to mouth centre distances
        jaw_movement: Jaw to mouth centre distance
        lip_protrusion: Forward depth of the upper lip (>= 0)
        upper_lip_height: Upper lip centre to corner midpoint distance
        lower_lip_height: Lower lip centre to corner midpoint distance
        opening_shape: Coarse shape label
        openness_rate: Relative change of openness since the previous frame
        width_rate: Relative change of width since the previous frame
        scale: Face-size factor the distances were divided by
    """
    openness: float
    width: float
    area: float
    aspect_ratio: float
    upper_lip_thickness: float = 0.0
    lower_lip_thickness: float = 0.0
    mouth_corner_angle: SideValues = field(default_factory=SideValues)
    lip_curvature: LipValues = field(default_factory=LipValues)
    circularity: float = 0.0
    ellipticity: float = 1.0
    symmetry: float = 0.0
    corner_movement: SideValues = field(default_factory=SideValues)
    cheek_movement: SideValues = field(default_factory=SideValues)
    jaw_movement: float = 0.0
    lip_protrusion: float = 0.0
    upper_lip_height: float = 0.0
    lower_lip_height: float = 0.0
    opening_shape: OpeningShape = OpeningShape.LINEAR
    openness_rate: float = 0.0
    width_rate: float = 0.0
    scale: float = 1.0

    def __post_init__(self):
        """Validate bounded fields"""
        assert 0.0 <= self.circularity <= 1.0, "Circularity must be in [0, 1]"
        assert 0.0 <= self.symmetry <= 1.0, "Symmetry must be in [0, 1]"
        assert self.ellipticity >= 1.0, "Ellipticity must be >= 1"

    def value(self, path: str) -> Optional[float]:
        """Resolve a feature name or dotted path (e.g. ``mouth_corner_angle.average``).

        Returns:
            The numeric value, or None if the path does not name a number
        """
        value: Any = self
        for part in path.split('.'):
            if not hasattr(value, part):
                return None
            value = getattr(value, part)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        if math.isnan(value):
            return None
        return float(value)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['opening_shape'] = self.opening_shape.value
        return data


@dataclass(frozen=True)
class TemporalFeatures:
    """Derived time-series features of one metric"""
    velocity: float
    acceleration: float
    moving_average: float
    standard_deviation: float
    trend: Trend


@dataclass
class Baseline:
    """Resting (closed-mouth) geometry of the current user

    Attributes:
        openness: Minimum openness seen during calibration
        width: Minimum width seen during calibration
        aspect_ratio: Mean aspect ratio during calibration
        area: Minimum area seen during calibration
        lip_thickness: Minimum summed lip thickness
        openness_max: Maximum openness seen during calibration
        width_max: Maximum width seen during calibration
        timestamp: When the baseline was computed (seconds since epoch)
    """
    openness: float
    width: float
    aspect_ratio: float
    area: float
    lip_thickness: float
    openness_max: float
    width_max: float
    timestamp: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Baseline":
        names = {f.name for f in fields(cls)}
        missing = names - set(data)
        if missing:
            raise ValueError(f"Baseline data is missing fields: {sorted(missing)}")
        return cls(**{name: float(data[name]) for name in names})
