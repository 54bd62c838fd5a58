"""Data models for facial landmarks"""

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Union
import numpy as np


@dataclass(frozen=True)
class Point3:
    """A landmark coordinate

    Attributes:
        x: Horizontal position, normalized to image width [0, 1]
        y: Vertical position, normalized to image height [0, 1]
        z: Relative depth, smaller values are closer to the camera
    """
    x: float
    y: float
    z: float = 0.0

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float64)


@dataclass(frozen=True)
class IndexedLandmark:
    """A point tagged with the detector index of the facial feature it tracks"""
    index: int
    point: Point3


class LandmarkSet:
    """Immutable collection of detector-indexed points for one frame.

    The detector index is the identity of a landmark: it stays attached to
    the same physical feature across frames, so subsets are always selected
    by index and never by position in a list.
    """

    def __init__(
        self,
        landmarks: Union[Iterable[IndexedLandmark], Mapping[int, Point3], None] = None
    ):
        points: Dict[int, Point3] = {}
        if isinstance(landmarks, Mapping):
            for index, point in landmarks.items():
                points[int(index)] = point
        elif landmarks is not None:
            for landmark in landmarks:
                points[int(landmark.index)] = landmark.point
        self._points = points

    @classmethod
    def from_array(cls, array: np.ndarray) -> "LandmarkSet":
        """Build a set from an (N, 2) or (N, 3) array where the row is the index"""
        array = np.asarray(array, dtype=np.float64)
        if array.ndim != 2 or array.shape[1] not in (2, 3):
            raise ValueError(f"Expected an (N, 2) or (N, 3) array, got shape {array.shape}")
        points = {}
        for index, row in enumerate(array):
            z = float(row[2]) if array.shape[1] == 3 else 0.0
            points[index] = Point3(float(row[0]), float(row[1]), z)
        return cls(points)

    def get(self, index: int) -> Optional[Point3]:
        return self._points.get(index)

    def points(self, indices: Iterable[int]) -> List[Point3]:
        """Points present for ``indices``, in the order requested"""
        return [self._points[i] for i in indices if i in self._points]

    def subset(self, indices: Iterable[int]) -> "LandmarkSet":
        return LandmarkSet({i: self._points[i] for i in indices if i in self._points})

    def indices(self) -> List[int]:
        return sorted(self._points)

    def z_values(self) -> List[float]:
        return [p.z for p in self._points.values()]

    def __len__(self) -> int:
        return len(self._points)

    def __contains__(self, index: object) -> bool:
        return index in self._points

    def __iter__(self) -> Iterator[IndexedLandmark]:
        for index in sorted(self._points):
            yield IndexedLandmark(index, self._points[index])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LandmarkSet):
            return NotImplemented
        return self._points == other._points

    def __repr__(self) -> str:
        return f"LandmarkSet(size={len(self._points)})"


@dataclass
class DetectionFrame:
    """One frame delivered by the upstream landmark detector

    Attributes:
        landmarks: Every landmark the detector produced for the tracked face
        confidence: Detector confidence [0, 1]
    """
    landmarks: LandmarkSet
    confidence: float = 1.0

    def __post_init__(self):
        """Validate detection data"""
        assert 0.0 <= self.confidence <= 1.0, "Confidence must be in [0, 1]"
        assert isinstance(self.landmarks, LandmarkSet), "Landmarks must be a LandmarkSet"
