"""Data models and interfaces"""

from mouthtrack.models.landmarks import Point3, IndexedLandmark, LandmarkSet, DetectionFrame
from mouthtrack.models.features import (
    SideValues,
    LipValues,
    MouthMetrics,
    TemporalFeatures,
    Baseline
)
from mouthtrack.models.results import ClassificationResult, QualityReport, FrameResult
from mouthtrack.models.enums import Vowel, OpeningShape, Trend, CalibrationState
from mouthtrack.models.interfaces import FrameSink, VowelSink, LandmarkSource

__all__ = [
    # Landmarks
    "Point3",
    "IndexedLandmark",
    "LandmarkSet",
    "DetectionFrame",
    # Features
    "SideValues",
    "LipValues",
    "MouthMetrics",
    "TemporalFeatures",
    "Baseline",
    # Results
    "ClassificationResult",
    "QualityReport",
    "FrameResult",
    # Enums
    "Vowel",
    "OpeningShape",
    "Trend",
    "CalibrationState",
    # Interfaces
    "FrameSink",
    "VowelSink",
    "LandmarkSource",
]
