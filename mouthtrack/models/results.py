"""Data models for classification and per-frame results"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from mouthtrack.models.enums import Vowel
from mouthtrack.models.features import MouthMetrics, TemporalFeatures
from mouthtrack.models.landmarks import LandmarkSet


PROBABILITY_KEYS = ("a", "i", "u", "e", "o", "closed")


def empty_probabilities() -> Dict[str, float]:
    return {key: 0.0 for key in PROBABILITY_KEYS}


@dataclass
class ClassificationResult:
    """Result of classifying one frame of mouth metrics

    Attributes:
        vowel: Detected class, or None when no class is asserted
        confidence: Smoothed confidence of the reported class [0, 1]
        probabilities: Probability per class, summing to 1 or all zero
        scores: Raw per-vowel heuristic scores
        metrics: Snapshot of the metrics the decision was based on
        display_vowel: Human-readable label for the vowel
    """
    vowel: Optional[Vowel]
    confidence: float
    probabilities: Dict[str, float] = field(default_factory=empty_probabilities)
    scores: Dict[str, float] = field(default_factory=dict)
    metrics: Optional[Dict[str, float]] = None
    display_vowel: str = "-"

    def __post_init__(self):
        """Validate result data"""
        assert 0.0 <= self.confidence <= 1.0, "Confidence must be in [0, 1]"
        for key, probability in self.probabilities.items():
            assert 0.0 <= probability <= 1.0 + 1e-9, f"Probability for {key} must be in [0, 1]"

    @property
    def is_empty(self) -> bool:
        return self.vowel is None


@dataclass
class QualityReport:
    """Outcome of the landmark quality check

    Attributes:
        passed: Whether metrics may be computed from the frame
        reason: Why the check was bypassed, if it was
        std_dev: Standard deviation of landmark depth, if it was measured
    """
    passed: bool
    reason: Optional[str] = None
    std_dev: Optional[float] = None


@dataclass
class FrameResult:
    """Everything the pipeline produced for one landmark frame

    Attributes:
        landmarks: Smoothed basic 8-point mouth set
        metrics: Mouth metrics, None when no face or the quality check failed
        temporal_features: Per-feature temporal features
        contour_landmarks: Raw (unsmoothed) contour set
        confidence: Detector confidence, 0 if no face
        fps: Processed frames per second
        timestamp: Milliseconds since epoch
        face_detected: Whether the detector found a face
        quality: Quality check outcome, None when no face
        classification: Vowel classification, when a classifier is attached
    """
    landmarks: Optional[LandmarkSet]
    metrics: Optional[MouthMetrics]
    temporal_features: Optional[Dict[str, TemporalFeatures]]
    contour_landmarks: Optional[LandmarkSet]
    confidence: float
    fps: int
    timestamp: int
    face_detected: bool
    quality: Optional[QualityReport] = None
    classification: Optional[ClassificationResult] = None

    def __post_init__(self):
        """Validate frame result"""
        assert 0.0 <= self.confidence <= 1.0, "Confidence must be in [0, 1]"
        assert self.fps >= 0, "FPS must be non-negative"
