"""Analysis modules for smoothing, geometry, temporal features and calibration"""

from mouthtrack.analysis.smoother import Smoother
from mouthtrack.analysis.temporal import TemporalFeatureExtractor
from mouthtrack.analysis.calibration import (
    CalibrationManager,
    CalibrationError,
    CalibrationInProgressError,
    InsufficientSamplesError,
    CalibrationCancelledError
)

__all__ = [
    'Smoother',
    'TemporalFeatureExtractor',
    'CalibrationManager',
    'CalibrationError',
    'CalibrationInProgressError',
    'InsufficientSamplesError',
    'CalibrationCancelledError',
]
