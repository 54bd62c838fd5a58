"""Vowel classification"""

from mouthtrack.classification.vowel_classifier import (
    VowelClassifier,
    ClassifierError,
    gaussian_score,
    clamped_range_score,
    majority_vote
)
from mouthtrack.classification.thresholds import DEFAULT_THRESHOLDS, DEFAULT_LABEL_MAP, deep_merge

__all__ = [
    'VowelClassifier',
    'ClassifierError',
    'gaussian_score',
    'clamped_range_score',
    'majority_vote',
    'DEFAULT_THRESHOLDS',
    'DEFAULT_LABEL_MAP',
    'deep_merge',
]
