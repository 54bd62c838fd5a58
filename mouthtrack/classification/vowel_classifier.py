"""Vowel Classifier

Estimates the vowel mouth shape (a, i, u, e, o), a closed mouth, or no
shape at all from one frame of mouth metrics. Each call runs, in order:

    1. Input gate: metrics without numeric openness/width/aspect ratio
    2. Closed-mouth gate
    3. Per-vowel heuristic scores with penalty multipliers
    4. Minimum-score gate
    5. Score normalization into probabilities
    6. Probability EMA across calls
    7. Majority vote over the recent history
    8. Transition penalty from temporal features
    9. Confidence gate

Steps 6 and 7 keep state between calls; closed and empty results do not
touch that state.
"""

import logging
import math
from collections import deque
from typing import Any, Callable, Deque, Dict, Iterable, Mapping, Optional, Tuple, Union

from mouthtrack.config.config_loader import config
from mouthtrack.classification.thresholds import DEFAULT_LABEL_MAP, deep_merge, default_thresholds
from mouthtrack.models.enums import SCORED_VOWELS, Vowel
from mouthtrack.models.features import Baseline, MouthMetrics, TemporalFeatures
from mouthtrack.models.interfaces import VowelSink
from mouthtrack.models.results import ClassificationResult, PROBABILITY_KEYS, empty_probabilities


logger = logging.getLogger(__name__)

REQUIRED_METRICS = ('openness', 'width', 'aspect_ratio')
SNAPSHOT_METRICS = ('openness', 'width', 'aspect_ratio', 'area', 'circularity', 'scale')

VowelCallback = Union[Callable[[ClassificationResult], None], VowelSink]


class ClassifierError(Exception):
    """Exception raised for invalid use of the classifier"""
    pass


def gaussian_score(value: float, optimal: float, sigma: float) -> float:
    """exp(-(value - optimal)^2 / (2 sigma^2)), 1 at the optimum"""
    diff = value - optimal
    variance = sigma * sigma or 1e-6
    return math.exp(-(diff * diff) / (2 * variance))


def clamped_range_score(value: float, low: float, high: float, falloff: float = 1.0) -> float:
    """1 inside [low, high], decaying linearly to 0 over ``falloff`` outside"""
    if low <= value <= high:
        return 1.0
    distance = low - value if value < low else value - high
    return max(0.0, 1.0 - distance / falloff)


def majority_vote(history: Iterable[Tuple[Vowel, float]]) -> Tuple[Optional[Vowel], float]:
    """Pick the vowel with the highest summed confidence in ``history``.

    Returns:
        (vowel, mean confidence of its occurrences), or (None, 0) when empty
    """
    totals: Dict[Vowel, float] = {}
    counts: Dict[Vowel, int] = {}
    for vowel, confidence in history:
        totals[vowel] = totals.get(vowel, 0.0) + confidence
        counts[vowel] = counts.get(vowel, 0) + 1

    if not totals:
        return None, 0.0

    winner = None
    for vowel, total in totals.items():
        if winner is None or total > totals[winner]:
            winner = vowel
    return winner, totals[winner] / counts[winner]


class VowelClassifier:
    """Classifies mouth metrics into vowel shapes.

    Attributes:
        history_length: Size of the majority-vote window
        smoothing_alpha: Weight of the previous probability vector in the EMA
        confidence_threshold: Minimum smoothed confidence for a reported vowel
        thresholds: Active threshold profile
        calibration_profiles: Per-vowel {feature: {mean, sigma}} overrides
        label_map: Display label per class, ``none`` for no class
        baseline: Resting geometry used by the closed-mouth gate
    """

    def __init__(
        self,
        baseline: Optional[Baseline] = None,
        on_vowel_detected: Optional[VowelCallback] = None,
        history_length: Optional[int] = None,
        smoothing_alpha: Optional[float] = None,
        confidence_threshold: Optional[float] = None,
        thresholds: Optional[Mapping[str, Any]] = None,
        calibration_profiles: Optional[Mapping[str, Any]] = None,
        label_map: Optional[Mapping[str, str]] = None
    ):
        self.history_length = history_length or config.get('classifier.history_length', 7)
        self.smoothing_alpha = (
            smoothing_alpha if smoothing_alpha is not None
            else config.get('classifier.smoothing_alpha', 0.6)
        )
        self.confidence_threshold = (
            confidence_threshold if confidence_threshold is not None
            else config.get('classifier.confidence_threshold', 0.5)
        )
        self.label_map = dict(DEFAULT_LABEL_MAP)
        self.label_map.update(label_map or config.get('classifier.label_map', {}))

        self.baseline = baseline
        self.on_vowel_detected = on_vowel_detected

        self.thresholds = default_thresholds()
        self.calibration_profiles: Dict[str, Any] = {}
        self.set_thresholds({
            'calibration_profiles': config.get('classifier.calibration_profiles', {}),
            **config.get('classifier.thresholds', {}),
        })
        if calibration_profiles:
            self.set_thresholds({'calibration_profiles': calibration_profiles})
        if thresholds:
            self.set_thresholds(thresholds)

        self.history: Deque[Tuple[Vowel, float]] = deque(maxlen=self.history_length)
        self._smoothed: Optional[Dict[str, float]] = None
        self._delivering = False

        logger.info(
            f"VowelClassifier initialized with history_length={self.history_length}, "
            f"alpha={self.smoothing_alpha}, threshold={self.confidence_threshold}"
        )

    # Configuration

    def set_baseline(self, baseline: Optional[Baseline]) -> None:
        self.baseline = baseline

    def get_baseline(self) -> Optional[Baseline]:
        return self.baseline

    def set_thresholds(self, thresholds: Mapping[str, Any]) -> None:
        """Deep-merge a partial threshold profile.

        A ``calibration_profiles`` entry is merged into the calibration
        profiles instead of the thresholds.
        """
        overrides = dict(thresholds)
        profiles = overrides.pop('calibration_profiles', None)
        if profiles:
            self.calibration_profiles = deep_merge(self.calibration_profiles, profiles)
        if overrides:
            self.thresholds = deep_merge(self.thresholds, overrides)

    def reset(self) -> None:
        """Clear the vote history and the probability EMA"""
        self.history.clear()
        self._smoothed = None

    # Classification

    def classify(
        self,
        metrics: Optional[MouthMetrics],
        temporal_features: Optional[Mapping[str, TemporalFeatures]] = None
    ) -> ClassificationResult:
        """Classify one frame of metrics.

        Args:
            metrics: Scale-normalized mouth metrics
            temporal_features: Per-feature temporal features, for the transition penalty

        Returns:
            Classification result, also delivered to ``on_vowel_detected``

        Raises:
            ClassifierError: If called from inside the result callback
        """
        if self._delivering:
            raise ClassifierError("classify() must not be called from the vowel callback")

        return self._deliver(self._classify(metrics, temporal_features))

    def _classify(
        self,
        metrics: Optional[MouthMetrics],
        temporal_features: Optional[Mapping[str, TemporalFeatures]]
    ) -> ClassificationResult:
        if metrics is None or any(metrics.value(name) is None for name in REQUIRED_METRICS):
            return self._empty_result()

        snapshot = self._snapshot(metrics)

        if self.is_mouth_closed(metrics):
            probabilities = empty_probabilities()
            probabilities[Vowel.CLOSED.value] = 1.0
            return self._result(Vowel.CLOSED, 1.0, probabilities, {}, snapshot)

        scores = self.calculate_scores(metrics)
        best_score = max(scores.values())

        gate = self.thresholds['min_score']
        min_score = gate['small'] if metrics.openness < gate['small_openness'] else gate['default']
        if best_score < min_score:
            logger.debug(f"Best vowel score {best_score:.3f} below minimum {min_score}")
            return self._empty_result(scores=scores, metrics=snapshot)

        probabilities = self._smooth_probabilities(self._normalize(scores))

        top = max(SCORED_VOWELS, key=lambda v: probabilities[v.value])
        self.history.append((top, probabilities[top.value]))
        vowel, confidence = majority_vote(self.history)

        confidence *= self.transition_penalty(temporal_features)
        confidence = min(max(confidence, 0.0), 1.0)

        if confidence < self.confidence_threshold:
            return self._result(None, 0.0, probabilities, scores, snapshot)

        return self._result(vowel, confidence, probabilities, scores, snapshot)

    def is_mouth_closed(self, metrics: MouthMetrics) -> bool:
        """True if any closed-mouth heuristic fires"""
        closed = self.thresholds['closed']
        openness = metrics.openness

        if openness <= closed['openness']:
            return True

        thickness = metrics.upper_lip_thickness + metrics.lower_lip_thickness
        thickness_ratio = thickness / metrics.width if metrics.width > 0 else 0.0
        if openness <= closed['thick_lip_openness'] and thickness_ratio > closed['thickness_ratio']:
            return True

        if self.baseline is not None:
            baseline_openness = self.baseline.openness or closed['default_baseline_openness']
            if openness <= baseline_openness * closed['openness_ratio']:
                return True

        return False

    def calculate_scores(self, metrics: MouthMetrics) -> Dict[str, float]:
        """Heuristic score in [0, 1] per scored vowel"""
        return {
            'a': self._score_a(metrics),
            'i': self._score_i(metrics),
            'u': self._score_u(metrics),
            'e': self._score_e(metrics),
            'o': self._score_o(metrics),
        }

    def transition_penalty(self, temporal_features: Optional[Mapping[str, TemporalFeatures]]) -> float:
        """Confidence multiplier that damps labels asserted mid-movement"""
        if not temporal_features:
            return 1.0

        def magnitude(name: str, attribute: str) -> float:
            features = temporal_features.get(name)
            return abs(getattr(features, attribute, 0.0) or 0.0) if features is not None else 0.0

        velocity = magnitude('openness', 'velocity') + magnitude('width', 'velocity')
        acceleration = magnitude('openness', 'acceleration') + magnitude('width', 'acceleration')

        transition = self.thresholds['transition']
        if velocity > transition['velocity_high'] or acceleration > transition['acceleration_high']:
            return transition['penalty_high']
        if velocity > transition['velocity_moderate'] or acceleration > transition['acceleration_moderate']:
            return transition['penalty_moderate']
        return 1.0

    # Per-vowel scores

    def _optimal(self, vowel: str, feature: str) -> float:
        override = self.calibration_profiles.get(vowel, {}).get(feature, {}).get('mean')
        return override if isinstance(override, (int, float)) else self.thresholds['vowels'][vowel][feature]['optimal']

    def _sigma(self, vowel: str, feature: str) -> float:
        override = self.calibration_profiles.get(vowel, {}).get(feature, {}).get('sigma')
        return override if isinstance(override, (int, float)) else self.thresholds['vowels'][vowel][feature]['sigma']

    def _gaussian(self, vowel: str, feature: str, value: float) -> float:
        return gaussian_score(value, self._optimal(vowel, feature), self._sigma(vowel, feature))

    def _score_a(self, m: MouthMetrics) -> float:
        t = self.thresholds['vowels']['a']
        w = t['weights']

        open_score = self._gaussian('a', 'openness', m.openness)
        aspect_score = clamped_range_score(
            m.aspect_ratio, t['aspect_ratio']['min'], t['aspect_ratio']['max'], t['aspect_ratio']['falloff_range'])
        area_score = min(m.area / (t['area']['max'] or 0.02), 1.0)

        combined = (
            open_score * w['openness']
            + aspect_score * w['aspect_ratio']
            + area_score * w['area']
        )

        openness = t['openness']
        if m.openness < openness['penalty_threshold']:
            factor = max(openness['penalty_floor'], m.openness / openness['penalty_threshold'])
            return combined * factor * openness['penalty']
        if m.openness < openness['soft_threshold']:
            return combined * openness['soft_penalty']
        return combined

    def _score_i(self, m: MouthMetrics) -> float:
        t = self.thresholds['vowels']['i']
        w = t['weights']

        aspect_score = self._gaussian('i', 'aspect_ratio', m.aspect_ratio)
        max_open = t['openness']['max']
        if m.openness < max_open:
            openness_score = 1.0
        else:
            openness_score = max(0.0, 1.0 - (m.openness - max_open) / max_open)
        if m.width > t['width']['min']:
            width_score = min((m.width - t['width']['min']) / t['width']['range'], 1.0)
        else:
            width_score = 0.0
        corner_score = 1 - min(abs(m.mouth_corner_angle.average) / t['mouth_corner_angle']['max'], 1.0)
        lip_ratio = (m.upper_lip_thickness + m.lower_lip_thickness) / m.width if m.width > 0 else 0.0
        lip_score = self._gaussian('i', 'lip_thickness_ratio', lip_ratio)

        combined = (
            aspect_score * w['aspect_ratio']
            + openness_score * w['openness']
            + width_score * w['width']
            + corner_score * w['mouth_corner_angle']
            + lip_score * w['lip_thickness_ratio']
        )

        if m.aspect_ratio < t['aspect_ratio']['min']:
            return combined * t['aspect_ratio']['penalty']
        if m.openness > t['openness']['penalty_threshold']:
            return combined * t['openness']['penalty']
        if m.openness < t['openness']['low']:
            return combined * t['openness']['low_penalty']
        return combined

    def _score_u(self, m: MouthMetrics) -> float:
        t = self.thresholds['vowels']['u']
        w = t['weights']

        max_width = t['width']['max']
        width_score = 1.0 if m.width < max_width else max(0.0, 1.0 - (m.width - max_width) / max_width)
        circularity_score = m.circularity
        max_open = t['openness']['max']
        if m.openness < max_open:
            openness_score = 1.0
        else:
            openness_score = max(0.0, 1.0 - (m.openness - max_open) / t['openness']['sigma'])
        if t['aspect_ratio']['min'] <= m.aspect_ratio <= t['aspect_ratio']['max']:
            aspect_score = 1.0
        else:
            aspect_score = t['aspect_ratio']['outside']
        if m.lip_protrusion:
            protrusion_score = min(m.lip_protrusion / t['lip_protrusion']['max'], 1.0)
        else:
            protrusion_score = t['lip_protrusion']['absent']

        combined = (
            width_score * w['width']
            + circularity_score * w['circularity']
            + openness_score * w['openness']
            + protrusion_score * w['lip_protrusion']
            + aspect_score * w['aspect_ratio']
        )

        if m.width > t['width']['penalty_threshold']:
            return combined * t['width']['penalty']
        if m.circularity < t['circularity']['penalty_threshold']:
            return combined * t['circularity']['penalty']
        if m.openness < t['openness']['low']:
            return combined * t['openness']['low_penalty']
        return combined

    def _score_e(self, m: MouthMetrics) -> float:
        t = self.thresholds['vowels']['e']
        w = t['weights']

        aspect_score = self._gaussian('e', 'aspect_ratio', m.aspect_ratio)
        openness_score = self._gaussian('e', 'openness', m.openness)
        if m.width > t['width']['min']:
            width_score = min((m.width - t['width']['min']) / t['width']['range'], 1.0)
        else:
            width_score = t['width']['below_min']
        corner_score = 1 - min(abs(m.mouth_corner_angle.average) / t['mouth_corner_angle']['max'], 1.0)
        gap = abs(m.upper_lip_thickness - m.lower_lip_thickness)
        gap_score = self._gaussian('e', 'lip_thickness_gap', gap)

        combined = (
            aspect_score * w['aspect_ratio']
            + openness_score * w['openness']
            + width_score * w['width']
            + corner_score * w['mouth_corner_angle']
            + gap_score * w['lip_thickness_gap']
        )

        openness = t['openness']
        if m.aspect_ratio < t['aspect_ratio']['penalty_threshold']:
            return combined * t['aspect_ratio']['penalty']
        if m.openness < openness['min']:
            return combined * openness['below_min_penalty']
        if m.openness > openness['max']:
            return combined * openness['above_max_penalty']
        if m.openness < openness['low']:
            return combined * openness['low_penalty']
        return combined

    def _score_o(self, m: MouthMetrics) -> float:
        t = self.thresholds['vowels']['o']
        w = t['weights']

        circularity_score = m.circularity
        thickness = m.upper_lip_thickness + m.lower_lip_thickness
        thickness_ratio = m.width / thickness if thickness > 0 else 0.0
        thickness_score = self._gaussian('o', 'thickness_ratio', thickness_ratio)
        openness_score = self._gaussian('o', 'openness', m.openness)
        width_score = self._gaussian('o', 'width', m.width)
        if m.lip_protrusion:
            protrusion_score = min(m.lip_protrusion / t['lip_protrusion']['max'], 1.0)
        else:
            protrusion_score = t['lip_protrusion']['absent']

        combined = (
            circularity_score * w['circularity']
            + thickness_score * w['thickness_ratio']
            + protrusion_score * w['lip_protrusion']
            + openness_score * w['openness']
            + width_score * w['width']
        )

        if m.circularity < t['circularity']['penalty_threshold']:
            return combined * t['circularity']['penalty']
        if m.openness < t['openness']['low']:
            return combined * t['openness']['low_penalty']
        return combined

    # Smoothing and results

    @staticmethod
    def _normalize(scores: Mapping[str, float]) -> Dict[str, float]:
        probabilities = empty_probabilities()
        total = sum(scores.values())
        if total <= 0:
            return probabilities
        for key, score in scores.items():
            probabilities[key] = score / total
        return probabilities

    def _smooth_probabilities(self, probabilities: Dict[str, float]) -> Dict[str, float]:
        if self._smoothed is None:
            self._smoothed = dict(probabilities)
        else:
            alpha = self.smoothing_alpha
            self._smoothed = {
                key: self._smoothed.get(key, 0.0) * alpha + probabilities.get(key, 0.0) * (1 - alpha)
                for key in PROBABILITY_KEYS
            }
        return dict(self._smoothed)

    @staticmethod
    def _snapshot(metrics: MouthMetrics) -> Dict[str, float]:
        return {name: metrics.value(name) for name in SNAPSHOT_METRICS}

    def _label(self, vowel: Optional[Vowel]) -> str:
        if vowel is None:
            return self.label_map.get('none', '-')
        return self.label_map.get(vowel.value, vowel.value)

    def _result(
        self,
        vowel: Optional[Vowel],
        confidence: float,
        probabilities: Dict[str, float],
        scores: Dict[str, float],
        metrics: Optional[Dict[str, float]]
    ) -> ClassificationResult:
        return ClassificationResult(
            vowel=vowel,
            confidence=confidence,
            probabilities=probabilities,
            scores=scores,
            metrics=metrics,
            display_vowel=self._label(vowel),
        )

    def _empty_result(
        self,
        scores: Optional[Dict[str, float]] = None,
        metrics: Optional[Dict[str, float]] = None
    ) -> ClassificationResult:
        return self._result(None, 0.0, empty_probabilities(), scores or {}, metrics)

    def _deliver(self, result: ClassificationResult) -> ClassificationResult:
        callback = self.on_vowel_detected
        if callback is None:
            return result

        self._delivering = True
        try:
            if isinstance(callback, VowelSink):
                callback.on_vowel(result)
            else:
                callback(result)
        finally:
            self._delivering = False
        return result
