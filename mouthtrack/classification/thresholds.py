"""Default threshold profile for the vowel classifier

All numbers are hand-tuned defaults for scale-normalized metrics. Every
value can be overridden through ``VowelClassifier.set_thresholds`` or the
``classifier.thresholds`` config section, which are deep-merged over this
profile.
"""

import copy
from typing import Any, Dict, Mapping


DEFAULT_THRESHOLDS: Dict[str, Any] = {
    'closed': {
        'openness': 0.018,
        'thick_lip_openness': 0.025,
        'thickness_ratio': 0.25,
        'openness_ratio': 1.3,
        'default_baseline_openness': 0.01,
    },
    'min_score': {
        'small_openness': 0.03,
        'small': 0.4,
        'default': 0.25,
    },
    'transition': {
        'velocity_high': 0.35,
        'acceleration_high': 0.7,
        'penalty_high': 0.7,
        'velocity_moderate': 0.18,
        'acceleration_moderate': 0.35,
        'penalty_moderate': 0.85,
    },
    'vowels': {
        'a': {
            'openness': {
                'optimal': 0.1, 'sigma': 0.025,
                'penalty_threshold': 0.08, 'penalty_floor': 0.15, 'penalty': 0.35,
                'soft_threshold': 0.08, 'soft_penalty': 0.75,
            },
            'aspect_ratio': {'min': 0.8, 'max': 1.8, 'falloff_range': 2.0},
            'area': {'max': 0.025},
            'weights': {'openness': 0.65, 'aspect_ratio': 0.25, 'area': 0.1},
        },
        'i': {
            'aspect_ratio': {'optimal': 6.5, 'sigma': 1.5, 'min': 4.0, 'penalty': 0.25},
            'openness': {
                'max': 0.04, 'penalty_threshold': 0.05, 'penalty': 0.4,
                'low': 0.035, 'low_penalty': 0.6,
            },
            'width': {'min': 0.08, 'range': 0.05},
            'mouth_corner_angle': {'max': 0.25},
            'lip_thickness_ratio': {'optimal': 0.12, 'sigma': 0.06},
            'weights': {
                'aspect_ratio': 0.45, 'openness': 0.25, 'width': 0.15,
                'mouth_corner_angle': 0.1, 'lip_thickness_ratio': 0.05,
            },
        },
        'u': {
            'width': {'max': 0.05, 'penalty_threshold': 0.06, 'penalty': 0.2},
            'circularity': {'penalty_threshold': 0.35, 'penalty': 0.4},
            'openness': {'max': 0.05, 'sigma': 0.02, 'low': 0.035, 'low_penalty': 0.5},
            'aspect_ratio': {'min': 1.0, 'max': 2.4, 'outside': 0.6},
            'lip_protrusion': {'max': 0.012, 'absent': 0.2},
            'weights': {
                'width': 0.25, 'circularity': 0.25, 'openness': 0.2,
                'lip_protrusion': 0.2, 'aspect_ratio': 0.1,
            },
        },
        'e': {
            'aspect_ratio': {'optimal': 3.0, 'sigma': 1.0, 'penalty_threshold': 2.0, 'penalty': 0.4},
            'openness': {
                'min': 0.03, 'optimal': 0.045, 'sigma': 0.015, 'max': 0.06,
                'below_min_penalty': 0.15, 'above_max_penalty': 0.4,
                'low': 0.035, 'low_penalty': 0.4,
            },
            'width': {'min': 0.08, 'range': 0.05, 'below_min': 0.4},
            'mouth_corner_angle': {'max': 0.28},
            'lip_thickness_gap': {'optimal': 0.008, 'sigma': 0.008},
            'weights': {
                'aspect_ratio': 0.35, 'openness': 0.3, 'width': 0.15,
                'mouth_corner_angle': 0.1, 'lip_thickness_gap': 0.1,
            },
        },
        'o': {
            'circularity': {'penalty_threshold': 0.38, 'penalty': 0.3},
            'width': {'optimal': 0.07, 'sigma': 0.02},
            'lip_protrusion': {'max': 0.015, 'absent': 0.2},
            'thickness_ratio': {'optimal': 4.0, 'sigma': 1.5},
            'openness': {'optimal': 0.055, 'sigma': 0.02, 'low': 0.045, 'low_penalty': 0.5},
            'weights': {
                'circularity': 0.3, 'thickness_ratio': 0.2, 'lip_protrusion': 0.2,
                'openness': 0.15, 'width': 0.15,
            },
        },
    },
}

DEFAULT_LABEL_MAP: Dict[str, str] = {
    'a': 'あ',
    'i': 'い',
    'u': 'う',
    'e': 'え',
    'o': 'お',
    'closed': '閉口',
    'none': '-',
}


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``base`` with ``override`` merged in recursively"""
    merged = copy.deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def default_thresholds() -> Dict[str, Any]:
    return copy.deepcopy(DEFAULT_THRESHOLDS)
