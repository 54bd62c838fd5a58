"""Enumerations for vowel labels, mouth shapes and component states"""

from enum import Enum


class Vowel(Enum):
    """Mouth-shape classes reported by the classifier

    An absent label (no classifiable signal) is represented by ``None``
    rather than by a member of this enum.
    """
    A = "a"
    I = "i"
    U = "u"
    E = "e"
    O = "o"
    CLOSED = "closed"


# Classes scored by the per-vowel heuristics (closed is decided by a gate)
SCORED_VOWELS = (Vowel.A, Vowel.I, Vowel.U, Vowel.E, Vowel.O)


class OpeningShape(Enum):
    """Coarse shape of the mouth opening"""
    CIRCULAR = "circular"
    ELLIPTICAL = "elliptical"
    LINEAR = "linear"


class Trend(Enum):
    """Direction of recent change of a temporal feature"""
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class CalibrationState(Enum):
    """Lifecycle of a calibration session"""
    IDLE = "idle"
    SAMPLING = "sampling"
    COMPLETED = "completed"
    FAILED = "failed"
