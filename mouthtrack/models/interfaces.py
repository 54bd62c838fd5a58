"""Base interfaces for result sinks and landmark sources"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from mouthtrack.models.landmarks import DetectionFrame
from mouthtrack.models.results import ClassificationResult, FrameResult


class FrameSink(ABC):
    """Receives every frame result produced by the pipeline"""

    @abstractmethod
    def on_frame(self, result: FrameResult) -> None:
        """Handle one processed frame

        Args:
            result: Frame result, delivered exactly once per processed frame
        """
        pass


class VowelSink(ABC):
    """Receives every classification result produced by the classifier"""

    @abstractmethod
    def on_vowel(self, result: ClassificationResult) -> None:
        """Handle one classification result

        Implementations must not call back into the classifier.

        Args:
            result: Classification result (possibly empty)
        """
        pass


class LandmarkSource(ABC):
    """Interface for the upstream landmark detector"""

    @abstractmethod
    def process(self, image: Any) -> Optional[DetectionFrame]:
        """Detect landmarks in an image

        Args:
            image: Image in the format the detector expects

        Returns:
            Detection for the tracked face, or None if no face was found
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release detector resources"""
        pass
