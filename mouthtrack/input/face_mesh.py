"""MediaPipe FaceMesh landmark source

Adapts MediaPipe FaceMesh output to the tracker's LandmarkSet input. The
model is imported and built on first use so the rest of the package works
without MediaPipe installed.
"""

import logging
from typing import Any, Optional

from mouthtrack.config.config_loader import config
from mouthtrack.models.interfaces import LandmarkSource
from mouthtrack.models.landmarks import DetectionFrame, LandmarkSet, Point3


logger = logging.getLogger(__name__)


class LandmarkSourceError(Exception):
    """Exception raised when the landmark detector cannot run"""
    pass


def landmarks_from_results(results: Any) -> Optional[LandmarkSet]:
    """Convert FaceMesh results for the first face into a LandmarkSet.

    Args:
        results: Object with a ``multi_face_landmarks`` attribute as returned
            by ``FaceMesh.process``

    Returns:
        Landmarks keyed by mesh index, or None if no face was found
    """
    faces = getattr(results, 'multi_face_landmarks', None)
    if not faces:
        return None

    points = {}
    for index, landmark in enumerate(faces[0].landmark):
        points[index] = Point3(float(landmark.x), float(landmark.y), float(getattr(landmark, 'z', 0.0)))
    return LandmarkSet(points)


class FaceMeshLandmarkSource(LandmarkSource):
    """Landmark source backed by MediaPipe FaceMesh.

    FaceMesh reports no per-face score, so detections carry confidence 1.0.

    Attributes:
        max_num_faces: Faces tracked by the model (only the first is used)
        refine_landmarks: Enable lip and iris refinement (478 points)
        min_detection_confidence: Detector threshold
        min_tracking_confidence: Tracker threshold
    """

    def __init__(
        self,
        max_num_faces: Optional[int] = None,
        refine_landmarks: Optional[bool] = None,
        min_detection_confidence: Optional[float] = None,
        min_tracking_confidence: Optional[float] = None
    ):
        self.max_num_faces = max_num_faces or config.get('face_mesh.max_num_faces', 1)
        self.refine_landmarks = (
            refine_landmarks if refine_landmarks is not None
            else config.get('face_mesh.refine_landmarks', True)
        )
        self.min_detection_confidence = (
            min_detection_confidence if min_detection_confidence is not None
            else config.get('face_mesh.min_detection_confidence', 0.5)
        )
        self.min_tracking_confidence = (
            min_tracking_confidence if min_tracking_confidence is not None
            else config.get('face_mesh.min_tracking_confidence', 0.5)
        )

        # Initialized lazily
        self.face_mesh = None

        logger.info(f"FaceMeshLandmarkSource initialized with refine_landmarks={self.refine_landmarks}")

    def _load_models(self):
        """Load the MediaPipe face mesh model.

        Raises:
            LandmarkSourceError: If MediaPipe is missing or the model cannot be built
        """
        try:
            import mediapipe as mp
        except ImportError as e:
            raise LandmarkSourceError(
                "MediaPipe is required for FaceMeshLandmarkSource, install the 'facemesh' extra"
            ) from e

        try:
            logger.info("Loading MediaPipe face mesh model")
            self.face_mesh = mp.solutions.face_mesh.FaceMesh(
                static_image_mode=False,
                max_num_faces=self.max_num_faces,
                refine_landmarks=self.refine_landmarks,
                min_detection_confidence=self.min_detection_confidence,
                min_tracking_confidence=self.min_tracking_confidence
            )
            logger.info("MediaPipe face mesh model loaded successfully")
        except Exception as e:
            logger.error(f"Failed to load MediaPipe face mesh model: {e}", exc_info=True)
            raise LandmarkSourceError(f"Failed to load face mesh model: {e}") from e

    def process(self, image: Any) -> Optional[DetectionFrame]:
        """Run FaceMesh on an RGB image

        Args:
            image: RGB image array (H, W, 3)

        Returns:
            Detection for the first face, or None if no face was found
        """
        if self.face_mesh is None:
            self._load_models()

        try:
            results = self.face_mesh.process(image)
        except Exception as e:
            logger.error(f"Face mesh processing failed: {e}", exc_info=True)
            raise LandmarkSourceError(f"Face mesh processing failed: {e}") from e

        landmarks = landmarks_from_results(results)
        if landmarks is None:
            return None
        return DetectionFrame(landmarks=landmarks, confidence=1.0)

    def close(self) -> None:
        if self.face_mesh is not None:
            self.face_mesh.close()
            self.face_mesh = None
            logger.info("MediaPipe face mesh model released")
