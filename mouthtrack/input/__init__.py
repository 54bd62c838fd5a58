"""Landmark input: detector index tables and the MediaPipe adapter"""

from mouthtrack.input.face_mesh import FaceMeshLandmarkSource, LandmarkSourceError

__all__ = ['FaceMeshLandmarkSource', 'LandmarkSourceError']
