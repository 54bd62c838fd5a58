"""Frame Pipeline

Orchestrates one landmark frame at a time: subset extraction, selective
smoothing, quality gate, metrics, temporal features and classification,
then delivers the FrameResult to every registered sink exactly once.

Frames are processed strictly in order on the caller's thread. Calibration
is the only part that runs on its own schedule (an asyncio task).
"""

import logging
import time
from typing import Any, Callable, Iterable, Iterator, List, Optional, Union

import numpy as np

from mouthtrack.analysis import geometry
from mouthtrack.analysis.calibration import CalibrationManager
from mouthtrack.analysis.smoother import Smoother
from mouthtrack.analysis.temporal import TemporalFeatureExtractor
from mouthtrack.classification.vowel_classifier import VowelClassifier
from mouthtrack.config.config_loader import config
from mouthtrack.input import landmark_indices as idx
from mouthtrack.models.features import Baseline, MouthMetrics
from mouthtrack.models.interfaces import FrameSink, LandmarkSource
from mouthtrack.models.landmarks import DetectionFrame, LandmarkSet
from mouthtrack.models.results import FrameResult, QualityReport
from mouthtrack.tracking.events import EventHook, LoggingEventHook


logger = logging.getLogger(__name__)

MIN_QUALITY_POINTS = 5
FACE_SCALE_INDICES = (idx.LEFT_EYE_OUTER, idx.RIGHT_EYE_OUTER, idx.NOSE_BRIDGE, idx.CHIN)

FrameCallback = Union[Callable[[FrameResult], None], FrameSink]


class PipelineError(Exception):
    """Exception raised for invalid use of the frame pipeline"""
    pass


def assess_quality(landmarks: Optional[LandmarkSet], max_z_std: float = 0.04) -> QualityReport:
    """Reject frames whose landmark depth spread suggests mis-tracking.

    Args:
        landmarks: Landmarks to inspect
        max_z_std: Largest accepted population std-dev of z

    Returns:
        QualityReport; too few points bypass the check instead of failing it
    """
    if landmarks is None or len(landmarks) < MIN_QUALITY_POINTS:
        return QualityReport(passed=True, reason='insufficient_landmarks_bypassed')

    z_values = [z for z in landmarks.z_values() if isinstance(z, (int, float)) and not np.isnan(z)]
    if len(z_values) < MIN_QUALITY_POINTS:
        return QualityReport(passed=True, reason='insufficient_z_bypassed')

    std_dev = float(np.std(z_values))
    return QualityReport(passed=std_dev <= max_z_std, std_dev=std_dev)


class FramePipeline:
    """Per-frame mouth tracking pipeline.

    Attributes:
        smoother: Landmark smoother (basic, contour and face-scale points)
        temporal_extractor: Temporal feature buffer
        calibration_manager: Calibration sessions and the stored baseline
        classifier: Optional vowel classifier run on every measured frame
        use_34_points: Use the 34-point contour instead of the 16-point one
        last_metrics: Metrics of the most recent measured frame
        fps: Processed frames per second, refreshed at most once a second
        is_tracking: Whether frames are accepted
    """

    def __init__(
        self,
        classifier: Optional[VowelClassifier] = None,
        smoother: Optional[Smoother] = None,
        temporal_extractor: Optional[TemporalFeatureExtractor] = None,
        calibration_manager: Optional[CalibrationManager] = None,
        landmark_source: Optional[LandmarkSource] = None,
        smoothing_factor: Optional[float] = None,
        use_34_points: Optional[bool] = None,
        temporal_buffer_size: Optional[int] = None,
        event_hook: Optional[EventHook] = None,
        clock: Callable[[], float] = time.time
    ):
        """Initialize the pipeline from configuration, with explicit overrides.

        Args:
            classifier: Classifier to run per frame, None to skip classification
            smoother: Smoother to use instead of a configured one
            temporal_extractor: Extractor to use instead of a configured one
            calibration_manager: Calibration manager to use instead of a configured one
            landmark_source: Detector used by ``process_image``
            smoothing_factor: Overrides ``tracker.smoothing_factor``
            use_34_points: Overrides ``tracker.use_34_points``
            temporal_buffer_size: Overrides ``tracker.temporal_buffer_size``
            event_hook: Receives structured pipeline events
            clock: Wall clock in seconds, used for timestamps, FPS and throttling
        """
        if smoothing_factor is None:
            smoothing_factor = config.get('tracker.smoothing_factor', 0.65)
        if temporal_buffer_size is None:
            temporal_buffer_size = config.get('tracker.temporal_buffer_size', 30)

        self.smoother = smoother or Smoother(smoothing_factor)
        self.temporal_extractor = temporal_extractor or TemporalFeatureExtractor(temporal_buffer_size)
        self.calibration_manager = calibration_manager or CalibrationManager()
        self.classifier = classifier
        self.landmark_source = landmark_source
        self.event_hook = event_hook or LoggingEventHook()
        self._clock = clock

        self.use_34_points = (
            use_34_points if use_34_points is not None
            else config.get('tracker.use_34_points', True)
        )
        self.max_z_std = config.get('tracker.quality_max_z_std', 0.04)
        self.no_face_log_interval = config.get('tracker.no_face_log_interval', 2.0)
        self.reference_eye_distance = config.get('geometry.reference_eye_distance', 0.2)
        self.reference_face_height = config.get('geometry.reference_face_height', 0.25)

        self.contour_indices = idx.contour_indices(self.use_34_points)
        self.sinks: List[FrameCallback] = []

        self.is_tracking = False
        self.last_metrics: Optional[MouthMetrics] = None
        self._last_no_face_warning: Optional[float] = None
        self._reset_fps()

        logger.info(
            f"FramePipeline initialized with smoothing_factor={self.smoother.factor}, "
            f"use_34_points={self.use_34_points}, buffer={self.temporal_extractor.buffer_size}"
        )

    # Lifecycle

    def start(self) -> None:
        """Start accepting frames with fresh smoothing and temporal state"""
        if self.is_tracking:
            logger.debug("FramePipeline already tracking")
            return

        self.smoother.reset()
        self.temporal_extractor.reset()
        self.last_metrics = None
        self._last_no_face_warning = None
        self._reset_fps()
        self.is_tracking = True
        logger.info("Tracking started")

    def stop(self) -> None:
        """Stop accepting frames and end any running calibration.

        Classifier state and the stored baseline are kept.
        """
        if not self.is_tracking:
            return

        self.is_tracking = False
        if self.calibration_manager.is_calibrating:
            self.calibration_manager.stop_calibration()
        self.smoother.reset()
        self.temporal_extractor.reset()
        self.last_metrics = None
        logger.info("Tracking stopped")

    def set_smoothing_factor(self, factor: float) -> None:
        self.smoother.set_factor(factor)

    # Sinks

    def add_sink(self, sink: FrameCallback) -> None:
        self.sinks.append(sink)

    def remove_sink(self, sink: FrameCallback) -> None:
        if sink in self.sinks:
            self.sinks.remove(sink)

    def _deliver(self, result: FrameResult) -> FrameResult:
        for sink in list(self.sinks):
            try:
                if isinstance(sink, FrameSink):
                    sink.on_frame(result)
                else:
                    sink(result)
            except Exception as e:
                logger.error(f"Frame sink {sink!r} failed: {e}", exc_info=True)
                self.event_hook.emit('sink_error', sink=repr(sink), error=str(e))
        return result

    # Frame processing

    def process_image(self, image: Any) -> FrameResult:
        """Run the attached landmark source on an image and process the detection"""
        if self.landmark_source is None:
            raise PipelineError("No landmark source attached")
        return self.process_frame(self.landmark_source.process(image))

    def iter_results(self, frames: Iterable[Optional[DetectionFrame]]) -> Iterator[FrameResult]:
        """Process detections lazily, yielding one FrameResult per detection.

        Starts tracking if it was not started.
        """
        if not self.is_tracking:
            self.start()
        for detection in frames:
            yield self.process_frame(detection)

    def process_frame(self, detection: Optional[DetectionFrame]) -> FrameResult:
        """Process one detector frame.

        Args:
            detection: Detector output, or None when no face was found

        Returns:
            The frame result, also delivered to every sink

        Raises:
            PipelineError: If tracking has not been started
        """
        if not self.is_tracking:
            raise PipelineError("process_frame() called while not tracking")

        now = self._clock()
        self._update_fps(now)

        if detection is None:
            return self._deliver(self._no_face(now))

        landmarks = detection.landmarks
        basic_raw = landmarks.subset(idx.BASIC_MOUTH_INDICES.values())
        if len(basic_raw) < len(idx.BASIC_MOUTH_INDICES):
            return self._deliver(self._no_face(now))

        self._last_no_face_warning = None

        contour_raw = landmarks.subset(self.contour_indices)
        basic = self._smooth_basic(landmarks)
        contour = self._smooth_set(contour_raw, 'contour_')
        face = self._smooth_set(landmarks.subset(FACE_SCALE_INDICES), 'face_')

        quality_target = contour_raw if len(contour_raw) > 0 else landmarks
        quality = assess_quality(quality_target, self.max_z_std)
        timestamp = int(now * 1000)

        if not quality.passed:
            logger.debug(f"Frame rejected by quality check: z std-dev {quality.std_dev:.4f}")
            self.event_hook.emit('quality_rejected', std_dev=quality.std_dev)
            return self._deliver(FrameResult(
                landmarks=basic,
                metrics=None,
                temporal_features=None,
                contour_landmarks=contour_raw or None,
                confidence=0.0,
                fps=self.fps,
                timestamp=timestamp,
                face_detected=True,
                quality=quality,
            ))

        metrics = geometry.compute_metrics(
            basic,
            contour if len(contour) > 0 else None,
            face if len(face) > 0 else None,
            previous=self.last_metrics,
            reference_eye_distance=self.reference_eye_distance,
            reference_face_height=self.reference_face_height,
        )
        self.last_metrics = metrics

        self.temporal_extractor.add_frame(metrics, now)
        temporal_features = self.temporal_extractor.get_all_temporal_features()

        classification = None
        if self.classifier is not None:
            classification = self.classifier.classify(metrics, temporal_features)
            self.event_hook.emit(
                'vowel_classified',
                vowel=classification.vowel.value if classification.vowel else None,
                confidence=classification.confidence,
            )

        self.event_hook.emit('frame_processed', fps=self.fps, openness=metrics.openness, width=metrics.width)

        return self._deliver(FrameResult(
            landmarks=basic,
            metrics=metrics,
            temporal_features=temporal_features,
            contour_landmarks=contour_raw or None,
            confidence=detection.confidence,
            fps=self.fps,
            timestamp=timestamp,
            face_detected=True,
            quality=quality,
            classification=classification,
        ))

    def _no_face(self, now: float) -> FrameResult:
        if (self._last_no_face_warning is None
                or now - self._last_no_face_warning > self.no_face_log_interval):
            self._last_no_face_warning = now
            logger.warning("No face detected")
            self.event_hook.emit('face_lost', timestamp=now)

        return FrameResult(
            landmarks=None,
            metrics=None,
            temporal_features=None,
            contour_landmarks=None,
            confidence=0.0,
            fps=self.fps,
            timestamp=int(now * 1000),
            face_detected=False,
        )

    def _smooth_basic(self, landmarks: LandmarkSet) -> LandmarkSet:
        smoothed = {}
        for name, index in idx.BASIC_MOUTH_INDICES.items():
            smoothed[index] = self.smoother.smooth(name, landmarks.get(index))
        return LandmarkSet(smoothed)

    def _smooth_set(self, landmarks: LandmarkSet, prefix: str) -> LandmarkSet:
        return LandmarkSet({
            item.index: self.smoother.smooth(f"{prefix}{item.index}", item.point)
            for item in landmarks
        })

    # FPS

    def _reset_fps(self) -> None:
        self.fps = 0
        self._fps_frames = 0
        self._fps_last_time = self._clock()

    def _update_fps(self, now: float) -> None:
        self._fps_frames += 1
        elapsed = now - self._fps_last_time
        if elapsed >= 1.0:
            self.fps = int(round(self._fps_frames / elapsed))
            self._fps_frames = 0
            self._fps_last_time = now

    # Calibration

    async def start_calibration(self) -> Baseline:
        """Calibrate from the pipeline's latest metrics.

        On success the baseline is also handed to the classifier.

        Raises:
            CalibrationError: As raised by the calibration manager
        """
        self.event_hook.emit('calibration_started')
        baseline = await self.calibration_manager.start_calibration(lambda: self.last_metrics)
        if self.classifier is not None:
            self.classifier.set_baseline(baseline)
        self.event_hook.emit('calibration_completed', openness=baseline.openness, width=baseline.width)
        return baseline

    def stop_calibration(self) -> None:
        self.calibration_manager.stop_calibration()

    @property
    def is_calibrating(self) -> bool:
        return self.calibration_manager.is_calibrating

    def get_baseline(self) -> Optional[Baseline]:
        return self.calibration_manager.get_baseline()

    def set_baseline(self, baseline: Optional[Baseline]) -> None:
        self.calibration_manager.set_baseline(baseline)
        if self.classifier is not None:
            self.classifier.set_baseline(baseline)


MouthTracker = FramePipeline
