"""Unit tests for the frame pipeline"""

import asyncio

import pytest

from mouthtrack.analysis.calibration import (
    CalibrationCancelledError,
    CalibrationManager,
    InsufficientSamplesError
)
from mouthtrack.classification.vowel_classifier import VowelClassifier
from mouthtrack.input import landmark_indices as idx
from mouthtrack.models.enums import Vowel
from mouthtrack.models.features import Baseline
from mouthtrack.models.interfaces import FrameSink, LandmarkSource
from mouthtrack.models.landmarks import DetectionFrame, LandmarkSet, Point3
from mouthtrack.models.results import FrameResult
from mouthtrack.tracking.events import EventHook
from mouthtrack.tracking.frame_pipeline import FramePipeline, PipelineError, assess_quality
from tests.fixtures.synthetic_landmarks import make_detection, make_face, without


class FakeClock:
    """Manually advanced clock in seconds"""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingHook(EventHook):
    def __init__(self):
        self.events = []

    def emit(self, event, **fields):
        self.events.append((event, fields))

    def names(self):
        return [name for name, _ in self.events]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def hook():
    return RecordingHook()


@pytest.fixture
def pipeline(clock, hook):
    tracker = FramePipeline(classifier=VowelClassifier(), event_hook=hook, clock=clock)
    tracker.start()
    return tracker


class TestLifecycle:
    """Tests for start/stop behaviour"""

    def test_process_before_start_raises(self, clock):
        tracker = FramePipeline(clock=clock)

        with pytest.raises(PipelineError):
            tracker.process_frame(make_detection())

    def test_stop_resets_smoothing_and_temporal_state(self, pipeline, clock):
        pipeline.process_frame(make_detection())
        clock.advance(0.05)
        pipeline.process_frame(make_detection())
        pipeline.stop()

        assert len(pipeline.smoother) == 0
        assert pipeline.temporal_extractor.history_length == 0
        with pytest.raises(PipelineError):
            pipeline.process_frame(make_detection())

    def test_start_resets_last_metrics(self, pipeline):
        pipeline.process_frame(make_detection())
        pipeline.stop()
        pipeline.start()

        assert pipeline.last_metrics is None
        assert pipeline.fps == 0

    def test_classifier_state_survives_restart(self, pipeline):
        pipeline.process_frame(make_detection())
        history = len(pipeline.classifier.history)
        pipeline.stop()
        pipeline.start()

        assert history > 0
        assert len(pipeline.classifier.history) == history

    def test_configured_defaults(self, clock):
        tracker = FramePipeline(clock=clock)

        assert tracker.smoother.factor == 0.65
        assert tracker.use_34_points is True
        assert tracker.temporal_extractor.buffer_size == 30

    def test_set_smoothing_factor(self, pipeline):
        pipeline.set_smoothing_factor(0.2)

        assert pipeline.smoother.factor == 0.2


class TestFrameProcessing:
    """Tests for per-frame output"""

    def test_face_frame(self, pipeline, clock):
        result = pipeline.process_frame(make_detection(confidence=0.9))

        assert result.face_detected is True
        assert result.confidence == 0.9
        assert result.metrics.openness == pytest.approx(0.10)
        assert result.metrics.width == pytest.approx(0.15)
        assert result.quality.passed is True
        assert result.quality.std_dev == pytest.approx(0.0)
        assert result.timestamp == int(clock.now * 1000)
        assert set(result.temporal_features) == {"openness", "width", "aspect_ratio", "area"}
        assert len(result.landmarks) == 8
        assert len(result.contour_landmarks) == 34
        assert result.classification is not None

    def test_sixteen_point_contour(self, clock):
        tracker = FramePipeline(use_34_points=False, clock=clock)
        tracker.start()

        result = tracker.process_frame(make_detection())

        assert len(result.contour_landmarks) == 16
        assert result.metrics.jaw_movement == 0.0

    def test_no_detection(self, pipeline):
        result = pipeline.process_frame(None)

        assert result.face_detected is False
        assert result.confidence == 0.0
        assert result.metrics is None
        assert result.landmarks is None
        assert result.quality is None

    def test_missing_basic_point_counts_as_no_face(self, pipeline):
        face = without(make_face(), idx.BASIC_MOUTH_INDICES["top_left"])

        result = pipeline.process_frame(DetectionFrame(face))

        assert result.face_detected is False

    def test_no_face_warning_throttled(self, pipeline, clock, hook, caplog):
        for _ in range(5):
            pipeline.process_frame(None)
            clock.advance(0.5)
        clock.advance(2.0)
        pipeline.process_frame(None)

        assert hook.names().count("face_lost") == 2
        assert sum("No face detected" in r.getMessage() for r in caplog.records) == 2

    def test_rates_against_previous_frame(self, pipeline, clock):
        pipeline.set_smoothing_factor(0.0)
        pipeline.process_frame(make_detection(openness=0.10))
        clock.advance(0.1)
        result = pipeline.process_frame(make_detection(openness=0.12))

        assert result.metrics.openness_rate == pytest.approx(0.2)
        assert result.temporal_features["openness"].velocity == pytest.approx(0.2)

    def test_selective_smoothing(self, pipeline):
        pipeline.process_frame(make_detection(openness=0.10))
        result = pipeline.process_frame(make_detection(openness=0.20))

        # 0.65 of the previous opening is kept
        assert result.metrics.openness == pytest.approx(0.135)
        assert result.contour_landmarks.get(13).y == pytest.approx(0.6 - 0.10)
        assert result.landmarks.get(13).y == pytest.approx(0.6 - 0.0675)


class TestQualityGate:
    """Tests for the landmark depth quality check"""

    def test_rejected_frame_is_delivered_without_metrics(self, pipeline, hook):
        received = []
        pipeline.add_sink(received.append)

        result = pipeline.process_frame(make_detection(z_spread=0.1))

        assert received == [result]
        assert result.face_detected is True
        assert result.metrics is None
        assert result.quality.passed is False
        assert result.quality.std_dev == pytest.approx(0.1)
        assert result.classification is None
        assert "quality_rejected" in hook.names()

    def test_rejected_frame_does_not_update_state(self, pipeline):
        pipeline.process_frame(make_detection(z_spread=0.1))

        assert pipeline.last_metrics is None
        assert pipeline.temporal_extractor.history_length == 0

    def test_bypass_with_few_landmarks(self):
        few = LandmarkSet({i: Point3(0.1, 0.1, 0.5 * i) for i in range(4)})

        report = assess_quality(few)

        assert report.passed is True
        assert report.reason == "insufficient_landmarks_bypassed"

    def test_bypass_with_few_depth_values(self):
        flat = LandmarkSet({i: Point3(0.1, 0.1, float('nan') if i > 2 else 0.0) for i in range(8)})

        report = assess_quality(flat)

        assert report.passed is True
        assert report.reason == "insufficient_z_bypassed"

    def test_threshold(self):
        points = LandmarkSet({i: Point3(0.1, 0.1, 0.03 if i % 2 else -0.03) for i in range(10)})

        assert assess_quality(points).passed is True
        assert assess_quality(points, max_z_std=0.02).passed is False


class TestDelivery:
    """Tests for sinks and pull-based iteration"""

    def test_each_sink_receives_each_frame_once(self, pipeline):
        class Collector(FrameSink):
            def __init__(self):
                self.results = []

            def on_frame(self, result: FrameResult) -> None:
                self.results.append(result)

        sink = Collector()
        calls = []
        pipeline.add_sink(sink)
        pipeline.add_sink(calls.append)

        results = [pipeline.process_frame(make_detection()), pipeline.process_frame(None)]

        assert sink.results == results
        assert calls == results

    def test_failing_sink_does_not_block_others(self, pipeline, hook):
        received = []

        def broken(result):
            raise ValueError("display closed")

        pipeline.add_sink(broken)
        pipeline.add_sink(received.append)
        pipeline.process_frame(make_detection())

        assert len(received) == 1
        assert "sink_error" in hook.names()

    def test_remove_sink(self, pipeline):
        received = []
        pipeline.add_sink(received.append)
        pipeline.remove_sink(received.append)
        pipeline.process_frame(make_detection())

        assert received == []

    def test_iter_results_is_lazy(self, clock):
        tracker = FramePipeline(clock=clock)
        frames = iter([make_detection(), None, make_detection()])

        results = tracker.iter_results(frames)
        assert tracker.is_tracking is False

        collected = list(results)
        assert [r.face_detected for r in collected] == [True, False, True]
        assert tracker.is_tracking is True

    def test_process_image_uses_landmark_source(self, pipeline):
        class StaticSource(LandmarkSource):
            def process(self, image):
                return make_detection() if image is not None else None

            def close(self):
                pass

        pipeline.landmark_source = StaticSource()

        assert pipeline.process_image("frame").face_detected is True
        assert pipeline.process_image(None).face_detected is False

    def test_process_image_without_source(self, pipeline):
        with pytest.raises(PipelineError):
            pipeline.process_image("frame")


class TestFps:
    """Tests for the frame rate counter"""

    def test_fps_updates_after_one_second(self, pipeline, clock):
        for _ in range(31):
            clock.advance(1 / 30)
            result = pipeline.process_frame(make_detection())

        assert result.fps == 30

    def test_fps_zero_before_first_second(self, pipeline, clock):
        clock.advance(0.5)

        assert pipeline.process_frame(make_detection()).fps == 0


class TestCalibration:
    """Tests for calibration through the pipeline"""

    @pytest.mark.asyncio
    async def test_calibration_pushes_baseline_to_classifier(self, clock):
        manager = CalibrationManager(duration=0.2, sample_interval=0.01, min_samples=3)
        tracker = FramePipeline(classifier=VowelClassifier(), calibration_manager=manager, clock=clock)
        tracker.start()
        tracker.process_frame(make_detection(openness=0.02, width=0.06, lip_thickness=0.002))

        baseline = await tracker.start_calibration()

        assert baseline.openness == pytest.approx(0.02)
        assert tracker.get_baseline() is baseline
        assert tracker.classifier.get_baseline() is baseline
        assert not tracker.is_calibrating

    @pytest.mark.asyncio
    async def test_calibration_without_frames_fails(self, clock):
        manager = CalibrationManager(duration=0.1, sample_interval=0.01, min_samples=3)
        tracker = FramePipeline(classifier=VowelClassifier(), calibration_manager=manager, clock=clock)
        tracker.start()

        with pytest.raises(InsufficientSamplesError):
            await tracker.start_calibration()
        assert tracker.classifier.get_baseline() is None

    @pytest.mark.asyncio
    async def test_stop_calibration(self, clock):
        manager = CalibrationManager(duration=5.0, sample_interval=0.01, min_samples=3)
        tracker = FramePipeline(calibration_manager=manager, clock=clock)
        tracker.start()
        tracker.process_frame(make_detection())

        session = asyncio.ensure_future(tracker.start_calibration())
        await asyncio.sleep(0.03)
        assert tracker.is_calibrating

        tracker.stop_calibration()
        with pytest.raises(CalibrationCancelledError):
            await session
        assert not tracker.is_calibrating

    def test_set_baseline_reaches_classifier(self, pipeline):
        baseline = Baseline(0.02, 0.06, 3.0, 0.001, 0.01, 0.025, 0.065, 0.0)
        pipeline.set_baseline(baseline)

        assert pipeline.get_baseline() == baseline
        assert pipeline.classifier.get_baseline() == baseline


def test_closed_mouth_classified(pipeline):
    result = pipeline.process_frame(make_detection(openness=0.005, width=0.12))

    assert result.classification.vowel is Vowel.CLOSED


@pytest.mark.asyncio
async def test_stopping_pipeline_ends_calibration(clock):
    manager = CalibrationManager(duration=5.0, sample_interval=0.01, min_samples=3)
    tracker = FramePipeline(classifier=VowelClassifier(), calibration_manager=manager, clock=clock)
    tracker.start()
    tracker.process_frame(make_detection(openness=0.02, width=0.06))

    session = asyncio.ensure_future(tracker.start_calibration())
    await asyncio.sleep(0.03)
    tracker.stop()

    with pytest.raises(CalibrationCancelledError):
        await session
    assert not tracker.is_calibrating
    assert tracker.last_metrics is None
    assert tracker.classifier.get_baseline() is None
