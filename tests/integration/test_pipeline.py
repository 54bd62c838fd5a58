"""
Integration tests for the end-to-end mouth tracking pipeline.

Feeds synthetic detector frames through smoothing, geometry, temporal
features and classification, and checks what sinks and callbacks receive.
"""

import asyncio

import pytest

from mouthtrack.analysis.calibration import CalibrationManager
from mouthtrack.classification.vowel_classifier import VowelClassifier
from mouthtrack.models.enums import CalibrationState, Vowel
from mouthtrack.models.interfaces import FrameSink, VowelSink
from mouthtrack.tracking.frame_pipeline import FramePipeline
from tests.fixtures.synthetic_landmarks import make_detection


FRAME_INTERVAL = 1 / 30


class SteppingClock:
    """Clock that advances one frame interval per reading"""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        self.now += FRAME_INTERVAL
        return self.now


class CollectingFrameSink(FrameSink):
    def __init__(self):
        self.results = []

    def on_frame(self, result):
        self.results.append(result)


class CollectingVowelSink(VowelSink):
    def __init__(self):
        self.results = []

    def on_vowel(self, result):
        self.results.append(result)


@pytest.fixture
def vowel_sink():
    return CollectingVowelSink()


@pytest.fixture
def frame_sink():
    return CollectingFrameSink()


@pytest.fixture
def pipeline(vowel_sink, frame_sink):
    tracker = FramePipeline(
        classifier=VowelClassifier(on_vowel_detected=vowel_sink),
        clock=SteppingClock()
    )
    tracker.add_sink(frame_sink)
    tracker.start()
    return tracker


def open_mouth(**overrides):
    geometry = dict(openness=0.10, width=0.15)
    geometry.update(overrides)
    return make_detection(**geometry)


def closed_mouth():
    return make_detection(openness=0.005, width=0.12)


def test_open_mouth_reads_as_a(pipeline):
    results = [pipeline.process_frame(open_mouth()) for _ in range(10)]

    assert all(r.classification.vowel is Vowel.A for r in results)
    assert results[-1].classification.confidence >= 0.5
    assert results[-1].classification.display_vowel == 'あ'


def test_closing_then_opening(pipeline):
    for _ in range(10):
        result = pipeline.process_frame(closed_mouth())
    assert result.classification.vowel is Vowel.CLOSED
    assert len(pipeline.classifier.history) == 0

    for _ in range(25):
        result = pipeline.process_frame(open_mouth())
    assert result.classification.vowel is Vowel.A
    assert result.metrics.openness == pytest.approx(0.10, rel=1e-3)


def test_face_size_does_not_change_the_reading(pipeline):
    for _ in range(10):
        near = pipeline.process_frame(open_mouth(
            openness=0.15, width=0.225, lip_thickness=0.015, eye_distance=0.3
        ))

    assert near.metrics.scale == pytest.approx(1.5)
    assert near.metrics.openness == pytest.approx(0.10)
    assert near.metrics.width == pytest.approx(0.15)
    assert near.classification.vowel is Vowel.A


def test_every_frame_reaches_sinks_once(pipeline, frame_sink, vowel_sink):
    frames = [open_mouth(), None, open_mouth(), open_mouth(z_spread=0.1), closed_mouth()]

    results = list(pipeline.iter_results(frames))

    assert frame_sink.results == results
    assert [r.face_detected for r in results] == [True, False, True, True, True]
    # No-face and quality-rejected frames are not classified
    assert len(vowel_sink.results) == 3
    assert results[3].metrics is None
    assert results[3].quality.passed is False


def test_face_lost_and_regained(pipeline):
    for _ in range(5):
        pipeline.process_frame(open_mouth())
    lost = [pipeline.process_frame(None) for _ in range(3)]
    regained = pipeline.process_frame(open_mouth())

    assert all(not r.face_detected and r.confidence == 0.0 for r in lost)
    assert regained.face_detected
    assert regained.classification.vowel is Vowel.A


def test_fps_reported_after_one_second(pipeline):
    for _ in range(40):
        result = pipeline.process_frame(open_mouth())

    assert result.fps == 30


@pytest.mark.asyncio
async def test_calibration_while_tracking():
    """Calibrate on a resting mouth fed concurrently, then classify against it"""
    tracker = FramePipeline(
        classifier=VowelClassifier(),
        calibration_manager=CalibrationManager(duration=0.3, sample_interval=0.01, min_samples=5)
    )
    tracker.start()

    async def feed():
        while True:
            tracker.process_frame(make_detection(openness=0.02, width=0.12))
            await asyncio.sleep(0.005)

    feeder = asyncio.ensure_future(feed())
    try:
        baseline = await tracker.start_calibration()
    finally:
        feeder.cancel()
        with pytest.raises(asyncio.CancelledError):
            await feeder

    assert tracker.calibration_manager.state is CalibrationState.COMPLETED
    assert baseline.openness == pytest.approx(0.02, rel=1e-3)
    assert tracker.classifier.get_baseline() is baseline

    # Within 1.3x of the resting openness reads as closed
    result = tracker.process_frame(make_detection(openness=0.02, width=0.12))
    assert result.classification.vowel is Vowel.CLOSED
