"""Calibration Manager

Samples mouth metrics while the user holds a resting, closed mouth and
reduces them to a personal Baseline. A session runs as an asyncio task so
that ``stop_calibration`` can cancel it without leaving a timer behind.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional, Set

import numpy as np

from mouthtrack.config.config_loader import config
from mouthtrack.models.enums import CalibrationState
from mouthtrack.models.features import Baseline, MouthMetrics


logger = logging.getLogger(__name__)


class CalibrationError(Exception):
    """Base exception for calibration failures"""
    pass


class CalibrationInProgressError(CalibrationError):
    """Raised when a session is started while another one is sampling"""
    pass


class InsufficientSamplesError(CalibrationError):
    """Raised when a session ends with fewer valid samples than required"""

    def __init__(self, collected: int, required: int):
        super().__init__(f"Insufficient calibration samples: {collected} < {required}")
        self.collected = collected
        self.required = required


class CalibrationCancelledError(CalibrationError):
    """Raised from a session that was stopped before it finished"""
    pass


MetricsProvider = Callable[[], Optional[MouthMetrics]]
ProgressCallback = Callable[[float, int], None]
CompleteCallback = Callable[[Baseline], None]


def _min_positive(values: List[float]) -> float:
    positive = [v for v in values if v > 0]
    return min(positive) if positive else 0.0


def _max_positive(values: List[float]) -> float:
    positive = [v for v in values if v > 0]
    return max(positive) if positive else 0.0


def compute_baseline(samples: List[Dict[str, float]]) -> Baseline:
    """Reduce calibration samples to a Baseline.

    Minimums are taken over positive values only; the aspect ratio is the
    mean of its positive values.
    """
    aspect_ratios = [s['aspect_ratio'] for s in samples if s['aspect_ratio'] > 0]
    openness = [s['openness'] for s in samples]
    width = [s['width'] for s in samples]

    return Baseline(
        openness=_min_positive(openness),
        width=_min_positive(width),
        aspect_ratio=float(np.mean(aspect_ratios)) if aspect_ratios else 0.0,
        area=_min_positive([s['area'] for s in samples]),
        lip_thickness=_min_positive([s['lip_thickness'] for s in samples]),
        openness_max=_max_positive(openness),
        width_max=_max_positive(width),
        timestamp=time.time(),
    )


class CalibrationManager:
    """Runs calibration sessions and keeps the resulting baseline.

    Attributes:
        duration: Session length in seconds
        sample_interval: Seconds between polls of the metrics provider
        min_samples: Valid samples needed for a baseline
        state: Current session state
    """

    def __init__(
        self,
        duration: Optional[float] = None,
        sample_interval: Optional[float] = None,
        min_samples: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_complete: Optional[CompleteCallback] = None
    ):
        self.duration = duration if duration is not None else config.get('calibration.duration', 3.0)
        self.sample_interval = (
            sample_interval if sample_interval is not None
            else config.get('calibration.sample_interval', 0.1)
        )
        self.min_samples = min_samples if min_samples is not None else config.get('calibration.min_samples', 10)
        self.on_progress = on_progress
        self.on_complete = on_complete

        self.state = CalibrationState.IDLE
        self.samples: List[Dict[str, float]] = []
        self.baseline: Optional[Baseline] = None

        self._task: Optional[asyncio.Task] = None
        # Sessions ended by stop_calibration whose callers have not yet seen it
        self._stopped: Set[asyncio.Task] = set()

        logger.info(
            f"CalibrationManager initialized with duration={self.duration}s, "
            f"interval={self.sample_interval}s, min_samples={self.min_samples}"
        )

    @property
    def is_calibrating(self) -> bool:
        return self.state == CalibrationState.SAMPLING

    async def start_calibration(self, get_metrics: MetricsProvider) -> Baseline:
        """Run one calibration session.

        Args:
            get_metrics: Returns the latest metrics, or None when there are none

        Returns:
            The new baseline

        Raises:
            CalibrationInProgressError: If a session is already sampling
            InsufficientSamplesError: If too few valid samples were collected
            CalibrationCancelledError: If stop_calibration ended the session
        """
        if self.is_calibrating:
            raise CalibrationInProgressError("Calibration is already running")

        samples: List[Dict[str, float]] = []
        self.state = CalibrationState.SAMPLING
        self.samples = samples
        task = asyncio.ensure_future(self._sample(get_metrics, samples))
        self._task = task
        logger.info("Calibration started")

        try:
            await task
        except asyncio.CancelledError:
            if task in self._stopped:
                self._stopped.discard(task)
                raise CalibrationCancelledError("Calibration was stopped")
            if self._task is task:
                self.state = CalibrationState.IDLE
            raise
        except Exception:
            self._stopped.discard(task)
            if self._task is task:
                self.state = CalibrationState.FAILED
            logger.error("Calibration failed while sampling metrics", exc_info=True)
            raise
        finally:
            if self._task is task:
                self._task = None

        # Stopped after sampling finished but before this call resumed
        if task in self._stopped:
            self._stopped.discard(task)
            raise CalibrationCancelledError("Calibration was stopped")

        if len(samples) < self.min_samples:
            self.state = CalibrationState.FAILED
            logger.warning(f"Calibration failed: {len(samples)} of {self.min_samples} samples")
            raise InsufficientSamplesError(len(samples), self.min_samples)

        self.baseline = compute_baseline(samples)
        self.state = CalibrationState.COMPLETED
        logger.info(
            f"Calibration completed with {len(samples)} samples: "
            f"openness={self.baseline.openness:.4f}, width={self.baseline.width:.4f}"
        )

        if self.on_complete is not None:
            self.on_complete(self.baseline)

        return self.baseline

    async def _sample(
        self,
        get_metrics: MetricsProvider,
        samples: List[Dict[str, float]]
    ) -> List[Dict[str, float]]:
        loop = asyncio.get_running_loop()
        start = loop.time()
        end = start + self.duration

        while True:
            await asyncio.sleep(self.sample_interval)

            metrics = get_metrics()
            if metrics is not None and metrics.openness and metrics.width:
                samples.append({
                    'openness': metrics.openness,
                    'width': metrics.width,
                    'aspect_ratio': metrics.aspect_ratio,
                    'area': metrics.area or 0.0,
                    'lip_thickness': metrics.upper_lip_thickness + metrics.lower_lip_thickness,
                })
                if self.on_progress is not None:
                    progress = min((loop.time() - start) / self.duration, 1.0)
                    self.on_progress(progress, len(samples))

            if loop.time() >= end:
                return samples

    def stop_calibration(self) -> None:
        """Abort a running session, discarding its samples"""
        task = self._task
        if task is not None:
            self._task = None
            self._stopped.add(task)
            task.cancel()
            logger.info("Calibration stopped")
        self.samples = []
        self.state = CalibrationState.IDLE

    def get_baseline(self) -> Optional[Baseline]:
        return self.baseline

    def set_baseline(self, baseline: Optional[Baseline]) -> None:
        self.baseline = baseline
