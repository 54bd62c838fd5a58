"""Per-frame tracking pipeline"""

from mouthtrack.tracking.frame_pipeline import FramePipeline, MouthTracker, PipelineError, assess_quality
from mouthtrack.tracking.events import EventHook, LoggingEventHook

__all__ = [
    'FramePipeline',
    'MouthTracker',
    'PipelineError',
    'assess_quality',
    'EventHook',
    'LoggingEventHook',
]
