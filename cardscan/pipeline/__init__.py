"""
Scanning pipeline: orchestrator, live camera loop and CLI.

Example:
    >>> from cardscan.pipeline import PipelineOrchestrator, ProcessingOptions
    >>> async with PipelineOrchestrator() as orchestrator:
    ...     result = await orchestrator.process(image, ProcessingOptions(enable_crop=True))
"""

from cardscan.pipeline.live_scan import CameraFrameSource, FrameSource, LiveScanner
from cardscan.pipeline.orchestrator import PipelineOrchestrator
from cardscan.pipeline.types import (
    AppliedTransforms,
    PipelineResult,
    PipelineState,
    ProcessedImages,
    ProcessingOptions,
    StageResult,
)

__all__ = [
    "AppliedTransforms",
    "CameraFrameSource",
    "FrameSource",
    "LiveScanner",
    "PipelineOrchestrator",
    "PipelineResult",
    "PipelineState",
    "ProcessedImages",
    "ProcessingOptions",
    "StageResult",
]
