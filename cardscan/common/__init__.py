"""Shared types and errors for the card scanning pipeline."""

from .errors import (
    DegenerateGeometryError,
    ErrorCode,
    FailureReason,
    OCREngineError,
    PipelineError,
)
from .types import Err, ImageBuffer, Ok, Point, Result

__all__ = [
    "DegenerateGeometryError",
    "Err",
    "ErrorCode",
    "FailureReason",
    "ImageBuffer",
    "OCREngineError",
    "Ok",
    "PipelineError",
    "Point",
    "Result",
]
