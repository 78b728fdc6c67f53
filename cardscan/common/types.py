"""
Common type definitions for the card scanning pipeline.

This module provides Pydantic-based type definitions for the data structures
shared by every stage: input images and 2D points, plus the ``Ok``/``Err``
result wrappers returned by the orchestrator.

These types provide:
- Validation of caller supplied images before any processing starts
- Immutable point geometry shared between detection and rectification
- Integration with numpy arrays and OpenCV
"""

import math
from dataclasses import dataclass
from typing import Generic, Tuple, TypeVar, Union

import numpy as np
from pydantic import BaseModel, Field, field_validator

T = TypeVar("T")
E = TypeVar("E")


class ImageBuffer(BaseModel):
    """
    Type-safe wrapper for image arrays (numpy.ndarray).

    Used at the pipeline entry point to reject inputs that OpenCV cannot
    process (wrong rank, wrong channel count, wrong dtype).

    Attributes:
        data: The underlying numpy array containing image data.
            Shape: (H, W, C) for color images, (H, W) for grayscale.
            Dtype: uint8 (0-255).

    Example:
        >>> import cv2
        >>> image = cv2.imread("card.jpg")
        >>> buffer = ImageBuffer(data=image)
        >>> print(buffer.height, buffer.width)  # 720, 1280
    """

    data: np.ndarray = Field(..., description="Image data as numpy array")

    model_config = {"arbitrary_types_allowed": True}

    @field_validator("data")
    @classmethod
    def _validate_image(cls, v: np.ndarray) -> np.ndarray:
        """
        Validate that the numpy array is a valid image.

        Raises:
            ValueError: If array is not a valid image format.
        """
        if not isinstance(v, np.ndarray):
            raise ValueError(f"Expected numpy.ndarray, got {type(v)}")

        if v.size == 0:
            raise ValueError("Image array is empty")

        if len(v.shape) not in (2, 3):
            raise ValueError(
                f"Expected 2D (grayscale) or 3D (color) image, got shape {v.shape}"
            )

        if len(v.shape) == 3 and v.shape[2] not in (1, 3, 4):
            raise ValueError(
                f"Expected 1, 3, or 4 channels for color image, got {v.shape[2]}"
            )

        if v.dtype != np.uint8:
            raise ValueError(
                f"Expected uint8 dtype for image, got {v.dtype}. "
                "Images should be in range [0, 255]"
            )

        return v

    @property
    def shape(self) -> Tuple[int, ...]:
        """Get image shape (H, W) or (H, W, C)."""
        return self.data.shape

    @property
    def height(self) -> int:
        """Get image height in pixels."""
        return int(self.data.shape[0])

    @property
    def width(self) -> int:
        """Get image width in pixels."""
        return int(self.data.shape[1])

    @property
    def channels(self) -> int:
        """Get number of channels (1 for grayscale, 3 for BGR, 4 for BGRA)."""
        if len(self.data.shape) == 2:
            return 1
        return int(self.data.shape[2])

    def to_bgr(self) -> np.ndarray:
        """Return a 3-channel BGR view of the image (copy when converting)."""
        import cv2

        if self.channels == 1:
            return cv2.cvtColor(self.data.reshape(self.height, self.width), cv2.COLOR_GRAY2BGR)
        if self.channels == 4:
            return cv2.cvtColor(self.data, cv2.COLOR_BGRA2BGR)
        return self.data

    def __repr__(self) -> str:
        return f"ImageBuffer(shape={self.shape}, dtype={self.data.dtype})"


class Point(BaseModel):
    """
    Immutable 2D point with float coordinates.

    Computed geometry (line intersections, quad corners) keeps sub-pixel
    precision; use :meth:`to_tuple` when drawing with OpenCV.

    Example:
        >>> p = Point(x=100.4, y=200.6)
        >>> p.to_tuple()
        (100, 201)
    """

    x: float = Field(..., description="X-coordinate (horizontal)")
    y: float = Field(..., description="Y-coordinate (vertical)")

    model_config = {"frozen": True}

    @classmethod
    def from_numpy(cls, arr: np.ndarray) -> "Point":
        """
        Create Point from numpy array of shape (2,).

        Raises:
            ValueError: If array shape is not (2,).
        """
        arr = np.asarray(arr)
        if arr.shape != (2,):
            raise ValueError(f"Expected array of shape (2,), got {arr.shape}")
        return cls(x=float(arr[0]), y=float(arr[1]))

    def to_numpy(self, dtype: type = np.float32) -> np.ndarray:
        return np.array([self.x, self.y], dtype=dtype)

    def to_tuple(self) -> Tuple[int, int]:
        """Integer pixel coordinates for drawing."""
        return (int(round(self.x)), int(round(self.y)))

    def distance_to(self, other: "Point") -> float:
        """Euclidean distance to another point."""
        return math.hypot(self.x - other.x, self.y - other.y)

    def scaled(self, factor: float) -> "Point":
        return Point(x=self.x * factor, y=self.y * factor)


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err(Generic[E]):
    """Failed outcome carrying an error payload."""

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self):
        """
        Raises:
            ValueError: Always, since an Err holds no value.
        """
        raise ValueError(f"Called unwrap() on Err: {self.error}")


Result = Union[Ok[T], Err[E]]
