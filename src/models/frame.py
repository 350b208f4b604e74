"""
FrameMetadata model for decoded video frames.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

# Raw frames are interleaved 8-bit color, three bytes per pixel.
FRAME_CHANNELS = 3

PIXEL_FORMATS = ("rgb24", "bgr24")


@dataclass(frozen=True)
class FrameMetadata:
    """
    Geometry and pixel format of the frames currently flowing through a pipeline.

    Attributes:
        width: Frame width in pixels.
        height: Frame height in pixels.
        pixel_format: Channel order of the interleaved bytes ("rgb24" or "bgr24").
    """
    width: int
    height: int
    pixel_format: str = "rgb24"

    def __post_init__(self) -> None:
        if not isinstance(self.width, int) or self.width <= 0:
            raise ValueError(f"width must be a positive integer, got {self.width!r}")
        if not isinstance(self.height, int) or self.height <= 0:
            raise ValueError(f"height must be a positive integer, got {self.height!r}")
        if self.pixel_format not in PIXEL_FORMATS:
            raise ValueError(
                f"pixel_format must be one of: {', '.join(PIXEL_FORMATS)}, got {self.pixel_format!r}"
            )

    @classmethod
    def from_numpy(cls, frame: np.ndarray, pixel_format: str = "bgr24") -> "FrameMetadata":
        """Create FrameMetadata from a decoded (H, W, 3) frame."""
        h, w = frame.shape[:2]
        return cls(width=int(w), height=int(h), pixel_format=pixel_format)

    @property
    def channel_order(self) -> str:
        """Return "rgb" or "bgr"."""
        return self.pixel_format[:3]

    @property
    def frame_size(self) -> int:
        """Bytes occupied by one frame."""
        return self.width * self.height * FRAME_CHANNELS

    @property
    def shape(self) -> Tuple[int, int, int]:
        """Return (height, width, channels)."""
        return (self.height, self.width, FRAME_CHANNELS)

    @property
    def size(self) -> Tuple[int, int]:
        """Return (width, height)."""
        return (self.width, self.height)
