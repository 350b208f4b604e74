"""
OpenCV input transformer.

Turns interleaved 8-bit frames into the float32 NCHW tensor a network
expects: channel swap, resize, mean subtraction and scaling.
"""

from __future__ import annotations

from typing import Optional

import cv2
import numpy as np

from models.config import EvaluatorConfig, NetDescriptor
from models.frame import FRAME_CHANNELS, FrameMetadata
from .base import InputTransformer, InputTransformerFactory
from .errors import ConfigurationError, ContractViolation


class OpenCVInputTransformer(InputTransformer):
    def __init__(self, descriptor: NetDescriptor, interpolation: int = cv2.INTER_LINEAR):
        if descriptor.input_channels != FRAME_CHANNELS:
            raise ConfigurationError(
                f"OpenCVInputTransformer needs a {FRAME_CHANNELS}-channel network input, "
                f"descriptor declares {descriptor.input_channels}"
            )
        self._descriptor = descriptor
        self._interpolation = interpolation
        self._mean = np.asarray(descriptor.mean_colors, dtype=np.float32)
        self._scale = np.float32(descriptor.input_scale)
        self._metadata: Optional[FrameMetadata] = None
        self._swap_rb = False
        self._resize = False

    @property
    def metadata(self) -> Optional[FrameMetadata]:
        return self._metadata

    def configure(self, metadata: FrameMetadata) -> None:
        d = self._descriptor
        self._metadata = metadata
        self._swap_rb = metadata.channel_order != d.channel_order
        self._resize = metadata.size != (d.input_width, d.input_height)

    def transform_input(self, raw: np.ndarray, target: np.ndarray, batch_size: int) -> None:
        if self._metadata is None:
            raise ContractViolation("transform_input() called before configure()")

        d = self._descriptor
        frame_size = self._metadata.frame_size
        if raw.size < batch_size * frame_size:
            raise ContractViolation(
                f"Raw buffer holds {raw.size} bytes, batch of {batch_size} needs {batch_size * frame_size}"
            )
        if target.shape[0] < batch_size or tuple(target.shape[1:]) != d.input_shape:
            raise ContractViolation(
                f"Target tensor {tuple(target.shape)} cannot hold {batch_size} x {d.input_shape}"
            )

        frames = raw[: batch_size * frame_size].reshape((batch_size,) + self._metadata.shape)
        for i in range(batch_size):
            img = frames[i]
            if self._resize:
                img = cv2.resize(img, (d.input_width, d.input_height), interpolation=self._interpolation)
            if self._swap_rb:
                img = img[:, :, ::-1]
            img = img.astype(np.float32)
            img -= self._mean
            img *= self._scale
            target[i] = img.transpose(2, 0, 1)


class OpenCVInputTransformerFactory(InputTransformerFactory):
    def __init__(self, interpolation: int = cv2.INTER_LINEAR):
        self._interpolation = interpolation

    def construct(self, config: EvaluatorConfig, descriptor: NetDescriptor) -> OpenCVInputTransformer:
        return OpenCVInputTransformer(descriptor, interpolation=self._interpolation)
