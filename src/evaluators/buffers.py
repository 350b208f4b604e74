"""
Batch buffers exchanged between the driver and evaluators.

A Buffer owns one contiguous block of bytes tagged with the memory space it
lives in. Ownership moves by handing the object around; release is explicit
(or scoped with a ``with`` block) and happens exactly once.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

import numpy as np

from models.config import EvaluatorConfig
from .errors import BufferReleasedError, ResourceExhaustedError

# Written over released storage so stale views read as garbage, never as data.
POISON_BYTE = 0xDD


class DeviceType(str, Enum):
    """Memory space a buffer must live in."""
    CPU = "cpu"
    GPU = "gpu"


class Buffer:
    """
    Raw contiguous byte storage for one batch.

    Example:
        with constructor.new_input_buffer(config) as buf:
            buf.data[: len(frame_bytes)] = frame_bytes
            evaluator.evaluate(buf, outputs, batch_size=1)
    """

    def __init__(
        self,
        size: int,
        device_type: DeviceType = DeviceType.CPU,
        tag: str = "",
        config: Optional[EvaluatorConfig] = None,
    ):
        if size <= 0:
            raise ValueError(f"Buffer size must be positive, got {size}")
        try:
            self._storage: Optional[np.ndarray] = np.empty(size, dtype=np.uint8)
        except MemoryError as e:
            raise ResourceExhaustedError(f"Could not allocate {size} bytes for buffer {tag!r}") from e
        self._size = size
        self._device_type = DeviceType(device_type)
        self._tag = tag
        self._config = config

    @property
    def size(self) -> int:
        """Capacity in bytes."""
        return self._size

    @property
    def device_type(self) -> DeviceType:
        return self._device_type

    @property
    def tag(self) -> str:
        return self._tag

    @property
    def config(self) -> Optional[EvaluatorConfig]:
        """EvaluatorConfig this buffer was allocated for, if a constructor allocated it."""
        return self._config

    @property
    def released(self) -> bool:
        return self._storage is None

    @property
    def data(self) -> np.ndarray:
        """Flat uint8 view over the whole buffer."""
        if self._storage is None:
            raise BufferReleasedError(f"Buffer {self._tag!r} used after release")
        return self._storage

    def view(self, dtype=np.float32, count: int = -1) -> np.ndarray:
        """Reinterpret the leading bytes as `count` elements of `dtype` (-1 = all that fit)."""
        itemsize = np.dtype(dtype).itemsize
        if count < 0:
            count = self._size // itemsize
        return self.data[: count * itemsize].view(dtype)

    def release(self) -> None:
        """
        Poison and drop the storage.

        Raises:
            BufferReleasedError: If the buffer was already released.
        """
        if self._storage is None:
            raise BufferReleasedError(f"Buffer {self._tag!r} released twice")
        self._storage.fill(POISON_BYTE)
        self._storage = None
        logging.debug(f"Released buffer {self._tag!r} ({self._size} bytes, {self._device_type.value})")

    def __enter__(self) -> "Buffer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._storage is not None:
            self.release()

    def __len__(self) -> int:
        return self._size

    def __repr__(self) -> str:
        state = "released" if self.released else "live"
        return f"Buffer(tag={self._tag!r}, size={self._size}, device_type={self._device_type.value}, {state})"
