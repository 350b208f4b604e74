"""
Batch driver for running decoded frames through an evaluator.

This is the reference pipeline stage around the evaluator contract: it sizes
and owns the buffers, builds the evaluator, groups frames into batches,
reconfigures when the stream geometry changes and hands back per-batch
outputs. It never needs to know which backend it is driving.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np

from evaluators.base import Evaluator, EvaluatorConstructor
from evaluators.buffers import Buffer
from evaluators.errors import ContractViolation
from evaluators.profiler import IntervalSink, Profiler
from models.config import EvaluatorConfig
from models.frame import FRAME_CHANNELS, FrameMetadata


@dataclass
class BatchResult:
    """
    Outputs of one evaluated batch.

    Attributes:
        frame_indices: Stream index of each frame in the batch, in order.
        metadata: Geometry the batch was evaluated with.
        outputs: Output name -> (batch_size, elements) array, row i for frame i.
    """
    frame_indices: List[int]
    metadata: FrameMetadata
    outputs: Dict[str, np.ndarray]

    @property
    def batch_size(self) -> int:
        return len(self.frame_indices)


@dataclass
class DriverStats:
    """Runtime statistics for the driver."""
    frame_count: int = 0
    batch_count: int = 0
    configure_count: int = 0
    start_time: float = field(default_factory=time.time)


def device_configs(constructor: EvaluatorConstructor, config: EvaluatorConfig) -> List[EvaluatorConfig]:
    """One config per device slot the backend offers, differing only in device_id."""
    return [dataclasses.replace(config, device_id=i) for i in range(constructor.get_number_of_devices())]


class BatchDriver:
    """
    Drives one evaluator on one device.

    Example:
        with BatchDriver(constructor, config) as driver:
            for result in driver.run(frames):
                features = result.outputs["prob"]

    Run one driver per device (see device_configs) to use several devices;
    each driver must only be used from one thread.
    """

    def __init__(
        self,
        constructor: EvaluatorConstructor,
        config: EvaluatorConfig,
        profiler: Optional[IntervalSink] = None,
        pixel_format: str = "bgr24",
        output_dtype=np.float32,
    ):
        self._constructor = constructor
        self._config = config
        self._profiler = profiler if profiler is not None else Profiler()
        self._pixel_format = pixel_format
        self._output_dtype = np.dtype(output_dtype)
        self._output_names = constructor.get_output_names()
        self._evaluator: Optional[Evaluator] = None
        self._input_buffer: Optional[Buffer] = None
        self._output_buffers: List[Buffer] = []
        self._configured: Optional[FrameMetadata] = None
        self.stats = DriverStats()

    @property
    def profiler(self) -> IntervalSink:
        return self._profiler

    @property
    def evaluator(self) -> Optional[Evaluator]:
        return self._evaluator

    @property
    def is_open(self) -> bool:
        return self._evaluator is not None

    def open(self) -> None:
        """
        Allocate buffers and build the evaluator.

        Anything already allocated is released again if a later step fails.
        """
        if self.is_open:
            return
        try:
            self._input_buffer = self._constructor.new_input_buffer(self._config)
            self._evaluator = self._constructor.new_evaluator(self._config, profiler=self._profiler)
            self._output_buffers = [
                self._constructor.new_output_buffer(self._config, size)
                for size in self._evaluator.output_sizes
            ]
        except Exception:
            self.close()
            raise
        self.stats = DriverStats()
        self._configured = None
        logging.info(
            f"Driver opened: {type(self._constructor).__name__} device={self._config.device_id} "
            f"max_batch_size={self._config.max_batch_size} outputs={self._output_names}"
        )

    def close(self) -> None:
        """Release buffers and the evaluator. Safe to call multiple times."""
        for buf in self._output_buffers:
            if not buf.released:
                self._constructor.delete_output_buffer(self._config, buf)
        self._output_buffers = []
        if self._input_buffer is not None and not self._input_buffer.released:
            self._constructor.delete_input_buffer(self._config, self._input_buffer)
        self._input_buffer = None
        if self._evaluator is not None:
            self._evaluator.close()
            self._evaluator = None
            logging.info(
                f"Driver closed: frames={self.stats.frame_count} batches={self.stats.batch_count} "
                f"configures={self.stats.configure_count}"
            )

    def __enter__(self) -> "BatchDriver":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def run(self, frames: Iterable[np.ndarray]) -> Iterator[BatchResult]:
        """
        Evaluate frames in batches of up to max_batch_size.

        A batch is cut early when the frame geometry changes, and the final
        batch may be ragged. Yields one BatchResult per evaluated batch.
        """
        if not self.is_open:
            raise RuntimeError("Driver must be open before running")

        pending: List[Tuple[int, np.ndarray]] = []
        metadata: Optional[FrameMetadata] = None
        for index, frame in enumerate(frames):
            frame_metadata = self._frame_metadata(frame)
            if pending and frame_metadata != metadata:
                yield self._evaluate_batch(pending, metadata)
                pending = []
            metadata = frame_metadata
            pending.append((index, frame))
            if len(pending) == self._config.max_batch_size:
                yield self._evaluate_batch(pending, metadata)
                pending = []

        if pending:
            yield self._evaluate_batch(pending, metadata)

    def _frame_metadata(self, frame: np.ndarray) -> FrameMetadata:
        if frame.ndim != 3 or frame.shape[2] != FRAME_CHANNELS or frame.dtype != np.uint8:
            raise ContractViolation(
                f"Frames must be (H, W, {FRAME_CHANNELS}) uint8, got {frame.shape} {frame.dtype}"
            )
        return FrameMetadata.from_numpy(frame, self._pixel_format)

    def _evaluate_batch(self, pending: List[Tuple[int, np.ndarray]], metadata: FrameMetadata) -> BatchResult:
        if metadata != self._configured:
            self._evaluator.configure(metadata)
            self._configured = metadata
            self.stats.configure_count += 1
            logging.info(f"Evaluator configured for {metadata.width}x{metadata.height} {metadata.pixel_format}")

        batch_size = len(pending)
        frame_size = metadata.frame_size
        data = self._input_buffer.data
        for i, (_, frame) in enumerate(pending):
            data[i * frame_size:(i + 1) * frame_size] = np.ascontiguousarray(frame).reshape(-1)

        self._evaluator.evaluate(self._input_buffer, self._output_buffers, batch_size)

        outputs: Dict[str, np.ndarray] = {}
        itemsize = self._output_dtype.itemsize
        for name, size, buf in zip(self._output_names, self._evaluator.output_sizes, self._output_buffers):
            count = batch_size * size // itemsize
            outputs[name] = buf.view(self._output_dtype, count).reshape(batch_size, -1).copy()

        self.stats.frame_count += batch_size
        self.stats.batch_count += 1
        if self.stats.batch_count % 100 == 0:
            elapsed = time.time() - self.stats.start_time
            fps = self.stats.frame_count / elapsed if elapsed > 0 else 0.0
            logging.info(f"Processed {self.stats.frame_count} frames in {self.stats.batch_count} batches ({fps:.1f} fps)")

        return BatchResult(
            frame_indices=[index for index, _ in pending],
            metadata=metadata,
            outputs=outputs,
        )
