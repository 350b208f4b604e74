"""
Evaluator interfaces for pluggable inference backends.

This defines the contract every backend implements so the pipeline driver
can stay backend-agnostic:
- InputTransformer: raw frame bytes -> network input tensor
- Evaluator: one network instance bound to one device
- EvaluatorConstructor: backend capabilities, evaluator and buffer lifetimes
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import numpy as np

from models.config import EvaluatorConfig, NetDescriptor
from models.frame import FrameMetadata
from .buffers import Buffer, DeviceType
from .errors import BufferReleasedError, ContractViolation
from .profiler import IntervalSink


class InputTransformer(ABC):
    """
    Converts raw interleaved frames into the numeric layout a network expects.

    Implementations must be deterministic and write only into `target`.
    """

    @abstractmethod
    def configure(self, metadata: FrameMetadata) -> None:
        """Precompute per-geometry resize/normalization parameters."""

    @abstractmethod
    def transform_input(self, raw: np.ndarray, target: np.ndarray, batch_size: int) -> None:
        """
        Fill target[:batch_size] from the first batch_size frames of raw.

        Args:
            raw: Flat uint8 array of consecutive frames.
            target: Network input tensor, float32 NCHW.
            batch_size: Frames to transform; never read past this many frames of raw.
        """


class InputTransformerFactory(ABC):
    """Builds one private transformer per evaluator."""

    @abstractmethod
    def construct(self, config: EvaluatorConfig, descriptor: NetDescriptor) -> InputTransformer:
        ...


class Evaluator(ABC):
    """
    One backend network instance bound to one device.

    Lifecycle:
        1. Built by an EvaluatorConstructor (device mode fixed here)
        2. configure(metadata) once per distinct frame geometry
        3. evaluate(...) repeatedly; batch size may vary call to call
        4. close() from any state

    Not reentrant: each instance must be driven by one thread at a time.
    """

    @property
    @abstractmethod
    def device_type(self) -> DeviceType:
        ...

    @property
    @abstractmethod
    def device_id(self) -> int:
        ...

    @property
    @abstractmethod
    def output_sizes(self) -> List[int]:
        """Per-frame byte size of each output, in declaration order."""

    @abstractmethod
    def configure(self, metadata: FrameMetadata) -> None:
        """
        Inform the evaluator of the current frame geometry.

        Raises:
            ConfigurationError: If the network has no input binding for the descriptor.
        """

    @abstractmethod
    def evaluate(self, input_buffer: Buffer, output_buffers: Sequence[Buffer], batch_size: int) -> None:
        """
        Run one batch.

        Writes batch_size records into each output buffer, frame i of the
        output matching frame i of the input.

        Raises:
            ContractViolation: On any precondition failure.
            EvaluationError: If the forward pass fails.
        """

    def close(self) -> None:
        """Release the network instance. Safe to call multiple times."""

    def __enter__(self) -> "Evaluator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class EvaluatorConstructor(ABC):
    """
    Capability descriptor and factory for one backend type.

    Queries are cheap and never load a network, so the driver can size
    buffers before any heavyweight construction happens.
    """

    def __init__(self, net_descriptor: NetDescriptor, transformer_factory: InputTransformerFactory):
        self._net_descriptor = net_descriptor
        self._transformer_factory = transformer_factory

    @property
    def net_descriptor(self) -> NetDescriptor:
        return self._net_descriptor

    @property
    def transformer_factory(self) -> InputTransformerFactory:
        return self._transformer_factory

    @abstractmethod
    def get_number_of_devices(self) -> int:
        """Independent device slots this backend can drive concurrently."""

    @abstractmethod
    def get_input_buffer_type(self) -> DeviceType:
        ...

    @abstractmethod
    def get_output_buffer_type(self) -> DeviceType:
        ...

    def get_number_of_outputs(self) -> int:
        return len(self._net_descriptor.output_layer_names)

    def get_output_names(self) -> List[str]:
        return list(self._net_descriptor.output_layer_names)

    def new_input_buffer(self, config: EvaluatorConfig) -> Buffer:
        """Allocate max_batch_size frames of max_frame_width x max_frame_height x 3 bytes."""
        return Buffer(config.input_buffer_size, self.get_input_buffer_type(), tag="input", config=config)

    def new_output_buffer(self, config: EvaluatorConfig, output_size: int) -> Buffer:
        """Allocate max_batch_size records of output_size bytes."""
        if output_size <= 0:
            raise ContractViolation(f"output_size must be positive, got {output_size}")
        return Buffer(
            config.max_batch_size * output_size, self.get_output_buffer_type(), tag="output", config=config
        )

    def delete_input_buffer(self, config: EvaluatorConfig, buffer: Buffer) -> None:
        self._release(config, buffer, self.get_input_buffer_type(), config.input_buffer_size, "input")

    def delete_output_buffer(self, config: EvaluatorConfig, buffer: Buffer) -> None:
        """
        Release an output buffer.

        Buffers from new_output_buffer must be deleted with the config they were
        allocated for. Foreign buffers only get a size check, since the per-frame
        output size is not known here.
        """
        if buffer.size % config.max_batch_size != 0:
            raise ContractViolation(
                f"Output buffer of {buffer.size} bytes was not allocated for max_batch_size={config.max_batch_size}"
            )
        self._release(config, buffer, self.get_output_buffer_type(), None, "output")

    def _release(
        self,
        config: EvaluatorConfig,
        buffer: Buffer,
        kind: DeviceType,
        expected_size: Optional[int],
        role: str,
    ) -> None:
        if buffer.released:
            raise BufferReleasedError(f"{role} buffer released twice")
        if buffer.config is not None and buffer.config != config:
            raise ContractViolation(f"{role} buffer was allocated for {buffer.config}, not {config}")
        if buffer.device_type != kind:
            raise ContractViolation(f"{role} buffer lives on {buffer.device_type.value}, expected {kind.value}")
        if expected_size is not None and buffer.size != expected_size:
            raise ContractViolation(
                f"{role} buffer of {buffer.size} bytes does not match config ({expected_size} bytes)"
            )
        buffer.release()

    def _check_device(self, config: EvaluatorConfig) -> None:
        devices = self.get_number_of_devices()
        if config.device_id >= devices:
            raise ContractViolation(
                f"device_id {config.device_id} out of range for {type(self).__name__} ({devices} device(s))"
            )

    @abstractmethod
    def new_evaluator(self, config: EvaluatorConfig, profiler: Optional[IntervalSink] = None) -> Evaluator:
        """
        Build a fresh evaluator (and its private transformer) on config.device_id.

        Raises:
            ContractViolation: If the device id is out of range.
            ConfigurationError: If the network artifacts cannot be loaded.
        """

    def describe(self) -> str:
        d = self._net_descriptor
        return (
            f"{type(self).__name__}: devices={self.get_number_of_devices()} "
            f"input={self.get_input_buffer_type().value} output={self.get_output_buffer_type().value} "
            f"outputs={self.get_output_names()} net={d.model_path}"
        )
