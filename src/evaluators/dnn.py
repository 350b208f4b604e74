"""
OpenCV DNN evaluators.

DnnEvaluator runs batched forward passes over one Network instance. The two
constructors describe the CPU and CUDA variants of the backend; each
evaluator carries its own device mode, fixed at construction.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import List, Optional, Sequence

import cv2
import numpy as np

from models.config import EvaluatorConfig, NetDescriptor
from models.frame import FrameMetadata
from .base import Evaluator, EvaluatorConstructor, InputTransformer, InputTransformerFactory
from .buffers import Buffer, DeviceType
from .errors import BufferReleasedError, ConfigurationError, ContractViolation, EvaluationError
from .network import Network, OpenCVDnnNetwork
from .profiler import IntervalSink, Profiler, now
from .transformer import OpenCVInputTransformerFactory


class EvaluatorState(str, Enum):
    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"
    FAILED = "failed"
    CLOSED = "closed"


class DnnEvaluator(Evaluator):
    """
    Evaluator over a named-blob Network.

    Example:
        evaluator = constructor.new_evaluator(config)
        evaluator.configure(FrameMetadata(width=640, height=480))
        evaluator.evaluate(input_buffer, output_buffers, batch_size=4)
    """

    profile_prefix = "dnn"

    def __init__(
        self,
        config: EvaluatorConfig,
        descriptor: NetDescriptor,
        transformer: InputTransformer,
        network: Network,
        device_type: DeviceType = DeviceType.CPU,
        device_id: int = 0,
        profiler: Optional[IntervalSink] = None,
        input_buffer_type: DeviceType = DeviceType.CPU,
        output_buffer_type: DeviceType = DeviceType.CPU,
    ):
        self._config = config
        self._descriptor = descriptor
        self._transformer = transformer
        self._net: Optional[Network] = network
        self._device_type = device_type
        self._device_id = device_id
        self._profiler = profiler if profiler is not None else Profiler()
        self._input_buffer_type = input_buffer_type
        self._output_buffer_type = output_buffer_type
        self._metadata: Optional[FrameMetadata] = None
        self._state = EvaluatorState.UNCONFIGURED

        # Output blobs we will extract evaluation results from
        self._output_sizes: List[int] = []
        for name in descriptor.output_layer_names:
            if not network.has_blob(name):
                raise ConfigurationError(f"Network has no output blob named {name!r}")
            out = network.blob(name)
            self._output_sizes.append(int(np.prod(out.shape[1:], dtype=np.int64)) * out.itemsize)

    @property
    def device_type(self) -> DeviceType:
        return self._device_type

    @property
    def device_id(self) -> int:
        return self._device_id

    @property
    def output_sizes(self) -> List[int]:
        return list(self._output_sizes)

    @property
    def state(self) -> EvaluatorState:
        return self._state

    @property
    def metadata(self) -> Optional[FrameMetadata]:
        return self._metadata

    @property
    def profiler(self) -> IntervalSink:
        return self._profiler

    @property
    def batch_capacity(self) -> int:
        """Current batch dimension of the network input tensor."""
        self._require_usable()
        return int(self._net.blob(self._descriptor.input_layer_name).shape[0])

    def configure(self, metadata: FrameMetadata) -> None:
        self._require_usable()
        cfg = self._config
        if metadata.width > cfg.max_frame_width or metadata.height > cfg.max_frame_height:
            raise ContractViolation(
                f"Frame {metadata.width}x{metadata.height} exceeds configured maximum "
                f"{cfg.max_frame_width}x{cfg.max_frame_height}"
            )

        input_name = self._descriptor.input_layer_name
        if not self._net.has_blob(input_name):
            self._state = EvaluatorState.FAILED
            logging.error(f"Network has no input blob named {input_name!r}; evaluator disabled")
            raise ConfigurationError(f"Network has no input blob named {input_name!r}")

        shape = tuple(self._net.blob(input_name).shape)
        if len(shape) != 4:
            self._state = EvaluatorState.FAILED
            raise ConfigurationError(f"Input blob {input_name!r} has shape {shape}, expected NCHW")

        # Dimensions of network input image
        _, channels, net_height, net_width = shape
        if shape[0] != cfg.max_batch_size:
            self._net.reshape(input_name, (cfg.max_batch_size, channels, net_height, net_width))
            logging.debug(f"Reshaped {input_name!r} from batch {shape[0]} to {cfg.max_batch_size}")

        if metadata != self._metadata:
            self._transformer.configure(metadata)
            self._metadata = metadata
        self._state = EvaluatorState.CONFIGURED

    def evaluate(self, input_buffer: Buffer, output_buffers: Sequence[Buffer], batch_size: int) -> None:
        self._require_usable()
        if self._state != EvaluatorState.CONFIGURED:
            raise ContractViolation("evaluate() called before configure()")
        if isinstance(batch_size, bool) or not isinstance(batch_size, (int, np.integer)):
            raise ContractViolation(f"batch_size must be an integer, got {batch_size!r}")
        if not 0 < batch_size <= self._config.max_batch_size:
            raise ContractViolation(
                f"batch_size {batch_size} outside 1..{self._config.max_batch_size}"
            )
        batch_size = int(batch_size)

        frame_size = self._metadata.frame_size
        self._check_buffer(input_buffer, self._input_buffer_type, batch_size * frame_size, "input")
        if len(output_buffers) != len(self._output_sizes):
            raise ContractViolation(
                f"Expected {len(self._output_sizes)} output buffers "
                f"({list(self._descriptor.output_layer_names)}), got {len(output_buffers)}"
            )
        for name, size, buf in zip(self._descriptor.output_layer_names, self._output_sizes, output_buffers):
            self._check_buffer(buf, self._output_buffer_type, batch_size * size, f"output {name!r}")

        input_name = self._descriptor.input_layer_name
        input_blob = self._net.blob(input_name)
        if input_blob.shape[0] != batch_size:
            self._net.reshape(input_name, (batch_size,) + tuple(input_blob.shape[1:]))
            input_blob = self._net.blob(input_name)

        # Process batch of frames
        start = now()
        self._transformer.transform_input(input_buffer.data[: batch_size * frame_size], input_blob, batch_size)
        self._profiler.add_interval(f"{self.profile_prefix}:transform_input", start, now())

        # Compute features
        start = now()
        self._net.forward()
        self._profiler.add_interval(f"{self.profile_prefix}:net", start, now())

        # Save batch of frames
        for name, size, buf in zip(self._descriptor.output_layer_names, self._output_sizes, output_buffers):
            nbytes = batch_size * size
            flat = np.ascontiguousarray(self._net.blob(name)).reshape(-1).view(np.uint8)
            if flat.size < nbytes:
                raise EvaluationError(f"Output {name!r} produced {flat.size} bytes, expected {nbytes}")
            buf.data[:nbytes] = flat[:nbytes]

    def close(self) -> None:
        if self._net is not None:
            self._net.close()
            self._net = None
        self._state = EvaluatorState.CLOSED

    def _require_usable(self) -> None:
        if self._state == EvaluatorState.CLOSED:
            raise ContractViolation("Evaluator has been closed")
        if self._state == EvaluatorState.FAILED:
            raise ConfigurationError("Evaluator failed configuration and cannot be used")

    @staticmethod
    def _check_buffer(buf: Buffer, kind: DeviceType, needed: int, role: str) -> None:
        if not isinstance(buf, Buffer):
            raise ContractViolation(f"{role} must be a Buffer, got {type(buf).__name__}")
        if buf.released:
            raise BufferReleasedError(f"{role} buffer used after release")
        if buf.device_type != kind:
            raise ContractViolation(f"{role} buffer lives on {buf.device_type.value}, expected {kind.value}")
        if buf.size < needed:
            raise ContractViolation(f"{role} buffer holds {buf.size} bytes, batch needs {needed}")


def _build_evaluator(
    constructor: EvaluatorConstructor,
    config: EvaluatorConfig,
    device_type: DeviceType,
    profiler: Optional[IntervalSink],
    half_precision: bool = False,
) -> DnnEvaluator:
    descriptor = constructor.net_descriptor
    transformer = constructor.transformer_factory.construct(config, descriptor)
    network = OpenCVDnnNetwork(descriptor, device_type, config.device_id, half_precision=half_precision)
    return DnnEvaluator(
        config,
        descriptor,
        transformer,
        network,
        device_type=device_type,
        device_id=config.device_id,
        profiler=profiler,
        input_buffer_type=constructor.get_input_buffer_type(),
        output_buffer_type=constructor.get_output_buffer_type(),
    )


class OpenCVCpuEvaluatorConstructor(EvaluatorConstructor):
    """Single-slot CPU backend; buffers live in host memory."""

    def __init__(
        self,
        net_descriptor: NetDescriptor,
        transformer_factory: Optional[InputTransformerFactory] = None,
    ):
        super().__init__(net_descriptor, transformer_factory or OpenCVInputTransformerFactory())

    def get_number_of_devices(self) -> int:
        return 1

    def get_input_buffer_type(self) -> DeviceType:
        return DeviceType.CPU

    def get_output_buffer_type(self) -> DeviceType:
        return DeviceType.CPU

    def new_evaluator(self, config: EvaluatorConfig, profiler: Optional[IntervalSink] = None) -> DnnEvaluator:
        self._check_device(config)
        return _build_evaluator(self, config, DeviceType.CPU, profiler)


class OpenCVCudaEvaluatorConstructor(EvaluatorConstructor):
    """
    One slot per CUDA device visible to OpenCV.

    cv2.dnn copies host tensors to the device itself, so buffers are staged
    in host memory.
    """

    def __init__(
        self,
        net_descriptor: NetDescriptor,
        transformer_factory: Optional[InputTransformerFactory] = None,
        half_precision: bool = False,
    ):
        super().__init__(net_descriptor, transformer_factory or OpenCVInputTransformerFactory())
        self._half_precision = half_precision

    def get_number_of_devices(self) -> int:
        try:
            return int(cv2.cuda.getCudaEnabledDeviceCount())
        except cv2.error:
            return 0

    def get_input_buffer_type(self) -> DeviceType:
        return DeviceType.CPU

    def get_output_buffer_type(self) -> DeviceType:
        return DeviceType.CPU

    def new_evaluator(self, config: EvaluatorConfig, profiler: Optional[IntervalSink] = None) -> DnnEvaluator:
        self._check_device(config)
        return _build_evaluator(self, config, DeviceType.GPU, profiler, half_precision=self._half_precision)
