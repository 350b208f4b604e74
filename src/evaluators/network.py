"""
Network handle interface and the OpenCV DNN implementation.

A Network exposes named float32 tensors ("blobs"): the input blob is filled by
an InputTransformer, output blobs are read back after forward().
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from typing import Dict, List, Tuple

import cv2
import numpy as np

from models.config import NetDescriptor
from .buffers import DeviceType
from .errors import ConfigurationError, EvaluationError


class Network(ABC):
    """One loaded network instance with blob access by name."""

    @abstractmethod
    def has_blob(self, name: str) -> bool:
        ...

    @abstractmethod
    def blob(self, name: str) -> np.ndarray:
        """
        Current tensor for `name`. Input blobs are writable in place.

        Raises:
            KeyError: If the network has no blob with that name.
        """

    @abstractmethod
    def reshape(self, name: str, shape: Tuple[int, ...]) -> None:
        """Reallocate input blob `name` with a new shape."""

    @abstractmethod
    def forward(self) -> None:
        """
        Run the forward pass over the current input blobs.

        Raises:
            EvaluationError: If the backend fails.
        """

    def close(self) -> None:
        pass


def _preferable(device_type: DeviceType, half_precision: bool) -> Tuple[int, int]:
    if device_type == DeviceType.GPU:
        target = cv2.dnn.DNN_TARGET_CUDA_FP16 if half_precision else cv2.dnn.DNN_TARGET_CUDA
        return cv2.dnn.DNN_BACKEND_CUDA, target
    return cv2.dnn.DNN_BACKEND_OPENCV, cv2.dnn.DNN_TARGET_CPU


class OpenCVDnnNetwork(Network):
    """
    Network backed by cv2.dnn.

    The compute backend/target is set on this instance only, so evaluators on
    different devices never share mode state. GPU instances select their
    device again before each forward pass, so the network can be built on one
    thread and driven from another. Input tensors are host numpy
    arrays; cv2.dnn performs any device transfer itself.

    Output shapes are discovered with a single-frame probe pass at load time.
    """

    def __init__(
        self,
        descriptor: NetDescriptor,
        device_type: DeviceType = DeviceType.CPU,
        device_id: int = 0,
        half_precision: bool = False,
    ):
        for path in (descriptor.model_path, descriptor.weights_path):
            if not os.path.exists(path):
                raise ConfigurationError(f"Network artifact not found: {path}")

        try:
            if device_type == DeviceType.GPU:
                cv2.cuda.setDevice(device_id)
            net = cv2.dnn.readNet(descriptor.weights_path, descriptor.model_path)
        except cv2.error as e:
            raise ConfigurationError(f"Failed to load network {descriptor.model_path}: {e}") from e
        if net.empty():
            raise ConfigurationError(f"Network {descriptor.model_path} loaded with no layers")

        backend, target = _preferable(device_type, half_precision)
        net.setPreferableBackend(backend)
        net.setPreferableTarget(target)

        self._net = net
        self._device_type = device_type
        self._device_id = device_id
        self._output_names: List[str] = list(descriptor.output_layer_names)
        self._inputs: Dict[str, np.ndarray] = {
            descriptor.input_layer_name: np.zeros((1,) + descriptor.input_shape, dtype=np.float32),
        }
        self._outputs: Dict[str, np.ndarray] = {}

        try:
            self.forward()
        except EvaluationError as e:
            raise ConfigurationError(
                f"Network {descriptor.model_path} rejected bindings "
                f"input={descriptor.input_layer_name!r} outputs={self._output_names}: {e}"
            ) from e

        shapes = {name: tuple(out.shape) for name, out in self._outputs.items()}
        logging.info(
            f"Loaded network {os.path.basename(descriptor.model_path)} "
            f"device={device_type.value}:{device_id} outputs={shapes}"
        )

    def has_blob(self, name: str) -> bool:
        return name in self._inputs or name in self._outputs

    def blob(self, name: str) -> np.ndarray:
        if name in self._inputs:
            return self._inputs[name]
        if name in self._outputs:
            return self._outputs[name]
        raise KeyError(name)

    def reshape(self, name: str, shape: Tuple[int, ...]) -> None:
        if name not in self._inputs:
            raise KeyError(name)
        self._inputs[name] = np.zeros(shape, dtype=np.float32)

    def forward(self) -> None:
        if self._net is None:
            raise EvaluationError("Network has been closed")
        try:
            # The current CUDA device is per host thread; rebind on every call.
            if self._device_type == DeviceType.GPU:
                cv2.cuda.setDevice(self._device_id)
            for name, tensor in self._inputs.items():
                self._net.setInput(tensor, name)
            outs = self._net.forward(self._output_names)
        except cv2.error as e:
            raise EvaluationError(f"Forward pass failed: {e}") from e
        self._outputs = {
            name: np.ascontiguousarray(out, dtype=np.float32)
            for name, out in zip(self._output_names, outs)
        }

    def close(self) -> None:
        self._net = None
        self._outputs = {}
