"""
Evaluator layer for pluggable inference backends.

The driver talks to an EvaluatorConstructor to size buffers and build
evaluators, then to each Evaluator to configure and evaluate batches,
without knowing which backend is behind them.
"""

from .base import Evaluator, EvaluatorConstructor, InputTransformer, InputTransformerFactory
from .buffers import Buffer, DeviceType, POISON_BYTE
from .dnn import DnnEvaluator, EvaluatorState, OpenCVCpuEvaluatorConstructor, OpenCVCudaEvaluatorConstructor
from .errors import (
    BufferReleasedError,
    ConfigurationError,
    ContractViolation,
    EvaluationError,
    EvaluatorError,
    ResourceExhaustedError,
)
from .network import Network, OpenCVDnnNetwork
from .profiler import Interval, IntervalStats, Profiler
from .registry import available_backends, create_constructor, create_constructor_from_config
from .transformer import OpenCVInputTransformer, OpenCVInputTransformerFactory

__all__ = [
    # Interfaces
    "Evaluator",
    "EvaluatorConstructor",
    "InputTransformer",
    "InputTransformerFactory",
    "Network",
    # Buffers
    "Buffer",
    "DeviceType",
    "POISON_BYTE",
    # OpenCV DNN backend
    "DnnEvaluator",
    "EvaluatorState",
    "OpenCVCpuEvaluatorConstructor",
    "OpenCVCudaEvaluatorConstructor",
    "OpenCVDnnNetwork",
    "OpenCVInputTransformer",
    "OpenCVInputTransformerFactory",
    # Profiling
    "Interval",
    "IntervalStats",
    "Profiler",
    # Registry
    "available_backends",
    "create_constructor",
    "create_constructor_from_config",
    # Errors
    "EvaluatorError",
    "ConfigurationError",
    "ContractViolation",
    "BufferReleasedError",
    "ResourceExhaustedError",
    "EvaluationError",
]
