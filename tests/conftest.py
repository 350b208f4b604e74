"""
Pytest configuration and shared fixtures.
"""

import logging
import os
import sys

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from evaluators.dnn import DnnEvaluator, OpenCVCpuEvaluatorConstructor  # noqa: E402
from evaluators.profiler import Profiler  # noqa: E402
from evaluators.transformer import OpenCVInputTransformer  # noqa: E402
from models.config import EvaluatorConfig, NetDescriptor  # noqa: E402
from models.frame import FrameMetadata  # noqa: E402

from fakes import FakeNetwork  # noqa: E402


@pytest.fixture
def net_descriptor():
    """224x224 BGR network with one 1000-way output."""
    return NetDescriptor(
        model_path="deploy.prototxt",
        weights_path="weights.caffemodel",
        input_layer_name="data",
        output_layer_names=("prob",),
        input_width=224,
        input_height=224,
    )


@pytest.fixture
def two_output_descriptor():
    return NetDescriptor(
        model_path="deploy.prototxt",
        weights_path="weights.caffemodel",
        input_layer_name="data",
        output_layer_names=("prob", "fc7"),
        input_width=224,
        input_height=224,
    )


@pytest.fixture
def evaluator_config():
    return EvaluatorConfig(max_batch_size=4, max_frame_width=224, max_frame_height=224)


@pytest.fixture
def metadata():
    return FrameMetadata(width=224, height=224, pixel_format="bgr24")


@pytest.fixture
def make_evaluator(evaluator_config, net_descriptor):
    """Build a DnnEvaluator over a FakeNetwork; returns (evaluator, network, profiler)."""

    def _make(config=None, descriptor=None, network=None):
        config = config or evaluator_config
        descriptor = descriptor or net_descriptor
        if network is None:
            network = FakeNetwork(
                input_name=descriptor.input_layer_name,
                input_shape=descriptor.input_shape,
                outputs={name: 1000 if i == 0 else 16 for i, name in enumerate(descriptor.output_layer_names)},
            )
        profiler = Profiler()
        evaluator = DnnEvaluator(
            config,
            descriptor,
            OpenCVInputTransformer(descriptor),
            network,
            profiler=profiler,
        )
        return evaluator, network, profiler

    return _make


@pytest.fixture
def fake_cpu_constructor(monkeypatch, two_output_descriptor):
    """CPU constructor whose evaluators load a FakeNetwork instead of cv2.dnn."""
    loaded = []

    def _fake_network(descriptor, device_type, device_id, half_precision=False):
        network = FakeNetwork(
            input_name=descriptor.input_layer_name,
            input_shape=descriptor.input_shape,
            outputs={"prob": 1000, "fc7": 16},
        )
        loaded.append((network, device_type, device_id))
        return network

    monkeypatch.setattr("evaluators.dnn.OpenCVDnnNetwork", _fake_network)
    constructor = OpenCVCpuEvaluatorConstructor(two_output_descriptor)
    constructor.loaded_networks = loaded
    return constructor



@pytest.fixture
def restore_root_logger():
    """Undo setup_logging() handler changes after a test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers = handlers
    root.setLevel(level)
