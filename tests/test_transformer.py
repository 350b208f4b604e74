"""
Tests for the OpenCV input transformer.
"""

import numpy as np
import pytest

from evaluators.errors import ConfigurationError, ContractViolation
from evaluators.transformer import OpenCVInputTransformer, OpenCVInputTransformerFactory
from models.config import EvaluatorConfig, NetDescriptor
from models.frame import FrameMetadata


def _descriptor(**overrides):
    fields = dict(
        model_path="deploy.prototxt",
        weights_path="weights.caffemodel",
        input_layer_name="data",
        output_layer_names=("prob",),
        input_width=4,
        input_height=2,
    )
    fields.update(overrides)
    return NetDescriptor(**fields)


def _frames(metadata, pixels):
    """Flatten a list of (H, W, 3) uint8 frames into one raw byte array."""
    raw = np.concatenate([np.asarray(p, dtype=np.uint8).reshape(-1) for p in pixels])
    assert raw.size == len(pixels) * metadata.frame_size
    return raw


class TestOpenCVInputTransformer:
    def test_same_geometry_copies_into_nchw(self):
        transformer = OpenCVInputTransformer(_descriptor())
        metadata = FrameMetadata(width=4, height=2, pixel_format="bgr24")
        transformer.configure(metadata)
        frame = np.arange(24, dtype=np.uint8).reshape(2, 4, 3)
        target = np.zeros((1, 3, 2, 4), dtype=np.float32)

        transformer.transform_input(_frames(metadata, [frame]), target, 1)

        np.testing.assert_array_equal(target[0], frame.transpose(2, 0, 1).astype(np.float32))

    def test_swaps_channels_when_orders_differ(self):
        transformer = OpenCVInputTransformer(_descriptor(channel_order="bgr"))
        metadata = FrameMetadata(width=4, height=2, pixel_format="rgb24")
        transformer.configure(metadata)
        frame = np.zeros((2, 4, 3), dtype=np.uint8)
        frame[..., 0] = 10  # R
        frame[..., 2] = 30  # B
        target = np.zeros((1, 3, 2, 4), dtype=np.float32)

        transformer.transform_input(_frames(metadata, [frame]), target, 1)

        assert np.all(target[0, 0] == 30)
        assert np.all(target[0, 2] == 10)

    def test_mean_and_scale(self):
        transformer = OpenCVInputTransformer(_descriptor(mean_colors=(1.0, 2.0, 3.0), input_scale=0.5))
        metadata = FrameMetadata(width=4, height=2, pixel_format="bgr24")
        transformer.configure(metadata)
        frame = np.full((2, 4, 3), 11, dtype=np.uint8)
        target = np.zeros((1, 3, 2, 4), dtype=np.float32)

        transformer.transform_input(_frames(metadata, [frame]), target, 1)

        assert np.all(target[0, 0] == 5.0)
        assert np.all(target[0, 1] == 4.5)
        assert np.all(target[0, 2] == 4.0)

    def test_resizes_to_network_geometry(self):
        transformer = OpenCVInputTransformer(_descriptor())
        metadata = FrameMetadata(width=8, height=6, pixel_format="bgr24")
        transformer.configure(metadata)
        frame = np.full((6, 8, 3), 42, dtype=np.uint8)
        target = np.zeros((1, 3, 2, 4), dtype=np.float32)

        transformer.transform_input(_frames(metadata, [frame]), target, 1)

        assert np.all(target == 42.0)

    def test_partial_batch_leaves_remaining_rows(self):
        transformer = OpenCVInputTransformer(_descriptor())
        metadata = FrameMetadata(width=4, height=2, pixel_format="bgr24")
        transformer.configure(metadata)
        frames = [np.full((2, 4, 3), v, dtype=np.uint8) for v in (1, 2)]
        target = np.full((3, 3, 2, 4), -1.0, dtype=np.float32)

        transformer.transform_input(_frames(metadata, frames), target, 2)

        assert np.all(target[0] == 1.0)
        assert np.all(target[1] == 2.0)
        assert np.all(target[2] == -1.0)

    def test_does_not_read_past_batch(self):
        transformer = OpenCVInputTransformer(_descriptor())
        metadata = FrameMetadata(width=4, height=2, pixel_format="bgr24")
        transformer.configure(metadata)
        # Exactly one frame of bytes; a second frame is never requested.
        raw = np.full(metadata.frame_size, 9, dtype=np.uint8)
        target = np.zeros((4, 3, 2, 4), dtype=np.float32)

        transformer.transform_input(raw, target, 1)

        assert np.all(target[0] == 9.0)

    def test_short_raw_buffer_is_rejected(self):
        transformer = OpenCVInputTransformer(_descriptor())
        metadata = FrameMetadata(width=4, height=2, pixel_format="bgr24")
        transformer.configure(metadata)
        target = np.zeros((2, 3, 2, 4), dtype=np.float32)

        with pytest.raises(ContractViolation):
            transformer.transform_input(np.zeros(metadata.frame_size, dtype=np.uint8), target, 2)

    def test_target_shape_must_match_network(self):
        transformer = OpenCVInputTransformer(_descriptor())
        metadata = FrameMetadata(width=4, height=2, pixel_format="bgr24")
        transformer.configure(metadata)
        raw = np.zeros(metadata.frame_size, dtype=np.uint8)

        with pytest.raises(ContractViolation):
            transformer.transform_input(raw, np.zeros((1, 3, 4, 4), dtype=np.float32), 1)

    def test_transform_before_configure(self):
        transformer = OpenCVInputTransformer(_descriptor())
        with pytest.raises(ContractViolation):
            transformer.transform_input(np.zeros(24, dtype=np.uint8), np.zeros((1, 3, 2, 4), dtype=np.float32), 1)

    def test_requires_three_channel_network(self):
        with pytest.raises(ConfigurationError):
            OpenCVInputTransformer(_descriptor(input_channels=1, mean_colors=(0.0,)))


class TestFactory:
    def test_constructs_private_instances(self):
        factory = OpenCVInputTransformerFactory()
        config = EvaluatorConfig(max_batch_size=2, max_frame_width=4, max_frame_height=2)
        a = factory.construct(config, _descriptor())
        b = factory.construct(config, _descriptor())
        assert isinstance(a, OpenCVInputTransformer)
        assert a is not b
