"""
Smoke tests for typed models and adapters.
"""

import numpy as np
import pytest

from models.config import Config, EvaluatorConfig, NetDescriptor
from models.frame import FrameMetadata


class TestFrameMetadata:
    def test_properties(self):
        md = FrameMetadata(width=640, height=480, pixel_format="rgb24")
        assert md.frame_size == 640 * 480 * 3
        assert md.shape == (480, 640, 3)
        assert md.size == (640, 480)
        assert md.channel_order == "rgb"

    def test_from_numpy(self):
        frame = np.zeros((120, 160, 3), dtype=np.uint8)
        md = FrameMetadata.from_numpy(frame)
        assert md == FrameMetadata(width=160, height=120, pixel_format="bgr24")

    @pytest.mark.parametrize("kwargs", [
        {"width": 0, "height": 10},
        {"width": 10, "height": -1},
        {"width": 10, "height": 10, "pixel_format": "yuv420p"},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            FrameMetadata(**kwargs)


class TestEvaluatorConfig:
    def test_sizes(self):
        cfg = EvaluatorConfig(max_batch_size=4, max_frame_width=224, max_frame_height=224)
        assert cfg.max_frame_size == 224 * 224 * 3
        assert cfg.input_buffer_size == 4 * 224 * 224 * 3

    def test_immutable(self):
        cfg = EvaluatorConfig()
        with pytest.raises(Exception):
            cfg.max_batch_size = 2

    @pytest.mark.parametrize("field,value", [
        ("max_batch_size", 0),
        ("max_frame_width", -5),
        ("max_frame_height", 1.5),
        ("max_batch_size", True),
        ("device_id", -1),
    ])
    def test_rejects_invalid_limits(self, field, value):
        with pytest.raises(ValueError):
            EvaluatorConfig(**{field: value})

    def test_roundtrip(self):
        d = {"max_batch_size": 8, "max_frame_width": 1280, "max_frame_height": 720, "device_id": 1}
        assert EvaluatorConfig.from_dict(d).to_dict() == d


class TestNetDescriptor:
    def test_from_dict_defaults(self):
        d = NetDescriptor.from_dict({
            "model_path": "deploy.prototxt",
            "weights_path": "weights.caffemodel",
            "input_layer_name": "data",
            "output_layer_names": ["prob"],
        })
        assert d.output_layer_names == ("prob",)
        assert d.input_shape == (3, 224, 224)
        assert d.channel_order == "bgr"

    def test_missing_field(self):
        with pytest.raises(ValueError, match="input_layer_name"):
            NetDescriptor.from_dict({
                "model_path": "a", "weights_path": "b", "output_layer_names": ["prob"],
            })

    def test_requires_outputs(self):
        with pytest.raises(ValueError):
            NetDescriptor("a", "b", "data", ())

    def test_duplicate_outputs(self):
        with pytest.raises(ValueError, match="unique"):
            NetDescriptor("a", "b", "data", ("prob", "prob"))

    def test_mean_colors_match_channels(self):
        with pytest.raises(ValueError, match="mean_colors"):
            NetDescriptor("a", "b", "data", ("prob",), mean_colors=(1.0, 2.0))

    def test_from_yaml_resolves_relative_paths(self, tmp_path):
        nets = tmp_path / "nets"
        nets.mkdir()
        path = nets / "googlenet.yaml"
        path.write_text("""
model_path: "../models/deploy.prototxt"
weights_path: "/abs/weights.caffemodel"
input_layer_name: "data"
output_layer_names: ["prob", "pool5/7x7_s1"]
mean_colors: [104, 117, 123]
""")
        d = NetDescriptor.from_yaml(str(path))

        assert d.model_path == str(nets / "../models/deploy.prototxt")
        assert d.weights_path == "/abs/weights.caffemodel"
        assert d.output_layer_names == ("prob", "pool5/7x7_s1")
        assert d.mean_colors == (104.0, 117.0, 123.0)


class TestConfig:
    def test_from_dict_inline_net(self, net_descriptor):
        cfg = Config.from_dict({
            "backend": "cuda",
            "evaluator": {"max_batch_size": 2, "max_frame_width": 640, "max_frame_height": 480},
            "net": net_descriptor.to_dict(),
            "log_level": "DEBUG",
        })
        assert cfg.backend == "cuda"
        assert cfg.evaluator.max_batch_size == 2
        assert cfg.net == net_descriptor
        assert cfg.log_level == "DEBUG"
        assert cfg.log_path == "logs/frame_evaluators.log"

    def test_net_must_be_given(self):
        with pytest.raises(ValueError):
            Config.from_dict({"backend": "cpu"})

    def test_to_dict_roundtrip(self, net_descriptor):
        cfg = Config(net=net_descriptor)
        assert Config.from_dict(cfg.to_dict()) == cfg
