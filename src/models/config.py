"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import yaml

from .frame import FRAME_CHANNELS


def _require_positive_int(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")


@dataclass(frozen=True)
class EvaluatorConfig:
    """
    Resource limits for one evaluator instance.

    Shared read-only by every evaluator and buffer built from it.

    Attributes:
        max_batch_size: Largest batch evaluate() accepts.
        max_frame_width: Widest frame the input buffer must hold.
        max_frame_height: Tallest frame the input buffer must hold.
        device_id: Index of the device slot the evaluator binds to.
    """
    max_batch_size: int = 1
    max_frame_width: int = 1920
    max_frame_height: int = 1080
    device_id: int = 0

    def __post_init__(self) -> None:
        _require_positive_int("max_batch_size", self.max_batch_size)
        _require_positive_int("max_frame_width", self.max_frame_width)
        _require_positive_int("max_frame_height", self.max_frame_height)
        if isinstance(self.device_id, bool) or not isinstance(self.device_id, int) or self.device_id < 0:
            raise ValueError(f"device_id must be a non-negative integer, got {self.device_id!r}")

    @property
    def max_frame_size(self) -> int:
        """Bytes of the largest frame this config admits."""
        return self.max_frame_width * self.max_frame_height * FRAME_CHANNELS

    @property
    def input_buffer_size(self) -> int:
        return self.max_batch_size * self.max_frame_size

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "EvaluatorConfig":
        return cls(
            max_batch_size=d.get("max_batch_size", 1),
            max_frame_width=d.get("max_frame_width", 1920),
            max_frame_height=d.get("max_frame_height", 1080),
            device_id=d.get("device_id", 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_batch_size": self.max_batch_size,
            "max_frame_width": self.max_frame_width,
            "max_frame_height": self.max_frame_height,
            "device_id": self.device_id,
        }


@dataclass(frozen=True)
class NetDescriptor:
    """
    Static description of a trained network.

    Attributes:
        model_path: Network topology/definition file (e.g. Caffe prototxt).
        weights_path: Trained weights file (e.g. .caffemodel).
        input_layer_name: Name of the input blob fed with transformed frames.
        output_layer_names: Ordered output blob names; output buffers follow this order.
        input_width: Network input width in pixels.
        input_height: Network input height in pixels.
        input_channels: Network input channels.
        mean_colors: Per-channel mean subtracted before scaling, in channel_order.
        input_scale: Multiplier applied after mean subtraction.
        channel_order: Channel order the network was trained on ("rgb" or "bgr").
    """
    model_path: str
    weights_path: str
    input_layer_name: str
    output_layer_names: Tuple[str, ...]
    input_width: int = 224
    input_height: int = 224
    input_channels: int = FRAME_CHANNELS
    mean_colors: Tuple[float, ...] = (0.0, 0.0, 0.0)
    input_scale: float = 1.0
    channel_order: str = "bgr"

    def __post_init__(self) -> None:
        # Lists from YAML are accepted but stored as tuples to keep the descriptor hashable.
        object.__setattr__(self, "output_layer_names", tuple(self.output_layer_names))
        object.__setattr__(self, "mean_colors", tuple(float(c) for c in self.mean_colors))

        if not self.input_layer_name:
            raise ValueError("input_layer_name is required")
        if not self.output_layer_names:
            raise ValueError("output_layer_names must name at least one output")
        if len(set(self.output_layer_names)) != len(self.output_layer_names):
            raise ValueError(f"output_layer_names must be unique: {list(self.output_layer_names)}")
        _require_positive_int("input_width", self.input_width)
        _require_positive_int("input_height", self.input_height)
        _require_positive_int("input_channels", self.input_channels)
        if len(self.mean_colors) != self.input_channels:
            raise ValueError(
                f"mean_colors needs {self.input_channels} values, got {len(self.mean_colors)}"
            )
        if self.channel_order not in ("rgb", "bgr"):
            raise ValueError(f"channel_order must be 'rgb' or 'bgr', got {self.channel_order!r}")

    @property
    def input_shape(self) -> Tuple[int, int, int]:
        """Return (channels, height, width) of one network input frame."""
        return (self.input_channels, self.input_height, self.input_width)

    @classmethod
    def from_dict(cls, d: Dict[str, Any], base_dir: Optional[str] = None) -> "NetDescriptor":
        """
        Adapter: Create from config dictionary.

        Relative artifact paths are resolved against base_dir when given.
        """
        def _resolve(path: str) -> str:
            if base_dir and path and not os.path.isabs(path):
                return os.path.join(base_dir, path)
            return path

        try:
            return cls(
                model_path=_resolve(d["model_path"]),
                weights_path=_resolve(d["weights_path"]),
                input_layer_name=d["input_layer_name"],
                output_layer_names=tuple(d["output_layer_names"]),
                input_width=d.get("input_width", 224),
                input_height=d.get("input_height", 224),
                input_channels=d.get("input_channels", FRAME_CHANNELS),
                mean_colors=tuple(d.get("mean_colors", (0.0, 0.0, 0.0))),
                input_scale=float(d.get("input_scale", 1.0)),
                channel_order=d.get("channel_order", "bgr"),
            )
        except KeyError as e:
            raise ValueError(f"Missing net descriptor field: {e.args[0]}") from e

    @classmethod
    def from_yaml(cls, path: str) -> "NetDescriptor":
        """Load a standalone descriptor file."""
        with open(path, "r") as f:
            d = yaml.safe_load(f) or {}
        if not isinstance(d, dict):
            raise ValueError(f"Net descriptor {path} must be a mapping")
        return cls.from_dict(d, base_dir=os.path.dirname(os.path.abspath(path)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_path": self.model_path,
            "weights_path": self.weights_path,
            "input_layer_name": self.input_layer_name,
            "output_layer_names": list(self.output_layer_names),
            "input_width": self.input_width,
            "input_height": self.input_height,
            "input_channels": self.input_channels,
            "mean_colors": list(self.mean_colors),
            "input_scale": self.input_scale,
            "channel_order": self.channel_order,
        }


@dataclass
class Config:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure. The net
    section is either an inline descriptor mapping or a path to a descriptor file.
    """
    net: NetDescriptor
    backend: str = "cpu"
    evaluator: EvaluatorConfig = field(default_factory=EvaluatorConfig)
    log_path: str = "logs/frame_evaluators.log"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Adapter: Create Config from raw dictionary (e.g., from load_config)."""
        net_cfg = d.get("net")
        if isinstance(net_cfg, str):
            net = NetDescriptor.from_yaml(net_cfg)
        elif isinstance(net_cfg, dict):
            net = NetDescriptor.from_dict(net_cfg)
        else:
            raise ValueError("net must be a descriptor mapping or a descriptor file path")

        return cls(
            net=net,
            backend=d.get("backend", "cpu"),
            evaluator=EvaluatorConfig.from_dict(d.get("evaluator", {}) or {}),
            log_path=d.get("log_path", "logs/frame_evaluators.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary (for saving or passing to existing code)."""
        return {
            "backend": self.backend,
            "evaluator": self.evaluator.to_dict(),
            "net": self.net.to_dict(),
            "log_path": self.log_path,
            "log_level": self.log_level,
        }


