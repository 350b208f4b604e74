"""
Deterministic test doubles for the network collaborator.
"""

from typing import Dict, Optional, Tuple

import numpy as np

from evaluators.network import Network


class FakeNetwork(Network):
    """
    Network whose outputs are a pure function of each input frame.

    Output `k` (declaration order) for frame i is
    mean(input[i]) * (k + 1) + arange(n) * 0.001, so every output row can be
    traced back to the frame it came from.
    """

    def __init__(
        self,
        input_name: str = "data",
        input_shape: Tuple[int, int, int] = (3, 224, 224),
        outputs: Optional[Dict[str, int]] = None,
        declared_batch: int = 1,
    ):
        self.input_name = input_name
        self.output_elems = dict(outputs or {"prob": 1000})
        self.inputs = {input_name: np.zeros((declared_batch,) + tuple(input_shape), dtype=np.float32)}
        self.outputs = {
            name: np.zeros((declared_batch, n), dtype=np.float32) for name, n in self.output_elems.items()
        }
        self.forward_calls = 0
        self.reshapes = []
        self.closed = False

    def has_blob(self, name: str) -> bool:
        return name in self.inputs or name in self.outputs

    def blob(self, name: str) -> np.ndarray:
        if name in self.inputs:
            return self.inputs[name]
        return self.outputs[name]

    def reshape(self, name: str, shape) -> None:
        self.reshapes.append((name, tuple(shape)))
        self.inputs[name] = np.zeros(shape, dtype=np.float32)

    def forward(self) -> None:
        self.forward_calls += 1
        x = self.inputs[self.input_name]
        batch = x.shape[0]
        means = x.reshape(batch, -1).mean(axis=1, dtype=np.float64).astype(np.float32)
        for k, (name, n) in enumerate(self.output_elems.items()):
            ramp = np.arange(n, dtype=np.float32) * np.float32(0.001)
            self.outputs[name] = means[:, None] * np.float32(k + 1) + ramp[None, :]

    def close(self) -> None:
        self.closed = True


class InputlessNetwork(FakeNetwork):
    """Network that loaded fine but exposes no input binding."""

    def has_blob(self, name: str) -> bool:
        return name in self.outputs


def expected_row(fill_value: float, output_index: int, n: int) -> np.ndarray:
    """Output row FakeNetwork produces for a frame filled with `fill_value`."""
    ramp = np.arange(n, dtype=np.float32) * np.float32(0.001)
    return np.float32(fill_value) * np.float32(output_index + 1) + ramp


def fill_frames(buffer, metadata, values):
    """Write one constant-valued frame per entry of `values` into buffer."""
    size = metadata.frame_size
    for i, v in enumerate(values):
        buffer.data[i * size:(i + 1) * size] = np.uint8(v)
