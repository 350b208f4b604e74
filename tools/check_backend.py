#!/usr/bin/env python3
"""
Evaluator backend diagnostic script.

Checks device availability, network loading and a synthetic batch for one
backend without decoding any video. Use this to verify a backend and a net
descriptor before running the full batch job.

Usage:
    python tools/check_backend.py --net config/nets/googlenet.yaml
    python tools/check_backend.py --net config/nets/googlenet.yaml --backend cuda --batch-size 8
"""

import argparse
import logging
import os
import sys

import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from evaluators.errors import EvaluatorError  # noqa: E402
from evaluators.profiler import Profiler  # noqa: E402
from evaluators.registry import available_backends, create_constructor  # noqa: E402
from models.config import EvaluatorConfig, NetDescriptor  # noqa: E402
from models.frame import FrameMetadata  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)


def check_devices(constructor):
    """Report the device slots the backend can use."""
    print("=" * 70)
    print("TEST 1: Devices")
    print("=" * 70)

    devices = constructor.get_number_of_devices()
    print(f"  Devices: {devices}")
    print(f"  Input buffers:  {constructor.get_input_buffer_type().value}")
    print(f"  Output buffers: {constructor.get_output_buffer_type().value}")
    print(f"  Outputs: {constructor.get_output_names()}")
    if devices == 0:
        print("\n✗✗ No usable devices for this backend\n")
        return False
    print("\n✓✓ Device test PASSED\n")
    return True


def check_batch(constructor, config, width, height):
    """Load the network and evaluate one batch of random frames."""
    print("=" * 70)
    print("TEST 2: Network load & batch evaluation")
    print("=" * 70)

    profiler = Profiler()
    try:
        with constructor.new_evaluator(config, profiler=profiler) as evaluator:
            print(f"✓ Network loaded, output sizes (bytes/frame): {evaluator.output_sizes}")
            metadata = FrameMetadata(width=width, height=height, pixel_format="bgr24")
            evaluator.configure(metadata)

            with constructor.new_input_buffer(config) as input_buffer:
                outputs = [constructor.new_output_buffer(config, size) for size in evaluator.output_sizes]
                try:
                    rng = np.random.default_rng(0)
                    n = config.max_batch_size * metadata.frame_size
                    input_buffer.data[:n] = rng.integers(0, 256, size=n, dtype=np.uint8)
                    evaluator.evaluate(input_buffer, outputs, config.max_batch_size)
                    for name, size, buf in zip(constructor.get_output_names(), evaluator.output_sizes, outputs):
                        values = buf.view(np.float32, config.max_batch_size * size // 4)
                        print(f"  {name}: min={values.min():.4f} max={values.max():.4f}")
                finally:
                    for buf in outputs:
                        constructor.delete_output_buffer(config, buf)
    except EvaluatorError as e:
        print(f"✗ {type(e).__name__}: {e}")
        print("\n✗✗ Batch test FAILED\n")
        return False

    for name, entry in sorted(profiler.summary().items()):
        print(f"  {name}: {entry['mean'] * 1000:.2f} ms")
    print("\n✓✓ Batch test PASSED\n")
    return True


def main():
    parser = argparse.ArgumentParser(description="Check an evaluator backend")
    parser.add_argument("--net", required=True, help="Net descriptor YAML file")
    parser.add_argument("--backend", default="cpu", choices=available_backends())
    parser.add_argument("--batch-size", type=int, default=4)
    parser.add_argument("--width", type=int, default=640)
    parser.add_argument("--height", type=int, default=480)
    parser.add_argument("--device", type=int, default=0)
    args = parser.parse_args()

    descriptor = NetDescriptor.from_yaml(args.net)
    constructor = create_constructor(args.backend, descriptor)
    config = EvaluatorConfig(
        max_batch_size=args.batch_size,
        max_frame_width=args.width,
        max_frame_height=args.height,
        device_id=args.device,
    )

    ok = check_devices(constructor) and check_batch(constructor, config, args.width, args.height)
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
