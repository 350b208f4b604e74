"""
Batch inference over a video file.

Decodes the video, runs every frame through the configured evaluator backend
in batches, and writes the stacked per-frame outputs to a .npz archive.

Usage:
    python src/main.py --config config/config.yaml --input video.mp4 --output output/features.npz

Arguments:
    --config: Path to configuration file
    --input: Video file to decode
    --output: Destination .npz file (one array per output layer)
    --max-frames: Stop after this many frames
    --list-backends: Print the available backends and exit
"""

import os
import sys
import argparse
import logging
import yaml
import cv2
import numpy as np
from typing import Dict, Any, Iterator, List, Tuple, Optional

from evaluators.errors import EvaluatorError
from evaluators.profiler import Profiler
from evaluators.registry import available_backends, create_constructor_from_config
from models.config import Config
from ops.logging import setup_logging
from pipeline.driver import BatchDriver


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base and return base."""
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration with layering:
    - `config/default.yaml` (checked in)
    - `config/config.yaml` (local overrides)
    - plus any explicitly provided `--config` path (treated as overrides)
    """
    try:
        config_dir = os.path.dirname(config_path)
        base_path = os.path.join(config_dir, "default.yaml")
        base_cfg: Dict[str, Any] = {}
        if os.path.exists(base_path):
            with open(base_path, "r") as f:
                base_cfg = yaml.safe_load(f) or {}

        local_overrides_path = os.path.join(config_dir, "config.yaml")
        local_cfg: Dict[str, Any] = {}
        if os.path.exists(local_overrides_path):
            with open(local_overrides_path, "r") as f:
                local_cfg = yaml.safe_load(f) or {}

        merged = _deep_merge(base_cfg, local_cfg)

        # Finally apply explicit config_path if it's not the local override file itself
        if os.path.exists(config_path) and os.path.abspath(config_path) != os.path.abspath(local_overrides_path):
            with open(config_path, "r") as f:
                explicit_cfg = yaml.safe_load(f) or {}
            merged = _deep_merge(merged, explicit_cfg)

        # Descriptor file paths are relative to the config directory
        net = merged.get("net")
        if isinstance(net, str) and not os.path.isabs(net):
            merged["net"] = os.path.join(config_dir, net)

        return merged
    except Exception as e:
        logging.error(f"Failed to load configuration: {e}")
        sys.exit(1)


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration file structure and values.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    # Required top-level sections
    required_sections = ['backend', 'evaluator', 'net', 'log_path', 'log_level']
    for section in required_sections:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    if config['backend'] not in available_backends():
        return False, f"backend must be one of: {', '.join(available_backends())}"

    # Validate evaluator limits
    evaluator = config.get('evaluator') or {}
    if not isinstance(evaluator, dict):
        return False, "evaluator must be a mapping"
    for key in ('max_batch_size', 'max_frame_width', 'max_frame_height'):
        if key not in evaluator:
            return False, f"Missing evaluator.{key}"
        value = evaluator[key]
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            return False, f"evaluator.{key} must be a positive integer"
    device_id = evaluator.get('device_id', 0)
    if isinstance(device_id, bool) or not isinstance(device_id, int) or device_id < 0:
        return False, "evaluator.device_id must be a non-negative integer"

    # Validate net descriptor (inline mapping or descriptor file path)
    net = config['net']
    if isinstance(net, str):
        if not os.path.exists(net):
            return False, f"net descriptor file not found: {net}"
    elif isinstance(net, dict):
        for key in ('model_path', 'weights_path', 'input_layer_name', 'output_layer_names'):
            if key not in net:
                return False, f"Missing net.{key}"
        names = net['output_layer_names']
        if not isinstance(names, list) or not names or not all(isinstance(n, str) and n for n in names):
            return False, "net.output_layer_names must be a non-empty list of names"
    else:
        return False, "net must be a descriptor mapping or a descriptor file path"

    # Validate log settings
    valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
    if config['log_level'] not in valid_log_levels:
        return False, f"log_level must be one of: {', '.join(valid_log_levels)}"

    return True, None


def read_frames(path: str, max_frames: Optional[int] = None) -> Iterator[np.ndarray]:
    """Yield decoded BGR frames from a video file."""
    capture = cv2.VideoCapture(path)
    if not capture.isOpened():
        raise RuntimeError(f"Could not open video: {path}")
    try:
        count = 0
        while max_frames is None or count < max_frames:
            ret, frame = capture.read()
            if not ret:
                break
            count += 1
            yield frame
    finally:
        capture.release()


def main():
    """Main application function."""
    # Parse command-line arguments
    parser = argparse.ArgumentParser(description='Frame Evaluators - batch inference over video')
    parser.add_argument('--config', type=str, default='config/config.yaml',
                        help='Path to configuration file')
    parser.add_argument('--input', type=str,
                        help='Video file to decode')
    parser.add_argument('--output', type=str, default='output/outputs.npz',
                        help='Destination .npz file')
    parser.add_argument('--max-frames', type=int, default=None,
                        help='Stop after this many frames')
    parser.add_argument('--list-backends', action='store_true',
                        help='Print available backends and exit')
    args = parser.parse_args()

    if args.list_backends:
        print("\n".join(available_backends()))
        return
    if not args.input:
        parser.error("--input is required")

    # Load configuration
    config = load_config(args.config)

    # Validate configuration
    is_valid, error_msg = validate_config(config)
    if not is_valid:
        logging.error(f"Configuration validation failed: {error_msg}")
        sys.exit(1)

    # Setup logging
    setup_logging(config['log_path'], config['log_level'])

    logging.info("Starting Frame Evaluators")

    try:
        cfg = Config.from_dict(config)
        constructor = create_constructor_from_config(cfg)
        logging.info(constructor.describe())

        profiler = Profiler()
        outputs: Dict[str, List[np.ndarray]] = {name: [] for name in constructor.get_output_names()}
        frame_count = 0
        with BatchDriver(constructor, cfg.evaluator, profiler=profiler) as driver:
            for result in driver.run(read_frames(args.input, args.max_frames)):
                for name, values in result.outputs.items():
                    outputs[name].append(values)
                frame_count += result.batch_size

        if frame_count == 0:
            logging.warning(f"No frames decoded from {args.input}")
            sys.exit(1)

        output_dir = os.path.dirname(args.output)
        if output_dir:
            os.makedirs(output_dir, exist_ok=True)
        np.savez(args.output, **{name: np.concatenate(chunks) for name, chunks in outputs.items()})
        logging.info(f"Wrote outputs for {frame_count} frames to {args.output}")
        profiler.log_summary()
    except (EvaluatorError, ValueError, RuntimeError, OSError) as e:
        logging.error(f"Evaluation failed: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logging.info("Interrupted by user")


if __name__ == "__main__":
    main()
