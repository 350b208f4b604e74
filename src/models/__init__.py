"""
Typed models for frame evaluators.

Passive descriptors shared by evaluators, constructors and the pipeline driver.
"""

from .frame import FrameMetadata, FRAME_CHANNELS, PIXEL_FORMATS
from .config import Config, EvaluatorConfig, NetDescriptor

__all__ = [
    # Frame
    "FrameMetadata",
    "FRAME_CHANNELS",
    "PIXEL_FORMATS",
    # Config
    "Config",
    "EvaluatorConfig",
    "NetDescriptor",
]
